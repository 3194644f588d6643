"""Client for the local Gateway server's JSON endpoints."""
from __future__ import annotations

import asyncio
import json
from http.client import HTTPException
from typing import Any, Optional
from urllib import request
from urllib.error import HTTPError, URLError
from urllib.parse import quote

from video_workstation.workspace import TTSConfig


DEFAULT_GATEWAY_URL = "http://localhost:8765"


class GatewayError(RuntimeError):
    """Raised on transport failures and ``success: false`` responses."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


def _decode_body(raw: bytes) -> dict[str, Any]:
    try:
        parsed = json.loads(raw.decode("utf-8") or "{}")
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise GatewayError(f"Invalid JSON response: {exc}") from exc
    if not isinstance(parsed, dict):
        raise GatewayError("Gateway response must be a JSON object.")
    return parsed


class GatewayClient:
    def __init__(
        self, base_url: str = DEFAULT_GATEWAY_URL, timeout: Optional[float] = None
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _open(self, req: request.Request) -> dict[str, Any]:
        try:
            if self.timeout is None:
                response_context = request.urlopen(req)
            else:
                response_context = request.urlopen(req, timeout=self.timeout)
            with response_context as response:
                body = _decode_body(response.read())
        except HTTPError as exc:
            message = f"HTTP {exc.code}"
            try:
                error_body = _decode_body(exc.read())
            except GatewayError:
                error_body = {}
            if error_body.get("message"):
                message = str(error_body["message"])
            raise GatewayError(message, status=exc.code) from exc
        except (URLError, OSError, HTTPException) as exc:
            raise GatewayError(f"Gateway unreachable: {exc!r}") from exc
        if not body.get("success"):
            raise GatewayError(str(body.get("message") or "Request failed"))
        return body

    def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        data = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        req = request.Request(
            f"{self.base_url}{path}",
            data=data,
            headers={"Content-Type": "application/json"},
        )
        return self._open(req)

    def _get(self, path: str) -> dict[str, Any]:
        return self._open(request.Request(f"{self.base_url}{path}"))

    def generate_tts(
        self,
        project_path: str,
        config: TTSConfig,
        text: str,
        emo_text: str = "",
    ) -> dict[str, Any]:
        return self._post(
            "/api/generate-tts",
            {
                "projectPath": project_path,
                "apiKey": config.api_key,
                "promptAudioUrl": config.prompt_audio_url,
                "promptText": config.prompt_text,
                "inputs": text,
                "emoText": emo_text,
                "useEmoText": emo_text != "",
            },
        )

    def generate_image(
        self,
        project_path: str,
        image_type: str,
        name: str,
        prompt: str,
        aspect_ratio: str = "",
        image_paths: Optional[list[str]] = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "projectPath": project_path,
            "imageType": image_type,
            "prompt": prompt,
            "aspectRatio": aspect_ratio,
        }
        if image_type == "character":
            payload["characterName"] = name
        else:
            payload["backgroundName"] = name
        if image_paths is None:
            return self._post("/api/generate-image-text", payload)
        payload["imagePaths"] = image_paths
        return self._post("/api/generate-image-reference", payload)

    def get_image(self, file_path: str) -> dict[str, Any]:
        return self._get(f"/api/get-image?path={quote(file_path)}")

    def save_draft(self, project_path: str, draft_data: dict[str, Any]) -> dict[str, Any]:
        return self._post(
            "/api/save-draft", {"projectPath": project_path, "draftData": draft_data}
        )

    def load_draft(self, project_path: str) -> dict[str, Any]:
        return self._post("/api/load-draft", {"projectPath": project_path})

    def clear_draft(self, project_path: str) -> dict[str, Any]:
        return self._post("/api/clear-draft", {"projectPath": project_path})

    def default_tts_config(self) -> dict[str, Any]:
        return self._get("/api/default-tts-config")


class AsyncGatewayClient:
    """Runs the blocking client off the event loop, one call at a time per caller."""

    def __init__(self, client: GatewayClient) -> None:
        self.client = client

    async def generate_tts(self, *args: Any, **kwargs: Any) -> dict[str, Any]:
        return await asyncio.to_thread(self.client.generate_tts, *args, **kwargs)

    async def generate_image(self, *args: Any, **kwargs: Any) -> dict[str, Any]:
        return await asyncio.to_thread(self.client.generate_image, *args, **kwargs)

    async def get_image(self, file_path: str) -> dict[str, Any]:
        return await asyncio.to_thread(self.client.get_image, file_path)

    async def save_draft(self, project_path: str, draft_data: dict[str, Any]) -> dict[str, Any]:
        return await asyncio.to_thread(self.client.save_draft, project_path, draft_data)

    async def load_draft(self, project_path: str) -> dict[str, Any]:
        return await asyncio.to_thread(self.client.load_draft, project_path)

    async def clear_draft(self, project_path: str) -> dict[str, Any]:
        return await asyncio.to_thread(self.client.clear_draft, project_path)
