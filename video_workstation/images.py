from __future__ import annotations

import base64
import binascii
import json
import time
from dataclasses import dataclass
from http.client import HTTPException
from pathlib import Path
from typing import Any, Iterable, Optional
from urllib import request
from urllib.error import HTTPError, URLError

from video_workstation.config import WorkstationConfig
from video_workstation.filenames import image_filename, image_mime_type


class ImageGenerationError(RuntimeError):
    """Raised when the image service fails or returns no image."""


IMAGE_TYPES = ("character", "background")
IMAGE_DIRNAME = "image"
FREE_CREATE_DIRNAME = "free-create"
IMAGE_TIMEOUT = 120.0


@dataclass(frozen=True)
class ImageSettings:
    api_key: str = ""
    base_url: str = ""
    model: str = ""
    timeout: float = IMAGE_TIMEOUT

    @classmethod
    def from_config(cls, config: WorkstationConfig) -> "ImageSettings":
        return cls(
            api_key=config.gemini_api_key,
            base_url=config.gemini_base_url.rstrip("/"),
            model=config.gemini_model,
        )

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/v1beta/models/{self.model}:generateContent"


def reference_part(path: Path) -> dict[str, Any]:
    return {
        "inlineData": {
            "mimeType": image_mime_type(path),
            "data": base64.b64encode(path.read_bytes()).decode("ascii"),
        }
    }


def build_image_request(parts: list[dict[str, Any]], aspect_ratio: str = "") -> dict[str, Any]:
    body: dict[str, Any] = {"contents": [{"parts": parts}]}
    if aspect_ratio:
        body["generationConfig"] = {"imageConfig": {"aspectRatio": aspect_ratio}}
    return body


def extract_image_data(response: Any) -> str:
    candidates = response.get("candidates") if isinstance(response, dict) else None
    if not isinstance(candidates, list) or not candidates:
        raise ImageGenerationError("The response contained no generated image.")
    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    if not isinstance(content, dict) or not isinstance(content.get("parts"), list):
        raise ImageGenerationError("The response format was not recognized.")
    for part in content["parts"]:
        inline = part.get("inlineData") if isinstance(part, dict) else None
        if isinstance(inline, dict) and inline.get("data"):
            return str(inline["data"])
    raise ImageGenerationError("No image data was found in the response.")


def request_image(
    settings: ImageSettings, parts: list[dict[str, Any]], aspect_ratio: str = ""
) -> str:
    """Return the base64 image the service generated for ``parts``."""
    body = build_image_request(parts, aspect_ratio)
    req = request.Request(
        settings.endpoint,
        data=json.dumps(body).encode("utf-8"),
        headers={"x-goog-api-key": settings.api_key, "Content-Type": "application/json"},
    )
    try:
        with request.urlopen(req, timeout=settings.timeout) as response:
            parsed = json.loads(response.read().decode("utf-8"))
    except HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="replace")
        raise ImageGenerationError(f"HTTP {exc.code}: {detail}") from exc
    except (URLError, OSError, HTTPException) as exc:
        raise ImageGenerationError(f"Image service unreachable: {exc}") from exc
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ImageGenerationError(f"Invalid response from the image service: {exc}") from exc
    return extract_image_data(parsed)


def _decode_image(data: str) -> bytes:
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ImageGenerationError("The image data could not be decoded.") from exc


def existing_reference_paths(paths: Iterable[str]) -> list[Path]:
    candidates = (Path(value.strip()) for value in paths if value.strip())
    return [path for path in candidates if path.is_file()]


def generate_project_image(
    project_path: Path,
    image_type: str,
    name: Optional[str],
    prompt: str,
    settings: ImageSettings,
    aspect_ratio: str = "",
    reference_paths: Optional[list[Path]] = None,
    verbose: bool = False,
) -> Path:
    if image_type not in IMAGE_TYPES:
        raise ValueError(f"Invalid imageType: {image_type}")
    if image_type == "character" and not (name and name.strip()):
        raise ValueError("characterName is required")
    save_dir = project_path / IMAGE_DIRNAME / image_type
    save_dir.mkdir(parents=True, exist_ok=True)
    save_path = save_dir / image_filename(name, save_dir)

    parts = [reference_part(path) for path in reference_paths or []]
    parts.append({"text": prompt})
    save_path.write_bytes(_decode_image(request_image(settings, parts, aspect_ratio)))
    if verbose:
        print(f"[image] Wrote {save_path}.")
    return save_path


def free_create_image(
    project_path: Path,
    prompt: str,
    settings: ImageSettings,
    aspect_ratio: str = "",
    save_folder: Optional[Path] = None,
    reference_images: Optional[list[str]] = None,
    verbose: bool = False,
) -> tuple[Path, str]:
    """Generate an unnamed image; returns its path and base64 data."""
    save_dir = save_folder or project_path / FREE_CREATE_DIRNAME
    save_dir.mkdir(parents=True, exist_ok=True)
    save_path = save_dir / f"free-create-{int(time.time() * 1000)}.png"

    parts: list[dict[str, Any]] = [
        {"inlineData": {"mimeType": "image/png", "data": data}}
        for data in reference_images or []
    ]
    parts.append({"text": prompt})
    data = request_image(settings, parts, aspect_ratio)
    save_path.write_bytes(_decode_image(data))
    if verbose:
        print(f"[image] Wrote {save_path}.")
    return save_path, data
