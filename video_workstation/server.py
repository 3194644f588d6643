"""HTTP gateway between the workstation UI and the remote generation services."""
from __future__ import annotations

import json
import mimetypes
import platform
import shutil
import subprocess
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any, Callable, Optional
from urllib.parse import parse_qs, unquote, urlparse

from video_workstation.config import WorkstationConfig, is_headless_environment
from video_workstation.copywriting import (
    IMAGE_KEY,
    TTS_KEY,
    CopywritingError,
    request_summary,
    save_copywriting_files,
)
from video_workstation.filenames import image_data_url
from video_workstation.images import (
    IMAGE_TYPES,
    ImageGenerationError,
    ImageSettings,
    existing_reference_paths,
    free_create_image,
    generate_project_image,
)
from video_workstation.tts import TTS_DIRNAME, TTSSynthesisError, synthesize_project_audio
from video_workstation.workspace import TTSConfig


class ApiError(ValueError):
    """Raised when API input is invalid."""


class NotFoundError(ApiError):
    """Raised when a requested file or draft does not exist."""


class DraftStorageError(RuntimeError):
    """Raised when a stored draft cannot be read."""


DRAFT_DIRNAME = ".draft"
DRAFT_FILENAME = "workspace-draft.json"
HEADLESS_MESSAGE = "Headless environment; open this path on the host manually."
NOT_FOUND_PAGE = """<!DOCTYPE html>
<html>
  <head><meta charset="utf-8"><title>404 - Not Found</title></head>
  <body>
    <h1>404</h1>
    <p>Page not found.</p>
    <p><a href="/">Back to the workstation</a></p>
  </body>
</html>
"""
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}
UPSTREAM_ERRORS = (
    TTSSynthesisError,
    ImageGenerationError,
    CopywritingError,
    DraftStorageError,
    OSError,
)


def _require(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ApiError(f"{key} is required")
    return value.strip()


def _project_path(payload: dict[str, Any]) -> Path:
    return Path(_require(payload, "projectPath"))


def draft_path(project_path: Path) -> Path:
    return project_path / DRAFT_DIRNAME / DRAFT_FILENAME


def _open_folder(folder: Path) -> dict[str, Any]:
    if is_headless_environment():
        print(f"[gateway] Headless environment, returning path {folder}")
        return {"success": True, "message": HEADLESS_MESSAGE, "path": str(folder)}
    system = platform.system()
    if system == "Windows":
        command = ["explorer", str(folder)]
    elif system == "Darwin":
        command = ["open", str(folder)]
    else:
        command = ["xdg-open", str(folder)]
    try:
        subprocess.Popen(command)
    except OSError as exc:
        print(f"[gateway] Unable to open {folder}: {exc}")
    return {"success": True, "message": "Folder opened.", "path": str(folder)}


def generate_tts_api(payload: dict[str, Any], config: WorkstationConfig) -> dict[str, Any]:
    project_path = _project_path(payload)
    text = _require(payload, "inputs")
    tts_config = TTSConfig.from_mapping(payload)
    if not tts_config.is_complete():
        raise ApiError("apiKey, promptAudioUrl and promptText are required")
    emo_text = str(payload.get("emoText") or "").strip()
    audio_path = synthesize_project_audio(
        project_path,
        tts_config,
        text,
        emo_text=emo_text,
        use_emo_text=bool(payload.get("useEmoText", bool(emo_text))),
        verbose=True,
    )
    return {"success": True, "filename": audio_path.name, "message": "Speech generated."}


def _image_request(payload: dict[str, Any]) -> tuple[Path, str, str, str, str]:
    project_path = _project_path(payload)
    image_type = str(payload.get("imageType") or "")
    if image_type not in IMAGE_TYPES:
        raise ApiError(f"Invalid imageType: {image_type or '(missing)'}")
    name = str(payload.get("characterName") or payload.get("backgroundName") or "").strip()
    if image_type == "character" and not name:
        raise ApiError("characterName is required")
    if "/" in name or "\\" in name or name in (".", ".."):
        raise ApiError("Image name must not contain path separators")
    prompt = _require(payload, "prompt")
    aspect_ratio = str(payload.get("aspectRatio") or "").strip()
    return project_path, image_type, name, prompt, aspect_ratio


def _image_response(path: Path) -> dict[str, Any]:
    return {
        "success": True,
        "file_path": str(path),
        "file_size": path.stat().st_size,
        "message": f"Image generated: {path}",
    }


def generate_image_text_api(
    payload: dict[str, Any], config: WorkstationConfig
) -> dict[str, Any]:
    project_path, image_type, name, prompt, aspect_ratio = _image_request(payload)
    path = generate_project_image(
        project_path,
        image_type,
        name,
        prompt,
        ImageSettings.from_config(config),
        aspect_ratio=aspect_ratio,
        verbose=True,
    )
    return _image_response(path)


def generate_image_reference_api(
    payload: dict[str, Any], config: WorkstationConfig
) -> dict[str, Any]:
    project_path, image_type, name, prompt, aspect_ratio = _image_request(payload)
    image_paths = payload.get("imagePaths")
    if not isinstance(image_paths, list):
        raise ApiError("imagePaths must be a list")
    references = existing_reference_paths(str(value) for value in image_paths)
    if not references:
        raise ApiError("No valid reference image files were found.")
    path = generate_project_image(
        project_path,
        image_type,
        name,
        prompt,
        ImageSettings.from_config(config),
        aspect_ratio=aspect_ratio,
        reference_paths=references,
        verbose=True,
    )
    return _image_response(path)


def get_image_api(query: dict[str, Any], config: WorkstationConfig) -> dict[str, Any]:
    file_value = query.get("path")
    if not file_value or not Path(file_value).is_file():
        raise NotFoundError("File not found.")
    return {"success": True, "data_url": image_data_url(Path(file_value))}


def save_draft_api(payload: dict[str, Any], config: WorkstationConfig) -> dict[str, Any]:
    project_path = _project_path(payload)
    draft_data = payload.get("draftData")
    if not isinstance(draft_data, dict):
        raise ApiError("draftData must be an object")
    path = draft_path(project_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(draft_data, ensure_ascii=False, indent=2), encoding="utf-8")
    print(f"[gateway] Saved draft {path}")
    return {"success": True, "message": "Draft saved."}


def load_draft_api(payload: dict[str, Any], config: WorkstationConfig) -> dict[str, Any]:
    path = draft_path(_project_path(payload))
    if not path.is_file():
        raise NotFoundError("No saved draft was found.")
    try:
        draft_data = json.loads(path.read_text(encoding="utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise DraftStorageError(f"Draft file is unreadable: {exc}") from exc
    return {"success": True, "data": draft_data}


def clear_draft_api(payload: dict[str, Any], config: WorkstationConfig) -> dict[str, Any]:
    path = draft_path(_project_path(payload))
    if path.exists():
        path.unlink()
        print(f"[gateway] Cleared draft {path}")
    return {"success": True, "message": "Draft cleared."}


def save_copywriting_api(payload: dict[str, Any], config: WorkstationConfig) -> dict[str, Any]:
    project_path = _project_path(payload)
    folder = save_copywriting_files(
        project_path, payload.get("ttsData"), payload.get("imageData")
    )
    return {"success": True, "message": "Copywriting saved.", "path": str(folder)}


def generate_copywriting_api(
    payload: dict[str, Any], config: WorkstationConfig
) -> dict[str, Any]:
    project_path = _project_path(payload)
    video_url = _require(payload, "videoUrl")
    data = request_summary(config.summary_webhook_url, video_url)
    folder = save_copywriting_files(project_path, data[TTS_KEY], data[IMAGE_KEY])
    return {"success": True, "data": data, "path": str(folder)}


def free_create_image_api(payload: dict[str, Any], config: WorkstationConfig) -> dict[str, Any]:
    project_path = _project_path(payload)
    prompt = _require(payload, "prompt")
    save_folder_value = str(payload.get("saveFolder") or "").strip()
    references = payload.get("referenceImages") or []
    if not isinstance(references, list):
        raise ApiError("referenceImages must be a list")
    reference_data = [
        str(item.get("data")) for item in references if isinstance(item, dict) and item.get("data")
    ]
    path, data = free_create_image(
        project_path,
        prompt,
        ImageSettings.from_config(config),
        aspect_ratio=str(payload.get("aspectRatio") or "").strip(),
        save_folder=Path(save_folder_value) if save_folder_value else None,
        reference_images=reference_data,
        verbose=True,
    )
    return {
        "success": True,
        "imagePath": str(path),
        "imageData": data,
        "message": "Image generated.",
    }


def save_free_create_image_api(
    payload: dict[str, Any], config: WorkstationConfig
) -> dict[str, Any]:
    image_value = payload.get("imagePath")
    target_value = payload.get("targetFolder")
    if not image_value or not target_value:
        raise ApiError("imagePath and targetFolder are required")
    image_path = Path(str(image_value))
    if not image_path.is_file():
        raise NotFoundError("Source file not found.")
    target_folder = Path(str(target_value))
    target_folder.mkdir(parents=True, exist_ok=True)
    target_path = target_folder / image_path.name
    shutil.copyfile(image_path, target_path)
    return {"success": True, "targetPath": str(target_path), "message": "Image saved."}


def open_tts_folder_api(payload: dict[str, Any], config: WorkstationConfig) -> dict[str, Any]:
    folder = _project_path(payload) / TTS_DIRNAME
    folder.mkdir(parents=True, exist_ok=True)
    return _open_folder(folder)


def open_project_folder_api(
    payload: dict[str, Any], config: WorkstationConfig
) -> dict[str, Any]:
    folder = _project_path(payload).resolve()
    if not folder.exists():
        raise NotFoundError("Project path does not exist.")
    return _open_folder(folder)


def open_image_folder_api(payload: dict[str, Any], config: WorkstationConfig) -> dict[str, Any]:
    folder = Path(_require(payload, "filePath")).parent
    if not folder.exists():
        raise NotFoundError("Folder does not exist.")
    return _open_folder(folder)


def default_tts_config_api(query: dict[str, Any], config: WorkstationConfig) -> dict[str, Any]:
    return {"success": True, "data": config.default_tts_config()}


GET_ROUTES: dict[str, Callable[[dict[str, Any], WorkstationConfig], dict[str, Any]]] = {
    "/api/get-image": get_image_api,
    "/api/default-tts-config": default_tts_config_api,
}
POST_ROUTES: dict[str, Callable[[dict[str, Any], WorkstationConfig], dict[str, Any]]] = {
    "/api/generate-tts": generate_tts_api,
    "/api/generate-image-text": generate_image_text_api,
    "/api/generate-image-reference": generate_image_reference_api,
    "/api/save-draft": save_draft_api,
    "/api/load-draft": load_draft_api,
    "/api/clear-draft": clear_draft_api,
    "/api/save-copywriting": save_copywriting_api,
    "/api/generate-copywriting": generate_copywriting_api,
    "/api/free-create-image": free_create_image_api,
    "/api/save-free-create-image": save_free_create_image_api,
    "/api/open-tts-folder": open_tts_folder_api,
    "/api/open-project-folder": open_project_folder_api,
    "/api/open-image-folder": open_image_folder_api,
}


def _read_json(handler: BaseHTTPRequestHandler) -> dict[str, Any]:
    try:
        length = int(handler.headers.get("Content-Length", "0"))
    except ValueError as exc:
        raise ApiError("Invalid Content-Length header.") from exc
    if length <= 0:
        return {}
    raw = handler.rfile.read(length)
    if not raw:
        return {}
    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ApiError("Invalid JSON payload.") from exc
    if not isinstance(payload, dict):
        raise ApiError("JSON payload must be an object.")
    return payload


def _send_cors_headers(handler: BaseHTTPRequestHandler) -> None:
    for key, value in CORS_HEADERS.items():
        handler.send_header(key, value)


def _send_json(handler: BaseHTTPRequestHandler, payload: dict[str, Any], status: int) -> None:
    body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
    handler.send_response(status)
    handler.send_header("Content-Type", "application/json; charset=utf-8")
    handler.send_header("Content-Length", str(len(body)))
    _send_cors_headers(handler)
    handler.end_headers()
    handler.wfile.write(body)


def _send_bytes(
    handler: BaseHTTPRequestHandler, body: bytes, content_type: str, status: int = HTTPStatus.OK
) -> None:
    handler.send_response(status)
    handler.send_header("Content-Type", content_type)
    handler.send_header("Content-Length", str(len(body)))
    _send_cors_headers(handler)
    handler.end_headers()
    try:
        handler.wfile.write(body)
    except (BrokenPipeError, ConnectionResetError):
        return


def _parse_query(handler: BaseHTTPRequestHandler) -> dict[str, Any]:
    query = parse_qs(urlparse(handler.path).query)
    return {key: values[0] for key, values in query.items() if values}


def _failure(message: str) -> dict[str, Any]:
    return {"success": False, "message": message}


def _handle_api(handler: BaseHTTPRequestHandler, method: str) -> None:
    path = urlparse(handler.path).path
    config: WorkstationConfig = getattr(handler.server, "config", WorkstationConfig())
    routes = GET_ROUTES if method == "GET" else POST_ROUTES
    handler_fn = routes.get(path)
    if handler_fn is None:
        _send_json(handler, _failure("Unknown endpoint"), HTTPStatus.NOT_FOUND)
        return
    try:
        payload = _parse_query(handler) if method == "GET" else _read_json(handler)
        response = handler_fn(payload, config)
        _send_json(handler, response, HTTPStatus.OK)
    except NotFoundError as exc:
        _send_json(handler, _failure(str(exc)), HTTPStatus.NOT_FOUND)
    except ApiError as exc:
        _send_json(handler, _failure(str(exc)), HTTPStatus.BAD_REQUEST)
    except UPSTREAM_ERRORS as exc:
        print(f"[gateway] {path} failed: {exc}")
        _send_json(
            handler, _failure(f"Request failed: {exc}"), HTTPStatus.INTERNAL_SERVER_ERROR
        )
    except Exception as exc:
        print(f"[gateway] {path} failed unexpectedly: {exc!r}")
        _send_json(
            handler, _failure(f"Internal error: {exc}"), HTTPStatus.INTERNAL_SERVER_ERROR
        )


def _resolve_static_path(static_dir: Path, request_path: str) -> Optional[Path]:
    relative = unquote(request_path).lstrip("/") or "index.html"
    candidate = (static_dir / relative).resolve()
    root = static_dir.resolve()
    if root not in candidate.parents and candidate != root:
        return None
    if not candidate.is_file():
        return None
    return candidate


def _handle_static(handler: BaseHTTPRequestHandler) -> None:
    static_dir: Optional[Path] = getattr(handler.server, "static_dir", None)
    path = urlparse(handler.path).path
    file_path = _resolve_static_path(static_dir, path) if static_dir else None
    if file_path is None:
        _send_bytes(
            handler,
            NOT_FOUND_PAGE.encode("utf-8"),
            "text/html; charset=utf-8",
            HTTPStatus.NOT_FOUND,
        )
        return
    content_type, _ = mimetypes.guess_type(file_path.name)
    _send_bytes(handler, file_path.read_bytes(), content_type or "application/octet-stream")


class WorkstationRequestHandler(BaseHTTPRequestHandler):
    """Serve the workstation UI files and the gateway API."""

    def do_OPTIONS(self) -> None:  # noqa: N802 - required by BaseHTTPRequestHandler
        self.send_response(HTTPStatus.OK)
        _send_cors_headers(self)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def do_GET(self) -> None:  # noqa: N802 - required by BaseHTTPRequestHandler
        if self.path.startswith("/api/"):
            _handle_api(self, "GET")
            return
        _handle_static(self)

    def do_POST(self) -> None:  # noqa: N802 - required by BaseHTTPRequestHandler
        if not self.path.startswith("/api/"):
            _send_json(self, _failure("Unsupported endpoint"), HTTPStatus.NOT_FOUND)
            return
        _handle_api(self, "POST")


class WorkstationServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(
        self,
        address: tuple[str, int],
        config: WorkstationConfig,
        static_dir: Optional[Path] = None,
    ) -> None:
        super().__init__(address, WorkstationRequestHandler)
        self.config = config
        self.static_dir = static_dir


def run_server(
    config: WorkstationConfig,
    host: str = "127.0.0.1",
    port: Optional[int] = None,
    static_dir: Optional[Path] = None,
) -> WorkstationServer:
    """Run the workstation gateway until interrupted."""
    port = port if port is not None else config.port
    server = WorkstationServer((host, port), config, static_dir)
    print("========================================")
    print("Video workstation gateway started")
    print(f"Serving at http://{host}:{port}")
    print("========================================")
    print("Press Ctrl+C to stop.")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        print("\nShutting down the gateway...")
    finally:
        server.server_close()
        print("Gateway stopped.")
    return server
