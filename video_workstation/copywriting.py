from __future__ import annotations

import json
from http.client import HTTPException
from pathlib import Path
from typing import Any, Optional
from urllib import request
from urllib.error import HTTPError, URLError


class CopywritingError(RuntimeError):
    """Raised when the transcript summary service fails."""


COPYWRITING_DIRNAME = "文案"
TTS_KEY = "TTS文案"
IMAGE_KEY = "图像文案"
TTS_FILENAME = "TTS文案.json"
IMAGE_FILENAME = "图像文案.json"
FULL_FILENAME = "完整数据.json"
NO_SUBTITLES_MARKER = "无法提取视频字幕"
SUMMARY_TIMEOUT = 300.0


def _write_json(path: Path, payload: Any) -> None:
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")


def save_copywriting_files(project_path: Path, tts_data: Any, image_data: Any) -> Path:
    folder = project_path / COPYWRITING_DIRNAME
    folder.mkdir(parents=True, exist_ok=True)
    _write_json(folder / TTS_FILENAME, tts_data)
    _write_json(folder / IMAGE_FILENAME, image_data)
    _write_json(folder / FULL_FILENAME, {TTS_KEY: tts_data, IMAGE_KEY: image_data})
    return folder


def request_summary(
    webhook_url: str, video_url: str, timeout: Optional[float] = SUMMARY_TIMEOUT
) -> dict[str, Any]:
    """Ask the summary webhook for speech and image copy of one video."""
    req = request.Request(
        webhook_url,
        data=json.dumps({"videoUrl": video_url}).encode("utf-8"),
        headers={"Content-Type": "application/json"},
    )
    try:
        with request.urlopen(req, timeout=timeout) as response:
            data = json.loads(response.read().decode("utf-8"))
    except HTTPError as exc:
        if exc.code == 400:
            try:
                error_body = json.loads(exc.read().decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError):
                error_body = {}
            if isinstance(error_body, dict) and error_body.get("res") == NO_SUBTITLES_MARKER:
                raise CopywritingError(
                    "No subtitles could be extracted from this video; try another one."
                ) from exc
        raise CopywritingError(f"HTTP {exc.code}") from exc
    except (URLError, OSError, HTTPException) as exc:
        raise CopywritingError(f"Summary service unreachable: {exc}") from exc
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise CopywritingError(f"Invalid response from the summary service: {exc}") from exc
    if not isinstance(data, dict) or not data.get(TTS_KEY) or not data.get(IMAGE_KEY):
        raise CopywritingError("The summary response was not in the expected format.")
    return data
