from __future__ import annotations

import json
from http.client import HTTPException
from pathlib import Path
from typing import Any, Optional
from urllib import request
from urllib.error import HTTPError, URLError

from video_workstation.filenames import next_number
from video_workstation.workspace import TTSConfig


class TTSSynthesisError(RuntimeError):
    """Raised when the speech service does not return audio."""


SPEECH_ENDPOINT = "https://ai.gitee.com/v1/audio/speech"
SPEECH_MODEL = "IndexTTS-2"
SPEECH_VOICE = "alloy"
AUDIO_EXTENSION = ".wav"
TTS_DIRNAME = "tts"
TEXT_DIRNAME = "text"
SPEECH_TIMEOUT = 120.0


def build_speech_payload(
    config: TTSConfig, text: str, emo_text: str = "", use_emo_text: bool = False
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "input": text,
        "model": SPEECH_MODEL,
        "prompt_audio_url": config.prompt_audio_url,
        "prompt_text": config.prompt_text,
        "voice": SPEECH_VOICE,
        "use_emo_text": use_emo_text,
    }
    if use_emo_text and emo_text:
        payload["emo_text"] = emo_text
    return payload


def request_speech(
    config: TTSConfig,
    text: str,
    emo_text: str = "",
    use_emo_text: bool = False,
    endpoint: str = SPEECH_ENDPOINT,
    timeout: Optional[float] = SPEECH_TIMEOUT,
) -> bytes:
    payload = build_speech_payload(config, text, emo_text, use_emo_text)
    req = request.Request(
        endpoint,
        data=json.dumps(payload, ensure_ascii=False).encode("utf-8"),
        headers={
            "Authorization": f"Bearer {config.api_key}",
            "Content-Type": "application/json",
        },
    )
    try:
        with request.urlopen(req, timeout=timeout) as response:
            audio = response.read()
    except HTTPError as exc:
        raise TTSSynthesisError(f"HTTP {exc.code}: {exc.reason}") from exc
    except (URLError, OSError, HTTPException) as exc:
        raise TTSSynthesisError(f"Speech service unreachable: {exc}") from exc
    if not audio:
        raise TTSSynthesisError("The speech service returned no audio.")
    return audio


def synthesize_project_audio(
    project_path: Path,
    config: TTSConfig,
    text: str,
    emo_text: str = "",
    use_emo_text: Optional[bool] = None,
    verbose: bool = False,
) -> Path:
    """Write ``tts/N.wav`` plus its source text to ``tts/text/N.txt``."""
    if not text.strip():
        raise TTSSynthesisError("No text to synthesize.")
    if use_emo_text is None:
        use_emo_text = bool(emo_text)
    audio = request_speech(config, text, emo_text, use_emo_text)

    tts_dir = project_path / TTS_DIRNAME
    text_dir = tts_dir / TEXT_DIRNAME
    text_dir.mkdir(parents=True, exist_ok=True)
    number = next_number(tts_dir, AUDIO_EXTENSION)
    audio_path = tts_dir / f"{number}{AUDIO_EXTENSION}"
    audio_path.write_bytes(audio)
    (text_dir / f"{number}.txt").write_text(text, encoding="utf-8")
    if verbose:
        print(f"[tts] Wrote {audio_path}.")
    return audio_path
