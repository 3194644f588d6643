"""Workstation configuration loaded from ``env.yaml``."""
from __future__ import annotations

import os
import platform
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, MutableMapping, Optional

import yaml


ENV_CONFIG_PATH = "VIDEO_WORKSTATION_CONFIG"
DEFAULT_CONFIG_NAME = "env.yaml"
DEFAULT_PORT = 8765
DEFAULT_SUMMARY_WEBHOOK_URL = "http://localhost:5678/webhook/bilibili-summary"
CONTAINER_MARKERS = (Path("/.dockerenv"), Path("/run/.containerenv"))


@dataclass(frozen=True)
class WorkstationConfig:
    tts_api_key: str = ""
    tts_prompt_audio_url: str = ""
    tts_prompt_text: str = ""
    default_project_root: str = ""
    gemini_api_key: str = ""
    gemini_base_url: str = ""
    gemini_model: str = ""
    summary_webhook_url: str = DEFAULT_SUMMARY_WEBHOOK_URL
    port: int = DEFAULT_PORT

    def default_tts_config(self) -> dict[str, str]:
        return {
            "apiKey": self.tts_api_key,
            "promptAudioUrl": self.tts_prompt_audio_url,
            "promptText": self.tts_prompt_text,
            "defaultProjectRoot": self.default_project_root,
        }


_KEY_MAP = {
    "TTS-API-KEY": "tts_api_key",
    "TTS-Prompt-Audio-URL": "tts_prompt_audio_url",
    "TTS-Prompt-Text": "tts_prompt_text",
    "Default-Project-Root": "default_project_root",
    "Gemini-API-KEY": "gemini_api_key",
    "Gemini-BASE-URL": "gemini_base_url",
    "Gemini-MODEL": "gemini_model",
    "Summary-Webhook-URL": "summary_webhook_url",
}


def _load_yaml(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, MutableMapping):
        raise ValueError(f"Configuration file {path} must contain a mapping at the root")
    return dict(data)


def _candidate_paths(path: Optional[Path]) -> list[Path]:
    if path is not None:
        return [path]
    candidates: list[Path] = []
    env_path = os.getenv(ENV_CONFIG_PATH)
    if env_path:
        candidates.append(Path(env_path))
    candidates.append(Path.cwd() / DEFAULT_CONFIG_NAME)
    return candidates


def config_from_mapping(data: Mapping[str, Any]) -> WorkstationConfig:
    values: dict[str, Any] = {}
    for key, field_name in _KEY_MAP.items():
        value = data.get(key)
        if value is None:
            continue
        values[field_name] = str(value).strip()
    port = data.get("Port")
    if port is not None:
        try:
            values["port"] = int(port)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Port must be an integer, got {port!r}") from exc
    if not values.get("summary_webhook_url"):
        values.pop("summary_webhook_url", None)
    return WorkstationConfig(**values)


def load_config(path: Optional[Path] = None) -> WorkstationConfig:
    """Load the first existing config file, falling back to defaults."""
    for candidate in _candidate_paths(path):
        if candidate.is_file():
            return config_from_mapping(_load_yaml(candidate))
    if path is not None:
        print(f"[config] {path} not found, using defaults.")
    return WorkstationConfig()


def is_headless_environment() -> bool:
    if os.getenv("HEADLESS") == "1" or os.getenv("DISABLE_FOLDER_OPEN") == "1":
        return True
    try:
        if any(marker.exists() for marker in CONTAINER_MARKERS):
            return True
    except OSError:
        return True
    if platform.system() == "Linux" and not (
        os.getenv("DISPLAY") or os.getenv("WAYLAND_DISPLAY")
    ):
        return True
    return False
