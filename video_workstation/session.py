"""Session-scoped key/value storage backed by one JSON file."""
from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Optional


ENV_SESSION_FILE = "VIDEO_WORKSTATION_SESSION"


class SessionStoreError(OSError):
    """Raised when the session file cannot be read or written."""


def default_session_path() -> Path:
    env_path = os.getenv(ENV_SESSION_FILE)
    if env_path:
        return Path(env_path)
    return Path(tempfile.gettempdir()) / "video_workstation" / "session.json"


class SessionStore:
    """Every read goes to disk so no copy can drift from the file."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = path or default_session_path()

    def _read_all(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise SessionStoreError(f"Unable to read session file {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise SessionStoreError(f"Session file {self.path} must hold an object.")
        return data

    def get(self, key: str, default: Any = None) -> Any:
        return self._read_all().get(key, default)

    def set(self, key: str, value: Any) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def remove(self, key: str) -> None:
        data = self._read_all()
        if key in data:
            del data[key]
            self._write_all(data)

    def _write_all(self, data: dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(".tmp")
            tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
            tmp.replace(self.path)
        except OSError as exc:
            raise SessionStoreError(f"Unable to write session file {self.path}: {exc}") from exc
