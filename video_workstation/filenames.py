from __future__ import annotations

import base64
import re
from pathlib import Path


_NUMBERED_RE_TEMPLATE = r"^(\d+){suffix}$"
_IMAGE_MIME_TYPES = {
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}
DEFAULT_IMAGE_MIME_TYPE = "image/jpeg"


def next_number(directory: Path, suffix: str) -> int:
    """Return one past the highest ``N<suffix>`` file in ``directory``."""
    if not directory.exists():
        return 1
    pattern = re.compile(_NUMBERED_RE_TEMPLATE.format(suffix=re.escape(suffix)))
    numbers = [
        int(match.group(1))
        for match in (pattern.match(path.name) for path in directory.iterdir())
        if match
    ]
    return max(numbers) + 1 if numbers else 1


def next_numbered_filename(directory: Path, suffix: str) -> str:
    return f"{next_number(directory, suffix)}{suffix}"


def image_filename(name: str | None, directory: Path) -> str:
    if name and name.strip():
        return f"{name.strip()}.png"
    return next_numbered_filename(directory, ".png")


def image_mime_type(path: Path) -> str:
    return _IMAGE_MIME_TYPES.get(path.suffix.lower(), DEFAULT_IMAGE_MIME_TYPE)


def image_data_url(path: Path) -> str:
    encoded = base64.b64encode(path.read_bytes()).decode("ascii")
    return f"data:{image_mime_type(path)};base64,{encoded}"
