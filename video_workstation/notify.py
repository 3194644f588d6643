from __future__ import annotations

from collections import deque
from dataclasses import dataclass


LEVELS = ("success", "error", "warning", "info")
HISTORY_LIMIT = 100


@dataclass(frozen=True)
class Notification:
    message: str
    level: str


class Notifier:
    """Transient user-facing banners, echoed to the console.

    Only the most recent ``history_limit`` notifications are kept.
    """

    def __init__(self, echo: bool = True, history_limit: int = HISTORY_LIMIT) -> None:
        self.echo = echo
        self.history: deque[Notification] = deque(maxlen=history_limit)

    def notify(self, message: str, level: str = "success") -> None:
        if level not in LEVELS:
            raise ValueError(f"Unknown notification level: {level}")
        self.history.append(Notification(message=message, level=level))
        if self.echo:
            print(f"[{level}] {message}")

    def success(self, message: str) -> None:
        self.notify(message, "success")

    def error(self, message: str) -> None:
        self.notify(message, "error")

    def warning(self, message: str) -> None:
        self.notify(message, "warning")

    def info(self, message: str) -> None:
        self.notify(message, "info")
