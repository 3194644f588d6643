"""Whole-workspace draft snapshots: capture, persist, restore and clear.

A snapshot is a flat record over a fixed field set. Capture is total: a field
whose control is absent is stored as ``""`` or ``False``. Restore is total as
well, and a result panel is shown only when its visibility flag is set and
its image payload is present.
"""
from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

from video_workstation.gateway import GatewayError
from video_workstation.notify import Notifier
from video_workstation.workspace import (
    CONTAINERS,
    RESULT_PANELS,
    TEXT_FIELDS,
    Project,
    Workspace,
)


PANEL_FLAGS = tuple(panel.visible_key for panel in RESULT_PANELS.values())
CONTAINER_FLAGS = tuple(f"{name}Visible" for name in CONTAINERS)
PAYLOAD_FIELDS = tuple(panel.payload_key for panel in RESULT_PANELS.values())


class DraftDecodeError(ValueError):
    """Raised when persisted draft data cannot be turned into a snapshot."""


def _now_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


@dataclass(frozen=True)
class DraftSnapshot:
    project_id: str
    timestamp: str
    fields: dict[str, Any] = field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"projectId": self.project_id, "timestamp": self.timestamp}
        payload.update(self.fields)
        return payload

    @classmethod
    def from_dict(cls, data: Any) -> "DraftSnapshot":
        if not isinstance(data, Mapping):
            raise DraftDecodeError("Draft data must be an object.")
        project_id = data.get("projectId")
        timestamp = data.get("timestamp")
        if not isinstance(project_id, str) or not project_id:
            raise DraftDecodeError("Draft is missing projectId.")
        if not isinstance(timestamp, str) or not timestamp:
            raise DraftDecodeError("Draft is missing timestamp.")

        fields: dict[str, Any] = {}
        for name in TEXT_FIELDS:
            value = data.get(name, "")
            if not isinstance(value, str):
                raise DraftDecodeError(f"Draft field {name} must be a string.")
            fields[name] = value
        for name in PANEL_FLAGS + CONTAINER_FLAGS:
            value = data.get(name, False)
            if not isinstance(value, bool):
                raise DraftDecodeError(f"Draft flag {name} must be a boolean.")
            fields[name] = value
        for name in PAYLOAD_FIELDS:
            value = data.get(name)
            if value is None:
                continue
            if not isinstance(value, str):
                raise DraftDecodeError(f"Draft image {name} must be a string.")
            if value:
                fields[name] = value
        return cls(project_id=project_id, timestamp=timestamp, fields=fields)


def capture_snapshot(
    workspace: Workspace, project_id: str, timestamp: Optional[str] = None
) -> DraftSnapshot:
    fields: dict[str, Any] = {name: workspace.get(name) or "" for name in TEXT_FIELDS}
    for result_panel in RESULT_PANELS.values():
        state = workspace.panel(result_panel.name)
        fields[result_panel.visible_key] = bool(state and state.visible)
        if state is not None and state.src:
            fields[result_panel.payload_key] = state.src
    for name, flag in zip(CONTAINERS, CONTAINER_FLAGS):
        fields[flag] = bool(workspace.containers.get(name, False))
    return DraftSnapshot(
        project_id=project_id, timestamp=timestamp or _now_iso(), fields=fields
    )


def apply_snapshot(workspace: Workspace, snapshot: DraftSnapshot) -> None:
    for name in TEXT_FIELDS:
        workspace.set(name, snapshot.get(name, ""))
    for result_panel in RESULT_PANELS.values():
        state = workspace.panel(result_panel.name)
        if state is None:
            continue
        payload = snapshot.get(result_panel.payload_key) or ""
        if snapshot.get(result_panel.visible_key, False) and payload:
            state.visible = True
            state.src = payload
        else:
            state.visible = False
            state.src = ""
    for name, flag in zip(CONTAINERS, CONTAINER_FLAGS):
        workspace.set_container(name, bool(snapshot.get(flag, False)))


class DraftSnapshotManager:
    def __init__(
        self,
        gateway: Any,
        project: Project,
        workspace: Workspace,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], str] = _now_iso,
    ) -> None:
        self.gateway = gateway
        self.project = project
        self.workspace = workspace
        self.notifier = notifier or Notifier()
        self.clock = clock

    def capture(self) -> DraftSnapshot:
        return capture_snapshot(self.workspace, self.project.id, self.clock())

    async def persist(self, snapshot: DraftSnapshot) -> bool:
        try:
            await self.gateway.save_draft(self.project.path, snapshot.to_dict())
        except GatewayError as error:
            self.notifier.error(f"Saving the draft failed: {error}")
            return False
        self.notifier.success("Draft saved.")
        return True

    async def save(self) -> bool:
        return await self.persist(self.capture())

    async def restore_latest(
        self, suppress_notification_on_miss: bool = False
    ) -> Optional[DraftSnapshot]:
        try:
            response = await self.gateway.load_draft(self.project.path)
            snapshot = DraftSnapshot.from_dict(response.get("data"))
        except (GatewayError, DraftDecodeError) as error:
            if suppress_notification_on_miss:
                print(f"[draft] No draft restored for {self.project.path}: {error}")
            elif isinstance(error, GatewayError) and error.status == 404:
                self.notifier.error("No saved draft was found.")
            else:
                self.notifier.error(f"Loading the draft failed: {error}")
            return None
        apply_snapshot(self.workspace, snapshot)
        if not suppress_notification_on_miss:
            self.notifier.success("Draft loaded.")
        return snapshot

    async def clear(self, confirm: Callable[[], bool]) -> bool:
        """Delete the saved draft once ``confirm`` agrees; it cannot be undone."""
        if not confirm():
            return False
        try:
            await self.gateway.clear_draft(self.project.path)
        except GatewayError as error:
            self.notifier.error(f"Clearing the draft failed: {error}")
            return False
        self.notifier.success("Draft cleared.")
        return True
