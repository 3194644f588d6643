"""Tracking of in-flight generation tasks that must survive page reloads.

The registry persists every live task under the ``generatingTasks`` session
key. Each task category is bound to at most one UI control; while a task is
live its control stays busy, and :meth:`TaskRegistry.restore_controls`
re-applies that state after a reload.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from video_workstation.session import SessionStore


SESSION_KEY = "generatingTasks"


class TaskDecodeError(ValueError):
    """Raised when a persisted task record is malformed."""


class UnknownCategoryError(TaskDecodeError):
    """Raised for a well-formed record whose category this build does not know."""


class ControlBusyError(RuntimeError):
    """Raised when a category's control is still held by a live task."""


class TaskCategory(str, Enum):
    CHARACTER_TEXT = "character-text"
    CHARACTER_REFERENCE = "character-reference"
    BACKGROUND_TEXT = "background-text"
    BACKGROUND_REFERENCE = "background-reference"

    @property
    def image_type(self) -> str:
        return self.value.split("-", 1)[0]

    @property
    def mode(self) -> str:
        return self.value.split("-", 1)[1]

    @property
    def is_reference(self) -> bool:
        return self.mode == "reference"

    @classmethod
    def from_parts(cls, image_type: str, mode: str) -> Optional["TaskCategory"]:
        try:
            return cls(f"{image_type}-{mode}")
        except ValueError:
            return None


@dataclass(frozen=True)
class Task:
    id: str
    category: TaskCategory
    started_at: int

    def to_record(self) -> dict[str, Any]:
        return {
            "imageType": self.category.image_type,
            "mode": self.category.mode,
            "startTime": self.started_at,
        }

    @classmethod
    def from_record(cls, task_id: str, record: Any) -> "Task":
        if not isinstance(record, Mapping):
            raise TaskDecodeError(f"Task {task_id} must be an object.")
        image_type = record.get("imageType")
        mode = record.get("mode")
        started_at = record.get("startTime")
        if not isinstance(image_type, str) or not isinstance(mode, str):
            raise TaskDecodeError(f"Task {task_id} is missing imageType or mode.")
        if not isinstance(started_at, (int, float)) or isinstance(started_at, bool):
            raise TaskDecodeError(f"Task {task_id} is missing startTime.")
        category = TaskCategory.from_parts(image_type, mode)
        if category is None:
            raise UnknownCategoryError(
                f"Task {task_id} has unknown category {image_type}-{mode}."
            )
        return cls(id=task_id, category=category, started_at=int(started_at))


def generate_task_id(
    category: TaskCategory, clock: Callable[[], float] = time.time
) -> str:
    return f"{category.image_type}-{category.mode}-{int(clock() * 1000)}"


class Control:
    """A trigger control that is disabled while its task is live."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.busy = False
        self.task_id: Optional[str] = None

    def set_busy(self, task_id: str) -> None:
        self.busy = True
        self.task_id = task_id

    def release(self) -> None:
        self.busy = False
        self.task_id = None

    def __repr__(self) -> str:
        return f"Control(name={self.name!r}, busy={self.busy}, task_id={self.task_id!r})"


class ControlBoard:
    """Category to control mapping, fixed when the components are wired."""

    def __init__(self, controls: Optional[Mapping[TaskCategory, Control]] = None) -> None:
        self._controls = dict(controls or {})

    @classmethod
    def default(cls) -> "ControlBoard":
        return cls(
            {
                TaskCategory.CHARACTER_TEXT: Control("btn-character-text-generate"),
                TaskCategory.CHARACTER_REFERENCE: Control("btn-character-ref-generate"),
                TaskCategory.BACKGROUND_TEXT: Control("btn-background-text-generate"),
                TaskCategory.BACKGROUND_REFERENCE: Control("btn-background-ref-generate"),
            }
        )

    def get(self, category: Any) -> Optional[Control]:
        if not isinstance(category, TaskCategory):
            try:
                category = TaskCategory(category)
            except ValueError:
                return None
        return self._controls.get(category)


class TaskRegistry:
    def __init__(
        self,
        store: SessionStore,
        controls: Optional[ControlBoard] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.controls = controls or ControlBoard()
        self.clock = clock

    def _read_records(self) -> dict[str, Any]:
        records = self.store.get(SESSION_KEY, {})
        if not isinstance(records, dict):
            raise TaskDecodeError(f"Session key {SESSION_KEY} must hold an object.")
        return records

    def register(self, task_id: str, category: TaskCategory) -> Task:
        """Persist a live task and bind its control.

        Raises :class:`ControlBusyError` without writing anything when the
        category's control is still held by another task.
        """
        control = self.resolve_control(category)
        if control is not None and control.busy:
            raise ControlBusyError(
                f"{control.name} is busy with task {control.task_id}."
            )
        task = Task(id=task_id, category=category, started_at=int(self.clock() * 1000))
        records = self._read_records()
        records[task_id] = task.to_record()
        self.store.set(SESSION_KEY, records)
        if control is not None:
            control.set_busy(task_id)
        return task

    def unregister(self, task_id: str) -> None:
        records = self._read_records()
        record = records.pop(task_id, None)
        if record is None:
            return
        self.store.set(SESSION_KEY, records)
        category = None
        if isinstance(record, Mapping):
            category = TaskCategory.from_parts(
                str(record.get("imageType")), str(record.get("mode"))
            )
        control = self.resolve_control(category) if category else None
        if control is not None and control.task_id in (task_id, None):
            control.release()

    def list_active(self) -> list[Task]:
        active: list[Task] = []
        for task_id, record in self._read_records().items():
            try:
                active.append(Task.from_record(task_id, record))
            except UnknownCategoryError as error:
                print(f"[tasks] Skipping {task_id}: {error}")
        return active

    def resolve_control(self, category: Any) -> Optional[Control]:
        return self.controls.get(category)

    def restore_controls(self) -> list[Task]:
        """Mark the control of every live task busy again."""
        active = self.list_active()
        for task in active:
            control = self.resolve_control(task.category)
            if control is not None:
                control.set_busy(task.id)
        return active
