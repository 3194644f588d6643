"""Sequential batch speech generation with per-item status."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional, Sequence

from video_workstation.gateway import GatewayError
from video_workstation.notify import Notifier
from video_workstation.workspace import Project


DEFAULT_PACING_SECONDS = 0.5
DEFAULT_ITEM_TIMEOUT = 130.0


class BatchConfigError(ValueError):
    """Raised when the shared TTS configuration is incomplete."""


class BatchInputError(ValueError):
    """Raised when the batch input has no usable lines."""


class BatchStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (BatchStatus.COMPLETED, BatchStatus.FAILED)


_TRANSITIONS = {
    BatchStatus.PENDING: {BatchStatus.PROCESSING},
    BatchStatus.PROCESSING: {BatchStatus.COMPLETED, BatchStatus.FAILED},
    BatchStatus.COMPLETED: set(),
    BatchStatus.FAILED: set(),
}


@dataclass
class BatchItem:
    sequence_number: int
    text: str
    auxiliary_text: str = ""
    status: BatchStatus = BatchStatus.PENDING
    message: str = ""

    def _move(self, status: BatchStatus) -> None:
        if status not in _TRANSITIONS[self.status]:
            raise ValueError(
                f"Batch item #{self.sequence_number} cannot move "
                f"from {self.status.value} to {status.value}"
            )
        self.status = status

    def start(self) -> None:
        self._move(BatchStatus.PROCESSING)

    def complete(self) -> None:
        self._move(BatchStatus.COMPLETED)

    def fail(self, message: str) -> None:
        self._move(BatchStatus.FAILED)
        self.message = message


@dataclass(frozen=True)
class BatchReport:
    completed: int
    failed: int
    total: int

    @property
    def summary(self) -> str:
        return f"{self.completed}/{self.total} succeeded"


@dataclass
class BatchState:
    """The one item list and running flag shared by every start of a pipeline."""

    items: list[BatchItem] = field(default_factory=list)
    running: bool = False


class PacingPolicy:
    """Flat delay awaited after every batch item."""

    def __init__(self, interval: float = DEFAULT_PACING_SECONDS) -> None:
        if interval < 0:
            raise ValueError("Pacing interval must be non-negative.")
        self.interval = interval

    async def wait(self) -> None:
        await asyncio.sleep(self.interval)


def split_batch_input(raw: str) -> list[str]:
    return [line.strip() for line in raw.splitlines() if line.strip()]


def build_batch_items(lines: Sequence[str], auxiliary_text: str = "") -> list[BatchItem]:
    return [
        BatchItem(sequence_number=index, text=text, auxiliary_text=auxiliary_text)
        for index, text in enumerate(lines, start=1)
    ]


class BatchPipeline:
    def __init__(
        self,
        gateway: Any,
        project: Project,
        notifier: Optional[Notifier] = None,
        state: Optional[BatchState] = None,
        pacing: Optional[PacingPolicy] = None,
        renderer: Optional[Callable[[list[BatchItem]], None]] = None,
        item_timeout: Optional[float] = DEFAULT_ITEM_TIMEOUT,
        verbose: bool = False,
    ) -> None:
        self.gateway = gateway
        self.project = project
        self.notifier = notifier or Notifier()
        self.state = state or BatchState()
        self.pacing = pacing or PacingPolicy()
        self.renderer = renderer
        self.item_timeout = item_timeout
        self.verbose = verbose

    @property
    def items(self) -> list[BatchItem]:
        return self.state.items

    @property
    def running(self) -> bool:
        return self.state.running

    def _render(self) -> None:
        if self.renderer is not None:
            self.renderer(self.state.items)

    async def start(self, raw_input: str, auxiliary_text: str = "") -> Optional[BatchReport]:
        """Create a fresh item set and process it; ``None`` if a run is active."""
        if self.state.running:
            if self.verbose:
                print("[batch] A batch is already running; ignoring start.")
            return None
        config = self.project.tts_config
        if config is None or not config.is_complete():
            raise BatchConfigError("Save the TTS configuration first.")
        lines = split_batch_input(raw_input)
        if not lines:
            raise BatchInputError("No valid text lines to generate.")
        self.state.items = build_batch_items(lines, auxiliary_text.strip())
        self._render()
        return await self.run()

    async def run(self) -> Optional[BatchReport]:
        if self.state.running:
            return None
        self.state.running = True
        try:
            for item in sorted(self.state.items, key=lambda entry: entry.sequence_number):
                if item.status is not BatchStatus.PENDING:
                    continue
                item.start()
                self._render()
                await self._process(item)
                self._render()
                await self.pacing.wait()
        finally:
            self.state.running = False

        report = self.report()
        self.notifier.success(f"Batch generation finished: {report.summary}")
        return report

    async def _process(self, item: BatchItem) -> None:
        config = self.project.tts_config
        try:
            response = await asyncio.wait_for(
                self.gateway.generate_tts(
                    self.project.path, config, item.text, item.auxiliary_text
                ),
                timeout=self.item_timeout,
            )
        except asyncio.TimeoutError:
            item.fail(f"Timed out after {self.item_timeout:g}s")
        except GatewayError as error:
            item.fail(error.message)
        except Exception as error:
            item.fail(f"Unexpected error: {error!r}")
        else:
            if response.get("filename"):
                item.complete()
            else:
                item.fail("No audio file was reported.")
        if item.status is BatchStatus.FAILED:
            print(f"[batch] #{item.sequence_number} failed: {item.message}")
        elif self.verbose:
            print(f"[batch] #{item.sequence_number} -> {response.get('filename')}")

    def report(self) -> BatchReport:
        completed = sum(1 for item in self.state.items if item.status is BatchStatus.COMPLETED)
        failed = sum(1 for item in self.state.items if item.status is BatchStatus.FAILED)
        return BatchReport(completed=completed, failed=failed, total=len(self.state.items))


def format_batch_items(items: Sequence[BatchItem]) -> str:
    markers = {
        BatchStatus.PENDING: " ",
        BatchStatus.PROCESSING: "…",
        BatchStatus.COMPLETED: "✓",
        BatchStatus.FAILED: "✗",
    }
    return "\n".join(
        f"[{markers[item.status]}] #{item.sequence_number} {item.text}" for item in items
    )
