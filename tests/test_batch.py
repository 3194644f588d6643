import asyncio
import unittest
from http.client import IncompleteRead
from typing import Any
from unittest.mock import Mock, patch

from video_workstation.batch import (
    BatchConfigError,
    BatchInputError,
    BatchItem,
    BatchPipeline,
    BatchStatus,
    PacingPolicy,
    build_batch_items,
    format_batch_items,
    split_batch_input,
)
from video_workstation.gateway import AsyncGatewayClient, GatewayClient, GatewayError
from video_workstation.notify import Notifier
from video_workstation.workspace import Project, TTSConfig


class ScriptedGateway:
    """Answers generate_tts calls from a list of responses or errors."""

    def __init__(self, outcomes: list[Any]) -> None:
        self.outcomes = list(outcomes)
        self.texts: list[str] = []
        self.pipeline: Any = None
        self.statuses_seen: list[list[BatchStatus]] = []

    async def generate_tts(
        self, project_path: str, config: TTSConfig, text: str, emo_text: str = ""
    ) -> dict[str, Any]:
        self.texts.append(text)
        if self.pipeline is not None:
            self.statuses_seen.append([item.status for item in self.pipeline.items])
        await asyncio.sleep(0)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _project(config: Any = TTSConfig("key", "https://voice", "hello")) -> Project:
    return Project(id="p1", name="Demo", path="/projects/demo", tts_config=config)


class TestBatchHelpers(unittest.TestCase):
    def test_split_drops_blank_lines(self) -> None:
        self.assertEqual(split_batch_input("Hello\n\nWorld"), ["Hello", "World"])
        self.assertEqual(split_batch_input("  a  \r\n \n b"), ["a", "b"])

    def test_build_items_numbers_from_one(self) -> None:
        items = build_batch_items(["a", "b"], "calm")

        self.assertEqual([item.sequence_number for item in items], [1, 2])
        self.assertTrue(all(item.status is BatchStatus.PENDING for item in items))
        self.assertEqual(items[1].auxiliary_text, "calm")

    def test_illegal_transition_is_rejected(self) -> None:
        item = BatchItem(sequence_number=1, text="a")

        with self.assertRaises(ValueError):
            item.complete()
        item.start()
        item.fail("x")
        with self.assertRaises(ValueError):
            item.start()

    def test_negative_pacing_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            PacingPolicy(-1)

    def test_format_batch_items(self) -> None:
        items = build_batch_items(["Hello", "World"])
        items[0].start()
        items[0].complete()

        self.assertEqual(format_batch_items(items), "[✓] #1 Hello\n[ ] #2 World")


class TestBatchPipeline(unittest.IsolatedAsyncioTestCase):
    def _pipeline(self, gateway: ScriptedGateway, **kwargs: Any) -> BatchPipeline:
        pipeline = BatchPipeline(
            gateway,
            kwargs.pop("project", _project()),
            Notifier(echo=False),
            pacing=PacingPolicy(0),
            **kwargs,
        )
        gateway.pipeline = pipeline
        return pipeline

    async def test_one_failure_is_isolated(self) -> None:
        gateway = ScriptedGateway(
            [
                {"success": True, "filename": "1.wav"},
                GatewayError("x"),
                {"success": True, "filename": "2.wav"},
            ]
        )
        pipeline = self._pipeline(gateway)

        report = await pipeline.start("one\ntwo\nthree")

        statuses = [item.status for item in pipeline.items]
        self.assertEqual(
            statuses, [BatchStatus.COMPLETED, BatchStatus.FAILED, BatchStatus.COMPLETED]
        )
        self.assertEqual(pipeline.items[1].message, "x")
        self.assertEqual(report.summary, "2/3 succeeded")
        self.assertEqual(report.completed + report.failed, 3)
        self.assertFalse(pipeline.running)
        self.assertEqual(
            pipeline.notifier.history[-1].message, "Batch generation finished: 2/3 succeeded"
        )

    async def test_every_item_failing_still_finishes_the_run(self) -> None:
        gateway = ScriptedGateway([GatewayError("down")] * 3)
        pipeline = self._pipeline(gateway)

        report = await pipeline.start("a\nb\nc")

        self.assertFalse(pipeline.running)
        self.assertTrue(all(item.status.is_terminal for item in pipeline.items))
        self.assertEqual(report.summary, "0/3 succeeded")
        self.assertEqual(
            pipeline.notifier.history[-1].message, "Batch generation finished: 0/3 succeeded"
        )

    async def test_unexpected_error_fails_item_and_continues(self) -> None:
        gateway = ScriptedGateway([KeyError("filename"), {"success": True, "filename": "1.wav"}])
        pipeline = self._pipeline(gateway)

        report = await pipeline.start("a\nb")

        self.assertEqual(pipeline.items[0].status, BatchStatus.FAILED)
        self.assertIn("Unexpected error", pipeline.items[0].message)
        self.assertEqual(pipeline.items[1].status, BatchStatus.COMPLETED)
        self.assertEqual(report.summary, "1/2 succeeded")
        self.assertFalse(pipeline.running)

    async def test_truncated_gateway_response_fails_items(self) -> None:
        response = Mock()
        response.read.side_effect = IncompleteRead(b"", 10)
        response.__enter__ = Mock(return_value=response)
        response.__exit__ = Mock(return_value=False)
        pipeline = BatchPipeline(
            AsyncGatewayClient(GatewayClient()),
            _project(),
            Notifier(echo=False),
            pacing=PacingPolicy(0),
        )

        with patch("video_workstation.gateway.request.urlopen", Mock(return_value=response)):
            report = await pipeline.start("a\nb")

        self.assertEqual(
            [item.status for item in pipeline.items], [BatchStatus.FAILED, BatchStatus.FAILED]
        )
        self.assertEqual(report.summary, "0/2 succeeded")
        self.assertFalse(pipeline.running)

    async def test_items_run_strictly_in_order(self) -> None:
        gateway = ScriptedGateway([{"success": True, "filename": f"{n}.wav"} for n in (1, 2, 3)])
        pipeline = self._pipeline(gateway)

        await pipeline.start("a\nb\nc")

        self.assertEqual(gateway.texts, ["a", "b", "c"])
        self.assertEqual(
            gateway.statuses_seen[1],
            [BatchStatus.COMPLETED, BatchStatus.PROCESSING, BatchStatus.PENDING],
        )

    async def test_second_start_during_run_is_ignored(self) -> None:
        gateway = ScriptedGateway([{"success": True, "filename": "1.wav"}] * 2)
        pipeline = self._pipeline(gateway)

        first = asyncio.create_task(pipeline.start("a\nb"))
        await asyncio.sleep(0)
        second = await pipeline.start("other")
        report = await first

        self.assertIsNone(second)
        self.assertEqual(gateway.texts, ["a", "b"])
        self.assertEqual(report.summary, "2/2 succeeded")

    async def test_running_guard_precedes_input_checks(self) -> None:
        gateway = ScriptedGateway([{"success": True, "filename": "1.wav"}])
        pipeline = self._pipeline(gateway)

        first = asyncio.create_task(pipeline.start("a"))
        await asyncio.sleep(0)
        pipeline.project.tts_config = None
        second = await pipeline.start("\n \n")
        await first

        self.assertIsNone(second)
        self.assertEqual([item.text for item in pipeline.items], ["a"])

    async def test_missing_filename_fails_item(self) -> None:
        gateway = ScriptedGateway([{"success": True}])
        pipeline = self._pipeline(gateway)

        report = await pipeline.start("solo")

        self.assertEqual(pipeline.items[0].status, BatchStatus.FAILED)
        self.assertEqual(report.summary, "0/1 succeeded")

    async def test_item_timeout_fails_item_and_continues(self) -> None:
        class SlowGateway(ScriptedGateway):
            async def generate_tts(self, *args: Any, **kwargs: Any) -> dict[str, Any]:
                if not self.texts:
                    self.texts.append(args[2])
                    await asyncio.sleep(1)
                return await super().generate_tts(*args, **kwargs)

        gateway = SlowGateway([{"success": True, "filename": "1.wav"}])
        pipeline = self._pipeline(gateway, item_timeout=0.01)

        report = await pipeline.start("slow\nfast")

        self.assertEqual(pipeline.items[0].status, BatchStatus.FAILED)
        self.assertIn("Timed out", pipeline.items[0].message)
        self.assertEqual(pipeline.items[1].status, BatchStatus.COMPLETED)
        self.assertEqual(report.summary, "1/2 succeeded")

    async def test_incomplete_config_is_rejected(self) -> None:
        pipeline = self._pipeline(ScriptedGateway([]), project=_project(TTSConfig("key")))

        with self.assertRaises(BatchConfigError):
            await pipeline.start("a")
        self.assertEqual(pipeline.items, [])

    async def test_blank_input_is_rejected(self) -> None:
        pipeline = self._pipeline(ScriptedGateway([]))

        with self.assertRaises(BatchInputError):
            await pipeline.start("\n  \n")

    async def test_renderer_sees_every_transition(self) -> None:
        snapshots: list[list[str]] = []
        gateway = ScriptedGateway([{"success": True, "filename": "1.wav"}])
        pipeline = self._pipeline(
            gateway,
            renderer=lambda items: snapshots.append([item.status.value for item in items]),
        )

        await pipeline.start("a")

        self.assertEqual(snapshots, [["pending"], ["processing"], ["completed"]])

    async def test_emotion_text_is_forwarded(self) -> None:
        received: list[str] = []

        class RecordingGateway(ScriptedGateway):
            async def generate_tts(self, project_path, config, text, emo_text=""):
                received.append(emo_text)
                return await super().generate_tts(project_path, config, text, emo_text)

        pipeline = self._pipeline(RecordingGateway([{"success": True, "filename": "1.wav"}]))

        await pipeline.start("a", " happy ")

        self.assertEqual(received, ["happy"])


if __name__ == "__main__":
    unittest.main()
