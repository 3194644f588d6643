from __future__ import annotations

import argparse
import asyncio
import importlib
import json
from pathlib import Path
from typing import Optional

from video_workstation.batch import (
    BatchConfigError,
    BatchInputError,
    BatchPipeline,
    PacingPolicy,
    format_batch_items,
)
from video_workstation.config import WorkstationConfig, load_config
from video_workstation.draft import DraftSnapshotManager
from video_workstation.gateway import (
    DEFAULT_GATEWAY_URL,
    AsyncGatewayClient,
    GatewayClient,
)
from video_workstation.invoker import GenerationInvoker, ValidationError
from video_workstation.notify import Notifier
from video_workstation.session import SessionStore, SessionStoreError
from video_workstation.tasks import ControlBoard, TaskCategory, TaskDecodeError, TaskRegistry
from video_workstation.workspace import Project, TTSConfig, Workspace


def _questionary():
    return importlib.import_module("questionary")


def _prompt_yes_no(prompt: str, default: bool) -> bool:
    questionary = _questionary()
    response = questionary.confirm(prompt, default=default).ask()
    if response is None:
        return default
    return response


def _project_from_args(args: argparse.Namespace, config: WorkstationConfig) -> Project:
    project_path = Path(args.project_path)
    return Project(
        id=args.project_id or project_path.name,
        name=project_path.name,
        path=str(project_path),
        tts_config=TTSConfig(
            api_key=config.tts_api_key,
            prompt_audio_url=config.tts_prompt_audio_url,
            prompt_text=config.tts_prompt_text,
        ),
    )


def _async_gateway(args: argparse.Namespace) -> AsyncGatewayClient:
    return AsyncGatewayClient(GatewayClient(base_url=args.gateway_url))


def _session_store(args: argparse.Namespace) -> SessionStore:
    return SessionStore(args.session_file)


def _add_project_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--project-path",
        required=True,
        help="Project directory that receives generated files.",
    )
    parser.add_argument(
        "--project-id",
        default=None,
        help="Project identifier stored with drafts (defaults to the folder name).",
    )
    parser.add_argument(
        "--gateway-url",
        default=DEFAULT_GATEWAY_URL,
        help="Base URL of the running gateway.",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate speech and images for video projects."
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to env.yaml (defaults to $VIDEO_WORKSTATION_CONFIG or ./env.yaml).",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Print progress details.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the gateway server.")
    serve.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host interface for the gateway.",
    )
    serve.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port for the gateway (defaults to the configured port).",
    )
    serve.add_argument(
        "--static-dir",
        type=Path,
        default=None,
        help="Directory with the workstation UI files.",
    )

    batch = subparsers.add_parser("batch-tts", help="Generate speech for each line of a file.")
    _add_project_arguments(batch)
    batch.add_argument(
        "--input",
        type=Path,
        required=True,
        help="Text file with one utterance per line.",
    )
    batch.add_argument(
        "--emo-text",
        default="",
        help="Emotion description applied to every line.",
    )
    batch.add_argument(
        "--pacing",
        type=float,
        default=PacingPolicy().interval,
        help="Seconds to wait between lines.",
    )

    image = subparsers.add_parser("image", help="Generate one character or background image.")
    _add_project_arguments(image)
    image.add_argument(
        "--type",
        choices=("character", "background"),
        required=True,
        help="Kind of image to generate.",
    )
    image.add_argument("--name", required=True, help="Name used for the saved file.")
    image.add_argument("--prompt", required=True, help="Generation prompt.")
    image.add_argument(
        "--aspect-ratio",
        default="",
        help="Aspect ratio such as 16:9.",
    )
    image.add_argument(
        "--reference",
        action="append",
        default=None,
        help="Reference image path (repeat for several).",
    )
    image.add_argument(
        "--session-file",
        type=Path,
        default=None,
        help="Session file that tracks in-flight tasks.",
    )

    tasks = subparsers.add_parser("tasks", help="List in-flight generation tasks.")
    tasks.add_argument(
        "--session-file",
        type=Path,
        default=None,
        help="Session file that tracks in-flight tasks.",
    )

    draft = subparsers.add_parser("draft", help="Show, save or clear a project draft.")
    draft.add_argument("action", choices=("show", "save", "clear"))
    _add_project_arguments(draft)
    draft.add_argument(
        "--fields",
        type=Path,
        default=None,
        help="JSON file of workspace field values (for save).",
    )
    draft.add_argument(
        "--yes",
        action="store_true",
        help="Clear without asking for confirmation.",
    )
    return parser


def run_batch(args: argparse.Namespace, config: WorkstationConfig) -> int:
    project = _project_from_args(args, config)
    try:
        raw_input = args.input.read_text(encoding="utf-8")
    except OSError as exc:
        print(f"[batch] Unable to read {args.input}: {exc}")
        return 1
    renderer = (lambda items: print(format_batch_items(items))) if args.verbose else None
    pipeline = BatchPipeline(
        _async_gateway(args),
        project,
        Notifier(),
        pacing=PacingPolicy(args.pacing),
        renderer=renderer,
        verbose=args.verbose,
    )
    try:
        report = asyncio.run(pipeline.start(raw_input, args.emo_text))
    except (BatchConfigError, BatchInputError) as exc:
        print(f"[batch] {exc}")
        return 1
    if report is None:
        return 1
    return 0 if report.failed == 0 else 1


def run_image(args: argparse.Namespace, config: WorkstationConfig) -> int:
    mode = "reference" if args.reference else "text"
    category = TaskCategory.from_parts(args.type, mode)
    registry = TaskRegistry(_session_store(args), ControlBoard.default())
    invoker = GenerationInvoker(
        _async_gateway(args),
        registry,
        _project_from_args(args, config),
        Notifier(),
        workspace=Workspace.create(),
        verbose=args.verbose,
    )
    try:
        result = asyncio.run(
            invoker.invoke(
                category,
                args.name,
                args.prompt,
                aspect_ratio=args.aspect_ratio,
                reference_paths=args.reference,
            )
        )
    except ValidationError as exc:
        print(f"[image] {exc}")
        return 1
    if result.success:
        print(result.file_path)
        return 0
    return 1


def run_tasks(args: argparse.Namespace) -> int:
    registry = TaskRegistry(_session_store(args))
    try:
        active = registry.list_active()
    except (SessionStoreError, TaskDecodeError) as exc:
        print(f"[tasks] {exc}")
        return 1
    if not active:
        print("No tasks in progress.")
        return 0
    for task in active:
        print(f"{task.id}\t{task.category.value}\t{task.started_at}")
    return 0


def _load_fields(path: Path) -> dict[str, str]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a JSON object.")
    return {str(key): str(value) for key, value in data.items()}


def run_draft(args: argparse.Namespace, config: WorkstationConfig) -> int:
    workspace = Workspace.create()
    manager = DraftSnapshotManager(
        _async_gateway(args), _project_from_args(args, config), workspace, Notifier()
    )
    if args.action == "show":
        snapshot = asyncio.run(manager.restore_latest())
        if snapshot is None:
            return 1
        print(json.dumps(snapshot.to_dict(), ensure_ascii=False, indent=2))
        return 0
    if args.action == "save":
        if args.fields is None:
            print("[draft] --fields is required for save.")
            return 1
        try:
            fields = _load_fields(args.fields)
        except (OSError, ValueError) as exc:
            print(f"[draft] Unable to read {args.fields}: {exc}")
            return 1
        for name, value in fields.items():
            workspace.set(name, value)
        return 0 if asyncio.run(manager.save()) else 1

    def confirm() -> bool:
        if args.yes:
            return True
        return _prompt_yes_no("Clear the saved draft? This cannot be undone.", default=False)

    return 0 if asyncio.run(manager.clear(confirm)) else 1


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        config = load_config(args.config)
    except ValueError as exc:
        print(f"[config] {exc}")
        return 1

    if args.command == "serve":
        from video_workstation.server import run_server

        run_server(config, host=args.host, port=args.port, static_dir=args.static_dir)
        return 0
    if args.command == "batch-tts":
        return run_batch(args, config)
    if args.command == "image":
        return run_image(args, config)
    if args.command == "tasks":
        return run_tasks(args)
    return run_draft(args, config)
