"""Single end-to-end generation calls bound to a tracked task."""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from video_workstation.gateway import GatewayError
from video_workstation.notify import Notifier
from video_workstation.session import SessionStoreError
from video_workstation.tasks import (
    ControlBusyError,
    TaskCategory,
    TaskRegistry,
    generate_task_id,
)
from video_workstation.workspace import Project, Workspace


DEFAULT_CALL_TIMEOUT = 130.0


class ValidationError(ValueError):
    """Raised when required user input is missing; nothing has been sent."""


class InvocationError(RuntimeError):
    """Raised when a response is well formed but lacks the expected artifact."""


@dataclass(frozen=True)
class InvocationResult:
    success: bool
    message: str = ""
    file_path: Optional[str] = None
    preview: Optional[str] = None


def validate_image_request(
    category: TaskCategory,
    name: str,
    prompt: str,
    reference_paths: Optional[list[str]],
) -> list[str] | None:
    if not name.strip():
        raise ValidationError("Enter a name; it becomes the saved file name.")
    if not prompt.strip():
        raise ValidationError("Enter a generation prompt.")
    if not category.is_reference:
        return None
    paths = [path.strip() for path in reference_paths or [] if path.strip()]
    if not paths:
        raise ValidationError("Enter at least one reference image path.")
    return paths


class GenerationInvoker:
    def __init__(
        self,
        gateway: Any,
        registry: TaskRegistry,
        project: Project,
        notifier: Optional[Notifier] = None,
        workspace: Optional[Workspace] = None,
        call_timeout: Optional[float] = DEFAULT_CALL_TIMEOUT,
        clock: Callable[[], float] = time.time,
        verbose: bool = False,
    ) -> None:
        self.gateway = gateway
        self.registry = registry
        self.project = project
        self.notifier = notifier or Notifier()
        self.workspace = workspace
        self.call_timeout = call_timeout
        self.clock = clock
        self.verbose = verbose

    async def invoke(
        self,
        category: TaskCategory,
        name: str,
        prompt: str,
        aspect_ratio: str = "",
        reference_paths: Optional[list[str]] = None,
    ) -> InvocationResult:
        image_paths = validate_image_request(category, name, prompt, reference_paths)
        name = name.strip()
        prompt = prompt.strip()

        task_id = generate_task_id(category, self.clock)
        try:
            self.registry.register(task_id, category)
        except ControlBusyError as error:
            self.notifier.warning("A generation of this kind is already running.")
            return InvocationResult(success=False, message=str(error))
        except SessionStoreError as error:
            self.notifier.error(f"Unable to track the generation task: {error}")
            return InvocationResult(success=False, message=str(error))
        if self.verbose:
            print(f"[invoke] Started {task_id}.")

        try:
            result = await asyncio.wait_for(
                self._generate_image(category, name, prompt, aspect_ratio, image_paths),
                timeout=self.call_timeout,
            )
        except asyncio.TimeoutError:
            result = InvocationResult(
                success=False,
                message=f"Generation timed out after {self.call_timeout:g}s",
            )
        except (GatewayError, InvocationError) as error:
            result = InvocationResult(success=False, message=str(error))
        except Exception as error:
            result = InvocationResult(success=False, message=f"Unexpected error: {error!r}")
        finally:
            self._release(task_id, category)

        if result.success:
            self.notifier.success("Image generated.")
        else:
            print(f"[invoke] {task_id} failed: {result.message}")
            self.notifier.error(f"Generation failed: {result.message}")
        return result

    async def _generate_image(
        self,
        category: TaskCategory,
        name: str,
        prompt: str,
        aspect_ratio: str,
        image_paths: Optional[list[str]],
    ) -> InvocationResult:
        response = await self.gateway.generate_image(
            self.project.path,
            category.image_type,
            name,
            prompt,
            aspect_ratio,
            image_paths,
        )
        file_path = response.get("file_path")
        if not file_path:
            raise InvocationError("The response did not include a file path.")
        try:
            preview = await self.gateway.get_image(file_path)
        except GatewayError as error:
            raise InvocationError(f"Unable to load the generated image: {error}") from error
        data_url = preview.get("data_url")
        if not data_url:
            raise InvocationError("Unable to load the generated image.")
        if self.workspace is not None:
            self.workspace.show_result(category, data_url, file_path)
        return InvocationResult(
            success=True,
            message=str(response.get("message") or ""),
            file_path=file_path,
            preview=data_url,
        )

    def _release(self, task_id: str, category: TaskCategory) -> None:
        try:
            self.registry.unregister(task_id)
        except (SessionStoreError, ValueError) as error:
            print(f"[invoke] Unable to unregister {task_id}: {error}")
        control = self.registry.resolve_control(category)
        if control is not None and control.task_id == task_id:
            control.release()

    async def generate_speech(self, text: str, emo_text: str = "") -> InvocationResult:
        config = self.project.tts_config
        if config is None or not config.is_complete():
            raise ValidationError("Save the TTS configuration first.")
        text = text.strip()
        if not text:
            raise ValidationError("Enter the text to synthesize.")
        try:
            response = await asyncio.wait_for(
                self.gateway.generate_tts(self.project.path, config, text, emo_text.strip()),
                timeout=self.call_timeout,
            )
        except asyncio.TimeoutError:
            message = f"Speech generation timed out after {self.call_timeout:g}s"
            self.notifier.error(message)
            return InvocationResult(success=False, message=message)
        except GatewayError as error:
            self.notifier.error(f"Generation failed: {error}")
            return InvocationResult(success=False, message=str(error))
        filename = response.get("filename")
        if not filename:
            self.notifier.error("Generation failed: no audio file was reported.")
            return InvocationResult(success=False, message="No audio file was reported.")
        self.notifier.success("Speech generated.")
        return InvocationResult(success=True, file_path=filename)
