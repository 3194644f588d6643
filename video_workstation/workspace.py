"""In-memory model of one project's multi-tab workspace."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

from video_workstation.tasks import TaskCategory


TEXT_FIELDS = (
    "videoUrl",
    "apiKey",
    "promptAudioUrl",
    "promptText",
    "ttsInput",
    "emoText",
    "batchTTSInput",
    "batchEmoText",
    "characterName",
    "characterPrompt",
    "characterAspectRatio",
    "characterRefName",
    "characterRefImagePath",
    "characterAddedPrompt",
    "characterRefAspectRatio",
    "characterImagePath",
    "characterResultPathText",
    "characterResultPathRef",
    "backgroundName",
    "backgroundPrompt",
    "backgroundAspectRatio",
    "backgroundRefName",
    "backgroundRefImagePaths",
    "backgroundAddedPrompt",
    "backgroundRefAspectRatio",
    "backgroundImagePath",
    "backgroundResultPathText",
    "backgroundResultPathRef",
)


@dataclass(frozen=True)
class TTSConfig:
    api_key: str = ""
    prompt_audio_url: str = ""
    prompt_text: str = ""

    def is_complete(self) -> bool:
        return bool(self.api_key and self.prompt_audio_url and self.prompt_text)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "TTSConfig":
        return cls(
            api_key=str(data.get("apiKey") or "").strip(),
            prompt_audio_url=str(data.get("promptAudioUrl") or "").strip(),
            prompt_text=str(data.get("promptText") or "").strip(),
        )


@dataclass
class Project:
    id: str
    name: str
    path: str
    tts_config: Optional[TTSConfig] = None
    copywriting: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class ResultPanel:
    """Where one category's generated image is previewed."""

    name: str
    visible_key: str
    payload_key: str
    path_field: str
    image_path_field: str
    container: str


RESULT_PANELS: dict[TaskCategory, ResultPanel] = {
    TaskCategory.CHARACTER_TEXT: ResultPanel(
        name="characterResultDisplayText",
        visible_key="characterResultDisplayTextVisible",
        payload_key="characterImageTextSrc",
        path_field="characterResultPathText",
        image_path_field="characterImagePath",
        container="characterResultContainer",
    ),
    TaskCategory.CHARACTER_REFERENCE: ResultPanel(
        name="characterResultDisplayRef",
        visible_key="characterResultDisplayRefVisible",
        payload_key="characterImageRefSrc",
        path_field="characterResultPathRef",
        image_path_field="characterImagePath",
        container="characterResultContainer",
    ),
    TaskCategory.BACKGROUND_TEXT: ResultPanel(
        name="backgroundResultDisplayText",
        visible_key="backgroundResultDisplayTextVisible",
        payload_key="backgroundImageTextSrc",
        path_field="backgroundResultPathText",
        image_path_field="backgroundImagePath",
        container="backgroundResultContainer",
    ),
    TaskCategory.BACKGROUND_REFERENCE: ResultPanel(
        name="backgroundResultDisplayRef",
        visible_key="backgroundResultDisplayRefVisible",
        payload_key="backgroundImageRefSrc",
        path_field="backgroundResultPathRef",
        image_path_field="backgroundImagePath",
        container="backgroundResultContainer",
    ),
}
CONTAINERS = ("characterResultContainer", "backgroundResultContainer")


@dataclass
class PanelState:
    visible: bool = False
    src: str = ""


@dataclass
class Workspace:
    """Controls that exist in the current view.

    Fields, panels and containers left out of the constructor behave like
    absent DOM elements: reads see nothing and writes are dropped.
    """

    values: dict[str, str] = field(default_factory=dict)
    panels: dict[str, PanelState] = field(default_factory=dict)
    containers: dict[str, bool] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        field_names: Iterable[str] = TEXT_FIELDS,
        panel_names: Optional[Iterable[str]] = None,
        container_names: Iterable[str] = CONTAINERS,
    ) -> "Workspace":
        if panel_names is None:
            panel_names = [panel.name for panel in RESULT_PANELS.values()]
        return cls(
            values={name: "" for name in field_names},
            panels={name: PanelState() for name in panel_names},
            containers={name: False for name in container_names},
        )

    def get(self, name: str) -> Optional[str]:
        return self.values.get(name)

    def set(self, name: str, value: str) -> None:
        if name in self.values:
            self.values[name] = value

    def panel(self, name: str) -> Optional[PanelState]:
        return self.panels.get(name)

    def set_container(self, name: str, visible: bool) -> None:
        if name in self.containers:
            self.containers[name] = visible

    def show_result(self, category: TaskCategory, data_url: str, file_path: str) -> None:
        result_panel = RESULT_PANELS[category]
        state = self.panel(result_panel.name)
        if state is not None:
            state.visible = True
            state.src = data_url
        self.set(result_panel.path_field, file_path)
        self.set(result_panel.image_path_field, file_path)
        self.set_container(result_panel.container, True)
