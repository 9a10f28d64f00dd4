"""Core domain models.

Tag definitions, resolved content items, side-effect values, display history
and save records. Pydantic is used for validation and serialisation at every
data boundary: the display history is persisted inside save records and
replayed on load, so every item must survive a dump/validate round trip.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------

class TagPhase(str, Enum):
    GLOBAL = "global"        # read once from the story's global tags
    DISCOVERY = "discovery"  # special page scanning
    CONTENT = "content"      # decides the content item type of a line
    EFFECT = "effect"        # styling and side effects per line/choice


class TagValue(str, Enum):
    REQUIRED = "required"  # `NAME: value`
    OPTIONAL = "optional"  # `NAME` or `NAME: value`
    NONE = "none"          # bare `NAME`


class TagDef(BaseModel):
    """One entry of the closed tag table."""

    model_config = ConfigDict(frozen=True)

    key: str
    names: tuple[str, ...]
    phase: TagPhase
    value: TagValue
    description: str = ""

    @property
    def is_marker(self) -> bool:
        return self.value == TagValue.NONE

    @property
    def is_property(self) -> bool:
        return self.value != TagValue.NONE


class ParsedTag(BaseModel):
    tag_def: TagDef | None = None
    value: str | None = None
    invalid: bool = False
    error: str | None = None

    @property
    def usable(self) -> bool:
        """Known, well-formed tag that callers can act on."""
        return not self.invalid and self.error is None and self.tag_def is not None


# ---------------------------------------------------------------------------
# Content items
# ---------------------------------------------------------------------------

Alignment = Literal["left", "right", "center"]


class Paragraph(BaseModel):
    type: Literal["paragraph"] = "paragraph"
    text: str = ""
    classes: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    has_special_action: bool = False
    action: str | dict[str, Any] | None = None


class Image(BaseModel):
    type: Literal["image"] = "image"
    src: str = ""
    alignment: Alignment | None = None
    width: str | None = None
    alt_text: str | None = None
    show_caption: bool = False


class StatBar(BaseModel):
    type: Literal["statbar"] = "statbar"
    variable_name: str = ""
    min: float = 0
    max: float = 100
    left_label: str | None = None
    right_label: str | None = None
    is_opposed: bool = False
    clamp: bool = False


class UserInputPrompt(BaseModel):
    type: Literal["user-input"] = "user-input"
    variable_name: str = ""
    placeholder: str = ""


ContentItem = Annotated[
    Union[Paragraph, Image, StatBar, UserInputPrompt],
    Field(discriminator="type"),
]


class HistoryEntry(BaseModel):
    """A content item as it was shown, stamped with the time it was appended."""

    item: ContentItem
    timestamp: float = 0.0


class DisplayState(BaseModel):
    history: list[HistoryEntry] = Field(default_factory=list)

    def items(self) -> list[Paragraph | Image | StatBar | UserInputPrompt]:
        return [entry.item for entry in self.history]


# ---------------------------------------------------------------------------
# Effects (deferred side effects produced by tags)
# ---------------------------------------------------------------------------

NotifyLevel = Literal["info", "success", "warning", "error"]


class PlayAudio(BaseModel):
    kind: Literal["play_audio"] = "play_audio"
    src: str


class PlayAudioLoop(BaseModel):
    kind: Literal["play_audio_loop"] = "play_audio_loop"
    src: str


class SetBackground(BaseModel):
    kind: Literal["set_background"] = "set_background"
    src: str


class Notify(BaseModel):
    kind: Literal["notify"] = "notify"
    message: str
    level: NotifyLevel = "info"
    duration_ms: int = 4000


class Clear(BaseModel):
    kind: Literal["clear"] = "clear"


class Restart(BaseModel):
    kind: Literal["restart"] = "restart"


Effect = Annotated[
    Union[PlayAudio, PlayAudioLoop, SetBackground, Notify, Clear, Restart],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Page sandbox and saves
# ---------------------------------------------------------------------------

class PageInfo(BaseModel):
    page_id: str
    display_name: str


class PageSession(BaseModel):
    """Held while the reader is on a special page; one level only."""

    saved_state: str
    saved_display: DisplayState | None = None


class SaveRecord(BaseModel):
    """One persisted slot. The slot number is encoded in the storage key.

    Field names are written in camelCase so exported files keep the
    `{gameState, version, ...}` shape that imports are validated against.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    game_state: str
    display_state: DisplayState | None = None
    current_page: str | None = None
    save_name: str = ""
    description: str = ""
    timestamp: int = 0  # milliseconds since the epoch
    version: str = "1.0"
    is_autosave: bool = False
    state_before_user_input: str | None = None
