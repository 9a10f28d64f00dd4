"""Choice generation: engine choices become renderable choice views."""

from __future__ import annotations

import logging
import string
from typing import Any, Callable

from pydantic import BaseModel, Field

from storyframe.tag_processor import TagProcessor
from storyframe.tags import ToneRegistry

logger = logging.getLogger(__name__)

RETURN_TEXT = "← Return to Story"
RETURN_CLASS = "return-button"


class ToneIndicator(BaseModel):
    label: str
    icon: str


class ChoiceView(BaseModel):
    text: str
    classes: list[str] = Field(default_factory=list)
    is_clickable: bool = True
    index: int | None = None
    tags: list[str] = Field(default_factory=list)
    key_hint: str | None = None
    tone_indicators: list[ToneIndicator] = Field(default_factory=list)
    is_special: bool = False


def key_hint(index: int) -> str | None:
    """Keyboard hint for a choice position: 1-9, then a-z."""
    if index < 0:
        return None
    if index < 9:
        return str(index + 1)
    if index - 9 < len(string.ascii_lowercase):
        return string.ascii_lowercase[index - 9]
    return None


class ChoiceGenerator:
    def __init__(
        self,
        tag_processor: TagProcessor | None,
        tones: ToneRegistry | None = None,
        show_tones: Callable[[], bool] | None = None,
    ) -> None:
        self.tag_processor = tag_processor
        self.tones = tones or ToneRegistry()
        self._show_tones = show_tones

    def generate(self, engine_choices: Any) -> list[ChoiceView]:
        if not isinstance(engine_choices, list):
            logger.error("Invalid engine choices: expected a list, got %r", type(engine_choices).__name__)
            return []

        views = []
        for index, choice in enumerate(engine_choices):
            text = getattr(choice, "text", "") or ""
            tags = list(getattr(choice, "tags", None) or [])
            try:
                if self.tag_processor is not None:
                    processed = self.tag_processor.process_choice_tags(tags)
                    classes, clickable = processed.custom_classes, processed.is_clickable
                else:
                    classes, clickable = [], True
                views.append(ChoiceView(
                    text=text,
                    classes=list(classes),
                    is_clickable=clickable,
                    index=index,
                    tags=tags,
                    key_hint=key_hint(index),
                    tone_indicators=self.tone_indicators(tags),
                ))
            except Exception:
                logger.exception("Failed to process choice at index %d", index)
                views.append(ChoiceView(
                    text=text or "Invalid choice",
                    classes=["error-choice"],
                    is_clickable=False,
                    index=index,
                ))
        return views

    def tone_indicators(self, tags: list[str]) -> list[ToneIndicator]:
        if not len(self.tones):
            return []
        if self._show_tones is not None and not self._show_tones():
            return []
        indicators = []
        for tag in tags:
            if not isinstance(tag, str):
                continue
            icon = self.tones.icon_for(tag)
            if icon:
                indicators.append(ToneIndicator(label=tag.strip().lower(), icon=icon))
        return indicators

    def return_choice(self) -> ChoiceView:
        """The "return to story" choice shown on special pages. Never persisted."""
        return ChoiceView(text=RETURN_TEXT, classes=[RETURN_CLASS], is_special=True)


def has_clickable_choices(choices: list[ChoiceView]) -> bool:
    return any(choice.is_clickable for choice in choices)
