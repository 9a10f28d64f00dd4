"""Tag processor: turns a line's or choice's tags into classes and effects.

Line tags:
  AUDIO / AUDIOLOOP / BACKGROUND     → PlayAudio / PlayAudioLoop / SetBackground
  NOTIFICATION / ACHIEVEMENT /
  WARNING / ERROR                    → Notify (info / success 6s / warning / error)
  CLASS                              → custom class
  CLEAR / RESTART                    → Clear / Restart effect

Choice tags add:
  UNCLICKABLE                        → is_clickable = False
  <registered tone>                  → lower-cased class

Effects keep their tag order. Known tags that belong to another phase (IMAGE,
STATBAR, SPECIAL_PAGE, ...) are skipped silently. Unknown names are reported
once per processor, with a suggestion when one looks like a typo.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field

from storyframe.models import (
    Clear,
    Effect,
    Notify,
    PlayAudio,
    PlayAudioLoop,
    Restart,
    SetBackground,
)
from storyframe.tags import ToneRegistry, is_known_tag, parse_tag, similar_tags, tag_name

logger = logging.getLogger(__name__)

_NOTIFY_LEVELS = {
    "NOTIFICATION": ("info", 4000),
    "ACHIEVEMENT": ("success", 6000),
    "WARNING": ("warning", 4000),
    "ERROR": ("error", 4000),
}


class LineTags(BaseModel):
    custom_classes: list[str] = Field(default_factory=list)
    effects: list[Effect] = Field(default_factory=list)


class ChoiceTags(BaseModel):
    custom_classes: list[str] = Field(default_factory=list)
    is_clickable: bool = True


class TagProcessor:
    def __init__(self, tones: ToneRegistry | None = None) -> None:
        self.tones = tones or ToneRegistry()
        self._warned: set[str] = set()

    def process_line_tags(self, tags: Any) -> LineTags:
        if not isinstance(tags, list):
            logger.warning("Invalid tags passed to process_line_tags: %r", tags)
            return LineTags()
        try:
            result = LineTags()
            self._process(tags, result, context="line")
            return result
        except Exception:
            logger.exception("Failed to process line tags")
            return LineTags()

    def process_choice_tags(self, tags: Any) -> ChoiceTags:
        if not isinstance(tags, list):
            logger.warning("Invalid tags passed to process_choice_tags: %r", tags)
            return ChoiceTags()
        try:
            result = ChoiceTags()
            self._process(tags, result, context="choice")
            return result
        except Exception:
            logger.exception("Failed to process choice tags")
            return ChoiceTags()

    def _process(self, tags: list, result: LineTags | ChoiceTags, context: str) -> None:
        for raw in tags:
            parsed = parse_tag(raw)
            if parsed.invalid:
                continue
            if parsed.error:
                logger.warning(parsed.error)
                continue

            if parsed.tag_def is not None:
                self._apply_known(parsed.tag_def.key, parsed.value or "", result)
                continue

            name = tag_name(raw)
            if not name:
                continue
            is_property = ":" in raw
            if context == "choice" and not is_property and self.tones.is_registered_tone_tag(name):
                result.custom_classes.append(name.lower())
                continue
            self.warn_unknown_tag(name, context, raw)

    def _apply_known(self, key: str, value: str, result: LineTags | ChoiceTags) -> None:
        effects = getattr(result, "effects", None)
        if key == "CLASS":
            result.custom_classes.append(value)
        elif key == "UNCLICKABLE":
            if isinstance(result, ChoiceTags):
                result.is_clickable = False
        elif effects is None:
            # effect tags on choices have nowhere to go
            return
        elif key == "AUDIO":
            effects.append(PlayAudio(src=value))
        elif key == "AUDIOLOOP":
            effects.append(PlayAudioLoop(src=value))
        elif key == "BACKGROUND":
            effects.append(SetBackground(src=value))
        elif key in _NOTIFY_LEVELS:
            level, duration = _NOTIFY_LEVELS[key]
            effects.append(Notify(message=value, level=level, duration_ms=duration))
        elif key == "CLEAR":
            effects.append(Clear())
        elif key == "RESTART":
            effects.append(Restart())

    def warn_unknown_tag(self, name: str, context: str, raw: str = "") -> None:
        """Log an unknown tag once per name (case-insensitive)."""
        if is_known_tag(name):
            return
        upper = name.upper()
        if upper in self._warned:
            return
        self._warned.add(upper)

        similar = similar_tags(name)
        if similar:
            suggestion = f" Did you mean: {', '.join(similar)}?"
        elif context == "line":
            suggestion = " Use # CLASS: for custom classes."
        else:
            suggestion = " For tone indicators, define with # TONE: tagname icon first."
        logger.warning('Unknown tag "%s" on %s: "# %s".%s', name, context, raw, suggestion)
