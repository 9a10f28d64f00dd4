"""Content processor: resolves one engine line (text + tags) into content items.

Content-type tags decide what a line becomes. When several are present the
kind with the highest precedence wins:

  IMAGE       → Image, or [Image, Paragraph] when the line also has text
  STATBAR     → one StatBar per STATBAR tag on the line (+ trailing Paragraph
                when there is text); a single bar is returned unwrapped
  USER_INPUT  → UserInputPrompt, unless the variable is already set and we are
                re-processing right after the reader submitted it
  (none)      → Paragraph with classes and the line's primary action

Tag value formats:

  IMAGE: hero.png left 40% caption "A hero"
  STATBAR: health 0 100 "HP" clamp
  STATBAR: mood "Calm" "Angry"
  USER_INPUT: player_name "What is your name?"

Every effect of a paragraph is executed in tag order; the first whose result
is "CLEAR", "RESTART" or a dict becomes the paragraph's action. process()
never raises; failures degrade to a plain paragraph.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable

from storyframe.effects import EffectExecutor
from storyframe.models import Image, Paragraph, StatBar, UserInputPrompt
from storyframe.tag_processor import TagProcessor
from storyframe.tags import parse_tag

logger = logging.getLogger(__name__)

VariableReader = Callable[[str], Any]

_QUOTED = re.compile(r'"([^"]*)"')
_WIDTH = re.compile(r"^\d+(%|px|em|rem|vw)$")
_ALIGNMENTS = ("left", "right", "center")
_PRECEDENCE = ("IMAGE", "STATBAR", "USER_INPUT")

Resolved = Paragraph | Image | StatBar | UserInputPrompt


class ContentProcessor:
    """Resolve lines into content items.

    Args:
        tag_processor:   Turns line tags into classes and effects. None degrades
                         every line to a bare paragraph.
        executor:        Applies effects; without one, effects are only inspected.
        get_variable:    Reads a live engine variable by name.
        is_reprocessing: Returns True while the story continues right after a
                         user-input submit.
    """

    def __init__(
        self,
        tag_processor: TagProcessor | None,
        executor: EffectExecutor | None = None,
        get_variable: VariableReader | None = None,
        is_reprocessing: Callable[[], bool] | None = None,
    ) -> None:
        self.tag_processor = tag_processor
        self.executor = executor
        self._get_variable = get_variable
        self._is_reprocessing = is_reprocessing

    def process(self, text: str, tags: Any) -> Resolved | list[Resolved]:
        try:
            if isinstance(tags, list):
                override = self._check_content_type_tags(tags, text)
                if override is not None:
                    return override
            return self.create_paragraph(text, tags)
        except Exception:
            logger.exception("Failed to process content %r", text)
            return Paragraph(text=text or "", tags=tags if isinstance(tags, list) else [])

    def _check_content_type_tags(self, tags: list, text: str) -> Resolved | list[Resolved] | None:
        found: dict[str, str] = {}
        for raw in tags:
            if not isinstance(raw, str):
                continue
            parsed = parse_tag(raw)
            if not parsed.usable:
                continue
            key = parsed.tag_def.key
            if key in _PRECEDENCE and key not in found:
                found[key] = parsed.value or ""

        if "IMAGE" in found:
            return self._image_content(found["IMAGE"], text, tags)
        if "STATBAR" in found:
            return self._stat_bar_content(tags, text)
        if "USER_INPUT" in found:
            return self._user_input_content(found["USER_INPUT"])
        return None

    def _image_content(self, value: str, text: str, tags: list) -> Resolved | list[Resolved]:
        image = Image(**parse_image_tag(value))
        if not (text or "").strip():
            return image
        return [image, self.create_paragraph(text, tags)]

    def _stat_bar_content(self, tags: list, text: str) -> Resolved | list[Resolved]:
        bars: list[Resolved] = []
        for raw in tags:
            parsed = parse_tag(raw)
            if not parsed.usable or parsed.tag_def.key != "STATBAR":
                continue
            bars.append(StatBar(**parse_stat_bar_tag(parsed.value or "")))

        if (text or "").strip():
            return [*bars, self.create_paragraph(text, tags)]
        return bars[0] if len(bars) == 1 else bars

    def _user_input_content(self, value: str) -> Resolved | None:
        prompt = UserInputPrompt(**parse_user_input_tag(value))
        current = self._get_variable(prompt.variable_name) if self._get_variable else None
        reprocessing = self._is_reprocessing() if self._is_reprocessing else False
        if current and reprocessing:
            # already answered; fall through to the paragraph branch
            return None
        return prompt

    def create_paragraph(self, text: str, tags: Any) -> Paragraph:
        if not isinstance(tags, list):
            logger.warning("Invalid tags provided to create_paragraph: %r", tags)
            tags = []

        if self.tag_processor is None:
            logger.error("Tag processor not available in ContentProcessor")
            return Paragraph(text=text or "", tags=tags)

        line = self.tag_processor.process_line_tags(tags)
        action = self.find_special_action(line.effects)
        return Paragraph(
            text=text or "",
            classes=list(line.custom_classes),
            tags=list(tags),
            has_special_action=action is not None,
            action=action,
        )

    def find_special_action(self, effects: list[Any]) -> str | dict | None:
        """Run every effect in order; return the first CLEAR/RESTART/dict result."""
        if not effects:
            return None
        if self.executor is not None:
            results = self.executor.apply_all(effects)
        else:
            results = [_inspect(effect) for effect in effects]

        for result in results:
            if result in ("CLEAR", "RESTART") or isinstance(result, dict):
                return result
        return None

    def is_ready(self) -> bool:
        return self.tag_processor is not None


def _inspect(effect: Any) -> str | None:
    kind = getattr(effect, "kind", None)
    if kind == "clear":
        return "CLEAR"
    if kind == "restart":
        return "RESTART"
    return None


def _to_number(token: str) -> float | None:
    try:
        return float(token)
    except ValueError:
        return None


def parse_stat_bar_tag(value: str) -> dict[str, Any]:
    """Parse a STATBAR value: variable [min max] ["left" ["right"]] [clamp]."""
    text = value.strip()
    labels = _QUOTED.findall(text)
    parts = _QUOTED.sub("", text).split()

    variable_name = parts[0] if parts else ""
    clamp = any(p.lower() == "clamp" for p in parts)

    low, high = 0.0, 100.0
    if len(parts) >= 3:
        maybe_low, maybe_high = _to_number(parts[1]), _to_number(parts[2])
        if maybe_low is not None and maybe_high is not None:
            low, high = maybe_low, maybe_high

    left_label = labels[0] if labels else None
    right_label = labels[1] if len(labels) >= 2 else None

    return {
        "variable_name": variable_name,
        "min": low,
        "max": high,
        "left_label": left_label,
        "right_label": right_label,
        "is_opposed": len(labels) >= 2,
        "clamp": clamp,
    }


def parse_image_tag(value: str) -> dict[str, Any]:
    """Parse an IMAGE value: src [left|right|center] [width] [caption] ["alt text"]."""
    text = value.strip()
    alt_text = None
    match = _QUOTED.search(text)
    if match:
        alt_text = match.group(1)
        text = _QUOTED.sub("", text, count=1).strip()

    parts = text.split()
    src = parts[0] if parts else ""
    alignment = None
    width = None
    show_caption = False
    for part in parts[1:]:
        token = part.lower()
        if token in _ALIGNMENTS:
            alignment = token
        elif token == "caption":
            show_caption = True
        elif _WIDTH.match(token):
            width = token

    return {
        "src": src,
        "alignment": alignment,
        "width": width,
        "alt_text": alt_text,
        "show_caption": show_caption,
    }


def parse_user_input_tag(value: str) -> dict[str, Any]:
    """Parse a USER_INPUT value: variable ["placeholder"]."""
    text = value.strip()
    placeholder = ""
    match = _QUOTED.search(text)
    if match:
        placeholder = match.group(1)
        text = _QUOTED.sub("", text, count=1).strip()
    parts = text.split()
    return {"variable_name": parts[0] if parts else "", "placeholder": placeholder}
