"""Tag registry: the closed catalogue of tag names the story may use.

Tags are free-form strings attached to lines, choices and the story itself.
Two syntaxes:

  NAME: value   property tag, split at the first colon
  NAME          bare marker (or a tone tag on choices)

Every canonical tag has one or more aliases (IMAGE, IMG, PICTURE, PIC) and is
looked up case-insensitively. Each tag belongs to one phase:

  global     read once from the story's global tags (settings.py)
  discovery  special page scanning (pages.py)
  content    decides the content item type of a line (content.py)
  effect     styling and side effects on lines and choices (tag_processor.py)

parse_tag() is total: it never raises. Unknown names parse to tag_def=None
and are left for callers to report. Only non-string or blank input comes back
invalid. A known tag that breaks its value requirement keeps its tag_def and
carries an error; callers skip it (see ParsedTag.usable).
"""

from __future__ import annotations

import logging
from typing import Any

from storyframe.models import ParsedTag, TagDef, TagPhase, TagValue
from storyframe.text import levenshtein

logger = logging.getLogger(__name__)


def _tag(key: str, names: list[str], phase: TagPhase, value: TagValue, description: str) -> TagDef:
    return TagDef(key=key, names=tuple(names), phase=phase, value=value, description=description)


_G, _D, _C, _E = TagPhase.GLOBAL, TagPhase.DISCOVERY, TagPhase.CONTENT, TagPhase.EFFECT
_REQ, _OPT, _NONE = TagValue.REQUIRED, TagValue.OPTIONAL, TagValue.NONE

TAGS: dict[str, TagDef] = {t.key: t for t in [
    # global
    _tag("THEME", ["THEME"], _G, _REQ, "Default theme (light/dark)"),
    _tag("AUTHOR", ["AUTHOR"], _G, _REQ, "Story author name"),
    _tag("TITLE", ["TITLE"], _G, _REQ, "Story title"),
    _tag("MAX_HISTORY", ["MAX_HISTORY", "HISTORY_LIMIT"], _G, _REQ,
         "Maximum display history items kept in saves"),
    _tag("TONE", ["TONE"], _G, _REQ, "Define a tone indicator (TONE: flirty 🔥)"),
    _tag("TONE_INDICATORS", ["TONE_INDICATORS", "SHOW_TONES"], _G, _REQ,
         "Enable tone indicators (on/off)"),
    _tag("TONE_TRAILING", ["TONE_TRAILING", "TRAILING_TONES"], _G, _NONE,
         "Show all tone icons after choice text"),
    _tag("CHOICE_NUMBERS", ["CHOICE_NUMBERS", "CHOICE_NUMBERING", "KEYBOARD_HINTS"], _G, _REQ,
         "Choice numbering mode (auto/on/off)"),
    _tag("PAGE_MENU", ["PAGE_MENU", "MENU", "MENU_ORDER", "PAGE_ORDER", "SPECIAL_PAGE_ORDER"],
         _G, _REQ, "Page menu order"),
    # discovery
    _tag("SPECIAL_PAGE", ["SPECIAL_PAGE", "PAGE"], _D, _OPT,
         "Mark a knot as a special page, optionally with a display name"),
    # content
    _tag("IMAGE", ["IMAGE", "IMG", "PICTURE", "PIC"], _C, _REQ,
         "Image (src, alignment, width, caption)"),
    _tag("STATBAR", ["STATBAR", "STAT_BAR", "PROGRESSBAR", "PROGRESS_BAR"], _C, _REQ,
         "Stat bar (variable, min, max, labels)"),
    _tag("USER_INPUT", ["USER_INPUT", "INPUT", "PROMPT", "TEXT_INPUT"], _C, _REQ,
         "Text input bound to a variable (variable, placeholder)"),
    # effect
    _tag("AUDIO", ["AUDIO", "SOUND", "SFX", "SOUND_EFFECT"], _E, _REQ, "Play one-shot audio"),
    _tag("AUDIOLOOP", ["AUDIOLOOP", "AUDIO_LOOP", "MUSIC", "BACKGROUND_MUSIC", "BGM"], _E, _REQ,
         "Play looping audio ('none' stops it)"),
    _tag("BACKGROUND", ["BACKGROUND", "BG", "BACKGROUND_IMAGE"], _E, _REQ,
         "Background image ('none' removes it)"),
    _tag("NOTIFICATION", ["NOTIFICATION", "NOTIFY", "MESSAGE", "INFO"], _E, _REQ, "Info notification"),
    _tag("ACHIEVEMENT", ["ACHIEVEMENT", "SUCCESS"], _E, _REQ, "Success notification (6s)"),
    _tag("WARNING", ["WARNING", "WARN"], _E, _REQ, "Warning notification"),
    _tag("ERROR", ["ERROR", "ERR"], _E, _REQ, "Error notification"),
    _tag("CLASS", ["CLASS", "CSS", "CSS_CLASS", "STYLE"], _E, _REQ, "Extra style class"),
    _tag("AUTOCLEAR", ["AUTOCLEAR", "AUTO_CLEAR"], _E, _REQ, "Auto-clear on choice (on/off)"),
    _tag("CLEAR", ["CLEAR"], _E, _NONE, "Clear story content"),
    _tag("RESTART", ["RESTART", "RESET", "NEW_GAME"], _E, _NONE, "Restart the story"),
    _tag("UNCLICKABLE", ["UNCLICKABLE", "DISABLED", "DISABLE"], _E, _NONE,
         "Choice is shown but cannot be picked"),
]}


def _build_lookup(tags: dict[str, TagDef]) -> dict[str, str]:
    lookup: dict[str, str] = {}
    for key, tag_def in tags.items():
        for name in tag_def.names:
            upper = name.upper()
            if upper in lookup:
                raise ValueError(f"Duplicate tag alias {upper!r} used by {lookup[upper]} and {key}")
            lookup[upper] = key
    return lookup


TAG_LOOKUP: dict[str, str] = _build_lookup(TAGS)


def get_tag_def(name: Any) -> TagDef | None:
    if not name or not isinstance(name, str):
        return None
    key = TAG_LOOKUP.get(name.strip().upper())
    return TAGS[key] if key else None


def is_known_tag(name: Any) -> bool:
    return get_tag_def(name) is not None


def tags_by_phase(phase: TagPhase) -> list[str]:
    return [key for key, tag_def in TAGS.items() if tag_def.phase == phase]


def split_property_tag(raw: Any) -> tuple[str, str] | None:
    """Split `NAME: value` at the first colon. None if there is no colon."""
    if not raw or not isinstance(raw, str):
        return None
    name, sep, value = raw.partition(":")
    if not sep:
        return None
    return name.strip(), value.strip()


def validate_tag_value(tag_def: TagDef, value: str) -> str | None:
    """Return an error message if value breaks the tag's value requirement."""
    has_value = bool(value and value.strip())
    name = tag_def.names[0]
    if tag_def.value == TagValue.REQUIRED and not has_value:
        return f'Tag "{name}" requires a value (use # {name}: value)'
    if tag_def.value == TagValue.NONE and has_value:
        return f'Tag "{name}" should not have a value (use # {name} alone)'
    return None


def parse_tag(raw: Any) -> ParsedTag:
    """Parse one raw tag string. Never raises."""
    if not isinstance(raw, str) or not raw.strip():
        return ParsedTag(invalid=True, error="Tag must be a non-empty string")

    split = split_property_tag(raw)
    if split:
        name, value = split
    else:
        name, value = raw.strip(), ""

    tag_def = get_tag_def(name)
    if tag_def is None:
        return ParsedTag(value=value or None)

    error = validate_tag_value(tag_def, value)
    if error:
        return ParsedTag(tag_def=tag_def, value=value or None, error=error)
    return ParsedTag(tag_def=tag_def, value=value or None)


def tag_name(raw: str) -> str:
    """Bare name of a raw tag: the part before the first colon, trimmed."""
    return raw.split(":", 1)[0].strip()


def is_special_page_tag(raw: Any) -> bool:
    parsed = parse_tag(raw)
    return parsed.tag_def is not None and parsed.tag_def.key == "SPECIAL_PAGE"


def has_special_page_marker(tags: Any) -> bool:
    """True if any tag in the list is the special page marker (any alias, any case)."""
    if not isinstance(tags, list):
        return False
    return any(is_special_page_tag(t) for t in tags)


def similar_tags(name: str, limit: int = 3) -> list[str]:
    """Known tag keys that look like a typo of name."""
    wanted = name.upper()
    matches = []
    for known in TAGS:
        if len(wanted) >= 3 and known.startswith(wanted[:3]):
            matches.append(known)
        elif len(known) >= 3 and wanted.startswith(known[:3]):
            matches.append(known)
        elif levenshtein(wanted, known) <= 2:
            matches.append(known)
    return matches[:limit]


class ToneRegistry:
    """Tone indicators declared by the story's global `TONE: label icon` tags.

    Tone names double as bare choice tags (`* [Wink] # flirty`), which the
    tag processor turns into classes.
    """

    def __init__(self) -> None:
        self._tones: dict[str, str] = {}

    def register(self, label: Any, icon: str) -> None:
        if not label or not isinstance(label, str):
            return
        self._tones[label.strip().lower()] = icon

    def icon_for(self, label: Any) -> str | None:
        if not label or not isinstance(label, str):
            return None
        return self._tones.get(label.strip().lower())

    def is_registered_tone_tag(self, name: Any) -> bool:
        if not name or not isinstance(name, str):
            return False
        return name.strip().lower() in self._tones

    def clear(self) -> None:
        self._tones.clear()

    def __len__(self) -> int:
        return len(self._tones)
