"""Reader settings and story metadata.

Settings are stored as settings.json in the data dir. Only the values the
reader changed are written; reads merge them over the story defaults and the
built-in defaults, so a settings file written by an older version still
loads. Unknown keys are ignored on write.

Story metadata comes from the story's global tags:

    # TITLE: The Lighthouse
    # AUTHOR: A. Keeper
    # THEME: dark
    # MAX_HISTORY: 200
    # TONE: flirty 🔥
    # TONE_INDICATORS: on
    # TONE_TRAILING
    # CHOICE_NUMBERS: off
    # PAGE_MENU: stats, inventory,, credits
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from storyframe.tags import ToneRegistry, parse_tag

logger = logging.getLogger(__name__)

SETTINGS_DEFAULTS: dict[str, Any] = {
    "theme": "auto",
    "textSize": "medium",
    "lineHeight": "normal",
    "fontFamily": "serif",
    "audioEnabled": True,
    "autoSave": True,
    "animations": True,
    "toneIndicators": True,
    "choiceNumbering": "auto",
    "keyboardShortcuts": True,
}


class Settings:
    """Reader settings. Only values the reader changed are written to disk."""

    def __init__(self, data_dir: Path) -> None:
        self.path = Path(data_dir) / "settings.json"
        self._story_defaults: dict[str, Any] = {}
        self._overrides = self._load()

    def _defaults(self) -> dict[str, Any]:
        return {**SETTINGS_DEFAULTS, **self._story_defaults}

    def _load(self) -> dict[str, Any]:
        if not self.path.is_file():
            return {}
        try:
            stored = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError):
            logger.exception("Could not read %s, using defaults", self.path)
            return {}
        if not isinstance(stored, dict):
            return {}
        return {k: v for k, v in stored.items() if k in SETTINGS_DEFAULTS}

    def get_setting(self, key: str) -> Any:
        return self.get_all().get(key)

    def get_all(self) -> dict[str, Any]:
        return {**self._defaults(), **self._overrides}

    def set_setting(self, key: str, value: Any) -> bool:
        if key not in SETTINGS_DEFAULTS:
            logger.warning("Ignoring unknown setting %r", key)
            return False
        self._overrides[key] = value
        self._store()
        return True

    def update(self, fields: dict[str, Any]) -> dict[str, Any]:
        """Merge fields into the settings and persist. Returns all settings."""
        for key, value in fields.items():
            if key in SETTINGS_DEFAULTS:
                self._overrides[key] = value
            else:
                logger.warning("Ignoring unknown setting %r", key)
        self._store()
        return self.get_all()

    def reset(self) -> None:
        self._overrides = {}
        self._store()

    def apply_story_defaults(self, defaults: dict[str, Any]) -> None:
        """Author-chosen defaults. Values the reader set still win."""
        self._story_defaults = {k: v for k, v in defaults.items() if k in SETTINGS_DEFAULTS}

    def _store(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self._overrides, indent=2))


class StoryMetadata(BaseModel):
    title: str = "Untitled"
    author: str | None = None
    theme: str | None = None
    max_history: int | None = None
    tone_indicators_available: bool = False
    tone_indicators: bool = True
    tone_trailing: bool = False
    choice_numbering: str = "auto"
    page_menu: str | None = None

    @classmethod
    def from_global_tags(cls, tags: Any, tones: ToneRegistry | None = None) -> "StoryMetadata":
        meta = cls()
        if not isinstance(tags, list):
            return meta

        for raw in tags:
            if not isinstance(raw, str):
                continue
            parsed = parse_tag(raw)
            if not parsed.usable:
                continue
            key, value = parsed.tag_def.key, (parsed.value or "").strip()

            if key == "TITLE":
                meta.title = value
            elif key == "AUTHOR":
                meta.author = value
            elif key == "THEME":
                meta.theme = "dark" if value == "dark" else "light"
            elif key == "MAX_HISTORY":
                try:
                    limit = int(value)
                except ValueError:
                    limit = 0
                if limit > 0:
                    meta.max_history = limit
                else:
                    logger.warning("Invalid MAX_HISTORY value: %s", value)
            elif key == "CHOICE_NUMBERS":
                mode = value.lower()
                meta.choice_numbering = mode if mode in ("on", "off") else "auto"
            elif key == "TONE_INDICATORS":
                meta.tone_indicators_available = True
                meta.tone_indicators = value.lower() != "off"
            elif key == "TONE_TRAILING":
                meta.tone_trailing = True
            elif key == "TONE":
                label, _, icon = value.partition(" ")
                if icon.strip() and tones is not None:
                    tones.register(label.strip(), icon.strip())
                    meta.tone_indicators_available = True
            elif key == "PAGE_MENU" and meta.page_menu is None:
                meta.page_menu = value
        return meta

    @property
    def full_title(self) -> str:
        title = self.title
        if self.author:
            title += f", by {self.author}"
        return title

    def setting_defaults(self) -> dict[str, Any]:
        defaults: dict[str, Any] = {"choiceNumbering": self.choice_numbering}
        if self.theme:
            defaults["theme"] = self.theme
        if self.tone_indicators_available:
            defaults["toneIndicators"] = self.tone_indicators
        return defaults
