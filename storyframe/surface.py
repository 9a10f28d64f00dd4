"""Presentation surface: where rendered blocks, choices and effects end up.

The display layer never talks to a concrete UI. It drives an object matching
the Surface protocol:

    append(block)              add one rendered block (a plain dict)
    clear()                    remove all blocks and choices
    set_choices(choices)       replace the choice list
    scroll_to_top()
    set_header_visible(flag)
    notify(message, level, duration_ms)
    play_audio(src) / play_audio_loop(src) / stop_audio_loop()
    set_background(src | None)

BufferSurface keeps everything in memory. The HTTP API serialises it as the
screen state and the tests inspect it directly.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class Surface(Protocol):
    def append(self, block: dict[str, Any]) -> None: ...
    def clear(self) -> None: ...
    def set_choices(self, choices: list[dict[str, Any]]) -> None: ...
    def scroll_to_top(self) -> None: ...
    def set_header_visible(self, visible: bool) -> None: ...
    def notify(self, message: str, level: str = "info", duration_ms: int = 4000) -> None: ...
    def play_audio(self, src: str) -> None: ...
    def play_audio_loop(self, src: str) -> None: ...
    def stop_audio_loop(self) -> None: ...
    def set_background(self, src: str | None) -> None: ...


class BufferSurface:
    """In-memory surface. Holds the current screen as plain data."""

    def __init__(self) -> None:
        self.blocks: list[dict[str, Any]] = []
        self.choices: list[dict[str, Any]] = []
        self.notifications: list[dict[str, Any]] = []
        self.header_visible = True
        self.background: str | None = None
        self.audio: str | None = None
        self.audio_loop: str | None = None
        self.scroll_count = 0

    def append(self, block: dict[str, Any]) -> None:
        self.blocks.append(block)

    def clear(self) -> None:
        self.blocks = []
        self.choices = []

    def set_choices(self, choices: list[dict[str, Any]]) -> None:
        self.choices = list(choices)

    def scroll_to_top(self) -> None:
        self.scroll_count += 1

    def set_header_visible(self, visible: bool) -> None:
        self.header_visible = visible

    def notify(self, message: str, level: str = "info", duration_ms: int = 4000) -> None:
        logger.debug("notify level=%s message=%r", level, message)
        self.notifications.append({"message": message, "level": level, "duration_ms": duration_ms})

    def play_audio(self, src: str) -> None:
        self.audio = src

    def play_audio_loop(self, src: str) -> None:
        self.audio_loop = src

    def stop_audio_loop(self) -> None:
        self.audio_loop = None

    def set_background(self, src: str | None) -> None:
        self.background = src

    def snapshot(self) -> dict[str, Any]:
        return {
            "blocks": list(self.blocks),
            "choices": list(self.choices),
            "header_visible": self.header_visible,
            "background": self.background,
            "audio_loop": self.audio_loop,
            "notifications": list(self.notifications),
        }
