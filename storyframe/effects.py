"""Effect executor: applies the side effects that tags produce.

The tag processor only describes effects (PlayAudio, SetBackground, Notify,
Clear, Restart, ...). The executor applies them, in tag order, to a Surface.
Its return value is what the content processor uses to find a line's primary
action: Clear → "CLEAR", Restart → "RESTART", anything else → None.

Audio is skipped while the `audioEnabled` setting is off, but the last loop
source is remembered so it can resume when audio is switched back on. Stopping
a loop (`AUDIOLOOP: none`) always goes through.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from storyframe.models import (
    Clear,
    Notify,
    PlayAudio,
    PlayAudioLoop,
    Restart,
    SetBackground,
)
from storyframe.surface import Surface

logger = logging.getLogger(__name__)

SettingReader = Callable[[str], Any]

_STOP_WORDS = {"none", "stop"}


class EffectExecutor:
    def __init__(self, surface: Surface, get_setting: SettingReader | None = None) -> None:
        self._surface = surface
        self._get_setting = get_setting
        self.last_audio_loop: str | None = None

    def _audio_enabled(self) -> bool:
        if self._get_setting is None:
            return True
        return bool(self._get_setting("audioEnabled"))

    def apply(self, effect: Any) -> str | dict | None:
        """Apply one effect. Returns the effect's action result."""
        if isinstance(effect, Clear):
            return "CLEAR"
        if isinstance(effect, Restart):
            return "RESTART"
        if isinstance(effect, PlayAudio):
            self._play_audio(effect.src)
        elif isinstance(effect, PlayAudioLoop):
            self._play_audio_loop(effect.src)
        elif isinstance(effect, SetBackground):
            self._set_background(effect.src)
        elif isinstance(effect, Notify):
            self._surface.notify(effect.message, effect.level, effect.duration_ms)
        else:
            logger.warning("Unknown effect %r, skipped", effect)
        return None

    def apply_all(self, effects: list[Any]) -> list[str | dict | None]:
        results = []
        for effect in effects:
            try:
                results.append(self.apply(effect))
            except Exception:
                logger.exception("Effect %r failed", effect)
                results.append(None)
        return results

    def _play_audio(self, src: str) -> None:
        if not self._audio_enabled():
            return
        if not src:
            logger.warning("Invalid audio source provided")
            return
        self._surface.play_audio(src)

    def _play_audio_loop(self, src: str) -> None:
        if not src:
            logger.warning("Invalid audio loop source provided")
            return
        if src.lower() in _STOP_WORDS:
            self.last_audio_loop = None
            self._surface.stop_audio_loop()
            return
        self.last_audio_loop = src
        if not self._audio_enabled():
            return
        self._surface.play_audio_loop(src)

    def resume_audio_loop(self) -> None:
        if self.last_audio_loop and self._audio_enabled():
            self._surface.play_audio_loop(self.last_audio_loop)

    def _set_background(self, src: str) -> None:
        if not src or src.lower() == "none":
            self._surface.set_background(None)
        else:
            self._surface.set_background(src)
