"""Display history: the replayable log of everything shown.

Every content item that reaches the screen is appended to the history with a
timestamp. The history is the single source of truth for the screen:
restore_state() wipes the surface and replays the saved history through the
same per-kind rendering path used live, so a restored screen matches the
original one block for block.

Rendering happens one item at a time. An item that fails to render is logged
and skipped, and the rest of the batch still renders.

Stat bars read their variable at render time, not when the item was created,
so replaying a history after the story moved on shows the current values.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from pydantic import ValidationError

from storyframe.models import (
    DisplayState,
    HistoryEntry,
    Image,
    Paragraph,
    StatBar,
    UserInputPrompt,
)
from storyframe.surface import Surface

logger = logging.getLogger(__name__)

DEFAULT_INPUT_PLACEHOLDER = "Type your answer here..."


class DisplayManager:
    """Keeps the history and drives the presentation surface.

    Args:
        surface:      Where rendered blocks go.
        get_variable: Live engine variable reader, used by stat bars.
        max_history:  Keep only the newest N entries in get_state(). None keeps all.
        clock:        Timestamp source, seconds.
    """

    def __init__(
        self,
        surface: Surface,
        get_variable: Callable[[str], Any] | None = None,
        max_history: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.surface = surface
        self._get_variable = get_variable
        self.max_history = max_history
        self._clock = clock
        self.history: list[HistoryEntry] = []

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render(self, items: Any) -> None:
        if not isinstance(items, list):
            logger.warning("Invalid content passed to render: expected a list, got %r", type(items).__name__)
            return

        for index, item in enumerate(items):
            try:
                block = self._render_item(item)
            except Exception:
                logger.exception("Failed to render content item at index %d", index)
                continue
            if block is None:
                continue
            self.surface.append(block)
            self.history.append(HistoryEntry(item=item, timestamp=self._clock()))

    def render_choices(self, choices: list[dict[str, Any]]) -> None:
        if not isinstance(choices, list):
            logger.warning("Invalid choices passed to render_choices: expected a list")
            return
        self.surface.set_choices(choices)

    def _render_item(self, item: Any) -> dict[str, Any] | None:
        if isinstance(item, Image):
            return self.image_block(item)
        if isinstance(item, StatBar):
            return self.stat_bar_block(item)
        if isinstance(item, UserInputPrompt):
            return self.user_input_block(item)
        if isinstance(item, Paragraph):
            return self.paragraph_block(item)
        logger.warning("Unknown content item %r, skipped", item)
        return None

    def paragraph_block(self, item: Paragraph) -> dict[str, Any] | None:
        if not item.text:
            logger.debug("Paragraph without text skipped")
            return None
        return {"kind": "paragraph", "text": item.text, "classes": list(item.classes)}

    def image_block(self, item: Image) -> dict[str, Any]:
        classes = ["story-image"]
        if item.alignment:
            classes.append(f"image-{item.alignment}")
        block: dict[str, Any] = {
            "kind": "image",
            "src": item.src,
            "alt": item.alt_text or "",
            "classes": classes,
            "width": item.width,
        }
        if not (item.show_caption and item.alt_text):
            return block

        # the figure takes over alignment and width from the image
        figure_classes = ["story-figure"]
        if item.alignment:
            figure_classes.append(f"figure-{item.alignment}")
            block["classes"] = ["story-image"]
        if item.width:
            block["width"] = "100%"
        return {
            "kind": "figure",
            "classes": figure_classes,
            "width": item.width,
            "image": block,
            "caption": item.alt_text,
        }

    def stat_bar_block(self, item: StatBar) -> dict[str, Any]:
        value = self.stat_value(item.variable_name)
        metrics = stat_bar_metrics(item, value)
        if item.is_opposed:
            left = item.left_label or item.variable_name
            right = item.right_label or ""
        else:
            left = item.left_label or item.variable_name[:1].upper() + item.variable_name[1:]
            right = None
        return {
            "kind": "statbar",
            "variable": item.variable_name,
            "opposed": item.is_opposed,
            "left_label": left,
            "right_label": right,
            "min": item.min,
            "max": item.max,
            **metrics,
        }

    def user_input_block(self, item: UserInputPrompt) -> dict[str, Any]:
        return {
            "kind": "user-input",
            "variable": item.variable_name,
            "placeholder": item.placeholder or DEFAULT_INPUT_PLACEHOLDER,
        }

    def stat_value(self, name: str) -> float:
        if self._get_variable is None:
            return 0
        try:
            value = self._get_variable(name)
        except Exception:
            logger.warning("Could not read stat variable %r", name)
            return 0
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return 0
        return value

    # ------------------------------------------------------------------
    # Clearing and screen chrome
    # ------------------------------------------------------------------

    def clear(self) -> None:
        """Wipe the surface and the history together."""
        self.surface.clear()
        self.history = []

    def clear_content(self) -> None:
        """Wipe the surface but keep the history."""
        self.surface.clear()

    def scroll_to_top(self) -> None:
        self.surface.scroll_to_top()

    def hide_header(self) -> None:
        self.surface.set_header_visible(False)

    def show_header(self) -> None:
        self.surface.set_header_visible(True)

    def reset(self) -> None:
        self.clear()
        self.show_header()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def get_state(self) -> DisplayState:
        entries = self.history
        if self.max_history and len(entries) > self.max_history:
            entries = entries[-self.max_history:]
        return DisplayState(history=[entry.model_copy() for entry in entries])

    def restore_state(self, state: DisplayState | dict | None) -> None:
        """Replace the screen with a saved history, replayed item by item."""
        if isinstance(state, dict):
            try:
                state = DisplayState.model_validate(state)
            except ValidationError:
                logger.warning("Invalid display state passed to restore_state")
                return
        if not isinstance(state, DisplayState):
            logger.warning("Invalid display state passed to restore_state: %r", state)
            return

        self.clear_content()
        self.history = []
        self.render(state.items())

    def has_content(self) -> bool:
        return bool(self.history)

    def get_stats(self) -> dict[str, Any]:
        return {"history_length": len(self.history), "max_history": self.max_history}


def stat_bar_metrics(item: StatBar, value: float) -> dict[str, Any]:
    """Fill percentage and the numbers shown next to a stat bar."""
    span = item.max - item.min
    fill = max(0.0, min(100.0, (value - item.min) / span * 100)) if span > 0 else 0
    shown = max(item.min, min(item.max, value)) if item.clamp else value
    return {
        "fill_percent": fill,
        "display_value": round(shown),
        "display_left": round(max(0, shown - item.min)),
        "display_right": round(max(0, item.max - shown)),
    }
