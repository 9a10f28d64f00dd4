"""Special pages: sandboxed side trips (credits, stats, help) out of the story.

A special page is a knot whose first line carries the SPECIAL_PAGE tag:

    === credits ===
    # SPECIAL_PAGE: Credits
    Written by ...

Flow:
  show(page_id)
    → if no PageSession is held, snapshot engine state + display history
      (an existing session is reused, so hopping between pages keeps the
      original story point)
    → clear the screen
    → fork the engine, jump to the knot, step it to the end, and run each
      line through the content processor
    → paragraphs get the "special-page" class; a marker-only first line is
      dropped
    → offer a single "← Return to Story" choice

  return_to_story()
    → reload the saved engine state (fallback: the session's save point)
    → replay the saved display history (fallback: one paragraph built from
      the engine's current text)
    → drop the PageSession

The main engine is never stepped while a page is evaluated. Any failure during
evaluation yields an empty page with just the return choice.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from storyframe.choices import ChoiceGenerator
from storyframe.content import ContentProcessor
from storyframe.display import DisplayManager
from storyframe.engine import Engine
from storyframe.models import PageInfo, PageSession, Paragraph
from storyframe.tags import has_special_page_marker, parse_tag
from storyframe.text import humanize_name

logger = logging.getLogger(__name__)

SPECIAL_PAGE_CLASS = "special-page"


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------

def special_page_info(engine: Engine, knot: str) -> PageInfo | None:
    """PageInfo for knot if its first line is marked as a special page."""
    try:
        probe = engine.fork()
        probe.choose_path(knot)
        if not probe.can_continue:
            return None
        probe.continue_()
        tags = probe.current_tags
    except Exception:
        logger.debug("Knot %r cannot be probed for a special page marker", knot)
        return None

    for raw in tags:
        parsed = parse_tag(raw)
        if parsed.tag_def is not None and parsed.tag_def.key == "SPECIAL_PAGE":
            name = (parsed.value or "").strip() or humanize_name(knot)
            return PageInfo(page_id=knot, display_name=name)
    return None


def discover_pages(engine: Engine) -> dict[str, PageInfo]:
    pages: dict[str, PageInfo] = {}
    for knot in engine.knot_names:
        info = special_page_info(engine, knot)
        if info is not None:
            pages[knot] = info
    logger.debug("Discovered %d special page(s)", len(pages))
    return pages


def parse_page_menu(value: str, pages: dict[str, PageInfo]) -> list[dict[str, Any]] | None:
    """Menu order from PAGE_MENU. ",," separates sections, "," separates pages.

    "stats, inventory,, credits" →
        [{"page_id": "stats", "section": 0}, {"page_id": "inventory", "section": 0},
         {"page_id": "credits", "section": 1}]
    """
    order = []
    for section_index, section in enumerate(value.split(",,")):
        for name in (p.strip() for p in section.split(",")):
            if not name:
                continue
            if name in pages:
                order.append({"page_id": name, "section": section_index})
            else:
                logger.warning("Page %r in PAGE_MENU not found in special pages", name)
    return order or None


# ---------------------------------------------------------------------------
# Sandbox
# ---------------------------------------------------------------------------

class PageSandbox:
    """Shows special pages without touching the main story.

    Args:
        get_engine:     Returns the main engine. Only forked and, on return,
                        reloaded.
        display:        Display manager of the session.
        content:        Content processor used for page lines.
        choices:        Builds the return choice.
        get_save_point: Last known good engine state, used when the saved
                        state cannot be restored.
    """

    def __init__(
        self,
        get_engine: Callable[[], Engine],
        display: DisplayManager,
        content: ContentProcessor,
        choices: ChoiceGenerator,
        get_save_point: Callable[[], str | None] | None = None,
    ) -> None:
        self._get_engine = get_engine
        self.display = display
        self.content = content
        self.choices = choices
        self._get_save_point = get_save_point
        self.pages: dict[str, PageInfo] = {}
        self.session: PageSession | None = None
        self.current_page: str | None = None

    def is_special_page(self, page_id: Any) -> bool:
        return isinstance(page_id, str) and page_id in self.pages

    def is_viewing(self) -> bool:
        return self.current_page is not None

    def show(self, page_id: Any) -> bool:
        if not page_id or not isinstance(page_id, str):
            logger.warning("Invalid page id passed to show: %r", page_id)
            return False
        if not self.is_special_page(page_id):
            logger.warning('Page "%s" is not marked as a special page', page_id)
            return False

        if self.session is None:
            self.session = self._snapshot()

        self.current_page = page_id
        self.display.clear()
        items = self.generate_page_content(page_id)
        if items:
            self.display.render(items)
        self.display.render_choices([self.choices.return_choice().model_dump()])
        self.display.scroll_to_top()
        return True

    def _snapshot(self) -> PageSession:
        engine = self._get_engine()
        saved_state = None
        if self._get_save_point is not None:
            saved_state = self._get_save_point()
        return PageSession(
            saved_state=saved_state or engine.serialize_state(),
            saved_display=self.display.get_state(),
        )

    def generate_page_content(self, page_id: str) -> list:
        try:
            fork = self._get_engine().fork()
            fork.choose_path(page_id)
            items = []
            first = True
            while fork.can_continue:
                text = fork.continue_()
                tags = fork.current_tags
                produced = self.process_page_line(text, tags, first)
                first = False
                items.extend(produced)
            return items
        except Exception:
            logger.exception("Failed to generate page content for %r", page_id)
            return []

    def process_page_line(self, text: str, tags: list[str], is_first_line: bool) -> list:
        if is_first_line and _only_marker(text, tags):
            return []
        has_tags = any(isinstance(t, str) and t.strip() for t in tags)
        if not (text or "").strip() and not has_tags:
            return []

        processed = self.content.process(text, tags)
        items = processed if isinstance(processed, list) else [processed]
        for item in items:
            if isinstance(item, Paragraph):
                item.classes = [SPECIAL_PAGE_CLASS, *item.classes]
        return items

    def return_to_story(self) -> bool:
        if self.current_page is None:
            return False

        session = self.session
        self.current_page = None
        self.session = None
        self.display.clear()

        engine = self._get_engine()
        if session is not None:
            try:
                engine.load_state(session.saved_state)
            except Exception:
                logger.exception("Failed to restore story state, falling back to save point")
                save_point = self._get_save_point() if self._get_save_point else None
                if save_point:
                    engine.load_state(save_point)

        if session is not None and session.saved_display is not None:
            self.display.restore_state(session.saved_display)
        else:
            self.regenerate_from_engine()

        self.display.show_header()
        return True

    def regenerate_from_engine(self) -> None:
        text = self._get_engine().current_text
        if text and text.strip():
            self.display.render([Paragraph(text=text)])

    # -- lookups ------------------------------------------------------------

    def display_name(self, page_id: str) -> str:
        info = self.pages.get(page_id)
        if info is not None and info.display_name:
            return info.display_name
        return humanize_name(page_id)

    def available_pages(self) -> list[PageInfo]:
        return list(self.pages.values())

    def evaluate_text(self, page_id: str) -> str:
        """Plain text of a page, evaluated on a fork."""
        if not self.is_special_page(page_id):
            return ""
        try:
            fork = self._get_engine().fork()
            fork.choose_path(page_id)
            parts = []
            first = True
            while fork.can_continue:
                text = fork.continue_()
                if first and _only_marker(text, fork.current_tags):
                    first = False
                    continue
                first = False
                parts.append(text)
            return "\n".join(parts).strip()
        except Exception:
            logger.exception("Failed to evaluate page content for %r", page_id)
            return ""

    def page_info(self, page_id: str) -> dict[str, Any] | None:
        info = self.pages.get(page_id)
        if info is None:
            return None
        return {
            "page_id": page_id,
            "display_name": self.display_name(page_id),
            "content": self.evaluate_text(page_id),
        }

    def reset(self) -> None:
        self.session = None
        self.current_page = None


def _only_marker(text: str, tags: list[str]) -> bool:
    if text and text.strip():
        return False
    return has_special_page_marker(tags)
