"""Story session: one reader's run through a story.

Owns the engine and every component around it, and drives the turn loop:

  start()
    → discover special pages, read global tags, set the first save point
    → continue_story(first_time=True)

  continue_story()
    → clear the screen (except the first time)
    → generate_content(): step the engine until it stops, resolving each
      line through the content processor; stop early at a user-input prompt
      (remembering the state the batch started from) or a RESTART action
    → render items, then choices unless we stopped for input
    → update the save point

  select_choice(i)
    → choose, update the save point, continue_story(), autosave

  submit_input(variable, value)
    → rewind to the state the prompt's batch started from, set the variable
    → continue_story() with reprocessing_after_user_input set, so the
      already-answered prompt renders as a plain paragraph

Nothing in a turn is interleaved: all lines of a batch are resolved before
anything is rendered.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from storyframe.choices import ChoiceGenerator
from storyframe.content import ContentProcessor
from storyframe.display import DisplayManager
from storyframe.effects import EffectExecutor
from storyframe.engine import Engine, ScriptedEngine
from storyframe.models import Paragraph, SaveRecord, UserInputPrompt
from storyframe.pages import PageSandbox, discover_pages, parse_page_menu
from storyframe.saves import SaveManager, SlotStorage
from storyframe.settings import Settings, StoryMetadata
from storyframe.surface import BufferSurface, Surface
from storyframe.tag_processor import TagProcessor
from storyframe.tags import ToneRegistry

logger = logging.getLogger(__name__)


class Batch(BaseModel):
    """Result of one generate_content() run."""

    items: list[Any] = Field(default_factory=list)
    stopped_for_input: bool = False
    state_before_input: str | None = None


class StorySession:
    def __init__(
        self,
        engine: Engine,
        data_dir: Path,
        surface: Surface | None = None,
        quota_bytes: int | None = None,
    ) -> None:
        self.engine = engine
        self.data_dir = Path(data_dir)
        self.surface = surface if surface is not None else BufferSurface()

        self.settings = Settings(self.data_dir)
        self.tones = ToneRegistry()
        self.metadata = StoryMetadata.from_global_tags(engine.global_tags, self.tones)
        self.settings.apply_story_defaults(self.metadata.setting_defaults())

        self.tag_processor = TagProcessor(self.tones)
        self.executor = EffectExecutor(self.surface, self.settings.get_setting)
        self.content = ContentProcessor(
            self.tag_processor,
            self.executor,
            get_variable=self.get_variable,
            is_reprocessing=lambda: self.reprocessing_after_user_input,
        )
        self.display = DisplayManager(self.surface, self.get_variable, max_history=self.metadata.max_history)
        self.choices = ChoiceGenerator(
            self.tag_processor,
            self.tones,
            show_tones=lambda: bool(self.settings.get_setting("toneIndicators")),
        )
        self.pages = PageSandbox(
            lambda: self.engine,
            self.display,
            self.content,
            self.choices,
            get_save_point=lambda: self.save_point,
        )
        self.saves = SaveManager(SlotStorage(self.data_dir / "saves", quota_bytes), self)

        self.save_point: str = ""
        self.state_before_user_input: str | None = None
        self.reprocessing_after_user_input = False
        self.restart_pending = False
        self.page_menu: list[dict[str, Any]] | None = None

    @classmethod
    def from_file(cls, story_path: Path, data_dir: Path, **kwargs: Any) -> "StorySession":
        return cls(ScriptedEngine.from_file(story_path), data_dir, **kwargs)

    def get_variable(self, name: str) -> Any:
        return self.engine.get_variable(name)

    def notify(self, message: str, level: str = "info", duration_ms: int = 4000) -> None:
        self.surface.notify(message, level, duration_ms)

    # ------------------------------------------------------------------
    # Turn loop
    # ------------------------------------------------------------------

    def start(self) -> None:
        self.detect_special_pages()
        if self.metadata.page_menu:
            self.page_menu = parse_page_menu(self.metadata.page_menu, self.pages.pages)
        self.save_point = self.engine.serialize_state()
        self.continue_story(first_time=True)
        logger.info("Started story %r", self.metadata.title)

    def detect_special_pages(self) -> None:
        try:
            self.pages.pages = discover_pages(self.engine)
        except Exception:
            logger.exception("Failed to detect special pages")
            self.pages.pages = {}

    def continue_story(self, first_time: bool = False) -> None:
        if self.pages.is_viewing():
            return
        if not first_time:
            self.display.clear()
            self.display.scroll_to_top()

        batch = self.generate_content()
        if batch.items:
            self.display.render(batch.items)
        if batch.stopped_for_input and batch.state_before_input:
            self.state_before_user_input = batch.state_before_input
        if not batch.stopped_for_input:
            self.create_choices()
        self.save_point = self.engine.serialize_state()

    def generate_content(self) -> Batch:
        batch = Batch()
        state_at_start = self.engine.serialize_state()
        try:
            while self.engine.can_continue:
                text = self.engine.continue_()
                tags = self.engine.current_tags
                if not text.strip() and not tags:
                    continue

                processed = self.content.process(text, tags)
                produced = processed if isinstance(processed, list) else [processed]
                batch.items.extend(produced)
                if any(isinstance(item, UserInputPrompt) for item in produced):
                    batch.stopped_for_input = True
                    break

                if isinstance(processed, Paragraph) and processed.has_special_action:
                    if processed.action == "CLEAR":
                        # drop what came before the clearing line
                        batch.items = list(produced)
                    if not self.handle_special_action(processed.action):
                        break
        except Exception:
            logger.exception("Error generating story content")

        if batch.stopped_for_input:
            batch.state_before_input = state_at_start
        return batch

    def handle_special_action(self, action: Any) -> bool:
        """Apply a line's action. Returns False when generation should stop."""
        if action == "CLEAR":
            self.display.clear()
            self.display.hide_header()
            return True
        if action == "RESTART":
            # the reader confirms through restart()
            self.restart_pending = True
            return False
        return True

    def create_choices(self) -> None:
        try:
            engine_choices = self.engine.current_choices
            if engine_choices:
                views = self.choices.generate(list(engine_choices))
                self.display.render_choices([view.model_dump() for view in views])
        except Exception:
            logger.exception("Failed to create choices")

    def select_choice(self, index: Any) -> bool:
        if self.pages.is_viewing():
            logger.warning("Cannot select a story choice while on a special page")
            return False
        engine_choices = self.engine.current_choices
        if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < len(engine_choices):
            logger.error("Invalid choice index: %r", index)
            return False
        if not self.tag_processor.process_choice_tags(engine_choices[index].tags).is_clickable:
            logger.warning("Choice %d is not clickable", index)
            return False

        self.engine.choose_choice_index(index)
        self.save_point = self.engine.serialize_state()
        self.continue_story()
        self.saves.autosave()
        return True

    def submit_input(self, variable: str, value: Any) -> bool:
        """Answer the pending user-input prompt and replay the batch."""
        text = value.strip() if isinstance(value, str) else ""
        if not text:
            logger.warning("Empty input submitted for %r", variable)
            return False
        prompt = self.pending_input()
        if prompt is None or prompt.variable_name != variable:
            logger.warning("Input for %r does not answer the pending prompt", variable)
            return False

        if self.state_before_user_input:
            self.engine.load_state(self.state_before_user_input)
            self.state_before_user_input = None
        self.engine.set_variable(variable, text)

        self.reprocessing_after_user_input = True
        try:
            self.continue_story()
        finally:
            self.reprocessing_after_user_input = False
        return True

    def restart(self) -> None:
        self.engine.reset_state()
        self.pages.reset()
        self.display.reset()
        self.state_before_user_input = None
        self.restart_pending = False
        self.save_point = self.engine.serialize_state()
        self.continue_story(first_time=True)
        self.display.scroll_to_top()
        self.notify("Story restarted from the beginning", "success")

    # ------------------------------------------------------------------
    # Special pages
    # ------------------------------------------------------------------

    def show_page(self, page_id: str) -> bool:
        return self.pages.show(page_id)

    def return_to_story(self) -> bool:
        if not self.pages.return_to_story():
            return False
        self.create_choices()
        self.display.scroll_to_top()
        return True

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def current_state(self) -> dict[str, Any]:
        return {
            "gameState": self.engine.serialize_state(),
            "displayState": self.display.get_state().model_dump(),
            "currentPage": self.pages.current_page,
            "savePoint": self.save_point,
        }

    def load_state(self, record: SaveRecord) -> bool:
        """Replace the session with a saved record. The engine is untouched on failure."""
        try:
            self.engine.fork(record.game_state)
        except Exception:
            logger.exception("Failed to load state: engine rejected the saved state")
            return False

        self.engine.load_state(record.game_state)
        self.pages.reset()
        self.save_point = self.engine.serialize_state()
        self.state_before_user_input = record.state_before_user_input
        self.restart_pending = False

        pending_input = False
        if record.display_state is not None:
            self.display.restore_state(record.display_state)
            pending_input = any(isinstance(item, UserInputPrompt) for item in record.display_state.items())
        else:
            self.display.clear()
            self.regenerate_current_display()

        if not pending_input:
            self.create_choices()
        self.display.scroll_to_top()

        if record.current_page and self.pages.is_special_page(record.current_page):
            self.pages.show(record.current_page)
        return True

    def regenerate_current_display(self) -> None:
        text = self.engine.current_text
        if text and text.strip():
            self.display.render([Paragraph(text=text)])

    def update_settings(self, fields: dict[str, Any]) -> dict[str, Any]:
        was_enabled = bool(self.settings.get_setting("audioEnabled"))
        updated = self.settings.update(fields)
        is_enabled = bool(updated.get("audioEnabled"))
        if was_enabled and not is_enabled:
            self.surface.stop_audio_loop()
        elif is_enabled and not was_enabled:
            self.executor.resume_audio_loop()
        return updated

    def pending_input(self) -> UserInputPrompt | None:
        """The prompt the reader still has to answer, if the screen ends with one."""
        if self.pages.is_viewing() or not self.display.history:
            return None
        last = self.display.history[-1].item
        return last if isinstance(last, UserInputPrompt) else None

    def view(self) -> dict[str, Any]:
        """Everything a client needs to draw the current screen."""
        screen = self.surface.snapshot() if isinstance(self.surface, BufferSurface) else {}
        prompt = self.pending_input()
        return {
            "title": self.metadata.title,
            "full_title": self.metadata.full_title,
            "author": self.metadata.author,
            "screen": screen,
            "current_page": self.pages.current_page,
            "pending_input": prompt.variable_name if prompt else None,
            "restart_pending": self.restart_pending,
            "has_ended": self.has_ended(),
        }

    def has_ended(self) -> bool:
        return not self.engine.can_continue and not self.engine.current_choices

    def get_stats(self) -> dict[str, Any]:
        return {
            "turn_index": self.engine.turn_index,
            "has_ended": self.has_ended(),
            "can_continue": self.engine.can_continue,
            "has_choices": bool(self.engine.current_choices),
            "current_page": self.pages.current_page,
            "display_length": len(self.display.history),
            "special_pages_found": len(self.pages.pages),
        }
