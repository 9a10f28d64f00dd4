"""Presentation layer between a narrative engine and a reader's screen.

One turn, end to end:
  1. The engine steps out lines of text, each with free-form tags.
  2. Tags resolve into content items (paragraph, image, stat bar, input prompt)
     and effects (audio, background, notifications, clear, restart).
  3. Items are rendered onto a Surface and appended to the display history.
  4. Choices are offered. Picking one advances the engine and autosaves.

Side trips to special pages run against a forked engine. Save slots persist
the engine state together with the display history, which is replayed on load.

Modules:
  tags / tag_processor / content   tag table, tag → classes/effects, line → items
  effects / surface / display      effect executor, output surface, history
  choices / pages / saves          choice views, special pages, save slots
  settings / session               reader settings + story metadata, turn loop
  engine                           engine protocol + JSON-driven ScriptedEngine
  api                              FastAPI routes
"""

from storyframe.engine import Engine, EngineError, ScriptedEngine
from storyframe.session import StorySession
from storyframe.surface import BufferSurface, Surface

__all__ = ["BufferSurface", "Engine", "EngineError", "ScriptedEngine", "StorySession", "Surface"]
