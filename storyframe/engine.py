"""Narrative engine boundary.

The story graph itself is evaluated by an external engine. This layer only
needs the surface described by the Engine protocol:

    can_continue / continue_() / current_tags / current_choices
    choose_choice_index(i) / choose_path(knot) / reset_state()
    serialize_state() / load_state(blob) / fork(blob=None)
    get_variable(name) / set_variable(name, value)
    current_text / current_path / turn_index / global_tags / knot_names

fork() builds a fresh instance from the same story, loaded with a serialized
state. Special pages and save imports evaluate against forks so the main
engine is never touched.

ScriptedEngine is a small reference engine driven by a JSON story document.
It backs the demo server and the tests; production embeds a real engine
adapter matching the same protocol.

Story document:

    {
      "global_tags": ["TITLE: The Lighthouse"],
      "variables": {"health": 50, "name": ""},
      "start": "start",
      "knots": {
        "start": [
          {"text": "Hello {name}.", "tags": ["CLASS: intro"]},
          {"set": {"health": 60}},
          {"text": "Only when lit.", "if": "lamp_lit"},
          {"choices": [{"text": "Climb", "divert": "top", "tags": ["tense"]}]}
        ]
      }
    }

Steps are text lines, variable assignments, diverts ("END" ends the story)
and choice points. `if` names a variable that must be truthy (`!name` for
falsy). `{name}` in text is replaced with the variable's current value.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

END = "END"
_PLACEHOLDER = re.compile(r"\{(\w+)\}")


class EngineError(RuntimeError):
    """Raised when the engine cannot load a story or state, or a move is invalid."""


class EngineChoice(BaseModel):
    index: int
    text: str
    tags: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Protocol: every engine adapter must match this surface
# ---------------------------------------------------------------------------

class Engine(Protocol):
    @property
    def can_continue(self) -> bool: ...
    @property
    def current_tags(self) -> list[str]: ...
    @property
    def current_choices(self) -> list[EngineChoice]: ...
    @property
    def current_text(self) -> str: ...
    @property
    def current_path(self) -> str | None: ...
    @property
    def turn_index(self) -> int: ...
    @property
    def global_tags(self) -> list[str]: ...
    @property
    def knot_names(self) -> list[str]: ...

    def continue_(self) -> str: ...
    def choose_choice_index(self, index: int) -> None: ...
    def choose_path(self, path: str) -> None: ...
    def reset_state(self) -> None: ...
    def serialize_state(self) -> str: ...
    def load_state(self, blob: str) -> None: ...
    def fork(self, blob: str | None = None) -> "Engine": ...
    def get_variable(self, name: str) -> Any: ...
    def set_variable(self, name: str, value: Any) -> None: ...


# ---------------------------------------------------------------------------
# Story document
# ---------------------------------------------------------------------------

class ChoiceSpec(BaseModel):
    text: str
    divert: str = END
    tags: list[str] = Field(default_factory=list)
    set: dict[str, Any] = Field(default_factory=dict)
    if_: str | None = Field(default=None, alias="if")


class Step(BaseModel):
    text: str | None = None
    tags: list[str] = Field(default_factory=list)
    set: dict[str, Any] = Field(default_factory=dict)
    divert: str | None = None
    choices: list[ChoiceSpec] | None = None
    if_: str | None = Field(default=None, alias="if")


class StoryDocument(BaseModel):
    global_tags: list[str] = Field(default_factory=list)
    variables: dict[str, Any] = Field(default_factory=dict)
    start: str = "start"
    knots: dict[str, list[Step]]


class EngineState(BaseModel):
    knot: str | None
    position: int = 0
    variables: dict[str, Any] = Field(default_factory=dict)
    choices: list[int] = Field(default_factory=list)  # offered choice specs, by index
    choice_step: int | None = None
    current_text: str = ""
    current_tags: list[str] = Field(default_factory=list)
    turn_index: int = 0


# ---------------------------------------------------------------------------
# ScriptedEngine
# ---------------------------------------------------------------------------

class ScriptedEngine:
    def __init__(self, story: StoryDocument | dict[str, Any]) -> None:
        try:
            self._story = story if isinstance(story, StoryDocument) else StoryDocument.model_validate(story)
        except ValidationError as e:
            raise EngineError(f"Invalid story document: {e}") from e
        if self._story.start not in self._story.knots:
            raise EngineError(f"Start knot {self._story.start!r} not found")
        self._state = self._initial_state()
        self._settle()

    @classmethod
    def from_file(cls, path: Path) -> "ScriptedEngine":
        try:
            data = json.loads(Path(path).read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise EngineError(f"Cannot read story file {path}: {e}") from e
        return cls(data)

    def _initial_state(self) -> EngineState:
        return EngineState(knot=self._story.start, variables=dict(self._story.variables))

    # -- read-only surface --------------------------------------------------

    @property
    def can_continue(self) -> bool:
        step = self._step_at(self._state.knot, self._state.position)
        return step is not None and step.text is not None

    @property
    def current_tags(self) -> list[str]:
        return list(self._state.current_tags)

    @property
    def current_choices(self) -> list[EngineChoice]:
        if self._state.choice_step is None:
            return []
        step = self._step_at(self._state.knot, self._state.choice_step)
        specs = (step.choices or []) if step else []
        return [
            EngineChoice(index=i, text=self._interpolate(specs[spec_index].text), tags=list(specs[spec_index].tags))
            for i, spec_index in enumerate(self._state.choices)
        ]

    @property
    def current_text(self) -> str:
        return self._state.current_text

    @property
    def current_path(self) -> str | None:
        return self._state.knot

    @property
    def turn_index(self) -> int:
        return self._state.turn_index

    @property
    def global_tags(self) -> list[str]:
        return list(self._story.global_tags)

    @property
    def knot_names(self) -> list[str]:
        return list(self._story.knots)

    # -- stepping -------------------------------------------------------------

    def continue_(self) -> str:
        if not self.can_continue:
            raise EngineError("Cannot continue: no more content")
        step = self._story.knots[self._state.knot][self._state.position]
        self._state.position += 1
        self._state.current_text = self._interpolate(step.text or "")
        self._state.current_tags = list(step.tags)
        self._settle()
        return self._state.current_text

    def choose_choice_index(self, index: int) -> None:
        offered = self._state.choices
        if not 0 <= index < len(offered):
            raise EngineError(f"Invalid choice index: {index}")
        step = self._story.knots[self._state.knot][self._state.choice_step]
        spec = step.choices[offered[index]]
        self._state.variables.update(spec.set)
        self._state.turn_index += 1
        self._jump(spec.divert)
        self._settle()

    def choose_path(self, path: str) -> None:
        knot = path.split(".")[0]
        if knot not in self._story.knots:
            raise EngineError(f"Unknown path: {path!r}")
        self._jump(knot)
        self._settle()

    def reset_state(self) -> None:
        self._state = self._initial_state()
        self._settle()

    def _jump(self, knot: str) -> None:
        self._state.choices = []
        self._state.choice_step = None
        if knot == END:
            self._state.knot = None
            self._state.position = 0
            return
        if knot not in self._story.knots:
            raise EngineError(f"Divert to unknown knot {knot!r}")
        self._state.knot = knot
        self._state.position = 0

    def _settle(self) -> None:
        """Run non-text steps until a text line, a choice point or the end."""
        guard = 0
        while True:
            guard += 1
            if guard > 10_000:
                raise EngineError("Story loops without producing content")
            step = self._step_at(self._state.knot, self._state.position)
            if step is None:
                return
            if not self._condition_holds(step.if_):
                self._state.position += 1
                continue
            if step.text is not None:
                return
            self._state.variables.update(step.set)
            if step.choices is not None:
                self._state.choice_step = self._state.position
                self._state.choices = [
                    i for i, spec in enumerate(step.choices) if self._condition_holds(spec.if_)
                ]
                self._state.position = len(self._story.knots[self._state.knot])
                return
            if step.divert is not None:
                self._jump(step.divert)
                continue
            self._state.position += 1

    def _step_at(self, knot: str | None, position: int) -> Step | None:
        if knot is None:
            return None
        steps = self._story.knots.get(knot, [])
        return steps[position] if position < len(steps) else None

    def _condition_holds(self, condition: str | None) -> bool:
        if not condition:
            return True
        if condition.startswith("!"):
            return not self._state.variables.get(condition[1:])
        return bool(self._state.variables.get(condition))

    def _interpolate(self, text: str) -> str:
        def replace(match: re.Match) -> str:
            name = match.group(1)
            if name not in self._state.variables:
                return match.group(0)
            return str(self._state.variables[name])

        return _PLACEHOLDER.sub(replace, text)

    # -- state ------------------------------------------------------------------

    def serialize_state(self) -> str:
        return self._state.model_dump_json()

    def load_state(self, blob: str) -> None:
        try:
            state = EngineState.model_validate_json(blob)
        except (ValidationError, ValueError, TypeError) as e:
            raise EngineError(f"Cannot load engine state: {e}") from e
        if state.knot is not None and state.knot not in self._story.knots:
            raise EngineError(f"State refers to unknown knot {state.knot!r}")
        self._state = state

    def fork(self, blob: str | None = None) -> "ScriptedEngine":
        forked = ScriptedEngine(self._story)
        forked.load_state(blob if blob is not None else self.serialize_state())
        return forked

    def get_variable(self, name: str) -> Any:
        return self._state.variables.get(name)

    def set_variable(self, name: str, value: Any) -> None:
        self._state.variables[name] = value
