"""Tests for ScriptedEngine, the reference engine behind the demo and tests."""

import json

import pytest

from storyframe.engine import EngineError, ScriptedEngine

STORY = {
    "global_tags": ["TITLE: Test"],
    "variables": {"name": "Ann", "lit": False, "gold": 0},
    "knots": {
        "start": [
            {"text": "Hello {name}.", "tags": ["CLASS: intro"]},
            {"text": "Missing {nobody} stays."},
            {"set": {"gold": 5}},
            {"text": "Dark.", "if": "!lit"},
            {"text": "Light.", "if": "lit"},
            {"choices": [
                {"text": "Light the lamp", "divert": "lamp", "set": {"lit": True}, "tags": ["brave"]},
                {"text": "Rich option", "divert": "lamp", "if": "rich"},
                {"text": "Leave", "divert": "END"},
            ]},
        ],
        "lamp": [
            {"text": "The lamp burns.", "if": "lit"},
            {"divert": "END"},
        ],
        "credits": [
            {"text": "", "tags": ["SPECIAL_PAGE"]},
            {"text": "By someone."},
        ],
    },
}


@pytest.fixture
def engine() -> ScriptedEngine:
    return ScriptedEngine(STORY)


def _read_all(engine: ScriptedEngine) -> list[str]:
    lines = []
    while engine.can_continue:
        lines.append(engine.continue_())
    return lines


class TestStepping:
    def test_walk_through(self, engine) -> None:
        assert _read_all(engine) == ["Hello Ann.", "Missing {nobody} stays.", "Dark."]
        assert engine.get_variable("gold") == 5
        assert [c.text for c in engine.current_choices] == ["Light the lamp", "Leave"]

    def test_tags_follow_the_line(self, engine) -> None:
        engine.continue_()
        assert engine.current_tags == ["CLASS: intro"]
        engine.continue_()
        assert engine.current_tags == []

    def test_current_text(self, engine) -> None:
        engine.continue_()
        assert engine.current_text == "Hello Ann."

    def test_choice_sets_variables_and_diverts(self, engine) -> None:
        _read_all(engine)
        engine.choose_choice_index(0)
        assert engine.get_variable("lit") is True
        assert engine.current_path == "lamp"
        assert engine.turn_index == 1
        assert _read_all(engine) == ["The lamp burns."]
        assert engine.current_choices == []
        assert not engine.can_continue

    def test_choice_indices_follow_filtered_list(self, engine) -> None:
        _read_all(engine)
        engine.choose_choice_index(1)
        assert engine.current_path is None
        assert not engine.can_continue

    def test_continue_at_end_raises(self, engine) -> None:
        _read_all(engine)
        with pytest.raises(EngineError):
            engine.continue_()

    def test_invalid_choice_raises(self, engine) -> None:
        _read_all(engine)
        with pytest.raises(EngineError):
            engine.choose_choice_index(5)

    def test_choose_path(self, engine) -> None:
        engine.choose_path("credits")
        assert _read_all(engine) == ["", "By someone."]

    def test_choose_unknown_path_raises(self, engine) -> None:
        with pytest.raises(EngineError):
            engine.choose_path("nowhere")

    def test_reset_state(self, engine) -> None:
        _read_all(engine)
        engine.choose_choice_index(0)
        engine.reset_state()
        assert engine.get_variable("lit") is False
        assert engine.current_path == "start"
        assert engine.can_continue

    def test_set_variable_affects_later_text(self, engine) -> None:
        engine.set_variable("name", "Bo")
        assert engine.continue_() == "Hello Bo."


class TestState:
    def test_serialize_and_load(self, engine) -> None:
        engine.continue_()
        blob = engine.serialize_state()
        rest = _read_all(engine)

        engine.load_state(blob)
        assert _read_all(engine) == rest

    def test_load_garbage_raises(self, engine) -> None:
        with pytest.raises(EngineError):
            engine.load_state("not json")

    def test_load_unknown_knot_raises(self, engine) -> None:
        state = json.loads(engine.serialize_state())
        state["knot"] = "gone"
        with pytest.raises(EngineError):
            engine.load_state(json.dumps(state))

    def test_fork_is_independent(self, engine) -> None:
        engine.continue_()
        fork = engine.fork()
        _read_all(fork)
        fork.set_variable("name", "Zed")
        assert engine.can_continue
        assert engine.get_variable("name") == "Ann"
        assert engine.current_text == "Hello Ann."

    def test_fork_from_blob(self, engine) -> None:
        blob = engine.serialize_state()
        engine.continue_()
        fork = engine.fork(blob)
        assert fork.continue_() == "Hello Ann."

    def test_fork_rejects_bad_blob(self, engine) -> None:
        with pytest.raises(EngineError):
            engine.fork("{}")


class TestStoryDocument:
    def test_metadata(self, engine) -> None:
        assert engine.global_tags == ["TITLE: Test"]
        assert engine.knot_names == ["start", "lamp", "credits"]

    def test_invalid_document(self) -> None:
        with pytest.raises(EngineError):
            ScriptedEngine({"knots": "nope"})

    def test_missing_start_knot(self) -> None:
        with pytest.raises(EngineError):
            ScriptedEngine({"start": "intro", "knots": {"other": []}})

    def test_divert_loop_is_caught(self) -> None:
        with pytest.raises(EngineError):
            ScriptedEngine({"knots": {"start": [{"divert": "start"}]}})

    def test_from_file(self, demo_story_path) -> None:
        engine = ScriptedEngine.from_file(demo_story_path)
        assert "stats" in engine.knot_names

    def test_from_missing_file(self, tmp_path) -> None:
        with pytest.raises(EngineError):
            ScriptedEngine.from_file(tmp_path / "missing.json")
