"""Tests for ContentProcessor and the content tag parsers."""

import logging
from unittest.mock import MagicMock

import pytest

from storyframe.content import (
    ContentProcessor,
    parse_image_tag,
    parse_stat_bar_tag,
    parse_user_input_tag,
)
from storyframe.effects import EffectExecutor
from storyframe.models import Image, Paragraph, StatBar, UserInputPrompt
from storyframe.surface import BufferSurface
from storyframe.tag_processor import TagProcessor


@pytest.fixture
def surface() -> BufferSurface:
    return BufferSurface()


@pytest.fixture
def variables() -> dict:
    return {}


@pytest.fixture
def reprocessing() -> dict:
    return {"on": False}


@pytest.fixture
def processor(surface, variables, reprocessing) -> ContentProcessor:
    return ContentProcessor(
        TagProcessor(),
        EffectExecutor(surface),
        get_variable=variables.get,
        is_reprocessing=lambda: reprocessing["on"],
    )


# ---------------------------------------------------------------------------
# Tag value parsers
# ---------------------------------------------------------------------------

class TestParseStatBar:
    def test_range_and_single_label(self) -> None:
        parsed = parse_stat_bar_tag('health 0 100 "HP"')
        assert parsed["variable_name"] == "health"
        assert parsed["min"] == 0
        assert parsed["max"] == 100
        assert parsed["left_label"] == "HP"
        assert parsed["right_label"] is None
        assert parsed["is_opposed"] is False

    def test_opposed_labels_default_range(self) -> None:
        parsed = parse_stat_bar_tag('mood "Calm" "Angry"')
        assert parsed["variable_name"] == "mood"
        assert parsed["left_label"] == "Calm"
        assert parsed["right_label"] == "Angry"
        assert parsed["is_opposed"] is True
        assert parsed["min"] == 0
        assert parsed["max"] == 100

    def test_clamp_and_custom_range(self) -> None:
        parsed = parse_stat_bar_tag("gold -50 50 clamp")
        assert parsed["min"] == -50
        assert parsed["max"] == 50
        assert parsed["clamp"] is True

    def test_non_numeric_range_falls_back(self) -> None:
        parsed = parse_stat_bar_tag("hp low high")
        assert (parsed["min"], parsed["max"]) == (0, 100)


class TestParseImage:
    def test_full_form(self) -> None:
        parsed = parse_image_tag('hero.png left 40% caption "A hero"')
        assert parsed == {
            "src": "hero.png",
            "alignment": "left",
            "width": "40%",
            "alt_text": "A hero",
            "show_caption": True,
        }

    def test_src_only(self) -> None:
        parsed = parse_image_tag("map.jpg")
        assert parsed["src"] == "map.jpg"
        assert parsed["alignment"] is None
        assert parsed["width"] is None
        assert parsed["show_caption"] is False

    def test_pixel_width(self) -> None:
        assert parse_image_tag("a.png 300px")["width"] == "300px"


def test_parse_user_input() -> None:
    assert parse_user_input_tag('name "Your name"') == {"variable_name": "name", "placeholder": "Your name"}
    assert parse_user_input_tag("name") == {"variable_name": "name", "placeholder": ""}


# ---------------------------------------------------------------------------
# Precedence
# ---------------------------------------------------------------------------

class TestPrecedence:
    def test_image_alone(self, processor: ContentProcessor) -> None:
        result = processor.process("", ['IMAGE: hero.png left 40% caption "A hero"'])
        assert isinstance(result, Image)
        assert result.src == "hero.png"
        assert result.alt_text == "A hero"

    def test_image_with_text(self, processor: ContentProcessor) -> None:
        result = processor.process("The hero arrives.", ["IMAGE: hero.png", "CLASS: intro"])
        assert isinstance(result, list)
        image, paragraph = result
        assert isinstance(image, Image)
        assert isinstance(paragraph, Paragraph)
        assert paragraph.text == "The hero arrives."
        assert paragraph.classes == ["intro"]

    @pytest.mark.parametrize("tags", [
        ["IMAGE: a.png", "STATBAR: health"],
        ["STATBAR: health", "IMAGE: a.png"],
        ["USER_INPUT: name", "STATBAR: health", "IMAGE: a.png"],
    ])
    def test_image_beats_stat_bar_and_input(self, processor: ContentProcessor, tags) -> None:
        assert isinstance(processor.process("", tags), Image)

    def test_stat_bar_beats_input(self, processor: ContentProcessor) -> None:
        result = processor.process("", ["USER_INPUT: name", "STATBAR: health"])
        assert isinstance(result, StatBar)

    def test_plain_paragraph(self, processor: ContentProcessor) -> None:
        result = processor.process("Just words.", ["CLASS: quiet"])
        assert result == Paragraph(text="Just words.", classes=["quiet"], tags=["CLASS: quiet"])

    def test_malformed_content_tag_is_ignored(self, processor: ContentProcessor) -> None:
        result = processor.process("Words.", ["IMAGE"])
        assert isinstance(result, Paragraph)


class TestStatBars:
    def test_single_bar_unwrapped(self, processor: ContentProcessor) -> None:
        result = processor.process("", ['STATBAR: health 0 100 "HP"'])
        assert isinstance(result, StatBar)
        assert result.left_label == "HP"

    def test_one_bar_per_tag(self, processor: ContentProcessor) -> None:
        result = processor.process("", ["STATBAR: health", 'STATBAR: mood "Calm" "Angry"'])
        assert [bar.variable_name for bar in result] == ["health", "mood"]
        assert result[1].is_opposed

    def test_trailing_paragraph(self, processor: ContentProcessor) -> None:
        result = processor.process("You feel tired.", ["STATBAR: health"])
        assert isinstance(result[0], StatBar)
        assert result[-1].text == "You feel tired."


class TestUserInput:
    def test_prompt(self, processor: ContentProcessor) -> None:
        result = processor.process("", ['USER_INPUT: name "Your name"'])
        assert result == UserInputPrompt(variable_name="name", placeholder="Your name")

    def test_answered_prompt_becomes_paragraph_when_reprocessing(
        self, processor: ContentProcessor, variables, reprocessing
    ) -> None:
        variables["name"] = "Ann"
        reprocessing["on"] = True
        result = processor.process("Hello.", ["USER_INPUT: name"])
        assert isinstance(result, Paragraph)
        assert result.text == "Hello."

    def test_unanswered_prompt_shown_even_when_reprocessing(
        self, processor: ContentProcessor, reprocessing
    ) -> None:
        reprocessing["on"] = True
        assert isinstance(processor.process("", ["USER_INPUT: name"]), UserInputPrompt)

    @pytest.mark.parametrize("value", [0, False, ""])
    def test_falsy_answer_counts_as_unanswered(
        self, processor: ContentProcessor, variables, reprocessing, value
    ) -> None:
        variables["name"] = value
        reprocessing["on"] = True
        assert isinstance(processor.process("Hello.", ["USER_INPUT: name"]), UserInputPrompt)

    def test_prompt_shown_again_outside_reprocessing(self, processor: ContentProcessor, variables) -> None:
        variables["name"] = "Ann"
        assert isinstance(processor.process("", ["USER_INPUT: name"]), UserInputPrompt)


class TestSpecialActions:
    def test_every_effect_runs_first_action_wins(self, processor: ContentProcessor, surface) -> None:
        result = processor.process("Boom.", ["AUDIO: boom.mp3", "CLEAR", "RESTART", "BG: smoke.jpg"])
        assert result.has_special_action
        assert result.action == "CLEAR"
        assert surface.audio == "boom.mp3"
        assert surface.background == "smoke.jpg"

    def test_no_action(self, processor: ContentProcessor) -> None:
        result = processor.process("Quiet.", ["AUDIO: a.mp3"])
        assert result.has_special_action is False
        assert result.action is None

    def test_without_executor_effects_are_inspected(self) -> None:
        processor = ContentProcessor(TagProcessor())
        assert processor.process("x", ["RESTART"]).action == "RESTART"


class TestFailures:
    def test_tag_processor_error_gives_plain_paragraph(self, caplog) -> None:
        tag_processor = MagicMock()
        tag_processor.process_line_tags.side_effect = RuntimeError("boom")
        processor = ContentProcessor(tag_processor)
        with caplog.at_level(logging.ERROR):
            result = processor.process("Still here.", ["CLASS: x"])
        assert isinstance(result, Paragraph)
        assert result.text == "Still here."
        assert result.classes == []
        assert "Failed to process content" in caplog.text

    def test_missing_tag_processor(self, caplog) -> None:
        processor = ContentProcessor(None)
        with caplog.at_level(logging.ERROR):
            result = processor.process("Text.", ["CLASS: x"])
        assert result.text == "Text."
        assert result.classes == []
        assert not processor.is_ready()

    def test_non_list_tags(self, processor: ContentProcessor) -> None:
        result = processor.process("Text.", None)
        assert result == Paragraph(text="Text.")
