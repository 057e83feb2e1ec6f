"""
Tests for content safety checks and model-output parsing helpers.

Run with: python -m pytest tests/test_safety.py -v
"""

import pytest

from tottales.common import parse_json_object, strip_code_fences
from tottales.common.safety import (
    find_denied_terms,
    validate_character_description,
    validate_image_prompt,
    validate_story_content,
)
from tottales.story_generation import PageNarrative, StoryNarrative


def _narrative(texts, title="Mia's Day"):
    return StoryNarrative(
        title=title,
        pages=tuple(
            PageNarrative(page_number=index, text=text, scene_description="", image_prompt="")
            for index, text in enumerate(texts, start=1)
        ),
    )


class TestStoryContent:
    def test_clean_story_passes(self):
        result = validate_story_content(_narrative(["Hello sun.", "Hello moon.", "Good night."]))

        assert result.valid
        assert result.issues == []
        assert result.reason is None

    def test_denied_words_are_reported(self):
        result = validate_story_content(
            _narrative(["A scary night.", "Mia is brave.", "The end."], title="Monster Night")
        )

        assert not result.valid
        assert 'Contains inappropriate word: "scary"' in result.issues
        assert 'Contains inappropriate word: "monster"' in result.issues

    def test_short_story_and_blank_page(self):
        result = validate_story_content(_narrative(["Hello.", "   "]))

        assert result.issues == ["Story is too short", "Page 2 has no text"]

    def test_substring_matching_is_case_insensitive(self):
        assert find_denied_terms("A DIEt of carrots", ["die"]) == ["die"]


class TestImagePrompt:
    def test_clean_prompt_passes(self):
        assert validate_image_prompt("Mia building a sandcastle at the beach").valid

    def test_blocked_term(self):
        result = validate_image_prompt("A violent storm over the sea")

        assert not result.valid
        assert result.reason == "Prompt contains blocked term: violent"

    def test_too_short(self):
        assert validate_image_prompt("Mia").reason == "Prompt is too short"


class TestCharacterDescription:
    def test_clean_description(self):
        assert validate_character_description("A girl with freckles and red hair").valid

    @pytest.mark.parametrize("description", ["", "   ", "An adult-looking child"])
    def test_rejected_descriptions(self, description):
        assert not validate_character_description(description).valid


class TestParsing:
    @pytest.mark.parametrize(
        "raw",
        [
            '{"a": 1}',
            '```json\n{"a": 1}\n```',
            '```\n{"a": 1}\n```',
            '  ```JSON {"a": 1}```  ',
        ],
    )
    def test_fences_are_stripped(self, raw):
        assert parse_json_object(raw) == {"a": 1}

    def test_strip_code_fences_leaves_plain_text(self):
        assert strip_code_fences("  plain text ") == "plain text"
        assert strip_code_fences(None) == ""

    @pytest.mark.parametrize("raw", ["", "nope", "[1, 2]", "```json\n```"])
    def test_non_objects_return_none(self, raw):
        assert parse_json_object(raw) is None
