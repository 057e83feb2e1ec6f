"""
Tests for NarrativeGenerator and the narrative prompts.

Run with: python -m pytest tests/test_narrative.py -v
"""

import json

import pytest

from conftest import FakeTextClient, narrative_json, run
from tottales.common import EmptyGenerationError
from tottales.storage import Story, StoryPage
from tottales.story_generation import (
    NarrativeGenerator,
    NarrativeRequest,
    PageNarrative,
    StoryNarrative,
    build_narrative_prompt,
    build_page_rewrite_prompt,
)


def _request(**overrides):
    values = {
        "child_name": "Mia",
        "theme_prompt": "A gentle trip to the seaside to collect shells.",
        "character_description": "A 4-year-old girl with curly brown hair",
        "child_age": 4,
        "child_gender": "girl",
        "page_count": 6,
    }
    values.update(overrides)
    return NarrativeRequest(**values)


def _story(page_count=3):
    return StoryNarrative(
        title="Mia at the Sea",
        pages=tuple(
            PageNarrative(
                page_number=number,
                text=f"Page {number} text.",
                scene_description=f"Scene {number}",
                image_prompt=f"Prompt {number}",
            )
            for number in range(1, page_count + 1)
        ),
    )


class TestGenerateNarrative:
    @pytest.mark.parametrize("page_count", [3, 6, 8])
    def test_returns_exactly_requested_pages(self, page_count):
        generator = NarrativeGenerator(text_client=FakeTextClient([narrative_json(page_count)]))

        narrative = run(generator.generate_narrative(_request(page_count=page_count)))

        assert [page.page_number for page in narrative.pages] == list(range(1, page_count + 1))
        assert narrative.title == "Mia and the Moon Garden"

    def test_extra_pages_are_truncated(self):
        generator = NarrativeGenerator(text_client=FakeTextClient([narrative_json(8)]))

        narrative = run(generator.generate_narrative(_request(page_count=6)))

        assert len(narrative.pages) == 6
        assert narrative.pages[-1].text == "Mia skips along happily on page 6."

    def test_too_few_pages_raise(self):
        generator = NarrativeGenerator(text_client=FakeTextClient([narrative_json(4)]))

        with pytest.raises(EmptyGenerationError):
            run(generator.generate_narrative(_request(page_count=6)))

    def test_pages_are_renumbered_contiguously(self):
        payload = {
            "title": "Shells",
            "pages": [
                {"pageNumber": 5, "text": "Third.", "imagePrompt": "c"},
                {"pageNumber": 1, "text": "First.", "imagePrompt": "a"},
                {"pageNumber": 2, "text": "Second.", "imagePrompt": "b"},
            ],
        }
        generator = NarrativeGenerator(text_client=FakeTextClient([json.dumps(payload)]))

        narrative = run(generator.generate_narrative(_request(page_count=3)))

        assert [(page.page_number, page.text) for page in narrative.pages] == [
            (1, "First."),
            (2, "Second."),
            (3, "Third."),
        ]

    def test_snake_case_keys_and_missing_prompt(self):
        payload = {
            "pages": [
                {"page_number": 1, "text": "Hi.", "scene_description": "Mia on the sand"},
            ]
        }
        generator = NarrativeGenerator(text_client=FakeTextClient([json.dumps(payload)]))

        narrative = run(generator.generate_narrative(_request(page_count=1)))

        page = narrative.pages[0]
        assert page.scene_description == "Mia on the sand"
        assert page.image_prompt == "Mia on the sand"
        assert narrative.title == "Mia's Adventure"

    @pytest.mark.parametrize("raw", ["not json at all", '{"title": "x", "pages": []}', "[1, 2]"])
    def test_unusable_output_raises(self, raw):
        generator = NarrativeGenerator(text_client=FakeTextClient([raw]))

        with pytest.raises(EmptyGenerationError, match="Failed to generate story pages"):
            run(generator.generate_narrative(_request()))

    def test_fenced_json_is_parsed(self):
        generator = NarrativeGenerator(
            text_client=FakeTextClient([narrative_json(6, fenced=True)])
        )

        assert len(run(generator.generate_narrative(_request())).pages) == 6


class TestRegeneratePageNarrative:
    def test_rewrites_one_page(self):
        answer = json.dumps(
            {
                "pageNumber": 2,
                "text": "Mia finds a pink shell.",
                "sceneDescription": "Mia holding a shell up to the sun",
                "imagePrompt": "Close-up of Mia with a pink shell",
            }
        )
        client = FakeTextClient([answer])
        generator = NarrativeGenerator(text_client=client)

        page = run(generator.regenerate_page_narrative(_request(), 2, _story(), "Too long"))

        assert page == PageNarrative(
            page_number=2,
            text="Mia finds a pink shell.",
            scene_description="Mia holding a shell up to the sun",
            image_prompt="Close-up of Mia with a pink shell",
        )
        prompt = client.text_prompts[0]
        assert 'Previous page (1): "Page 1 text."' in prompt
        assert 'Next page (3): "Page 3 text."' in prompt
        assert "REASON FOR REWRITE: Too long" in prompt

    def test_unparseable_answer_keeps_original_text(self):
        generator = NarrativeGenerator(text_client=FakeTextClient(["Sorry, I cannot."]))

        page = run(generator.regenerate_page_narrative(_request(), 1, _story()))

        assert page.text == "Page 1 text."
        assert page.page_number == 1

    def test_unknown_page_is_rejected(self):
        generator = NarrativeGenerator(text_client=FakeTextClient([]))

        with pytest.raises(ValueError):
            run(generator.regenerate_page_narrative(_request(), 9, _story()))


class TestPrompts:
    def test_narrative_prompt_mentions_child_and_page_count(self):
        prompt = build_narrative_prompt(_request(page_count=7))

        assert "- Name: Mia" in prompt
        assert "Age: 4 years old" in prompt
        assert "- Gender: girl" in prompt
        assert "Physical description: A 4-year-old girl with curly brown hair" in prompt
        assert "Write exactly 7 pages" in prompt
        assert '"imagePrompt"' in prompt
        assert prompt.endswith("Return ONLY valid JSON, no additional text or markdown.")

    def test_narrative_prompt_without_age(self):
        prompt = build_narrative_prompt(_request(child_age=None, child_gender=None))

        assert "Young toddler" in prompt
        assert "Gender" not in prompt

    def test_rewrite_prompt_at_story_edges(self):
        story = _story(1)
        prompt = build_page_rewrite_prompt(_request(), 1, story)

        assert "This is the first page" in prompt
        assert "This is the last page" in prompt
        assert "REASON FOR REWRITE" not in prompt

    def test_request_validation(self):
        with pytest.raises(ValueError):
            _request(child_name="  ")
        with pytest.raises(ValueError):
            _request(page_count=0)


def test_narrative_from_records():
    story = Story(user_id="u", child_id="c", theme_id="t", art_style_id="a", title="Shells")
    pages = [
        StoryPage(story_id=story.id, page_number=2, narrative_text="Two", image_prompt="p2"),
        StoryPage(story_id=story.id, page_number=1, narrative_text="One", image_prompt="p1"),
    ]

    narrative = StoryNarrative.from_records(story, pages)

    assert narrative.title == "Shells"
    assert [page.text for page in narrative.pages] == ["One", "Two"]
    assert narrative.page(2).scene_description == "p2"
