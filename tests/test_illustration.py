"""
Tests for IllustrationGenerator retry, timeout, and safety behavior, plus prompt assembly.

Run with: python -m pytest tests/test_illustration.py -v
"""

import asyncio

import pytest

from conftest import PNG_BYTES, FakeImageClient, RecordingSleep, run
from tottales.ai_generation import (
    IllustrationGenerator,
    ImagePart,
    ReplicateImageClient,
    build_character_consistent_prompt,
    compose_scene,
    is_safety_block,
)
from tottales.common import (
    ContentValidationError,
    EmptyGenerationError,
    IllustrationTimeoutError,
    SafetyBlockedError,
)

PAGE = {
    "art_style_modifier": "Bright crayon drawing",
    "character_description": "A 3-year-old boy with a mop of red curls",
    "child_name": "Leo",
    "scene_description": "Leo feeds ducks at a sunny pond",
    "image_prompt": "Leo crouching by the water, ducks gathering",
}


class HangingImageClient:
    def __init__(self) -> None:
        self.calls = 0

    async def generate_image_parts(self, prompt: str) -> list[ImagePart]:
        self.calls += 1
        await asyncio.Event().wait()
        return []


class RecordingReplicateClient:
    def __init__(self) -> None:
        self.calls = 0

    async def async_run(self, model, input):
        self.calls += 1
        return [PNG_BYTES]


def _generator(image_client, **kwargs):
    sleep = kwargs.pop("sleep", RecordingSleep())
    return IllustrationGenerator(image_client=image_client, sleep=sleep, **kwargs), sleep


class TestRetryBehavior:
    def test_two_failures_then_success(self):
        """Succeeds on the third attempt after waiting 2s, then 4s."""
        image = ImagePart(data=PNG_BYTES, mime_type="image/png")
        client = FakeImageClient([RuntimeError("503"), RuntimeError("503"), [image]])
        generator, sleep = _generator(client)

        result = run(generator.generate_illustration(**PAGE))

        assert result == image
        assert len(client.prompts) == 3
        assert sleep.delays == [2.0, 4.0]

    def test_always_failing_raises_after_max_retries(self):
        client = FakeImageClient([RuntimeError("connection reset")] * 5)
        generator, sleep = _generator(client, max_retries=3)

        with pytest.raises(RuntimeError, match="connection reset"):
            run(generator.generate_illustration(**PAGE))

        assert len(client.prompts) == 3
        assert sleep.delays == [2.0, 4.0]

    def test_empty_response_is_retried_then_raised(self):
        client = FakeImageClient([[], [ImagePart(data=b"", mime_type="image/png")], []])
        generator, _ = _generator(client)

        with pytest.raises(EmptyGenerationError, match="No image generated in response"):
            run(generator.generate_illustration(**PAGE))

        assert len(client.prompts) == 3

    def test_first_non_empty_part_wins(self):
        image = ImagePart(data=b"\xff\xd8\xffjpeg", mime_type="image/jpeg")
        client = FakeImageClient([[ImagePart(data=b"", mime_type="image/png"), image]])
        generator, _ = _generator(client)

        assert run(generator.generate_illustration(**PAGE)) == image

    def test_custom_base_delay(self):
        client = FakeImageClient([RuntimeError("503"), RuntimeError("503")])
        generator, sleep = _generator(client, base_delay=0.5)

        run(generator.generate_illustration(**PAGE))

        assert sleep.delays == [0.5, 1.0]

    def test_unsupported_model_is_not_retried(self):
        replicate_client = RecordingReplicateClient()
        client = ReplicateImageClient(client=replicate_client, model_identifier="acme/painter")
        generator, sleep = _generator(client)

        with pytest.raises(ValueError, match="Supported models"):
            run(generator.generate_illustration(**PAGE))

        assert replicate_client.calls == 0
        assert sleep.delays == []

    def test_max_retries_must_be_positive(self):
        with pytest.raises(ValueError):
            IllustrationGenerator(image_client=FakeImageClient(), max_retries=0)


class TestTimeout:
    def test_each_attempt_is_bounded(self):
        client = HangingImageClient()
        generator, sleep = _generator(client, timeout=0.01, max_retries=2)

        with pytest.raises(IllustrationTimeoutError):
            run(generator.generate_illustration(**PAGE))

        assert client.calls == 2
        assert sleep.delays == [2.0]


class TestSafetyBlocking:
    @pytest.mark.parametrize(
        "message",
        [
            "Output blocked by SAFETY filter",
            "The input or output was flagged as sensitive (E005)",
            "Prompt was blocked",
        ],
    )
    def test_safety_errors_are_not_retried(self, message):
        client = FakeImageClient([RuntimeError(message), [ImagePart(data=PNG_BYTES)]])
        generator, sleep = _generator(client)

        with pytest.raises(SafetyBlockedError) as excinfo:
            run(generator.generate_illustration(**PAGE))

        assert str(excinfo.value) == (
            "Image generation blocked by safety filters. Please try a different scene."
        )
        assert len(client.prompts) == 1
        assert sleep.delays == []

    def test_is_safety_block(self):
        assert is_safety_block(RuntimeError("Response BLOCKED"))
        assert not is_safety_block(RuntimeError("rate limit exceeded"))


class TestPromptAssembly:
    def test_prompt_sections_in_order(self):
        client = FakeImageClient()
        generator, _ = _generator(client)

        run(generator.generate_illustration(**PAGE))

        prompt = client.prompts[0]
        assert prompt.startswith("Bright crayon drawing")
        positions = [prompt.index(marker) for marker in ("CHARACTER:", "SCENE:", "REQUIREMENTS:")]
        assert positions == sorted(positions)
        assert "Name: Leo" in prompt
        assert "Description: A 3-year-old boy with a mop of red curls" in prompt
        assert "Leo feeds ducks at a sunny pond\n\nAdditional details: Leo crouching" in prompt
        assert "- Leo is the focal point and hero of the scene" in prompt
        assert "- No text or words in the image" in prompt

    def test_compose_scene_deduplicates(self):
        assert compose_scene("A castle", "A castle") == "A castle"
        assert compose_scene("", "A castle") == "A castle"
        assert compose_scene("A castle", "") == "A castle"
        assert compose_scene("A castle", "at dawn") == "A castle\n\nAdditional details: at dawn"
        assert compose_scene("", "", "  Leo waves goodbye. ") == "Leo waves goodbye."
        assert compose_scene("A castle", "", "Leo waves goodbye.") == "A castle"

    def test_page_text_stands_in_for_missing_scene(self):
        client = FakeImageClient()
        generator, _ = _generator(client)
        page = {**PAGE, "scene_description": "", "image_prompt": "", "page_text": "Leo waves goodbye."}

        run(generator.generate_illustration(**page))

        assert "SCENE: Leo waves goodbye." in client.prompts[0]

    def test_page_without_any_scene_is_rejected_before_calling_model(self):
        client = FakeImageClient()
        generator, sleep = _generator(client)
        page = {**PAGE, "scene_description": "", "image_prompt": " "}

        with pytest.raises(ContentValidationError, match="Page has no scene to illustrate"):
            run(generator.generate_illustration(**page))

        assert client.prompts == []
        assert sleep.delays == []

    def test_prompt_requires_name_and_scene(self):
        with pytest.raises(ValueError):
            build_character_consistent_prompt("style", "description", " ", "scene")
        with pytest.raises(ValueError):
            build_character_consistent_prompt("style", "description", "Leo", "")
