"""
Shared fakes and fixtures for the TotTales test suite.

Model clients are replaced by scripted fakes; no network calls are made.
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Sequence

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from tottales.ai_generation import ImagePart
from tottales.common import GenerationSettings, ImageInput
from tottales.pipeline import StoryOrchestrator
from tottales.storage import (
    ArtStyle,
    Child,
    InMemoryStoryRepository,
    LocalObjectStorage,
    Theme,
)

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


def narrative_json(page_count: int = 6, title: str = "Mia and the Moon Garden", fenced: bool = False) -> str:
    payload = {
        "title": title,
        "pages": [
            {
                "pageNumber": number,
                "text": f"Mia skips along happily on page {number}.",
                "sceneDescription": f"Mia in a bright garden, moment {number}",
                "imagePrompt": f"Mia smiling among glowing flowers, moment {number}",
            }
            for number in range(1, page_count + 1)
        ],
    }
    text = json.dumps(payload)
    return f"```json\n{text}\n```" if fenced else text


class FakeTextClient:
    """Returns scripted answers in order and records every prompt it receives."""

    def __init__(
        self,
        responses: Sequence[str] = (),
        *,
        description: str | Exception = "A 4-year-old girl with curly brown hair and green eyes.",
    ) -> None:
        self._responses = list(responses)
        self._description = description
        self.text_prompts: list[str] = []
        self.image_calls: list[tuple[str, list[ImageInput]]] = []

    async def generate_text(self, prompt: str) -> str:
        self.text_prompts.append(prompt)
        if not self._responses:
            raise AssertionError("FakeTextClient ran out of scripted responses.")
        return self._responses.pop(0)

    async def generate_with_images(self, prompt: str, images: Sequence[ImageInput]) -> str:
        self.image_calls.append((prompt, list(images)))
        if isinstance(self._description, Exception):
            raise self._description
        return self._description


class FakeImageClient:
    """
    Replays scripted outcomes per call: a list of parts, or an exception to raise.
    Once the script is exhausted every call returns one PNG part.
    """

    def __init__(self, outcomes: Sequence[Any] = ()) -> None:
        self._outcomes = list(outcomes)
        self.prompts: list[str] = []

    def queue(self, *outcomes: Any) -> None:
        self._outcomes.extend(outcomes)

    async def generate_image_parts(self, prompt: str) -> list[ImagePart]:
        self.prompts.append(prompt)
        if self._outcomes:
            outcome = self._outcomes.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        return [ImagePart(data=PNG_BYTES, mime_type="image/png")]


class RecordingSleep:
    """Async stand-in for ``asyncio.sleep`` that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class ProgressRecorder:
    def __init__(self) -> None:
        self.events = []

    def __call__(self, progress) -> None:
        self.events.append(progress)

    @property
    def messages(self) -> list[str]:
        return [event.message for event in self.events]


def run(coro):
    return asyncio.run(coro)


async def seed_records(
    repository: InMemoryStoryRepository,
    *,
    photos: Sequence[str] = (),
    character_description: str | None = None,
) -> tuple[Child, Theme, ArtStyle]:
    primary, *additional = list(photos) or [None]
    child = await repository.add_child(
        Child(
            user_id="user-1",
            name="Mia",
            age_years=4,
            gender="girl",
            primary_photo_url=primary,
            additional_photos=list(additional),
            character_description=character_description,
        )
    )
    theme = await repository.add_theme(
        Theme(
            name="moon-garden",
            display_name="Moon Garden",
            base_prompt="A gentle night-time adventure in a garden where flowers glow.",
        )
    )
    art_style = await repository.add_art_style(
        ArtStyle(
            name="watercolor",
            display_name="Watercolor",
            prompt_modifier="Soft watercolor illustration with warm pastel colors",
        )
    )
    return child, theme, art_style


@pytest.fixture
def repository() -> InMemoryStoryRepository:
    return InMemoryStoryRepository()


@pytest.fixture
def storage(tmp_path: Path) -> LocalObjectStorage:
    return LocalObjectStorage(tmp_path / "objects")


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def photo_file(tmp_path: Path) -> Path:
    path = tmp_path / "mia.png"
    path.write_bytes(PNG_BYTES)
    return path


@pytest.fixture
def make_orchestrator(repository, storage, sleep):
    def _factory(
        *,
        text_client: FakeTextClient,
        image_client: FakeImageClient | None = None,
        settings: GenerationSettings | None = None,
    ) -> StoryOrchestrator:
        return StoryOrchestrator(
            repository=repository,
            storage=storage,
            settings=settings or GenerationSettings(),
            text_client=text_client,
            image_client=image_client or FakeImageClient(),
            sleep=sleep,
        )

    return _factory
