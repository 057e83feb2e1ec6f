"""
Turn a theme and a child's description into a structured, page-by-page story.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Sequence

from tottales.common.errors import EmptyGenerationError
from tottales.common.llm import TextGenerationClient
from tottales.common.parsing import parse_json_object

from .prompting import NarrativeRequest, build_narrative_prompt, build_page_rewrite_prompt

if TYPE_CHECKING:
    from tottales.storage.records import Story, StoryPage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PageNarrative:
    """
    Text, scene, and illustration prompt for a single page.
    """

    page_number: int
    text: str
    scene_description: str
    image_prompt: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "page_number": self.page_number,
            "text": self.text,
            "scene_description": self.scene_description,
            "image_prompt": self.image_prompt,
        }


@dataclass(frozen=True)
class StoryNarrative:
    """A titled story split into contiguous pages numbered from 1."""

    title: str
    pages: tuple[PageNarrative, ...] = field(default_factory=tuple)

    def page(self, page_number: int) -> PageNarrative | None:
        for page in self.pages:
            if page.page_number == page_number:
                return page
        return None

    def as_dict(self) -> dict[str, Any]:
        return {"title": self.title, "pages": [page.as_dict() for page in self.pages]}

    @classmethod
    def from_records(cls, story: "Story", pages: Iterable["StoryPage"]) -> "StoryNarrative":
        """
        Rebuild a narrative from persisted rows. Stored image prompts double as the
        scene description since scenes are not persisted separately.
        """
        ordered = sorted(pages, key=lambda page: page.page_number)
        return cls(
            title=story.title,
            pages=tuple(
                PageNarrative(
                    page_number=page.page_number,
                    text=page.narrative_text,
                    scene_description=page.image_prompt,
                    image_prompt=page.image_prompt,
                )
                for page in ordered
            ),
        )


class NarrativeGenerator:
    """
    Produces complete stories and single-page rewrites from a text model.

    Parameters
    ----------
    text_client:
        Any object exposing ``async generate_text(prompt) -> str``.
    """

    def __init__(self, *, text_client: TextGenerationClient) -> None:
        self._text_client = text_client

    async def generate_narrative(self, request: NarrativeRequest) -> StoryNarrative:
        """
        Generate exactly ``request.page_count`` pages.

        Raises
        ------
        EmptyGenerationError
            When the response cannot be parsed or holds fewer pages than requested.
        """
        prompt = build_narrative_prompt(request)
        raw_text = await self._text_client.generate_text(prompt)

        payload = parse_json_object(raw_text)
        if payload is None:
            logger.warning("Narrative response was not valid JSON (%d chars).", len(raw_text or ""))
            payload = {}

        pages_data = payload.get("pages")
        if not isinstance(pages_data, list) or not pages_data:
            raise EmptyGenerationError("Failed to generate story pages")

        pages = _normalize_pages(pages_data, request.page_count)
        title = _text(payload.get("title")) or request.default_title
        logger.info("Generated narrative '%s' with %d pages.", title, len(pages))
        return StoryNarrative(title=title, pages=pages)

    async def regenerate_page_narrative(
        self,
        request: NarrativeRequest,
        page_number: int,
        existing_story: StoryNarrative,
        reason: str | None = None,
    ) -> PageNarrative:
        """
        Rewrite one page using its neighbours as continuity context.

        Falls back to the original page text if the model answer cannot be parsed.
        """
        current_page = existing_story.page(page_number)
        if current_page is None:
            raise ValueError(f"Story has no page {page_number}.")

        prompt = build_page_rewrite_prompt(request, page_number, existing_story, reason)
        raw_text = await self._text_client.generate_text(prompt)

        payload = parse_json_object(raw_text)
        if payload is None:
            logger.warning("Page %d rewrite was not valid JSON; keeping original text.", page_number)
            payload = {}

        scene = _text(_first(payload, "sceneDescription", "scene_description"))
        return PageNarrative(
            page_number=page_number,
            text=_text(payload.get("text")) or current_page.text,
            scene_description=scene,
            image_prompt=_text(_first(payload, "imagePrompt", "image_prompt")) or scene,
        )


def _normalize_pages(pages_data: Sequence[Any], page_count: int) -> tuple[PageNarrative, ...]:
    candidates: list[tuple[int, int, Mapping[str, Any]]] = []
    for index, item in enumerate(pages_data):
        if not isinstance(item, Mapping):
            logger.warning("Skipping malformed page entry at position %d.", index + 1)
            continue
        reported = _coerce_page_number(_first(item, "pageNumber", "page_number"), index + 1)
        candidates.append((reported, index, item))

    if not candidates:
        raise EmptyGenerationError("Failed to generate story pages")

    candidates.sort(key=lambda entry: (entry[0], entry[1]))
    if len(candidates) > page_count:
        logger.warning(
            "Narrative returned %d pages, keeping the first %d.", len(candidates), page_count
        )
        candidates = candidates[:page_count]
    elif len(candidates) < page_count:
        raise EmptyGenerationError(
            f"Narrative returned {len(candidates)} pages, expected {page_count}."
        )

    pages: list[PageNarrative] = []
    for page_number, (_, _, item) in enumerate(candidates, start=1):
        scene = _text(_first(item, "sceneDescription", "scene_description"))
        pages.append(
            PageNarrative(
                page_number=page_number,
                text=_text(item.get("text")),
                scene_description=scene,
                image_prompt=_text(_first(item, "imagePrompt", "image_prompt")) or scene,
            )
        )
    return tuple(pages)


def _first(item: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = item.get(key)
        if value:
            return value
    return None


def _coerce_page_number(value: Any, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()
