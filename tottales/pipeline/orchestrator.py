"""
Drives story creation end to end: analysis, writing, illustration, and persistence.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from tottales.ai_generation import IllustrationGenerator, ImageGenerationClient, ReplicateImageClient
from tottales.common.errors import ContentValidationError, RecordNotFoundError
from tottales.common.llm import LiteLLMTextClient, TextGenerationClient
from tottales.common.safety import (
    validate_character_description,
    validate_image_prompt,
    validate_story_content,
)
from tottales.common.settings import GenerationSettings
from tottales.storage import (
    ArtStyle,
    Child,
    ObjectStorage,
    PageStatus,
    Story,
    StoryPage,
    StoryRepository,
    StoryStatus,
    story_image_path,
)
from tottales.story_generation import NarrativeGenerator, NarrativeRequest, StoryNarrative

from .identity import CharacterAnalyzer, fallback_character_description
from .progress import GenerationProgress, GenerationStage, ProgressCallback

logger = logging.getLogger(__name__)

SleepCallable = Callable[[float], Awaitable[Any]]


class StoryOrchestrator:
    """
    High-level coordinator that turns a child, a theme, and an art style into a
    persisted, illustrated story.

    Every collaborator is injected; the generators default to LiteLLM and Replicate
    backed implementations configured from ``settings``.
    """

    def __init__(
        self,
        *,
        repository: StoryRepository,
        storage: ObjectStorage,
        settings: GenerationSettings | None = None,
        narrative_generator: NarrativeGenerator | None = None,
        character_analyzer: CharacterAnalyzer | None = None,
        illustration_generator: IllustrationGenerator | None = None,
        text_client: TextGenerationClient | None = None,
        image_client: ImageGenerationClient | None = None,
        sleep: SleepCallable | None = None,
    ) -> None:
        self._repository = repository
        self._storage = storage
        self._settings = settings or GenerationSettings()
        self._sleep: SleepCallable = sleep or asyncio.sleep

        if narrative_generator is None or character_analyzer is None:
            text_client = text_client or LiteLLMTextClient(
                text_model=self._settings.text_model,
                vision_model=self._settings.vision_model,
            )
        self._narrative_generator = narrative_generator or NarrativeGenerator(
            text_client=text_client
        )
        self._character_analyzer = character_analyzer or CharacterAnalyzer(
            text_client=text_client
        )
        self._illustration_generator = illustration_generator or IllustrationGenerator(
            image_client=image_client
            or ReplicateImageClient(model_identifier=self._settings.image_model),
            max_retries=self._settings.illustration_max_retries,
            base_delay=self._settings.illustration_base_delay,
            timeout=self._settings.illustration_timeout,
            sleep=self._sleep,
        )

    @property
    def settings(self) -> GenerationSettings:
        return self._settings

    @property
    def repository(self) -> StoryRepository:
        return self._repository

    async def create_complete_story(
        self,
        *,
        user_id: str,
        child_id: str,
        theme_id: str,
        art_style_id: str,
        on_progress: ProgressCallback | None = None,
    ) -> str:
        """
        Create a story and illustrate every page, returning the new story id.

        Missing child, theme, or art style raises :class:`RecordNotFoundError` before
        anything is written. Once the story row exists, any failure marks it
        ``failed`` and is re-raised; already completed pages are kept.
        """
        page_count = self._settings.page_count
        self._notify(on_progress, GenerationStage.ANALYZING, 0, page_count, "Loading child profile...")

        child, theme, art_style = await asyncio.gather(
            self._repository.get_child(child_id),
            self._repository.get_theme(theme_id),
            self._repository.get_art_style(art_style_id),
        )
        if child is None:
            raise RecordNotFoundError("child", child_id)
        if theme is None:
            raise RecordNotFoundError("theme", theme_id)
        if art_style is None:
            raise RecordNotFoundError("art_style", art_style_id)

        character_description = await self._resolve_character_description(
            child, page_count, on_progress
        )

        story = await self._repository.create_story(
            Story(
                user_id=user_id,
                child_id=child.id,
                theme_id=theme.id,
                art_style_id=art_style.id,
                title=f"{child.name}'s Adventure",
                status=StoryStatus.GENERATING,
                total_pages=page_count,
            )
        )
        logger.info("Created story %s for child %s.", story.id, child.id)

        try:
            self._notify(on_progress, GenerationStage.WRITING, 0, page_count, "Crafting the story...")
            narrative = await self._narrative_generator.generate_narrative(
                NarrativeRequest(
                    child_name=child.name,
                    theme_prompt=theme.base_prompt,
                    character_description=character_description,
                    child_age=child.age_years,
                    child_gender=child.gender,
                    page_count=page_count,
                )
            )
            self._check_story_content(story.id, narrative)

            await self._repository.update_story(story.id, title=narrative.title)
            pages = await self._repository.create_story_pages(
                StoryPage(
                    story_id=story.id,
                    page_number=page.page_number,
                    narrative_text=page.text,
                    image_prompt=page.image_prompt,
                    status=PageStatus.PENDING,
                )
                for page in narrative.pages
            )

            await self._illustrate_pages(
                story=story,
                child=child,
                art_style=art_style,
                narrative=narrative,
                pages=pages,
                character_description=character_description,
                on_progress=on_progress,
            )

            total = len(narrative.pages)
            self._notify(on_progress, GenerationStage.FINALIZING, total, total, "Finishing up...")
            await self._repository.update_story(story.id, status=StoryStatus.COMPLETED)
        except Exception:
            logger.exception("Story %s failed; marking it as failed.", story.id)
            await self._repository.update_story(story.id, status=StoryStatus.FAILED)
            raise

        logger.info("Story %s completed.", story.id)
        return story.id

    async def regenerate_page_illustration(
        self,
        *,
        story_id: str,
        page_id: str,
        on_progress: ProgressCallback | None = None,
    ) -> StoryPage:
        """
        Replace the illustration of one page, keeping its text.

        The regeneration cap is not checked here; see :mod:`tottales.pipeline.policy`.
        """
        story_with_pages = await self._repository.get_story_with_pages(story_id)
        if story_with_pages is None:
            raise RecordNotFoundError("story", story_id)

        story, pages = story_with_pages
        page = next((item for item in pages if item.id == page_id), None)
        if page is None:
            raise RecordNotFoundError("page", page_id)

        child, art_style = await asyncio.gather(
            self._repository.get_child(story.child_id),
            self._repository.get_art_style(story.art_style_id),
        )
        if child is None:
            raise RecordNotFoundError("child", story.child_id)
        if art_style is None:
            raise RecordNotFoundError("art_style", story.art_style_id)

        self._notify(
            on_progress,
            GenerationStage.ILLUSTRATING,
            page.page_number,
            story.total_pages,
            "Regenerating illustration...",
        )
        await self._repository.update_story_page(page.id, status=PageStatus.GENERATING)

        try:
            self._check_image_prompt(story.id, page.page_number, page.image_prompt or "")
            image_url = await self._render_page(
                story_id=story.id,
                page_number=page.page_number,
                child=child,
                art_style=art_style,
                character_description=child.character_description
                or f"A child named {child.name}",
                scene_description=page.image_prompt or "",
                image_prompt=page.image_prompt or "",
                page_text=page.narrative_text or "",
            )
        except Exception:
            if self._settings.fail_page_on_regeneration_error:
                await self._repository.update_story_page(page.id, status=PageStatus.FAILED)
            logger.exception("Regeneration of page %s in story %s failed.", page.id, story.id)
            raise

        updated = await self._repository.update_story_page(
            page.id,
            image_url=image_url,
            status=PageStatus.COMPLETED,
            regeneration_count=page.regeneration_count + 1,
        )
        if page.page_number == 1:
            await self._repository.update_story(story.id, cover_image_url=image_url)

        logger.info(
            "Regenerated page %d of story %s (regeneration %d).",
            page.page_number,
            story.id,
            updated.regeneration_count,
        )
        return updated

    async def _resolve_character_description(
        self,
        child: Child,
        page_count: int,
        on_progress: ProgressCallback | None,
    ) -> str:
        if child.character_description:
            return child.character_description

        photos = child.photo_refs()
        if not photos:
            logger.info("Child %s has no photos; using the generic description.", child.id)
            return fallback_character_description(child.name)

        self._notify(on_progress, GenerationStage.ANALYZING, 0, page_count, "Analyzing photos...")
        try:
            description = await self._character_analyzer.analyze_child_photos(
                photos,
                child.name,
                child.age_years,
                child.gender,
            )
        except Exception as exc:
            logger.warning("Photo analysis for child %s failed (%s); using fallback.", child.id, exc)
            return fallback_character_description(child.name)

        validation = validate_character_description(description)
        if not validation.valid:
            logger.warning(
                "Discarding character description for child %s: %s", child.id, validation.reason
            )
            return fallback_character_description(child.name)

        await self._repository.update_child(child.id, character_description=description)
        return description

    def _check_story_content(self, story_id: str, narrative: StoryNarrative) -> None:
        validation = validate_story_content(narrative)
        if validation.valid:
            return
        if self._settings.enforce_story_validation:
            raise ContentValidationError(validation.issues)
        logger.warning("Story %s validation issues: %s", story_id, "; ".join(validation.issues))

    def _check_image_prompt(self, story_id: str, page_number: int, prompt: str) -> None:
        validation = validate_image_prompt(prompt)
        if validation.valid:
            return
        if self._settings.enforce_prompt_validation:
            raise ContentValidationError(validation.issues)
        logger.warning(
            "Prompt for page %d of story %s flagged: %s", page_number, story_id, validation.reason
        )

    async def _illustrate_pages(
        self,
        *,
        story: Story,
        child: Child,
        art_style: ArtStyle,
        narrative: StoryNarrative,
        pages: list[StoryPage],
        character_description: str,
        on_progress: ProgressCallback | None,
    ) -> None:
        records = {page.page_number: page for page in pages}
        total_pages = len(narrative.pages)

        # One page at a time: the image API rate limit is the bottleneck.
        for index, page_narrative in enumerate(narrative.pages, start=1):
            record = records.get(page_narrative.page_number)
            if record is None:
                continue

            if index > 1 and self._settings.inter_page_delay > 0:
                await self._sleep(self._settings.inter_page_delay)

            self._notify(
                on_progress,
                GenerationStage.ILLUSTRATING,
                index,
                total_pages,
                f"Creating illustration {index} of {total_pages}...",
            )
            await self._repository.update_story_page(record.id, status=PageStatus.GENERATING)

            self._check_image_prompt(story.id, page_narrative.page_number, page_narrative.image_prompt)

            image_url = await self._render_page(
                story_id=story.id,
                page_number=page_narrative.page_number,
                child=child,
                art_style=art_style,
                character_description=character_description,
                scene_description=page_narrative.scene_description,
                image_prompt=page_narrative.image_prompt,
                page_text=page_narrative.text,
            )
            await self._repository.update_story_page(
                record.id,
                image_url=image_url,
                status=PageStatus.COMPLETED,
            )
            if page_narrative.page_number == 1:
                await self._repository.update_story(story.id, cover_image_url=image_url)

            logger.info("Illustrated page %d/%d of story %s.", index, total_pages, story.id)

    async def _render_page(
        self,
        *,
        story_id: str,
        page_number: int,
        child: Child,
        art_style: ArtStyle,
        character_description: str,
        scene_description: str,
        image_prompt: str,
        page_text: str,
    ) -> str:
        image = await self._illustration_generator.generate_illustration(
            art_style_modifier=art_style.prompt_modifier,
            character_description=character_description,
            child_name=child.name,
            scene_description=scene_description,
            image_prompt=image_prompt,
            page_text=page_text,
        )
        return await self._storage.upload(
            self._settings.story_bucket,
            story_image_path(story_id, page_number, image.mime_type),
            image.data,
            image.mime_type,
        )

    @staticmethod
    def _notify(
        callback: ProgressCallback | None,
        stage: GenerationStage,
        current_page: int,
        total_pages: int,
        message: str,
    ) -> None:
        if callback is not None:
            callback(
                GenerationProgress(
                    stage=stage,
                    current_page=current_page,
                    total_pages=total_pages,
                    message=message,
                )
            )
