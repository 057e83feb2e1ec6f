"""
Caller-side regeneration limits.

The orchestrator always performs a requested regeneration; the per-page cap lives
here so that callers (the reader UI, the CLI) can refuse before invoking it.
"""

from __future__ import annotations

from tottales.common.errors import RecordNotFoundError, RegenerationLimitError
from tottales.storage import PageStatus, StoryPage

from .orchestrator import StoryOrchestrator
from .progress import ProgressCallback


def remaining_regenerations(page: StoryPage, max_regenerations: int) -> int:
    return max(0, max_regenerations - page.regeneration_count)


def can_regenerate(page: StoryPage, max_regenerations: int) -> bool:
    """A page may be regenerated while under the cap and not already generating."""
    return (
        page.status is not PageStatus.GENERATING
        and remaining_regenerations(page, max_regenerations) > 0
    )


def ensure_regeneration_allowed(page: StoryPage, max_regenerations: int) -> None:
    if page.regeneration_count >= max_regenerations:
        raise RegenerationLimitError(page.id, page.regeneration_count, max_regenerations)


async def regenerate_with_policy(
    orchestrator: StoryOrchestrator,
    *,
    story_id: str,
    page_id: str,
    max_regenerations: int | None = None,
    on_progress: ProgressCallback | None = None,
) -> StoryPage:
    """
    Enforce the regeneration cap, then regenerate the page illustration.
    """
    limit = (
        max_regenerations
        if max_regenerations is not None
        else orchestrator.settings.max_regenerations
    )
    page = await orchestrator.repository.get_story_page(page_id)
    if page is None or page.story_id != story_id:
        raise RecordNotFoundError("page", page_id)

    ensure_regeneration_allowed(page, limit)
    return await orchestrator.regenerate_page_illustration(
        story_id=story_id,
        page_id=page_id,
        on_progress=on_progress,
    )
