"""
Row-level persistence gateway for children, themes, art styles, stories, and pages.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import fields, replace
from pathlib import Path
from typing import Any, Iterable, Mapping, Protocol, TypeVar

import yaml

from tottales.common.errors import RecordNotFoundError

from .records import ArtStyle, Child, Story, StoryPage, Theme, utc_timestamp

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", Child, Story, StoryPage)


class StoryRepository(Protocol):
    """
    Narrow CRUD contract the orchestrator relies on.

    ``get_*`` lookups return ``None`` for unknown ids; ``update_*`` calls raise
    :class:`RecordNotFoundError`.
    """

    async def get_child(self, child_id: str) -> Child | None: ...

    async def update_child(self, child_id: str, **changes: Any) -> Child: ...

    async def get_theme(self, theme_id: str) -> Theme | None: ...

    async def get_art_style(self, art_style_id: str) -> ArtStyle | None: ...

    async def create_story(self, story: Story) -> Story: ...

    async def get_story(self, story_id: str) -> Story | None: ...

    async def update_story(self, story_id: str, **changes: Any) -> Story: ...

    async def delete_story(self, story_id: str) -> None: ...

    async def get_story_with_pages(
        self, story_id: str
    ) -> tuple[Story, list[StoryPage]] | None: ...

    async def create_story_pages(self, pages: Iterable[StoryPage]) -> list[StoryPage]: ...

    async def get_story_pages(self, story_id: str) -> list[StoryPage]: ...

    async def get_story_page(self, page_id: str) -> StoryPage | None: ...

    async def update_story_page(self, page_id: str, **changes: Any) -> StoryPage: ...


class InMemoryStoryRepository:
    """
    Dictionary-backed repository. Records are copied on the way in and out so callers
    never share mutable state with the store.
    """

    def __init__(self) -> None:
        self._children: dict[str, Child] = {}
        self._themes: dict[str, Theme] = {}
        self._art_styles: dict[str, ArtStyle] = {}
        self._stories: dict[str, Story] = {}
        self._pages: dict[str, StoryPage] = {}

    # ------------------------------------------------------------------ seeding

    async def add_child(self, child: Child) -> Child:
        self._children[child.id] = copy.deepcopy(child)
        await self._after_write()
        return copy.deepcopy(child)

    async def add_theme(self, theme: Theme) -> Theme:
        self._themes[theme.id] = copy.deepcopy(theme)
        await self._after_write()
        return copy.deepcopy(theme)

    async def add_art_style(self, art_style: ArtStyle) -> ArtStyle:
        self._art_styles[art_style.id] = copy.deepcopy(art_style)
        await self._after_write()
        return copy.deepcopy(art_style)

    # ---------------------------------------------------------------- children

    async def get_child(self, child_id: str) -> Child | None:
        return _copy_or_none(self._children.get(child_id))

    async def update_child(self, child_id: str, **changes: Any) -> Child:
        updated = _apply_changes(self._children, "child", child_id, changes)
        await self._after_write()
        return updated

    # ------------------------------------------------------- reference data

    async def get_theme(self, theme_id: str) -> Theme | None:
        return _copy_or_none(self._themes.get(theme_id))

    async def get_art_style(self, art_style_id: str) -> ArtStyle | None:
        return _copy_or_none(self._art_styles.get(art_style_id))

    # ----------------------------------------------------------------- stories

    async def create_story(self, story: Story) -> Story:
        self._stories[story.id] = copy.deepcopy(story)
        await self._after_write()
        return copy.deepcopy(story)

    async def get_story(self, story_id: str) -> Story | None:
        return _copy_or_none(self._stories.get(story_id))

    async def update_story(self, story_id: str, **changes: Any) -> Story:
        updated = _apply_changes(self._stories, "story", story_id, changes)
        await self._after_write()
        return updated

    async def delete_story(self, story_id: str) -> None:
        if story_id not in self._stories:
            raise RecordNotFoundError("story", story_id)
        for page_id in [page.id for page in self._pages.values() if page.story_id == story_id]:
            del self._pages[page_id]
        del self._stories[story_id]
        await self._after_write()

    async def get_story_with_pages(
        self, story_id: str
    ) -> tuple[Story, list[StoryPage]] | None:
        story = await self.get_story(story_id)
        if story is None:
            return None
        return story, await self.get_story_pages(story_id)

    # ------------------------------------------------------------------- pages

    async def create_story_pages(self, pages: Iterable[StoryPage]) -> list[StoryPage]:
        batch = [copy.deepcopy(page) for page in pages]
        for page in batch:
            if page.story_id not in self._stories:
                raise RecordNotFoundError("story", page.story_id)
        for page in batch:
            self._pages[page.id] = page
        await self._after_write()
        return [copy.deepcopy(page) for page in batch]

    async def get_story_pages(self, story_id: str) -> list[StoryPage]:
        pages = [page for page in self._pages.values() if page.story_id == story_id]
        pages.sort(key=lambda page: page.page_number)
        return [copy.deepcopy(page) for page in pages]

    async def get_story_page(self, page_id: str) -> StoryPage | None:
        return _copy_or_none(self._pages.get(page_id))

    async def update_story_page(self, page_id: str, **changes: Any) -> StoryPage:
        updated = _apply_changes(self._pages, "story_page", page_id, changes)
        await self._after_write()
        return updated

    # --------------------------------------------------------------- snapshots

    def snapshot(self) -> dict[str, list[dict[str, Any]]]:
        return {
            "children": [record.to_dict() for record in self._children.values()],
            "themes": [record.to_dict() for record in self._themes.values()],
            "art_styles": [record.to_dict() for record in self._art_styles.values()],
            "stories": [record.to_dict() for record in self._stories.values()],
            "story_pages": [record.to_dict() for record in self._pages.values()],
        }

    def load_snapshot(self, payload: Mapping[str, Any]) -> None:
        self._children = _index(Child.from_dict(item) for item in payload.get("children") or [])
        self._themes = _index(Theme.from_dict(item) for item in payload.get("themes") or [])
        self._art_styles = _index(
            ArtStyle.from_dict(item) for item in payload.get("art_styles") or []
        )
        self._stories = _index(Story.from_dict(item) for item in payload.get("stories") or [])
        self._pages = _index(
            StoryPage.from_dict(item) for item in payload.get("story_pages") or []
        )

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.snapshot(), sort_keys=False, allow_unicode=True)

    @classmethod
    def from_yaml(cls, source: str | Path) -> "InMemoryStoryRepository":
        repository = cls()
        repository.load_snapshot(_read_yaml_mapping(Path(source)))
        return repository

    async def _after_write(self) -> None:
        return None


class YamlStoryRepository(InMemoryStoryRepository):
    """
    In-memory repository that rewrites a YAML file after every change.
    """

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self._path = Path(path)
        if self._path.exists():
            self.load_snapshot(_read_yaml_mapping(self._path))

    @property
    def path(self) -> Path:
        return self._path

    async def _after_write(self) -> None:
        text = self.to_yaml()
        await asyncio.to_thread(self._write, text)

    def _write(self, text: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(text, encoding="utf-8")
        logger.debug("Persisted repository snapshot to %s", self._path)


def _copy_or_none(record: Any) -> Any:
    return copy.deepcopy(record) if record is not None else None


def _apply_changes(
    table: dict[str, RecordT],
    kind: str,
    record_id: str,
    changes: Mapping[str, Any],
) -> RecordT:
    record = table.get(record_id)
    if record is None:
        raise RecordNotFoundError(kind, record_id)

    allowed = {item.name for item in fields(record)} - {"id", "created_at"}
    unknown = sorted(set(changes) - allowed)
    if unknown:
        raise ValueError(f"Cannot update {kind} fields: {', '.join(unknown)}.")

    updated = replace(record, **changes)
    if "updated_at" in allowed:
        updated.updated_at = utc_timestamp()
    table[record_id] = updated
    return copy.deepcopy(updated)


def _index(records: Iterable[Any]) -> dict[str, Any]:
    return {record.id: record for record in records}


def _read_yaml_mapping(path: Path) -> Mapping[str, Any]:
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, Mapping):
        raise ValueError("Repository YAML must deserialize to a mapping.")
    return data
