"""
Persisted records handled by the story generation core.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, TypeVar


class StoryStatus(str, Enum):
    DRAFT = "draft"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


class PageStatus(str, Enum):
    PENDING = "pending"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


def new_record_id() -> str:
    return uuid.uuid4().hex


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


RecordT = TypeVar("RecordT", bound="_Record")


@dataclass
class _Record:
    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        for key, value in payload.items():
            if isinstance(value, Enum):
                payload[key] = value.value
        return payload

    @classmethod
    def from_dict(cls: type[RecordT], payload: Mapping[str, Any]) -> RecordT:
        # Unknown keys are dropped so older snapshots keep loading.
        names = {item.name for item in fields(cls)}
        return cls(**{key: value for key, value in payload.items() if key in names})


@dataclass
class Child(_Record):
    """
    A child profile created by the photo upload flow.

    ``character_description`` is derived once from the photos and reused for every
    later illustration of this child.
    """

    user_id: str
    name: str
    age_years: int | None = None
    gender: str | None = None
    primary_photo_url: str | None = None
    additional_photos: list[str] = field(default_factory=list)
    character_description: str | None = None
    id: str = field(default_factory=new_record_id)
    created_at: str = field(default_factory=utc_timestamp)
    updated_at: str = field(default_factory=utc_timestamp)

    def photo_refs(self) -> list[str]:
        refs = [self.primary_photo_url, *self.additional_photos]
        return [ref for ref in refs if ref]


@dataclass
class Theme(_Record):
    name: str
    display_name: str
    base_prompt: str
    description: str | None = None
    preview_image_url: str | None = None
    is_active: bool = True
    id: str = field(default_factory=new_record_id)
    created_at: str = field(default_factory=utc_timestamp)


@dataclass
class ArtStyle(_Record):
    name: str
    display_name: str
    prompt_modifier: str
    description: str | None = None
    preview_image_url: str | None = None
    is_active: bool = True
    id: str = field(default_factory=new_record_id)
    created_at: str = field(default_factory=utc_timestamp)


@dataclass
class Story(_Record):
    user_id: str
    child_id: str
    theme_id: str
    art_style_id: str
    title: str
    status: StoryStatus = StoryStatus.DRAFT
    total_pages: int = 0
    cover_image_url: str | None = None
    id: str = field(default_factory=new_record_id)
    created_at: str = field(default_factory=utc_timestamp)
    updated_at: str = field(default_factory=utc_timestamp)

    def __post_init__(self) -> None:
        self.status = StoryStatus(self.status)


@dataclass
class StoryPage(_Record):
    story_id: str
    page_number: int
    narrative_text: str
    image_prompt: str
    image_url: str | None = None
    status: PageStatus = PageStatus.PENDING
    regeneration_count: int = 0
    id: str = field(default_factory=new_record_id)
    created_at: str = field(default_factory=utc_timestamp)
    updated_at: str = field(default_factory=utc_timestamp)

    def __post_init__(self) -> None:
        self.status = PageStatus(self.status)
