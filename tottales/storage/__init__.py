"""
Persistence and asset storage gateways for TotTales.
"""

from .object_store import (
    LocalObjectStorage,
    ObjectStorage,
    StorageBuckets,
    extension_for_mime_type,
    story_image_path,
)
from .records import ArtStyle, Child, PageStatus, Story, StoryPage, StoryStatus, Theme
from .repository import InMemoryStoryRepository, StoryRepository, YamlStoryRepository

__all__ = [
    "ArtStyle",
    "Child",
    "PageStatus",
    "Story",
    "StoryPage",
    "StoryStatus",
    "Theme",
    "StoryRepository",
    "InMemoryStoryRepository",
    "YamlStoryRepository",
    "ObjectStorage",
    "LocalObjectStorage",
    "StorageBuckets",
    "extension_for_mime_type",
    "story_image_path",
]
