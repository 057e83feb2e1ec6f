"""
TotTales package exposing story generation, illustration, and orchestration tooling.
"""

from .common import GenerationSettings
from .pipeline import (
    CharacterAnalyzer,
    GenerationProgress,
    GenerationStage,
    StoryOrchestrator,
    regenerate_with_policy,
)
from .storage import InMemoryStoryRepository, LocalObjectStorage, YamlStoryRepository

__all__ = [
    "CharacterAnalyzer",
    "GenerationProgress",
    "GenerationSettings",
    "GenerationStage",
    "InMemoryStoryRepository",
    "LocalObjectStorage",
    "StoryOrchestrator",
    "YamlStoryRepository",
    "regenerate_with_policy",
]
