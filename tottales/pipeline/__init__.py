"""
End-to-end orchestration for TotTales story creation.
"""

from .identity import CharacterAnalyzer, fallback_character_description, load_photo
from .orchestrator import StoryOrchestrator
from .policy import (
    can_regenerate,
    ensure_regeneration_allowed,
    regenerate_with_policy,
    remaining_regenerations,
)
from .progress import GenerationProgress, GenerationStage, ProgressCallback

__all__ = [
    "CharacterAnalyzer",
    "GenerationProgress",
    "GenerationStage",
    "ProgressCallback",
    "StoryOrchestrator",
    "can_regenerate",
    "ensure_regeneration_allowed",
    "fallback_character_description",
    "load_photo",
    "regenerate_with_policy",
    "remaining_regenerations",
]
