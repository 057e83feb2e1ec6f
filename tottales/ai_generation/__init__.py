"""
AI illustration generation package for TotTales.
"""

from .illustration import GeneratedImage, IllustrationGenerator, is_safety_block
from .prompting import build_character_consistent_prompt, compose_scene
from .replicate_service import (
    ImageGenerationClient,
    ImagePart,
    ReplicateImageClient,
    collect_image_parts,
)

__all__ = [
    "GeneratedImage",
    "IllustrationGenerator",
    "ImageGenerationClient",
    "ImagePart",
    "ReplicateImageClient",
    "build_character_consistent_prompt",
    "collect_image_parts",
    "compose_scene",
    "is_safety_block",
]
