"""
Prompt construction utilities for TotTales illustration generation.
"""

from __future__ import annotations

from typing import Iterable

ILLUSTRATION_REQUIREMENTS: tuple[str, ...] = (
    "Children's book illustration style",
    "{child_name} is the focal point and hero of the scene",
    "Bright, cheerful, safe environment appropriate for toddlers",
    "Expressive, friendly character poses",
    "No text or words in the image",
    "Suitable for young children (ages 2-6)",
    "High quality, detailed illustration",
)


def compose_scene(scene_description: str, image_prompt: str, page_text: str = "") -> str:
    """
    Merge a page's scene description with its illustration prompt.

    When the page carries neither, its narrative text becomes the scene.
    """
    scene = (scene_description or "").strip()
    details = (image_prompt or "").strip()
    if not scene and not details:
        return (page_text or "").strip()
    if not details or details == scene:
        return scene or details
    if not scene:
        return details
    return f"{scene}\n\nAdditional details: {details}"


def build_character_consistent_prompt(
    art_style_modifier: str,
    character_description: str,
    child_name: str,
    scene_description: str,
) -> str:
    """
    Build the composite image prompt used for every page of a story.

    Parameters
    ----------
    art_style_modifier:
        Style text of the selected art style, placed first so it frames the image.
    character_description:
        Cached description of the child. Restated verbatim on every page so the
        child looks the same throughout the book.
    child_name:
        Name of the child that will appear in the illustration.
    scene_description:
        What happens on this page.
    """
    if not child_name or not child_name.strip():
        raise ValueError("child_name must be a non-empty string.")

    if not scene_description or not scene_description.strip():
        raise ValueError("scene_description must be a non-empty string.")

    requirements = _format_bullets(
        line.format(child_name=child_name) for line in ILLUSTRATION_REQUIREMENTS
    )

    return f"""{art_style_modifier.strip()}

CHARACTER: Maintain EXACT consistency with this description.
Name: {child_name}
Description: {character_description.strip()}

SCENE: {scene_description.strip()}

REQUIREMENTS:
{requirements}"""


def _format_bullets(lines: Iterable[str]) -> str:
    return "\n".join(f"- {line}" for line in lines if line.strip())
