"""
Keyword-based content safety checks for generated text, prompts, and descriptions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from tottales.story_generation.narrative import StoryNarrative

STORY_DENYLIST = (
    "kill",
    "die",
    "death",
    "blood",
    "scary",
    "monster",
    "hate",
    "stupid",
    "ugly",
    "weapon",
    "gun",
    "knife",
)

IMAGE_PROMPT_DENYLIST = (
    "naked",
    "nude",
    "violent",
    "blood",
    "gore",
    "weapon",
    "gun",
    "knife",
    "scary",
    "horror",
    "adult",
    "sexy",
)

CHARACTER_DESCRIPTION_DENYLIST = (
    "naked",
    "nude",
    "violent",
    "scary",
    "blood",
    "weapon",
    "adult",
)

MIN_STORY_PAGES = 3
MIN_IMAGE_PROMPT_LENGTH = 10


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a safety check. ``issues`` is empty when the content passed."""

    valid: bool
    issues: list[str] = field(default_factory=list)

    @property
    def reason(self) -> str | None:
        return self.issues[0] if self.issues else None

    @classmethod
    def from_issues(cls, issues: Iterable[str]) -> "ValidationResult":
        collected = list(issues)
        return cls(valid=not collected, issues=collected)


def find_denied_terms(text: str, denylist: Iterable[str]) -> list[str]:
    # Plain substring matching, so "die" also flags "diet".
    lowered = (text or "").lower()
    return [term for term in denylist if term in lowered]


def validate_story_content(narrative: "StoryNarrative") -> ValidationResult:
    """
    Check the title and page text of a narrative for unsafe words and structural gaps.
    """
    issues: list[str] = []

    all_text = " ".join([narrative.title, *(page.text for page in narrative.pages)])
    for term in find_denied_terms(all_text, STORY_DENYLIST):
        issues.append(f'Contains inappropriate word: "{term}"')

    if len(narrative.pages) < MIN_STORY_PAGES:
        issues.append("Story is too short")

    for index, page in enumerate(narrative.pages, start=1):
        if not page.text or not page.text.strip():
            issues.append(f"Page {index} has no text")

    return ValidationResult.from_issues(issues)


def validate_image_prompt(prompt: str) -> ValidationResult:
    """Pre-flight check run before an illustration prompt is sent to the image model."""
    denied = find_denied_terms(prompt, IMAGE_PROMPT_DENYLIST)
    if denied:
        return ValidationResult.from_issues([f"Prompt contains blocked term: {denied[0]}"])

    if len((prompt or "").strip()) < MIN_IMAGE_PROMPT_LENGTH:
        return ValidationResult.from_issues(["Prompt is too short"])

    return ValidationResult.from_issues([])


def validate_character_description(description: str) -> ValidationResult:
    if not description or not description.strip():
        return ValidationResult.from_issues(["Character description is empty"])

    return ValidationResult.from_issues(
        f"Character description contains blocked term: {term}"
        for term in find_denied_terms(description, CHARACTER_DESCRIPTION_DENYLIST)
    )
