"""
Error types raised by the TotTales generation core.
"""

from __future__ import annotations

from typing import Sequence

SAFETY_BLOCKED_MESSAGE = (
    "Image generation blocked by safety filters. Please try a different scene."
)


class TotTalesError(Exception):
    """Base class for every error raised deliberately by the package."""


class RecordNotFoundError(TotTalesError):
    """A referenced child, theme, art style, story or page does not exist."""

    def __init__(self, kind: str, record_id: str | None = None) -> None:
        self.kind = kind
        self.record_id = record_id
        label = kind.replace("_", " ").capitalize()
        if record_id:
            super().__init__(f"{label} not found: {record_id}")
        else:
            super().__init__(f"{label} not found")


class EmptyGenerationError(TotTalesError):
    """A model call succeeded but produced no usable payload."""


class SafetyBlockedError(TotTalesError):
    """The image model refused the prompt on content-safety grounds."""

    def __init__(self, message: str = SAFETY_BLOCKED_MESSAGE) -> None:
        super().__init__(message)


class IllustrationTimeoutError(TotTalesError):
    """A single illustration call took longer than its timeout."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"Illustration generation timed out after {timeout:g}s")


class PhotoUnavailableError(TotTalesError):
    """None of the supplied photo references could be read."""


class ContentValidationError(TotTalesError):
    """Generated text or an image prompt failed the content safety checks."""

    def __init__(self, issues: Sequence[str]) -> None:
        self.issues = list(issues)
        super().__init__("Content failed safety validation: " + "; ".join(self.issues))


class RegenerationLimitError(TotTalesError):
    """A page has already used all of its allowed regenerations."""

    def __init__(self, page_id: str, count: int, limit: int) -> None:
        self.page_id = page_id
        self.count = count
        self.limit = limit
        super().__init__(
            f"Page {page_id} has been regenerated {count} times (limit {limit})."
        )
