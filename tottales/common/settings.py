"""
Runtime configuration for story generation.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

DEFAULT_PAGE_COUNT = 6
MAX_REGENERATION_ATTEMPTS = 3

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class GenerationSettings:
    """
    Configuration knobs for the story orchestrator and its collaborators.

    Attributes
    ----------
    page_count:
        Number of pages requested from the narrative model for every new story.
    max_regenerations:
        Per-page regeneration cap enforced by the caller-side policy.
    illustration_max_retries:
        Total attempts made for one illustration before giving up.
    illustration_base_delay:
        Seconds to wait after the first failed attempt; doubles on each further failure.
    illustration_timeout:
        Seconds a single illustration attempt may take before it is aborted.
    inter_page_delay:
        Seconds awaited between consecutive page illustrations to respect rate limits.
    enforce_story_validation:
        When True, a narrative that fails the content checks fails the story.
        When False (default) the issues are only logged.
    enforce_prompt_validation:
        When True, an image prompt that fails the content checks fails the page.
        When False (default) the issue is only logged.
    fail_page_on_regeneration_error:
        When True (default), a failed regeneration moves the page to ``failed``.
        When False, the page is left in ``generating``.
    text_model, vision_model, image_model:
        Optional model identifiers. ``None`` lets each client resolve its own default.
    story_bucket:
        Object storage bucket receiving page illustrations.
    """

    page_count: int = DEFAULT_PAGE_COUNT
    max_regenerations: int = MAX_REGENERATION_ATTEMPTS
    illustration_max_retries: int = 3
    illustration_base_delay: float = 2.0
    illustration_timeout: float = 60.0
    inter_page_delay: float = 1.0
    enforce_story_validation: bool = False
    enforce_prompt_validation: bool = False
    fail_page_on_regeneration_error: bool = True
    text_model: str | None = None
    vision_model: str | None = None
    image_model: str | None = None
    story_bucket: str = "story-images"

    def __post_init__(self) -> None:
        if self.page_count < 1:
            raise ValueError(f"page_count must be at least 1, received {self.page_count}.")
        if self.illustration_max_retries < 1:
            raise ValueError("illustration_max_retries must be at least 1.")
        if self.max_regenerations < 0:
            raise ValueError("max_regenerations cannot be negative.")

    @classmethod
    def from_mapping(
        cls,
        data: Mapping[str, Any],
        *,
        base: "GenerationSettings | None" = None,
    ) -> "GenerationSettings":
        """
        Overlay a mapping (e.g. parsed YAML) on top of ``base`` or the defaults.
        """
        known = {item.name: item for item in fields(cls)}
        unknown = sorted(set(data) - set(known))
        if unknown:
            raise ValueError(f"Unknown generation settings: {', '.join(unknown)}.")

        overrides = {
            name: _coerce(value, known[name].type) for name, value in data.items()
        }
        return replace(base or cls(), **overrides)

    @classmethod
    def from_yaml(cls, source: str | Path) -> "GenerationSettings":
        path = Path(source)
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        if not isinstance(data, Mapping):
            raise ValueError("Settings YAML must deserialize to a mapping.")
        return cls.from_mapping(data)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "GenerationSettings":
        """
        Read ``TOTTALES_<FIELD>`` variables, e.g. ``TOTTALES_PAGE_COUNT=8``.
        """
        env = os.environ if environ is None else environ
        overrides: dict[str, Any] = {}
        for item in fields(cls):
            raw = env.get(f"TOTTALES_{item.name.upper()}")
            if raw is not None and raw.strip() != "":
                overrides[item.name] = raw.strip()
        return cls.from_mapping(overrides)


def _coerce(value: Any, annotation: Any) -> Any:
    type_name = annotation if isinstance(annotation, str) else getattr(annotation, "__name__", "")
    if value is None:
        return None

    if type_name == "bool":
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE_VALUES:
            return True
        if text in _FALSE_VALUES:
            return False
        raise ValueError(f"Expected a boolean value, got {value!r}.")

    if type_name == "int":
        return int(value)

    if type_name == "float":
        return float(value)

    return str(value)
