"""
Ephemeral progress reporting for a single story generation run.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable


class GenerationStage(str, Enum):
    ANALYZING = "analyzing"
    WRITING = "writing"
    ILLUSTRATING = "illustrating"
    FINALIZING = "finalizing"


@dataclass(frozen=True)
class GenerationProgress:
    """Snapshot passed to the progress callback; never persisted."""

    stage: GenerationStage
    current_page: int
    total_pages: int
    message: str

    @property
    def fraction(self) -> float:
        """Rough completion ratio for progress bars."""
        if self.stage is GenerationStage.FINALIZING:
            return 1.0
        if self.stage is not GenerationStage.ILLUSTRATING or self.total_pages <= 0:
            return 0.0
        return max(0, self.current_page - 1) / self.total_pages


ProgressCallback = Callable[[GenerationProgress], None]
