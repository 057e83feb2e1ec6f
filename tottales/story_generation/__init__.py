"""
Narrative generation for personalized TotTales storybooks.
"""

from .narrative import NarrativeGenerator, PageNarrative, StoryNarrative
from .prompting import NarrativeRequest, build_narrative_prompt, build_page_rewrite_prompt

__all__ = [
    "NarrativeGenerator",
    "NarrativeRequest",
    "PageNarrative",
    "StoryNarrative",
    "build_narrative_prompt",
    "build_page_rewrite_prompt",
]
