"""
Prompt construction utilities for the TotTales narrative workflow.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from tottales.common.settings import DEFAULT_PAGE_COUNT

if TYPE_CHECKING:
    from .narrative import StoryNarrative

DEFAULT_AUDIENCE = "toddlers (ages 2-6)"

JSON_ONLY_INSTRUCTION = "Important: Return ONLY valid JSON, no additional text or markdown."


@dataclass(frozen=True)
class NarrativeRequest:
    """
    Everything the narrative model needs to know about the child and the chosen theme.

    Attributes
    ----------
    child_name:
        Name of the child who stars in the story.
    theme_prompt:
        The theme's narrative seed text (``Theme.base_prompt``).
    character_description:
        Cached physical description of the child, reused verbatim in every prompt.
    child_age:
        Age in years, if known.
    child_gender:
        Gender as recorded on the child profile, if known.
    page_count:
        Exact number of pages to request.
    """

    child_name: str
    theme_prompt: str
    character_description: str
    child_age: int | None = None
    child_gender: str | None = None
    page_count: int = DEFAULT_PAGE_COUNT

    def __post_init__(self) -> None:
        if not self.child_name or not self.child_name.strip():
            raise ValueError("child_name must be a non-empty string.")
        if self.page_count < 1:
            raise ValueError(f"page_count must be at least 1, received {self.page_count}.")

    @property
    def default_title(self) -> str:
        return f"{self.child_name}'s Adventure"


def build_narrative_prompt(request: NarrativeRequest) -> str:
    """
    Build the single prompt that asks the text model for a complete storybook as JSON.
    """
    name = request.child_name
    age_line = (
        f"Age: {request.child_age} years old" if request.child_age is not None else "Young toddler"
    )
    protagonist_lines = [f"- Name: {name}", f"- {age_line}"]
    if request.child_gender:
        protagonist_lines.append(f"- Gender: {request.child_gender}")
    protagonist_lines.append(f"- Physical description: {request.character_description}")
    protagonist = "\n".join(protagonist_lines)

    return f"""You are a children's book author writing for {DEFAULT_AUDIENCE}. Create a short, engaging storybook where the main character is a real child.

CHILD PROTAGONIST:
{protagonist}

STORY THEME:
{request.theme_prompt}

REQUIREMENTS:
1. Write exactly {request.page_count} pages
2. Each page should have 2-3 short sentences (appropriate for toddlers)
3. Use simple vocabulary suitable for ages 2-6
4. Make {name} the hero who drives the action
5. Include age-appropriate emotions and actions
6. End with a positive, satisfying conclusion
7. Keep the tone warm, encouraging, and fun

For each page, also provide:
- A scene description (what's visually happening in detail)
- An image prompt for illustration generation

Respond in this exact JSON format:
{{
  "title": "The story title",
  "pages": [
    {{
      "pageNumber": 1,
      "text": "The narrative text for this page",
      "sceneDescription": "Detailed description of what's happening visually",
      "imagePrompt": "Prompt for generating the illustration"
    }}
  ]
}}

{JSON_ONLY_INSTRUCTION}"""


def build_page_rewrite_prompt(
    request: NarrativeRequest,
    page_number: int,
    existing_story: "StoryNarrative",
    reason: str | None = None,
) -> str:
    """
    Build the prompt used to rewrite one page while keeping continuity with its neighbours.
    """
    previous_page = existing_story.page(page_number - 1)
    current_page = existing_story.page(page_number)
    next_page = existing_story.page(page_number + 1)
    name = request.child_name

    context_lines = [
        f'Previous page ({page_number - 1}): "{previous_page.text}"'
        if previous_page
        else "This is the first page",
        f'Next page ({page_number + 1}): "{next_page.text}"'
        if next_page
        else "This is the last page",
    ]
    current_text = current_page.text if current_page else ""
    reason_block = f"\nREASON FOR REWRITE: {reason}\n" if reason else ""
    context = "\n".join(context_lines)

    return f"""You are rewriting page {page_number} of a children's storybook.

STORY TITLE: {existing_story.title}

CHILD PROTAGONIST:
- Name: {name}
- Physical description: {request.character_description}

STORY THEME: {request.theme_prompt}

CONTEXT:
{context}

Current page to rewrite: "{current_text}"
{reason_block}
Write a new version of page {page_number} that:
1. Maintains story continuity with surrounding pages
2. Uses 2-3 short sentences suitable for toddlers
3. Features {name} as the hero
4. Includes a detailed scene description for illustration

Respond in this exact JSON format:
{{
  "pageNumber": {page_number},
  "text": "The new narrative text",
  "sceneDescription": "Detailed visual description",
  "imagePrompt": "Prompt for illustration generation"
}}

Return ONLY valid JSON."""
