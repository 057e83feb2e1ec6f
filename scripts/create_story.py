"""
CLI to create a complete TotTales story, or regenerate one page of an existing story.

Usage:
    python scripts/create_story.py create \
        --seed scripts/seed.example.yaml \
        --db tottales_db.yaml \
        --assets ./tottales_assets

    python scripts/create_story.py regenerate \
        --db tottales_db.yaml \
        --assets ./tottales_assets \
        --story-id <story id> --page 3

The seed YAML holds ``user_id`` plus ``child``, ``theme``, and ``art_style`` mappings.
Records that already exist in the database (same ``id``) are reused, so a child's
cached character description carries over between runs.

Environment variables:
    GEMINI_API_KEY       - key for the text / vision model (via LiteLLM)
    REPLICATE_API_TOKEN  - token for the image model
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Mapping

import yaml

from tqdm.auto import tqdm

# Ensure project root is on the Python path when running as a script.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from tottales import (  # noqa: E402
    GenerationProgress,
    GenerationSettings,
    GenerationStage,
    LocalObjectStorage,
    StoryOrchestrator,
    YamlStoryRepository,
    regenerate_with_policy,
)
from tottales.common import TotTalesError  # noqa: E402
from tottales.storage import ArtStyle, Child, Theme  # noqa: E402


class ProgressTracker:
    """
    Provides user-friendly command-line progress updates for story generation.
    """

    def __init__(self) -> None:
        self._page_bar: tqdm | None = None
        self._last_stage: GenerationStage | None = None

    def __call__(self, progress: GenerationProgress) -> None:
        match progress.stage:
            case GenerationStage.ANALYZING:
                self._write(f"[1/4] {progress.message}")
            case GenerationStage.WRITING:
                self._write(f"[2/4] {progress.message}")
            case GenerationStage.ILLUSTRATING:
                if self._page_bar is None:
                    self._write(f"[3/4] Illustrating {progress.total_pages} page(s)...")
                    self._page_bar = tqdm(total=progress.total_pages, desc="Illustrations", unit="page")
                elif self._last_stage is GenerationStage.ILLUSTRATING:
                    self._page_bar.update(1)
                self._page_bar.set_description(f"Page {progress.current_page}")
            case GenerationStage.FINALIZING:
                if self._page_bar is not None:
                    self._page_bar.update(1)
                self.close()
                self._write(f"[4/4] {progress.message}")
        self._last_stage = progress.stage

    def close(self) -> None:
        if self._page_bar is not None:
            self._page_bar.close()
            self._page_bar = None

    @staticmethod
    def _write(message: str) -> None:
        tqdm.write(message)


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create or repair TotTales storybooks.")
    parser.add_argument(
        "--db",
        default="tottales_db.yaml",
        help="YAML file holding children, themes, art styles, stories, and pages.",
    )
    parser.add_argument(
        "--assets",
        default="tottales_assets",
        help="Directory used as object storage for generated illustrations.",
    )
    parser.add_argument(
        "--settings",
        default=None,
        help="Optional YAML file with generation settings (overrides TOTTALES_* variables).",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")

    subparsers = parser.add_subparsers(dest="command", required=True)

    create = subparsers.add_parser("create", help="Generate a complete story.")
    create.add_argument("--seed", required=True, help="Seed YAML with child, theme, and art style.")
    create.add_argument(
        "--pages",
        type=int,
        default=None,
        help="Override the number of pages requested from the narrative model.",
    )

    regenerate = subparsers.add_parser("regenerate", help="Regenerate one page illustration.")
    regenerate.add_argument("--story-id", required=True, help="Story to repair.")
    regenerate.add_argument("--page", type=int, required=True, help="Page number to regenerate.")
    regenerate.add_argument(
        "--force",
        action="store_true",
        help="Skip the regeneration limit check and call the orchestrator directly.",
    )
    return parser.parse_args(argv)


def load_settings(args: argparse.Namespace) -> GenerationSettings:
    settings = GenerationSettings.from_env()
    if args.settings:
        settings = GenerationSettings.from_mapping(
            _load_mapping(Path(args.settings)), base=settings
        )
    if getattr(args, "pages", None):
        settings = GenerationSettings.from_mapping({"page_count": args.pages}, base=settings)
    return settings


async def seed_records(
    repository: YamlStoryRepository, seed: Mapping[str, Any]
) -> tuple[str, Child, Theme, ArtStyle]:
    for key in ("user_id", "child", "theme", "art_style"):
        if key not in seed:
            raise ValueError(f"Seed file must include '{key}'.")

    user_id = str(seed["user_id"])
    child = Child.from_dict({"user_id": user_id, **seed["child"]})
    theme = Theme.from_dict(seed["theme"])
    art_style = ArtStyle.from_dict(seed["art_style"])

    existing_child = await repository.get_child(child.id)
    child = existing_child or await repository.add_child(child)
    theme = await repository.get_theme(theme.id) or await repository.add_theme(theme)
    art_style = await repository.get_art_style(art_style.id) or await repository.add_art_style(art_style)
    return user_id, child, theme, art_style


async def run_create(args: argparse.Namespace, orchestrator: StoryOrchestrator) -> int:
    repository = orchestrator.repository
    seed = _load_mapping(Path(args.seed))
    user_id, child, theme, art_style = await seed_records(repository, seed)

    tracker = ProgressTracker()
    try:
        story_id = await orchestrator.create_complete_story(
            user_id=user_id,
            child_id=child.id,
            theme_id=theme.id,
            art_style_id=art_style.id,
            on_progress=tracker,
        )
    finally:
        tracker.close()

    _print_story(await repository.get_story_with_pages(story_id))
    return 0


async def run_regenerate(args: argparse.Namespace, orchestrator: StoryOrchestrator) -> int:
    repository = orchestrator.repository
    story_with_pages = await repository.get_story_with_pages(args.story_id)
    if story_with_pages is None:
        raise ValueError(f"Story '{args.story_id}' not found in {args.db}.")

    _, pages = story_with_pages
    page = next((item for item in pages if item.page_number == args.page), None)
    if page is None:
        raise ValueError(f"Story '{args.story_id}' has no page {args.page}.")

    if args.force:
        await orchestrator.regenerate_page_illustration(story_id=args.story_id, page_id=page.id)
    else:
        await regenerate_with_policy(orchestrator, story_id=args.story_id, page_id=page.id)

    _print_story(await repository.get_story_with_pages(args.story_id))
    return 0


async def main_async(args: argparse.Namespace) -> int:
    settings = load_settings(args)
    orchestrator = StoryOrchestrator(
        repository=YamlStoryRepository(args.db),
        storage=LocalObjectStorage(args.assets),
        settings=settings,
    )
    if args.command == "create":
        return await run_create(args, orchestrator)
    return await run_regenerate(args, orchestrator)


def main(argv: list[str]) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(main_async(args))
    except (TotTalesError, ValueError) as exc:
        tqdm.write(f"Error: {exc}")
        return 1


def _load_mapping(path: Path) -> Mapping[str, Any]:
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(data, Mapping):
        raise ValueError(f"{path} must deserialize to a mapping.")
    return data


def _print_story(story_with_pages) -> None:
    if story_with_pages is None:
        return
    story, pages = story_with_pages
    tqdm.write(f"Story {story.id}: '{story.title}' [{story.status.value}]")
    if story.cover_image_url:
        tqdm.write(f"  Cover: {story.cover_image_url}")
    for page in pages:
        tqdm.write(
            f"  Page {page.page_number} [{page.status.value}, "
            f"regenerated {page.regeneration_count}x]: {page.image_url or '(no image)'}"
        )


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
