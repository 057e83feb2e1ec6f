"""
Utility script to exercise the Replicate integration with a sample scene.

Usage:
    python scripts/run_illustration_example.py \
        --child-name "Laura" \
        --scene "Laura rides a gentle dragon through a sunset sky sprinkled with stars." \
        --output laura_dragon.png

Environment variables:
    REPLICATE_API_TOKEN  - required unless you pass --api-token
    TOTTALES_IMAGE_MODEL - optional model override (falls back to REPLICATE_MODEL)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Ensure project root is on the Python path when running as a script.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from tottales.ai_generation import IllustrationGenerator, ReplicateImageClient  # noqa: E402
from tottales.common import TotTalesError  # noqa: E402
from tottales.pipeline import fallback_character_description  # noqa: E402
from tottales.storage import extension_for_mime_type  # noqa: E402


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Generate a single character-consistent TotTales illustration via Replicate."
    )
    parser.add_argument(
        "--child-name",
        required=True,
        help="Name of the child featured in the illustration.",
    )
    parser.add_argument(
        "--scene",
        required=True,
        help="Scene description narrating what should be illustrated.",
    )
    parser.add_argument(
        "--description",
        default=None,
        help="Character description to restate in the prompt. Defaults to a generic one.",
    )
    parser.add_argument(
        "--style",
        default="soft watercolor illustration, warm pastel palette",
        help="Art style modifier placed at the start of the prompt.",
    )
    parser.add_argument(
        "--output",
        default="illustration",
        help="Output file path. The extension is derived from the returned image type if missing.",
    )
    parser.add_argument(
        "--api-token",
        default=None,
        help="Optional Replicate API token override (otherwise uses environment variable).",
    )
    parser.add_argument(
        "--model",
        default=None,
        help="Optional Replicate model identifier override (owner/model:version).",
    )
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> Path:
    client = ReplicateImageClient(api_token=args.api_token, model_identifier=args.model)
    generator = IllustrationGenerator(image_client=client)

    print("Running generation with the following parameters:")
    print(f"  Child name: {args.child_name}")
    print(f"  Scene     : {args.scene}")
    print(f"  Style     : {args.style}")
    print(f"  Model     : {client.model_identifier}")

    image = await generator.generate_illustration(
        art_style_modifier=args.style,
        character_description=args.description or fallback_character_description(args.child_name),
        child_name=args.child_name,
        scene_description=args.scene,
        image_prompt=args.scene,
    )

    output = Path(args.output)
    if not output.suffix:
        output = output.with_suffix(f".{extension_for_mime_type(image.mime_type)}")
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(image.data)
    return output


def main(argv: list[str]) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    try:
        output = asyncio.run(run(args))
    except (TotTalesError, ValueError) as exc:
        print(f"Error: {exc}")
        return 1

    print(f"\nIllustration saved to {output}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
