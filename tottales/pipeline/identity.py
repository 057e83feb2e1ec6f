"""
Character description extraction from a child's reference photos.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import mimetypes
from pathlib import Path
from typing import Sequence
from urllib.parse import unquote, urlparse

import requests

from tottales.common.errors import EmptyGenerationError, PhotoUnavailableError
from tottales.common.llm import ImageInput, TextGenerationClient

logger = logging.getLogger(__name__)

PhotoRef = str | Path

PHOTO_DOWNLOAD_TIMEOUT_SECONDS = 30


def fallback_character_description(child_name: str) -> str:
    return f"A young child named {child_name}"


def build_character_analysis_prompt(
    child_name: str,
    child_age: int | None = None,
    child_gender: str | None = None,
) -> str:
    details = [f"Child's name: {child_name}"]
    if child_age is not None:
        details.append(f"Age: {child_age} years old")
    if child_gender:
        details.append(f"Gender: {child_gender}")
    detail_block = "\n".join(details)

    return f"""You are helping create a children's storybook. Analyze these photos of a child and provide a detailed character description that can be used to maintain consistency when generating illustrations.

{detail_block}

Please describe the following physical features in detail:
1. Hair: color, style, length, texture
2. Eyes: color, shape
3. Skin tone
4. Face shape and distinguishing features
5. Approximate body type/build for their age
6. Any distinctive features (dimples, freckles, etc.)

Format your response as a concise character description paragraph that could be included in an image generation prompt. Focus on features that are most distinctive and would help maintain consistency.

Example format:
"A 4-year-old girl with curly auburn hair that reaches her shoulders, bright green eyes, light skin with a few freckles across her nose, round face with rosy cheeks and a small dimple when she smiles."

Only provide the description paragraph, no additional commentary."""


class CharacterAnalyzer:
    """
    Derives a reusable physical description of a child from one or more photos.

    The result is meant to be cached on the child record and restated in every
    illustration prompt; this class never persists anything itself.
    """

    def __init__(self, *, text_client: TextGenerationClient) -> None:
        self._text_client = text_client

    async def analyze_child_photos(
        self,
        photos: Sequence[PhotoRef],
        child_name: str,
        child_age: int | None = None,
        child_gender: str | None = None,
    ) -> str:
        """
        Describe the child's stable visual features in one paragraph.

        Raises
        ------
        PhotoUnavailableError
            When none of ``photos`` can be read.
        EmptyGenerationError
            When the model answers with an empty description.
        """
        images: list[ImageInput] = []
        for photo in photos:
            try:
                images.append(await load_photo(photo))
            except (OSError, ValueError, requests.RequestException) as exc:
                logger.warning("Skipping unreadable photo %s: %s", photo, exc)

        if not images:
            raise PhotoUnavailableError(
                f"None of the {len(photos)} photo(s) for {child_name} could be read."
            )

        prompt = build_character_analysis_prompt(child_name, child_age, child_gender)
        description = (await self._text_client.generate_with_images(prompt, images)).strip()
        description = description.strip('"').strip()
        if not description:
            raise EmptyGenerationError("Character analysis returned an empty description.")

        logger.info("Derived character description for %s from %d photo(s).", child_name, len(images))
        return description


async def load_photo(reference: PhotoRef) -> ImageInput:
    """
    Read a photo reference (http(s) URL, ``file://`` URI, ``data:`` URI, or local path)
    into a base64 payload.
    """
    candidate = str(reference).strip()
    if not candidate:
        raise ValueError("Photo reference is empty.")

    if candidate.startswith("data:"):
        header, _, encoded = candidate.partition(",")
        if not encoded:
            raise ValueError("Data URI carries no payload.")
        mime_type = header[5:].split(";", 1)[0] or "image/jpeg"
        return ImageInput(data_base64=encoded, mime_type=mime_type)

    if candidate.lower().startswith(("http://", "https://")):
        data, content_type = await asyncio.to_thread(_download_photo, candidate)
        mime_type = content_type if content_type.startswith("image/") else _guess_mime_type(candidate)
        return _encode(data, mime_type)

    if candidate.lower().startswith("file://"):
        image_path = Path(unquote(urlparse(candidate).path))
    else:
        image_path = Path(candidate).expanduser()

    data = await asyncio.to_thread(image_path.read_bytes)
    return _encode(data, _guess_mime_type(image_path.name))


def _encode(data: bytes, mime_type: str) -> ImageInput:
    if not data:
        raise ValueError("Photo is empty.")
    return ImageInput(data_base64=base64.b64encode(data).decode("ascii"), mime_type=mime_type)


def _download_photo(url: str) -> tuple[bytes, str]:
    response = requests.get(url, timeout=PHOTO_DOWNLOAD_TIMEOUT_SECONDS)
    response.raise_for_status()
    content_type = response.headers.get("Content-Type", "").split(";", 1)[0].strip()
    return response.content, content_type


def _guess_mime_type(name: str) -> str:
    mime_type, _ = mimetypes.guess_type(name.split("?", 1)[0])
    return mime_type or "image/jpeg"
