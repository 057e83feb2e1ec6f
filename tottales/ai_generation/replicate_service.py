"""
Integration with Replicate for storybook illustration generation.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import mimetypes
import os
from collections.abc import Iterable as IterableABC
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Protocol

import replicate
import requests

DEFAULT_IMAGE_MODEL = "google/nano-banana"
DOWNLOAD_TIMEOUT_SECONDS = 30


@dataclass(frozen=True)
class ImagePart:
    """Raw image bytes returned by the image model, with their MIME type."""

    data: bytes
    mime_type: str = "image/png"


class ImageGenerationClient(Protocol):
    """Collaborator contract for the image model: zero or more image parts per prompt."""

    async def generate_image_parts(self, prompt: str) -> list[ImagePart]:
        ...


def _build_nano_banana_input(*, prompt: str) -> dict[str, Any]:
    return {
        "prompt": prompt,
        "output_format": "png",
    }


def _build_flux_schnell_input(*, prompt: str) -> dict[str, Any]:
    return {
        "prompt": prompt,
        "aspect_ratio": "1:1",
        "output_format": "png",
        "num_outputs": 1,
    }


def _build_flux_pro_input(*, prompt: str) -> dict[str, Any]:
    return {
        "prompt": prompt,
        "aspect_ratio": "1:1",
        "output_format": "png",
        "safety_tolerance": 2,
        "prompt_upsampling": True,
    }


_MODEL_INPUT_BUILDERS: dict[str, Callable[..., dict[str, Any]]] = {
    "google/nano-banana": _build_nano_banana_input,
    "black-forest-labs/flux-schnell": _build_flux_schnell_input,
    "black-forest-labs/flux-1.1-pro": _build_flux_pro_input,
}


def _build_replicate_input_payload(*, model_identifier: str, prompt: str) -> dict[str, Any]:
    normalized_identifier = model_identifier.strip().lower()
    builder = _MODEL_INPUT_BUILDERS.get(normalized_identifier)
    if builder is None and ":" in normalized_identifier:
        base_identifier = normalized_identifier.split(":", maxsplit=1)[0]
        builder = _MODEL_INPUT_BUILDERS.get(base_identifier)
    if builder is None:
        supported_models = ", ".join(sorted(set(_MODEL_INPUT_BUILDERS)))
        raise ValueError(
            "Model identifier "
            f"'{model_identifier}' is not configured with a default input payload. "
            f"Supported models: {supported_models}."
        )

    return builder(prompt=prompt)


class ReplicateImageClient:
    """
    Async wrapper around the Replicate client for storybook illustrations.

    Parameters
    ----------
    api_token:
        Replicate API token. Falls back to ``REPLICATE_API_TOKEN`` environment variable.
    model_identifier:
        Model string in the ``owner/model`` or ``owner/model:version`` format. Falls back
        to ``TOTTALES_IMAGE_MODEL``, then ``REPLICATE_MODEL``, then ``google/nano-banana``.
    client:
        Optional pre-configured :class:`replicate.Client`. Mainly useful for testing.
    """

    def __init__(
        self,
        *,
        api_token: str | None = None,
        model_identifier: str | None = None,
        client: replicate.Client | None = None,
        **model_kwargs: Any,
    ) -> None:
        self._api_token = api_token or os.getenv("REPLICATE_API_TOKEN")
        if not self._api_token and not client:
            raise ValueError(
                "Replicate API token is required. Set REPLICATE_API_TOKEN or pass api_token."
            )

        self._model_identifier = (
            model_identifier
            or os.getenv("TOTTALES_IMAGE_MODEL")
            or os.getenv("REPLICATE_MODEL")
            or DEFAULT_IMAGE_MODEL
        )
        self._client = client or replicate.Client(api_token=self._api_token)
        self._model_kwargs = dict(model_kwargs)

    @property
    def model_identifier(self) -> str:
        """Return the model identifier currently used."""
        return self._model_identifier

    async def generate_image_parts(self, prompt: str) -> list[ImagePart]:
        """
        Run the configured model once and collect every image it returned.
        """
        replicate_input = _build_replicate_input_payload(
            model_identifier=self._model_identifier,
            prompt=prompt,
        )
        # Allow the caller to tweak model-specific knobs (e.g., seed, aspect_ratio).
        replicate_input.update(self._model_kwargs)

        output = await self._client.async_run(self._model_identifier, input=replicate_input)
        return await collect_image_parts(output)


async def collect_image_parts(raw: Any) -> list[ImagePart]:
    """
    Normalize whatever the image model returned into a list of :class:`ImagePart`.

    Handles raw bytes, Replicate file outputs, URLs, ``data:`` URIs, inline-data
    mappings, and arbitrarily nested iterables of those.
    """
    if raw is None:
        return []

    if isinstance(raw, (bytes, bytearray)):
        data = bytes(raw)
        return [ImagePart(data=data, mime_type=sniff_mime_type(data))] if data else []

    if isinstance(raw, str):
        part = await _part_from_string(raw)
        return [part] if part is not None else []

    if isinstance(raw, Mapping):
        part = _part_from_inline_mapping(raw)
        return [part] if part is not None else []

    if hasattr(raw, "aread") or hasattr(raw, "read"):
        data = await raw.aread() if hasattr(raw, "aread") else raw.read()
        if not data:
            return []
        hint = str(getattr(raw, "url", "") or "")
        return [ImagePart(data=data, mime_type=sniff_mime_type(data, hint))]

    if isinstance(raw, IterableABC):
        parts: list[ImagePart] = []
        for item in raw:
            parts.extend(await collect_image_parts(item))
        return parts

    return []


async def _part_from_string(value: str) -> ImagePart | None:
    candidate = value.strip()
    if candidate.startswith("data:"):
        header, _, encoded = candidate.partition(",")
        mime_type = header[5:].split(";", 1)[0] or "image/png"
        try:
            data = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError):
            return None
        return ImagePart(data=data, mime_type=mime_type) if data else None

    if candidate.lower().startswith(("http://", "https://")):
        data, content_type = await asyncio.to_thread(_download, candidate)
        if not data:
            return None
        mime_type = content_type if content_type.startswith("image/") else sniff_mime_type(data, candidate)
        return ImagePart(data=data, mime_type=mime_type)

    # Plain text parts carry no image.
    return None


def _part_from_inline_mapping(value: Mapping[str, Any]) -> ImagePart | None:
    inline = value.get("inline_data") or value.get("inlineData") or value
    if not isinstance(inline, Mapping) or not inline.get("data"):
        return None

    payload = inline["data"]
    if isinstance(payload, str):
        try:
            data = base64.b64decode(payload)
        except (binascii.Error, ValueError):
            return None
    else:
        data = bytes(payload)

    mime_type = inline.get("mime_type") or inline.get("mimeType") or sniff_mime_type(data)
    return ImagePart(data=data, mime_type=str(mime_type))


def _download(url: str) -> tuple[bytes, str]:
    response = requests.get(url, timeout=DOWNLOAD_TIMEOUT_SECONDS)
    response.raise_for_status()
    content_type = response.headers.get("Content-Type", "").split(";", 1)[0].strip()
    return response.content, content_type


def sniff_mime_type(data: bytes, hint: str | None = None) -> str:
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if hint:
        guessed, _ = mimetypes.guess_type(hint.split("?", 1)[0])
        if guessed and guessed.startswith("image/"):
            return guessed
    return "image/png"
