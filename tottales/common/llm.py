"""
LiteLLM-powered chat completion helpers used for text and multimodal generation.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, MutableMapping, Protocol, Sequence

from litellm import acompletion

ChatMessage = Mapping[str, Any]

DEFAULT_TEXT_MODEL = "gemini/gemini-2.0-flash-lite"


@dataclass
class ChatResult:
    """
    Structured response returned from an LLM chat completion.
    """

    text: str
    raw: Any


@dataclass(frozen=True)
class ImageInput:
    """A photo passed to a multimodal model as base64 payload plus MIME type."""

    data_base64: str
    mime_type: str = "image/jpeg"

    def as_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data_base64}"


CompletionCallable = Callable[..., Awaitable[ChatResult]]


class TextGenerationClient(Protocol):
    """Collaborator contract for the text and multimodal model calls."""

    async def generate_text(self, prompt: str) -> str:
        ...

    async def generate_with_images(self, prompt: str, images: Sequence[ImageInput]) -> str:
        ...


async def call_chat_completion(
    *,
    model: str,
    messages: Sequence[ChatMessage],
    temperature: float | None = None,
    max_tokens: int | None = None,
    api_key: str | None = None,
    **extra_kwargs: Any,
) -> ChatResult:
    """
    Invoke LiteLLM's async `acompletion` API and return the consolidated text.
    """
    payload: MutableMapping[str, Any] = {
        "model": model,
        "messages": list(messages),
    }

    if temperature is not None:
        payload["temperature"] = temperature

    if max_tokens is not None:
        payload["max_tokens"] = max_tokens

    if api_key is not None:
        payload["api_key"] = api_key

    payload.update(extra_kwargs)

    response = await acompletion(**payload)

    try:
        message = response["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise RuntimeError("Unexpected LiteLLM response format.") from exc

    text = str(message or "").strip()
    return ChatResult(text=text, raw=response)


class LiteLLMTextClient:
    """
    Text and vision client backed by LiteLLM.

    Parameters
    ----------
    text_model:
        Model used for plain prompts. Falls back to ``TOTTALES_TEXT_MODEL`` then
        ``LITELLM_MODEL``.
    vision_model:
        Model used for prompts carrying photos. Falls back to ``TOTTALES_VISION_MODEL``
        and then to the text model.
    api_key:
        Provider key. Falls back to ``GEMINI_API_KEY`` then ``LITELLM_API_KEY``.
    completion_fn:
        Optional replacement for :func:`call_chat_completion`. Mainly useful for testing.
    """

    def __init__(
        self,
        *,
        text_model: str | None = None,
        vision_model: str | None = None,
        api_key: str | None = None,
        completion_fn: CompletionCallable | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = 4096,
    ) -> None:
        self._text_model = (
            text_model
            or os.getenv("TOTTALES_TEXT_MODEL")
            or os.getenv("LITELLM_MODEL")
            or DEFAULT_TEXT_MODEL
        )
        self._vision_model = (
            vision_model or os.getenv("TOTTALES_VISION_MODEL") or self._text_model
        )
        self._api_key = api_key or os.getenv("GEMINI_API_KEY") or os.getenv("LITELLM_API_KEY")
        self._completion_fn: CompletionCallable = completion_fn or call_chat_completion
        self._temperature = temperature
        self._max_tokens = max_tokens

    @property
    def text_model(self) -> str:
        return self._text_model

    @property
    def vision_model(self) -> str:
        return self._vision_model

    async def generate_text(self, prompt: str) -> str:
        result = await self._completion_fn(
            model=self._text_model,
            messages=[{"role": "user", "content": prompt}],
            temperature=self._temperature,
            max_tokens=self._max_tokens,
            api_key=self._api_key,
        )
        return result.text

    async def generate_with_images(self, prompt: str, images: Sequence[ImageInput]) -> str:
        content: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
        for image in images:
            content.append({"type": "image_url", "image_url": {"url": image.as_data_url()}})

        result = await self._completion_fn(
            model=self._vision_model,
            messages=[{"role": "user", "content": content}],
            temperature=0.2,
            max_tokens=self._max_tokens,
            api_key=self._api_key,
        )
        return result.text
