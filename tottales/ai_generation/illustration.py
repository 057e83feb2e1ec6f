"""
Reliable single-page illustration generation: prompt assembly, retries, and timeouts.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from tottales.common.errors import (
    ContentValidationError,
    EmptyGenerationError,
    IllustrationTimeoutError,
    SafetyBlockedError,
)

from .prompting import build_character_consistent_prompt, compose_scene
from .replicate_service import ImageGenerationClient, ImagePart

logger = logging.getLogger(__name__)

SleepCallable = Callable[[float], Awaitable[Any]]

SAFETY_MARKERS = ("safety", "blocked", "sensitive")

GeneratedImage = ImagePart


def is_safety_block(error: BaseException) -> bool:
    """Return True when a provider error message reports a content-safety rejection."""
    message = str(error).lower()
    return any(marker in message for marker in SAFETY_MARKERS)


class IllustrationGenerator:
    """
    Turns one page's scene into one image, retrying transient failures.

    Parameters
    ----------
    image_client:
        Any object exposing ``async generate_image_parts(prompt) -> list[ImagePart]``.
    max_retries:
        Total attempts per illustration, including the first.
    base_delay:
        Seconds slept after the first failure; doubled after each further failure.
    timeout:
        Seconds a single attempt may run before :class:`IllustrationTimeoutError`.
    sleep:
        Coroutine used between attempts. Defaults to :func:`asyncio.sleep`.
    """

    def __init__(
        self,
        *,
        image_client: ImageGenerationClient,
        max_retries: int = 3,
        base_delay: float = 2.0,
        timeout: float = 60.0,
        sleep: SleepCallable | None = None,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1.")
        self._image_client = image_client
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._timeout = timeout
        self._sleep: SleepCallable = sleep or asyncio.sleep

    @property
    def max_retries(self) -> int:
        return self._max_retries

    async def generate_illustration(
        self,
        *,
        art_style_modifier: str,
        character_description: str,
        child_name: str,
        scene_description: str,
        image_prompt: str,
        page_text: str = "",
    ) -> GeneratedImage:
        """
        Generate the illustration for one page.

        ``page_text`` stands in for the scene when the page has no scene
        description or image prompt.

        Raises
        ------
        ContentValidationError
            Before any model call, when the page has nothing to illustrate.
        SafetyBlockedError
            Immediately, without further attempts, when the model refuses the prompt.
        ValueError
            Immediately, when the image client rejects its configuration.
        IllustrationTimeoutError, EmptyGenerationError
            Or any provider error, once every attempt has failed.
        """
        scene = compose_scene(scene_description, image_prompt, page_text)
        if not scene:
            raise ContentValidationError(["Page has no scene to illustrate"])

        prompt = build_character_consistent_prompt(
            art_style_modifier,
            character_description,
            child_name,
            scene,
        )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_retries),
            wait=wait_exponential(multiplier=self._base_delay, exp_base=2),
            retry=retry_if_not_exception_type((SafetyBlockedError, ValueError)),
            sleep=self._sleep,
            before_sleep=_log_retry,
            reraise=True,
        )
        return await retrying(self._attempt, prompt)

    async def _attempt(self, prompt: str) -> GeneratedImage:
        try:
            parts = await asyncio.wait_for(
                self._image_client.generate_image_parts(prompt),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            raise IllustrationTimeoutError(self._timeout) from exc
        except (SafetyBlockedError, EmptyGenerationError):
            raise
        except Exception as exc:
            if is_safety_block(exc):
                raise SafetyBlockedError() from exc
            raise

        for part in parts:
            if part.data:
                return part

        raise EmptyGenerationError("No image generated in response")


def _log_retry(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    error = outcome.exception() if outcome is not None else None
    delay = retry_state.next_action.sleep if retry_state.next_action else 0
    logger.warning(
        "Illustration attempt %d failed (%s); retrying in %.1fs.",
        retry_state.attempt_number,
        error,
        delay,
    )
