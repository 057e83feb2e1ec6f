"""
Common utilities shared across TotTales modules.
"""

from .errors import (
    ContentValidationError,
    EmptyGenerationError,
    IllustrationTimeoutError,
    PhotoUnavailableError,
    RecordNotFoundError,
    RegenerationLimitError,
    SafetyBlockedError,
    TotTalesError,
)
from .llm import (
    ChatResult,
    CompletionCallable,
    ImageInput,
    LiteLLMTextClient,
    TextGenerationClient,
    call_chat_completion,
)
from .parsing import parse_json_object, strip_code_fences
from .settings import GenerationSettings

__all__ = [
    "ChatResult",
    "CompletionCallable",
    "ImageInput",
    "LiteLLMTextClient",
    "TextGenerationClient",
    "call_chat_completion",
    "parse_json_object",
    "strip_code_fences",
    "GenerationSettings",
    "TotTalesError",
    "RecordNotFoundError",
    "EmptyGenerationError",
    "SafetyBlockedError",
    "IllustrationTimeoutError",
    "PhotoUnavailableError",
    "ContentValidationError",
    "RegenerationLimitError",
]
