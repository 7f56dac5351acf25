"""Model provider adapters."""

from recallbot.providers.base import (
    ContentPart,
    ErrorKind,
    LLMProvider,
    MediaPart,
    ProviderError,
    TextPart,
    is_transient_error,
)
from recallbot.providers.registry import CHAT_PROVIDER_IDS, ProviderFactory, ProviderSpec, find_spec

__all__ = [
    "CHAT_PROVIDER_IDS",
    "ContentPart",
    "ErrorKind",
    "LLMProvider",
    "MediaPart",
    "ProviderError",
    "ProviderFactory",
    "ProviderSpec",
    "TextPart",
    "find_spec",
    "is_transient_error",
]
