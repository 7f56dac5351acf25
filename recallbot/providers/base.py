"""Provider capability interface and error taxonomy."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Union


@dataclass(frozen=True)
class TextPart:
    """One ordered prompt fragment."""

    text: str


@dataclass(frozen=True)
class MediaPart:
    """Inline media attached to a request (image or audio bytes)."""

    mime_type: str
    data: bytes


ContentPart = Union[TextPart, MediaPart]


class ErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"
    CONTENT_BLOCKED = "content_blocked"
    INVALID_REQUEST = "invalid_request"
    UNKNOWN = "unknown"


TRANSIENT_KINDS = frozenset({ErrorKind.RATE_LIMITED, ErrorKind.UNAVAILABLE, ErrorKind.TIMEOUT})


class ProviderError(Exception):
    """A provider call failed; ``kind`` drives retry and user-facing messaging."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        provider_id: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.provider_id = provider_id
        self.status_code = status_code

    @property
    def is_transient(self) -> bool:
        return self.kind in TRANSIENT_KINDS

    def __repr__(self) -> str:
        return f"ProviderError({self.kind.value}, {self.message!r}, provider_id={self.provider_id!r})"


def is_transient_error(exc: BaseException) -> bool:
    """Default retry predicate: only classified transient provider errors."""
    return isinstance(exc, ProviderError) and exc.is_transient


class LLMProvider(ABC):
    """
    Uniform generation capability over one model.

    An adapter is bound to one provider id and one set of generation params.
    It keeps no state between calls, so callers create one per request and
    close it when done.
    """

    provider_id: str

    @abstractmethod
    async def generate(self, contents: list[ContentPart]) -> str:
        """Generate a reply for the ordered *contents*. Raises ProviderError."""

    async def aclose(self) -> None:
        """Release provider-side handles. No-op by default."""

    async def __aenter__(self) -> "LLMProvider":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
