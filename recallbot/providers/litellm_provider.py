"""LiteLLM-backed provider adapter."""

from __future__ import annotations

import asyncio
import base64
from typing import Any

import litellm
from litellm import acompletion

from recallbot.logging import get_logger, mask_secret
from recallbot.providers.base import (
    ContentPart,
    ErrorKind,
    LLMProvider,
    MediaPart,
    ProviderError,
    TextPart,
)
from recallbot.providers.registry import ProviderSpec
from recallbot.session.models import GenerationParams

logger = get_logger("recallbot.providers.litellm")

# Disable LiteLLM logging noise
litellm.suppress_debug_info = True
litellm.drop_params = True


def classify_exception(exc: BaseException) -> ErrorKind:
    """Map a LiteLLM (or transport) exception onto the provider error taxonomy."""
    if isinstance(exc, (asyncio.TimeoutError, litellm.Timeout)):
        return ErrorKind.TIMEOUT
    # ContentPolicyViolationError subclasses BadRequestError, so it goes first.
    if isinstance(exc, litellm.ContentPolicyViolationError):
        return ErrorKind.CONTENT_BLOCKED
    if isinstance(exc, litellm.RateLimitError):
        return ErrorKind.RATE_LIMITED
    if isinstance(exc, litellm.ServiceUnavailableError):
        return ErrorKind.UNAVAILABLE
    if isinstance(exc, litellm.BadRequestError):
        return ErrorKind.INVALID_REQUEST

    status = getattr(exc, "status_code", None)
    if status == 429:
        return ErrorKind.RATE_LIMITED
    if status == 503:
        return ErrorKind.UNAVAILABLE
    if status == 400:
        return ErrorKind.INVALID_REQUEST
    return ErrorKind.UNKNOWN


def _data_url(part: MediaPart) -> str:
    encoded = base64.b64encode(part.data).decode("ascii")
    return f"data:{part.mime_type};base64,{encoded}"


class LiteLLMProvider(LLMProvider):
    """
    One model, one set of generation params, one call at a time.

    Structured providers receive the fragments as ordered content blocks with media
    inlined as base64 data URLs. Flat providers receive all fragments joined into a
    single text block and cannot take media. Both get the persona as a system message.
    """

    def __init__(
        self,
        spec: ProviderSpec,
        params: GenerationParams,
        *,
        api_key: str | None = None,
        api_base: str | None = None,
        system_prompt: str = "",
        timeout: float = 120.0,
    ):
        self.spec = spec
        self.provider_id = spec.id
        self.params = params
        self.api_key = api_key
        self.api_base = api_base
        self.system_prompt = system_prompt
        self.timeout = timeout

    def _user_content(self, contents: list[ContentPart]) -> str | list[dict[str, Any]]:
        if not self.spec.structured_content:
            if any(isinstance(p, MediaPart) for p in contents):
                raise ProviderError(
                    ErrorKind.INVALID_REQUEST,
                    f"{self.spec.id} does not accept media",
                    provider_id=self.spec.id,
                )
            return "".join(f"{p.text}\n" for p in contents if isinstance(p, TextPart)).strip()

        blocks: list[dict[str, Any]] = []
        for part in contents:
            if isinstance(part, TextPart):
                blocks.append({"type": "text", "text": part.text})
            elif part.mime_type.startswith("image/"):
                blocks.append({"type": "image_url", "image_url": {"url": _data_url(part)}})
            else:
                blocks.append({"type": "file", "file": {"file_data": _data_url(part)}})
        return blocks

    def build_messages(self, contents: list[ContentPart]) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        messages.append({"role": "user", "content": self._user_content(contents)})
        return messages

    def _error(self, kind: ErrorKind, message: str, status_code: int | None = None) -> ProviderError:
        if self.api_key and self.api_key in message:
            message = message.replace(self.api_key, mask_secret(self.api_key))
        return ProviderError(kind, message, provider_id=self.spec.id, status_code=status_code)

    async def generate(self, contents: list[ContentPart]) -> str:
        kwargs: dict[str, Any] = {
            "model": self.spec.litellm_model,
            "messages": self.build_messages(contents),
            "max_tokens": max(1, self.params.max_output_tokens),
            "temperature": self.params.temperature,
            "timeout": self.timeout,
        }
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base

        try:
            response = await asyncio.wait_for(acompletion(**kwargs), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.error("llm_call_timeout", provider=self.spec.id, timeout=self.timeout)
            raise self._error(ErrorKind.TIMEOUT, f"{self.spec.id} timed out after {self.timeout}s") from e
        except ProviderError:
            raise
        except Exception as e:
            kind = classify_exception(e)
            err = self._error(kind, str(e), getattr(e, "status_code", None))
            logger.warning("llm_call_failed", provider=self.spec.id, kind=kind.value, error=err.message)
            raise err from e

        return self._parse_response(response)

    def _parse_response(self, response: Any) -> str:
        choices = getattr(response, "choices", None) or []
        if not choices:
            raise self._error(ErrorKind.CONTENT_BLOCKED, f"{self.spec.id} returned no candidates")
        choice = choices[0]
        if getattr(choice, "finish_reason", None) == "content_filter":
            raise self._error(ErrorKind.CONTENT_BLOCKED, f"{self.spec.id} blocked the response")
        content = getattr(choice.message, "content", None)
        return content or ""
