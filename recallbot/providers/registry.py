"""
Provider registry: the closed set of model ids a session can select.

Each spec maps a stable id (the value stored in session settings) to a LiteLLM
model string, the vendor whose credentials it uses, and how requests are shaped:
structured providers take a list of content blocks (text and inline media),
flat providers get every fragment joined into one text block.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from recallbot.providers.base import ErrorKind, LLMProvider, ProviderError
from recallbot.session.models import GenerationParams

if TYPE_CHECKING:
    from recallbot.config.schema import Config


@dataclass(frozen=True)
class ProviderSpec:
    id: str
    litellm_model: str
    vendor: str                     # key under config.providers
    display_name: str = ""
    structured_content: bool = True
    supports_media: bool = False
    selectable: bool = True         # offered as primary/backup choice


PROVIDERS: tuple[ProviderSpec, ...] = (
    ProviderSpec(
        id="gemini-exp-1206",
        litellm_model="gemini/gemini-exp-1206",
        vendor="gemini",
        display_name="Gemini Experimental 1206",
        supports_media=True,
    ),
    ProviderSpec(
        id="gemini-1.5-pro-002",
        litellm_model="gemini/gemini-1.5-pro-002",
        vendor="gemini",
        display_name="Gemini 1.5 Pro",
        supports_media=True,
    ),
    ProviderSpec(
        id="deepseek-chat",
        litellm_model="deepseek/deepseek-chat",
        vendor="deepseek",
        display_name="DeepSeek Chat",
        structured_content=False,
    ),
    ProviderSpec(
        id="gemini-1.5-flash-8b-001",
        litellm_model="gemini/gemini-1.5-flash-8b-001",
        vendor="gemini",
        display_name="Gemini 1.5 Flash-8B",
        selectable=False,
    ),
)

CHAT_PROVIDER_IDS: tuple[str, ...] = tuple(s.id for s in PROVIDERS if s.selectable)


def find_spec(provider_id: str) -> ProviderSpec | None:
    for spec in PROVIDERS:
        if spec.id == provider_id:
            return spec
    return None


AdapterFactory = Callable[[str, GenerationParams], LLMProvider]


class ProviderFactory:
    """Builds a fresh adapter per call from configuration."""

    def __init__(self, config: "Config"):
        self.config = config

    def __call__(self, provider_id: str, params: GenerationParams) -> LLMProvider:
        from recallbot.providers.litellm_provider import LiteLLMProvider

        spec = find_spec(provider_id)
        if spec is None:
            raise ProviderError(
                ErrorKind.INVALID_REQUEST,
                f"Unknown provider id: {provider_id}",
                provider_id=provider_id,
            )
        creds = self.config.get_provider(spec.vendor)
        if creds is None:
            raise ProviderError(
                ErrorKind.INVALID_REQUEST,
                f"No API key configured for {spec.vendor}",
                provider_id=provider_id,
            )
        return LiteLLMProvider(
            spec,
            params,
            api_key=creds.resolved_api_key,
            api_base=creds.api_base,
            system_prompt=self.config.agent.system_prompt,
            timeout=self.config.agent.request_timeout,
        )
