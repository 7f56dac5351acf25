"""Configuration schema using Pydantic."""

from __future__ import annotations

import os
import re
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

_ENV_REF_RE = re.compile(r"^\$\{?([A-Za-z_][A-Za-z0-9_]*)\}?$")


def _resolve_env(value: str) -> str:
    """Expand a ``$VAR`` or ``${VAR}`` reference; anything else is returned as-is."""
    if not value:
        return value
    m = _ENV_REF_RE.match(value.strip())
    if not m:
        return value
    return os.environ.get(m.group(1), value)


class Base(BaseModel):
    """Base model accepting both camelCase and snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProviderConfig(Base):
    """Credentials for one model vendor."""

    api_key: str = ""
    api_base: str | None = None

    @property
    def resolved_api_key(self) -> str:
        return _resolve_env(self.api_key)


class ProvidersConfig(Base):
    gemini: ProviderConfig = Field(default_factory=lambda: ProviderConfig(api_key="${GOOGLE_API_KEY}"))
    deepseek: ProviderConfig = Field(default_factory=lambda: ProviderConfig(api_key="${DEEPSEEK_API_KEY}"))


class RetryConfig(Base):
    """Retry-with-backoff budgets for provider calls."""

    chat_max_attempts: int = 3
    summary_max_attempts: int = 1
    base_delay: float = 1.0
    delay_step: float = 1.0


DEFAULT_SYSTEM_PROMPT = (
    "You are Hermione Granger: clever, warm, a little bossy and endlessly curious. "
    "You talk with the user as a friend, remember what they told you before, and answer "
    "in the user's language. Format replies with simple HTML tags only (b, i, u, s, code, pre, "
    "blockquote); never use Markdown."
)

DEFAULT_SUMMARY_PROMPT = (
    "You are {persona}. Read this conversation from {day} and write a short first-person "
    "memory of it: what the user told you about themselves, what you discussed and anything "
    "worth remembering for the future. Keep names, dates and facts. Conversation:"
)


class AgentConfig(Base):
    """Persona and per-session defaults."""

    persona_name: str = "Hermione"
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    max_output_tokens: int = 700
    temperature: float = 1.5
    primary_provider: str = "gemini-exp-1206"
    backup_provider: str = "gemini-1.5-pro-002"
    history_window: int = 20
    consolidation_threshold: int = 30
    pacing_delay: float = 1.0
    request_timeout: float = 120.0
    timezone: str | None = None


class SummarizationConfig(Base):
    provider: str = "gemini-1.5-flash-8b-001"
    max_output_tokens: int = 1500
    temperature: float = 0.5
    prompt: str = DEFAULT_SUMMARY_PROMPT


class MediaConfig(Base):
    provider: str = "gemini-1.5-pro-002"
    max_file_bytes: int = 20 * 1024 * 1024
    image_mime_types: list[str] = Field(default_factory=lambda: [
        "image/jpeg", "image/png", "image/webp", "image/heic", "image/heif",
    ])
    audio_mime_types: list[str] = Field(default_factory=lambda: [
        "audio/ogg", "audio/mpeg", "audio/wav", "audio/mp3", "audio/aac", "audio/flac",
    ])


class TelegramConfig(Base):
    enabled: bool = True
    token: str = "${BOT_API_KEY}"
    allow_from: list[str] = Field(default_factory=list)
    allowed_groups: list[int] = Field(default_factory=list)
    reply_chunk_size: int = 4000

    @property
    def resolved_token(self) -> str:
        return _resolve_env(self.token)


class ChannelsConfig(Base):
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)


class StorageConfig(Base):
    context_file: str = "~/.recallbot/context.json"

    @property
    def context_path(self) -> Path:
        return Path(self.context_file).expanduser()


class LoggingConfig(Base):
    json_output: bool = True
    level: str = "INFO"


class Config(Base):
    """Root configuration for recallbot."""

    agent: AgentConfig = Field(default_factory=AgentConfig)
    summarization: SummarizationConfig = Field(default_factory=SummarizationConfig)
    media: MediaConfig = Field(default_factory=MediaConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    channels: ChannelsConfig = Field(default_factory=ChannelsConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def get_provider(self, vendor: str) -> ProviderConfig | None:
        """Return credentials for *vendor* (``gemini``/``deepseek``) when a key is configured."""
        provider = getattr(self.providers, vendor, None)
        if provider is None:
            return None
        key = provider.resolved_api_key
        if not key or _ENV_REF_RE.match(key):
            return None
        return provider
