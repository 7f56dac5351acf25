from __future__ import annotations

from datetime import datetime

import pytest

from recallbot.providers.base import ContentPart, ErrorKind, LLMProvider, ProviderError
from recallbot.session.models import GenerationParams


class ScriptedProvider(LLMProvider):
    """Adapter that replays a script of replies/exceptions, one per call."""

    def __init__(self, provider_id: str, script: list, params: GenerationParams | None = None):
        self.provider_id = provider_id
        self.script = script
        self.params = params
        self.calls: list[list[ContentPart]] = []
        self.closed = False

    async def generate(self, contents: list[ContentPart]) -> str:
        self.calls.append(list(contents))
        step = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(step, BaseException):
            raise step
        return step

    async def aclose(self) -> None:
        self.closed = True


class ScriptedFactory:
    """Adapter factory keyed by provider id; each id shares one script across adapters."""

    def __init__(self, scripts: dict[str, list]):
        self.scripts = scripts
        self.created: list[ScriptedProvider] = []

    def __call__(self, provider_id: str, params: GenerationParams) -> ScriptedProvider:
        if provider_id not in self.scripts:
            raise ProviderError(ErrorKind.INVALID_REQUEST, f"Unknown provider id: {provider_id}", provider_id=provider_id)
        adapter = ScriptedProvider(provider_id, self.scripts[provider_id], params)
        self.created.append(adapter)
        return adapter

    def calls_for(self, provider_id: str) -> int:
        return sum(len(a.calls) for a in self.created if a.provider_id == provider_id)


def transient(provider_id: str = "p") -> ProviderError:
    return ProviderError(ErrorKind.UNAVAILABLE, "503 model overloaded", provider_id=provider_id, status_code=503)


def blocked(provider_id: str = "p") -> ProviderError:
    return ProviderError(ErrorKind.CONTENT_BLOCKED, "blocked", provider_id=provider_id)


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def no_sleep():
    delays: list[float] = []

    async def _sleep(delay: float) -> None:
        delays.append(delay)

    _sleep.delays = delays  # type: ignore[attr-defined]
    return _sleep


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2025, 1, 15, 18, 30, 0))
