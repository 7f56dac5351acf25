"""Primary/backup dispatch over provider adapters."""

from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack
from dataclasses import dataclass

from recallbot.dispatch.retry import RetryPolicy, Sleep
from recallbot.logging import get_logger
from recallbot.providers.base import ContentPart
from recallbot.providers.registry import AdapterFactory
from recallbot.session.models import GenerationParams

logger = get_logger(__name__)


@dataclass(frozen=True)
class DispatchResult:
    text: str
    provider_id: str
    used_backup: bool = False


class DispatchEngine:
    """
    Runs generation requests against provider adapters.

    ``generate_with_fallback`` tries the primary with the chat retry policy and,
    on any failure, the backup with the same policy. When both fail the primary's
    error is raised. Every adapter created during a call is closed on exit.
    """

    def __init__(
        self,
        adapter_factory: AdapterFactory,
        chat_policy: RetryPolicy | None = None,
        summary_policy: RetryPolicy | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.adapter_factory = adapter_factory
        self.chat_policy = chat_policy or RetryPolicy(max_attempts=3)
        self.summary_policy = summary_policy or RetryPolicy(max_attempts=1)
        self._sleep = sleep

    async def _attempt(
        self,
        stack: AsyncExitStack,
        provider_id: str,
        contents: list[ContentPart],
        params: GenerationParams,
        policy: RetryPolicy,
    ) -> str:
        adapter = await stack.enter_async_context(self.adapter_factory(provider_id, params))
        return await policy.run(lambda: adapter.generate(contents), sleep=self._sleep)

    async def generate_with_fallback(
        self,
        primary_id: str,
        backup_id: str,
        contents: list[ContentPart],
        params: GenerationParams,
    ) -> DispatchResult:
        async with AsyncExitStack() as stack:
            try:
                text = await self._attempt(stack, primary_id, contents, params, self.chat_policy)
                return DispatchResult(text=text, provider_id=primary_id)
            except Exception as e:
                primary_error = e
                logger.warning("primary_provider_failed", provider=primary_id, error=str(e))

            try:
                text = await self._attempt(stack, backup_id, contents, params, self.chat_policy)
            except Exception as e:
                logger.error(
                    "backup_provider_failed",
                    provider=backup_id,
                    error=str(e),
                    primary_provider=primary_id,
                    primary_error=str(primary_error),
                )
                raise primary_error
            logger.info("backup_provider_answered", provider=backup_id, primary_provider=primary_id)
            return DispatchResult(text=text, provider_id=backup_id, used_backup=True)

    async def generate_single(
        self,
        provider_id: str,
        contents: list[ContentPart],
        params: GenerationParams,
        policy: RetryPolicy | None = None,
    ) -> str:
        """One provider, no fallback. Defaults to the summarization policy."""
        async with AsyncExitStack() as stack:
            return await self._attempt(stack, provider_id, contents, params, policy or self.summary_policy)
