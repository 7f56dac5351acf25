"""Per-user sequencing locks and background consolidation tasks."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

from recallbot.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class ConsolidationCoordinator:
    """
    Owns one asyncio.Lock per user.

    Update processing and background consolidation for the same user both run
    under that lock, so they never interleave their history changes. asyncio.Lock
    wakes waiters in FIFO order, which keeps one user's updates in arrival order.
    """

    def __init__(self) -> None:
        self.in_progress: set[str] = set()
        self.tasks: dict[str, asyncio.Task[Any]] = {}
        self.locks: dict[str, asyncio.Lock] = {}
        self.waiting: dict[str, int] = {}

    def get_lock(self, user_id: str) -> asyncio.Lock:
        lock = self.locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self.locks[user_id] = lock
        return lock

    def _idle(self, user_id: str, lock: asyncio.Lock) -> bool:
        return not lock.locked() and user_id not in self.in_progress and not self.waiting.get(user_id)

    def prune_lock(self, user_id: str, lock: asyncio.Lock) -> None:
        """Drop the lock entry once idle; batch-clean when the dict grows large."""
        if self._idle(user_id, lock):
            self.locks.pop(user_id, None)
        if len(self.locks) > 100:
            stale = [k for k, v in self.locks.items() if self._idle(k, v)]
            for key in stale:
                del self.locks[key]

    async def run_exclusive(self, user_id: str, work: Callable[[], Awaitable[T]]) -> T:
        """Run *work* while holding the user's lock."""
        lock = self.get_lock(user_id)
        self.waiting[user_id] = self.waiting.get(user_id, 0) + 1
        try:
            async with lock:
                return await work()
        finally:
            remaining = self.waiting[user_id] - 1
            if remaining:
                self.waiting[user_id] = remaining
            else:
                del self.waiting[user_id]
            self.prune_lock(user_id, lock)

    def start_background(
        self,
        user_id: str,
        work: Callable[[], Awaitable[Any]],
    ) -> asyncio.Task[Any] | None:
        """Schedule consolidation for *user_id* unless one is already pending."""
        if user_id in self.in_progress:
            logger.debug("consolidation_already_pending", user_id=user_id)
            return None

        lock = self.get_lock(user_id)
        self.in_progress.add(user_id)

        async def _runner() -> None:
            try:
                async with lock:
                    await work()
            except Exception:
                logger.exception("background_consolidation_failed", user_id=user_id)
            finally:
                self.in_progress.discard(user_id)
                self.tasks.pop(user_id, None)
                self.prune_lock(user_id, lock)

        task = asyncio.create_task(_runner())
        self.tasks[user_id] = task
        return task

    async def drain(self) -> None:
        """Wait for every scheduled background consolidation to finish."""
        while self.tasks:
            await asyncio.gather(*list(self.tasks.values()), return_exceptions=True)
