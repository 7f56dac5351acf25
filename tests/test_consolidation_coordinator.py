"""Tests for per-user sequencing and background consolidation scheduling.

Covers:
1. run_exclusive serializes work for one user
2. start_background de-duplicates and waits for the user's lock
3. Lock dict batch cleanup when exceeding 100 entries
"""

import asyncio

import pytest

from recallbot.agent.consolidation_coordinator import ConsolidationCoordinator


@pytest.mark.asyncio
async def test_run_exclusive_serializes_same_user() -> None:
    coordinator = ConsolidationCoordinator()
    events: list[str] = []

    async def work(tag: str) -> str:
        events.append(f"start:{tag}")
        await asyncio.sleep(0.01)
        events.append(f"end:{tag}")
        return tag

    results = await asyncio.gather(
        coordinator.run_exclusive("u", lambda: work("a")),
        coordinator.run_exclusive("u", lambda: work("b")),
    )

    assert results == ["a", "b"]
    assert events == ["start:a", "end:a", "start:b", "end:b"]
    assert "u" not in coordinator.locks


@pytest.mark.asyncio
async def test_background_task_is_deduplicated_and_waits_for_lock() -> None:
    coordinator = ConsolidationCoordinator()
    runs: list[str] = []

    async def consolidate() -> None:
        runs.append("consolidated")

    async def update() -> None:
        first = coordinator.start_background("u", consolidate)
        second = coordinator.start_background("u", consolidate)
        assert first is not None and second is None
        await asyncio.sleep(0.01)
        # still holding the lock: consolidation has not run yet
        assert runs == []

    await coordinator.run_exclusive("u", update)
    await coordinator.drain()

    assert runs == ["consolidated"]
    assert coordinator.in_progress == set()
    assert coordinator.tasks == {}


@pytest.mark.asyncio
async def test_background_failure_is_contained() -> None:
    coordinator = ConsolidationCoordinator()

    async def boom() -> None:
        raise RuntimeError("summary failed")

    coordinator.start_background("u", boom)
    await coordinator.drain()

    assert coordinator.in_progress == set()
    # the next threshold can schedule again
    assert coordinator.start_background("u", lambda: asyncio.sleep(0)) is not None
    await coordinator.drain()


def test_prune_lock_batch_cleans_idle_entries() -> None:
    coordinator = ConsolidationCoordinator()
    for i in range(120):
        coordinator.locks[f"user{i}"] = asyncio.Lock()
    coordinator.in_progress.add("user3")

    coordinator.prune_lock("user0", coordinator.locks["user0"])

    assert list(coordinator.locks) == ["user3"]


@pytest.mark.asyncio
async def test_late_arrival_queues_behind_waiting_updates() -> None:
    coordinator = ConsolidationCoordinator()
    events: list[str] = []
    late: list[asyncio.Task] = []

    async def work(tag: str) -> None:
        events.append(f"start:{tag}")
        if tag == "b":
            late.append(asyncio.create_task(coordinator.run_exclusive("u", lambda: work("d"))))
        await asyncio.sleep(0.01)
        events.append(f"end:{tag}")

    await asyncio.gather(*(coordinator.run_exclusive("u", lambda t=t: work(t)) for t in "abc"))
    await asyncio.gather(*late)

    assert events == [
        "start:a", "end:a", "start:b", "end:b", "start:c", "end:c", "start:d", "end:d",
    ]
    assert coordinator.waiting == {} and coordinator.locks == {}
