import asyncio
from datetime import datetime

import pytest

from conftest import ScriptedFactory
from recallbot.agent.consolidation_coordinator import ConsolidationCoordinator
from recallbot.agent.context import ContextComposer
from recallbot.agent.loop import GENERIC_APOLOGY, AgentLoop
from recallbot.agent.session_command_handler import SessionCommandHandler
from recallbot.agent.session_mutator import SessionMutator
from recallbot.bus.events import InboundMessage
from recallbot.bus.queue import MessageBus
from recallbot.dispatch.engine import DispatchEngine
from recallbot.memory.consolidator import MemoryConsolidator
from recallbot.providers.base import LLMProvider
from recallbot.session.models import GenerationParams
from recallbot.session.store import JsonSessionStore

PRIMARY = "gemini-exp-1206"


class SlowEcho(LLMProvider):
    """Echoes the new turn after yielding to the event loop a few times."""

    def __init__(self, events: list[str]):
        self.provider_id = PRIMARY
        self.events = events

    async def generate(self, contents) -> str:
        text = contents[-2].text.split(": ", 1)[1].strip()
        self.events.append(f"start:{text}")
        await asyncio.sleep(0.01)
        self.events.append(f"end:{text}")
        return f"echo {text}"


def _loop(tmp_path, factory, clock, no_sleep) -> AgentLoop:
    dispatch = DispatchEngine(factory, sleep=no_sleep)
    store = JsonSessionStore(tmp_path / "context.json")
    coordinator = ConsolidationCoordinator()
    mutator = SessionMutator(
        store=store,
        composer=ContextComposer("Hermione"),
        dispatch=dispatch,
        consolidator=MemoryConsolidator(
            dispatch,
            provider_id="gemini-1.5-flash-8b-001",
            params=GenerationParams(1500, 0.5),
            prompt_template="{persona} {day}",
            persona_name="Hermione",
            clock=clock,
        ),
        coordinator=coordinator,
        persona_name="Hermione",
        clock=clock,
        sleep=no_sleep,
    )
    commands = SessionCommandHandler(mutator=mutator, clock=clock, persona_name="Hermione")
    return AgentLoop(MessageBus(), store=store, mutator=mutator, commands=commands, coordinator=coordinator)


def _msg(content: str, sender: str = "1", **metadata) -> InboundMessage:
    metadata.setdefault("speaker_label", "@ann")
    return InboundMessage(
        channel="telegram",
        sender_id=sender,
        chat_id="100",
        content=content,
        timestamp=datetime(2025, 1, 15, 18, 29, 58),
        metadata=metadata,
    )


@pytest.mark.asyncio
async def test_text_turn_produces_reply(tmp_path, clock, no_sleep) -> None:
    factory = ScriptedFactory({PRIMARY: ["Hello, Ann!"]})
    loop = _loop(tmp_path, factory, clock, no_sleep)

    out = await loop.process_message(_msg("Hello"))

    assert out.content == "Hello, Ann!"
    assert out.reply_to is None
    assert out.metadata == {"used_backup": False, "failed": False}
    turn = loop.store.get("1").history[0]
    assert (turn.speaker, turn.text, turn.timestamp) == ("@ann", "Hello", "15.01.2025, 18:29:58")


@pytest.mark.asyncio
async def test_group_reply_quotes_the_message(tmp_path, clock, no_sleep) -> None:
    factory = ScriptedFactory({PRIMARY: ["Hi all"]})
    loop = _loop(tmp_path, factory, clock, no_sleep)

    out = await loop.process_message(_msg("Hello", is_group=True, message_id="77"))

    assert out.reply_to == "77"


@pytest.mark.asyncio
async def test_blank_text_is_ignored(tmp_path, clock, no_sleep) -> None:
    loop = _loop(tmp_path, ScriptedFactory({}), clock, no_sleep)
    assert await loop.process_message(_msg("   ")) is None


@pytest.mark.asyncio
async def test_same_user_updates_run_in_arrival_order(tmp_path, clock, no_sleep) -> None:
    events: list[str] = []
    loop = _loop(tmp_path, lambda provider_id, params: SlowEcho(events), clock, no_sleep)

    loop.submit(_msg("one"))
    loop.submit(_msg("two"))
    await loop.drain()

    assert events == ["start:one", "end:one", "start:two", "end:two"]
    assert [t.text for t in loop.store.get("1").history] == ["one", "echo one", "two", "echo two"]
    replies = [loop.bus.outbound.get_nowait().content for _ in range(2)]
    assert replies == ["echo one", "echo two"]


@pytest.mark.asyncio
async def test_different_users_run_concurrently(tmp_path, clock, no_sleep) -> None:
    events: list[str] = []
    loop = _loop(tmp_path, lambda provider_id, params: SlowEcho(events), clock, no_sleep)

    loop.submit(_msg("one", sender="1"))
    loop.submit(_msg("two", sender="2"))
    await loop.drain()

    assert events[:2] == ["start:one", "start:two"]


@pytest.mark.asyncio
async def test_unexpected_error_is_answered_with_apology(tmp_path, clock, no_sleep, monkeypatch) -> None:
    loop = _loop(tmp_path, ScriptedFactory({}), clock, no_sleep)

    async def _explode(*args, **kwargs):
        raise RuntimeError("bug")

    monkeypatch.setattr(loop.mutator, "handle_text", _explode)

    await loop.submit(_msg("Hello"))

    out = loop.bus.outbound.get_nowait()
    assert out.content == GENERIC_APOLOGY


@pytest.mark.asyncio
async def test_run_consumes_the_bus_until_stopped(tmp_path, clock, no_sleep) -> None:
    factory = ScriptedFactory({PRIMARY: ["pong"]})
    loop = _loop(tmp_path, factory, clock, no_sleep)
    runner = asyncio.create_task(loop.run())

    await loop.bus.publish_inbound(_msg("ping"))
    out = await asyncio.wait_for(loop.bus.consume_outbound(), timeout=2.0)
    loop.stop()
    await asyncio.wait_for(runner, timeout=2.0)

    assert out.content == "pong"
