from pathlib import Path

import pytest

from conftest import ScriptedFactory, blocked, transient
from recallbot.agent import replies
from recallbot.agent.consolidation_coordinator import ConsolidationCoordinator
from recallbot.agent.context import ContextComposer
from recallbot.agent.media import MediaAttachment
from recallbot.agent.session_mutator import SessionMutator
from recallbot.config.schema import MediaConfig
from recallbot.dispatch.engine import DispatchEngine
from recallbot.memory.consolidator import MemoryConsolidator
from recallbot.providers.base import MediaPart, TextPart
from recallbot.session.models import GenerationParams
from recallbot.session.store import JsonSessionStore

PRIMARY = "gemini-exp-1206"
BACKUP = "gemini-1.5-pro-002"
SUMMARY = "gemini-1.5-flash-8b-001"
SENT_AT = "15.01.2025, 18:29:58"


class FailingStore(JsonSessionStore):
    async def save(self) -> None:
        raise OSError("read-only filesystem")


def _mutator(
    tmp_path: Path, factory, clock, no_sleep, *, store=None, threshold: int = 30, media_config=None,
) -> SessionMutator:
    dispatch = DispatchEngine(factory, sleep=no_sleep)
    return SessionMutator(
        store=store or JsonSessionStore(tmp_path / "context.json"),
        composer=ContextComposer("Hermione"),
        dispatch=dispatch,
        consolidator=MemoryConsolidator(
            dispatch,
            provider_id=SUMMARY,
            params=GenerationParams(1500, 0.5),
            prompt_template="Memories of {persona} for {day}:",
            persona_name="Hermione",
            clock=clock,
        ),
        coordinator=ConsolidationCoordinator(),
        persona_name="Hermione",
        clock=clock,
        consolidation_threshold=threshold,
        media_config=media_config,
        sleep=no_sleep,
    )


@pytest.mark.asyncio
async def test_first_message_is_answered_and_recorded(tmp_path, clock, no_sleep) -> None:
    factory = ScriptedFactory({PRIMARY: ["Hi! <b>Nice</b> to meet you."]})
    mutator = _mutator(tmp_path, factory, clock, no_sleep)

    reply = await mutator.handle_text("1", "@ann", "Hello", SENT_AT)

    assert reply.text == "Hi! <b>Nice</b> to meet you."
    assert not reply.used_backup and not reply.failed
    assert factory.created[0].calls[0] == [TextPart("@ann(15.01.2025, 18:29:58): Hello\n"), TextPart("Hermione:")]
    session = mutator.store.get("1")
    assert [(t.speaker, t.text) for t in session.history] == [
        ("@ann", "Hello"), ("Hermione", "Hi! <b>Nice</b> to meet you."),
    ]
    assert session.history[0].timestamp == SENT_AT
    assert session.history[1].timestamp == "15.01.2025, 18:30:00"
    assert session.message_count_since_consolidation == 2
    assert (tmp_path / "context.json").exists()
    assert no_sleep.delays == [1.0]


@pytest.mark.asyncio
async def test_backup_answer_is_prefixed(tmp_path, clock, no_sleep) -> None:
    factory = ScriptedFactory({PRIMARY: [transient(PRIMARY)], BACKUP: ["From the backup."]})
    mutator = _mutator(tmp_path, factory, clock, no_sleep)

    reply = await mutator.handle_text("1", "@ann", "Hello", SENT_AT)

    assert reply.used_backup
    assert reply.text == replies.BACKUP_PREFIX + "From the backup."
    assert factory.calls_for(PRIMARY) == 3
    assert mutator.store.get("1").history[-1].text.startswith("<i>backup model:</i>")


@pytest.mark.asyncio
async def test_failed_generation_leaves_history_untouched(tmp_path, clock, no_sleep) -> None:
    factory = ScriptedFactory({PRIMARY: [blocked(PRIMARY)], BACKUP: [blocked(BACKUP)]})
    mutator = _mutator(tmp_path, factory, clock, no_sleep)

    reply = await mutator.handle_text("1", "@ann", "something rude", SENT_AT)

    assert reply.failed
    assert reply.text == replies.CONTENT_BLOCKED
    session = mutator.store.get("1")
    assert session.history == []
    assert session.message_count_since_consolidation == 0
    assert (tmp_path / "context.json").exists()


@pytest.mark.asyncio
async def test_blank_answer_gets_a_placeholder(tmp_path, clock, no_sleep) -> None:
    factory = ScriptedFactory({PRIMARY: ["<script>x</script>  "]})
    mutator = _mutator(tmp_path, factory, clock, no_sleep)

    reply = await mutator.handle_text("1", "@ann", "Hello", SENT_AT)

    assert reply.text == replies.EMPTY_REPLY


@pytest.mark.asyncio
async def test_threshold_starts_background_consolidation(tmp_path, clock, no_sleep) -> None:
    factory = ScriptedFactory({PRIMARY: ["Hi!"], SUMMARY: ["Ann greeted me."]})
    mutator = _mutator(tmp_path, factory, clock, no_sleep, threshold=2)

    await mutator.handle_text("1", "@ann", "Hello", SENT_AT)
    assert "1" in mutator.coordinator.in_progress
    await mutator.coordinator.drain()

    session = mutator.store.get("1")
    assert session.memories["15.01.2025"].text == "Ann greeted me."
    assert session.message_count_since_consolidation == 0
    assert len(session.history) == 2
    assert mutator.coordinator.in_progress == set()


@pytest.mark.asyncio
async def test_save_failure_does_not_break_the_reply(tmp_path, clock, no_sleep) -> None:
    factory = ScriptedFactory({PRIMARY: ["Hi!"]})
    store = FailingStore(tmp_path / "context.json")
    mutator = _mutator(tmp_path, factory, clock, no_sleep, store=store)

    reply = await mutator.handle_text("1", "@ann", "Hello", SENT_AT)

    assert reply.text == "Hi!"
    assert len(store.get("1").history) == 2


@pytest.mark.asyncio
async def test_image_turn_uses_media_provider_and_stores_placeholder(tmp_path, clock, no_sleep) -> None:
    factory = ScriptedFactory({BACKUP: ["A sleepy cat."]})
    mutator = _mutator(tmp_path, factory, clock, no_sleep)
    image = MediaAttachment(kind="image", mime_type="image/jpeg", data=b"\xff\xd8jpeg", caption="my cat")

    reply = await mutator.handle_media("1", "@ann", image, SENT_AT)

    assert reply.text == "A sleepy cat."
    contents = factory.created[0].calls[0]
    assert contents[-2] == TextPart("Hermione:")
    assert contents[-1] == MediaPart(mime_type="image/jpeg", data=b"\xff\xd8jpeg")
    assert contents[-3] == TextPart("@ann(15.01.2025, 18:29:58): my cat\n")
    history = mutator.store.get("1").history
    assert history[0].text == 'Sent an image with caption: "my cat"'


@pytest.mark.asyncio
async def test_unsupported_media_is_rejected_before_any_call(tmp_path, clock, no_sleep) -> None:
    factory = ScriptedFactory({BACKUP: ["unused"]})
    mutator = _mutator(tmp_path, factory, clock, no_sleep)

    reply = await mutator.handle_media(
        "1", "@ann", MediaAttachment(kind="image", mime_type="image/gif", data=b"GIF89a"), SENT_AT,
    )

    assert reply.failed
    assert reply.text == replies.UNSUPPORTED_MEDIA
    assert factory.created == []
    assert mutator.store.get("1").history == []


@pytest.mark.asyncio
async def test_oversized_media_is_rejected_before_any_call(tmp_path, clock, no_sleep) -> None:
    factory = ScriptedFactory({BACKUP: ["unused"]})
    mutator = _mutator(tmp_path, factory, clock, no_sleep, media_config=MediaConfig(max_file_bytes=4))

    reply = await mutator.handle_media(
        "1", "@ann", MediaAttachment(kind="image", mime_type="image/jpeg", data=b"0123456789"), SENT_AT,
    )

    assert reply.failed
    assert reply.text == replies.MEDIA_TOO_LARGE
    assert factory.created == []
    assert mutator.store.get("1").history == []


@pytest.mark.asyncio
async def test_missing_payload_is_reported(tmp_path, clock, no_sleep) -> None:
    factory = ScriptedFactory({BACKUP: ["unused"]})
    mutator = _mutator(tmp_path, factory, clock, no_sleep)

    reply = await mutator.handle_media(
        "1", "@ann", MediaAttachment(kind="audio", mime_type="audio/ogg", data=None), SENT_AT,
    )

    assert reply.text == replies.MEDIA_MISSING
