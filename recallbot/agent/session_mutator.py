"""Per-update control flow: compose, dispatch, append, maybe consolidate, persist."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable

from recallbot.agent import replies
from recallbot.agent.consolidation_coordinator import ConsolidationCoordinator
from recallbot.agent.context import ContextComposer
from recallbot.agent.media import (
    MediaAttachment,
    MediaUnsupportedError,
    history_placeholder,
    media_prompt,
    validate_media,
)
from recallbot.agent.sanitize import sanitize_html
from recallbot.config.schema import MediaConfig
from recallbot.dispatch.engine import DispatchEngine
from recallbot.logging import get_logger
from recallbot.memory.consolidator import ConsolidationReport, MemoryConsolidator
from recallbot.providers.base import ContentPart, MediaPart, ProviderError
from recallbot.session.models import Session, Turn
from recallbot.session.store import SessionStore
from recallbot.session.timestamps import Clock, format_timestamp

logger = get_logger(__name__)

_MEDIA_ERRORS = {
    "mime_type": replies.UNSUPPORTED_MEDIA,
    "too_large": replies.MEDIA_TOO_LARGE,
    "missing": replies.MEDIA_MISSING,
}


@dataclass
class Reply:
    text: str
    used_backup: bool = False
    failed: bool = False


class SessionMutator:
    """
    Applies one user update to that user's session.

    Callers hold the user's sequencing lock (see ConsolidationCoordinator).
    History only changes once a reply has been generated; the store is saved at
    the end of every update whatever its outcome.
    """

    def __init__(
        self,
        *,
        store: SessionStore,
        composer: ContextComposer,
        dispatch: DispatchEngine,
        consolidator: MemoryConsolidator,
        coordinator: ConsolidationCoordinator,
        persona_name: str,
        clock: Clock,
        consolidation_threshold: int = 30,
        pacing_delay: float = 1.0,
        media_config: MediaConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.composer = composer
        self.dispatch = dispatch
        self.consolidator = consolidator
        self.coordinator = coordinator
        self.persona_name = persona_name
        self.clock = clock
        self.consolidation_threshold = consolidation_threshold
        self.pacing_delay = pacing_delay
        self.media_config = media_config or MediaConfig()
        self._sleep = sleep

    async def _pace(self) -> None:
        if self.pacing_delay > 0:
            await self._sleep(self.pacing_delay)

    async def persist(self) -> None:
        try:
            await self.store.save()
        except OSError:
            logger.exception("session_persist_failed")

    def _append_exchange(self, user_id: str, session: Session, user_turn: Turn, reply: str) -> None:
        session.history.append(user_turn)
        session.history.append(Turn(
            speaker=self.persona_name,
            text=reply,
            timestamp=format_timestamp(self.clock()),
        ))
        session.message_count_since_consolidation += 2
        if session.message_count_since_consolidation >= self.consolidation_threshold:
            logger.info(
                "consolidation_threshold_reached",
                count=session.message_count_since_consolidation,
                threshold=self.consolidation_threshold,
            )
            self.coordinator.start_background(user_id, lambda: self.consolidate_now(user_id))

    async def handle_text(self, user_id: str, speaker_label: str, text: str, sent_at: str) -> Reply:
        session = self.store.get_or_create(user_id)
        try:
            contents = self.composer.build(session.history, session.memories, speaker_label, text, sent_at)
            try:
                result = await self.dispatch.generate_with_fallback(
                    session.primary_provider,
                    session.backup_provider,
                    contents,
                    session.generation_params,
                )
            except Exception as e:
                self._log_failure(e, "text")
                return Reply(replies.error_reply(e), failed=True)

            await self._pace()
            reply = result.text
            if result.used_backup:
                reply = replies.BACKUP_PREFIX + reply
            reply = sanitize_html(reply)
            if not reply.strip():
                reply = replies.EMPTY_REPLY

            self._append_exchange(user_id, session, Turn(speaker_label, text, sent_at), reply)
            return Reply(reply, used_backup=result.used_backup)
        finally:
            await self.persist()

    async def handle_media(
        self,
        user_id: str,
        speaker_label: str,
        attachment: MediaAttachment,
        sent_at: str,
    ) -> Reply:
        """Answer an image or audio turn with the media provider; no fallback."""
        session = self.store.get_or_create(user_id)
        try:
            try:
                validate_media(attachment, self.media_config)
            except MediaUnsupportedError as e:
                logger.info("media_rejected", kind=attachment.kind, reason=e.reason, mime_type=attachment.mime_type)
                return Reply(_MEDIA_ERRORS.get(e.reason, replies.UNSUPPORTED_MEDIA), failed=True)

            contents: list[ContentPart] = list(self.composer.build(
                session.history, session.memories, speaker_label, media_prompt(attachment), sent_at,
            ))
            contents.append(MediaPart(mime_type=attachment.mime_type, data=attachment.data or b""))

            try:
                text = await self.dispatch.generate_single(
                    self.media_config.provider,
                    contents,
                    session.generation_params,
                    policy=self.dispatch.chat_policy,
                )
            except Exception as e:
                self._log_failure(e, attachment.kind)
                return Reply(replies.error_reply(e), failed=True)

            await self._pace()
            reply = sanitize_html(text)
            if not reply.strip():
                reply = replies.EMPTY_IMAGE_REPLY if attachment.kind == "image" else replies.EMPTY_AUDIO_REPLY

            user_turn = Turn(speaker_label, history_placeholder(attachment), sent_at)
            self._append_exchange(user_id, session, user_turn, reply)
            return Reply(reply)
        finally:
            await self.persist()

    async def consolidate_now(self, user_id: str) -> ConsolidationReport:
        """Run a consolidation pass for *user_id* and save the result."""
        session = self.store.get_or_create(user_id)
        report = await self.consolidator.consolidate(session)
        await self.persist()
        return report

    @staticmethod
    def _log_failure(exc: Exception, kind: str) -> None:
        if isinstance(exc, ProviderError):
            logger.error(
                "generation_failed",
                turn_kind=kind,
                error_kind=exc.kind.value,
                provider=exc.provider_id,
                error=exc.message,
            )
        else:
            logger.exception("generation_failed_unexpected", turn_kind=kind)
