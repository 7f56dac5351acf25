"""Agent loop: consumes inbound messages and answers them per user, in order."""

from __future__ import annotations

import asyncio
from zoneinfo import ZoneInfo

import structlog

from recallbot.agent.consolidation_coordinator import ConsolidationCoordinator
from recallbot.agent.session_command_handler import SessionCommandHandler
from recallbot.agent.session_mutator import SessionMutator
from recallbot.bus.events import InboundMessage, OutboundMessage
from recallbot.bus.queue import MessageBus
from recallbot.logging import get_logger
from recallbot.session.store import SessionStore
from recallbot.session.timestamps import format_timestamp, to_local

logger = get_logger(__name__)

GENERIC_APOLOGY = "Sorry, I encountered an error. Please try again."


class RequestContextBinder:
    """Bind per-update logging context."""

    @staticmethod
    def bind_user(msg: InboundMessage) -> None:
        preview = msg.content[:80] + "..." if len(msg.content) > 80 else msg.content
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            channel=msg.channel,
            user_id=msg.sender_id,
            chat_id=msg.chat_id,
        )
        logger.info("processing_message", preview=preview, media=len(msg.media))


class AgentLoop:
    """
    Pulls messages off the bus and processes each in its own task.

    Tasks for the same user run one at a time under the user's lock, in arrival
    order; different users are processed concurrently.
    """

    def __init__(
        self,
        bus: MessageBus,
        *,
        store: SessionStore,
        mutator: SessionMutator,
        commands: SessionCommandHandler,
        coordinator: ConsolidationCoordinator,
        tz: ZoneInfo | None = None,
    ):
        self.bus = bus
        self.store = store
        self.mutator = mutator
        self.commands = commands
        self.coordinator = coordinator
        self.tz = tz
        self._running = False
        self._active: set[asyncio.Task[None]] = set()

    async def run(self) -> None:
        """Run the agent loop, processing messages from the bus."""
        self._running = True
        logger.info("agent_loop_started")
        try:
            while self._running:
                try:
                    msg = await asyncio.wait_for(self.bus.consume_inbound(), timeout=1.0)
                except asyncio.TimeoutError:
                    continue
                self.submit(msg)
        finally:
            self._running = False
            logger.info("agent_loop_stopped")

    def submit(self, msg: InboundMessage) -> asyncio.Task[None]:
        task = asyncio.create_task(self._handle(msg))
        self._active.add(task)
        task.add_done_callback(self._active.discard)
        return task

    def stop(self) -> None:
        """Signal the loop to stop after the current poll."""
        self._running = False
        logger.info("agent_loop_stopping")

    async def drain(self) -> None:
        """Wait for in-flight updates and background consolidations."""
        while self._active:
            await asyncio.gather(*list(self._active), return_exceptions=True)
        await self.coordinator.drain()

    async def _handle(self, msg: InboundMessage) -> None:
        await self.coordinator.run_exclusive(msg.session_key, lambda: self._process_guarded(msg))

    async def _process_guarded(self, msg: InboundMessage) -> None:
        RequestContextBinder.bind_user(msg)
        try:
            response = await self.process_message(msg)
        except Exception as e:
            logger.exception("message_processing_failed", error_type=type(e).__name__)
            response = OutboundMessage(channel=msg.channel, chat_id=msg.chat_id, content=GENERIC_APOLOGY)
        if response is not None:
            await self.bus.publish_outbound(response)

    def _reply_to(self, msg: InboundMessage) -> str | None:
        return msg.metadata.get("message_id") if msg.metadata.get("is_group") else None

    async def process_message(self, msg: InboundMessage) -> OutboundMessage | None:
        session = self.store.get_or_create(msg.session_key)

        command_reply = await self.commands.handle(msg, session)
        if command_reply is not None:
            return command_reply

        sent_at = format_timestamp(to_local(msg.timestamp, self.tz))
        if msg.media:
            reply = await self.mutator.handle_media(msg.session_key, msg.speaker_label, msg.media[0], sent_at)
        elif msg.content.strip():
            reply = await self.mutator.handle_text(msg.session_key, msg.speaker_label, msg.content, sent_at)
        else:
            return None

        return OutboundMessage(
            channel=msg.channel,
            chat_id=msg.chat_id,
            content=reply.text,
            reply_to=self._reply_to(msg),
            metadata={"used_backup": reply.used_backup, "failed": reply.failed},
        )
