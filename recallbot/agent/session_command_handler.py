"""Slash commands and pending-input flows that operate on a user's session."""

from __future__ import annotations

from typing import TYPE_CHECKING

from recallbot.agent import replies
from recallbot.agent import settings as ops
from recallbot.agent.sanitize import strip_tags
from recallbot.bus.events import InboundMessage, OutboundMessage
from recallbot.logging import get_logger
from recallbot.providers.registry import CHAT_PROVIDER_IDS
from recallbot.session.models import PENDING_DELETE_COUNT, Session
from recallbot.session.timestamps import Clock

if TYPE_CHECKING:
    from recallbot.agent.session_mutator import SessionMutator

logger = get_logger(__name__)

NO_HISTORY = "You have no message history."


class SessionCommandHandler:
    """Handle slash commands; returns None when the message is a regular turn."""

    def __init__(self, *, mutator: "SessionMutator", clock: Clock, persona_name: str) -> None:
        self.mutator = mutator
        self.clock = clock
        self.persona_name = persona_name

    def _reply(self, msg: InboundMessage, content: str) -> OutboundMessage:
        return OutboundMessage(
            channel=msg.channel,
            chat_id=msg.chat_id,
            content=content,
            reply_to=msg.metadata.get("message_id") if msg.metadata.get("is_group") else None,
        )

    async def handle(self, msg: InboundMessage, session: Session) -> OutboundMessage | None:
        text = msg.content.strip()
        if not text.startswith("/"):
            if session.pending_input == PENDING_DELETE_COUNT and not msg.media:
                return await self._consume_delete_count(msg, session, text)
            return None

        head, _, arg = text.partition(" ")
        cmd = head.split("@", 1)[0].lower()
        arg = arg.strip()

        handler = {
            "/start": self._start,
            "/help": self._menu,
            "/settings": self._menu,
            "/memories": self._memories,
            "/model": self._model,
            "/refresh": self._refresh,
            "/clear": self._clear,
            "/delete": self._delete,
            "/tokens": self._tokens,
            "/temperature": self._temperature,
            "/primary": self._primary,
            "/backup": self._backup,
        }.get(cmd)
        if handler is None:
            return None
        logger.info("session_command", command=cmd)
        return await handler(msg, session, arg)

    async def _start(self, msg: InboundMessage, session: Session, arg: str) -> OutboundMessage:
        first_name = strip_tags(msg.metadata.get("first_name") or "friend")
        return self._reply(msg, replies.welcome(first_name, self.persona_name))

    async def _menu(self, msg: InboundMessage, session: Session, arg: str) -> OutboundMessage:
        return self._reply(msg, replies.MENU)

    async def _memories(self, msg: InboundMessage, session: Session, arg: str) -> OutboundMessage:
        return self._reply(msg, ops.render_memories(session) or "I don't have any memories about you yet.")

    async def _model(self, msg: InboundMessage, session: Session, arg: str) -> OutboundMessage:
        return self._reply(msg, ops.describe_models(session))

    async def _refresh(self, msg: InboundMessage, session: Session, arg: str) -> OutboundMessage:
        try:
            await self.mutator.consolidate_now(msg.session_key)
        except Exception:
            logger.exception("memory_refresh_failed", user_id=msg.session_key)
            return self._reply(msg, "Something went wrong while updating my memories.")
        rendered = ops.render_memories(session, header="Your memories are updated. Here they are:")
        return self._reply(msg, rendered or "Sorry, I couldn't generate any memories.")

    async def _clear(self, msg: InboundMessage, session: Session, arg: str) -> OutboundMessage:
        if arg.lower() != "confirm":
            return self._reply(
                msg,
                "This will delete all memories and our whole conversation history. "
                "Send <code>/clear confirm</code> if you really want me to forget everything.",
            )
        ops.clear_all(session)
        await self.mutator.persist()
        logger.info("session_cleared", user_id=msg.session_key)
        return self._reply(msg, "I've cleared all memories and our history. We can start over!")

    async def _delete(self, msg: InboundMessage, session: Session, arg: str) -> OutboundMessage:
        if not arg:
            session.pending_input = PENDING_DELETE_COUNT
            await self.mutator.persist()
            return self._reply(msg, "Enter how many of the latest messages you want to delete:")
        if arg.lower() == "today":
            if not session.history:
                return self._reply(msg, NO_HISTORY)
            removed = ops.delete_today(session, self.clock().date())
            await self.mutator.persist()
            logger.info("history_deleted_today", user_id=msg.session_key, removed=removed)
            return self._reply(msg, "I've deleted all of today's messages.")
        return await self._delete_count(msg, session, arg)

    async def _consume_delete_count(self, msg: InboundMessage, session: Session, text: str) -> OutboundMessage:
        session.pending_input = None
        try:
            return await self._delete_count(msg, session, text)
        finally:
            await self.mutator.persist()

    async def _delete_count(self, msg: InboundMessage, session: Session, text: str) -> OutboundMessage:
        try:
            count = ops.parse_deletion_count(text)
        except ops.SettingsError as e:
            return self._reply(msg, str(e))
        if not session.history:
            return self._reply(msg, NO_HISTORY)
        removed = ops.delete_last(session, count)
        await self.mutator.persist()
        logger.info("history_deleted_last", user_id=msg.session_key, requested=count, removed=removed)
        return self._reply(msg, f"I've deleted the last {removed} messages from the history.")

    async def _tokens(self, msg: InboundMessage, session: Session, arg: str) -> OutboundMessage:
        if not arg:
            steps = ", ".join(str(s) for s in ops.MAX_TOKEN_STEPS)
            return self._reply(
                msg,
                "Answer length is the maximum number of tokens: longer answers take more time.\n"
                f"Current maximum: {session.generation_params.max_output_tokens} tokens. "
                f"Send <code>/tokens N</code> with one of: {steps}.",
            )
        try:
            ops.set_max_output_tokens(session, int(arg))
        except ValueError as e:
            return self._reply(msg, str(e) if isinstance(e, ops.SettingsError) else "Please send a whole number.")
        await self.mutator.persist()
        return self._reply(msg, f"New maximum answer length: {session.generation_params.max_output_tokens} tokens.")

    async def _temperature(self, msg: InboundMessage, session: Session, arg: str) -> OutboundMessage:
        if not arg:
            steps = ", ".join(f"{s:.1f}" for s in ops.TEMPERATURE_STEPS)
            return self._reply(
                msg,
                "Temperature controls creativity: low values give logical answers, high values creative ones.\n"
                f"Current temperature: {session.generation_params.temperature}. "
                f"Send <code>/temperature T</code> with one of: {steps}.",
            )
        try:
            ops.set_temperature(session, float(arg.replace(",", ".")))
        except ValueError as e:
            return self._reply(msg, str(e) if isinstance(e, ops.SettingsError) else "Please send a number between 0 and 2.")
        await self.mutator.persist()
        return self._reply(msg, f"New temperature: {session.generation_params.temperature}.")

    async def _primary(self, msg: InboundMessage, session: Session, arg: str) -> OutboundMessage:
        return await self._choose_provider(msg, session, arg, slot="primary")

    async def _backup(self, msg: InboundMessage, session: Session, arg: str) -> OutboundMessage:
        return await self._choose_provider(msg, session, arg, slot="backup")

    async def _choose_provider(self, msg: InboundMessage, session: Session, arg: str, *, slot: str) -> OutboundMessage:
        if not arg:
            return self._reply(
                msg,
                f"Current primary model: <b>{session.primary_provider}</b>\n"
                f"Current backup model: <b>{session.backup_provider}</b>\n"
                f"Send <code>/{slot} ID</code> with one of: {', '.join(CHAT_PROVIDER_IDS)}.",
            )
        setter = ops.set_primary_provider if slot == "primary" else ops.set_backup_provider
        try:
            setter(session, arg)
        except ops.SettingsError as e:
            return self._reply(msg, str(e))
        await self.mutator.persist()
        logger.info("provider_selected", slot=slot, provider=arg)
        return self._reply(msg, f"{slot.capitalize()} model set: <b>{strip_tags(arg)}</b>")
