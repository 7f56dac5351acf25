"""Telegram channel implementation using python-telegram-bot."""

from __future__ import annotations

import asyncio
import html
import re
from pathlib import PurePosixPath
from typing import Any

from telegram import Message, MessageEntity, ReplyParameters, Update, User
from telegram.constants import ChatAction, ParseMode
from telegram.error import BadRequest
from telegram.ext import Application, ContextTypes, MessageHandler, filters

from recallbot.agent import replies
from recallbot.agent.media import MediaAttachment
from recallbot.agent.sanitize import collapse_blank_lines, sanitize_html, split_message, strip_tags
from recallbot.bus.events import OutboundMessage
from recallbot.bus.queue import MessageBus
from recallbot.channels.base import BaseChannel
from recallbot.config.schema import MediaConfig, TelegramConfig
from recallbot.logging import get_logger

logger = get_logger(__name__)

TYPING_INTERVAL = 3.0
TYPING_MAX_SECONDS = 300.0
GROUP_CHAT_TYPES = frozenset({"group", "supergroup"})

_IMAGE_MIME_BY_SUFFIX = {
    ".png": "image/png",
    ".webp": "image/webp",
    ".heic": "image/heic",
    ".heif": "image/heif",
}


def display_name(user: User | None) -> str:
    """@username, else first and last name, else a placeholder."""
    if user is None:
        return "Unknown user"
    if user.username:
        return f"@{user.username}"
    parts = [p for p in (user.first_name, user.last_name) if p]
    return " ".join(parts) if parts else "Unknown user"


def _image_mime_type(file_path: str | None) -> str:
    suffix = PurePosixPath(file_path or "").suffix.lower()
    return _IMAGE_MIME_BY_SUFFIX.get(suffix, "image/jpeg")


class TelegramChannel(BaseChannel):
    """
    Long-polling Telegram channel.

    Private chats are always served. In groups, only allow-listed chats are
    served and only messages that mention the bot or reply to it.
    """

    name = "telegram"

    def __init__(self, config: TelegramConfig, bus: MessageBus, media_config: MediaConfig | None = None):
        super().__init__(config, bus)
        self.config: TelegramConfig = config
        self.media_config = media_config or MediaConfig()
        self._app: Application | None = None
        self._typing_tasks: dict[str, asyncio.Task[None]] = {}

    async def start(self) -> None:
        token = self.config.resolved_token
        if not token or token.startswith("$"):
            logger.error("telegram_token_missing")
            return

        self._running = True
        self._app = Application.builder().token(token).build()
        self._app.add_handler(MessageHandler(
            filters.TEXT | filters.PHOTO | filters.VOICE | filters.AUDIO,
            self._on_message,
        ))

        await self._app.initialize()
        await self._app.start()
        bot = self._app.bot
        logger.info("telegram_bot_connected", username=bot.username)
        await self._app.updater.start_polling(allowed_updates=["message"], drop_pending_updates=True)

        while self._running:
            await asyncio.sleep(1)

    async def stop(self) -> None:
        self._running = False
        for chat_id in list(self._typing_tasks):
            self._stop_typing(chat_id)
        if self._app:
            logger.info("telegram_bot_stopping")
            await self._app.updater.stop()
            await self._app.stop()
            await self._app.shutdown()
            self._app = None

    async def send(self, msg: OutboundMessage) -> None:
        if not self._app:
            logger.warning("telegram_bot_not_running")
            return

        self._stop_typing(msg.chat_id)
        text = collapse_blank_lines(sanitize_html(msg.content))
        reply_parameters = (
            ReplyParameters(message_id=int(msg.reply_to), allow_sending_without_reply=True)
            if msg.reply_to else None
        )
        for chunk in split_message(text, self.config.reply_chunk_size):
            try:
                await self._app.bot.send_message(
                    chat_id=int(msg.chat_id),
                    text=chunk,
                    parse_mode=ParseMode.HTML,
                    reply_parameters=reply_parameters,
                )
            except BadRequest as e:
                # A chunk boundary can split a tag; resend that chunk as plain text.
                logger.warning("telegram_html_rejected", error=str(e))
                await self._app.bot.send_message(
                    chat_id=int(msg.chat_id),
                    text=html.unescape(strip_tags(chunk)),
                    reply_parameters=reply_parameters,
                )

    def _is_mentioned(self, message: Message, username: str) -> bool:
        target = f"@{username}".lower()
        entities: dict[MessageEntity, str] = {}
        if message.text:
            entities = message.parse_entities([MessageEntity.MENTION])
        elif message.caption:
            entities = message.parse_caption_entities([MessageEntity.MENTION])
        return any(text.lower() == target for text in entities.values())

    async def _on_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        message = update.effective_message
        user = update.effective_user
        chat = update.effective_chat
        if message is None or user is None or chat is None:
            return

        is_group = chat.type in GROUP_CHAT_TYPES
        text = message.text or message.caption or ""

        if is_group:
            bot = context.bot
            mentioned = bool(bot.username) and self._is_mentioned(message, bot.username)
            reply = message.reply_to_message
            replied_to_bot = bool(reply and reply.from_user and reply.from_user.id == bot.id)
            if not mentioned and not replied_to_bot:
                return
            if chat.id not in self.config.allowed_groups:
                logger.info("telegram_group_rejected", chat_id=chat.id)
                await message.reply_text(replies.GROUP_NOT_ALLOWED, do_quote=True)
                return
            if mentioned:
                text = re.sub(re.escape(f"@{bot.username}"), "", text, flags=re.IGNORECASE).strip()

        media: list[MediaAttachment] = []
        if message.photo or message.voice or message.audio:
            attachment = await self._download_media(message, text)
            if attachment is None:
                return
            media.append(attachment)

        metadata: dict[str, Any] = {
            "speaker_label": display_name(user),
            "first_name": user.first_name or "",
            "message_id": str(message.message_id),
            "is_group": is_group,
        }
        accepted = await self._handle_message(
            str(user.id),
            str(chat.id),
            text,
            timestamp=message.date,
            aliases=(user.username,) if user.username else (),
            media=media,
            metadata=metadata,
        )
        if accepted:
            self._start_typing(str(chat.id))

    async def _download_media(self, message: Message, caption: str) -> MediaAttachment | None:
        """Fetch the attachment bytes; replies directly and returns None on failure."""
        if message.photo:
            source: Any = message.photo[-1]
            kind = "image"
        elif message.voice:
            source = message.voice
            kind = "audio"
        else:
            source = message.audio
            kind = "audio"

        if source.file_size and source.file_size > self.media_config.max_file_bytes:
            await message.reply_text(replies.MEDIA_TOO_LARGE)
            return None

        try:
            tg_file = await source.get_file()
            data = bytes(await tg_file.download_as_bytearray())
        except Exception as e:
            logger.error("telegram_media_download_failed", kind=kind, error=str(e))
            await message.reply_text(replies.MEDIA_MISSING)
            return None

        if kind == "image":
            mime_type = _image_mime_type(tg_file.file_path)
        elif message.voice:
            mime_type = "audio/ogg"
        else:
            mime_type = message.audio.mime_type or "audio/mpeg"
        return MediaAttachment(kind=kind, mime_type=mime_type, data=data, caption=caption if kind == "image" else "")

    def _start_typing(self, chat_id: str) -> None:
        self._stop_typing(chat_id)
        self._typing_tasks[chat_id] = asyncio.create_task(self._typing_loop(chat_id))

    def _stop_typing(self, chat_id: str) -> None:
        task = self._typing_tasks.pop(chat_id, None)
        if task and not task.done():
            task.cancel()

    async def _typing_loop(self, chat_id: str) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + TYPING_MAX_SECONDS
        while self._app and loop.time() < deadline:
            try:
                await self._app.bot.send_chat_action(chat_id=int(chat_id), action=ChatAction.TYPING)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.debug("telegram_typing_failed", chat_id=chat_id, error=str(e))
            await asyncio.sleep(TYPING_INTERVAL)
