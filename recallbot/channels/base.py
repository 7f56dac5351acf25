"""Base channel interface for chat platforms."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from recallbot.agent.media import MediaAttachment
from recallbot.bus.events import InboundMessage, OutboundMessage
from recallbot.bus.queue import MessageBus
from recallbot.logging import get_logger

logger = get_logger(__name__)
audit_log = get_logger("recallbot.audit")


class BaseChannel(ABC):
    """
    Abstract base class for chat channel implementations.

    A channel turns platform updates into InboundMessages on the bus and
    delivers OutboundMessages back to the platform.
    """

    name: str = "base"

    def __init__(self, config: Any, bus: MessageBus):
        self.config = config
        self.bus = bus
        self._running = False

    @abstractmethod
    async def start(self) -> None:
        """Connect to the platform and forward updates via _handle_message() until stopped."""

    @abstractmethod
    async def stop(self) -> None:
        """Stop the channel and clean up resources."""

    @abstractmethod
    async def send(self, msg: OutboundMessage) -> None:
        """Deliver one outbound message."""

    def is_allowed(self, sender_id: str, aliases: tuple[str, ...] = ()) -> bool:
        """Match the sender id or any alias (e.g. a username); an empty allow list admits everyone."""
        allow_list = getattr(self.config, "allow_from", [])
        if not allow_list:
            return True
        return any(c and c in allow_list for c in (str(sender_id), *aliases))

    async def _handle_message(
        self,
        sender_id: str,
        chat_id: str,
        content: str,
        *,
        timestamp: datetime | None = None,
        aliases: tuple[str, ...] = (),
        media: list[MediaAttachment] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """Check permissions and publish to the bus. Returns False when the sender was rejected."""
        if not self.is_allowed(sender_id, aliases):
            audit_log.warning("channel_access_denied", sender_id=sender_id, channel=self.name)
            return False

        audit_log.info("channel_message_accepted", sender_id=sender_id, channel=self.name, chat_id=chat_id)

        msg = InboundMessage(
            channel=self.name,
            sender_id=str(sender_id),
            chat_id=str(chat_id),
            content=content,
            media=media or [],
            metadata=metadata or {},
        )
        if timestamp is not None:
            msg.timestamp = timestamp
        await self.bus.publish_inbound(msg)
        return True

    @property
    def is_running(self) -> bool:
        return self._running
