"""Event types for the message bus."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from recallbot.agent.media import MediaAttachment


@dataclass
class InboundMessage:
    """Message received from a chat channel."""

    channel: str  # telegram, cli
    sender_id: str  # user identity; one session per sender
    chat_id: str  # where replies go
    content: str
    timestamp: datetime = field(default_factory=datetime.now)
    media: list[MediaAttachment] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)  # speaker_label, message_id, is_group

    @property
    def session_key(self) -> str:
        return self.sender_id

    @property
    def speaker_label(self) -> str:
        return self.metadata.get("speaker_label") or "Unknown user"


@dataclass
class OutboundMessage:
    """Message to send to a chat channel."""

    channel: str
    chat_id: str
    content: str
    reply_to: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
