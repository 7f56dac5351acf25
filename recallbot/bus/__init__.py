"""Message bus module for decoupled channel-agent communication."""

from recallbot.bus.events import InboundMessage, OutboundMessage
from recallbot.bus.queue import MessageBus

__all__ = ["MessageBus", "InboundMessage", "OutboundMessage"]
