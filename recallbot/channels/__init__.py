"""Chat channels module."""

from recallbot.channels.base import BaseChannel
from recallbot.channels.manager import ChannelManager

__all__ = ["BaseChannel", "ChannelManager"]
