"""Channel manager for coordinating chat channels."""

from __future__ import annotations

import asyncio
from typing import Any

from recallbot.bus.queue import MessageBus
from recallbot.channels.base import BaseChannel
from recallbot.config.schema import Config
from recallbot.logging import get_logger

logger = get_logger(__name__)


class ChannelManager:
    """
    Starts enabled channels and routes outbound messages to them.
    """

    def __init__(self, config: Config, bus: MessageBus):
        self.config = config
        self.bus = bus
        self.channels: dict[str, BaseChannel] = {}
        self._dispatch_task: asyncio.Task | None = None

        self._init_channels()

    def _init_channels(self) -> None:
        if self.config.channels.telegram.enabled:
            from recallbot.channels.telegram import TelegramChannel

            self.channels["telegram"] = TelegramChannel(
                self.config.channels.telegram,
                self.bus,
                media_config=self.config.media,
            )
            logger.info("channel_enabled", channel="telegram")

    async def _start_channel(self, name: str, channel: BaseChannel) -> None:
        try:
            await channel.start()
        except Exception as e:
            logger.error("channel_start_failed", channel=name, error=str(e))

    async def start_all(self) -> None:
        """Start all channels and the outbound dispatcher."""
        if not self.channels:
            logger.warning("no_channels_enabled")
            return

        self._dispatch_task = asyncio.create_task(self._dispatch_outbound())

        tasks = []
        for name, channel in self.channels.items():
            logger.info("channel_starting", channel=name)
            tasks.append(asyncio.create_task(self._start_channel(name, channel)))

        # Channels run until stopped.
        await asyncio.gather(*tasks, return_exceptions=True)

    async def stop_all(self) -> None:
        logger.info("channels_stopping")

        if self._dispatch_task:
            self._dispatch_task.cancel()
            try:
                await self._dispatch_task
            except asyncio.CancelledError:
                pass

        for name, channel in self.channels.items():
            try:
                await channel.stop()
                logger.info("channel_stopped", channel=name)
            except Exception as e:
                logger.error("channel_stop_failed", channel=name, error=str(e))

    async def _dispatch_outbound(self) -> None:
        logger.info("outbound_dispatcher_started")
        while True:
            try:
                msg = await asyncio.wait_for(self.bus.consume_outbound(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break

            channel = self.channels.get(msg.channel)
            if channel is None:
                logger.warning("unknown_channel", channel=msg.channel)
                continue
            try:
                await channel.send(msg)
            except Exception as e:
                logger.error("channel_send_failed", channel=msg.channel, error=str(e))

    def get_status(self) -> dict[str, Any]:
        return {name: {"enabled": True, "running": ch.is_running} for name, ch in self.channels.items()}

    @property
    def enabled_channels(self) -> list[str]:
        return list(self.channels.keys())
