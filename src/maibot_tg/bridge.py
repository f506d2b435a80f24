"""
Bridge — wires one BusClient, one Telegram client and the adapter between them.
"""

import logging

from maibot_tg.config import Config
from maibot_tg.errors import AdapterError
from maibot_tg.models.envelope import MessageBase
from maibot_tg.telegram.adapter import TelegramAdapter
from maibot_tg.telegram.filter import MessageFilter
from maibot_tg.transport.http import TelegramHttpClient
from maibot_tg.transport.websocket import BusClient

logger = logging.getLogger(__name__)


def build_bus_client(config: Config) -> BusClient:
    maibot = config.maibot
    return BusClient(
        maibot.url,
        config.platform,
        maibot.token or None,
        heartbeat_interval=maibot.heartbeat_interval,
        reconnect_interval=maibot.reconnect_interval,
        handshake_timeout=maibot.handshake_timeout,
    )


class Bridge:
    """Owns every long-lived collaborator; nothing is process-global."""

    def __init__(self, config: Config):
        self.config = config
        self.bus = build_bus_client(config)
        self.telegram = TelegramHttpClient(config.telegram_bot_token)
        self.adapter = TelegramAdapter(
            self.telegram,
            self.bus,
            MessageFilter(config.message_filter),
            platform=config.platform,
        )
        self.bus.set_inbound_handler(self._forward_to_telegram)

    async def _forward_to_telegram(self, envelope: MessageBase) -> None:
        try:
            await self.adapter.send_to_telegram(envelope)
        except AdapterError as e:
            logger.error("Failed to forward message %s to Telegram: %s", envelope.message_info.message_id, e)

    async def run(self) -> None:
        """Start the bus and poll Telegram until cancelled, then shut everything down."""
        self.bus.start()
        try:
            await self.adapter.poll()
        finally:
            await self.close()

    async def close(self) -> None:
        await self.adapter.close()
        await self.bus.close()
        await self.telegram.close()
