"""
Telegram side of the bridge: long-poll updates into the bus, render bus messages back.
"""

import asyncio
import logging
from typing import Optional

from maibot_tg.errors import AdapterError
from maibot_tg.models.envelope import MessageBase
from maibot_tg.models.telegram import Message
from maibot_tg.telegram.convert import chat_id_for, message_to_envelope, render_envelope
from maibot_tg.telegram.filter import MessageFilter
from maibot_tg.transport.http import TelegramHttpClient
from maibot_tg.transport.websocket import BusClient

logger = logging.getLogger(__name__)

POLL_TIMEOUT_S = 30
POLL_ERROR_BACKOFF_S = 5.0


class TelegramAdapter:
    def __init__(
        self,
        api: TelegramHttpClient,
        bus: BusClient,
        message_filter: MessageFilter,
        platform: str = "telegram",
        poll_timeout: int = POLL_TIMEOUT_S,
        error_backoff: float = POLL_ERROR_BACKOFF_S,
    ):
        self._api = api
        self._bus = bus
        self._filter = message_filter
        self._platform = platform
        self._poll_timeout = poll_timeout
        self._error_backoff = error_backoff
        self._offset: Optional[int] = None
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def offset(self) -> Optional[int]:
        return self._offset

    async def poll_once(self) -> int:
        """Fetch one batch of updates and dispatch each message. Returns the batch size."""
        updates = await self._api.get_updates(offset=self._offset, timeout=self._poll_timeout)
        for update in updates:
            self._offset = update.update_id + 1
            message = update.message
            if message is None:
                continue
            if not self._filter.allows(message):
                logger.info("Message filtered out: %s", message.text)
                continue
            task = asyncio.create_task(self.handle_message(message))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        return len(updates)

    async def poll(self) -> None:
        """Long-poll Telegram until cancelled. API failures are logged and retried."""
        logger.info("Polling Telegram for updates")
        while True:
            try:
                await self.poll_once()
            except AdapterError as e:
                logger.error("getUpdates failed, retrying in %ss: %s", self._error_backoff, e)
                await asyncio.sleep(self._error_backoff)

    async def handle_message(self, message: Message) -> None:
        """Convert one Telegram message and forward it to MaiBot (fire-and-forget)."""
        envelope = await message_to_envelope(message, self._platform, self._api.get_file_content)
        try:
            await self._bus.send(envelope)
        except AdapterError as e:
            logger.error("Failed to send message %s to MaiBot: %s", message.message_id, e)
            return
        logger.info("Message %s sent to MaiBot successfully", message.message_id)

    async def send_to_telegram(self, envelope: MessageBase) -> Message:
        """Inbound handler for the bus: deliver a MaiBot message to its Telegram chat.

        Raises TelegramAPIError when the chat id is unusable or the Bot API rejects the call.
        """
        chat_id = chat_id_for(envelope)
        text, reply_to = render_envelope(envelope)
        sent = await self._api.send_message(chat_id, text, reply_to_message_id=reply_to)
        logger.info("Message sent to Telegram chat %s successfully", chat_id)
        return sent

    async def close(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
