"""Telegram channel — wires the Bot API client into the bus.

Knows nothing about HTTP (platform/telegram.py does). This just:
1. Long-polls for updates
2. Turns text messages into InboundMessages
3. Delivers OutboundMessages as replies
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from parrot.bus.events import OutboundMessage
from parrot.bus.queue import MessageBus
from parrot.channels.base import BaseChannel
from parrot.platform.telegram import TelegramBot, TelegramError, TelegramMessage

logger = logging.getLogger(__name__)


class TelegramChannel(BaseChannel):
    """Bus integration for a Telegram bot."""

    name = "telegram"

    def __init__(self, config: dict[str, Any], bus: MessageBus) -> None:
        super().__init__(config, bus)
        self.poll_timeout: int = int(config.get("poll_timeout", 30))
        self.bot = TelegramBot(config.get("token", ""))
        self._offset = 0

    async def start(self) -> None:
        """Verify the token, then long-poll until stopped."""
        loop = asyncio.get_running_loop()
        try:
            me = await loop.run_in_executor(None, self.bot.get_me)
        except TelegramError as e:
            logger.error(f"[telegram] cannot authenticate: {e}")
            return

        self._running = True
        logger.info(f"[telegram] connected as @{me.get('username', '?')}")

        while self._running:
            try:
                updates = await loop.run_in_executor(
                    None, lambda: self.bot.get_updates(self._offset, self.poll_timeout),
                )
            except asyncio.CancelledError:
                break
            except TelegramError as e:
                wait = e.retry_after or 5
                logger.warning(f"[telegram] polling failed: {e} (retry in {wait}s)")
                await asyncio.sleep(wait)
                continue

            for update in updates:
                self._offset = max(self._offset, update.update_id + 1)
                if update.message and update.message.text:
                    await self._forward(update.message)

    async def stop(self) -> None:
        self._running = False
        logger.info("[telegram] disconnected")

    async def send(self, msg: OutboundMessage) -> None:
        reply_to = int(msg.reply_to) if msg.reply_to else None
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None, lambda: self.bot.send_message(msg.chat_id, msg.content, reply_to),
            )
        except TelegramError as e:
            logger.error(f"[telegram] send to {msg.chat_id} failed: {e}")

    async def _forward(self, message: TelegramMessage) -> None:
        await self._handle_message(
            sender_id=str(message.sender_id),
            chat_id=str(message.chat_id),
            content=message.text,
            metadata={
                "message_id": message.message_id,
                "sender_name": message.full_name,
                "date": message.date,
            },
        )
