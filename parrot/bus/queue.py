"""Async message bus between channels and the responder.

Two queues:
- inbound:  channel → responder (what people say in their chats)
- outbound: responder → channel (what the bot says back)

Messages are handled one at a time in arrival order, which is what
keeps the brain free of locks.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Awaitable

from parrot.bus.events import InboundMessage, OutboundMessage

logger = logging.getLogger(__name__)


class MessageBus:
    """Central message router. One per running bot."""

    def __init__(self) -> None:
        self._inbound: asyncio.Queue[InboundMessage] = asyncio.Queue()
        self._outbound: asyncio.Queue[OutboundMessage] = asyncio.Queue()
        self._inbound_hooks: list[Callable[[InboundMessage], Awaitable[None]]] = []

    # ── Inbound (channel → responder) ──────────────────────────

    async def publish_inbound(self, msg: InboundMessage) -> None:
        logger.debug(f"[bus] inbound from {msg.channel}:{msg.chat_id}:{msg.sender_id}")
        await self._inbound.put(msg)
        for hook in self._inbound_hooks:
            try:
                await hook(msg)
            except Exception as e:
                logger.warning(f"[bus] inbound hook error: {e}")

    async def consume_inbound(self) -> InboundMessage:
        return await self._inbound.get()

    def on_inbound(self, hook: Callable[[InboundMessage], Awaitable[None]]) -> None:
        """Register a hook that fires on every inbound message."""
        self._inbound_hooks.append(hook)

    # ── Outbound (responder → channel) ─────────────────────────

    async def publish_outbound(self, msg: OutboundMessage) -> None:
        logger.debug(f"[bus] outbound to {msg.channel}:{msg.chat_id}")
        await self._outbound.put(msg)

    async def consume_outbound(self) -> OutboundMessage:
        return await self._outbound.get()

    def drain_outbound(self) -> list[OutboundMessage]:
        """Take every queued reply without waiting."""
        drained = []
        while not self._outbound.empty():
            drained.append(self._outbound.get_nowait())
        return drained

    # ── Utility ────────────────────────────────────────────────

    @property
    def inbound_pending(self) -> int:
        return self._inbound.qsize()

    @property
    def outbound_pending(self) -> int:
        return self._outbound.qsize()
