"""Abstract base for chat platform channels.

A channel subclasses BaseChannel and implements start(), stop() and
send(). The base class filters senders against an optional allowlist
and forwards accepted messages to the bus.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from parrot.bus.events import InboundMessage, OutboundMessage
from parrot.bus.queue import MessageBus

logger = logging.getLogger(__name__)


class BaseChannel(ABC):
    """Abstract interface for a chat platform."""

    name: str = "base"

    def __init__(self, config: dict[str, Any], bus: MessageBus) -> None:
        """
        Args:
            config: This channel's section of ``channels`` in the config.
            bus: The shared message bus.
        """
        self.config = config
        self.bus = bus
        self._running = False

    @abstractmethod
    async def start(self) -> None:
        """Connect and keep forwarding messages until stopped."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        ...

    @abstractmethod
    async def send(self, msg: OutboundMessage) -> None:
        ...

    def is_allowed(self, chat_id: str) -> bool:
        """Check the chat against ``allow_from``. Empty list allows all."""
        allow_from = [str(c) for c in self.config.get("allow_from") or []]
        if not allow_from:
            return True
        return str(chat_id) in allow_from

    async def _handle_message(
        self,
        sender_id: str,
        chat_id: str,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Forward an incoming message to the bus if its chat is allowed."""
        if not self.is_allowed(chat_id):
            logger.warning(f"[{self.name}] ignoring chat {chat_id}: not in allow_from")
            return

        await self.bus.publish_inbound(InboundMessage(
            channel=self.name,
            sender_id=str(sender_id),
            chat_id=str(chat_id),
            content=content,
            metadata=metadata or {},
        ))

    @property
    def is_running(self) -> bool:
        return self._running
