"""Message types carried by the bus.

Channels turn platform updates into InboundMessages; the responder
answers with OutboundMessages addressed back to the same channel/chat.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any


@dataclass
class InboundMessage:
    """Something a user said in some chat."""
    channel: str
    sender_id: str
    chat_id: str
    content: str
    media: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    @property
    def session_key(self) -> str:
        return f"{self.channel}:{self.chat_id}"

    @property
    def sender_name(self) -> str:
        """Display name of the author, falling back to the sender id."""
        return self.metadata.get("sender_name") or self.sender_id


@dataclass
class OutboundMessage:
    """A reply on its way out."""
    channel: str
    chat_id: str
    content: str
    reply_to: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
