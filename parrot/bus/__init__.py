"""Bus — routes messages between channels and the responder."""

from parrot.bus.events import InboundMessage, OutboundMessage
from parrot.bus.queue import MessageBus

__all__ = ["InboundMessage", "OutboundMessage", "MessageBus"]
