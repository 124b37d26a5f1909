"""Channels — how the parrot hears chats and talks back."""

from parrot.channels.base import BaseChannel

__all__ = ["BaseChannel"]
