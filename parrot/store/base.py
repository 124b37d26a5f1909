"""Abstract base for durable key-value stores.

The brain only needs four things from storage: list keys under a
prefix, read one value, write one value, and close. Every backend
wraps its native failures in StoreError so callers can tell "the
store is unreachable" apart from everything else.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class StoreError(Exception):
    """Store unreachable or rejected the operation."""
    pass


class KeyValueStore(ABC):
    """Async string key → string value store."""

    name: str = "base"

    @abstractmethod
    async def keys(self, prefix: str) -> list[str]:
        """All keys starting with ``prefix``."""
        ...

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Value for ``key``, or None if it vanished."""
        ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        ...

    async def ping(self) -> bool:
        """Check the backend answers. Raises StoreError when it doesn't."""
        return True

    async def close(self) -> None:
        """Release connections. Default: nothing to release."""
        return None
