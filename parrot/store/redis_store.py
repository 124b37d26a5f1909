"""Redis backend — the production store.

Keys are ``{chat_id}_{user}`` and values are model snapshots, so a
chat's users are found with a ``SCAN MATCH {chat_id}_*``.
"""

from __future__ import annotations

import logging

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from parrot.store.base import KeyValueStore, StoreError

logger = logging.getLogger(__name__)

_GLOB_SPECIALS = "\\*?[]^"


def _escape_glob(text: str) -> str:
    return "".join(f"\\{ch}" if ch in _GLOB_SPECIALS else ch for ch in text)


class RedisStore(KeyValueStore):
    """Snapshot storage in a Redis database."""

    name = "redis"

    def __init__(self, url: str, password: str | None = None) -> None:
        self.url = url
        self._client = aioredis.from_url(
            url, password=password, decode_responses=True,
        )

    async def keys(self, prefix: str) -> list[str]:
        pattern = f"{_escape_glob(prefix)}*"
        try:
            return [key async for key in self._client.scan_iter(match=pattern)]
        except RedisError as e:
            raise StoreError(f"redis scan {pattern!r} failed: {e}") from e

    async def get(self, key: str) -> str | None:
        try:
            return await self._client.get(key)
        except RedisError as e:
            raise StoreError(f"redis get {key!r} failed: {e}") from e

    async def set(self, key: str, value: str) -> None:
        try:
            await self._client.set(key, value)
        except RedisError as e:
            raise StoreError(f"redis set {key!r} failed: {e}") from e

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError as e:
            raise StoreError(f"redis at {self.url} unreachable: {e}") from e

    async def close(self) -> None:
        try:
            await self._client.aclose()
        except RedisError as e:
            logger.warning(f"[redis] close failed: {e}")
