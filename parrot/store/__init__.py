"""Store — where learned voices survive restarts.

Backends are imported lazily so a Redis-less install can still run
on SQLite.
"""

from __future__ import annotations

import importlib
import logging
from typing import TYPE_CHECKING

from parrot.store.base import KeyValueStore, StoreError

if TYPE_CHECKING:
    from parrot.config import StoreConfig

logger = logging.getLogger(__name__)

__all__ = ["KeyValueStore", "StoreError", "create_store"]


def create_store(config: "StoreConfig") -> KeyValueStore | None:
    """Build the configured backend. Returns None for backend "none"."""
    backend = config.backend
    if backend == "none":
        logger.warning("[store] no durable store configured, learning is memory-only")
        return None

    if backend == "redis":
        mod = importlib.import_module("parrot.store.redis_store")
        store = mod.RedisStore(config.redis_addr, password=config.redis_password)
    elif backend == "sqlite":
        mod = importlib.import_module("parrot.store.sqlite_store")
        store = mod.SqliteStore(config.sqlite_path)
    else:
        raise StoreError(f"unknown store backend: {backend!r}")

    logger.info(f"[store] using {store.name} backend")
    return store
