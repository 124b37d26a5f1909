"""Tests for assembling and stopping the bot."""

from __future__ import annotations

import asyncio

import pytest

from parrot.config import Config
from parrot.run import Parrot
from parrot.store.base import KeyValueStore, StoreError


class UnreachableStore(KeyValueStore):
    name = "unreachable"

    def __init__(self):
        self.closed = False

    async def keys(self, prefix: str) -> list[str]:
        raise StoreError("no route to host")

    async def get(self, key: str) -> str | None:
        raise StoreError("no route to host")

    async def set(self, key: str, value: str) -> None:
        raise StoreError("no route to host")

    async def ping(self) -> bool:
        raise StoreError("no route to host")

    async def close(self) -> None:
        self.closed = True


def _config(tmp_path) -> Config:
    return Config.from_dict(
        {"store": {"backend": "sqlite", "sqlite_path": str(tmp_path / "brain.db")}},
        env={},
    )


class TestParrot:

    def test_runs_until_stopped(self, tmp_path):
        parrot = Parrot(_config(tmp_path))
        assert parrot.store.name == "sqlite"

        async def go():
            task = asyncio.create_task(parrot.run())
            await asyncio.sleep(0.05)
            parrot.stop()
            await asyncio.wait_for(task, timeout=5)

        asyncio.run(go())
        with pytest.raises(StoreError):
            asyncio.run(parrot.store.ping())

    def test_unreachable_store_stops_startup(self, tmp_path):
        parrot = Parrot(_config(tmp_path))
        asyncio.run(parrot.store.close())
        parrot.store = UnreachableStore()

        with pytest.raises(StoreError):
            asyncio.run(parrot.run())
        assert parrot.channel_manager._dispatch_task is None

    def test_sqlite_ping(self, tmp_path):
        parrot = Parrot(_config(tmp_path))
        assert asyncio.run(parrot.store.ping()) is True
        asyncio.run(parrot.store.close())
