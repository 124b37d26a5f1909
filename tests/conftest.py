"""Shared fixtures: an in-memory store and a seeded brain."""

from __future__ import annotations

import random

import pytest

from parrot.brain import Brain
from parrot.config import BrainConfig
from parrot.store.base import KeyValueStore, StoreError


class MemoryStore(KeyValueStore):
    """Dict-backed store that counts calls and can be told to fail."""

    name = "memory"

    def __init__(self, data: dict[str, str] | None = None):
        self.data: dict[str, str] = dict(data or {})
        self.sets: list[str] = []
        self.scans = 0
        self.fail_reads = False
        self.fail_writes = False

    async def keys(self, prefix: str) -> list[str]:
        self.scans += 1
        if self.fail_reads:
            raise StoreError("store is down")
        return [k for k in self.data if k.startswith(prefix)]

    async def get(self, key: str) -> str | None:
        if self.fail_reads:
            raise StoreError("store is down")
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise StoreError("store is down")
        self.sets.append(key)
        self.data[key] = value


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def brain_config() -> BrainConfig:
    return BrainConfig(
        min_order=1, max_order=2, max_reply_tokens=15,
        max_gen_retries=50, persist_every=3,
    )


@pytest.fixture
def brain(brain_config, store) -> Brain:
    return Brain(brain_config, store=store, rng=random.Random(7))
