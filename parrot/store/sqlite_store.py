"""SQLite backend — a single-file store for running without Redis.

One table, one row per key. Writes commit immediately, so whatever
the brain persisted survives a crash.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from pathlib import Path

from parrot.store.base import KeyValueStore, StoreError

logger = logging.getLogger(__name__)


class SqliteStore(KeyValueStore):
    """Snapshot storage in a local SQLite file."""

    name = "sqlite"

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = self._open_db()
            self._ensure_schema()
        except sqlite3.Error as e:
            raise StoreError(f"cannot open {self.path}: {e}") from e

    # ── database ────────────────────────────────────────────────

    def _open_db(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.path))
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        return conn

    def _ensure_schema(self) -> None:
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS kv (
                key      TEXT PRIMARY KEY,
                value    TEXT NOT NULL,
                updated  REAL NOT NULL
            );
        """)
        self._conn.commit()

    # ── KeyValueStore ───────────────────────────────────────────

    async def keys(self, prefix: str) -> list[str]:
        try:
            rows = self._conn.execute(
                "SELECT key FROM kv WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix),
            ).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"sqlite key scan failed: {e}") from e
        return [row[0] for row in rows]

    async def get(self, key: str) -> str | None:
        try:
            row = self._conn.execute(
                "SELECT value FROM kv WHERE key = ?", (key,),
            ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"sqlite get {key!r} failed: {e}") from e
        return row[0] if row else None

    async def set(self, key: str, value: str) -> None:
        try:
            self._conn.execute(
                "INSERT INTO kv (key, value, updated) VALUES (?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value, "
                "updated = excluded.updated",
                (key, value, time.time()),
            )
            self._conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"sqlite set {key!r} failed: {e}") from e

    async def ping(self) -> bool:
        try:
            self._conn.execute("SELECT 1").fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"sqlite at {self.path} unusable: {e}") from e
        return True

    async def close(self) -> None:
        self._conn.close()
        logger.debug(f"[sqlite] closed {self.path}")
