"""
brain.py — The Registry of Voices

Holds one MultiOrderChain per (chat, user) and decides when they
touch the durable store.

Lifecycle of a voice:
  - created the first time its user is fed (or found in the store)
  - never unloaded while the process lives
  - written through to the store every ``persist_every`` feeds,
    and in bulk after a history import
  - loaded at most once per chat, the first time the chat is touched

When asked to speak, the brain picks a random user of the chat and
asks that user's voice for something novel and short enough. If the
voice stays silent it tries someone else, a bounded number of times.
Silence is a perfectly normal answer.

Single-threaded by design: one event is handled at a time, so there
is no locking around the registry.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import TYPE_CHECKING

from parrot.chains import MultiOrderChain, SnapshotError
from parrot.config import BrainConfig
from parrot.store.base import KeyValueStore

if TYPE_CHECKING:
    from parrot.history import History

log = logging.getLogger(__name__)


# ── identity ────────────────────────────────────────────────────────

class UserName:
    """A participant's display name. Case-insensitive identity.

    ``key`` (lower-cased) drives equality, hashing and storage keys;
    ``str()`` keeps the casing the user was first seen with.
    """

    __slots__ = ("display", "key")

    def __init__(self, name: str):
        self.display = name
        self.key = name.lower()

    def __eq__(self, other: object) -> bool:
        if isinstance(other, UserName):
            return self.key == other.key
        if isinstance(other, str):
            return self.key == other.lower()
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.key)

    def __str__(self) -> str:
        return self.display

    def __repr__(self) -> str:
        return f"UserName({self.display!r})"


def storage_key(chat_id: int, user: UserName) -> str:
    return f"{chat_id}_{user.key}"


def chat_prefix(chat_id: int) -> str:
    return f"{chat_id}_"


# ── the brain ───────────────────────────────────────────────────────

class Brain:
    """In-memory registry of per-chat, per-user voices.

    Usage:
        brain = Brain(BrainConfig(min_order=1, max_order=3), store=store)

        await brain.hydrate(chat_id)
        await brain.feed_message(chat_id, UserName("Alice"), "hi all", persist=True)

        reply = brain.generate_from_empty(chat_id, order=2)
        if reply:
            user, text = reply
    """

    def __init__(
        self,
        config: BrainConfig,
        store: KeyValueStore | None = None,
        *,
        rng: random.Random | None = None,
    ):
        self.config = config
        self.store = store
        self._rng = rng or random.Random()
        self._users: dict[int, dict[UserName, MultiOrderChain]] = {}
        self._hydrated: set[int] = set()
        self._fed = 0

    @property
    def messages_fed(self) -> int:
        return self._fed

    def is_hydrated(self, chat_id: int) -> bool:
        return chat_id in self._hydrated

    def users(self, chat_id: int) -> list[UserName]:
        return list(self._users.get(chat_id, {}))

    def is_known_user(self, chat_id: int, user: UserName) -> bool:
        """True if we already hold a voice for this user in this chat."""
        return user in self._users.get(chat_id, {})

    def _slot(self, chat_id: int, user: UserName) -> MultiOrderChain:
        chat_users = self._users.setdefault(chat_id, {})
        chains = chat_users.get(user)
        if chains is None:
            chains = MultiOrderChain(
                self.config.min_order, self.config.max_order, rng=self._rng,
            )
            chains.owner = user.display
            chat_users[user] = chains
            log.debug("New voice: chat=%s user=%s", chat_id, user)
        elif chains.owner is None:
            # restored without a display name: adopt the casing just seen
            chains.owner = user.display
            del chat_users[user]
            chat_users[user] = chains
        return chains

    # ── learning ─────────────────────────────────────────────────

    async def feed_message(
        self, chat_id: int, user: UserName, text: str, persist: bool,
    ):
        """Learn one message; every ``persist_every`` feeds, write it through."""
        self._slot(chat_id, user).feed(text)
        self._fed += 1

        if persist and self._fed % self.config.persist_every == 0:
            try:
                await self.persist(chat_id, user)
            except Exception as e:
                log.error("Error writing new data for %s in %s: %s", user, chat_id, e)

    async def learn_from_history(
        self,
        chat_id: int,
        history: "History",
        only: UserName | None = None,
    ) -> int:
        """Learn an exported history. Returns the number of messages fed.

        With ``only`` set, everyone else's messages are skipped. Every
        author touched is persisted at the end; store errors propagate.
        """
        processed = 0
        touched: dict[UserName, None] = {}

        for item in history.messages:
            if not item.author:
                continue
            author = UserName(item.author)
            if only is not None and author != only:
                continue

            touched.setdefault(author, None)

            text = item.plain_text
            if not text:
                continue
            await self.feed_message(chat_id, author, text, persist=False)
            processed += 1

        to_save = [only] if only is not None else list(touched)
        for user in to_save:
            await self.persist(chat_id, user)

        log.info(
            "Learned %d messages in chat %s (%d authors)",
            processed, chat_id, len(touched),
        )
        return processed

    # ── persistence ──────────────────────────────────────────────

    async def persist(self, chat_id: int, user: UserName):
        """Write one user's voice to the store."""
        chains = self._users.get(chat_id, {}).get(user)
        if chains is None:
            return
        if self.store is None:
            log.warning("Can't save learn data for %s: no store configured", user)
            return
        loop = asyncio.get_running_loop()
        raw = await loop.run_in_executor(None, chains.snapshot)
        await self.store.set(storage_key(chat_id, user), raw)
        log.debug("Persisted chat=%s user=%s", chat_id, user)

    async def hydrate(self, chat_id: int):
        """Load every stored voice of a chat. Runs once per chat.

        Store errors propagate and leave the chat unloaded, so the next
        call retries. A corrupt entry is logged and skipped; the rest of
        the chat still loads.
        """
        if chat_id in self._hydrated:
            return

        if self.store is None:
            log.warning("Can't read data for chat %s: no store configured", chat_id)
            self._hydrated.add(chat_id)
            return

        log.info("Preparing to load data for chat %s", chat_id)
        prefix = chat_prefix(chat_id)

        found: dict[UserName, list[tuple[str, str]]] = {}
        for key in await self.store.keys(prefix):
            name = key[len(prefix):]
            if not name:
                log.warning("Skipping store key without user name: %s", key)
                continue
            raw = await self.store.get(key)
            if raw is None:
                continue
            found.setdefault(UserName(name), []).append((name, raw))

        loaded = 0
        for user, entries in found.items():
            chains = self._restore(chat_id, user, entries)
            if chains is None:
                continue
            if chains.owner:
                user = UserName(chains.owner)
            log.info("Loading data for %s...", user)
            self._users.setdefault(chat_id, {})[user] = chains
            loaded += 1

        self._hydrated.add(chat_id)
        log.info("Data for chat %s loaded (%d users)", chat_id, loaded)

    def _restore(
        self, chat_id: int, user: UserName, entries: list[tuple[str, str]],
    ) -> MultiOrderChain | None:
        """Pick one snapshot among keys that differ only in casing.

        The lower-cased key is the one write-through keeps current, so it
        wins over older keys stored with the user's original casing. Those
        still lend their casing when the snapshot doesn't carry a name.
        """
        entries = sorted(entries, key=lambda entry: entry[0] != user.key)
        for name, raw in entries:
            try:
                chains = MultiOrderChain.from_snapshot(raw, rng=self._rng)
            except SnapshotError as e:
                log.error("Corrupt data for %s in chat %s, skipped: %s", name, chat_id, e)
                continue
            if chains.owner is None:
                chains.owner = next(
                    (n for n, _ in entries if n != n.lower()), None,
                )
            return chains
        return None

    # ── speaking ─────────────────────────────────────────────────

    def choose_user(self, chat_id: int) -> UserName | None:
        """Uniformly random user with a voice in this chat."""
        users = self.users(chat_id)
        if not users:
            return None
        return self._rng.choice(users)

    def generate_from_token(
        self, chat_id: int, token: str, order: int,
    ) -> tuple[UserName, str] | None:
        """Something a random user might say starting with ``token``."""
        return self._speak(
            chat_id, order, lambda chains: chains.generate_from_token(token, order),
        )

    def generate_from_empty(
        self, chat_id: int, order: int,
    ) -> tuple[UserName, str] | None:
        """Something a random user might say."""
        return self._speak(
            chat_id, order, lambda chains: chains.generate_from_empty(order),
        )

    def _speak(self, chat_id: int, order: int, gen) -> tuple[UserName, str] | None:
        for _ in range(self.config.max_gen_retries):
            user = self.choose_user(chat_id)
            if user is None:
                return None

            tokens = gen(self._users[chat_id][user]).get(order)
            if tokens and len(tokens) < self.config.max_reply_tokens:
                return user, " ".join(tokens)
        return None

    # ── info ─────────────────────────────────────────────────────

    def stats(self, chat_id: int | None = None) -> dict:
        if chat_id is not None:
            chat_users = self._users.get(chat_id, {})
            voices = {str(u): c.describe() for u, c in chat_users.items()}
            return {
                "users": len(chat_users),
                "phrases": sum(v["known"] for v in voices.values()),
                "states": sum(sum(v["states"].values()) for v in voices.values()),
                "hydrated": chat_id in self._hydrated,
                "voices": voices,
            }
        return {
            "chats": len(self._users),
            "users": sum(len(u) for u in self._users.values()),
            "hydrated": len(self._hydrated),
            "fed": self._fed,
        }
