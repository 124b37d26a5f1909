"""Tests for the registry: identity, write-through, hydration, speaking."""

from __future__ import annotations

import asyncio
import random

import pytest

from parrot.brain import Brain, UserName, storage_key
from parrot.chains import MultiOrderChain
from parrot.config import BrainConfig
from parrot.history import History, HistoryLink, HistoryMessage
from parrot.store.base import StoreError


def _msg(i: int, author: str | None, text) -> HistoryMessage:
    return HistoryMessage(id=i, type="message", date="2021-01-01T00:00:00", author=author, text=text)


def _snapshot(*texts: str) -> str:
    model = MultiOrderChain(1, 2)
    for t in texts:
        model.feed(t)
    return model.snapshot()


class TestUserName:

    def test_case_insensitive_identity(self):
        assert UserName("Bob") == UserName("bob")
        assert hash(UserName("Bob")) == hash(UserName("BOB"))
        assert UserName("Bob") != UserName("Rob")

    def test_display_keeps_casing(self):
        assert str(UserName("Bob Smith")) == "Bob Smith"
        assert UserName("Bob Smith").key == "bob smith"

    def test_compares_with_plain_strings(self):
        assert UserName("Alice") == "ALICE"

    def test_same_registry_slot(self, brain):
        asyncio.run(brain.feed_message(1, UserName("Bob"), "hi there", persist=False))
        assert brain.is_known_user(1, UserName("bob"))
        assert brain.users(1) == [UserName("BOB")]

    def test_storage_key_is_normalized(self):
        assert storage_key(-100, UserName("Bob")) == "-100_bob"


class TestFeed:

    def test_creates_user_on_first_feed(self, brain):
        assert not brain.is_known_user(5, UserName("alice"))
        asyncio.run(brain.feed_message(5, UserName("alice"), "hello", persist=False))
        assert brain.is_known_user(5, UserName("alice"))
        assert not brain.is_known_user(6, UserName("alice"))
        assert brain.messages_fed == 1

    def test_write_through_every_n_feeds(self, brain, store):
        async def go():
            await brain.feed_message(1, UserName("a"), "one", persist=True)
            await brain.feed_message(2, UserName("b"), "two", persist=True)
            assert store.sets == []
            await brain.feed_message(1, UserName("c"), "three", persist=True)
            assert store.sets == ["1_c"]
            for i in range(3):
                await brain.feed_message(2, UserName("b"), f"more {i}", persist=True)
            assert store.sets == ["1_c", "2_b"]

        asyncio.run(go())

    def test_no_write_without_persist_flag(self, brain, store):
        async def go():
            for i in range(6):
                await brain.feed_message(1, UserName("a"), f"msg {i}", persist=False)

        asyncio.run(go())
        assert store.sets == []

    def test_persist_failure_is_swallowed(self, brain, store):
        store.fail_writes = True

        async def go():
            for i in range(3):
                await brain.feed_message(1, UserName("a"), f"msg {i}", persist=True)

        asyncio.run(go())
        assert brain.messages_fed == 3
        assert brain.is_known_user(1, UserName("a"))

    def test_persisted_snapshot_restores(self, brain, store):
        async def go():
            for i in range(3):
                await brain.feed_message(9, UserName("Zed"), "quite a thing", persist=True)

        asyncio.run(go())
        restored = MultiOrderChain.from_snapshot(store.data["9_zed"])
        assert restored.is_known(["quite", "a", "thing"])


class TestHydrate:

    def test_loads_users_of_the_chat_once(self, brain, store):
        store.data["42_alice"] = _snapshot("good morning all")
        store.data["42_bob"] = _snapshot("evening folks")
        store.data["420_carol"] = _snapshot("not this chat")

        async def go():
            await brain.hydrate(42)
            assert brain.is_hydrated(42)
            assert set(brain.users(42)) == {UserName("Alice"), UserName("Bob")}
            assert brain.users(420) == []

            await brain.feed_message(42, UserName("alice"), "new words", persist=False)
            await brain.hydrate(42)

        asyncio.run(go())
        assert store.scans == 1
        chains = brain._users[42][UserName("alice")]
        assert chains.is_known(["new", "words"])
        assert chains.is_known(["good", "morning"])

    def test_user_names_with_underscores(self, brain, store):
        store.data["7_mr_smith"] = _snapshot("hello")
        asyncio.run(brain.hydrate(7))
        assert brain.is_known_user(7, UserName("mr_smith"))

    def test_store_failure_propagates_and_allows_retry(self, brain, store):
        store.data["3_dana"] = _snapshot("retry me")
        store.fail_reads = True
        with pytest.raises(StoreError):
            asyncio.run(brain.hydrate(3))
        assert not brain.is_hydrated(3)

        store.fail_reads = False
        asyncio.run(brain.hydrate(3))
        assert brain.is_known_user(3, UserName("dana"))

    def test_corrupt_entry_does_not_block_others(self, brain, store):
        store.data["8_good"] = _snapshot("fine data")
        store.data["8_bad"] = "chains: [broken"
        asyncio.run(brain.hydrate(8))
        assert brain.is_hydrated(8)
        assert brain.is_known_user(8, UserName("good"))
        assert not brain.is_known_user(8, UserName("bad"))

    def test_display_name_survives_reload(self, brain, brain_config, store):
        async def go():
            for _ in range(3):
                await brain.feed_message(1, UserName("Alice Smith"), "hi there", persist=True)

            fresh = Brain(brain_config, store=store, rng=random.Random(1))
            await fresh.hydrate(1)
            before = str(fresh.users(1)[0])
            await fresh.feed_message(1, UserName("alice smith"), "again", persist=False)
            return before, str(fresh.users(1)[0])

        assert asyncio.run(go()) == ("Alice Smith", "Alice Smith")

    def test_unnamed_snapshot_adopts_casing_when_user_speaks(self, brain, store):
        store.data["1_alice smith"] = _snapshot("hi there")

        async def go():
            await brain.hydrate(1)
            before = str(brain.users(1)[0])
            await brain.feed_message(1, UserName("Alice Smith"), "again", persist=False)
            return before

        assert asyncio.run(go()) == "alice smith"
        assert [str(u) for u in brain.users(1)] == ["Alice Smith"]
        assert brain._users[1][UserName("alice smith")].is_known(["hi", "there"])

    def test_normalized_key_wins_over_cased_key(self, brain, store):
        store.data["5_Alice"] = _snapshot("old words")
        store.data["5_alice"] = _snapshot("new words")
        asyncio.run(brain.hydrate(5))

        assert [str(u) for u in brain.users(5)] == ["Alice"]
        chains = brain._users[5][UserName("alice")]
        assert chains.is_known(["new", "words"])
        assert not chains.is_known(["old", "words"])

    def test_cased_key_used_when_normalized_is_corrupt(self, brain, store):
        store.data["6_alice"] = "chains: [broken"
        store.data["6_Alice"] = _snapshot("older words")
        asyncio.run(brain.hydrate(6))
        assert brain._users[6][UserName("alice")].is_known(["older", "words"])

    def test_cased_key_alone_keeps_its_casing(self, brain, store):
        store.data["5_Bob Jones"] = _snapshot("x y")
        asyncio.run(brain.hydrate(5))
        assert [str(u) for u in brain.users(5)] == ["Bob Jones"]

    def test_without_store_marks_hydrated(self, brain_config):
        brain = Brain(brain_config, store=None)
        asyncio.run(brain.hydrate(1))
        assert brain.is_hydrated(1)
        assert brain.users(1) == []


class TestLearnFromHistory:

    def _history(self) -> History:
        return History(messages=[
            _msg(1, "Alice", "first from alice"),
            _msg(2, "Bob", "bob says hi"),
            _msg(3, "Alice", "second from alice"),
            _msg(4, "Bob", "bob again"),
            _msg(5, "Alice", "third from alice"),
        ])

    def test_filtered_to_one_user(self, brain, store):
        processed = asyncio.run(brain.learn_from_history(7, self._history(), UserName("alice")))
        assert processed == 3
        assert store.sets == ["7_alice"]
        assert brain.is_known_user(7, UserName("Alice"))
        assert not brain.is_known_user(7, UserName("Bob"))

    def test_everyone(self, brain, store):
        processed = asyncio.run(brain.learn_from_history(7, self._history()))
        assert processed == 5
        assert sorted(store.sets) == ["7_alice", "7_bob"]

    def test_skips_links_empty_and_authorless(self, brain, store):
        history = History(messages=[
            _msg(1, "Alice", "plain words"),
            _msg(2, "Alice", ["see ", HistoryLink(type="link", text="https://x.y")]),
            _msg(3, "Alice", ""),
            _msg(4, None, "service message"),
            _msg(5, "Eve", [HistoryLink(type="mention", text="@alice")]),
        ])
        processed = asyncio.run(brain.learn_from_history(1, history))
        assert processed == 1
        assert brain.users(1) == [UserName("alice")]
        assert store.sets == ["1_alice"]

    def test_does_not_write_through_per_message(self, brain, store):
        asyncio.run(brain.learn_from_history(7, self._history(), UserName("Bob")))
        assert store.sets == ["7_bob"]

    def test_persist_errors_propagate(self, brain, store):
        store.fail_writes = True
        with pytest.raises(StoreError):
            asyncio.run(brain.learn_from_history(7, self._history()))


class TestSpeaking:

    def _fed(self, brain: Brain, chat: int = 1) -> Brain:
        async def go():
            await brain.feed_message(chat, UserName("Alice"), "a b c", persist=False)
            await brain.feed_message(chat, UserName("Alice"), "x b d", persist=False)
        asyncio.run(go())
        return brain

    def test_empty_chat_has_nothing_to_say(self, brain):
        assert brain.choose_user(99) is None
        assert brain.generate_from_token(99, "a", 1) is None
        assert brain.generate_from_empty(99, 1) is None

    def test_choose_user_picks_a_member(self, brain):
        async def go():
            for name in ("ann", "ben", "cat"):
                await brain.feed_message(4, UserName(name), "hey", persist=False)
        asyncio.run(go())
        chosen = {brain.choose_user(4) for _ in range(200)}
        assert chosen == {UserName("ann"), UserName("ben"), UserName("cat")}

    def test_generate_from_empty(self, brain):
        user, text = self._fed(brain).generate_from_empty(1, 1)
        assert user == UserName("alice")
        assert str(user) == "Alice"
        assert text in ("a b d", "x b c")

    def test_generate_from_token(self, brain):
        assert self._fed(brain).generate_from_token(1, "x", 1) == (UserName("Alice"), "x b c")

    def test_unknown_token_gives_nothing(self, brain):
        assert self._fed(brain).generate_from_token(1, "zebra", 1) is None

    def test_reply_length_limit(self, store):
        config = BrainConfig(min_order=1, max_order=1, max_reply_tokens=3, max_gen_retries=5)
        brain = self._fed(Brain(config, store=store, rng=random.Random(1)))
        assert brain.generate_from_empty(1, 1) is None

    def test_stats(self, brain):
        self._fed(brain)
        assert brain.stats() == {"chats": 1, "users": 1, "hydrated": 0, "fed": 2}
        assert brain.stats(1)["users"] == 1
        detail = brain.stats(1)
        voice = detail["voices"]["Alice"]
        assert voice["orders"] == [1, 2]
        assert detail["states"] == sum(voice["states"].values()) > 0
        assert detail["phrases"] == voice["known"]
