"""
chains.py — Multi-Order Markov Chains

The statistical voice of one person in one chat.

Every message a user writes is fed into a family of word-level Markov
chains, one per order (1 = "what follows this word", 3 = "what follows
these three words"). Low orders babble, high orders quote. Generating
from several orders at once lets the caller pick the flavour.

Quoting is the failure mode. Every contiguous run of words ever fed is
remembered as a hash, and any generated candidate that matches one is
thrown away. What survives is something the user *could* have said but
never did.

State serializes to a YAML snapshot so the brain can write it through
to the durable store and hydrate it back on restart.
"""

from __future__ import annotations

import hashlib
import logging
import random
from typing import Any, Iterable, Optional

import yaml

log = logging.getLogger(__name__)

# ── constants ───────────────────────────────────────────────────────

SNAPSHOT_VERSION = 1

NOVELTY_RETRIES = 1000     # candidates tried per order before giving up
ACCEPT_ONE_IN = 10         # a novel candidate survives with p = 1/10
MAX_WALK = 1000            # hard cap on tokens in a single walk

_STRIP_CHARS = str.maketrans("", "", "\";:'")

Slot = Optional[str]       # None marks a message boundary

# libyaml bindings when PyYAML was built with them
_Dumper = getattr(yaml, "CSafeDumper", yaml.SafeDumper)
_Loader = getattr(yaml, "CSafeLoader", yaml.SafeLoader)


class SnapshotError(Exception):
    """Snapshot text is not a valid model snapshot."""
    pass


# ── tokenizer ───────────────────────────────────────────────────────

def tokenize(text: str) -> list[str]:
    """Split on whitespace, lower-case, strip quote-ish punctuation."""
    return [
        piece.strip().lower().translate(_STRIP_CHARS)
        for piece in text.split()
    ]


def _digest(tokens: Iterable[str]) -> int:
    """Stable 64-bit hash of a token sequence.

    Persisted in snapshots, so it must not depend on the per-process
    salt of the builtin hash().
    """
    tokens = list(tokens)
    raw = f"{len(tokens)}\x1e" + "\x1f".join(tokens)
    return int.from_bytes(
        hashlib.blake2b(raw.encode("utf-8"), digest_size=8).digest(), "big",
    )


# ── single chain ────────────────────────────────────────────────────

class Chain:
    """Markov chain of a single order over word tokens.

    States are tuples of ``order`` slots. A slot is a token or None,
    where None pads the start and marks the end of a fed message.
    """

    def __init__(self, order: int, rng: random.Random | None = None):
        if order < 1:
            raise ValueError(f"chain order must be positive, got {order}")
        self.order = order
        self._rng = rng or random.Random()
        self._transitions: dict[tuple[Slot, ...], dict[Slot, int]] = {}

    def is_empty(self) -> bool:
        return not self._transitions

    @property
    def state_count(self) -> int:
        return len(self._transitions)

    def feed(self, tokens: list[str]):
        if not tokens:
            return
        padded: list[Slot] = [None] * self.order + list(tokens) + [None]
        for i in range(len(padded) - self.order):
            state = tuple(padded[i:i + self.order])
            following = self._transitions.setdefault(state, {})
            nxt = padded[i + self.order]
            following[nxt] = following.get(nxt, 0) + 1

    def generate(self) -> list[str]:
        """Walk from the start state until a boundary is drawn."""
        if self.is_empty():
            return []
        return self._walk([None] * self.order, [])

    def generate_from(self, token: str) -> list[str]:
        """Walk from a message that starts with ``token``.

        Returns an empty list when no fed message starts that way.
        """
        state: list[Slot] = [None] * (self.order - 1) + [token]
        if tuple(state) not in self._transitions:
            return []
        return self._walk(state, [token])

    def _walk(self, state: list[Slot], out: list[str]) -> list[str]:
        while len(out) < MAX_WALK:
            following = self._transitions.get(tuple(state))
            if not following:
                break
            nxt = self._rng.choices(
                list(following.keys()), weights=list(following.values()),
            )[0]
            if nxt is None:
                break
            out.append(nxt)
            state = state[1:] + [nxt]
        return out

    # ── serialization ────────────────────────────────────────────

    def to_dict(self) -> dict:
        return {
            "order": self.order,
            "transitions": [
                {
                    "state": list(state),
                    "next": [[slot, count] for slot, count in following.items()],
                }
                for state, following in self._transitions.items()
            ],
        }

    @classmethod
    def from_dict(cls, d: dict, rng: random.Random | None = None) -> "Chain":
        chain = cls(int(d["order"]), rng=rng)
        for entry in d.get("transitions") or []:
            state = tuple(entry["state"])
            if len(state) != chain.order:
                raise SnapshotError(
                    f"state {state!r} does not match order {chain.order}"
                )
            chain._transitions[state] = {
                slot: int(count) for slot, count in entry["next"]
            }
        return chain


# ── the multi-order model ───────────────────────────────────────────

class MultiOrderChain:
    """One user's voice: chains of every order plus the dedup index.

    Usage:
        chains = MultiOrderChain(1, 3)
        chains.feed("the quick brown fox jumps")
        chains.generate_from_empty()          # {1: [...], 2: [...], ...}
        chains.generate_from_token("the", order=2)

        raw = chains.snapshot()
        same = MultiOrderChain.from_snapshot(raw)
    """

    def __init__(
        self,
        min_order: int,
        max_order: int,
        *,
        rng: random.Random | None = None,
    ):
        if min_order < 1 or max_order < min_order:
            raise ValueError(f"bad order range {min_order}..{max_order}")
        self.min_order = min_order
        self.max_order = max_order
        self._rng = rng or random.Random()
        self._chains: dict[int, Chain] = {
            order: Chain(order, rng=self._rng)
            for order in range(min_order, max_order + 1)
        }
        self._known: set[int] = set()
        # display name of the user this voice belongs to, when known
        self.owner: str | None = None

    @property
    def orders(self) -> list[int]:
        return sorted(self._chains)

    @property
    def known_count(self) -> int:
        return len(self._known)

    def is_empty(self) -> bool:
        return all(chain.is_empty() for chain in self._chains.values())

    # ── learning ─────────────────────────────────────────────────

    def feed(self, text: str) -> list[str]:
        """Learn one message. Returns its tokens."""
        tokens = tokenize(text)
        for chain in self._chains.values():
            chain.feed(tokens)
        self._remember(tokens)
        return tokens

    def _remember(self, tokens: list[str]):
        lowered = [t.lower() for t in tokens]
        n = len(lowered)
        for i in range(n):
            for j in range(i + 1, n + 1):
                self._known.add(_digest(lowered[i:j]))

    def is_known(self, tokens: list[str]) -> bool:
        """True if ``tokens`` appeared verbatim inside something fed."""
        return _digest(t.lower() for t in tokens) in self._known

    # ── generation ───────────────────────────────────────────────

    def generate_from_token(
        self, token: str, order: int | None = None,
    ) -> dict[int, list[str]]:
        """Novel continuations starting with ``token``, keyed by order."""
        return self._generate(lambda chain: chain.generate_from(token), order)

    def generate_from_empty(self, order: int | None = None) -> dict[int, list[str]]:
        """Novel messages from each chain's start state, keyed by order."""
        return self._generate(lambda chain: chain.generate(), order)

    def _generate(self, walk, order: int | None) -> dict[int, list[str]]:
        if order is None:
            selected = self._chains
        elif order in self._chains:
            selected = {order: self._chains[order]}
        else:
            return {}

        result: dict[int, list[str]] = {}
        for k, chain in selected.items():
            if chain.is_empty():
                continue
            candidate = self._novel(lambda: walk(chain))
            if candidate is not None:
                result[k] = candidate
        return result

    def _novel(self, gen) -> list[str] | None:
        """Draw candidates until one is novel and survives thinning."""
        for _ in range(NOVELTY_RETRIES):
            candidate = gen()
            if not candidate or self.is_known(candidate):
                continue
            if self._rng.randrange(ACCEPT_ONE_IN) == 0:
                return candidate
        return None

    # ── snapshot codec ───────────────────────────────────────────

    def to_dict(self) -> dict:
        d = {
            "version": SNAPSHOT_VERSION,
            "min_order": self.min_order,
            "max_order": self.max_order,
            "chains": {k: chain.to_dict() for k, chain in self._chains.items()},
            "known": sorted(self._known),
        }
        if self.owner is not None:
            d["owner"] = self.owner
        return d

    def snapshot(self) -> str:
        """Full state as a YAML document."""
        return yaml.dump(
            self.to_dict(), Dumper=_Dumper, allow_unicode=True, sort_keys=False,
        )

    def restore(self, raw: str | bytes):
        """Replace all state with a snapshot. Raises SnapshotError."""
        try:
            data = yaml.load(raw, Loader=_Loader)
        except yaml.YAMLError as e:
            raise SnapshotError(f"snapshot is not valid YAML: {e}") from e

        if not isinstance(data, dict):
            raise SnapshotError(f"snapshot must be a mapping, got {type(data).__name__}")
        if data.get("version") != SNAPSHOT_VERSION:
            raise SnapshotError(f"unsupported snapshot version: {data.get('version')!r}")

        try:
            chains = {
                int(k): Chain.from_dict(v, rng=self._rng)
                for k, v in (data.get("chains") or {}).items()
            }
            known = {int(h) for h in data.get("known") or []}
            min_order = int(data["min_order"])
            max_order = int(data["max_order"])
            owner = data.get("owner")
        except SnapshotError:
            raise
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise SnapshotError(f"malformed snapshot: {e!r}") from e

        for k, chain in chains.items():
            if chain.order != k:
                raise SnapshotError(f"chain keyed {k} has order {chain.order}")
        if owner is not None and not isinstance(owner, str):
            raise SnapshotError(f"owner must be a string, got {owner!r}")

        self.min_order = min_order
        self.max_order = max_order
        self._chains = chains
        self._known = known
        self.owner = owner
        log.debug("restored snapshot: orders=%s known=%d", sorted(chains), len(known))

    @classmethod
    def from_snapshot(
        cls, raw: str | bytes, *, rng: random.Random | None = None,
    ) -> "MultiOrderChain":
        model = cls(1, 1, rng=rng)
        model.restore(raw)
        return model

    def describe(self) -> dict[str, Any]:
        return {
            "orders": self.orders,
            "states": {k: c.state_count for k, c in self._chains.items()},
            "known": len(self._known),
        }
