"""
config.py — Configuration

Built once at startup and handed down explicitly: run.py loads the
YAML file, applies environment overrides and passes the resulting
Config into the pieces that need it. Nothing reads it globally.

Environment overrides (kept compatible with older deployments):
    REDIS_ADDR, REDIS_PASSWD, REPLY_TIMEOUT_SEC, REPLY_PROB,
    KNOWN_WORD_REPLY_PROB, MAX_GEN_RETRIES, MAX_REPLY_TOKENS,
    WRITE_TO_REDIS_FREQ, TELEGRAM_BOT_TOKEN
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping

import yaml

log = logging.getLogger(__name__)

DEFAULT_CONFIG = Path("config/default.yaml")
DEFAULT_STATE_DIR = Path.home() / ".parrot"

STORE_BACKENDS = ("redis", "sqlite", "none")


class ConfigError(Exception):
    """Configuration value missing or unparsable."""
    pass


# ── sections ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class BrainConfig:
    """What the brain needs to learn and speak."""
    min_order: int = 1
    max_order: int = 3
    max_reply_tokens: int = 15     # roughly the longest sentence we say
    max_gen_retries: int = 100     # users tried per reply
    persist_every: int = 10        # feeds between write-throughs

    def validate(self):
        if self.min_order < 1 or self.max_order < self.min_order:
            raise ConfigError(
                f"brain orders must satisfy 1 <= min <= max, "
                f"got {self.min_order}..{self.max_order}"
            )
        for name in ("max_reply_tokens", "max_gen_retries", "persist_every"):
            if getattr(self, name) < 1:
                raise ConfigError(f"brain.{name} must be positive")


@dataclass(frozen=True)
class ReplyConfig:
    """When the bot speaks up on its own."""
    timeout_sec: int = 5           # ignore messages older than this
    prob: float = 0.01             # reply to any message
    known_word_prob: float = 0.1   # reply when the last word starts a known phrase
    order: int = 2

    def validate(self):
        for name in ("prob", "known_word_prob"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigError(f"reply.{name} must be within [0, 1], got {value}")


@dataclass(frozen=True)
class StoreConfig:
    backend: str = "redis"
    redis_addr: str = "redis://127.0.0.1:5000/"
    redis_password: str | None = None
    sqlite_path: str = str(DEFAULT_STATE_DIR / "brain.db")

    def validate(self):
        if self.backend not in STORE_BACKENDS:
            raise ConfigError(
                f"store.backend must be one of {', '.join(STORE_BACKENDS)}, "
                f"got {self.backend!r}"
            )


@dataclass(frozen=True)
class Config:
    brain: BrainConfig = field(default_factory=BrainConfig)
    reply: ReplyConfig = field(default_factory=ReplyConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    channels: dict[str, Any] = field(default_factory=dict)
    history_timeout: int = 60

    @classmethod
    def from_dict(
        cls, d: Mapping[str, Any], env: Mapping[str, str] | None = None,
    ) -> "Config":
        """Build from a parsed YAML mapping plus environment overrides."""
        env = os.environ if env is None else env
        brain = dict(d.get("brain") or {})
        reply = dict(d.get("reply") or {})
        store = dict(d.get("store") or {})
        channels = {k: dict(v or {}) for k, v in (d.get("channels") or {}).items()}

        _override(env, "MAX_GEN_RETRIES", brain, "max_gen_retries", int)
        _override(env, "MAX_REPLY_TOKENS", brain, "max_reply_tokens", int)
        _override(env, "WRITE_TO_REDIS_FREQ", brain, "persist_every", int)
        _override(env, "REPLY_TIMEOUT_SEC", reply, "timeout_sec", int)
        _override(env, "REPLY_PROB", reply, "prob", float)
        _override(env, "KNOWN_WORD_REPLY_PROB", reply, "known_word_prob", float)
        _override(env, "REDIS_ADDR", store, "redis_addr", str)
        _override(env, "REDIS_PASSWD", store, "redis_password", str)

        telegram = channels.setdefault("telegram", {})
        _override(env, "TELEGRAM_BOT_TOKEN", telegram, "token", str)

        config = cls(
            brain=_build(BrainConfig, brain, "brain"),
            reply=_build(ReplyConfig, reply, "reply"),
            store=_build(StoreConfig, store, "store"),
            channels=channels,
            history_timeout=_coerce(int, d.get("history_timeout", 60), "history_timeout"),
        )
        config.brain.validate()
        config.reply.validate()
        config.store.validate()
        return config


# ── loading ─────────────────────────────────────────────────────────

def load_config(path: str | Path, env: Mapping[str, str] | None = None) -> Config:
    """Load YAML config, falling back to defaults."""
    p = Path(path)
    data: dict = {}
    if p.exists():
        try:
            with open(p) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"cannot parse {p}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{p} must contain a mapping at the top level")
        log.info("Config loaded from %s", p)
    else:
        log.warning("Config not found at %s, using defaults", p)
    return Config.from_dict(data, env=env)


# ── helpers ─────────────────────────────────────────────────────────

def _coerce(kind: Callable[[Any], Any], value: Any, name: str) -> Any:
    try:
        return kind(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"unable to parse {name}={value!r}") from e


def _override(
    env: Mapping[str, str],
    var: str,
    section: dict,
    key: str,
    kind: Callable[[Any], Any],
):
    raw = env.get(var)
    if raw is not None and raw != "":
        section[key] = _coerce(kind, raw, var)


def _build(cls, values: dict, section: str):
    known = cls.__dataclass_fields__
    unknown = set(values) - set(known)
    if unknown:
        log.warning("Ignoring unknown %s settings: %s", section, ", ".join(sorted(unknown)))
    kwargs = {}
    for name, f in known.items():
        if name not in values:
            continue
        value = values[name]
        default = f.default
        if value is not None and isinstance(default, (int, float)) and not isinstance(default, bool):
            value = _coerce(type(default), value, f"{section}.{name}")
        kwargs[name] = value
    return cls(**kwargs)
