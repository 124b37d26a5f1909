"""
telegram.py — Telegram Bot API Client

Just enough of the Bot API for a chat parrot: long-poll updates,
send replies, know who we are.

Synchronous on purpose; channels/telegram.py runs calls in an
executor so the event loop never blocks.

Zero external dependencies. Pure stdlib.
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Any

log = logging.getLogger(__name__)

API_BASE = "https://api.telegram.org"


class TelegramError(Exception):
    """Bot API error with status code."""
    def __init__(self, message: str, status: int = 0, retry_after: float = 0.0):
        super().__init__(message)
        self.status = status
        self.retry_after = retry_after


# ── data types ──────────────────────────────────────────────────────

@dataclass
class TelegramMessage:
    """The parts of a Bot API Message we care about."""
    message_id: int
    chat_id: int
    date: int
    text: str = ""
    sender_id: int = 0
    first_name: str = ""
    last_name: str | None = None
    raw: dict = field(default_factory=dict, repr=False)

    @property
    def full_name(self) -> str:
        if self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.first_name

    @classmethod
    def from_api(cls, data: dict) -> "TelegramMessage":
        sender = data.get("from") or {}
        chat = data.get("chat") or {}
        return cls(
            message_id=data.get("message_id", 0),
            chat_id=chat.get("id", 0),
            date=data.get("date", 0),
            text=data.get("text") or "",
            sender_id=sender.get("id", 0),
            first_name=sender.get("first_name", ""),
            last_name=sender.get("last_name"),
            raw=data,
        )


@dataclass
class Update:
    update_id: int
    message: TelegramMessage | None = None

    @classmethod
    def from_api(cls, data: dict) -> "Update":
        msg = data.get("message")
        return cls(
            update_id=data.get("update_id", 0),
            message=TelegramMessage.from_api(msg) if msg else None,
        )


# ── the client ──────────────────────────────────────────────────────

class TelegramBot:
    """Native Bot API client.

    Usage:
        bot = TelegramBot(token)
        for update in bot.get_updates(offset=0, timeout=30):
            ...
        bot.send_message(chat_id, "hello", reply_to=message_id)
    """

    def __init__(self, token: str, api_base: str = API_BASE):
        if not token:
            raise TelegramError("Telegram bot token is not set")
        self._token = token
        self._api_base = api_base.rstrip("/")

    def _call(self, method: str, params: dict | None = None, timeout: int = 30) -> Any:
        url = f"{self._api_base}/bot{self._token}/{method}"
        data = json.dumps(params or {}).encode()
        req = urllib.request.Request(
            url, data=data, headers={"Content-Type": "application/json"}, method="POST",
        )

        try:
            with urllib.request.urlopen(req, timeout=timeout) as resp:
                body = json.loads(resp.read().decode())
        except urllib.error.HTTPError as e:
            raw = e.read().decode() if e.fp else ""
            try:
                err = json.loads(raw)
            except (json.JSONDecodeError, ValueError):
                err = {}
            retry = (err.get("parameters") or {}).get("retry_after", 0)
            raise TelegramError(
                err.get("description", f"HTTP {e.code}"),
                status=e.code, retry_after=retry,
            )
        except urllib.error.URLError as e:
            raise TelegramError(f"Connection failed: {e.reason}")
        except (TimeoutError, OSError) as e:
            raise TelegramError(f"Request failed: {e}")

        if not body.get("ok"):
            raise TelegramError(body.get("description", "unknown Bot API error"))
        return body.get("result")

    # ── endpoints ────────────────────────────────────────────────

    def get_me(self) -> dict:
        return self._call("getMe")

    def get_updates(self, offset: int = 0, timeout: int = 30) -> list[Update]:
        """Long-poll for new updates after ``offset``."""
        result = self._call(
            "getUpdates",
            {"offset": offset, "timeout": timeout, "allowed_updates": ["message"]},
            timeout=timeout + 10,
        )
        return [Update.from_api(u) for u in result or []]

    def send_message(self, chat_id: int | str, text: str, reply_to: int | None = None) -> dict:
        params: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if reply_to is not None:
            params["reply_to_message_id"] = reply_to
            params["allow_sending_without_reply"] = True
        return self._call("sendMessage", params)
