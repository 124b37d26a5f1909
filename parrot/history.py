"""
history.py — Chat History Import

Parses the JSON document a chat client exports ("Export chat history"
→ JSON) so a brain can learn a whole chat's past in one go.

Only the bits the brain needs survive parsing: who wrote each message
and what they wrote. A message's text is either a plain string or a
list of segments mixing strings and typed objects (links, mentions,
formatting). Only the plain-string form is ever learned from.

Zero external dependencies. Pure stdlib.
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Union

log = logging.getLogger(__name__)

USER_AGENT = "curl/7.64.1"


class HistoryError(Exception):
    """History document unreachable or malformed."""
    pass


# ── data types ──────────────────────────────────────────────────────

@dataclass
class HistoryLink:
    """A typed text segment (link, mention, bold, ...)."""
    type: str
    text: str

    @classmethod
    def from_dict(cls, d: dict) -> "HistoryLink":
        return cls(type=str(d.get("type", "")), text=str(d.get("text", "")))


Segment = Union[str, HistoryLink]


@dataclass
class HistoryMessage:
    """One exported message."""
    id: int
    type: str
    date: str
    author: str | None = None
    text: str | list[Segment] = ""

    @property
    def plain_text(self) -> str | None:
        """The text if it is a plain string, else None."""
        return self.text if isinstance(self.text, str) else None

    @classmethod
    def from_dict(cls, d: dict) -> "HistoryMessage":
        if not isinstance(d, dict):
            raise HistoryError(f"message must be an object, got {type(d).__name__}")
        try:
            msg_id = int(d["id"])
            msg_type = str(d["type"])
            date = str(d["date"])
        except (KeyError, TypeError, ValueError) as e:
            raise HistoryError(f"message is missing id/type/date: {e!r}") from e

        raw_text = d.get("text", "")
        text: str | list[Segment]
        if isinstance(raw_text, str):
            text = raw_text
        elif isinstance(raw_text, list):
            text = [
                seg if isinstance(seg, str) else HistoryLink.from_dict(seg)
                for seg in raw_text
                if isinstance(seg, (str, dict))
            ]
        else:
            raise HistoryError(f"message {msg_id}: unsupported text {raw_text!r}")

        author = d.get("from")
        return cls(
            id=msg_id,
            type=msg_type,
            date=date,
            author=str(author) if author is not None else None,
            text=text,
        )


@dataclass
class History:
    """An exported chat: an ordered list of messages."""
    messages: list[HistoryMessage] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: dict) -> "History":
        if not isinstance(d, dict) or "messages" not in d:
            raise HistoryError("history document has no 'messages' list")
        raw = d["messages"]
        if not isinstance(raw, list):
            raise HistoryError("'messages' must be a list")
        return cls(messages=[HistoryMessage.from_dict(m) for m in raw])

    @classmethod
    def from_json(cls, raw: str | bytes) -> "History":
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise HistoryError(f"history is not valid JSON: {e}") from e
        return cls.from_dict(data)

    def authors(self) -> set[str]:
        return {m.author for m in self.messages if m.author}


# ── download ────────────────────────────────────────────────────────

def fetch_history(url: str, timeout: int = 60) -> History:
    """Download and parse an exported history. Redirects are followed."""
    req = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            raw = resp.read()
    except urllib.error.HTTPError as e:
        raise HistoryError(f"HTTP {e.code} fetching {url}") from e
    except urllib.error.URLError as e:
        raise HistoryError(f"Connection failed: {e.reason}") from e
    except (TimeoutError, OSError) as e:
        raise HistoryError(f"Fetch failed: {e}") from e

    log.info("Downloaded %d bytes of history from %s", len(raw), url)
    return History.from_json(raw)
