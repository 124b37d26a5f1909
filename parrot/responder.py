"""
responder.py — Hearing and Speaking

Takes every inbound chat message through the same short path:

    hydrate the chat → command? run it → otherwise learn, maybe reply

Commands:
    /learn <url> [name]   import an exported chat history (one user or all)
    /say <order>          say something in a random member's voice
    /stats                what the brain knows about this chat

Plain messages from users the brain already knows are learned (with
write-through). Replies are rare on purpose: a message ending in a
word someone has started a sentence with gets an answer with
``known_word_prob``, anything else with ``prob``. Stale messages are
learned but never answered.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
import urllib.parse
from typing import Callable

from parrot.brain import Brain, UserName
from parrot.bus import InboundMessage, MessageBus, OutboundMessage
from parrot.chains import tokenize
from parrot.config import ReplyConfig
from parrot.history import History, HistoryError, fetch_history

log = logging.getLogger(__name__)

LEARN_USAGE = "Wrong syntax, use '/learn url_to_json' [name]"
SAY_USAGE = "Wrong syntax, use '/say order (from 1 to 3)'"


def _command(text: str) -> tuple[str, str] | None:
    """Split ``/cmd@bot args`` into ("cmd", "args"). None if not a command."""
    if not text.startswith("/"):
        return None
    head, _, rest = text.partition(" ")
    name = head[1:].split("@", 1)[0].lower()
    return name, rest.strip()


def _valid_url(raw: str) -> bool:
    parsed = urllib.parse.urlparse(raw)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class Responder:
    """Routes inbound messages through the brain and publishes replies.

    Usage:
        responder = Responder(brain, bus, config.reply)
        asyncio.create_task(responder.run())
    """

    def __init__(
        self,
        brain: Brain,
        bus: MessageBus,
        config: ReplyConfig,
        *,
        history_timeout: int = 60,
        fetch: Callable[[str, int], History] = fetch_history,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.brain = brain
        self.bus = bus
        self.config = config
        self.history_timeout = history_timeout
        self._fetch = fetch
        self._rng = rng or random.Random()
        self._clock = clock

    async def run(self):
        """Consume the inbound queue until cancelled."""
        while True:
            try:
                msg = await asyncio.wait_for(self.bus.consume_inbound(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break

            try:
                await self.handle(msg)
            except Exception as e:
                log.error("Error handling %s: %s", msg.session_key, e, exc_info=True)

    async def _reply(self, msg: InboundMessage, text: str):
        await self.bus.publish_outbound(OutboundMessage(
            channel=msg.channel,
            chat_id=msg.chat_id,
            content=text,
            reply_to=msg.metadata.get("message_id"),
        ))

    # ── dispatch ─────────────────────────────────────────────────

    async def handle(self, msg: InboundMessage):
        try:
            chat_id = int(msg.chat_id)
        except ValueError:
            log.warning("Ignoring message from non-numeric chat %r", msg.chat_id)
            return

        try:
            await self.brain.hydrate(chat_id)
        except Exception as e:
            log.error("Loading chat %s failed: %s", chat_id, e)
            await self._reply(msg, f"Error loading chat data, reason: {e}")

        text = msg.content
        command = _command(text)
        if command is not None:
            name, args = command
            if name == "learn":
                await self._learn(msg, chat_id, args)
                return
            if name == "say":
                await self._say(msg, chat_id, args)
                return
            if name == "stats":
                await self._stats(msg, chat_id)
                return

        if text.strip():
            await self._listen(msg, chat_id, text)

    # ── commands ─────────────────────────────────────────────────

    async def _learn(self, msg: InboundMessage, chat_id: int, args: str):
        if not args:
            await self._reply(msg, LEARN_USAGE)
            return

        url, _, name = args.partition(" ")
        only = UserName(name.strip()) if name.strip() else None

        if not _valid_url(url):
            await self._reply(msg, f"Error parsing uri: {url}")
            return

        await self._reply(msg, "Downloading history data")
        loop = asyncio.get_running_loop()
        try:
            history = await loop.run_in_executor(
                None, lambda: self._fetch(url, self.history_timeout),
            )
        except HistoryError as e:
            await self._reply(msg, f"Error downloading uri: {e}")
            return

        await self._reply(msg, "Download completed")
        await self._reply(msg, "Learning...")

        try:
            processed = await self.brain.learn_from_history(chat_id, history, only)
        except Exception as e:
            log.error("Learning chat %s failed: %s", chat_id, e)
            await self._reply(msg, f"Error learning, reason: {e}")
            return

        await self._reply(msg, f"Done learning, {processed} messages processed!")

    async def _say(self, msg: InboundMessage, chat_id: int, args: str):
        if not args:
            await self._reply(msg, SAY_USAGE)
            return

        try:
            order = int(args.split()[-1])
        except ValueError:
            order = 1

        said = self.brain.generate_from_empty(chat_id, order)
        if said:
            user, text = said
            await self._reply(msg, f"{user}: {text}")

    async def _stats(self, msg: InboundMessage, chat_id: int):
        s = self.brain.stats(chat_id)
        users = ", ".join(str(u) for u in self.brain.users(chat_id)) or "nobody"
        await self._reply(
            msg,
            f"I know {s['users']} voices here ({users}), "
            f"{s['phrases']} phrases remembered, {s['states']} states learned.",
        )

    # ── passive listening ────────────────────────────────────────

    async def _listen(self, msg: InboundMessage, chat_id: int, text: str):
        user = UserName(msg.sender_name)
        if not self.brain.is_known_user(chat_id, user):
            return

        await self.brain.feed_message(chat_id, user, text, persist=True)

        sent_at = msg.metadata.get("date")
        if sent_at is not None and self._clock() - float(sent_at) > self.config.timeout_sec:
            return

        tokens = tokenize(text)
        if not tokens:
            return

        order = self.config.order
        said = self.brain.generate_from_token(chat_id, tokens[-1], order)
        if said is not None:
            if self._rng.random() <= self.config.known_word_prob:
                await self._reply(msg, f"{said[0]}: {said[1]}")
            return

        said = self.brain.generate_from_empty(chat_id, order)
        if said is not None and self._rng.random() <= self.config.prob:
            await self._reply(msg, f"{said[0]}: {said[1]}")
