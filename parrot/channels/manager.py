"""Channel manager — starts enabled channels and delivers replies.

Channels are imported lazily, only when enabled in config, so a
missing optional platform never breaks startup.
"""

from __future__ import annotations

import asyncio
import importlib
import logging
from typing import Any

from parrot.bus.events import OutboundMessage
from parrot.bus.queue import MessageBus
from parrot.channels.base import BaseChannel

logger = logging.getLogger(__name__)

# channel name → (module path, class name)
CHANNEL_REGISTRY: dict[str, tuple[str, str]] = {
    "telegram": ("parrot.channels.telegram", "TelegramChannel"),
}


class ChannelManager:
    """Lifecycle of all active channels."""

    def __init__(self, channels_config: dict[str, Any], bus: MessageBus) -> None:
        self.channels_config = channels_config
        self.bus = bus
        self.channels: dict[str, BaseChannel] = {}
        self._dispatch_task: asyncio.Task[None] | None = None
        self._channel_tasks: list[asyncio.Task[None]] = []

        self._init_channels()

    def _init_channels(self) -> None:
        for name, (module_path, class_name) in CHANNEL_REGISTRY.items():
            chan_conf = self.channels_config.get(name) or {}
            if not chan_conf.get("enabled", False):
                continue

            try:
                mod = importlib.import_module(module_path)
                cls = getattr(mod, class_name)
                self.channels[name] = cls(chan_conf, self.bus)
                logger.info(f"[channels] {name} enabled")
            except ImportError as e:
                logger.warning(f"[channels] {name} not available: {e}")
            except Exception as e:
                logger.error(f"[channels] {name} failed to init: {e}")

    # ── Lifecycle ──────────────────────────────────────────────

    async def start_all(self) -> None:
        """Start every channel and the outbound dispatcher in the background."""
        if not self.channels:
            logger.warning("[channels] no channels enabled")
            return

        self._dispatch_task = asyncio.create_task(self._dispatch_loop())
        self._channel_tasks = [
            asyncio.create_task(self._start_one(name, ch))
            for name, ch in self.channels.items()
        ]

    async def stop_all(self) -> None:
        logger.info("[channels] stopping all...")

        for name, ch in self.channels.items():
            try:
                await ch.stop()
                logger.info(f"[channels] {name} stopped")
            except Exception as e:
                logger.error(f"[channels] error stopping {name}: {e}")

        tasks = list(self._channel_tasks)
        if self._dispatch_task:
            tasks.append(self._dispatch_task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # ── Internal ───────────────────────────────────────────────

    async def _start_one(self, name: str, channel: BaseChannel) -> None:
        try:
            logger.info(f"[channels] starting {name}...")
            await channel.start()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[channels] {name} crashed: {e}")

    async def _dispatch_loop(self) -> None:
        """Route outbound messages to the channel they came from."""
        logger.info("[channels] outbound dispatcher running")
        while True:
            try:
                msg: OutboundMessage = await asyncio.wait_for(
                    self.bus.consume_outbound(), timeout=1.0
                )
                ch = self.channels.get(msg.channel)
                if ch:
                    await ch.send(msg)
                else:
                    logger.warning(f"[channels] unknown channel: {msg.channel}")
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"[channels] dispatch error: {e}")

    @property
    def enabled(self) -> list[str]:
        return list(self.channels.keys())
