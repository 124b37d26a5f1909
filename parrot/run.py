"""
run.py — Parrot Entry Point

Wires config + store + brain + bus + channels + responder together
and runs until a signal arrives.

Usage:
    parrot                                  # uses config/default.yaml
    parrot --config my_config.yaml          # custom config
    parrot -v                               # debug logging
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys

from parrot.brain import Brain
from parrot.bus import MessageBus
from parrot.channels.manager import ChannelManager
from parrot.config import DEFAULT_CONFIG, Config, ConfigError, load_config
from parrot.responder import Responder
from parrot.store import StoreError, create_store

log = logging.getLogger("parrot")


# ── assembly ────────────────────────────────────────────────────────

class Parrot:
    """A fully assembled bot: every piece wired, ready to listen."""

    def __init__(self, config: Config):
        self.config = config
        self._stopped = asyncio.Event()

        self.store = create_store(config.store)
        self.brain = Brain(config.brain, store=self.store)

        self.bus = MessageBus()
        self.channel_manager = ChannelManager(config.channels, self.bus)
        self.responder = Responder(
            self.brain, self.bus, config.reply,
            history_timeout=config.history_timeout,
        )

        log.info(
            "Parrot assembled: orders=%d..%d, store=%s, channels=%s",
            config.brain.min_order, config.brain.max_order,
            self.store.name if self.store else "none",
            ", ".join(self.channel_manager.enabled) or "none",
        )

    async def run(self):
        """Main loop. Listens until stop() is called.

        Raises StoreError before any channel starts if the store is down.
        """
        if self.store is not None:
            await self.store.ping()
            log.info("Store %s is reachable", self.store.name)

        await self.channel_manager.start_all()
        responder_task = asyncio.create_task(self.responder.run())

        log.info("Parrot is listening.")
        await self._stopped.wait()

        log.info("Parrot goes quiet. %s", self.brain.stats())
        responder_task.cancel()
        try:
            await responder_task
        except asyncio.CancelledError:
            pass

        await self.channel_manager.stop_all()
        if self.store is not None:
            await self.store.close()

    def stop(self):
        self._stopped.set()


# ── CLI ─────────────────────────────────────────────────────────────

def main():
    parser = argparse.ArgumentParser(
        description="Parrot — a chat bot that talks like your friends",
    )
    parser.add_argument(
        "--config", "-c",
        default=str(DEFAULT_CONFIG),
        help="Path to config YAML (default: config/default.yaml)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    args = parser.parse_args()

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        config = load_config(args.config)
    except ConfigError as e:
        log.error("Bad configuration: %s", e)
        sys.exit(2)

    asyncio.run(_serve(config))


async def _serve(config: Config):
    try:
        parrot = Parrot(config)
    except StoreError as e:
        log.error("Store unavailable: %s", e)
        sys.exit(1)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, parrot.stop)
        except NotImplementedError:
            signal.signal(sig, lambda *_: parrot.stop())

    try:
        await parrot.run()
    except StoreError as e:
        log.error("Store unavailable: %s", e)
        if parrot.store is not None:
            await parrot.store.close()
        sys.exit(1)


if __name__ == "__main__":
    main()
