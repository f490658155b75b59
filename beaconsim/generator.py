#!/usr/bin/env python3
"""
================================================================================

Lab Traffic Generator - entry point

Starts the pattern scheduler against the configured lab targets and resolvers, writes
one timestamped line per emitted action to the event log, and keeps running until a
stop signal, the cycle budget or the duration bound is reached.

Usage:
    beaconsim --targets 192.168.56.3,192.168.56.5 --cycles 20
    BEACONSIM_SLEEP_MIN=5 BEACONSIM_SLEEP_MAX=15 beaconsim

NOTE: run only in a controlled lab environment. Do not target external systems.

License:
This software is licensed under the Creative Commons Attribution-NonCommercial 4.0
International (CC BY-NC 4.0).

================================================================================
"""

import argparse
import asyncio
import random
import signal
import sys
from typing import Optional

from loguru import logger
from pydantic import ValidationError
from pydantic_settings import SettingsError

from beaconsim.base.protocol import ActionKind
from beaconsim.core.probes import ProbeSet
from beaconsim.core.scheduler import PatternScheduler
from beaconsim.settings import Settings
from beaconsim.utils.logging import EventLogger, init_wandb, setup_logging

EXIT_OK = 0
EXIT_CONFIG_ERROR = 2

STOP_MESSAGE = "Received stop signal, exiting."
DONE_MESSAGE = "Completed all cycles. Exiting."


class Lifecycle:
    """Owns start-up, signal handling and run bounding around one scheduler."""

    def __init__(self, settings: Settings, events: EventLogger, probes: Optional[ProbeSet] = None):
        self.settings = settings
        self.events = events
        self.stop_event = asyncio.Event()
        self.stop_reason: Optional[str] = None
        self.probes = probes or ProbeSet(settings, events)
        self.scheduler = PatternScheduler(
            settings=settings,
            probes=self.probes,
            events=events,
            rng=random.Random(settings.SEED),
            stop_event=self.stop_event,
        )

    def request_stop(self, reason: str = "signal") -> None:
        if self.stop_reason is None:
            self.stop_reason = reason
        self.stop_event.set()

    def install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self.request_stop, "signal")
            except (NotImplementedError, RuntimeError):
                # Not on the main thread or no loop signal support.
                signal.signal(signum, lambda *_: loop.call_soon_threadsafe(self.request_stop, "signal"))

    async def run(self) -> int:
        settings = self.settings
        self.install_signal_handlers()
        if settings.MAX_DURATION:
            asyncio.get_running_loop().call_later(settings.MAX_DURATION, self.request_stop, "duration")

        if settings.ENABLE_HOST_PROBES and not self.probes.supports(ActionKind.SYN_PROBE):
            logger.warning("SYN probe disabled: raw packet capability unavailable or switched off.")

        self.events.note(
            f"Starting lab traffic generator. Targets: {' '.join(settings.TARGETS)}. "
            f"Servers: {' '.join(settings.DNS_SERVERS)}. "
            f"cycles={settings.MAX_CYCLES or 'unbounded'}. Press Ctrl+C to stop."
        )

        await self.scheduler.start()
        await self.scheduler.wait()

        if self.stop_reason == "duration":
            self.events.note(f"Duration of {settings.MAX_DURATION}s reached. Exiting.")
        elif self.stop_reason is not None:
            self.events.note(STOP_MESSAGE)
        else:
            self.events.note(DONE_MESSAGE)
        return EXIT_OK


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Benign lab traffic generator for monitoring-system logs")

    def csv_list(value: str) -> tuple[str, ...]:
        return tuple(item.strip() for item in value.split(",") if item.strip())

    parser.add_argument('--targets', type=csv_list, help="Comma-separated list of lab target hosts.")
    parser.add_argument('--dns-servers', type=csv_list, help="Comma-separated list of DNS servers to query.")
    parser.add_argument('--cycles', type=int, help="Stop after this many iterations (default: run indefinitely).")
    parser.add_argument('--duration', type=float, help="Stop after this many seconds.")
    parser.add_argument('--sleep-min', type=float, help="Minimum pause between iterations in seconds.")
    parser.add_argument('--sleep-max', type=float, help="Maximum pause between iterations in seconds.")
    parser.add_argument('--queries-per-iter', type=int, help="DNS queries per iteration.")
    parser.add_argument('--beacon-prob', type=float, help="Probability of a beacon burst after a query.")
    parser.add_argument('--log-file', type=str, help="Append-only event log path.")
    parser.add_argument('--seed', type=int, help="Seed for reproducible traffic shapes.")
    parser.add_argument('--env-file', type=str, default=".env", help="Optional dotenv file name.")
    parser.add_argument('--no-dns', action='store_true', help="Disable the DNS pattern pass.")
    parser.add_argument('--no-hosts', action='store_true', help="Disable the per-host probe pass.")
    parser.add_argument('--no-syn', action='store_true', help="Never send SYN probes.")
    return parser.parse_args(argv)


def load_settings(args: argparse.Namespace) -> Settings:
    return Settings.load(
        env_file=args.env_file,
        TARGETS=args.targets,
        DNS_SERVERS=args.dns_servers,
        MAX_CYCLES=args.cycles,
        MAX_DURATION=args.duration,
        SLEEP_MIN=args.sleep_min,
        SLEEP_MAX=args.sleep_max,
        QUERIES_PER_ITER=args.queries_per_iter,
        BEACON_PROB=args.beacon_prob,
        LOG_FILE=args.log_file,
        SEED=args.seed,
        ENABLE_DNS_PATTERNS=False if args.no_dns else None,
        ENABLE_HOST_PROBES=False if args.no_hosts else None,
        ENABLE_SYN_PROBE=False if args.no_syn else None,
    )


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the traffic generator."""
    args = parse_args(argv)

    try:
        settings = load_settings(args)
    except (ValidationError, SettingsError) as e:
        logger.error(f"Invalid configuration, refusing to start:\n{e}")
        return EXIT_CONFIG_ERROR

    try:
        sink_id = setup_logging(settings)
    except OSError as e:
        logger.error(f"Cannot open event log {settings.LOG_FILE}: {e}")
        return EXIT_CONFIG_ERROR

    events = EventLogger(init_wandb(settings) if settings.WANDB_ON else None)
    try:
        return asyncio.run(Lifecycle(settings, events).run())
    finally:
        events.close()
        logger.remove(sink_id)


if __name__ == "__main__":
    sys.exit(main())
