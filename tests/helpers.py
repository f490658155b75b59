"""Shared fixtures for the beaconsim tests."""

import asyncio
import os
import tempfile

from loguru import logger

from beaconsim.base.protocol import Action, ActionKind, ProbeResult
from beaconsim.core.probes import ProbeSet
from beaconsim.settings import Settings
from beaconsim.utils.logging import is_event

FAST = dict(
    SLEEP_MIN=0.0,
    SLEEP_MAX=0.0,
    ACTION_DELAY=0.0,
    BEACON_INTERVAL=0.0,
    BURST_INTERVAL=0.0,
    HTTP_INTERVAL=0.0,
    LAB_DNS_INTERVAL=0.0,
    DNS_TIMEOUT=0.2,
    HTTP_TIMEOUT=0.5,
    TCP_TIMEOUT=0.5,
    UDP_TIMEOUT=0.5,
    SYN_TIMEOUT=0.5,
)


def fast_settings(**overrides) -> Settings:
    log_file = os.path.join(tempfile.gettempdir(), "beaconsim-test-events.log")
    return Settings(**{"LOG_FILE": log_file, **FAST, **overrides})


class EventCapture:
    """Collects event-log messages while active."""

    def __enter__(self):
        self.lines = []
        self._id = logger.add(lambda message: self.lines.append(message.record["message"]), filter=is_event, level="DEBUG")
        return self

    def __exit__(self, *exc):
        logger.remove(self._id)
        return False


class RecordingProbeSet(ProbeSet):
    """Stands in for the network: records actions and tracks concurrency."""

    def __init__(self, syn: bool = False, delay: float = 0.0):
        self.syn = syn
        self.delay = delay
        self.dispatched: list[Action] = []
        self.in_flight: dict[str, int] = {}
        self.max_in_flight_per_target = 0
        self.max_in_flight_total = 0

    def supports(self, kind: ActionKind) -> bool:
        return kind != ActionKind.SYN_PROBE or self.syn

    async def dispatch(self, action: Action) -> ProbeResult:
        self.dispatched.append(action)
        self.in_flight[action.target] = self.in_flight.get(action.target, 0) + 1
        self.max_in_flight_per_target = max(self.max_in_flight_per_target, self.in_flight[action.target])
        self.max_in_flight_total = max(self.max_in_flight_total, sum(self.in_flight.values()))
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight[action.target] -= 1
        return ProbeResult(action=action, outcome="ok")

    def of_kind(self, kind: ActionKind) -> list[Action]:
        return [action for action in self.dispatched if action.kind == kind]
