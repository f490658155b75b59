"""
================================================================================

Pattern Scheduler

Decides, on every iteration, which synthetic traffic to emit, against which
target and with which randomized shape, then paces it with per-action delays and a
jittered pause between iterations.

--------------------------------------------------------------------------------
ITERATION:
1. **Candidates**: eight names from the domain generator (valid, random-label,
   oversized, many-labels, numeric, single-character chain).
2. **DNS pattern pass**: `QUERIES_PER_ITER` queries; 60/40 candidate versus fresh
   name; large TXT payload samples; DNSSEC-OK flags; beacon bursts (2-4 repeated
   check-ins) and NXDOMAIN bursts (fresh unique names in quick succession).
3. **Host pass**: lab-safe and benign-noise background lookups against the lab
   resolver, then per target an HTTP beacon, a TCP connect, a UDP datagram and, when
   raw sockets are available, a single SYN. Targets run concurrently, one probe in
   flight per target.
4. **Sleep**: uniform random pause in `[SLEEP_MIN, SLEEP_MAX]`, cancellable.

Every probabilistic branch goes through `choose_weighted` / `chance`.

License:
This software is licensed under the Creative Commons Attribution-NonCommercial 4.0
International (CC BY-NC 4.0). Run it only in a controlled lab environment.

================================================================================
"""

import asyncio
from datetime import datetime, timezone
from typing import Optional

from pydantic import PrivateAttr, model_validator

from beaconsim import LABEL_CHARS, TEXT_QUERY_TYPES
from beaconsim.base.loop_runner import AsyncLoopRunner
from beaconsim.base.protocol import Action, ActionKind, DomainStrategy, GeneratedDomain, Iteration, ProbeResult
from beaconsim.core.domains import DomainGenerator
from beaconsim.core.probes import ProbeSet
from beaconsim.settings import Settings
from beaconsim.utils.logging import EventLogger, IterationEvent
from beaconsim.utils.utils import chance, choose_weighted, random_string

HTTP_PATH_PREFIX = "/.well-known/"
HTTP_PATH_LENGTH = 6


class PatternScheduler(AsyncLoopRunner):
    """Control loop producing beacon, DGA and probe traffic from one Settings instance."""

    settings: Settings
    probes: ProbeSet
    events: EventLogger
    generator: Optional[DomainGenerator] = None

    _semaphore: Optional[asyncio.Semaphore] = PrivateAttr(default=None)

    @model_validator(mode="before")
    @classmethod
    def apply_settings(cls, values: dict) -> dict:
        settings = values["settings"]
        values.setdefault("sleep_min", settings.SLEEP_MIN)
        values.setdefault("sleep_max", settings.SLEEP_MAX)
        values.setdefault("max_steps", settings.MAX_CYCLES)
        return values

    @model_validator(mode="after")
    def attach_generator(self) -> "PatternScheduler":
        if self.generator is None:
            self.generator = DomainGenerator(self.settings, self.rng)
        return self

    @property
    def semaphore(self) -> asyncio.Semaphore:
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.settings.probe_concurrency)
        return self._semaphore

    async def run_step(self):
        await self.run_iteration(self.step + 1)

    async def run_iteration(self, index: int) -> Iteration:
        """Build candidates, run both passes and report the iteration summary."""
        iteration = Iteration(index=index)
        self.events.note(f"===== cycle {index} start =====")

        iteration.candidates = self.generator.build_candidates()
        if self.settings.ENABLE_DNS_PATTERNS:
            await self.dns_pattern_pass(iteration)
        if self.settings.ENABLE_HOST_PROBES:
            await self.host_pass(iteration)

        self.events.note(f"===== cycle {index} end =====")
        self.events.log_event(IterationEvent(step=index, counts=iteration.summary()))
        return iteration

    def on_sleep(self, seconds: float):
        self.events.note(f"Iteration complete, sleeping {seconds:.2f}s")

    async def dispatch(self, iteration: Iteration, action: Action) -> ProbeResult:
        action = action.model_copy(update={"timestamp": datetime.now(timezone.utc)})
        iteration.actions.append(action)
        return await self.probes.dispatch(action)

    ##########################
    ## DNS PATTERN PASS     ##
    ##########################

    def pick_name(self, iteration: Iteration) -> GeneratedDomain:
        weight = self.settings.CANDIDATE_WEIGHT
        use_candidate = choose_weighted(self.rng, (True, False), (weight, 1.0 - weight))
        if use_candidate and iteration.candidates:
            return self.rng.choice(iteration.candidates)
        return self.generator.generate(DomainStrategy.RANDOM_LABEL)

    def dns_action(
        self,
        server: str,
        name: str,
        qtype: str,
        payload_size: Optional[int] = None,
        kind: ActionKind = ActionKind.DNS_QUERY,
        **extra: str,
    ) -> Action:
        parameters = {
            "name": name,
            "qtype": qtype,
            "dnssec": chance(self.rng, self.settings.DNSSEC_PROB),
            **extra,
        }
        if payload_size is not None:
            parameters["payload_size"] = payload_size
        return Action(kind=kind, target=server, parameters=parameters)

    async def dns_pattern_pass(self, iteration: Iteration):
        settings = self.settings
        for _ in range(settings.QUERIES_PER_ITER):
            server = self.rng.choice(settings.DNS_SERVERS)
            name = self.pick_name(iteration).name
            qtype = self.rng.choice(settings.QUERY_TYPES)

            payload_size = None
            if qtype in TEXT_QUERY_TYPES and chance(self.rng, settings.TXT_PAYLOAD_PROB):
                payload = self.generator.large_txt_payload(settings.LARGE_TXT_SIZE)
                payload_size = len(payload)
                self.events.note(f"Large TXT payload (sample) length={payload_size}")

            await self.dispatch(iteration, self.dns_action(server, name, qtype, payload_size))

            if len(iteration.beacon_bursts) < settings.MAX_BEACONS_PER_ITER and chance(self.rng, settings.BEACON_PROB):
                await self.beacon_burst(iteration, name, qtype)

            if chance(self.rng, settings.BURST_PROB):
                await self.nxdomain_burst(iteration)

            await asyncio.sleep(settings.ACTION_DELAY)

    async def beacon_burst(self, iteration: Iteration, name: str, qtype: str) -> int:
        """Repeats one query at a fixed short interval, like a periodic C2 check-in."""
        settings = self.settings
        repeats = self.rng.randint(settings.BEACON_MIN_REPEATS, settings.BEACON_MAX_REPEATS)
        iteration.beacon_bursts.append(repeats)
        for i in range(1, repeats + 1):
            server = self.rng.choice(settings.DNS_SERVERS)
            self.events.note(f"Beacon-query ({i}/{repeats}) -> {server} {name} {qtype}")
            await self.dispatch(iteration, self.dns_action(server, name, qtype))
            await asyncio.sleep(settings.BEACON_INTERVAL)
        return repeats

    async def nxdomain_burst(self, iteration: Iteration) -> int:
        """Resolves a handful of fresh names that should not exist."""
        settings = self.settings
        iteration.nxdomain_bursts += 1
        domains = self.generator.unique_domains(DomainStrategy.NXDOMAIN, settings.BURST_SIZE)
        for domain in domains:
            server = self.rng.choice(settings.DNS_SERVERS)
            await self.dispatch(iteration, self.dns_action(server, domain.name, "A", kind=ActionKind.NXDOMAIN_QUERY))
            await asyncio.sleep(settings.BURST_INTERVAL)
        return len(domains)

    ##########################
    ## HOST PASS            ##
    ##########################

    def host_actions(self, target: str) -> list[Action]:
        """The ordered probes run against one target host."""
        settings = self.settings
        actions = []
        for _ in range(self.rng.randint(settings.HTTP_MIN_REQUESTS, settings.HTTP_MAX_REQUESTS)):
            actions.append(Action(
                kind=ActionKind.HTTP_BEACON,
                target=target,
                parameters={
                    "port": self.rng.choice(settings.TCP_PORTS),
                    "path": HTTP_PATH_PREFIX + random_string(self.rng, HTTP_PATH_LENGTH, LABEL_CHARS),
                    "user_agent": self.rng.choice(settings.USER_AGENTS),
                },
            ))
        actions.append(Action(kind=ActionKind.TCP_CONNECT, target=target, parameters={"port": self.rng.choice(settings.TCP_PORTS)}))
        actions.append(Action(kind=ActionKind.UDP_SEND, target=target, parameters={"port": self.rng.choice(settings.UDP_PORTS)}))
        if self.probes.supports(ActionKind.SYN_PROBE):
            actions.append(Action(
                kind=ActionKind.SYN_PROBE,
                target=target,
                parameters={"port": self.rng.choice(settings.TCP_PORTS), "sport": self.rng.randint(1024, 65535)},
            ))
        return actions

    async def background_queries(self, iteration: Iteration):
        """Lab-safe and benign-noise lookups against the lab resolver, in shuffled order."""
        settings = self.settings
        plan = [DomainStrategy.LAB_SAFE] * settings.LAB_DNS_QUERIES
        plan += [DomainStrategy.BENIGN_NOISE] * settings.BENIGN_DNS_QUERIES
        self.rng.shuffle(plan)
        for strategy in plan:
            domain = self.generator.generate(strategy)
            action = self.dns_action(
                settings.LAB_RESOLVER, domain.name, "A", kind=ActionKind.BACKGROUND_QUERY, strategy=strategy.value
            )
            await self.dispatch(iteration, action)
            await asyncio.sleep(settings.LAB_DNS_INTERVAL)

    async def probe_target(self, iteration: Iteration, actions: list[Action]):
        """Runs one target's probes in order, so only one is in flight per target."""
        for action in actions:
            async with self.semaphore:
                await self.dispatch(iteration, action)
            if action.kind == ActionKind.HTTP_BEACON:
                await asyncio.sleep(self.settings.HTTP_INTERVAL)

    async def host_pass(self, iteration: Iteration):
        await self.background_queries(iteration)
        # Actions are drawn up front so the random stream does not depend on probe timing.
        plans = [self.host_actions(target) for target in self.settings.TARGETS]
        await asyncio.gather(*[self.probe_target(iteration, actions) for actions in plans])
