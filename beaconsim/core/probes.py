"""
Protocol probes - single, timeout-bounded network attempts.

Every probe shares one contract: write the attempt to the event log, try exactly
once, and report the outcome as a ProbeResult. Network failures (timeouts, refused
connections, unreachable hosts, names a resolver library refuses to encode) are
recorded, never raised and never retried.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from functools import partial
from typing import Dict, Optional, Type

import aiohttp
import dns.asyncquery
import dns.exception
import dns.message
import dns.name
from loguru import logger
from scapy.all import IP, TCP, send

from beaconsim.base.protocol import Action, ActionKind, ProbeResult
from beaconsim.settings import Settings
from beaconsim.utils.logging import EventLogger
from beaconsim.utils.utils import has_raw_socket_capability

DNS_PORT = 53


class Probe(ABC):
    """Base class for all probes.

    Subclasses implement `attempt`, which performs the network call and returns a short
    detail string. `run` wraps it with logging, timing and failure classification.
    """

    kind: ActionKind

    def __init__(self, settings: Settings, events: EventLogger):
        """Initialize the probe.

        Args:
            settings: The run configuration (timeouts, payloads).
            events: Event sink receiving one line per attempt.
        """
        self.settings = settings
        self.events = events

    @property
    def available(self) -> bool:
        return True

    @abstractmethod
    async def attempt(self, action: Action) -> str:
        """Perform the network call for `action`.

        This method must be implemented by all subclasses.
        """
        pass

    async def run(self, action: Action) -> ProbeResult:
        """Attempt `action` once and classify the outcome.

        Args:
            action: The action to execute; its kind must match the probe.

        Returns:
            The probe result. Only cancellation propagates out of this method.
        """
        if action.kind != self.kind:
            raise ValueError(f"{self.__class__.__name__} cannot run {action.kind.value} actions")

        if not self.available:
            logger.debug(f"{self.__class__.__name__} unavailable, skipping {action.target}")
            return ProbeResult(action=action, outcome="skipped", detail="capability unavailable")

        self.events.note(action.describe())
        start = time.monotonic()
        try:
            detail = await self.attempt(action)
            outcome = "ok"
        except (asyncio.TimeoutError, TimeoutError, dns.exception.Timeout) as e:
            outcome, detail = "timeout", str(e) or "timed out"
        except ConnectionRefusedError as e:
            outcome, detail = "refused", str(e)
        except (dns.name.LabelTooLong, dns.name.NameTooLong, dns.name.EmptyLabel) as e:
            outcome, detail = "invalid", str(e)
        except OSError as e:
            outcome, detail = "unreachable", str(e)
        except Exception as e:
            outcome, detail = "error", f"{e.__class__.__name__}: {e}"

        result = ProbeResult(action=action, outcome=outcome, detail=detail, elapsed=time.monotonic() - start)
        logger.debug(f"{action.kind.value} {action.target} -> {outcome} ({result.elapsed:.2f}s) {detail}")
        return result


class DNSQueryProbe(Probe):
    """Sends one DNS query and discards the answer."""

    kind = ActionKind.DNS_QUERY

    async def attempt(self, action: Action) -> str:
        params = action.parameters
        query = dns.message.make_query(params["name"], params["qtype"], want_dnssec=params.get("dnssec", False))
        timeout = self.settings.DNS_TIMEOUT
        response = await asyncio.wait_for(
            dns.asyncquery.udp(query, action.target, timeout=timeout, port=DNS_PORT),
            timeout=timeout,
        )
        return f"rcode={response.rcode()}"


class NXDomainQueryProbe(DNSQueryProbe):
    kind = ActionKind.NXDOMAIN_QUERY


class BackgroundQueryProbe(DNSQueryProbe):
    kind = ActionKind.BACKGROUND_QUERY


class HTTPBeaconProbe(Probe):
    """Issues one GET request with a chosen user agent; the body is never read."""

    kind = ActionKind.HTTP_BEACON

    async def attempt(self, action: Action) -> str:
        params = action.parameters
        url = f"http://{action.target}:{params['port']}{params['path']}"
        timeout = aiohttp.ClientTimeout(total=self.settings.HTTP_TIMEOUT)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(url, headers={"User-Agent": params["user_agent"]}, allow_redirects=False) as response:
                return f"status={response.status}"


class TCPConnectProbe(Probe):
    """Opens one TCP connection and closes it immediately."""

    kind = ActionKind.TCP_CONNECT

    async def attempt(self, action: Action) -> str:
        timeout = self.settings.TCP_TIMEOUT
        _, writer = await asyncio.wait_for(asyncio.open_connection(action.target, action.port), timeout=timeout)
        writer.close()
        await asyncio.wait_for(writer.wait_closed(), timeout=timeout)
        return "connected"


class UDPSendProbe(Probe):
    """Sends one small datagram; no response is read."""

    kind = ActionKind.UDP_SEND

    async def attempt(self, action: Action) -> str:
        loop = asyncio.get_running_loop()
        payload = self.settings.UDP_PAYLOAD.encode()
        transport, _ = await asyncio.wait_for(
            loop.create_datagram_endpoint(asyncio.DatagramProtocol, remote_addr=(action.target, action.port)),
            timeout=self.settings.UDP_TIMEOUT,
        )
        try:
            transport.sendto(payload)
        finally:
            transport.close()
        return f"sent {len(payload)} bytes"


class SYNProbe(Probe):
    """Sends exactly one TCP SYN (no handshake) with scapy.

    Needs raw socket capability; without it the probe is a silent no-op.
    """

    kind = ActionKind.SYN_PROBE

    def __init__(self, settings: Settings, events: EventLogger, capable: Optional[bool] = None):
        super().__init__(settings, events)
        self.capable = has_raw_socket_capability() if capable is None else capable

    @property
    def available(self) -> bool:
        return self.settings.ENABLE_SYN_PROBE and self.capable

    async def attempt(self, action: Action) -> str:
        packet = IP(dst=action.target) / TCP(sport=action.parameters["sport"], dport=action.port, flags="S")
        loop = asyncio.get_running_loop()
        await asyncio.wait_for(
            loop.run_in_executor(None, partial(send, packet, count=1, verbose=False)),
            timeout=self.settings.SYN_TIMEOUT,
        )
        return "syn sent"


def get_probe_classes() -> Dict[ActionKind, Type[Probe]]:
    """Get the probe class for every action kind."""
    return {
        ActionKind.DNS_QUERY: DNSQueryProbe,
        ActionKind.NXDOMAIN_QUERY: NXDomainQueryProbe,
        ActionKind.BACKGROUND_QUERY: BackgroundQueryProbe,
        ActionKind.HTTP_BEACON: HTTPBeaconProbe,
        ActionKind.TCP_CONNECT: TCPConnectProbe,
        ActionKind.UDP_SEND: UDPSendProbe,
        ActionKind.SYN_PROBE: SYNProbe,
    }


class ProbeSet:
    """Routes each action to the probe of its kind."""

    def __init__(self, settings: Settings, events: EventLogger, probes: Optional[Dict[ActionKind, Probe]] = None):
        self.settings = settings
        self.events = events
        self.probes = probes or {kind: cls(settings, events) for kind, cls in get_probe_classes().items()}

    def supports(self, kind: ActionKind) -> bool:
        return self.probes[kind].available

    async def dispatch(self, action: Action) -> ProbeResult:
        return await self.probes[action.kind].run(action)
