from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ActionKind(str, Enum):
    """Kinds of traffic the generator can emit.

    DNS traffic is split by role: DNS_QUERY covers the pattern pass (base queries and
    beacon repeats), NXDOMAIN_QUERY the churn bursts and BACKGROUND_QUERY the
    lab-safe and benign-noise lookups sent to the lab resolver.
    """
    DNS_QUERY = "DNSQuery"
    NXDOMAIN_QUERY = "NXDomainQuery"
    BACKGROUND_QUERY = "BackgroundQuery"
    HTTP_BEACON = "HTTPBeacon"
    TCP_CONNECT = "TCPConnect"
    UDP_SEND = "UDPSend"
    SYN_PROBE = "SYNProbe"


DNS_PREFIXES = {
    ActionKind.DNS_QUERY: "Query",
    ActionKind.NXDOMAIN_QUERY: "NXDOMAIN query",
    ActionKind.BACKGROUND_QUERY: "Background query",
}
DNS_KINDS = tuple(DNS_PREFIXES)


class DomainStrategy(str, Enum):
    """Structural patterns used to generate synthetic domain names."""
    VALID = "valid"
    RANDOM_LABEL = "random-label"
    OVERSIZED_LABEL = "oversized-label"
    MANY_LABELS = "many-labels"
    NUMERIC = "numeric"
    SINGLE_CHAR_CHAIN = "single-char-chain"
    BENIGN_NOISE = "benign-noise"
    NXDOMAIN = "nxdomain"
    LAB_SAFE = "lab-safe"


class GeneratedDomain(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    strategy: DomainStrategy

    @property
    def labels(self) -> list[str]:
        return self.name.split(".")

    def __str__(self) -> str:
        return self.name


class Action(BaseModel):
    """
    A single unit of traffic, built at dispatch time and consumed once by its probe.

    `parameters` depends on the kind:
        DNSQuery: name, qtype, dnssec, payload_size (optional)
        NXDomainQuery: name, qtype, dnssec
        BackgroundQuery: name, qtype, dnssec, strategy
        HTTPBeacon: port, path, user_agent
        TCPConnect / UDPSend / SYNProbe: port
    """

    model_config = ConfigDict(frozen=True)

    kind: ActionKind
    target: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def port(self) -> int | None:
        return self.parameters.get("port")

    def describe(self) -> str:
        params = self.parameters
        if self.kind in DNS_KINDS:
            text = f"{DNS_PREFIXES[self.kind]} -> server={self.target} name={params['name']} type={params['qtype']}"
            if params.get("dnssec"):
                text += " dnssec"
            if params.get("payload_size") is not None:
                text += f" payload={params['payload_size']}"
            return text
        if self.kind == ActionKind.HTTP_BEACON:
            return f"HTTP beacon -> {self.target}:{self.port}{params['path']} (UA={params['user_agent']})"
        if self.kind == ActionKind.TCP_CONNECT:
            return f"TCP connect -> {self.target}:{self.port}"
        if self.kind == ActionKind.UDP_SEND:
            return f"UDP send -> {self.target}:{self.port}"
        return f"SYN probe -> {self.target}:{self.port}"


class ProbeResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: Action
    outcome: str
    detail: str = ""
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.outcome == "ok"


class Iteration(BaseModel):
    """Transient state of one scheduler pass."""

    index: int
    candidates: list[GeneratedDomain] = Field(default_factory=list)
    actions: list[Action] = Field(default_factory=list)
    beacon_bursts: list[int] = Field(default_factory=list)
    nxdomain_bursts: int = 0

    def count(self, kind: ActionKind) -> int:
        return sum(1 for action in self.actions if action.kind == kind)

    def summary(self) -> dict[str, int]:
        counts = {kind.value: self.count(kind) for kind in ActionKind}
        counts["beacon_bursts"] = len(self.beacon_bursts)
        counts["nxdomain_bursts"] = self.nxdomain_bursts
        return counts
