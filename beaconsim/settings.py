import os
from typing import Any, Optional

import dotenv
from loguru import logger
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from beaconsim import MAX_DOMAIN_LENGTH, SAVE_PATH


class Settings(BaseSettings):
    """Immutable run configuration: every pool and knob of the generator."""

    model_config = SettingsConfigDict(env_prefix="BEACONSIM_", frozen=True, extra="ignore")

    # Pools.
    TARGETS: tuple[str, ...] = ("192.168.56.3", "192.168.56.5")
    DNS_SERVERS: tuple[str, ...] = (
        "192.168.56.3",
        "192.168.56.5",
        "192.168.56.1",
        "192.168.56.254",
        "8.8.8.8",
        "1.1.1.1",
        "9.9.9.9",
        "208.67.222.222",
        "84.200.69.80",
    )
    VALID_DOMAINS: tuple[str, ...] = (
        "bin.com",
        "google.com",
        "github.com",
        "microsoft.com",
        "openai.com",
        "cloudflare.com",
        "GY4CANRVEA3TEIBWGUQDMOJAG4ZSANRREA3GIIBWGEQDMYZAGY4SANRTEA3DSIBWMYQDONJAG4ZSANRUEA3GMIBWMQQDMMJAGY4SANTF.org",
        "NTYgNjUgNzIgNzkgNGMgNmYgNmUgNjcgNDQgNmYgNmQgNjEgNjkgNmUgNGUgNjEgNmQgNjU.net",
    )
    QUERY_TYPES: tuple[str, ...] = ("A", "AAAA", "TXT", "MX", "NS", "ANY")
    USER_AGENTS: tuple[str, ...] = (
        "ZeekSim/1.0",
        "Mozilla/5.0 (X11; Kali) ZeekTest",
        "curl/7.XX ZeekBeacon",
    )
    TCP_PORTS: tuple[int, ...] = (4444, 5555, 8081, 9001, 10022)
    UDP_PORTS: tuple[int, ...] = (5355, 12345, 33434, 9999)
    LAB_TLDS: tuple[str, ...] = ("com", "net", "info", "dev", "lab")

    # DNS pattern pass.
    ENABLE_DNS_PATTERNS: bool = True
    QUERIES_PER_ITER: int = Field(8, ge=1)
    CANDIDATE_WEIGHT: float = Field(0.6, ge=0.0, le=1.0)
    TXT_PAYLOAD_PROB: float = Field(0.4, ge=0.0, le=1.0)
    LARGE_TXT_SIZE: int = Field(180, ge=1)
    DNSSEC_PROB: float = Field(0.2, ge=0.0, le=1.0)
    BEACON_PROB: float = Field(0.15, ge=0.0, le=1.0)
    BEACON_MIN_REPEATS: int = Field(2, ge=2, le=4)
    BEACON_MAX_REPEATS: int = Field(4, ge=2, le=4)
    MAX_BEACONS_PER_ITER: int = Field(1, ge=0)
    BURST_PROB: float = Field(0.08, ge=0.0, le=1.0)
    BURST_SIZE: int = Field(3, ge=1)

    # Host pass.
    ENABLE_HOST_PROBES: bool = True
    ENABLE_SYN_PROBE: bool = True
    LAB_RESOLVER: str = "127.0.0.53"
    LAB_DNS_QUERIES: int = Field(3, ge=0)
    BENIGN_DNS_QUERIES: int = Field(4, ge=0)
    HTTP_MIN_REQUESTS: int = Field(1, ge=1)
    HTTP_MAX_REQUESTS: int = Field(2, ge=1)
    UDP_PAYLOAD: str = "zeek-lab-pkt\n"
    MAX_CONCURRENT_PROBES: Optional[int] = Field(None, ge=1)

    # Pacing (seconds).
    SLEEP_MIN: float = Field(2.0, ge=0.0)
    SLEEP_MAX: float = Field(6.0, ge=0.0)
    ACTION_DELAY: float = Field(0.25, ge=0.0)
    BEACON_INTERVAL: float = Field(0.4, ge=0.0)
    BURST_INTERVAL: float = Field(0.2, ge=0.0)
    HTTP_INTERVAL: float = Field(0.3, ge=0.0)
    LAB_DNS_INTERVAL: float = Field(0.5, ge=0.0)

    # Timeouts (seconds).
    DNS_TIMEOUT: float = Field(3.0, gt=0.0)
    HTTP_TIMEOUT: float = Field(6.0, gt=0.0)
    TCP_TIMEOUT: float = Field(3.0, gt=0.0)
    UDP_TIMEOUT: float = Field(2.0, gt=0.0)
    SYN_TIMEOUT: float = Field(2.0, gt=0.0)

    # Run bounds.
    MAX_CYCLES: Optional[int] = Field(None, ge=1)
    MAX_DURATION: Optional[float] = Field(None, gt=0.0)
    SEED: Optional[int] = None

    # Logging.
    LOG_FILE: str = os.path.join(SAVE_PATH, "zeek-lab-traffic.log")
    LOG_LEVEL: str = "INFO"

    # W&B.
    WANDB_ON: bool = False
    WANDB_ENTITY: Optional[str] = None
    WANDB_PROJECT_NAME: str = "beaconsim"
    WANDB_OFFLINE: bool = True
    WANDB_NOTES: str = ""

    @classmethod
    def load_env_file(cls, filename: str = ".env") -> None:
        """Load an optional .env file from the working directory."""
        dotenv_file = dotenv.find_dotenv(filename=filename, usecwd=True)
        if not dotenv_file:
            logger.debug(f"No {filename} file found, using environment and defaults.")
            return
        dotenv.load_dotenv(dotenv_file)

    @classmethod
    def load(cls, env_file: str = ".env", **overrides: Any) -> "Settings":
        """Build the run configuration; explicit overrides win over the environment."""
        cls.load_env_file(env_file)
        return cls(**{key: value for key, value in overrides.items() if value is not None})

    @field_validator("TCP_PORTS", "UDP_PORTS")
    @classmethod
    def check_ports(cls, ports: tuple[int, ...]) -> tuple[int, ...]:
        for port in ports:
            if not 1 <= port <= 65535:
                raise ValueError(f"port {port} is outside 1..65535")
        return ports

    @field_validator("VALID_DOMAINS")
    @classmethod
    def check_domains(cls, domains: tuple[str, ...]) -> tuple[str, ...]:
        # Leave room for at least one generated label and its dot.
        max_length = MAX_DOMAIN_LENGTH - 2
        for domain in domains:
            labels = domain.split(".")
            if not domain or any(not label for label in labels):
                raise ValueError(f"invalid domain {domain!r}: empty label")
            if len(domain) > max_length:
                raise ValueError(f"invalid domain {domain[:40]!r}...: longer than {max_length} characters")
        return domains

    @model_validator(mode="after")
    def check_ranges(self) -> "Settings":
        pools = {
            "TARGETS": self.TARGETS,
            "DNS_SERVERS": self.DNS_SERVERS,
            "VALID_DOMAINS": self.VALID_DOMAINS,
            "QUERY_TYPES": self.QUERY_TYPES,
            "USER_AGENTS": self.USER_AGENTS,
            "TCP_PORTS": self.TCP_PORTS,
            "UDP_PORTS": self.UDP_PORTS,
            "LAB_TLDS": self.LAB_TLDS,
        }
        empty = [name for name, pool in pools.items() if not pool]
        if empty:
            raise ValueError(f"required pools must not be empty: {', '.join(empty)}")

        if self.SLEEP_MIN > self.SLEEP_MAX:
            raise ValueError(f"SLEEP_MIN ({self.SLEEP_MIN}) must not exceed SLEEP_MAX ({self.SLEEP_MAX})")
        if self.BEACON_MIN_REPEATS > self.BEACON_MAX_REPEATS:
            raise ValueError("BEACON_MIN_REPEATS must not exceed BEACON_MAX_REPEATS")
        if self.HTTP_MIN_REQUESTS > self.HTTP_MAX_REQUESTS:
            raise ValueError("HTTP_MIN_REQUESTS must not exceed HTTP_MAX_REQUESTS")
        return self

    @property
    def probe_concurrency(self) -> int:
        return self.MAX_CONCURRENT_PROBES or len(self.TARGETS)
