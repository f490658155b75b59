"""
Synthetic domain names for DNS traffic.

Each strategy reproduces one structural pattern seen in C2 and DGA traffic: high
entropy labels, labels over the 63 octet limit, very deep names, numeric-only labels
and single-character chains. Benign-noise and lab-safe names fill in the background.
"""

import base64
import random

from faker import Faker

from beaconsim import (
    ALPHA_CHARS,
    DIGIT_CHARS,
    LABEL_CHARS,
    MAX_DOMAIN_LENGTH,
    TXT_SAMPLE_LENGTH,
)
from beaconsim.base.protocol import DomainStrategy, GeneratedDomain
from beaconsim.settings import Settings
from beaconsim.utils.utils import random_string

OVERSIZED_LABEL_LENGTH = 80
OVERSIZED_SUFFIX = "example.com"
MANY_LABELS_SUFFIX = "google.com"
NUMERIC_SUFFIX = "microsoft.com"
SINGLE_CHAR_SUFFIX = "malicious.net"
LAB_SAFE_LABEL_LENGTH = 6


def fit_domain(labels: list[str], suffix: str, max_length: int = MAX_DOMAIN_LENGTH) -> str:
    """
    Joins generated labels under a suffix, shortening the longest labels when the name
    would exceed `max_length`. Labels never drop below one character.

    Args:
        labels (list[str]): Generated leading labels.
        suffix (str): Fixed parent domain.
        max_length (int): Upper bound on the full name.

    Returns:
        str: The joined domain name.
    """
    labels = list(labels)
    overflow = len(".".join(labels + [suffix])) - max_length
    while overflow > 0 and labels:
        longest = max(range(len(labels)), key=lambda i: len(labels[i]))
        if len(labels[longest]) <= 1:
            # Every label is one character: drop leading labels instead.
            labels.pop(0)
            overflow -= 2
            continue
        cut = min(overflow, len(labels[longest]) - 1)
        labels[longest] = labels[longest][:-cut]
        overflow -= cut
    return ".".join(labels + [suffix])


class DomainGenerator:
    """Produces GeneratedDomain values from the valid-domain and lab TLD pools."""

    def __init__(self, settings: Settings, rng: random.Random):
        self.settings = settings
        self.rng = rng
        self.fake = Faker()
        self.fake.seed_instance(rng.getrandbits(32))
        self._strategies = {
            DomainStrategy.VALID: self.valid_domain,
            DomainStrategy.RANDOM_LABEL: self.random_label_domain,
            DomainStrategy.OVERSIZED_LABEL: self.oversized_label_domain,
            DomainStrategy.MANY_LABELS: self.many_labels_domain,
            DomainStrategy.NUMERIC: self.numeric_domain,
            DomainStrategy.SINGLE_CHAR_CHAIN: self.single_char_chain_domain,
            DomainStrategy.BENIGN_NOISE: self.benign_noise_domain,
            DomainStrategy.NXDOMAIN: self.nxdomain_domain,
            DomainStrategy.LAB_SAFE: self.lab_safe_domain,
        }

    def generate(self, strategy: DomainStrategy) -> GeneratedDomain:
        return GeneratedDomain(name=self._strategies[strategy](), strategy=strategy)

    def label(self, min_length: int = 6, max_length: int = 18) -> str:
        return random_string(self.rng, self.rng.randint(min_length, max_length), LABEL_CHARS)

    def valid_domain(self) -> str:
        return self.rng.choice(self.settings.VALID_DOMAINS)

    def random_label_domain(self) -> str:
        return fit_domain([self.label()], self.valid_domain())

    def oversized_label_domain(self) -> str:
        return fit_domain([random_string(self.rng, OVERSIZED_LABEL_LENGTH, LABEL_CHARS)], OVERSIZED_SUFFIX)

    def many_labels_domain(self) -> str:
        count = self.rng.randint(10, 17)
        return fit_domain([self.label() for _ in range(count)], MANY_LABELS_SUFFIX)

    def numeric_domain(self) -> str:
        length = self.rng.randint(4, 11)
        return fit_domain([random_string(self.rng, length, DIGIT_CHARS)], NUMERIC_SUFFIX)

    def single_char_chain_domain(self) -> str:
        count = self.rng.randint(6, 13)
        return fit_domain([self.rng.choice(ALPHA_CHARS) for _ in range(count)], SINGLE_CHAR_SUFFIX)

    def benign_noise_domain(self) -> str:
        word = self.fake.domain_word().lower() or self.label(3, 8)
        return fit_domain([word], self.valid_domain())

    def nxdomain_domain(self) -> str:
        return fit_domain([self.label(), self.label()], self.valid_domain())

    def lab_safe_domain(self) -> str:
        # example- prefix keeps lab names clear of real registrations
        tld = self.rng.choice(self.settings.LAB_TLDS)
        return fit_domain([random_string(self.rng, LAB_SAFE_LABEL_LENGTH, LABEL_CHARS)], f"example-{tld}")

    def build_candidates(self) -> list[GeneratedDomain]:
        """
        Builds the per-iteration candidate list: two valid domains, two random-label
        composites, then one each of oversized, many-labels, numeric and
        single-character chain names.
        """
        plan = [
            DomainStrategy.VALID,
            DomainStrategy.VALID,
            DomainStrategy.RANDOM_LABEL,
            DomainStrategy.RANDOM_LABEL,
            DomainStrategy.OVERSIZED_LABEL,
            DomainStrategy.MANY_LABELS,
            DomainStrategy.NUMERIC,
            DomainStrategy.SINGLE_CHAR_CHAIN,
        ]
        return [self.generate(strategy) for strategy in plan]

    def unique_domains(self, strategy: DomainStrategy, count: int) -> list[GeneratedDomain]:
        """Generates `count` distinct names with one strategy."""
        seen: dict[str, GeneratedDomain] = {}
        while len(seen) < count:
            domain = self.generate(strategy)
            seen.setdefault(domain.name, domain)
        return list(seen.values())

    def large_txt_payload(self, size: int) -> str:
        """Base64 sample of `size` random bytes, capped at the sample length."""
        raw = bytes(self.rng.getrandbits(8) for _ in range(size))
        return base64.b64encode(raw).decode("ascii")[:TXT_SAMPLE_LENGTH]
