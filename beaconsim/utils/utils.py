import os
import random
import socket
from pathlib import Path
from typing import Sequence, TypeVar

from loguru import logger

T = TypeVar("T")


def choose_weighted(rng: random.Random, options: Sequence[T], weights: Sequence[float]) -> T:
    """
    Pick one option with probability proportional to its weight.

    Every probabilistic branch of the scheduler goes through this function so each
    probability can be pinned independently in tests.

    Args:
        rng (random.Random): The generator's random source.
        options (Sequence[T]): Candidate values.
        weights (Sequence[float]): Non-negative weights, one per option.

    Returns:
        T: The selected option.
    """
    if not options:
        raise ValueError("cannot choose from an empty sequence")
    if len(options) != len(weights):
        raise ValueError("options and weights must have the same length")
    if any(w < 0 for w in weights):
        raise ValueError("weights must be non-negative")

    total = sum(weights)
    if total <= 0:
        raise ValueError("at least one weight must be positive")

    # Zero-weight options are never picked, even at the boundaries of the draw.
    threshold = rng.random() * total
    cumulative = 0.0
    for option, weight in zip(options, weights):
        if weight <= 0:
            continue
        cumulative += weight
        if threshold < cumulative:
            return option
    return [option for option, weight in zip(options, weights) if weight > 0][-1]


def chance(rng: random.Random, probability: float) -> bool:
    """True with the given probability."""
    if probability <= 0:
        return False
    if probability >= 1:
        return True
    return choose_weighted(rng, (True, False), (probability, 1.0 - probability))


def random_string(rng: random.Random, length: int, alphabet: str) -> str:
    return "".join(rng.choice(alphabet) for _ in range(length))


def has_raw_socket_capability() -> bool:
    """
    Checks whether this process may craft raw packets (root or CAP_NET_RAW).

    Returns:
        bool: True if a raw TCP socket can be opened, False otherwise.
    """
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_RAW, socket.IPPROTO_TCP)
    except OSError as e:
        logger.debug(f"Raw sockets unavailable: {e}")
        return False
    sock.close()
    return True


def provision_log_file(path: str) -> Path:
    """
    Makes sure the event log exists and is writable by the current user.

    Args:
        path (str): Location of the log file.

    Returns:
        Path: The resolved log file path.

    Raises:
        PermissionError: If the file cannot be written.
    """
    log_path = Path(path).expanduser()
    if log_path.is_dir():
        raise IsADirectoryError(f"Log file {log_path} is a directory")
    log_path.parent.mkdir(parents=True, exist_ok=True)
    log_path.touch(exist_ok=True)
    if not os.access(log_path, os.W_OK):
        raise PermissionError(f"Log file {log_path} is not writable")
    return log_path
