"""
Clock, randomness and cooldown helpers.

Business logic never calls time.time() or the global random module
directly. A Clock and a RandomSource are injected so cooldowns and
referee draws are reproducible in tests.
"""

from __future__ import annotations
from typing import Iterable, Protocol
import math
import random
import time


class Clock(Protocol):
    def now(self) -> float:
        """Wall-clock time in seconds."""
        ...


class RandomSource(Protocol):
    def random(self) -> float:
        """A float uniformly drawn from [0, 1)."""
        ...


class SystemClock:
    """Clock backed by time.time()."""

    def now(self) -> float:
        return time.time()


def build_rng(*, seed: int | None = None) -> random.Random:
    """Return a seedable random source."""
    return random.Random(seed)


def pick_index(rng: RandomSource, count: int) -> int:
    """Uniform index in [0, count) from a single draw: floor(U * n)."""
    if count <= 0:
        raise ValueError("count must be positive")
    return min(int(math.floor(rng.random() * count)), count - 1)


def cooldown_remaining(window: float, now: float, last_event: float | None) -> float:
    """Seconds left before the action is allowed again (0 if allowed)."""
    if last_event is None:
        return 0.0
    return max(0.0, window - (now - last_event))


def whole_seconds(remaining: float) -> int:
    return int(math.ceil(remaining))


def count_in_window(timestamps: Iterable[float], now: float, window: float) -> int:
    """How many events happened strictly inside the trailing window."""
    cutoff = now - window
    return sum(1 for ts in timestamps if ts > cutoff)
