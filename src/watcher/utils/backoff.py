from __future__ import annotations

import random
from typing import Iterator

def next_backoff(prev: float, cap: float, *, multiplier: float = 2.0) -> float:
    """Exponential backoff progression with cap (no jitter)."""
    return min(prev * multiplier, cap)

def jitter(v: float, *, ratio: float = 0.2) -> float:
    """
    Add ±ratio jitter. ratio=0.2 -> multiply by [0.8, 1.2].
    """
    lo = 1.0 - ratio
    hi = 1.0 + ratio
    return v * (lo + (hi - lo) * random.random())

def backoff_iter(initial: float = 0.25, cap: float = 30.0, *, multiplier: float = 2.0) -> Iterator[float]:
    """
    Deterministic (no jitter) iterator of backoff values:
    0.25, 0.5, 1, 2, 4, ... (capped).
    """
    v = initial
    while True:
        yield v
        v = next_backoff(v, cap, multiplier=multiplier)

def retry_delays(attempts: int, initial: float, cap: float, *, multiplier: float = 2.0) -> list[float]:
    """Sleeps between `attempts` tries: one fewer than the number of attempts."""
    it = backoff_iter(initial, cap, multiplier=multiplier)
    return [next(it) for _ in range(max(0, attempts - 1))]
