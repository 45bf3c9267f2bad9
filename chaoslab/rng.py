"""ChaosLab Deterministic Randomness.

Provides:
- SeededRandomStream: mulberry32 generator keyed by an arbitrary string seed
- should_trigger: pure probability test over one draw
- jittered_delay: exponential backoff with symmetric jitter

The arithmetic is 32-bit wrapping throughout, so the sequences are
bit-identical to any other mulberry32 implementation folding the seed's
UTF-16 code units the same way.
"""

from __future__ import annotations

import math
from typing import Callable, Iterator, List

MASK32 = 0xFFFFFFFF
GOLDEN_GAMMA = 0x6D2B79F5
TWO_POW_32 = 4294967296.0

RandomSource = Callable[[], float]


def _imul(a: int, b: int) -> int:
    return (a * b) & MASK32


def fold_seed(seed: str) -> int:
    """Fold a seed string into an unsigned 32-bit state."""
    data = seed.encode("utf-16-le", "surrogatepass")
    state = 0
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        state = ((state << 5) - state + unit) & MASK32
    return state


class SeededRandomStream:
    """Deterministic float stream in [0, 1).

    Each instance owns its counter; two streams built from the same seed
    produce the same sequence.
    """

    __slots__ = ("seed", "_state", "_draws")

    def __init__(self, seed: str) -> None:
        self.seed = seed
        self._state = fold_seed(seed)
        self._draws = 0

    def __call__(self) -> float:
        self._state = (self._state + GOLDEN_GAMMA) & MASK32
        t = self._state
        x = _imul(t ^ (t >> 15), 1 | t)
        x = (x ^ ((x + _imul(x ^ (x >> 7), 61 | x)) & MASK32)) & MASK32
        self._draws += 1
        return ((x ^ (x >> 14)) & MASK32) / TWO_POW_32

    def __iter__(self) -> Iterator[float]:
        while True:
            yield self()

    @property
    def draws(self) -> int:
        """Number of values consumed so far."""
        return self._draws

    def take(self, n: int) -> List[float]:
        return [self() for _ in range(n)]

    def __repr__(self) -> str:
        return f"SeededRandomStream(seed={self.seed!r}, draws={self._draws})"


def seeded(seed: str) -> SeededRandomStream:
    """Create a new stream for ``seed``."""
    return SeededRandomStream(seed)


def derive_seed(seed: str, tag: str, attempt: int) -> str:
    """Composite key giving each pipeline and attempt its own draws."""
    return f"{seed}:{tag}:{attempt}"


def should_trigger(probability: float, draw: float) -> bool:
    """Decide whether a fault with ``probability`` fires for ``draw``."""
    return probability > 0 and draw < probability


def jittered_delay(
    base_ms: float,
    factor: float,
    attempt: int,
    jitter: float,
    rand: RandomSource,
) -> int:
    """Backoff delay in milliseconds for a zero-based ``attempt``.

    Consumes exactly one draw from ``rand``.
    """
    backoff = base_ms * math.pow(factor, attempt)
    multiplier = 1 + (rand() * 2 - 1) * jitter
    return int(max(0, math.floor(backoff * multiplier)))
