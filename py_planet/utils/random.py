"""
Seeded random number generation.

Every generation stage draws from an Alea PRNG seeded from a string, so a
planet is reproducible from its seed. Concurrent work (deformation cycles,
biome tasks) gets its own derived stream via ``fork`` rather than sharing one
generator across threads.
"""

import math
from typing import List, MutableSequence, Sequence, TypeVar

T = TypeVar("T")

_TWO_POW_32 = 0x100000000
_TWO_POW_NEG_32 = 2.3283064365386963e-10


def _uint32(n) -> int:
    return int(n) & 0xFFFFFFFF


class _Mash:
    """Alea's string hashing function, carrying its running state."""

    def __init__(self):
        self.n = 0xEFC8249D

    def __call__(self, data) -> float:
        for char in str(data):
            self.n += ord(char)
            h = 0.02519603282416938 * self.n
            self.n = _uint32(h)
            h -= self.n
            h *= self.n
            self.n = _uint32(h)
            h -= self.n
            self.n += h * _TWO_POW_32
        return _uint32(self.n) * _TWO_POW_NEG_32


class AleaPRNG:
    """Johannes Baagøe's Alea generator with range helpers."""

    def __init__(self, seed):
        self.seed = str(seed)
        self.call_count = 0

        mash = _Mash()
        self.s0 = mash(" ")
        self.s1 = mash(" ")
        self.s2 = mash(" ")
        self.c = 1

        self.s0 = self._mix(self.s0, mash(self.seed))
        self.s1 = self._mix(self.s1, mash(self.seed))
        self.s2 = self._mix(self.s2, mash(self.seed))

    @staticmethod
    def _mix(state: float, hashed: float) -> float:
        state -= hashed
        return state + 1 if state < 0 else state

    def random(self) -> float:
        """Next value in [0, 1)."""
        self.call_count += 1
        t = 2091639 * self.s0 + self.c * _TWO_POW_NEG_32
        self.s0 = self.s1
        self.s1 = self.s2
        self.c = int(t)
        self.s2 = t - self.c
        return self.s2

    def uniform(self, low: float, high: float) -> float:
        """Float in [low, high)."""
        return low + (high - low) * self.random()

    def randint(self, low: int, high: int) -> int:
        """Integer in [low, high], both inclusive."""
        if high < low:
            raise ValueError(f"Empty range [{low}, {high}]")
        return low + int(self.random() * (high - low + 1))

    def chance(self, probability: float) -> bool:
        if probability >= 1:
            return True
        if probability <= 0:
            return False
        return self.random() < probability

    def choice(self, seq: Sequence[T]) -> T:
        """Choose a random element from a non-empty sequence."""
        if not seq:
            raise IndexError("Cannot choose from an empty sequence")
        return seq[int(self.random() * len(seq))]

    def sample(self, seq: Sequence[T], k: int) -> List[T]:
        """``k`` distinct elements of ``seq`` (partial Fisher-Yates)."""
        pool = list(seq)
        k = min(k, len(pool))
        for i in range(k):
            j = i + int(self.random() * (len(pool) - i))
            pool[i], pool[j] = pool[j], pool[i]
        return pool[:k]

    def shuffle(self, seq: MutableSequence) -> None:
        for i in range(len(seq) - 1, 0, -1):
            j = int(self.random() * (i + 1))
            seq[i], seq[j] = seq[j], seq[i]

    def radians(self, low_degrees: int, high_degrees: int) -> float:
        """Whole-degree angle in the inclusive range, returned in radians."""
        return math.radians(self.randint(low_degrees, high_degrees))

    def fork(self, *labels) -> "AleaPRNG":
        """Derive an independent generator for a named sub-task."""
        return AleaPRNG(":".join([self.seed, *map(str, labels)]))
