"""Pseudo-random traversal of integer ranges based on cyclic groups."""

from __future__ import annotations

import bisect
import random
from typing import NamedTuple


class _CyclicGroup(NamedTuple):
    p: int  # prime modulus of the multiplicative group (Z/pZ)*
    g: int  # generator of the group
    n: int  # number coprime with p - 1


# The first group whose prime is larger than the range size is used.
_CYCLIC_GROUPS = (
    _CyclicGroup(3, 2, 1),
    _CyclicGroup(5, 2, 1),
    _CyclicGroup(11, 2, 3),
    _CyclicGroup(17, 3, 3),
    _CyclicGroup(37, 2, 5),
    _CyclicGroup(67, 2, 5),
    _CyclicGroup(131, 2, 3),
    _CyclicGroup(257, 3, 3),
    _CyclicGroup(523, 2, 5),
    _CyclicGroup(1031, 21, 3),
    _CyclicGroup(2053, 2, 5),
    _CyclicGroup(4099, 2, 5),
    _CyclicGroup(8219, 2, 3),
    _CyclicGroup(16421, 2, 3),
    _CyclicGroup(32771, 2, 3),
    _CyclicGroup(65539, 2, 5),
    _CyclicGroup(131101, 17, 7),
    _CyclicGroup(262147, 2, 5),
    _CyclicGroup(524309, 2, 3),
    _CyclicGroup(1048589, 2, 3),
    _CyclicGroup(2097211, 2, 7),
    _CyclicGroup(4194371, 2, 3),
    _CyclicGroup(8388619, 2, 5),
    _CyclicGroup(16777259, 2, 5),
    _CyclicGroup(33554467, 2, 5),
    _CyclicGroup(67108933, 2, 5),
    _CyclicGroup(134217773, 2, 5),
    _CyclicGroup(268435459, 2, 5),
    _CyclicGroup(536871019, 2, 5),
    _CyclicGroup(1073741827, 2, 5),
    _CyclicGroup(2147483659, 2, 5),
    _CyclicGroup(4294967357, 2, 5),
)
_PRIMES = [group.p for group in _CYCLIC_GROUPS]


class RangeSizeError(ValueError):
    """Raised when a range cannot be traversed because of its size."""

    def __init__(self, message: str = "invalid range size") -> None:
        super().__init__(message)


class RangeIterator:
    """Iterates over every integer of [1..n] exactly once in pseudo-random order.

    The order comes from walking the powers of a randomly chosen generator of
    the multiplicative group modulo a prime larger than ``n``, skipping the
    elements that fall outside the range.
    """

    def __init__(self, n: int, rng: random.Random | None = None) -> None:
        if n <= 0:
            raise RangeSizeError()
        idx = bisect.bisect_right(_PRIMES, n)
        if idx == len(_CYCLIC_GROUPS):
            raise RangeSizeError()
        group = _CYCLIC_GROUPS[idx]
        rng = rng if rng is not None else random.Random()

        # (n ** m) stays coprime with the group order p - 1, so g ** (n ** m)
        # is again a generator of the group.
        exponent = pow(group.n, rng.getrandbits(63) + 1, group.p - 1)
        self.p = group.p
        self.g = pow(group.g, exponent, group.p)

        start = pow(self.g, rng.getrandbits(63) + 1, self.p)
        self._limit = n
        self._current = start
        self._start = start
        self._exhausted = False
        self._pending = True

        if not self._advance() and n > 1:
            raise ValueError(
                f"invalid cyclic group: P = {self.p} G = {self.g} "
                f"N = {exponent} startI = {start}"
            )
        self._start = self._current

    def _advance(self) -> bool:
        if self._exhausted:
            return False
        while True:
            self._current = self._current * self.g % self.p
            if self._current == self._start:
                self._exhausted = True
                return False
            if self._current <= self._limit:
                return True

    def __iter__(self) -> RangeIterator:
        return self

    def __next__(self) -> int:
        if self._pending:
            self._pending = False
            return self._current
        if not self._advance():
            raise StopIteration
        return self._current