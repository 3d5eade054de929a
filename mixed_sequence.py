"""
Candidate sequence feeding the recursion search.

Two logically independent sub-streams:

  get_uint64()  32 pseudo-random bits from a Mersenne Twister seeded with the
                run seed (feedback positions)
  get_uint32()  a strictly monotonic 32-bit counter (the `seq` value recorded
                for each candidate and folded into its feedback constant)

Counting down from the default start 0xffffffff means runs given different
explicit start values walk disjoint stretches of the counter.  When the
counter runs out the next draw raises SequenceExhausted; the search driver
treats that as a normal end of the run.
"""

from __future__ import annotations

import random


UINT32_MAX = 0xFFFFFFFF


class SequenceExhausted(ArithmeticError):
    """The counting sub-stream has no values left."""


class Sequential:
    """Counter yielding first, first+step, ... (XOR mask).

    Counting down (step=-1) stops after 1 has been returned; counting up
    stops after UINT32_MAX.
    """

    def __init__(self, first: int, mask: int = 0, step: int = -1) -> None:
        if step not in (-1, 1):
            raise ValueError(f"step must be -1 or 1 (got {step})")
        if not (0 <= first <= UINT32_MAX):
            raise ValueError(f"start value must fit in 32 bits (got {first})")
        self.count = first
        self.mask = mask & UINT32_MAX
        self.step = step
        self.drawn = 0

    def exhausted(self) -> bool:
        if self.step < 0:
            return self.count <= 0
        return self.count > UINT32_MAX

    def get_uint32(self) -> int:
        if self.exhausted():
            raise SequenceExhausted("Sequential: underflow" if self.step < 0 else "Sequential: overflow")
        value = self.count ^ self.mask
        self.count += self.step
        self.drawn += 1
        return value


class MixedSequence:
    def __init__(self, first: int, seed: int, mask: int = 0, step: int = -1) -> None:
        self.mt = random.Random(seed)
        self.sq = Sequential(first, mask=mask, step=step)

    def get_uint64(self) -> int:
        return self.mt.getrandbits(32)

    def get_uint32(self) -> int:
        return self.sq.get_uint32()

    def seed(self, value: int) -> None:
        self.mt.seed(value)
