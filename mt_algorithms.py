"""
Search-side algorithms driven through the MT64Generator hooks.

  minpoly                      minimal polynomial of the MSB output stream
  RecursionSearch              draw parameters until the recurrence has full period
  Equidistribution             k(v) by PIS lattice reduction on generator states
  PartialBitPatternTempering   fill a tempering mask a few bits at a time
  check_period                 offline period verification of a parameter set

None of these look inside the generator state; they only use seed,
generate, add, is_live_zero, set_zero, equals, clone, set_up_param and
set_tempering_pattern.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

import gf2x
from mt64_generator import MASK64, MT64Generator


# ----------------------------- minimal polynomial -----------------------------
def minpoly(generator: MT64Generator) -> int:
    """Minimal polynomial of the generator's MSB sequence from its current state.

    Works on a clone; 2 * mexp output bits are consumed.
    """
    g = generator.clone()
    n = 2 * g.bit_size()
    return gf2x.berlekamp_massey(g.generate(1) >> 63 for _ in range(n))


# ----------------------------- recursion search -----------------------------
class RecursionSearch:
    """Propose parameter sets until one has an irreducible characteristic
    polynomial of degree mexp (full period, since 2^mexp - 1 is prime)."""

    def __init__(self, generator: MT64Generator, sequence) -> None:
        self.generator = generator
        self.sequence = sequence
        self.count = 0
        self.poly = 0

    def start(self, try_count: int) -> bool:
        """Return True as soon as a full-period candidate is in the generator.

        SequenceExhausted from the sequence propagates to the caller.
        """
        g = self.generator
        mexp = g.bit_size()
        for _ in range(try_count):
            g.set_up_param(self.sequence)
            g.seed(1)
            poly = minpoly(g)
            self.count += 1
            if gf2x.degree(poly) != mexp:
                continue
            if gf2x.is_irreducible(poly):
                self.poly = poly
                return True
        return False


# ----------------------------- equidistribution -----------------------------
class LinearGeneratorVector:
    """One row of the PIS lattice: a generator state plus its pending output.

    A unit row has a zero state and a single bit in `next`; the generator row
    starts at the generator's state.  `count` is the number of outputs
    consumed, and `zero` is set once no further nonzero output can appear.
    """

    __slots__ = ("generator", "next", "count", "zero")

    def __init__(self, generator: MT64Generator, unit_bit: Optional[int] = None) -> None:
        self.generator = generator.clone()
        self.count = 0
        self.zero = False
        self.next = 0
        if unit_bit is not None:
            self.generator.set_zero()
            self.next = 1 << (63 - unit_bit)

    def add(self, other: "LinearGeneratorVector") -> None:
        self.generator.add(other.generator)
        self.next ^= other.next

    def next_state(self, bit_len: int) -> None:
        if self.zero:
            return
        limit = self.generator.bit_size()
        zero_count = 0
        self.next = self.generator.generate(bit_len)
        self.count += 1
        while self.next == 0:
            zero_count += 1
            if zero_count > limit or self.generator.is_live_zero():
                self.zero = True
                return
            self.next = self.generator.generate(bit_len)
            self.count += 1


def _pivot(next_: int) -> int:
    # position of the leading one, counted from the MSB
    return 64 - next_.bit_length()


class Equidistribution:
    """Dimension of equidistribution k(v) for v-bit accuracy.

    The rows are kept in weak Popov form: row i < v has its leading output
    bit at position i.  Row v is the extra row, reduced against the pivot
    row until it vanishes; k(v) is then the smallest count among rows 0..v-1.
    """

    def __init__(self, generator: MT64Generator, bit_len: int = 64) -> None:
        if not (1 <= bit_len <= 64):
            raise ValueError(f"bit_len must be 1..64 (got {bit_len})")
        if generator.is_live_zero():
            raise ValueError("generator state is zero; seed it first")
        self.generator = generator.clone()
        self.bit_len = bit_len
        self.mexp = generator.bit_size()

    def _basis(self, v: int) -> List[LinearGeneratorVector]:
        basis = [LinearGeneratorVector(self.generator, unit_bit=i) for i in range(v)]
        extra = LinearGeneratorVector(self.generator)
        extra.next_state(v)
        basis.append(extra)
        return basis

    @staticmethod
    def _reduce(basis: List[LinearGeneratorVector], v: int) -> int:
        while not basis[v].zero:
            pivot = _pivot(basis[v].next)
            if pivot >= v:
                raise RuntimeError(f"pivot {pivot} out of range for v = {v}")
            if basis[v].count > basis[pivot].count:
                basis[v], basis[pivot] = basis[pivot], basis[v]
            basis[v].add(basis[pivot])
            if basis[v].next == 0:
                basis[v].next_state(v)
        return min(b.count for b in basis[:v])

    def get_equidist(self, v: int) -> int:
        if not (1 <= v <= self.bit_len):
            raise ValueError(f"v must be 1..{self.bit_len} (got {v})")
        return self._reduce(self._basis(v), v)

    def get_all_equidist(self) -> Tuple[List[int], int]:
        """Return ([k(1), ..., k(bit_len)], delta) with delta = sum(mexp // v - k(v))."""
        top = self.bit_len
        veq = [0] * top
        basis = self._basis(top)
        veq[top - 1] = self._reduce(basis, top)
        for v in range(top - 1, 0, -1):
            mask = (MASK64 << (64 - v)) & MASK64
            for row in basis[:v + 1]:
                row.next &= mask
            # row v lost its pivot bit and becomes the extra row
            if basis[v].next == 0:
                basis[v].next_state(v)
            veq[v - 1] = self._reduce(basis, v)
        delta = sum(self.mexp // (v + 1) - k for v, k in enumerate(veq))
        return veq, delta


def defect_table(mexp: int, veq: List[int]) -> List[Tuple[int, int, int]]:
    """(v, k(v), d(v)) rows for printing."""
    return [(v + 1, k, mexp // (v + 1) - k) for v, k in enumerate(veq)]


# ----------------------------- tempering -----------------------------
class PartialBitPatternTempering:
    """Greedy search for one tempering mask register.

    Only the top 64 - shift bits of the register can reach the output.  They
    are decided bit_num at a time from the MSB: every pattern of the window
    is tried and the one giving the smallest d(v), v = bits decided so far,
    is kept.  Patterns are tried from all-ones down and only a strictly
    better defect replaces the current choice.
    """

    def __init__(self, slot: int, shift: int, bit_num: int = 5) -> None:
        if not (0 < shift < 64):
            raise ValueError(f"shift must be 1..63 (got {shift})")
        if bit_num < 1:
            raise ValueError(f"bit_num must be positive (got {bit_num})")
        self.slot = slot
        self.width = 64 - shift
        self.bit_num = bit_num

    def __call__(self, generator: MT64Generator) -> None:
        mexp = generator.bit_size()
        p = 0
        while p < self.width:
            nb = min(self.bit_num, self.width - p)
            v = p + nb
            low = 64 - v
            mask = ((1 << nb) - 1) << low
            best_pattern = 0
            best_defect = None
            for pattern in range((1 << nb) - 1, -1, -1):
                generator.set_tempering_pattern(mask, pattern << low, self.slot)
                d = mexp // v - Equidistribution(generator, v).get_equidist(v)
                if best_defect is None or d < best_defect:
                    best_defect = d
                    best_pattern = pattern
            generator.set_tempering_pattern(mask, best_pattern << low, self.slot)
            p = v


def temper_generator(generator: MT64Generator, bit_num: int = 5) -> None:
    """Run the mask solver for each tempering register in slot order.

    The generator must hold a nonzero state; which one does not matter for
    a full-period recurrence.
    """
    for slot, shift in generator.tempering_slots():
        PartialBitPatternTempering(slot, shift, bit_num)(generator)


# ----------------------------- period -----------------------------
def apply_polynomial(generator: MT64Generator, poly: int) -> MT64Generator:
    """Return p(T) applied to the generator's state, T being one next_state()."""
    result = generator.clone()
    result.set_zero()
    for c in gf2x.coefficients(poly):
        result.next_state()
        if c:
            result.add(generator)
    return result


@dataclass(frozen=True)
class PeriodCheck:
    degree: int
    irreducible: bool
    jump_ok: bool
    poly: int

    @property
    def ok(self) -> bool:
        return self.irreducible and self.jump_ok


def check_period(generator: MT64Generator) -> PeriodCheck:
    """Verify that the generator's state has period 2^mexp - 1.

    The minimal polynomial f of the output must have degree mexp and be
    irreducible; then x^(2^mexp) = x mod f, so jumping the state by
    x^(2^mexp) mod f must land on the state one step ahead.
    """
    mexp = generator.bit_size()
    poly = minpoly(generator)
    deg = gf2x.degree(poly)
    if deg != mexp or not gf2x.is_irreducible(poly):
        return PeriodCheck(degree=deg, irreducible=False, jump_ok=False, poly=poly)
    jump = gf2x.frobenius_power(poly, mexp)
    jumped = apply_polynomial(generator, jump)
    stepped = generator.clone()
    stepped.next_state()
    return PeriodCheck(degree=deg, irreducible=True, jump_ok=jumped.equals(stepped), poly=poly)
