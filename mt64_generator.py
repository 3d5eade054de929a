"""
64-bit Mersenne Twister generator state used by the parameter search.

Two recurrence topologies share one class:

  SINGLE  (mt64)      x_{k+n} = x_{k+pos} ^ (x_k^u | x_{k+1}^l) A
  TRIPLE  (mt64rec2)  x_{k+n} = x_{k+pos1} ^ x_{k+pos2} ^ x_{k+pos3} ^ (x_k^u | x_{k+1}^l) A

where n = mexp // 64 + 1 words, x^u keeps the top (mexp % 64) bits, x^l the
rest, and A is the usual twist: shift right by one and XOR `mat` when the
dropped bit is 1.  Only mexp of the n*64 state bits are live; the low bits of
the word consumed next are never read again.  equals() and is_live_zero()
look at live bits only so that the GF(2) vector-space operations used by the
equidistribution and period code work on the real mexp-dimensional space;
is_zero() checks the whole array.

Tempering (same shape for both topologies, different constants):

  x ^= (x >> tsh0) & tmsk0
  x ^= (x << tsh1) & tmsk1
  x ^= (x << tsh2) & tmsk2
  x ^= (x >> tsh3)

tmsk0 is fixed; tmsk1 and tmsk2 are discovered by the tempering solver
through set_tempering_pattern().
"""

from __future__ import annotations

import copy
import enum
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


MASK64 = 0xFFFFFFFFFFFFFFFF
MASK32 = 0xFFFFFFFF

# 2^p - 1 is prime for every p here, so an irreducible characteristic
# polynomial of degree p is automatically primitive (full period).
ALLOWED_MEXP: Tuple[int, ...] = (
    521, 607, 1279, 2203, 2281, 3217, 4253, 4423, 9689, 9941, 11213, 19937,
)

# Knuth's MMIX multiplier, as in mt19937-64 init_genrand64.
SEED_MULTIPLIER = 6364136223846793005

ID_LIMIT = 1 << 32


class ConfigError(ValueError):
    """Bad exponent, id, position or option value; raised before any search work."""


class TopologyMismatchError(TypeError):
    """GF(2) addition between generators of different kinds or sizes."""


class Topology(enum.Enum):
    SINGLE = "single"
    TRIPLE = "triple"


@dataclass(frozen=True)
class TopologySpec:
    feedback_count: int
    shifts: Tuple[int, int, int, int]
    tmsk0: int
    serialize_shape: bool   # TRIPLE records carry tsh0..tsh3 and tmsk0
    premix_seq: bool        # TRIPLE spreads seq before folding in the id


# SINGLE keeps the mt19937-64 tempering shape (u=29, d=0x5555..., s=17, t=37,
# l=43).  TRIPLE widens the leading right shift to 26 and lets it act on every
# bit; 17/33 are its two left shifts and 39 the final right shift.
TOPOLOGIES: Dict[Topology, TopologySpec] = {
    Topology.SINGLE: TopologySpec(
        feedback_count=1,
        shifts=(29, 17, 37, 43),
        tmsk0=0x5555555555555555,
        serialize_shape=False,
        premix_seq=False,
    ),
    Topology.TRIPLE: TopologySpec(
        feedback_count=3,
        shifts=(26, 17, 33, 39),
        tmsk0=MASK64,
        serialize_shape=True,
        premix_seq=True,
    ),
}


# ----------------------------- validation -----------------------------
def validate_mexp(mexp: int) -> int:
    if mexp not in ALLOWED_MEXP:
        allowed = " ".join(str(m) for m in ALLOWED_MEXP)
        raise ConfigError(f"mexp must be one of {allowed} (got {mexp})")
    return mexp

def validate_id(id_: int) -> int:
    if not (0 <= id_ < ID_LIMIT):
        raise ConfigError(f"id must be 0 <= id < 2^32 (got {id_})")
    return id_

def state_words(mexp: int) -> int:
    return mexp // 64 + 1

def make_masks(mexp: int) -> Tuple[int, int]:
    """Return (upper_mask, lower_mask) splitting a word at bit mexp % 64 from the top."""
    lower_mask = MASK64 >> (mexp % 64)
    upper_mask = ~lower_mask & MASK64
    return upper_mask, lower_mask

def reverse_bits64(x: int) -> int:
    return int(f"{x:064b}"[::-1], 2)


# ----------------------------- parameter record -----------------------------
_SINGLE_HEADER = "mexp, id, pos, mat, tmsk1, tmsk2"
_TRIPLE_HEADER = ("mexp, id, pos1, pos2, pos3, mat, tsh0, tsh1, tsh2, tsh3,"
                  " tmsk0, tmsk1, tmsk2")


@dataclass(frozen=True)
class MT64Param:
    """Snapshot of one generator's parameters.

    Accepted records are written exactly once; being frozen, a record cannot
    drift from what was reported.  `seq` is kept for log lines only and is
    not part of the CSV form.
    """
    topology: Topology
    mexp: int
    id: int
    positions: Tuple[int, ...]
    mat: int = 0
    tmsk1: int = 0
    tmsk2: int = 0
    seq: int = 0
    tmsk0: Optional[int] = None
    shifts: Optional[Tuple[int, int, int, int]] = None
    spec: TopologySpec = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        spec = TOPOLOGIES[self.topology]
        object.__setattr__(self, "spec", spec)
        if self.tmsk0 is None:
            object.__setattr__(self, "tmsk0", spec.tmsk0)
        if self.shifts is None:
            object.__setattr__(self, "shifts", spec.shifts)
        if len(self.positions) != spec.feedback_count:
            raise ConfigError(
                f"{self.topology.value} topology takes {spec.feedback_count} feedback "
                f"position(s), got {len(self.positions)}")

    def header(self) -> str:
        return _TRIPLE_HEADER if self.spec.serialize_shape else _SINGLE_HEADER

    def to_string(self) -> str:
        fields: List[str] = [str(self.mexp), str(self.id)]
        fields.extend(str(p) for p in self.positions)
        fields.append(f"{self.mat:016x}")
        if self.spec.serialize_shape:
            fields.extend(str(s) for s in self.shifts)
            fields.append(f"{self.tmsk0:016x}")
        fields.append(f"{self.tmsk1:016x}")
        fields.append(f"{self.tmsk2:016x}")
        return ",".join(fields)

    def debug_string(self) -> str:
        lines = [f"mexp:{self.mexp}", f"id:{self.id}"]
        if self.topology is Topology.SINGLE:
            lines.append(f"pos:{self.positions[0]}")
        else:
            lines.extend(f"pos{i + 1}:{p}" for i, p in enumerate(self.positions))
        lines.append(f"mat:{self.mat:016x}")
        if self.spec.serialize_shape:
            lines.extend(f"tsh{i}:{s}" for i, s in enumerate(self.shifts))
            lines.append(f"tmsk0:{self.tmsk0:016x}")
        lines.append(f"tmsk1:{self.tmsk1:016x}")
        lines.append(f"tmsk2:{self.tmsk2:016x}")
        return "\n".join(lines)

    @classmethod
    def parse(cls, text: str, topology: Topology = Topology.SINGLE) -> "MT64Param":
        """Parse a line produced by to_string(); a trailing delta column is ignored."""
        parts = [p.strip() for p in text.strip().split(",")]
        spec = TOPOLOGIES[topology]
        npos = spec.feedback_count
        expected = 2 + npos + 1 + (5 if spec.serialize_shape else 0) + 2
        if len(parts) == expected + 1:
            parts = parts[:-1]
        if len(parts) != expected:
            raise ConfigError(
                f"expected {expected} fields for {topology.value} topology, got {len(parts)}: {text!r}")
        try:
            mexp = int(parts[0], 10)
            id_ = int(parts[1], 10)
            positions = tuple(int(p, 10) for p in parts[2:2 + npos])
            rest = parts[2 + npos:]
            mat = int(rest[0], 16)
            shifts: Optional[Tuple[int, int, int, int]] = None
            tmsk0: Optional[int] = None
            if spec.serialize_shape:
                s0, s1, s2, s3 = (int(s, 10) for s in rest[1:5])
                shifts = (s0, s1, s2, s3)
                tmsk0 = int(rest[5], 16)
                rest = rest[6:]
            else:
                rest = rest[1:]
            tmsk1 = int(rest[0], 16)
            tmsk2 = int(rest[1], 16)
        except ValueError as e:
            raise ConfigError(f"malformed parameter line {text!r}: {e}") from e
        validate_mexp(mexp)
        validate_id(id_)
        size = state_words(mexp)
        for p in positions:
            if not (1 <= p < size):
                raise ConfigError(f"position must be 1 <= pos < {size} (got {p})")
        return cls(topology=topology, mexp=mexp, id=id_, positions=positions,
                   mat=mat, tmsk1=tmsk1, tmsk2=tmsk2, tmsk0=tmsk0, shifts=shifts)


# ----------------------------- generator -----------------------------
class MT64Generator:
    """Generator state plus the hooks the search, tempering and
    equidistribution algorithms drive.

    There is no assignment operation; use clone() for an independent copy.
    """

    def __init__(self, mexp: int, id_: int = 0, topology: Topology = Topology.SINGLE) -> None:
        validate_mexp(mexp)
        validate_id(id_)
        spec = TOPOLOGIES[topology]
        self.topology = topology
        self.spec = spec
        self.mexp = mexp
        self.id = id_
        self.seq = 0
        self.size = state_words(mexp)
        self.state: List[int] = [0] * self.size
        self.index = 0
        self.positions: Tuple[int, ...] = (0,) * spec.feedback_count
        self.mat = 0
        self.tmsk0 = spec.tmsk0
        self.tmsk1 = 0
        self.tmsk2 = 0
        self.shifts = spec.shifts
        self.fixed_pos = -1
        self.reverse_output = False
        self.upper_mask, self.lower_mask = make_masks(mexp)

    @classmethod
    def from_param(cls, param: MT64Param) -> "MT64Generator":
        g = cls(param.mexp, param.id, param.topology)
        g.positions = tuple(param.positions)
        g.mat = param.mat
        g.tmsk0 = param.tmsk0
        g.tmsk1 = param.tmsk1
        g.tmsk2 = param.tmsk2
        g.shifts = param.shifts
        g.seq = param.seq
        return g

    def clone(self) -> "MT64Generator":
        other = copy.copy(self)
        other.state = list(self.state)
        return other

    def param(self) -> MT64Param:
        return MT64Param(topology=self.topology, mexp=self.mexp, id=self.id,
                         positions=self.positions, mat=self.mat,
                         tmsk1=self.tmsk1, tmsk2=self.tmsk2, seq=self.seq,
                         tmsk0=self.tmsk0, shifts=self.shifts)

    def bit_size(self) -> int:
        return self.mexp

    # --- state transition and output ---
    def seed(self, value: int) -> None:
        state = self.state
        state[0] = value & MASK64
        for i in range(1, self.size):
            prev = state[i - 1]
            state[i] = (SEED_MULTIPLIER * (prev ^ (prev >> 62)) + i) & MASK64
        self.index = self.size - 1

    def next_state(self) -> None:
        size = self.size
        state = self.state
        i = self.index = (self.index + 1) % size
        x = (state[i] & self.upper_mask) | (state[(i + 1) % size] & self.lower_mask)
        y = x >> 1
        for pos in self.positions:
            y ^= state[(i + pos) % size]
        if x & 1:
            y ^= self.mat
        state[i] = y

    def temper(self) -> int:
        x = self.state[self.index]
        sh0, sh1, sh2, sh3 = self.shifts
        x ^= (x >> sh0) & self.tmsk0
        x ^= (x << sh1) & self.tmsk1
        x ^= (x << sh2) & self.tmsk2
        x ^= x >> sh3
        return x

    def generate(self, bit_len: Optional[int] = None) -> int:
        """Next tempered output; with bit_len, only its top bit_len bits
        (left-justified).  In reverse-output mode the bits are taken from
        the LSB side."""
        self.next_state()
        w = self.temper()
        if bit_len is None:
            return w
        if self.reverse_output:
            w = reverse_bits64(w)
        return w & ((MASK64 << (64 - bit_len)) & MASK64)

    def set_reverse_output(self) -> None:
        self.reverse_output = True

    def reset_reverse_output(self) -> None:
        self.reverse_output = False

    # --- parameters ---
    def set_fixed_pos(self, value: int) -> None:
        if self.topology is not Topology.SINGLE:
            raise ConfigError("fixed position is only available for the single-feedback topology")
        if not (1 <= value < self.size):
            raise ConfigError(f"fixed-pos must be 1 <= fixed-pos < {self.size} (got {value})")
        self.fixed_pos = value

    def set_up_param(self, source) -> None:
        """Draw feedback position(s) and derive `mat` from the next sequence value.

        This is the only place feedback parameters are assigned; the
        tempering masks are reset and filled in later by the solver.
        """
        n = self.size - 1
        if self.topology is Topology.SINGLE and self.fixed_pos > 0:
            positions = [self.fixed_pos]
        else:
            positions = []
            while len(positions) < self.spec.feedback_count:
                p = source.get_uint64() % n + 1
                if p not in positions:
                    positions.append(p)
        seq = source.get_uint32()
        work = seq
        if self.spec.premix_seq:
            work = (seq ^ (seq << 15) ^ (seq << 23)) & MASK32
        wmat1 = (work & 0xFFFF0000) | (self.id & 0xFFFF)
        wmat2 = (work & 0xFFFF) | (self.id & 0xFFFF0000)
        wmat1 ^= wmat1 >> 19
        wmat2 = (wmat2 ^ (wmat2 << 18)) & MASK32
        self.positions = tuple(positions)
        self.seq = seq
        self.mat = (wmat1 << 32) | wmat2
        self.tmsk1 = 0
        self.tmsk2 = 0

    def tempering_slots(self) -> Tuple[Tuple[int, int], ...]:
        """(slot, left shift) for each mask register the tempering solver may set."""
        return ((0, self.shifts[1]), (1, self.shifts[2]))

    def set_tempering_pattern(self, mask: int, pattern: int, slot: int) -> None:
        if slot == 0:
            self.tmsk1 = (self.tmsk1 & ~mask & MASK64) | (pattern & mask)
        elif slot == 1:
            self.tmsk2 = (self.tmsk2 & ~mask & MASK64) | (pattern & mask)
        else:
            raise ValueError(f"tempering slot must be 0 or 1 (got {slot})")

    # --- GF(2) vector space ---
    def add(self, other: "MT64Generator") -> None:
        if (not isinstance(other, MT64Generator) or other.topology is not self.topology
                or other.size != self.size):
            raise TopologyMismatchError("the adder should have same type as the addee.")
        size = self.size
        shift = (other.index - self.index) % size
        rotated = other.state[shift:] + other.state[:shift]
        self.state = [a ^ b for a, b in zip(self.state, rotated)]

    def _live_words(self) -> List[int]:
        # Index-relative order, oldest word first.  That word is consumed by
        # the next step through its upper bits only.
        size = self.size
        start = (self.index + 1) % size
        words = self.state[start:] + self.state[:start]
        words[0] &= self.upper_mask
        return words

    def is_zero(self) -> bool:
        return not any(self.state)

    def is_live_zero(self) -> bool:
        return not any(self._live_words())

    def set_zero(self) -> None:
        self.state = [0] * self.size
        self.index = 0

    def equals(self, other: "MT64Generator") -> bool:
        if (not isinstance(other, MT64Generator) or other.topology is not self.topology
                or other.size != self.size):
            return False
        return self._live_words() == other._live_words()

    # --- serialization ---
    def get_header_string(self) -> str:
        return self.param().header()

    def get_param_string(self) -> str:
        return self.param().to_string()
