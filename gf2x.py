"""
Polynomials over GF(2) held as Python ints (bit i is the coefficient of x^i).

Only what the period check needs: Berlekamp-Massey for the minimal polynomial
of a bit sequence, gcd, and Rabin's irreducibility test built on repeated
Frobenius squaring modulo f.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

import sympy


X = 0b10  # the polynomial x


def degree(f: int) -> int:
    return f.bit_length() - 1

def weight(f: int) -> int:
    return f.bit_count()

def poly_mod(a: int, f: int) -> int:
    df = degree(f)
    if df < 0:
        raise ZeroDivisionError("polynomial modulo zero")
    da = degree(a)
    while da >= df:
        a ^= f << (da - df)
        da = degree(a)
    return a

def poly_gcd(a: int, b: int) -> int:
    while b:
        a, b = b, poly_mod(a, b)
    return a

def poly_to_str(f: int) -> str:
    if f == 0:
        return "0"
    terms = []
    for i in range(degree(f), -1, -1):
        if (f >> i) & 1:
            terms.append("1" if i == 0 else ("x" if i == 1 else f"x^{i}"))
    return " + ".join(terms)

def coefficients(f: int) -> List[int]:
    """Coefficients from the leading term down (sympy's dense order)."""
    return [(f >> i) & 1 for i in range(degree(f), -1, -1)]


# ----------------------------- minimal polynomial -----------------------------
def berlekamp_massey(bits: Iterable[int]) -> int:
    """Minimal polynomial of a GF(2) sequence.

    Returns the characteristic form: for output of degree L, s_{n+L} is the
    sum of s_{n+i} over the set coefficients i < L.  At least 2L terms of the
    sequence are needed for the result to be exact.
    """
    c, b = 1, 1        # connection polynomials, bit i = coefficient of x^i
    length = 0
    m = 1
    window = 0         # bit i = s_{n-i}
    for n, s in enumerate(bits):
        window = (window << 1) | (s & 1)
        d = (c & window).bit_count() & 1
        if d == 0:
            m += 1
        elif 2 * length <= n:
            t = c
            c ^= b << m
            length = n + 1 - length
            b = t
            m = 1
        else:
            c ^= b << m
            m += 1
    # reciprocal of the connection polynomial over length+1 coefficients
    return int(format(c, f"0{length + 1}b")[::-1], 2)


# ----------------------------- Frobenius squaring -----------------------------
class FrobeniusTable:
    """Linear map g -> g^2 mod f, tabulated a few bits of g at a time."""

    def __init__(self, f: int) -> None:
        n = degree(f)
        if n < 1:
            raise ValueError("modulus must have degree >= 1")
        self.f = f
        self.n = n
        self.chunk = 8 if n <= 1280 else 4
        squares: List[int] = []     # x^(2i) mod f
        t = 1
        for _ in range(n):
            squares.append(t)
            t <<= 2
            if (t >> (n + 1)) & 1:
                t ^= f << 1
            if (t >> n) & 1:
                t ^= f
        width = self.chunk
        self.tables: List[List[int]] = []
        for j in range(0, n, width):
            base = squares[j:j + width]
            base += [0] * (width - len(base))
            tab = [0] * (1 << width)
            for k in range(1, 1 << width):
                low = k & -k
                tab[k] = tab[k ^ low] ^ base[low.bit_length() - 1]
            self.tables.append(tab)

    def square(self, g: int) -> int:
        mask = (1 << self.chunk) - 1
        r = 0
        for tab in self.tables:
            if not g:
                break
            r ^= tab[g & mask]
            g >>= self.chunk
        return r


def frobenius_power(f: int, k: int, table: Optional[FrobeniusTable] = None) -> int:
    """x^(2^k) mod f."""
    table = table or FrobeniusTable(f)
    h = poly_mod(X, f)
    for _ in range(k):
        h = table.square(h)
    return h


# ----------------------------- irreducibility -----------------------------
def is_irreducible(f: int, early_degree: int = 8) -> bool:
    """Rabin's test.

    f of degree n is irreducible iff x^(2^n) = x mod f and
    gcd(x^(2^(n/q)) - x, f) = 1 for every prime q dividing n.  Factors of
    degree <= early_degree are looked for on the way up, which rejects most
    reducible candidates long before the n-th square.
    """
    n = degree(f)
    if n < 1:
        return False
    if n == 1:
        return True
    if not (f & 1):
        return False            # divisible by x
    if not (weight(f) & 1):
        return False            # divisible by x + 1
    checkpoints = {n // q for q in sympy.primefactors(n)}
    table = FrobeniusTable(f)
    h = X
    for k in range(1, n + 1):
        h = table.square(h)
        if k < n and (k <= early_degree or k in checkpoints):
            if poly_gcd(f, h ^ X) != 1:
                return False
    return h == X


def sympy_is_irreducible(f: int) -> bool:
    """Independent check through sympy's GF(2) polynomial type."""
    x = sympy.Symbol("x")
    return bool(sympy.Poly(coefficients(f), x, modulus=2).is_irreducible)
