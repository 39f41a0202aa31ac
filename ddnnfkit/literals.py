"""Literal encoding and three-valued truth values.

A variable is a non-negative integer.  A literal packs a variable and a
sign into one integer: ``2 * var + sign``, where a set sign means the
negative literal.  DIMACS integers (``3``, ``-3``) are the readable form.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable

LIT_UNDEF = -2
VAR_UNDEF = -1


class LBool(Enum):
    """A lifted boolean: true, false or undefined."""

    TRUE = 0
    FALSE = 1
    UNDEF = 2

    @classmethod
    def from_bool(cls, value: bool) -> "LBool":
        """Return TRUE or FALSE for a Python truth value."""
        return cls.TRUE if value else cls.FALSE

    def xor(self, sign: bool) -> "LBool":
        """Flip a defined value when ``sign`` is set; UNDEF stays UNDEF."""
        if self is LBool.UNDEF or not sign:
            return self
        return LBool.FALSE if self is LBool.TRUE else LBool.TRUE


def mk_lit(var: int, sign: bool = False) -> int:
    """Build the literal of ``var``; ``sign`` set gives the negative literal."""
    if var < 0:
        raise ValueError(f"variable must be non-negative, got {var}")
    return (var << 1) | int(bool(sign))


def var_of(lit: int) -> int:
    """Return the variable of a literal."""
    return lit >> 1


def sign_of(lit: int) -> bool:
    """Return True for a negative literal."""
    return bool(lit & 1)


def negate(lit: int) -> int:
    """Return the complementary literal."""
    return lit ^ 1


def readable_lit(lit: int) -> int:
    """Return the DIMACS integer of a literal (variables counted from 1)."""
    number = var_of(lit) + 1
    return -number if sign_of(lit) else number


def from_dimacs(value: int) -> int:
    """Return the literal of a non-zero DIMACS integer."""
    if value == 0:
        raise ValueError("0 does not denote a literal")
    return mk_lit(abs(value) - 1, value < 0)


def int_to_lits(values: Iterable[int]) -> list[int]:
    """Convert DIMACS integers to literals."""
    return [from_dimacs(value) for value in values]