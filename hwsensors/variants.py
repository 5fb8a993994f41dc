"""Conversions of configuration property values to plain Python types.

Configuration values arrive as one of a small set of types: a list of
strings, a string, an integer, a float or a boolean.  These helpers turn
such a value into the numeric or textual form a caller needs, raising
``ValueError`` when the value cannot be represented that way.
"""

from __future__ import annotations

from numbers import Real
from typing import Any

_UINT_MODULUS = 1 << 32
_INT_OFFSET = 1 << 31


def _require_number(value: Any, target: str) -> Real:
    if isinstance(value, Real):
        return value
    raise ValueError(f"Cannot translate type {type(value).__name__} to {target}")


def _truncate(value: Real) -> int:
    return int(value)


def variant_to_double(value: Any) -> float:
    """Return ``value`` as a float; only numbers and booleans convert."""
    return float(_require_number(value, "double"))


def variant_to_int(value: Any) -> int:
    """Return ``value`` as a 32-bit signed integer, truncating fractions."""
    number = _truncate(_require_number(value, "int"))
    return (number + _INT_OFFSET) % _UINT_MODULUS - _INT_OFFSET


def variant_to_unsigned(value: Any) -> int:
    """Return ``value`` as a 32-bit unsigned integer, wrapping negatives."""
    number = _truncate(_require_number(value, "unsigned int"))
    return number % _UINT_MODULUS


def variant_to_string(value: Any) -> str:
    """Return ``value`` as text.

    Strings pass through unchanged, integers are written in decimal,
    booleans as ``1`` or ``0`` and floats with six decimal places.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, Real):
        return f"{float(value):f}"
    raise ValueError(f"Cannot translate type {type(value).__name__} to string")