"""Fixed-point constants and checked integer arithmetic.

All reward and multiplier math runs on unsigned integers bounded by
2**256 - 1. Python integers never wrap, so the bound is enforced
explicitly: any result outside [0, UINT256_MAX] raises
ArithmeticOverflow instead of being silently truncated.

Scales:
    PRECISION       = 10**18  reward-per-share scale
    MULTIPLIER_BASE = 10**4   1.0x in basis points
"""

from __future__ import annotations

from stakevault.errors import ArithmeticOverflow

PRECISION = 10**18
MULTIPLIER_BASE = 10_000
MULTIPLIER_CAP = 22_500
MULTIPLIER_RATE_PER_EPOCH = 250
UINT256_MAX = 2**256 - 1


def _bounded(value: int, op: str) -> int:
    if value < 0 or value > UINT256_MAX:
        raise ArithmeticOverflow(f"{op} result out of uint256 range: {value}")
    return value


def checked_add(a: int, b: int) -> int:
    return _bounded(a + b, "add")


def checked_sub(a: int, b: int) -> int:
    """Subtract, failing on underflow below zero."""
    return _bounded(a - b, "sub")


def checked_mul(a: int, b: int) -> int:
    return _bounded(a * b, "mul")


def mul_div(a: int, b: int, denominator: int) -> int:
    """Compute a * b // denominator with the product range-checked.

    Truncates toward zero. The intermediate product must itself fit in
    uint256, matching what a 256-bit host would enforce.
    """
    if denominator <= 0:
        raise ArithmeticOverflow(f"division by non-positive denominator: {denominator}")
    return checked_mul(a, b) // denominator


def require_uint(value: int, name: str) -> int:
    """Validate that an externally supplied value is a uint256."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")
    return _bounded(value, name)
