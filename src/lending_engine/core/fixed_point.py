"""Deterministic fixed-point arithmetic.

Amounts, prices and indices are plain Python ints at WAD (1e18) scale;
basis-point fractions use a 1e4 scale. Every operation is checked against
the uint256 domain so results stay representable on the settlement side.

rpow compounds a per-second rate over elapsed seconds using
exponentiation by squaring, rounding half-up on every multiplication.
"""

from __future__ import annotations

from decimal import Decimal

from lending_engine.core.errors import FixedPointError
from lending_engine.data.constants import BPS, UINT256_MAX, WAD, WAD_DECIMALS


def _check_operand(name: str, value: int) -> None:
    if value < 0 or value > UINT256_MAX:
        raise FixedPointError(f"{name}={value} outside uint256 range")


def _check_result(value: int) -> int:
    if value > UINT256_MAX:
        raise FixedPointError(f"Result {value} overflows uint256")
    return value


def mul_div(a: int, b: int, scale: int) -> int:
    """Compute floor(a * b / scale).

    The intermediate product is exact (Python ints); only the result must fit
    in uint256.

    Raises:
        FixedPointError: On negative operands, zero scale, or overflow.
    """
    _check_operand("a", a)
    _check_operand("b", b)
    if scale <= 0:
        raise FixedPointError(f"Scale must be positive, got {scale}")
    return _check_result(a * b // scale)


def mul_div_up(a: int, b: int, scale: int) -> int:
    """Compute ceil(a * b / scale)."""
    _check_operand("a", a)
    _check_operand("b", b)
    if scale <= 0:
        raise FixedPointError(f"Scale must be positive, got {scale}")
    return _check_result(-(-(a * b) // scale))


def rpow(base: int, exponent: int, scale: int) -> int:
    """Raise a scaled base to an integer power.

    Args:
        base: Scaled base, e.g. ``scale + rate_per_second``.
        exponent: Non-negative integer exponent (elapsed seconds).
        scale: Fixed-point scale of ``base`` and the result.

    Returns:
        ``base ** exponent`` rescaled to ``scale``. ``exponent == 0`` returns
        ``scale``; a zero base with a positive exponent returns 0.
    """
    _check_operand("base", base)
    if exponent < 0:
        raise FixedPointError(f"Exponent must be non-negative, got {exponent}")
    if scale <= 0:
        raise FixedPointError(f"Scale must be positive, got {scale}")

    if base == 0:
        return scale if exponent == 0 else 0

    half = scale // 2
    result = base if exponent % 2 else scale
    n = exponent // 2
    x = base
    while n:
        x = _check_result((x * x + half) // scale)
        if n % 2:
            result = _check_result((result * x + half) // scale)
        n //= 2
    return result


def normalize(amount: int, from_decimals: int, to_decimals: int = WAD_DECIMALS) -> int:
    """Rescale a raw amount between decimal precisions, flooring on down-scale."""
    _check_operand("amount", amount)
    if from_decimals < 0 or to_decimals < 0:
        raise FixedPointError("Decimals must be non-negative")
    if from_decimals == to_decimals:
        return amount
    if from_decimals < to_decimals:
        return _check_result(amount * 10 ** (to_decimals - from_decimals))
    return amount // 10 ** (from_decimals - to_decimals)


def denormalize(amount: int, to_decimals: int, from_decimals: int = WAD_DECIMALS) -> int:
    """Convert a working-precision amount back to an asset's native decimals."""
    return normalize(amount, from_decimals, to_decimals)


def bps_to_wad(bps: int) -> int:
    """Convert a basis-point fraction (10000 = 1.0) to WAD scale."""
    return mul_div(bps, WAD, BPS)


def to_decimal(value: int, decimals: int = WAD_DECIMALS) -> Decimal:
    """Human-readable Decimal for a scaled integer."""
    return Decimal(value) / Decimal(10**decimals)
