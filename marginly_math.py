#!/usr/bin/env python3
"""
Marginly FixedPoint96 Math Kernel
=================================

Integer fixed-point primitives matching the Marginly pool contract.

Every value that the contract stores as a "FP96" is an unsigned integer
equal to ``real_value * 2^96``. Multiplication and division by an FP96
operand compensate with a single ``2^96`` factor and TRUNCATE, exactly like
Solidity integer division, so previews never come out larger than what the
contract computes.

FORMULA SOURCES:
──────────────────────────────────────────────
1. Marginly FP96 library (contracts/libraries/FP96.sol)
     mul(a, bX96) = a · bX96 / 2^96
     div(a, bX96) = a · 2^96 / bX96
2. Price convention (MarginlyPool.getBasePrice)
     priceX96 = human_price · 2^96 · 10^quoteDecimals / 10^baseDecimals
   Reference value: 2000 USDC per WETH (18 / 6 decimals)
     → 158456325028528675187

Python ints are arbitrary precision, so multiply-before-divide never
overflows; range limits are enforced only when values hit the wire
(see marginly_sdk.rpc_helpers).
"""

import re
from fractions import Fraction
from typing import NamedTuple, Optional

from marginly_sdk.central_config import DEFAULT_CONSTANTS
from marginly_sdk.errors import DivisionByZero, NegativeValueError

# ── Named Constants ──────────────────────────────────────────────────────

FP96_ONE = DEFAULT_CONSTANTS.FP96_ONE
MAX_DECIMALS = DEFAULT_CONSTANTS.MAX_DECIMALS

_NUMBER_RE = re.compile(r"[+-]?\d*\.?\d+")


# ── FP96 Primitives ──────────────────────────────────────────────────────


def _require_non_negative(*values: int) -> None:
    for value in values:
        if value < 0:
            raise NegativeValueError(f"FP96 operand must be non-negative, got {value}")


def mul_fp96(multiplier: int, multiplicand: int) -> int:
    """Multiplication with at least one of the multipliers in X96 format."""
    _require_non_negative(multiplier, multiplicand)
    return multiplier * multiplicand // FP96_ONE


def div_fp96(numerator: int, denominator: int) -> int:
    """
    Division by an X96 number.

    Raises:
        DivisionByZero: denominator is 0.
    """
    _require_non_negative(numerator, denominator)
    if denominator == 0:
        raise DivisionByZero("FP96 division by zero")
    return numerator * FP96_ONE // denominator


def checked_sub(minuend: int, subtrahend: int) -> int:
    """``minuend - subtrahend`` that refuses to go negative (uint256 semantics)."""
    if subtrahend > minuend:
        raise NegativeValueError(
            f"Subtraction underflow: {minuend} - {subtrahend} "
            "(coefficients out of sync with balances?)"
        )
    return minuend - subtrahend


# ── Price Conversion ─────────────────────────────────────────────────────


def convert_price_human_to_x96(price: int, base_decimals: int, quote_decimals: int) -> int:
    """
    Human price (quote per 1 whole base token) → X96 price per token unit.

    Formula:  priceX96 = price · 2^96 / 10^(baseDecimals − quoteDecimals)

    A negative exponent (quote has more decimals than base) multiplies
    instead of dividing.
    """
    _require_non_negative(price)
    power = base_decimals - quote_decimals
    if power >= 0:
        return price * FP96_ONE // 10 ** power
    return price * FP96_ONE * 10 ** (-power)


def convert_price_x96_to_human(price_x96: int, base_decimals: int, quote_decimals: int) -> int:
    """X96 price per token unit → human price, truncated to an integer."""
    _require_non_negative(price_x96)
    power = base_decimals - quote_decimals
    if power >= 0:
        return price_x96 * 10 ** power // FP96_ONE
    return price_x96 // (FP96_ONE * 10 ** (-power))


# ── Decimal String Parsing ───────────────────────────────────────────────


class DecimalParts(NamedTuple):
    """A human decimal string split into integer parts.

    ``"-12.0345"`` → ``DecimalParts(True, 12, 345, 4)``
    """

    negative: bool
    whole: int
    fraction: int
    fraction_digits: int

    @property
    def scaled(self) -> int:
        """Signed integer value · 10^fraction_digits."""
        magnitude = self.whole * 10 ** self.fraction_digits + self.fraction
        return -magnitude if self.negative else magnitude

    def to_fraction(self) -> Fraction:
        return Fraction(self.scaled, 10 ** self.fraction_digits)


def is_valid_number(s: str) -> bool:
    """Optional sign, digits, optional single decimal point followed by digits."""
    return isinstance(s, str) and _NUMBER_RE.fullmatch(s) is not None


def extract_fraction_and_whole(s: str, max_decimals: int = MAX_DECIMALS) -> Optional[DecimalParts]:
    """
    Split a decimal string into whole and fractional parts.

    Fraction digits beyond ``max_decimals`` are dropped (truncation toward
    zero). Returns None for anything that is not a number and never raises.
    """
    if not is_valid_number(s):
        return None

    negative = s.startswith("-")
    body = s.lstrip("+-")
    whole, _, fraction = body.partition(".")
    fraction = fraction[:max_decimals]
    return DecimalParts(
        negative=negative,
        whole=int(whole or "0"),
        fraction=int(fraction or "0"),
        fraction_digits=len(fraction),
    )


def parse_decimal(s: str, max_decimals: int = MAX_DECIMALS) -> Optional[Fraction]:
    """Exact rational value of a decimal string, or None if malformed."""
    parts = extract_fraction_and_whole(s, max_decimals)
    return parts.to_fraction() if parts is not None else None


def convert_price_string_to_x96(price: str, base_decimals: int, quote_decimals: int) -> Optional[int]:
    """
    Human price string (e.g. "4228.395") → X96, without going through float.

    Returns None for malformed or negative input.
    """
    parts = extract_fraction_and_whole(price)
    if parts is None or parts.negative:
        return None

    power = base_decimals - quote_decimals + parts.fraction_digits
    numerator = parts.scaled * FP96_ONE
    if power >= 0:
        return numerator // 10 ** power
    return numerator * 10 ** (-power)


# ── Token Units ──────────────────────────────────────────────────────────


def to_token_units(amount: str, decimals: int) -> Optional[int]:
    """
    Human amount string → integer token units (amount · 10^decimals).

    Extra fraction digits are truncated (round toward zero), e.g.
    ``to_token_units("1.2345678", 6) == 1234567``.
    Returns None for malformed or negative input.
    """
    parts = extract_fraction_and_whole(amount, max_decimals=decimals)
    if parts is None or parts.negative:
        return None
    return parts.whole * 10 ** decimals + parts.fraction * 10 ** (decimals - parts.fraction_digits)


def fraction_to_token_units(value: Fraction, decimals: int) -> int:
    """Exact rational amount → integer token units, truncated toward zero."""
    if value < 0:
        raise NegativeValueError(f"Token amount must be non-negative, got {value}")
    return int(value * 10 ** decimals)


def from_token_units(units: int, decimals: int) -> str:
    """
    Integer token units → plain decimal string (display only).

    >>> from_token_units(1500000, 6)
    '1.5'
    """
    _require_non_negative(units)
    if decimals == 0:
        return str(units)
    whole, fraction = divmod(units, 10 ** decimals)
    fraction_str = str(fraction).zfill(decimals).rstrip("0")
    return f"{whole}.{fraction_str}" if fraction_str else str(whole)
