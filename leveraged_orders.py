#!/usr/bin/env python3
"""
Leveraged Order Builder
=======================

Turns a human intent such as "deposit 1.5 WETH and go 3x long, 0.5% slippage"
into the `execute` parameters of a deposit-and-trade (or close) call.

Derivation:
──────────────────────────────────────────────
  trade size (long)   = deposit · (L − 1)                [base tokens]
  trade size (short)  = deposit · (L − 1) / price        [base tokens, deposit in quote]

  worst price, adverse direction for the trade:
    open long  / close short   →  price · (100 + p) / 100
    open short / close long    →  price · (100 − p) / 100

All arithmetic is exact (``fractions.Fraction`` over parsed decimal
strings); conversion to token units and X96 truncates toward zero.
Malformed input returns None so a UI can re-prompt.
"""

from enum import Enum
from fractions import Fraction
from typing import Optional, Union

from marginly_execute import (
    ExecuteParams,
    close_position,
    deposit_base_and_long,
    deposit_quote_and_short,
)
from marginly_math import FP96_ONE, fraction_to_token_units, parse_decimal

HumanNumber = Union[str, int]

_HUNDRED = Fraction(100)


class TradeDirection(str, Enum):
    LONG = "long"
    SHORT = "short"


def _parse(value: HumanNumber) -> Optional[Fraction]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return Fraction(value)
    if isinstance(value, str):
        return parse_decimal(value.strip())
    return None


def _price_to_x96(price: Fraction, base_decimals: int, quote_decimals: int) -> int:
    """Exact human price → X96 (same convention as convert_price_human_to_x96)."""
    return int(price * FP96_ONE * 10 ** quote_decimals / 10 ** base_decimals)


def calc_limit_price_x96(
    base_price: HumanNumber,
    slippage_pct: HumanNumber,
    direction: TradeDirection,
    closing: bool,
    base_decimals: int,
    quote_decimals: int,
) -> Optional[int]:
    """
    Worst acceptable execution price in X96.

    Buying base (open long, close short) tolerates a higher price,
    selling base (open short, close long) a lower one.
    """
    price = _parse(base_price)
    slippage = _parse(slippage_pct)
    if price is None or price <= 0 or slippage is None or not 0 <= slippage < _HUNDRED:
        return None

    buys_base = (direction == TradeDirection.LONG) != closing
    factor = (_HUNDRED + slippage) if buys_base else (_HUNDRED - slippage)
    return _price_to_x96(price * factor / _HUNDRED, base_decimals, quote_decimals)


def calc_leveraged_trade_size(
    deposit_amount: HumanNumber,
    leverage: HumanNumber,
    direction: TradeDirection,
    base_price: HumanNumber,
) -> Optional[Fraction]:
    """Trade size in whole base tokens, or None for invalid input."""
    deposit = _parse(deposit_amount)
    lev = _parse(leverage)
    price = _parse(base_price)
    if deposit is None or deposit <= 0:
        return None
    if lev is None or lev <= 1:
        return None

    if direction == TradeDirection.LONG:
        return deposit * (lev - 1)
    if price is None or price <= 0:
        return None
    return deposit * (lev - 1) / price


def open_leveraged_position(
    deposit_amount: HumanNumber,
    leverage: HumanNumber,
    direction: TradeDirection,
    base_price: HumanNumber,
    slippage_pct: HumanNumber,
    base_decimals: int,
    quote_decimals: int,
    swap_calldata: Optional[int] = None,
    is_native_eth: bool = False,
) -> Optional[ExecuteParams]:
    """
    Deposit and open a leveraged position in one `execute` call.

    Long: the deposit is in base tokens. Short: the deposit is in quote tokens.

    Returns:
        ExecuteParams for deposit-and-long / deposit-and-short,
        or None when any input fails to parse or is out of range.
    """
    direction = TradeDirection(direction)
    size = calc_leveraged_trade_size(deposit_amount, leverage, direction, base_price)
    if size is None:
        return None
    limit_price_x96 = calc_limit_price_x96(
        base_price, slippage_pct, direction, False, base_decimals, quote_decimals
    )
    if limit_price_x96 is None:
        return None

    deposit = _parse(deposit_amount)
    size_units = fraction_to_token_units(size, base_decimals)

    if direction == TradeDirection.LONG:
        return deposit_base_and_long(
            fraction_to_token_units(deposit, base_decimals),
            size_units,
            limit_price_x96,
            swap_calldata,
            is_native_eth,
        )
    return deposit_quote_and_short(
        fraction_to_token_units(deposit, quote_decimals),
        size_units,
        limit_price_x96,
        swap_calldata,
        is_native_eth,
    )


def close_leveraged_position(
    direction: TradeDirection,
    base_price: HumanNumber,
    slippage_pct: HumanNumber,
    base_decimals: int,
    quote_decimals: int,
    swap_calldata: Optional[int] = None,
    is_native_eth: bool = False,
) -> Optional[ExecuteParams]:
    """Close a long or short with a slippage-protected limit price."""
    direction = TradeDirection(direction)
    limit_price_x96 = calc_limit_price_x96(
        base_price, slippage_pct, direction, True, base_decimals, quote_decimals
    )
    if limit_price_x96 is None:
        return None
    return close_position(limit_price_x96, swap_calldata, is_native_eth)
