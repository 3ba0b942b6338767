#!/usr/bin/env python3
"""
Marginly Position Valuation Model
=================================

Converts the discounted balances stored by MarginlyPool.positions(address)
into real token amounts and derives the read-side previews the UI shows:
leverage, liquidation price and how much can be withdrawn.

Real amounts (all coefficients are FP96, see marginly_math):

  ┌────────────┬─────────────────────────────────┬──────────────────────────────────┐
  │ type       │ baseAmount                      │ quoteAmount                      │
  ├────────────┼─────────────────────────────────┼──────────────────────────────────┤
  │ Lend       │ baseCollCoeff·db                │ quoteCollCoeff·dq                │
  │ Short      │ baseCollCoeff·db − baseDelev·dq │ quoteDebtCoeff·dq                │
  │ Long       │ baseDebtCoeff·db                │ quoteCollCoeff·dq − quoteDelev·db│
  │ Uninit.    │ 0                               │ 0                                │
  └────────────┴─────────────────────────────────┴──────────────────────────────────┘

A MarginlyPosition is an immutable snapshot: build a new one whenever the
coefficients or balances change. Coefficients and balances MUST come from
the same block; mixing snapshots is not detectable here.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from marginly_math import FP96_ONE, checked_sub, div_fp96, mul_fp96
from marginly_sdk.errors import DivisionByZero, NegativeValueError


# ── Pool Coefficients ────────────────────────────────────────────────────


@dataclass(frozen=True)
class MarginlyCoeffs:
    """
    Coefficients used in Marginly for interest rate and deleverage calculations.
    All values are in X96 format.
    """

    base_collateral_coeff: int
    quote_collateral_coeff: int
    base_debt_coeff: int
    quote_debt_coeff: int
    base_delev_coeff: int
    quote_delev_coeff: int


class PositionType(IntEnum):
    """Position type as encoded by the contract (uint8)."""

    UNINITIALIZED = 0
    LEND = 1
    SHORT = 2
    LONG = 3


# ── Real Amounts ─────────────────────────────────────────────────────────


def calc_real_base_collateral(
    base_collateral_coeff_x96: int,
    base_delev_coeff_x96: int,
    discounted_base_collateral: int,
    discounted_quote_debt: int,
) -> int:
    """Real base collateral of a short position (deleverage reduces it)."""
    return checked_sub(
        mul_fp96(base_collateral_coeff_x96, discounted_base_collateral),
        mul_fp96(base_delev_coeff_x96, discounted_quote_debt),
    )


def calc_real_quote_collateral(
    quote_collateral_coeff_x96: int,
    quote_delev_coeff_x96: int,
    discounted_quote_collateral: int,
    discounted_base_debt: int,
) -> int:
    """Real quote collateral of a long position (deleverage reduces it)."""
    return checked_sub(
        mul_fp96(quote_collateral_coeff_x96, discounted_quote_collateral),
        mul_fp96(quote_delev_coeff_x96, discounted_base_debt),
    )


def calc_real_base_debt(base_debt_coeff_x96: int, discounted_base_debt: int) -> int:
    return mul_fp96(base_debt_coeff_x96, discounted_base_debt)


def calc_real_quote_debt(quote_debt_coeff_x96: int, discounted_quote_debt: int) -> int:
    return mul_fp96(quote_debt_coeff_x96, discounted_quote_debt)


# ── Leverage & Liquidation Price ─────────────────────────────────────────


def _checked_floordiv(numerator: int, denominator: int) -> int:
    if denominator == 0:
        raise DivisionByZero("Leverage denominator is zero (position at liquidation)")
    if denominator < 0:
        raise NegativeValueError("Leverage denominator is negative (position beyond liquidation)")
    return numerator // denominator


def calc_long_leverage(real_base_collateral: int, real_quote_debt: int, base_price_x96: int) -> int:
    """
    Leverage of a long position.

    Formula:  L = collateralInQuote / (collateralInQuote − quoteDebt)
              collateralInQuote = baseCollateral · price
    """
    collateral_in_quote = mul_fp96(real_base_collateral, base_price_x96)
    return _checked_floordiv(collateral_in_quote, collateral_in_quote - real_quote_debt)


def calc_short_leverage(real_quote_collateral: int, real_base_debt: int, base_price_x96: int) -> int:
    """
    Leverage of a short position.

    Formula:  L = quoteCollateral / (quoteCollateral − baseDebt · price)
    """
    debt_in_quote = mul_fp96(real_base_debt, base_price_x96)
    return _checked_floordiv(real_quote_collateral, real_quote_collateral - debt_in_quote)


def calc_long_liquidation_price_x96(
    real_base_collateral: int, real_quote_debt: int, max_leverage: int
) -> int:
    """
    Price at which a long reaches ``max_leverage``.

    Formula:  P = maxLev · quoteDebt / ((maxLev − 1) · baseCollateral)
    """
    return div_fp96(max_leverage * real_quote_debt, (max_leverage - 1) * real_base_collateral)


def calc_short_liquidation_price_x96(
    real_quote_collateral: int, real_base_debt: int, max_leverage: int
) -> int:
    """
    Price at which a short reaches ``max_leverage``.

    Formula:  P = (maxLev − 1) · quoteCollateral / (maxLev · baseDebt)
    """
    return div_fp96((max_leverage - 1) * real_quote_collateral, max_leverage * real_base_debt)


# ── Position Snapshot ────────────────────────────────────────────────────


@dataclass(frozen=True)
class MarginlyPosition:
    """
    Snapshot of one account's position in a Marginly pool.

    ``base_amount`` / ``quote_amount`` are real magnitudes in token units;
    whether each side is collateral or debt depends on ``type``.
    Build instances with :meth:`from_discounted`.
    """

    type: PositionType
    discounted_base_amount: int
    discounted_quote_amount: int
    base_amount: int
    quote_amount: int
    heap_position: int = 0

    @classmethod
    def from_discounted(
        cls,
        coeffs: MarginlyCoeffs,
        position_type: PositionType,
        discounted_base_amount: int,
        discounted_quote_amount: int,
        heap_position: int = 0,
    ) -> "MarginlyPosition":
        """
        Factory: apply the pool coefficients to discounted balances.

        Raises:
            NegativeValueError: deleverage exceeds collateral, i.e. the
                coefficients do not belong to these balances.
        """
        position_type = PositionType(position_type)
        db, dq = discounted_base_amount, discounted_quote_amount

        if position_type == PositionType.LEND:
            base_amount = mul_fp96(coeffs.base_collateral_coeff, db)
            quote_amount = mul_fp96(coeffs.quote_collateral_coeff, dq)
        elif position_type == PositionType.SHORT:
            base_amount = calc_real_base_collateral(
                coeffs.base_collateral_coeff, coeffs.base_delev_coeff, db, dq
            )
            quote_amount = calc_real_quote_debt(coeffs.quote_debt_coeff, dq)
        elif position_type == PositionType.LONG:
            base_amount = calc_real_base_debt(coeffs.base_debt_coeff, db)
            quote_amount = calc_real_quote_collateral(
                coeffs.quote_collateral_coeff, coeffs.quote_delev_coeff, dq, db
            )
        else:
            base_amount = 0
            quote_amount = 0

        return cls(
            type=position_type,
            discounted_base_amount=db,
            discounted_quote_amount=dq,
            base_amount=base_amount,
            quote_amount=quote_amount,
            heap_position=heap_position,
        )

    def calc_leverage(self, base_price_x96: int) -> Optional[int]:
        """Integer leverage at ``base_price_x96``; None for uninitialized positions."""
        if self.type == PositionType.LONG:
            return calc_long_leverage(self.base_amount, self.quote_amount, base_price_x96)
        elif self.type == PositionType.SHORT:
            return calc_short_leverage(self.quote_amount, self.base_amount, base_price_x96)
        elif self.type == PositionType.LEND:
            return 1
        return None

    def calc_liquidation_price(self, max_leverage: int) -> Optional[int]:
        """Liquidation price in X96; None when the position carries no leverage."""
        if self.type == PositionType.LONG:
            return calc_long_liquidation_price_x96(self.base_amount, self.quote_amount, max_leverage)
        elif self.type == PositionType.SHORT:
            return calc_short_liquidation_price_x96(self.quote_amount, self.base_amount, max_leverage)
        return None

    def base_withdraw_available(self, base_price_x96: int, max_leverage: int) -> int:
        """
        Base tokens that can be withdrawn while keeping leverage ≤ max_leverage.

        Long:  base − quote · maxLev · 2^96 / price / (maxLev − 1)
        """
        if self.type == PositionType.LEND:
            return self.base_amount
        elif self.type == PositionType.LONG:
            if base_price_x96 == 0 or max_leverage <= 1:
                raise DivisionByZero("base price must be > 0 and max leverage > 1")
            locked = (
                self.quote_amount * max_leverage * FP96_ONE
                // base_price_x96
                // (max_leverage - 1)
            )
            return checked_sub(self.base_amount, locked)
        return 0

    def quote_withdraw_available(self, base_price_x96: int, max_leverage: int) -> int:
        """
        Quote tokens that can be withdrawn while keeping leverage ≤ max_leverage.

        Short: quote − base · maxLev · price / 2^96 / (maxLev − 1)
        """
        if self.type == PositionType.LEND:
            return self.quote_amount
        elif self.type == PositionType.SHORT:
            if max_leverage <= 1:
                raise DivisionByZero("max leverage must be > 1")
            locked = (
                self.base_amount * max_leverage * base_price_x96
                // FP96_ONE
                // (max_leverage - 1)
            )
            return checked_sub(self.quote_amount, locked)
        return 0
