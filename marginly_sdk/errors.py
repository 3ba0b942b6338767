"""
Marginly SDK — Typed Arithmetic Errors
======================================

Raised by the fixed-point kernel and the position model when a computation
cannot produce a meaningful non-negative integer.

Input validation failures (bad numeric strings) and undefined metrics
(leverage of an uninitialized position) are NOT errors: those paths return
``None`` so callers can branch on them.
"""


class MarginlyMathError(ArithmeticError):
    """Base class for arithmetic faults in Marginly math."""


class DivisionByZero(MarginlyMathError, ZeroDivisionError):
    """Raised when an X96 division has a zero denominator.

    Usually means a degenerate or already liquidated position.
    """


class NegativeValueError(MarginlyMathError, ValueError):
    """Raised when a subtraction would go below zero.

    Means the coefficients are out of sync with the discounted balances
    (caller misuse); the contract itself would revert here.
    """


class ValueOutOfRange(MarginlyMathError, ValueError):
    """Raised when a value does not fit its ABI type (uint8 / uint256)."""
