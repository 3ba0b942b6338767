#!/usr/bin/env python3
"""
Marginly Execute — Action → `execute` Parameters
================================================

Every user action on a Marginly pool goes through one payable method:

    execute(uint8 call, uint256 amount1, uint256 amount2,
            uint256 limitPriceX96, bool flag,
            address receivePositionAddress, uint256 swapCalldata)

This module models the actions as a closed set of frozen dataclasses and
maps each of them onto that fixed 7-tuple with a single function,
:func:`build_execute_params`. The helper functions at the bottom
(``deposit_base``, ``long``, ``close_position`` …) are thin shortcuts
that build the matching action.

Field usage per action:
──────────────────────────────────────────────
  Deposit*          amount1 = deposit                 value = deposit if native
  Withdraw*         amount1 = amount | WITHDRAW_ALL   flag  = unwrap native
  Long / Short      amount1 = size, limitPriceX96, swapCalldata
  Deposit+trade     amount1 = deposit, amount2 = size, limitPriceX96
  ClosePosition     limitPriceX96, swapCalldata       flag  = unwrap native
  Reinit            flag = also sync balances
  ReceivePosition   amount1 = base, amount2 = quote, receivePositionAddress
  EmergencyWithdraw flag = unwrap native
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import NamedTuple, Optional, Union

from marginly_sdk.central_config import DEFAULT_CONSTANTS, MarginlyConstants
from marginly_sdk.rpc_helpers import is_address


class CallType(IntEnum):
    """All calls performed via Marginly `execute` method (uint8 on the wire)."""

    DEPOSIT_BASE = 0
    DEPOSIT_QUOTE = 1
    WITHDRAW_BASE = 2
    WITHDRAW_QUOTE = 3
    SHORT = 4
    LONG = 5
    CLOSE_POSITION = 6
    REINIT = 7
    RECEIVE_POSITION = 8
    EMERGENCY_WITHDRAW = 9


class ExecuteArgs(NamedTuple):
    """Argument tuple of Marginly `execute`, in wire order."""

    call_type: CallType
    amount1: int
    amount2: int
    limit_price_x96: int
    flag: bool
    receive_position_address: str
    swap_calldata: int


@dataclass(frozen=True)
class ExecuteParams:
    """Method name, arguments and attached native value for one call."""

    method_name: str
    args: ExecuteArgs
    value: int


# ── Actions ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class DepositBase:
    amount: int
    is_native_eth: bool = False


@dataclass(frozen=True)
class DepositQuote:
    amount: int
    is_native_eth: bool = False


@dataclass(frozen=True)
class WithdrawBase:
    """``amount=None`` withdraws the whole base balance."""

    amount: Optional[int] = None
    is_native_eth: bool = False


@dataclass(frozen=True)
class WithdrawQuote:
    """``amount=None`` withdraws the whole quote balance."""

    amount: Optional[int] = None
    is_native_eth: bool = False


@dataclass(frozen=True)
class Long:
    """Long ``amount`` base tokens; limit is the highest acceptable price."""

    amount: int
    limit_price_x96: int
    swap_calldata: Optional[int] = None


@dataclass(frozen=True)
class Short:
    """Short ``amount`` base tokens; limit is the lowest acceptable price."""

    amount: int
    limit_price_x96: int
    swap_calldata: Optional[int] = None


@dataclass(frozen=True)
class DepositBaseAndLong:
    deposit_amount: int
    long_amount: int
    limit_price_x96: int
    swap_calldata: Optional[int] = None
    is_native_eth: bool = False


@dataclass(frozen=True)
class DepositQuoteAndShort:
    deposit_amount: int
    short_amount: int
    limit_price_x96: int
    swap_calldata: Optional[int] = None
    is_native_eth: bool = False


@dataclass(frozen=True)
class ClosePosition:
    limit_price_x96: int
    swap_calldata: Optional[int] = None
    is_native_eth: bool = False


@dataclass(frozen=True)
class Reinit:
    """``sync_balance=True`` also resyncs pool balances with token holdings."""

    sync_balance: bool = False


@dataclass(frozen=True)
class ReceivePosition:
    """Take over ``position_address`` (bad leverage) by depositing into it."""

    position_address: str
    deposit_amount_base: int
    deposit_amount_quote: int


@dataclass(frozen=True)
class EmergencyWithdraw:
    is_native_eth: bool = False


Action = Union[
    DepositBase,
    DepositQuote,
    WithdrawBase,
    WithdrawQuote,
    Long,
    Short,
    DepositBaseAndLong,
    DepositQuoteAndShort,
    ClosePosition,
    Reinit,
    ReceivePosition,
    EmergencyWithdraw,
]


# ── Action → ExecuteParams ───────────────────────────────────────────────


def build_execute_params(
    action: Action, constants: MarginlyConstants = DEFAULT_CONSTANTS
) -> ExecuteParams:
    """
    Map an action onto the `execute` argument tuple.

    An omitted ``swap_calldata`` becomes ``constants.SWAP_CALLDATA_DEFAULT``
    here and nowhere else.

    Raises:
        TypeError: ``action`` is not one of the known action types.
        ValueError: ReceivePosition with a malformed address.
    """

    def args(call_type, amount1=0, amount2=0, limit_price_x96=0, flag=False,
             receive_position_address=constants.ZERO_ADDRESS, swap_calldata=None):
        if swap_calldata is None:
            swap_calldata = constants.SWAP_CALLDATA_DEFAULT
        return ExecuteArgs(
            call_type, amount1, amount2, limit_price_x96, bool(flag),
            receive_position_address, swap_calldata,
        )

    def params(execute_args: ExecuteArgs, value: int = 0) -> ExecuteParams:
        return ExecuteParams(constants.EXECUTE_METHOD, execute_args, value)

    if isinstance(action, DepositBase):
        return params(
            args(CallType.DEPOSIT_BASE, action.amount),
            action.amount if action.is_native_eth else 0,
        )
    if isinstance(action, DepositQuote):
        return params(
            args(CallType.DEPOSIT_QUOTE, action.amount),
            action.amount if action.is_native_eth else 0,
        )
    if isinstance(action, WithdrawBase):
        amount = constants.WITHDRAW_ALL if action.amount is None else action.amount
        return params(args(CallType.WITHDRAW_BASE, amount, flag=action.is_native_eth))
    if isinstance(action, WithdrawQuote):
        amount = constants.WITHDRAW_ALL if action.amount is None else action.amount
        return params(args(CallType.WITHDRAW_QUOTE, amount, flag=action.is_native_eth))
    if isinstance(action, Long):
        return params(args(
            CallType.LONG, action.amount,
            limit_price_x96=action.limit_price_x96, swap_calldata=action.swap_calldata,
        ))
    if isinstance(action, Short):
        return params(args(
            CallType.SHORT, action.amount,
            limit_price_x96=action.limit_price_x96, swap_calldata=action.swap_calldata,
        ))
    if isinstance(action, DepositBaseAndLong):
        return params(
            args(
                CallType.DEPOSIT_BASE, action.deposit_amount, action.long_amount,
                limit_price_x96=action.limit_price_x96, swap_calldata=action.swap_calldata,
            ),
            action.deposit_amount if action.is_native_eth else 0,
        )
    if isinstance(action, DepositQuoteAndShort):
        return params(
            args(
                CallType.DEPOSIT_QUOTE, action.deposit_amount, action.short_amount,
                limit_price_x96=action.limit_price_x96, flag=action.is_native_eth,
                swap_calldata=action.swap_calldata,
            ),
            action.deposit_amount if action.is_native_eth else 0,
        )
    if isinstance(action, ClosePosition):
        return params(args(
            CallType.CLOSE_POSITION,
            limit_price_x96=action.limit_price_x96, flag=action.is_native_eth,
            swap_calldata=action.swap_calldata,
        ))
    if isinstance(action, Reinit):
        return params(args(CallType.REINIT, flag=action.sync_balance))
    if isinstance(action, ReceivePosition):
        if not is_address(action.position_address):
            raise ValueError(f"Invalid position address: {action.position_address}")
        return params(args(
            CallType.RECEIVE_POSITION, action.deposit_amount_base, action.deposit_amount_quote,
            receive_position_address=action.position_address,
        ))
    if isinstance(action, EmergencyWithdraw):
        return params(args(CallType.EMERGENCY_WITHDRAW, flag=action.is_native_eth))

    raise TypeError(f"Unsupported Marginly action: {type(action).__name__}")


# ── Shortcuts ────────────────────────────────────────────────────────────


def deposit_base(deposit_amount: int, is_native_eth: bool = False) -> ExecuteParams:
    return build_execute_params(DepositBase(deposit_amount, is_native_eth))


def deposit_quote(deposit_amount: int, is_native_eth: bool = False) -> ExecuteParams:
    return build_execute_params(DepositQuote(deposit_amount, is_native_eth))


def withdraw_base(withdraw_amount: int, is_native_eth: bool = False) -> ExecuteParams:
    return build_execute_params(WithdrawBase(withdraw_amount, is_native_eth))


def withdraw_base_all(is_native_eth: bool = False) -> ExecuteParams:
    """Withdraw every base token of the signer's position."""
    return build_execute_params(WithdrawBase(None, is_native_eth))


def withdraw_quote(withdraw_amount: int, is_native_eth: bool = False) -> ExecuteParams:
    return build_execute_params(WithdrawQuote(withdraw_amount, is_native_eth))


def withdraw_quote_all(is_native_eth: bool = False) -> ExecuteParams:
    """Withdraw every quote token of the signer's position."""
    return build_execute_params(WithdrawQuote(None, is_native_eth))


def long(long_amount: int, limit_price_x96: int, swap_calldata: Optional[int] = None) -> ExecuteParams:
    return build_execute_params(Long(long_amount, limit_price_x96, swap_calldata))


def short(short_amount: int, limit_price_x96: int, swap_calldata: Optional[int] = None) -> ExecuteParams:
    return build_execute_params(Short(short_amount, limit_price_x96, swap_calldata))


def deposit_base_and_long(
    deposit_amount: int,
    long_amount: int,
    limit_price_x96: int,
    swap_calldata: Optional[int] = None,
    is_native_eth: bool = False,
) -> ExecuteParams:
    return build_execute_params(
        DepositBaseAndLong(deposit_amount, long_amount, limit_price_x96, swap_calldata, is_native_eth)
    )


def deposit_quote_and_short(
    deposit_amount: int,
    short_amount: int,
    limit_price_x96: int,
    swap_calldata: Optional[int] = None,
    is_native_eth: bool = False,
) -> ExecuteParams:
    return build_execute_params(
        DepositQuoteAndShort(deposit_amount, short_amount, limit_price_x96, swap_calldata, is_native_eth)
    )


def close_position(
    limit_price_x96: int, swap_calldata: Optional[int] = None, is_native_eth: bool = False
) -> ExecuteParams:
    return build_execute_params(ClosePosition(limit_price_x96, swap_calldata, is_native_eth))


def reinit() -> ExecuteParams:
    return build_execute_params(Reinit(sync_balance=False))


def reinit_with_balance_sync() -> ExecuteParams:
    return build_execute_params(Reinit(sync_balance=True))


def receive_position(
    position_address: str, deposit_amount_base: int, deposit_amount_quote: int
) -> ExecuteParams:
    return build_execute_params(
        ReceivePosition(position_address, deposit_amount_base, deposit_amount_quote)
    )


def emergency_withdraw(is_native_eth: bool = False) -> ExecuteParams:
    return build_execute_params(EmergencyWithdraw(is_native_eth))
