"""
Calldata Builder — ABI serialization of Marginly `execute`
===========================================================

Layout (static types only, so no offsets / tail section):

  0x b07a6570                               selector
     word 0   uint8    call type (0–9)
     word 1   uint256  amount1
     word 2   uint256  amount2
     word 3   uint256  limitPriceX96
     word 4   bool     flag
     word 5   address  receivePositionAddress (left-padded)
     word 6   uint256  swapCalldata

Ref: https://docs.soliditylang.org/en/latest/abi-spec.html#formal-specification-of-the-encoding
"""

from typing import Any, Dict, Union

from marginly_execute import CallType, ExecuteArgs, ExecuteParams
from marginly_sdk.central_config import DEFAULT_CONSTANTS
from marginly_sdk.rpc_helpers import (
    ABI_WORD_HEX,
    SELECTOR_HEX,
    decode_address,
    decode_uint,
    encode_address,
    encode_bool,
    encode_uint8,
    encode_uint256,
    is_address,
)

EXECUTE_SELECTOR = DEFAULT_CONSTANTS.EXECUTE_SELECTOR
EXECUTE_ARG_WORDS = 7


def encode_execute_calldata_hex(args: ExecuteArgs, selector: str = EXECUTE_SELECTOR) -> str:
    """``0x``-prefixed calldata for `execute(...)`, as used in JSON-RPC ``data``."""
    words = [
        encode_uint8(int(args.call_type)),
        encode_uint256(args.amount1),
        encode_uint256(args.amount2),
        encode_uint256(args.limit_price_x96),
        encode_bool(args.flag),
        encode_address(args.receive_position_address),
        encode_uint256(args.swap_calldata),
    ]
    return selector + "".join(words)


def encode_execute_calldata(args: ExecuteArgs, selector: str = EXECUTE_SELECTOR) -> bytes:
    """Raw calldata bytes: 4-byte selector followed by seven 32-byte words."""
    return bytes.fromhex(encode_execute_calldata_hex(args, selector)[2:])


def decode_execute_calldata(data: Union[bytes, str], selector: str = EXECUTE_SELECTOR) -> ExecuteArgs:
    """
    Inverse of :func:`encode_execute_calldata`.

    Raises:
        ValueError: wrong selector, wrong length, or a word that is not a
            valid value for its field.
    """
    hex_data = data.hex() if isinstance(data, (bytes, bytearray)) else data.lower().removeprefix("0x")
    if not hex_data.startswith(selector[2:].lower()):
        raise ValueError(f"Not an execute() call: selector 0x{hex_data[:SELECTOR_HEX]}")
    body = hex_data[SELECTOR_HEX:]
    if len(body) != EXECUTE_ARG_WORDS * ABI_WORD_HEX:
        raise ValueError(f"execute() calldata must carry {EXECUTE_ARG_WORDS} words")

    flag = decode_uint(body, 4)
    if flag > 1:
        raise ValueError(f"Invalid bool word: {flag}")

    return ExecuteArgs(
        call_type=CallType(decode_uint(body, 0)),
        amount1=decode_uint(body, 1),
        amount2=decode_uint(body, 2),
        limit_price_x96=decode_uint(body, 3),
        flag=bool(flag),
        receive_position_address=decode_address(body, 5),
        swap_calldata=decode_uint(body, 6),
    )


def build_transaction(pool_address: str, params: ExecuteParams) -> Dict[str, Any]:
    """
    Unsigned transaction fields for a submission client.

    Nonce, gas and signing are left to the caller.
    """
    if not is_address(pool_address):
        raise ValueError(f"Invalid pool address: {pool_address}")
    return {
        "to": pool_address,
        "data": encode_execute_calldata_hex(params.args),
        "value": params.value,
    }
