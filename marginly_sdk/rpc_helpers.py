#!/usr/bin/env python3
"""
RPC Helpers — Shared ABI Encoding/Decoding and JSON-RPC Client
===============================================================

Low-level EVM primitives used by the calldata builder and pool_reader.py:

  • ABI encoding/decoding (uint256, uint8, bool, address)
  • JSON-RPC client (eth_call, eth_call_batch, eth_blockNumber)
  • Named constants for ABI word sizes and selectors

All constants reference the Ethereum ABI specification:
  https://docs.soliditylang.org/en/latest/abi-spec.html

Terminology:
  • Word:  32 bytes = 256 bits = 64 hex characters
  • Slot:  Position of a 32-byte word in an ABI response
  • Block: "latest" or an integer block number used to pin reads
"""

import re

import httpx
from typing import List, Tuple, Union

from marginly_sdk.errors import ValueOutOfRange

# ── ABI Word Constants ──────────────────────────────────────────────────
# Ethereum ABI spec: https://docs.soliditylang.org/en/latest/abi-spec.html

ABI_WORD_BYTES = 32          # 1 ABI word = 32 bytes
ABI_WORD_HEX = 64            # 32 bytes × 2 hex chars = 64 hex characters
SELECTOR_HEX = 8             # 4-byte selector = 8 hex characters
ADDRESS_HEX = 40              # 20 bytes × 2 = 40 hex characters
ADDRESS_PAD_HEX = 24          # Left padding in a 32-byte slot = 64 - 40 = 24 hex chars
UINT8_MAX = (1 << 8) - 1
UINT256_MAX = (1 << 256) - 1

_ADDRESS_RE = re.compile(r"0x[0-9a-fA-F]{40}")

BlockTag = Union[int, str]


# ── ABI Function Selectors ──────────────────────────────────────────────
# First 4 bytes of keccak256(function_signature).

SELECTORS: dict[str, str] = {
    # MarginlyPool dispatch
    "execute":                "0xb07a6570",  # execute(uint8,uint256,uint256,uint256,bool,address,uint256)

    # MarginlyPool (read-only state)
    "positions":              "0x55f57510",  # positions(address)
    "baseCollateralCoeff":    "0x5b87ac0c",  # baseCollateralCoeff()
    "quoteCollateralCoeff":   "0x94ad0c48",  # quoteCollateralCoeff()
    "baseDebtCoeff":          "0xaf734b39",  # baseDebtCoeff()
    "quoteDebtCoeff":         "0x07cc1935",  # quoteDebtCoeff()
    "baseDelevCoeff":         "0x3d9c02ed",  # baseDelevCoeff()
    "quoteDelevCoeff":        "0x41164124",  # quoteDelevCoeff()
    "getBasePrice":           "0xb49f4afd",  # getBasePrice()
    "params":                 "0xcff0ab96",  # params()
    "baseToken":              "0xc55dae63",  # baseToken()
    "quoteToken":             "0x217a4b70",  # quoteToken()

    # ERC-20 metadata
    "decimals":               "0x313ce567",  # decimals()
}


def is_address(addr: str) -> bool:
    """True for a 0x-prefixed 20-byte hex address (checksum not verified)."""
    return isinstance(addr, str) and _ADDRESS_RE.fullmatch(addr) is not None


# ── ABI Encoding ────────────────────────────────────────────────────────

def encode_uint256(value: int) -> str:
    """ABI-encode a uint256 as 32-byte hex (no 0x prefix).

    >>> encode_uint256(1)
    '0000000000000000000000000000000000000000000000000000000000000001'

    Raises:
        ValueOutOfRange: value is negative or wider than 256 bits.
    """
    if value < 0 or value > UINT256_MAX:
        raise ValueOutOfRange(f"uint256 out of range: {value}")
    return format(value, f'0{ABI_WORD_HEX}x')


def encode_uint8(value: int) -> str:
    """ABI-encode a uint8 (enum) left-padded to 32 bytes."""
    if value < 0 or value > UINT8_MAX:
        raise ValueOutOfRange(f"uint8 out of range: {value}")
    return format(value, f'0{ABI_WORD_HEX}x')


def encode_bool(flag: bool) -> str:
    """ABI-encode a bool as a 0/1 word."""
    return encode_uint256(1 if flag else 0)


def encode_address(addr: str) -> str:
    """ABI-encode an address as 32 bytes (left-padded, no 0x prefix).

    >>> encode_address('0xC36442b4a4522E871399CD717aBDD847Ab11FE88')
    '000000000000000000000000c36442b4a4522e871399cd717abdd847ab11fe88'
    """
    if not is_address(addr):
        raise ValueError(f"Invalid address: {addr}")
    return addr[2:].lower().zfill(ABI_WORD_HEX)


# ── ABI Decoding ────────────────────────────────────────────────────────

def decode_uint(hex_data: str, slot: int = 0) -> int:
    """Decode uint256 from ABI response at 32-byte slot offset.

    Args:
        hex_data: Hex string (without 0x prefix).
        slot: Which 32-byte word to read (0-indexed).
    """
    start = slot * ABI_WORD_HEX
    word = hex_data[start:start + ABI_WORD_HEX]
    if len(word) != ABI_WORD_HEX:
        raise ValueError(f"ABI response too short for slot {slot}")
    return int(word, 16)


def decode_bool(hex_data: str, slot: int = 0) -> bool:
    """Decode bool (non-zero word) from ABI response."""
    return decode_uint(hex_data, slot) != 0


def decode_address(hex_data: str, slot: int = 0) -> str:
    """Decode address (last 20 bytes of 32-byte slot).

    Args:
        hex_data: Hex string (without 0x prefix).
        slot: Which 32-byte word to read (0-indexed).
    """
    start = slot * ABI_WORD_HEX
    return "0x" + hex_data[start + ADDRESS_PAD_HEX:start + ABI_WORD_HEX]


def _block_param(block: BlockTag) -> str:
    """JSON-RPC block parameter: ints become hex quantities."""
    if isinstance(block, int):
        return hex(block)
    return block


# ── JSON-RPC Client ─────────────────────────────────────────────────────

async def eth_call(
    rpc_url: str, to: str, data: str, block: BlockTag = "latest", timeout: int = 20
) -> str:
    """
    Execute eth_call on an EVM node.

    Args:
        rpc_url: JSON-RPC endpoint URL (e.g. https://1rpc.io/arb)
        to: Contract address (0x...)
        data: ABI-encoded calldata (0x + selector + params)
        block: "latest" or a pinned block number
        timeout: HTTP timeout in seconds

    Returns:
        Hex response string (without 0x prefix).

    Raises:
        RuntimeError: If RPC returns an error or empty response.
    """
    payload = {
        "jsonrpc": "2.0",
        "id": 1,
        "method": "eth_call",
        "params": [{"to": to, "data": data}, _block_param(block)],
    }
    async with httpx.AsyncClient(timeout=timeout) as client:
        resp = await client.post(rpc_url, json=payload)
        result = resp.json()
        if "error" in result:
            raise RuntimeError(f"RPC error: {result['error'].get('message', result['error'])}")
        raw = result.get("result", "0x")
        if raw == "0x" or len(raw) < 4:
            raise RuntimeError("Empty response — contract may not exist at this address")
        return raw[2:]  # strip 0x prefix


async def eth_call_batch(
    rpc_url: str,
    calls: List[Tuple[str, str]],
    block: BlockTag = "latest",
    timeout: int = 20,
) -> List[str]:
    """
    Batch multiple eth_call requests into a single HTTP request.

    Args:
        rpc_url: JSON-RPC endpoint URL
        calls: List of (contract_address, calldata) tuples
        block: "latest" or a pinned block number (same for every call)
        timeout: HTTP timeout in seconds

    Returns:
        List of hex result strings (without 0x prefix), in same order as calls.
        A failed entry comes back as "".
    """
    block_param = _block_param(block)
    payloads = []
    for i, (to, data) in enumerate(calls):
        payloads.append({
            "jsonrpc": "2.0",
            "id": i + 1,
            "method": "eth_call",
            "params": [{"to": to, "data": data}, block_param],
        })

    async with httpx.AsyncClient(timeout=timeout) as client:
        resp = await client.post(rpc_url, json=payloads)
        results = resp.json()

    # Sort by id and extract results
    if isinstance(results, list):
        results.sort(key=lambda r: r.get("id", 0))
        return [r.get("result", "0x")[2:] if "result" in r else "" for r in results]
    else:
        # Single result (some RPCs don't support batch)
        return [results.get("result", "0x")[2:]]


async def eth_block_number(rpc_url: str, timeout: int = 10) -> int:
    """
    Get the latest block number from an EVM node.

    Args:
        rpc_url: JSON-RPC endpoint URL
        timeout: HTTP timeout in seconds

    Returns:
        Latest block number as integer.
    """
    payload = {
        "jsonrpc": "2.0",
        "id": 1,
        "method": "eth_blockNumber",
        "params": [],
    }
    async with httpx.AsyncClient(timeout=timeout) as client:
        resp = await client.post(rpc_url, json=payload)
        result = resp.json()
        if "error" in result:
            raise RuntimeError(f"RPC error: {result['error']}")
        return int(result["result"], 16)
