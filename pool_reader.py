#!/usr/bin/env python3
"""
On-Chain Pool Reader for Marginly
=================================

Reads the public view-state the math kernel needs directly from the
blockchain via public JSON-RPC. No web3.py dependency: uses httpx for raw
eth_call (see marginly_sdk.rpc_helpers).

Data Sources (per RPC call):
─────────────────────────────
1. MarginlyPool.{base,quote}{Collateral,Debt,Delev}Coeff()
   Returns: FP96 coefficient (one word each)
2. MarginlyPool.getBasePrice()
   Returns: FP96 base price in quote-unit per base-unit
3. MarginlyPool.params()
   Returns: maxLeverage (uint8, word 0), …
4. MarginlyPool.baseToken() / quoteToken() → ERC-20.decimals()
5. MarginlyPool.positions(address)
   Returns: _type, heapPosition, discountedBaseAmount, discountedQuoteAmount

Consistency:
  Every call of one snapshot is pinned to the same block number, so the
  coefficients, price and position balances describe one on-chain state.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

from marginly_position import MarginlyCoeffs, MarginlyPosition, PositionType
from marginly_sdk.central_config import RPC_URLS
from marginly_sdk.rpc_helpers import (
    SELECTORS,
    BlockTag,
    decode_address as _decode_address,
    decode_uint as _decode_uint,
    encode_address as _encode_address,
    eth_block_number as _eth_block_number,
    eth_call as _eth_call,
    eth_call_batch as _eth_call_batch,
    is_address,
)

_COEFF_VIEWS = (
    "baseCollateralCoeff",
    "quoteCollateralCoeff",
    "baseDebtCoeff",
    "quoteDebtCoeff",
    "baseDelevCoeff",
    "quoteDelevCoeff",
)


@dataclass(frozen=True)
class PoolSnapshot:
    """Everything the valuation model needs, read at one block."""

    block_number: int
    coeffs: MarginlyCoeffs
    base_price_x96: int
    max_leverage: int
    base_token: str
    quote_token: str
    base_decimals: int
    quote_decimals: int


class MarginlyPoolReader:
    """
    Reads Marginly pool state from the blockchain.

    Usage:
        reader = MarginlyPoolReader("0x…pool", "arbitrum")
        snapshot = await reader.read_snapshot()
        position = await reader.read_position("0x…owner", snapshot)
        position.calc_leverage(snapshot.base_price_x96)
    """

    def __init__(self, pool_address: str, network: str = "arbitrum", rpc_url: Optional[str] = None):
        if not is_address(pool_address):
            raise ValueError(f"Invalid pool address: {pool_address}")
        if rpc_url is None:
            if network not in RPC_URLS:
                raise ValueError(
                    f"Unsupported network: {network}. "
                    f"Available: {list(RPC_URLS.keys())}"
                )
            rpc_url = RPC_URLS[network]
        self.pool_address = pool_address
        self.network = network
        self.rpc_url = rpc_url

    async def _call_many(self, calls: List[Tuple[str, str]], block: BlockTag) -> List[str]:
        """Batch eth_call; falls back to sequential calls if batching is unsupported."""
        try:
            results = await _eth_call_batch(self.rpc_url, calls, block=block)
        except Exception:  # noqa: BLE001
            results = []

        if len(results) != len(calls) or not all(results):
            results = [await _eth_call(self.rpc_url, to, data, block=block) for to, data in calls]
        return results

    async def read_snapshot(self, block: Optional[int] = None) -> PoolSnapshot:
        """
        Read coefficients, base price, max leverage and token decimals.

        Args:
            block: Block number to read at. Defaults to the latest block,
                   which is then pinned for every call of the snapshot.

        Raises:
            RuntimeError: the node returned an error or an empty result.
        """
        if block is None:
            block = await _eth_block_number(self.rpc_url)

        print(f"  📊 Reading Marginly pool {self.pool_address[:10]}… at block {block}...")

        pool = self.pool_address
        calls = [(pool, SELECTORS[name]) for name in _COEFF_VIEWS]
        calls += [
            (pool, SELECTORS["getBasePrice"]),
            (pool, SELECTORS["params"]),
            (pool, SELECTORS["baseToken"]),
            (pool, SELECTORS["quoteToken"]),
        ]
        results = await self._call_many(calls, block)

        coeffs = MarginlyCoeffs(*(_decode_uint(r, 0) for r in results[:6]))
        base_price_x96 = _decode_uint(results[6], 0)
        max_leverage = _decode_uint(results[7], 0)
        base_token = _decode_address(results[8], 0)
        quote_token = _decode_address(results[9], 0)

        decimals = await self._call_many(
            [(base_token, SELECTORS["decimals"]), (quote_token, SELECTORS["decimals"])],
            block,
        )

        return PoolSnapshot(
            block_number=block,
            coeffs=coeffs,
            base_price_x96=base_price_x96,
            max_leverage=max_leverage,
            base_token=base_token,
            quote_token=quote_token,
            base_decimals=_decode_uint(decimals[0], 0),
            quote_decimals=_decode_uint(decimals[1], 0),
        )

    async def read_raw_position(self, owner: str, block: BlockTag = "latest") -> Tuple[PositionType, int, int, int]:
        """positions(owner) → (type, heapPosition, discountedBase, discountedQuote)."""
        if not is_address(owner):
            raise ValueError(f"Invalid owner address: {owner}")
        data = SELECTORS["positions"] + _encode_address(owner)
        raw = await _eth_call(self.rpc_url, self.pool_address, data, block=block)
        return (
            PositionType(_decode_uint(raw, 0)),
            _decode_uint(raw, 1),
            _decode_uint(raw, 2),
            _decode_uint(raw, 3),
        )

    async def read_position(self, owner: str, snapshot: PoolSnapshot) -> MarginlyPosition:
        """Read ``owner``'s position at the snapshot's block and value it."""
        print(f"  📖 Reading position of {owner[:10]}…")
        position_type, heap_position, db, dq = await self.read_raw_position(
            owner, block=snapshot.block_number
        )
        position = MarginlyPosition.from_discounted(
            snapshot.coeffs, position_type, db, dq, heap_position=heap_position
        )
        if position.type == PositionType.UNINITIALIZED:
            print("  ⚠️  Position is uninitialized")
        return position
