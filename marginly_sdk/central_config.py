"""
Project Configuration — Marginly constants, RPC endpoints, version
===================================================================

Named constants used by the encoders and the math kernel. They are grouped
into one frozen dataclass so an alternate set can be injected (e.g. test
fixtures) instead of patching module globals.

Source: MarginlyPool.sol `execute(uint8,uint256,uint256,uint256,bool,address,uint256)`
"""

import re
from dataclasses import dataclass
from importlib.metadata import version, PackageNotFoundError
from pathlib import Path
from types import MappingProxyType

# Version: pyproject.toml is the source of truth
try:
    PROJECT_VERSION = version("marginly-sdk")
except PackageNotFoundError:
    # Not installed (dev checkout): read pyproject.toml
    _toml = Path(__file__).resolve().parent.parent / "pyproject.toml"
    _m = (
        re.search(r'version\s*=\s*"([^"]+)"', _toml.read_text())
        if _toml.exists()
        else None
    )
    PROJECT_VERSION = _m.group(1) if _m else "0.0.0-dev"


@dataclass(frozen=True)
class MarginlyConstants:
    """Constants of the Marginly pool `execute` entry point."""

    # Name of main Marginly method
    EXECUTE_METHOD: str = "execute"
    EXECUTE_SIGNATURE: str = (
        "execute(uint8,uint256,uint256,uint256,bool,address,uint256)"
    )
    # First 4 bytes of keccak256(EXECUTE_SIGNATURE)
    EXECUTE_SELECTOR: str = "0xb07a6570"

    # X96 representation of 1
    FP96_ONE: int = 1 << 96

    ZERO_ADDRESS: str = "0x0000000000000000000000000000000000000000"

    # swapCalldata = 0 → contract routes the swap through its default DEX
    SWAP_CALLDATA_DEFAULT: int = 0

    # MaxUint256 in amount1 → contract withdraws the whole balance
    WITHDRAW_ALL: int = (1 << 256) - 1

    # Fraction digits kept when parsing human decimal strings
    MAX_DECIMALS: int = 18


DEFAULT_CONSTANTS = MarginlyConstants()


# Public JSON-RPC endpoints (1RPC relay, no API key).
# Docs: https://docs.1rpc.io/using-the-web3-api/networks
RPC_URLS = MappingProxyType(
    {
        "arbitrum": "https://1rpc.io/arb",
        "ethereum": "https://1rpc.io/eth",
        "polygon": "https://1rpc.io/matic",
        "base": "https://1rpc.io/base",
        "optimism": "https://1rpc.io/op",
        "bsc": "https://1rpc.io/bnb",
    }
)
