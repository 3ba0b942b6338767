"""
Unit Tests for Marginly SDK Modules
===================================

Covers:
  - central_config.py      (constants, version)
  - rpc_helpers.py         (ABI encoding/decoding, JSON-RPC client)
  - marginly_execute.py    (action → execute parameters)
  - calldata.py            (execute() ABI serialization)
  - pool_reader.py         (snapshot + position reads)

All tests are offline — no network calls. Mock-based where needed.
"""

import asyncio
import dataclasses
import re
from pathlib import Path
from unittest.mock import patch, MagicMock, AsyncMock

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent

# ═══════════════════════════════════════════════════════════════════════════
# 1. central_config.py
# ═══════════════════════════════════════════════════════════════════════════

from marginly_sdk.central_config import (
    DEFAULT_CONSTANTS,
    PROJECT_VERSION,
    RPC_URLS,
    MarginlyConstants,
)


class TestConstants:
    def test_fp96_one(self):
        assert DEFAULT_CONSTANTS.FP96_ONE == 1 << 96

    def test_withdraw_all_is_max_uint256(self):
        assert DEFAULT_CONSTANTS.WITHDRAW_ALL == 2 ** 256 - 1

    def test_swap_calldata_default(self):
        assert DEFAULT_CONSTANTS.SWAP_CALLDATA_DEFAULT == 0

    def test_execute_method(self):
        assert DEFAULT_CONSTANTS.EXECUTE_METHOD == "execute"
        assert DEFAULT_CONSTANTS.EXECUTE_SELECTOR == "0xb07a6570"

    def test_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            DEFAULT_CONSTANTS.FP96_ONE = 1

    def test_rpc_urls_immutable(self):
        with pytest.raises(TypeError):
            RPC_URLS["arbitrum"] = "http://evil"

    def test_version_matches_pyproject(self):
        toml = (PROJECT_ROOT / "pyproject.toml").read_text()
        m = re.search(r'version\s*=\s*"([^"]+)"', toml)
        assert m is not None
        assert PROJECT_VERSION == m.group(1)


# ═══════════════════════════════════════════════════════════════════════════
# 2. rpc_helpers.py
# ═══════════════════════════════════════════════════════════════════════════

from marginly_sdk.errors import ValueOutOfRange
from marginly_sdk.rpc_helpers import (
    SELECTORS,
    UINT256_MAX,
    decode_address,
    decode_bool,
    decode_uint,
    encode_address,
    encode_bool,
    encode_uint8,
    encode_uint256,
    eth_block_number,
    eth_call,
    eth_call_batch,
    is_address,
)


class TestSelectors:
    def test_all_are_4_bytes(self):
        for name, sel in SELECTORS.items():
            assert re.fullmatch(r"0x[0-9a-f]{8}", sel), name

    def test_unique(self):
        assert len(set(SELECTORS.values())) == len(SELECTORS)

    def test_execute_matches_config(self):
        assert SELECTORS["execute"] == DEFAULT_CONSTANTS.EXECUTE_SELECTOR


class TestEncodeUint256:
    def test_one(self):
        assert encode_uint256(1) == "0" * 63 + "1"

    def test_max(self):
        assert encode_uint256(UINT256_MAX) == "f" * 64

    def test_overflow_raises(self):
        with pytest.raises(ValueOutOfRange):
            encode_uint256(UINT256_MAX + 1)

    def test_negative_raises(self):
        with pytest.raises(ValueOutOfRange):
            encode_uint256(-1)


class TestEncodeSmallTypes:
    def test_uint8(self):
        assert encode_uint8(9) == "0" * 63 + "9"

    def test_uint8_overflow(self):
        with pytest.raises(ValueOutOfRange):
            encode_uint8(256)

    def test_bool(self):
        assert encode_bool(True) == "0" * 63 + "1"
        assert encode_bool(False) == "0" * 64


class TestEncodeAddress:
    def test_standard(self):
        result = encode_address("0xC36442b4a4522E871399CD717aBDD847Ab11FE88")
        assert result == "0" * 24 + "c36442b4a4522e871399cd717abdd847ab11fe88"

    @pytest.mark.parametrize("bad", ["0x123", "c36442b4a4522e871399cd717abdd847ab11fe88", "0x" + "g" * 40, ""])
    def test_invalid_raises(self, bad):
        assert is_address(bad) is False
        with pytest.raises(ValueError):
            encode_address(bad)


class TestDecode:
    def test_uint_slots(self):
        hex_data = "0" * 64 + "0" * 63 + "a"
        assert decode_uint(hex_data, 0) == 0
        assert decode_uint(hex_data, 1) == 10

    def test_uint_short_raises(self):
        with pytest.raises(ValueError):
            decode_uint("0" * 64, 1)

    def test_bool(self):
        assert decode_bool("0" * 63 + "1") is True
        assert decode_bool("0" * 64) is False

    def test_address(self):
        inner = "abcdef1234567890abcdef1234567890abcdef12"
        assert decode_address("0" * 24 + inner, 0) == "0x" + inner


def _mock_client(json_value):
    """Patch target for httpx.AsyncClient returning ``json_value`` from post()."""
    mock_response = MagicMock()
    mock_response.json.return_value = json_value
    mock_client = AsyncMock()
    mock_client.post.return_value = mock_response
    return mock_client


class TestEthCallMocked:
    """Test eth_call with mocked httpx responses."""

    def test_successful_call(self):
        mock_client = _mock_client({"jsonrpc": "2.0", "id": 1, "result": "0x" + "0" * 63 + "1"})

        with patch("marginly_sdk.rpc_helpers.httpx.AsyncClient") as MockClient:
            MockClient.return_value.__aenter__ = AsyncMock(return_value=mock_client)
            MockClient.return_value.__aexit__ = AsyncMock(return_value=False)

            result = asyncio.run(eth_call("http://fake", "0xAddr", "0xData"))
            assert result == "0" * 63 + "1"
            payload = mock_client.post.call_args.kwargs["json"]
            assert payload["params"][1] == "latest"

    def test_pinned_block_is_hex(self):
        mock_client = _mock_client({"jsonrpc": "2.0", "id": 1, "result": "0x" + "0" * 64})

        with patch("marginly_sdk.rpc_helpers.httpx.AsyncClient") as MockClient:
            MockClient.return_value.__aenter__ = AsyncMock(return_value=mock_client)
            MockClient.return_value.__aexit__ = AsyncMock(return_value=False)

            asyncio.run(eth_call("http://fake", "0xAddr", "0xData", block=16))
            payload = mock_client.post.call_args.kwargs["json"]
            assert payload["params"][1] == "0x10"

    def test_rpc_error_raises(self):
        mock_client = _mock_client({"jsonrpc": "2.0", "id": 1, "error": {"message": "execution reverted"}})

        with patch("marginly_sdk.rpc_helpers.httpx.AsyncClient") as MockClient:
            MockClient.return_value.__aenter__ = AsyncMock(return_value=mock_client)
            MockClient.return_value.__aexit__ = AsyncMock(return_value=False)

            with pytest.raises(RuntimeError, match="RPC error"):
                asyncio.run(eth_call("http://fake", "0xAddr", "0xData"))

    def test_empty_response_raises(self):
        mock_client = _mock_client({"jsonrpc": "2.0", "id": 1, "result": "0x"})

        with patch("marginly_sdk.rpc_helpers.httpx.AsyncClient") as MockClient:
            MockClient.return_value.__aenter__ = AsyncMock(return_value=mock_client)
            MockClient.return_value.__aexit__ = AsyncMock(return_value=False)

            with pytest.raises(RuntimeError, match="Empty response"):
                asyncio.run(eth_call("http://fake", "0xAddr", "0xData"))


class TestEthCallBatchMocked:
    def test_batch_response_sorted(self):
        mock_client = _mock_client([
            {"jsonrpc": "2.0", "id": 2, "result": "0x" + "0" * 63 + "2"},
            {"jsonrpc": "2.0", "id": 1, "result": "0x" + "0" * 63 + "1"},
        ])

        with patch("marginly_sdk.rpc_helpers.httpx.AsyncClient") as MockClient:
            MockClient.return_value.__aenter__ = AsyncMock(return_value=mock_client)
            MockClient.return_value.__aexit__ = AsyncMock(return_value=False)

            results = asyncio.run(
                eth_call_batch("http://fake", [("0xA", "0xD1"), ("0xB", "0xD2")], block=255)
            )
            assert results[0] == "0" * 63 + "1"
            assert results[1] == "0" * 63 + "2"
            payloads = mock_client.post.call_args.kwargs["json"]
            assert all(p["params"][1] == "0xff" for p in payloads)

    def test_failed_entry_is_empty(self):
        mock_client = _mock_client([
            {"jsonrpc": "2.0", "id": 1, "error": {"message": "reverted"}},
        ])

        with patch("marginly_sdk.rpc_helpers.httpx.AsyncClient") as MockClient:
            MockClient.return_value.__aenter__ = AsyncMock(return_value=mock_client)
            MockClient.return_value.__aexit__ = AsyncMock(return_value=False)

            assert asyncio.run(eth_call_batch("http://fake", [("0xA", "0xD")])) == [""]


class TestEthBlockNumberMocked:
    def test_successful(self):
        mock_client = _mock_client({"jsonrpc": "2.0", "id": 1, "result": "0x1a2b3c"})

        with patch("marginly_sdk.rpc_helpers.httpx.AsyncClient") as MockClient:
            MockClient.return_value.__aenter__ = AsyncMock(return_value=mock_client)
            MockClient.return_value.__aexit__ = AsyncMock(return_value=False)

            assert asyncio.run(eth_block_number("http://fake")) == 0x1a2b3c


# ═══════════════════════════════════════════════════════════════════════════
# 3. marginly_execute.py
# ═══════════════════════════════════════════════════════════════════════════

import marginly_execute as mx
from marginly_execute import CallType, ExecuteArgs, build_execute_params

ZERO_ADDRESS = DEFAULT_CONSTANTS.ZERO_ADDRESS
OTHER_ADDRESS = "0x1111111111111111111111111111111111111111"


class TestCallTypeWireValues:
    def test_values(self):
        assert [int(c) for c in CallType] == list(range(10))
        assert CallType.CLOSE_POSITION == 6
        assert CallType.EMERGENCY_WITHDRAW == 9


class TestActionCallTypes:
    @pytest.mark.parametrize("params,expected", [
        (mx.deposit_base(1), CallType.DEPOSIT_BASE),
        (mx.deposit_quote(1), CallType.DEPOSIT_QUOTE),
        (mx.withdraw_base(1), CallType.WITHDRAW_BASE),
        (mx.withdraw_base_all(), CallType.WITHDRAW_BASE),
        (mx.withdraw_quote(1), CallType.WITHDRAW_QUOTE),
        (mx.withdraw_quote_all(), CallType.WITHDRAW_QUOTE),
        (mx.long(1, 2), CallType.LONG),
        (mx.short(1, 2), CallType.SHORT),
        (mx.deposit_base_and_long(1, 2, 3), CallType.DEPOSIT_BASE),
        (mx.deposit_quote_and_short(1, 2, 3), CallType.DEPOSIT_QUOTE),
        (mx.close_position(3), CallType.CLOSE_POSITION),
        (mx.reinit(), CallType.REINIT),
        (mx.reinit_with_balance_sync(), CallType.REINIT),
        (mx.receive_position(OTHER_ADDRESS, 1, 2), CallType.RECEIVE_POSITION),
        (mx.emergency_withdraw(), CallType.EMERGENCY_WITHDRAW),
    ])
    def test_call_type(self, params, expected):
        assert params.method_name == "execute"
        assert params.args.call_type == expected
        assert isinstance(params.args, ExecuteArgs)


class TestNativeValue:
    def test_deposit_native(self):
        assert mx.deposit_base(500, is_native_eth=True).value == 500
        assert mx.deposit_quote(700, is_native_eth=True).value == 700

    def test_deposit_token(self):
        assert mx.deposit_base(500).value == 0
        assert mx.deposit_quote(700, is_native_eth=False).value == 0

    def test_deposit_and_trade_native(self):
        assert mx.deposit_base_and_long(5, 10, 3, is_native_eth=True).value == 5
        assert mx.deposit_quote_and_short(5, 10, 3, is_native_eth=True).value == 5

    @pytest.mark.parametrize("params", [
        mx.withdraw_base(1, is_native_eth=True),
        mx.withdraw_quote_all(is_native_eth=True),
        mx.close_position(3, is_native_eth=True),
        mx.emergency_withdraw(is_native_eth=True),
    ])
    def test_non_deposit_never_attaches_value(self, params):
        assert params.value == 0


class TestEncodingRules:
    def test_deposit(self):
        assert mx.deposit_base(1000).args == ExecuteArgs(
            CallType.DEPOSIT_BASE, 1000, 0, 0, False, ZERO_ADDRESS, 0
        )

    def test_withdraw_all_sentinel(self):
        assert mx.withdraw_base_all().args.amount1 == 2 ** 256 - 1
        assert mx.withdraw_quote_all().args.amount1 == 2 ** 256 - 1

    def test_withdraw_exact_with_unwrap(self):
        args = mx.withdraw_quote(42, is_native_eth=True).args
        assert args.amount1 == 42
        assert args.flag is True

    def test_long_defaults_swap_calldata(self):
        args = mx.long(10, 2000).args
        assert args == ExecuteArgs(CallType.LONG, 10, 0, 2000, False, ZERO_ADDRESS, 0)

    def test_short_passes_swap_calldata(self):
        assert mx.short(10, 2000, swap_calldata=12345).args.swap_calldata == 12345

    def test_deposit_and_trade_amounts(self):
        args = mx.deposit_quote_and_short(100, 7, 1990).args
        assert (args.amount1, args.amount2, args.limit_price_x96) == (100, 7, 1990)

    def test_close_position_zeroes_amounts(self):
        args = mx.close_position(1980, swap_calldata=9).args
        assert (args.amount1, args.amount2) == (0, 0)
        assert args.limit_price_x96 == 1980
        assert args.swap_calldata == 9

    def test_reinit_flag(self):
        assert mx.reinit().args == ExecuteArgs(CallType.REINIT, 0, 0, 0, False, ZERO_ADDRESS, 0)
        assert mx.reinit_with_balance_sync().args.flag is True

    def test_receive_position(self):
        args = mx.receive_position(OTHER_ADDRESS, 3, 4).args
        assert args.receive_position_address == OTHER_ADDRESS
        assert (args.amount1, args.amount2) == (3, 4)

    def test_receive_position_bad_address(self):
        with pytest.raises(ValueError, match="Invalid position address"):
            mx.receive_position("0xnotanaddress", 1, 1)

    def test_emergency_withdraw(self):
        args = mx.emergency_withdraw(is_native_eth=True).args
        assert args == ExecuteArgs(CallType.EMERGENCY_WITHDRAW, 0, 0, 0, True, ZERO_ADDRESS, 0)

    def test_unknown_action_raises(self):
        with pytest.raises(TypeError, match="Unsupported"):
            build_execute_params(object())

    def test_injected_constants(self):
        constants = MarginlyConstants(SWAP_CALLDATA_DEFAULT=42, WITHDRAW_ALL=99)
        assert build_execute_params(mx.Long(1, 2), constants).args.swap_calldata == 42
        assert build_execute_params(mx.WithdrawBase(), constants).args.amount1 == 99


# ═══════════════════════════════════════════════════════════════════════════
# 4. calldata.py
# ═══════════════════════════════════════════════════════════════════════════

from marginly_sdk.calldata import (
    build_transaction,
    decode_execute_calldata,
    encode_execute_calldata,
    encode_execute_calldata_hex,
)

POOL_ADDRESS = "0x2222222222222222222222222222222222222222"


def _word(value: int) -> str:
    return format(value, "064x")


class TestExecuteCalldata:
    def test_layout(self):
        data = encode_execute_calldata(mx.deposit_base(1000).args)
        assert len(data) == 4 + 7 * 32
        assert data[:4].hex() == "b07a6570"
        expected = "b07a6570" + _word(0) + _word(1000) + _word(0) * 3 + "0" * 64 + _word(0)
        assert data.hex() == expected

    def test_hex_prefixed(self):
        hex_data = encode_execute_calldata_hex(mx.reinit_with_balance_sync().args)
        assert hex_data.startswith("0xb07a6570")
        assert hex_data[2 + 8 + 4 * 64:2 + 8 + 5 * 64] == _word(1)

    def test_address_word(self):
        data = encode_execute_calldata(mx.receive_position(OTHER_ADDRESS, 1, 2).args)
        assert data[4 + 5 * 32:4 + 6 * 32].hex() == "0" * 24 + "11" * 20

    def test_deterministic(self):
        args = mx.long(10, 2000, 5).args
        assert encode_execute_calldata(args) == encode_execute_calldata(args)

    @pytest.mark.parametrize("field,value", [
        ("call_type", CallType.SHORT),
        ("amount1", 11),
        ("amount2", 1),
        ("limit_price_x96", 2001),
        ("flag", True),
        ("receive_position_address", OTHER_ADDRESS),
        ("swap_calldata", 6),
    ])
    def test_any_field_changes_output(self, field, value):
        args = mx.long(10, 2000, 5).args
        changed = args._replace(**{field: value})
        assert encode_execute_calldata(changed) != encode_execute_calldata(args)

    def test_decode_inverts_encode(self):
        args = mx.receive_position(OTHER_ADDRESS, 3, 4).args
        assert decode_execute_calldata(encode_execute_calldata(args)) == args
        assert decode_execute_calldata(encode_execute_calldata_hex(args)) == args

    def test_decode_wrong_selector(self):
        with pytest.raises(ValueError, match="Not an execute"):
            decode_execute_calldata("0xdeadbeef" + "0" * 64 * 7)

    def test_decode_wrong_length(self):
        with pytest.raises(ValueError, match="7 words"):
            decode_execute_calldata("0xb07a6570" + "0" * 64)

    def test_amount_overflow_raises(self):
        args = mx.long(2 ** 256, 1).args
        with pytest.raises(ValueOutOfRange):
            encode_execute_calldata(args)

    def test_build_transaction(self):
        tx = build_transaction(POOL_ADDRESS, mx.deposit_quote(5, is_native_eth=True))
        assert tx["to"] == POOL_ADDRESS
        assert tx["value"] == 5
        assert tx["data"].startswith("0xb07a6570")

    def test_build_transaction_bad_pool(self):
        with pytest.raises(ValueError):
            build_transaction("0x12", mx.reinit())


# ═══════════════════════════════════════════════════════════════════════════
# 5. pool_reader.py
# ═══════════════════════════════════════════════════════════════════════════

from marginly_math import FP96_ONE
from marginly_position import PositionType
from pool_reader import MarginlyPoolReader

BASE_TOKEN = "0x" + "aa" * 20
QUOTE_TOKEN = "0x" + "bb" * 20
OWNER = "0x" + "cc" * 20


def _snapshot_batch():
    return [
        _word(FP96_ONE),          # baseCollateralCoeff
        _word(FP96_ONE),          # quoteCollateralCoeff
        _word(FP96_ONE),          # baseDebtCoeff
        _word(FP96_ONE),          # quoteDebtCoeff
        _word(0),                 # baseDelevCoeff
        _word(0),                 # quoteDelevCoeff
        _word(FP96_ONE * 1000),   # getBasePrice
        _word(20) + _word(1800),  # params: maxLeverage, priceSecondsAgo, …
        encode_address(BASE_TOKEN),
        encode_address(QUOTE_TOKEN),
    ]


class TestPoolReaderInit:
    def test_unsupported_network(self):
        with pytest.raises(ValueError, match="Unsupported network"):
            MarginlyPoolReader(POOL_ADDRESS, "fakenet")

    def test_invalid_pool(self):
        with pytest.raises(ValueError, match="Invalid pool address"):
            MarginlyPoolReader("0x123")

    def test_explicit_rpc_url(self):
        reader = MarginlyPoolReader(POOL_ADDRESS, "anything", rpc_url="http://node")
        assert reader.rpc_url == "http://node"

    def test_default_network(self):
        assert MarginlyPoolReader(POOL_ADDRESS).rpc_url == RPC_URLS["arbitrum"]


class TestPoolReaderMocked:
    def test_read_snapshot(self):
        reader = MarginlyPoolReader(POOL_ADDRESS)
        batch = AsyncMock(side_effect=[_snapshot_batch(), [_word(18), _word(6)]])

        with patch("pool_reader._eth_block_number", AsyncMock(return_value=123)), \
             patch("pool_reader._eth_call_batch", batch):
            snapshot = asyncio.run(reader.read_snapshot())

        assert snapshot.block_number == 123
        assert snapshot.coeffs.base_collateral_coeff == FP96_ONE
        assert snapshot.coeffs.quote_delev_coeff == 0
        assert snapshot.base_price_x96 == FP96_ONE * 1000
        assert snapshot.max_leverage == 20
        assert snapshot.base_token == BASE_TOKEN
        assert snapshot.quote_token == QUOTE_TOKEN
        assert (snapshot.base_decimals, snapshot.quote_decimals) == (18, 6)
        # every call pinned to the same block
        assert all(c.kwargs["block"] == 123 for c in batch.call_args_list)
        # decimals read from the token contracts
        token_calls = batch.call_args_list[1].args[1]
        assert token_calls == [(BASE_TOKEN, SELECTORS["decimals"]), (QUOTE_TOKEN, SELECTORS["decimals"])]

    def test_batch_failure_falls_back_to_sequential(self):
        reader = MarginlyPoolReader(POOL_ADDRESS)
        sequential = AsyncMock(side_effect=_snapshot_batch() + [_word(8), _word(18)])

        with patch("pool_reader._eth_call_batch", AsyncMock(side_effect=RuntimeError("no batch"))), \
             patch("pool_reader._eth_call", sequential):
            snapshot = asyncio.run(reader.read_snapshot(block=7))

        assert sequential.call_count == 12
        assert (snapshot.base_decimals, snapshot.quote_decimals) == (8, 18)
        assert snapshot.block_number == 7

    def test_read_position(self):
        reader = MarginlyPoolReader(POOL_ADDRESS)
        batch = AsyncMock(side_effect=[_snapshot_batch(), [_word(18), _word(6)]])
        raw_position = _word(3) + _word(4) + _word(6) + _word(3000)
        call = AsyncMock(return_value=raw_position)

        with patch("pool_reader._eth_call_batch", batch), patch("pool_reader._eth_call", call):
            snapshot = asyncio.run(reader.read_snapshot(block=99))
            position = asyncio.run(reader.read_position(OWNER, snapshot))

        assert position.type == PositionType.LONG
        assert position.heap_position == 4
        assert (position.base_amount, position.quote_amount) == (6, 3000)
        assert position.calc_leverage(snapshot.base_price_x96) == 2
        assert position.calc_liquidation_price(snapshot.max_leverage) is not None

        to, data = call.call_args.args[1:3]
        assert to == POOL_ADDRESS
        assert data == SELECTORS["positions"] + "0" * 24 + "cc" * 20
        assert call.call_args.kwargs["block"] == 99

    def test_read_position_bad_owner(self):
        reader = MarginlyPoolReader(POOL_ADDRESS)
        with pytest.raises(ValueError, match="Invalid owner"):
            asyncio.run(reader.read_raw_position("0xbad"))
