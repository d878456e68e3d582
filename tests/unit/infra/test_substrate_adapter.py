"""Tests for Substrate block decoding, the extrinsic index and SubstrateAdapter."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from contribledger.domain.chains import CHAIN_SPECS
from contribledger.domain.enums import Chain
from contribledger.domain.models.chain_data import RawTransfer
from contribledger.exceptions import RpcError
from contribledger.infra.blockchain.substrate import ExtrinsicIndex, SubstrateAdapter, extract_block
from contribledger.infra.http.endpoint_pool import Endpoint, EndpointPool

OURS = "15oF4uVJwmo4TdGW7VfQxNLavjCXviqxT9S1MgbjMNHr6Sp5"
OTHER = "14ShUZUYUR35RBZW6uVVt1zXDxmSQddkeDdXf1JkMA6P721N"
EXT_A = "0x" + "aa" * 32
EXT_B = "0x" + "bb" * 32
EXT_C = "0x" + "cc" * 32


def _call(module, function, **args):
    return {
        "call_module": module,
        "call_function": function,
        "call_args": [{"name": k, "value": v} for k, v in args.items()],
    }


def _ext(ext_hash, call):
    return {"extrinsic_hash": ext_hash, "call": call}


def _event(idx, module, event, attributes=None):
    return {"extrinsic_idx": idx, "module_id": module, "event_id": event, "attributes": attributes}


class FakeRedis:
    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    async def set(self, key, value, ex=None):
        self.store[key] = value
        self.ttls[key] = ex

    async def get(self, key):
        return self.store.get(key)


class TestExtractBlock:
    def test_transfers_timestamp_and_failures(self):
        extrinsics = [
            _ext(None, _call("Timestamp", "set", now=1700000000000)),
            _ext(EXT_A, _call("Balances", "transfer_keep_alive", dest={"Id": OURS}, value=25000000000)),
            _ext(EXT_B, _call("Balances", "transfer_allow_death", dest=OURS, value=10)),
            _ext(EXT_C, _call("Staking", "bond", value=5)),
        ]
        events = [
            _event(1, "System", "ExtrinsicSuccess"),
            _event(2, "System", "ExtrinsicFailed"),
        ]

        timestamp, by_hash = extract_block(extrinsics, events)
        assert timestamp == datetime.fromtimestamp(1700000000, tz=UTC)
        assert list(by_hash) == [EXT_A]
        assert by_hash[EXT_A][0].to_address_raw == OURS
        assert by_hash[EXT_A][0].amount_native == 25000000000

    def test_batch_opened_one_level(self):
        inner = [
            _call("Balances", "transfer", dest=OURS, value=1),
            _call("Balances", "transfer", dest=OTHER, value=2),
            _call("Utility", "batch", calls=[_call("Balances", "transfer", dest=OURS, value=99)]),
        ]
        extrinsics = [_ext(EXT_A, _call("Utility", "batch_all", calls=inner))]

        _, by_hash = extract_block(extrinsics, [])
        assert [(t.to_address_raw, t.amount_native) for t in by_hash[EXT_A]] == [(OURS, 1), (OTHER, 2)]

    def test_interrupted_batch_counts_only_executed_items(self):
        inner = [
            _call("Balances", "transfer", dest=OURS, value=1),
            _call("Balances", "transfer", dest=OURS, value=2),
        ]
        extrinsics = [_ext(EXT_A, _call("Utility", "batch", calls=inner))]
        events = [_event(0, "Utility", "BatchInterrupted", {"index": 1, "error": "Other"})]

        _, by_hash = extract_block(extrinsics, events)
        assert [t.amount_native for t in by_hash[EXT_A]] == [1]

    def test_force_batch_item_outcomes(self):
        inner = [
            _call("Balances", "transfer", dest=OURS, value=1),
            _call("Balances", "transfer", dest=OURS, value=2),
        ]
        extrinsics = [_ext(EXT_A, _call("Utility", "force_batch", calls=inner))]
        events = [_event(0, "Utility", "ItemFailed"), _event(0, "Utility", "ItemCompleted")]

        _, by_hash = extract_block(extrinsics, events)
        assert [t.amount_native for t in by_hash[EXT_A]] == [2]


class TestExtrinsicIndex:
    async def test_put_then_get(self):
        redis = FakeRedis()
        index = ExtrinsicIndex(redis)
        when = datetime(2024, 1, 1, tzinfo=UTC)

        await index.put(EXT_A, 100, when, [RawTransfer(to_address_raw=OURS, amount_native=5, tx_hash=EXT_A)])
        lookup = await index.get(EXT_A)

        assert lookup.found
        assert lookup.confirmed_height == 100
        assert lookup.timestamp == when
        assert lookup.transfers[0].amount_native == 5
        assert redis.ttls["dot:tx:" + EXT_A] == 60 * 60 * 24 * 14

    async def test_miss(self):
        assert await ExtrinsicIndex(FakeRedis()).get(EXT_A) is None

    async def test_watermark_only_moves_forward(self):
        index = ExtrinsicIndex(FakeRedis())
        assert await index.scanned_height() is None

        await index.mark_scanned(120)
        await index.mark_scanned(90)

        assert await index.scanned_height() == 120


def _mock_response(data: dict):
    resp = MagicMock()
    resp.status_code = 200
    resp.json.return_value = data
    return resp


class TestSubstrateAdapter:
    @pytest.fixture()
    def parts(self):
        mock_http = AsyncMock()
        pool = EndpointPool("dot", [Endpoint("https://rpc.example")], mock_http, retries=0, backoff_seconds=0)
        decoder = MagicMock()
        decoder.decode = AsyncMock(return_value=(
            [
                _ext(None, _call("Timestamp", "set", now=1700000000000)),
                _ext(EXT_A, _call("Balances", "transfer_keep_alive", dest=OURS, value=7)),
                _ext(EXT_B, _call("Balances", "transfer_keep_alive", dest=OTHER, value=8)),
            ],
            [],
        ))
        redis = FakeRedis()
        adapter = SubstrateAdapter(CHAIN_SPECS[Chain.DOT], pool, decoder=decoder, index=ExtrinsicIndex(redis))
        return adapter, mock_http, redis

    async def test_tip_is_finalized_head(self, parts):
        adapter, mock_http, _ = parts
        mock_http.post.side_effect = [
            _mock_response({"jsonrpc": "2.0", "id": 1, "result": "0xfeed"}),
            _mock_response({"jsonrpc": "2.0", "id": 1, "result": {"number": "0x1234"}}),
        ]
        assert await adapter.get_tip() == 0x1234

    async def test_block_indexes_all_and_filters_wanted(self, parts):
        adapter, mock_http, redis = parts
        mock_http.post.return_value = _mock_response({"jsonrpc": "2.0", "id": 1, "result": "0xblockhash"})

        data = await adapter.get_block(500, wants=lambda a: a == OURS)
        assert [t.tx_hash for t in data.transfers] == [EXT_A]
        assert set(redis.store) == {"dot:tx:" + EXT_A, "dot:tx:" + EXT_B, "dot:scanned"}
        assert redis.store["dot:scanned"] == 500

        lookup = await adapter.get_tx_by_hash(EXT_B)
        assert lookup.confirmed_height == 500
        assert lookup.transfers[0].to_address_raw == OTHER

    async def test_unindexed_hash_is_not_found_once_scanner_reached_head(self, parts):
        adapter, mock_http, redis = parts
        redis.store["dot:scanned"] = "4660"
        mock_http.post.side_effect = [
            _mock_response({"jsonrpc": "2.0", "id": 1, "result": "0xfeed"}),
            _mock_response({"jsonrpc": "2.0", "id": 1, "result": {"number": "0x1234"}}),
        ]

        lookup = await adapter.get_tx_by_hash(EXT_C)
        assert not lookup.found

    async def test_unindexed_hash_is_pending_while_scanner_is_behind(self, parts):
        adapter, mock_http, redis = parts
        redis.store["dot:scanned"] = "4000"
        mock_http.post.side_effect = [
            _mock_response({"jsonrpc": "2.0", "id": 1, "result": "0xfeed"}),
            _mock_response({"jsonrpc": "2.0", "id": 1, "result": {"number": "0x1234"}}),
        ]

        lookup = await adapter.get_tx_by_hash(EXT_C)
        assert lookup.found
        assert lookup.confirmed_height is None

    async def test_unindexed_hash_is_pending_before_any_scan(self, parts):
        adapter, mock_http, _ = parts
        mock_http.post.side_effect = [
            _mock_response({"jsonrpc": "2.0", "id": 1, "result": "0xfeed"}),
            _mock_response({"jsonrpc": "2.0", "id": 1, "result": {"number": "0x10"}}),
        ]

        lookup = await adapter.get_tx_by_hash(EXT_C)
        assert lookup.found
        assert lookup.confirmed_height is None

    async def test_null_finalized_header_is_an_rpc_error(self, parts):
        adapter, mock_http, _ = parts
        mock_http.post.side_effect = [
            _mock_response({"jsonrpc": "2.0", "id": 1, "result": "0xfeed"}),
            _mock_response({"jsonrpc": "2.0", "id": 1, "result": None}),
        ]

        with pytest.raises(RpcError):
            await adapter.get_tip()
