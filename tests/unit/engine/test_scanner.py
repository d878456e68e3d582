"""Tests for ScannerEngine: windows, checkpoints, partial runs, deadline and lease."""

from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest

from contribledger.domain.chains import CHAIN_SPECS
from contribledger.domain.enums import Chain, ContributionSource
from contribledger.domain.models.chain_data import BlockData, RawTransfer, TxLookup
from contribledger.engine.scanner import ScannerEngine, ScanOptions
from contribledger.exceptions import RpcError
from contribledger.infra.blockchain.base import ChainAdapter
from contribledger.ledger.memory_gateway import InMemoryPersistenceGateway

OURS = "0x1111111111111111111111111111111111111111"
OTHER = "0x2222222222222222222222222222222222222222"


class FakeChain(ChainAdapter):
    """Deterministic chain: every height h carries one transfer to OURS of h wei in tx 0x<h>."""

    def __init__(self, tip: int, fail_heights: set[int] | None = None, chain: Chain = Chain.ETH, min_confirmations=None):
        super().__init__(CHAIN_SPECS[chain], pool=None, min_confirmations=min_confirmations)
        self.tip = tip
        self.fail_heights = fail_heights or set()
        self.fetched: list[int] = []

    async def get_tip(self) -> int:
        return self.tip

    async def get_tx_by_hash(self, tx_hash: str) -> TxLookup:
        return TxLookup(found=False)

    async def get_block(self, height, wants=None) -> BlockData:
        self.fetched.append(height)
        if height in self.fail_heights:
            raise RpcError(f"block {height} unavailable")
        transfers = [
            RawTransfer(to_address_raw=OURS, amount_native=height, tx_hash=f"0x{height:064x}"),
            RawTransfer(to_address_raw=OTHER, amount_native=1, tx_hash=f"0x{height + 10**6:064x}"),
        ]
        if wants is not None:
            transfers = [t for t in transfers if wants(t.to_address_raw)]
        return BlockData(height=height, timestamp=datetime(2024, 1, 1, tzinfo=UTC), transfers=transfers)


class FakeClock:
    def __init__(self, step: float):
        self.now = 0.0
        self.step = step

    def __call__(self) -> float:
        self.now += self.step
        return self.now


def _scanner(adapter, gateway, **kwargs) -> ScannerEngine:
    kwargs.setdefault("budget_seconds", 1000)
    return ScannerEngine(adapter, gateway, **kwargs)


class TestWindow:
    async def test_bootstrap_from_lookback(self, gateway):
        gateway.add_wallet(Chain.ETH, OURS)
        # eth: min_confirmations=12 -> safe tip 88
        adapter = FakeChain(tip=100)
        result = await _scanner(adapter, gateway, default_lookback=20, max_blocks=50).run()

        assert result.from_height == 81
        assert result.to_height == 88
        assert result.scanned == 8
        assert result.inserted == 8
        assert gateway.cursors[Chain.ETH] == 88

    async def test_resumes_after_cursor(self, gateway):
        gateway.add_wallet(Chain.ETH, OURS)
        gateway.cursors[Chain.ETH] = 50
        adapter = FakeChain(tip=100, min_confirmations=0)

        result = await _scanner(adapter, gateway, max_blocks=10).run()

        assert (result.from_height, result.to_height) == (51, 60)
        assert adapter.fetched == list(range(51, 61))

    async def test_explicit_since_height_and_overlap(self, gateway):
        gateway.cursors[Chain.ETH] = 50
        adapter = FakeChain(tip=100, min_confirmations=0)

        result = await _scanner(adapter, gateway, max_blocks=5).run(ScanOptions(overlap=3))
        assert result.from_height == 48

        result = await _scanner(adapter, gateway, max_blocks=5).run(ScanOptions(since_height=10))
        assert (result.from_height, result.to_height) == (10, 14)

    async def test_since_hours_uses_block_time(self, gateway):
        adapter = FakeChain(tip=10000, min_confirmations=0)
        # 1 hour of 12s blocks = 300 blocks back from the safe tip
        result = await _scanner(adapter, gateway, max_blocks=1).run(ScanOptions(since_hours=1))
        assert result.from_height == 9700

    async def test_nothing_to_scan(self, gateway):
        gateway.cursors[Chain.ETH] = 88
        adapter = FakeChain(tip=100)

        result = await _scanner(adapter, gateway).run()

        assert result.scanned == 0
        assert result.to_height == 88
        assert adapter.fetched == []
        assert gateway.cursor_writes == []

    async def test_min_conf_override(self, gateway):
        gateway.cursors[Chain.ETH] = 90
        adapter = FakeChain(tip=100)
        result = await _scanner(adapter, gateway).run(ScanOptions(min_conf=0))
        assert result.to_height == 100


class TestResumability:
    async def test_split_runs_match_single_run(self):
        single = InMemoryPersistenceGateway()
        single.add_wallet(Chain.ETH, OURS)
        single.cursors[Chain.ETH] = 0
        await _scanner(FakeChain(tip=30, min_confirmations=0), single, max_blocks=30).run()

        split = InMemoryPersistenceGateway(wallets=single.wallets)
        split.cursors[Chain.ETH] = 0
        for _ in range(3):
            await _scanner(FakeChain(tip=30, min_confirmations=0), split, max_blocks=10).run()

        assert set(split.rows) == set(single.rows)
        assert len(split.rows) == 30
        assert split.cursors[Chain.ETH] == single.cursors[Chain.ETH] == 30

    async def test_rescan_inserts_nothing_new(self, gateway):
        gateway.add_wallet(Chain.ETH, OURS)
        adapter = FakeChain(tip=20, min_confirmations=0)
        await _scanner(adapter, gateway).run(ScanOptions(since_height=1))

        again = await _scanner(adapter, gateway).run(ScanOptions(since_height=1))
        assert again.matched == 20
        assert again.inserted == 0
        assert len(gateway.rows) == 20

    async def test_rows_written_as_scan_source(self, gateway):
        gateway.add_wallet(Chain.ETH, OURS)
        gateway.cursors[Chain.ETH] = 4
        await _scanner(FakeChain(tip=5, min_confirmations=0), gateway).run()

        [row] = gateway.rows.values()
        assert row["source"] == ContributionSource.SCAN
        assert row["block_height"] == 5
        assert row["amount"] == "0.000000000000000005"

    async def test_new_rows_priced_with_wallet_symbol(self, gateway):
        gateway.add_wallet(Chain.ETH, OURS, symbol="USDX")
        gateway.cursors[Chain.ETH] = 3
        pricing = MagicMock()

        result = await _scanner(FakeChain(tip=5, min_confirmations=0), gateway, pricing=pricing).run()

        assert result.inserted == 2
        symbols = [c.args[1] for c in pricing.schedule.call_args_list]
        assert symbols == ["USDX", "USDX"]


class TestPartialAndDeadline:
    async def test_failed_height_is_reported_and_skipped(self, gateway):
        gateway.add_wallet(Chain.ETH, OURS)
        gateway.cursors[Chain.ETH] = 0
        adapter = FakeChain(tip=10, fail_heights={4}, min_confirmations=0)

        result = await _scanner(adapter, gateway).run()

        assert result.partial
        assert result.failed_heights == [4]
        assert result.inserted == 9
        assert gateway.cursors[Chain.ETH] == 10

    async def test_checkpoints_follow_rows(self, gateway):
        gateway.add_wallet(Chain.ETH, OURS)
        gateway.cursors[Chain.ETH] = 0
        adapter = FakeChain(tip=12, min_confirmations=0)

        await _scanner(adapter, gateway, checkpoint_every=5).run()

        assert [h for _, h in gateway.cursor_writes] == [5, 10, 12]

    async def test_deadline_stops_and_persists_progress(self, gateway):
        gateway.add_wallet(Chain.ETH, OURS)
        gateway.cursors[Chain.ETH] = 0
        adapter = FakeChain(tip=100, min_confirmations=0)
        # Start reads 1.0, deadline 3.5: blocks 1..3 fit
        scanner = ScannerEngine(adapter, gateway, budget_seconds=2.5, clock=FakeClock(step=1.0), max_blocks=100)

        result = await scanner.run()

        assert result.deadline_reached
        assert result.partial
        assert result.to_height == 3
        assert gateway.cursors[Chain.ETH] == 3
        assert len(gateway.rows) == 3


class TestLease:
    async def test_held_lease_skips_run(self, gateway):
        adapter = FakeChain(tip=100)
        assert await gateway.acquire_lease(Chain.ETH, "other-worker", 120)

        result = await _scanner(adapter, gateway).run()

        assert result.skipped
        assert result.reason == "lease_held"
        assert adapter.fetched == []

    async def test_lease_released_after_run(self, gateway):
        gateway.cursors[Chain.ETH] = 88
        await _scanner(FakeChain(tip=100), gateway).run()
        assert Chain.ETH not in gateway.leases

    async def test_lease_released_on_error(self, gateway):
        class Broken(FakeChain):
            async def get_tip(self) -> int:
                raise RpcError("tip unavailable")

        with pytest.raises(RpcError):
            await _scanner(Broken(tip=0), gateway).run()
        assert Chain.ETH not in gateway.leases
