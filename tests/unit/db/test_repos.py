import uuid
from datetime import UTC, datetime
from decimal import Decimal

import pytest
from sqlalchemy import func, select, text
from sqlalchemy.exc import IntegrityError

from contribledger.db.models.contribution import Contribution
from contribledger.db.repos import ContributionRepo, ScanStateRepo, WalletRepo
from contribledger.domain.chains import natural_key
from contribledger.domain.enums import Chain, ContributionSource
from contribledger.domain.models.ledger import ContributionDraft

ETH_ADDR = "0x742d35Cc6634C0532925a3b844Bc454e4438f44e"
BTC_ADDR = "1A1zP1eP5QGefi2DMPTfTL5SLmv7DivfNa"


def _draft(wallet, chain: Chain, tx_hash: str, amount: str = "1.5", height: int = 100, **kwargs) -> ContributionDraft:
    return ContributionDraft(
        wallet_id=wallet.id,
        chain=chain,
        tx_hash=tx_hash,
        natural_key=natural_key(chain, tx_hash, wallet.id),
        amount=amount,
        block_time=datetime(2024, 5, 1, 12, 0, tzinfo=UTC),
        block_height=height,
        **kwargs,
    )


async def _rows(session, chain: Chain, tx_hash: str) -> list[Contribution]:
    result = await session.execute(
        select(Contribution)
        .where(Contribution.chain == chain.value, Contribution.tx_hash == tx_hash)
        .order_by(Contribution.id)
    )
    return list(result.scalars().all())


async def _count(session, chain: Chain | None = None) -> int:
    q = select(func.count()).select_from(Contribution)
    if chain is not None:
        q = q.where(Contribution.chain == chain.value)
    return (await session.execute(q)).scalar_one()


class TestWalletRepo:
    async def test_create_canonicalizes_address(self, session):
        repo = WalletRepo(session)

        wallet = await repo.create(chain=Chain.ETH, address=ETH_ADDR, label="Treasury")
        await session.commit()

        assert wallet.id is not None
        assert wallet.chain == "eth"
        assert wallet.address == ETH_ADDR.lower()
        assert wallet.is_active is True

    async def test_list_active_filters_chain_and_inactive(self, session):
        repo = WalletRepo(session)
        await repo.create(chain=Chain.ETH, address=ETH_ADDR)
        await repo.create(chain=Chain.ETH, address="0x" + "11" * 20, is_active=False)
        await repo.create(chain=Chain.BTC, address=BTC_ADDR)
        await session.commit()

        eth = await repo.list_active(Chain.ETH)
        btc = await repo.list_active(Chain.BTC)

        assert [w.address for w in eth] == [ETH_ADDR.lower()]
        assert [w.address for w in btc] == [BTC_ADDR]

    async def test_get_by_chain_and_address_any_case(self, session):
        repo = WalletRepo(session)
        created = await repo.create(chain=Chain.ETH, address=ETH_ADDR)
        await session.commit()

        found = await repo.get_by_chain_and_address(Chain.ETH, ETH_ADDR.upper().replace("0X", "0x"))
        assert found is not None
        assert found.id == created.id


class TestContributionRepo:
    async def _wallet(self, session, chain=Chain.ETH, address=ETH_ADDR):
        wallet = await WalletRepo(session).create(chain=chain, address=address)
        await session.commit()
        return wallet

    async def test_insert_if_absent_and_conflict(self, session):
        wallet = await self._wallet(session)
        repo = ContributionRepo(session)
        draft = _draft(wallet, Chain.ETH, "0x" + "ab" * 32, note="gm")

        first = await repo.insert_if_absent(draft)
        await session.commit()
        second = await repo.insert_if_absent(draft)
        await session.commit()

        assert first is not None and first.id is not None
        assert second is None
        assert await _count(session) == 1

        [stored] = await _rows(session, Chain.ETH, "0x" + "ab" * 32)
        assert stored.id == first.id
        assert stored.natural_key == f"eth:0x{'ab' * 32}"
        assert stored.amount == "1.5"
        assert stored.note == "gm"
        assert stored.source == "claim"
        assert stored.amount_usd is None

    async def test_conflict_keeps_outer_transaction_usable(self, session):
        wallet = await self._wallet(session)
        repo = ContributionRepo(session)
        await repo.insert_if_absent(_draft(wallet, Chain.ETH, "0x" + "01" * 32))
        await session.commit()

        assert await repo.insert_if_absent(_draft(wallet, Chain.ETH, "0x" + "01" * 32)) is None
        assert await repo.insert_if_absent(_draft(wallet, Chain.ETH, "0x" + "02" * 32)) is not None
        await session.commit()

        assert await _count(session, Chain.ETH) == 2

    async def test_foreign_key_violation_is_not_a_duplicate(self, session):
        await session.execute(text("PRAGMA foreign_keys=ON"))
        repo = ContributionRepo(session)
        orphan = ContributionDraft(
            wallet_id=uuid.uuid4(),
            chain=Chain.ETH,
            tx_hash="0x" + "0f" * 32,
            natural_key=f"eth:0x{'0f' * 32}",
            amount="1",
            block_time=None,
        )

        with pytest.raises(IntegrityError):
            await repo.insert_if_absent(orphan)
        assert await _count(session) == 0

    async def test_exists_checks(self, session):
        wallet = await self._wallet(session, Chain.BTC, BTC_ADDR)
        repo = ContributionRepo(session)
        draft = _draft(wallet, Chain.BTC, "cd" * 32)
        await repo.insert_if_absent(draft)
        await session.commit()

        assert await repo.exists_by_natural_key(draft.natural_key)
        assert not await repo.exists_by_natural_key("btc:missing")
        assert await repo.exists_by_tx_hash(Chain.BTC, "cd" * 32)
        assert not await repo.exists_by_tx_hash(Chain.LTC, "cd" * 32)

    async def test_insert_many_ignores_existing_keys(self, session):
        wallet = await self._wallet(session)
        repo = ContributionRepo(session)
        existing = _draft(wallet, Chain.ETH, "0x" + "aa" * 32, source=ContributionSource.CLAIM)
        await repo.insert_if_absent(existing)
        await session.commit()

        fresh = [
            _draft(wallet, Chain.ETH, "0x" + "bb" * 32, height=101, source=ContributionSource.SCAN),
            _draft(wallet, Chain.ETH, "0x" + "cc" * 32, height=102, source=ContributionSource.SCAN),
        ]
        inserted = await repo.insert_many_ignore_conflicts([existing, *fresh])
        await session.commit()

        assert set(inserted) == {d.natural_key for d in fresh}
        assert all(isinstance(v, int) for v in inserted.values())
        assert await _count(session) == 3

        rows = await _rows(session, Chain.ETH, "0x" + "bb" * 32)
        assert rows[0].source == "scan"
        assert rows[0].block_height == 101

    async def test_insert_many_empty(self, session):
        assert await ContributionRepo(session).insert_many_ignore_conflicts([]) == {}

    async def test_per_wallet_rows_share_tx_hash(self, session):
        repo = ContributionRepo(session)
        a = await self._wallet(session, Chain.BTC, BTC_ADDR)
        b = await self._wallet(session, Chain.BTC, "3J98t1WpEZ73CNmQviecrnyiWrnqRhWNLy")

        inserted = await repo.insert_many_ignore_conflicts(
            [_draft(a, Chain.BTC, "ef" * 32, "0.1"), _draft(b, Chain.BTC, "ef" * 32, "0.2")]
        )
        await session.commit()

        assert len(inserted) == 2
        rows = await _rows(session, Chain.BTC, "ef" * 32)
        assert sorted(r.amount for r in rows) == ["0.1", "0.2"]

    async def test_set_price(self, session):
        wallet = await self._wallet(session)
        repo = ContributionRepo(session)
        row = await repo.insert_if_absent(_draft(wallet, Chain.ETH, "0x" + "dd" * 32))
        await session.commit()
        row_id = row.id

        await repo.set_price(row_id, Decimal("4500.12345678"), datetime(2024, 5, 1, tzinfo=UTC))
        await session.commit()
        session.expire_all()

        [stored] = await _rows(session, Chain.ETH, "0x" + "dd" * 32)
        assert stored.id == row_id
        assert stored.amount_usd == Decimal("4500.12345678")
        assert stored.priced_at is not None


class TestScanStateRepo:
    async def test_cursor_absent(self, session):
        assert await ScanStateRepo(session).get_cursor(Chain.ETH) is None

    async def test_cursor_moves_forward_only(self, session):
        repo = ScanStateRepo(session)

        assert await repo.set_cursor(Chain.ETH, 100) == 100
        assert await repo.set_cursor(Chain.ETH, 150) == 150
        assert await repo.set_cursor(Chain.ETH, 120) == 150
        await session.commit()

        assert await repo.get_cursor(Chain.ETH) == 150

    async def test_force_moves_cursor_back(self, session):
        repo = ScanStateRepo(session)
        await repo.set_cursor(Chain.BTC, 800_000)

        assert await repo.set_cursor(Chain.BTC, 799_000, force=True) == 799_000
        await session.commit()
        assert await repo.get_cursor(Chain.BTC) == 799_000

    async def test_cursors_are_per_chain(self, session):
        repo = ScanStateRepo(session)
        await repo.set_cursor(Chain.ETH, 10)
        await repo.set_cursor(Chain.BSC, 20)
        await session.commit()

        assert await repo.get_cursor(Chain.ETH) == 10
        assert await repo.get_cursor(Chain.BSC) == 20

    async def test_lease_exclusive_until_released(self, session):
        repo = ScanStateRepo(session)

        assert await repo.acquire_lease(Chain.ETH, "worker-a", 120)
        assert not await repo.acquire_lease(Chain.ETH, "worker-b", 120)
        # Owner may renew
        assert await repo.acquire_lease(Chain.ETH, "worker-a", 120)

        await repo.release_lease(Chain.ETH, "worker-a")
        assert await repo.acquire_lease(Chain.ETH, "worker-b", 120)

    async def test_expired_lease_can_be_taken_over(self, session):
        repo = ScanStateRepo(session)
        assert await repo.acquire_lease(Chain.ETH, "worker-a", -10)
        assert await repo.acquire_lease(Chain.ETH, "worker-b", 120)
        assert not await repo.acquire_lease(Chain.ETH, "worker-a", 120)

    async def test_release_by_non_owner_is_ignored(self, session):
        repo = ScanStateRepo(session)
        await repo.acquire_lease(Chain.DOT, "worker-a", 120)
        await repo.release_lease(Chain.DOT, "worker-b")
        assert not await repo.acquire_lease(Chain.DOT, "worker-b", 120)
