"""SQLAlchemy-backed gateway. Each operation runs in its own short session and commits."""

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from contribledger.db.repos import ContributionRepo, ScanStateRepo, WalletRepo
from contribledger.domain.enums import Chain
from contribledger.domain.models.ledger import ContributionDraft
from contribledger.exceptions import PersistenceError
from contribledger.ledger.gateway import MonitoredWallet, PersistenceGateway

logger = logging.getLogger(__name__)


class SqlPersistenceGateway(PersistenceGateway):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def list_active_wallets(self, chain: Chain) -> list[MonitoredWallet]:
        try:
            async with self._session_factory() as session:
                wallets = await WalletRepo(session).list_active(chain)
        except SQLAlchemyError as e:
            raise PersistenceError("Could not load wallets") from e
        return [MonitoredWallet(id=w.id, chain=chain, address=w.address, symbol=w.symbol) for w in wallets]

    async def exists_by_natural_key(self, natural_key: str) -> bool:
        try:
            async with self._session_factory() as session:
                return await ContributionRepo(session).exists_by_natural_key(natural_key)
        except SQLAlchemyError as e:
            raise PersistenceError("Ledger lookup failed") from e

    async def exists_by_tx_hash(self, chain: Chain, tx_hash: str) -> bool:
        try:
            async with self._session_factory() as session:
                return await ContributionRepo(session).exists_by_tx_hash(chain, tx_hash)
        except SQLAlchemyError as e:
            raise PersistenceError("Ledger lookup failed") from e

    async def insert_if_absent(self, draft: ContributionDraft) -> int | None:
        try:
            async with self._session_factory() as session:
                row = await ContributionRepo(session).insert_if_absent(draft)
                await session.commit()
        except SQLAlchemyError as e:
            logger.exception("Insert of %s failed", draft.natural_key)
            raise PersistenceError("Ledger write failed") from e
        return row.id if row is not None else None

    async def insert_many_ignore_conflicts(self, drafts: list[ContributionDraft]) -> dict[str, int]:
        if not drafts:
            return {}
        try:
            async with self._session_factory() as session:
                inserted = await ContributionRepo(session).insert_many_ignore_conflicts(drafts)
                await session.commit()
        except SQLAlchemyError as e:
            logger.exception("Batch insert of %d rows failed", len(drafts))
            raise PersistenceError("Ledger batch write failed") from e
        return inserted

    async def set_price(self, contribution_id: int, amount_usd: Decimal, priced_at: datetime) -> None:
        try:
            async with self._session_factory() as session:
                await ContributionRepo(session).set_price(contribution_id, amount_usd, priced_at)
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError("Price update failed") from e

    async def get_cursor(self, chain: Chain) -> int | None:
        try:
            async with self._session_factory() as session:
                return await ScanStateRepo(session).get_cursor(chain)
        except SQLAlchemyError as e:
            raise PersistenceError("Cursor read failed") from e

    async def set_cursor(self, chain: Chain, height: int, force: bool = False) -> int:
        try:
            async with self._session_factory() as session:
                stored = await ScanStateRepo(session).set_cursor(chain, height, force=force)
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError("Cursor write failed") from e
        return stored

    async def acquire_lease(self, chain: Chain, owner: str, ttl_seconds: int) -> bool:
        try:
            async with self._session_factory() as session:
                acquired = await ScanStateRepo(session).acquire_lease(chain, owner, ttl_seconds)
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError("Lease write failed") from e
        return acquired

    async def release_lease(self, chain: Chain, owner: str) -> None:
        try:
            async with self._session_factory() as session:
                await ScanStateRepo(session).release_lease(chain, owner)
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError("Lease release failed") from e
