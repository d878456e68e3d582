import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from contribledger.db.models.contribution import Contribution
from contribledger.domain.enums import Chain
from contribledger.domain.models.ledger import ContributionDraft

logger = logging.getLogger(__name__)


def _row(draft: ContributionDraft) -> dict:
    return {
        "wallet_id": draft.wallet_id,
        "chain": draft.chain.value,
        "tx_hash": draft.tx_hash,
        "natural_key": draft.natural_key,
        "amount": draft.amount,
        "block_time": draft.block_time,
        "block_height": draft.block_height,
        "note": draft.note,
        "source": draft.source.value,
    }


class ContributionRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def exists_by_natural_key(self, natural_key: str) -> bool:
        result = await self._session.execute(
            select(Contribution.id).where(Contribution.natural_key == natural_key).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def exists_by_tx_hash(self, chain: Chain, tx_hash: str) -> bool:
        result = await self._session.execute(
            select(Contribution.id).where(Contribution.chain == chain.value, Contribution.tx_hash == tx_hash).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def insert_if_absent(self, draft: ContributionDraft) -> Optional[Contribution]:
        """Insert inside a savepoint. Returns None when the natural key already exists.

        Any other integrity failure (a missing wallet, a NOT NULL column) propagates.
        """
        row = Contribution(**_row(draft))
        try:
            async with self._session.begin_nested():
                self._session.add(row)
        except IntegrityError:
            # The savepoint rolled back without touching the outer transaction
            if not await self.exists_by_natural_key(draft.natural_key):
                raise
            logger.info("Contribution %s already recorded", draft.natural_key)
            return None
        return row

    async def insert_many_ignore_conflicts(self, drafts: list[ContributionDraft]) -> dict[str, int]:
        """Bulk insert, skipping rows whose natural key exists. Returns {natural_key: id} of new rows."""
        if not drafts:
            return {}
        dialect = self._session.bind.dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            inserted: dict[str, int] = {}
            for draft in drafts:
                row = await self.insert_if_absent(draft)
                if row is not None:
                    inserted[draft.natural_key] = row.id
            return inserted

        stmt = (
            insert(Contribution)
            .values([_row(d) for d in drafts])
            .on_conflict_do_nothing(index_elements=["natural_key"])
            .returning(Contribution.id, Contribution.natural_key)
        )
        result = await self._session.execute(stmt)
        return {natural_key: row_id for row_id, natural_key in result.all()}

    async def set_price(self, contribution_id: int, amount_usd: Decimal, priced_at: datetime) -> None:
        await self._session.execute(
            update(Contribution)
            .where(Contribution.id == contribution_id)
            .values(amount_usd=amount_usd, priced_at=priced_at)
            .execution_options(synchronize_session=False)
        )

