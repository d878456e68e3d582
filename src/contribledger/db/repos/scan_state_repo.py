from datetime import UTC, datetime, timedelta
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from contribledger.db.models.scan_state import ScanCursor, ScanLease
from contribledger.domain.enums import Chain


class ScanStateRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_cursor(self, chain: Chain) -> Optional[int]:
        result = await self._session.execute(select(ScanCursor.height).where(ScanCursor.chain == chain.value))
        return result.scalar_one_or_none()

    async def set_cursor(self, chain: Chain, height: int, force: bool = False) -> int:
        """Advance the cursor. Never moves backward unless force=True. Returns the stored height."""
        stmt = (
            update(ScanCursor)
            .where(ScanCursor.chain == chain.value)
            .values(height=height)
            .execution_options(synchronize_session=False)
        )
        if not force:
            stmt = stmt.where(ScanCursor.height < height)
        result = await self._session.execute(stmt)
        if result.rowcount:
            return height

        current = await self.get_cursor(chain)
        if current is not None:
            return current
        try:
            async with self._session.begin_nested():
                self._session.add(ScanCursor(chain=chain.value, height=height))
        except IntegrityError:
            return await self.set_cursor(chain, height, force)
        return height

    async def acquire_lease(self, chain: Chain, owner: str, ttl_seconds: int) -> bool:
        now = datetime.now(UTC)
        expires = now + timedelta(seconds=ttl_seconds)
        try:
            async with self._session.begin_nested():
                self._session.add(ScanLease(chain=chain.value, owner=owner, expires_at=expires))
            return True
        except IntegrityError:
            pass

        # Take over an expired lease, or renew our own
        result = await self._session.execute(
            update(ScanLease)
            .where(ScanLease.chain == chain.value)
            .where((ScanLease.expires_at < now) | (ScanLease.owner == owner))
            .values(owner=owner, expires_at=expires)
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount)

    async def release_lease(self, chain: Chain, owner: str) -> None:
        await self._session.execute(
            delete(ScanLease).where(ScanLease.chain == chain.value, ScanLease.owner == owner)
        )
