from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from contribledger.db.models.wallet import Wallet
from contribledger.domain.addresses import canonicalize
from contribledger.domain.enums import Chain


class WalletRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_active(self, chain: Chain) -> list[Wallet]:
        result = await self._session.execute(
            select(Wallet)
            .where(Wallet.chain == chain.value, Wallet.is_active.is_(True))
            .order_by(Wallet.created_at.asc())
        )
        return list(result.scalars().all())

    async def get_by_chain_and_address(self, chain: Chain, address: str) -> Optional[Wallet]:
        result = await self._session.execute(
            select(Wallet).where(Wallet.chain == chain.value, Wallet.address == canonicalize(chain, address))
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        chain: Chain,
        address: str,
        symbol: Optional[str] = None,
        label: Optional[str] = None,
        is_active: bool = True,
    ) -> Wallet:
        """Used by seeding scripts and tests; production wallets are managed externally."""
        wallet = Wallet(
            chain=chain.value,
            address=canonicalize(chain, address),
            symbol=symbol,
            label=label,
            is_active=is_active,
        )
        self._session.add(wallet)
        await self._session.flush()
        return wallet
