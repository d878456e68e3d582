"""PersistenceGateway: the only way engines touch the ledger, cursor and lease store."""

import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from contribledger.domain.enums import Chain
from contribledger.domain.models.ledger import ContributionDraft


class MonitoredWallet(BaseModel):
    id: uuid.UUID
    chain: Chain
    address: str
    symbol: str | None = None


class PersistenceGateway(ABC):
    @abstractmethod
    async def list_active_wallets(self, chain: Chain) -> list[MonitoredWallet]: ...

    @abstractmethod
    async def exists_by_natural_key(self, natural_key: str) -> bool: ...

    @abstractmethod
    async def exists_by_tx_hash(self, chain: Chain, tx_hash: str) -> bool:
        """Any row for this transaction, whichever wallet it credited."""

    @abstractmethod
    async def insert_if_absent(self, draft: ContributionDraft) -> int | None:
        """Insert one row. Returns its id, or None if the natural key already exists.

        The conflict signal is authoritative: concurrent callers racing on the same
        key see exactly one id and None for everyone else.
        """

    @abstractmethod
    async def insert_many_ignore_conflicts(self, drafts: list[ContributionDraft]) -> dict[str, int]:
        """Idempotent batch write. Returns {natural_key: id} for the rows that were new."""

    @abstractmethod
    async def set_price(self, contribution_id: int, amount_usd: Decimal, priced_at: datetime) -> None: ...

    @abstractmethod
    async def get_cursor(self, chain: Chain) -> int | None: ...

    @abstractmethod
    async def set_cursor(self, chain: Chain, height: int, force: bool = False) -> int:
        """Advance monotonically unless force; returns the stored height."""

    @abstractmethod
    async def acquire_lease(self, chain: Chain, owner: str, ttl_seconds: int) -> bool: ...

    @abstractmethod
    async def release_lease(self, chain: Chain, owner: str) -> None: ...
