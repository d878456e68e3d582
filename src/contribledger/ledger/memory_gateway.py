"""In-process gateway for tests and local dry runs. Same conflict semantics as the SQL one."""

import asyncio
import itertools
import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from contribledger.domain.enums import Chain
from contribledger.domain.models.ledger import ContributionDraft
from contribledger.ledger.gateway import MonitoredWallet, PersistenceGateway


class InMemoryPersistenceGateway(PersistenceGateway):
    def __init__(self, wallets: list[MonitoredWallet] | None = None) -> None:
        self.wallets: list[MonitoredWallet] = list(wallets or [])
        self.rows: dict[str, dict] = {}
        self.cursors: dict[Chain, int] = {}
        self.leases: dict[Chain, tuple[str, datetime]] = {}
        self.cursor_writes: list[tuple[Chain, int]] = []
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    def add_wallet(self, chain: Chain, address: str, symbol: str | None = None) -> MonitoredWallet:
        wallet = MonitoredWallet(id=uuid.uuid4(), chain=chain, address=address, symbol=symbol)
        self.wallets.append(wallet)
        return wallet

    async def list_active_wallets(self, chain: Chain) -> list[MonitoredWallet]:
        return [w for w in self.wallets if w.chain == chain]

    async def exists_by_natural_key(self, natural_key: str) -> bool:
        await asyncio.sleep(0)
        return natural_key in self.rows

    async def exists_by_tx_hash(self, chain: Chain, tx_hash: str) -> bool:
        # Yield so concurrent claims interleave between pre-check and insert
        await asyncio.sleep(0)
        return any(r["chain"] == chain and r["tx_hash"] == tx_hash for r in self.rows.values())

    async def insert_if_absent(self, draft: ContributionDraft) -> int | None:
        async with self._lock:
            if draft.natural_key in self.rows:
                return None
            row_id = next(self._ids)
            self.rows[draft.natural_key] = {"id": row_id, **draft.model_dump(), "amount_usd": None, "priced_at": None}
            return row_id

    async def insert_many_ignore_conflicts(self, drafts: list[ContributionDraft]) -> dict[str, int]:
        inserted: dict[str, int] = {}
        for draft in drafts:
            row_id = await self.insert_if_absent(draft)
            if row_id is not None:
                inserted[draft.natural_key] = row_id
        return inserted

    async def set_price(self, contribution_id: int, amount_usd: Decimal, priced_at: datetime) -> None:
        for row in self.rows.values():
            if row["id"] == contribution_id:
                row["amount_usd"] = amount_usd
                row["priced_at"] = priced_at

    async def get_cursor(self, chain: Chain) -> int | None:
        return self.cursors.get(chain)

    async def set_cursor(self, chain: Chain, height: int, force: bool = False) -> int:
        current = self.cursors.get(chain)
        if force or current is None or height > current:
            self.cursors[chain] = height
            self.cursor_writes.append((chain, height))
        return self.cursors[chain]

    async def acquire_lease(self, chain: Chain, owner: str, ttl_seconds: int) -> bool:
        now = datetime.now(UTC)
        held = self.leases.get(chain)
        if held is not None and held[0] != owner and held[1] > now:
            return False
        self.leases[chain] = (owner, now + timedelta(seconds=ttl_seconds))
        return True

    async def release_lease(self, chain: Chain, owner: str) -> None:
        held = self.leases.get(chain)
        if held is not None and held[0] == owner:
            del self.leases[chain]
