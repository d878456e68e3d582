"""Stellar Horizon REST adapter for xlm. Closed ledgers are final, so the tip is the latest closed ledger."""

import logging
from datetime import datetime

from contribledger.domain.amounts import from_canonical
from contribledger.domain.models.chain_data import BlockData, RawTransfer, TxLookup
from contribledger.exceptions import NotFoundError, RpcError
from contribledger.infra.blockchain.base import ChainAdapter, WantsFn, expect_dict

logger = logging.getLogger(__name__)

PAGE_LIMIT = 200


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _records(page: dict) -> list[dict]:
    return (page.get("_embedded") or {}).get("records") or []


class StellarAdapter(ChainAdapter):
    def _transfer(self, op: dict, tx_hash: str) -> RawTransfer | None:
        """Native payment or account creation; other operation types carry no XLM to us."""
        kind = op.get("type")
        if kind == "payment" and op.get("asset_type") == "native":
            to, amount = op.get("to"), op.get("amount")
        elif kind == "create_account":
            to, amount = op.get("account"), op.get("starting_balance")
        else:
            return None
        if not to or not amount:
            return None
        native = int(from_canonical(str(amount), self.spec.decimals))
        if native <= 0:
            return None
        return RawTransfer(to_address_raw=to, amount_native=native, tx_hash=tx_hash)

    async def get_tip(self) -> int:
        root = expect_dict(await self._pool.get("/"), "xlm root")
        if root.get("history_latest_ledger") is None:
            raise RpcError("xlm: root carried no latest ledger")
        return int(root["history_latest_ledger"])

    async def get_tx_by_hash(self, tx_hash: str) -> TxLookup:
        try:
            tx = await self._pool.get(f"/transactions/{tx_hash}")
        except NotFoundError:
            return TxLookup(found=False)
        tx = expect_dict(tx, "xlm transaction")

        ledger = int(tx["ledger"]) if tx.get("ledger") is not None else None
        timestamp = _parse_time(tx.get("created_at"))
        if tx.get("successful") is False:
            return TxLookup(found=True, confirmed_height=ledger, timestamp=timestamp, failed=True)

        ops = await self._pool.get(f"/transactions/{tx_hash}/operations", params={"limit": str(PAGE_LIMIT)})
        ops = expect_dict(ops, "xlm operations")
        transfers = [t for t in (self._transfer(op, tx_hash.lower()) for op in _records(ops)) if t]
        return TxLookup(found=True, confirmed_height=ledger, transfers=transfers, timestamp=timestamp)

    async def get_block(self, height: int, wants: WantsFn | None = None) -> BlockData:
        transfers: list[RawTransfer] = []
        timestamp: datetime | None = None
        cursor: str | None = None
        while True:
            params = {"limit": str(PAGE_LIMIT), "order": "asc", "include_failed": "false"}
            if cursor:
                params["cursor"] = cursor
            page = await self._pool.get(f"/ledgers/{height}/payments", params=params)
            page = expect_dict(page, f"xlm ledger {height}")
            records = _records(page)
            for op in records:
                timestamp = timestamp or _parse_time(op.get("created_at"))
                if op.get("transaction_successful") is False:
                    continue
                t = self._transfer(op, str(op.get("transaction_hash", "")).lower())
                if t and (wants is None or wants(t.to_address_raw)):
                    transfers.append(t)
            if len(records) < PAGE_LIMIT:
                break
            cursor = records[-1].get("paging_token")
            if not cursor:
                break

        return BlockData(height=height, timestamp=timestamp, transfers=transfers)

    async def probe(self) -> dict[str, bool]:
        return await self._pool.probe("GET", "/")
