"""XRP Ledger adapter for xrp (rippled JSON-RPC).

Heights are ledger indexes. Only validated ledgers are final, and the tip is
the last validated ledger, so min_confirmations defaults to 0.

Payments are credited with ``meta.delivered_amount``, the amount actually
received. ``Amount`` is only a ceiling when the partial-payment flag is set.
Issued-currency amounts arrive as objects and are ignored.
"""

import logging
from datetime import UTC, datetime

from contribledger.domain.models.chain_data import BlockData, RawTransfer, TxLookup
from contribledger.exceptions import NotFoundError, RpcError
from contribledger.infra.blockchain.base import ChainAdapter, WantsFn, expect_dict

logger = logging.getLogger(__name__)

RIPPLE_EPOCH_OFFSET = 946684800  # seconds between 1970-01-01 and 2000-01-01
TF_PARTIAL_PAYMENT = 0x00020000
TX_SUCCESS = "tesSUCCESS"
NOT_FOUND_ERRORS = {"txnNotFound"}


def _ripple_time(value) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value) + RIPPLE_EPOCH_OFFSET, tz=UTC)


def _split(entry: dict) -> tuple[dict, dict]:
    """(transaction fields, metadata) for API v1 (flat) and v2 (tx_json) shapes."""
    tx = entry.get("tx_json") or entry.get("tx") or entry
    meta = entry.get("meta") or entry.get("metaData") or {}
    return tx, meta if isinstance(meta, dict) else {}


def extract_payment(tx: dict, meta: dict, tx_hash: str) -> list[RawTransfer]:
    if tx.get("TransactionType") != "Payment" or not tx.get("Destination"):
        return []
    delivered = meta.get("delivered_amount", meta.get("DeliveredAmount"))
    if delivered is None or delivered == "unavailable":
        # Ledgers before 2014 lack delivered_amount; Amount is exact unless partial
        if int(tx.get("Flags") or 0) & TF_PARTIAL_PAYMENT:
            return []
        delivered = tx.get("Amount", tx.get("DeliverMax"))
    if not isinstance(delivered, str):
        return []
    amount = int(delivered)
    if amount <= 0:
        return []
    return [RawTransfer(to_address_raw=tx["Destination"], amount_native=amount, tx_hash=tx_hash)]


class XRPLAdapter(ChainAdapter):
    async def _call(self, method: str, params: dict) -> dict:
        data = expect_dict(await self._pool.post(json={"method": method, "params": [params]}), f"xrp {method}")
        result = expect_dict(data.get("result"), f"xrp {method}")
        if result.get("status") == "error" or result.get("error"):
            error = result.get("error")
            if error in NOT_FOUND_ERRORS:
                raise NotFoundError(f"xrp {method}: {error}")
            raise RpcError(f"xrp {method}: {error} {result.get('error_message') or ''}".rstrip())
        return result

    async def get_tip(self) -> int:
        result = await self._call("ledger", {"ledger_index": "validated"})
        index = result.get("ledger_index", (result.get("ledger") or {}).get("ledger_index"))
        if index is None:
            raise RpcError("xrp: validated ledger carried no index")
        return int(index)

    async def get_tx_by_hash(self, tx_hash: str) -> TxLookup:
        try:
            result = await self._call("tx", {"transaction": tx_hash, "binary": False})
        except NotFoundError:
            return TxLookup(found=False)

        # Not yet in a validated ledger; may still fail or expire
        if not result.get("validated"):
            return TxLookup(found=True)

        tx, meta = _split(result)
        index = result.get("ledger_index", tx.get("ledger_index"))
        if index is None:
            raise RpcError("xrp: validated transaction carried no ledger index")
        timestamp = _ripple_time(tx.get("date", result.get("date")))
        if meta.get("TransactionResult") != TX_SUCCESS:
            return TxLookup(found=True, confirmed_height=int(index), timestamp=timestamp, failed=True)

        return TxLookup(
            found=True,
            confirmed_height=int(index),
            transfers=extract_payment(tx, meta, tx_hash.upper()),
            timestamp=timestamp,
        )

    async def get_block(self, height: int, wants: WantsFn | None = None) -> BlockData:
        result = await self._call("ledger", {"ledger_index": height, "transactions": True, "expand": True})
        ledger = expect_dict(result.get("ledger"), f"xrp ledger {height}")
        if not result.get("validated", ledger.get("validated")):
            raise RpcError(f"xrp: ledger {height} is not validated yet")

        transfers: list[RawTransfer] = []
        for entry in ledger.get("transactions") or []:
            tx, meta = _split(entry)
            if meta.get("TransactionResult") != TX_SUCCESS:
                continue
            tx_hash = str(entry.get("hash") or tx.get("hash") or "").upper()
            for t in extract_payment(tx, meta, tx_hash):
                if wants is None or wants(t.to_address_raw):
                    transfers.append(t)

        return BlockData(height=height, timestamp=_ripple_time(ledger.get("close_time")), transfers=transfers)

    async def probe(self) -> dict[str, bool]:
        return await self._pool.probe("POST", json={"method": "server_info", "params": [{}]})
