"""Solana JSON-RPC adapter for sol.

Heights are slots. Every call uses the ``finalized`` commitment, so the tip is
the last finalized slot and min_confirmations defaults to 0.

Received SOL is read from the balance change of each account
(``postBalances - preBalances``). That covers direct system transfers and
transfers made by programs through CPI alike.
"""

import logging
from datetime import UTC, datetime

from contribledger.domain.models.chain_data import BlockData, RawTransfer, TxLookup
from contribledger.exceptions import JsonRpcError, RpcError
from contribledger.infra.blockchain.base import ChainAdapter, WantsFn, expect_dict

logger = logging.getLogger(__name__)

COMMITMENT = "finalized"
# "Slot was skipped, or missing due to ledger jump" / "... missing in long-term storage"
SKIPPED_SLOT_CODES = {-32007, -32009}


def _account_key(key) -> str | None:
    # jsonParsed gives {"pubkey": ..., "signer": ..., ...}; json encoding gives the bare string
    if isinstance(key, dict):
        key = key.get("pubkey")
    return key if isinstance(key, str) and key else None


def balance_gains(transaction: dict, meta: dict, signature: str) -> list[RawTransfer]:
    """One RawTransfer per account whose lamport balance went up in this transaction."""
    message = transaction.get("message") or transaction
    keys = [_account_key(k) for k in message.get("accountKeys") or []]
    pre = meta.get("preBalances") or []
    post = meta.get("postBalances") or []

    out: list[RawTransfer] = []
    for i, key in enumerate(keys):
        if key is None or i >= len(pre) or i >= len(post):
            continue
        delta = int(post[i]) - int(pre[i])
        if delta > 0:
            out.append(RawTransfer(to_address_raw=key, amount_native=delta, tx_hash=signature))
    return out


def _block_time(value) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=UTC)


class SolanaAdapter(ChainAdapter):
    async def get_tip(self) -> int:
        slot = await self._pool.rpc("getSlot", [{"commitment": COMMITMENT}])
        if slot is None:
            raise RpcError("sol: getSlot returned null")
        return int(slot)

    async def _landed(self, signature: str) -> bool:
        statuses = await self._pool.rpc("getSignatureStatuses", [[signature], {"searchTransactionHistory": True}])
        values = expect_dict(statuses, "sol getSignatureStatuses").get("value") or [None]
        return values[0] is not None

    async def get_tx_by_hash(self, tx_hash: str) -> TxLookup:
        tx = await self._pool.rpc(
            "getTransaction",
            [tx_hash, {"encoding": "jsonParsed", "commitment": COMMITMENT, "maxSupportedTransactionVersion": 0}],
        )
        if tx is None:
            # Null at finalized commitment covers both unknown and not-yet-finalized signatures
            if await self._landed(tx_hash):
                return TxLookup(found=True)
            return TxLookup(found=False)

        tx = expect_dict(tx, "sol getTransaction")
        slot = tx.get("slot")
        if slot is None:
            raise RpcError("sol: transaction carried no slot")
        meta = tx.get("meta") or {}
        timestamp = _block_time(tx.get("blockTime"))
        if meta.get("err") is not None:
            return TxLookup(found=True, confirmed_height=int(slot), timestamp=timestamp, failed=True)

        return TxLookup(
            found=True,
            confirmed_height=int(slot),
            transfers=balance_gains(tx.get("transaction") or {}, meta, tx_hash),
            timestamp=timestamp,
        )

    async def get_block(self, height: int, wants: WantsFn | None = None) -> BlockData:
        try:
            block = await self._pool.rpc(
                "getBlock",
                [
                    height,
                    {
                        "encoding": "jsonParsed",
                        "transactionDetails": "accounts",
                        "rewards": False,
                        "commitment": COMMITMENT,
                        "maxSupportedTransactionVersion": 0,
                    },
                ],
            )
        except JsonRpcError as e:
            if e.code in SKIPPED_SLOT_CODES:
                logger.debug("sol: slot %d was skipped", height)
                return BlockData(height=height)
            raise
        block = expect_dict(block, f"sol getBlock {height}")

        transfers: list[RawTransfer] = []
        for entry in block.get("transactions") or []:
            meta = entry.get("meta") or {}
            if meta.get("err") is not None:
                continue
            transaction = entry.get("transaction") or {}
            signatures = transaction.get("signatures") or []
            if not signatures:
                continue
            transfers.extend(
                t for t in balance_gains(transaction, meta, signatures[0]) if wants is None or wants(t.to_address_raw)
            )

        return BlockData(height=height, timestamp=_block_time(block.get("blockTime")), transfers=transfers)

    async def probe(self) -> dict[str, bool]:
        return await self._pool.probe(
            "POST", json={"jsonrpc": "2.0", "id": 1, "method": "getSlot", "params": []}, rpc=True
        )
