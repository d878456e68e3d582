"""EVM JSON-RPC adapter (eth, arb, op, pol, avax, bsc)."""

import logging
from datetime import UTC, datetime

from contribledger.domain.models.chain_data import BlockData, RawTransfer, TxLookup
from contribledger.exceptions import RpcError
from contribledger.infra.blockchain.base import ChainAdapter, WantsFn

logger = logging.getLogger(__name__)


def _hex_int(value: str | int | None) -> int | None:
    if value is None:
        return None
    if isinstance(value, int):
        return value
    return int(value, 16)


def _ts(value: str | int | None) -> datetime | None:
    seconds = _hex_int(value)
    if seconds is None:
        return None
    return datetime.fromtimestamp(seconds, tz=UTC)


def _receipt_ok(receipt: dict) -> bool:
    # Pre-Byzantium receipts carry no status field
    status = receipt.get("status")
    return status is None or _hex_int(status) == 1


def _native_transfer(tx: dict) -> RawTransfer | None:
    to = tx.get("to")
    value = _hex_int(tx.get("value")) or 0
    if not to or value <= 0:
        return None
    return RawTransfer(to_address_raw=to, amount_native=value, tx_hash=tx["hash"].lower())


class EVMAdapter(ChainAdapter):
    """Top-level native value transfers only; internal calls and tokens are out of scope."""

    async def get_tip(self) -> int:
        result = await self._pool.rpc("eth_blockNumber")
        return _hex_int(result) or 0

    async def get_tx_by_hash(self, tx_hash: str) -> TxLookup:
        tx = await self._pool.rpc("eth_getTransactionByHash", [tx_hash])
        if not tx:
            return TxLookup(found=False)

        height = _hex_int(tx.get("blockNumber"))
        if height is None:
            return TxLookup(found=True)

        receipt = await self._pool.rpc("eth_getTransactionReceipt", [tx_hash])
        if not receipt:
            # Indexed but receipt not served yet: treat as not yet confirmed
            return TxLookup(found=True)

        block = await self._pool.rpc("eth_getBlockByNumber", [hex(height), False])
        timestamp = _ts(block.get("timestamp")) if block else None

        if not _receipt_ok(receipt):
            return TxLookup(found=True, confirmed_height=height, timestamp=timestamp, failed=True)

        transfer = _native_transfer(tx)
        return TxLookup(
            found=True,
            confirmed_height=height,
            transfers=[transfer] if transfer else [],
            timestamp=timestamp,
        )

    async def get_block(self, height: int, wants: WantsFn | None = None) -> BlockData:
        block = await self._pool.rpc("eth_getBlockByNumber", [hex(height), True])
        if not block:
            raise RpcError(f"{self.spec.slug}: block {height} not served")

        transfers: list[RawTransfer] = []
        for tx in block.get("transactions") or []:
            if not isinstance(tx, dict):
                continue
            transfer = _native_transfer(tx)
            if transfer is None:
                continue
            if wants is not None and not wants(transfer.to_address_raw):
                continue
            # Receipt lookups only for transfers we might record
            receipt = await self._pool.rpc("eth_getTransactionReceipt", [tx["hash"]])
            if not receipt:
                raise RpcError(f"{self.spec.slug}: receipt for {tx['hash']} not served")
            if not _receipt_ok(receipt):
                logger.debug("Skipping reverted tx %s in block %d", tx["hash"], height)
                continue
            transfers.append(transfer)

        return BlockData(height=height, timestamp=_ts(block.get("timestamp")), transfers=transfers)

    async def probe(self) -> dict[str, bool]:
        return await self._pool.probe(
            "POST", json={"jsonrpc": "2.0", "id": 1, "method": "eth_blockNumber", "params": []}, rpc=True
        )
