"""Tron REST adapter (TronGrid-compatible /wallet API) for trx."""

import logging
from datetime import UTC, datetime

from contribledger.domain.models.chain_data import BlockData, RawTransfer, TxLookup
from contribledger.exceptions import RpcError
from contribledger.infra.blockchain.base import ChainAdapter, WantsFn, expect_dict

logger = logging.getLogger(__name__)

TRANSFER_CONTRACT = "TransferContract"


def _ms(value) -> datetime | None:
    if not value:
        return None
    return datetime.fromtimestamp(int(value) / 1000, tz=UTC)


def _succeeded(tx: dict) -> bool:
    ret = tx.get("ret") or []
    return bool(ret) and all(r.get("contractRet", "SUCCESS") == "SUCCESS" for r in ret)


def extract_transfers(tx: dict) -> list[RawTransfer]:
    """Native TRX TransferContract calls. TRC-10/20 and smart-contract calls are ignored."""
    tx_hash = str(tx.get("txID", "")).lower()
    out: list[RawTransfer] = []
    for contract in (tx.get("raw_data") or {}).get("contract") or []:
        if contract.get("type") != TRANSFER_CONTRACT:
            continue
        value = (contract.get("parameter") or {}).get("value") or {}
        amount = int(value.get("amount") or 0)
        to = value.get("to_address")
        if to and amount > 0:
            out.append(RawTransfer(to_address_raw=to, amount_native=amount, tx_hash=tx_hash))
    return out


class TronAdapter(ChainAdapter):
    async def get_tip(self) -> int:
        block = expect_dict(await self._pool.post("/wallet/getnowblock", json={}), "trx getnowblock")
        number = ((block.get("block_header") or {}).get("raw_data") or {}).get("number")
        if number is None:
            raise RpcError("trx: getnowblock carried no block number")
        return int(number)

    async def get_tx_by_hash(self, tx_hash: str) -> TxLookup:
        tx = await self._pool.post("/wallet/gettransactionbyid", json={"value": tx_hash})
        # TronGrid answers {} for unknown ids
        if not tx or not expect_dict(tx, "trx gettransactionbyid").get("txID"):
            return TxLookup(found=False)

        info = await self._pool.post("/wallet/gettransactioninfobyid", json={"value": tx_hash})
        info = expect_dict(info or {}, "trx gettransactioninfobyid")
        height = info.get("blockNumber")
        if height is None:
            return TxLookup(found=True)

        timestamp = _ms(info.get("blockTimeStamp")) or _ms((tx.get("raw_data") or {}).get("timestamp"))
        if not _succeeded(tx):
            return TxLookup(found=True, confirmed_height=int(height), timestamp=timestamp, failed=True)

        return TxLookup(found=True, confirmed_height=int(height), transfers=extract_transfers(tx), timestamp=timestamp)

    async def get_block(self, height: int, wants: WantsFn | None = None) -> BlockData:
        block = await self._pool.post("/wallet/getblockbynum", json={"num": height})
        block = expect_dict(block, f"trx getblockbynum {height}")
        # Heights past the node head come back as {}
        if not block.get("block_header"):
            raise RpcError(f"trx: block {height} not available")
        header = block["block_header"].get("raw_data") or {}

        transfers: list[RawTransfer] = []
        for tx in block.get("transactions") or []:
            if not _succeeded(tx):
                continue
            transfers.extend(t for t in extract_transfers(tx) if wants is None or wants(t.to_address_raw))

        return BlockData(height=height, timestamp=_ms(header.get("timestamp")), transfers=transfers)

    async def probe(self) -> dict[str, bool]:
        return await self._pool.probe("POST", "/wallet/getnowblock", json={})
