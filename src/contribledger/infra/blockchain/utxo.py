"""Bitcoin-style JSON-RPC adapter (btc, ltc, doge).

Expects a bitcoind-compatible node (or a hosted one such as NOWNodes) with
``txindex`` so ``getrawtransaction`` can serve confirmed transactions.
"""

import logging
from datetime import UTC, datetime
from decimal import Decimal

from contribledger.domain.amounts import decimal_to_native
from contribledger.domain.models.chain_data import BlockData, RawTransfer, TxLookup
from contribledger.exceptions import JsonRpcError, RpcError
from contribledger.infra.blockchain.base import ChainAdapter, WantsFn, expect_dict

logger = logging.getLogger(__name__)

# RPC_INVALID_ADDRESS_OR_KEY: "No such mempool or blockchain transaction"
RPC_NOT_FOUND = -5


def _output_address(vout: dict) -> str | None:
    script = vout.get("scriptPubKey") or {}
    if script.get("address"):
        return script["address"]
    addresses = script.get("addresses") or []
    # Bare multisig outputs list several keys; only single-destination outputs count
    if len(addresses) == 1:
        return addresses[0]
    return None


def _to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class UTXOAdapter(ChainAdapter):
    def _transfers(self, tx: dict) -> list[RawTransfer]:
        txid = str(tx.get("txid", "")).lower()
        out: list[RawTransfer] = []
        for vout in tx.get("vout") or []:
            address = _output_address(vout)
            if address is None or vout.get("value") is None:
                continue
            amount = decimal_to_native(_to_decimal(vout["value"]), self.spec.decimals)
            if amount <= 0:
                continue
            out.append(RawTransfer(to_address_raw=address, amount_native=amount, tx_hash=txid))
        return out

    async def get_tip(self) -> int:
        count = await self._pool.rpc("getblockcount")
        if count is None:
            raise RpcError(f"{self.spec.slug}: getblockcount returned null")
        return int(count)

    async def get_tx_by_hash(self, tx_hash: str) -> TxLookup:
        try:
            tx = await self._pool.rpc("getrawtransaction", [tx_hash, True])
        except JsonRpcError as e:
            if e.code == RPC_NOT_FOUND:
                return TxLookup(found=False)
            raise
        if not tx:
            return TxLookup(found=False)
        tx = expect_dict(tx, f"{self.spec.slug} getrawtransaction")

        block_hash = tx.get("blockhash")
        if not block_hash:
            return TxLookup(found=True, transfers=self._transfers(tx))

        header = await self._pool.rpc("getblockheader", [block_hash, True])
        header = expect_dict(header, f"{self.spec.slug} getblockheader")
        height = int(header["height"])
        block_time = tx.get("blocktime") or header.get("time")
        return TxLookup(
            found=True,
            confirmed_height=height,
            transfers=self._transfers(tx),
            timestamp=datetime.fromtimestamp(int(block_time), tz=UTC) if block_time else None,
        )

    async def get_block(self, height: int, wants: WantsFn | None = None) -> BlockData:
        block_hash = await self._pool.rpc("getblockhash", [height])
        if not block_hash:
            raise RpcError(f"{self.spec.slug}: no block hash for {height}")
        block = expect_dict(await self._pool.rpc("getblock", [block_hash, 2]), f"{self.spec.slug} getblock {height}")

        transfers: list[RawTransfer] = []
        for tx in block.get("tx") or []:
            if isinstance(tx, str):
                # Node ignored verbosity=2 and returned txids only
                tx = expect_dict(
                    await self._pool.rpc("getrawtransaction", [tx, True, block_hash]), f"{self.spec.slug} getrawtransaction"
                )
            transfers.extend(t for t in self._transfers(tx) if wants is None or wants(t.to_address_raw))

        block_time = block.get("time")
        return BlockData(
            height=height,
            timestamp=datetime.fromtimestamp(int(block_time), tz=UTC) if block_time else None,
            transfers=transfers,
        )

    async def probe(self) -> dict[str, bool]:
        return await self._pool.probe(
            "POST", json={"jsonrpc": "2.0", "id": 1, "method": "getblockcount", "params": []}, rpc=True
        )
