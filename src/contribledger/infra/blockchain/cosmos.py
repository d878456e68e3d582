"""Cosmos SDK REST (LCD / gRPC-gateway) adapter for atom."""

import logging
from datetime import datetime

from contribledger.domain.models.chain_data import BlockData, RawTransfer, TxLookup
from contribledger.exceptions import NotFoundError, RpcError
from contribledger.infra.blockchain.base import ChainAdapter, WantsFn, expect_dict

logger = logging.getLogger(__name__)

NATIVE_DENOM = "uatom"
MSG_SEND = "/cosmos.bank.v1beta1.MsgSend"
MSG_MULTI_SEND = "/cosmos.bank.v1beta1.MsgMultiSend"
MSG_EXEC = "/cosmos.authz.v1beta1.MsgExec"
PAGE_LIMIT = 100


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _native_amount(coins: list[dict] | None) -> int:
    total = 0
    for coin in coins or []:
        if str(coin.get("denom", "")).lower() == NATIVE_DENOM:
            total += int(coin.get("amount") or 0)
    return total


def extract_transfers(messages: list[dict], tx_hash: str, unwrap: bool = True) -> list[RawTransfer]:
    """MsgSend / MsgMultiSend outputs in the native denom; MsgExec is opened one level only."""
    out: list[RawTransfer] = []
    for msg in messages or []:
        kind = msg.get("@type", "")
        if kind == MSG_SEND:
            amount = _native_amount(msg.get("amount"))
            if amount > 0 and msg.get("to_address"):
                out.append(RawTransfer(to_address_raw=msg["to_address"], amount_native=amount, tx_hash=tx_hash))
        elif kind == MSG_MULTI_SEND:
            for output in msg.get("outputs") or []:
                amount = _native_amount(output.get("coins"))
                if amount > 0 and output.get("address"):
                    out.append(RawTransfer(to_address_raw=output["address"], amount_native=amount, tx_hash=tx_hash))
        elif kind == MSG_EXEC and unwrap:
            out.extend(extract_transfers(msg.get("msgs") or [], tx_hash, unwrap=False))
    return out


def _messages(tx_response: dict, tx: dict | None = None) -> list[dict]:
    body = (tx_response.get("tx") or tx or {}).get("body") or {}
    return body.get("messages") or []


class CosmosAdapter(ChainAdapter):
    async def get_tip(self) -> int:
        data = await self._pool.get("/cosmos/base/tendermint/v1beta1/blocks/latest")
        data = expect_dict(data, "atom latest block")
        block = data.get("block") or data.get("sdk_block") or {}
        height = (block.get("header") or {}).get("height")
        if height is None:
            raise RpcError("atom: latest block carried no height")
        return int(height)

    async def get_tx_by_hash(self, tx_hash: str) -> TxLookup:
        try:
            data = await self._pool.get(f"/cosmos/tx/v1beta1/txs/{tx_hash}")
        except NotFoundError:
            return TxLookup(found=False)
        data = expect_dict(data, "atom tx")

        resp = data.get("tx_response")
        if not resp:
            return TxLookup(found=False)

        height = int(resp.get("height") or 0) or None
        timestamp = _parse_time(resp.get("timestamp"))
        if int(resp.get("code") or 0) != 0:
            return TxLookup(found=True, confirmed_height=height, timestamp=timestamp, failed=True)

        return TxLookup(
            found=True,
            confirmed_height=height,
            transfers=extract_transfers(_messages(resp, data.get("tx")), tx_hash.upper()),
            timestamp=timestamp,
        )

    async def get_block(self, height: int, wants: WantsFn | None = None) -> BlockData:
        transfers: list[RawTransfer] = []
        timestamp: datetime | None = None
        page = 1
        seen = 0
        while True:
            data = await self._pool.get(
                "/cosmos/tx/v1beta1/txs",
                params={"query": f"tx.height={height}", "page": str(page), "limit": str(PAGE_LIMIT)},
            )
            data = expect_dict(data, f"atom txs at {height}")
            responses = data.get("tx_responses") or []
            txs = data.get("txs") or []
            for i, resp in enumerate(responses):
                timestamp = timestamp or _parse_time(resp.get("timestamp"))
                if int(resp.get("code") or 0) != 0:
                    continue
                tx = txs[i] if i < len(txs) else None
                txhash = str(resp.get("txhash", "")).upper()
                for t in extract_transfers(_messages(resp, tx), txhash):
                    if wants is None or wants(t.to_address_raw):
                        transfers.append(t)

            seen += len(responses)
            total = int((data.get("pagination") or {}).get("total") or data.get("total") or 0)
            if not responses or seen >= total or len(responses) < PAGE_LIMIT:
                break
            page += 1

        return BlockData(height=height, timestamp=timestamp, transfers=transfers)

    async def probe(self) -> dict[str, bool]:
        return await self._pool.probe("GET", "/cosmos/base/tendermint/v1beta1/blocks/latest")
