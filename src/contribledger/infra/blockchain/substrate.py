"""Substrate (Polkadot) adapter for dot.

Heads and block hashes come over plain JSON-RPC through the endpoint pool.
Extrinsic and event decoding needs the runtime metadata, which is delegated to
py-substrate-interface (``pip install contribledger[substrate]``).

Substrate nodes cannot look up an extrinsic by hash, so every scanned transfer
extrinsic is recorded in an ExtrinsicIndex (Redis) that claims read from. The
index also keeps the highest scanned height; a miss only means "not found" once
that watermark has reached the finalized head.
"""

import asyncio
import json
import logging
from datetime import UTC, datetime
from typing import Any, Protocol

from contribledger.domain.models.chain_data import BlockData, RawTransfer, TxLookup
from contribledger.exceptions import RpcError
from contribledger.infra.blockchain.base import ChainAdapter, WantsFn, expect_dict
from contribledger.infra.http.endpoint_pool import EndpointPool

logger = logging.getLogger(__name__)

TRANSFER_CALLS = {"transfer", "transfer_keep_alive", "transfer_allow_death"}
BATCH_CALLS = {"batch", "batch_all", "force_batch"}
INDEX_TTL_SECONDS = 60 * 60 * 24 * 14


def _arg(call: dict, name: str) -> Any:
    for arg in call.get("call_args") or []:
        if arg.get("name") == name:
            return arg.get("value")
    return None


def _dest(value: Any) -> str | None:
    # MultiAddress decodes as {"Id": "1..."}; older runtimes give the bare SS58 string
    if isinstance(value, dict):
        value = value.get("Id") or value.get("Address32")
    return value if isinstance(value, str) and value else None


def _is_transfer(call: dict) -> bool:
    return call.get("call_module") == "Balances" and call.get("call_function") in TRANSFER_CALLS


def _events_for(events: list[dict], idx: int) -> list[dict]:
    return [e for e in events if e.get("extrinsic_idx") == idx]


def _executed_batch_items(call: dict, ext_events: list[dict]) -> list[int]:
    """Indices of batch items that actually executed, judged from Utility events."""
    calls = _arg(call, "calls") or []
    fn = call.get("call_function")
    if fn == "batch":
        for e in ext_events:
            if e.get("module_id") == "Utility" and e.get("event_id") == "BatchInterrupted":
                attrs = e.get("attributes") or {}
                stop = attrs.get("index") if isinstance(attrs, dict) else None
                return list(range(int(stop or 0)))
        return list(range(len(calls)))
    if fn == "force_batch":
        outcomes = [
            e.get("event_id") == "ItemCompleted"
            for e in ext_events
            if e.get("module_id") == "Utility" and e.get("event_id") in ("ItemCompleted", "ItemFailed")
        ]
        if len(outcomes) == len(calls):
            return [i for i, ok in enumerate(outcomes) if ok]
    # batch_all is atomic: success of the extrinsic means every item ran
    return list(range(len(calls)))


def extract_block(extrinsics: list[dict], events: list[dict]) -> tuple[datetime | None, dict[str, list[RawTransfer]]]:
    """Decode balance transfers per extrinsic hash. Utility batches are opened one level only."""
    timestamp: datetime | None = None
    by_hash: dict[str, list[RawTransfer]] = {}

    for idx, ext in enumerate(extrinsics):
        call = ext.get("call") or {}
        if call.get("call_module") == "Timestamp" and call.get("call_function") == "set":
            now = _arg(call, "now")
            if now is not None:
                timestamp = datetime.fromtimestamp(int(now) / 1000, tz=UTC)
            continue

        ext_hash = ext.get("extrinsic_hash")
        if not ext_hash:
            continue
        ext_hash = str(ext_hash).lower()
        if not ext_hash.startswith("0x"):
            ext_hash = "0x" + ext_hash

        ext_events = _events_for(events, idx)
        if any(e.get("module_id") == "System" and e.get("event_id") == "ExtrinsicFailed" for e in ext_events):
            continue

        calls: list[dict] = []
        if _is_transfer(call):
            calls = [call]
        elif call.get("call_module") == "Utility" and call.get("call_function") in BATCH_CALLS:
            inner = _arg(call, "calls") or []
            calls = [inner[i] for i in _executed_batch_items(call, ext_events) if i < len(inner) and _is_transfer(inner[i])]

        transfers = []
        for c in calls:
            dest = _dest(_arg(c, "dest"))
            amount = int(_arg(c, "value") or 0)
            if dest and amount > 0:
                transfers.append(RawTransfer(to_address_raw=dest, amount_native=amount, tx_hash=ext_hash))
        if transfers:
            by_hash[ext_hash] = transfers

    return timestamp, by_hash


class BlockDecoder(Protocol):
    async def decode(self, block_hash: str) -> tuple[list[dict], list[dict]]:
        """Return (extrinsics, events) as plain dicts for a block."""


class SubstrateInterfaceDecoder:
    """Runs py-substrate-interface (blocking) in a worker thread, trying each URL in order."""

    def __init__(self, urls: list[str]) -> None:
        self._urls = urls
        self._clients: dict[str, Any] = {}

    def _client(self, url: str):
        if url not in self._clients:
            from substrateinterface import SubstrateInterface

            self._clients[url] = SubstrateInterface(url=url)
        return self._clients[url]

    def _decode_sync(self, block_hash: str) -> tuple[list[dict], list[dict]]:
        last_error: Exception | None = None
        for url in self._urls:
            try:
                substrate = self._client(url)
                block = substrate.get_block(block_hash=block_hash)
                events = substrate.get_events(block_hash=block_hash)
                extrinsics = [getattr(x, "value", x) for x in block.get("extrinsics") or []]
                return extrinsics, [getattr(e, "value", e) for e in events]
            except Exception as e:
                logger.warning("Substrate decode of %s failed on one endpoint: %s", block_hash, type(e).__name__)
                self._clients.pop(url, None)
                last_error = e
        raise RpcError(f"dot: could not decode block {block_hash}") from last_error

    async def decode(self, block_hash: str) -> tuple[list[dict], list[dict]]:
        return await asyncio.to_thread(self._decode_sync, block_hash)


class ExtrinsicIndex:
    """Redis map extrinsic hash -> {height, timestamp, transfers}, filled by scans."""

    def __init__(
        self, redis, prefix: str = "dot:tx:", ttl: int = INDEX_TTL_SECONDS, watermark_key: str = "dot:scanned"
    ) -> None:
        self._redis = redis
        self._prefix = prefix
        self._ttl = ttl
        self._watermark_key = watermark_key

    async def put(self, ext_hash: str, height: int, timestamp: datetime | None, transfers: list[RawTransfer]) -> None:
        value = {
            "height": height,
            "timestamp": timestamp.isoformat() if timestamp else None,
            "transfers": [{"to": t.to_address_raw, "amount": str(t.amount_native)} for t in transfers],
        }
        await self._redis.set(self._prefix + ext_hash, json.dumps(value), ex=self._ttl)

    async def get(self, ext_hash: str) -> TxLookup | None:
        raw = await self._redis.get(self._prefix + ext_hash)
        if raw is None:
            return None
        data = json.loads(raw)
        return TxLookup(
            found=True,
            confirmed_height=data.get("height"),
            timestamp=datetime.fromisoformat(data["timestamp"]) if data.get("timestamp") else None,
            transfers=[
                RawTransfer(to_address_raw=t["to"], amount_native=int(t["amount"]), tx_hash=ext_hash)
                for t in data.get("transfers") or []
            ],
        )

    async def scanned_height(self) -> int | None:
        raw = await self._redis.get(self._watermark_key)
        return int(raw) if raw is not None else None

    async def mark_scanned(self, height: int) -> None:
        """Raise the watermark; rescans of older heights leave it where it is."""
        current = await self.scanned_height()
        if current is None or height > current:
            await self._redis.set(self._watermark_key, height)


class SubstrateAdapter(ChainAdapter):
    """Tip is the finalized head, so min_confirmations defaults to 0."""

    def __init__(self, spec, pool: EndpointPool, decoder: BlockDecoder, index: ExtrinsicIndex, min_confirmations=None) -> None:
        super().__init__(spec, pool, min_confirmations)
        self._decoder = decoder
        self._index = index

    async def get_tip(self) -> int:
        head = await self._pool.rpc("chain_getFinalizedHead")
        if not head:
            raise RpcError("dot: chain_getFinalizedHead returned null")
        header = expect_dict(await self._pool.rpc("chain_getHeader", [head]), "dot chain_getHeader")
        if not header.get("number"):
            raise RpcError("dot: finalized header carried no number")
        return int(header["number"], 16)

    async def get_tx_by_hash(self, tx_hash: str) -> TxLookup:
        lookup = await self._index.get(tx_hash.lower())
        if lookup is not None:
            return lookup
        scanned = await self._index.scanned_height()
        if scanned is not None and scanned >= await self.get_tip():
            return TxLookup(found=False)
        # The scanner is behind the finalized head, so the extrinsic may sit in a block it has not read yet
        logger.info("dot: %s not indexed yet (scanned through %s)", tx_hash, scanned)
        return TxLookup(found=True)

    async def get_block(self, height: int, wants: WantsFn | None = None) -> BlockData:
        block_hash = await self._pool.rpc("chain_getBlockHash", [height])
        if not block_hash:
            raise RpcError(f"dot: no block hash for {height}")
        extrinsics, events = await self._decoder.decode(block_hash)
        timestamp, by_hash = extract_block(extrinsics, events)

        transfers: list[RawTransfer] = []
        for ext_hash, ext_transfers in by_hash.items():
            await self._index.put(ext_hash, height, timestamp, ext_transfers)
            transfers.extend(t for t in ext_transfers if wants is None or wants(t.to_address_raw))
        await self._index.mark_scanned(height)

        return BlockData(height=height, timestamp=timestamp, transfers=transfers)

    async def probe(self) -> dict[str, bool]:
        return await self._pool.probe(
            "POST", json={"jsonrpc": "2.0", "id": 1, "method": "chain_getFinalizedHead", "params": []}, rpc=True
        )
