"""Background indexer: scan a safe window of heights past the cursor, write idempotently, checkpoint."""

import logging
import time
import uuid
from typing import Callable

from pydantic import BaseModel

from contribledger.domain.enums import ContributionSource
from contribledger.domain.models.ledger import ContributionDraft, ScanResult
from contribledger.engine.matching import build_drafts, match_transfers
from contribledger.engine.pricing import PricingService
from contribledger.engine.registry import AddressRegistry
from contribledger.infra.blockchain.base import ChainAdapter
from contribledger.ledger.gateway import PersistenceGateway

logger = logging.getLogger(__name__)


class ScanOptions(BaseModel):
    """Per-run overrides. since_height wins over since_hours; both win over the stored cursor."""

    since_height: int | None = None
    since_hours: float | None = None
    max_blocks: int | None = None
    min_conf: int | None = None
    overlap: int = 0


class ScannerEngine:
    def __init__(
        self,
        adapter: ChainAdapter,
        gateway: PersistenceGateway,
        pricing: PricingService | None = None,
        max_blocks: int = 200,
        checkpoint_every: int = 5,
        budget_seconds: float = 50.0,
        lease_ttl: int = 120,
        default_lookback: int | None = None,
        clock: Callable[[], float] = time.monotonic,
        owner: str | None = None,
    ) -> None:
        self._adapter = adapter
        self._gateway = gateway
        self._pricing = pricing
        self._max_blocks = max(1, max_blocks)
        self._checkpoint_every = max(1, checkpoint_every)
        self._budget = budget_seconds
        self._lease_ttl = lease_ttl
        self._lookback = default_lookback if default_lookback is not None else adapter.spec.default_lookback
        self._clock = clock
        self._owner = owner or uuid.uuid4().hex
        self.spec = adapter.spec

    async def run(self, options: ScanOptions | None = None) -> ScanResult:
        chain = self.spec.chain
        if not await self._gateway.acquire_lease(chain, self._owner, self._lease_ttl):
            logger.info("Scan of %s skipped: another run holds the lease", chain.value)
            return ScanResult(chain=chain, skipped=True, reason="lease_held")
        try:
            return await self._run(options or ScanOptions())
        finally:
            await self._gateway.release_lease(chain, self._owner)

    def _window(self, options: ScanOptions, tip: int, safe_tip: int, cursor: int | None) -> tuple[int, int]:
        if options.since_height is not None:
            start = options.since_height
        elif options.since_hours is not None:
            back = int(options.since_hours * 3600 / self.spec.avg_block_seconds)
            start = safe_tip - back
        else:
            if cursor is None:
                cursor = tip - self._lookback
                logger.info("No %s cursor yet; bootstrapping at %d", self.spec.slug, cursor)
            start = cursor + 1 - max(0, options.overlap)
        start = max(0, start)
        max_blocks = max(1, options.max_blocks or self._max_blocks)
        return start, min(safe_tip, start + max_blocks - 1)

    async def _flush(self, pending: list[ContributionDraft]) -> int:
        if not pending:
            return 0
        inserted = await self._gateway.insert_many_ignore_conflicts(pending)
        if self._pricing is not None:
            for draft in pending:
                row_id = inserted.get(draft.natural_key)
                if row_id is not None:
                    self._pricing.schedule(row_id, draft.symbol or self.spec.symbol, draft.amount)
        pending.clear()
        return len(inserted)

    async def _run(self, options: ScanOptions) -> ScanResult:
        spec = self.spec
        deadline = self._clock() + self._budget
        min_conf = options.min_conf if options.min_conf is not None else self._adapter.min_confirmations

        tip = await self._adapter.get_tip()
        safe_tip = tip - min_conf
        cursor = await self._gateway.get_cursor(spec.chain)
        start, end = self._window(options, tip, safe_tip, cursor)

        result = ScanResult(chain=spec.chain, from_height=start, to_height=end, tip=tip, safe_tip=safe_tip)
        if end < start:
            logger.info("%s: nothing to scan (next=%d, safe tip=%d)", spec.slug, start, safe_tip)
            result.to_height = start - 1
            return result

        registry = await AddressRegistry.load(self._gateway, spec.chain)
        pending: list[ContributionDraft] = []
        last_done: int | None = None
        since_checkpoint = 0

        async for block in self._adapter.get_block_range(start, end, wants=registry.wants):
            if block.failed:
                # Skipped, but the cursor still moves past it
                logger.error("%s: giving up on height %d: %s", spec.slug, block.height, block.error)
                result.partial = True
                result.failed_heights.append(block.height)
            else:
                matches = match_transfers(spec, registry, block.transfers)
                result.matched += len(matches)
                pending.extend(
                    build_drafts(spec, matches, block.timestamp, block.height, source=ContributionSource.SCAN)
                )

            result.scanned += 1
            last_done = block.height
            since_checkpoint += 1

            if since_checkpoint >= self._checkpoint_every:
                # Rows first, then the cursor: a crash can only cause a rescan, never a gap
                result.inserted += await self._flush(pending)
                await self._gateway.set_cursor(spec.chain, last_done)
                since_checkpoint = 0

            if block.height < end and self._clock() >= deadline:
                logger.warning("%s: run budget exhausted at height %d of %d", spec.slug, block.height, end)
                result.deadline_reached = True
                result.partial = True
                break

        result.inserted += await self._flush(pending)
        if last_done is not None:
            await self._gateway.set_cursor(spec.chain, last_done)
            result.to_height = last_done

        logger.info(
            "%s scan %d..%d: scanned=%d matched=%d inserted=%d partial=%s",
            spec.slug, start, result.to_height, result.scanned, result.matched, result.inserted, result.partial,
        )
        return result
