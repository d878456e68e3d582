"""Celery tasks for background processing."""

import asyncio
import logging

from contribledger.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name="scan_chain", max_retries=2, default_retry_delay=30)
def scan_chain_task(self, chain: str, options: dict | None = None) -> dict:
    """Run one scanner pass for a chain.

    Bridges to async code via asyncio.run(). Each task invocation
    creates its own engine, session factory and HTTP client (no shared state with FastAPI).
    """
    return asyncio.run(_scan_chain_async(chain, options or {}))


async def _scan_chain_async(chain: str, options: dict) -> dict:
    import redis.asyncio as aioredis

    from contribledger.config import settings
    from contribledger.db.session import build_engine, build_session_factory
    from contribledger.domain.chains import resolve_chain
    from contribledger.engine.pricing import PricingService
    from contribledger.engine.scanner import ScannerEngine, ScanOptions
    from contribledger.exceptions import ContribLedgerError
    from contribledger.infra.blockchain.factory import build_adapter
    from contribledger.infra.http.rate_limited_client import RateLimitedClient
    from contribledger.infra.price.coingecko import CoinGeckoOracle
    from contribledger.ledger.sql_gateway import SqlPersistenceGateway

    spec = resolve_chain(chain)
    scan_options = ScanOptions(**options)

    engine = build_engine(settings.database_url, echo=False)
    gateway = SqlPersistenceGateway(build_session_factory(engine))
    redis_client = aioredis.from_url(settings.redis_url)

    try:
        async with RateLimitedClient(rate_per_second=settings.rpc_rate_per_second, timeout=settings.rpc_timeout) as http_client:
            oracle = CoinGeckoOracle(http_client, api_key=settings.coingecko_api_key, base_url=settings.coingecko_api_base)
            pricing = PricingService(oracle, gateway, timeout=settings.pricing_timeout)
            adapter = build_adapter(
                spec, settings, http_client, redis_client=redis_client, min_confirmations=scan_options.min_conf
            )
            scanner = ScannerEngine(
                adapter,
                gateway,
                pricing=pricing,
                max_blocks=settings.scan_max_blocks,
                checkpoint_every=settings.scan_checkpoint_every,
                budget_seconds=settings.scan_budget_seconds,
                lease_ttl=settings.scan_lease_ttl,
                default_lookback=settings.scan_default_lookback,
            )
            try:
                result = await scanner.run(scan_options)
            except ContribLedgerError as e:
                logger.exception("Scan of %s failed", spec.slug)
                return {"status": "error", "chain": spec.slug, "message": str(e)}
            await pricing.drain()

        logger.info("Scan of %s done: %d new contributions", spec.slug, result.inserted)
        return {"status": "ok", **result.model_dump(mode="json")}
    finally:
        await redis_client.aclose()
        await engine.dispose()
