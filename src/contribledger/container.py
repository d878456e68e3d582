import redis.asyncio as aioredis
from dependency_injector import containers, providers

from contribledger.config import Settings
from contribledger.db.session import build_engine, build_session_factory
from contribledger.engine.pricing import PricingService
from contribledger.infra.http.rate_limited_client import RateLimitedClient
from contribledger.infra.price.coingecko import CoinGeckoOracle
from contribledger.ledger.sql_gateway import SqlPersistenceGateway


class Container(containers.DeclarativeContainer):
    wiring_config = containers.WiringConfiguration(modules=["contribledger.api.deps"])

    settings = providers.Singleton(Settings)

    engine = providers.Singleton(
        build_engine,
        database_url=settings.provided.database_url,
        echo=settings.provided.debug,
    )

    session_factory = providers.Singleton(
        build_session_factory,
        engine=engine,
    )

    http_client = providers.Singleton(
        RateLimitedClient,
        rate_per_second=settings.provided.rpc_rate_per_second,
        timeout=settings.provided.rpc_timeout,
    )

    redis_client = providers.Singleton(aioredis.from_url, settings.provided.redis_url)

    gateway = providers.Singleton(SqlPersistenceGateway, session_factory=session_factory)

    price_oracle = providers.Singleton(
        CoinGeckoOracle,
        http_client=http_client,
        api_key=settings.provided.coingecko_api_key,
        base_url=settings.provided.coingecko_api_base,
    )

    pricing = providers.Singleton(
        PricingService,
        oracle=price_oracle,
        gateway=gateway,
        timeout=settings.provided.pricing_timeout,
    )
