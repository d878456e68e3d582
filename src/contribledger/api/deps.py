from typing import Callable

from dependency_injector.wiring import Provide, inject
from fastapi import Depends

from contribledger.config import Settings
from contribledger.container import Container
from contribledger.domain.chains import ChainSpec
from contribledger.engine.pricing import PricingService
from contribledger.infra.blockchain.base import ChainAdapter
from contribledger.infra.blockchain.factory import build_adapter
from contribledger.infra.http.rate_limited_client import RateLimitedClient
from contribledger.ledger.gateway import PersistenceGateway

AdapterBuilder = Callable[..., ChainAdapter]


@inject
def get_settings(settings: Settings = Depends(Provide[Container.settings])) -> Settings:
    return settings


@inject
def get_gateway(gateway: PersistenceGateway = Depends(Provide[Container.gateway])) -> PersistenceGateway:
    return gateway


@inject
def get_pricing(pricing: PricingService = Depends(Provide[Container.pricing])) -> PricingService:
    return pricing


@inject
def get_adapter_builder(
    settings: Settings = Depends(Provide[Container.settings]),
    http_client: RateLimitedClient = Depends(Provide[Container.http_client]),
    redis_client=Depends(Provide[Container.redis_client]),
) -> AdapterBuilder:
    """Returns builder(spec, min_confirmations=None) -> ChainAdapter sharing the app's HTTP and Redis clients."""

    def builder(spec: ChainSpec, min_confirmations: int | None = None) -> ChainAdapter:
        return build_adapter(spec, settings, http_client, redis_client=redis_client, min_confirmations=min_confirmations)

    return builder
