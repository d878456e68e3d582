"""Build a ChainAdapter for a chain from settings."""

import logging
from decimal import Decimal

from contribledger.config import Settings
from contribledger.domain.chains import ChainSpec
from contribledger.domain.enums import ChainFamily
from contribledger.infra.blockchain.base import ChainAdapter
from contribledger.infra.blockchain.cosmos import CosmosAdapter
from contribledger.infra.blockchain.evm import EVMAdapter
from contribledger.infra.blockchain.solana import SolanaAdapter
from contribledger.infra.blockchain.stellar import StellarAdapter
from contribledger.infra.blockchain.substrate import ExtrinsicIndex, SubstrateAdapter, SubstrateInterfaceDecoder
from contribledger.infra.blockchain.tron import TronAdapter
from contribledger.infra.blockchain.utxo import UTXOAdapter
from contribledger.infra.blockchain.xrpl import XRPLAdapter
from contribledger.infra.http.auth import build_auth
from contribledger.infra.http.endpoint_pool import Endpoint, EndpointPool
from contribledger.infra.http.rate_limited_client import RateLimitedClient

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINTS: dict[str, str] = {
    "eth": "https://ethereum-rpc.publicnode.com",
    "arb": "https://arbitrum-one-rpc.publicnode.com",
    "op": "https://optimism-rpc.publicnode.com",
    "pol": "https://polygon-bor-rpc.publicnode.com",
    "avax": "https://avalanche-c-chain-rpc.publicnode.com/ext/bc/C/rpc",
    "bsc": "https://bsc-rpc.publicnode.com",
    "btc": "https://btc.nownodes.io",
    "ltc": "https://ltc.nownodes.io",
    "doge": "https://doge.nownodes.io",
    "trx": "https://api.trongrid.io",
    "atom": "https://cosmos-rest.publicnode.com",
    "xlm": "https://horizon.stellar.org",
    "dot": "https://rpc.polkadot.io",
    "sol": "https://api.mainnet-beta.solana.com",
    "xrp": "https://xrplcluster.com",
}

# How each default provider expects its key
DEFAULT_AUTH: dict[str, str] = {
    "btc": "header:api-key",
    "ltc": "header:api-key",
    "doge": "header:api-key",
    "trx": "header:TRON-PRO-API-KEY",
}

ADAPTERS: dict[ChainFamily, type[ChainAdapter]] = {
    ChainFamily.EVM: EVMAdapter,
    ChainFamily.UTXO: UTXOAdapter,
    ChainFamily.COSMOS: CosmosAdapter,
    ChainFamily.STELLAR: StellarAdapter,
    ChainFamily.TRON: TronAdapter,
    ChainFamily.SOLANA: SolanaAdapter,
    ChainFamily.XRPL: XRPLAdapter,
}


def endpoint_urls(spec: ChainSpec, settings: Settings) -> list[str]:
    raw = settings.chain_endpoints.get(spec.slug) or DEFAULT_ENDPOINTS[spec.slug]
    return [u.strip() for u in raw.split(",") if u.strip()]


def build_pool(spec: ChainSpec, settings: Settings, http_client: RateLimitedClient) -> EndpointPool:
    api_key = settings.chain_api_keys.get(spec.slug) or settings.provider_api_key
    auth_spec = settings.chain_auth.get(spec.slug) or DEFAULT_AUTH.get(spec.slug) or settings.provider_auth
    auth = build_auth(auth_spec, api_key)
    return EndpointPool(
        name=spec.slug,
        endpoints=[Endpoint(url, auth) for url in endpoint_urls(spec, settings)],
        http_client=http_client,
        timeout=settings.rpc_timeout,
        retries=settings.rpc_retries,
        backoff_seconds=settings.rpc_backoff,
        json_kwargs={"parse_float": Decimal} if spec.family == ChainFamily.UTXO else None,
    )


def build_adapter(
    spec: ChainSpec,
    settings: Settings,
    http_client: RateLimitedClient,
    redis_client=None,
    min_confirmations: int | None = None,
) -> ChainAdapter:
    """min_confirmations: per-request override, else settings override, else the chain default."""
    if min_confirmations is None:
        min_confirmations = settings.min_confirmations.get(spec.slug)
    pool = build_pool(spec, settings, http_client)

    if spec.family == ChainFamily.SUBSTRATE:
        if redis_client is None:
            import redis.asyncio as aioredis

            redis_client = aioredis.from_url(settings.redis_url)
        return SubstrateAdapter(
            spec,
            pool,
            decoder=SubstrateInterfaceDecoder(endpoint_urls(spec, settings)),
            index=ExtrinsicIndex(redis_client),
            min_confirmations=min_confirmations,
        )

    return ADAPTERS[spec.family](spec, pool, min_confirmations=min_confirmations)
