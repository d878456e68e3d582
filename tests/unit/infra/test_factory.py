from decimal import Decimal
from unittest.mock import MagicMock

from contribledger.config import Settings
from contribledger.domain.chains import CHAIN_SPECS
from contribledger.domain.enums import Chain
from contribledger.infra.blockchain.cosmos import CosmosAdapter
from contribledger.infra.blockchain.evm import EVMAdapter
from contribledger.infra.blockchain.factory import build_adapter, build_pool, endpoint_urls
from contribledger.infra.blockchain.solana import SolanaAdapter
from contribledger.infra.blockchain.substrate import SubstrateAdapter
from contribledger.infra.blockchain.utxo import UTXOAdapter
from contribledger.infra.blockchain.xrpl import XRPLAdapter


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


class TestBuildAdapter:
    def test_family_dispatch(self):
        http = MagicMock()
        settings = _settings()
        assert isinstance(build_adapter(CHAIN_SPECS[Chain.OP], settings, http), EVMAdapter)
        assert isinstance(build_adapter(CHAIN_SPECS[Chain.DOGE], settings, http), UTXOAdapter)
        assert isinstance(build_adapter(CHAIN_SPECS[Chain.ATOM], settings, http), CosmosAdapter)
        assert isinstance(build_adapter(CHAIN_SPECS[Chain.SOL], settings, http), SolanaAdapter)
        assert isinstance(build_adapter(CHAIN_SPECS[Chain.XRP], settings, http), XRPLAdapter)

    def test_substrate_uses_given_redis(self):
        adapter = build_adapter(CHAIN_SPECS[Chain.DOT], _settings(), MagicMock(), redis_client=MagicMock())
        assert isinstance(adapter, SubstrateAdapter)

    def test_min_confirmations_precedence(self):
        settings = _settings(min_confirmations={"eth": 6})
        http = MagicMock()
        assert build_adapter(CHAIN_SPECS[Chain.ETH], settings, http).min_confirmations == 6
        assert build_adapter(CHAIN_SPECS[Chain.ETH], settings, http, min_confirmations=1).min_confirmations == 1
        assert build_adapter(CHAIN_SPECS[Chain.BSC], settings, http).min_confirmations == 3


class TestBuildPool:
    def test_configured_endpoints_split_in_order(self):
        settings = _settings(chain_endpoints={"eth": "https://a.example, https://b.example/"})
        assert endpoint_urls(CHAIN_SPECS[Chain.ETH], settings) == ["https://a.example", "https://b.example/"]
        pool = build_pool(CHAIN_SPECS[Chain.ETH], settings, MagicMock())
        assert [e.label for e in pool.endpoints] == ["a.example", "b.example"]

    def test_default_utxo_auth_is_api_key_header(self):
        settings = _settings(provider_api_key="secret")
        pool = build_pool(CHAIN_SPECS[Chain.BTC], settings, MagicMock())
        headers: dict = {}
        pool.endpoints[0].auth.apply(headers, {})
        assert headers == {"api-key": "secret"}
        assert pool._json_kwargs == {"parse_float": Decimal}

    def test_per_chain_auth_override(self):
        settings = _settings(chain_api_keys={"eth": "k"}, chain_auth={"eth": "query:apikey"})
        pool = build_pool(CHAIN_SPECS[Chain.ETH], settings, MagicMock())
        params: dict = {}
        pool.endpoints[0].auth.apply({}, params)
        assert params == {"apikey": "k"}
