"""CoinGecko spot price oracle (/simple/price)."""

import asyncio
import logging
from decimal import Decimal

import httpx

from contribledger.infra.http.rate_limited_client import RateLimitedClient
from contribledger.infra.price.oracle import PriceOracle

logger = logging.getLogger(__name__)

# Ledger symbol -> CoinGecko ID
SYMBOL_TO_COINGECKO: dict[str, str] = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "POL": "polygon-ecosystem-token",
    "MATIC": "matic-network",
    "OP": "optimism",
    "ARB": "arbitrum",
    "AVAX": "avalanche-2",
    "BNB": "binancecoin",
    "DOT": "polkadot",
    "ATOM": "cosmos",
    "XLM": "stellar",
    "LTC": "litecoin",
    "DOGE": "dogecoin",
    "TRX": "tron",
    "SOL": "solana",
    "XRP": "ripple",
}

BASE_URL = "https://api.coingecko.com"

MAX_RETRIES = 3


class CoinGeckoOracle(PriceOracle):
    def __init__(self, http_client: RateLimitedClient, api_key: str = "", base_url: str = BASE_URL) -> None:
        self._http = http_client
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")

    async def get_usd_prices(self, symbols: list[str]) -> dict[str, Decimal]:
        """Retries with exponential backoff on 429; returns {} when CoinGecko cannot be reached."""
        wanted = {s.upper(): SYMBOL_TO_COINGECKO[s.upper()] for s in symbols if s.upper() in SYMBOL_TO_COINGECKO}
        if not wanted:
            return {}

        params = {"ids": ",".join(sorted(set(wanted.values()))), "vs_currencies": "usd", "precision": "full"}
        headers: dict[str, str] = {}
        if self._api_key:
            headers["x-cg-demo-api-key"] = self._api_key
        url = f"{self._base_url}/api/v3/simple/price"

        for attempt in range(MAX_RETRIES):
            try:
                response = await self._http.get(url, params=params, headers=headers or None)
            except httpx.HTTPError:
                logger.exception("CoinGecko price fetch failed (attempt %d)", attempt + 1)
                if attempt < MAX_RETRIES - 1:
                    await asyncio.sleep(2**attempt)
                continue

            if response.status_code == 429:
                wait = 2 ** (attempt + 1)  # 2, 4, 8 seconds
                logger.info("CoinGecko 429 rate limit, waiting %ds...", wait)
                await asyncio.sleep(wait)
                continue

            if response.status_code != 200:
                logger.warning("CoinGecko returned %d for %s", response.status_code, ",".join(wanted))
                return {}

            data = response.json()
            prices: dict[str, Decimal] = {}
            for symbol, cg_id in wanted.items():
                usd = (data.get(cg_id) or {}).get("usd")
                if usd is not None:
                    prices[symbol] = Decimal(str(usd))
            return prices

        logger.warning("CoinGecko exhausted retries for %s", ",".join(wanted))
        return {}
