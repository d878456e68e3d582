from abc import ABC, abstractmethod
from decimal import Decimal


class PriceOracle(ABC):
    """Best-effort spot USD prices. Never authoritative."""

    @abstractmethod
    async def get_usd_prices(self, symbols: list[str]) -> dict[str, Decimal]:
        """Return {SYMBOL: usd_price} for the symbols it could price; missing symbols are omitted."""
