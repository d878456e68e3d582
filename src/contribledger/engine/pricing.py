"""Best-effort USD valuation attached after a row is written."""

import asyncio
import logging
from datetime import UTC, datetime
from decimal import Decimal

from contribledger.infra.price.oracle import PriceOracle
from contribledger.ledger.gateway import PersistenceGateway

logger = logging.getLogger(__name__)

USD_QUANT = Decimal("0.00000001")


class PricingService:
    """Fire-and-forget: failures and timeouts are logged and never reach the caller."""

    def __init__(self, oracle: PriceOracle, gateway: PersistenceGateway, timeout: float = 10.0) -> None:
        self._oracle = oracle
        self._gateway = gateway
        self._timeout = timeout
        self._tasks: set[asyncio.Task] = set()

    def schedule(self, contribution_id: int, symbol: str, amount: str) -> None:
        task = asyncio.create_task(self.price(contribution_id, symbol, amount))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def price(self, contribution_id: int, symbol: str, amount: str) -> Decimal | None:
        try:
            prices = await asyncio.wait_for(self._oracle.get_usd_prices([symbol]), timeout=self._timeout)
            unit_price = prices.get(symbol.upper())
            if unit_price is None:
                logger.info("No USD price for %s; contribution %s left unpriced", symbol, contribution_id)
                return None
            amount_usd = (Decimal(amount) * unit_price).quantize(USD_QUANT)
            await self._gateway.set_price(contribution_id, amount_usd, datetime.now(UTC))
            return amount_usd
        except Exception:
            logger.exception("Pricing failed for contribution %s (%s)", contribution_id, symbol)
            return None

    async def drain(self) -> None:
        """Wait for scheduled pricing tasks (shutdown and tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
