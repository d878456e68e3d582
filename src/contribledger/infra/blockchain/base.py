"""Abstract base for protocol-family chain adapters."""

import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator, Callable

from contribledger.domain.chains import ChainSpec
from contribledger.domain.models.chain_data import BlockData, ConfirmationStatus, TxLookup
from contribledger.exceptions import ExternalServiceError, InvalidAmount, RpcError
from contribledger.infra.http.endpoint_pool import EndpointPool

logger = logging.getLogger(__name__)

# Predicate over raw destination addresses; lets adapters skip per-tx follow-up calls
WantsFn = Callable[[str], bool]

# What a provider answer that does not have the documented shape raises while being read
MALFORMED_ANSWER = (ArithmeticError, AttributeError, IndexError, KeyError, TypeError, ValueError, InvalidAmount)


def expect_dict(value, what: str) -> dict:
    """Guard for RPC results the node may answer with null or a bare scalar."""
    if not isinstance(value, dict):
        raise RpcError(f"{what}: expected an object, got {type(value).__name__}")
    return value


class ChainAdapter(ABC):
    """Strategy interface: one implementation per protocol family."""

    def __init__(self, spec: ChainSpec, pool: EndpointPool, min_confirmations: int | None = None) -> None:
        self.spec = spec
        self._pool = pool
        self.min_confirmations = spec.min_confirmations if min_confirmations is None else min_confirmations

    @property
    def chain(self):
        return self.spec.chain

    @abstractmethod
    async def get_tip(self) -> int:
        """Latest height usable for confirmation math (finalized head where the chain has one)."""

    @abstractmethod
    async def get_tx_by_hash(self, tx_hash: str) -> TxLookup:
        """Fetch one transaction. Returns TxLookup(found=False) for an authoritative miss."""

    @abstractmethod
    async def get_block(self, height: int, wants: WantsFn | None = None) -> BlockData:
        """Fetch all qualifying native transfers at one height. Raises RpcError on failure."""

    async def get_block_range(self, start: int, end: int, wants: WantsFn | None = None) -> AsyncIterator[BlockData]:
        """Yield one BlockData per height, ascending. Failed heights yield a failed marker."""
        for height in range(start, end + 1):
            try:
                yield await self.get_block(height, wants)
            except ExternalServiceError as e:
                logger.warning("%s: block %d unavailable: %s", self.spec.slug, height, e)
                yield BlockData(height=height, failed=True, error=str(e))
            except Exception as e:
                logger.exception("%s: block %d could not be read", self.spec.slug, height)
                yield BlockData(height=height, failed=True, error=f"{type(e).__name__}: {e}")

    async def get_confirmation_status(self, tx_hash: str) -> ConfirmationStatus:
        lookup = await self.get_tx_by_hash(tx_hash)
        if not lookup.found or lookup.confirmed_height is None or lookup.failed:
            return ConfirmationStatus(confirmed=False, height=lookup.confirmed_height)
        tip = await self.get_tip()
        return ConfirmationStatus(confirmed=self.is_safe(lookup.confirmed_height, tip), height=lookup.confirmed_height)

    def is_safe(self, height: int, tip: int) -> bool:
        """A height is final once it sits min_confirmations behind the tip."""
        return height <= tip - self.min_confirmations

    async def probe(self) -> dict[str, bool]:
        return await self._pool.probe()
