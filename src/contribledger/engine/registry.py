"""AddressRegistry: monitored (chain, address) -> wallet, loaded fresh for every run."""

import logging

from contribledger.domain.addresses import try_canonicalize
from contribledger.domain.enums import Chain
from contribledger.ledger.gateway import MonitoredWallet, PersistenceGateway

logger = logging.getLogger(__name__)


class AddressRegistry:
    def __init__(self, chain: Chain, wallets: list[MonitoredWallet]) -> None:
        self.chain = chain
        self._by_address: dict[str, MonitoredWallet] = {}
        for wallet in wallets:
            canonical = try_canonicalize(chain, wallet.address)
            if canonical is None:
                logger.warning("Ignoring wallet %s with undecodable %s address", wallet.id, chain.value)
                continue
            self._by_address[canonical] = wallet

    @classmethod
    async def load(cls, gateway: PersistenceGateway, chain: Chain) -> "AddressRegistry":
        wallets = await gateway.list_active_wallets(chain)
        registry = cls(chain, wallets)
        logger.debug("Loaded %d monitored %s wallets", len(registry), chain.value)
        return registry

    def __len__(self) -> int:
        return len(self._by_address)

    def lookup(self, raw_address: str) -> MonitoredWallet | None:
        canonical = try_canonicalize(self.chain, raw_address)
        if canonical is None:
            return None
        return self._by_address.get(canonical)

    def is_monitored(self, raw_address: str):
        """Wallet id for a monitored address, else None."""
        wallet = self.lookup(raw_address)
        return wallet.id if wallet else None

    def wants(self, raw_address: str) -> bool:
        return self.lookup(raw_address) is not None
