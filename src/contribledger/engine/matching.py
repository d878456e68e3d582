"""Turn raw transfers into ledger drafts for monitored wallets."""

import uuid
from datetime import datetime

from pydantic import BaseModel

from contribledger.domain.amounts import to_canonical
from contribledger.domain.chains import ChainSpec, natural_key
from contribledger.domain.enums import ContributionSource
from contribledger.domain.models.chain_data import RawTransfer
from contribledger.domain.models.ledger import ContributionDraft
from contribledger.engine.registry import AddressRegistry
from contribledger.ledger.gateway import MonitoredWallet


class MatchedTransfer(BaseModel):
    tx_hash: str
    wallet: MonitoredWallet
    amount_native: int


def match_transfers(spec: ChainSpec, registry: AddressRegistry, transfers: list[RawTransfer]) -> list[MatchedTransfer]:
    """Per-wallet chains: sum every transfer to the same wallet within a transaction.
    Per-transaction chains: first matching transfer of each transaction only.
    """
    matches: dict[tuple[str, uuid.UUID | None], MatchedTransfer] = {}
    for transfer in transfers:
        wallet = registry.lookup(transfer.to_address_raw)
        if wallet is None:
            continue
        if spec.per_wallet:
            key = (transfer.tx_hash, wallet.id)
            existing = matches.get(key)
            if existing is not None:
                existing.amount_native += transfer.amount_native
                continue
        else:
            key = (transfer.tx_hash, None)
            if key in matches:
                continue
        matches[key] = MatchedTransfer(tx_hash=transfer.tx_hash, wallet=wallet, amount_native=transfer.amount_native)
    return list(matches.values())


def build_drafts(
    spec: ChainSpec,
    matches: list[MatchedTransfer],
    block_time: datetime | None,
    block_height: int | None,
    note: str | None = None,
    source: ContributionSource = ContributionSource.CLAIM,
) -> list[ContributionDraft]:
    return [
        ContributionDraft(
            wallet_id=m.wallet.id,
            chain=spec.chain,
            tx_hash=m.tx_hash,
            natural_key=natural_key(spec.chain, m.tx_hash, m.wallet.id),
            amount=to_canonical(m.amount_native, spec.decimals),
            block_time=block_time,
            block_height=block_height,
            note=note,
            source=source,
            symbol=m.wallet.symbol or spec.symbol,
        )
        for m in matches
    ]
