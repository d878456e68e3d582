"""Claim-first verification: one submitted transaction id in, one outcome code out.

RECEIVED -> FORMAT_VALIDATED -> DUPLICATE_CHECKED -> FETCHED -> CONFIRMED -> MATCHED -> WRITTEN
with terminal exits invalid_payload, duplicate, tx_not_found, tx_pending,
not_project_wallet, rpc_error and db_error.
"""

import logging

from contribledger.domain.amounts import to_canonical
from contribledger.domain.chains import normalize_tx_hash
from contribledger.domain.enums import ClaimCode, ContributionSource
from contribledger.domain.models.ledger import VerificationResult
from contribledger.engine.matching import build_drafts, match_transfers
from contribledger.engine.pricing import PricingService
from contribledger.engine.registry import AddressRegistry
from contribledger.exceptions import ExternalServiceError, InvalidPayload, NotFoundError, PersistenceError
from contribledger.infra.blockchain.base import MALFORMED_ANSWER, ChainAdapter
from contribledger.ledger.gateway import PersistenceGateway

logger = logging.getLogger(__name__)

NOTE_MAX_LENGTH = 280


def normalize_note(note: str | None) -> str | None:
    if note is None:
        return None
    if not isinstance(note, str):
        raise InvalidPayload("Note must be text.")
    note = note.strip()
    if not note:
        return None
    if len(note) > NOTE_MAX_LENGTH:
        raise InvalidPayload(f"Note must be at most {NOTE_MAX_LENGTH} characters.")
    return note


class VerificationEngine:
    def __init__(
        self,
        adapter: ChainAdapter,
        gateway: PersistenceGateway,
        pricing: PricingService | None = None,
    ) -> None:
        self._adapter = adapter
        self._gateway = gateway
        self._pricing = pricing
        self.spec = adapter.spec

    async def verify(self, tx: str | None, note: str | None = None) -> VerificationResult:
        spec = self.spec
        try:
            tx_hash = normalize_tx_hash(spec, tx)
            note = normalize_note(note)
        except InvalidPayload as e:
            return VerificationResult.of(ClaimCode.INVALID_PAYLOAD, {"chain": spec.slug}, message=str(e))

        data = {"chain": spec.slug, "txHash": tx_hash}

        # Cheap short-circuit; the insert conflict below is the real guard
        try:
            if await self._gateway.exists_by_tx_hash(spec.chain, tx_hash):
                return VerificationResult.of(ClaimCode.DUPLICATE, data)
        except PersistenceError:
            logger.exception("Duplicate pre-check failed for %s %s", spec.slug, tx_hash)
            return VerificationResult.of(ClaimCode.DB_ERROR, data)

        try:
            lookup = await self._adapter.get_tx_by_hash(tx_hash)
            if not lookup.found:
                return VerificationResult.of(ClaimCode.TX_NOT_FOUND, data)
            if lookup.confirmed_height is None:
                return VerificationResult.of(ClaimCode.TX_PENDING, data)
            tip = await self._adapter.get_tip()
        except NotFoundError:
            return VerificationResult.of(ClaimCode.TX_NOT_FOUND, data)
        except ExternalServiceError as e:
            logger.warning("Fetching %s %s failed: %s", spec.slug, tx_hash, e)
            return VerificationResult.of(ClaimCode.RPC_ERROR, data)
        except MALFORMED_ANSWER:
            logger.exception("Unreadable %s answer for %s", spec.slug, tx_hash)
            return VerificationResult.of(ClaimCode.RPC_ERROR, data)

        if not self._adapter.is_safe(lookup.confirmed_height, tip):
            confirmations = max(0, tip - lookup.confirmed_height + 1)
            return VerificationResult.of(
                ClaimCode.TX_PENDING,
                {**data, "confirmations": confirmations, "required": self._adapter.min_confirmations},
            )

        if lookup.failed:
            return VerificationResult.of(ClaimCode.NOT_PROJECT_WALLET, {**data, "reason": "tx_failed"})

        try:
            registry = await AddressRegistry.load(self._gateway, spec.chain)
        except PersistenceError:
            logger.exception("Could not load %s wallets", spec.slug)
            return VerificationResult.of(ClaimCode.DB_ERROR, data)

        transfers = [t.model_copy(update={"tx_hash": tx_hash}) for t in lookup.transfers]
        matches = match_transfers(spec, registry, transfers)
        if not matches:
            return VerificationResult.of(ClaimCode.NOT_PROJECT_WALLET, data)

        drafts = build_drafts(
            spec, matches, lookup.timestamp, lookup.confirmed_height, note=note, source=ContributionSource.CLAIM
        )

        inserted = []
        try:
            for draft, match in zip(drafts, matches):
                row_id = await self._gateway.insert_if_absent(draft)
                if row_id is not None:
                    inserted.append((row_id, draft, match))
        except PersistenceError:
            return VerificationResult.of(ClaimCode.DB_ERROR, data)

        if not inserted:
            return VerificationResult.of(ClaimCode.DUPLICATE, data)

        logger.info("Recorded %s %s for %d wallet(s)", spec.slug, tx_hash, len(inserted))
        if self._pricing is not None:
            for row_id, draft, _ in inserted:
                self._pricing.schedule(row_id, draft.symbol or spec.symbol, draft.amount)

        total = sum(m.amount_native for _, _, m in inserted)
        return VerificationResult.of(
            ClaimCode.INSERTED,
            {
                **data,
                "amount": to_canonical(total, spec.decimals),
                "symbol": spec.symbol,
                "blockHeight": lookup.confirmed_height,
                "blockTime": lookup.timestamp.isoformat() if lookup.timestamp else None,
                "contributions": [
                    {"id": row_id, "walletId": str(draft.wallet_id), "amount": draft.amount}
                    for row_id, draft, _ in inserted
                ],
            },
        )
