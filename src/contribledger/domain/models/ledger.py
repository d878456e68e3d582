"""Write payloads and engine results."""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from contribledger.domain.enums import Chain, ClaimCode, ContributionSource

MESSAGES: dict[ClaimCode, str] = {
    ClaimCode.INSERTED: "The transaction was successfully recorded on our project.",
    ClaimCode.DUPLICATE: "The transaction has already been recorded in our project before.",
    ClaimCode.NOT_PROJECT_WALLET: (
        "The transaction is not directed to our project. The wallet address does not belong to this project."
    ),
    ClaimCode.TX_NOT_FOUND: "The hash of this transaction does not exist on the blockchain.",
    ClaimCode.TX_PENDING: "Transaction is not yet confirmed on-chain.",
    ClaimCode.INVALID_PAYLOAD: "Invalid transaction hash format.",
    ClaimCode.RPC_ERROR: "An error occurred while fetching the transaction.",
    ClaimCode.DB_ERROR: "Database write error.",
    ClaimCode.UNAUTHORIZED: "Unauthorized.",
    ClaimCode.UNSUPPORTED_CHAIN: "This chain is not supported.",
}

SUCCESS_CODES = {ClaimCode.INSERTED, ClaimCode.DUPLICATE}


class ContributionDraft(BaseModel):
    """Immutable row about to be written to the ledger."""

    model_config = ConfigDict(frozen=True)

    wallet_id: uuid.UUID
    chain: Chain
    tx_hash: str
    natural_key: str
    amount: str  # canonical decimal string, human unit
    block_time: datetime | None
    block_height: int | None = None
    note: str | None = None
    source: ContributionSource = ContributionSource.CLAIM
    symbol: str | None = None  # pricing symbol; the wallet override or the chain default


class VerificationResult(BaseModel):
    code: ClaimCode
    message: str
    data: dict[str, Any] | None = None

    @property
    def ok(self) -> bool:
        return self.code in SUCCESS_CODES

    @classmethod
    def of(cls, code: ClaimCode, data: dict[str, Any] | None = None, message: str | None = None) -> "VerificationResult":
        return cls(code=code, message=message or MESSAGES[code], data=data)


class ScanResult(BaseModel):
    chain: Chain
    from_height: int | None = None
    to_height: int | None = None
    tip: int | None = None
    safe_tip: int | None = None
    scanned: int = 0
    matched: int = 0
    inserted: int = 0
    partial: bool = False
    failed_heights: list[int] = []
    deadline_reached: bool = False
    skipped: bool = False
    reason: str | None = None
