from enum import Enum


class ClaimCode(str, Enum):
    """Machine-readable outcome of a claim. Callers branch on this, not on HTTP status."""

    INSERTED = "inserted"
    DUPLICATE = "duplicate"
    NOT_PROJECT_WALLET = "not_project_wallet"
    TX_NOT_FOUND = "tx_not_found"
    TX_PENDING = "tx_pending"
    INVALID_PAYLOAD = "invalid_payload"
    RPC_ERROR = "rpc_error"
    DB_ERROR = "db_error"
    UNAUTHORIZED = "unauthorized"
    UNSUPPORTED_CHAIN = "unsupported_chain"


class ContributionSource(str, Enum):
    CLAIM = "claim"
    SCAN = "scan"
