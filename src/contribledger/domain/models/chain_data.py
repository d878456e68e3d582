"""Chain-agnostic shapes returned by every ChainAdapter."""

from datetime import datetime

from pydantic import BaseModel


class RawTransfer(BaseModel):
    """One native-asset movement to a destination, before address matching."""

    to_address_raw: str
    amount_native: int  # base units (wei, satoshi, sun, ...)
    tx_hash: str


class TxLookup(BaseModel):
    found: bool
    confirmed_height: int | None = None  # None = in mempool / not yet included
    transfers: list[RawTransfer] = []
    timestamp: datetime | None = None
    failed: bool = False  # included on-chain but reverted/unsuccessful


class BlockData(BaseModel):
    height: int
    timestamp: datetime | None = None
    transfers: list[RawTransfer] = []
    failed: bool = False  # fetch failed after retries
    error: str | None = None


class ConfirmationStatus(BaseModel):
    confirmed: bool
    height: int | None = None
