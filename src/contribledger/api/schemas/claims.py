from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class ClaimBody(BaseModel):
    """Claim payload. Older clients send the hash as tx, tx_hash or hash, and the note as message."""

    model_config = ConfigDict(extra="ignore")

    chain: Optional[str] = None
    tx: Optional[str] = Field(None, validation_alias=AliasChoices("txHash", "tx", "tx_hash", "hash"))
    note: Optional[str] = Field(None, validation_alias=AliasChoices("note", "message"))


class ClaimResponse(BaseModel):
    ok: bool
    code: str
    message: str
    data: Optional[dict[str, Any]] = None
