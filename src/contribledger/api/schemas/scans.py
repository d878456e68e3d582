from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from contribledger.domain.models.ledger import ScanResult


class ScanRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    since_height: Optional[int] = Field(None, ge=0, validation_alias=AliasChoices("sinceHeight", "since_height"))
    since_hours: Optional[float] = Field(None, gt=0, validation_alias=AliasChoices("sinceHours", "since_hours"))
    max_blocks: Optional[int] = Field(None, ge=1, validation_alias=AliasChoices("maxBlocks", "max_blocks"))
    min_conf: Optional[int] = Field(None, ge=0, validation_alias=AliasChoices("minConf", "min_conf"))
    overlap: int = Field(0, ge=0)


class ScanResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ok: bool
    chain: str
    from_height: Optional[int] = Field(None, alias="from")
    to_height: Optional[int] = Field(None, alias="to")
    tip: Optional[int] = None
    safe_tip: Optional[int] = Field(None, alias="safeTip")
    scanned: int = 0
    matched: int = 0
    inserted: int = 0
    partial: bool = False
    failed_heights: list[int] = Field(default_factory=list, alias="failedHeights")
    deadline_reached: bool = Field(False, alias="deadlineReached")
    skipped: bool = False
    reason: Optional[str] = None

    @classmethod
    def from_result(cls, result: ScanResult) -> "ScanResponse":
        return cls(
            ok=True,
            chain=result.chain.value,
            from_height=result.from_height,
            to_height=result.to_height,
            tip=result.tip,
            safe_tip=result.safe_tip,
            scanned=result.scanned,
            matched=result.matched,
            inserted=result.inserted,
            partial=result.partial,
            failed_heights=result.failed_heights,
            deadline_reached=result.deadline_reached,
            skipped=result.skipped,
            reason=result.reason,
        )


class CursorUpdate(BaseModel):
    height: int = Field(ge=0)
    force: bool = False


class CursorResponse(BaseModel):
    chain: str
    height: Optional[int]
    updated: bool


class ScanQueued(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    chain: str
    task_id: str = Field(alias="taskId")
