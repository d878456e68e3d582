import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import BigInteger, DateTime, ForeignKey, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from contribledger.db.session import Base


class Contribution(Base):
    """One recorded native transfer to a monitored wallet."""

    __tablename__ = "contributions"

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    wallet_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("wallets.id"), index=True)
    chain: Mapped[str] = mapped_column(String(20))
    tx_hash: Mapped[str] = mapped_column(String(130), index=True)
    # chain:tx_hash or chain:tx_hash:wallet_id -- the at-most-once guard
    natural_key: Mapped[str] = mapped_column(String(220), unique=True)
    amount: Mapped[str] = mapped_column(String(80))  # canonical decimal string
    amount_usd: Mapped[Optional[Decimal]] = mapped_column(Numeric(24, 8), default=None)
    block_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), default=None)
    block_height: Mapped[Optional[int]] = mapped_column(BigInteger, default=None)
    priced_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), default=None)
    note: Mapped[Optional[str]] = mapped_column(String(280), default=None)
    source: Mapped[str] = mapped_column(String(10), default="claim")
    inserted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
