"""Scanner bookkeeping: per-chain cursor and TTL lease."""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from contribledger.db.session import Base


class ScanCursor(Base):
    """Last height fully scanned for a chain."""

    __tablename__ = "scan_cursors"

    chain: Mapped[str] = mapped_column(String(20), primary_key=True)
    height: Mapped[int] = mapped_column(BigInteger)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class ScanLease(Base):
    """Marks a scan in progress so overlapping runs for the same chain back off."""

    __tablename__ = "scan_leases"

    chain: Mapped[str] = mapped_column(String(20), primary_key=True)
    owner: Mapped[str] = mapped_column(String(64))
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
