from typing import Optional

from sqlalchemy import Boolean, String, UniqueConstraint, true
from sqlalchemy.orm import Mapped, mapped_column

from contribledger.db.session import Base, TimestampMixin, UUIDPrimaryKey


class Wallet(UUIDPrimaryKey, TimestampMixin, Base):
    """Monitored destination address. Maintained by an external admin process; read-only here."""

    __tablename__ = "wallets"
    __table_args__ = (UniqueConstraint("chain", "address", name="uq_wallets_chain_address"),)

    chain: Mapped[str] = mapped_column(String(20), index=True)
    address: Mapped[str] = mapped_column(String(128))  # canonical form for the chain
    symbol: Mapped[Optional[str]] = mapped_column(String(20), default=None)
    label: Mapped[Optional[str]] = mapped_column(String(255), default=None)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default=true())
