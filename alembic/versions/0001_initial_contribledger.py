"""initial_contribledger

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:12:40.118304

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "wallets",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("chain", sa.String(20), nullable=False),
        sa.Column("address", sa.String(128), nullable=False),
        sa.Column("symbol", sa.String(20), nullable=True),
        sa.Column("label", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_wallets")),
        sa.UniqueConstraint("chain", "address", name="uq_wallets_chain_address"),
    )
    op.create_index(op.f("ix_wallets_chain"), "wallets", ["chain"])

    op.create_table(
        "contributions",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column(
            "wallet_id",
            sa.Uuid(),
            sa.ForeignKey("wallets.id", name=op.f("fk_contributions_wallet_id_wallets")),
            nullable=False,
        ),
        sa.Column("chain", sa.String(20), nullable=False),
        sa.Column("tx_hash", sa.String(130), nullable=False),
        sa.Column("natural_key", sa.String(220), nullable=False),
        sa.Column("amount", sa.String(80), nullable=False),
        sa.Column("amount_usd", sa.Numeric(24, 8), nullable=True),
        sa.Column("block_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("block_height", sa.BigInteger(), nullable=True),
        sa.Column("priced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("note", sa.String(280), nullable=True),
        sa.Column("source", sa.String(10), nullable=False, server_default="claim"),
        sa.Column("inserted_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_contributions")),
        sa.UniqueConstraint("natural_key", name=op.f("uq_contributions_natural_key")),
    )
    op.create_index(op.f("ix_contributions_wallet_id"), "contributions", ["wallet_id"])
    op.create_index(op.f("ix_contributions_tx_hash"), "contributions", ["tx_hash"])

    op.create_table(
        "scan_cursors",
        sa.Column("chain", sa.String(20), nullable=False),
        sa.Column("height", sa.BigInteger(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("chain", name=op.f("pk_scan_cursors")),
    )

    op.create_table(
        "scan_leases",
        sa.Column("chain", sa.String(20), nullable=False),
        sa.Column("owner", sa.String(64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("chain", name=op.f("pk_scan_leases")),
    )


def downgrade() -> None:
    op.drop_table("scan_leases")
    op.drop_table("scan_cursors")
    op.drop_index(op.f("ix_contributions_tx_hash"), table_name="contributions")
    op.drop_index(op.f("ix_contributions_wallet_id"), table_name="contributions")
    op.drop_table("contributions")
    op.drop_index(op.f("ix_wallets_chain"), table_name="wallets")
    op.drop_table("wallets")
