"""RCN registry, ledger, and address role tables.

Revision ID: 20261019_01
Revises: 
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


customer_tier = sa.Enum("BRONZE", "SILVER", "GOLD", name="customer_tier")
address_role_type = sa.Enum("ADMIN", "SHOP", "CUSTOMER", name="address_role_type")
ledger_entry_kind = sa.Enum("MINT", "REDEEM", "TRANSFER", name="ledger_entry_kind")
ledger_entry_source = sa.Enum(
    "REPAIR",
    "REFERRAL_BONUS",
    "TIER_BONUS",
    "ADMIN_MINT",
    "PROMOTION",
    "PURCHASE",
    "REDEMPTION",
    "TRANSFER",
    name="ledger_entry_source",
)
ledger_entry_status = sa.Enum("PENDING", "CONFIRMED", "FAILED", name="ledger_entry_status")


def upgrade() -> None:
    op.create_table(
        "shops",
        sa.Column("shop_id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("wallet_address", sa.String(length=42), nullable=False),
        sa.Column("verified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("cross_shop_enabled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("reimbursement_address", sa.String(length=42), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_shops_wallet_address", "shops", ["wallet_address"], unique=True)

    op.create_table(
        "customers",
        sa.Column("address", sa.String(length=42), primary_key=True),
        sa.Column("tier", customer_tier, nullable=False, server_default="BRONZE"),
        sa.Column("lifetime_earnings", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column(
            "home_shop_id",
            sa.String(),
            sa.ForeignKey("shops.shop_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("referral_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("last_tier_change_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )

    op.create_table(
        "address_roles",
        sa.Column("address", sa.String(length=42), primary_key=True),
        sa.Column("role", address_role_type, nullable=False),
        sa.Column("reference_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )

    op.create_table(
        "ledger_entries",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("customer_address", sa.String(length=42), nullable=False),
        sa.Column("shop_id", sa.String(), nullable=True),
        sa.Column("counterparty_address", sa.String(length=42), nullable=True),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("kind", ledger_entry_kind, nullable=False),
        sa.Column("source", ledger_entry_source, nullable=False),
        sa.Column("status", ledger_entry_status, nullable=False, server_default="CONFIRMED"),
        sa.Column("tx_ref", sa.String(), nullable=True, unique=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_ledger_entries_amount_positive"),
    )
    op.create_index("ix_ledger_entries_customer_address", "ledger_entries", ["customer_address"])
    op.create_index("ix_ledger_entries_shop_id", "ledger_entries", ["shop_id"])
    op.create_index("ix_ledger_entries_customer_kind", "ledger_entries", ["customer_address", "kind"])
    op.create_index("ix_ledger_entries_counterparty_address", "ledger_entries", ["counterparty_address"])


def downgrade() -> None:
    op.drop_index("ix_ledger_entries_counterparty_address", table_name="ledger_entries")
    op.drop_index("ix_ledger_entries_customer_kind", table_name="ledger_entries")
    op.drop_index("ix_ledger_entries_shop_id", table_name="ledger_entries")
    op.drop_index("ix_ledger_entries_customer_address", table_name="ledger_entries")
    op.drop_table("ledger_entries")
    op.drop_table("address_roles")
    op.drop_table("customers")
    op.drop_index("ix_shops_wallet_address", table_name="shops")
    op.drop_table("shops")

    bind = op.get_bind()
    for enum in (ledger_entry_status, ledger_entry_source, ledger_entry_kind, address_role_type, customer_tier):
        enum.drop(bind, checkfirst=True)
