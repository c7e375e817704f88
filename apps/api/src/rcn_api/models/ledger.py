"""Append-only token ledger."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SqlEnum,
    Index,
    Numeric,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from rcn_api.db.base import Base, utcnow


class LedgerEntryKind(str, Enum):
    """Token movement recorded by a ledger entry."""

    MINT = "mint"
    REDEEM = "redeem"
    TRANSFER = "transfer"


class LedgerEntrySource(str, Enum):
    """Provenance tag attached to each ledger entry."""

    REPAIR = "repair"
    REFERRAL_BONUS = "referral_bonus"
    TIER_BONUS = "tier_bonus"
    ADMIN_MINT = "admin_mint"
    PROMOTION = "promotion"
    PURCHASE = "purchase"
    REDEMPTION = "redemption"
    TRANSFER = "transfer"


class LedgerEntryStatus(str, Enum):
    """Settlement state of a ledger entry."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


EARNING_SOURCES: frozenset[LedgerEntrySource] = frozenset(
    {
        LedgerEntrySource.REPAIR,
        LedgerEntrySource.REFERRAL_BONUS,
        LedgerEntrySource.TIER_BONUS,
        LedgerEntrySource.ADMIN_MINT,
        LedgerEntrySource.PROMOTION,
    }
)


# Matches the Numeric(14, 2) amount column.
AMOUNT_QUANTUM = Decimal("0.01")
MAX_AMOUNT = Decimal("999999999999.99")


class LedgerEntry(Base):
    """Single mint, redeem, or transfer movement for a customer wallet."""

    __tablename__ = "ledger_entries"
    __table_args__ = (
        Index("ix_ledger_entries_customer_kind", "customer_address", "kind"),
        CheckConstraint("amount > 0", name="ck_ledger_entries_amount_positive"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    customer_address = Column(String(42), nullable=False, index=True)
    shop_id = Column(String, nullable=True, index=True)
    counterparty_address = Column(String(42), nullable=True, index=True)
    amount = Column(Numeric(14, 2), nullable=False)
    kind = Column(SqlEnum(LedgerEntryKind, name="ledger_entry_kind"), nullable=False)
    source = Column(SqlEnum(LedgerEntrySource, name="ledger_entry_source"), nullable=False)
    status = Column(
        SqlEnum(LedgerEntryStatus, name="ledger_entry_status"),
        nullable=False,
        default=LedgerEntryStatus.CONFIRMED,
        server_default=LedgerEntryStatus.CONFIRMED.name,
    )
    tx_ref = Column(String, nullable=True, unique=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    occurred_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
