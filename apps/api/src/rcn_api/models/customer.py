"""Customer registry models."""

from __future__ import annotations

from enum import Enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import relationship

from rcn_api.db.base import Base, utcnow


class CustomerTier(str, Enum):
    """Loyalty tiers ordered by lifetime earnings."""

    BRONZE = "BRONZE"
    SILVER = "SILVER"
    GOLD = "GOLD"


class Customer(Base):
    """Customer wallet enrolled in the loyalty program."""

    __tablename__ = "customers"

    address = Column(String(42), primary_key=True)
    tier = Column(
        SqlEnum(CustomerTier, name="customer_tier"),
        nullable=False,
        default=CustomerTier.BRONZE,
        server_default=CustomerTier.BRONZE.name,
    )
    lifetime_earnings = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")
    home_shop_id = Column(String, ForeignKey("shops.shop_id", ondelete="SET NULL"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    referral_count = Column(Integer, nullable=False, default=0, server_default="0")
    name = Column(String, nullable=True)
    email = Column(String, nullable=True)
    last_tier_change_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False)

    home_shop = relationship("Shop", back_populates="home_customers")
