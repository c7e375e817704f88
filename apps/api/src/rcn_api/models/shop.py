"""Shop registry models."""

from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, String, func
from sqlalchemy.orm import relationship

from rcn_api.db.base import Base, utcnow


class Shop(Base):
    """Repair shop that issues and accepts RCN."""

    __tablename__ = "shops"

    shop_id = Column(String, primary_key=True)
    name = Column(String, nullable=True)
    wallet_address = Column(String(42), nullable=False, unique=True, index=True)
    verified = Column(Boolean, nullable=False, default=False, server_default="false")
    active = Column(Boolean, nullable=False, default=False, server_default="false")
    cross_shop_enabled = Column(Boolean, nullable=False, default=False, server_default="false")
    reimbursement_address = Column(String(42), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False)

    home_customers = relationship("Customer", back_populates="home_shop")
