"""Authoritative address-to-role index shared by every registration path."""

from __future__ import annotations

from enum import Enum

from sqlalchemy import Column, DateTime, Enum as SqlEnum, String, func

from rcn_api.db.base import Base, utcnow


class AddressRoleType(str, Enum):
    """Roles a wallet address can hold."""

    ADMIN = "admin"
    SHOP = "shop"
    CUSTOMER = "customer"


class AddressRole(Base):
    """One row per registered address; the primary key enforces a single role."""

    __tablename__ = "address_roles"

    address = Column(String(42), primary_key=True)
    role = Column(SqlEnum(AddressRoleType, name="address_role_type"), nullable=False)
    reference_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
