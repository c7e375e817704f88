"""SQLAlchemy models package."""

from .address_role import AddressRole, AddressRoleType  # noqa: F401
from .customer import Customer, CustomerTier  # noqa: F401
from .ledger import (  # noqa: F401
    EARNING_SOURCES,
    LedgerEntry,
    LedgerEntryKind,
    LedgerEntrySource,
    LedgerEntryStatus,
)
from .shop import Shop  # noqa: F401
