"""Registry interfaces for admins, shops, and customers plus their SQL implementations."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterable, Iterator, Protocol

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rcn_api.models.address_role import AddressRole, AddressRoleType
from rcn_api.models.customer import Customer
from rcn_api.models.shop import Shop
from rcn_api.services.addresses import is_valid_address
from rcn_api.services.errors import TransientStoreError


@contextmanager
def translate_store_errors(operation: str) -> Iterator[None]:
    """Re-raise SQLAlchemy failures as retryable ``TransientStoreError``."""

    try:
        yield
    except SQLAlchemyError as exc:
        logger.warning("Registry store operation failed", operation=operation, error=str(exc))
        raise TransientStoreError(f"{operation} failed: {exc}") from exc


class AdminAllowList(Protocol):
    def contains(self, address: str) -> bool:
        """Return ``True`` when the normalized address is a provisioned admin."""


class CustomerRegistry(Protocol):
    async def get(self, address: str, *, for_update: bool = False) -> Customer | None:
        """Return the customer for a normalized address."""

    async def create(self, address: str, **fields: Any) -> Customer:
        """Insert a customer row (without committing)."""

    async def update(self, address: str, **fields: Any) -> Customer | None:
        """Apply field updates to an existing customer."""


class ShopRegistry(Protocol):
    async def get(self, shop_id: str) -> Shop | None:
        """Return the shop by identifier."""

    async def get_by_wallet(self, wallet_address: str) -> Shop | None:
        """Return the shop owning the normalized wallet address."""

    async def create(self, shop_id: str, wallet_address: str, **fields: Any) -> Shop:
        """Insert a shop row (without committing)."""

    async def update(self, shop_id: str, **fields: Any) -> Shop | None:
        """Apply field updates to an existing shop."""


class AddressRoleIndex(Protocol):
    async def role_of(self, address: str) -> AddressRoleType | None:
        """Return the role recorded in ``address_roles`` for a normalized address."""


class SettingsAdminAllowList:
    """Admin allow-list sourced from configuration."""

    def __init__(self, addresses: Iterable[str]) -> None:
        normalized: set[str] = set()
        for address in addresses:
            candidate = address.strip().lower()
            if not is_valid_address(candidate):
                logger.warning("Ignoring malformed admin address", address=address)
                continue
            normalized.add(candidate)
        self._addresses = frozenset(normalized)

    def contains(self, address: str) -> bool:
        return address.lower() in self._addresses

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._addresses))

    def __len__(self) -> int:
        return len(self._addresses)


class SqlCustomerRegistry:
    """Customer registry backed by the ``customers`` table."""

    def __init__(self, session: AsyncSession) -> None:
        self._db = session

    async def get(self, address: str, *, for_update: bool = False) -> Customer | None:
        stmt = select(Customer).where(Customer.address == address.lower())
        if for_update:
            stmt = stmt.with_for_update()
        with translate_store_errors("customer lookup"):
            result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, address: str, **fields: Any) -> Customer:
        customer = Customer(address=address.lower(), **fields)
        self._db.add(customer)
        await self._db.flush()
        return customer

    async def update(self, address: str, **fields: Any) -> Customer | None:
        customer = await self.get(address)
        if customer is None:
            return None
        for key, value in fields.items():
            setattr(customer, key, value)
        with translate_store_errors("customer update"):
            await self._db.flush()
        return customer


class SqlShopRegistry:
    """Shop registry backed by the ``shops`` table."""

    def __init__(self, session: AsyncSession) -> None:
        self._db = session

    async def get(self, shop_id: str) -> Shop | None:
        with translate_store_errors("shop lookup"):
            return await self._db.get(Shop, shop_id)

    async def get_by_wallet(self, wallet_address: str) -> Shop | None:
        stmt = select(Shop).where(Shop.wallet_address == wallet_address.lower())
        with translate_store_errors("shop wallet lookup"):
            result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, shop_id: str, wallet_address: str, **fields: Any) -> Shop:
        shop = Shop(shop_id=shop_id, wallet_address=wallet_address.lower(), **fields)
        self._db.add(shop)
        await self._db.flush()
        return shop

    async def update(self, shop_id: str, **fields: Any) -> Shop | None:
        shop = await self.get(shop_id)
        if shop is None:
            return None
        for key, value in fields.items():
            setattr(shop, key, value)
        with translate_store_errors("shop update"):
            await self._db.flush()
        return shop


class SqlAddressRoleIndex:
    """Role lookups against the authoritative ``address_roles`` table."""

    def __init__(self, session: AsyncSession) -> None:
        self._db = session

    async def role_of(self, address: str) -> AddressRoleType | None:
        with translate_store_errors("address role lookup"):
            row = await self._db.get(AddressRole, address.lower())
        return row.role if row is not None else None
