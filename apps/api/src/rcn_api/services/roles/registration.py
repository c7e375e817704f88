"""Customer and shop registration backed by the authoritative address-role index."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rcn_api.models.address_role import AddressRole, AddressRoleType
from rcn_api.models.customer import Customer
from rcn_api.models.shop import Shop
from rcn_api.services.addresses import normalize_address
from rcn_api.services.roles.registries import (
    AdminAllowList,
    SqlAddressRoleIndex,
    SqlCustomerRegistry,
    SqlShopRegistry,
    translate_store_errors,
)
from rcn_api.services.roles.validator import (
    RoleCheckResult,
    RoleCheckStatus,
    RoleExclusivityValidator,
    conflict_result,
)


@dataclass(slots=True)
class CustomerRegistration:
    check: RoleCheckResult
    customer: Customer | None = None

    @property
    def ok(self) -> bool:
        return self.customer is not None


@dataclass(slots=True)
class ShopRegistration:
    check: RoleCheckResult
    shop: Shop | None = None

    @property
    def ok(self) -> bool:
        return self.shop is not None


class RegistrationService:
    """Creates registry rows together with their ``address_roles`` entry.

    The validator answers the common case without writing anything. Two
    registrations racing for the same address both pass the validator, so the
    insert into ``address_roles`` is what settles it; the loser sees an
    ``IntegrityError`` and gets the same typed result a later check would give.
    """

    def __init__(self, session: AsyncSession, *, admins: AdminAllowList) -> None:
        self._db = session
        self._customers = SqlCustomerRegistry(session)
        self._shops = SqlShopRegistry(session)
        self._validator = RoleExclusivityValidator(
            admins=admins,
            shops=self._shops,
            customers=self._customers,
            roles=SqlAddressRoleIndex(session),
        )

    @property
    def validator(self) -> RoleExclusivityValidator:
        return self._validator

    async def register_customer(
        self,
        address: str,
        *,
        home_shop_id: str | None = None,
        name: str | None = None,
        email: str | None = None,
        commit: bool = True,
    ) -> CustomerRegistration:
        """Register a customer wallet; ``commit=False`` leaves the transaction open."""

        normalized = normalize_address(address)
        check = await self._validator.check_registration(normalized, AddressRoleType.CUSTOMER)
        if not check.ok:
            return CustomerRegistration(check=check)

        if home_shop_id is not None and await self._shops.get(home_shop_id) is None:
            raise ValueError(f"Home shop {home_shop_id} does not exist")

        self._db.add(
            AddressRole(address=normalized, role=AddressRoleType.CUSTOMER, reference_id=normalized)
        )
        try:
            customer = await self._customers.create(
                normalized,
                home_shop_id=home_shop_id,
                name=name,
                email=email,
            )
            if commit:
                await self._db.commit()
        except IntegrityError:
            await self._db.rollback()
            logger.warning("Detected race when registering customer", address=normalized)
            return CustomerRegistration(
                check=await self._recheck(normalized, AddressRoleType.CUSTOMER)
            )

        logger.info("Registered customer", address=normalized, home_shop_id=home_shop_id)
        return CustomerRegistration(check=check, customer=customer)

    async def register_shop(
        self,
        shop_id: str,
        wallet_address: str,
        *,
        name: str | None = None,
        cross_shop_enabled: bool = False,
        reimbursement_address: str | None = None,
    ) -> ShopRegistration:
        """Register a shop; it stays unverified and inactive until approved."""

        normalized = normalize_address(wallet_address)
        if not shop_id or not shop_id.strip():
            raise ValueError("Shop ID is required")
        reimbursement = normalize_address(reimbursement_address) if reimbursement_address else None

        check = await self._validator.check_registration(normalized, AddressRoleType.SHOP)
        if not check.ok:
            return ShopRegistration(check=check)

        if await self._shops.get(shop_id.strip()) is not None:
            return ShopRegistration(check=_duplicate_shop_id(normalized))

        self._db.add(AddressRole(address=normalized, role=AddressRoleType.SHOP, reference_id=shop_id.strip()))
        try:
            shop = await self._shops.create(
                shop_id.strip(),
                normalized,
                name=name,
                cross_shop_enabled=cross_shop_enabled,
                reimbursement_address=reimbursement,
                verified=False,
                active=False,
            )
            await self._db.commit()
        except IntegrityError:
            await self._db.rollback()
            logger.warning("Detected race when registering shop", shop_id=shop_id, wallet=normalized)
            recheck = await self._recheck(normalized, AddressRoleType.SHOP)
            return ShopRegistration(check=recheck if not recheck.ok else _duplicate_shop_id(normalized))

        logger.info("Registered shop", shop_id=shop.shop_id, wallet=normalized)
        return ShopRegistration(check=check, shop=shop)

    async def approve_shop(self, shop_id: str) -> Shop | None:
        """Mark a shop verified and active after admin review."""

        shop = await self._shops.update(shop_id, verified=True, active=True)
        if shop is None:
            return None
        with translate_store_errors("shop approval"):
            await self._db.commit()
        logger.info("Approved shop", shop_id=shop_id)
        return shop

    async def deactivate_customer(self, address: str) -> Customer | None:
        normalized = normalize_address(address)
        customer = await self._customers.update(normalized, is_active=False)
        if customer is None:
            return None
        with translate_store_errors("customer deactivation"):
            await self._db.commit()
        logger.info("Deactivated customer", address=normalized)
        return customer

    async def assign_home_shop(self, address: str, shop_id: str | None) -> Customer | None:
        """Administrative reassignment of a customer's single home shop."""

        normalized = normalize_address(address)
        if shop_id is not None and await self._shops.get(shop_id) is None:
            raise ValueError(f"Home shop {shop_id} does not exist")
        customer = await self._customers.get(normalized)
        if customer is None:
            return None
        previous = customer.home_shop_id
        customer.home_shop_id = shop_id
        with translate_store_errors("home shop assignment"):
            await self._db.commit()
        logger.info(
            "Reassigned customer home shop",
            address=normalized,
            previous_shop_id=previous,
            shop_id=shop_id,
            reassigned_at=datetime.now(timezone.utc).isoformat(),
        )
        return customer

    async def _recheck(self, address: str, role: AddressRoleType) -> RoleCheckResult:
        with translate_store_errors("address role lookup"):
            existing = await self._db.get(AddressRole, address)
        if existing is not None:
            return conflict_result(address, role, existing.role)
        return await self._validator.check_registration(address, role)


def _duplicate_shop_id(address: str) -> RoleCheckResult:
    return RoleCheckResult(
        status=RoleCheckStatus.ALREADY_REGISTERED,
        address=address,
        intended_role=AddressRoleType.SHOP,
        conflicting_role=AddressRoleType.SHOP,
        message="A shop with this ID is already registered.",
    )
