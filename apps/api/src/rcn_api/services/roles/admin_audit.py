"""Startup validation of configured admin addresses."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rcn_api.models.address_role import AddressRole, AddressRoleType
from rcn_api.services.addresses import is_valid_address
from rcn_api.services.roles.registries import (
    SqlCustomerRegistry,
    SqlShopRegistry,
    translate_store_errors,
)


@dataclass(slots=True)
class AdminAddressConflict:
    address: str
    existing_role: AddressRoleType
    reference_id: str | None = None


@dataclass(slots=True)
class AdminAddressReport:
    valid: list[str] = field(default_factory=list)
    conflicts: list[AdminAddressConflict] = field(default_factory=list)
    invalid: list[tuple[str, str]] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return not self.conflicts and not self.invalid


class AdminRoleAudit:
    """Checks that every configured admin address is well formed and holds no other role."""

    def __init__(self, session: AsyncSession, addresses: Iterable[str]) -> None:
        self._db = session
        self._addresses = [address.strip() for address in addresses if address and address.strip()]
        self._customers = SqlCustomerRegistry(session)
        self._shops = SqlShopRegistry(session)

    async def validate_admin_addresses(self) -> AdminAddressReport:
        report = AdminAddressReport()
        for raw in self._addresses:
            if not is_valid_address(raw):
                report.invalid.append((raw, "Invalid Ethereum address format"))
                continue
            address = raw.lower()
            shop = await self._shops.get_by_wallet(address)
            if shop is not None:
                report.conflicts.append(
                    AdminAddressConflict(address=address, existing_role=AddressRoleType.SHOP, reference_id=shop.shop_id)
                )
                continue
            customer = await self._customers.get(address)
            if customer is not None:
                report.conflicts.append(
                    AdminAddressConflict(address=address, existing_role=AddressRoleType.CUSTOMER, reference_id=address)
                )
                continue
            report.valid.append(address)

        for conflict in report.conflicts:
            logger.warning(
                "Admin address role conflict",
                address=conflict.address,
                existing_role=conflict.existing_role.value,
            )
        for address, reason in report.invalid:
            logger.error("Invalid admin address", address=address, reason=reason)
        logger.info(
            "Validated admin addresses",
            valid=len(report.valid),
            conflicts=len(report.conflicts),
            invalid=len(report.invalid),
        )
        return report

    async def sync_admin_addresses(self) -> AdminAddressReport:
        """Record valid admin addresses in ``address_roles`` so registrations see them."""

        report = await self.validate_admin_addresses()
        for address in report.valid:
            with translate_store_errors("address role lookup"):
                existing = await self._db.get(AddressRole, address)
            if existing is not None:
                if existing.role != AddressRoleType.ADMIN:
                    report.conflicts.append(
                        AdminAddressConflict(address=address, existing_role=existing.role, reference_id=existing.reference_id)
                    )
                continue
            self._db.add(AddressRole(address=address, role=AddressRoleType.ADMIN, reference_id="config"))
            try:
                await self._db.commit()
            except IntegrityError:
                await self._db.rollback()
                logger.warning("Admin address claimed concurrently", address=address)
        report.valid = [
            address
            for address in report.valid
            if address not in {conflict.address for conflict in report.conflicts}
        ]
        return report
