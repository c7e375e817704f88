"""Single-role-per-address checks across the admin, shop, and customer registries."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from loguru import logger

from rcn_api.models.address_role import AddressRoleType
from rcn_api.observability.redemption import get_redemption_store
from rcn_api.services.addresses import normalize_address
from rcn_api.services.roles.registries import AddressRoleIndex, AdminAllowList, CustomerRegistry, ShopRegistry


class RoleCheckStatus(str, Enum):
    OK = "ok"
    CONFLICT = "conflict"
    ALREADY_REGISTERED = "already_registered"


_CONFLICT_MESSAGES: dict[AddressRoleType, str] = {
    AddressRoleType.ADMIN: "This wallet address belongs to an administrator and cannot be registered as a {intended}.",
    AddressRoleType.SHOP: "This wallet address is already registered as a shop and cannot be registered as a {intended}.",
    AddressRoleType.CUSTOMER: "This wallet address is already registered as a customer and cannot be registered as a {intended}.",
}

_ALREADY_REGISTERED_MESSAGES: dict[AddressRoleType, str] = {
    AddressRoleType.SHOP: "A shop is already registered with this wallet address.",
    AddressRoleType.CUSTOMER: "This wallet address is already registered as a customer.",
}


@dataclass(frozen=True, slots=True)
class RoleCheckResult:
    """Outcome of a registration pre-check."""

    status: RoleCheckStatus
    address: str
    intended_role: AddressRoleType
    conflicting_role: AddressRoleType | None = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == RoleCheckStatus.OK

    @property
    def is_conflict(self) -> bool:
        return self.status == RoleCheckStatus.CONFLICT

    @property
    def is_duplicate(self) -> bool:
        return self.status == RoleCheckStatus.ALREADY_REGISTERED


def conflict_result(
    address: str,
    intended_role: AddressRoleType,
    existing_role: AddressRoleType,
) -> RoleCheckResult:
    if existing_role == intended_role:
        return RoleCheckResult(
            status=RoleCheckStatus.ALREADY_REGISTERED,
            address=address,
            intended_role=intended_role,
            conflicting_role=existing_role,
            message=_ALREADY_REGISTERED_MESSAGES[existing_role],
        )
    return RoleCheckResult(
        status=RoleCheckStatus.CONFLICT,
        address=address,
        intended_role=intended_role,
        conflicting_role=existing_role,
        message=_CONFLICT_MESSAGES[existing_role].format(intended=intended_role.value),
    )


class RoleExclusivityValidator:
    """Read-only early rejection for registrations that would give an address two roles.

    The check reads the ``address_roles`` index when one is supplied, then scans
    the admin allow-list, shops by wallet and customers by address, stopping at
    the first hit. It is not the enforcement point: the ``address_roles`` primary
    key rejects whichever concurrent registration loses the race.
    """

    def __init__(
        self,
        *,
        admins: AdminAllowList,
        shops: ShopRegistry,
        customers: CustomerRegistry,
        roles: AddressRoleIndex | None = None,
    ) -> None:
        self._admins = admins
        self._shops = shops
        self._customers = customers
        self._roles = roles

    async def check_registration(
        self,
        address: str,
        intended_role: AddressRoleType | str,
    ) -> RoleCheckResult:
        """Return whether ``address`` may be registered as ``intended_role``.

        Raises ``InvalidAddressError`` for malformed input and
        ``TransientStoreError`` when a registry cannot be read.
        """

        normalized = normalize_address(address)
        role = AddressRoleType(intended_role)
        if role == AddressRoleType.ADMIN:
            raise ValueError("Admin roles are provisioned through configuration, not registration")

        existing = await self._find_existing_role(normalized)
        if existing is None:
            return RoleCheckResult(status=RoleCheckStatus.OK, address=normalized, intended_role=role)

        result = conflict_result(normalized, role, existing)
        if result.is_conflict:
            get_redemption_store().record_role_conflict(existing.value, role.value)
            logger.info(
                "Rejected cross-role registration",
                address=normalized,
                intended_role=role.value,
                existing_role=existing.value,
            )
        return result

    async def _find_existing_role(self, address: str) -> AddressRoleType | None:
        if self._roles is not None:
            indexed = await self._roles.role_of(address)
            if indexed is not None:
                return indexed
        if self._admins.contains(address):
            return AddressRoleType.ADMIN
        if await self._shops.get_by_wallet(address) is not None:
            return AddressRoleType.SHOP
        if await self._customers.get(address) is not None:
            return AddressRoleType.CUSTOMER
        return None
