from __future__ import annotations

import pytest

from rcn_api.models.address_role import AddressRole, AddressRoleType
from rcn_api.models.customer import Customer
from rcn_api.models.shop import Shop
from rcn_api.services.roles import AdminRoleAudit, RegistrationService, SettingsAdminAllowList

ADMIN = "0x" + "ad" * 20
SHOP_WALLET = "0x" + "5a" * 20
CUSTOMER = "0x" + "c0" * 20


@pytest.mark.asyncio
async def test_validate_admin_addresses_reports_conflicts_and_invalid(session_factory) -> None:
    async with session_factory() as session:
        session.add_all(
            [
                Shop(shop_id="shop-1", wallet_address=SHOP_WALLET),
                Customer(address=CUSTOMER),
            ]
        )
        await session.commit()

        report = await AdminRoleAudit(
            session,
            [ADMIN.upper().replace("0X", "0x"), SHOP_WALLET, CUSTOMER, "0xbad", ""],
        ).validate_admin_addresses()

    assert report.valid == [ADMIN]
    assert [(c.address, c.existing_role) for c in report.conflicts] == [
        (SHOP_WALLET, AddressRoleType.SHOP),
        (CUSTOMER, AddressRoleType.CUSTOMER),
    ]
    assert report.conflicts[0].reference_id == "shop-1"
    assert report.invalid == [("0xbad", "Invalid Ethereum address format")]
    assert report.healthy is False


@pytest.mark.asyncio
async def test_sync_admin_addresses_claims_role_index(session_factory) -> None:
    async with session_factory() as session:
        report = await AdminRoleAudit(session, [ADMIN]).sync_admin_addresses()
        again = await AdminRoleAudit(session, [ADMIN]).sync_admin_addresses()

        assert report.healthy
        assert again.valid == [ADMIN]

        row = await session.get(AddressRole, ADMIN)
        assert row.role == AddressRoleType.ADMIN

    async with session_factory() as session:
        # Even with an empty allow-list the role index keeps the admin address exclusive.
        registration = await RegistrationService(
            session, admins=SettingsAdminAllowList([])
        ).register_customer(ADMIN)

    assert not registration.ok
    assert registration.check.conflicting_role == AddressRoleType.ADMIN
