from __future__ import annotations

from decimal import Decimal

import pytest

from rcn_api.models.address_role import AddressRole, AddressRoleType
from rcn_api.models.customer import Customer, CustomerTier
from rcn_api.models.ledger import LedgerEntry, LedgerEntryKind, LedgerEntrySource
from rcn_api.models.shop import Shop
from rcn_api.services.errors import DuplicateLedgerEntry, InvalidRedemptionRequest
from rcn_api.services.ledger import EarningService, SqlLedgerStore
from rcn_api.services.roles import SettingsAdminAllowList
from rcn_api.services.tiers import TierEngine

CUSTOMER = "0x" + "c0" * 20
FRIEND = "0x" + "f1" * 20
SHOP_WALLET = "0x" + "5a" * 20


def _service(session) -> EarningService:
    return EarningService(session, tier_engine=TierEngine(), admins=SettingsAdminAllowList([]))


async def _seed_shop(session) -> None:
    session.add(Shop(shop_id="shop-1", wallet_address=SHOP_WALLET, verified=True, active=True))
    session.add(AddressRole(address=SHOP_WALLET, role=AddressRoleType.SHOP, reference_id="shop-1"))
    await session.commit()


@pytest.mark.asyncio
async def test_first_earning_registers_customer_with_home_shop(session_factory) -> None:
    async with session_factory() as session:
        await _seed_shop(session)

        result = await _service(session).record_earning(
            CUSTOMER.upper().replace("0X", "0x"), "shop-1", Decimal("50"), LedgerEntrySource.REPAIR, "tx-1"
        )

    assert result.bonus_entry is None
    assert result.total_awarded == Decimal("50")
    assert result.tier_change.new_tier == CustomerTier.BRONZE

    async with session_factory() as session:
        customer = await session.get(Customer, CUSTOMER)
        role = await session.get(AddressRole, CUSTOMER)
        entries = await SqlLedgerStore(session).query_entries(CUSTOMER)

    assert customer.home_shop_id == "shop-1"
    assert customer.lifetime_earnings == Decimal("50")
    assert role.role == AddressRoleType.CUSTOMER
    assert [(e.kind, e.source, e.amount) for e in entries] == [
        (LedgerEntryKind.MINT, LedgerEntrySource.REPAIR, Decimal("50")),
    ]


@pytest.mark.asyncio
async def test_silver_customer_gets_tier_bonus_mint(session_factory) -> None:
    async with session_factory() as session:
        await _seed_shop(session)
        session.add(AddressRole(address=CUSTOMER, role=AddressRoleType.CUSTOMER, reference_id=CUSTOMER))
        session.add(
            Customer(address=CUSTOMER, home_shop_id="shop-1", tier=CustomerTier.SILVER, lifetime_earnings=Decimal("300"))
        )
        await session.commit()

        result = await _service(session).record_earning(
            CUSTOMER, "shop-1", Decimal("25"), LedgerEntrySource.REPAIR, "tx-2"
        )

    assert result.bonus_entry is not None
    assert result.bonus_entry.source == LedgerEntrySource.TIER_BONUS
    assert result.bonus_entry.amount == Decimal("2.50")
    assert result.bonus_entry.tx_ref == "tx-2:tier-bonus"
    assert result.total_awarded == Decimal("27.50")
    assert result.tier_change.lifetime_earnings == Decimal("327.50")


@pytest.mark.asyncio
async def test_earning_across_threshold_upgrades_tier(session_factory) -> None:
    async with session_factory() as session:
        await _seed_shop(session)
        service = _service(session)
        await service.record_earning(CUSTOMER, "shop-1", Decimal("190"), LedgerEntrySource.REPAIR, "tx-a")

        result = await service.record_earning(CUSTOMER, "shop-1", Decimal("10"), LedgerEntrySource.PROMOTION, "tx-b")

    assert result.tier_change.changed is True
    assert result.tier_change.new_tier == CustomerTier.SILVER

    async with session_factory() as session:
        customer = await session.get(Customer, CUSTOMER)

    assert customer.tier == CustomerTier.SILVER
    assert customer.last_tier_change_at is not None


@pytest.mark.asyncio
async def test_referral_counts_and_purchases_do_not(session_factory) -> None:
    async with session_factory() as session:
        await _seed_shop(session)
        service = _service(session)
        await service.record_earning(CUSTOMER, "shop-1", Decimal("10"), LedgerEntrySource.REFERRAL_BONUS, "ref-1")
        purchase = await service.record_purchase(CUSTOMER, Decimal("500"), "buy-1")

    assert purchase.source == LedgerEntrySource.PURCHASE

    async with session_factory() as session:
        customer = await session.get(Customer, CUSTOMER)

    assert customer.referral_count == 1
    assert customer.lifetime_earnings == Decimal("10")
    assert customer.tier == CustomerTier.BRONZE


@pytest.mark.asyncio
async def test_shop_wallet_cannot_earn(session_factory) -> None:
    async with session_factory() as session:
        await _seed_shop(session)

        with pytest.raises(InvalidRedemptionRequest):
            await _service(session).record_earning(SHOP_WALLET, "shop-1", Decimal("5"), LedgerEntrySource.REPAIR)

    async with session_factory() as session:
        assert await session.get(Customer, SHOP_WALLET) is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("source", "amount"),
    [
        (LedgerEntrySource.PURCHASE, "5"),
        (LedgerEntrySource.REDEMPTION, "5"),
        (LedgerEntrySource.REPAIR, "0"),
        (LedgerEntrySource.REPAIR, "-3"),
        (LedgerEntrySource.REPAIR, "NaN"),
        (LedgerEntrySource.REPAIR, "0.004"),
        (LedgerEntrySource.PROMOTION, "7.125"),
    ],
)
async def test_invalid_earnings_are_rejected(session_factory, source: LedgerEntrySource, amount: str) -> None:
    async with session_factory() as session:
        await _seed_shop(session)

        with pytest.raises(InvalidRedemptionRequest):
            await _service(session).record_earning(CUSTOMER, "shop-1", Decimal(amount), source)


@pytest.mark.asyncio
async def test_reused_reference_is_rejected_and_not_counted(session_factory) -> None:
    async with session_factory() as session:
        await _seed_shop(session)
        service = _service(session)
        await service.record_earning(CUSTOMER, "shop-1", Decimal("40"), LedgerEntrySource.REPAIR, "tx-dup")

        with pytest.raises(DuplicateLedgerEntry):
            await service.record_earning(CUSTOMER, "shop-1", Decimal("40"), LedgerEntrySource.REPAIR, "tx-dup")

    async with session_factory() as session:
        customer = await session.get(Customer, CUSTOMER)

    assert customer.lifetime_earnings == Decimal("40")


@pytest.mark.asyncio
async def test_transfer_is_recorded_on_sender(session_factory) -> None:
    async with session_factory() as session:
        service = _service(session)
        entry = await service.record_transfer(CUSTOMER, FRIEND, Decimal("12.5"), "xfer-1")

        with pytest.raises(InvalidRedemptionRequest):
            await service.record_transfer(CUSTOMER, CUSTOMER, Decimal("1"))

        inbound = await SqlLedgerStore(session).query_inbound_transfers(FRIEND)

    assert entry.kind == LedgerEntryKind.TRANSFER
    assert entry.customer_address == CUSTOMER
    assert entry.counterparty_address == FRIEND
    assert [e.amount for e in inbound] == [Decimal("12.50")]


@pytest.mark.asyncio
async def test_sub_cent_earning_leaves_lifetime_earnings_untouched(session_factory) -> None:
    async with session_factory() as session:
        await _seed_shop(session)
        service = _service(session)
        await service.record_earning(CUSTOMER, "shop-1", Decimal("20"), LedgerEntrySource.REPAIR, "tx-whole")

        with pytest.raises(InvalidRedemptionRequest):
            await service.record_earning(CUSTOMER, "shop-1", Decimal("0.004"), LedgerEntrySource.REPAIR, "tx-sub")
        with pytest.raises(InvalidRedemptionRequest):
            await service.record_purchase(CUSTOMER, Decimal("1.001"))

    async with session_factory() as session:
        customer = await session.get(Customer, CUSTOMER)
        entries = await SqlLedgerStore(session).query_entries(CUSTOMER)

    assert customer.lifetime_earnings == Decimal("20")
    assert [entry.tx_ref for entry in entries] == ["tx-whole"]


@pytest.mark.asyncio
async def test_ledger_store_refuses_amounts_it_would_round(session_factory) -> None:
    async with session_factory() as session:
        ledger = SqlLedgerStore(session)

        with pytest.raises(ValueError):
            await ledger.append_entry(
                LedgerEntry(
                    customer_address=CUSTOMER,
                    amount=Decimal("0.004"),
                    kind=LedgerEntryKind.MINT,
                    source=LedgerEntrySource.ADMIN_MINT,
                    tx_ref="tx-round",
                )
            )

        assert await ledger.get_by_tx_ref("tx-round") is None
