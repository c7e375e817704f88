from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from rcn_api.models.customer import Customer
from rcn_api.models.ledger import LedgerEntry, LedgerEntryKind, LedgerEntrySource
from rcn_api.models.shop import Shop
from rcn_api.services.errors import InvalidRedemptionRequest
from rcn_api.services.ledger import SqlLedgerStore
from rcn_api.services.provenance import BalanceProvenanceTracker
from rcn_api.services.redemption import (
    BURN_FAILED,
    DUPLICATE_REFERENCE,
    LOCK_TIMEOUT,
    Approved,
    CommitStatus,
    CustomerLockRegistry,
    DenialReason,
    RedemptionEligibilityEngine,
    RedemptionPolicy,
)

CUSTOMER = "0x" + "c0" * 20


class StubChain:
    def __init__(self, balance: Decimal) -> None:
        self.balance = balance

    async def get_balance(self, address: str) -> Decimal:
        return self.balance


async def _seed(session_factory, earned: str = "100") -> None:
    async with session_factory() as session:
        session.add(Shop(shop_id="shop-home", wallet_address="0x" + "51" * 20, verified=True, active=True))
        await session.flush()
        session.add(Customer(address=CUSTOMER, home_shop_id="shop-home"))
        await SqlLedgerStore(session).append_entry(
            LedgerEntry(
                customer_address=CUSTOMER,
                shop_id="shop-home",
                amount=Decimal(earned),
                kind=LedgerEntryKind.MINT,
                source=LedgerEntrySource.REPAIR,
            )
        )
        await session.commit()


def _engine(
    session,
    locks: CustomerLockRegistry,
    policy: RedemptionPolicy | None = None,
    *,
    chain_balance: str = "100",
) -> RedemptionEligibilityEngine:
    return RedemptionEligibilityEngine(
        session,
        tracker=BalanceProvenanceTracker(SqlLedgerStore(session), StubChain(Decimal(chain_balance))),
        policy=policy or RedemptionPolicy(),
        locks=locks,
    )


async def _redeemed(session_factory) -> list[Decimal]:
    async with session_factory() as session:
        entries = await SqlLedgerStore(session).query_entries(CUSTOMER, kinds=[LedgerEntryKind.REDEEM])
    return [entry.amount for entry in entries]


@pytest.mark.asyncio
async def test_concurrent_commits_cannot_overspend(session_factory) -> None:
    await _seed(session_factory)
    locks = CustomerLockRegistry()

    async def slow_burn(approved: Approved) -> None:
        await asyncio.sleep(0.05)

    async def commit(tx_ref: str):
        async with session_factory() as session:
            return await _engine(session, locks).commit(
                CUSTOMER, "shop-home", Decimal("60"), tx_ref, burn=slow_burn
            )

    first, second = await asyncio.gather(commit("burn-a"), commit("burn-b"))

    statuses = sorted([first.status, second.status], key=lambda status: status.value)
    assert statuses == [CommitStatus.CONFIRMED, CommitStatus.ROLLED_BACK]
    loser = first if first.status == CommitStatus.ROLLED_BACK else second
    assert loser.reason == DenialReason.EXCEEDS_EARNED_CAP.value
    assert await _redeemed(session_factory) == [Decimal("60")]
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_confirmed_total_never_exceeds_earned(session_factory) -> None:
    await _seed(session_factory)
    locks = CustomerLockRegistry()

    async def commit(index: int):
        async with session_factory() as session:
            return await _engine(session, locks).commit(CUSTOMER, "shop-home", Decimal("20"), f"burn-{index}")

    results = await asyncio.gather(*(commit(index) for index in range(8)))

    confirmed = [result for result in results if result.status == CommitStatus.CONFIRMED]
    assert len(confirmed) == 5
    assert sum(await _redeemed(session_factory)) == Decimal("100")


@pytest.mark.asyncio
async def test_commit_reports_busy_when_lock_is_held(session_factory, reset_redemption_store) -> None:
    await _seed(session_factory)
    locks = CustomerLockRegistry()
    policy = RedemptionPolicy(lock_timeout_seconds=0.05)

    async with locks.hold(CUSTOMER, 1.0):
        async with session_factory() as session:
            result = await _engine(session, locks, policy).commit(CUSTOMER, "shop-home", Decimal("10"), "burn-busy")

    assert result.status == CommitStatus.BUSY
    assert result.reason == LOCK_TIMEOUT
    assert result.retryable is True
    assert await _redeemed(session_factory) == []
    assert reset_redemption_store.snapshot().commits == {"BUSY": 1, "BUSY:LOCK_TIMEOUT": 1}


@pytest.mark.asyncio
async def test_same_reference_replays_the_confirmed_commit(session_factory) -> None:
    await _seed(session_factory)
    locks = CustomerLockRegistry()

    async with session_factory() as session:
        first = await _engine(session, locks).commit(CUSTOMER, "shop-home", Decimal("60"), "burn-1")
    async with session_factory() as session:
        replay = await _engine(session, locks).commit(CUSTOMER, "shop-home", Decimal("60"), "burn-1")

    assert first.status == CommitStatus.CONFIRMED
    assert first.replayed is False
    assert replay.status == CommitStatus.CONFIRMED
    assert replay.replayed is True
    assert replay.entry_id == first.entry_id
    assert await _redeemed(session_factory) == [Decimal("60")]


@pytest.mark.asyncio
async def test_reference_reused_for_a_different_redemption(session_factory) -> None:
    await _seed(session_factory)
    locks = CustomerLockRegistry()

    async with session_factory() as session:
        await _engine(session, locks).commit(CUSTOMER, "shop-home", Decimal("10"), "burn-1")
    async with session_factory() as session:
        reused = await _engine(session, locks).commit(CUSTOMER, "shop-home", Decimal("5"), "burn-1")

    assert reused.status == CommitStatus.ROLLED_BACK
    assert reused.reason == DUPLICATE_REFERENCE
    assert await _redeemed(session_factory) == [Decimal("10")]


@pytest.mark.asyncio
async def test_failed_burn_writes_nothing(session_factory, reset_redemption_store) -> None:
    await _seed(session_factory)
    seen: list[Approved] = []

    async def broken_burn(approved: Approved) -> None:
        seen.append(approved)
        raise RuntimeError("nonce too low")

    async with session_factory() as session:
        result = await _engine(session, CustomerLockRegistry()).commit(
            CUSTOMER, "shop-home", Decimal("25"), "burn-x", burn=broken_burn
        )

    assert result.status == CommitStatus.ROLLED_BACK
    assert result.reason == BURN_FAILED
    assert "nonce too low" in result.message
    assert seen[0].amount == Decimal("25")
    assert await _redeemed(session_factory) == []
    assert reset_redemption_store.snapshot().commits["ROLLED_BACK:BURN_FAILED"] == 1


@pytest.mark.asyncio
async def test_commit_over_cap_rolls_back(session_factory) -> None:
    await _seed(session_factory)

    async with session_factory() as session:
        # Wallet holds purchased tokens on top of the 100 earned.
        engine = _engine(session, CustomerLockRegistry(), chain_balance="150")
        result = await engine.commit(CUSTOMER, "shop-home", Decimal("100.01"), "burn-big")

        with pytest.raises(InvalidRedemptionRequest):
            await engine.commit(CUSTOMER, "shop-home", Decimal("1"), "   ")

    assert result.status == CommitStatus.ROLLED_BACK
    assert result.reason == DenialReason.EXCEEDS_EARNED_CAP.value
    assert result.retryable is False
    assert await _redeemed(session_factory) == []


@pytest.mark.asyncio
async def test_commit_above_wallet_balance_rolls_back(session_factory) -> None:
    await _seed(session_factory)

    async with session_factory() as session:
        result = await _engine(session, CustomerLockRegistry()).commit(
            CUSTOMER, "shop-home", Decimal("100.01"), "burn-wallet"
        )

    assert result.status == CommitStatus.ROLLED_BACK
    assert result.reason == DenialReason.INSUFFICIENT_ON_CHAIN_BALANCE.value
    assert await _redeemed(session_factory) == []


@pytest.mark.asyncio
async def test_sub_cent_commit_is_rejected_and_writes_nothing(session_factory) -> None:
    await _seed(session_factory, earned="10")
    locks = CustomerLockRegistry()

    async with session_factory() as session:
        engine = _engine(session, locks)
        for index in range(5):
            with pytest.raises(InvalidRedemptionRequest):
                await engine.commit(CUSTOMER, "shop-home", Decimal("0.004"), f"tx-{index}")

    assert await _redeemed(session_factory) == []
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_trailing_zeros_replay_against_stored_amount(session_factory) -> None:
    await _seed(session_factory)
    locks = CustomerLockRegistry()

    async with session_factory() as session:
        first = await _engine(session, locks).commit(CUSTOMER, "shop-home", Decimal("10.500"), "burn-cents")
    async with session_factory() as session:
        replay = await _engine(session, locks).commit(CUSTOMER, "shop-home", Decimal("10.5"), "burn-cents")

    assert first.status == CommitStatus.CONFIRMED
    assert replay.status == CommitStatus.CONFIRMED
    assert replay.replayed is True
    assert await _redeemed(session_factory) == [Decimal("10.50")]
