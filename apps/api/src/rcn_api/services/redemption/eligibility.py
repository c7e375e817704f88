"""Redemption eligibility decisions and locked commits."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from rcn_api.models.ledger import LedgerEntry, LedgerEntryKind, LedgerEntrySource, LedgerEntryStatus
from rcn_api.observability.redemption import get_redemption_store
from rcn_api.services.addresses import normalize_address
from rcn_api.services.errors import (
    ChainBalanceUnavailable,
    CustomerLockBusy,
    DuplicateLedgerEntry,
    InvalidRedemptionRequest,
    TransientError,
)
from rcn_api.services.ledger.store import LedgerStore, SqlLedgerStore, is_ledger_amount
from rcn_api.services.provenance.balance_tracker import BalanceProvenanceTracker
from rcn_api.services.redemption.locks import CustomerLocks
from rcn_api.services.redemption.policy import RedemptionPolicy
from rcn_api.services.roles.registries import (
    CustomerRegistry,
    ShopRegistry,
    SqlCustomerRegistry,
    SqlShopRegistry,
    translate_store_errors,
)


class DenialReason(str, Enum):
    CUSTOMER_NOT_FOUND = "CUSTOMER_NOT_FOUND"
    CUSTOMER_INACTIVE = "CUSTOMER_INACTIVE"
    SHOP_NOT_FOUND = "SHOP_NOT_FOUND"
    SHOP_INACTIVE = "SHOP_INACTIVE"
    CROSS_SHOP_DISABLED = "CROSS_SHOP_DISABLED"
    INSUFFICIENT_ON_CHAIN_BALANCE = "INSUFFICIENT_ON_CHAIN_BALANCE"
    EXCEEDS_EARNED_CAP = "EXCEEDS_EARNED_CAP"
    EXCEEDS_CROSS_SHOP_CAP = "EXCEEDS_CROSS_SHOP_CAP"
    TRANSIENT_FAILURE = "TRANSIENT_FAILURE"
    INVALID_REQUEST = "INVALID_REQUEST"


class CommitStatus(str, Enum):
    CONFIRMED = "CONFIRMED"
    ROLLED_BACK = "ROLLED_BACK"
    BUSY = "BUSY"


DUPLICATE_REFERENCE = "DUPLICATE_REFERENCE"
BURN_FAILED = "BURN_FAILED"
LOCK_TIMEOUT = "LOCK_TIMEOUT"


@dataclass(frozen=True, slots=True)
class Approved:
    customer_address: str
    shop_id: str
    amount: Decimal
    max_redeemable: Decimal
    is_home_shop: bool
    earned_balance: Decimal
    on_chain_balance: Decimal

    approved = True


@dataclass(frozen=True, slots=True)
class Denied:
    reason: DenialReason
    message: str
    retryable: bool = False
    max_redeemable: Decimal | None = None

    approved = False


Decision = Approved | Denied


@dataclass(frozen=True, slots=True)
class CommitResult:
    status: CommitStatus
    entry_id: UUID | None = None
    reason: str | None = None
    message: str | None = None
    replayed: bool = False

    @property
    def retryable(self) -> bool:
        return self.status == CommitStatus.BUSY or self.reason == DenialReason.TRANSIENT_FAILURE.value


@dataclass(frozen=True, slots=True)
class RedemptionRequest:
    customer_address: str
    shop_id: str
    amount: Decimal


@dataclass(frozen=True, slots=True)
class BatchEvaluation:
    index: int
    request: RedemptionRequest
    decision: Decision


@dataclass(frozen=True, slots=True)
class CrossShopBalance:
    customer_address: str
    home_shop_id: str | None
    earned_balance: Decimal
    cross_shop_limit: Decimal
    home_shop_only_balance: Decimal
    cross_shop_percent: Decimal


BurnCallback = Callable[[Approved], Awaitable[Any]]


class RedemptionEligibilityEngine:
    """Decides whether a customer may redeem at a shop, and records confirmed redemptions.

    ``evaluate`` is read-only. ``commit`` re-runs the same checks while holding the
    customer's lock, optionally runs the caller's burn, then appends a single
    ``redeem`` ledger entry and commits before the lock is released. Two commits
    for the same customer can therefore never both pass against the same earned
    balance; the later one re-reads the balance and rolls back if it no longer fits.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        tracker: BalanceProvenanceTracker,
        policy: RedemptionPolicy,
        locks: CustomerLocks,
        customers: CustomerRegistry | None = None,
        shops: ShopRegistry | None = None,
        ledger: LedgerStore | None = None,
    ) -> None:
        self._db = session
        self._tracker = tracker
        self._policy = policy
        self._locks = locks
        self._customers = customers or SqlCustomerRegistry(session)
        self._shops = shops or SqlShopRegistry(session)
        self._ledger = ledger or SqlLedgerStore(session)
        self._store = get_redemption_store()

    async def evaluate(self, customer_address: str, shop_id: str, amount: Decimal) -> Decision:
        address, shop, value = self._validate(customer_address, shop_id, amount)
        decision = await self._decide(address, shop, value)
        self._record_decision(address, shop, value, decision)
        return decision

    async def batch_evaluate(self, requests: Sequence[RedemptionRequest]) -> list[BatchEvaluation]:
        results: list[BatchEvaluation] = []
        for index, request in enumerate(requests):
            try:
                decision = await self.evaluate(request.customer_address, request.shop_id, request.amount)
            except ValueError as exc:
                decision = Denied(reason=DenialReason.INVALID_REQUEST, message=str(exc))
                self._store.record_decision(decision.reason.value)
            results.append(BatchEvaluation(index=index, request=request, decision=decision))
        return results

    async def commit(
        self,
        customer_address: str,
        shop_id: str,
        amount: Decimal,
        tx_ref: str,
        *,
        burn: BurnCallback | None = None,
    ) -> CommitResult:
        address, shop, value = self._validate(customer_address, shop_id, amount)
        if not tx_ref or not tx_ref.strip():
            raise InvalidRedemptionRequest("A transaction reference is required to commit")
        reference = tx_ref.strip()

        try:
            async with self._locks.hold(address, self._policy.lock_timeout_seconds):
                result = await self._commit_locked(address, shop, value, reference, burn)
        except CustomerLockBusy as exc:
            result = CommitResult(status=CommitStatus.BUSY, reason=LOCK_TIMEOUT, message=str(exc))

        self._store.record_commit(result.status.value, result.reason)
        logger.info(
            "Redemption commit finished",
            address=address,
            shop_id=shop,
            amount=str(value),
            tx_ref=reference,
            status=result.status.value,
            reason=result.reason,
            replayed=result.replayed,
        )
        return result

    async def cross_shop_balance(self, customer_address: str) -> CrossShopBalance | None:
        """Split the earned balance into the part redeemable anywhere and the home-only remainder."""

        address = normalize_address(customer_address)
        customer = await self._customers.get(address)
        if customer is None:
            return None
        balances = await self._tracker.get_balances(address)
        percent = self._policy.cross_shop_cap_percent
        limit = balances.earned_balance * percent / Decimal("100")
        return CrossShopBalance(
            customer_address=address,
            home_shop_id=customer.home_shop_id,
            earned_balance=balances.earned_balance,
            cross_shop_limit=limit,
            home_shop_only_balance=balances.earned_balance - limit,
            cross_shop_percent=percent,
        )

    async def _commit_locked(
        self,
        address: str,
        shop_id: str,
        amount: Decimal,
        tx_ref: str,
        burn: BurnCallback | None,
    ) -> CommitResult:
        try:
            existing = await self._ledger.get_by_tx_ref(tx_ref)
            if existing is not None:
                result = _replay_result(existing, address, shop_id, amount)
                await self._db.rollback()
                return result

            decision = await self._decide(address, shop_id, amount, for_update=True)
            if isinstance(decision, Denied):
                await self._db.rollback()
                return CommitResult(
                    status=CommitStatus.ROLLED_BACK,
                    reason=decision.reason.value,
                    message=decision.message,
                )

            if burn is not None:
                try:
                    await burn(decision)
                except Exception as exc:  # noqa: BLE001 - caller-supplied burn
                    await self._db.rollback()
                    logger.exception("Redemption burn failed", address=address, tx_ref=tx_ref)
                    return CommitResult(
                        status=CommitStatus.ROLLED_BACK,
                        reason=BURN_FAILED,
                        message=f"Burn failed: {exc}",
                    )

            entry = LedgerEntry(
                customer_address=address,
                shop_id=shop_id,
                amount=amount,
                kind=LedgerEntryKind.REDEEM,
                source=LedgerEntrySource.REDEMPTION,
                status=LedgerEntryStatus.CONFIRMED,
                tx_ref=tx_ref,
                metadata_json={
                    "isHomeShop": decision.is_home_shop,
                    "maxRedeemable": str(decision.max_redeemable),
                },
            )
            try:
                entry_id = await self._ledger.append_entry(entry)
            except DuplicateLedgerEntry:
                await self._db.rollback()
                existing = await self._ledger.get_by_tx_ref(tx_ref)
                if existing is None:
                    raise
                result = _replay_result(existing, address, shop_id, amount)
                await self._db.rollback()
                return result

            with translate_store_errors("redemption commit"):
                await self._db.commit()
        except TransientError:
            await self._db.rollback()
            raise

        return CommitResult(status=CommitStatus.CONFIRMED, entry_id=entry_id)

    async def _decide(self, address: str, shop_id: str, amount: Decimal, *, for_update: bool = False) -> Decision:
        customer = await self._customers.get(address, for_update=for_update)
        if customer is None:
            return Denied(DenialReason.CUSTOMER_NOT_FOUND, f"Customer {address} is not registered")
        if not customer.is_active:
            return Denied(DenialReason.CUSTOMER_INACTIVE, "Customer account is inactive")

        shop = await self._shops.get(shop_id)
        if shop is None:
            return Denied(DenialReason.SHOP_NOT_FOUND, f"Shop {shop_id} is not registered")
        if not shop.active or not shop.verified:
            return Denied(DenialReason.SHOP_INACTIVE, f"Shop {shop_id} is not active and verified")

        try:
            balances = await self._tracker.get_balances(address)
        except ChainBalanceUnavailable as exc:
            return Denied(DenialReason.TRANSIENT_FAILURE, str(exc), retryable=True)

        if balances.on_chain_balance < amount:
            return Denied(
                DenialReason.INSUFFICIENT_ON_CHAIN_BALANCE,
                f"Wallet holds {balances.on_chain_balance} RCN, {amount} requested",
                max_redeemable=balances.on_chain_balance,
            )

        is_home_shop = customer.home_shop_id is not None and customer.home_shop_id == shop.shop_id
        if is_home_shop:
            cap = balances.earned_balance
        else:
            if not shop.cross_shop_enabled:
                return Denied(
                    DenialReason.CROSS_SHOP_DISABLED,
                    f"Shop {shop_id} does not accept cross-shop redemptions",
                )
            cap = self._policy.cross_shop_cap(balances.earned_balance, shop.shop_id)

        if amount > cap:
            reason = DenialReason.EXCEEDS_EARNED_CAP if is_home_shop else DenialReason.EXCEEDS_CROSS_SHOP_CAP
            return Denied(reason, f"Maximum redeemable at this shop is {cap} RCN", max_redeemable=cap)

        return Approved(
            customer_address=address,
            shop_id=shop.shop_id,
            amount=amount,
            max_redeemable=cap,
            is_home_shop=is_home_shop,
            earned_balance=balances.earned_balance,
            on_chain_balance=balances.on_chain_balance,
        )

    def _validate(self, customer_address: str, shop_id: str, amount: Decimal) -> tuple[str, str, Decimal]:
        address = normalize_address(customer_address)
        if not isinstance(shop_id, str) or not shop_id.strip():
            raise InvalidRedemptionRequest("Shop ID is required")
        try:
            value = Decimal(amount)
        except (ArithmeticError, TypeError, ValueError) as exc:
            raise InvalidRedemptionRequest(f"Invalid amount: {amount!r}") from exc
        if not value.is_finite() or value <= 0:
            raise InvalidRedemptionRequest("Amount must be greater than zero")
        if not is_ledger_amount(value):
            raise InvalidRedemptionRequest(f"Amount must be in whole cents, got {value}")
        limit = self._policy.max_per_transaction
        if limit is not None and value > limit:
            raise InvalidRedemptionRequest(f"Amount exceeds the per-transaction maximum of {limit} RCN")
        return address, shop_id.strip(), value

    def _record_decision(self, address: str, shop_id: str, amount: Decimal, decision: Decision) -> None:
        outcome = "APPROVED" if isinstance(decision, Approved) else decision.reason.value
        self._store.record_decision(outcome)
        logger.info(
            "Evaluated redemption",
            address=address,
            shop_id=shop_id,
            amount=str(amount),
            outcome=outcome,
        )


def _replay_result(existing: LedgerEntry, address: str, shop_id: str, amount: Decimal) -> CommitResult:
    matches = (
        existing.kind == LedgerEntryKind.REDEEM
        and existing.customer_address == address
        and existing.shop_id == shop_id
        and Decimal(existing.amount) == amount
    )
    if matches:
        return CommitResult(status=CommitStatus.CONFIRMED, entry_id=existing.id, replayed=True)
    logger.warning("Transaction reference reused", tx_ref=existing.tx_ref, address=address)
    return CommitResult(
        status=CommitStatus.ROLLED_BACK,
        reason=DUPLICATE_REFERENCE,
        message=f"Transaction reference {existing.tx_ref} is already recorded for a different redemption",
    )
