"""Earning, purchase, and transfer recording."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from rcn_api.models.customer import Customer
from rcn_api.models.ledger import (
    EARNING_SOURCES,
    LedgerEntry,
    LedgerEntryKind,
    LedgerEntrySource,
    LedgerEntryStatus,
)
from rcn_api.services.addresses import normalize_address
from rcn_api.services.errors import DuplicateLedgerEntry, InvalidRedemptionRequest
from rcn_api.services.ledger.store import SqlLedgerStore, is_ledger_amount
from rcn_api.services.roles.registration import RegistrationService
from rcn_api.services.roles.registries import AdminAllowList, SqlCustomerRegistry, translate_store_errors
from rcn_api.services.tiers.tier_engine import TierChange, TierEngine

_BONUS_ELIGIBLE_SOURCES = frozenset({LedgerEntrySource.REPAIR, LedgerEntrySource.REFERRAL_BONUS})


@dataclass(slots=True)
class EarningResult:
    entry: LedgerEntry
    tier_change: TierChange
    bonus_entry: LedgerEntry | None = None

    @property
    def total_awarded(self) -> Decimal:
        bonus = Decimal(self.bonus_entry.amount) if self.bonus_entry is not None else Decimal("0")
        return Decimal(self.entry.amount) + bonus


class EarningService:
    """Writes earning-side ledger entries and keeps lifetime earnings and tier current."""

    def __init__(self, session: AsyncSession, *, tier_engine: TierEngine, admins: AdminAllowList) -> None:
        self._db = session
        self._ledger = SqlLedgerStore(session)
        self._customers = SqlCustomerRegistry(session)
        self._registration = RegistrationService(session, admins=admins)
        self._tiers = tier_engine

    async def record_earning(
        self,
        customer_address: str,
        shop_id: str | None,
        amount: Decimal,
        source: LedgerEntrySource,
        tx_ref: str | None = None,
        *,
        metadata: dict[str, Any] | None = None,
    ) -> EarningResult:
        """Append an earning mint, plus a tier bonus mint for repair and referral earnings.

        Unknown customers are registered on the spot through the normal
        registration path, with the issuing shop as their home shop.
        """

        address = normalize_address(customer_address)
        value = _positive_amount(amount)
        source = LedgerEntrySource(source)
        if source not in EARNING_SOURCES:
            raise InvalidRedemptionRequest(f"{source.value} is not an earning source")

        customer = await self._ensure_customer(address, shop_id)
        bonus = Decimal("0")
        if source in _BONUS_ELIGIBLE_SOURCES:
            bonus = self._tiers.apply_bonus(value, customer.tier)

        entry = LedgerEntry(
            customer_address=address,
            shop_id=shop_id,
            amount=value,
            kind=LedgerEntryKind.MINT,
            source=source,
            status=LedgerEntryStatus.CONFIRMED,
            tx_ref=tx_ref,
            metadata_json=metadata,
        )
        bonus_entry: LedgerEntry | None = None
        try:
            await self._ledger.append_entry(entry)
            if bonus > 0:
                bonus_entry = LedgerEntry(
                    customer_address=address,
                    shop_id=shop_id,
                    amount=bonus,
                    kind=LedgerEntryKind.MINT,
                    source=LedgerEntrySource.TIER_BONUS,
                    status=LedgerEntryStatus.CONFIRMED,
                    tx_ref=f"{tx_ref}:tier-bonus" if tx_ref else None,
                    metadata_json={"tier": customer.tier.value, "baseAmount": str(value)},
                )
                await self._ledger.append_entry(bonus_entry)
        except DuplicateLedgerEntry:
            await self._db.rollback()
            raise

        if source == LedgerEntrySource.REFERRAL_BONUS:
            customer.referral_count = (customer.referral_count or 0) + 1
        tier_change = self._tiers.recompute(customer, value + bonus)
        with translate_store_errors("earning commit"):
            await self._db.commit()

        logger.info(
            "Recorded earning",
            address=address,
            shop_id=shop_id,
            source=source.value,
            amount=str(value),
            bonus=str(bonus),
            tier=tier_change.new_tier.value,
        )
        return EarningResult(entry=entry, tier_change=tier_change, bonus_entry=bonus_entry)

    async def record_purchase(self, customer_address: str, amount: Decimal, tx_ref: str | None = None) -> LedgerEntry:
        """Record market-bought tokens; they never count as earned or toward tiers."""

        entry = LedgerEntry(
            customer_address=normalize_address(customer_address),
            amount=_positive_amount(amount),
            kind=LedgerEntryKind.MINT,
            source=LedgerEntrySource.PURCHASE,
            status=LedgerEntryStatus.CONFIRMED,
            tx_ref=tx_ref,
        )
        await self._append_and_commit(entry, "purchase commit")
        logger.info("Recorded purchase", address=entry.customer_address, amount=str(entry.amount))
        return entry

    async def record_transfer(
        self,
        sender_address: str,
        recipient_address: str,
        amount: Decimal,
        tx_ref: str | None = None,
    ) -> LedgerEntry:
        """Record an outbound transfer against the sender's earned balance."""

        sender = normalize_address(sender_address)
        recipient = normalize_address(recipient_address)
        if sender == recipient:
            raise InvalidRedemptionRequest("Sender and recipient must differ")

        entry = LedgerEntry(
            customer_address=sender,
            counterparty_address=recipient,
            amount=_positive_amount(amount),
            kind=LedgerEntryKind.TRANSFER,
            source=LedgerEntrySource.TRANSFER,
            status=LedgerEntryStatus.CONFIRMED,
            tx_ref=tx_ref,
        )
        await self._append_and_commit(entry, "transfer commit")
        logger.info("Recorded transfer", sender=sender, recipient=recipient, amount=str(entry.amount))
        return entry

    async def _ensure_customer(self, address: str, shop_id: str | None) -> Customer:
        customer = await self._customers.get(address)
        if customer is not None:
            return customer

        registration = await self._registration.register_customer(address, home_shop_id=shop_id, commit=False)
        if registration.customer is None:
            if registration.check.is_duplicate:
                existing = await self._customers.get(address)
                if existing is not None:
                    return existing
            raise InvalidRedemptionRequest(registration.check.message or f"{address} cannot earn tokens")
        logger.info("Implicitly registered customer on first earning", address=address, shop_id=shop_id)
        return registration.customer

    async def _append_and_commit(self, entry: LedgerEntry, operation: str) -> None:
        try:
            await self._ledger.append_entry(entry)
        except DuplicateLedgerEntry:
            await self._db.rollback()
            raise
        with translate_store_errors(operation):
            await self._db.commit()


def _positive_amount(amount: Decimal) -> Decimal:
    value = Decimal(amount)
    if not value.is_finite() or value <= 0:
        raise InvalidRedemptionRequest("Amount must be a positive number")
    if not is_ledger_amount(value):
        raise InvalidRedemptionRequest(f"Amount must be in whole cents, got {value}")
    return value
