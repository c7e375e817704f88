"""Earned-versus-held balance derivation for customer wallets."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable

from loguru import logger

from rcn_api.models.ledger import EARNING_SOURCES, LedgerEntry, LedgerEntryKind, LedgerEntrySource
from rcn_api.services.addresses import normalize_address
from rcn_api.services.chain.balance_source import ChainBalanceSource
from rcn_api.services.errors import ChainBalanceUnavailable
from rcn_api.services.ledger.store import LedgerStore

_ZERO = Decimal("0")


@dataclass(slots=True)
class CustomerBalances:
    """Balances for one customer.

    ``earned_balance`` is the redeemable portion: earning mints minus redeems and
    outbound transfers, clamped to ``[0, on_chain_balance]``. Because tokens are
    fungible the tracker cannot tell which tokens left the wallet, so it assumes
    earned tokens leave last and never reports more earned than is held.
    """

    customer_address: str
    on_chain_balance: Decimal
    earned_balance: Decimal
    ledger_earned_total: Decimal
    purchased_total: Decimal
    redeemed_total: Decimal
    transferred_out_total: Decimal
    earning_history: dict[str, Decimal] = field(default_factory=dict)

    @property
    def market_balance(self) -> Decimal:
        return max(self.on_chain_balance - self.earned_balance, _ZERO)


@dataclass(slots=True)
class ShopEarningSummary:
    shop_id: str
    total_earned: Decimal
    by_source: dict[str, Decimal]
    entries: int
    last_earned_at: datetime | None


@dataclass(slots=True)
class EarningSourceReport:
    customer_address: str
    total_earned: Decimal
    shops: list[ShopEarningSummary]
    primary_shop_id: str | None


class BalanceProvenanceTracker:
    """Combines the ledger of record with the chain balance source."""

    def __init__(
        self,
        ledger: LedgerStore,
        chain: ChainBalanceSource,
        *,
        timeout_seconds: float | None = 5.0,
    ) -> None:
        self._ledger = ledger
        self._chain = chain
        self._timeout_seconds = timeout_seconds

    async def get_balances(self, customer_address: str) -> CustomerBalances:
        address = normalize_address(customer_address)
        on_chain = await self._on_chain_balance(address)
        entries = await self._ledger.query_entries(address)

        earned_total = _ZERO
        purchased = _ZERO
        redeemed = _ZERO
        transferred_out = _ZERO
        history: dict[str, Decimal] = defaultdict(lambda: _ZERO)
        for entry in entries:
            amount = Decimal(entry.amount)
            if entry.kind == LedgerEntryKind.MINT:
                if entry.source in EARNING_SOURCES:
                    earned_total += amount
                    history[entry.source.value] += amount
                elif entry.source == LedgerEntrySource.PURCHASE:
                    purchased += amount
            elif entry.kind == LedgerEntryKind.REDEEM:
                redeemed += amount
            elif entry.kind == LedgerEntryKind.TRANSFER:
                transferred_out += amount

        ledger_earned = earned_total - redeemed - transferred_out
        earned = min(max(ledger_earned, _ZERO), on_chain)
        if earned != ledger_earned:
            logger.debug(
                "Clamped earned balance",
                address=address,
                ledger_earned=str(ledger_earned),
                on_chain=str(on_chain),
                earned=str(earned),
            )
        return CustomerBalances(
            customer_address=address,
            on_chain_balance=on_chain,
            earned_balance=earned,
            ledger_earned_total=ledger_earned,
            purchased_total=purchased,
            redeemed_total=redeemed,
            transferred_out_total=transferred_out,
            earning_history=dict(history),
        )

    async def earning_sources(self, customer_address: str) -> EarningSourceReport:
        """Group a customer's earning mints by the shop that issued them."""

        address = normalize_address(customer_address)
        entries = await self._ledger.query_entries(address, kinds=[LedgerEntryKind.MINT])
        summaries = _summarize_by_shop(entry for entry in entries if entry.source in EARNING_SOURCES)
        total = sum((summary.total_earned for summary in summaries), _ZERO)
        primary = summaries[0].shop_id if summaries else None
        return EarningSourceReport(
            customer_address=address,
            total_earned=total,
            shops=summaries,
            primary_shop_id=primary,
        )

    async def _on_chain_balance(self, address: str) -> Decimal:
        try:
            if self._timeout_seconds:
                balance = await asyncio.wait_for(self._chain.get_balance(address), self._timeout_seconds)
            else:
                balance = await self._chain.get_balance(address)
        except asyncio.TimeoutError as exc:
            logger.warning("Chain balance lookup timed out", address=address, timeout=self._timeout_seconds)
            raise ChainBalanceUnavailable(f"Balance lookup for {address} timed out") from exc
        return max(Decimal(balance), _ZERO)


def _summarize_by_shop(entries: Iterable[LedgerEntry]) -> list[ShopEarningSummary]:
    grouped: dict[str, ShopEarningSummary] = {}
    for entry in entries:
        shop_id = entry.shop_id or "unattributed"
        summary = grouped.get(shop_id)
        if summary is None:
            summary = ShopEarningSummary(
                shop_id=shop_id,
                total_earned=_ZERO,
                by_source={},
                entries=0,
                last_earned_at=None,
            )
            grouped[shop_id] = summary
        amount = Decimal(entry.amount)
        summary.total_earned += amount
        summary.by_source[entry.source.value] = summary.by_source.get(entry.source.value, _ZERO) + amount
        summary.entries += 1
        if summary.last_earned_at is None or (entry.occurred_at and entry.occurred_at > summary.last_earned_at):
            summary.last_earned_at = entry.occurred_at
    return sorted(grouped.values(), key=lambda item: (-item.total_earned, item.shop_id))
