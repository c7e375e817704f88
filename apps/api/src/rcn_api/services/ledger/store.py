"""Ledger store interface and its SQLAlchemy implementation."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Iterable, Protocol, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rcn_api.models.ledger import AMOUNT_QUANTUM, MAX_AMOUNT, LedgerEntry, LedgerEntryKind, LedgerEntryStatus
from rcn_api.services.errors import DuplicateLedgerEntry
from rcn_api.services.roles.registries import translate_store_errors


def is_ledger_amount(value: Decimal) -> bool:
    """True when ``value`` is positive and stores in the ledger without rounding."""

    if not value.is_finite() or value <= 0 or value > MAX_AMOUNT:
        return False
    try:
        return value == value.quantize(AMOUNT_QUANTUM)
    except InvalidOperation:
        return False


class LedgerStore(Protocol):
    async def append_entry(self, entry: LedgerEntry) -> UUID:
        """Persist ``entry`` and return its id; raises ``DuplicateLedgerEntry`` on a reused tx_ref."""

    async def query_entries(
        self,
        customer_address: str,
        kinds: Iterable[LedgerEntryKind] | None = None,
        since: datetime | None = None,
    ) -> Sequence[LedgerEntry]:
        """Return confirmed entries recorded against ``customer_address``."""

    async def query_inbound_transfers(self, address: str) -> Sequence[LedgerEntry]:
        """Return confirmed transfers received by ``address``."""

    async def get_by_tx_ref(self, tx_ref: str) -> LedgerEntry | None:
        """Return the entry recorded for a transaction reference."""


class SqlLedgerStore:
    """Append-only ledger backed by ``ledger_entries``.

    ``append_entry`` only flushes; the caller owns the transaction so that
    balance checks and the append commit together.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._db = session

    async def append_entry(self, entry: LedgerEntry) -> UUID:
        if entry.amount is None or not is_ledger_amount(Decimal(entry.amount)):
            raise ValueError(f"Ledger entries require a positive whole-cent amount, got {entry.amount!r}")
        if entry.tx_ref and await self.get_by_tx_ref(entry.tx_ref) is not None:
            raise DuplicateLedgerEntry(entry.tx_ref)

        self._db.add(entry)
        try:
            await self._db.flush()
        except IntegrityError as exc:
            await self._db.rollback()
            if entry.tx_ref and await self.get_by_tx_ref(entry.tx_ref) is not None:
                raise DuplicateLedgerEntry(entry.tx_ref) from exc
            raise
        logger.debug(
            "Appended ledger entry",
            entry_id=str(entry.id),
            customer_address=entry.customer_address,
            kind=entry.kind.value,
            source=entry.source.value,
            amount=str(entry.amount),
        )
        return entry.id

    async def query_entries(
        self,
        customer_address: str,
        kinds: Iterable[LedgerEntryKind] | None = None,
        since: datetime | None = None,
    ) -> Sequence[LedgerEntry]:
        stmt = (
            select(LedgerEntry)
            .where(LedgerEntry.customer_address == customer_address.lower())
            .where(LedgerEntry.status == LedgerEntryStatus.CONFIRMED)
            .order_by(LedgerEntry.occurred_at.asc(), LedgerEntry.created_at.asc())
        )
        kind_filter = list(kinds or [])
        if kind_filter:
            stmt = stmt.where(LedgerEntry.kind.in_(kind_filter))
        if since is not None:
            stmt = stmt.where(LedgerEntry.occurred_at >= since)
        with translate_store_errors("ledger query"):
            result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def query_inbound_transfers(self, address: str) -> Sequence[LedgerEntry]:
        stmt = (
            select(LedgerEntry)
            .where(LedgerEntry.counterparty_address == address.lower())
            .where(LedgerEntry.kind == LedgerEntryKind.TRANSFER)
            .where(LedgerEntry.status == LedgerEntryStatus.CONFIRMED)
        )
        with translate_store_errors("ledger transfer query"):
            result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def get_by_tx_ref(self, tx_ref: str) -> LedgerEntry | None:
        stmt = select(LedgerEntry).where(LedgerEntry.tx_ref == tx_ref)
        with translate_store_errors("ledger tx_ref lookup"):
            result = await self._db.execute(stmt)
        return result.scalar_one_or_none()
