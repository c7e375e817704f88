"""Redemption limits."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Mapping

from rcn_api.core.settings import Settings


@dataclass(frozen=True, slots=True)
class RedemptionPolicy:
    cross_shop_cap_percent: Decimal = Decimal("20")
    cross_shop_ceilings: Mapping[str, Decimal] = field(default_factory=dict)
    max_per_transaction: Decimal | None = None
    lock_timeout_seconds: float = 5.0

    def __post_init__(self) -> None:
        if not Decimal("0") <= self.cross_shop_cap_percent <= Decimal("100"):
            raise ValueError("Cross-shop cap percent must be between 0 and 100")
        if self.max_per_transaction is not None and self.max_per_transaction <= 0:
            raise ValueError("Per-transaction maximum must be positive")
        if self.lock_timeout_seconds <= 0:
            raise ValueError("Lock timeout must be positive")

    @classmethod
    def from_settings(cls, settings: Settings) -> "RedemptionPolicy":
        return cls(
            cross_shop_cap_percent=Decimal(settings.redemption_cross_shop_cap_percent),
            cross_shop_ceilings=dict(settings.redemption_cross_shop_ceilings),
            max_per_transaction=settings.redemption_max_per_transaction,
            lock_timeout_seconds=settings.redemption_lock_timeout_seconds,
        )

    def cross_shop_cap(self, earned_balance: Decimal, shop_id: str) -> Decimal:
        """Largest amount redeemable at a shop other than the customer's home shop."""

        cap = Decimal(earned_balance) * self.cross_shop_cap_percent / Decimal("100")
        ceiling = self.cross_shop_ceilings.get(shop_id)
        if ceiling is not None:
            cap = min(cap, Decimal(ceiling))
        return max(cap, Decimal("0"))
