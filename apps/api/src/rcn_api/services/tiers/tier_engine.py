"""Tier derivation from lifetime earnings."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Mapping

from loguru import logger

from rcn_api.core.settings import Settings
from rcn_api.models.customer import Customer, CustomerTier

_HUNDRED = Decimal("100")

TIER_ORDER: tuple[CustomerTier, ...] = (CustomerTier.BRONZE, CustomerTier.SILVER, CustomerTier.GOLD)


@dataclass(frozen=True, slots=True)
class TierPolicy:
    """Tier thresholds (inclusive lower bounds) and bonus percentages."""

    silver_threshold: Decimal = Decimal("200")
    gold_threshold: Decimal = Decimal("1000")
    bonus_percents: Mapping[CustomerTier, Decimal] = field(
        default_factory=lambda: {
            CustomerTier.BRONZE: Decimal("0"),
            CustomerTier.SILVER: Decimal("10"),
            CustomerTier.GOLD: Decimal("20"),
        }
    )

    def __post_init__(self) -> None:
        if self.silver_threshold <= 0:
            raise ValueError("Silver threshold must be positive")
        if self.gold_threshold <= self.silver_threshold:
            raise ValueError("Gold threshold must exceed the silver threshold")
        for tier, percent in self.bonus_percents.items():
            if percent < 0:
                raise ValueError(f"Bonus percent for {tier.value} cannot be negative")

    @classmethod
    def from_settings(cls, settings: Settings) -> "TierPolicy":
        return cls(
            silver_threshold=Decimal(settings.tier_silver_threshold),
            gold_threshold=Decimal(settings.tier_gold_threshold),
            bonus_percents={
                CustomerTier.BRONZE: Decimal(settings.tier_bronze_bonus_percent),
                CustomerTier.SILVER: Decimal(settings.tier_silver_bonus_percent),
                CustomerTier.GOLD: Decimal(settings.tier_gold_bonus_percent),
            },
        )

    def threshold_for(self, tier: CustomerTier) -> Decimal:
        if tier == CustomerTier.GOLD:
            return self.gold_threshold
        if tier == CustomerTier.SILVER:
            return self.silver_threshold
        return Decimal("0")


@dataclass(frozen=True, slots=True)
class TierChange:
    previous_tier: CustomerTier
    new_tier: CustomerTier
    lifetime_earnings: Decimal

    @property
    def changed(self) -> bool:
        return self.previous_tier != self.new_tier


@dataclass(frozen=True, slots=True)
class TierProgression:
    current_tier: CustomerTier
    next_tier: CustomerTier | None
    tokens_to_next_tier: Decimal
    progress_percentage: Decimal


@dataclass(frozen=True, slots=True)
class TierDistribution:
    counts: Mapping[CustomerTier, int]
    total: int
    average_lifetime_earnings: Decimal


class TierEngine:
    """Maps lifetime earnings to tiers and applies earning deltas."""

    def __init__(self, policy: TierPolicy | None = None) -> None:
        self._policy = policy or TierPolicy()

    @property
    def policy(self) -> TierPolicy:
        return self._policy

    def tier_for(self, lifetime_earnings: Decimal) -> CustomerTier:
        earnings = Decimal(lifetime_earnings)
        if earnings >= self._policy.gold_threshold:
            return CustomerTier.GOLD
        if earnings >= self._policy.silver_threshold:
            return CustomerTier.SILVER
        return CustomerTier.BRONZE

    def bonus_percent_for(self, tier: CustomerTier) -> Decimal:
        return Decimal(self._policy.bonus_percents.get(CustomerTier(tier), Decimal("0")))

    def apply_bonus(self, amount: Decimal, tier: CustomerTier) -> Decimal:
        """Return the bonus owed on an earning of ``amount`` at ``tier``."""

        bonus = Decimal(amount) * self.bonus_percent_for(tier) / _HUNDRED
        return bonus.quantize(Decimal("0.01"))

    def recompute(self, customer: Customer, earnings_delta: Decimal) -> TierChange:
        """Add an earning delta to the customer's lifetime earnings and re-derive the tier.

        Spending never reaches this method; lifetime earnings only grow here.
        Use :meth:`correct_lifetime_earnings` for administrative corrections.
        """

        delta = Decimal(earnings_delta)
        if delta < 0:
            raise ValueError("Earnings delta cannot be negative")
        previous_tier = CustomerTier(customer.tier or CustomerTier.BRONZE)
        lifetime = Decimal(customer.lifetime_earnings or 0) + delta
        return self._apply(customer, previous_tier, lifetime)

    def correct_lifetime_earnings(self, customer: Customer, lifetime_earnings: Decimal, *, reason: str) -> TierChange:
        """Administrative override of lifetime earnings; the only path that may lower them."""

        corrected = Decimal(lifetime_earnings)
        if corrected < 0:
            raise ValueError("Lifetime earnings cannot be negative")
        previous_tier = CustomerTier(customer.tier or CustomerTier.BRONZE)
        logger.warning(
            "Corrected lifetime earnings",
            address=customer.address,
            previous=str(customer.lifetime_earnings),
            corrected=str(corrected),
            reason=reason,
        )
        return self._apply(customer, previous_tier, corrected)

    def progression(self, lifetime_earnings: Decimal) -> TierProgression:
        earnings = Decimal(lifetime_earnings)
        current = self.tier_for(earnings)
        index = TIER_ORDER.index(current)
        if index == len(TIER_ORDER) - 1:
            return TierProgression(
                current_tier=current,
                next_tier=None,
                tokens_to_next_tier=Decimal("0"),
                progress_percentage=_HUNDRED,
            )

        next_tier = TIER_ORDER[index + 1]
        floor = self._policy.threshold_for(current)
        ceiling = self._policy.threshold_for(next_tier)
        progress = (earnings - floor) / (ceiling - floor) * _HUNDRED
        return TierProgression(
            current_tier=current,
            next_tier=next_tier,
            tokens_to_next_tier=max(ceiling - earnings, Decimal("0")),
            progress_percentage=min(max(progress, Decimal("0")), _HUNDRED).quantize(Decimal("0.01")),
        )

    def tier_distribution(self, customers: Iterable[Customer]) -> TierDistribution:
        counts = {tier: 0 for tier in TIER_ORDER}
        total = 0
        earnings = Decimal("0")
        for customer in customers:
            counts[CustomerTier(customer.tier or CustomerTier.BRONZE)] += 1
            earnings += Decimal(customer.lifetime_earnings or 0)
            total += 1
        average = (earnings / total).quantize(Decimal("0.01")) if total else Decimal("0")
        return TierDistribution(counts=counts, total=total, average_lifetime_earnings=average)

    def _apply(self, customer: Customer, previous_tier: CustomerTier, lifetime: Decimal) -> TierChange:
        new_tier = self.tier_for(lifetime)
        customer.lifetime_earnings = lifetime
        customer.tier = new_tier
        change = TierChange(previous_tier=previous_tier, new_tier=new_tier, lifetime_earnings=lifetime)
        if change.changed:
            customer.last_tier_change_at = datetime.now(timezone.utc)
            logger.info(
                "Customer tier changed",
                address=customer.address,
                previous_tier=previous_tier.value,
                new_tier=new_tier.value,
                lifetime_earnings=str(lifetime),
            )
        return change
