"""Tier engine exports."""

from .tier_engine import (  # noqa: F401
    TIER_ORDER,
    TierChange,
    TierDistribution,
    TierEngine,
    TierPolicy,
    TierProgression,
)
