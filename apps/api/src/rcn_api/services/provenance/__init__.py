"""Balance provenance tracking."""

from .balance_tracker import (  # noqa: F401
    BalanceProvenanceTracker,
    CustomerBalances,
    EarningSourceReport,
    ShopEarningSummary,
)
