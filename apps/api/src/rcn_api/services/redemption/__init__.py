"""Redemption eligibility engine and its supporting primitives."""

from .eligibility import (  # noqa: F401
    BURN_FAILED,
    DUPLICATE_REFERENCE,
    LOCK_TIMEOUT,
    Approved,
    BatchEvaluation,
    CommitResult,
    CommitStatus,
    CrossShopBalance,
    Decision,
    Denied,
    DenialReason,
    RedemptionEligibilityEngine,
    RedemptionRequest,
)
from .locks import CustomerLockRegistry, CustomerLocks, RedisCustomerLockRegistry  # noqa: F401
from .policy import RedemptionPolicy  # noqa: F401
