"""Request-scoped construction of the redemption services."""

from __future__ import annotations

from functools import lru_cache

from fastapi import Depends
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from rcn_api.core.settings import settings
from rcn_api.db.session import get_session
from rcn_api.services.chain import ChainBalanceSource, JsonRpcChainBalanceSource, LedgerChainBalanceSource
from rcn_api.services.ledger import SqlLedgerStore
from rcn_api.services.provenance import BalanceProvenanceTracker
from rcn_api.services.redemption import (
    CustomerLockRegistry,
    CustomerLocks,
    RedemptionEligibilityEngine,
    RedemptionPolicy,
    RedisCustomerLockRegistry,
)
from rcn_api.services.roles import RegistrationService, SettingsAdminAllowList
from rcn_api.services.tiers import TierEngine, TierPolicy


@lru_cache
def get_customer_locks() -> CustomerLocks:
    """Process-wide lock registry; every request must share the same instance."""

    if settings.redemption_lock_backend == "redis":
        client = Redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
        return RedisCustomerLockRegistry(client, lease_seconds=settings.redemption_lock_lease_seconds)
    return CustomerLockRegistry()


@lru_cache
def get_admin_allow_list() -> SettingsAdminAllowList:
    return SettingsAdminAllowList(settings.admin_addresses)


@lru_cache
def get_tier_engine() -> TierEngine:
    return TierEngine(TierPolicy.from_settings(settings))


def get_redemption_policy() -> RedemptionPolicy:
    return RedemptionPolicy.from_settings(settings)


def build_chain_balance_source(session: AsyncSession) -> ChainBalanceSource:
    if settings.chain_balance_backend == "rpc":
        return JsonRpcChainBalanceSource(
            rpc_url=settings.chain_rpc_url or "",
            token_contract=settings.chain_token_contract or "",
            decimals=settings.chain_token_decimals,
            timeout_seconds=settings.chain_balance_timeout_seconds,
        )
    return LedgerChainBalanceSource(SqlLedgerStore(session))


async def get_balance_tracker(session: AsyncSession = Depends(get_session)) -> BalanceProvenanceTracker:
    return BalanceProvenanceTracker(
        SqlLedgerStore(session),
        build_chain_balance_source(session),
        timeout_seconds=settings.chain_balance_timeout_seconds,
    )


async def get_redemption_engine(
    session: AsyncSession = Depends(get_session),
    tracker: BalanceProvenanceTracker = Depends(get_balance_tracker),
    locks: CustomerLocks = Depends(get_customer_locks),
    policy: RedemptionPolicy = Depends(get_redemption_policy),
) -> RedemptionEligibilityEngine:
    return RedemptionEligibilityEngine(session, tracker=tracker, policy=policy, locks=locks)


async def get_registration_service(session: AsyncSession = Depends(get_session)) -> RegistrationService:
    return RegistrationService(session, admins=get_admin_allow_list())
