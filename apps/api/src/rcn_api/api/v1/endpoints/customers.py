"""Customer balance, tier, and earning-source lookups."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from rcn_api.api.dependencies.services import get_balance_tracker, get_redemption_engine, get_tier_engine
from rcn_api.db.session import get_session
from rcn_api.models.customer import Customer
from rcn_api.services.addresses import normalize_address
from rcn_api.services.errors import InvalidAddressError, TransientError
from rcn_api.services.provenance import BalanceProvenanceTracker
from rcn_api.services.redemption import RedemptionEligibilityEngine
from rcn_api.services.roles import SqlCustomerRegistry
from rcn_api.services.tiers import TierEngine


router = APIRouter(prefix="/customers", tags=["Customers"])


class CustomerBalancesResponse(BaseModel):
    address: str
    onChainBalance: float
    earnedBalance: float
    marketBalance: float
    purchasedTotal: float
    redeemedTotal: float
    transferredOutTotal: float
    earningHistory: Dict[str, float]


class CustomerTierResponse(BaseModel):
    address: str
    tier: str
    lifetimeEarnings: float
    bonusPercent: float
    nextTier: Optional[str]
    tokensToNextTier: float
    progressPercentage: float
    lastTierChangeAt: Optional[datetime]


class ShopEarningResponse(BaseModel):
    shopId: str
    totalEarned: float
    bySource: Dict[str, float]
    entries: int
    lastEarnedAt: Optional[datetime]


class EarningSourcesResponse(BaseModel):
    address: str
    totalEarned: float
    primaryShopId: Optional[str]
    shops: List[ShopEarningResponse]


class CrossShopBalanceResponse(BaseModel):
    address: str
    homeShopId: Optional[str]
    earnedBalance: float
    crossShopLimit: float
    homeShopOnlyBalance: float
    crossShopPercent: float


async def _require_customer(address: str, session: AsyncSession) -> Customer:
    try:
        normalized = normalize_address(address)
    except InvalidAddressError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    try:
        customer = await SqlCustomerRegistry(session).get(normalized)
    except TransientError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    if customer is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")
    return customer


@router.get("/{address}/balances", response_model=CustomerBalancesResponse)
async def get_customer_balances(
    address: str,
    session: AsyncSession = Depends(get_session),
    tracker: BalanceProvenanceTracker = Depends(get_balance_tracker),
) -> CustomerBalancesResponse:
    customer = await _require_customer(address, session)
    try:
        balances = await tracker.get_balances(customer.address)
    except TransientError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return CustomerBalancesResponse(
        address=balances.customer_address,
        onChainBalance=float(balances.on_chain_balance),
        earnedBalance=float(balances.earned_balance),
        marketBalance=float(balances.market_balance),
        purchasedTotal=float(balances.purchased_total),
        redeemedTotal=float(balances.redeemed_total),
        transferredOutTotal=float(balances.transferred_out_total),
        earningHistory={source: float(amount) for source, amount in balances.earning_history.items()},
    )


@router.get("/{address}/tier", response_model=CustomerTierResponse)
async def get_customer_tier(
    address: str,
    session: AsyncSession = Depends(get_session),
    tiers: TierEngine = Depends(get_tier_engine),
) -> CustomerTierResponse:
    customer = await _require_customer(address, session)
    progression = tiers.progression(customer.lifetime_earnings)
    return CustomerTierResponse(
        address=customer.address,
        tier=customer.tier.value,
        lifetimeEarnings=float(customer.lifetime_earnings),
        bonusPercent=float(tiers.bonus_percent_for(customer.tier)),
        nextTier=progression.next_tier.value if progression.next_tier else None,
        tokensToNextTier=float(progression.tokens_to_next_tier),
        progressPercentage=float(progression.progress_percentage),
        lastTierChangeAt=customer.last_tier_change_at,
    )


@router.get("/{address}/earning-sources", response_model=EarningSourcesResponse)
async def get_customer_earning_sources(
    address: str,
    session: AsyncSession = Depends(get_session),
    tracker: BalanceProvenanceTracker = Depends(get_balance_tracker),
) -> EarningSourcesResponse:
    customer = await _require_customer(address, session)
    try:
        report = await tracker.earning_sources(customer.address)
    except TransientError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return EarningSourcesResponse(
        address=report.customer_address,
        totalEarned=float(report.total_earned),
        primaryShopId=report.primary_shop_id,
        shops=[
            ShopEarningResponse(
                shopId=summary.shop_id,
                totalEarned=float(summary.total_earned),
                bySource={source: float(amount) for source, amount in summary.by_source.items()},
                entries=summary.entries,
                lastEarnedAt=summary.last_earned_at,
            )
            for summary in report.shops
        ],
    )


@router.get("/{address}/cross-shop-balance", response_model=CrossShopBalanceResponse)
async def get_customer_cross_shop_balance(
    address: str,
    engine: RedemptionEligibilityEngine = Depends(get_redemption_engine),
) -> CrossShopBalanceResponse:
    try:
        balance = await engine.cross_shop_balance(address)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except TransientError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    if balance is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")
    return CrossShopBalanceResponse(
        address=balance.customer_address,
        homeShopId=balance.home_shop_id,
        earnedBalance=float(balance.earned_balance),
        crossShopLimit=float(balance.cross_shop_limit),
        homeShopOnlyBalance=float(balance.home_shop_only_balance),
        crossShopPercent=float(balance.cross_shop_percent),
    )
