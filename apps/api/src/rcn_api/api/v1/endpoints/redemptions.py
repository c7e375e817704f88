"""Shop-facing redemption endpoints."""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from rcn_api.api.dependencies.security import require_shop_api_key
from rcn_api.api.dependencies.services import get_redemption_engine
from rcn_api.services.errors import TransientError
from rcn_api.services.redemption import (
    Approved,
    CommitResult,
    Decision,
    RedemptionEligibilityEngine,
    RedemptionRequest,
)


router = APIRouter(
    prefix="/redemptions",
    tags=["Redemptions"],
    dependencies=[Depends(require_shop_api_key)],
)


class RedemptionEvaluateRequest(BaseModel):
    customerAddress: str
    shopId: str
    amount: Decimal


class RedemptionCommitRequest(RedemptionEvaluateRequest):
    txRef: str = Field(..., min_length=1, description="Caller-supplied idempotency key, usually the burn tx hash")


class BatchEvaluateRequest(BaseModel):
    requests: List[RedemptionEvaluateRequest] = Field(..., min_length=1, max_length=50)


class RedemptionDecisionResponse(BaseModel):
    approved: bool
    maxRedeemable: Optional[float] = None
    isHomeShop: Optional[bool] = None
    earnedBalance: Optional[float] = None
    onChainBalance: Optional[float] = None
    reason: Optional[str] = None
    message: Optional[str] = None
    retryable: bool = False


class BatchDecisionResponse(RedemptionDecisionResponse):
    index: int
    customerAddress: str
    shopId: str


class BatchEvaluateResponse(BaseModel):
    results: List[BatchDecisionResponse]
    approvedCount: int
    deniedCount: int


class RedemptionCommitResponse(BaseModel):
    status: str
    entryId: Optional[UUID] = None
    reason: Optional[str] = None
    message: Optional[str] = None
    replayed: bool = False
    retryable: bool = False


def _decision_payload(decision: Decision) -> dict:
    if isinstance(decision, Approved):
        return {
            "approved": True,
            "maxRedeemable": float(decision.max_redeemable),
            "isHomeShop": decision.is_home_shop,
            "earnedBalance": float(decision.earned_balance),
            "onChainBalance": float(decision.on_chain_balance),
        }
    return {
        "approved": False,
        "maxRedeemable": float(decision.max_redeemable) if decision.max_redeemable is not None else None,
        "reason": decision.reason.value,
        "message": decision.message,
        "retryable": decision.retryable,
    }


def _commit_response(result: CommitResult) -> RedemptionCommitResponse:
    return RedemptionCommitResponse(
        status=result.status.value,
        entryId=result.entry_id,
        reason=result.reason,
        message=result.message,
        replayed=result.replayed,
        retryable=result.retryable,
    )


@router.post("/evaluate", response_model=RedemptionDecisionResponse, summary="Evaluate a proposed redemption")
async def evaluate_redemption(
    payload: RedemptionEvaluateRequest,
    engine: RedemptionEligibilityEngine = Depends(get_redemption_engine),
) -> RedemptionDecisionResponse:
    try:
        decision = await engine.evaluate(payload.customerAddress, payload.shopId, payload.amount)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except TransientError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return RedemptionDecisionResponse(**_decision_payload(decision))


@router.post("/commit", response_model=RedemptionCommitResponse, summary="Record a redemption after the burn")
async def commit_redemption(
    payload: RedemptionCommitRequest,
    engine: RedemptionEligibilityEngine = Depends(get_redemption_engine),
) -> RedemptionCommitResponse:
    try:
        result = await engine.commit(payload.customerAddress, payload.shopId, payload.amount, payload.txRef)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except TransientError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return _commit_response(result)


@router.post("/batch-evaluate", response_model=BatchEvaluateResponse, summary="Evaluate several redemptions")
async def batch_evaluate_redemptions(
    payload: BatchEvaluateRequest,
    engine: RedemptionEligibilityEngine = Depends(get_redemption_engine),
) -> BatchEvaluateResponse:
    requests = [
        RedemptionRequest(customer_address=item.customerAddress, shop_id=item.shopId, amount=item.amount)
        for item in payload.requests
    ]
    try:
        evaluations = await engine.batch_evaluate(requests)
    except TransientError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    results = [
        BatchDecisionResponse(
            index=evaluation.index,
            customerAddress=evaluation.request.customer_address,
            shopId=evaluation.request.shop_id,
            **_decision_payload(evaluation.decision),
        )
        for evaluation in evaluations
    ]
    approved = sum(1 for result in results if result.approved)
    return BatchEvaluateResponse(results=results, approvedCount=approved, deniedCount=len(results) - approved)
