from __future__ import annotations

from typing import Dict, Literal

from fastapi import APIRouter, Depends
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rcn_api.core.settings import settings
from rcn_api.db.session import get_session


router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "disabled", "error"]
    detail: str | None = Field(default=None, description="Human readable status detail")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/healthz", summary="Service health check")
async def service_health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(session: AsyncSession = Depends(get_session)) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}
    status: Literal["ready", "degraded", "error"] = "ready"

    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("Database readiness check failed", error=str(exc))
        components["database"] = ComponentStatus(status="error", detail=str(exc))
        status = "error"
    else:
        components["database"] = ComponentStatus(status="ready")

    if settings.chain_balance_backend == "rpc":
        configured = bool(settings.chain_rpc_url and settings.chain_token_contract)
        components["chain_balance"] = ComponentStatus(
            status="ready" if configured else "error",
            detail=None if configured else "Chain RPC URL or token contract missing",
        )
        if not configured:
            status = "error"
    else:
        components["chain_balance"] = ComponentStatus(
            status="disabled",
            detail="Balances derived from the ledger of record",
        )

    components["commit_locks"] = ComponentStatus(
        status="ready",
        detail=f"{settings.redemption_lock_backend} backend",
    )
    if not settings.admin_addresses and status == "ready":
        status = "degraded"
        components["admin_addresses"] = ComponentStatus(status="disabled", detail="No admin addresses configured")

    return ReadinessPayload(status=status, components=components)
