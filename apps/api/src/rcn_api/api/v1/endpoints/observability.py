"""Observability endpoints for redemption decisions and role conflicts."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from rcn_api.api.dependencies.security import require_shop_api_key
from rcn_api.observability.redemption import get_redemption_store


router = APIRouter(prefix="/observability", tags=["Observability"])


@router.get(
    "/redemptions",
    dependencies=[Depends(require_shop_api_key)],
    summary="Redemption observability snapshot",
)
async def get_redemption_snapshot() -> dict[str, object]:
    """Aggregated decision, commit, and role-conflict counters (requires shop API key)."""
    store = get_redemption_store()
    return store.snapshot().as_dict()
