from fastapi import APIRouter

from .endpoints import (
    customers,
    health,
    observability,
    redemptions,
    registrations,
)

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(redemptions.router)
router.include_router(customers.router)
router.include_router(registrations.router)
router.include_router(observability.router)
