"""Customer and shop registration endpoints."""

from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from rcn_api.api.dependencies.services import get_registration_service
from rcn_api.models.address_role import AddressRoleType
from rcn_api.services.errors import TransientError
from rcn_api.services.roles import RegistrationService, RoleCheckResult


router = APIRouter(prefix="/registrations", tags=["Registrations"])


class CustomerRegistrationRequest(BaseModel):
    address: str
    homeShopId: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None


class ShopRegistrationRequest(BaseModel):
    shopId: str = Field(..., min_length=1)
    walletAddress: str
    name: Optional[str] = None
    crossShopEnabled: bool = False
    reimbursementAddress: Optional[str] = None


class RoleCheckResponse(BaseModel):
    status: str
    address: str
    intendedRole: str
    conflictingRole: Optional[str] = None
    message: Optional[str] = None


class CustomerRegistrationResponse(BaseModel):
    address: str
    tier: str
    homeShopId: Optional[str]


class ShopRegistrationResponse(BaseModel):
    shopId: str
    walletAddress: str
    verified: bool
    active: bool
    crossShopEnabled: bool


def _check_payload(check: RoleCheckResult) -> RoleCheckResponse:
    return RoleCheckResponse(
        status=check.status.value,
        address=check.address,
        intendedRole=check.intended_role.value,
        conflictingRole=check.conflicting_role.value if check.conflicting_role else None,
        message=check.message,
    )


def _rejected(check: RoleCheckResult) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=_check_payload(check).model_dump())


@router.get("/check", response_model=RoleCheckResponse, summary="Check whether an address can take a role")
async def check_registration(
    address: str = Query(...),
    role: Literal["customer", "shop"] = Query("customer"),
    service: RegistrationService = Depends(get_registration_service),
) -> RoleCheckResponse:
    try:
        check = await service.validator.check_registration(address, AddressRoleType(role))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except TransientError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return _check_payload(check)


@router.post(
    "/customers",
    response_model=CustomerRegistrationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a customer wallet",
)
async def register_customer(
    payload: CustomerRegistrationRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> CustomerRegistrationResponse:
    try:
        registration = await service.register_customer(
            payload.address,
            home_shop_id=payload.homeShopId,
            name=payload.name,
            email=payload.email,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except TransientError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    if registration.customer is None:
        raise _rejected(registration.check)
    customer = registration.customer
    return CustomerRegistrationResponse(
        address=customer.address,
        tier=customer.tier.value,
        homeShopId=customer.home_shop_id,
    )


@router.post(
    "/shops",
    response_model=ShopRegistrationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a shop pending admin approval",
)
async def register_shop(
    payload: ShopRegistrationRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> ShopRegistrationResponse:
    try:
        registration = await service.register_shop(
            payload.shopId,
            payload.walletAddress,
            name=payload.name,
            cross_shop_enabled=payload.crossShopEnabled,
            reimbursement_address=payload.reimbursementAddress,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except TransientError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    if registration.shop is None:
        raise _rejected(registration.check)
    shop = registration.shop
    return ShopRegistrationResponse(
        shopId=shop.shop_id,
        walletAddress=shop.wallet_address,
        verified=shop.verified,
        active=shop.active,
        crossShopEnabled=shop.cross_shop_enabled,
    )
