"""Fee rule administration routes.

Administrative: access control belongs to the gateway in front of these
routes.

Routes:
    GET    /api/v1/fees/quote        - Fee that would apply if settled now
    GET    /api/v1/fees/tiers        - List tiers
    POST   /api/v1/fees/tiers        - Create a tier
    GET    /api/v1/fees/overrides    - List designer overrides
    POST   /api/v1/fees/overrides    - Create a designer override
    GET    /api/v1/fees/promotions   - List promotional periods
    POST   /api/v1/fees/promotions   - Create a promotional period
"""

from __future__ import annotations

from decimal import Decimal  # noqa: TC003 - FastAPI resolves annotations at runtime

from fastapi import APIRouter, Depends, Query

from atelier_clearinghouse.api.deps import UowFactory, get_uow_factory
from atelier_clearinghouse.schemas.fees import (
    CreateOverrideRequest,
    CreatePromotionRequest,
    CreateTierRequest,
    FeeOverrideResponse,
    FeePromotionResponse,
    FeeQuoteResponse,
    FeeTierResponse,
)
from atelier_clearinghouse.services.fee_service import FeeService

router = APIRouter(prefix="/api/v1/fees", tags=["Fees"])


@router.get("/quote", response_model=FeeQuoteResponse, summary="Quote the platform fee")
async def quote_fee(
    designer_id: str = Query(..., min_length=1),
    amount: Decimal = Query(..., gt=0),
    open_uow: UowFactory = Depends(get_uow_factory),
) -> FeeQuoteResponse:
    async with open_uow() as uow:
        fee = await FeeService(uow).resolve(designer_id, amount)
    return FeeQuoteResponse(**fee.to_dict())


@router.get("/tiers", response_model=list[FeeTierResponse])
async def list_tiers(open_uow: UowFactory = Depends(get_uow_factory)) -> list[FeeTierResponse]:
    async with open_uow() as uow:
        tiers = await FeeService(uow).list_tiers()
    return [FeeTierResponse.model_validate(t) for t in tiers]


@router.post("/tiers", response_model=FeeTierResponse, status_code=201)
async def create_tier(
    request: CreateTierRequest,
    open_uow: UowFactory = Depends(get_uow_factory),
) -> FeeTierResponse:
    async with open_uow() as uow:
        tier = await FeeService(uow).create_tier(**request.model_dump())
    return FeeTierResponse.model_validate(tier)


@router.get("/overrides", response_model=list[FeeOverrideResponse])
async def list_overrides(
    open_uow: UowFactory = Depends(get_uow_factory),
) -> list[FeeOverrideResponse]:
    async with open_uow() as uow:
        overrides = await FeeService(uow).list_overrides()
    return [FeeOverrideResponse.model_validate(o) for o in overrides]


@router.post("/overrides", response_model=FeeOverrideResponse, status_code=201)
async def create_override(
    request: CreateOverrideRequest,
    open_uow: UowFactory = Depends(get_uow_factory),
) -> FeeOverrideResponse:
    async with open_uow() as uow:
        override = await FeeService(uow).create_override(**request.model_dump())
    return FeeOverrideResponse.model_validate(override)


@router.get("/promotions", response_model=list[FeePromotionResponse])
async def list_promotions(
    open_uow: UowFactory = Depends(get_uow_factory),
) -> list[FeePromotionResponse]:
    async with open_uow() as uow:
        promotions = await FeeService(uow).list_promotions()
    return [FeePromotionResponse.model_validate(p) for p in promotions]


@router.post("/promotions", response_model=FeePromotionResponse, status_code=201)
async def create_promotion(
    request: CreatePromotionRequest,
    open_uow: UowFactory = Depends(get_uow_factory),
) -> FeePromotionResponse:
    async with open_uow() as uow:
        promotion = await FeeService(uow).create_promotion(**request.model_dump())
    return FeePromotionResponse.model_validate(promotion)
