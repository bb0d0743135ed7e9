"""Offer negotiation REST API routes.

The caller is identified by the ``X-User-ID`` header. Non-parties get 404
on reads and 403 on actions.

Routes:
    POST   /api/v1/offers                - Customer opens an offer
    GET    /api/v1/offers?role=CUSTOMER  - Offers the caller takes part in
    GET    /api/v1/offers/{id}           - Offer details
    GET    /api/v1/offers/{id}/events    - Negotiation history
    POST   /api/v1/offers/{id}/counter   - Counter with a new price
    POST   /api/v1/offers/{id}/accept    - Accept the price on the table
    POST   /api/v1/offers/{id}/reject    - Reject (designer) or decline a counter (customer)
    POST   /api/v1/offers/{id}/withdraw  - Customer withdraws
"""

from __future__ import annotations

import uuid  # noqa: TC003 - FastAPI resolves annotations at runtime

from fastapi import APIRouter, Depends

from atelier_clearinghouse.api.deps import UowFactory, get_current_user, get_uow_factory
from atelier_clearinghouse.domain.enums import Party
from atelier_clearinghouse.logging_config import get_logger
from atelier_clearinghouse.schemas.common import LifecycleEventResponse
from atelier_clearinghouse.schemas.offer import (
    CounterOfferRequest,
    CreateOfferRequest,
    OfferResponse,
    RejectOfferRequest,
)
from atelier_clearinghouse.services.offer_service import OfferService

router = APIRouter(prefix="/api/v1/offers", tags=["Offers"])
logger = get_logger(__name__)


@router.post(
    "",
    response_model=OfferResponse,
    status_code=201,
    summary="Open a negotiation",
)
async def create_offer(
    request: CreateOfferRequest,
    user_id: str = Depends(get_current_user),
    open_uow: UowFactory = Depends(get_uow_factory),
) -> OfferResponse:
    """Customer offers a price for a catalog item. Produces PENDING."""
    async with open_uow() as uow:
        offer = await OfferService(uow).create(
            customer_id=user_id,
            catalog_item_id=request.catalog_item_id,
            price=request.price,
            measurements=request.measurements,
            deadline=request.deadline,
            notes=request.notes,
            expires_at=request.expires_at,
            try_on_image_url=request.try_on_image_url,
        )
    return OfferResponse.model_validate(offer)


@router.get("", response_model=list[OfferResponse], summary="List my offers")
async def list_offers(
    role: Party = Party.CUSTOMER,
    user_id: str = Depends(get_current_user),
    open_uow: UowFactory = Depends(get_uow_factory),
) -> list[OfferResponse]:
    async with open_uow() as uow:
        offers = await OfferService(uow).list_for_user(user_id, role)
    return [OfferResponse.model_validate(o) for o in offers]


@router.get("/{offer_id}", response_model=OfferResponse, summary="Get offer details")
async def get_offer(
    offer_id: uuid.UUID,
    user_id: str = Depends(get_current_user),
    open_uow: UowFactory = Depends(get_uow_factory),
) -> OfferResponse:
    async with open_uow() as uow:
        offer = await OfferService(uow).get(offer_id, user_id)
    return OfferResponse.model_validate(offer)


@router.get(
    "/{offer_id}/events",
    response_model=list[LifecycleEventResponse],
    summary="Negotiation history",
)
async def get_offer_events(
    offer_id: uuid.UUID,
    user_id: str = Depends(get_current_user),
    open_uow: UowFactory = Depends(get_uow_factory),
) -> list[LifecycleEventResponse]:
    async with open_uow() as uow:
        events = await OfferService(uow).events(offer_id, user_id)
    return [LifecycleEventResponse.model_validate(e) for e in events]


# ---------------------------------------------------------------------------
# Negotiation actions
# ---------------------------------------------------------------------------


@router.post("/{offer_id}/counter", response_model=OfferResponse, summary="Counter an offer")
async def counter_offer(
    offer_id: uuid.UUID,
    request: CounterOfferRequest,
    user_id: str = Depends(get_current_user),
    open_uow: UowFactory = Depends(get_uow_factory),
) -> OfferResponse:
    """The awaited party proposes a new price. Produces COUNTERED."""
    async with open_uow() as uow:
        offer = await OfferService(uow).counter(offer_id, user_id, request.price, request.notes)
    return OfferResponse.model_validate(offer)


@router.post("/{offer_id}/accept", response_model=OfferResponse, summary="Accept an offer")
async def accept_offer(
    offer_id: uuid.UUID,
    user_id: str = Depends(get_current_user),
    open_uow: UowFactory = Depends(get_uow_factory),
) -> OfferResponse:
    """Fix the final price. Produces ACCEPTED, or 410 if the offer has expired."""
    async with open_uow() as uow:
        offer = await OfferService(uow).accept(offer_id, user_id)
    return OfferResponse.model_validate(offer)


@router.post("/{offer_id}/reject", response_model=OfferResponse, summary="Reject an offer")
async def reject_offer(
    offer_id: uuid.UUID,
    request: RejectOfferRequest | None = None,
    user_id: str = Depends(get_current_user),
    open_uow: UowFactory = Depends(get_uow_factory),
) -> OfferResponse:
    notes = request.notes if request else None
    async with open_uow() as uow:
        offer = await OfferService(uow).reject(offer_id, user_id, notes)
    return OfferResponse.model_validate(offer)


@router.post("/{offer_id}/withdraw", response_model=OfferResponse, summary="Withdraw an offer")
async def withdraw_offer(
    offer_id: uuid.UUID,
    user_id: str = Depends(get_current_user),
    open_uow: UowFactory = Depends(get_uow_factory),
) -> OfferResponse:
    async with open_uow() as uow:
        offer = await OfferService(uow).withdraw(offer_id, user_id)
    return OfferResponse.model_validate(offer)
