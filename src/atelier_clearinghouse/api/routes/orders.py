"""Order REST API routes.

Routes:
    POST   /api/v1/orders                          - Place the order for a paid offer
    GET    /api/v1/orders?role=CUSTOMER            - Orders the caller takes part in
    GET    /api/v1/orders/{id}                     - Order details
    GET    /api/v1/orders/{id}/status              - Lightweight status check
    GET    /api/v1/orders/{id}/events              - Audit trail
    POST   /api/v1/orders/{id}/stage               - Designer advances production stage
    POST   /api/v1/orders/{id}/production          - Designer updates production steps
    POST   /api/v1/orders/{id}/ship                - Designer records shipment
    POST   /api/v1/orders/{id}/delivered           - Either party records delivery
    POST   /api/v1/orders/{id}/confirm             - Customer confirms receipt (settles)
    POST   /api/v1/orders/{id}/dispute             - Customer opens a dispute
    POST   /api/v1/orders/{id}/dispute/resolution  - Admin resolves the dispute
    POST   /api/v1/orders/{id}/cancel              - Either party cancels before shipment
"""

from __future__ import annotations

import uuid  # noqa: TC003 - FastAPI resolves annotations at runtime

from fastapi import APIRouter, Depends

from atelier_clearinghouse.api.deps import UowFactory, get_current_user, get_uow_factory
from atelier_clearinghouse.domain.enums import Party
from atelier_clearinghouse.logging_config import get_logger
from atelier_clearinghouse.schemas.common import LifecycleEventResponse
from atelier_clearinghouse.schemas.order import (
    AdvanceStageRequest,
    CancelOrderRequest,
    ConfirmReceiptRequest,
    CreateOrderRequest,
    OpenDisputeRequest,
    OrderResponse,
    OrderStatusResponse,
    ProductionUpdateRequest,
    ResolveDisputeRequest,
    ShipOrderRequest,
)
from atelier_clearinghouse.services.order_service import OrderService, StepUpdate

router = APIRouter(prefix="/api/v1/orders", tags=["Orders"])
logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Create & read
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=OrderResponse,
    status_code=201,
    summary="Place the order for an accepted offer",
)
async def create_order(
    request: CreateOrderRequest,
    user_id: str = Depends(get_current_user),
    open_uow: UowFactory = Depends(get_uow_factory),
) -> OrderResponse:
    """Verify payment and address, then create the order. Idempotent per offer."""
    async with open_uow() as uow:
        order = await OrderService(uow).create(
            offer_id=request.offer_id,
            actor_id=user_id,
            payment_reference=request.payment_reference,
            shipping_address_id=request.shipping_address_id,
        )
    return OrderResponse.model_validate(order)


@router.get("", response_model=list[OrderResponse], summary="List my orders")
async def list_orders(
    role: Party = Party.CUSTOMER,
    user_id: str = Depends(get_current_user),
    open_uow: UowFactory = Depends(get_uow_factory),
) -> list[OrderResponse]:
    async with open_uow() as uow:
        orders = await OrderService(uow).list_for_user(user_id, role)
    return [OrderResponse.model_validate(o) for o in orders]


@router.get("/{order_id}", response_model=OrderResponse, summary="Get order details")
async def get_order(
    order_id: uuid.UUID,
    user_id: str = Depends(get_current_user),
    open_uow: UowFactory = Depends(get_uow_factory),
) -> OrderResponse:
    async with open_uow() as uow:
        order = await OrderService(uow).get(order_id, user_id)
    return OrderResponse.model_validate(order)


@router.get(
    "/{order_id}/status",
    response_model=OrderStatusResponse,
    summary="Get order status",
)
async def get_order_status(
    order_id: uuid.UUID,
    user_id: str = Depends(get_current_user),
    open_uow: UowFactory = Depends(get_uow_factory),
) -> OrderStatusResponse:
    """Current status plus the transitions it allows."""
    async with open_uow() as uow:
        order = await OrderService(uow).get(order_id, user_id)
    return OrderStatusResponse(
        order_id=order.id,
        order_number=order.order_number,
        status=order.status,
        allowed_events=OrderService.allowed_events(order),
    )


@router.get(
    "/{order_id}/events",
    response_model=list[LifecycleEventResponse],
    summary="Get order audit trail",
)
async def get_order_events(
    order_id: uuid.UUID,
    user_id: str = Depends(get_current_user),
    open_uow: UowFactory = Depends(get_uow_factory),
) -> list[LifecycleEventResponse]:
    async with open_uow() as uow:
        events = await OrderService(uow).events(order_id, user_id)
    return [LifecycleEventResponse.model_validate(e) for e in events]


# ---------------------------------------------------------------------------
# Production & fulfilment
# ---------------------------------------------------------------------------


@router.post("/{order_id}/stage", response_model=OrderResponse, summary="Advance stage")
async def advance_stage(
    order_id: uuid.UUID,
    request: AdvanceStageRequest,
    user_id: str = Depends(get_current_user),
    open_uow: UowFactory = Depends(get_uow_factory),
) -> OrderResponse:
    async with open_uow() as uow:
        order = await OrderService(uow).advance_stage(order_id, user_id, request.target)
    return OrderResponse.model_validate(order)


@router.post(
    "/{order_id}/production",
    response_model=OrderResponse,
    summary="Update production steps",
)
async def update_production(
    order_id: uuid.UUID,
    request: ProductionUpdateRequest,
    user_id: str = Depends(get_current_user),
    open_uow: UowFactory = Depends(get_uow_factory),
) -> OrderResponse:
    updates = [StepUpdate(s.name, s.status, s.notes) for s in request.steps]
    async with open_uow() as uow:
        order = await OrderService(uow).advance_production(order_id, user_id, updates)
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/ship", response_model=OrderResponse, summary="Record shipment")
async def ship_order(
    order_id: uuid.UUID,
    request: ShipOrderRequest,
    user_id: str = Depends(get_current_user),
    open_uow: UowFactory = Depends(get_uow_factory),
) -> OrderResponse:
    async with open_uow() as uow:
        order = await OrderService(uow).ship(
            order_id,
            user_id,
            carrier=request.carrier,
            tracking_number=request.tracking_number,
            estimated_delivery=request.estimated_delivery,
        )
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/delivered", response_model=OrderResponse, summary="Record delivery")
async def mark_delivered(
    order_id: uuid.UUID,
    user_id: str = Depends(get_current_user),
    open_uow: UowFactory = Depends(get_uow_factory),
) -> OrderResponse:
    """Record delivery by hand and open the confirmation window."""
    async with open_uow() as uow:
        order = await OrderService(uow).mark_delivered(order_id, actor_id=user_id)
    return OrderResponse.model_validate(order)


# ---------------------------------------------------------------------------
# Settlement, disputes, cancellation
# ---------------------------------------------------------------------------


@router.post("/{order_id}/confirm", response_model=OrderResponse, summary="Confirm receipt")
async def confirm_receipt(
    order_id: uuid.UUID,
    request: ConfirmReceiptRequest | None = None,
    user_id: str = Depends(get_current_user),
    open_uow: UowFactory = Depends(get_uow_factory),
) -> OrderResponse:
    """Customer confirms receipt; the designer is paid. Produces COMPLETED."""
    request = request or ConfirmReceiptRequest()
    async with open_uow() as uow:
        order = await OrderService(uow).confirm_receipt(
            order_id, user_id, rating=request.rating, review=request.review
        )
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/dispute", response_model=OrderResponse, summary="Open a dispute")
async def open_dispute(
    order_id: uuid.UUID,
    request: OpenDisputeRequest,
    user_id: str = Depends(get_current_user),
    open_uow: UowFactory = Depends(get_uow_factory),
) -> OrderResponse:
    async with open_uow() as uow:
        order = await OrderService(uow).open_dispute(order_id, user_id, request.reason)
    return OrderResponse.model_validate(order)


@router.post(
    "/{order_id}/dispute/resolution",
    response_model=OrderResponse,
    summary="Resolve a dispute",
)
async def resolve_dispute(
    order_id: uuid.UUID,
    request: ResolveDisputeRequest,
    open_uow: UowFactory = Depends(get_uow_factory),
) -> OrderResponse:
    """Administrative. Access control belongs to the gateway in front of this route."""
    async with open_uow() as uow:
        order = await OrderService(uow).resolve_dispute(
            order_id, request.resolution, request.resolved_by, request.notes
        )
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/cancel", response_model=OrderResponse, summary="Cancel an order")
async def cancel_order(
    order_id: uuid.UUID,
    request: CancelOrderRequest,
    user_id: str = Depends(get_current_user),
    open_uow: UowFactory = Depends(get_uow_factory),
) -> OrderResponse:
    async with open_uow() as uow:
        order = await OrderService(uow).cancel(order_id, user_id, request.reason)
    return OrderResponse.model_validate(order)
