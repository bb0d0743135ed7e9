"""Pydantic schemas for the order API."""

from __future__ import annotations

import uuid  # noqa: TC003 - pydantic resolves annotations at runtime
from datetime import datetime  # noqa: TC003
from decimal import Decimal  # noqa: TC003

from pydantic import BaseModel, ConfigDict, Field

from atelier_clearinghouse.domain.enums import (
    DisputeResolution,
    OrderStatus,
    ProductionStepStatus,
)

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class CreateOrderRequest(BaseModel):
    """Request body for placing the order of an accepted, paid offer."""

    offer_id: uuid.UUID
    payment_reference: str = Field(
        ...,
        min_length=1,
        max_length=128,
        description="Gateway reference of the captured payment",
    )
    shipping_address_id: str = Field(..., min_length=1, max_length=64)


class AdvanceStageRequest(BaseModel):
    target: OrderStatus = Field(
        ...,
        description="SOURCING, CONSTRUCTION or QUALITY_CHECK",
        examples=["SOURCING"],
    )


class StepUpdateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    status: ProductionStepStatus
    notes: str | None = Field(default=None, max_length=2000)


class ProductionUpdateRequest(BaseModel):
    steps: list[StepUpdateRequest] = Field(..., min_length=1)


class ShipOrderRequest(BaseModel):
    carrier: str = Field(..., min_length=1, max_length=64)
    tracking_number: str = Field(..., max_length=128)
    estimated_delivery: datetime | None = None


class ConfirmReceiptRequest(BaseModel):
    rating: int | None = Field(default=None, ge=1, le=5)
    review: str | None = Field(default=None, max_length=5000)


class OpenDisputeRequest(BaseModel):
    reason: str = Field(..., max_length=2000, description="What went wrong")


class ResolveDisputeRequest(BaseModel):
    resolution: DisputeResolution
    resolved_by: str = Field(..., min_length=1, max_length=64)
    notes: str | None = Field(default=None, max_length=2000)


class CancelOrderRequest(BaseModel):
    reason: str = Field(..., max_length=2000)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class OrderResponse(BaseModel):
    """Response schema for an order."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_number: str
    offer_id: uuid.UUID
    customer_id: str
    designer_id: str
    catalog_item_id: str
    final_price: Decimal
    status: str
    production_steps: list[dict]
    measurements_snapshot: dict
    deadline: datetime | None
    shipping_address_id: str
    shipped_at: datetime | None
    carrier: str | None
    tracking_number: str | None
    estimated_delivery: datetime | None
    delivered_at: datetime | None
    confirmation_window_end: datetime | None
    auto_confirm_at: datetime | None
    customer_confirmed_at: datetime | None
    delivery_confirmed_by: str | None
    rating: int | None
    review: str | None
    payment_released_at: datetime | None
    payment_amount: Decimal | None
    platform_fee: Decimal | None
    fee_percentage_applied: Decimal | None
    fee_rule_applied: str | None
    dispute_opened_at: datetime | None
    dispute_reason: str | None
    dispute_resolution: str | None
    cancelled_at: datetime | None
    cancellation_reason: str | None
    buyer_protection_until: datetime
    created_at: datetime
    updated_at: datetime


class OrderStatusResponse(BaseModel):
    """Lightweight status check response."""

    order_id: uuid.UUID
    order_number: str
    status: str
    allowed_events: list[str] = Field(
        description="State machine events that can fire from the current status"
    )
