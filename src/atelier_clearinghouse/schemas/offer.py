"""Pydantic schemas for the negotiation API.

Prices are decimals with two places. Business rules (list price ceiling,
deadline lead time, turn taking) are enforced in the service layer, not here.
"""

from __future__ import annotations

import uuid  # noqa: TC003 - pydantic resolves annotations at runtime
from datetime import datetime  # noqa: TC003
from decimal import Decimal  # noqa: TC003

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class CreateOfferRequest(BaseModel):
    """Request body for opening a negotiation on a catalog item."""

    catalog_item_id: str = Field(..., min_length=1, max_length=64)
    price: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        description="Price the customer proposes; may not exceed the item's list price",
        examples=["75.00"],
    )
    measurements: dict | None = Field(
        default=None,
        description="Body measurements, copied onto the order if the offer is accepted",
    )
    deadline: datetime | None = Field(
        default=None,
        description="When the customer needs the garment; must leave room for production",
    )
    notes: str | None = Field(default=None, max_length=2000)
    expires_at: datetime | None = Field(
        default=None,
        description="Defaults to the configured offer lifetime",
    )
    try_on_image_url: str | None = Field(default=None, max_length=500)


class CounterOfferRequest(BaseModel):
    price: Decimal = Field(..., gt=0, decimal_places=2, examples=["80.00"])
    notes: str | None = Field(default=None, max_length=2000)


class RejectOfferRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=2000)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class OfferResponse(BaseModel):
    """Response schema for an offer."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    customer_id: str
    designer_id: str
    catalog_item_id: str
    customer_price: Decimal
    designer_price: Decimal | None
    final_price: Decimal | None
    status: str
    awaiting_response_from: str | None
    notes: str | None
    designer_notes: str | None
    measurements_snapshot: dict
    try_on_image_url: str | None
    deadline: datetime | None
    expires_at: datetime
    accepted_at: datetime | None
    created_at: datetime
    updated_at: datetime
