"""Schemas shared across routers."""

from __future__ import annotations

import uuid  # noqa: TC003 - pydantic resolves annotations at runtime
from datetime import datetime  # noqa: TC003

from pydantic import BaseModel, ConfigDict


class ErrorResponse(BaseModel):
    """Body of every non-2xx response produced by the error middleware."""

    error: str
    message: str


class LifecycleEventResponse(BaseModel):
    """One row of an offer or order audit trail."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    domain: str
    action: str
    entity_id: str
    sequence: int
    actor_user_id: str
    old_status: str | None
    new_status: str | None
    payload: dict | None
    created_at: datetime


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    database: str = "unknown"
    redis: str = "unknown"
    scheduler: str = "unknown"
