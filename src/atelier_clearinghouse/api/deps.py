"""FastAPI dependency injection providers.

Route handlers open their own unit of work with the factory returned by
``get_uow_factory`` so the commit (and the error it may raise) happens before
the response is built:

    async with open_uow() as uow:
        offer = await OfferService(uow).accept(offer_id, user_id)

The session factory, collaborators and clock live on ``app.state``; the
lifespan fills them in and tests replace them.
"""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from atelier_clearinghouse.config import Settings, get_settings
from atelier_clearinghouse.domain.collaborators import Collaborators
from atelier_clearinghouse.domain.exceptions import UnauthorizedError
from atelier_clearinghouse.services.unit_of_work import (
    UnitOfWork,
    UowFactory,
    unit_of_work,
    utc_now,
)


def get_app_settings() -> Settings:
    """Provide the application settings."""
    return get_settings()


def get_collaborators(request: Request) -> Collaborators:
    return request.app.state.collaborators


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    return request.app.state.session_factory


def get_uow_factory(
    request: Request,
    settings: Settings = Depends(get_app_settings),
) -> UowFactory:
    """Provide a callable that opens a unit of work for this request."""
    session_factory = get_session_factory(request)
    collaborators = get_collaborators(request)
    clock = getattr(request.app.state, "clock", utc_now)

    def open_uow() -> AbstractAsyncContextManager[UnitOfWork]:
        return unit_of_work(session_factory, collaborators, settings, clock)

    return open_uow


def get_current_user(x_user_id: str | None = Header(default=None)) -> str:
    """Caller identity. Authentication happens upstream; we only read the header."""
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise UnauthorizedError("X-User-ID header is required", code="MISSING_USER")
    return user_id
