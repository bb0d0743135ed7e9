"""Shared test fixtures for the Atelier Clearinghouse test suite.

Provides:
    - An in-memory SQLite database (aiosqlite) with the full schema
    - Simulated collaborators seeded with one catalog item and one address
    - A frozen, advanceable clock
    - ``market``: shortcuts that drive offers and orders into a given state
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

import pytest
import pytest_asyncio

from atelier_clearinghouse.config import Settings
from atelier_clearinghouse.domain.collaborators import CatalogItem, ShippingAddress
from atelier_clearinghouse.infrastructure.database.engine import (
    build_session_factory,
    create_engine_for,
    create_schema,
)
from atelier_clearinghouse.infrastructure.simulated import simulated_collaborators
from atelier_clearinghouse.services.offer_service import OfferService
from atelier_clearinghouse.services.order_service import OrderService
from atelier_clearinghouse.services.unit_of_work import unit_of_work

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)

CUSTOMER = "cust-ada"
DESIGNER = "des-iris"
STRANGER = "user-eve"
ITEM_ID = "item-wrap-dress"
BARE_ITEM_ID = "item-no-workflow"
ADDRESS_ID = "addr-ada-home"
LIST_PRICE = Decimal("8000.00")
STEPS = ("pattern", "cutting", "sewing", "finishing")


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now += timedelta(**delta)
        return self.now


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        app_env="development",
        platform_fee_percentage=Decimal("0.10"),
        scheduler_enabled=False,
    )


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest_asyncio.fixture
async def engine(settings):
    engine = create_engine_for("sqlite+aiosqlite:///:memory:", settings)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def collaborators():
    collab = simulated_collaborators()
    collab.catalog.add(
        CatalogItem(
            id=ITEM_ID,
            designer_id=DESIGNER,
            title="Silk wrap dress",
            list_price=LIST_PRICE,
            production_steps=STEPS,
        )
    )
    collab.catalog.add(
        CatalogItem(
            id=BARE_ITEM_ID,
            designer_id=DESIGNER,
            title="Sketch only",
            list_price=LIST_PRICE,
        )
    )
    collab.addresses.add(ShippingAddress(id=ADDRESS_ID, owner_user_id=CUSTOMER))
    return collab


@pytest.fixture
def open_uow(session_factory, collaborators, settings, clock):
    """Callable opening a unit of work against the test database."""

    def _open():
        return unit_of_work(session_factory, collaborators, settings, clock)

    return _open


# ---------------------------------------------------------------------------
# Scenario shortcuts
# ---------------------------------------------------------------------------


class Market:
    """Drives offers and orders through the real services."""

    def __init__(self, open_uow, collaborators, clock: FrozenClock) -> None:
        self.open_uow = open_uow
        self.collaborators = collaborators
        self.clock = clock
        self._payments = 0

    async def call(self, service_cls: type, method: str, *args: Any, **kwargs: Any) -> Any:
        async with self.open_uow() as uow:
            return await getattr(service_cls(uow), method)(*args, **kwargs)

    async def offer(self, price: str = "5000.00", item_id: str = ITEM_ID, **kwargs: Any):
        return await self.call(
            OfferService, "create", CUSTOMER, item_id, Decimal(price), **kwargs
        )

    async def accepted_offer(self, price: str = "7000.00"):
        offer = await self.offer(price)
        return await self.call(OfferService, "accept", offer.id, DESIGNER)

    async def order(self, price: str = "7000.00", **offer_kwargs: Any):
        offer = await self.offer(price, **offer_kwargs)
        offer = await self.call(OfferService, "accept", offer.id, DESIGNER)
        self._payments += 1
        reference = f"pay-{self._payments}"
        self.collaborators.payments.register(reference, offer.final_price)
        return await self.call(OrderService, "create", offer.id, CUSTOMER, reference, ADDRESS_ID)

    async def shipped_order(self, price: str = "7000.00", tracking: str = "TRACK-0001"):
        order = await self.order(price)
        return await self.call(OrderService, "ship", order.id, DESIGNER, "DHL", tracking)

    async def delivered_order(self, price: str = "7000.00", tracking: str = "TRACK-0001"):
        order = await self.shipped_order(price, tracking)
        return await self.call(OrderService, "mark_delivered", order.id)


@pytest.fixture
def market(open_uow, collaborators, clock) -> Market:
    return Market(open_uow, collaborators, clock)
