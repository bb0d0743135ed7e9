#!/usr/bin/env python3
"""Atelier Clearinghouse: End-to-End Simulation.

Simulates three scenarios with CustomerBot and DesignerBot agents, using
the in-process collaborators (payments, catalog, carrier, notifications):

    Scenario 1: Negotiate and Settle
        - Customer offers below list price, designer counters
        - Customer accepts, pays and places the order
        - Designer produces and ships, customer confirms -> COMPLETED + payout

    Scenario 2: Silent Customer
        - Order is shipped and the carrier reports delivery
        - Scheduler polls the carrier, warns the customer, then auto-confirms

    Scenario 3: Dispute
        - Shipped garment arrives damaged, customer opens a dispute
        - Admin resolves in the customer's favour -> REFUNDED

Usage:
    # Option A: With PostgreSQL (DATABASE_URL):
    uv run python simulation.py

    # Option B: Without a database server (SQLite in-memory, needs the
    # aiosqlite driver from the "test" extra):
    uv run python simulation.py --sqlite

    # Run a specific scenario:
    uv run python simulation.py --sqlite --scenario 2
"""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from atelier_clearinghouse.logging_config import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

from atelier_clearinghouse.config import get_settings  # noqa: E402
from atelier_clearinghouse.domain.collaborators import (  # noqa: E402
    CatalogItem,
    Collaborators,
    ShippingAddress,
)
from atelier_clearinghouse.domain.enums import (  # noqa: E402
    DisputeResolution,
    OrderStatus,
    ProductionStepStatus,
)
from atelier_clearinghouse.infrastructure.simulated import simulated_collaborators  # noqa: E402
from atelier_clearinghouse.scheduler import ReconciliationJobs  # noqa: E402
from atelier_clearinghouse.services import (  # noqa: E402
    OfferService,
    OrderService,
    StepUpdate,
    WalletLedger,
    unit_of_work,
)

# Module-level state
_engine = None
_session_factory = None

ITEM_ID = "item-linen-suit"
STEPS = ("pattern", "cutting", "tailoring", "pressing")


class SimClock:
    """Wall clock that the scenarios can fast-forward."""

    def __init__(self) -> None:
        self.offset = timedelta()

    def __call__(self) -> datetime:
        return datetime.now(UTC) + self.offset

    def skip(self, **delta: float) -> datetime:
        self.offset += timedelta(**delta)
        return self()


clock = SimClock()


# ---------------------------------------------------------------------------
# Database lifecycle helpers
# ---------------------------------------------------------------------------
async def init_database(use_sqlite: bool = False) -> None:
    """Initialize database engine and create tables."""
    global _engine, _session_factory

    if use_sqlite:
        from atelier_clearinghouse.infrastructure.database.engine import (
            build_session_factory,
            create_engine_for,
            create_schema,
        )

        _engine = create_engine_for("sqlite+aiosqlite:///:memory:")
        _session_factory = build_session_factory(_engine)
        await create_schema(_engine)
        logger.info("database.sqlite_initialized")
    else:
        from atelier_clearinghouse.infrastructure.database.engine import (
            get_session_factory,
            init_db,
        )

        await init_db()
        _session_factory = get_session_factory()


async def shutdown_database() -> None:
    """Close database connections."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
    else:
        from atelier_clearinghouse.infrastructure.database.engine import close_db

        await close_db()
    _session_factory = None


def build_collaborators() -> Collaborators:
    collab = simulated_collaborators()
    collab.catalog.add(
        CatalogItem(
            id=ITEM_ID,
            designer_id=DesignerBot.user_id,
            title="Unstructured linen suit",
            list_price=Decimal("1200.00"),
            production_steps=STEPS,
        )
    )
    collab.addresses.add(ShippingAddress(id="addr-home", owner_user_id=CustomerBot.user_id))
    return collab


async def call(collab: Collaborators, service_cls: type, method: str, *args: Any, **kw: Any):
    """Run one service call in its own unit of work."""
    async with unit_of_work(_session_factory, collab, get_settings(), clock) as uow:
        return await getattr(service_cls(uow), method)(*args, **kw)


# ---------------------------------------------------------------------------
# Bot Agents
# ---------------------------------------------------------------------------
@dataclass
class CustomerBot:
    """Simulated customer who negotiates, pays and confirms."""

    collab: Collaborators
    user_id: str = "cust-maya"

    async def make_offer(self, price: str) -> Any:
        offer = await call(
            self.collab,
            OfferService,
            "create",
            self.user_id,
            ITEM_ID,
            Decimal(price),
            measurements={"chest": 96, "waist": 82, "inseam": 79},
            deadline=clock() + timedelta(days=21),
        )
        logger.info("🔵 CUSTOMER: Offer made", offer_id=str(offer.id), price=price)
        return offer

    async def accept(self, offer_id: Any) -> Any:
        offer = await call(self.collab, OfferService, "accept", offer_id, self.user_id)
        logger.info("🔵 CUSTOMER: Counter accepted", final_price=str(offer.final_price))
        return offer

    async def pay_and_order(self, offer: Any) -> Any:
        reference = f"pi_sim_{offer.id.hex[:12]}"
        self.collab.payments.register(reference, offer.final_price)
        order = await call(
            self.collab, OrderService, "create", offer.id, self.user_id, reference, "addr-home"
        )
        logger.info("🔵 CUSTOMER: Order placed", order_number=order.order_number)
        return order

    async def confirm(self, order_id: Any, rating: int) -> Any:
        order = await call(
            self.collab, OrderService, "confirm_receipt", order_id, self.user_id, rating=rating
        )
        logger.info("🔵 CUSTOMER: Receipt confirmed", rating=rating)
        return order

    async def dispute(self, order_id: Any, reason: str) -> Any:
        order = await call(
            self.collab, OrderService, "open_dispute", order_id, self.user_id, reason
        )
        logger.info("🔵 CUSTOMER: Dispute opened", reason=reason)
        return order


@dataclass
class DesignerBot:
    """Simulated designer who counters, produces and ships."""

    collab: Collaborators
    user_id: str = "des-oren"

    async def counter(self, offer_id: Any, price: str) -> Any:
        offer = await call(
            self.collab,
            OfferService,
            "counter",
            offer_id,
            self.user_id,
            Decimal(price),
            "Price includes hand-finished lapels",
        )
        logger.info("🟢 DESIGNER: Countered", price=price)
        return offer

    async def produce(self, order_id: Any) -> None:
        for target in (OrderStatus.SOURCING, OrderStatus.CONSTRUCTION):
            await call(self.collab, OrderService, "advance_stage", order_id, self.user_id, target)
        await call(
            self.collab,
            OrderService,
            "advance_production",
            order_id,
            self.user_id,
            [StepUpdate(name, ProductionStepStatus.COMPLETED) for name in STEPS],
        )
        await call(
            self.collab,
            OrderService,
            "advance_stage",
            order_id,
            self.user_id,
            OrderStatus.QUALITY_CHECK,
        )
        logger.info("🟢 DESIGNER: Production finished", steps=len(STEPS))

    async def ship(self, order_id: Any, tracking: str) -> Any:
        order = await call(
            self.collab, OrderService, "ship", order_id, self.user_id, "DHL", tracking
        )
        logger.info("🟢 DESIGNER: Shipped", tracking_number=tracking)
        return order


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------
def banner(text: str) -> None:
    """Print a prominent banner."""
    width = 70
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width + "\n")


def section(text: str) -> None:
    """Print a section header."""
    print(f"\n--- {text} ---\n")


async def print_balances(collab: Collaborators, *user_ids: str) -> None:
    for user_id in user_ids:
        balance = await call(collab, WalletLedger, "balance", user_id)
        print(f"  💰 {user_id}: {balance}")


async def print_audit_trail(collab: Collaborators, order_id: Any, user_id: str) -> None:
    """Print the full audit trail for an order."""
    events = await call(collab, OrderService, "events", order_id, user_id)
    print("\n  📜 Audit Trail:")
    for i, evt in enumerate(events, 1):
        old = evt.old_status or "-"
        print(f"    {i}. [{evt.action}] {old} → {evt.new_status} (by {evt.actor_user_id})")
    print()


# ===========================================================================
# Scenario 1: Negotiate and Settle
# ===========================================================================
async def scenario_1_negotiate_and_settle() -> None:
    banner("SCENARIO 1: Negotiate and Settle")
    collab = build_collaborators()
    customer, designer = CustomerBot(collab), DesignerBot(collab)

    section("Step 1: Negotiation")
    offer = await customer.make_offer("900.00")
    await designer.counter(offer.id, "1050.00")
    offer = await customer.accept(offer.id)

    section("Step 2: Payment and order")
    order = await customer.pay_and_order(offer)

    section("Step 3: Production and shipment")
    await designer.produce(order.id)
    await designer.ship(order.id, "JD0146000012345")

    section("Step 4: Customer confirms receipt")
    order = await customer.confirm(order.id, rating=5)
    print(f"  ✅ Status: {order.status}")
    print(f"  Fee: {order.platform_fee} ({order.fee_rule_applied})")
    await print_balances(collab, designer.user_id)
    await print_audit_trail(collab, order.id, customer.user_id)


# ===========================================================================
# Scenario 2: Silent Customer
# ===========================================================================
async def scenario_2_silent_customer() -> None:
    banner("SCENARIO 2: Silent Customer: Scheduler Auto-Confirms")
    collab = build_collaborators()
    customer, designer = CustomerBot(collab), DesignerBot(collab)
    jobs = ReconciliationJobs(_session_factory, collab, get_settings(), clock)

    section("Step 1: Setup (Offer -> Accept -> Order -> Ship)")
    offer = await customer.make_offer("1100.00")
    offer = await call(collab, OfferService, "accept", offer.id, designer.user_id)
    order = await customer.pay_and_order(offer)
    await designer.ship(order.id, "JD0146000099999")

    section("Step 2: Carrier reports delivery, scheduler polls")
    collab.tracker.mark_delivered("JD0146000099999", clock())
    report = await jobs.poll_shipments()
    print(f"  📦 poll_shipments: {report.to_dict()}")

    section("Step 3: Eight days of silence")
    clock.skip(days=7, hours=12)
    report = await jobs.auto_confirm_warnings()
    print(f"  ⏰ auto_confirm_warnings: {report.to_dict()}")

    section("Step 4: Confirmation window closes")
    clock.skip(days=3)
    report = await jobs.auto_confirm()
    print(f"  🤖 auto_confirm: {report.to_dict()}")
    order = await call(collab, OrderService, "get", order.id, customer.user_id)
    print(f"  ✅ Status: {order.status} (confirmed by {order.delivery_confirmed_by})")
    await print_balances(collab, designer.user_id)
    await print_audit_trail(collab, order.id, customer.user_id)


# ===========================================================================
# Scenario 3: Dispute
# ===========================================================================
async def scenario_3_dispute() -> None:
    banner("SCENARIO 3: Dispute: Customer Refunded")
    collab = build_collaborators()
    customer, designer = CustomerBot(collab), DesignerBot(collab)

    section("Step 1: Setup (Offer -> Accept -> Order -> Ship)")
    offer = await customer.make_offer("1000.00")
    offer = await call(collab, OfferService, "accept", offer.id, designer.user_id)
    order = await customer.pay_and_order(offer)
    await designer.ship(order.id, "JD0146000077777")

    section("Step 2: Garment arrives damaged")
    await customer.dispute(order.id, "Left sleeve seam is torn open")

    section("Step 3: Admin resolves the dispute")
    order = await call(
        collab,
        OrderService,
        "resolve_dispute",
        order.id,
        DisputeResolution.CUSTOMER_FAVOURED,
        "admin-sim",
        "Photos show a construction defect",
    )
    print(f"  🛡️  Status: {order.status}")
    await print_balances(collab, customer.user_id, designer.user_id)
    await print_audit_trail(collab, order.id, customer.user_id)


# ===========================================================================
# Main
# ===========================================================================
SCENARIOS = {
    1: scenario_1_negotiate_and_settle,
    2: scenario_2_silent_customer,
    3: scenario_3_dispute,
}


async def run(use_sqlite: bool = False, scenario: int | None = None) -> None:
    """Run one scenario, or all of them sequentially."""
    await init_database(use_sqlite=use_sqlite)

    try:
        print("\n" + "🧵" * 35)
        print("  THE ATELIER CLEARINGHOUSE: SIMULATION")
        print(f"  Database: {'SQLite (in-memory)' if use_sqlite else 'PostgreSQL'}")
        print("🧵" * 35 + "\n")

        selected = [SCENARIOS[scenario]] if scenario else list(SCENARIOS.values())
        for body in selected:
            await body()

        print("\n" + "=" * 70)
        print("  ✅ ALL SCENARIOS COMPLETED SUCCESSFULLY")
        print("=" * 70 + "\n")
    finally:
        await shutdown_database()


def main() -> None:
    parser = argparse.ArgumentParser(description="Atelier Clearinghouse simulation")
    parser.add_argument("--sqlite", action="store_true", help="Use in-memory SQLite")
    parser.add_argument("--scenario", type=int, choices=sorted(SCENARIOS), default=None)
    args = parser.parse_args()
    asyncio.run(run(use_sqlite=args.sqlite, scenario=args.scenario))


if __name__ == "__main__":
    main()
