"""Repository classes for database access.

Repositories encapsulate all SQL queries and provide a clean interface
to the service layer. They accept an AsyncSession and never manage
their own transactions (that's the caller's responsibility).

Reads that gate an exactly-once effect take ``for_update=True``, which issues
SELECT ... FOR UPDATE and refreshes any identity-mapped instance.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import func, select

from atelier_clearinghouse.domain.enums import (
    AWAITING_RECEIPT_STATUSES,
    PRE_SHIPMENT_STATUSES,
    OrderStatus,
    Party,
)
from atelier_clearinghouse.infrastructure.database.orm_models import (
    DesignerFeeOverride,
    FeePromotionalPeriod,
    FeeTier,
    LifecycleEvent,
    Offer,
    Order,
    Payout,
    WalletAccount,
    WalletTransaction,
)

if TYPE_CHECKING:
    import uuid
    from datetime import datetime

    from sqlalchemy import Select
    from sqlalchemy.ext.asyncio import AsyncSession

    from atelier_clearinghouse.domain.events import EventEnvelope


def _locked(stmt: Select, for_update: bool) -> Select:
    if for_update:
        return stmt.with_for_update().execution_options(populate_existing=True)
    return stmt


class OfferRepository:
    """Data access for offers."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, offer: Offer) -> Offer:
        """Insert a new offer."""
        self._session.add(offer)
        await self._session.flush()
        return offer

    async def get_by_id(self, offer_id: uuid.UUID, *, for_update: bool = False) -> Offer | None:
        """Fetch an offer by its UUID."""
        stmt = _locked(select(Offer).where(Offer.id == offer_id), for_update)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_participant(self, user_id: str, role: Party) -> list[Offer]:
        """Fetch the offers where ``user_id`` is the given party, newest first."""
        column = Offer.customer_id if role is Party.CUSTOMER else Offer.designer_id
        result = await self._session.execute(
            select(Offer).where(column == user_id).order_by(Offer.created_at.desc())
        )
        return list(result.scalars().all())


class OrderRepository:
    """Data access for orders."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, order: Order) -> Order:
        """Insert a new order."""
        self._session.add(order)
        await self._session.flush()
        return order

    async def get_by_id(self, order_id: uuid.UUID, *, for_update: bool = False) -> Order | None:
        """Fetch an order by its UUID."""
        stmt = _locked(select(Order).where(Order.id == order_id), for_update)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_offer_id(self, offer_id: uuid.UUID) -> Order | None:
        """Fetch the order materialized from an offer, if any."""
        result = await self._session.execute(select(Order).where(Order.offer_id == offer_id))
        return result.scalar_one_or_none()

    async def get_by_payment_reference(self, payment_reference: str) -> Order | None:
        """Fetch the order a payment reference has already paid for, if any."""
        result = await self._session.execute(
            select(Order).where(Order.payment_reference == payment_reference)
        )
        return result.scalar_one_or_none()

    async def list_for_participant(self, user_id: str, role: Party) -> list[Order]:
        """Fetch the orders where ``user_id`` is the given party, newest first."""
        column = Order.customer_id if role is Party.CUSTOMER else Order.designer_id
        result = await self._session.execute(
            select(Order).where(column == user_id).order_by(Order.created_at.desc())
        )
        return list(result.scalars().all())

    async def next_order_number(self, prefix: str, year: int) -> str:
        """Return the next ``<PREFIX>-<YYYY>-<NNNNN>`` number for ``year``.

        The sequence is zero-padded to five digits and widens past 99999, so the
        latest number is the longest one, then the greatest among equals.
        """
        stem = f"{prefix}-{year}-"
        result = await self._session.execute(
            select(Order.order_number)
            .where(Order.order_number.like(f"{stem}%"))
            .order_by(func.length(Order.order_number).desc(), Order.order_number.desc())
            .limit(1)
        )
        latest = result.scalar_one_or_none()
        sequence = int(latest.removeprefix(stem)) + 1 if latest else 1
        return f"{stem}{sequence:05d}"

    async def count_completed_for_designer(self, designer_id: str) -> int:
        """Lifetime COMPLETED-order count used for fee tier selection."""
        result = await self._session.execute(
            select(func.count())
            .select_from(Order)
            .where(
                Order.designer_id == designer_id,
                Order.status == OrderStatus.COMPLETED.value,
            )
        )
        return int(result.scalar_one())

    # --- Scheduler queries (narrow rows; each order is reloaded in its own unit of work) ---

    async def shipments_awaiting_delivery(self) -> list[tuple[uuid.UUID, str | None, str]]:
        """``(id, carrier, tracking_number)`` of SHIPPED orders with no recorded delivery."""
        result = await self._session.execute(
            select(Order.id, Order.carrier, Order.tracking_number)
            .where(
                Order.status == OrderStatus.SHIPPED.value,
                Order.tracking_number.is_not(None),
                Order.delivered_at.is_(None),
            )
            .order_by(Order.shipped_at.asc())
        )
        return [tuple(row) for row in result.all()]

    async def ids_due_for_auto_confirm(self, now: datetime) -> list[uuid.UUID]:
        """Delivered, unconfirmed, unsettled orders whose auto-confirm time has passed."""
        result = await self._session.execute(
            select(Order.id)
            .where(
                Order.status.in_([s.value for s in AWAITING_RECEIPT_STATUSES]),
                Order.auto_confirm_at.is_not(None),
                Order.auto_confirm_at <= now,
                Order.customer_confirmed_at.is_(None),
                Order.payment_released_at.is_(None),
            )
            .order_by(Order.auto_confirm_at.asc())
        )
        return list(result.scalars().all())

    async def ids_due_for_auto_confirm_warning(
        self, window_start: datetime, window_end: datetime
    ) -> list[uuid.UUID]:
        """DELIVERED orders whose auto-confirm time falls inside the warning window."""
        result = await self._session.execute(
            select(Order.id)
            .where(
                Order.status == OrderStatus.DELIVERED.value,
                Order.auto_confirm_at >= window_start,
                Order.auto_confirm_at <= window_end,
                Order.customer_confirmed_at.is_(None),
            )
            .order_by(Order.auto_confirm_at.asc())
        )
        return list(result.scalars().all())

    async def pre_shipment_with_deadline(self) -> list[Order]:
        """Active pre-shipment orders that carry a deadline."""
        result = await self._session.execute(
            select(Order)
            .where(
                Order.status.in_([s.value for s in PRE_SHIPMENT_STATUSES]),
                Order.deadline.is_not(None),
            )
            .order_by(Order.deadline.asc())
        )
        return list(result.scalars().all())


class FeeRuleRepository:
    """Data access for fee tiers, designer overrides and promotional periods."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(
        self, rule: FeeTier | DesignerFeeOverride | FeePromotionalPeriod
    ) -> FeeTier | DesignerFeeOverride | FeePromotionalPeriod:
        """Insert a new fee rule of any kind."""
        self._session.add(rule)
        await self._session.flush()
        return rule

    async def overrides_for(self, designer_id: str) -> list[DesignerFeeOverride]:
        result = await self._session.execute(
            select(DesignerFeeOverride)
            .where(DesignerFeeOverride.designer_id == designer_id)
            .order_by(DesignerFeeOverride.effective_from.desc())
        )
        return list(result.scalars().all())

    async def list_overrides(self) -> list[DesignerFeeOverride]:
        result = await self._session.execute(
            select(DesignerFeeOverride).order_by(DesignerFeeOverride.effective_from.desc())
        )
        return list(result.scalars().all())

    async def list_promotions(self, *, active_only: bool = False) -> list[FeePromotionalPeriod]:
        stmt = select(FeePromotionalPeriod).order_by(FeePromotionalPeriod.start_date.desc())
        if active_only:
            stmt = stmt.where(FeePromotionalPeriod.is_active.is_(True))
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def list_tiers(self, *, active_only: bool = False) -> list[FeeTier]:
        stmt = select(FeeTier).order_by(FeeTier.priority.desc(), FeeTier.min_orders.desc())
        if active_only:
            stmt = stmt.where(FeeTier.is_active.is_(True))
        result = await self._session.execute(stmt)
        return list(result.scalars().all())


class WalletRepository:
    """Data access for wallet accounts and the append-only transaction log.

    Only services/wallet_service.WalletLedger should use this repository.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_account(self, user_id: str, *, for_update: bool = False) -> WalletAccount | None:
        stmt = _locked(select(WalletAccount).where(WalletAccount.user_id == user_id), for_update)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_account(self, account: WalletAccount) -> WalletAccount:
        self._session.add(account)
        await self._session.flush()
        return account

    async def last_sequence(self, user_id: str) -> int:
        result = await self._session.execute(
            select(func.max(WalletTransaction.sequence)).where(
                WalletTransaction.user_id == user_id
            )
        )
        return result.scalar_one_or_none() or 0

    async def append(self, transaction: WalletTransaction) -> WalletTransaction:
        """Append a ledger row. This is the ONLY write operation allowed."""
        self._session.add(transaction)
        await self._session.flush()
        return transaction

    async def recent(self, user_id: str, limit: int) -> list[WalletTransaction]:
        """Most recent transactions first."""
        result = await self._session.execute(
            select(WalletTransaction)
            .where(WalletTransaction.user_id == user_id)
            .order_by(WalletTransaction.sequence.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def history(self, user_id: str) -> list[WalletTransaction]:
        """Every transaction for the user in ledger order."""
        result = await self._session.execute(
            select(WalletTransaction)
            .where(WalletTransaction.user_id == user_id)
            .order_by(WalletTransaction.sequence.asc())
        )
        return list(result.scalars().all())


class PayoutRepository:
    """Data access for wallet withdrawals."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, payout: Payout) -> Payout:
        self._session.add(payout)
        await self._session.flush()
        return payout

    async def get_by_id(self, payout_id: uuid.UUID, *, for_update: bool = False) -> Payout | None:
        stmt = _locked(select(Payout).where(Payout.id == payout_id), for_update)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_user(self, user_id: str, limit: int) -> list[Payout]:
        """Most recent payouts first."""
        result = await self._session.execute(
            select(Payout)
            .where(Payout.user_id == user_id)
            .order_by(Payout.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())


class EventRepository:
    """Data access for the append-only lifecycle event log."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(
        self,
        envelope: EventEnvelope,
        old_status: str | None = None,
        new_status: str | None = None,
        created_at: datetime | None = None,
    ) -> LifecycleEvent:
        """Append a new audit event. This is the ONLY write operation allowed.

        Callers hold the entity's row lock, so the next per-entity sequence
        number cannot be taken twice.
        """
        domain = envelope.domain.value
        evt = LifecycleEvent(
            domain=domain,
            action=envelope.action,
            entity_id=envelope.entity_id,
            sequence=await self._last_sequence(domain, envelope.entity_id) + 1,
            actor_user_id=envelope.actor_user_id,
            old_status=old_status,
            new_status=new_status,
            payload=envelope.payload or None,
        )
        if created_at is not None:
            evt.created_at = created_at
        self._session.add(evt)
        await self._session.flush()
        return evt

    async def _last_sequence(self, domain: str, entity_id: str) -> int:
        result = await self._session.execute(
            select(func.max(LifecycleEvent.sequence)).where(
                LifecycleEvent.domain == domain, LifecycleEvent.entity_id == entity_id
            )
        )
        return result.scalar_one_or_none() or 0

    async def get_for_entity(self, domain: str, entity_id: str) -> list[LifecycleEvent]:
        """Fetch all events for an entity in the order they were recorded."""
        result = await self._session.execute(
            select(LifecycleEvent)
            .where(LifecycleEvent.domain == domain, LifecycleEvent.entity_id == entity_id)
            .order_by(LifecycleEvent.sequence.asc())
        )
        return list(result.scalars().all())
