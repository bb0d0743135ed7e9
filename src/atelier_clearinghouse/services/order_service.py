"""Order Service - production, fulfilment and escrow settlement.

This is the application layer that coordinates between:
    - Domain state machine (OrderStateMachine transition guard)
    - Collaborators (payment verification, address book, catalog)
    - Fee Service and Wallet Ledger (settlement, refunds)
    - Audit events and notifications (through the UnitOfWork)

Settlement runs at most once per order. The order row is read FOR UPDATE,
``payment_released_at`` must still be null, and the settlement stamp is
flushed under the row's version check before the designer's wallet is
credited, all inside one transaction. A second attempt, whether a repeated
confirmation or the scheduler racing the customer, fails with
AlreadySettledError or finds the order no longer eligible.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import IntegrityError

from atelier_clearinghouse.domain.enums import (
    AWAITING_RECEIPT_STATUSES,
    PRE_SHIPMENT_STATUSES,
    DeliveryConfirmedBy,
    DisputeResolution,
    EventDomain,
    NotificationType,
    OfferStatus,
    OrderStatus,
    Party,
    ProductionStepStatus,
)
from atelier_clearinghouse.domain.events import EventEnvelope, Notification
from atelier_clearinghouse.domain.exceptions import (
    AlreadySettledError,
    BuyerProtectionExpiredError,
    ConflictError,
    ExternalDependencyError,
    OfferNotFoundError,
    OrderNotFoundError,
    UnauthorizedError,
    ValidationError,
)
from atelier_clearinghouse.domain.state_machine import OrderStateMachine, fire_transition
from atelier_clearinghouse.infrastructure.database.orm_models import Order
from atelier_clearinghouse.infrastructure.database.repositories import (
    EventRepository,
    OfferRepository,
    OrderRepository,
)
from atelier_clearinghouse.logging_config import get_logger
from atelier_clearinghouse.services.fee_service import FeeService
from atelier_clearinghouse.services.unit_of_work import guarded_call
from atelier_clearinghouse.services.wallet_service import WalletLedger

if TYPE_CHECKING:
    import uuid
    from collections.abc import Sequence
    from datetime import datetime

    from atelier_clearinghouse.domain.fees import FeeCalculation
    from atelier_clearinghouse.infrastructure.database.orm_models import LifecycleEvent
    from atelier_clearinghouse.services.unit_of_work import UnitOfWork

logger = get_logger(__name__)

SYSTEM_ACTOR = "SYSTEM"

# Forward production moves, keyed by target status.
_STAGE_EVENTS = {
    OrderStatus.SOURCING: "begin_sourcing",
    OrderStatus.CONSTRUCTION: "begin_construction",
    OrderStatus.QUALITY_CHECK: "begin_quality_check",
}


@dataclass(frozen=True)
class StepUpdate:
    """A change to one production step, matched by name."""

    name: str
    status: ProductionStepStatus
    notes: str | None = None


class OrderService:
    """Manages the order lifecycle from payment to settlement."""

    def __init__(self, uow: UnitOfWork) -> None:
        self._uow = uow
        self._orders = OrderRepository(uow.session)
        self._offers = OfferRepository(uow.session)
        self._events = EventRepository(uow.session)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create(
        self,
        offer_id: uuid.UUID,
        actor_id: str,
        payment_reference: str,
        shipping_address_id: str,
    ) -> Order:
        """Materialize the order for a paid, accepted offer.

        Idempotent on ``offer_id``: if the order already exists it is returned
        unchanged. The offer row stays locked until the transaction ends, so a
        webhook and a client poll racing each other create one order. A payment
        reference pays for exactly one order; reusing it for another offer is a
        ``PAYMENT_ALREADY_USED`` conflict.
        """
        offer = await self._offers.get_by_id(offer_id, for_update=True)
        if offer is None:
            raise OfferNotFoundError(str(offer_id))
        if actor_id != offer.customer_id:
            raise UnauthorizedError("Only the offer's customer may place the order")

        existing = await self._orders.get_by_offer_id(offer.id)
        if existing is not None:
            logger.info(
                "order.create_idempotent_hit",
                offer_id=str(offer.id),
                order_id=str(existing.id),
            )
            return existing

        if offer.status != OfferStatus.ACCEPTED:
            raise ConflictError(
                f"Offer {offer.id} is {offer.status}, not ACCEPTED", code="OFFER_NOT_ACCEPTED"
            )

        # The idempotency check above already returned this offer's own order.
        bound = await self._orders.get_by_payment_reference(payment_reference)
        if bound is not None:
            raise ConflictError(
                f"Payment {payment_reference} already paid for order {bound.order_number}",
                code="PAYMENT_ALREADY_USED",
            )

        collaborators = self._uow.collaborators
        payment = await guarded_call("payment", collaborators.payments.verify(payment_reference))
        if not payment.succeeded:
            raise ValidationError(
                f"Payment {payment_reference} has not succeeded", code="PAYMENT_NOT_SUCCESSFUL"
            )
        if payment.amount != offer.final_price:
            raise ExternalDependencyError(
                f"Payment amount {payment.amount} does not match the agreed price "
                f"{offer.final_price}",
                code="PAYMENT_AMOUNT_MISMATCH",
            )

        address = await guarded_call(
            "address", collaborators.addresses.get_address(shipping_address_id)
        )
        if address is None or address.owner_user_id != offer.customer_id:
            raise ValidationError(
                "Shipping address does not belong to the customer",
                code="INVALID_SHIPPING_ADDRESS",
            )

        item = await guarded_call(
            "catalog", collaborators.catalog.get_item(offer.catalog_item_id)
        )
        if item is None:
            raise ExternalDependencyError(
                f"Catalog item {offer.catalog_item_id} no longer exists",
                code="CATALOG_ITEM_MISSING",
            )
        if not item.production_steps:
            raise ValidationError(
                f"Catalog item {item.id} has no production workflow defined",
                code="NO_PRODUCTION_WORKFLOW",
            )

        now = self._uow.now()
        settings = self._uow.settings
        order = Order(
            order_number=await self._orders.next_order_number(
                settings.order_number_prefix, now.year
            ),
            offer_id=offer.id,
            customer_id=offer.customer_id,
            designer_id=offer.designer_id,
            catalog_item_id=offer.catalog_item_id,
            final_price=offer.final_price,
            status=OrderStatus.PENDING.value,
            production_steps=[
                {"name": name, "status": ProductionStepStatus.PENDING.value}
                for name in item.production_steps
            ],
            measurements_snapshot=dict(offer.measurements_snapshot or {}),
            deadline=offer.deadline,
            shipping_address_id=address.id,
            payment_reference=payment_reference,
            buyer_protection_until=now + settings.buyer_protection_window,
            created_at=now,
        )
        # A failed flush leaves the session unusable, so nothing may be loaded after it.
        offer_key = str(offer.id)
        try:
            await self._orders.create(order)
        except IntegrityError as exc:
            logger.warning("order.create_conflict", offer_id=offer_key, error=str(exc))
            raise ConflictError(
                f"An order for offer {offer_key} is being created concurrently",
                code="ORDER_CREATE_CONFLICT",
            ) from exc

        await self._emit(
            order,
            "created",
            actor_id=actor_id,
            old_status=None,
            payload={"order_number": order.order_number, "final_price": str(order.final_price)},
            notify=[
                Notification(
                    user_id=order.designer_id,
                    type=NotificationType.ORDER_CREATED,
                    title="New order",
                    message=f"Order {order.order_number} is paid and ready for production",
                    data=self._data(order),
                ),
                Notification(
                    user_id=order.customer_id,
                    type=NotificationType.ORDER_CREATED,
                    title="Order confirmed",
                    message=f"Your order {order.order_number} has been placed",
                    data=self._data(order),
                ),
            ],
        )
        logger.info(
            "order.created",
            order_id=str(order.id),
            order_number=order.order_number,
            offer_id=str(offer.id),
            steps=len(order.production_steps),
        )
        return order

    # ------------------------------------------------------------------
    # Production
    # ------------------------------------------------------------------

    async def advance_stage(
        self,
        order_id: uuid.UUID,
        actor_id: str,
        target: OrderStatus,
    ) -> Order:
        """Move production forward to SOURCING, CONSTRUCTION or QUALITY_CHECK."""
        order = await self._get_for_update(order_id)
        self._require(order, actor_id, Party.DESIGNER)
        event_name = _STAGE_EVENTS.get(target)
        if event_name is None:
            raise ValidationError(
                f"{target} is not a production stage", code="INVALID_TARGET_STAGE"
            )

        old_status = order.status
        order.status = fire_transition(OrderStateMachine, order.status, event_name)
        await self._uow.flush("order")

        await self._emit(
            order,
            "stage_advanced",
            actor_id=actor_id,
            old_status=old_status,
            notify=Notification(
                user_id=order.customer_id,
                type=NotificationType.ORDER_UPDATE,
                title="Order update",
                message=f"Your order is now in {order.status.replace('_', ' ').lower()}",
                data=self._data(order),
            ),
        )
        logger.info("order.stage_advanced", order_id=str(order.id), status=order.status)
        return order

    async def advance_production(
        self,
        order_id: uuid.UUID,
        actor_id: str,
        step_updates: Sequence[StepUpdate],
    ) -> Order:
        """Update named production steps; untouched steps keep their state."""
        order = await self._get_for_update(order_id)
        self._require(order, actor_id, Party.DESIGNER)
        if OrderStatus(order.status) not in PRE_SHIPMENT_STATUSES:
            raise ConflictError(
                f"Order {order.order_number} is {order.status}; production is closed",
                code="ORDER_NOT_IN_PRODUCTION",
            )
        if not step_updates:
            raise ValidationError("No production step updates given")

        known = {step["name"] for step in order.production_steps}
        unknown = sorted({u.name for u in step_updates} - known)
        if unknown:
            raise ValidationError(
                f"Unknown production steps: {', '.join(unknown)}",
                code="UNKNOWN_PRODUCTION_STEP",
            )

        now_iso = self._uow.now().isoformat()
        updates = {u.name: u for u in step_updates}
        steps = []
        for step in order.production_steps:
            step = dict(step)
            update = updates.get(step["name"])
            if update is not None:
                if update.status is ProductionStepStatus.COMPLETED:
                    if step.get("status") != ProductionStepStatus.COMPLETED.value:
                        step["completedAt"] = now_iso
                else:
                    step.pop("completedAt", None)
                step["status"] = update.status.value
                if update.notes is not None:
                    step["notes"] = update.notes
            steps.append(step)
        # Reassign so the JSON column is marked dirty.
        order.production_steps = steps
        await self._uow.flush("order")

        await self._emit(
            order,
            "production_updated",
            actor_id=actor_id,
            old_status=order.status,
            payload={"steps": [u.name for u in step_updates]},
            notify=Notification(
                user_id=order.customer_id,
                type=NotificationType.ORDER_UPDATE,
                title="Production update",
                message=", ".join(f"{u.name}: {u.status.value}" for u in step_updates),
                data=self._data(order),
            ),
        )
        logger.info(
            "order.production_updated",
            order_id=str(order.id),
            steps=[u.name for u in step_updates],
        )
        return order

    # ------------------------------------------------------------------
    # Fulfilment
    # ------------------------------------------------------------------

    async def ship(
        self,
        order_id: uuid.UUID,
        actor_id: str,
        carrier: str,
        tracking_number: str,
        estimated_delivery: datetime | None = None,
    ) -> Order:
        """Record the shipment. Produces SHIPPED."""
        order = await self._get_for_update(order_id)
        self._require(order, actor_id, Party.DESIGNER)

        carrier = (carrier or "").strip()
        tracking_number = (tracking_number or "").strip()
        if not carrier:
            raise ValidationError("Carrier is required", code="CARRIER_REQUIRED")
        min_length = self._uow.settings.min_tracking_number_length
        if len(tracking_number) < min_length:
            raise ValidationError(
                f"Tracking number must be at least {min_length} characters",
                code="INVALID_TRACKING_NUMBER",
            )

        old_status = order.status
        order.status = fire_transition(OrderStateMachine, order.status, "ship")
        order.carrier = carrier
        order.tracking_number = tracking_number
        order.estimated_delivery = estimated_delivery
        order.shipped_at = self._uow.now()
        await self._uow.flush("order")

        await self._emit(
            order,
            "shipped",
            actor_id=actor_id,
            old_status=old_status,
            payload={"carrier": carrier, "tracking_number": tracking_number},
            notify=Notification(
                user_id=order.customer_id,
                type=NotificationType.ORDER_SHIPPED,
                title="Your order has shipped",
                message=f"Shipped with {carrier}, tracking {tracking_number}",
                data={**self._data(order), "tracking_number": tracking_number},
            ),
        )
        logger.info(
            "order.shipped",
            order_id=str(order.id),
            carrier=carrier,
            tracking_number=tracking_number,
        )
        return order

    async def mark_delivered(
        self,
        order_id: uuid.UUID,
        delivered_at: datetime | None = None,
        actor_id: str = SYSTEM_ACTOR,
    ) -> Order:
        """Record delivery and open the confirmation window. Produces DELIVERED."""
        order = await self._get_for_update(order_id)
        if actor_id != SYSTEM_ACTOR:
            self._require(order, actor_id, Party.CUSTOMER, Party.DESIGNER)

        old_status = order.status
        order.status = fire_transition(OrderStateMachine, order.status, "mark_delivered")
        delivered_at = delivered_at or self._uow.now()
        order.delivered_at = delivered_at
        order.confirmation_window_start = delivered_at
        order.confirmation_window_end = delivered_at + self._uow.settings.confirmation_window
        order.auto_confirm_at = order.confirmation_window_end
        await self._uow.flush("order")

        await self._emit(
            order,
            "delivered",
            actor_id=actor_id,
            old_status=old_status,
            payload={"auto_confirm_at": order.auto_confirm_at.isoformat()},
            notify=Notification(
                user_id=order.customer_id,
                type=NotificationType.ORDER_DELIVERED,
                title="Your order was delivered",
                message=(
                    "Please confirm receipt. Payment is released automatically on "
                    f"{order.auto_confirm_at:%Y-%m-%d}"
                ),
                data=self._data(order),
            ),
        )
        logger.info(
            "order.delivered",
            order_id=str(order.id),
            delivered_at=delivered_at.isoformat(),
            auto_confirm_at=order.auto_confirm_at.isoformat(),
        )
        return order

    async def warn_auto_confirm(self, order_id: uuid.UUID) -> int | None:
        """Warn the customer that auto-confirmation is near.

        Moves the order to AWAITING_CONFIRMATION so each order is warned once.
        Returns the hours remaining, or None if the order is no longer eligible.
        """
        order = await self._get_for_update(order_id)
        if (
            order.status != OrderStatus.DELIVERED
            or order.customer_confirmed_at is not None
            or order.auto_confirm_at is None
        ):
            return None

        remaining = order.auto_confirm_at - self._uow.now()
        hours_left = max(int(remaining.total_seconds() // 3600), 0)
        old_status = order.status
        order.status = fire_transition(OrderStateMachine, order.status, "request_confirmation")
        await self._uow.flush("order")

        await self._emit(
            order,
            "confirmation_requested",
            actor_id=SYSTEM_ACTOR,
            old_status=old_status,
            payload={"hours_remaining": hours_left},
            notify=Notification(
                user_id=order.customer_id,
                type=NotificationType.AUTO_CONFIRM_SOON,
                title="Please confirm your delivery",
                message=(
                    f"Order {order.order_number} will be confirmed automatically in "
                    f"{hours_left} hours"
                ),
                data={**self._data(order), "hours_remaining": hours_left},
            ),
        )
        logger.info("order.auto_confirm_warned", order_id=str(order.id), hours_left=hours_left)
        return hours_left

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    async def confirm_receipt(
        self,
        order_id: uuid.UUID,
        actor_id: str,
        rating: int | None = None,
        review: str | None = None,
    ) -> Order:
        """Customer confirms receipt; settles the escrow. Produces COMPLETED."""
        order = await self._get_for_update(order_id)
        self._require(order, actor_id, Party.CUSTOMER)
        if rating is not None and not 1 <= rating <= 5:
            raise ValidationError("Rating must be between 1 and 5", code="INVALID_RATING")
        if order.payment_released_at is not None:
            raise AlreadySettledError(str(order.id))

        old_status = order.status
        new_status = fire_transition(OrderStateMachine, order.status, "confirm_receipt")
        now = self._uow.now()
        order.customer_confirmed_at = now
        order.delivered_at = order.delivered_at or now
        order.rating = rating
        order.review = review
        fee = await self._settle(order, new_status, DeliveryConfirmedBy.CUSTOMER)

        await self._emit_settled(order, "completed", actor_id, old_status, fee)
        return order

    async def auto_confirm(self, order_id: uuid.UUID) -> Order | None:
        """Scheduler entry point: settle an order whose confirmation window lapsed.

        Returns None, changing nothing, when the order was already settled or
        is no longer eligible.
        """
        order = await self._get_for_update(order_id)
        now = self._uow.now()
        if (
            order.payment_released_at is not None
            or order.customer_confirmed_at is not None
            or OrderStatus(order.status) not in AWAITING_RECEIPT_STATUSES
            or order.auto_confirm_at is None
            or order.auto_confirm_at > now
        ):
            logger.info("order.auto_confirm_skipped", order_id=str(order.id), status=order.status)
            return None

        old_status = order.status
        new_status = fire_transition(OrderStateMachine, order.status, "auto_confirm")
        fee = await self._settle(order, new_status, DeliveryConfirmedBy.SYSTEM)

        await self._emit_settled(order, "auto_confirmed", SYSTEM_ACTOR, old_status, fee)
        return order

    # ------------------------------------------------------------------
    # Disputes & cancellation
    # ------------------------------------------------------------------

    async def open_dispute(self, order_id: uuid.UUID, actor_id: str, reason: str) -> Order:
        """Customer disputes the order within buyer protection. Produces DISPUTED."""
        order = await self._get_for_update(order_id)
        self._require(order, actor_id, Party.CUSTOMER)

        reason = (reason or "").strip()
        min_length = self._uow.settings.min_dispute_reason_length
        if len(reason) < min_length:
            raise ValidationError(
                f"Dispute reason must be at least {min_length} characters",
                code="REASON_TOO_SHORT",
            )
        if order.payment_released_at is not None:
            raise AlreadySettledError(str(order.id))
        now = self._uow.now()
        if now > order.buyer_protection_until:
            raise BuyerProtectionExpiredError(str(order.id))

        old_status = order.status
        order.status = fire_transition(OrderStateMachine, order.status, "open_dispute")
        order.dispute_opened_at = now
        order.dispute_reason = reason
        await self._uow.flush("order")

        await self._emit(
            order,
            "dispute_opened",
            actor_id=actor_id,
            old_status=old_status,
            payload={"reason": reason},
            notify=Notification(
                user_id=order.designer_id,
                type=NotificationType.DISPUTE_OPENED,
                title="A dispute was opened",
                message=f"Order {order.order_number}: {reason}",
                data=self._data(order),
            ),
        )
        logger.info("order.dispute_opened", order_id=str(order.id), previous=old_status)
        return order

    async def resolve_dispute(
        self,
        order_id: uuid.UUID,
        resolution: DisputeResolution,
        resolved_by: str,
        notes: str | None = None,
    ) -> Order:
        """Close a dispute: settle to the designer or refund the customer."""
        order = await self._get_for_update(order_id)
        if order.payment_released_at is not None:
            raise AlreadySettledError(str(order.id))

        old_status = order.status
        if resolution is DisputeResolution.DESIGNER_FAVOURED:
            new_status = fire_transition(OrderStateMachine, order.status, "resolve_for_designer")
            order.dispute_resolution = resolution.value
            fee = await self._settle(order, new_status, None)
            payload = {"resolution": resolution.value, "notes": notes, **fee.to_dict()}
        else:
            new_status = fire_transition(OrderStateMachine, order.status, "resolve_for_customer")
            order.dispute_resolution = resolution.value
            await self._refund(order, new_status, f"Refund for disputed order {order.order_number}")
            payload = {"resolution": resolution.value, "notes": notes}

        outcome = (
            "Payment released to the designer"
            if resolution is DisputeResolution.DESIGNER_FAVOURED
            else "The customer has been refunded"
        )
        await self._emit(
            order,
            "dispute_resolved",
            actor_id=resolved_by,
            old_status=old_status,
            payload=payload,
            notify=[
                Notification(
                    user_id=user_id,
                    type=NotificationType.DISPUTE_RESOLVED,
                    title="Dispute resolved",
                    message=f"Order {order.order_number}: {outcome}",
                    data={**self._data(order), "resolution": resolution.value},
                )
                for user_id in (order.customer_id, order.designer_id)
            ],
        )
        logger.info(
            "order.dispute_resolved",
            order_id=str(order.id),
            resolution=resolution.value,
            resolved_by=resolved_by,
        )
        return order

    async def cancel(self, order_id: uuid.UUID, actor_id: str, reason: str) -> Order:
        """Either party cancels before shipment; the customer is refunded. Produces CANCELLED."""
        order = await self._get_for_update(order_id)
        party = self._require(order, actor_id, Party.CUSTOMER, Party.DESIGNER)
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A cancellation reason is required", code="REASON_REQUIRED")

        old_status = order.status
        new_status = fire_transition(OrderStateMachine, order.status, "cancel")
        order.cancelled_at = self._uow.now()
        order.cancellation_reason = reason
        await self._refund(order, new_status, f"Refund for cancelled order {order.order_number}")

        other = order.designer_id if party is Party.CUSTOMER else order.customer_id
        await self._emit(
            order,
            "cancelled",
            actor_id=actor_id,
            old_status=old_status,
            payload={"reason": reason, "by": party.value},
            notify=Notification(
                user_id=other,
                type=NotificationType.ORDER_CANCELLED,
                title="Order cancelled",
                message=f"Order {order.order_number} was cancelled: {reason}",
                data=self._data(order),
            ),
        )
        logger.info("order.cancelled", order_id=str(order.id), by=party.value)
        return order

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def get(self, order_id: uuid.UUID, user_id: str) -> Order:
        """Get an order visible to ``user_id`` or raise OrderNotFoundError."""
        order = await self._orders.get_by_id(order_id)
        if order is None or user_id not in (order.customer_id, order.designer_id):
            raise OrderNotFoundError(str(order_id))
        return order

    async def list_for_user(self, user_id: str, role: Party) -> list[Order]:
        return await self._orders.list_for_participant(user_id, role)

    async def events(self, order_id: uuid.UUID, user_id: str) -> list[LifecycleEvent]:
        """Audit trail of an order, oldest first."""
        order = await self.get(order_id, user_id)
        return await self._events.get_for_entity(EventDomain.ORDER.value, str(order.id))

    @staticmethod
    def allowed_events(order: Order) -> list[str]:
        return OrderStateMachine(order.status).get_allowed_events()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _get_for_update(self, order_id: uuid.UUID) -> Order:
        order = await self._orders.get_by_id(order_id, for_update=True)
        if order is None:
            raise OrderNotFoundError(str(order_id))
        return order

    @staticmethod
    def _require(order: Order, user_id: str, *parties: Party) -> Party:
        if user_id == order.customer_id and Party.CUSTOMER in parties:
            return Party.CUSTOMER
        if user_id == order.designer_id and Party.DESIGNER in parties:
            return Party.DESIGNER
        allowed = " or ".join(p.value.lower() for p in parties)
        raise UnauthorizedError(f"Only the order's {allowed} may do this")

    async def _settle(
        self,
        order: Order,
        new_status: str,
        confirmed_by: DeliveryConfirmedBy | None,
    ) -> FeeCalculation:
        """Compute the fee, stamp the order, then credit the designer."""
        if order.payment_released_at is not None:
            raise AlreadySettledError(str(order.id))

        now = self._uow.now()
        fee = await FeeService(self._uow).resolve(order.designer_id, order.final_price, now)

        order.status = new_status
        order.payment_released_at = now
        order.payment_amount = fee.designer_receives
        order.platform_fee = fee.fee_amount
        order.fee_percentage_applied = fee.percentage
        order.fee_rule_applied = fee.applied_rule.value
        if confirmed_by is not None:
            order.delivery_confirmed_by = confirmed_by.value
        await self._uow.flush("order")

        if fee.designer_receives > 0:
            await WalletLedger(self._uow).credit(
                order.designer_id,
                fee.designer_receives,
                f"Payment for order {order.order_number}",
                order_id=order.id,
            )
        logger.info(
            "order.settled",
            order_id=str(order.id),
            designer_receives=str(fee.designer_receives),
            platform_fee=str(fee.fee_amount),
            rule=fee.applied_rule.value,
            confirmed_by=confirmed_by.value if confirmed_by else None,
        )
        return fee

    async def _refund(self, order: Order, new_status: str, description: str) -> None:
        """Return the escrowed price to the customer's wallet."""
        order.status = new_status
        await self._uow.flush("order")
        await WalletLedger(self._uow).credit(
            order.customer_id, order.final_price, description, order_id=order.id
        )
        self._uow.record_notification(
            Notification(
                user_id=order.customer_id,
                type=NotificationType.REFUND_ISSUED,
                title="Refund issued",
                message=f"{order.final_price} was returned to your wallet",
                data=self._data(order),
            )
        )
        logger.info("order.refunded", order_id=str(order.id), amount=str(order.final_price))

    async def _emit_settled(
        self,
        order: Order,
        action: str,
        actor_id: str,
        old_status: str,
        fee: FeeCalculation,
    ) -> None:
        customer_message = (
            "Thanks for confirming receipt"
            if action == "completed"
            else f"Order {order.order_number} was confirmed automatically"
        )
        await self._emit(
            order,
            action,
            actor_id=actor_id,
            old_status=old_status,
            payload=fee.to_dict(),
            notify=[
                Notification(
                    user_id=order.designer_id,
                    type=NotificationType.PAYMENT_RELEASED,
                    title="Payment released",
                    message=(
                        f"{fee.designer_receives} for order {order.order_number} "
                        "was added to your wallet"
                    ),
                    data={**self._data(order), "amount": str(fee.designer_receives)},
                ),
                Notification(
                    user_id=order.customer_id,
                    type=NotificationType.ORDER_UPDATE,
                    title="Order completed",
                    message=customer_message,
                    data=self._data(order),
                ),
            ],
        )

    @staticmethod
    def _data(order: Order) -> dict[str, Any]:
        return {"order_id": str(order.id), "order_number": order.order_number}

    async def _emit(
        self,
        order: Order,
        action: str,
        *,
        actor_id: str,
        old_status: str | None,
        payload: dict[str, Any] | None = None,
        notify: Notification | list[Notification] | None = None,
    ) -> None:
        if notify is None:
            notifications = []
        elif isinstance(notify, Notification):
            notifications = [notify]
        else:
            notifications = notify
        await self._uow.emit(
            EventEnvelope(
                domain=EventDomain.ORDER,
                action=action,
                entity_id=str(order.id),
                actor_user_id=actor_id,
                payload={"status": order.status, **(payload or {})},
            ),
            recipients=[order.customer_id, order.designer_id],
            notifications=notifications,
            old_status=old_status,
            new_status=order.status,
        )
