"""Offer Service - price negotiation between a customer and a designer.

Coordinates:
    - Domain state machine (OfferStateMachine transition guard)
    - Turn rules (who may act, driven by ``awaiting_response_from``)
    - Catalog lookups (list price ceiling, production workflow)
    - Audit events and counterparty notifications (through the UnitOfWork)

Turn rules:
    PENDING    only the designer may counter, accept or reject; the customer
               may withdraw.
    COUNTERED  only the awaited party may counter or accept. A counter flips
               ``awaiting_response_from`` to the other party. The designer may
               reject; the customer may decline a counter awaiting them.

Any accept or counter against an offer past ``expires_at`` first moves it to
EXPIRED (committed) and then fails with OfferExpiredError.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from atelier_clearinghouse.domain.enums import (
    EventDomain,
    NotificationType,
    OfferStatus,
    Party,
)
from atelier_clearinghouse.domain.events import EventEnvelope, Notification
from atelier_clearinghouse.domain.exceptions import (
    ConflictError,
    ExternalDependencyError,
    NotFoundError,
    OfferExpiredError,
    OfferNotFoundError,
    UnauthorizedError,
    ValidationError,
)
from atelier_clearinghouse.domain.state_machine import OfferStateMachine, fire_transition
from atelier_clearinghouse.infrastructure.database.orm_models import Offer
from atelier_clearinghouse.infrastructure.database.repositories import (
    EventRepository,
    OfferRepository,
)
from atelier_clearinghouse.logging_config import get_logger
from atelier_clearinghouse.services.unit_of_work import guarded_call

if TYPE_CHECKING:
    import uuid
    from datetime import datetime

    from atelier_clearinghouse.domain.collaborators import CatalogItem
    from atelier_clearinghouse.infrastructure.database.orm_models import LifecycleEvent
    from atelier_clearinghouse.services.unit_of_work import UnitOfWork

logger = get_logger(__name__)


def party_of(offer: Offer, user_id: str) -> Party | None:
    """Which side of the offer ``user_id`` is on, if any."""
    if user_id == offer.customer_id:
        return Party.CUSTOMER
    if user_id == offer.designer_id:
        return Party.DESIGNER
    return None


class OfferService:
    """Manages the offer negotiation lifecycle."""

    def __init__(self, uow: UnitOfWork) -> None:
        self._uow = uow
        self._offers = OfferRepository(uow.session)
        self._events = EventRepository(uow.session)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create(
        self,
        customer_id: str,
        catalog_item_id: str,
        price: Decimal,
        measurements: dict[str, Any] | None = None,
        deadline: datetime | None = None,
        notes: str | None = None,
        expires_at: datetime | None = None,
        try_on_image_url: str | None = None,
    ) -> Offer:
        """Open a negotiation at ``price`` for a catalog item. Produces PENDING."""
        now = self._uow.now()
        settings = self._uow.settings
        self._check_price(price)

        item = await guarded_call(
            "catalog", self._uow.collaborators.catalog.get_item(catalog_item_id)
        )
        if item is None:
            raise NotFoundError("catalog_item", catalog_item_id)
        if item.designer_id == customer_id:
            raise ValidationError(
                "Designers cannot make offers on their own items", code="CANNOT_OFFER_OWN_ITEM"
            )
        self._check_ceiling(price, item)

        if deadline is not None and deadline < now + settings.min_deadline_lead_time:
            raise ValidationError(
                f"Deadline must be at least {settings.min_deadline_lead_time.days} days away "
                f"({settings.production_buffer_days} days production + "
                f"{settings.shipping_buffer_days} days shipping)",
                code="DEADLINE_TOO_SOON",
            )
        if expires_at is None:
            expires_at = now + timedelta(days=settings.offer_expiry_days)
        elif expires_at <= now:
            raise ValidationError("Offer expiry must be in the future", code="INVALID_EXPIRY")

        offer = await self._offers.create(
            Offer(
                customer_id=customer_id,
                designer_id=item.designer_id,
                catalog_item_id=item.id,
                customer_price=price,
                status=OfferStatus.PENDING.value,
                notes=notes,
                measurements_snapshot=measurements or {},
                try_on_image_url=try_on_image_url,
                deadline=deadline,
                expires_at=expires_at,
                created_at=now,
            )
        )

        await self._emit(
            offer,
            "created",
            actor_id=customer_id,
            old_status=None,
            notify=Notification(
                user_id=offer.designer_id,
                type=NotificationType.OFFER_CREATED,
                title="New offer received",
                message=f"New offer of {price} for {item.title}",
                data={"offer_id": str(offer.id), "price": str(price)},
            ),
        )
        logger.info(
            "offer.created",
            offer_id=str(offer.id),
            customer_id=customer_id,
            designer_id=offer.designer_id,
            price=str(price),
        )
        return offer

    # ------------------------------------------------------------------
    # Negotiation
    # ------------------------------------------------------------------

    async def counter(
        self,
        offer_id: uuid.UUID,
        actor_id: str,
        new_price: Decimal,
        notes: str | None = None,
    ) -> Offer:
        """Propose ``new_price`` to the other party. Produces COUNTERED."""
        offer = await self._get_for_update(offer_id)
        party = self._require_party(offer, actor_id)
        self._check_price(new_price)
        self._check_ceiling(new_price, await self._catalog_item(offer))
        await self._expire_if_due(offer)

        old_status = offer.status
        new_status = fire_transition(OfferStateMachine, offer.status, "counter")
        self._require_turn(offer, party, "counter")

        if party is Party.DESIGNER:
            offer.designer_price = new_price
            offer.designer_notes = notes
            note_type = NotificationType.OFFER_COUNTERED
            title = "Designer sent a counter offer"
        else:
            offer.customer_price = new_price
            offer.notes = notes
            note_type = NotificationType.OFFER_CUSTOMER_COUNTERED
            title = "Customer sent a counter offer"
        offer.status = new_status
        offer.awaiting_response_from = party.other.value
        await self._uow.flush("offer")

        counterparty = self._user_for(offer, party.other)
        await self._emit(
            offer,
            "countered",
            actor_id=actor_id,
            old_status=old_status,
            payload={"price": str(new_price), "by": party.value},
            notify=Notification(
                user_id=counterparty,
                type=note_type,
                title=title,
                message=f"Counter offer: {new_price}",
                data={"offer_id": str(offer.id), "price": str(new_price)},
            ),
        )
        logger.info(
            "offer.countered",
            offer_id=str(offer.id),
            by=party.value,
            price=str(new_price),
            awaiting=offer.awaiting_response_from,
        )
        return offer

    async def accept(self, offer_id: uuid.UUID, actor_id: str) -> Offer:
        """Accept the counterparty's latest price. Produces ACCEPTED."""
        offer = await self._get_for_update(offer_id)
        party = self._require_party(offer, actor_id)
        await self._expire_if_due(offer)

        old_status = offer.status
        new_status = fire_transition(OfferStateMachine, offer.status, "accept")
        self._require_turn(offer, party, "accept")

        if offer.status == OfferStatus.PENDING or party is Party.DESIGNER:
            final_price = offer.customer_price
        else:
            final_price = offer.designer_price

        # An accepted offer must be orderable.
        item = await self._catalog_item(offer)
        if not item.production_steps:
            raise ValidationError(
                f"Catalog item {item.id} has no production workflow defined",
                code="NO_PRODUCTION_WORKFLOW",
            )

        offer.status = new_status
        offer.final_price = final_price
        offer.accepted_at = self._uow.now()
        offer.awaiting_response_from = None
        await self._uow.flush("offer")

        counterparty = self._user_for(offer, party.other)
        note_type = (
            NotificationType.OFFER_ACCEPTED
            if party is Party.DESIGNER
            else NotificationType.OFFER_COUNTER_ACCEPTED
        )
        await self._emit(
            offer,
            "accepted",
            actor_id=actor_id,
            old_status=old_status,
            payload={"final_price": str(final_price), "by": party.value},
            notify=Notification(
                user_id=counterparty,
                type=note_type,
                title="Offer accepted",
                message=f"Offer accepted at {final_price}",
                data={"offer_id": str(offer.id), "final_price": str(final_price)},
            ),
        )
        logger.info(
            "offer.accepted",
            offer_id=str(offer.id),
            by=party.value,
            final_price=str(final_price),
        )
        return offer

    async def reject(
        self,
        offer_id: uuid.UUID,
        actor_id: str,
        notes: str | None = None,
    ) -> Offer:
        """Designer rejects the offer, or the customer declines a counter. Produces REJECTED."""
        offer = await self._get_for_update(offer_id)
        party = self._require_party(offer, actor_id)

        old_status = offer.status
        new_status = fire_transition(OfferStateMachine, offer.status, "reject")
        customer_declining = (
            party is Party.CUSTOMER
            and offer.status == OfferStatus.COUNTERED
            and offer.awaiting_response_from == Party.CUSTOMER.value
        )
        if party is not Party.DESIGNER and not customer_declining:
            raise UnauthorizedError(
                "Only the designer may reject, or the customer may decline a counter",
                code="NOT_YOUR_TURN",
            )

        if party is Party.DESIGNER:
            offer.designer_notes = notes or offer.designer_notes
            note_type = NotificationType.OFFER_REJECTED
        else:
            offer.notes = notes or offer.notes
            note_type = NotificationType.OFFER_COUNTER_DECLINED
        offer.status = new_status
        offer.awaiting_response_from = None
        await self._uow.flush("offer")

        await self._emit(
            offer,
            "rejected",
            actor_id=actor_id,
            old_status=old_status,
            payload={"by": party.value, "notes": notes},
            notify=Notification(
                user_id=self._user_for(offer, party.other),
                type=note_type,
                title="Offer declined" if customer_declining else "Offer rejected",
                message=notes or "The other party ended the negotiation",
                data={"offer_id": str(offer.id)},
            ),
        )
        logger.info("offer.rejected", offer_id=str(offer.id), by=party.value)
        return offer

    async def withdraw(self, offer_id: uuid.UUID, actor_id: str) -> Offer:
        """Customer withdraws a non-terminal offer. Produces WITHDRAWN."""
        offer = await self._get_for_update(offer_id)
        party = self._require_party(offer, actor_id)
        if party is not Party.CUSTOMER:
            raise UnauthorizedError("Only the customer may withdraw an offer")
        if offer.status == OfferStatus.ACCEPTED:
            raise ConflictError(
                "Cannot withdraw an accepted offer", code="OFFER_ALREADY_ACCEPTED"
            )

        old_status = offer.status
        offer.status = fire_transition(OfferStateMachine, offer.status, "withdraw")
        offer.awaiting_response_from = None
        await self._uow.flush("offer")

        await self._emit(
            offer,
            "withdrawn",
            actor_id=actor_id,
            old_status=old_status,
            notify=Notification(
                user_id=offer.designer_id,
                type=NotificationType.OFFER_WITHDRAWN,
                title="Offer withdrawn",
                message="The customer withdrew their offer",
                data={"offer_id": str(offer.id)},
            ),
        )
        logger.info("offer.withdrawn", offer_id=str(offer.id))
        return offer

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def get(self, offer_id: uuid.UUID, user_id: str) -> Offer:
        """Get an offer visible to ``user_id`` or raise OfferNotFoundError."""
        offer = await self._offers.get_by_id(offer_id)
        if offer is None or party_of(offer, user_id) is None:
            raise OfferNotFoundError(str(offer_id))
        return offer

    async def list_for_user(self, user_id: str, role: Party) -> list[Offer]:
        return await self._offers.list_for_participant(user_id, role)

    async def events(self, offer_id: uuid.UUID, user_id: str) -> list[LifecycleEvent]:
        """Negotiation history of an offer, oldest first."""
        offer = await self.get(offer_id, user_id)
        return await self._events.get_for_entity(EventDomain.OFFER.value, str(offer.id))

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _get_for_update(self, offer_id: uuid.UUID) -> Offer:
        offer = await self._offers.get_by_id(offer_id, for_update=True)
        if offer is None:
            raise OfferNotFoundError(str(offer_id))
        return offer

    @staticmethod
    def _require_party(offer: Offer, user_id: str) -> Party:
        party = party_of(offer, user_id)
        if party is None:
            raise UnauthorizedError(f"User {user_id} is not a party to offer {offer.id}")
        return party

    @staticmethod
    def _require_turn(offer: Offer, party: Party, action: str) -> None:
        if offer.status == OfferStatus.PENDING:
            allowed = party is Party.DESIGNER
        else:
            allowed = offer.awaiting_response_from == party.value
        if not allowed:
            raise UnauthorizedError(
                f"It is not the {party.value.lower()}'s turn to {action} this offer",
                code="NOT_YOUR_TURN",
            )

    @staticmethod
    def _user_for(offer: Offer, party: Party) -> str:
        return offer.customer_id if party is Party.CUSTOMER else offer.designer_id

    @staticmethod
    def _check_price(price: Decimal) -> None:
        if price <= 0:
            raise ValidationError(f"Price must be positive, got {price}", code="INVALID_PRICE")

    @staticmethod
    def _check_ceiling(price: Decimal, item: CatalogItem) -> None:
        if price > item.list_price:
            raise ValidationError(
                f"Price {price} exceeds the list price {item.list_price}",
                code="PRICE_ABOVE_LIST_PRICE",
            )

    async def _catalog_item(self, offer: Offer) -> CatalogItem:
        item = await guarded_call(
            "catalog", self._uow.collaborators.catalog.get_item(offer.catalog_item_id)
        )
        if item is None:
            raise ExternalDependencyError(
                f"Catalog item {offer.catalog_item_id} no longer exists",
                code="CATALOG_ITEM_MISSING",
            )
        return item

    async def _expire_if_due(self, offer: Offer) -> None:
        """Force EXPIRED on a lapsed open offer and fail the calling action."""
        if OfferStatus(offer.status).is_terminal or offer.expires_at > self._uow.now():
            return

        old_status = offer.status
        offer.status = fire_transition(OfferStateMachine, offer.status, "expire")
        offer.awaiting_response_from = None
        await self._uow.flush("offer")

        await self._emit(
            offer,
            "expired",
            actor_id="SYSTEM",
            old_status=old_status,
            notify=[
                Notification(
                    user_id=user_id,
                    type=NotificationType.OFFER_EXPIRED,
                    title="Offer expired",
                    message="This offer expired before it was accepted",
                    data={"offer_id": str(offer.id)},
                )
                for user_id in (offer.customer_id, offer.designer_id)
            ],
        )
        logger.info(
            "offer.expired", offer_id=str(offer.id), expires_at=offer.expires_at.isoformat()
        )
        raise OfferExpiredError(str(offer.id))

    async def _emit(
        self,
        offer: Offer,
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
                domain=EventDomain.OFFER,
                action=action,
                entity_id=str(offer.id),
                actor_user_id=actor_id,
                payload={"status": offer.status, **(payload or {})},
            ),
            recipients=[offer.customer_id, offer.designer_id],
            notifications=notifications,
            old_status=old_status,
            new_status=offer.status,
        )
