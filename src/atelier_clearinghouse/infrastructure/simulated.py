"""In-process collaborator implementations.

Used in development mode and by the test suite in place of the real payment
gateway, catalog, address book, carrier tracking, payout provider and delivery
transports. Each adapter logs what it does and keeps what it was asked, so
tests can assert on the traffic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from atelier_clearinghouse.domain.collaborators import (
    CatalogItem,
    Collaborators,
    PaymentVerification,
    PayoutResult,
    ShippingAddress,
    TrackingStatus,
)
from atelier_clearinghouse.logging_config import get_logger

if TYPE_CHECKING:
    from datetime import datetime

    from atelier_clearinghouse.domain.collaborators import PayoutInstruction
    from atelier_clearinghouse.domain.events import EventEnvelope

logger = get_logger(__name__)


class SimulatedPaymentGateway:
    """Payment verifier backed by a dict of known references.

    Unknown references verify as unsuccessful with a zero amount.
    """

    def __init__(self) -> None:
        self._payments: dict[str, PaymentVerification] = {}

    def register(self, reference: str, amount: Decimal, succeeded: bool = True) -> None:
        self._payments[reference] = PaymentVerification(
            succeeded=succeeded,
            amount=amount,
            external_reference=f"sim_{reference}",
        )

    async def verify(self, reference: str) -> PaymentVerification:
        result = self._payments.get(
            reference,
            PaymentVerification(succeeded=False, amount=Decimal("0"), external_reference=reference),
        )
        logger.info(
            "payment.verified",
            reference=reference,
            succeeded=result.succeeded,
            amount=str(result.amount),
            simulated=True,
        )
        return result


class InMemoryCatalog:
    def __init__(self, items: list[CatalogItem] | None = None) -> None:
        self._items = {item.id: item for item in items or []}

    def add(self, item: CatalogItem) -> None:
        self._items[item.id] = item

    async def get_item(self, item_id: str) -> CatalogItem | None:
        return self._items.get(item_id)


class InMemoryAddressBook:
    def __init__(self, addresses: list[ShippingAddress] | None = None) -> None:
        self._addresses = {a.id: a for a in addresses or []}

    def add(self, address: ShippingAddress) -> None:
        self._addresses[address.id] = address

    async def get_address(self, address_id: str) -> ShippingAddress | None:
        return self._addresses.get(address_id)


class SimulatedPayoutGateway:
    """Payout provider that settles every transfer at once.

    ``fail_next`` makes the next transfer come back refused; ``settle_later``
    leaves transfers in flight instead of completed.
    """

    def __init__(self) -> None:
        self.transfers: list[PayoutInstruction] = []
        self.settle_later = False
        self._refusals: list[str] = []

    def fail_next(self, message: str = "Beneficiary account is not valid") -> None:
        self._refusals.append(message)

    async def transfer(self, instruction: PayoutInstruction) -> PayoutResult:
        self.transfers.append(instruction)
        if self._refusals:
            message = self._refusals.pop(0)
            logger.info(
                "payout.refused",
                reference=instruction.reference,
                reason=message,
                simulated=True,
            )
            return PayoutResult(accepted=False, message=message)

        logger.info(
            "payout.transferred",
            reference=instruction.reference,
            amount=str(instruction.amount),
            completed=not self.settle_later,
            simulated=True,
        )
        return PayoutResult(
            accepted=True,
            completed=not self.settle_later,
            provider_reference=f"sim_{instruction.reference}",
            message="Successful",
        )


class ManualCarrierTracker:
    """Carrier tracker whose deliveries are declared by hand."""

    def __init__(self) -> None:
        self._delivered: dict[str, datetime] = {}

    def mark_delivered(self, tracking_number: str, delivered_at: datetime) -> None:
        self._delivered[tracking_number] = delivered_at

    async def track(self, carrier: str, tracking_number: str) -> TrackingStatus:
        delivered_at = self._delivered.get(tracking_number)
        return TrackingStatus(is_delivered=delivered_at is not None, delivered_at=delivered_at)


@dataclass
class SentNotification:
    user_id: str
    type: str
    title: str
    message: str
    data: dict[str, Any] = field(default_factory=dict)


class LoggingNotifier:
    """Notifier that writes each notification to the log."""

    def __init__(self) -> None:
        self.sent: list[SentNotification] = []

    async def notify(
        self,
        user_id: str,
        type: str,
        title: str,
        message: str,
        data: dict[str, Any],
    ) -> None:
        self.sent.append(SentNotification(user_id, type, title, message, data))
        logger.info("notification.sent", user_id=user_id, type=type, title=title)

    def types_for(self, user_id: str) -> list[str]:
        return [n.type for n in self.sent if n.user_id == user_id]


class LoggingRealtimePublisher:
    """Realtime publisher that writes each envelope to the log."""

    def __init__(self) -> None:
        self.published: list[tuple[list[str], EventEnvelope]] = []

    async def publish(self, user_ids: list[str], envelope: EventEnvelope) -> None:
        self.published.append((list(user_ids), envelope))
        logger.info(
            "realtime.published",
            recipients=user_ids,
            domain=envelope.domain.value,
            action=envelope.action,
            entity_id=envelope.entity_id,
        )

    @property
    def actions(self) -> list[str]:
        return [envelope.action for _, envelope in self.published]


def simulated_collaborators() -> Collaborators:
    """Build a fresh set of in-process collaborators."""
    return Collaborators(
        payments=SimulatedPaymentGateway(),
        catalog=InMemoryCatalog(),
        addresses=InMemoryAddressBook(),
        tracker=ManualCarrierTracker(),
        notifier=LoggingNotifier(),
        publisher=LoggingRealtimePublisher(),
        payouts=SimulatedPayoutGateway(),
    )
