"""Collaborator Protocols.

Defines the interfaces of the external systems the engine depends on: the
payment gateway, the catalog, the address book, carrier tracking, the payout
provider and the delivery transports. These are Protocols (structural
subtyping) so concrete adapters don't need to inherit from a base class;
they just need to match the shape.

The domain layer has ZERO imports from HTTP clients or gateway SDKs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable

from atelier_clearinghouse.domain.events import EventEnvelope


@dataclass(frozen=True)
class PaymentVerification:
    """Result of asking the payment gateway about a transaction reference.

    Attributes:
        succeeded: Whether the gateway reports the charge as successful.
        amount: The amount actually captured.
        external_reference: The gateway's own reference for the charge.
    """

    succeeded: bool
    amount: Decimal
    external_reference: str


@dataclass(frozen=True)
class CatalogItem:
    """A design listed by a designer.

    ``production_steps`` is the designer's ordered workflow. An item with no
    steps cannot be accepted or ordered.
    """

    id: str
    designer_id: str
    title: str
    list_price: Decimal
    production_steps: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ShippingAddress:
    id: str
    owner_user_id: str


@dataclass(frozen=True)
class TrackingStatus:
    is_delivered: bool
    delivered_at: datetime | None = None


@dataclass(frozen=True)
class PayoutInstruction:
    """A bank transfer the payout provider is asked to make.

    ``reference`` is ours and unique per payout, so a provider that sees it
    twice can refuse the duplicate.
    """

    reference: str
    amount: Decimal
    currency: str
    bank_code: str
    account_number: str
    account_name: str
    narration: str


@dataclass(frozen=True)
class PayoutResult:
    """The provider's answer to a transfer.

    Attributes:
        accepted: False when the provider refused the transfer outright.
        completed: True when the money has already left; otherwise the
            transfer is still in flight.
        provider_reference: The provider's own reference for the transfer.
        message: The provider's response description.
    """

    accepted: bool
    completed: bool = False
    provider_reference: str | None = None
    message: str | None = None


@runtime_checkable
class PaymentVerifier(Protocol):
    async def verify(self, reference: str) -> PaymentVerification:
        """Return the gateway's view of the transaction ``reference``."""
        ...


@runtime_checkable
class CatalogLookup(Protocol):
    async def get_item(self, item_id: str) -> CatalogItem | None:
        """Return the catalog item, or None if it does not exist."""
        ...


@runtime_checkable
class AddressLookup(Protocol):
    async def get_address(self, address_id: str) -> ShippingAddress | None:
        """Return the shipping address, or None if it does not exist."""
        ...


@runtime_checkable
class CarrierTracker(Protocol):
    async def track(self, carrier: str, tracking_number: str) -> TrackingStatus:
        """Return the carrier's delivery status for a shipment."""
        ...


@runtime_checkable
class PayoutGateway(Protocol):
    async def transfer(self, instruction: PayoutInstruction) -> PayoutResult:
        """Send money from the platform wallet to a bank account."""
        ...


@runtime_checkable
class Notifier(Protocol):
    """Fire-and-forget user notifications (push, email, in-app)."""

    async def notify(
        self,
        user_id: str,
        type: str,
        title: str,
        message: str,
        data: dict[str, Any],
    ) -> None: ...


@runtime_checkable
class RealtimePublisher(Protocol):
    """Fire-and-forget realtime fan-out to connected clients."""

    async def publish(self, user_ids: list[str], envelope: EventEnvelope) -> None: ...


@dataclass(frozen=True)
class Collaborators:
    """Bundle of the collaborator adapters a unit of work may call."""

    payments: PaymentVerifier
    catalog: CatalogLookup
    addresses: AddressLookup
    tracker: CarrierTracker
    notifier: Notifier
    publisher: RealtimePublisher
    payouts: PayoutGateway
