"""Domain enumerations for the Atelier Clearinghouse.

These enums define the canonical states and types used throughout the system.
They are framework-agnostic (no SQLAlchemy, no FastAPI imports).
"""

import enum


class OfferStatus(enum.StrEnum):
    """Lifecycle states of a negotiation offer.

    Transitions are enforced by the OfferStateMachine guard.
    See domain/state_machine.py for the transition table.
    """

    PENDING = "PENDING"
    COUNTERED = "COUNTERED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    WITHDRAWN = "WITHDRAWN"
    EXPIRED = "EXPIRED"

    @property
    def is_terminal(self) -> bool:
        return self not in (OfferStatus.PENDING, OfferStatus.COUNTERED)


class OrderStatus(enum.StrEnum):
    """Lifecycle states of a production order.

    Transitions are enforced by the OrderStateMachine guard.
    """

    PENDING = "PENDING"
    SOURCING = "SOURCING"
    CONSTRUCTION = "CONSTRUCTION"
    QUALITY_CHECK = "QUALITY_CHECK"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    AWAITING_CONFIRMATION = "AWAITING_CONFIRMATION"
    COMPLETED = "COMPLETED"
    DISPUTED = "DISPUTED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


# Statuses in which the designer is still producing the garment.
PRE_SHIPMENT_STATUSES = (
    OrderStatus.PENDING,
    OrderStatus.SOURCING,
    OrderStatus.CONSTRUCTION,
    OrderStatus.QUALITY_CHECK,
)

# Statuses from which the scheduler may auto-confirm delivery.
AWAITING_RECEIPT_STATUSES = (
    OrderStatus.DELIVERED,
    OrderStatus.AWAITING_CONFIRMATION,
)


class Party(enum.StrEnum):
    """The two sides of a negotiation."""

    CUSTOMER = "CUSTOMER"
    DESIGNER = "DESIGNER"

    @property
    def other(self) -> "Party":
        return Party.DESIGNER if self is Party.CUSTOMER else Party.CUSTOMER


class DeliveryConfirmedBy(enum.StrEnum):
    CUSTOMER = "CUSTOMER"
    SYSTEM = "SYSTEM"


class DisputeResolution(enum.StrEnum):
    """Outcome of an administratively resolved dispute."""

    DESIGNER_FAVOURED = "DESIGNER_FAVOURED"
    CUSTOMER_FAVOURED = "CUSTOMER_FAVOURED"


class ProductionStepStatus(enum.StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class FeeRule(enum.StrEnum):
    """Which rule of the fee precedence chain produced a fee."""

    OVERRIDE = "OVERRIDE"
    PROMOTION = "PROMOTION"
    TIER = "TIER"
    DEFAULT = "DEFAULT"


class TransactionType(enum.StrEnum):
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"


class PayoutStatus(enum.StrEnum):
    """Withdrawal lifecycle. PROCESSING means the wallet is debited and the
    transfer is with the payout provider."""

    PROCESSING = "PROCESSING"
    SUCCESSFUL = "SUCCESSFUL"
    FAILED = "FAILED"


class EventDomain(enum.StrEnum):
    """Domains of the canonical event envelope."""

    OFFER = "offer"
    ORDER = "order"
    WALLET = "wallet"
    PAYOUT = "payout"


class NotificationType(enum.StrEnum):
    """Types handed to the notification collaborator.

    The notification layer uses these to pick templates and icons.
    """

    # Negotiation
    OFFER_CREATED = "OFFER_CREATED"
    OFFER_COUNTERED = "OFFER_COUNTERED"
    OFFER_CUSTOMER_COUNTERED = "OFFER_CUSTOMER_COUNTERED"
    OFFER_ACCEPTED = "OFFER_ACCEPTED"
    OFFER_COUNTER_ACCEPTED = "OFFER_COUNTER_ACCEPTED"
    OFFER_REJECTED = "OFFER_REJECTED"
    OFFER_COUNTER_DECLINED = "OFFER_COUNTER_DECLINED"
    OFFER_WITHDRAWN = "OFFER_WITHDRAWN"
    OFFER_EXPIRED = "OFFER_EXPIRED"

    # Orders
    ORDER_CREATED = "ORDER_CREATED"
    ORDER_UPDATE = "ORDER_UPDATE"
    ORDER_SHIPPED = "ORDER_SHIPPED"
    ORDER_DELIVERED = "ORDER_DELIVERED"
    ORDER_CANCELLED = "ORDER_CANCELLED"
    AUTO_CONFIRM_SOON = "AUTO_CONFIRM_SOON"
    PAYMENT_RELEASED = "PAYMENT_RELEASED"
    DISPUTE_OPENED = "DISPUTE_OPENED"
    DISPUTE_RESOLVED = "DISPUTE_RESOLVED"
    REFUND_ISSUED = "REFUND_ISSUED"

    # Deadlines
    DEADLINE_REMINDER = "DEADLINE_REMINDER"
    DEADLINE_OVERDUE = "DEADLINE_OVERDUE"

    # Payouts
    PAYOUT_COMPLETED = "PAYOUT_COMPLETED"
    PAYOUT_FAILED = "PAYOUT_FAILED"
