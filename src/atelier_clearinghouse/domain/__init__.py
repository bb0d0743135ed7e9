"""Domain layer - pure business logic with zero framework dependencies."""

from atelier_clearinghouse.domain.enums import (
    DeliveryConfirmedBy,
    EventDomain,
    FeeRule,
    OfferStatus,
    OrderStatus,
    Party,
    TransactionType,
)
from atelier_clearinghouse.domain.events import EventEnvelope, Notification, OutboundEvent
from atelier_clearinghouse.domain.exceptions import (
    ClearinghouseError,
    ConflictError,
    ExpiredError,
    ExternalDependencyError,
    InsufficientBalanceError,
    InvalidStateTransitionError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from atelier_clearinghouse.domain.fees import FeeCalculation, resolve_fee
from atelier_clearinghouse.domain.state_machine import (
    OfferStateMachine,
    OrderStateMachine,
    fire_transition,
    validate_transition,
)

__all__ = [
    "DeliveryConfirmedBy",
    "EventDomain",
    "FeeRule",
    "OfferStatus",
    "OrderStatus",
    "Party",
    "TransactionType",
    "EventEnvelope",
    "Notification",
    "OutboundEvent",
    "ClearinghouseError",
    "ConflictError",
    "ExpiredError",
    "ExternalDependencyError",
    "InsufficientBalanceError",
    "InvalidStateTransitionError",
    "NotFoundError",
    "UnauthorizedError",
    "ValidationError",
    "FeeCalculation",
    "resolve_fee",
    "OfferStateMachine",
    "OrderStateMachine",
    "fire_transition",
    "validate_transition",
]
