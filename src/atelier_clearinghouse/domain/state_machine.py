"""Offer and Order State Machine Guards.

Uses python-statemachine to enforce legal state transitions at the domain level.
No matter what the API or the scheduler does, an illegal transition
(e.g., PENDING -> COMPLETED) raises TransitionNotAllowed.

A machine is instantiated per entity at its persisted status and fired before
the ORM row's status field is updated.

Offer transition table:
    PENDING    -> COUNTERED   (counter)
    COUNTERED  -> COUNTERED   (counter, role reversed)
    PENDING    -> ACCEPTED    (accept)
    COUNTERED  -> ACCEPTED    (accept)
    PENDING    -> REJECTED    (reject)
    COUNTERED  -> REJECTED    (reject)
    PENDING    -> WITHDRAWN   (withdraw)
    COUNTERED  -> WITHDRAWN   (withdraw)
    PENDING    -> EXPIRED     (expire)
    COUNTERED  -> EXPIRED     (expire)

Order transition table:
    PENDING               -> SOURCING                 (begin_sourcing)
    PENDING | SOURCING    -> CONSTRUCTION             (begin_construction)
    CONSTRUCTION          -> QUALITY_CHECK            (begin_quality_check)
    pre-shipment          -> SHIPPED                  (ship)
    SHIPPED               -> DELIVERED                (mark_delivered)
    DELIVERED             -> AWAITING_CONFIRMATION    (request_confirmation)
    SHIPPED | DELIVERED | AWAITING_CONFIRMATION -> COMPLETED (confirm_receipt)
    DELIVERED | AWAITING_CONFIRMATION -> COMPLETED    (auto_confirm)
    any open status       -> DISPUTED                 (open_dispute)
    DISPUTED              -> COMPLETED                (resolve_for_designer)
    DISPUTED              -> REFUNDED                 (resolve_for_customer)
    pre-shipment          -> CANCELLED                (cancel)
"""

from __future__ import annotations

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from atelier_clearinghouse.domain.exceptions import InvalidStateTransitionError


class _StatusGuard:
    """Shared start-at-status behaviour for the domain state machines."""

    def __init__(self, current_status: str) -> None:
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown status '{current_status}'. Valid states: {valid}"
            )
        # start_value expects the string value, not the State object
        super().__init__(start_value=current_status)

    @property
    def status(self) -> str:
        """Return the current state value as a string (matches the status enum)."""
        return str(self.current_state.value)

    def get_allowed_events(self) -> list[str]:
        """Return a list of event names that can fire from the current state."""
        return [event.name for event in self.allowed_events]


class OfferStateMachine(_StatusGuard, StateMachine):
    """State machine that guards offer negotiation transitions.

    Which *party* may fire an event depends on ``awaiting_response_from`` and
    is checked by the offer service; this guard only knows about statuses.

    Usage:
        sm = OfferStateMachine("PENDING")
        sm.counter()   # transitions to COUNTERED
    """

    # --- States ---
    PENDING = State("PENDING", initial=True)
    COUNTERED = State("COUNTERED")
    ACCEPTED = State("ACCEPTED", final=True)
    REJECTED = State("REJECTED", final=True)
    WITHDRAWN = State("WITHDRAWN", final=True)
    EXPIRED = State("EXPIRED", final=True)

    # --- Events / Transitions ---
    counter = PENDING.to(COUNTERED) | COUNTERED.to.itself()
    accept = PENDING.to(ACCEPTED) | COUNTERED.to(ACCEPTED)
    reject = PENDING.to(REJECTED) | COUNTERED.to(REJECTED)
    withdraw = PENDING.to(WITHDRAWN) | COUNTERED.to(WITHDRAWN)
    expire = PENDING.to(EXPIRED) | COUNTERED.to(EXPIRED)

    def __init__(self, current_status: str = "PENDING") -> None:
        super().__init__(current_status)


class OrderStateMachine(_StatusGuard, StateMachine):
    """State machine that guards the order production and escrow lifecycle.

    Usage:
        sm = OrderStateMachine("SHIPPED")
        sm.mark_delivered()  # transitions to DELIVERED
    """

    # --- States ---
    PENDING = State("PENDING", initial=True)
    SOURCING = State("SOURCING")
    CONSTRUCTION = State("CONSTRUCTION")
    QUALITY_CHECK = State("QUALITY_CHECK")
    SHIPPED = State("SHIPPED")
    DELIVERED = State("DELIVERED")
    AWAITING_CONFIRMATION = State("AWAITING_CONFIRMATION")
    DISPUTED = State("DISPUTED")
    COMPLETED = State("COMPLETED", final=True)
    CANCELLED = State("CANCELLED", final=True)
    REFUNDED = State("REFUNDED", final=True)

    # --- Production ---
    begin_sourcing = PENDING.to(SOURCING)
    begin_construction = PENDING.to(CONSTRUCTION) | SOURCING.to(CONSTRUCTION)
    begin_quality_check = CONSTRUCTION.to(QUALITY_CHECK)

    # --- Fulfilment ---
    ship = (
        PENDING.to(SHIPPED)
        | SOURCING.to(SHIPPED)
        | CONSTRUCTION.to(SHIPPED)
        | QUALITY_CHECK.to(SHIPPED)
    )
    mark_delivered = SHIPPED.to(DELIVERED)
    request_confirmation = DELIVERED.to(AWAITING_CONFIRMATION)

    # --- Settlement ---
    confirm_receipt = (
        SHIPPED.to(COMPLETED)
        | DELIVERED.to(COMPLETED)
        | AWAITING_CONFIRMATION.to(COMPLETED)
    )
    auto_confirm = DELIVERED.to(COMPLETED) | AWAITING_CONFIRMATION.to(COMPLETED)

    # --- Disputes ---
    open_dispute = (
        PENDING.to(DISPUTED)
        | SOURCING.to(DISPUTED)
        | CONSTRUCTION.to(DISPUTED)
        | QUALITY_CHECK.to(DISPUTED)
        | SHIPPED.to(DISPUTED)
        | DELIVERED.to(DISPUTED)
        | AWAITING_CONFIRMATION.to(DISPUTED)
    )
    resolve_for_designer = DISPUTED.to(COMPLETED)
    resolve_for_customer = DISPUTED.to(REFUNDED)

    # --- Cancellation ---
    cancel = (
        PENDING.to(CANCELLED)
        | SOURCING.to(CANCELLED)
        | CONSTRUCTION.to(CANCELLED)
        | QUALITY_CHECK.to(CANCELLED)
    )

    def __init__(self, current_status: str = "PENDING") -> None:
        super().__init__(current_status)


def validate_transition(
    machine_cls: type[OfferStateMachine] | type[OrderStateMachine],
    current_status: str,
    event_name: str,
) -> str:
    """Validate a state transition and return the new status.

    Creates a temporary state machine at ``current_status``, fires the named
    event, and returns the resulting status string.

    Raises:
        TransitionNotAllowed: If the transition is illegal.
        ValueError: If the status or event name is invalid.
    """
    sm = machine_cls(current_status=current_status)

    event_method = getattr(sm, event_name, None)
    if event_method is None or not callable(event_method):
        raise ValueError(
            f"Unknown event '{event_name}'. "
            f"Allowed events from {current_status}: {sm.get_allowed_events()}"
        )

    event_method()
    return sm.status


def fire_transition(
    machine_cls: type[OfferStateMachine] | type[OrderStateMachine],
    current_status: str,
    event_name: str,
) -> str:
    """Like validate_transition, but raises the domain's InvalidStateTransitionError."""
    try:
        return validate_transition(machine_cls, current_status, event_name)
    except TransitionNotAllowed as err:
        raise InvalidStateTransitionError(current_status, event_name) from err
