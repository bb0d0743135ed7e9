"""Domain exceptions for the Atelier Clearinghouse.

These exceptions are framework-agnostic and represent business rule violations.
Every error carries a machine-checkable ``code`` and a human-readable
``message``. They are translated to HTTP responses by the API layer's
middleware and counted as failures by the scheduler.

ConflictError and ExpiredError are expected business outcomes: callers are
meant to branch on them, not treat them as crashes.
"""


class ClearinghouseError(Exception):
    """Base exception for all domain errors."""

    # When True, the unit of work commits the changes made so far before
    # re-raising (e.g. an offer forced into EXPIRED by a late accept).
    commit_state = False

    def __init__(self, message: str, code: str = "CLEARINGHOUSE_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Input Errors ---


class ValidationError(ClearinghouseError):
    """Malformed or missing input, or a business precondition on the input."""

    def __init__(self, message: str, code: str = "VALIDATION_ERROR") -> None:
        super().__init__(message=message, code=code)


# --- Lookup & Access Errors ---


class NotFoundError(ClearinghouseError):
    """The entity does not exist, or the caller is not allowed to see it."""

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(
            message=f"{entity.capitalize()} not found: {entity_id}",
            code=f"{entity.upper()}_NOT_FOUND",
        )
        self.entity_id = entity_id


class OfferNotFoundError(NotFoundError):
    def __init__(self, offer_id: str) -> None:
        super().__init__("offer", offer_id)


class OrderNotFoundError(NotFoundError):
    def __init__(self, order_id: str) -> None:
        super().__init__("order", order_id)


class PayoutNotFoundError(NotFoundError):
    def __init__(self, payout_id: str) -> None:
        super().__init__("payout", payout_id)


class UnauthorizedError(ClearinghouseError):
    """The actor is not a party to the entity, or is the wrong party for the action."""

    def __init__(self, message: str, code: str = "UNAUTHORIZED") -> None:
        super().__init__(message=message, code=code)


# --- Conflict Errors ---


class ConflictError(ClearinghouseError):
    """The action is not valid for the entity's current state."""

    def __init__(self, message: str, code: str = "CONFLICT") -> None:
        super().__init__(message=message, code=code)


class InvalidStateTransitionError(ConflictError):
    """Raised when an attempted state transition is not allowed.

    Example: PENDING -> COMPLETED (must be shipped and delivered first).
    """

    def __init__(self, current_state: str, attempted: str) -> None:
        super().__init__(
            message=f"Invalid state transition: cannot {attempted} from {current_state}",
            code="INVALID_STATE_TRANSITION",
        )
        self.current_state = current_state
        self.attempted = attempted


class ConcurrentModificationError(ConflictError):
    """Another transaction changed the row between our read and our write."""

    def __init__(self, entity: str) -> None:
        super().__init__(
            message=f"{entity.capitalize()} was modified concurrently; reload and retry",
            code="CONCURRENT_MODIFICATION",
        )


class AlreadySettledError(ConflictError):
    """Raised when settlement is attempted on an order whose payment was released."""

    def __init__(self, order_id: str) -> None:
        super().__init__(
            message=f"Payment already released for order: {order_id}",
            code="ALREADY_SETTLED",
        )


# --- Time Errors ---


class ExpiredError(ClearinghouseError):
    """A deadline or expiry has passed."""

    def __init__(self, message: str, code: str = "EXPIRED") -> None:
        super().__init__(message=message, code=code)


class OfferExpiredError(ExpiredError):
    """The offer passed its expiry; it has been moved to EXPIRED."""

    commit_state = True

    def __init__(self, offer_id: str) -> None:
        super().__init__(message=f"Offer has expired: {offer_id}", code="OFFER_EXPIRED")


class BuyerProtectionExpiredError(ExpiredError):
    def __init__(self, order_id: str) -> None:
        super().__init__(
            message=f"Buyer protection window has closed for order: {order_id}",
            code="BUYER_PROTECTION_EXPIRED",
        )


# --- Wallet Errors ---


class InsufficientBalanceError(ClearinghouseError):
    """Raised when a wallet debit exceeds the available balance."""

    def __init__(self, required: str, available: str) -> None:
        super().__init__(
            message=f"Insufficient balance: required {required}, available {available}",
            code="INSUFFICIENT_BALANCE",
        )
        self.required = required
        self.available = available


# --- Collaborator Errors ---


class ExternalDependencyError(ClearinghouseError):
    """A collaborator (payment, catalog, address, carrier, payout) failed or disagreed with us."""

    def __init__(self, message: str, code: str = "EXTERNAL_DEPENDENCY_ERROR") -> None:
        super().__init__(message=message, code=code)
