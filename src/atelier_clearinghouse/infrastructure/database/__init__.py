"""Database infrastructure - engine, ORM models, and repositories."""

from atelier_clearinghouse.infrastructure.database.engine import (
    build_session_factory,
    create_engine_for,
    create_schema,
    close_db,
    get_session_factory,
    init_db,
)
from atelier_clearinghouse.infrastructure.database.orm_models import (
    Base,
    DesignerFeeOverride,
    FeePromotionalPeriod,
    FeeTier,
    LifecycleEvent,
    Offer,
    Order,
    WalletAccount,
    WalletTransaction,
)
from atelier_clearinghouse.infrastructure.database.repositories import (
    EventRepository,
    FeeRuleRepository,
    OfferRepository,
    OrderRepository,
    WalletRepository,
)

__all__ = [
    "Base",
    "DesignerFeeOverride",
    "FeePromotionalPeriod",
    "FeeTier",
    "LifecycleEvent",
    "Offer",
    "Order",
    "WalletAccount",
    "WalletTransaction",
    "EventRepository",
    "FeeRuleRepository",
    "OfferRepository",
    "OrderRepository",
    "WalletRepository",
    "build_session_factory",
    "create_engine_for",
    "create_schema",
    "get_session_factory",
    "init_db",
    "close_db",
]
