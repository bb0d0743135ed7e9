"""SQLAlchemy 2.0 ORM models for the Atelier Clearinghouse.

Tables:
    1. offers                   - Price negotiations between a customer and a designer.
    2. orders                   - Production/escrow records materialized from paid offers.
    3. fee_tiers                - Lifetime-completed-order brackets.
    4. designer_fee_overrides   - Designer-specific rate windows.
    5. fee_promotional_periods  - Platform-wide rate windows.
    6. wallet_accounts          - Cached per-user balance (one row per user).
    7. wallet_transactions      - Append-only balance mutation log.
    8. payouts                  - Wallet withdrawals to bank accounts.
    9. lifecycle_events         - Append-only audit log of every state transition.

Design decisions:
    - UUIDs as primary keys; external user/catalog/address ids are opaque strings.
    - Decimal for money (Numeric(14, 2)) and fee fractions (Numeric(5, 4)).
    - JSON columns (JSONB on PostgreSQL) for production steps and measurement snapshots.
    - CHECK constraints on status to prevent invalid enum values at DB level.
    - version_id_col on rows mutated concurrently: stale writes raise StaleDataError.
    - wallet_transactions and lifecycle_events are append-only.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal  # noqa: TC003 - needed at runtime by SQLAlchemy Mapped[]

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    TypeDecorator,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests).
JSONDocument = JSON().with_variant(JSONB(), "postgresql")

MONEY = Numeric(14, 2)
FEE_FRACTION = Numeric(5, 4)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class UTCDateTime(TypeDecorator):
    """Timezone-aware DateTime that always comes back as UTC.

    SQLite drops tzinfo on the way in; re-attach it on the way out so that
    comparisons against aware datetimes never mix naive and aware values.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):  # noqa: ANN001, ANN201
        if value is not None and value.tzinfo is None:
            raise ValueError("naive datetime passed to a UTC column")
        return value.astimezone(UTC) if value is not None else None

    def process_result_value(self, value, dialect):  # noqa: ANN001, ANN201
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def _status_check(statuses: tuple[str, ...], name: str) -> CheckConstraint:
    values = ", ".join(f"'{s}'" for s in statuses)
    return CheckConstraint(f"status IN ({values})", name=name)


# ---------------------------------------------------------------------------
# 1. offers
# ---------------------------------------------------------------------------
class Offer(Base):
    """A priced proposal between one customer and one designer for one catalog item."""

    __tablename__ = "offers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # --- Participants ---
    customer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    designer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    catalog_item_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # --- Prices ---
    customer_price: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    designer_price: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    final_price: Mapped[Decimal | None] = mapped_column(
        MONEY,
        nullable=True,
        comment="Set if and only if status is ACCEPTED",
    )

    # --- Status (Enum-guarded) ---
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="PENDING",
        comment="Current negotiation state (guarded by OfferStateMachine)",
    )
    awaiting_response_from: Mapped[str | None] = mapped_column(
        String(10),
        nullable=True,
        comment="CUSTOMER or DESIGNER while COUNTERED, otherwise null",
    )

    # --- Terms ---
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    designer_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    measurements_snapshot: Mapped[dict] = mapped_column(JSONDocument, nullable=False, default=dict)
    try_on_image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    deadline: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    accepted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # --- Timestamps ---
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        _status_check(
            ("PENDING", "COUNTERED", "ACCEPTED", "REJECTED", "WITHDRAWN", "EXPIRED"),
            "ck_offer_valid_status",
        ),
        CheckConstraint("customer_price > 0", name="ck_offer_positive_price"),
        CheckConstraint(
            "(final_price IS NULL) = (status != 'ACCEPTED')",
            name="ck_offer_final_price_iff_accepted",
        ),
        Index("idx_offer_customer", "customer_id"),
        Index("idx_offer_designer", "designer_id"),
        Index("idx_offer_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<Offer id={self.id} status={self.status} customer_price={self.customer_price}>"


# ---------------------------------------------------------------------------
# 2. orders
# ---------------------------------------------------------------------------
class Order(Base):
    """The production and escrow record for one accepted, paid offer."""

    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_number: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    offer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("offers.id"),
        nullable=False,
        unique=True,
        comment="One order per offer",
    )

    # --- Participants ---
    customer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    designer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    catalog_item_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # --- Terms ---
    final_price: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    status: Mapped[str] = mapped_column(
        String(24),
        nullable=False,
        default="PENDING",
        comment="Current lifecycle state (guarded by OrderStateMachine)",
    )
    production_steps: Mapped[list] = mapped_column(
        JSONDocument,
        nullable=False,
        comment="Ordered [{name, status, completedAt?, notes?}] copied from the catalog item",
    )
    measurements_snapshot: Mapped[dict] = mapped_column(JSONDocument, nullable=False, default=dict)
    deadline: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    shipping_address_id: Mapped[str] = mapped_column(String(64), nullable=False)
    payment_reference: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        unique=True,
        comment="Settled payment intent; one payment pays for one order",
    )

    # --- Shipment ---
    shipped_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    carrier: Mapped[str | None] = mapped_column(String(64), nullable=True)
    tracking_number: Mapped[str | None] = mapped_column(String(128), nullable=True)
    estimated_delivery: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # --- Confirmation ---
    confirmation_window_start: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    confirmation_window_end: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    auto_confirm_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    customer_confirmed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    delivery_confirmed_by: Mapped[str | None] = mapped_column(String(10), nullable=True)
    rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    review: Mapped[str | None] = mapped_column(Text, nullable=True)

    # --- Settlement ---
    payment_released_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime,
        nullable=True,
        comment="Non-null once settled; settlement runs at most once",
    )
    payment_amount: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    platform_fee: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    fee_percentage_applied: Mapped[Decimal | None] = mapped_column(FEE_FRACTION, nullable=True)
    fee_rule_applied: Mapped[str | None] = mapped_column(String(12), nullable=True)

    # --- Disputes & cancellation ---
    dispute_opened_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    dispute_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    dispute_resolution: Mapped[str | None] = mapped_column(String(20), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    buyer_protection_until: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    # --- Timestamps ---
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        _status_check(
            (
                "PENDING",
                "SOURCING",
                "CONSTRUCTION",
                "QUALITY_CHECK",
                "SHIPPED",
                "DELIVERED",
                "AWAITING_CONFIRMATION",
                "COMPLETED",
                "DISPUTED",
                "CANCELLED",
                "REFUNDED",
            ),
            "ck_order_valid_status",
        ),
        CheckConstraint("final_price > 0", name="ck_order_positive_price"),
        CheckConstraint("rating IS NULL OR (rating >= 1 AND rating <= 5)", name="ck_order_rating"),
        Index("idx_order_customer", "customer_id"),
        Index("idx_order_designer", "designer_id"),
        Index("idx_order_status", "status"),
        Index("idx_order_auto_confirm_at", "auto_confirm_at"),
    )

    def __repr__(self) -> str:
        return f"<Order number={self.order_number} status={self.status} price={self.final_price}>"


# ---------------------------------------------------------------------------
# 3-5. Fee rules
# ---------------------------------------------------------------------------
class FeeTier(Base):
    """Fee bracket keyed by a designer's lifetime completed-order count."""

    __tablename__ = "fee_tiers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    min_orders: Mapped[int] = mapped_column(Integer, nullable=False)
    max_orders: Mapped[int | None] = mapped_column(Integer, nullable=True)
    fee_percentage: Mapped[Decimal] = mapped_column(FEE_FRACTION, nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    __table_args__ = (
        CheckConstraint("min_orders >= 0", name="ck_tier_min_orders"),
        CheckConstraint(
            "max_orders IS NULL OR max_orders >= min_orders", name="ck_tier_bracket"
        ),
        CheckConstraint("fee_percentage >= 0 AND fee_percentage <= 1", name="ck_tier_fee"),
    )


class DesignerFeeOverride(Base):
    """Designer-specific fee rate window."""

    __tablename__ = "designer_fee_overrides"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    designer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    fee_percentage: Mapped[Decimal] = mapped_column(FEE_FRACTION, nullable=False)
    effective_from: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    effective_until: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    __table_args__ = (
        CheckConstraint("fee_percentage >= 0 AND fee_percentage <= 1", name="ck_override_fee"),
        Index("idx_override_designer", "designer_id"),
    )


class FeePromotionalPeriod(Base):
    """Platform-wide fee rate window."""

    __tablename__ = "fee_promotional_periods"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    fee_percentage: Mapped[Decimal] = mapped_column(FEE_FRACTION, nullable=False)
    start_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    end_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    applicable_to_all: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="ck_promotion_window"),
        CheckConstraint("fee_percentage >= 0 AND fee_percentage <= 1", name="ck_promotion_fee"),
    )


# ---------------------------------------------------------------------------
# 6-7. Wallet
# ---------------------------------------------------------------------------
class WalletAccount(Base):
    """Cached wallet balance for one user. Only the WalletLedger writes it."""

    __tablename__ = "wallet_accounts"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    balance: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0.00"))
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (CheckConstraint("balance >= 0", name="ck_wallet_non_negative"),)

    def __repr__(self) -> str:
        return f"<WalletAccount user={self.user_id} balance={self.balance}>"


class WalletTransaction(Base):
    """Immutable record of a single balance mutation.

    This table is APPEND-ONLY. For every user, replaying the rows in
    ``sequence`` order reproduces the cached WalletAccount balance.
    """

    __tablename__ = "wallet_transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("wallet_accounts.user_id"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Per-user position in the ledger, starting at 1",
    )
    type: Mapped[str] = mapped_column(String(6), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    balance_before: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    order_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    __table_args__ = (
        CheckConstraint("type IN ('CREDIT', 'DEBIT')", name="ck_wallet_tx_type"),
        CheckConstraint("amount > 0", name="ck_wallet_tx_positive"),
        CheckConstraint("balance_after >= 0", name="ck_wallet_tx_non_negative"),
        Index("uq_wallet_tx_user_sequence", "user_id", "sequence", unique=True),
        Index("idx_wallet_tx_order", "order_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<WalletTransaction user={self.user_id} #{self.sequence} "
            f"{self.type} {self.amount}>"
        )


# ---------------------------------------------------------------------------
# 8. payouts
# ---------------------------------------------------------------------------
class Payout(Base):
    """A withdrawal from a user's wallet to a bank account.

    ``amount`` is what the recipient receives; the wallet is debited
    ``amount + fee``. A FAILED payout has been refunded in full.
    """

    __tablename__ = "payouts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("wallet_accounts.user_id"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    fee: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    net_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    status: Mapped[str] = mapped_column(String(12), nullable=False, default="PROCESSING")

    # --- Recipient ---
    recipient_bank: Mapped[str] = mapped_column(String(16), nullable=False)
    recipient_account: Mapped[str] = mapped_column(String(20), nullable=False)
    recipient_name: Mapped[str] = mapped_column(String(128), nullable=False)
    narration: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # --- Provider ---
    transaction_reference: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        comment="Our reference, sent to the provider",
    )
    provider_reference: Mapped[str | None] = mapped_column(String(128), nullable=True)
    response_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    failed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        _status_check(("PROCESSING", "SUCCESSFUL", "FAILED"), "ck_payout_valid_status"),
        CheckConstraint("amount > 0", name="ck_payout_positive_amount"),
        CheckConstraint("fee >= 0", name="ck_payout_non_negative_fee"),
        Index("idx_payout_user", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<Payout {self.transaction_reference} {self.status} {self.amount}>"


# ---------------------------------------------------------------------------
# 9. lifecycle_events (Append-Only Audit Log)
# ---------------------------------------------------------------------------
class LifecycleEvent(Base):
    """Immutable audit record of a state transition on an offer, order or wallet.

    This table is APPEND-ONLY. No UPDATE or DELETE operations are permitted
    at the application level. Each row mirrors one EventEnvelope.
    """

    __tablename__ = "lifecycle_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    domain: Mapped[str] = mapped_column(String(10), nullable=False)
    action: Mapped[str] = mapped_column(String(40), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    sequence: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Per-entity position in the log, starting at 1",
    )
    actor_user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        default="SYSTEM",
        comment="Who triggered this event (user id or SYSTEM)",
    )
    old_status: Mapped[str | None] = mapped_column(String(24), nullable=True)
    new_status: Mapped[str | None] = mapped_column(String(24), nullable=True)
    payload: Mapped[dict | None] = mapped_column(JSONDocument, nullable=True, default=None)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    __table_args__ = (
        Index("uq_event_entity_sequence", "domain", "entity_id", "sequence", unique=True),
        Index("idx_event_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<LifecycleEvent {self.domain}.{self.action} entity={self.entity_id} "
            f"{self.old_status}->{self.new_status}>"
        )
