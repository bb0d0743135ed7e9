"""Pydantic schemas for fee rules, wallets and payouts."""

from __future__ import annotations

import uuid  # noqa: TC003 - pydantic resolves annotations at runtime
from datetime import datetime  # noqa: TC003
from decimal import Decimal  # noqa: TC003

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Fee rules
# ---------------------------------------------------------------------------


class CreateTierRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=64, examples=["Gold"])
    min_orders: int = Field(..., ge=0)
    max_orders: int | None = Field(default=None, ge=0)
    fee_percentage: Decimal = Field(..., description="Fraction, e.g. 0.08 for 8%")
    priority: int = 0
    is_active: bool = True


class CreateOverrideRequest(BaseModel):
    designer_id: str = Field(..., min_length=1, max_length=64)
    fee_percentage: Decimal
    effective_from: datetime
    effective_until: datetime | None = None
    reason: str | None = None
    created_by: str = Field(..., min_length=1, max_length=64)


class CreatePromotionRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    fee_percentage: Decimal
    start_date: datetime
    end_date: datetime
    is_active: bool = True
    applicable_to_all: bool = True
    created_by: str = Field(..., min_length=1, max_length=64)


class FeeTierResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    min_orders: int
    max_orders: int | None
    fee_percentage: Decimal
    priority: int
    is_active: bool


class FeeOverrideResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    designer_id: str
    fee_percentage: Decimal
    effective_from: datetime
    effective_until: datetime | None
    reason: str | None
    created_by: str


class FeePromotionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    fee_percentage: Decimal
    start_date: datetime
    end_date: datetime
    is_active: bool
    applicable_to_all: bool


class FeeQuoteResponse(BaseModel):
    """The fee that would apply if the order settled now."""

    percentage: Decimal
    fee_amount: Decimal
    designer_receives: Decimal
    applied_rule: str
    rule_details: str


# ---------------------------------------------------------------------------
# Wallets
# ---------------------------------------------------------------------------


class WalletBalanceResponse(BaseModel):
    user_id: str
    balance: Decimal


class WalletTransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    sequence: int
    type: str
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    description: str
    order_id: uuid.UUID | None
    created_at: datetime


class LedgerReplayResponse(BaseModel):
    """Result of recomputing a wallet from its transaction log."""

    model_config = ConfigDict(from_attributes=True)

    user_id: str
    cached_balance: Decimal
    replayed_balance: Decimal
    transaction_count: int
    broken_at_sequence: int | None
    consistent: bool


# ---------------------------------------------------------------------------
# Payouts
# ---------------------------------------------------------------------------


class PayoutRequest(BaseModel):
    """Request body for withdrawing from the caller's wallet."""

    amount: Decimal = Field(..., gt=0, description="Amount the recipient receives")
    bank_code: str = Field(..., min_length=1, max_length=16, examples=["044"])
    account_number: str = Field(..., pattern=r"^\d{10}$", examples=["0730804844"])
    account_name: str = Field(..., min_length=1, max_length=128)
    bank_name: str | None = Field(default=None, max_length=64)


class PayoutResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    amount: Decimal
    fee: Decimal
    net_amount: Decimal
    status: str
    recipient_bank: str
    recipient_account: str
    recipient_name: str
    transaction_reference: str
    provider_reference: str | None
    response_message: str | None
    created_at: datetime
    completed_at: datetime | None
    failed_at: datetime | None
