"""Fee Resolution Engine - pure rule selection.

Given the candidate rules for a designer and a settlement date, picks exactly
one rule and computes the platform fee. Precedence, highest first:

    1. OVERRIDE   designer-specific rate window covering the date
    2. PROMOTION  active platform-wide promotional window covering the date
    3. TIER       active bracket containing the designer's completed-order count
    4. DEFAULT    the configured platform percentage

Rules never stack. This module has no I/O; services/fee_service.py loads the
candidates from the database and calls resolve_fee().
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from atelier_clearinghouse.domain.enums import FeeRule

CENT = Decimal("0.01")


@dataclass(frozen=True)
class FeeCalculation:
    """Outcome of fee resolution for one order total."""

    percentage: Decimal
    fee_amount: Decimal
    designer_receives: Decimal
    applied_rule: FeeRule
    rule_details: str

    def to_dict(self) -> dict:
        return {
            "percentage": str(self.percentage),
            "fee_amount": str(self.fee_amount),
            "designer_receives": str(self.designer_receives),
            "applied_rule": self.applied_rule.value,
            "rule_details": self.rule_details,
        }


@dataclass(frozen=True)
class OverrideWindow:
    fee_percentage: Decimal
    effective_from: datetime
    effective_until: datetime | None = None

    def covers(self, when: datetime) -> bool:
        if self.effective_from > when:
            return False
        return self.effective_until is None or when <= self.effective_until


@dataclass(frozen=True)
class PromotionWindow:
    name: str
    fee_percentage: Decimal
    start_date: datetime
    end_date: datetime
    is_active: bool = True
    applicable_to_all: bool = True

    def covers(self, when: datetime) -> bool:
        return (
            self.is_active
            and self.applicable_to_all
            and self.start_date <= when <= self.end_date
        )


@dataclass(frozen=True)
class TierBracket:
    name: str
    min_orders: int
    fee_percentage: Decimal
    max_orders: int | None = None
    priority: int = 0
    is_active: bool = True

    def contains(self, completed_orders: int) -> bool:
        if not self.is_active or completed_orders < self.min_orders:
            return False
        return self.max_orders is None or completed_orders <= self.max_orders


def calculate_fee(
    percentage: Decimal,
    order_total: Decimal,
    rule: FeeRule,
    details: str,
) -> FeeCalculation:
    """Apply ``percentage`` to ``order_total``, rounding the fee half-up to cents."""
    fee_amount = (order_total * percentage).quantize(CENT, rounding=ROUND_HALF_UP)
    return FeeCalculation(
        percentage=percentage,
        fee_amount=fee_amount,
        designer_receives=order_total - fee_amount,
        applied_rule=rule,
        rule_details=details,
    )


def resolve_fee(
    order_total: Decimal,
    as_of: datetime,
    *,
    overrides: Sequence[OverrideWindow] = (),
    promotions: Sequence[PromotionWindow] = (),
    tiers: Sequence[TierBracket] = (),
    completed_orders: int = 0,
    default_percentage: Decimal,
) -> FeeCalculation:
    """Select the single applicable fee rule and compute the fee.

    Ties inside a rule class are broken deterministically: the most recently
    started override or promotion wins, and among tiers the highest priority
    wins, then the higher ``min_orders``.
    """
    active_overrides = [o for o in overrides if o.covers(as_of)]
    if active_overrides:
        override = max(active_overrides, key=lambda o: o.effective_from)
        return calculate_fee(override.fee_percentage, order_total, FeeRule.OVERRIDE, "Custom rate")

    active_promotions = [p for p in promotions if p.covers(as_of)]
    if active_promotions:
        promotion = max(active_promotions, key=lambda p: p.start_date)
        return calculate_fee(
            promotion.fee_percentage, order_total, FeeRule.PROMOTION, promotion.name
        )

    matching_tiers = [t for t in tiers if t.contains(completed_orders)]
    if matching_tiers:
        tier = max(matching_tiers, key=lambda t: (t.priority, t.min_orders))
        return calculate_fee(tier.fee_percentage, order_total, FeeRule.TIER, f"{tier.name} Tier")

    return calculate_fee(default_percentage, order_total, FeeRule.DEFAULT, "Default rate")
