"""Tests for fee rule selection and rounding."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal

from atelier_clearinghouse.domain.enums import FeeRule
from atelier_clearinghouse.domain.fees import (
    OverrideWindow,
    PromotionWindow,
    TierBracket,
    calculate_fee,
    resolve_fee,
)

AS_OF = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)
DEFAULT = Decimal("0.10")
TOTAL = Decimal("7000.00")


def _override(pct: str, days_ago: int = 10, until_days: int | None = None) -> OverrideWindow:
    return OverrideWindow(
        fee_percentage=Decimal(pct),
        effective_from=AS_OF - timedelta(days=days_ago),
        effective_until=AS_OF + timedelta(days=until_days) if until_days is not None else None,
    )


def _promotion(pct: str, name: str = "Spring", started_days_ago: int = 5) -> PromotionWindow:
    return PromotionWindow(
        name=name,
        fee_percentage=Decimal(pct),
        start_date=AS_OF - timedelta(days=started_days_ago),
        end_date=AS_OF + timedelta(days=5),
    )


class TestCalculateFee:
    def test_splits_total(self) -> None:
        fee = calculate_fee(DEFAULT, TOTAL, FeeRule.DEFAULT, "Default rate")
        assert fee.fee_amount == Decimal("700.00")
        assert fee.designer_receives == Decimal("6300.00")
        assert fee.fee_amount + fee.designer_receives == TOTAL

    def test_rounds_half_up_to_cents(self) -> None:
        fee = calculate_fee(Decimal("0.0750"), Decimal("10.10"), FeeRule.DEFAULT, "x")
        # 10.10 * 0.075 = 0.7575
        assert fee.fee_amount == Decimal("0.76")
        assert fee.designer_receives == Decimal("9.34")

    def test_zero_fee(self) -> None:
        fee = calculate_fee(Decimal("0"), TOTAL, FeeRule.PROMOTION, "Free week")
        assert fee.fee_amount == Decimal("0.00")
        assert fee.designer_receives == TOTAL


class TestPrecedence:
    def test_override_beats_promotion_and_tier(self) -> None:
        fee = resolve_fee(
            TOTAL,
            AS_OF,
            overrides=[_override("0.05")],
            promotions=[_promotion("0.02")],
            tiers=[TierBracket("Gold", 0, Decimal("0.03"))],
            completed_orders=50,
            default_percentage=DEFAULT,
        )
        assert fee.applied_rule is FeeRule.OVERRIDE
        assert fee.percentage == Decimal("0.05")
        assert fee.rule_details == "Custom rate"

    def test_promotion_beats_tier(self) -> None:
        fee = resolve_fee(
            TOTAL,
            AS_OF,
            promotions=[_promotion("0.02", name="Launch week")],
            tiers=[TierBracket("Gold", 0, Decimal("0.03"))],
            default_percentage=DEFAULT,
        )
        assert fee.applied_rule is FeeRule.PROMOTION
        assert fee.rule_details == "Launch week"

    def test_tier_beats_default(self) -> None:
        fee = resolve_fee(
            TOTAL,
            AS_OF,
            tiers=[TierBracket("Silver", 10, Decimal("0.08"), max_orders=49)],
            completed_orders=12,
            default_percentage=DEFAULT,
        )
        assert fee.applied_rule is FeeRule.TIER
        assert fee.rule_details == "Silver Tier"
        assert fee.fee_amount == Decimal("560.00")

    def test_default_when_nothing_applies(self) -> None:
        fee = resolve_fee(
            TOTAL,
            AS_OF,
            overrides=[_override("0.05", days_ago=30, until_days=-1)],
            tiers=[TierBracket("Silver", 10, Decimal("0.08"))],
            completed_orders=3,
            default_percentage=DEFAULT,
        )
        assert fee.applied_rule is FeeRule.DEFAULT
        assert fee.percentage == DEFAULT


class TestTieBreaks:
    def test_latest_override_wins(self) -> None:
        fee = resolve_fee(
            TOTAL,
            AS_OF,
            overrides=[_override("0.05", days_ago=30), _override("0.04", days_ago=2)],
            default_percentage=DEFAULT,
        )
        assert fee.percentage == Decimal("0.04")

    def test_latest_promotion_wins(self) -> None:
        fee = resolve_fee(
            TOTAL,
            AS_OF,
            promotions=[
                _promotion("0.06", name="Old", started_days_ago=9),
                _promotion("0.03", name="New", started_days_ago=1),
            ],
            default_percentage=DEFAULT,
        )
        assert fee.rule_details == "New"

    def test_tier_priority_then_min_orders(self) -> None:
        tiers = [
            TierBracket("Bronze", 0, Decimal("0.09")),
            TierBracket("Silver", 10, Decimal("0.08")),
            TierBracket("Partner", 0, Decimal("0.07"), priority=5),
        ]
        fee = resolve_fee(
            TOTAL, AS_OF, tiers=tiers, completed_orders=20, default_percentage=DEFAULT
        )
        assert fee.rule_details == "Partner Tier"

        fee = resolve_fee(
            TOTAL, AS_OF, tiers=tiers[:2], completed_orders=20, default_percentage=DEFAULT
        )
        assert fee.rule_details == "Silver Tier"


class TestWindows:
    def test_inactive_promotion_ignored(self) -> None:
        promo = PromotionWindow(
            "Paused",
            Decimal("0.01"),
            AS_OF - timedelta(days=1),
            AS_OF + timedelta(days=1),
            is_active=False,
        )
        assert not promo.covers(AS_OF)

    def test_promotion_not_for_everyone_ignored(self) -> None:
        promo = PromotionWindow(
            "Invite only",
            Decimal("0.01"),
            AS_OF - timedelta(days=1),
            AS_OF + timedelta(days=1),
            applicable_to_all=False,
        )
        assert not promo.covers(AS_OF)

    def test_open_ended_override(self) -> None:
        assert _override("0.05").covers(AS_OF + timedelta(days=3650))

    def test_override_not_started(self) -> None:
        assert not _override("0.05", days_ago=-1).covers(AS_OF)

    def test_tier_bounds_inclusive(self) -> None:
        tier = TierBracket("Silver", 10, Decimal("0.08"), max_orders=49)
        assert tier.contains(10)
        assert tier.contains(49)
        assert not tier.contains(9)
        assert not tier.contains(50)
