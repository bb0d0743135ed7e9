"""Tests for FeeService rule storage and resolution."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from atelier_clearinghouse.domain.enums import FeeRule
from atelier_clearinghouse.domain.exceptions import ValidationError
from atelier_clearinghouse.services.fee_service import FeeService
from tests.conftest import DESIGNER, NOW

TOTAL = Decimal("7000.00")


async def _call(market, method, *args, **kwargs):
    return await market.call(FeeService, method, *args, **kwargs)


class TestResolve:
    @pytest.mark.asyncio
    async def test_default_rate(self, market) -> None:
        fee = await _call(market, "resolve", DESIGNER, TOTAL)
        assert fee.applied_rule is FeeRule.DEFAULT
        assert fee.fee_amount == Decimal("700.00")

    @pytest.mark.asyncio
    async def test_stored_override_applies_to_its_designer_only(self, market) -> None:
        await _call(
            market,
            "create_override",
            DESIGNER,
            Decimal("0.04"),
            NOW - timedelta(days=1),
            "admin-1",
            reason="Launch partner",
        )

        fee = await _call(market, "resolve", DESIGNER, TOTAL)
        assert fee.applied_rule is FeeRule.OVERRIDE
        assert fee.fee_amount == Decimal("280.00")

        other = await _call(market, "resolve", "des-other", TOTAL)
        assert other.applied_rule is FeeRule.DEFAULT

    @pytest.mark.asyncio
    async def test_stored_promotion_window(self, market) -> None:
        await _call(
            market,
            "create_promotion",
            "Spring sale",
            Decimal("0.05"),
            NOW - timedelta(days=1),
            NOW + timedelta(days=1),
            "admin-1",
        )

        fee = await _call(market, "resolve", DESIGNER, TOTAL)
        assert fee.applied_rule is FeeRule.PROMOTION
        assert fee.rule_details == "Spring sale"

        later = await _call(market, "resolve", DESIGNER, TOTAL, NOW + timedelta(days=2))
        assert later.applied_rule is FeeRule.DEFAULT

    @pytest.mark.asyncio
    async def test_inactive_tier_ignored(self, market) -> None:
        await _call(market, "create_tier", "Paused", 0, Decimal("0.01"), is_active=False)
        fee = await _call(market, "resolve", DESIGNER, TOTAL)
        assert fee.applied_rule is FeeRule.DEFAULT


class TestRuleValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("pct", ["-0.01", "1.01"])
    async def test_percentage_out_of_range(self, market, pct: str) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await _call(market, "create_tier", "Broken", 0, Decimal(pct))
        assert exc_info.value.code == "INVALID_FEE_PERCENTAGE"

    @pytest.mark.asyncio
    async def test_inverted_tier_bracket(self, market) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await _call(market, "create_tier", "Broken", 10, Decimal("0.05"), max_orders=5)
        assert exc_info.value.code == "INVALID_TIER_BRACKET"

    @pytest.mark.asyncio
    async def test_override_window_inverted(self, market) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await _call(
                market,
                "create_override",
                DESIGNER,
                Decimal("0.05"),
                NOW,
                "admin-1",
                effective_until=NOW - timedelta(days=1),
            )
        assert exc_info.value.code == "INVALID_WINDOW"

    @pytest.mark.asyncio
    async def test_promotion_window_inverted(self, market) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await _call(
                market,
                "create_promotion",
                "Backwards",
                Decimal("0.05"),
                NOW,
                NOW - timedelta(days=1),
                "admin-1",
            )
        assert exc_info.value.code == "INVALID_WINDOW"


class TestListing:
    @pytest.mark.asyncio
    async def test_lists_stored_rules(self, market) -> None:
        await _call(market, "create_tier", "Bronze", 0, Decimal("0.09"))
        await _call(market, "create_tier", "Silver", 10, Decimal("0.08"), max_orders=49)

        tiers = await _call(market, "list_tiers")
        assert [t.name for t in tiers] == ["Silver", "Bronze"]
        assert tiers[0].fee_percentage == Decimal("0.08")

        assert await _call(market, "list_overrides") == []
        assert await _call(market, "list_promotions") == []
