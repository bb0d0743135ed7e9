"""Fee Service - loads fee rules from storage and resolves the platform fee.

Rule selection itself is pure (domain/fees.py). This service gathers the
candidates for one designer, counts the designer's completed orders for tier
selection, and exposes the admin operations that create and list rules.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from atelier_clearinghouse.domain.exceptions import ValidationError
from atelier_clearinghouse.domain.fees import (
    FeeCalculation,
    OverrideWindow,
    PromotionWindow,
    TierBracket,
    resolve_fee,
)
from atelier_clearinghouse.infrastructure.database.orm_models import (
    DesignerFeeOverride,
    FeePromotionalPeriod,
    FeeTier,
)
from atelier_clearinghouse.infrastructure.database.repositories import (
    FeeRuleRepository,
    OrderRepository,
)
from atelier_clearinghouse.logging_config import get_logger

if TYPE_CHECKING:
    from datetime import datetime

    from atelier_clearinghouse.services.unit_of_work import UnitOfWork

logger = get_logger(__name__)


def _check_percentage(value: Decimal) -> Decimal:
    if value < 0 or value > 1:
        raise ValidationError(
            f"Fee percentage must be between 0 and 1, got {value}",
            code="INVALID_FEE_PERCENTAGE",
        )
    return value


class FeeService:
    """Fee resolution and fee-rule administration."""

    def __init__(self, uow: UnitOfWork) -> None:
        self._uow = uow
        self._rules = FeeRuleRepository(uow.session)
        self._orders = OrderRepository(uow.session)

    async def resolve(
        self,
        designer_id: str,
        order_total: Decimal,
        as_of: datetime | None = None,
    ) -> FeeCalculation:
        """Compute the fee for ``order_total`` settled for ``designer_id`` at ``as_of``."""
        as_of = as_of or self._uow.now()
        overrides = await self._rules.overrides_for(designer_id)
        promotions = await self._rules.list_promotions(active_only=True)
        tiers = await self._rules.list_tiers(active_only=True)
        completed = await self._orders.count_completed_for_designer(designer_id)

        calculation = resolve_fee(
            order_total,
            as_of,
            overrides=[
                OverrideWindow(o.fee_percentage, o.effective_from, o.effective_until)
                for o in overrides
            ],
            promotions=[
                PromotionWindow(
                    name=p.name,
                    fee_percentage=p.fee_percentage,
                    start_date=p.start_date,
                    end_date=p.end_date,
                    is_active=p.is_active,
                    applicable_to_all=p.applicable_to_all,
                )
                for p in promotions
            ],
            tiers=[
                TierBracket(
                    name=t.name,
                    min_orders=t.min_orders,
                    fee_percentage=t.fee_percentage,
                    max_orders=t.max_orders,
                    priority=t.priority,
                    is_active=t.is_active,
                )
                for t in tiers
            ],
            completed_orders=completed,
            default_percentage=self._uow.settings.platform_fee_percentage,
        )
        logger.debug(
            "fee.resolved",
            designer_id=designer_id,
            total=str(order_total),
            rule=calculation.applied_rule.value,
            percentage=str(calculation.percentage),
            completed_orders=completed,
        )
        return calculation

    # ------------------------------------------------------------------
    # Admin rule management
    # ------------------------------------------------------------------

    async def create_tier(
        self,
        name: str,
        min_orders: int,
        fee_percentage: Decimal,
        max_orders: int | None = None,
        priority: int = 0,
        is_active: bool = True,
    ) -> FeeTier:
        if min_orders < 0 or (max_orders is not None and max_orders < min_orders):
            raise ValidationError(
                f"Invalid tier bracket [{min_orders}, {max_orders}]",
                code="INVALID_TIER_BRACKET",
            )
        tier = FeeTier(
            name=name,
            min_orders=min_orders,
            max_orders=max_orders,
            fee_percentage=_check_percentage(fee_percentage),
            priority=priority,
            is_active=is_active,
        )
        await self._rules.add(tier)
        logger.info("fee.tier_created", name=name, percentage=str(fee_percentage))
        return tier

    async def create_override(
        self,
        designer_id: str,
        fee_percentage: Decimal,
        effective_from: datetime,
        created_by: str,
        effective_until: datetime | None = None,
        reason: str | None = None,
    ) -> DesignerFeeOverride:
        if effective_until is not None and effective_until < effective_from:
            raise ValidationError("Override ends before it starts", code="INVALID_WINDOW")
        override = DesignerFeeOverride(
            designer_id=designer_id,
            fee_percentage=_check_percentage(fee_percentage),
            effective_from=effective_from,
            effective_until=effective_until,
            reason=reason,
            created_by=created_by,
        )
        await self._rules.add(override)
        logger.info(
            "fee.override_created",
            designer_id=designer_id,
            percentage=str(fee_percentage),
            created_by=created_by,
        )
        return override

    async def create_promotion(
        self,
        name: str,
        fee_percentage: Decimal,
        start_date: datetime,
        end_date: datetime,
        created_by: str,
        is_active: bool = True,
        applicable_to_all: bool = True,
    ) -> FeePromotionalPeriod:
        if end_date < start_date:
            raise ValidationError("Promotion ends before it starts", code="INVALID_WINDOW")
        promotion = FeePromotionalPeriod(
            name=name,
            fee_percentage=_check_percentage(fee_percentage),
            start_date=start_date,
            end_date=end_date,
            is_active=is_active,
            applicable_to_all=applicable_to_all,
            created_by=created_by,
        )
        await self._rules.add(promotion)
        logger.info("fee.promotion_created", name=name, percentage=str(fee_percentage))
        return promotion

    async def list_tiers(self) -> list[FeeTier]:
        return await self._rules.list_tiers()

    async def list_overrides(self) -> list[DesignerFeeOverride]:
        return await self._rules.list_overrides()

    async def list_promotions(self) -> list[FeePromotionalPeriod]:
        return await self._rules.list_promotions()
