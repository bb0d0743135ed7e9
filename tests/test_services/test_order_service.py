"""Tests for OrderService: creation, production, fulfilment and settlement."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import update

from atelier_clearinghouse.domain.collaborators import ShippingAddress
from atelier_clearinghouse.domain.enums import (
    DeliveryConfirmedBy,
    DisputeResolution,
    FeeRule,
    OrderStatus,
    Party,
    ProductionStepStatus,
)
from atelier_clearinghouse.domain.exceptions import (
    AlreadySettledError,
    BuyerProtectionExpiredError,
    ConflictError,
    ExternalDependencyError,
    InvalidStateTransitionError,
    OrderNotFoundError,
    UnauthorizedError,
    ValidationError,
)
from atelier_clearinghouse.infrastructure.database.orm_models import Order
from atelier_clearinghouse.infrastructure.database.repositories import OrderRepository
from atelier_clearinghouse.services.fee_service import FeeService
from atelier_clearinghouse.services.offer_service import OfferService
from atelier_clearinghouse.services.order_service import OrderService, StepUpdate
from atelier_clearinghouse.services.wallet_service import WalletLedger
from tests.conftest import ADDRESS_ID, CUSTOMER, DESIGNER, NOW, STEPS, STRANGER


async def _call(market, method, *args, **kwargs):
    return await market.call(OrderService, method, *args, **kwargs)


async def _balance(market, user_id: str) -> Decimal:
    return await market.call(WalletLedger, "balance", user_id)


class TestCreate:
    @pytest.mark.asyncio
    async def test_creates_pending_order_from_accepted_offer(self, market, collaborators) -> None:
        order = await market.order("7000.00")

        assert order.status == OrderStatus.PENDING
        assert order.order_number == "QT-2026-00001"
        assert order.final_price == Decimal("7000.00")
        assert order.customer_id == CUSTOMER
        assert order.designer_id == DESIGNER
        assert order.shipping_address_id == ADDRESS_ID
        assert [s["name"] for s in order.production_steps] == list(STEPS)
        assert all(s["status"] == "pending" for s in order.production_steps)
        assert order.buyer_protection_until == NOW + timedelta(days=60)
        assert order.payment_released_at is None

        assert "ORDER_CREATED" in collaborators.notifier.types_for(DESIGNER)
        assert "ORDER_CREATED" in collaborators.notifier.types_for(CUSTOMER)

    @pytest.mark.asyncio
    async def test_order_numbers_increase(self, market) -> None:
        first = await market.order()
        second = await market.order()
        assert first.order_number == "QT-2026-00001"
        assert second.order_number == "QT-2026-00002"

    @pytest.mark.asyncio
    async def test_create_is_idempotent_per_offer(self, market, collaborators) -> None:
        offer = await market.accepted_offer("7000.00")
        collaborators.payments.register("pay-x", Decimal("7000.00"))

        first = await _call(market, "create", offer.id, CUSTOMER, "pay-x", ADDRESS_ID)
        second = await _call(market, "create", offer.id, CUSTOMER, "pay-x", ADDRESS_ID)

        assert first.id == second.id
        assert collaborators.notifier.types_for(DESIGNER).count("ORDER_CREATED") == 1

    @pytest.mark.asyncio
    async def test_offer_must_be_accepted(self, market, collaborators) -> None:
        offer = await market.offer("7000.00")
        collaborators.payments.register("pay-x", Decimal("7000.00"))
        with pytest.raises(ConflictError) as exc_info:
            await _call(market, "create", offer.id, CUSTOMER, "pay-x", ADDRESS_ID)
        assert exc_info.value.code == "OFFER_NOT_ACCEPTED"

    @pytest.mark.asyncio
    async def test_only_customer_may_order(self, market, collaborators) -> None:
        offer = await market.accepted_offer("7000.00")
        collaborators.payments.register("pay-x", Decimal("7000.00"))
        with pytest.raises(UnauthorizedError):
            await _call(market, "create", offer.id, DESIGNER, "pay-x", ADDRESS_ID)

    @pytest.mark.asyncio
    async def test_unknown_payment_is_not_successful(self, market) -> None:
        offer = await market.accepted_offer("7000.00")
        with pytest.raises(ValidationError) as exc_info:
            await _call(market, "create", offer.id, CUSTOMER, "pay-unknown", ADDRESS_ID)
        assert exc_info.value.code == "PAYMENT_NOT_SUCCESSFUL"

    @pytest.mark.asyncio
    async def test_failed_payment(self, market, collaborators) -> None:
        offer = await market.accepted_offer("7000.00")
        collaborators.payments.register("pay-x", Decimal("7000.00"), succeeded=False)
        with pytest.raises(ValidationError) as exc_info:
            await _call(market, "create", offer.id, CUSTOMER, "pay-x", ADDRESS_ID)
        assert exc_info.value.code == "PAYMENT_NOT_SUCCESSFUL"

    @pytest.mark.asyncio
    async def test_payment_amount_mismatch(self, market, collaborators) -> None:
        offer = await market.accepted_offer("7000.00")
        collaborators.payments.register("pay-x", Decimal("6999.99"))
        with pytest.raises(ExternalDependencyError) as exc_info:
            await _call(market, "create", offer.id, CUSTOMER, "pay-x", ADDRESS_ID)
        assert exc_info.value.code == "PAYMENT_AMOUNT_MISMATCH"

    @pytest.mark.asyncio
    async def test_payment_gateway_down(self, market, collaborators) -> None:
        offer = await market.accepted_offer("7000.00")
        with (
            patch.object(
                collaborators.payments,
                "verify",
                AsyncMock(side_effect=RuntimeError("gateway timeout")),
            ),
            pytest.raises(ExternalDependencyError) as exc_info,
        ):
            await _call(market, "create", offer.id, CUSTOMER, "pay-x", ADDRESS_ID)
        assert exc_info.value.code == "PAYMENT_UNAVAILABLE"

    @pytest.mark.asyncio
    async def test_address_must_belong_to_customer(self, market, collaborators) -> None:
        offer = await market.accepted_offer("7000.00")
        collaborators.payments.register("pay-x", Decimal("7000.00"))
        collaborators.addresses.add(ShippingAddress(id="addr-eve", owner_user_id=STRANGER))

        for address_id in ("addr-eve", "addr-missing"):
            with pytest.raises(ValidationError) as exc_info:
                await _call(market, "create", offer.id, CUSTOMER, "pay-x", address_id)
            assert exc_info.value.code == "INVALID_SHIPPING_ADDRESS"

    @pytest.mark.asyncio
    async def test_payment_reference_pays_for_one_order(self, market, collaborators) -> None:
        first_offer = await market.accepted_offer("7000.00")
        second_offer = await market.accepted_offer("7000.00")
        collaborators.payments.register("pay-shared", Decimal("7000.00"))

        first = await _call(market, "create", first_offer.id, CUSTOMER, "pay-shared", ADDRESS_ID)
        with pytest.raises(ConflictError) as exc_info:
            await _call(market, "create", second_offer.id, CUSTOMER, "pay-shared", ADDRESS_ID)
        assert exc_info.value.code == "PAYMENT_ALREADY_USED"

        await _call(market, "cancel", first.id, CUSTOMER, "Changed my mind")
        assert await _balance(market, CUSTOMER) == Decimal("7000.00")
        assert len(await _call(market, "list_for_user", CUSTOMER, Party.CUSTOMER)) == 1

    @pytest.mark.asyncio
    async def test_duplicate_order_number_is_a_conflict(
        self, market, collaborators, open_uow
    ) -> None:
        await market.order()
        offer = await market.accepted_offer("7000.00")
        collaborators.payments.register("pay-x", Decimal("7000.00"))

        with (
            patch.object(
                OrderRepository,
                "next_order_number",
                AsyncMock(return_value="QT-2026-00001"),
            ),
            pytest.raises(ConflictError) as exc_info,
        ):
            await _call(market, "create", offer.id, CUSTOMER, "pay-x", ADDRESS_ID)
        assert exc_info.value.code == "ORDER_CREATE_CONFLICT"
        assert str(offer.id) in exc_info.value.message

        async with open_uow() as uow:
            assert await OrderRepository(uow.session).get_by_offer_id(offer.id) is None
        retried = await _call(market, "create", offer.id, CUSTOMER, "pay-x", ADDRESS_ID)
        assert retried.order_number == "QT-2026-00002"

    @pytest.mark.asyncio
    async def test_order_numbers_widen_past_five_digits(self, market, open_uow) -> None:
        first = await market.order()
        async with open_uow() as uow:
            await uow.session.execute(
                update(Order).where(Order.id == first.id).values(order_number="QT-2026-99999")
            )

        assert (await market.order()).order_number == "QT-2026-100000"
        assert (await market.order()).order_number == "QT-2026-100001"


class TestProduction:
    @pytest.mark.asyncio
    async def test_advance_stage(self, market, collaborators) -> None:
        order = await market.order()
        order = await _call(market, "advance_stage", order.id, DESIGNER, OrderStatus.SOURCING)
        assert order.status == OrderStatus.SOURCING

        order = await _call(market, "advance_stage", order.id, DESIGNER, OrderStatus.CONSTRUCTION)
        assert order.status == OrderStatus.CONSTRUCTION
        assert collaborators.notifier.types_for(CUSTOMER).count("ORDER_UPDATE") == 2

    @pytest.mark.asyncio
    async def test_stage_must_be_a_production_stage(self, market) -> None:
        order = await market.order()
        with pytest.raises(ValidationError) as exc_info:
            await _call(market, "advance_stage", order.id, DESIGNER, OrderStatus.COMPLETED)
        assert exc_info.value.code == "INVALID_TARGET_STAGE"

    @pytest.mark.asyncio
    async def test_stage_cannot_skip(self, market) -> None:
        order = await market.order()
        with pytest.raises(InvalidStateTransitionError):
            await _call(market, "advance_stage", order.id, DESIGNER, OrderStatus.QUALITY_CHECK)

    @pytest.mark.asyncio
    async def test_customer_cannot_advance(self, market) -> None:
        order = await market.order()
        with pytest.raises(UnauthorizedError):
            await _call(market, "advance_stage", order.id, CUSTOMER, OrderStatus.SOURCING)

    @pytest.mark.asyncio
    async def test_update_steps(self, market) -> None:
        order = await market.order()
        order = await _call(
            market,
            "advance_production",
            order.id,
            DESIGNER,
            [
                StepUpdate("pattern", ProductionStepStatus.COMPLETED, notes="Graded to size"),
                StepUpdate("cutting", ProductionStepStatus.IN_PROGRESS),
            ],
        )

        steps = {s["name"]: s for s in order.production_steps}
        assert steps["pattern"]["status"] == "completed"
        assert steps["pattern"]["completedAt"] == NOW.isoformat()
        assert steps["pattern"]["notes"] == "Graded to size"
        assert steps["cutting"]["status"] == "in_progress"
        assert "completedAt" not in steps["cutting"]
        assert steps["sewing"]["status"] == "pending"
        assert order.status == OrderStatus.PENDING

        reloaded = await _call(market, "get", order.id, CUSTOMER)
        assert reloaded.production_steps == order.production_steps

    @pytest.mark.asyncio
    async def test_unknown_step(self, market) -> None:
        order = await market.order()
        with pytest.raises(ValidationError) as exc_info:
            await _call(
                market,
                "advance_production",
                order.id,
                DESIGNER,
                [StepUpdate("embroidery", ProductionStepStatus.COMPLETED)],
            )
        assert exc_info.value.code == "UNKNOWN_PRODUCTION_STEP"

    @pytest.mark.asyncio
    async def test_steps_closed_after_shipment(self, market) -> None:
        order = await market.shipped_order()
        with pytest.raises(ConflictError) as exc_info:
            await _call(
                market,
                "advance_production",
                order.id,
                DESIGNER,
                [StepUpdate("sewing", ProductionStepStatus.COMPLETED)],
            )
        assert exc_info.value.code == "ORDER_NOT_IN_PRODUCTION"


class TestFulfilment:
    @pytest.mark.asyncio
    async def test_ship(self, market, collaborators) -> None:
        order = await market.order()
        await _call(market, "advance_stage", order.id, DESIGNER, OrderStatus.SOURCING)
        order = await _call(market, "ship", order.id, DESIGNER, " DHL ", " TRACK-123456 ")

        assert order.status == OrderStatus.SHIPPED
        assert order.carrier == "DHL"
        assert order.tracking_number == "TRACK-123456"
        assert order.shipped_at == NOW
        assert "ORDER_SHIPPED" in collaborators.notifier.types_for(CUSTOMER)

    @pytest.mark.asyncio
    async def test_ship_validation(self, market) -> None:
        order = await market.order()
        with pytest.raises(ValidationError) as exc_info:
            await _call(market, "ship", order.id, DESIGNER, "DHL", "ABC12")
        assert exc_info.value.code == "INVALID_TRACKING_NUMBER"

        with pytest.raises(ValidationError) as exc_info:
            await _call(market, "ship", order.id, DESIGNER, "  ", "TRACK-123456")
        assert exc_info.value.code == "CARRIER_REQUIRED"

    @pytest.mark.asyncio
    async def test_mark_delivered_opens_window(self, market) -> None:
        order = await market.shipped_order()
        delivered_at = NOW - timedelta(days=1)
        order = await _call(market, "mark_delivered", order.id, delivered_at, CUSTOMER)

        assert order.status == OrderStatus.DELIVERED
        assert order.delivered_at == delivered_at
        assert order.confirmation_window_start == delivered_at
        assert order.auto_confirm_at == delivered_at + timedelta(days=10)
        assert order.confirmation_window_end == order.auto_confirm_at

    @pytest.mark.asyncio
    async def test_stranger_cannot_mark_delivered(self, market) -> None:
        order = await market.shipped_order()
        with pytest.raises(UnauthorizedError):
            await _call(market, "mark_delivered", order.id, None, STRANGER)

    @pytest.mark.asyncio
    async def test_deliver_before_shipment_is_invalid(self, market) -> None:
        order = await market.order()
        with pytest.raises(InvalidStateTransitionError):
            await _call(market, "mark_delivered", order.id)

    @pytest.mark.asyncio
    async def test_warn_auto_confirm_once(self, market, collaborators) -> None:
        order = await market.delivered_order()

        hours = await _call(market, "warn_auto_confirm", order.id)
        assert hours == 240
        assert "AUTO_CONFIRM_SOON" in collaborators.notifier.types_for(CUSTOMER)

        order = await _call(market, "get", order.id, CUSTOMER)
        assert order.status == OrderStatus.AWAITING_CONFIRMATION
        assert await _call(market, "warn_auto_confirm", order.id) is None


class TestSettlement:
    @pytest.mark.asyncio
    async def test_confirm_receipt_credits_designer(self, market, collaborators) -> None:
        order = await market.delivered_order("7000.00")
        order = await _call(market, "confirm_receipt", order.id, CUSTOMER, 5, "Perfect fit")

        assert order.status == OrderStatus.COMPLETED
        assert order.customer_confirmed_at == NOW
        assert order.payment_released_at == NOW
        assert order.delivery_confirmed_by == DeliveryConfirmedBy.CUSTOMER
        assert order.platform_fee == Decimal("700.00")
        assert order.payment_amount == Decimal("6300.00")
        assert order.fee_rule_applied == FeeRule.DEFAULT
        assert order.rating == 5
        assert order.review == "Perfect fit"

        assert await _balance(market, DESIGNER) == Decimal("6300.00")
        assert "PAYMENT_RELEASED" in collaborators.notifier.types_for(DESIGNER)

    @pytest.mark.asyncio
    async def test_customer_may_confirm_straight_from_shipped(self, market) -> None:
        order = await market.shipped_order()
        order = await _call(market, "confirm_receipt", order.id, CUSTOMER)
        assert order.status == OrderStatus.COMPLETED
        assert order.delivered_at == NOW

    @pytest.mark.asyncio
    async def test_second_confirmation_is_rejected(self, market) -> None:
        order = await market.delivered_order()
        await _call(market, "confirm_receipt", order.id, CUSTOMER)

        with pytest.raises(AlreadySettledError):
            await _call(market, "confirm_receipt", order.id, CUSTOMER)

        transactions = await market.call(WalletLedger, "transactions", DESIGNER)
        assert len(transactions) == 1
        assert await _balance(market, DESIGNER) == Decimal("6300.00")

    @pytest.mark.asyncio
    async def test_rating_out_of_range(self, market) -> None:
        order = await market.delivered_order()
        with pytest.raises(ValidationError) as exc_info:
            await _call(market, "confirm_receipt", order.id, CUSTOMER, 6)
        assert exc_info.value.code == "INVALID_RATING"

    @pytest.mark.asyncio
    async def test_designer_cannot_confirm(self, market) -> None:
        order = await market.delivered_order()
        with pytest.raises(UnauthorizedError):
            await _call(market, "confirm_receipt", order.id, DESIGNER)

    @pytest.mark.asyncio
    async def test_auto_confirm_after_window(self, market, clock) -> None:
        order = await market.delivered_order("7000.00")

        assert await _call(market, "auto_confirm", order.id) is None

        clock.advance(days=10)
        order = await _call(market, "auto_confirm", order.id)
        assert order.status == OrderStatus.COMPLETED
        assert order.delivery_confirmed_by == DeliveryConfirmedBy.SYSTEM
        assert order.customer_confirmed_at is None

        assert await _call(market, "auto_confirm", order.id) is None
        assert await _balance(market, DESIGNER) == Decimal("6300.00")

    @pytest.mark.asyncio
    async def test_confirm_after_auto_confirm(self, market, clock) -> None:
        order = await market.delivered_order()
        clock.advance(days=11)
        await _call(market, "auto_confirm", order.id)

        with pytest.raises(AlreadySettledError):
            await _call(market, "confirm_receipt", order.id, CUSTOMER)

    @pytest.mark.asyncio
    async def test_tier_counts_previous_completions_only(self, market) -> None:
        await market.call(FeeService, "create_tier", "Regular", 1, Decimal("0.05"))

        first = await market.delivered_order("7000.00", tracking="TRACK-0001")
        first = await _call(market, "confirm_receipt", first.id, CUSTOMER)
        assert first.fee_rule_applied == FeeRule.DEFAULT
        assert first.payment_amount == Decimal("6300.00")

        second = await market.delivered_order("7000.00", tracking="TRACK-0002")
        second = await _call(market, "confirm_receipt", second.id, CUSTOMER)
        assert second.fee_rule_applied == FeeRule.TIER
        assert second.payment_amount == Decimal("6650.00")

        assert await _balance(market, DESIGNER) == Decimal("12950.00")

    @pytest.mark.asyncio
    async def test_full_fee_skips_credit(self, market) -> None:
        await market.call(
            FeeService,
            "create_override",
            DESIGNER,
            Decimal("1"),
            NOW - timedelta(days=1),
            "admin-1",
        )
        order = await market.delivered_order()
        order = await _call(market, "confirm_receipt", order.id, CUSTOMER)

        assert order.payment_amount == Decimal("0.00")
        assert order.fee_rule_applied == FeeRule.OVERRIDE
        assert await _balance(market, DESIGNER) == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_notifier_failure_does_not_roll_back(self, market, collaborators) -> None:
        order = await market.delivered_order()
        with patch.object(
            collaborators.notifier, "notify", AsyncMock(side_effect=RuntimeError("smtp down"))
        ):
            await _call(market, "confirm_receipt", order.id, CUSTOMER)

        order = await _call(market, "get", order.id, CUSTOMER)
        assert order.status == OrderStatus.COMPLETED
        assert await _balance(market, DESIGNER) == Decimal("6300.00")


class TestDisputes:
    @pytest.mark.asyncio
    async def test_open_and_resolve_for_customer(self, market, collaborators) -> None:
        order = await market.delivered_order("7000.00")
        order = await _call(market, "open_dispute", order.id, CUSTOMER, "Seam split on first wear")
        assert order.status == OrderStatus.DISPUTED
        assert order.dispute_opened_at == NOW
        assert "DISPUTE_OPENED" in collaborators.notifier.types_for(DESIGNER)

        order = await _call(
            market,
            "resolve_dispute",
            order.id,
            DisputeResolution.CUSTOMER_FAVOURED,
            "admin-1",
            "Photos confirm defect",
        )
        assert order.status == OrderStatus.REFUNDED
        assert order.dispute_resolution == DisputeResolution.CUSTOMER_FAVOURED
        assert order.payment_released_at is None

        assert await _balance(market, CUSTOMER) == Decimal("7000.00")
        assert await _balance(market, DESIGNER) == Decimal("0.00")
        assert "REFUND_ISSUED" in collaborators.notifier.types_for(CUSTOMER)

    @pytest.mark.asyncio
    async def test_resolve_for_designer_settles(self, market) -> None:
        order = await market.shipped_order("7000.00")
        await _call(market, "open_dispute", order.id, CUSTOMER, "Has not arrived yet")
        order = await _call(
            market, "resolve_dispute", order.id, DisputeResolution.DESIGNER_FAVOURED, "admin-1"
        )
        assert order.status == OrderStatus.COMPLETED
        assert order.payment_released_at == NOW
        assert order.delivery_confirmed_by is None
        assert await _balance(market, DESIGNER) == Decimal("6300.00")

    @pytest.mark.asyncio
    async def test_reason_too_short(self, market) -> None:
        order = await market.delivered_order()
        with pytest.raises(ValidationError) as exc_info:
            await _call(market, "open_dispute", order.id, CUSTOMER, "  bad   ")
        assert exc_info.value.code == "REASON_TOO_SHORT"

    @pytest.mark.asyncio
    async def test_buyer_protection_expired(self, market, clock) -> None:
        order = await market.shipped_order()
        clock.advance(days=61)
        with pytest.raises(BuyerProtectionExpiredError):
            await _call(market, "open_dispute", order.id, CUSTOMER, "Never arrived at all")

    @pytest.mark.asyncio
    async def test_no_dispute_after_settlement(self, market) -> None:
        order = await market.delivered_order()
        await _call(market, "confirm_receipt", order.id, CUSTOMER)
        with pytest.raises(AlreadySettledError):
            await _call(market, "open_dispute", order.id, CUSTOMER, "Changed my mind later")

    @pytest.mark.asyncio
    async def test_resolve_requires_dispute(self, market) -> None:
        order = await market.delivered_order()
        with pytest.raises(InvalidStateTransitionError):
            await _call(
                market, "resolve_dispute", order.id, DisputeResolution.CUSTOMER_FAVOURED, "admin"
            )


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_refunds_customer(self, market, collaborators) -> None:
        order = await market.order("7000.00")
        order = await _call(market, "cancel", order.id, DESIGNER, "Fabric discontinued")

        assert order.status == OrderStatus.CANCELLED
        assert order.cancelled_at == NOW
        assert order.cancellation_reason == "Fabric discontinued"
        assert await _balance(market, CUSTOMER) == Decimal("7000.00")
        assert "ORDER_CANCELLED" in collaborators.notifier.types_for(CUSTOMER)
        assert "REFUND_ISSUED" in collaborators.notifier.types_for(CUSTOMER)

    @pytest.mark.asyncio
    async def test_cancel_needs_reason(self, market) -> None:
        order = await market.order()
        with pytest.raises(ValidationError) as exc_info:
            await _call(market, "cancel", order.id, CUSTOMER, "   ")
        assert exc_info.value.code == "REASON_REQUIRED"

    @pytest.mark.asyncio
    async def test_cannot_cancel_after_shipment(self, market) -> None:
        order = await market.shipped_order()
        with pytest.raises(InvalidStateTransitionError):
            await _call(market, "cancel", order.id, CUSTOMER, "Too slow")
        assert await _balance(market, CUSTOMER) == Decimal("0.00")


class TestReads:
    @pytest.mark.asyncio
    async def test_stranger_sees_not_found(self, market) -> None:
        order = await market.order()
        with pytest.raises(OrderNotFoundError):
            await _call(market, "get", order.id, STRANGER)

    @pytest.mark.asyncio
    async def test_list_by_role(self, market) -> None:
        await market.order()
        assert len(await _call(market, "list_for_user", DESIGNER, Party.DESIGNER)) == 1
        assert await _call(market, "list_for_user", DESIGNER, Party.CUSTOMER) == []

    @pytest.mark.asyncio
    async def test_allowed_events(self, market) -> None:
        order = await market.shipped_order()
        assert set(OrderService.allowed_events(order)) == {
            "mark_delivered",
            "confirm_receipt",
            "open_dispute",
        }

    @pytest.mark.asyncio
    async def test_audit_trail(self, market) -> None:
        order = await market.delivered_order()
        await _call(market, "confirm_receipt", order.id, CUSTOMER)

        events = await _call(market, "events", order.id, CUSTOMER)
        assert [e.action for e in events] == ["created", "shipped", "delivered", "completed"]
        assert events[-1].payload["applied_rule"] == "DEFAULT"
        assert events[-1].payload["designer_receives"] == "6300.00"

        offer_events = await market.call(OfferService, "events", order.offer_id, CUSTOMER)
        assert offer_events[-1].action == "accepted"

    @pytest.mark.asyncio
    async def test_audit_trail_uses_service_clock(self, market, clock) -> None:
        order = await market.order()
        shipped_at = clock.advance(hours=5)
        await _call(market, "ship", order.id, DESIGNER, "DHL", "TRACK-0001")
        delivered_at = clock.advance(days=2)
        await _call(market, "mark_delivered", order.id)

        events = await _call(market, "events", order.id, CUSTOMER)
        assert [e.action for e in events] == ["created", "shipped", "delivered"]
        assert [e.created_at for e in events] == [NOW, shipped_at, delivered_at]
        assert [e.sequence for e in events] == [1, 2, 3]
