"""Tests for the WalletLedger."""

from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy import update

from atelier_clearinghouse.domain.exceptions import InsufficientBalanceError, ValidationError
from atelier_clearinghouse.infrastructure.database.orm_models import WalletTransaction
from atelier_clearinghouse.services.wallet_service import WalletLedger

USER = "des-iris"


async def _call(market, method, *args, **kwargs):
    return await market.call(WalletLedger, method, *args, **kwargs)


class TestCreditAndDebit:
    @pytest.mark.asyncio
    async def test_first_credit_opens_account(self, market) -> None:
        assert await _call(market, "balance", USER) == Decimal("0.00")

        tx = await _call(market, "credit", USER, Decimal("150.00"), "Payment")
        assert tx.sequence == 1
        assert tx.type == "CREDIT"
        assert tx.balance_before == Decimal("0.00")
        assert tx.balance_after == Decimal("150.00")
        assert await _call(market, "balance", USER) == Decimal("150.00")

    @pytest.mark.asyncio
    async def test_debit_chains_balances(self, market) -> None:
        await _call(market, "credit", USER, Decimal("150.00"), "Payment")
        tx = await _call(market, "debit", USER, Decimal("40.50"), "Payout")

        assert tx.sequence == 2
        assert tx.balance_before == Decimal("150.00")
        assert tx.balance_after == Decimal("109.50")
        assert await _call(market, "balance", USER) == Decimal("109.50")

    @pytest.mark.asyncio
    async def test_amounts_are_quantized_to_cents(self, market) -> None:
        tx = await _call(market, "credit", USER, Decimal("10.005"), "Rounding")
        assert tx.amount == Decimal("10.01")

    @pytest.mark.asyncio
    async def test_insufficient_balance(self, market) -> None:
        await _call(market, "credit", USER, Decimal("10.00"), "Payment")
        with pytest.raises(InsufficientBalanceError) as exc_info:
            await _call(market, "debit", USER, Decimal("10.01"), "Payout")
        assert exc_info.value.available == "10.00"
        assert await _call(market, "balance", USER) == Decimal("10.00")

    @pytest.mark.asyncio
    async def test_debit_without_account(self, market) -> None:
        with pytest.raises(InsufficientBalanceError):
            await _call(market, "debit", "nobody", Decimal("1.00"), "Payout")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["0", "-5.00"])
    async def test_non_positive_amount(self, market, amount: str) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await _call(market, "credit", USER, Decimal(amount), "Nothing")
        assert exc_info.value.code == "INVALID_AMOUNT"

    @pytest.mark.asyncio
    async def test_each_mutation_publishes_wallet_event(self, market, collaborators) -> None:
        await _call(market, "credit", USER, Decimal("5.00"), "Payment")
        recipients, envelope = collaborators.publisher.published[-1]
        assert recipients == [USER]
        assert envelope.action == "credited"
        assert envelope.payload["balance"] == "5.00"


class TestReads:
    @pytest.mark.asyncio
    async def test_transactions_newest_first(self, market) -> None:
        for amount in ("1.00", "2.00", "3.00"):
            await _call(market, "credit", USER, Decimal(amount), "Payment")

        txs = await _call(market, "transactions", USER)
        assert [tx.sequence for tx in txs] == [3, 2, 1]

        txs = await _call(market, "transactions", USER, 2)
        assert [tx.amount for tx in txs] == [Decimal("3.00"), Decimal("2.00")]

    @pytest.mark.asyncio
    async def test_sequences_are_per_user(self, market) -> None:
        await _call(market, "credit", USER, Decimal("1.00"), "Payment")
        tx = await _call(market, "credit", "cust-ada", Decimal("1.00"), "Refund")
        assert tx.sequence == 1


class TestReplay:
    @pytest.mark.asyncio
    async def test_consistent_ledger(self, market) -> None:
        await _call(market, "credit", USER, Decimal("100.00"), "Payment")
        await _call(market, "debit", USER, Decimal("30.00"), "Payout")

        replay = await _call(market, "replay", USER)
        assert replay.consistent
        assert replay.transaction_count == 2
        assert replay.replayed_balance == Decimal("70.00")

    @pytest.mark.asyncio
    async def test_empty_ledger_is_consistent(self, market) -> None:
        replay = await _call(market, "replay", "nobody")
        assert replay.consistent
        assert replay.transaction_count == 0

    @pytest.mark.asyncio
    async def test_tampered_row_is_detected(self, market, session_factory) -> None:
        await _call(market, "credit", USER, Decimal("100.00"), "Payment")
        await _call(market, "credit", USER, Decimal("50.00"), "Payment")

        async with session_factory() as session:
            await session.execute(
                update(WalletTransaction)
                .where(WalletTransaction.user_id == USER, WalletTransaction.sequence == 2)
                .values(amount=Decimal("55.00"))
            )
            await session.commit()

        replay = await _call(market, "replay", USER)
        assert not replay.consistent
        assert replay.broken_at_sequence == 2
        assert replay.replayed_balance == Decimal("100.00")
