"""Wallet Ledger - the only writer of wallet balances.

Every balance change is a pair of writes made in the caller's transaction:
the cached WalletAccount balance and an appended WalletTransaction row that
records balance_before/balance_after. The account row is read FOR UPDATE and
carries a version column, so two concurrent mutations of the same wallet
serialize instead of losing an update.

Invariant (checked by replay()):
    balance_after(n)  == balance_before(n) + sign(type) * amount(n)
    balance_before(n+1) == balance_after(n)
    cached balance    == balance_after(last)
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

from atelier_clearinghouse.domain.enums import EventDomain, TransactionType
from atelier_clearinghouse.domain.events import EventEnvelope
from atelier_clearinghouse.domain.exceptions import InsufficientBalanceError, ValidationError
from atelier_clearinghouse.domain.fees import CENT
from atelier_clearinghouse.infrastructure.database.orm_models import (
    WalletAccount,
    WalletTransaction,
)
from atelier_clearinghouse.infrastructure.database.repositories import WalletRepository
from atelier_clearinghouse.logging_config import get_logger

if TYPE_CHECKING:
    import uuid

    from atelier_clearinghouse.services.unit_of_work import UnitOfWork

logger = get_logger(__name__)

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class LedgerReplay:
    """Result of recomputing a wallet from its transaction log."""

    user_id: str
    cached_balance: Decimal
    replayed_balance: Decimal
    transaction_count: int
    broken_at_sequence: int | None = None

    @property
    def consistent(self) -> bool:
        return self.broken_at_sequence is None and self.cached_balance == self.replayed_balance


class WalletLedger:
    """Credits, debits and read queries for user wallets."""

    def __init__(self, uow: UnitOfWork) -> None:
        self._uow = uow
        self._repo = WalletRepository(uow.session)

    async def credit(
        self,
        user_id: str,
        amount: Decimal,
        description: str,
        order_id: uuid.UUID | None = None,
    ) -> WalletTransaction:
        """Add ``amount`` to the user's wallet, opening the account on first credit."""
        amount = self._check_amount(amount)
        account = await self._repo.get_account(user_id, for_update=True)
        if account is None:
            account = await self._repo.create_account(WalletAccount(user_id=user_id, balance=ZERO))
        return await self._apply(account, TransactionType.CREDIT, amount, description, order_id)

    async def debit(
        self,
        user_id: str,
        amount: Decimal,
        description: str,
        order_id: uuid.UUID | None = None,
    ) -> WalletTransaction:
        """Take ``amount`` from the user's wallet; never lets the balance go negative."""
        amount = self._check_amount(amount)
        account = await self._repo.get_account(user_id, for_update=True)
        available = account.balance if account is not None else ZERO
        if account is None or amount > available:
            logger.warning(
                "wallet.insufficient_balance",
                user_id=user_id,
                required=str(amount),
                available=str(available),
            )
            raise InsufficientBalanceError(str(amount), str(available))
        return await self._apply(account, TransactionType.DEBIT, amount, description, order_id)

    async def balance(self, user_id: str) -> Decimal:
        account = await self._repo.get_account(user_id)
        return account.balance if account is not None else ZERO

    async def transactions(self, user_id: str, limit: int = 50) -> list[WalletTransaction]:
        """The user's most recent transactions, newest first."""
        return await self._repo.recent(user_id, limit)

    async def replay(self, user_id: str) -> LedgerReplay:
        """Recompute the balance from the log and verify the before/after chain."""
        history = await self._repo.history(user_id)
        cached = await self.balance(user_id)
        running = ZERO
        broken_at = None
        for tx in history:
            sign = 1 if tx.type == TransactionType.CREDIT.value else -1
            if tx.balance_before != running or tx.balance_after != running + sign * tx.amount:
                broken_at = tx.sequence
                break
            running = tx.balance_after

        replay = LedgerReplay(
            user_id=user_id,
            cached_balance=cached,
            replayed_balance=running,
            transaction_count=len(history),
            broken_at_sequence=broken_at,
        )
        if not replay.consistent:
            logger.error(
                "wallet.replay_mismatch",
                user_id=user_id,
                cached=str(cached),
                replayed=str(running),
                broken_at=broken_at,
            )
        return replay

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _check_amount(amount: Decimal) -> Decimal:
        if amount <= 0:
            raise ValidationError(
                f"Wallet amount must be positive, got {amount}", code="INVALID_AMOUNT"
            )
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)

    async def _apply(
        self,
        account: WalletAccount,
        tx_type: TransactionType,
        amount: Decimal,
        description: str,
        order_id: uuid.UUID | None,
    ) -> WalletTransaction:
        before = account.balance
        after = before + amount if tx_type is TransactionType.CREDIT else before - amount
        account.balance = after
        await self._uow.flush("wallet")

        sequence = await self._repo.last_sequence(account.user_id) + 1
        tx = await self._repo.append(
            WalletTransaction(
                user_id=account.user_id,
                sequence=sequence,
                type=tx_type.value,
                amount=amount,
                balance_before=before,
                balance_after=after,
                description=description,
                order_id=order_id,
                created_at=self._uow.now(),
            )
        )

        action = "credited" if tx_type is TransactionType.CREDIT else "debited"
        await self._uow.emit(
            EventEnvelope(
                domain=EventDomain.WALLET,
                action=action,
                entity_id=account.user_id,
                actor_user_id="SYSTEM",
                payload={
                    "amount": str(amount),
                    "balance": str(after),
                    "order_id": str(order_id) if order_id else None,
                },
            ),
            recipients=[account.user_id],
        )
        logger.info(
            f"wallet.{action}",
            user_id=account.user_id,
            amount=str(amount),
            balance_before=str(before),
            balance_after=str(after),
            order_id=str(order_id) if order_id else None,
        )
        return tx
