"""Payout Service - withdrawals from a wallet to a bank account.

A withdrawal runs in two transactions with the provider call between them,
so no row lock is held while the provider is working:

    1. debit ``amount + fee`` and record the payout as PROCESSING
    2. transfer ``amount`` through the PayoutGateway
    3. record the outcome; a refused or failed transfer is refunded in full
       and marked FAILED before the error reaches the caller

A payout left PROCESSING after step 3 is still in flight at the provider.
"""

from __future__ import annotations

import re
import uuid
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

from atelier_clearinghouse.domain.collaborators import PayoutInstruction, PayoutResult
from atelier_clearinghouse.domain.enums import EventDomain, NotificationType, PayoutStatus
from atelier_clearinghouse.domain.events import EventEnvelope, Notification
from atelier_clearinghouse.domain.exceptions import (
    ExternalDependencyError,
    PayoutNotFoundError,
    ValidationError,
)
from atelier_clearinghouse.domain.fees import CENT
from atelier_clearinghouse.infrastructure.database.orm_models import Payout
from atelier_clearinghouse.infrastructure.database.repositories import PayoutRepository
from atelier_clearinghouse.logging_config import get_logger
from atelier_clearinghouse.services.unit_of_work import guarded_call
from atelier_clearinghouse.services.wallet_service import WalletLedger

if TYPE_CHECKING:
    from datetime import datetime

    from atelier_clearinghouse.services.unit_of_work import UnitOfWork, UowFactory

logger = get_logger(__name__)

ACCOUNT_NUMBER = re.compile(r"^\d{10}$")


def transaction_reference(now: datetime) -> str:
    """``PAYOUT-<epoch millis>-<8 hex>``, upper-cased."""
    millis = int(now.timestamp() * 1000)
    return f"PAYOUT-{millis}-{uuid.uuid4().hex[:8]}".upper()


class PayoutService:
    """Requests and reads wallet withdrawals."""

    def __init__(self, open_uow: UowFactory) -> None:
        self._open_uow = open_uow

    async def request(
        self,
        user_id: str,
        amount: Decimal,
        bank_code: str,
        account_number: str,
        account_name: str,
        bank_name: str | None = None,
    ) -> Payout:
        """Withdraw ``amount`` to a bank account, charging the payout fee on top.

        Raises:
            ValidationError: amount below the minimum, or a malformed account.
            InsufficientBalanceError: the wallet cannot cover amount plus fee.
            ExternalDependencyError: the provider failed (``PAYOUT_UNAVAILABLE``)
                or refused the transfer (``PAYOUT_FAILED``); the wallet has
                been refunded.
        """
        amount = amount.quantize(CENT, rounding=ROUND_HALF_UP)
        if not ACCOUNT_NUMBER.match(account_number):
            raise ValidationError(
                "Account number must be 10 digits", code="INVALID_ACCOUNT_NUMBER"
            )
        if not bank_code.strip() or not account_name.strip():
            raise ValidationError(
                "Bank code and account name are required", code="BANK_DETAILS_REQUIRED"
            )

        async with self._open_uow() as uow:
            settings = uow.settings
            if amount < settings.min_withdrawal_amount:
                raise ValidationError(
                    f"Minimum withdrawal amount is {settings.min_withdrawal_amount}",
                    code="BELOW_MIN_WITHDRAWAL",
                )
            fee = settings.payout_fee
            now = uow.now()
            reference = transaction_reference(now)
            narration = f"Withdrawal to {bank_name or bank_code}"

            await WalletLedger(uow).debit(user_id, amount + fee, f"Withdrawal {reference}")
            payout = await PayoutRepository(uow.session).create(
                Payout(
                    user_id=user_id,
                    amount=amount,
                    fee=fee,
                    net_amount=amount,
                    status=PayoutStatus.PROCESSING.value,
                    recipient_bank=bank_code,
                    recipient_account=account_number,
                    recipient_name=account_name,
                    narration=narration,
                    transaction_reference=reference,
                    created_at=now,
                )
            )
            payout_id = payout.id
            gateway = uow.collaborators.payouts
            await self._emit(uow, payout, "requested", old_status=None)
            instruction = PayoutInstruction(
                reference=reference,
                amount=amount,
                currency=settings.payout_currency,
                bank_code=bank_code,
                account_number=account_number,
                account_name=account_name,
                narration=narration,
            )

        logger.info(
            "payout.requested",
            payout_id=str(payout_id),
            user_id=user_id,
            reference=reference,
            amount=str(amount),
            fee=str(fee),
        )

        failure: ExternalDependencyError | None = None
        try:
            result = await guarded_call("payout", gateway.transfer(instruction))
        except ExternalDependencyError as exc:
            failure = exc
            result = PayoutResult(accepted=False, message=exc.message)
        else:
            if not result.accepted:
                failure = ExternalDependencyError(
                    f"Payout {reference} was refused: {result.message or 'no reason given'}",
                    code="PAYOUT_FAILED",
                )

        async with self._open_uow() as uow:
            payout = await PayoutRepository(uow.session).get_by_id(payout_id, for_update=True)
            if failure is None:
                await self._record_transfer(uow, payout, result)
            else:
                await self._refund(uow, payout, result.message)

        if failure is not None:
            raise failure
        return payout

    async def list_for_user(self, user_id: str, limit: int = 50) -> list[Payout]:
        async with self._open_uow() as uow:
            return await PayoutRepository(uow.session).list_for_user(user_id, limit)

    async def get(self, payout_id: uuid.UUID, user_id: str) -> Payout:
        """Get one of the caller's payouts or raise PayoutNotFoundError."""
        async with self._open_uow() as uow:
            payout = await PayoutRepository(uow.session).get_by_id(payout_id)
        if payout is None or payout.user_id != user_id:
            raise PayoutNotFoundError(str(payout_id))
        return payout

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _record_transfer(
        self, uow: UnitOfWork, payout: Payout, result: PayoutResult
    ) -> None:
        payout.provider_reference = result.provider_reference
        payout.response_message = result.message
        if not result.completed:
            await uow.flush("payout")
            logger.info(
                "payout.in_flight",
                payout_id=str(payout.id),
                reference=payout.transaction_reference,
            )
            return

        payout.status = PayoutStatus.SUCCESSFUL.value
        payout.completed_at = uow.now()
        await uow.flush("payout")
        await self._emit(
            uow,
            payout,
            "completed",
            old_status=PayoutStatus.PROCESSING.value,
            notify=Notification(
                user_id=payout.user_id,
                type=NotificationType.PAYOUT_COMPLETED,
                title="Withdrawal sent",
                message=f"{payout.net_amount} is on its way to account "
                f"{payout.recipient_account}",
                data=self._data(payout),
            ),
        )
        logger.info(
            "payout.completed",
            payout_id=str(payout.id),
            reference=payout.transaction_reference,
            provider_reference=payout.provider_reference,
        )

    async def _refund(self, uow: UnitOfWork, payout: Payout, reason: str | None) -> None:
        total = payout.amount + payout.fee
        await WalletLedger(uow).credit(
            payout.user_id, total, f"Refund for failed withdrawal {payout.transaction_reference}"
        )
        payout.status = PayoutStatus.FAILED.value
        payout.failed_at = uow.now()
        payout.response_message = reason
        await uow.flush("payout")
        await self._emit(
            uow,
            payout,
            "failed",
            old_status=PayoutStatus.PROCESSING.value,
            notify=Notification(
                user_id=payout.user_id,
                type=NotificationType.PAYOUT_FAILED,
                title="Withdrawal failed",
                message=f"Your withdrawal of {payout.amount} failed and {total} was refunded",
                data=self._data(payout),
            ),
        )
        logger.warning(
            "payout.failed_refunded",
            payout_id=str(payout.id),
            reference=payout.transaction_reference,
            refunded=str(total),
            reason=reason,
        )

    async def _emit(
        self,
        uow: UnitOfWork,
        payout: Payout,
        action: str,
        *,
        old_status: str | None,
        notify: Notification | None = None,
    ) -> None:
        await uow.emit(
            EventEnvelope(
                domain=EventDomain.PAYOUT,
                action=action,
                entity_id=str(payout.id),
                actor_user_id=payout.user_id if action == "requested" else "SYSTEM",
                payload=self._data(payout),
            ),
            recipients=[payout.user_id],
            notifications=[notify] if notify else [],
            old_status=old_status,
            new_status=payout.status,
        )

    @staticmethod
    def _data(payout: Payout) -> dict[str, str]:
        return {
            "payout_id": str(payout.id),
            "reference": payout.transaction_reference,
            "amount": str(payout.amount),
            "fee": str(payout.fee),
            "status": payout.status,
        }
