"""Wallet routes. Balances only change through the ledger: the one write here is
a withdrawal, which the payout service debits and, on failure, refunds.

Routes:
    GET    /api/v1/wallet                       - Caller's balance
    GET    /api/v1/wallet/transactions          - Caller's recent transactions, newest first
    GET    /api/v1/wallet/replay                - Recompute the balance from the log
    POST   /api/v1/wallet/payouts               - Withdraw to a bank account
    GET    /api/v1/wallet/payouts               - Caller's payouts, newest first
    GET    /api/v1/wallet/payouts/{payout_id}   - One payout
"""

from __future__ import annotations

import uuid  # noqa: TC003 - FastAPI resolves annotations at runtime

from fastapi import APIRouter, Depends, Query

from atelier_clearinghouse.api.deps import UowFactory, get_current_user, get_uow_factory
from atelier_clearinghouse.schemas.fees import (
    LedgerReplayResponse,
    PayoutRequest,
    PayoutResponse,
    WalletBalanceResponse,
    WalletTransactionResponse,
)
from atelier_clearinghouse.services.payout_service import PayoutService
from atelier_clearinghouse.services.wallet_service import WalletLedger

router = APIRouter(prefix="/api/v1/wallet", tags=["Wallet"])


@router.get("", response_model=WalletBalanceResponse, summary="Get my balance")
async def get_balance(
    user_id: str = Depends(get_current_user),
    open_uow: UowFactory = Depends(get_uow_factory),
) -> WalletBalanceResponse:
    async with open_uow() as uow:
        balance = await WalletLedger(uow).balance(user_id)
    return WalletBalanceResponse(user_id=user_id, balance=balance)


@router.get(
    "/transactions",
    response_model=list[WalletTransactionResponse],
    summary="List my wallet transactions",
)
async def list_transactions(
    limit: int = Query(default=50, ge=1, le=500),
    user_id: str = Depends(get_current_user),
    open_uow: UowFactory = Depends(get_uow_factory),
) -> list[WalletTransactionResponse]:
    async with open_uow() as uow:
        transactions = await WalletLedger(uow).transactions(user_id, limit=limit)
    return [WalletTransactionResponse.model_validate(t) for t in transactions]


@router.get("/replay", response_model=LedgerReplayResponse, summary="Verify my ledger")
async def replay_ledger(
    user_id: str = Depends(get_current_user),
    open_uow: UowFactory = Depends(get_uow_factory),
) -> LedgerReplayResponse:
    async with open_uow() as uow:
        replay = await WalletLedger(uow).replay(user_id)
    return LedgerReplayResponse.model_validate(replay)


@router.post(
    "/payouts",
    response_model=PayoutResponse,
    status_code=201,
    summary="Withdraw to a bank account",
)
async def request_payout(
    request: PayoutRequest,
    user_id: str = Depends(get_current_user),
    open_uow: UowFactory = Depends(get_uow_factory),
) -> PayoutResponse:
    payout = await PayoutService(open_uow).request(
        user_id,
        request.amount,
        bank_code=request.bank_code,
        account_number=request.account_number,
        account_name=request.account_name,
        bank_name=request.bank_name,
    )
    return PayoutResponse.model_validate(payout)


@router.get("/payouts", response_model=list[PayoutResponse], summary="List my payouts")
async def list_payouts(
    limit: int = Query(default=50, ge=1, le=500),
    user_id: str = Depends(get_current_user),
    open_uow: UowFactory = Depends(get_uow_factory),
) -> list[PayoutResponse]:
    payouts = await PayoutService(open_uow).list_for_user(user_id, limit=limit)
    return [PayoutResponse.model_validate(p) for p in payouts]


@router.get("/payouts/{payout_id}", response_model=PayoutResponse, summary="Get a payout")
async def get_payout(
    payout_id: uuid.UUID,
    user_id: str = Depends(get_current_user),
    open_uow: UowFactory = Depends(get_uow_factory),
) -> PayoutResponse:
    return PayoutResponse.model_validate(await PayoutService(open_uow).get(payout_id, user_id))
