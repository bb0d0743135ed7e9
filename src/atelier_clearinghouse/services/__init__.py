"""Application services - use case orchestration."""

from atelier_clearinghouse.services.fee_service import FeeService
from atelier_clearinghouse.services.offer_service import OfferService
from atelier_clearinghouse.services.order_service import OrderService, StepUpdate
from atelier_clearinghouse.services.payout_service import PayoutService
from atelier_clearinghouse.services.unit_of_work import UnitOfWork, unit_of_work
from atelier_clearinghouse.services.wallet_service import LedgerReplay, WalletLedger

__all__ = [
    "FeeService",
    "LedgerReplay",
    "OfferService",
    "OrderService",
    "PayoutService",
    "StepUpdate",
    "UnitOfWork",
    "WalletLedger",
    "unit_of_work",
]
