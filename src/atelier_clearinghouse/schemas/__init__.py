"""Pydantic API schemas."""

from atelier_clearinghouse.schemas.common import (
    ErrorResponse,
    HealthResponse,
    LifecycleEventResponse,
)
from atelier_clearinghouse.schemas.fees import (
    CreateOverrideRequest,
    CreatePromotionRequest,
    CreateTierRequest,
    FeeOverrideResponse,
    FeePromotionResponse,
    FeeQuoteResponse,
    FeeTierResponse,
    LedgerReplayResponse,
    PayoutRequest,
    PayoutResponse,
    WalletBalanceResponse,
    WalletTransactionResponse,
)
from atelier_clearinghouse.schemas.offer import (
    CounterOfferRequest,
    CreateOfferRequest,
    OfferResponse,
    RejectOfferRequest,
)
from atelier_clearinghouse.schemas.order import (
    AdvanceStageRequest,
    CancelOrderRequest,
    ConfirmReceiptRequest,
    CreateOrderRequest,
    OpenDisputeRequest,
    OrderResponse,
    OrderStatusResponse,
    ProductionUpdateRequest,
    ResolveDisputeRequest,
    ShipOrderRequest,
    StepUpdateRequest,
)

__all__ = [
    "AdvanceStageRequest",
    "CancelOrderRequest",
    "ConfirmReceiptRequest",
    "CounterOfferRequest",
    "CreateOfferRequest",
    "CreateOrderRequest",
    "CreateOverrideRequest",
    "CreatePromotionRequest",
    "CreateTierRequest",
    "ErrorResponse",
    "FeeOverrideResponse",
    "FeePromotionResponse",
    "FeeQuoteResponse",
    "FeeTierResponse",
    "HealthResponse",
    "LedgerReplayResponse",
    "LifecycleEventResponse",
    "OfferResponse",
    "OpenDisputeRequest",
    "OrderResponse",
    "OrderStatusResponse",
    "PayoutRequest",
    "PayoutResponse",
    "ProductionUpdateRequest",
    "RejectOfferRequest",
    "ResolveDisputeRequest",
    "ShipOrderRequest",
    "StepUpdateRequest",
    "WalletBalanceResponse",
    "WalletTransactionResponse",
]
