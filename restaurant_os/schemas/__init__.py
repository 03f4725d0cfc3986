"""
Schemas module
"""

from restaurant_os.schemas.orders import (
    OrderCreate, OrderItemCreate, OrderStatusUpdate, OrderRead, OrderResponse,
    OrderHistoryResponse, OrderStatusHistoryRead, CustomerContact, DeliveryAddressInput,
    CustomizationSelection
)
from restaurant_os.schemas.payments import (
    PaymentCreateRequest, ChargeRead, ChargeResponse, StripeConfirmRequest,
    PayPalCaptureRequest, ReconcileRead, ReconcileResponse, WebhookAck, SweepRead, SweepResponse
)

__all__ = [
    "OrderCreate",
    "OrderItemCreate",
    "OrderStatusUpdate",
    "OrderRead",
    "OrderResponse",
    "OrderHistoryResponse",
    "OrderStatusHistoryRead",
    "CustomerContact",
    "DeliveryAddressInput",
    "CustomizationSelection",
    "PaymentCreateRequest",
    "ChargeRead",
    "ChargeResponse",
    "StripeConfirmRequest",
    "PayPalCaptureRequest",
    "ReconcileRead",
    "ReconcileResponse",
    "WebhookAck",
    "SweepRead",
    "SweepResponse",
]
