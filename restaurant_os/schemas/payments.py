"""
Request and response schemas for payments, webhooks and the cleanup job
"""

from sqlmodel import SQLModel, Field
from decimal import Decimal
from typing import Optional
import uuid

from restaurant_os.models.order import OrderStatus, PaymentStatus


class PaymentCreateRequest(SQLModel):
    order_id: uuid.UUID


class ChargeRead(SQLModel):
    order_id: uuid.UUID
    provider: str
    amount: Decimal
    currency: str
    external_id: Optional[str] = None
    client_secret: Optional[str] = None
    approve_url: Optional[str] = None
    status: Optional[str] = None


class ChargeResponse(SQLModel):
    success: bool = True
    data: ChargeRead
    is_development_mode: bool = False
    message: Optional[str] = None


class StripeConfirmRequest(SQLModel):
    order_id: uuid.UUID
    payment_intent_id: str = Field(min_length=1, max_length=255)


class PayPalCaptureRequest(SQLModel):
    order_id: uuid.UUID
    paypal_order_id: str = Field(min_length=1, max_length=255)


class ReconcileRead(SQLModel):
    outcome: str
    order_id: Optional[uuid.UUID] = None
    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None


class ReconcileResponse(SQLModel):
    success: bool = True
    data: ReconcileRead


class WebhookAck(SQLModel):
    received: bool = True


class SweepRead(SQLModel):
    scanned: int
    cancelled: int
    skipped: int
    failed: int


class SweepResponse(SQLModel):
    success: bool = True
    data: SweepRead
