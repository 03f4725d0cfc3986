"""
Request and response schemas for orders
"""

from sqlmodel import SQLModel, Field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
import uuid

from restaurant_os.models.order import OrderStatus, OrderType, PaymentMethod, PaymentStatus


class CustomizationSelection(SQLModel):
    """Chosen option; its price comes from the menu catalog"""
    option_id: uuid.UUID


class OrderItemCreate(SQLModel):
    menu_item_id: uuid.UUID
    quantity: int = Field(default=1, ge=1)
    customizations: List[CustomizationSelection] = Field(default_factory=list)
    special_instructions: Optional[str] = Field(default=None, max_length=1000)


class DeliveryAddressInput(SQLModel):
    street: Optional[str] = Field(default=None, max_length=255)
    city: Optional[str] = Field(default=None, max_length=100)
    state: Optional[str] = Field(default=None, max_length=100)
    zip_code: Optional[str] = Field(default=None, max_length=20)
    country: str = Field(default="US", max_length=2)


class CustomerContact(SQLModel):
    """Guest details, used when staff place an order on a customer's behalf"""
    email: str = Field(min_length=3, max_length=255)
    name: str = Field(min_length=1, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=50)


class OrderCreate(SQLModel):
    restaurant_id: uuid.UUID
    order_type: OrderType
    payment_method: PaymentMethod
    items: List[OrderItemCreate]

    table_number: Optional[str] = Field(default=None, max_length=20)
    pickup_time: Optional[datetime] = None
    delivery_address: Optional[DeliveryAddressInput] = None
    phone: Optional[str] = Field(default=None, max_length=50)
    special_instructions: Optional[str] = Field(default=None, max_length=1000)

    tip_amount: Decimal = Field(default=Decimal("0.00"), ge=0, max_digits=10, decimal_places=2)
    promo_code: Optional[str] = Field(default=None, max_length=50)
    customer: Optional[CustomerContact] = None

    # Display hint from the cart, never used for pricing
    client_total: Optional[Decimal] = None


class OrderStatusUpdate(SQLModel):
    status: OrderStatus
    note: Optional[str] = Field(default=None, max_length=500)


class OrderItemRead(SQLModel):
    id: uuid.UUID
    menu_item_id: uuid.UUID
    name: str
    price: Decimal
    quantity: int
    line_total: Decimal
    customizations: Optional[List[dict]] = None
    special_instructions: Optional[str] = None


class OrderStatusHistoryRead(SQLModel):
    id: int
    status: OrderStatus
    note: Optional[str] = None
    created_by: str
    created_at: datetime


class OrderRead(SQLModel):
    id: uuid.UUID
    order_number: str
    restaurant_id: uuid.UUID
    customer_id: uuid.UUID
    order_type: OrderType
    status: OrderStatus
    table_number: Optional[str] = None
    pickup_time: Optional[datetime] = None
    delivery_address_id: Optional[uuid.UUID] = None
    contact_phone: Optional[str] = None
    special_instructions: Optional[str] = None
    subtotal: Decimal
    tax_amount: Decimal
    service_fee: Decimal
    tip_amount: Decimal
    discount_amount: Decimal
    delivery_fee: Decimal
    total_amount: Decimal
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    payment_intent_id: Optional[str] = None
    promo_code_id: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    version: int
    items: List[OrderItemRead] = []
    history: List[OrderStatusHistoryRead] = []


class OrderResponse(SQLModel):
    success: bool = True
    data: OrderRead
    message: Optional[str] = None


class OrderHistoryResponse(SQLModel):
    success: bool = True
    data: List[OrderStatusHistoryRead]
