"""
Restaurant model - tenant root for menus, customers and orders
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import Column, JSON
from datetime import datetime
from decimal import Decimal
from typing import Optional
import uuid


class Restaurant(SQLModel, table=True):
    """Restaurant (tenant) with the pricing and fulfillment settings orders depend on"""

    __tablename__ = "restaurants"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(index=True, max_length=255)
    slug: str = Field(unique=True, index=True, max_length=255, description="Unique restaurant identifier")
    email: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=50)
    currency: str = Field(default="USD", max_length=3, description="ISO currency code used for charges")

    # Pricing
    tax_rate: Decimal = Field(
        default=Decimal("0.0000"),
        max_digits=6,
        decimal_places=4,
        description="Tax rate applied to subtotal (0.0825 = 8.25%)"
    )
    service_fee_rate: Decimal = Field(
        default=Decimal("0.0000"),
        max_digits=6,
        decimal_places=4,
        description="Service fee rate applied to subtotal"
    )
    delivery_fee: Decimal = Field(
        default=Decimal("0.00"),
        max_digits=10,
        decimal_places=2,
        description="Flat fee charged on delivery orders"
    )
    min_order_value: Decimal = Field(
        default=Decimal("0.00"),
        max_digits=10,
        decimal_places=2,
        description="Minimum subtotal accepted at checkout"
    )

    # Fulfillment options
    enable_dine_in: bool = Field(default=True)
    enable_pickup: bool = Field(default=True)
    enable_delivery: bool = Field(default=True)

    # Per-restaurant payment credentials, parsed by core.integrations
    integration_settings: Optional[dict] = Field(
        default=None,
        description="Provider credentials overriding environment defaults",
        sa_column=Column(JSON, nullable=True)
    )

    is_active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None
