"""
Customer and delivery address models
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import UniqueConstraint
from datetime import datetime
from decimal import Decimal
from typing import Optional
import uuid


class Customer(SQLModel, table=True):
    """Customer with lifetime aggregates kept in lockstep with their orders"""

    __tablename__ = "customers"
    __table_args__ = (UniqueConstraint("restaurant_id", "email", name="uq_customer_restaurant_email"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    restaurant_id: uuid.UUID = Field(foreign_key="restaurants.id", index=True)

    email: str = Field(index=True, max_length=255)
    name: str = Field(max_length=255)
    phone: Optional[str] = Field(default=None, max_length=50)
    is_guest: bool = Field(default=False)

    # Derived aggregates, only touched by services.customer_stats
    total_orders: int = Field(default=0, description="Orders currently counted for this customer")
    total_spent: Decimal = Field(
        default=Decimal("0.00"),
        max_digits=12,
        decimal_places=2,
        description="Lifetime spend currently counted for this customer"
    )

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None


class Address(SQLModel, table=True):
    """Delivery address owned by a customer"""

    __tablename__ = "addresses"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    customer_id: uuid.UUID = Field(foreign_key="customers.id", index=True)
    label: Optional[str] = Field(default=None, max_length=100)
    street: str = Field(max_length=255)
    city: str = Field(max_length=100)
    state: str = Field(max_length=100)
    zip_code: str = Field(max_length=20)
    country: str = Field(default="US", max_length=2)
    is_default: bool = Field(default=False)
    created_at: datetime = Field(default_factory=datetime.utcnow)
