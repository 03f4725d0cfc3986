"""
Menu item model (pricing and inventory fields used by ordering)
"""

from sqlmodel import Field, SQLModel
from decimal import Decimal
from datetime import datetime
from typing import Optional
import uuid


class MenuItem(SQLModel, table=True):
    """Menu item for ordering"""

    __tablename__ = "menu_items"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    restaurant_id: uuid.UUID = Field(
        foreign_key="restaurants.id",
        index=True,
        description="Restaurant this item belongs to"
    )

    # Item details
    name: str = Field(max_length=255, nullable=False, description="Item name")
    description: Optional[str] = Field(default=None, max_length=2000, nullable=True, description="Item description")

    # Pricing
    price: Decimal = Field(
        max_digits=10,
        decimal_places=2,
        description="Base price of item"
    )

    # Availability
    is_available: bool = Field(default=True, index=True, description="Whether item is currently available")

    # Inventory
    track_inventory: bool = Field(default=False, description="Whether stock_quantity is enforced")
    stock_quantity: Optional[int] = Field(
        default=None,
        nullable=True,
        description="Units on hand; ignored (unlimited) unless track_inventory is set"
    )
    min_stock_level: Optional[int] = Field(default=None, nullable=True, description="Low stock warning level")

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None

    def is_trackable(self) -> bool:
        """Stock is only adjusted when tracking is on and a quantity is recorded"""
        return self.track_inventory and self.stock_quantity is not None

    def has_stock_for(self, quantity: int) -> bool:
        if not self.is_trackable():
            return True
        return self.stock_quantity >= quantity
