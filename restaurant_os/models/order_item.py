"""
Order Item model
Line items with name/price frozen at order time
"""

from sqlmodel import Field, SQLModel, Relationship
from sqlalchemy import Column, JSON
from decimal import Decimal
from typing import Optional, TYPE_CHECKING, List
import uuid

if TYPE_CHECKING:
    from restaurant_os.models.order import Order
    from restaurant_os.models.menu_item import MenuItem


class OrderItem(SQLModel, table=True):
    """Individual line item in an order"""

    __tablename__ = "order_items"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    order_id: uuid.UUID = Field(
        foreign_key="orders.id",
        index=True,
        description="Order this item belongs to"
    )
    menu_item_id: uuid.UUID = Field(
        foreign_key="menu_items.id",
        index=True,
        description="Menu item this line item represents"
    )

    # Snapshot from the menu at time of order
    name: str = Field(max_length=255, description="Item name (snapshot from menu)")
    price: Decimal = Field(
        default=Decimal("0.00"),
        max_digits=10,
        decimal_places=2,
        description="Unit price at time of order including customizations"
    )
    quantity: int = Field(default=1, description="Quantity ordered")
    line_total: Decimal = Field(
        default=Decimal("0.00"),
        max_digits=10,
        decimal_places=2,
        description="quantity * price"
    )

    customizations: Optional[List[dict]] = Field(
        default=None,
        description="Catalog snapshot: [{'option_id', 'group', 'name': 'Extra cheese', 'price': '1.50'}]",
        sa_column=Column(JSON, nullable=True)
    )
    special_instructions: Optional[str] = Field(
        default=None,
        max_length=1000,
        nullable=True,
        description="Special instructions for this item"
    )

    # Relationships
    order: Optional["Order"] = Relationship(back_populates="items")
    menu_item: Optional["MenuItem"] = Relationship(sa_relationship_kwargs={"lazy": "selectin"})

    def calculate_line_total(self) -> None:
        """Calculate line total based on quantity and price"""
        self.line_total = self.quantity * self.price

    def get_customization_summary(self) -> str:
        """Get a human-readable summary of customizations"""
        if not self.customizations:
            return ""
        return ", ".join(c.get("name", "") for c in self.customizations)
