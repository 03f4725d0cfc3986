"""
Customization catalog
Option groups attached to a menu item ("Size", "Extras") and their priced options
"""

from sqlmodel import Field, SQLModel, Relationship
from decimal import Decimal
from typing import List, Optional
import uuid


class CustomizationGroup(SQLModel, table=True):
    """Group of options offered for one menu item"""

    __tablename__ = "customization_groups"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    menu_item_id: uuid.UUID = Field(
        foreign_key="menu_items.id",
        index=True,
        description="Menu item these options apply to"
    )
    name: str = Field(max_length=100)
    is_required: bool = Field(default=False, description="At least one option must be chosen")
    max_selections: int = Field(default=1, description="Upper bound on options chosen from this group")
    sort_order: int = Field(default=0)

    options: List["CustomizationOption"] = Relationship(
        back_populates="group",
        sa_relationship_kwargs={"lazy": "selectin", "order_by": "CustomizationOption.sort_order"}
    )


class CustomizationOption(SQLModel, table=True):
    """Selectable option; price_modifier is added to the item's unit price"""

    __tablename__ = "customization_options"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    group_id: uuid.UUID = Field(foreign_key="customization_groups.id", index=True)
    name: str = Field(max_length=100)
    price_modifier: Decimal = Field(default=Decimal("0.00"), max_digits=10, decimal_places=2)
    is_available: bool = Field(default=True)
    sort_order: int = Field(default=0)

    group: Optional[CustomizationGroup] = Relationship(back_populates="options")
