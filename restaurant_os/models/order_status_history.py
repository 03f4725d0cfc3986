"""
Order status history
Append-only audit log, one row per transition
"""

from sqlmodel import Field, SQLModel, Relationship
from datetime import datetime
from typing import Optional, TYPE_CHECKING
import uuid

from restaurant_os.models.order import OrderStatus

if TYPE_CHECKING:
    from restaurant_os.models.order import Order

SYSTEM_ACTOR = "SYSTEM"


class OrderStatusHistory(SQLModel, table=True):
    """Transition record: never updated or deleted"""

    __tablename__ = "order_status_history"

    # Integer key keeps insertion order stable for the timeline
    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: uuid.UUID = Field(foreign_key="orders.id", index=True)
    status: OrderStatus = Field(description="Status the order moved into")
    note: Optional[str] = Field(default=None, max_length=500, nullable=True)
    created_by: str = Field(
        default=SYSTEM_ACTOR,
        max_length=64,
        description="Staff id, customer id or SYSTEM"
    )
    created_at: datetime = Field(default_factory=datetime.utcnow)

    order: Optional["Order"] = Relationship(back_populates="history")
