"""
Order model
One customer transaction: fulfillment status and payment status are tracked on
separate axes. Orders are never deleted, cancellation is a status.
"""

from sqlmodel import Field, SQLModel, Relationship
from datetime import datetime
from typing import Optional, TYPE_CHECKING, List
from decimal import Decimal
from enum import Enum
import uuid

if TYPE_CHECKING:
    from restaurant_os.models.order_item import OrderItem
    from restaurant_os.models.order_status_history import OrderStatusHistory


class OrderStatus(str, Enum):
    """Fulfillment status of an order"""
    PENDING = "PENDING"                    # Placed, waiting for payment / acceptance
    ACCEPTED = "ACCEPTED"                  # Paid (or cash accepted), queued for the kitchen
    PREPARING = "PREPARING"                # Kitchen is working on it
    READY = "READY"                        # Ready for pickup / serving / driver
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"  # With the driver
    DELIVERED = "DELIVERED"                # Handed over, final
    CANCELLED = "CANCELLED"                # Cancelled by customer, staff, sweeper or refund
    REJECTED = "REJECTED"                  # Declined by the restaurant


TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REJECTED})
REVERSING_STATUSES = frozenset({OrderStatus.CANCELLED, OrderStatus.REJECTED})
CUSTOMER_CANCELLABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.ACCEPTED})


class OrderType(str, Enum):
    DINE_IN = "DINE_IN"
    PICKUP = "PICKUP"
    DELIVERY = "DELIVERY"


class PaymentMethod(str, Enum):
    STRIPE = "STRIPE"
    PAYPAL = "PAYPAL"
    CASH = "CASH"


class PaymentStatus(str, Enum):
    """Money movement for an order, independent from fulfillment"""
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class Order(SQLModel, table=True):
    """Customer order with its money breakdown and payment state"""

    __tablename__ = "orders"

    # Primary key
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    order_number: str = Field(
        unique=True,
        index=True,
        max_length=32,
        description="Human readable order number, immutable"
    )

    # Ownership
    restaurant_id: uuid.UUID = Field(foreign_key="restaurants.id", index=True)
    customer_id: uuid.UUID = Field(foreign_key="customers.id", index=True)

    # Fulfillment
    order_type: OrderType = Field(description="DINE_IN, PICKUP or DELIVERY, fixed at creation")
    status: OrderStatus = Field(
        default=OrderStatus.PENDING,
        index=True,
        description="Current fulfillment status"
    )
    table_number: Optional[str] = Field(default=None, max_length=20, nullable=True)
    pickup_time: Optional[datetime] = Field(default=None, nullable=True)
    delivery_address_id: Optional[uuid.UUID] = Field(default=None, foreign_key="addresses.id", nullable=True)
    contact_phone: Optional[str] = Field(default=None, max_length=50, nullable=True)
    special_instructions: Optional[str] = Field(default=None, max_length=1000, nullable=True)

    # Financial amounts
    subtotal: Decimal = Field(default=Decimal("0.00"), max_digits=10, decimal_places=2)
    tax_amount: Decimal = Field(default=Decimal("0.00"), max_digits=10, decimal_places=2)
    service_fee: Decimal = Field(default=Decimal("0.00"), max_digits=10, decimal_places=2)
    tip_amount: Decimal = Field(default=Decimal("0.00"), max_digits=10, decimal_places=2)
    discount_amount: Decimal = Field(default=Decimal("0.00"), max_digits=10, decimal_places=2)
    delivery_fee: Decimal = Field(default=Decimal("0.00"), max_digits=10, decimal_places=2)
    total_amount: Decimal = Field(
        default=Decimal("0.00"),
        max_digits=12,
        decimal_places=2,
        description="subtotal + tax + service fee + tip + delivery fee - discount"
    )

    # Payment
    payment_method: PaymentMethod = Field(index=True)
    payment_status: PaymentStatus = Field(default=PaymentStatus.PENDING, index=True)
    payment_intent_id: Optional[str] = Field(
        default=None,
        max_length=255,
        index=True,
        nullable=True,
        description="Provider transaction id (Stripe PaymentIntent, PayPal capture)"
    )
    promo_code_id: Optional[uuid.UUID] = Field(default=None, foreign_key="promo_codes.id", nullable=True)

    # Side effect bookkeeping, each flag flips at most once per direction
    inventory_applied: bool = Field(default=False, description="Stock is currently deducted for this order")
    counted_in_orders: bool = Field(default=False, description="Counted in customer.total_orders")
    counted_in_spent: bool = Field(default=False, description="Counted in customer.total_spent")

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    updated_at: Optional[datetime] = Field(default=None, nullable=True)
    accepted_at: Optional[datetime] = Field(default=None, nullable=True)
    delivered_at: Optional[datetime] = Field(default=None, nullable=True)
    cancelled_at: Optional[datetime] = Field(default=None, nullable=True)

    version: int = Field(default=1, description="Incremented on every mutation")

    # Relationships
    items: List["OrderItem"] = Relationship(
        back_populates="order",
        sa_relationship_kwargs={"lazy": "selectin", "cascade": "all, delete-orphan"}
    )
    history: List["OrderStatusHistory"] = Relationship(
        back_populates="order",
        sa_relationship_kwargs={"lazy": "selectin", "order_by": "OrderStatusHistory.id"}
    )

    def calculate_total(self) -> None:
        """Calculate total amount (subtotal + tax + service fee + tip + delivery fee - discount)"""
        self.total_amount = (
            self.subtotal +
            self.tax_amount +
            self.service_fee +
            self.tip_amount +
            self.delivery_fee -
            self.discount_amount
        )

    def totals_reconcile(self) -> bool:
        """Check the stored total against its components"""
        expected = (
            self.subtotal + self.tax_amount + self.service_fee +
            self.tip_amount + self.delivery_fee - self.discount_amount
        )
        return expected == self.total_amount

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def can_customer_cancel(self) -> bool:
        """Customers may cancel until the kitchen starts preparing"""
        return self.status in CUSTOMER_CANCELLABLE_STATUSES

    def apply_status(self, new_status: OrderStatus) -> None:
        """Set status and its timestamp; legality is checked by services.order_status"""
        now = datetime.utcnow()
        self.status = new_status
        if new_status == OrderStatus.ACCEPTED and self.accepted_at is None:
            self.accepted_at = now
        elif new_status == OrderStatus.DELIVERED:
            self.delivered_at = now
        elif new_status in REVERSING_STATUSES:
            self.cancelled_at = now
        self.touch()

    def touch(self) -> None:
        self.updated_at = datetime.utcnow()
        self.version += 1
