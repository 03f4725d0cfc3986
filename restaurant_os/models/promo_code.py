"""
Promo code model
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import UniqueConstraint
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional, Tuple
import uuid


class DiscountType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"


class PromoCode(SQLModel, table=True):
    """Discount rule; usage_count is incremented at order creation and never returned"""

    __tablename__ = "promo_codes"
    __table_args__ = (UniqueConstraint("restaurant_id", "code", name="uq_promo_code_restaurant_code"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    restaurant_id: uuid.UUID = Field(foreign_key="restaurants.id", index=True)
    code: str = Field(index=True, max_length=50)
    description: Optional[str] = Field(default=None, max_length=500)

    discount_type: DiscountType = Field(default=DiscountType.PERCENTAGE)
    discount_value: Decimal = Field(
        max_digits=10,
        decimal_places=2,
        description="Percent (10 = 10%) or fixed amount depending on discount_type"
    )
    min_order_value: Decimal = Field(default=Decimal("0.00"), max_digits=10, decimal_places=2)
    max_discount: Optional[Decimal] = Field(
        default=None,
        max_digits=10,
        decimal_places=2,
        nullable=True,
        description="Cap applied to percentage discounts"
    )

    usage_limit: Optional[int] = Field(default=None, nullable=True)
    usage_count: int = Field(default=0)

    valid_from: datetime
    valid_until: datetime
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def check_applicable(self, subtotal: Decimal, now: Optional[datetime] = None) -> Tuple[bool, str]:
        """Check whether this code can be applied to a subtotal right now"""
        now = now or datetime.utcnow()
        if not self.is_active:
            return False, "Promo code is not active"
        if now < self.valid_from or now > self.valid_until:
            return False, "Promo code is expired or not yet valid"
        if self.usage_limit is not None and self.usage_count >= self.usage_limit:
            return False, "Promo code usage limit reached"
        if subtotal < self.min_order_value:
            return False, f"Minimum order value for this promo code is {self.min_order_value}"
        return True, "Applicable"

    def discount_for(self, subtotal: Decimal) -> Decimal:
        """Discount amount for a subtotal, never more than the subtotal itself"""
        if self.discount_type == DiscountType.PERCENTAGE:
            discount = subtotal * self.discount_value / Decimal("100")
            if self.max_discount is not None:
                discount = min(discount, self.max_discount)
        else:
            discount = self.discount_value
        discount = min(discount, subtotal)
        return discount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
