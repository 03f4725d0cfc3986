"""
Server-side order pricing. Client totals are never used.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")


def quantize_money(amount) -> Decimal:
    """Round to cents, half up"""
    return Decimal(str(amount)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def unit_price(base_price: Decimal, customization_prices: Iterable[Decimal] = ()) -> Decimal:
    """Menu price plus every selected customization"""
    return quantize_money(Decimal(base_price) + sum((Decimal(p) for p in customization_prices), ZERO))


def line_total(price: Decimal, quantity: int) -> Decimal:
    return quantize_money(price * quantity)


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: Decimal
    tax_amount: Decimal
    service_fee: Decimal
    tip_amount: Decimal
    discount_amount: Decimal
    delivery_fee: Decimal

    @property
    def total_amount(self) -> Decimal:
        return (
            self.subtotal + self.tax_amount + self.service_fee +
            self.tip_amount + self.delivery_fee - self.discount_amount
        )


def price_order(
    line_totals: Iterable[Decimal],
    tax_rate: Decimal = ZERO,
    service_fee_rate: Decimal = ZERO,
    delivery_fee: Decimal = ZERO,
    tip_amount: Decimal = ZERO,
    discount_amount: Optional[Decimal] = None,
) -> PriceBreakdown:
    """
    Price an order from its line totals.

    Tax and service fee are rates applied to the subtotal. The discount is
    clamped to the subtotal so the total never drops below the fees.
    """
    subtotal = quantize_money(sum(line_totals, ZERO))
    discount = quantize_money(discount_amount or ZERO)
    if discount > subtotal:
        discount = subtotal
    if discount < ZERO:
        discount = ZERO

    return PriceBreakdown(
        subtotal=subtotal,
        tax_amount=quantize_money(subtotal * Decimal(tax_rate)),
        service_fee=quantize_money(subtotal * Decimal(service_fee_rate)),
        tip_amount=quantize_money(tip_amount),
        discount_amount=discount,
        delivery_fee=quantize_money(delivery_fee),
    )
