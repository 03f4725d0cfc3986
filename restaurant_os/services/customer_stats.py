"""
Customer aggregate maintenance

total_orders and total_spent move in lockstep with the order lifecycle. The
counted_in_* flags on the order make every adjustment exactly-once, and the
updates are relative so concurrent orders of the same customer compose.
"""

from decimal import Decimal

from sqlalchemy import update
from sqlmodel.ext.asyncio.session import AsyncSession
import structlog

from restaurant_os.models.customer import Customer
from restaurant_os.models.order import Order, PaymentStatus

logger = structlog.get_logger(__name__)


async def _apply(session: AsyncSession, order: Order, orders_delta: int, spent_delta: Decimal) -> None:
    if orders_delta == 0 and spent_delta == 0:
        return
    await session.execute(
        update(Customer)
        .where(Customer.id == order.customer_id)
        .values(
            total_orders=Customer.total_orders + orders_delta,
            total_spent=Customer.total_spent + spent_delta,
        )
    )
    logger.info(
        "Customer stats adjusted",
        customer_id=str(order.customer_id),
        order_id=str(order.id),
        orders_delta=orders_delta,
        spent_delta=str(spent_delta),
    )


async def count_order(session: AsyncSession, order: Order) -> None:
    """Count the order in the customer's totals (skips whatever is already counted)"""
    orders_delta = 0
    spent_delta = Decimal("0.00")
    if not order.counted_in_orders:
        orders_delta = 1
        order.counted_in_orders = True
    # A refunded order has given its money back
    if not order.counted_in_spent and order.payment_status != PaymentStatus.REFUNDED:
        spent_delta = order.total_amount
        order.counted_in_spent = True
    await _apply(session, order, orders_delta, spent_delta)


async def reverse_order(session: AsyncSession, order: Order, include_orders: bool = True) -> None:
    """Take the order back out of the totals; refunds pass include_orders=False"""
    orders_delta = 0
    spent_delta = Decimal("0.00")
    if include_orders and order.counted_in_orders:
        orders_delta = -1
        order.counted_in_orders = False
    if order.counted_in_spent:
        spent_delta = -order.total_amount
        order.counted_in_spent = False
    await _apply(session, order, orders_delta, spent_delta)
