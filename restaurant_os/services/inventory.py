"""
Inventory adjustment for trackable menu items

Stock is deducted once when an order is confirmed and restored once when it is
cancelled, rejected or refunded. Order.inventory_applied records which side of
that pair the order is on.
"""

from enum import Enum
from typing import Dict
import uuid

from sqlalchemy import update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
import structlog

from restaurant_os.models.menu_item import MenuItem
from restaurant_os.models.order import Order

logger = structlog.get_logger(__name__)


class StockDirection(str, Enum):
    DEDUCT = "DEDUCT"
    RESTORE = "RESTORE"


def stock_delta(item: MenuItem, quantity: int, direction: StockDirection) -> int:
    """Change in stock_quantity for one line; zero when the item is not tracked"""
    if quantity < 0:
        raise ValueError("quantity must not be negative")
    if not item.is_trackable():
        return 0
    return -quantity if direction == StockDirection.DEDUCT else quantity


def quantities_by_item(order: Order) -> Dict[uuid.UUID, int]:
    totals: Dict[uuid.UUID, int] = {}
    for line in order.items:
        totals[line.menu_item_id] = totals.get(line.menu_item_id, 0) + line.quantity
    return totals


async def _adjust_stock(session: AsyncSession, order: Order, direction: StockDirection) -> None:
    quantities = quantities_by_item(order)
    if not quantities:
        return

    result = await session.exec(
        select(MenuItem)
        .where(MenuItem.id.in_(list(quantities)))
        .execution_options(populate_existing=True)
    )
    for item in result.all():
        delta = stock_delta(item, quantities[item.id], direction)
        if delta == 0:
            continue
        new_quantity = item.stock_quantity + delta
        # Relative update so concurrent orders on the same item never lose a write
        await session.execute(
            update(MenuItem)
            .where(
                MenuItem.id == item.id,
                MenuItem.track_inventory == True,  # noqa: E712
                MenuItem.stock_quantity.is_not(None),
            )
            .values(stock_quantity=MenuItem.stock_quantity + delta)
        )
        if item.min_stock_level is not None and new_quantity <= item.min_stock_level:
            logger.warning(
                "Menu item stock at or below minimum",
                menu_item_id=str(item.id),
                stock_quantity=new_quantity,
                min_stock_level=item.min_stock_level,
            )


async def apply_inventory(session: AsyncSession, order: Order) -> bool:
    """Deduct stock for every line of the order; returns False if already applied"""
    if order.inventory_applied:
        return False
    await _adjust_stock(session, order, StockDirection.DEDUCT)
    order.inventory_applied = True
    logger.info("Inventory deducted", order_id=str(order.id))
    return True


async def restore_inventory(session: AsyncSession, order: Order) -> bool:
    """Give back stock deducted by apply_inventory; returns False if nothing was deducted"""
    if not order.inventory_applied:
        return False
    await _adjust_stock(session, order, StockDirection.RESTORE)
    order.inventory_applied = False
    logger.info("Inventory restored", order_id=str(order.id))
    return True
