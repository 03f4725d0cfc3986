"""
Order status machine

Fulfillment flows PENDING -> ACCEPTED -> PREPARING -> READY -> OUT_FOR_DELIVERY
-> DELIVERED, with CANCELLED and REJECTED reachable from any open status.
Customers may only cancel, and only before preparation starts. Staff moves are
not restricted in direction.

Every transition runs in one transaction: the order row is locked, status and
history are written, inventory and customer stats follow, then commit.
"""

from typing import Optional, Union
import uuid

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
import structlog

from restaurant_os.core.dependencies import CurrentUser
from restaurant_os.core.events import OrderStatusChanged, event_bus
from restaurant_os.core.exceptions import (
    AuthorizationError, InvalidTransitionError, NotFoundError
)
from restaurant_os.models.order import (
    Order, OrderStatus, PaymentMethod, PaymentStatus, REVERSING_STATUSES
)
from restaurant_os.models.order_status_history import OrderStatusHistory
from restaurant_os.services.customer_stats import count_order, reverse_order
from restaurant_os.services.inventory import apply_inventory, restore_inventory

logger = structlog.get_logger(__name__)

CUSTOMER_CANCEL_NOTE = "Cancelled by customer"
CANNOT_CANCEL_MESSAGE = "Order cannot be cancelled. It is already being prepared or completed."


def parse_order_id(order_id: Union[str, uuid.UUID, None]) -> Optional[uuid.UUID]:
    if isinstance(order_id, uuid.UUID):
        return order_id
    try:
        return uuid.UUID(str(order_id))
    except (TypeError, ValueError):
        return None


async def get_order(
    session: AsyncSession,
    order_id: Union[str, uuid.UUID],
    for_update: bool = False
) -> Optional[Order]:
    """
    Load an order with items and history.

    for_update takes a row lock held until the surrounding transaction ends, so
    the status read here is the one the caller writes against.
    """
    parsed = parse_order_id(order_id)
    if parsed is None:
        return None
    statement = select(Order).where(Order.id == parsed).execution_options(populate_existing=True)
    if for_update:
        statement = statement.with_for_update()
    result = await session.exec(statement)
    return result.first()


def record_status(order: Order, new_status: OrderStatus, created_by: str, note: Optional[str] = None) -> OrderStatus:
    """Apply the status and append its history row; returns the previous status"""
    previous = order.status
    order.apply_status(new_status)
    order.history.append(
        OrderStatusHistory(
            order_id=order.id,
            status=new_status,
            note=note,
            created_by=created_by,
        )
    )
    return previous


async def apply_status_effects(session: AsyncSession, order: Order) -> None:
    """Bring inventory, customer stats and cash payment in line with order.status"""
    if order.status in REVERSING_STATUSES:
        await restore_inventory(session, order)
        await reverse_order(session, order)
        return

    if order.status == OrderStatus.PENDING:
        return

    # Confirmed or further along: stock is taken and the order counts
    await apply_inventory(session, order)
    await count_order(session, order)

    if (
        order.status == OrderStatus.ACCEPTED
        and order.payment_method == PaymentMethod.CASH
        and order.payment_status == PaymentStatus.PENDING
    ):
        # Cash is collected in person once the restaurant accepts
        order.payment_status = PaymentStatus.COMPLETED
        if not order.payment_intent_id:
            order.payment_intent_id = f"cash_{order.order_number}"


def publish_status_change(order: Order, previous: Optional[OrderStatus], note: Optional[str] = None) -> None:
    event_bus.publish_nowait(
        OrderStatusChanged(
            order_id=order.id,
            order_number=order.order_number,
            restaurant_id=order.restaurant_id,
            customer_id=order.customer_id,
            status=order.status.value,
            previous_status=previous.value if previous else None,
            note=note,
        )
    )


def _check_customer_request(order: Order, new_status: OrderStatus, actor: CurrentUser) -> None:
    if new_status != OrderStatus.CANCELLED:
        raise AuthorizationError("Forbidden: Only staff can update order status")
    if str(order.customer_id) != actor.id:
        raise AuthorizationError("You can only cancel your own orders")
    if not order.can_customer_cancel():
        raise InvalidTransitionError(CANNOT_CANCEL_MESSAGE)


async def transition_order(
    session: AsyncSession,
    order_id: Union[str, uuid.UUID],
    new_status: OrderStatus,
    actor: CurrentUser,
    note: Optional[str] = None
) -> Order:
    """
    Move an order to a new status on behalf of a staff member or its customer.

    Raises NotFoundError, AuthorizationError or InvalidTransitionError; nothing
    is written in those cases.
    """
    try:
        order = await get_order(session, order_id, for_update=True)
        if order is None:
            raise NotFoundError("Order not found")

        if actor.is_staff:
            created_by = actor.id
        else:
            _check_customer_request(order, new_status, actor)
            note = CUSTOMER_CANCEL_NOTE
            created_by = actor.id

        previous = record_status(order, new_status, created_by, note)
        await apply_status_effects(session, order)
        session.add(order)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info(
        "Order status updated",
        order_id=str(order.id),
        order_number=order.order_number,
        previous_status=previous.value,
        status=order.status.value,
        actor=created_by,
    )
    publish_status_change(order, previous, note)
    return order
