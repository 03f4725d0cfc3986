"""
Order API endpoints
Creation, retrieval, status updates and customer cancellation
"""

from fastapi import APIRouter, Depends, status
from sqlmodel.ext.asyncio.session import AsyncSession
import uuid

from restaurant_os.core.database import get_session
from restaurant_os.core.dependencies import CurrentUser, get_current_user
from restaurant_os.core.exceptions import AuthorizationError, NotFoundError
from restaurant_os.models import Order, OrderStatus
from restaurant_os.schemas.orders import (
    OrderCreate, OrderHistoryResponse, OrderRead, OrderResponse,
    OrderStatusHistoryRead, OrderStatusUpdate
)
from restaurant_os.services.order_creation import create_order
from restaurant_os.services.order_status import get_order, transition_order

router = APIRouter()


def ensure_can_view(order: Order, current_user: CurrentUser) -> None:
    """Staff of the order's restaurant or the customer who placed it"""
    if current_user.is_staff:
        if current_user.restaurant_id is not None and current_user.restaurant_id != order.restaurant_id:
            raise AuthorizationError("Forbidden: Order belongs to another restaurant")
        return
    if str(order.customer_id) != current_user.id:
        raise AuthorizationError("Forbidden: You can only view your own orders")


async def load_visible_order(session: AsyncSession, order_id: uuid.UUID, current_user: CurrentUser) -> Order:
    order = await get_order(session, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    ensure_can_view(order, current_user)
    return order


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def place_order(
    order_data: OrderCreate,
    session: AsyncSession = Depends(get_session),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Create a PENDING order priced from the menu; payment follows separately"""
    if (
        current_user.is_staff
        and current_user.restaurant_id is not None
        and current_user.restaurant_id != order_data.restaurant_id
    ):
        raise AuthorizationError("Forbidden: Staff can only place orders for their restaurant")

    order = await create_order(session, order_data, current_user)
    return OrderResponse(data=OrderRead.model_validate(order), message="Order created successfully")


@router.get("/{order_id}", response_model=OrderResponse)
async def read_order(
    order_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Get an order with its items and status history"""
    order = await load_visible_order(session, order_id, current_user)
    return OrderResponse(data=OrderRead.model_validate(order))


@router.get("/{order_id}/history", response_model=OrderHistoryResponse)
async def read_order_history(
    order_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Status timeline, oldest first"""
    order = await load_visible_order(session, order_id, current_user)
    return OrderHistoryResponse(data=[OrderStatusHistoryRead.model_validate(h) for h in order.history])


@router.patch("/{order_id}", response_model=OrderResponse)
async def update_order_status(
    order_id: uuid.UUID,
    update: OrderStatusUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: CurrentUser = Depends(get_current_user)
):
    """
    Update order status

    Staff may set any status. A customer request is a cancellation: status
    CANCELLED without a note, allowed until preparation starts.
    """
    is_customer_cancellation = update.status == OrderStatus.CANCELLED and not update.note

    if current_user.is_staff:
        await load_visible_order(session, order_id, current_user)
    elif not is_customer_cancellation:
        raise AuthorizationError("Forbidden: Only staff can update order status")

    order = await transition_order(session, order_id, update.status, current_user, update.note)
    message = "Order cancelled successfully" if not current_user.is_staff else "Order status updated"
    return OrderResponse(data=OrderRead.model_validate(order), message=message)
