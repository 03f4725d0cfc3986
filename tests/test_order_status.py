"""
Tests for the order status machine
"""

import uuid
from decimal import Decimal

import pytest

from restaurant_os.core.dependencies import CurrentUser
from restaurant_os.core.events import OrderStatusChanged, event_bus
from restaurant_os.core.exceptions import AuthorizationError, InvalidTransitionError, NotFoundError
from restaurant_os.models import (
    Customer, MenuItem, Order, OrderStatus, PaymentMethod, PaymentStatus
)
from restaurant_os.services.customer_stats import count_order
from restaurant_os.services.order_status import (
    CANNOT_CANCEL_MESSAGE, CUSTOMER_CANCEL_NOTE, transition_order
)


@pytest.fixture
async def counted_order(session, make_order):
    """PENDING order already counted in the customer's totals, as checkout leaves it"""
    order = await make_order()
    await count_order(session, order)
    session.add(order)
    await session.commit()
    return order


class TestStaffTransitions:

    async def test_full_forward_flow_records_history(self, session, counted_order, staff_actor):
        for status in (
            OrderStatus.ACCEPTED, OrderStatus.PREPARING, OrderStatus.READY,
            OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED,
        ):
            order = await transition_order(session, counted_order.id, status, staff_actor)

        assert order.status == OrderStatus.DELIVERED
        assert order.is_terminal()
        assert [h.status for h in order.history] == [
            OrderStatus.PENDING, OrderStatus.ACCEPTED, OrderStatus.PREPARING, OrderStatus.READY,
            OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED,
        ]
        assert order.history[-1].created_by == staff_actor.id
        assert order.accepted_at is not None
        assert order.delivered_at is not None

    async def test_version_increments_on_every_transition(self, session, counted_order, staff_actor):
        before = counted_order.version
        order = await transition_order(session, counted_order.id, OrderStatus.ACCEPTED, staff_actor)
        order = await transition_order(session, order.id, OrderStatus.PREPARING, staff_actor)
        assert order.version == before + 2

    async def test_staff_may_move_backwards(self, session, counted_order, staff_actor):
        await transition_order(session, counted_order.id, OrderStatus.PREPARING, staff_actor)
        order = await transition_order(session, counted_order.id, OrderStatus.ACCEPTED, staff_actor, "Wrong ticket")

        assert order.status == OrderStatus.ACCEPTED
        assert order.history[-1].note == "Wrong ticket"

    async def test_accept_deducts_inventory_once(self, session, counted_order, staff_actor, burger, reload):
        await transition_order(session, counted_order.id, OrderStatus.ACCEPTED, staff_actor)
        await transition_order(session, counted_order.id, OrderStatus.PREPARING, staff_actor)
        await transition_order(session, counted_order.id, OrderStatus.READY, staff_actor)

        assert (await reload(MenuItem, burger.id)).stock_quantity == 8

    async def test_reject_restores_inventory_and_stats(self, session, counted_order, staff_actor, burger, customer, reload):
        await transition_order(session, counted_order.id, OrderStatus.ACCEPTED, staff_actor)
        order = await transition_order(session, counted_order.id, OrderStatus.REJECTED, staff_actor, "Kitchen closed")

        assert order.cancelled_at is not None
        assert not order.inventory_applied
        assert (await reload(MenuItem, burger.id)).stock_quantity == 10
        stats = await reload(Customer, customer.id)
        assert stats.total_orders == 0
        assert stats.total_spent == Decimal("0.00")

    async def test_cash_order_is_paid_on_accept(self, session, make_order, staff_actor):
        order = await make_order(payment_method=PaymentMethod.CASH)
        order = await transition_order(session, order.id, OrderStatus.ACCEPTED, staff_actor)

        assert order.payment_status == PaymentStatus.COMPLETED
        assert order.payment_intent_id == f"cash_{order.order_number}"

    async def test_card_order_payment_untouched_on_accept(self, session, counted_order, staff_actor):
        order = await transition_order(session, counted_order.id, OrderStatus.ACCEPTED, staff_actor)
        assert order.payment_status == PaymentStatus.PENDING

    async def test_unknown_order(self, session, staff_actor):
        with pytest.raises(NotFoundError):
            await transition_order(session, uuid.uuid4(), OrderStatus.ACCEPTED, staff_actor)

    async def test_status_change_event_is_published(self, session, counted_order, staff_actor):
        seen = []

        async def handler(event):
            seen.append((event.order_id, event.previous_status, event.status))

        event_bus.subscribe(OrderStatusChanged.__name__, handler)
        await transition_order(session, counted_order.id, OrderStatus.ACCEPTED, staff_actor)
        await event_bus.drain()

        assert seen == [(counted_order.id, "PENDING", "ACCEPTED")]


class TestCustomerCancellation:

    async def test_customer_cancels_pending_order(self, session, counted_order, customer_actor, customer, reload):
        order = await transition_order(session, counted_order.id, OrderStatus.CANCELLED, customer_actor)

        assert order.status == OrderStatus.CANCELLED
        assert order.history[-1].note == CUSTOMER_CANCEL_NOTE
        assert order.history[-1].created_by == customer_actor.id
        stats = await reload(Customer, customer.id)
        assert stats.total_orders == 0

    async def test_customer_cancels_accepted_order(self, session, counted_order, staff_actor, customer_actor, burger, reload):
        await transition_order(session, counted_order.id, OrderStatus.ACCEPTED, staff_actor)
        order = await transition_order(session, counted_order.id, OrderStatus.CANCELLED, customer_actor)

        assert order.status == OrderStatus.CANCELLED
        assert (await reload(MenuItem, burger.id)).stock_quantity == 10

    async def test_customer_cannot_cancel_while_preparing(self, session, counted_order, staff_actor, customer_actor, reload):
        """Invalid transition; status stays PREPARING"""
        order_id = counted_order.id
        await transition_order(session, order_id, OrderStatus.ACCEPTED, staff_actor)
        await transition_order(session, order_id, OrderStatus.PREPARING, staff_actor)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await transition_order(session, order_id, OrderStatus.CANCELLED, customer_actor)

        assert exc_info.value.message == CANNOT_CANCEL_MESSAGE
        order = await reload(Order, order_id)
        assert order.status == OrderStatus.PREPARING
        assert len(order.history) == 3

    async def test_customer_cannot_set_other_statuses(self, session, counted_order, customer_actor):
        with pytest.raises(AuthorizationError):
            await transition_order(session, counted_order.id, OrderStatus.ACCEPTED, customer_actor)

    async def test_customer_cannot_cancel_someone_elses_order(self, session, counted_order):
        other = CurrentUser(id=str(uuid.uuid4()), role="CUSTOMER")

        with pytest.raises(AuthorizationError) as exc_info:
            await transition_order(session, counted_order.id, OrderStatus.CANCELLED, other)

        assert exc_info.value.message == "You can only cancel your own orders"
