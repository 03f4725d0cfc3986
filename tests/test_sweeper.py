"""
Tests for the abandoned order sweeper
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from restaurant_os.models import (
    Customer, MenuItem, Order, OrderStatus, PaymentMethod, PaymentStatus
)
from restaurant_os.services.customer_stats import count_order
from restaurant_os.services.inventory import apply_inventory
from restaurant_os.services.reconciliation import CaptureSource, ReconcileOutcome, reconcile_captured
from restaurant_os.services.sweeper import (
    find_abandoned_order_ids, sweep_abandoned_orders, sweep_note
)


@pytest.fixture
def make_stale_order(session, make_order):
    """Order placed 20 minutes ago, counted in the customer's totals"""

    async def _make(**fields) -> Order:
        order = await make_order(created_at=datetime.utcnow() - timedelta(minutes=20), **fields)
        await count_order(session, order)
        session.add(order)
        await session.commit()
        return order

    return _make


class TestFindAbandoned:

    async def test_only_old_unpaid_online_orders(self, session, make_order, make_stale_order):
        stale = await make_stale_order()
        failed = await make_stale_order(payment_status=PaymentStatus.FAILED)
        await make_stale_order(payment_method=PaymentMethod.CASH)
        await make_stale_order(payment_status=PaymentStatus.COMPLETED)
        await make_order()

        found = await find_abandoned_order_ids(session, datetime.utcnow() - timedelta(minutes=15))

        assert set(found) == {stale.id, failed.id}


class TestSweep:

    async def test_stale_order_is_cancelled_and_reversed(self, session, session_factory, make_stale_order, customer, burger, reload):
        """Inventory restored, total_orders -1, total_spent minus the order total"""
        order = await make_stale_order()
        await apply_inventory(session, order)
        session.add(order)
        await session.commit()
        assert (await reload(MenuItem, burger.id)).stock_quantity == 8
        before = await reload(Customer, customer.id)
        orders_before, spent_before = before.total_orders, before.total_spent

        result = await sweep_abandoned_orders(session_factory, minutes=15)

        assert result.cancelled == 1
        assert result.failed == 0
        refreshed = await reload(Order, order.id)
        assert refreshed.status == OrderStatus.CANCELLED
        assert refreshed.payment_status == PaymentStatus.PENDING
        assert refreshed.history[-1].note == sweep_note(15)
        assert refreshed.history[-1].created_by == "SYSTEM"

        after = await reload(Customer, customer.id)
        assert after.total_orders == orders_before - 1
        assert after.total_spent == spent_before - refreshed.total_amount
        assert (await reload(MenuItem, burger.id)).stock_quantity == 10

    async def test_sweep_note_text(self):
        assert sweep_note(15) == "Order cancelled automatically - payment not completed within 15 minutes"

    async def test_fresh_orders_are_left_alone(self, session_factory, make_order):
        await make_order()

        result = await sweep_abandoned_orders(session_factory, minutes=15)

        assert result.scanned == 0
        assert result.cancelled == 0

    async def test_second_run_finds_nothing(self, session_factory, make_stale_order):
        await make_stale_order()

        first = await sweep_abandoned_orders(session_factory, minutes=15)
        second = await sweep_abandoned_orders(session_factory, minutes=15)

        assert first.cancelled == 1
        assert second.scanned == 0

    async def test_cash_orders_are_never_swept(self, session_factory, make_stale_order, reload):
        order = await make_stale_order(payment_method=PaymentMethod.CASH)

        result = await sweep_abandoned_orders(session_factory, minutes=15)

        assert result.scanned == 0
        assert (await reload(Order, order.id)).status == OrderStatus.PENDING

    async def test_threshold_uses_now(self, session_factory, make_order):
        await make_order()

        result = await sweep_abandoned_orders(
            session_factory, minutes=15, now=datetime.utcnow() + timedelta(minutes=30)
        )

        assert result.cancelled == 1

    async def test_failure_does_not_stop_the_run(self, session_factory, make_stale_order, reload, monkeypatch):
        """The first order blows up; the remaining ones are still cancelled"""
        from restaurant_os.services import sweeper

        orders = [await make_stale_order() for _ in range(3)]
        order_ids = [order.id for order in orders]
        real_cancel = sweeper.cancel_abandoned_order
        attempted = []

        async def flaky_cancel(session, order_id, note):
            attempted.append(order_id)
            if len(attempted) == 1:
                raise RuntimeError("deadlock detected")
            return await real_cancel(session, order_id, note)

        monkeypatch.setattr(sweeper, "cancel_abandoned_order", flaky_cancel)

        result = await sweep_abandoned_orders(session_factory, minutes=15)

        assert result.scanned == 3
        assert result.failed == 1
        assert result.cancelled == 2
        assert sorted(attempted) == sorted(order_ids)
        statuses = {order_id: (await reload(Order, order_id)).status for order_id in order_ids}
        assert statuses[attempted[0]] == OrderStatus.PENDING
        assert [statuses[order_id] for order_id in attempted[1:]] == [OrderStatus.CANCELLED] * 2


class TestCaptureRace:

    async def test_capture_before_sweep_wins(self, session, session_factory, make_stale_order, reload):
        order = await make_stale_order()
        await reconcile_captured(session, order.id, "pi_race", CaptureSource.WEBHOOK)

        result = await sweep_abandoned_orders(session_factory, minutes=15)

        assert result.cancelled == 0
        refreshed = await reload(Order, order.id)
        assert refreshed.status == OrderStatus.ACCEPTED
        assert refreshed.payment_status == PaymentStatus.COMPLETED

    async def test_capture_after_sweep_reopens(self, session, session_factory, make_stale_order, customer, reload):
        order = await make_stale_order()
        await sweep_abandoned_orders(session_factory, minutes=15)

        result = await reconcile_captured(session, order.id, "pi_race", CaptureSource.WEBHOOK)

        assert result.outcome == ReconcileOutcome.APPLIED
        refreshed = await reload(Order, order.id)
        assert refreshed.status == OrderStatus.ACCEPTED
        assert refreshed.payment_status == PaymentStatus.COMPLETED
        stats = await reload(Customer, customer.id)
        assert stats.total_orders == 1
        assert stats.total_spent == refreshed.total_amount

    async def test_order_paid_between_scan_and_update_is_skipped(self, session, session_factory, make_stale_order, reload, monkeypatch):
        order = await make_stale_order()

        from restaurant_os.services import sweeper

        original_find = sweeper.find_abandoned_order_ids

        async def find_then_pay(scan_session, cutoff):
            found = await original_find(scan_session, cutoff)
            async with session_factory() as payer:
                await reconcile_captured(payer, order.id, "pi_race", CaptureSource.WEBHOOK)
            return found

        monkeypatch.setattr(sweeper, "find_abandoned_order_ids", find_then_pay)

        result = await sweep_abandoned_orders(session_factory, minutes=15)

        assert result.scanned == 1
        assert result.skipped == 1
        assert result.cancelled == 0
        refreshed = await reload(Order, order.id)
        assert refreshed.status == OrderStatus.ACCEPTED
        assert refreshed.payment_status == PaymentStatus.COMPLETED
        assert refreshed.total_amount == Decimal("25.00")
