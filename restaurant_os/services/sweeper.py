"""
Abandoned order sweeper

Cancels online-payment orders that stayed PENDING and unpaid past the
threshold. Each order is handled in its own transaction through a conditional
UPDATE, so an order paid between the scan and the update is left alone.
"""

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional
import uuid

from sqlalchemy import update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
import structlog

from restaurant_os.core.config import get_settings
from restaurant_os.models.order import Order, OrderStatus, PaymentMethod, PaymentStatus
from restaurant_os.models.order_status_history import OrderStatusHistory, SYSTEM_ACTOR
from restaurant_os.services.customer_stats import reverse_order
from restaurant_os.services.inventory import restore_inventory
from restaurant_os.services.order_status import get_order, publish_status_change

logger = structlog.get_logger(__name__)

# Denied payments stay open for a retry until the sweeper picks them up
UNPAID_STATUSES = (PaymentStatus.PENDING, PaymentStatus.FAILED)


def sweep_note(minutes: int) -> str:
    return f"Order cancelled automatically - payment not completed within {minutes} minutes"


@dataclass
class SweepResult:
    scanned: int = 0
    cancelled: int = 0
    skipped: int = 0
    failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


async def find_abandoned_order_ids(session: AsyncSession, cutoff: datetime) -> list:
    result = await session.exec(
        select(Order.id)
        .where(
            Order.status == OrderStatus.PENDING,
            Order.payment_status.in_(UNPAID_STATUSES),
            Order.payment_method != PaymentMethod.CASH,
            Order.created_at < cutoff,
        )
        .order_by(Order.created_at)
    )
    return list(result.all())


async def cancel_abandoned_order(session: AsyncSession, order_id: uuid.UUID, note: str) -> bool:
    """Cancel one order if it is still unpaid; returns False when someone got there first"""
    now = datetime.utcnow()
    try:
        outcome = await session.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.status == OrderStatus.PENDING,
                Order.payment_status.in_(UNPAID_STATUSES),
            )
            .values(
                status=OrderStatus.CANCELLED,
                cancelled_at=now,
                updated_at=now,
                version=Order.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if outcome.rowcount != 1:
            await session.rollback()
            return False

        # Row is ours for the rest of the transaction
        order = await get_order(session, order_id, for_update=True)
        order.history.append(
            OrderStatusHistory(order_id=order.id, status=OrderStatus.CANCELLED, note=note, created_by=SYSTEM_ACTOR)
        )
        await restore_inventory(session, order)
        await reverse_order(session, order)
        session.add(order)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info("Cancelled abandoned order", order_id=str(order.id), order_number=order.order_number)
    publish_status_change(order, OrderStatus.PENDING, note)
    return True


async def sweep_abandoned_orders(
    session_factory: Callable[[], AsyncSession],
    minutes: Optional[int] = None,
    now: Optional[datetime] = None
) -> SweepResult:
    """
    Run one sweep. A failing order is logged and counted and the run moves on
    to the next one.
    """
    minutes = minutes if minutes is not None else get_settings().ABANDONED_ORDER_MINUTES
    cutoff = (now or datetime.utcnow()) - timedelta(minutes=minutes)
    note = sweep_note(minutes)
    result = SweepResult()

    async with session_factory() as session:
        order_ids = await find_abandoned_order_ids(session, cutoff)
    result.scanned = len(order_ids)

    if not order_ids:
        logger.info("No abandoned orders found", cutoff=cutoff.isoformat())
        return result

    for order_id in order_ids:
        try:
            async with session_factory() as session:
                cancelled = await cancel_abandoned_order(session, order_id, note)
        except Exception as e:
            result.failed += 1
            logger.error("Failed to cancel abandoned order", order_id=str(order_id), error=str(e), exc_info=True)
            continue
        if cancelled:
            result.cancelled += 1
        else:
            result.skipped += 1
            logger.info("Order no longer abandoned, skipped", order_id=str(order_id))

    logger.info("Abandoned order sweep complete", **result.to_dict())
    return result
