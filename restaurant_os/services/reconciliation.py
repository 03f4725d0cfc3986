"""
Payment reconciliation

Converges order and payment state with what a provider reports. Called from
webhooks (at-least-once, possibly out of order) and from the client
confirmation path. Every branch is decided on the payment status read under
the row lock of the transaction that writes the result, so duplicate or racing
deliveries serialize and never double-apply side effects.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union
import uuid

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
import structlog

from restaurant_os.core.events import (
    PaymentCaptured, PaymentDenied, PaymentRefunded, event_bus
)
from restaurant_os.models.order import (
    Order, OrderStatus, PaymentStatus, REVERSING_STATUSES
)
from restaurant_os.models.order_status_history import SYSTEM_ACTOR
from restaurant_os.services.customer_stats import count_order, reverse_order
from restaurant_os.services.inventory import apply_inventory, restore_inventory
from restaurant_os.services.order_status import (
    get_order, publish_status_change, record_status
)

logger = structlog.get_logger(__name__)


class CaptureSource(str, Enum):
    WEBHOOK = "webhook"
    CLIENT = "client confirmation"

    @property
    def note(self) -> str:
        return f"Payment completed via {self.value}"


class ReconcileOutcome(str, Enum):
    APPLIED = "applied"
    NOOP = "noop"
    IGNORED = "ignored"


@dataclass
class ReconcileResult:
    outcome: ReconcileOutcome
    order_id: Optional[uuid.UUID] = None
    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None
    reason: Optional[str] = None

    @classmethod
    def for_order(cls, outcome: ReconcileOutcome, order: Order, reason: Optional[str] = None) -> "ReconcileResult":
        return cls(
            outcome=outcome,
            order_id=order.id,
            status=order.status,
            payment_status=order.payment_status,
            reason=reason,
        )


def _unknown_order(order_id, operation: str) -> ReconcileResult:
    logger.warning("Reconciliation for unknown order ignored", order_id=str(order_id), operation=operation)
    return ReconcileResult(outcome=ReconcileOutcome.IGNORED, reason="Order not found")


async def find_order_id_by_external_id(session: AsyncSession, external_id: Optional[str]) -> Optional[uuid.UUID]:
    """Fallback correlation for events that only carry the provider transaction id"""
    if not external_id:
        return None
    result = await session.exec(select(Order.id).where(Order.payment_intent_id == external_id))
    return result.first()


async def reconcile_captured(
    session: AsyncSession,
    order_id: Union[str, uuid.UUID],
    external_id: Optional[str],
    source: CaptureSource = CaptureSource.WEBHOOK
) -> ReconcileResult:
    """
    Mark the order paid.

    PENDING orders become ACCEPTED. A capture landing after the order was
    cancelled (sweeper, customer) reopens it as ACCEPTED and re-applies
    inventory and stats, so the last applied event decides the final state.
    After a refund only a new capture id reopens the order; the refunded
    capture arriving again is a no-op.
    """
    try:
        order = await get_order(session, order_id, for_update=True)
        if order is None:
            await session.commit()
            return _unknown_order(order_id, "captured")

        if order.payment_status == PaymentStatus.COMPLETED:
            result = ReconcileResult.for_order(ReconcileOutcome.NOOP, order)
            await session.commit()
            logger.info("Payment already completed", order_id=str(result.order_id), source=source.value)
            return result

        # Redelivery of the capture that was later refunded
        if order.payment_status == PaymentStatus.REFUNDED and (
            not external_id or external_id == order.payment_intent_id
        ):
            result = ReconcileResult.for_order(ReconcileOutcome.NOOP, order, "Payment already refunded")
            await session.commit()
            logger.info("Capture of refunded payment ignored", order_id=str(result.order_id), external_id=external_id)
            return result

        previous: Optional[OrderStatus] = None
        order.payment_status = PaymentStatus.COMPLETED
        if external_id:
            order.payment_intent_id = external_id
        if order.status == OrderStatus.PENDING or order.status in REVERSING_STATUSES:
            previous = record_status(order, OrderStatus.ACCEPTED, SYSTEM_ACTOR, source.note)
        else:
            order.touch()

        await apply_inventory(session, order)
        await count_order(session, order)
        session.add(order)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info(
        "Payment captured",
        order_id=str(order.id),
        order_number=order.order_number,
        external_id=external_id,
        source=source.value,
        reopened=previous in REVERSING_STATUSES if previous else False,
    )
    event_bus.publish_nowait(
        PaymentCaptured(
            order_id=order.id,
            restaurant_id=order.restaurant_id,
            amount=order.total_amount,
            method=order.payment_method.value,
            external_id=external_id,
        )
    )
    if previous is not None:
        publish_status_change(order, previous, source.note)
    return ReconcileResult.for_order(ReconcileOutcome.APPLIED, order)


async def reconcile_denied(session: AsyncSession, order_id: Union[str, uuid.UUID]) -> ReconcileResult:
    """Mark the payment FAILED; the order stays where it is, open for retry or the sweeper"""
    try:
        order = await get_order(session, order_id, for_update=True)
        if order is None:
            await session.commit()
            return _unknown_order(order_id, "denied")

        if order.payment_status in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED):
            result = ReconcileResult.for_order(ReconcileOutcome.IGNORED, order, "Payment already settled")
            await session.commit()
            logger.warning(
                "Denial ignored for settled payment",
                order_id=str(result.order_id),
                payment_status=result.payment_status.value,
            )
            return result

        if order.payment_status == PaymentStatus.FAILED:
            result = ReconcileResult.for_order(ReconcileOutcome.NOOP, order)
            await session.commit()
            return result

        order.payment_status = PaymentStatus.FAILED
        order.touch()
        session.add(order)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info("Payment denied", order_id=str(order.id), order_number=order.order_number)
    event_bus.publish_nowait(
        PaymentDenied(
            order_id=order.id,
            restaurant_id=order.restaurant_id,
            amount=order.total_amount,
            method=order.payment_method.value,
            external_id=order.payment_intent_id,
        )
    )
    return ReconcileResult.for_order(ReconcileOutcome.APPLIED, order)


async def reconcile_refunded(
    session: AsyncSession,
    order_id: Union[str, uuid.UUID],
    provider: str = "provider"
) -> ReconcileResult:
    """
    Refund the order: payment REFUNDED, order CANCELLED, stock returned,
    total_spent reduced. total_orders keeps counting the order.
    """
    try:
        order = await get_order(session, order_id, for_update=True)
        if order is None:
            await session.commit()
            return _unknown_order(order_id, "refunded")

        if order.payment_status == PaymentStatus.REFUNDED:
            result = ReconcileResult.for_order(ReconcileOutcome.NOOP, order)
            await session.commit()
            logger.info("Refund already applied", order_id=str(result.order_id))
            return result

        note = f"Payment refunded via {provider}"
        order.payment_status = PaymentStatus.REFUNDED
        previous: Optional[OrderStatus] = None
        if order.status != OrderStatus.CANCELLED:
            previous = record_status(order, OrderStatus.CANCELLED, SYSTEM_ACTOR, note)
        else:
            order.touch()

        await restore_inventory(session, order)
        await reverse_order(session, order, include_orders=False)
        session.add(order)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info("Payment refunded", order_id=str(order.id), order_number=order.order_number, provider=provider)
    event_bus.publish_nowait(
        PaymentRefunded(
            order_id=order.id,
            restaurant_id=order.restaurant_id,
            amount=order.total_amount,
            method=order.payment_method.value,
            external_id=order.payment_intent_id,
        )
    )
    if previous is not None:
        publish_status_change(order, previous, note)
    return ReconcileResult.for_order(ReconcileOutcome.APPLIED, order)
