"""
Order notifications

The core only knows the Notifier interface. Delivery (email, SMS, push) is an
external collaborator plugged in at startup; the default just logs.
"""

from typing import Optional, Protocol
import uuid
import structlog

from restaurant_os.core.events import EventBus, OrderStatusChanged, event_bus

logger = structlog.get_logger(__name__)


class Notifier(Protocol):
    async def notify(self, order_id: uuid.UUID, new_status: str) -> None:
        ...


class LoggingNotifier:
    """Default notifier used when no transport is configured"""

    async def notify(self, order_id: uuid.UUID, new_status: str) -> None:
        logger.info("Order status notification", order_id=str(order_id), status=new_status)


def register_notifier(notifier: Notifier, bus: Optional[EventBus] = None):
    """Subscribe a notifier to status changes; returns the handler for unsubscribe"""
    bus = bus or event_bus

    async def on_status_changed(event: OrderStatusChanged):
        try:
            await notifier.notify(event.order_id, event.status)
        except Exception as e:
            # Never propagated: the transition is already committed
            logger.error(
                "Failed to send order status notification",
                order_id=str(event.order_id),
                status=event.status,
                error=str(e),
            )

    bus.subscribe(OrderStatusChanged.__name__, on_status_changed)
    return on_status_changed
