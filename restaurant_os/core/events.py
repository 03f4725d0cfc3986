"""
Domain events system

Domain events represent important business events that can be published
and subscribed to by multiple parts of the system. They are published after
the owning transaction commits; handler failures are logged and never reach
the code that published the event.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Set
import asyncio
import uuid
import structlog

logger = structlog.get_logger(__name__)


class DomainEvent:
    """Base class for domain events"""

    def __init__(self, event_id: uuid.UUID = None):
        self.event_id = event_id or uuid.uuid4()
        self.occurred_at = datetime.utcnow()

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary"""
        return {
            "event_id": str(self.event_id),
            "occurred_at": self.occurred_at.isoformat(),
            "event_type": self.__class__.__name__
        }


class OrderCreated(DomainEvent):
    """Event fired when an order has been placed"""

    def __init__(
        self,
        order_id: uuid.UUID,
        order_number: str,
        restaurant_id: uuid.UUID,
        customer_id: uuid.UUID,
        total_amount: Decimal,
        event_id: uuid.UUID = None
    ):
        super().__init__(event_id)
        self.order_id = order_id
        self.order_number = order_number
        self.restaurant_id = restaurant_id
        self.customer_id = customer_id
        self.total_amount = total_amount

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "order_id": str(self.order_id),
            "order_number": self.order_number,
            "restaurant_id": str(self.restaurant_id),
            "customer_id": str(self.customer_id),
            "total_amount": str(self.total_amount)
        })
        return data


class OrderStatusChanged(DomainEvent):
    """Event fired when an order moves to a new fulfillment status"""

    def __init__(
        self,
        order_id: uuid.UUID,
        order_number: str,
        restaurant_id: uuid.UUID,
        customer_id: uuid.UUID,
        status: str,
        previous_status: Optional[str] = None,
        note: Optional[str] = None,
        event_id: uuid.UUID = None
    ):
        super().__init__(event_id)
        self.order_id = order_id
        self.order_number = order_number
        self.restaurant_id = restaurant_id
        self.customer_id = customer_id
        self.status = status
        self.previous_status = previous_status
        self.note = note

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "order_id": str(self.order_id),
            "order_number": self.order_number,
            "restaurant_id": str(self.restaurant_id),
            "customer_id": str(self.customer_id),
            "status": self.status,
            "previous_status": self.previous_status,
            "note": self.note
        })
        return data


class PaymentEvent(DomainEvent):
    """Common shape for payment reconciliation events"""

    def __init__(
        self,
        order_id: uuid.UUID,
        restaurant_id: uuid.UUID,
        amount: Decimal,
        method: str,
        external_id: Optional[str] = None,
        event_id: uuid.UUID = None
    ):
        super().__init__(event_id)
        self.order_id = order_id
        self.restaurant_id = restaurant_id
        self.amount = amount
        self.method = method
        self.external_id = external_id

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "order_id": str(self.order_id),
            "restaurant_id": str(self.restaurant_id),
            "amount": str(self.amount),
            "method": self.method,
            "external_id": self.external_id
        })
        return data


class PaymentCaptured(PaymentEvent):
    """Event fired when a payment is captured for an order"""


class PaymentDenied(PaymentEvent):
    """Event fired when the provider declines a payment"""


class PaymentRefunded(PaymentEvent):
    """Event fired when a captured payment is refunded"""


class EventBus:
    """Simple in-memory event bus for publishing domain events"""

    def __init__(self):
        self._subscribers: Dict[str, List[Callable]] = {}
        self._pending: Set[asyncio.Task] = set()

    def subscribe(self, event_type: str, handler: Callable):
        """Subscribe to a specific event type"""
        if event_type not in self._subscribers:
            self._subscribers[event_type] = []
        self._subscribers[event_type].append(handler)
        logger.debug("Subscribed handler to event type", event_type=event_type)

    def unsubscribe(self, event_type: str, handler: Callable):
        """Unsubscribe from an event type"""
        if event_type in self._subscribers:
            self._subscribers[event_type].remove(handler)
            logger.debug("Unsubscribed handler from event type", event_type=event_type)

    async def publish(self, event: DomainEvent):
        """Publish an event to all subscribers"""
        event_type = event.__class__.__name__
        handlers = self._subscribers.get(event_type, [])

        if not handlers:
            logger.debug("No subscribers for event type", event_type=event_type)
            return

        logger.info("Publishing event", event_type=event_type, event_id=str(event.event_id))

        for handler in handlers:
            try:
                await handler(event)
            except Exception as e:
                logger.error(
                    "Error in event handler",
                    event_type=event_type,
                    error=str(e),
                    exc_info=True
                )

    def publish_nowait(self, event: DomainEvent) -> Optional[asyncio.Task]:
        """Schedule publish() in the background; the caller never awaits handlers"""
        try:
            task = asyncio.get_running_loop().create_task(self.publish(event))
        except RuntimeError:
            logger.warning("No running event loop, dropping event", event_type=event.__class__.__name__)
            return None
        # Keep a reference until done so the task is not garbage collected
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self):
        """Wait for background publishes (used on shutdown and in tests)"""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def clear_subscribers(self):
        """Clear all subscribers (useful for testing)"""
        self._subscribers.clear()
        logger.debug("Cleared all event subscribers")


# Global event bus instance
event_bus = EventBus()
