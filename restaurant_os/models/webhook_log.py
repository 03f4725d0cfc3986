"""
Webhook delivery log
Audit trail of provider notifications, one row per delivery
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import Column, JSON
from datetime import datetime
from enum import Enum
from typing import Optional
import uuid


class WebhookOutcome(str, Enum):
    APPLIED = "applied"    # State changed
    NOOP = "noop"          # Already reconciled, nothing to do
    IGNORED = "ignored"    # Unknown order, unhandled event type or gated out
    ERROR = "error"        # Processing failed, still acknowledged to the provider


class WebhookLog(SQLModel, table=True):
    """Webhook log for debugging; idempotency is decided on the order row"""

    __tablename__ = "webhook_logs"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    provider: str = Field(max_length=20, index=True)
    event_type: Optional[str] = Field(default=None, max_length=100)
    event_id: Optional[str] = Field(default=None, max_length=255, index=True)
    order_ref: Optional[str] = Field(
        default=None,
        max_length=64,
        index=True,
        description="Correlation id echoed back by the provider (our order id)"
    )
    outcome: WebhookOutcome = Field(default=WebhookOutcome.IGNORED)
    error: Optional[str] = Field(default=None, max_length=1000)
    payload: Optional[dict] = Field(default=None, sa_column=Column(JSON, nullable=True))
    received_at: datetime = Field(default_factory=datetime.utcnow, index=True)
