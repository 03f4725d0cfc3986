"""
Webhook handlers for payment providers (Stripe, PayPal)

Providers retry anything that is not 2xx, so once a delivery is authentic it is
always acknowledged with 200 {"received": true}: unknown orders, unhandled
event types and processing errors are logged and recorded in webhook_logs
instead of being returned. Only a failed signature check is rejected. Signatures
are checked against the credentials of the restaurant that owns the order the
event refers to, so tenant keys configured in the admin settings also apply.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlmodel.ext.asyncio.session import AsyncSession
from typing import Any, Dict, Optional
import json
import structlog

from restaurant_os.core.database import get_session
from restaurant_os.core.exceptions import WebhookVerificationError
from restaurant_os.core.integrations import IntegrationSettings, load_integrations
from restaurant_os.models import Order, Restaurant, WebhookLog, WebhookOutcome
from restaurant_os.schemas.payments import WebhookAck
from restaurant_os.services.order_status import parse_order_id
from restaurant_os.services.payment_providers import PayPalProvider, StripeProvider
from restaurant_os.services.reconciliation import (
    CaptureSource, ReconcileOutcome, ReconcileResult, find_order_id_by_external_id,
    reconcile_captured, reconcile_denied, reconcile_refunded
)

logger = structlog.get_logger(__name__)

router = APIRouter()

RESULT_OUTCOMES = {
    ReconcileOutcome.APPLIED: WebhookOutcome.APPLIED,
    ReconcileOutcome.NOOP: WebhookOutcome.NOOP,
    ReconcileOutcome.IGNORED: WebhookOutcome.IGNORED,
}


async def write_webhook_log(session: AsyncSession, **fields) -> None:
    """Best effort audit row; a logging failure never changes the response"""
    try:
        session.add(WebhookLog(**fields))
        await session.commit()
    except Exception as e:
        await session.rollback()
        logger.error("Failed to write webhook log", provider=fields.get("provider"), error=str(e))



def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_ref(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


async def integrations_for_order(session: AsyncSession, order_ref: Optional[str]) -> IntegrationSettings:
    """
    Credentials that must have signed an event about order_ref.

    The reference is read from the unverified body, so it only selects which
    restaurant's keys to check against. Tenant credentials win when they are
    configured; otherwise the environment applies. Unsigned events are then
    accepted only when neither has credentials for the provider.
    """
    env = load_integrations()
    order_id = parse_order_id(order_ref) if order_ref else None
    if order_id is None:
        return env

    order = await session.get(Order, order_id)
    restaurant = await session.get(Restaurant, order.restaurant_id) if order is not None else None
    if restaurant is None:
        return env

    tenant = load_integrations(restaurant)
    return IntegrationSettings(
        stripe=tenant.stripe if tenant.stripe.is_configured or not env.stripe.is_configured else env.stripe,
        paypal=tenant.paypal if tenant.paypal.is_configured or not env.paypal.is_configured else env.paypal,
        currency=tenant.currency,
    )


# ============================================================================
# Stripe
# ============================================================================

def _stripe_object(event: Dict[str, Any]) -> Dict[str, Any]:
    return _as_dict(_as_dict(event.get("data")).get("object"))


async def stripe_order_ref(session: AsyncSession, event: Dict[str, Any]) -> Optional[str]:
    """Order id from metadata, else the order holding the PaymentIntent id"""
    obj = _stripe_object(event)
    order_ref = _as_ref(_as_dict(obj.get("metadata")).get("order_id"))
    if order_ref:
        return order_ref
    # Charges carry their own metadata; fall back to the PaymentIntent id
    external_id = obj.get("payment_intent") if event.get("type") == "charge.refunded" else obj.get("id")
    order_id = await find_order_id_by_external_id(session, _as_ref(external_id))
    return str(order_id) if order_id else None


async def handle_stripe_event(
    session: AsyncSession,
    event: Dict[str, Any],
    order_ref: Optional[str]
) -> Optional[ReconcileResult]:
    event_type = event.get("type")
    obj = _stripe_object(event)

    if event_type == "payment_intent.succeeded":
        if not order_ref:
            return None
        return await reconcile_captured(session, order_ref, _as_ref(obj.get("id")), CaptureSource.WEBHOOK)

    if event_type == "payment_intent.payment_failed":
        if not order_ref:
            return None
        return await reconcile_denied(session, order_ref)

    if event_type == "charge.refunded":
        if not obj.get("refunded"):
            logger.info("Partial Stripe refund ignored", charge_id=obj.get("id"))
            return None
        if not order_ref:
            return None
        return await reconcile_refunded(session, order_ref, provider="Stripe")

    logger.info("Unhandled Stripe event type", event_type=event_type)
    return None


@router.post("/stripe/webhook", response_model=WebhookAck)
async def stripe_webhook(request: Request, session: AsyncSession = Depends(get_session)):
    """Stripe events -> payment reconciliation"""
    payload = await request.body()
    try:
        claimed = json.loads(payload)
    except ValueError:
        claimed = None
    order_ref = await stripe_order_ref(session, claimed) if isinstance(claimed, dict) else None
    provider = StripeProvider((await integrations_for_order(session, order_ref)).stripe)

    try:
        event = provider.construct_event(payload, request.headers.get("stripe-signature"))
    except WebhookVerificationError as e:
        await write_webhook_log(session, provider="stripe", order_ref=order_ref, outcome=WebhookOutcome.ERROR, error=e.message)
        return JSONResponse(status_code=e.status_code, content=e.to_dict())

    if not isinstance(event, dict):
        logger.error("Invalid Stripe webhook payload", error="Event is not an object")
        await write_webhook_log(session, provider="stripe", outcome=WebhookOutcome.ERROR, error="Invalid payload")
        return WebhookAck()

    event_type = event.get("type")
    log_fields = dict(provider="stripe", event_type=event_type, event_id=event.get("id"), payload=event)
    logger.info("Processing Stripe event", event_type=event_type, event_id=event.get("id"), order_id=order_ref)

    try:
        result = await handle_stripe_event(session, event, order_ref)
    except Exception as e:
        logger.error("Stripe webhook processing failed", event_type=event_type, error=str(e), exc_info=True)
        await write_webhook_log(session, order_ref=order_ref, outcome=WebhookOutcome.ERROR, error=str(e)[:1000], **log_fields)
        return WebhookAck()

    outcome = RESULT_OUTCOMES[result.outcome] if result else WebhookOutcome.IGNORED
    if result and result.order_id:
        order_ref = str(result.order_id)
    await write_webhook_log(session, order_ref=order_ref, outcome=outcome, **log_fields)
    return WebhookAck()


# ============================================================================
# PayPal
# ============================================================================

def paypal_capture_id_from_links(resource: Dict[str, Any]) -> Optional[str]:
    """Refund resources link back to their capture via rel=up"""
    links = resource.get("links")
    for link in links if isinstance(links, list) else []:
        href = _as_ref(_as_dict(link).get("href"))
        if _as_dict(link).get("rel") == "up" and href and "/captures/" in href:
            return href.rstrip("/").rsplit("/", 1)[-1]
    return None


async def paypal_order_ref(session: AsyncSession, event: Dict[str, Any]) -> Optional[str]:
    """custom_id, else the order holding the denied capture or the refunded one"""
    event_type = event.get("event_type")
    resource = _as_dict(event.get("resource"))
    order_ref = _as_ref(resource.get("custom_id"))
    if order_ref:
        return order_ref

    if event_type == "PAYMENT.CAPTURE.DENIED":
        external_id = _as_ref(resource.get("id"))
    elif event_type == "PAYMENT.CAPTURE.REFUNDED":
        external_id = paypal_capture_id_from_links(resource)
    else:
        return None
    order_id = await find_order_id_by_external_id(session, external_id)
    return str(order_id) if order_id else None


async def handle_paypal_event(
    session: AsyncSession,
    event: Dict[str, Any],
    order_ref: Optional[str]
) -> Optional[ReconcileResult]:
    event_type = event.get("event_type")
    resource = _as_dict(event.get("resource"))

    if event_type == "PAYMENT.CAPTURE.COMPLETED":
        if not order_ref:
            logger.error("No order ID in PayPal webhook", event_type=event_type)
            return None
        return await reconcile_captured(session, order_ref, _as_ref(resource.get("id")), CaptureSource.WEBHOOK)

    if event_type == "PAYMENT.CAPTURE.DENIED":
        if not order_ref:
            return None
        return await reconcile_denied(session, order_ref)

    if event_type == "PAYMENT.CAPTURE.REFUNDED":
        if not order_ref:
            return None
        return await reconcile_refunded(session, order_ref, provider="PayPal")

    logger.info("Unhandled PayPal event type", event_type=event_type)
    return None


@router.post("/paypal/webhook", response_model=WebhookAck)
async def paypal_webhook(request: Request, session: AsyncSession = Depends(get_session)):
    """PayPal events -> payment reconciliation"""
    try:
        event = json.loads(await request.body())
    except ValueError as e:
        logger.error("Invalid PayPal webhook payload", error=str(e))
        await write_webhook_log(session, provider="paypal", outcome=WebhookOutcome.ERROR, error="Invalid payload")
        return WebhookAck()

    if not isinstance(event, dict) or (event.get("resource") is not None and not isinstance(event["resource"], dict)):
        logger.error("Invalid PayPal webhook payload", error="Event or resource is not an object")
        await write_webhook_log(session, provider="paypal", outcome=WebhookOutcome.ERROR, error="Invalid payload")
        return WebhookAck()

    event_type = event.get("event_type")
    log_fields = dict(provider="paypal", event_type=event_type, event_id=event.get("id"), payload=event)
    logger.info("Processing PayPal event", event_type=event_type, event_id=event.get("id"))
    order_ref = None

    try:
        order_ref = await paypal_order_ref(session, event)
        provider = PayPalProvider((await integrations_for_order(session, order_ref)).paypal)
        verified = await provider.verify_webhook(request.headers, event)
        if not verified:
            error = WebhookVerificationError("Invalid signature")
            await write_webhook_log(session, order_ref=order_ref, outcome=WebhookOutcome.ERROR, error=error.message, **log_fields)
            return JSONResponse(status_code=error.status_code, content=error.to_dict())

        result = await handle_paypal_event(session, event, order_ref)
    except Exception as e:
        logger.error("PayPal webhook processing failed", event_type=event_type, error=str(e), exc_info=True)
        await write_webhook_log(session, order_ref=order_ref, outcome=WebhookOutcome.ERROR, error=str(e)[:1000], **log_fields)
        return WebhookAck()

    outcome = RESULT_OUTCOMES[result.outcome] if result else WebhookOutcome.IGNORED
    if result and result.order_id:
        order_ref = str(result.order_id)
    await write_webhook_log(session, order_ref=order_ref, outcome=outcome, **log_fields)
    return WebhookAck()
