"""
Payment API endpoints
Charge creation per provider and the synchronous confirmation paths
"""

from fastapi import APIRouter, Depends, status
from sqlmodel.ext.asyncio.session import AsyncSession
from typing import Optional
import uuid
import structlog

from restaurant_os.api.orders import load_visible_order
from restaurant_os.core.database import get_session
from restaurant_os.core.dependencies import CurrentUser, get_current_user
from restaurant_os.core.exceptions import (
    InvalidTransitionError, NotFoundError, OrderValidationError, PaymentProviderError
)
from restaurant_os.core.integrations import IntegrationSettings, load_integrations
from restaurant_os.models import Order, OrderStatus, PaymentMethod, PaymentStatus, Restaurant
from restaurant_os.schemas.payments import (
    ChargeRead, ChargeResponse, PaymentCreateRequest, PayPalCaptureRequest,
    ReconcileRead, ReconcileResponse, StripeConfirmRequest
)
from restaurant_os.services.order_status import get_order
from restaurant_os.services.payment_providers import (
    CashProvider, ChargeResult, PaymentProvider, PayPalProvider, StripeProvider
)
from restaurant_os.services.reconciliation import (
    CaptureSource, ReconcileResult, reconcile_captured
)

logger = structlog.get_logger(__name__)

router = APIRouter()

DEV_MODE_MESSAGES = {
    PaymentMethod.STRIPE: "Add Stripe keys in Admin Settings > Payment to enable real payments",
    PaymentMethod.PAYPAL: "Add PayPal credentials in Admin Settings > Payment to enable real payments",
}


async def get_integrations(order: Order, session: AsyncSession) -> IntegrationSettings:
    restaurant = await session.get(Restaurant, order.restaurant_id)
    if restaurant is None:
        raise NotFoundError("Restaurant not found")
    return load_integrations(restaurant)


async def load_payable_order(
    session: AsyncSession,
    order_id: uuid.UUID,
    current_user: CurrentUser,
    method: PaymentMethod
) -> Order:
    """Order must be visible to the caller, placed with this method and still unpaid"""
    order = await load_visible_order(session, order_id, current_user)
    if order.payment_method != method:
        raise OrderValidationError.for_field(
            "order_id", f"Order was placed with {order.payment_method.value}, not {method.value}"
        )
    if order.status != OrderStatus.PENDING or order.payment_status not in (PaymentStatus.PENDING, PaymentStatus.FAILED):
        raise InvalidTransitionError("Order is not awaiting payment")
    return order


async def remember_external_id(session: AsyncSession, order_id: uuid.UUID, external_id: Optional[str]) -> None:
    """Store the provider reference on a still-unpaid order for later correlation"""
    if not external_id:
        await session.commit()
        return
    try:
        order = await get_order(session, order_id, for_update=True)
        if order is not None and order.payment_status in (PaymentStatus.PENDING, PaymentStatus.FAILED):
            order.payment_intent_id = external_id
            order.touch()
            session.add(order)
        await session.commit()
    except Exception:
        await session.rollback()
        raise


async def start_charge(
    session: AsyncSession,
    order: Order,
    provider: PaymentProvider,
    currency: str
) -> ChargeResponse:
    # Capture everything needed before the session is touched again
    order_id = order.id
    amount = order.total_amount
    metadata = {
        "order_id": str(order.id),
        "order_number": order.order_number,
        "customer_id": str(order.customer_id),
    }
    # Release the read transaction before calling out to the provider
    await session.commit()

    result: ChargeResult = await provider.create_charge(amount, currency, metadata)
    if not result.success:
        raise PaymentProviderError(provider.name, result.error or "Failed to create payment")

    await remember_external_id(session, order_id, result.external_id)
    logger.info(
        "Payment charge created",
        order_id=str(order_id),
        provider=provider.name,
        external_id=result.external_id,
        simulated=result.simulated,
    )
    return ChargeResponse(
        data=ChargeRead(
            order_id=order_id,
            provider=provider.name,
            amount=amount,
            currency=currency.upper(),
            external_id=result.external_id,
            client_secret=result.client_secret,
            approve_url=result.approve_url,
            status=result.status,
        ),
        is_development_mode=result.simulated,
        message=DEV_MODE_MESSAGES.get(order.payment_method) if result.simulated else None,
    )


def reconcile_response(result: ReconcileResult) -> ReconcileResponse:
    return ReconcileResponse(
        data=ReconcileRead(
            outcome=result.outcome.value,
            order_id=result.order_id,
            status=result.status,
            payment_status=result.payment_status,
        )
    )


@router.post("/stripe/create-intent", response_model=ChargeResponse, status_code=status.HTTP_201_CREATED)
async def create_stripe_intent(
    body: PaymentCreateRequest,
    session: AsyncSession = Depends(get_session),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Create a Stripe PaymentIntent for the order total; returns the client secret"""
    order = await load_payable_order(session, body.order_id, current_user, PaymentMethod.STRIPE)
    integrations = await get_integrations(order, session)
    return await start_charge(session, order, StripeProvider(integrations.stripe), integrations.currency)


@router.post("/stripe/confirm", response_model=ReconcileResponse)
async def confirm_stripe_payment(
    body: StripeConfirmRequest,
    session: AsyncSession = Depends(get_session),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Client confirmation path: verify the intent with Stripe, then reconcile"""
    order = await load_visible_order(session, body.order_id, current_user)
    integrations = await get_integrations(order, session)
    order_id = order.id
    await session.commit()

    intent = await StripeProvider(integrations.stripe).retrieve(body.payment_intent_id)
    if intent.order_ref and intent.order_ref != str(order_id):
        raise OrderValidationError.for_field("payment_intent_id", "Payment intent does not belong to this order")
    if not intent.success:
        raise OrderValidationError.for_field(
            "payment_intent_id", f"Payment not completed (status: {intent.status})"
        )

    result = await reconcile_captured(session, order_id, intent.external_id, CaptureSource.CLIENT)
    return reconcile_response(result)


@router.post("/paypal/create-order", response_model=ChargeResponse, status_code=status.HTTP_201_CREATED)
async def create_paypal_order(
    body: PaymentCreateRequest,
    session: AsyncSession = Depends(get_session),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Create a PayPal order; the client is redirected to the approve link"""
    order = await load_payable_order(session, body.order_id, current_user, PaymentMethod.PAYPAL)
    integrations = await get_integrations(order, session)
    return await start_charge(session, order, PayPalProvider(integrations.paypal), integrations.currency)


@router.post("/paypal/capture-order", response_model=ReconcileResponse)
async def capture_paypal_order(
    body: PayPalCaptureRequest,
    session: AsyncSession = Depends(get_session),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Return-from-approval path: capture the PayPal order, then reconcile"""
    order = await load_visible_order(session, body.order_id, current_user)
    integrations = await get_integrations(order, session)
    order_id = order.id
    await session.commit()

    capture = await PayPalProvider(integrations.paypal).capture(body.paypal_order_id)
    if capture.order_ref and capture.order_ref != str(order_id):
        raise OrderValidationError.for_field("paypal_order_id", "PayPal order does not belong to this order")
    if not capture.success:
        raise PaymentProviderError("paypal", f"PayPal capture not completed (status: {capture.status})")

    result = await reconcile_captured(session, order_id, capture.external_id, CaptureSource.CLIENT)
    return reconcile_response(result)


@router.post("/cash/create-order", response_model=ChargeResponse, status_code=status.HTTP_201_CREATED)
async def create_cash_payment(
    body: PaymentCreateRequest,
    session: AsyncSession = Depends(get_session),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Cash is collected in person; payment completes when the order is accepted"""
    order = await load_payable_order(session, body.order_id, current_user, PaymentMethod.CASH)
    integrations = await get_integrations(order, session)
    return await start_charge(session, order, CashProvider(), integrations.currency)
