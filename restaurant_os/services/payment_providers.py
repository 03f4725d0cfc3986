"""
Payment provider adapters

Uniform create_charge(amount, currency, metadata) -> ChargeResult for Stripe
(card), PayPal (wallet) and cash. Without real credentials the Stripe and
PayPal adapters return a simulated success so development flows keep working;
configured credentials always hit the provider.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Mapping, Optional
import asyncio
import json
import uuid

import httpx
import stripe
import structlog

from restaurant_os.core.config import get_settings
from restaurant_os.core.exceptions import PaymentProviderError, WebhookVerificationError
from restaurant_os.core.integrations import (
    PayPalCredentials, StripeCredentials, is_placeholder_credential
)

logger = structlog.get_logger(__name__)

ZERO_DECIMAL_CURRENCIES = frozenset({"JPY", "KRW", "VND", "CLP", "ISK", "UGX"})


@dataclass
class ChargeResult:
    """Normalized provider response"""
    success: bool
    external_id: Optional[str] = None
    client_secret: Optional[str] = None
    approve_url: Optional[str] = None
    status: Optional[str] = None
    error: Optional[str] = None
    simulated: bool = False
    order_ref: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


def to_minor_units(amount: Decimal, currency: str) -> int:
    if currency.upper() in ZERO_DECIMAL_CURRENCIES:
        return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _dev_suffix() -> str:
    return f"{int(datetime.utcnow().timestamp() * 1000)}_{uuid.uuid4().hex[:8]}"


class PaymentProvider(ABC):
    """Base adapter; subclasses bound every outbound call by the configured timeout"""

    name: str = "provider"

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout if timeout is not None else get_settings().PAYMENT_PROVIDER_TIMEOUT_SECONDS

    @property
    def simulated(self) -> bool:
        return False

    @abstractmethod
    async def create_charge(self, amount: Decimal, currency: str, metadata: Mapping[str, str]) -> ChargeResult:
        ...

    async def _bounded(self, awaitable, action: str):
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error("Payment provider timed out", provider=self.name, action=action, timeout=self.timeout)
            raise PaymentProviderError(self.name, f"{self.name} did not respond in time ({action})")


class StripeProvider(PaymentProvider):
    """Card payments through Stripe PaymentIntents"""

    name = "stripe"

    def __init__(self, credentials: StripeCredentials, timeout: Optional[float] = None):
        super().__init__(timeout)
        self.credentials = credentials

    @property
    def simulated(self) -> bool:
        return not self.credentials.is_configured

    async def create_charge(self, amount: Decimal, currency: str, metadata: Mapping[str, str]) -> ChargeResult:
        if self.simulated:
            suffix = _dev_suffix()
            logger.warning("Stripe not configured, simulating payment intent", order_id=metadata.get("order_id"))
            return ChargeResult(
                success=True,
                external_id=f"pi_dev_mock_{suffix}",
                client_secret=f"dev_mock_client_secret_{suffix}",
                status="requires_payment_method",
                simulated=True,
                order_ref=metadata.get("order_id"),
            )

        try:
            intent = await self._bounded(
                stripe.PaymentIntent.create_async(
                    amount=to_minor_units(amount, currency),
                    currency=currency.lower(),
                    metadata=dict(metadata),
                    automatic_payment_methods={"enabled": True},
                    api_key=self.credentials.secret_key,
                ),
                "create payment intent",
            )
        except stripe.StripeError as e:
            logger.error("Stripe payment intent creation failed", error=str(e))
            raise PaymentProviderError(self.name, e.user_message or "Failed to create payment intent") from e

        return ChargeResult(
            success=True,
            external_id=intent.id,
            client_secret=intent.client_secret,
            status=intent.status,
            order_ref=(intent.metadata or {}).get("order_id"),
        )

    async def retrieve(self, payment_intent_id: str) -> ChargeResult:
        """Look up a PaymentIntent for the client confirmation path"""
        if self.simulated:
            # Simulated intents can only come from create_charge above
            if not payment_intent_id.startswith("pi_dev_mock_"):
                raise PaymentProviderError(self.name, "Unknown simulated payment intent")
            return ChargeResult(success=True, external_id=payment_intent_id, status="succeeded", simulated=True)

        try:
            intent = await self._bounded(
                stripe.PaymentIntent.retrieve_async(payment_intent_id, api_key=self.credentials.secret_key),
                "retrieve payment intent",
            )
        except stripe.StripeError as e:
            logger.error("Stripe payment intent lookup failed", payment_intent_id=payment_intent_id, error=str(e))
            raise PaymentProviderError(self.name, e.user_message or "Failed to retrieve payment intent") from e

        return ChargeResult(
            success=intent.status == "succeeded",
            external_id=intent.id,
            status=intent.status,
            order_ref=(intent.metadata or {}).get("order_id"),
        )

    def construct_event(self, payload: bytes, sig_header: Optional[str]) -> Dict[str, Any]:
        """Verify the Stripe-Signature header and return the event"""
        if is_placeholder_credential(self.credentials.webhook_secret):
            if not self.simulated:
                raise WebhookVerificationError("Stripe webhook secret is not configured")
            logger.warning("Stripe webhook secret not configured, accepting unsigned event")
        else:
            if not sig_header:
                logger.error("Missing Stripe-Signature header")
                raise WebhookVerificationError("Missing signature")
            try:
                stripe.Webhook.construct_event(payload, sig_header, self.credentials.webhook_secret)
            except ValueError as e:
                logger.error("Invalid Stripe webhook payload", error=str(e))
                raise WebhookVerificationError("Invalid payload") from e
            except stripe.SignatureVerificationError as e:
                logger.error("Invalid Stripe webhook signature", error=str(e))
                raise WebhookVerificationError("Invalid signature") from e

        try:
            return json.loads(payload)
        except ValueError as e:
            raise WebhookVerificationError("Invalid payload") from e


class PayPalProvider(PaymentProvider):
    """Wallet payments through PayPal Orders v2"""

    name = "paypal"

    def __init__(
        self,
        credentials: PayPalCredentials,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        super().__init__(timeout)
        self.credentials = credentials
        self._transport = transport

    @property
    def simulated(self) -> bool:
        return not self.credentials.is_configured

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.credentials.api_base,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _access_token(self, client: httpx.AsyncClient) -> str:
        response = await client.post(
            "/v1/oauth2/token",
            data={"grant_type": "client_credentials"},
            auth=(self.credentials.client_id, self.credentials.client_secret),
            headers={"Accept": "application/json"},
        )
        response.raise_for_status()
        return response.json()["access_token"]

    async def _call(self, action: str, method: str, url: str, **kwargs) -> Dict[str, Any]:
        """OAuth token then one API call, both inside the timeout budget"""
        async def run():
            async with self._client() as client:
                token = await self._access_token(client)
                response = await client.request(
                    method,
                    url,
                    headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
                    **kwargs,
                )
                response.raise_for_status()
                return response.json()

        try:
            return await self._bounded(run(), action)
        except httpx.TimeoutException as e:
            logger.error("PayPal request timed out", action=action)
            raise PaymentProviderError(self.name, f"paypal did not respond in time ({action})") from e
        except httpx.HTTPStatusError as e:
            logger.error(
                "PayPal request failed",
                action=action,
                status_code=e.response.status_code,
                body=e.response.text[:500],
            )
            raise PaymentProviderError(self.name, f"PayPal rejected the request ({action})") from e
        except httpx.HTTPError as e:
            logger.error("PayPal unreachable", action=action, error=str(e))
            raise PaymentProviderError(self.name, f"PayPal is unreachable ({action})") from e

    async def create_charge(self, amount: Decimal, currency: str, metadata: Mapping[str, str]) -> ChargeResult:
        order_ref = metadata.get("order_id")
        if self.simulated:
            logger.warning("PayPal not configured, simulating order", order_id=order_ref)
            return ChargeResult(
                success=True,
                external_id=f"PAYPAL-DEV-{_dev_suffix()}",
                status="CREATED",
                simulated=True,
                order_ref=order_ref,
            )

        body = {
            "intent": "CAPTURE",
            "purchase_units": [{
                "reference_id": metadata.get("order_number") or order_ref,
                "custom_id": order_ref,
                "amount": {
                    "currency_code": currency.upper(),
                    "value": str(amount.quantize(Decimal("0.01"))),
                },
            }],
        }
        data = await self._call("create order", "POST", "/v2/checkout/orders", json=body)
        approve_url = next(
            (link["href"] for link in data.get("links", []) if link.get("rel") in ("approve", "payer-action")),
            None,
        )
        return ChargeResult(
            success=True,
            external_id=data.get("id"),
            approve_url=approve_url,
            status=data.get("status"),
            order_ref=order_ref,
            raw=data,
        )

    async def capture(self, paypal_order_id: str) -> ChargeResult:
        """Capture an approved PayPal order (return-from-approval path)"""
        if self.simulated:
            return ChargeResult(
                success=True,
                external_id=f"CAPTURE-DEV-{_dev_suffix()}",
                status="COMPLETED",
                simulated=True,
            )

        data = await self._call("capture order", "POST", f"/v2/checkout/orders/{paypal_order_id}/capture", json={})
        capture_id = None
        order_ref = None
        units = data.get("purchase_units") or []
        if units:
            captures = (units[0].get("payments") or {}).get("captures") or []
            if captures:
                capture_id = captures[0].get("id")
                order_ref = captures[0].get("custom_id")
            order_ref = order_ref or units[0].get("custom_id")
        return ChargeResult(
            success=data.get("status") == "COMPLETED",
            external_id=capture_id or data.get("id"),
            status=data.get("status"),
            order_ref=order_ref,
            raw=data,
        )

    async def verify_webhook(self, headers: Mapping[str, str], event: Dict[str, Any]) -> bool:
        """Ask PayPal to verify the transmission signature of a webhook delivery"""
        if is_placeholder_credential(self.credentials.webhook_id):
            if not self.simulated:
                logger.error("PayPal webhook id not configured, rejecting event")
                return False
            logger.warning("PayPal webhook id not configured, accepting unverified event")
            return True

        body = {
            "auth_algo": headers.get("paypal-auth-algo"),
            "cert_url": headers.get("paypal-cert-url"),
            "transmission_id": headers.get("paypal-transmission-id"),
            "transmission_sig": headers.get("paypal-transmission-sig"),
            "transmission_time": headers.get("paypal-transmission-time"),
            "webhook_id": self.credentials.webhook_id,
            "webhook_event": event,
        }
        data = await self._call("verify webhook", "POST", "/v1/notifications/verify-webhook-signature", json=body)
        return data.get("verification_status") == "SUCCESS"


class CashProvider(PaymentProvider):
    """No external call: cash is collected in person when the order is accepted"""

    name = "cash"

    async def create_charge(self, amount: Decimal, currency: str, metadata: Mapping[str, str]) -> ChargeResult:
        reference = metadata.get("order_number") or metadata.get("order_id")
        return ChargeResult(
            success=True,
            external_id=f"cash_{reference}",
            status="PENDING",
            order_ref=metadata.get("order_id"),
        )
