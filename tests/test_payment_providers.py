"""
Tests for the payment provider adapters
"""

import asyncio
import hashlib
import hmac
import json
import time
from decimal import Decimal
from types import SimpleNamespace

import httpx
import pytest
import stripe

from restaurant_os.core.exceptions import PaymentProviderError, WebhookVerificationError
from restaurant_os.core.integrations import PayPalCredentials, StripeCredentials
from restaurant_os.services.payment_providers import (
    CashProvider, PayPalProvider, StripeProvider, to_minor_units
)

METADATA = {"order_id": "5f0c7a52-6d0e-4c1b-9d7e-1f2a3b4c5d6e", "order_number": "ORD-20260101-ABC123"}

REAL_STRIPE = StripeCredentials(secret_key="sk_test_51abc", webhook_secret="whsec_test_secret")
REAL_PAYPAL = PayPalCredentials(client_id="client-123", client_secret="secret-456", webhook_id="WH-789")


def stripe_signature(payload: bytes, secret: str, timestamp: int = None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode()}".encode()
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


class TestMinorUnits:

    def test_two_decimal_currency(self):
        assert to_minor_units(Decimal("37.50"), "usd") == 3750

    def test_zero_decimal_currency(self):
        assert to_minor_units(Decimal("1500"), "JPY") == 1500


class TestStripeProvider:

    async def test_simulated_without_keys(self):
        provider = StripeProvider(StripeCredentials())

        result = await provider.create_charge(Decimal("37.50"), "USD", METADATA)

        assert provider.simulated
        assert result.success and result.simulated
        assert result.external_id.startswith("pi_dev_mock_")
        assert result.client_secret.startswith("dev_mock_client_secret_")

    async def test_placeholder_key_is_simulated(self):
        provider = StripeProvider(StripeCredentials(secret_key="sk_test_your_key_here"))
        assert provider.simulated

    async def test_simulated_retrieve_only_knows_mock_intents(self):
        provider = StripeProvider(StripeCredentials())

        result = await provider.retrieve("pi_dev_mock_123_abc")
        assert result.success and result.status == "succeeded"

        with pytest.raises(PaymentProviderError):
            await provider.retrieve("pi_real_intent")

    async def test_real_keys_call_stripe(self, monkeypatch):
        calls = {}

        async def fake_create_async(**kwargs):
            calls.update(kwargs)
            return SimpleNamespace(
                id="pi_123", client_secret="pi_123_secret", status="requires_payment_method", metadata=METADATA
            )

        monkeypatch.setattr(stripe.PaymentIntent, "create_async", fake_create_async)
        provider = StripeProvider(REAL_STRIPE)

        result = await provider.create_charge(Decimal("37.50"), "USD", METADATA)

        assert not result.simulated
        assert result.external_id == "pi_123"
        assert result.client_secret == "pi_123_secret"
        assert calls["amount"] == 3750
        assert calls["currency"] == "usd"
        assert calls["metadata"]["order_id"] == METADATA["order_id"]
        assert calls["api_key"] == "sk_test_51abc"

    async def test_stripe_error_becomes_provider_error(self, monkeypatch):
        async def failing_create_async(**kwargs):
            raise stripe.StripeError("card network down")

        monkeypatch.setattr(stripe.PaymentIntent, "create_async", failing_create_async)

        with pytest.raises(PaymentProviderError) as exc_info:
            await StripeProvider(REAL_STRIPE).create_charge(Decimal("10.00"), "USD", METADATA)

        assert exc_info.value.provider == "stripe"

    async def test_slow_stripe_times_out(self, monkeypatch):
        async def slow_create_async(**kwargs):
            await asyncio.sleep(1)

        monkeypatch.setattr(stripe.PaymentIntent, "create_async", slow_create_async)
        provider = StripeProvider(REAL_STRIPE, timeout=0.05)

        with pytest.raises(PaymentProviderError) as exc_info:
            await provider.create_charge(Decimal("10.00"), "USD", METADATA)

        assert "did not respond in time" in exc_info.value.message

    def test_construct_event_with_valid_signature(self):
        payload = json.dumps({"id": "evt_1", "type": "payment_intent.succeeded", "data": {"object": {}}}).encode()
        provider = StripeProvider(REAL_STRIPE)

        event = provider.construct_event(payload, stripe_signature(payload, "whsec_test_secret"))

        assert event["id"] == "evt_1"

    def test_construct_event_rejects_bad_signature(self):
        payload = json.dumps({"id": "evt_1", "type": "payment_intent.succeeded"}).encode()
        provider = StripeProvider(REAL_STRIPE)

        with pytest.raises(WebhookVerificationError):
            provider.construct_event(payload, stripe_signature(payload, "whsec_wrong"))

    def test_construct_event_rejects_missing_secret_with_real_keys(self):
        provider = StripeProvider(StripeCredentials(secret_key="sk_live_abc"))

        with pytest.raises(WebhookVerificationError):
            provider.construct_event(b"{}", None)

    def test_construct_event_unsigned_in_development(self):
        provider = StripeProvider(StripeCredentials())
        event = provider.construct_event(b'{"type": "charge.refunded"}', None)
        assert event["type"] == "charge.refunded"


def paypal_transport(routes: dict, seen: list = None) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        if request.url.path == "/v1/oauth2/token":
            return httpx.Response(200, json={"access_token": "A21-token"})
        status, body = routes[request.url.path]
        return httpx.Response(status, json=body)

    return httpx.MockTransport(handler)


class TestPayPalProvider:

    async def test_simulated_without_credentials(self):
        provider = PayPalProvider(PayPalCredentials())

        charge = await provider.create_charge(Decimal("20.00"), "USD", METADATA)
        capture = await provider.capture(charge.external_id)

        assert charge.simulated and charge.external_id.startswith("PAYPAL-DEV-")
        assert capture.success and capture.status == "COMPLETED"

    async def test_create_order_sends_custom_id(self):
        seen = []
        transport = paypal_transport({
            "/v2/checkout/orders": (201, {
                "id": "5O190127TN364715T",
                "status": "CREATED",
                "links": [{"rel": "approve", "href": "https://www.sandbox.paypal.com/checkoutnow?token=5O19"}],
            }),
        }, seen)
        provider = PayPalProvider(REAL_PAYPAL, transport=transport)

        result = await provider.create_charge(Decimal("20.00"), "USD", METADATA)

        assert result.external_id == "5O190127TN364715T"
        assert result.approve_url.endswith("token=5O19")
        body = json.loads(seen[-1].content)
        assert body["purchase_units"][0]["custom_id"] == METADATA["order_id"]
        assert body["purchase_units"][0]["amount"] == {"currency_code": "USD", "value": "20.00"}
        assert seen[-1].headers["Authorization"] == "Bearer A21-token"

    async def test_capture_returns_capture_id(self):
        transport = paypal_transport({
            "/v2/checkout/orders/5O19/capture": (201, {
                "id": "5O19",
                "status": "COMPLETED",
                "purchase_units": [{"payments": {"captures": [{"id": "3C679366HH908993F", "custom_id": METADATA["order_id"]}]}}],
            }),
        })
        provider = PayPalProvider(REAL_PAYPAL, transport=transport)

        result = await provider.capture("5O19")

        assert result.success
        assert result.external_id == "3C679366HH908993F"
        assert result.order_ref == METADATA["order_id"]

    async def test_http_error_becomes_provider_error(self):
        transport = paypal_transport({"/v2/checkout/orders": (422, {"name": "UNPROCESSABLE_ENTITY"})})
        provider = PayPalProvider(REAL_PAYPAL, transport=transport)

        with pytest.raises(PaymentProviderError) as exc_info:
            await provider.create_charge(Decimal("20.00"), "USD", METADATA)

        assert exc_info.value.provider == "paypal"

    async def test_slow_paypal_times_out(self):
        async def slow_handler(request):
            await asyncio.sleep(1)
            return httpx.Response(200, json={})

        provider = PayPalProvider(REAL_PAYPAL, timeout=0.05, transport=httpx.MockTransport(slow_handler))

        with pytest.raises(PaymentProviderError):
            await provider.create_charge(Decimal("20.00"), "USD", METADATA)

    async def test_verify_webhook(self):
        transport = paypal_transport({
            "/v1/notifications/verify-webhook-signature": (200, {"verification_status": "SUCCESS"}),
        })
        provider = PayPalProvider(REAL_PAYPAL, transport=transport)

        assert await provider.verify_webhook({"paypal-transmission-id": "abc"}, {"id": "WH-EVT"})

    async def test_verify_webhook_failure(self):
        transport = paypal_transport({
            "/v1/notifications/verify-webhook-signature": (200, {"verification_status": "FAILURE"}),
        })
        provider = PayPalProvider(REAL_PAYPAL, transport=transport)

        assert not await provider.verify_webhook({}, {"id": "WH-EVT"})

    async def test_missing_webhook_id_with_real_credentials_rejects(self):
        provider = PayPalProvider(PayPalCredentials(client_id="client-123", client_secret="secret-456"))
        assert not await provider.verify_webhook({}, {"id": "WH-EVT"})


class TestCashProvider:

    async def test_reference_uses_order_number(self):
        result = await CashProvider().create_charge(Decimal("12.00"), "USD", METADATA)

        assert result.success
        assert result.external_id == "cash_ORD-20260101-ABC123"
        assert not result.simulated
