"""
Typed payment provider credentials

Environment settings are the defaults; a restaurant's integration_settings JSON
overrides them field by field. Parsed once per request, never key by key.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, ValidationError
import structlog

from restaurant_os.core.config import Settings, get_settings
from restaurant_os.models.restaurant import Restaurant

logger = structlog.get_logger(__name__)

PLACEHOLDER_MARKERS = ("your_", "your-", "placeholder", "changeme", "xxxxx", "replace_me", "dummy")


def is_placeholder_credential(value: Optional[str]) -> bool:
    """Empty values and template values from example env files count as placeholders"""
    if value is None:
        return True
    cleaned = value.strip().lower()
    if not cleaned:
        return True
    return any(marker in cleaned for marker in PLACEHOLDER_MARKERS)


class StripeCredentials(BaseModel):
    model_config = ConfigDict(extra="ignore")

    secret_key: Optional[str] = None
    webhook_secret: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        return not is_placeholder_credential(self.secret_key) and self.secret_key.startswith(("sk_", "rk_"))


class PayPalCredentials(BaseModel):
    model_config = ConfigDict(extra="ignore")

    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    webhook_id: Optional[str] = None
    mode: str = "sandbox"

    @property
    def is_configured(self) -> bool:
        return not (
            is_placeholder_credential(self.client_id)
            or is_placeholder_credential(self.client_secret)
        )

    @property
    def api_base(self) -> str:
        if self.mode == "live":
            return "https://api-m.paypal.com"
        return "https://api-m.sandbox.paypal.com"


class IntegrationSettings(BaseModel):
    """Provider credentials resolved for one restaurant"""

    model_config = ConfigDict(extra="ignore")

    stripe: StripeCredentials = StripeCredentials()
    paypal: PayPalCredentials = PayPalCredentials()
    currency: str = "USD"

    @classmethod
    def from_settings(cls, settings: Settings) -> "IntegrationSettings":
        return cls(
            stripe=StripeCredentials(
                secret_key=settings.STRIPE_SECRET_KEY,
                webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
            ),
            paypal=PayPalCredentials(
                client_id=settings.PAYPAL_CLIENT_ID,
                client_secret=settings.PAYPAL_CLIENT_SECRET,
                webhook_id=settings.PAYPAL_WEBHOOK_ID,
                mode=settings.PAYPAL_MODE,
            ),
            currency=settings.DEFAULT_CURRENCY,
        )


def _merge(defaults: Dict[str, Any], overrides: Any) -> Dict[str, Any]:
    merged = dict(defaults)
    if isinstance(overrides, dict):
        merged.update({key: value for key, value in overrides.items() if value not in (None, "")})
    return merged


def load_integrations(
    restaurant: Optional[Restaurant] = None,
    settings: Optional[Settings] = None
) -> IntegrationSettings:
    """Resolve credentials for a restaurant, falling back to the environment"""
    settings = settings or get_settings()
    base = IntegrationSettings.from_settings(settings)
    if restaurant is None:
        return base

    raw = restaurant.integration_settings or {}
    try:
        return IntegrationSettings(
            stripe=StripeCredentials(**_merge(base.stripe.model_dump(), raw.get("stripe"))),
            paypal=PayPalCredentials(**_merge(base.paypal.model_dump(), raw.get("paypal"))),
            currency=restaurant.currency or base.currency,
        )
    except ValidationError as e:
        logger.warning(
            "Invalid integration settings, using environment defaults",
            restaurant_id=str(restaurant.id),
            error=str(e),
        )
        return base
