"""
Domain exceptions raised by services and mapped to HTTP responses in main.py
"""

from typing import Any, Dict, List, Optional


class RestaurantOSError(Exception):
    """Base class for domain errors"""

    status_code: int = 400

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or []

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"success": False, "error": self.message}
        if self.details:
            data["details"] = self.details
        return data


class OrderValidationError(RestaurantOSError):
    """Request failed validation; details carry one entry per offending field"""

    status_code = 400

    @classmethod
    def for_field(cls, field: str, message: str) -> "OrderValidationError":
        return cls("Validation failed", details=[{"field": field, "message": message}])


class AuthorizationError(RestaurantOSError):
    status_code = 403


class NotFoundError(RestaurantOSError):
    status_code = 404


class InvalidTransitionError(RestaurantOSError):
    """Requested status change is not allowed for this actor or order state"""

    status_code = 400


class PaymentProviderError(RestaurantOSError):
    """Charge creation or provider lookup failed; the order is left untouched"""

    status_code = 502

    def __init__(self, provider: str, message: str):
        super().__init__(message)
        self.provider = provider

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["provider"] = self.provider
        return data


class WebhookVerificationError(RestaurantOSError):
    status_code = 400
