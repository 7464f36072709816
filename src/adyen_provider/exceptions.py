"""Exception hierarchy for the Adyen payment provider.

Everything raised by this package inherits from AdyenProviderError so the
host can catch provider failures in one place.
"""

from typing import Any, Dict, Optional


class AdyenProviderError(Exception):
    """Base exception for all provider errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(AdyenProviderError):
    """A required setting is missing or invalid."""


class AuthenticationFailure(AdyenProviderError):
    """Notification Basic auth credentials did not match the configured ones."""


class CredentialFormatError(AuthenticationFailure):
    """The Basic auth credentials could not be decoded.

    This is the one error that is allowed to cross the provider boundary;
    the host decides what transport-level response to send.
    """


class NotificationParseError(AdyenProviderError):
    """The notification body is not a valid notification request."""


class InvalidSignatureError(AdyenProviderError):
    """A notification item failed HMAC validation."""

    def __init__(self, psp_reference: Optional[str], message: str = "Invalid HMAC signature"):
        super().__init__(message, {"psp_reference": psp_reference})
        self.psp_reference = psp_reference


class ModeMismatchError(AdyenProviderError):
    """The notification's live flag does not match the configured mode."""


class GatewayTransportError(AdyenProviderError):
    """An outbound call to the gateway failed."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
    ):
        super().__init__(message, {"status_code": status_code} if status_code else None)
        self.status_code = status_code
        self.response_body = response_body


class OrderNotFoundError(AdyenProviderError):
    """The reference host has no order for the given store and order id."""

    def __init__(self, store_id: str, order_id: str):
        super().__init__(f"Order {order_id} not found in store {store_id}")
        self.store_id = store_id
        self.order_id = order_id
