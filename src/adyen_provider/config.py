"""Provider settings.

A single settings model covers every provider variant; behaviour that used to
differ between variants is expressed through ProviderCapabilities instead.
"""

import os
from typing import List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from .exceptions import ConfigurationError

ENV_PREFIX = "ADYEN_"


def _split_list(value: Union[str, List[str], None]) -> List[str]:
    """Turn a comma separated string (or list) into a clean list of entries."""
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [item.strip() for item in value if item and item.strip()]


class AdyenSettings(BaseModel):
    """Per-integration merchant configuration."""
    merchant_account: str = Field(default="", description="Merchant account used for payments")
    api_key: str = Field(default="", description="Account specific API key")
    hmac_key: str = Field(default="", description="HEX encoded HMAC key for notifications")
    test_mode: bool = Field(default=True, description="Process payments against the test environment")

    continue_url: Optional[str] = None
    cancel_url: Optional[str] = None
    error_url: Optional[str] = None

    notification_username: Optional[str] = None
    notification_password: Optional[str] = None

    allowed_payment_methods: List[str] = Field(default_factory=list)
    blocked_payment_methods: List[str] = Field(default_factory=list)
    locale: Optional[str] = None

    # Live endpoints are account specific: https://{prefix}-checkout-live.adyenpayments.com
    live_endpoint_url_prefix: Optional[str] = None
    timeout_seconds: float = 30.0

    @field_validator("allowed_payment_methods", "blocked_payment_methods", mode="before")
    @classmethod
    def parse_payment_methods(cls, v):
        return _split_list(v)

    @classmethod
    def from_env(cls, prefix: str = ENV_PREFIX) -> "AdyenSettings":
        """Build settings from ``ADYEN_*`` environment variables."""
        def env(name: str) -> Optional[str]:
            value = os.getenv(f"{prefix}{name}")
            return value if value else None

        test_mode = (env("TEST_MODE") or "true").strip().lower() in ("1", "true", "yes", "on")
        values = {
            "merchant_account": env("MERCHANT_ACCOUNT") or "",
            "api_key": env("API_KEY") or "",
            "hmac_key": env("HMAC_KEY") or "",
            "test_mode": test_mode,
            "continue_url": env("CONTINUE_URL"),
            "cancel_url": env("CANCEL_URL"),
            "error_url": env("ERROR_URL"),
            "notification_username": env("NOTIFICATION_USERNAME"),
            "notification_password": env("NOTIFICATION_PASSWORD"),
            "allowed_payment_methods": env("ALLOWED_PAYMENT_METHODS"),
            "blocked_payment_methods": env("BLOCKED_PAYMENT_METHODS"),
            "locale": env("LOCALE"),
            "live_endpoint_url_prefix": env("LIVE_ENDPOINT_URL_PREFIX"),
        }
        timeout = env("TIMEOUT_SECONDS")
        if timeout:
            values["timeout_seconds"] = float(timeout)
        return cls(**values)

    def get_continue_url(self) -> str:
        return self._require("continue_url")

    def get_cancel_url(self) -> str:
        return self._require("cancel_url")

    def get_error_url(self) -> str:
        return self._require("error_url")

    def _require(self, name: str) -> str:
        value = getattr(self, name)
        if not value:
            raise ConfigurationError(f"settings.{name} must not be empty")
        return value


class ProviderCapabilities(BaseModel):
    """Which host operations a provider instance supports."""
    can_cancel: bool = True
    can_capture: bool = True
    can_refund: bool = True
