"""Thin async client for the Adyen Checkout and Payment (modification) APIs."""

import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from ..config import AdyenSettings
from ..exceptions import ConfigurationError, GatewayTransportError

logger = logging.getLogger(__name__)

CHECKOUT_API_VERSION = "v70"
PAYMENT_API_VERSION = "v68"

TEST_CHECKOUT_URL = f"https://checkout-test.adyen.com/{CHECKOUT_API_VERSION}"
LIVE_CHECKOUT_URL = "https://{prefix}-checkout-live.adyenpayments.com/checkout/" + CHECKOUT_API_VERSION
TEST_PAYMENT_URL = f"https://pal-test.adyen.com/pal/servlet/Payment/{PAYMENT_API_VERSION}"
LIVE_PAYMENT_URL = "https://{prefix}-pal-live.adyenpayments.com/pal/servlet/Payment/" + PAYMENT_API_VERSION


class PaymentLinkResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    url: str
    reference: Optional[str] = None
    status: Optional[str] = None
    expires_at: Optional[str] = Field(None, alias="expiresAt")


class ModificationResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    psp_reference: Optional[str] = Field(None, alias="pspReference")
    response: Optional[str] = None


class AdyenClient:
    """
    Gateway client bound to one merchant configuration.

    ``transport`` lets callers plug in an ``httpx`` transport (tests use
    ``httpx.MockTransport``).
    """

    def __init__(
        self,
        settings: AdyenSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not settings.api_key:
            raise ConfigurationError("settings.api_key must not be empty")
        if not settings.merchant_account:
            raise ConfigurationError("settings.merchant_account must not be empty")
        self.settings = settings
        self.merchant_account = settings.merchant_account
        self._transport = transport

        if settings.test_mode:
            self.checkout_url = TEST_CHECKOUT_URL
            self.payment_url = TEST_PAYMENT_URL
        else:
            prefix = settings.live_endpoint_url_prefix
            if not prefix:
                raise ConfigurationError(
                    "settings.live_endpoint_url_prefix is required outside test mode"
                )
            self.checkout_url = LIVE_CHECKOUT_URL.format(prefix=prefix)
            self.payment_url = LIVE_PAYMENT_URL.format(prefix=prefix)

    async def _post(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        headers = {
            "X-API-Key": self.settings.api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.timeout_seconds, transport=self._transport
            ) as client:
                response = await client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise GatewayTransportError(f"Request to {url} failed: {e}") from e

        if response.status_code >= 400:
            raise GatewayTransportError(
                f"Request to {url} returned HTTP {response.status_code}",
                status_code=response.status_code,
                response_body=response.text,
            )
        try:
            return response.json()
        except ValueError as e:
            raise GatewayTransportError(
                f"Request to {url} returned invalid JSON",
                status_code=response.status_code,
                response_body=response.text,
            ) from e

    async def create_payment_link(self, request: Dict[str, Any]) -> PaymentLinkResponse:
        """Create a hosted payment link (Checkout ``/paymentLinks``)."""
        payload = {"merchantAccount": self.merchant_account, **request}
        data = await self._post(f"{self.checkout_url}/paymentLinks", payload)
        logger.info(f"Created payment link {data.get('id')} for reference {payload.get('reference')}")
        return PaymentLinkResponse.model_validate(data)

    def _modification_payload(
        self,
        psp_reference: str,
        amount: Optional[int] = None,
        currency: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "merchantAccount": self.merchant_account,
            "originalReference": psp_reference,
        }
        if amount is not None:
            payload["modificationAmount"] = {"value": amount, "currency": currency}
        if reference:
            payload["reference"] = reference
        return payload

    async def _modify(self, operation: str, payload: Dict[str, Any]) -> ModificationResult:
        data = await self._post(f"{self.payment_url}/{operation}", payload)
        result = ModificationResult.model_validate(data)
        logger.info(
            f"{operation} for {payload['originalReference']} answered {result.response} "
            f"({result.psp_reference})"
        )
        return result

    async def capture(
        self, psp_reference: str, amount: int, currency: str, reference: Optional[str] = None
    ) -> ModificationResult:
        return await self._modify(
            "capture", self._modification_payload(psp_reference, amount, currency, reference)
        )

    async def cancel(self, psp_reference: str, reference: Optional[str] = None) -> ModificationResult:
        return await self._modify("cancel", self._modification_payload(psp_reference, reference=reference))

    async def refund(
        self, psp_reference: str, amount: int, currency: str, reference: Optional[str] = None
    ) -> ModificationResult:
        return await self._modify(
            "refund", self._modification_payload(psp_reference, amount, currency, reference)
        )
