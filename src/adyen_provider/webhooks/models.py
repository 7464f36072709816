"""Models for Adyen webhook notifications.

The wire models mirror the JSON the gateway posts; ``VerifiedEvent`` is what
the rest of the provider works with once an item passed signature and mode
validation.
"""

import enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# additionalData keys
HMAC_SIGNATURE_KEY = "hmacSignature"
PAYMENT_LINK_ID_KEY = "paymentLinkId"
ORDER_REFERENCE_KEY = "metadata.orderReference"


class EventCode(str, enum.Enum):
    """Notification event codes sent by the gateway."""
    AUTHORISATION = "AUTHORISATION"
    AUTHORISATION_ADJUSTMENT = "AUTHORISATION_ADJUSTMENT"
    PENDING = "PENDING"
    CANCELLATION = "CANCELLATION"
    CANCEL_OR_REFUND = "CANCEL_OR_REFUND"
    CAPTURE = "CAPTURE"
    CAPTURE_FAILED = "CAPTURE_FAILED"
    REFUND = "REFUND"
    REFUND_WITH_DATA = "REFUND_WITH_DATA"
    REFUND_FAILED = "REFUND_FAILED"
    REFUNDED_REVERSED = "REFUNDED_REVERSED"
    CHARGEBACK = "CHARGEBACK"
    CHARGEBACK_REVERSED = "CHARGEBACK_REVERSED"
    SECOND_CHARGEBACK = "SECOND_CHARGEBACK"
    REQUEST_FOR_INFORMATION = "REQUEST_FOR_INFORMATION"
    HANDLED_EXTERNALLY = "HANDLED_EXTERNALLY"
    ORDER_OPENED = "ORDER_OPENED"
    ORDER_CLOSED = "ORDER_CLOSED"
    REPORT_AVAILABLE = "REPORT_AVAILABLE"
    VOID_PENDING_REFUND = "VOID_PENDING_REFUND"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "EventCode":
        """Map a raw event code onto the enum, ``UNKNOWN`` when unrecognised."""
        try:
            return cls((raw or "").strip().upper())
        except ValueError:
            return cls.UNKNOWN


class Amount(BaseModel):
    """Amount in minor units."""
    value: int = 0
    currency: str = ""


class NotificationRequestItem(BaseModel):
    """A single NotificationRequestItem of a delivery."""
    model_config = ConfigDict(populate_by_name=True)

    psp_reference: str = Field(..., alias="pspReference")
    original_reference: Optional[str] = Field(None, alias="originalReference")
    merchant_account_code: str = Field("", alias="merchantAccountCode")
    merchant_reference: str = Field("", alias="merchantReference")
    event_code: str = Field(..., alias="eventCode")
    event_date: Optional[str] = Field(None, alias="eventDate")
    success: bool = False
    amount: Amount = Field(default_factory=Amount)
    payment_method: Optional[str] = Field(None, alias="paymentMethod")
    reason: Optional[str] = None
    operations: Optional[List[str]] = None
    additional_data: Dict[str, Any] = Field(default_factory=dict, alias="additionalData")

    @field_validator("additional_data", mode="before")
    @classmethod
    def default_additional_data(cls, v):
        return v or {}

    @field_validator("amount", mode="before")
    @classmethod
    def default_amount(cls, v):
        return v or {}


class NotificationRequest(BaseModel):
    """A webhook delivery; one delivery may batch several items."""
    model_config = ConfigDict(populate_by_name=True)

    # Sent as the string "true"/"false"
    live: Any = None
    # Items stay raw so one malformed item can be dropped on its own
    notification_items: List[Any] = Field(
        default_factory=list, alias="notificationItems"
    )

    @property
    def raw_items(self) -> List[Any]:
        return [
            container.get("NotificationRequestItem") if isinstance(container, dict) else None
            for container in self.notification_items
        ]


def parse_live_flag(value: Any) -> Optional[bool]:
    """Parse the batch level live flag, None when it can't be interpreted."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    return None


class VerifiedEvent(BaseModel):
    """A notification item that passed HMAC and live/test mode validation."""
    model_config = ConfigDict(frozen=True)

    event_code: EventCode
    raw_event_code: str
    psp_reference: str
    original_reference: Optional[str] = None
    merchant_reference: str = ""
    success: bool
    amount_minor_units: int = 0
    currency: str = ""
    payment_method: Optional[str] = None
    additional_data: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_item(cls, item: NotificationRequestItem) -> "VerifiedEvent":
        return cls(
            event_code=EventCode.parse(item.event_code),
            raw_event_code=item.event_code,
            psp_reference=item.psp_reference,
            original_reference=item.original_reference,
            merchant_reference=item.merchant_reference,
            success=item.success,
            amount_minor_units=item.amount.value,
            currency=item.amount.currency.upper(),
            payment_method=item.payment_method,
            additional_data={
                key: str(value) for key, value in item.additional_data.items() if value is not None
            },
        )

    @property
    def payment_link_id(self) -> Optional[str]:
        return self.additional_data.get(PAYMENT_LINK_ID_KEY)
