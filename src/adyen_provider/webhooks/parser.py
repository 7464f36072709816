"""Authentication and parsing of notification deliveries."""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from pydantic import ValidationError

from ..auth import authenticate_notification_user
from ..config import AdyenSettings
from ..exceptions import (
    AuthenticationFailure,
    InvalidSignatureError,
    ModeMismatchError,
    NotificationParseError,
)
from .context import PaymentProviderContext
from .models import NotificationRequest, NotificationRequestItem, VerifiedEvent, parse_live_flag
from .signature import verify_hmac_signature

logger = logging.getLogger(__name__)

# Body the gateway expects back once a delivery was accepted
NOTIFICATION_ACCEPTED = "[accepted]"

WEBHOOK_NOTIFICATION_KEY = "adyen_webhook_notification"


@dataclass
class ParsedNotification:
    """Verified content of one delivery.

    ``acknowledged`` is set once per delivery, when at least one item
    verified, no matter how many items the batch carries.
    """
    events: List[VerifiedEvent] = field(default_factory=list)
    acknowledged: bool = False
    live: Optional[bool] = None
    rejected_items: int = 0

    @property
    def acknowledgment(self) -> Optional[str]:
        return NOTIFICATION_ACCEPTED if self.acknowledged else None


def check_live_mode(live: Optional[bool], test_mode: bool) -> None:
    """A live notification is only valid outside test mode and vice versa.

    Raises:
        ModeMismatchError: If the flag is missing or agrees with ``test_mode``.
    """
    if live is None:
        raise ModeMismatchError("Notification live flag is missing or invalid")
    if live == test_mode:
        raise ModeMismatchError(
            f"Notification live={str(live).lower()} does not match test_mode={str(test_mode).lower()}"
        )


def load_notification(body: bytes) -> NotificationRequest:
    """Deserialize a delivery body.

    Raises:
        NotificationParseError: If the body is not a notification request.
    """
    try:
        return NotificationRequest.model_validate_json(body)
    except ValidationError as e:
        raise NotificationParseError("Invalid notification payload", {"errors": e.error_count()}) from e


def load_item(raw: Any) -> NotificationRequestItem:
    """Validate one raw NotificationRequestItem.

    Raises:
        NotificationParseError: If the item is missing required fields.
    """
    try:
        return NotificationRequestItem.model_validate(raw)
    except ValidationError as e:
        psp_reference = raw.get("pspReference") if isinstance(raw, dict) else None
        raise NotificationParseError(
            f"Invalid notification item {psp_reference}", {"errors": e.error_count()}
        ) from e


def parse_notification(
    body: bytes,
    settings: AdyenSettings,
    authorization: Optional[str] = None,
) -> ParsedNotification:
    """Authenticate a delivery and return its verified events.

    Basic auth credentials, if sent, are checked before anything else. A
    live/test mismatch discards the whole batch. Malformed items and items with
    a bad signature are logged and dropped while the rest of the batch is
    still processed.

    Raises:
        AuthenticationFailure: If Basic auth credentials don't match.
        CredentialFormatError: If Basic auth credentials can't be decoded.
        NotificationParseError: If the body can't be parsed.
    """
    authenticate_notification_user(authorization, settings)

    notification = load_notification(body)
    raw_items = notification.raw_items
    live = parse_live_flag(notification.live)

    try:
        check_live_mode(live, settings.test_mode)
    except ModeMismatchError as e:
        logger.warning(f"Discarding notification batch of {len(raw_items)} item(s): {e.message}")
        return ParsedNotification(live=live, rejected_items=len(raw_items))

    parsed = ParsedNotification(live=live)
    for raw in raw_items:
        try:
            item = load_item(raw)
        except NotificationParseError as e:
            logger.warning(f"Dropping notification item: {e}")
            parsed.rejected_items += 1
            continue
        try:
            verify_hmac_signature(item, settings.hmac_key)
        except InvalidSignatureError as e:
            logger.warning(f"Failed verifying HMAC key for {item.psp_reference}: {e.message}")
            parsed.rejected_items += 1
            continue
        parsed.events.append(VerifiedEvent.from_item(item))

    parsed.acknowledged = bool(parsed.events)
    return parsed


def get_webhook_notification(ctx: PaymentProviderContext) -> ParsedNotification:
    """Parse the delivery of ``ctx`` once and cache the result on the context.

    A body that can't be parsed is logged and cached as an empty,
    unacknowledged notification.
    """
    cached = ctx.additional_data.get(WEBHOOK_NOTIFICATION_KEY)
    if isinstance(cached, AuthenticationFailure):
        raise cached
    if cached is not None:
        return cached

    body = ctx.request.read_body()
    try:
        parsed = parse_notification(body, ctx.settings, ctx.request.header("authorization"))
    except AuthenticationFailure as e:
        # The body can only be read once, so the failure is cached as well
        ctx.additional_data[WEBHOOK_NOTIFICATION_KEY] = e
        raise
    except NotificationParseError as e:
        logger.error(f"Adyen - unable to parse notification: {e}")
        parsed = ParsedNotification()

    ctx.additional_data[WEBHOOK_NOTIFICATION_KEY] = parsed
    return parsed
