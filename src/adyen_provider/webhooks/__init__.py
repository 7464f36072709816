"""Adyen notification handling: verification, parsing and reconciliation."""

from .context import RawRequest, PaymentProviderContext
from .models import EventCode, NotificationRequest, NotificationRequestItem, VerifiedEvent
from .signature import compute_hmac_signature, verify_hmac_signature, is_valid_hmac
from .parser import (
    NOTIFICATION_ACCEPTED,
    ParsedNotification,
    parse_notification,
    get_webhook_notification,
)
from .reconciler import (
    ModificationResponse,
    ReconciliationOutcome,
    ReconciliationState,
    WebhookReconciler,
    map_event_status,
    map_modification_status,
)

__all__ = [
    "RawRequest",
    "PaymentProviderContext",
    "EventCode",
    "NotificationRequest",
    "NotificationRequestItem",
    "VerifiedEvent",
    "compute_hmac_signature",
    "verify_hmac_signature",
    "is_valid_hmac",
    "NOTIFICATION_ACCEPTED",
    "ParsedNotification",
    "parse_notification",
    "get_webhook_notification",
    "ModificationResponse",
    "ReconciliationOutcome",
    "ReconciliationState",
    "WebhookReconciler",
    "map_event_status",
    "map_modification_status",
]
