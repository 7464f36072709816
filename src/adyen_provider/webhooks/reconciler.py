"""Reconciliation of verified notifications into order status updates."""

import enum
import logging
from dataclasses import dataclass
from typing import Callable, FrozenSet, List, Optional, Tuple

from ..connectors.base import (
    OrderReference,
    OrderStore,
    PaymentStatus,
    TransactionStatusUpdate,
)
from ..currency import amount_from_minor_units
from .context import PaymentProviderContext
from .models import EventCode, ORDER_REFERENCE_KEY, VerifiedEvent

logger = logging.getLogger(__name__)

# Transaction metadata keys persisted on the order
PSP_REFERENCE_METADATA = "adyenPspReference"
PAYMENT_METHOD_METADATA = "adyenPaymentMethod"
PAYMENT_LINK_ID_METADATA = "adyenPaymentLinkId"
# Reference of the payment itself, which modifications must point at
PAYMENT_PSP_REFERENCE_METADATA = "adyenPaymentPspReference"

# Order statuses a cancellation (which carries no custom metadata) may apply to
OPEN_PAYMENT_STATUSES = frozenset({PaymentStatus.INITIALIZED.value, PaymentStatus.AUTHORIZED.value})


class ModificationResponse(str, enum.Enum):
    """``response`` values of synchronous modification calls."""
    CAPTURE_RECEIVED = "[capture-received]"
    CANCEL_RECEIVED = "[cancel-received]"
    REFUND_RECEIVED = "[refund-received]"
    CANCEL_OR_REFUND_RECEIVED = "[cancelOrRefund-received]"
    ADJUST_AUTHORISATION_RECEIVED = "[adjustAuthorisation-received]"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "ModificationResponse":
        try:
            return cls(raw)
        except ValueError:
            return cls.UNKNOWN


# (event codes, required success flag or None for either, resulting status);
# evaluated top to bottom, first match wins
WEBHOOK_STATUS_RULES: List[Tuple[FrozenSet[EventCode], Optional[bool], PaymentStatus]] = [
    (frozenset({EventCode.AUTHORISATION, EventCode.AUTHORISATION_ADJUSTMENT}), True, PaymentStatus.AUTHORIZED),
    (frozenset({EventCode.PENDING}), True, PaymentStatus.PENDING_EXTERNAL_SYSTEM),
    (frozenset({EventCode.CAPTURE}), True, PaymentStatus.CAPTURED),
    (frozenset({EventCode.REFUND, EventCode.REFUND_WITH_DATA}), True, PaymentStatus.REFUNDED),
    (frozenset({EventCode.CANCELLATION}), False, PaymentStatus.CANCELLED),
    (frozenset({EventCode.CANCEL_OR_REFUND}), None, PaymentStatus.CANCELLED),
]

MODIFICATION_STATUS_MAP = {
    ModificationResponse.REFUND_RECEIVED: PaymentStatus.REFUNDED,
    ModificationResponse.CAPTURE_RECEIVED: PaymentStatus.CAPTURED,
    ModificationResponse.CANCEL_RECEIVED: PaymentStatus.CANCELLED,
    ModificationResponse.CANCEL_OR_REFUND_RECEIVED: PaymentStatus.CANCELLED,
    ModificationResponse.ADJUST_AUTHORISATION_RECEIVED: PaymentStatus.AUTHORIZED,
}


def map_event_status(event: VerifiedEvent) -> Optional[PaymentStatus]:
    """Payment status for a webhook event, None when the event isn't actionable."""
    for codes, success, status in WEBHOOK_STATUS_RULES:
        if event.event_code in codes and (success is None or event.success == success):
            return status
    return None


def map_modification_status(response: Optional[str]) -> PaymentStatus:
    """Payment status for a synchronous modification response.

    Anything unrecognised means the operation was accepted but not yet
    confirmed, which is reported as ``INITIALIZED``.
    """
    return MODIFICATION_STATUS_MAP.get(ModificationResponse.parse(response), PaymentStatus.INITIALIZED)


class ReconciliationState(str, enum.Enum):
    RECEIVED = "received"
    AUTHENTICATED = "authenticated"
    MAPPED = "mapped"
    RESOLVED = "resolved"
    REJECTED = "rejected"
    IGNORED = "ignored"


@dataclass
class ReconciliationOutcome:
    """What happened to one verified event."""
    event: VerifiedEvent
    state: ReconciliationState = ReconciliationState.AUTHENTICATED
    payment_status: Optional[PaymentStatus] = None
    order_reference: Optional[OrderReference] = None
    update: Optional[TransactionStatusUpdate] = None
    reason: Optional[str] = None

    @property
    def is_resolved(self) -> bool:
        return self.state == ReconciliationState.RESOLVED


def build_transaction_update(event: VerifiedEvent, status: PaymentStatus) -> TransactionStatusUpdate:
    """
    Raises:
        ValueError: If the event's currency is not an ISO 4217 code.
    """
    metadata = {
        PSP_REFERENCE_METADATA: event.psp_reference,
        PAYMENT_PSP_REFERENCE_METADATA: event.original_reference or event.psp_reference,
    }
    if event.payment_method:
        metadata[PAYMENT_METHOD_METADATA] = event.payment_method
    if event.payment_link_id:
        metadata[PAYMENT_LINK_ID_METADATA] = event.payment_link_id

    return TransactionStatusUpdate(
        transaction_id=event.psp_reference,
        amount_authorized=amount_from_minor_units(event.amount_minor_units, event.currency),
        payment_status=status,
        metadata=metadata,
    )


class WebhookReconciler:
    """Turns verified events into order status updates.

    Each event walks RECEIVED -> AUTHENTICATED -> MAPPED -> RESOLVED, or
    stops at IGNORED (event not actionable) or REJECTED (no usable amount or
    order). Nothing is retried within a delivery.
    """

    def __init__(
        self,
        order_store: Optional[OrderStore] = None,
        default_resolver: Optional[Callable[[PaymentProviderContext], Optional[OrderReference]]] = None,
    ):
        self.order_store = order_store
        self.default_resolver = default_resolver

    async def resolve_order_reference(
        self,
        event: VerifiedEvent,
        ctx: Optional[PaymentProviderContext] = None,
    ) -> Optional[OrderReference]:
        """Find the order an event belongs to.

        The order reference put in the payment link metadata is used when the
        gateway echoes it back. Cancellations don't carry custom metadata, so
        for those every store is searched for an open order whose number is
        the merchant reference. When neither works the host's default
        resolution is used.
        """
        try:
            raw_reference = event.additional_data.get(ORDER_REFERENCE_KEY)
            if raw_reference:
                return OrderReference.parse(raw_reference)

            if event.merchant_reference and self.order_store is not None:
                order = await self._find_open_order(event.merchant_reference)
                if order is not None:
                    return order.generate_order_reference()
        except Exception:
            logger.exception(f"Adyen - GetOrderReference failed for {event.psp_reference}")

        if ctx is not None and self.default_resolver is not None:
            return self.default_resolver(ctx)
        return None

    async def _find_open_order(self, order_number: str):
        # First store with a matching open order wins
        for store in await self.order_store.list_stores():
            order = await self.order_store.find_order(store.id, order_number)
            if order is None:
                continue
            status = getattr(order.payment_status, "value", order.payment_status)
            if status in OPEN_PAYMENT_STATUSES:
                return order
        return None

    async def reconcile_event(
        self,
        event: VerifiedEvent,
        ctx: Optional[PaymentProviderContext] = None,
    ) -> ReconciliationOutcome:
        outcome = ReconciliationOutcome(event=event)

        status = map_event_status(event)
        if status is None:
            outcome.state = ReconciliationState.IGNORED
            outcome.reason = (
                f"Event {event.raw_event_code} (success={str(event.success).lower()}) is not actionable"
            )
            logger.info(f"Ignoring notification {event.psp_reference}: {outcome.reason}")
            return outcome
        outcome.state = ReconciliationState.MAPPED
        outcome.payment_status = status

        try:
            outcome.update = build_transaction_update(event, status)
        except ValueError as e:
            outcome.state = ReconciliationState.REJECTED
            outcome.reason = str(e)
            logger.warning(f"Rejecting notification {event.psp_reference}: {e}")
            return outcome

        reference = await self.resolve_order_reference(event, ctx)
        if reference is None:
            outcome.state = ReconciliationState.REJECTED
            outcome.reason = "Order reference could not be resolved"
            logger.warning(
                f"Unable to resolve order for notification {event.psp_reference} "
                f"(merchantReference={event.merchant_reference})"
            )
            return outcome

        outcome.order_reference = reference
        outcome.state = ReconciliationState.RESOLVED
        return outcome

    async def reconcile(
        self,
        events: List[VerifiedEvent],
        ctx: Optional[PaymentProviderContext] = None,
    ) -> List[ReconciliationOutcome]:
        outcomes = [await self.reconcile_event(event, ctx) for event in events]
        resolved = sum(1 for o in outcomes if o.is_resolved)
        logger.info(
            f"Reconciled {len(outcomes)} notification event(s): {resolved} resolved, "
            f"{len(outcomes) - resolved} ignored or rejected"
        )
        return outcomes
