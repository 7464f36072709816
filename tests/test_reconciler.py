"""Tests for status mapping, order reference resolution and reconciliation."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional

import pytest

from adyen_provider.connectors.base import OrderReference, PaymentStatus
from adyen_provider.webhooks.models import EventCode, VerifiedEvent
from adyen_provider.webhooks.parser import get_webhook_notification
from adyen_provider.webhooks.reconciler import (
    PAYMENT_LINK_ID_METADATA,
    PAYMENT_METHOD_METADATA,
    PAYMENT_PSP_REFERENCE_METADATA,
    PSP_REFERENCE_METADATA,
    ModificationResponse,
    ReconciliationState,
    WebhookReconciler,
    build_transaction_update,
    map_event_status,
    map_modification_status,
)

from conftest import make_item, make_notification


@dataclass
class FakeStore:
    id: str


@dataclass
class FakeOrder:
    id: str
    store_id: str
    order_number: str
    payment_status: str = PaymentStatus.INITIALIZED.value

    def generate_order_reference(self) -> OrderReference:
        return OrderReference(self.store_id, self.id)


class FakeOrderStore:
    """In-memory order store; stores are scanned in insertion order."""

    def __init__(self, orders: List[FakeOrder], store_ids: Optional[List[str]] = None):
        self.orders = orders
        self.store_ids = store_ids or list(dict.fromkeys(o.store_id for o in orders))
        self.lookups: List[tuple] = []

    async def list_stores(self):
        return [FakeStore(store_id) for store_id in self.store_ids]

    async def find_order(self, store_id: str, order_number: str):
        self.lookups.append((store_id, order_number))
        for order in self.orders:
            if order.store_id == store_id and order.order_number == order_number:
                return order
        return None


class BrokenOrderStore:
    async def list_stores(self):
        raise RuntimeError("database is down")

    async def find_order(self, store_id, order_number):
        raise AssertionError("not reached")


def event(
    code: str = "AUTHORISATION",
    success: bool = True,
    merchant_reference: str = "ORDER-1",
    value: int = 1999,
    currency: str = "USD",
    additional_data: Optional[Dict[str, str]] = None,
    payment_method: Optional[str] = "visa",
) -> VerifiedEvent:
    return VerifiedEvent(
        event_code=EventCode.parse(code),
        raw_event_code=code,
        psp_reference="PSP-1",
        merchant_reference=merchant_reference,
        success=success,
        amount_minor_units=value,
        currency=currency,
        payment_method=payment_method,
        additional_data=additional_data or {},
    )


class TestWebhookStatusTable:
    """Tests for mapping event code and success flag onto a payment status."""

    @pytest.mark.parametrize("code,success,expected", [
        ("AUTHORISATION", True, PaymentStatus.AUTHORIZED),
        ("AUTHORISATION", False, None),
        ("AUTHORISATION_ADJUSTMENT", True, PaymentStatus.AUTHORIZED),
        ("PENDING", True, PaymentStatus.PENDING_EXTERNAL_SYSTEM),
        ("PENDING", False, None),
        ("CAPTURE", True, PaymentStatus.CAPTURED),
        ("CAPTURE", False, None),
        ("REFUND", True, PaymentStatus.REFUNDED),
        ("REFUND_WITH_DATA", True, PaymentStatus.REFUNDED),
        ("REFUND", False, None),
        ("CANCELLATION", False, PaymentStatus.CANCELLED),
        ("CANCELLATION", True, None),
        ("CANCEL_OR_REFUND", True, PaymentStatus.CANCELLED),
        ("CANCEL_OR_REFUND", False, PaymentStatus.CANCELLED),
        ("CHARGEBACK", True, None),
        ("SOMETHING_NEW", True, None),
    ])
    def test_map_event_status(self, code, success, expected):
        assert map_event_status(event(code, success)) == expected


class TestModificationStatusTable:
    """Tests for mapping synchronous modification responses."""

    @pytest.mark.parametrize("response,expected", [
        ("[refund-received]", PaymentStatus.REFUNDED),
        ("[capture-received]", PaymentStatus.CAPTURED),
        ("[cancel-received]", PaymentStatus.CANCELLED),
        ("[cancelOrRefund-received]", PaymentStatus.CANCELLED),
        ("[adjustAuthorisation-received]", PaymentStatus.AUTHORIZED),
        ("[technical-cancel-received]", PaymentStatus.INITIALIZED),
        (None, PaymentStatus.INITIALIZED),
    ])
    def test_map_modification_status(self, response, expected):
        assert map_modification_status(response) == expected

    def test_parse_unknown_response(self):
        assert ModificationResponse.parse("whatever") == ModificationResponse.UNKNOWN


class TestTransactionUpdate:
    """Tests for building the update handed to the host."""

    def test_amount_and_metadata(self):
        update = build_transaction_update(
            event(additional_data={"paymentLinkId": "PL123"}), PaymentStatus.AUTHORIZED
        )
        assert update.transaction_id == "PSP-1"
        assert update.amount_authorized == Decimal("19.99")
        assert update.payment_status == PaymentStatus.AUTHORIZED
        assert update.metadata == {
            PSP_REFERENCE_METADATA: "PSP-1",
            PAYMENT_PSP_REFERENCE_METADATA: "PSP-1",
            PAYMENT_METHOD_METADATA: "visa",
            PAYMENT_LINK_ID_METADATA: "PL123",
        }

    def test_optional_metadata_is_omitted(self):
        update = build_transaction_update(event(payment_method=None), PaymentStatus.CAPTURED)
        assert update.metadata == {PSP_REFERENCE_METADATA: "PSP-1", PAYMENT_PSP_REFERENCE_METADATA: "PSP-1"}

    def test_modification_keeps_its_own_reference(self):
        capture = event(code="CAPTURE").model_copy(update={"original_reference": "PAY-1"})
        update = build_transaction_update(capture, PaymentStatus.CAPTURED)
        assert update.transaction_id == "PSP-1"
        assert update.metadata[PAYMENT_PSP_REFERENCE_METADATA] == "PAY-1"

    def test_zero_decimal_currency(self):
        update = build_transaction_update(event(value=1000, currency="JPY"), PaymentStatus.AUTHORIZED)
        assert update.amount_authorized == Decimal("1000")

    def test_invalid_currency(self):
        with pytest.raises(ValueError):
            build_transaction_update(event(currency="???"), PaymentStatus.AUTHORIZED)


class TestOrderReferenceResolution:
    """Tests for finding the order an event belongs to."""

    async def test_reference_from_metadata(self):
        store = FakeOrderStore([])
        reconciler = WebhookReconciler(store)

        reference = await reconciler.resolve_order_reference(
            event(additional_data={"metadata.orderReference": "store-1:order-9"})
        )

        assert reference == OrderReference("store-1", "order-9")
        assert store.lookups == []

    async def test_scan_finds_open_order(self):
        store = FakeOrderStore(
            [FakeOrder("o-2", "store-2", "ORDER-42", PaymentStatus.AUTHORIZED.value)],
            store_ids=["store-1", "store-2"],
        )
        reconciler = WebhookReconciler(store)

        reference = await reconciler.resolve_order_reference(event(merchant_reference="ORDER-42"))

        assert reference == OrderReference("store-2", "o-2")
        assert store.lookups == [("store-1", "ORDER-42"), ("store-2", "ORDER-42")]

    async def test_scan_skips_orders_that_are_not_open(self):
        store = FakeOrderStore([
            FakeOrder("o-1", "store-1", "ORDER-42", PaymentStatus.CAPTURED.value),
            FakeOrder("o-2", "store-2", "ORDER-42", PaymentStatus.INITIALIZED.value),
        ])
        reference = await WebhookReconciler(store).resolve_order_reference(event(merchant_reference="ORDER-42"))
        assert reference == OrderReference("store-2", "o-2")

    async def test_first_matching_store_wins(self):
        store = FakeOrderStore([
            FakeOrder("o-1", "store-1", "ORDER-42"),
            FakeOrder("o-2", "store-2", "ORDER-42"),
        ])
        reference = await WebhookReconciler(store).resolve_order_reference(event(merchant_reference="ORDER-42"))
        assert reference == OrderReference("store-1", "o-1")

    async def test_invalid_metadata_falls_back_to_default(self, make_context):
        calls = []

        def default_resolver(ctx):
            calls.append(ctx)
            return OrderReference("store-x", "order-x")

        ctx = make_context(b"")
        reconciler = WebhookReconciler(FakeOrderStore([]), default_resolver=default_resolver)

        reference = await reconciler.resolve_order_reference(
            event(additional_data={"metadata.orderReference": "garbage"}), ctx
        )

        assert reference == OrderReference("store-x", "order-x")
        assert calls == [ctx]

    async def test_store_failure_is_logged_and_falls_back(self, caplog):
        reconciler = WebhookReconciler(BrokenOrderStore())
        reference = await reconciler.resolve_order_reference(event())
        assert reference is None
        assert "GetOrderReference failed" in caplog.text

    async def test_unresolvable(self):
        reference = await WebhookReconciler(FakeOrderStore([])).resolve_order_reference(event())
        assert reference is None


class TestWebhookReconciler:
    """Tests for the per-event state machine."""

    async def test_resolved_outcome(self):
        reconciler = WebhookReconciler(FakeOrderStore([FakeOrder("o-1", "store-1", "ORDER-1")]))

        outcome = await reconciler.reconcile_event(event())

        assert outcome.state == ReconciliationState.RESOLVED
        assert outcome.is_resolved
        assert outcome.payment_status == PaymentStatus.AUTHORIZED
        assert outcome.order_reference == OrderReference("store-1", "o-1")
        assert outcome.update.payment_status == PaymentStatus.AUTHORIZED

    async def test_not_actionable_is_ignored(self):
        outcome = await WebhookReconciler(FakeOrderStore([])).reconcile_event(event("CHARGEBACK"))
        assert outcome.state == ReconciliationState.IGNORED
        assert outcome.update is None
        assert "CHARGEBACK" in outcome.reason

    async def test_unknown_order_is_rejected(self):
        outcome = await WebhookReconciler(FakeOrderStore([])).reconcile_event(event())
        assert outcome.state == ReconciliationState.REJECTED
        assert outcome.order_reference is None

    async def test_bad_currency_is_rejected(self):
        outcome = await WebhookReconciler(FakeOrderStore([])).reconcile_event(event(currency=""))
        assert outcome.state == ReconciliationState.REJECTED

    async def test_one_outcome_per_event(self):
        reconciler = WebhookReconciler(FakeOrderStore([FakeOrder("o-1", "store-1", "ORDER-1")]))
        outcomes = await reconciler.reconcile([event(), event("REPORT_AVAILABLE"), event("CAPTURE")])
        assert [o.state for o in outcomes] == [
            ReconciliationState.RESOLVED,
            ReconciliationState.IGNORED,
            ReconciliationState.RESOLVED,
        ]

    async def test_cancellation_without_metadata_end_to_end(self, make_context):
        """A cancellation carries no custom metadata; the order is found by number."""
        store = FakeOrderStore(
            [FakeOrder("o-42", "store-2", "ORDER-42", PaymentStatus.AUTHORIZED.value)],
            store_ids=["store-1", "store-2"],
        )
        body = make_notification([
            make_item(event_code="CANCELLATION", success=False, merchant_reference="ORDER-42",
                      psp_reference="PSP-CANCEL", value=5000, currency="EUR", payment_method=None),
        ])
        ctx = make_context(body)

        notification = get_webhook_notification(ctx)
        outcomes = await WebhookReconciler(store).reconcile(notification.events, ctx)

        assert notification.acknowledged
        assert len(outcomes) == 1
        outcome = outcomes[0]
        assert outcome.state == ReconciliationState.RESOLVED
        assert outcome.order_reference == OrderReference("store-2", "o-42")
        assert outcome.update.payment_status == PaymentStatus.CANCELLED
        assert outcome.update.transaction_id == "PSP-CANCEL"
        assert outcome.update.amount_authorized == Decimal("50.00")
