import logging
from typing import Callable, FrozenSet, Optional

from ..config import AdyenSettings, ProviderCapabilities
from ..currency import amount_to_minor_units, normalize_currency_code
from ..exceptions import (
    AuthenticationFailure,
    ConfigurationError,
    CredentialFormatError,
    GatewayTransportError,
)
from ..webhooks.context import PaymentProviderContext
from ..webhooks.parser import get_webhook_notification
from ..webhooks.reconciler import (
    ModificationResponse,
    PAYMENT_LINK_ID_METADATA,
    PAYMENT_PSP_REFERENCE_METADATA,
    PSP_REFERENCE_METADATA,
    ReconciliationOutcome,
    WebhookReconciler,
    map_modification_status,
)
from .adyen_client import AdyenClient, ModificationResult
from .base import (
    ApiResult,
    CallbackResult,
    FormUrls,
    OrderLike,
    OrderReference,
    OrderStore,
    PaymentFormResult,
    PaymentProviderBase,
    TransactionStatusUpdate,
)

logger = logging.getLogger(__name__)

RECONCILIATION_OUTCOMES_KEY = "adyen_reconciliation_outcomes"


class AdyenCheckoutProvider(PaymentProviderBase):
    """
    Adyen provider for one time payments through hosted payment links.

    The shopper is redirected to a payment link; the order is finalized by
    the webhook notifications, not at the continue URL. Capture, cancel and
    refund go through the modification API and are enabled per instance via
    ProviderCapabilities.
    """

    alias = "adyen-checkout"

    def __init__(
        self,
        order_store: Optional[OrderStore] = None,
        capabilities: Optional[ProviderCapabilities] = None,
        client_factory: Callable[[AdyenSettings], AdyenClient] = AdyenClient,
    ):
        super().__init__(order_store, capabilities)
        self.client_factory = client_factory
        self.reconciler = WebhookReconciler(order_store, default_resolver=self.default_order_reference)

    def get_client(self, settings: AdyenSettings) -> AdyenClient:
        return self.client_factory(settings)

    @staticmethod
    def payment_reference(order: OrderLike) -> Optional[str]:
        """pspReference of the payment a modification has to reference.

        After a modification the order's transaction id is the
        modification's own pspReference, so the payment's is read back from
        the order properties.
        """
        properties = order.properties or {}
        return properties.get(PAYMENT_PSP_REFERENCE_METADATA) or order.transaction_id

    async def generate_form(
        self, order: OrderLike, urls: FormUrls, settings: AdyenSettings
    ) -> PaymentFormResult:
        """Create a payment link for the order and redirect the shopper to it.

        Raises:
            ValueError: If the order currency is not an ISO 4217 code.
            GatewayTransportError: If the payment link could not be created.
        """
        currency_code = normalize_currency_code(order.currency_code)
        order_amount = amount_to_minor_units(order.transaction_amount, currency_code)

        request = {
            "amount": {"currency": currency_code, "value": order_amount},
            "reference": order.order_number,
            "returnUrl": urls.continue_url,
            # Echoed back in notifications as additionalData["metadata.<key>"]
            "metadata": {
                "orderReference": str(order.generate_order_reference()),
                "orderId": str(order.id),
                "orderNumber": order.order_number,
            },
        }
        if order.customer_email:
            request["shopperEmail"] = order.customer_email
        if order.customer_reference:
            request["shopperReference"] = order.customer_reference
        if order.customer_first_name or order.customer_last_name:
            request["shopperName"] = {
                "firstName": order.customer_first_name or "",
                "lastName": order.customer_last_name or "",
            }
        if settings.allowed_payment_methods:
            request["allowedPaymentMethods"] = settings.allowed_payment_methods
        if settings.blocked_payment_methods:
            request["blockedPaymentMethods"] = settings.blocked_payment_methods
        if settings.locale:
            request["shopperLocale"] = settings.locale

        try:
            result = await self.get_client(settings).create_payment_link(request)
        except GatewayTransportError as e:
            logger.error(f"Request for payment failed::\n{e.response_body or e.message}\n")
            raise

        metadata = {
            PAYMENT_LINK_ID_METADATA: result.id,
            "adyenContinueUrl": urls.continue_url,
            "adyenCancelUrl": urls.cancel_url,
            "adyenErrorUrl": urls.error_url,
        }
        if result.reference:
            metadata["adyenPaymentLinkReference"] = result.reference

        return PaymentFormResult(redirect_url=result.url, method="GET", metadata=metadata)

    async def _reconcile(self, ctx: PaymentProviderContext):
        notification = get_webhook_notification(ctx)
        outcomes = ctx.additional_data.get(RECONCILIATION_OUTCOMES_KEY)
        if outcomes is None:
            outcomes = await self.reconciler.reconcile(notification.events, ctx)
            ctx.additional_data[RECONCILIATION_OUTCOMES_KEY] = outcomes
        return notification, outcomes

    async def process_callback(self, ctx: PaymentProviderContext) -> CallbackResult:
        """Turn a webhook delivery into a transaction status update.

        Raises:
            CredentialFormatError: If Basic auth credentials can't be decoded.
        """
        try:
            notification, outcomes = await self._reconcile(ctx)
        except CredentialFormatError:
            raise
        except AuthenticationFailure as e:
            logger.warning(f"Adyen - ProcessCallback authentication failed: {e.message}")
            return CallbackResult.bad_request(authenticated=False)

        resolved: Optional[ReconciliationOutcome] = next(
            (outcome for outcome in outcomes if outcome.is_resolved), None
        )
        return CallbackResult(
            accepted=notification.acknowledged,
            transaction_update=resolved.update if resolved else None,
            order_reference=resolved.order_reference if resolved else None,
            outcomes=outcomes,
        )

    async def get_order_reference(self, ctx: PaymentProviderContext) -> Optional[OrderReference]:
        """Reference of the order the delivery's first verified event belongs to."""
        try:
            notification = get_webhook_notification(ctx)
        except CredentialFormatError:
            raise
        except AuthenticationFailure:
            return None

        if not notification.events:
            return self.default_order_reference(ctx)
        return await self.reconciler.resolve_order_reference(notification.events[0], ctx)

    async def capture_payment(self, order: OrderLike, settings: AdyenSettings) -> ApiResult:
        if not self.capabilities.can_capture:
            logger.warning(f"Adyen - capture is not enabled, order {order.order_number} left unchanged")
            return ApiResult.empty()
        return await self._modify(
            "capture",
            order,
            settings,
            accepted=frozenset({ModificationResponse.CAPTURE_RECEIVED}),
            with_amount=True,
        )

    async def cancel_payment(self, order: OrderLike, settings: AdyenSettings) -> ApiResult:
        if not self.capabilities.can_cancel:
            logger.warning(f"Adyen - cancel is not enabled, order {order.order_number} left unchanged")
            return ApiResult.empty()
        return await self._modify(
            "cancel",
            order,
            settings,
            accepted=frozenset({
                ModificationResponse.CANCEL_RECEIVED,
                ModificationResponse.CANCEL_OR_REFUND_RECEIVED,
            }),
        )

    async def refund_payment(self, order: OrderLike, settings: AdyenSettings) -> ApiResult:
        if not self.capabilities.can_refund:
            logger.warning(f"Adyen - refund is not enabled, order {order.order_number} left unchanged")
            return ApiResult.empty()
        return await self._modify(
            "refund",
            order,
            settings,
            accepted=frozenset({ModificationResponse.REFUND_RECEIVED}),
            with_amount=True,
        )

    async def _modify(
        self,
        operation: str,
        order: OrderLike,
        settings: AdyenSettings,
        accepted: FrozenSet[ModificationResponse],
        with_amount: bool = False,
    ) -> ApiResult:
        """Run a modification and map the synchronous answer.

        Failures are logged and reported as an empty result so the host leaves
        the order untouched.
        """
        payment_reference = self.payment_reference(order)
        if not payment_reference:
            logger.warning(f"Adyen - cannot {operation} order {order.order_number} without a transaction id")
            return ApiResult.empty()

        try:
            client = self.get_client(settings)
            if with_amount:
                currency_code = normalize_currency_code(order.currency_code)
                amount = amount_to_minor_units(order.transaction_amount, currency_code)
                result: ModificationResult = await getattr(client, operation)(
                    payment_reference, amount, currency_code, reference=order.order_number
                )
            else:
                result = await getattr(client, operation)(payment_reference, reference=order.order_number)
        except GatewayTransportError as e:
            logger.error(
                f"Adyen - {operation} failed for order {order.order_number}: {e.message}\n{e.response_body or ''}"
            )
            return ApiResult.empty()
        except (ConfigurationError, ValueError) as e:
            logger.error(f"Adyen - {operation} failed for order {order.order_number}: {e}")
            return ApiResult.empty()

        if ModificationResponse.parse(result.response) not in accepted:
            logger.warning(
                f"Adyen - {operation} for order {order.order_number} answered {result.response!r}"
            )
            return ApiResult.empty()

        # Same transaction id as the webhook confirming this modification
        metadata = {PAYMENT_PSP_REFERENCE_METADATA: payment_reference}
        if result.psp_reference:
            metadata[PSP_REFERENCE_METADATA] = result.psp_reference
        return ApiResult(
            transaction_update=TransactionStatusUpdate(
                transaction_id=result.psp_reference or payment_reference,
                payment_status=map_modification_status(result.response),
                metadata=metadata,
            )
        )
