"""Order payment service that ties the provider to the reference host's persistence."""

import logging
from typing import Optional, Dict, Any, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from .config import AdyenSettings
from .connectors.base import (
    ApiResult,
    CallbackResult,
    PaymentFormResult,
    PaymentProviderBase,
    TransactionStatusUpdate,
)
from .database import (
    Order,
    OrderRepository,
    TransactionAction,
    TransactionHistoryRepository,
)
from .exceptions import OrderNotFoundError
from .webhooks.context import PaymentProviderContext

logger = logging.getLogger(__name__)


class OrderPaymentService:
    """Service class for order payment operations with persistence."""

    def __init__(self, session: AsyncSession, provider: PaymentProviderBase, settings: AdyenSettings):
        """Initialize the service.

        Args:
            session: AsyncSession instance for database operations.
            provider: Payment provider handling the gateway side.
            settings: Merchant configuration passed to every provider call.
        """
        self.session = session
        self.provider = provider
        self.settings = settings
        self.order_repo = OrderRepository(session)
        self.history_repo = TransactionHistoryRepository(session)

    async def _get_order(self, store_id: str, order_id: str) -> Order:
        order = await self.order_repo.get_by_id(store_id, order_id)
        if order is None:
            raise OrderNotFoundError(store_id, order_id)
        return order

    async def _apply(
        self,
        order: Order,
        update: TransactionStatusUpdate,
        action: TransactionAction,
        action_metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        previous_status = order.payment_status
        changed = await self.order_repo.apply_transaction_update(order, update)
        if changed:
            await self.history_repo.create(
                order_id=order.id,
                action=action.value,
                previous_status=previous_status,
                new_status=order.payment_status,
                transaction_id=update.transaction_id,
                amount=update.amount_authorized,
                action_metadata=action_metadata,
            )
        return changed

    async def handle_webhook(self, ctx: PaymentProviderContext) -> CallbackResult:
        """Process a webhook delivery and apply every resolved event.

        Redelivered notifications are applied idempotently, so the gateway
        retrying a delivery never records a second transition.

        Raises:
            CredentialFormatError: If Basic auth credentials can't be decoded.
        """
        result = await self.provider.process_callback(ctx)
        if not result.authenticated:
            return result

        for outcome in result.outcomes:
            if not outcome.is_resolved:
                continue
            order = await self.order_repo.get_by_reference(outcome.order_reference)
            if order is None:
                logger.warning(
                    f"Notification {outcome.event.psp_reference} references unknown order "
                    f"{outcome.order_reference}"
                )
                continue
            await self._apply(
                order,
                outcome.update,
                TransactionAction.CALLBACK,
                action_metadata={
                    "eventCode": outcome.event.raw_event_code,
                    "pspReference": outcome.event.psp_reference,
                    "success": outcome.event.success,
                },
            )

        return result

    async def generate_payment_link(
        self,
        store_id: str,
        order_id: str,
        callback_url: Optional[str] = None,
    ) -> Tuple[Order, PaymentFormResult]:
        """Create a payment link for an order and remember its metadata.

        Raises:
            OrderNotFoundError: If the order does not exist.
            ConfigurationError: If a redirect URL is not configured.
            GatewayTransportError: If the gateway rejected the request.
        """
        order = await self._get_order(store_id, order_id)
        urls = self.provider.get_form_urls(self.settings, callback_url)
        form = await self.provider.generate_form(order, urls, self.settings)

        await self.order_repo.update_properties(order, form.metadata)
        await self.history_repo.create(
            order_id=order.id,
            action=TransactionAction.FORM_GENERATED.value,
            previous_status=order.payment_status,
            new_status=order.payment_status,
            amount=order.transaction_amount,
            action_metadata={"redirectUrl": form.redirect_url},
        )
        logger.info(f"Generated payment link for order {order.order_number}")
        return order, form

    async def _run_operation(
        self, store_id: str, order_id: str, action: TransactionAction
    ) -> Tuple[Order, ApiResult]:
        order = await self._get_order(store_id, order_id)
        operation = {
            TransactionAction.CAPTURE: self.provider.capture_payment,
            TransactionAction.CANCEL: self.provider.cancel_payment,
            TransactionAction.REFUND: self.provider.refund_payment,
        }[action]

        result = await operation(order, self.settings)
        if result.is_empty:
            logger.info(f"{action.value} left order {order.order_number} unchanged")
            return order, result

        await self._apply(order, result.transaction_update, action)
        return order, result

    async def capture_payment(self, store_id: str, order_id: str) -> Tuple[Order, ApiResult]:
        return await self._run_operation(store_id, order_id, TransactionAction.CAPTURE)

    async def cancel_payment(self, store_id: str, order_id: str) -> Tuple[Order, ApiResult]:
        return await self._run_operation(store_id, order_id, TransactionAction.CANCEL)

    async def refund_payment(self, store_id: str, order_id: str) -> Tuple[Order, ApiResult]:
        return await self._run_operation(store_id, order_id, TransactionAction.REFUND)

    async def get_order(self, store_id: str, order_id: str) -> Dict[str, Any]:
        """Get an order with its transaction history.

        Raises:
            OrderNotFoundError: If the order does not exist.
        """
        order = await self._get_order(store_id, order_id)
        history = await self.history_repo.get_by_order_id(order.id)
        data = order.to_dict()
        data["transaction_history"] = [entry.to_dict() for entry in history]
        return data
