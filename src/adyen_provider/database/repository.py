"""Repository layer for store and order persistence."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional, Dict, Any, List, Sequence

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from ..connectors.base import OrderReference, PaymentStatus, TransactionStatusUpdate
from .models import Order, Store, TransactionHistory

logger = logging.getLogger(__name__)


class StoreRepository:
    """Repository for Store operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, name: str, store_id: Optional[str] = None) -> Store:
        store = Store(name=name)
        if store_id:
            store.id = store_id
        self.session.add(store)
        await self.session.flush()
        logger.info(f"Created store {store.id} ({name})")
        return store

    async def get_by_id(self, store_id: str) -> Optional[Store]:
        result = await self.session.execute(select(Store).where(Store.id == store_id))
        return result.scalar_one_or_none()

    async def list_all(self) -> List[Store]:
        """List stores in creation order."""
        result = await self.session.execute(select(Store).order_by(Store.created_at, Store.id))
        return list(result.scalars().all())


class OrderRepository:
    """Repository for Order CRUD operations."""

    def __init__(self, session: AsyncSession):
        """Initialize the repository with a database session.

        Args:
            session: AsyncSession instance for database operations.
        """
        self.session = session

    async def create(
        self,
        store_id: str,
        order_number: str,
        currency_code: str,
        transaction_amount: Decimal,
        customer_email: Optional[str] = None,
        customer_first_name: Optional[str] = None,
        customer_last_name: Optional[str] = None,
        customer_reference: Optional[str] = None,
        payment_status: str = PaymentStatus.INITIALIZED.value,
    ) -> Order:
        """Create a new order.

        Args:
            store_id: Store the order belongs to.
            order_number: Store unique order number.
            currency_code: Three-letter currency code.
            transaction_amount: Amount to pay in major units.
            customer_email: Optional shopper e-mail.
            customer_first_name: Optional shopper first name.
            customer_last_name: Optional shopper last name.
            customer_reference: Optional shopper reference.
            payment_status: Initial payment status.

        Returns:
            Created Order instance.
        """
        order = Order(
            store_id=store_id,
            order_number=order_number,
            currency_code=currency_code.upper(),
            transaction_amount=Decimal(str(transaction_amount)),
            customer_email=customer_email,
            customer_first_name=customer_first_name,
            customer_last_name=customer_last_name,
            customer_reference=customer_reference,
            payment_status=payment_status,
        )
        self.session.add(order)
        await self.session.flush()

        logger.info(f"Created order {order.order_number} ({order.id}) in store {store_id}")
        return order

    async def get_by_id(self, store_id: str, order_id: str) -> Optional[Order]:
        result = await self.session.execute(
            select(Order).where(and_(Order.store_id == store_id, Order.id == order_id))
        )
        return result.scalar_one_or_none()

    async def get_by_reference(self, reference: OrderReference) -> Optional[Order]:
        return await self.get_by_id(reference.store_id, reference.order_id)

    async def get_by_order_number(self, store_id: str, order_number: str) -> Optional[Order]:
        result = await self.session.execute(
            select(Order).where(
                and_(Order.store_id == store_id, Order.order_number == order_number)
            )
        )
        return result.scalar_one_or_none()

    async def update_properties(self, order: Order, properties: Dict[str, str]) -> Order:
        """Merge key/value pairs into the order's transaction metadata."""
        merged = order.properties or {}
        merged.update(properties)
        order.properties = merged
        order.updated_at = datetime.utcnow()
        await self.session.flush()
        return order

    async def apply_transaction_update(self, order: Order, update: TransactionStatusUpdate) -> bool:
        """Apply a transaction status update to an order.

        Applying the same transaction id and status twice is a no-op, so
        a webhook and a synchronous call confirming the same change can both
        be applied safely.

        Returns:
            True if the order changed.
        """
        new_status = update.payment_status.value
        if order.transaction_id == update.transaction_id and order.payment_status == new_status:
            logger.info(
                f"Order {order.order_number} already {new_status} for {update.transaction_id}, skipping"
            )
            return False

        order.transaction_id = update.transaction_id
        order.payment_status = new_status
        if update.amount_authorized is not None:
            order.amount_authorized = update.amount_authorized
        if update.metadata:
            merged = order.properties or {}
            merged.update(update.metadata)
            order.properties = merged
        order.updated_at = datetime.utcnow()

        await self.session.flush()
        logger.info(f"Updated order {order.order_number} status to {new_status}")
        return True


class TransactionHistoryRepository:
    """Repository for TransactionHistory operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        order_id: str,
        action: str,
        new_status: str,
        previous_status: Optional[str] = None,
        transaction_id: Optional[str] = None,
        amount: Optional[Decimal] = None,
        action_metadata: Optional[Dict[str, Any]] = None,
    ) -> TransactionHistory:
        """Create a new transaction history record.

        Args:
            order_id: Associated order ID.
            action: Type of action performed.
            new_status: Status after the action.
            previous_status: Status before the action.
            transaction_id: Gateway transaction id at the time of the action.
            amount: Amount involved in the action, in major units.
            action_metadata: Optional metadata for this action.

        Returns:
            Created TransactionHistory instance.
        """
        history = TransactionHistory(
            order_id=order_id,
            action=action,
            previous_status=previous_status,
            new_status=new_status,
            transaction_id=transaction_id,
            amount=amount,
        )
        if action_metadata:
            history.action_metadata = action_metadata

        self.session.add(history)
        await self.session.flush()
        return history

    async def get_by_order_id(self, order_id: str) -> List[TransactionHistory]:
        """Get history for an order, oldest first."""
        result = await self.session.execute(
            select(TransactionHistory)
            .where(TransactionHistory.order_id == order_id)
            .order_by(TransactionHistory.created_at.asc())
        )
        return list(result.scalars().all())


class SqlOrderStore:
    """Order store backed by the repositories above."""

    def __init__(self, session: AsyncSession):
        self.stores = StoreRepository(session)
        self.orders = OrderRepository(session)

    async def list_stores(self) -> Sequence[Store]:
        return await self.stores.list_all()

    async def find_order(self, store_id: str, order_number: str) -> Optional[Order]:
        return await self.orders.get_by_order_number(store_id, order_number)
