"""Tests for database models and repository layer."""

from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from adyen_provider.connectors.base import OrderReference, PaymentStatus, TransactionStatusUpdate
from adyen_provider.database import (
    Order,
    OrderRepository,
    SqlOrderStore,
    StoreRepository,
    TransactionAction,
    TransactionHistoryRepository,
)


class TestOrderModel:
    """Tests for the Order model."""

    async def test_order_defaults(self, order):
        assert order.id is not None
        assert order.payment_status == PaymentStatus.INITIALIZED.value
        assert order.transaction_id is None
        assert order.properties is None
        assert order.created_at is not None

    async def test_order_reference(self, order, store):
        assert order.generate_order_reference() == OrderReference(store.id, order.id)

    async def test_properties_round_trip_as_json(self, db_session, order):
        order.properties = {"adyenPspReference": "PSP-1"}
        await db_session.flush()
        assert order.properties_json == '{"adyenPspReference": "PSP-1"}'
        assert order.properties == {"adyenPspReference": "PSP-1"}

    async def test_to_dict(self, order):
        result = order.to_dict()
        assert result["order_number"] == "ORDER-1"
        assert result["currency_code"] == "USD"
        assert Decimal(result["transaction_amount"]) == Decimal("19.99")
        assert result["properties"] == {}

    async def test_order_number_unique_per_store(self, db_session, store, order):
        db_session.add(Order(
            store_id=store.id, order_number="ORDER-1", currency_code="USD", transaction_amount=Decimal("1"),
        ))
        with pytest.raises(IntegrityError):
            await db_session.flush()


class TestStoreRepository:
    """Tests for the StoreRepository."""

    async def test_create_and_get(self, db_session):
        repo = StoreRepository(db_session)
        created = await repo.create(name="Outlet")
        assert await repo.get_by_id(created.id) is created

    async def test_list_all(self, db_session):
        repo = StoreRepository(db_session)
        await repo.create(name="First", store_id="a")
        await repo.create(name="Second", store_id="b")
        assert {s.id for s in await repo.list_all()} == {"a", "b"}


class TestOrderRepository:
    """Tests for the OrderRepository."""

    async def test_get_by_id_is_scoped_to_store(self, db_session, order):
        repo = OrderRepository(db_session)
        assert await repo.get_by_id("store-1", order.id) is order
        assert await repo.get_by_id("other-store", order.id) is None

    async def test_get_by_reference(self, db_session, order):
        repo = OrderRepository(db_session)
        assert await repo.get_by_reference(order.generate_order_reference()) is order

    async def test_get_by_order_number(self, db_session, order):
        repo = OrderRepository(db_session)
        assert await repo.get_by_order_number("store-1", "ORDER-1") is order
        assert await repo.get_by_order_number("store-1", "ORDER-2") is None

    async def test_update_properties_merges(self, db_session, order):
        repo = OrderRepository(db_session)
        await repo.update_properties(order, {"a": "1"})
        await repo.update_properties(order, {"b": "2"})
        assert order.properties == {"a": "1", "b": "2"}

    async def test_apply_transaction_update(self, db_session, order):
        repo = OrderRepository(db_session)
        update = TransactionStatusUpdate(
            transaction_id="PSP-1",
            payment_status=PaymentStatus.AUTHORIZED,
            amount_authorized=Decimal("19.99"),
            metadata={"adyenPspReference": "PSP-1"},
        )

        changed = await repo.apply_transaction_update(order, update)

        assert changed
        assert order.transaction_id == "PSP-1"
        assert order.payment_status == "authorized"
        assert order.amount_authorized == Decimal("19.99")
        assert order.properties == {"adyenPspReference": "PSP-1"}

    async def test_apply_same_update_twice_is_noop(self, db_session, order):
        repo = OrderRepository(db_session)
        update = TransactionStatusUpdate(transaction_id="PSP-1", payment_status=PaymentStatus.CAPTURED)

        assert await repo.apply_transaction_update(order, update)
        assert not await repo.apply_transaction_update(order, update)
        assert order.payment_status == "captured"

    async def test_new_status_same_transaction_applies(self, db_session, order):
        repo = OrderRepository(db_session)
        await repo.apply_transaction_update(
            order, TransactionStatusUpdate(transaction_id="PSP-1", payment_status=PaymentStatus.AUTHORIZED)
        )
        changed = await repo.apply_transaction_update(
            order, TransactionStatusUpdate(transaction_id="PSP-1", payment_status=PaymentStatus.CAPTURED)
        )
        assert changed
        assert order.payment_status == "captured"


class TestTransactionHistoryRepository:
    """Tests for the TransactionHistoryRepository."""

    async def test_create_and_list(self, db_session, order):
        repo = TransactionHistoryRepository(db_session)
        entry = await repo.create(
            order_id=order.id,
            action=TransactionAction.CALLBACK.value,
            previous_status="initialized",
            new_status="authorized",
            transaction_id="PSP-1",
            amount=Decimal("19.99"),
            action_metadata={"eventCode": "AUTHORISATION"},
        )

        history = await repo.get_by_order_id(order.id)

        assert history == [entry]
        assert entry.action_metadata == {"eventCode": "AUTHORISATION"}
        assert entry.to_dict()["new_status"] == "authorized"

    async def test_history_for_other_order_is_empty(self, db_session, order):
        assert await TransactionHistoryRepository(db_session).get_by_order_id("missing") == []


class TestSqlOrderStore:
    """Tests for the order store adapter used by the reconciler."""

    async def test_find_order(self, db_session, order):
        order_store = SqlOrderStore(db_session)
        assert [s.id for s in await order_store.list_stores()] == ["store-1"]
        assert await order_store.find_order("store-1", "ORDER-1") is order
        assert await order_store.find_order("store-1", "nope") is None
