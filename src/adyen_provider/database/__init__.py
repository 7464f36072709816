"""Reference host persistence: stores, orders and their transaction history."""

from .models import (
    Base,
    Store,
    Order,
    TransactionHistory,
    TransactionAction,
)
from .session import (
    get_db,
    get_database_url,
    init_db,
    close_db,
    create_async_engine,
    create_tables,
    get_async_session_factory,
)
from .repository import (
    StoreRepository,
    OrderRepository,
    TransactionHistoryRepository,
    SqlOrderStore,
)

__all__ = [
    # Models
    "Base",
    "Store",
    "Order",
    "TransactionHistory",
    "TransactionAction",
    # Session management
    "get_db",
    "get_database_url",
    "init_db",
    "close_db",
    "create_async_engine",
    "create_tables",
    "get_async_session_factory",
    # Repositories
    "StoreRepository",
    "OrderRepository",
    "TransactionHistoryRepository",
    "SqlOrderStore",
]
