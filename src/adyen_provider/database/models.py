"""SQLAlchemy models for the reference host's stores and orders."""

import uuid
import json
from datetime import datetime
from decimal import Decimal
from typing import Optional, Dict, Any, List

from sqlalchemy import (
    String,
    DateTime,
    ForeignKey,
    Numeric,
    Text,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship, Mapped, mapped_column
import enum

from ..connectors.base import OrderReference, PaymentStatus


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class TransactionAction(str, enum.Enum):
    """Types of transaction actions tracked in history."""
    FORM_GENERATED = "form_generated"
    CALLBACK = "callback"
    CAPTURE = "capture"
    CANCEL = "cancel"
    REFUND = "refund"


def _load_json(value: Optional[str]) -> Optional[Dict[str, Any]]:
    if value:
        return json.loads(value)
    return None


def _dump_json(value: Optional[Dict[str, Any]]) -> Optional[str]:
    if value is not None:
        return json.dumps(value)
    return None


class Store(Base):
    __tablename__ = "stores"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    orders: Mapped[List["Order"]] = relationship("Order", back_populates="store", cascade="all, delete-orphan")


class Order(Base):
    """Order with its current transaction info."""
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    store_id: Mapped[str] = mapped_column(String(36), ForeignKey("stores.id"), nullable=False)
    order_number: Mapped[str] = mapped_column(String(100), nullable=False)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False)
    # Major units
    transaction_amount: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)

    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_first_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_last_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Transaction info
    payment_status: Mapped[str] = mapped_column(String(50), nullable=False, default=PaymentStatus.INITIALIZED.value)
    transaction_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    amount_authorized: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 4), nullable=True)

    # Transaction metadata (psp reference, payment link id, ...) stored as JSON
    properties_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    store: Mapped["Store"] = relationship("Store", back_populates="orders")
    transaction_history: Mapped[List["TransactionHistory"]] = relationship(
        "TransactionHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="TransactionHistory.created_at.desc()"
    )

    __table_args__ = (
        UniqueConstraint("store_id", "order_number", name="uq_orders_store_order_number"),
        Index("ix_orders_payment_status", "payment_status"),
    )

    @property
    def properties(self) -> Optional[Dict[str, Any]]:
        return _load_json(self.properties_json)

    @properties.setter
    def properties(self, value: Optional[Dict[str, Any]]) -> None:
        self.properties_json = _dump_json(value)

    def generate_order_reference(self) -> OrderReference:
        return OrderReference(store_id=self.store_id, order_id=self.id)

    def to_dict(self) -> Dict[str, Any]:
        """Convert order to dictionary representation."""
        return {
            "id": self.id,
            "store_id": self.store_id,
            "order_number": self.order_number,
            "currency_code": self.currency_code,
            "transaction_amount": str(self.transaction_amount) if self.transaction_amount is not None else None,
            "payment_status": self.payment_status,
            "transaction_id": self.transaction_id,
            "amount_authorized": str(self.amount_authorized) if self.amount_authorized is not None else None,
            "properties": self.properties or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class TransactionHistory(Base):
    """Model for tracking transaction history and state transitions."""
    __tablename__ = "transaction_history"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("orders.id"), nullable=False, index=True)

    action: Mapped[str] = mapped_column(String(50), nullable=False)
    previous_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    new_status: Mapped[str] = mapped_column(String(50), nullable=False)
    transaction_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 4), nullable=True)
    action_metadata_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    order: Mapped["Order"] = relationship("Order", back_populates="transaction_history")

    __table_args__ = (
        Index("ix_transaction_history_action", "action"),
        Index("ix_transaction_history_created_at", "created_at"),
    )

    @property
    def action_metadata(self) -> Optional[Dict[str, Any]]:
        return _load_json(self.action_metadata_json)

    @action_metadata.setter
    def action_metadata(self, value: Optional[Dict[str, Any]]) -> None:
        self.action_metadata_json = _dump_json(value)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "action": self.action,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "transaction_id": self.transaction_id,
            "amount": str(self.amount) if self.amount is not None else None,
            "action_metadata": self.action_metadata,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
