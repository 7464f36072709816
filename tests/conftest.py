"""Shared test fixtures and configuration."""

import base64
import json
import os
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest
from Adyen.util import generate_notification_sig

# Set up test environment variables before importing modules
os.environ.setdefault("API_KEY", "test_api_key_12345")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from adyen_provider.config import AdyenSettings
from adyen_provider.database import (
    Base,
    OrderRepository,
    StoreRepository,
    create_async_engine,
    get_async_session_factory,
)
from adyen_provider.webhooks.context import PaymentProviderContext, RawRequest

HMAC_KEY = "44782DEF547AAA06C910C43932B1EB0C71FC68D9D0C057550C48EC2ACF6BA056"
OTHER_HMAC_KEY = "00112233445566778899AABBCCDDEEFF00112233445566778899AABBCCDDEEFF"
MERCHANT_ACCOUNT = "TestMerchantECOM"


def make_item(
    event_code: str = "AUTHORISATION",
    psp_reference: str = "8535296650153317",
    merchant_reference: str = "ORDER-1",
    success: bool = True,
    value: int = 1999,
    currency: str = "USD",
    original_reference: Optional[str] = None,
    payment_method: Optional[str] = "visa",
    additional_data: Optional[Dict[str, Any]] = None,
    hmac_key: Optional[str] = HMAC_KEY,
) -> Dict[str, Any]:
    """Build a NotificationRequestItem payload, signed with ``hmac_key``."""
    item = {
        "pspReference": psp_reference,
        "merchantAccountCode": MERCHANT_ACCOUNT,
        "merchantReference": merchant_reference,
        "eventCode": event_code,
        "eventDate": "2024-01-15T10:30:00+01:00",
        "success": "true" if success else "false",
        "amount": {"value": value, "currency": currency},
        "additionalData": dict(additional_data or {}),
    }
    if original_reference:
        item["originalReference"] = original_reference
    if payment_method:
        item["paymentMethod"] = payment_method
    if hmac_key:
        item["additionalData"]["hmacSignature"] = generate_notification_sig(item, hmac_key).decode("utf-8")
    return item


def make_notification(items: List[Dict[str, Any]], live: Any = "false") -> bytes:
    """Wrap items into a delivery body."""
    body = {
        "live": live,
        "notificationItems": [{"NotificationRequestItem": item} for item in items],
    }
    return json.dumps(body).encode("utf-8")


def basic_auth(username: str, password: str) -> str:
    token = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


@pytest.fixture
def settings() -> AdyenSettings:
    """Test mode merchant settings."""
    return AdyenSettings(
        merchant_account=MERCHANT_ACCOUNT,
        api_key="AQE_test_api_key",
        hmac_key=HMAC_KEY,
        test_mode=True,
        continue_url="https://shop.example.com/checkout/continue",
        cancel_url="https://shop.example.com/checkout/cancel",
        error_url="https://shop.example.com/checkout/error",
        notification_username="adyen",
        notification_password="s3cret",
    )


@pytest.fixture
def make_context(settings):
    """Factory for a per-request context around a delivery body."""
    def _make(body: bytes, headers: Optional[Dict[str, str]] = None, query_params=None, **overrides):
        ctx_settings = settings.model_copy(update=overrides) if overrides else settings
        request = RawRequest.from_headers(body, headers or {}, query_params)
        return PaymentProviderContext(request=request, settings=ctx_settings)
    return _make


@pytest.fixture
async def db_engine():
    """Create an in-memory SQLite database for testing."""
    engine = create_async_engine(
        database_url="sqlite+aiosqlite:///:memory:",
        echo=False
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(db_engine):
    """Create a database session for testing."""
    session_factory = get_async_session_factory(db_engine)
    async with session_factory() as session:
        yield session


@pytest.fixture
async def store(db_session):
    return await StoreRepository(db_session).create(name="Main store", store_id="store-1")


@pytest.fixture
async def order(db_session, store):
    """An open USD order in the main store."""
    return await OrderRepository(db_session).create(
        store_id=store.id,
        order_number="ORDER-1",
        currency_code="USD",
        transaction_amount=Decimal("19.99"),
        customer_email="shopper@example.com",
        customer_first_name="Jane",
        customer_last_name="Doe",
    )
