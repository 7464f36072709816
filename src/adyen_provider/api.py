"""Reference host API: Adyen webhook endpoint and order payment operations."""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import limiter, verify_api_key
from .config import AdyenSettings
from .connectors.adyen_connector import AdyenCheckoutProvider
from .connectors.base import ApiResult
from .database import SqlOrderStore, close_db, get_db, init_db
from .exceptions import (
    ConfigurationError,
    CredentialFormatError,
    GatewayTransportError,
    OrderNotFoundError,
)
from .services import OrderPaymentService
from .webhooks.context import PaymentProviderContext, RawRequest
from .webhooks.parser import NOTIFICATION_ACCEPTED

logger = logging.getLogger(__name__)

ORDER_RATE_LIMIT = os.getenv("ORDER_RATE_LIMIT", "100/minute")
WEBHOOK_RATE_LIMIT = os.getenv("WEBHOOK_RATE_LIMIT", "1000/minute")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield
    await close_db()


app = FastAPI(title="Adyen Payment Provider - Reference Host", lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


class PaymentLinkBody(BaseModel):
    callback_url: Optional[str] = None


def get_settings() -> AdyenSettings:
    return AdyenSettings.from_env()


async def get_order_service(
    db: AsyncSession = Depends(get_db),
    settings: AdyenSettings = Depends(get_settings),
) -> OrderPaymentService:
    provider = AdyenCheckoutProvider(order_store=SqlOrderStore(db))
    return OrderPaymentService(db, provider, settings)


@app.exception_handler(OrderNotFoundError)
async def order_not_found_handler(request: Request, exc: OrderNotFoundError):
    return JSONResponse(status_code=404, content={"detail": exc.message})


@app.exception_handler(GatewayTransportError)
async def gateway_error_handler(request: Request, exc: GatewayTransportError):
    return JSONResponse(status_code=502, content={"detail": "Payment gateway request failed"})


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error(f"Provider configuration error: {exc.message}")
    return JSONResponse(status_code=500, content={"detail": "Server configuration error"})


@app.post("/webhooks/adyen")
@limiter.limit(WEBHOOK_RATE_LIMIT)
async def adyen_webhook(
    request: Request,
    service: OrderPaymentService = Depends(get_order_service),
):
    """
    Receive an Adyen notification delivery.

    Answers ``[accepted]`` once at least one item verified; the gateway
    redelivers anything else.
    """
    body = await request.body()
    ctx = PaymentProviderContext(
        request=RawRequest.from_headers(body, request.headers, request.query_params),
        settings=service.settings,
    )
    try:
        result = await service.handle_webhook(ctx)
    except CredentialFormatError as e:
        raise HTTPException(status_code=400, detail=e.message)

    if not result.authenticated:
        raise HTTPException(status_code=401, detail="Invalid notification credentials")
    if not result.accepted:
        raise HTTPException(status_code=400, detail="Notification not accepted")
    return PlainTextResponse(NOTIFICATION_ACCEPTED)


def _operation_response(order, result: ApiResult) -> dict:
    update = result.transaction_update
    return {
        "changed": not result.is_empty,
        "transaction_update": update.model_dump(mode="json") if update else None,
        "order": order.to_dict(),
    }


@app.post("/orders/{store_id}/{order_id}/payment-link")
@limiter.limit(ORDER_RATE_LIMIT)
async def create_payment_link(
    request: Request,
    store_id: str,
    order_id: str,
    body: Optional[PaymentLinkBody] = None,
    service: OrderPaymentService = Depends(get_order_service),
    api_key: str = Depends(verify_api_key),
):
    """Create a payment link the shopper is redirected to."""
    callback_url = body.callback_url if body else None
    order, form = await service.generate_payment_link(store_id, order_id, callback_url)
    return {
        "redirect_url": form.redirect_url,
        "method": form.method,
        "metadata": form.metadata,
        "order": order.to_dict(),
    }


@app.post("/orders/{store_id}/{order_id}/capture")
@limiter.limit(ORDER_RATE_LIMIT)
async def capture_order_payment(
    request: Request,
    store_id: str,
    order_id: str,
    service: OrderPaymentService = Depends(get_order_service),
    api_key: str = Depends(verify_api_key),
):
    order, result = await service.capture_payment(store_id, order_id)
    return _operation_response(order, result)


@app.post("/orders/{store_id}/{order_id}/cancel")
@limiter.limit(ORDER_RATE_LIMIT)
async def cancel_order_payment(
    request: Request,
    store_id: str,
    order_id: str,
    service: OrderPaymentService = Depends(get_order_service),
    api_key: str = Depends(verify_api_key),
):
    order, result = await service.cancel_payment(store_id, order_id)
    return _operation_response(order, result)


@app.post("/orders/{store_id}/{order_id}/refund")
@limiter.limit(ORDER_RATE_LIMIT)
async def refund_order_payment(
    request: Request,
    store_id: str,
    order_id: str,
    service: OrderPaymentService = Depends(get_order_service),
    api_key: str = Depends(verify_api_key),
):
    order, result = await service.refund_payment(store_id, order_id)
    return _operation_response(order, result)


@app.get("/orders/{store_id}/{order_id}")
async def get_order(
    store_id: str,
    order_id: str,
    service: OrderPaymentService = Depends(get_order_service),
    api_key: str = Depends(verify_api_key),
):
    """Get an order with its transaction history."""
    return await service.get_order(store_id, order_id)


@app.get("/health")
async def health():
    return {"status": "healthy", **AdyenCheckoutProvider().health_check()}
