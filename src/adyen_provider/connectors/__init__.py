"""Payment provider contract and the Adyen gateway client.

``AdyenCheckoutProvider`` lives in ``adyen_connector`` and is exported from
the top-level package.
"""

from .base import (
    PaymentProviderBase,
    PaymentStatus,
    OrderReference,
    TransactionStatusUpdate,
    PaymentFormResult,
    FormUrls,
    CallbackResult,
    ApiResult,
    OrderLike,
    OrderStore,
)
from .adyen_client import AdyenClient, PaymentLinkResponse, ModificationResult

__all__ = [
    # Contract and canonical models
    "PaymentProviderBase",
    "PaymentStatus",
    "OrderReference",
    "TransactionStatusUpdate",
    "PaymentFormResult",
    "FormUrls",
    "CallbackResult",
    "ApiResult",
    "OrderLike",
    "OrderStore",
    # Gateway client
    "AdyenClient",
    "PaymentLinkResponse",
    "ModificationResult",
]
