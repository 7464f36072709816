# adyen_provider package
__version__ = "0.1.0"

from .config import AdyenSettings, ProviderCapabilities
from .connectors import (
    PaymentProviderBase,
    PaymentStatus,
    OrderReference,
    TransactionStatusUpdate,
    CallbackResult,
    ApiResult,
)
from .webhooks import (
    RawRequest,
    PaymentProviderContext,
    EventCode,
    WebhookReconciler,
)
from .connectors.adyen_connector import AdyenCheckoutProvider
from .exceptions import (
    AdyenProviderError,
    AuthenticationFailure,
    CredentialFormatError,
    GatewayTransportError,
)
