import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol, Sequence

from pydantic import BaseModel, Field

from ..config import AdyenSettings, ProviderCapabilities


class PaymentStatus(str, enum.Enum):
    """Host side payment statuses."""
    INITIALIZED = "initialized"
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    PENDING_EXTERNAL_SYSTEM = "pending_external_system"
    ERROR = "error"


@dataclass(frozen=True)
class OrderReference:
    """Identifies an order in the host: store id + order id."""
    store_id: str
    order_id: str

    SEPARATOR = ":"

    @classmethod
    def parse(cls, value: str) -> "OrderReference":
        """Parse ``"<store_id>:<order_id>"``.

        Raises:
            ValueError: If the value is not a valid reference.
        """
        store_id, separator, order_id = (value or "").strip().partition(cls.SEPARATOR)
        if not separator or not store_id or not order_id:
            raise ValueError(f"Invalid order reference: {value!r}")
        return cls(store_id=store_id, order_id=order_id)

    def __str__(self) -> str:
        return f"{self.store_id}{self.SEPARATOR}{self.order_id}"


# Canonical models
class TransactionStatusUpdate(BaseModel):
    transaction_id: str
    payment_status: PaymentStatus
    amount_authorized: Optional[Decimal] = None  # major units
    metadata: Dict[str, str] = Field(default_factory=dict)


class PaymentFormResult(BaseModel):
    redirect_url: str
    method: str = "GET"
    metadata: Dict[str, str] = Field(default_factory=dict)


class FormUrls(BaseModel):
    continue_url: str
    cancel_url: str
    error_url: str
    callback_url: Optional[str] = None


@dataclass
class CallbackResult:
    """Result of processing a webhook delivery.

    ``accepted`` tells the transport to answer ``[accepted]``;
    ``transaction_update`` is the update of the first resolved event.
    """
    accepted: bool = False
    authenticated: bool = True
    transaction_update: Optional[TransactionStatusUpdate] = None
    order_reference: Optional[OrderReference] = None
    outcomes: List[Any] = field(default_factory=list)

    @classmethod
    def bad_request(cls, authenticated: bool = True) -> "CallbackResult":
        return cls(accepted=False, authenticated=authenticated)

    @property
    def is_actionable(self) -> bool:
        return self.transaction_update is not None


@dataclass
class ApiResult:
    """Result of a capture/cancel/refund call, empty when nothing changed."""
    transaction_update: Optional[TransactionStatusUpdate] = None

    @classmethod
    def empty(cls) -> "ApiResult":
        return cls()

    @property
    def is_empty(self) -> bool:
        return self.transaction_update is None


class StoreLike(Protocol):
    id: str


class OrderLike(Protocol):
    id: str
    store_id: str
    order_number: str
    currency_code: str
    transaction_amount: Decimal
    payment_status: str
    transaction_id: Optional[str]
    properties: Optional[Dict[str, Any]]
    customer_email: Optional[str]
    customer_first_name: Optional[str]
    customer_last_name: Optional[str]
    customer_reference: Optional[str]

    def generate_order_reference(self) -> OrderReference:
        ...


class OrderStore(Protocol):
    """Lookup of orders owned by the host."""

    async def list_stores(self) -> Sequence[StoreLike]:
        ...

    async def find_order(self, store_id: str, order_number: str) -> Optional[OrderLike]:
        ...


class PaymentProviderBase(ABC):
    """
    Contract between the host commerce engine and a payment provider.
    Settings are passed per call; capabilities are fixed per instance.
    """

    alias: str = "base"

    def __init__(
        self,
        order_store: Optional[OrderStore] = None,
        capabilities: Optional[ProviderCapabilities] = None,
    ):
        self.order_store = order_store
        self.capabilities = capabilities or ProviderCapabilities()

    @abstractmethod
    async def generate_form(
        self, order: OrderLike, urls: FormUrls, settings: AdyenSettings
    ) -> PaymentFormResult:
        """
        Create whatever the shopper is redirected to in order to pay.
        """
        raise NotImplementedError

    @abstractmethod
    async def process_callback(self, ctx) -> CallbackResult:
        """
        Authenticate and interpret an inbound webhook delivery.
        """
        raise NotImplementedError

    @abstractmethod
    async def get_order_reference(self, ctx) -> Optional[OrderReference]:
        raise NotImplementedError

    @abstractmethod
    async def capture_payment(self, order: OrderLike, settings: AdyenSettings) -> ApiResult:
        raise NotImplementedError

    @abstractmethod
    async def cancel_payment(self, order: OrderLike, settings: AdyenSettings) -> ApiResult:
        raise NotImplementedError

    @abstractmethod
    async def refund_payment(self, order: OrderLike, settings: AdyenSettings) -> ApiResult:
        raise NotImplementedError

    def get_form_urls(self, settings: AdyenSettings, callback_url: Optional[str] = None) -> FormUrls:
        return FormUrls(
            continue_url=settings.get_continue_url(),
            cancel_url=settings.get_cancel_url(),
            error_url=settings.get_error_url(),
            callback_url=callback_url,
        )

    def default_order_reference(self, ctx) -> Optional[OrderReference]:
        """The host's own fallback: an ``orderReference`` query parameter on the callback URL."""
        raw = ctx.request.query_params.get("orderReference")
        if not raw:
            return None
        try:
            return OrderReference.parse(raw)
        except ValueError:
            return None

    def health_check(self) -> Dict[str, Any]:
        return {"ok": True, "provider": self.alias}
