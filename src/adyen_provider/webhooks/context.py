"""Request scoped state for webhook handling."""

from dataclasses import dataclass, field
from typing import Any, BinaryIO, Dict, Mapping, Optional, Union

from ..config import AdyenSettings


@dataclass
class RawRequest:
    """An inbound delivery: body plus headers.

    ``body`` may be bytes or a binary stream. A stream is read at most once;
    seekable streams are rewound first because framework layers may already
    have read from them.
    """
    body: Union[bytes, BinaryIO]
    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, str] = field(default_factory=dict)
    _read_count: int = field(default=0, init=False, repr=False)

    def __post_init__(self):
        self.headers = {k.lower(): v for k, v in (self.headers or {}).items()}

    @classmethod
    def from_headers(
        cls,
        body: Union[bytes, BinaryIO],
        headers: Mapping[str, str],
        query_params: Optional[Mapping[str, str]] = None,
    ) -> "RawRequest":
        return cls(body=body, headers=dict(headers), query_params=dict(query_params or {}))

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())

    @property
    def read_count(self) -> int:
        return self._read_count

    def read_body(self) -> bytes:
        """Return the raw body bytes.

        Raises:
            RuntimeError: If a non-seekable stream was already consumed.
        """
        self._read_count += 1
        if isinstance(self.body, (bytes, bytearray)):
            return bytes(self.body)
        stream = self.body
        if stream.seekable():
            stream.seek(0)
        elif self._read_count > 1:
            raise RuntimeError("Request body stream has already been consumed")
        return stream.read()


@dataclass
class PaymentProviderContext:
    """Everything the provider needs while handling one delivery.

    ``additional_data`` is the per-request cache: the parsed notification is
    stored there so that resolving the order reference and building the
    callback result share one parse. A new context is created for every
    request; it is never shared between deliveries.
    """
    request: RawRequest
    settings: AdyenSettings
    additional_data: Dict[str, Any] = field(default_factory=dict)
