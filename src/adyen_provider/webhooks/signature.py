"""HMAC validation of notification items.

Signing and validation are done by the Adyen library. The signature is an
HMAC-SHA256 over

    pspReference:originalReference:merchantAccountCode:merchantReference:value:currency:eventCode:success

keyed with the hex decoded HMAC key, carried in ``additionalData.hmacSignature``.
"""

from typing import Any, Dict, Optional

from Adyen.util import generate_notification_sig, is_valid_hmac_notification

from ..exceptions import InvalidSignatureError
from .models import HMAC_SIGNATURE_KEY, NotificationRequestItem


def signing_fields(item: NotificationRequestItem, signature: Optional[str] = None) -> Dict[str, Any]:
    """The item in the shape the Adyen validator signs."""
    fields = {
        "pspReference": item.psp_reference,
        "originalReference": item.original_reference or "",
        "merchantAccountCode": item.merchant_account_code,
        "merchantReference": item.merchant_reference,
        "amount": {"value": item.amount.value, "currency": item.amount.currency},
        "eventCode": item.event_code,
        "success": "true" if item.success else "false",
    }
    if signature is not None:
        fields["additionalData"] = {HMAC_SIGNATURE_KEY: signature}
    return fields


def _hmac_key(hmac_key: str) -> str:
    if not hmac_key or not hmac_key.strip():
        raise ValueError("HMAC key is not configured")
    return hmac_key.strip()


def compute_hmac_signature(item: NotificationRequestItem, hmac_key: str) -> str:
    """Compute the expected base64 signature of an item.

    Raises:
        ValueError: If the key is empty or not hex encoded.
    """
    signature = generate_notification_sig(signing_fields(item), _hmac_key(hmac_key))
    return signature.decode("utf-8")


def verify_hmac_signature(item: NotificationRequestItem, hmac_key: str) -> None:
    """Check the signature carried by an item.

    Raises:
        InvalidSignatureError: If the signature is missing, the key is unusable
            or the signature does not match.
    """
    received = item.additional_data.get(HMAC_SIGNATURE_KEY)
    if not received:
        raise InvalidSignatureError(item.psp_reference, "Missing HMAC signature")
    try:
        valid = is_valid_hmac_notification(signing_fields(item, str(received)), _hmac_key(hmac_key))
    except ValueError as e:
        # binascii.Error for a key that isn't hex is a ValueError as well
        raise InvalidSignatureError(item.psp_reference, f"Unusable HMAC key: {e}") from e
    if not valid:
        raise InvalidSignatureError(item.psp_reference)


def is_valid_hmac(item: NotificationRequestItem, hmac_key: str) -> bool:
    try:
        verify_hmac_signature(item, hmac_key)
    except InvalidSignatureError:
        return False
    return True
