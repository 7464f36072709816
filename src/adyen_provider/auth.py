"""Authentication and rate limiting helpers."""

import base64
import binascii
import os
import secrets
import logging
from typing import Optional

from fastapi import HTTPException, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import AdyenSettings
from .exceptions import AuthenticationFailure, CredentialFormatError

logger = logging.getLogger(__name__)

security = HTTPBearer()

# Rate limiter
limiter = Limiter(key_func=get_remote_address)


async def verify_api_key(credentials: HTTPAuthorizationCredentials = Security(security)) -> str:
    """Verify the API key from the Authorization header.

    Args:
        credentials: HTTP Bearer credentials from the request.

    Returns:
        The verified API key.

    Raises:
        HTTPException: If API key is invalid or not configured.
    """
    api_key = credentials.credentials
    expected_key = os.getenv("API_KEY")
    if not expected_key:
        logger.error("API_KEY environment variable is not configured")
        raise HTTPException(status_code=500, detail="Server configuration error")
    if not secrets.compare_digest(api_key, expected_key):
        raise HTTPException(status_code=401, detail="Invalid API key")
    return api_key


def decode_basic_credentials(parameter: str) -> tuple:
    """Decode the parameter of a Basic Authorization header.

    Returns:
        A ``(username, password)`` tuple.

    Raises:
        CredentialFormatError: If the credentials are not base64 encoded
            ``username:password``.
    """
    try:
        decoded = base64.b64decode(parameter.strip(), validate=True).decode("iso-8859-1")
    except (binascii.Error, ValueError) as e:
        raise CredentialFormatError("Credentials were not formatted correctly") from e
    username, separator, password = decoded.partition(":")
    if not separator:
        raise CredentialFormatError("Credentials were not formatted correctly")
    return username, password


def authenticate_notification_user(authorization: Optional[str], settings: AdyenSettings) -> bool:
    """Check Basic auth credentials sent along with a notification.

    Only ``Basic`` headers are checked (the scheme is case-insensitive, RFC 2617
    sec 1.2); other schemes are left alone.

    Returns:
        True when credentials were present and valid, False when there was
        nothing to check.

    Raises:
        AuthenticationFailure: If the username or password does not match.
        CredentialFormatError: If the credentials can't be decoded.
    """
    if not authorization:
        return False
    scheme, _, parameter = authorization.strip().partition(" ")
    if scheme.lower() != "basic" or not parameter.strip():
        return False

    username, password = decode_basic_credentials(parameter)
    expected_username = settings.notification_username or ""
    expected_password = settings.notification_password or ""
    valid_user = secrets.compare_digest(
        username.encode("utf-8"), expected_username.encode("utf-8")
    ) and secrets.compare_digest(
        password.encode("utf-8"), expected_password.encode("utf-8")
    )
    if not valid_user or not expected_username:
        raise AuthenticationFailure("Invalid username or password")
    return True
