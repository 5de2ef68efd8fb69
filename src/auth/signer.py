"""HMAC request signer.

This module computes the authentication headers expected by the upstream
gateway. The canonical string is ``METHOD\\nPATH\\nTIMESTAMP`` and the
signature is the lowercase hex HMAC-SHA256 of it, keyed by the shared
secret.
"""

import hashlib
import hmac
from datetime import datetime, timezone
from typing import Callable, Optional

import httpx
import structlog

from core.exceptions import SigningError
from models.auth import SignatureHeaders

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Wall-clock time in UTC."""
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """Format a moment as RFC 3339 in UTC with second precision.

    Naive datetimes are taken to be UTC already.

    Args:
        moment: Time to format.

    Returns:
        str: Timestamp such as ``2023-11-14T22:13:20Z``.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def compute_signature(secret: str, method: str, path: str, timestamp: str) -> str:
    """Compute the hex HMAC-SHA256 of the canonical signing string.

    Args:
        secret: Shared secret.
        method: HTTP method, verbatim.
        path: Request path without query string, verbatim.
        timestamp: Formatted timestamp.

    Returns:
        str: Lowercase hexadecimal digest.
    """
    payload = "\n".join([method, path, timestamp])
    return hmac.new(secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()


class Signer:
    """Injects HMAC auth headers compatible with the upstream gateway.

    The signer keeps no per-request state. Its credentials are fixed at
    construction, and ``clock`` can be swapped for a fixed time source in
    tests.
    """

    def __init__(self, key: str, secret: str, clock: Optional[Clock] = None) -> None:
        """Initialize the signer.

        Args:
            key: API key identifier sent as ``x-api-key-id``.
            secret: Shared secret for the HMAC.
            clock: Callable returning the current time. Defaults to UTC wall clock.
        """
        self.key = key
        self.secret = secret
        self.clock = clock or utc_now

    def sign(self, method: str, path: str) -> SignatureHeaders:
        """Compute the signature headers for a request.

        Args:
            method: HTTP method.
            path: Request path (no query string).

        Returns:
            SignatureHeaders: Key id, signature and timestamp.

        Raises:
            SigningError: If the key or the secret is empty.
        """
        if not self.key or not self.secret:
            raise SigningError("signer key and secret must be set")

        timestamp = format_timestamp(self.clock())
        return SignatureHeaders(
            api_key_id=self.key,
            signature=compute_signature(self.secret, method, path, timestamp),
            timestamp=timestamp,
        )

    def attach_signature(self, request: httpx.Request) -> None:
        """Sign ``request`` in place, replacing any existing signature headers.

        Args:
            request: Outbound request. Its decoded URL path is signed.
        """
        headers = self.sign(request.method, request.url.path)
        for name, value in headers.as_headers().items():
            request.headers[name] = value

        logger.debug(
            "Request signed",
            method=request.method,
            path=request.url.path,
            timestamp=headers.timestamp,
        )
