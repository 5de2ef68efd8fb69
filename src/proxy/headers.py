"""HTTP header processing for the proxy.

Helpers here accept Starlette ``MutableHeaders`` and httpx ``Headers``
alike; both compare names case-insensitively. Response headers are
relayed as raw bytes because httpx decodes values as UTF-8 while
Starlette encodes them as Latin-1.
"""

from typing import Any, Iterable, Tuple

import httpx
from starlette.requests import Request
from starlette.responses import Response

# Hop-by-hop headers must not cross the proxy in either direction (RFC 7230 section 6.1).
HOP_BY_HOP_HEADERS: Tuple[str, ...] = (
    "connection",
    "proxy-connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
)

FORWARDED_FOR = "X-Forwarded-For"
FORWARDED_PROTO = "X-Forwarded-Proto"
FORWARDED_HOST = "X-Forwarded-Host"


def strip_hop_by_hop(headers: Any) -> None:
    """Remove every hop-by-hop header, whatever its casing.

    Args:
        headers: Mutable header collection.
    """
    for name in HOP_BY_HOP_HEADERS:
        if name in headers:
            del headers[name]


def copy_headers(dst: Any, src: Any) -> None:
    """Append all values of all headers in ``src`` onto ``dst``.

    Existing values in ``dst`` are kept and repeated headers stay
    repeated.

    Args:
        dst: Header collection supporting ``append`` (``MutableHeaders``).
        src: Header collection with ``multi_items()`` or ``items()``.
    """
    for name, value in _multi_items(src):
        dst.append(name, value)


def relay_response_headers(response: Response, upstream_headers: httpx.Headers) -> None:
    """Append upstream response headers to ``response`` byte for byte.

    Values are never decoded, so non-ASCII bytes reach the client as the
    upstream sent them.

    Args:
        response: Outgoing Starlette response.
        upstream_headers: Headers of the upstream response, already stripped.
    """
    for name, value in upstream_headers.raw:
        # ASGI expects lowercase header names.
        response.raw_headers.append((name.lower(), value))


def _multi_items(headers: Any) -> Iterable[Tuple[str, str]]:
    # httpx collapses repeats in items(); Starlette keeps them.
    if hasattr(headers, "multi_items"):
        return headers.multi_items()
    return headers.items()


def augment_forwarded_headers(headers: Any, request: Request) -> None:
    """Set the X-Forwarded-* headers describing the calling client.

    X-Forwarded-For is the client address, prefixed by any value the client
    already sent. X-Forwarded-Proto keeps a client-supplied value, otherwise
    the inbound scheme (``http`` when unknown). X-Forwarded-Host is the
    inbound Host header.

    Args:
        headers: Outbound header collection.
        request: Inbound request.
    """
    if request.client is not None and request.client.host:
        client_ip = request.client.host
        prior = request.headers.get(FORWARDED_FOR)
        if prior:
            client_ip = f"{prior}, {client_ip}"
        headers[FORWARDED_FOR] = client_ip

    scheme = request.headers.get(FORWARDED_PROTO)
    if not scheme:
        scheme = request.scope.get("scheme") or "http"
    headers[FORWARDED_PROTO] = scheme

    host = request.headers.get("host")
    if host:
        headers[FORWARDED_HOST] = host
