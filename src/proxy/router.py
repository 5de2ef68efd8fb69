"""Proxy router.

A single catch-all route receives every inbound request, whatever its
method or path. Two shortcut paths are answered locally, and everything
else goes through the forwarding engine and is relayed back verbatim.

The route is a plain Starlette ``Route`` around an ASGI endpoint rather
than a FastAPI path operation, so that extension methods such as
``PROPFIND`` reach the dispatcher instead of a 405.
"""

import time
from http import HTTPStatus
from typing import AsyncIterator

from fastapi import Request
from fastapi.responses import PlainTextResponse, Response, StreamingResponse
import httpx
from starlette.background import BackgroundTask
from starlette.routing import Route
from starlette.types import Receive, Scope, Send
from structlog.types import FilteringBoundLogger

from core.exceptions import ForwardingError
from core.logging import get_logger
from core.monitoring import track_error, track_proxy_request
from models.proxy import HttpMethod, ProxyOutcome, RouteKind

from .dependencies import get_proxy_service
from .discovery import discovery_response, is_discovery_path
from .event_stream import EventStreamResponse, is_event_stream_path
from .headers import relay_response_headers, strip_hop_by_hop
from .service import ProxyService

# Upstream error bodies are buffered up to this size for logging.
MAX_ERROR_BODY = 64 * 1024


def classify_request(method: str, path: str) -> RouteKind:
    """Decide how an inbound request is handled.

    Args:
        method: HTTP method.
        path: Decoded request path.

    Returns:
        RouteKind: Handling path for the request.
    """
    if method == HttpMethod.GET.value and is_event_stream_path(path):
        return RouteKind.EVENT_STREAM
    if method == HttpMethod.GET.value and is_discovery_path(path):
        return RouteKind.DISCOVERY
    return RouteKind.FORWARD


class ProxyEndpoint:
    """ASGI endpoint that hands every request to ``dispatch``."""

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive, send)
        response = await dispatch(request, get_proxy_service(request))
        await response(scope, receive, send)


# No ``methods`` list: the route matches any method, extension methods included.
proxy_route = Route("/{path:path}", endpoint=ProxyEndpoint(), include_in_schema=False)


async def dispatch(request: Request, service: ProxyService) -> Response:
    """Route the request to a local responder or forward it upstream.

    Args:
        request: Inbound request.
        service: Proxy service.

    Returns:
        Response: Event stream, discovery 404, status-only error, or the
        relayed upstream response.
    """
    start = time.monotonic()
    log = get_logger(
        __name__,
        method=request.method,
        path=request.url.path,
        remote_addr=_remote_addr(request),
    )

    route = classify_request(request.method, request.url.path)

    # Serve a local keep-alive stream when the client expects SSE but the
    # upstream does not expose one.
    if route is RouteKind.EVENT_STREAM:
        track_proxy_request(ProxyOutcome.EVENT_STREAM.value, 200)
        return EventStreamResponse(service.event_stream, log=log)

    if route is RouteKind.DISCOVERY:
        duration = time.monotonic() - start
        log.info(
            "Discovery metadata not available",
            outcome=ProxyOutcome.DISCOVERY.value,
            status_code=404,
            duration=f"{duration:.4f}s",
        )
        track_proxy_request(ProxyOutcome.DISCOVERY.value, 404, duration)
        return discovery_response()

    try:
        upstream = await service.forward(request)
    except ForwardingError as exc:
        duration = time.monotonic() - start
        outcome = ProxyOutcome.TIMEOUT if exc.status_code == 504 else ProxyOutcome.FAILED
        log.error(
            "Request failed",
            outcome=outcome.value,
            error=str(exc),
            status_code=exc.status_code,
            duration=f"{duration:.4f}s",
        )
        track_proxy_request(outcome.value, exc.status_code, duration)
        track_error(type(exc).__name__, "proxy")
        return PlainTextResponse(
            f"{HTTPStatus(exc.status_code).phrase}\n",
            status_code=exc.status_code,
        )

    if upstream.status_code >= 400:
        return await _relay_error(upstream, log, start)
    return _relay_stream(upstream, log, start)


async def _relay_error(
    upstream: httpx.Response,
    log: FilteringBoundLogger,
    start: float,
) -> Response:
    """Buffer an upstream error body for logging, then replay it.

    At most ``MAX_ERROR_BODY`` bytes are kept, and they are what the client
    receives.
    """
    payload = bytearray()
    try:
        async for chunk in upstream.aiter_raw():
            payload.extend(chunk)
            if len(payload) >= MAX_ERROR_BODY:
                break
    except httpx.HTTPError as exc:
        log.error(
            "Failed to read upstream error body",
            error=str(exc),
            status_code=upstream.status_code,
        )
        track_error(type(exc).__name__, "proxy")
    finally:
        await upstream.aclose()

    body = bytes(payload[:MAX_ERROR_BODY])
    log.warning(
        "Upstream returned error",
        status_code=upstream.status_code,
        upstream_body=body.decode("utf-8", errors="replace"),
    )

    response = Response(content=body, status_code=upstream.status_code)
    strip_hop_by_hop(upstream.headers)
    # The replayed body has its own length.
    if "content-length" in upstream.headers:
        del upstream.headers["content-length"]
    relay_response_headers(response, upstream.headers)

    duration = time.monotonic() - start
    log.info(
        "Request proxied",
        outcome=ProxyOutcome.UPSTREAM_ERROR.value,
        status_code=upstream.status_code,
        duration=f"{duration:.4f}s",
    )
    track_proxy_request(ProxyOutcome.UPSTREAM_ERROR.value, upstream.status_code, duration)
    return response


def _relay_stream(
    upstream: httpx.Response,
    log: FilteringBoundLogger,
    start: float,
) -> StreamingResponse:
    """Relay a successful upstream response without buffering its body.

    The upstream response is also closed as a background task, which runs
    even when the body iterator was never started.
    """
    strip_hop_by_hop(upstream.headers)
    response = StreamingResponse(
        _stream_body(upstream, log, start),
        status_code=upstream.status_code,
        background=BackgroundTask(upstream.aclose),
    )
    relay_response_headers(response, upstream.headers)
    return response


async def _stream_body(
    upstream: httpx.Response,
    log: FilteringBoundLogger,
    start: float,
) -> AsyncIterator[bytes]:
    try:
        async for chunk in upstream.aiter_raw():
            yield chunk
    except httpx.HTTPError as exc:
        duration = time.monotonic() - start
        log.error(
            "Stream response failed",
            outcome=ProxyOutcome.STREAM_FAILED.value,
            error=str(exc),
            duration=f"{duration:.4f}s",
        )
        track_proxy_request(ProxyOutcome.STREAM_FAILED.value, upstream.status_code, duration)
        track_error(type(exc).__name__, "proxy")
        raise
    else:
        duration = time.monotonic() - start
        log.info(
            "Request proxied",
            outcome=ProxyOutcome.PROXIED.value,
            status_code=upstream.status_code,
            duration=f"{duration:.4f}s",
        )
        track_proxy_request(ProxyOutcome.PROXIED.value, upstream.status_code, duration)
    finally:
        await upstream.aclose()


def _remote_addr(request: Request) -> str:
    if request.client is None:
        return ""
    return f"{request.client.host}:{request.client.port}"
