"""Custom middleware for the FastAPI application.

Middleware here is written against raw ASGI rather than
``BaseHTTPMiddleware`` so that streamed upstream bodies and the
``http.disconnect`` channel reach the proxy untouched.
"""

import uuid

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Receive, Scope, Send

from .logging import bind_context, clear_context


class CorrelationIDMiddleware:
    """Middleware to add correlation ID to requests.

    This middleware takes the correlation ID supplied by the caller, or
    generates one, and binds it to the structlog context for the whole
    request lifecycle. The proxied response is left unchanged.
    """

    def __init__(self, app: ASGIApp, header_name: str = "X-Correlation-ID") -> None:
        """Initialize the middleware.

        Args:
            app: ASGI application.
            header_name: Header name for correlation ID.
        """
        self.app = app
        self.header_name = header_name

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        correlation_id = Headers(scope=scope).get(self.header_name) or str(uuid.uuid4())
        bind_context(correlation_id=correlation_id)
        scope.setdefault("state", {})["correlation_id"] = correlation_id

        try:
            await self.app(scope, receive, send)
        finally:
            clear_context()
