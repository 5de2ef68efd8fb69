"""Proxy module.

This module provides request proxying functionality to forward signed
requests to the upstream MCP server, plus the local event-stream and
discovery shortcuts.
"""

from .event_stream import EventStreamResponder, EventStreamResponse
from .router import ProxyEndpoint, classify_request, dispatch, proxy_route
from .service import ProxyService
from .url import resolve_upstream_url

__all__ = [
    "EventStreamResponder",
    "EventStreamResponse",
    "ProxyEndpoint",
    "ProxyService",
    "classify_request",
    "dispatch",
    "proxy_route",
    "resolve_upstream_url",
]
