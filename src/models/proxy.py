"""Proxy-related data models.

This module contains the enumerations used to route inbound requests and
to label how each one was handled.
"""

from enum import Enum


class HttpMethod(str, Enum):
    """HTTP method enumeration."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"
    TRACE = "TRACE"


class RouteKind(str, Enum):
    """Handling path chosen for an inbound request."""

    EVENT_STREAM = "event_stream"
    DISCOVERY = "discovery"
    FORWARD = "forward"


class ProxyOutcome(str, Enum):
    """How a request ended, used for logs and metrics."""

    PROXIED = "proxied"
    UPSTREAM_ERROR = "upstream_error"
    TIMEOUT = "timeout"
    FAILED = "failed"
    STREAM_FAILED = "stream_failed"
    EVENT_STREAM = "event_stream"
    DISCOVERY = "discovery"
