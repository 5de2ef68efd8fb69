"""Monitoring and metrics collection.

This module provides Prometheus metrics collection and monitoring
functionality for the application.
"""

from typing import Optional

from prometheus_client import Counter, Gauge, Histogram, Info, start_http_server
import structlog

from .config import Settings

logger = structlog.get_logger(__name__)

# Prometheus metrics
proxy_requests = Counter(
    "proxy_requests_total",
    "Total number of handled proxy requests",
    ["outcome", "status_code"]
)

proxy_duration = Histogram(
    "proxy_request_duration_seconds",
    "Proxy request duration in seconds",
    ["outcome"]
)

event_streams_active = Gauge(
    "event_streams_active",
    "Number of locally served event streams currently open"
)

error_count = Counter(
    "errors_total",
    "Total number of errors",
    ["type", "component"]
)

# Application info
app_info = Info(
    "app_info",
    "Application information"
)

_metrics_server_started = False


def setup_monitoring(settings: Settings) -> None:
    """Setup monitoring and metrics collection.

    The exposition endpoint lives on its own port so that no path on the
    proxy listener is claimed by metrics.

    Args:
        settings: Application settings.
    """
    global _metrics_server_started

    app_info.info({
        "version": settings.app_version,
        "name": settings.app_name,
    })

    if not settings.metrics_enabled or _metrics_server_started:
        return

    logger.info("Starting metrics server", port=settings.prometheus_port)
    start_http_server(settings.prometheus_port)
    _metrics_server_started = True


def track_proxy_request(outcome: str, status_code: int, duration: Optional[float] = None) -> None:
    """Track proxy request metrics.

    Args:
        outcome: How the request was handled (see ``ProxyOutcome``).
        status_code: Status code sent to the client.
        duration: Request duration in seconds.
    """
    proxy_requests.labels(outcome=outcome, status_code=str(status_code)).inc()

    if duration is not None:
        proxy_duration.labels(outcome=outcome).observe(duration)


def track_error(error_type: str, component: str) -> None:
    """Track error occurrence.

    Args:
        error_type: Type of error.
        component: Component where error occurred.
    """
    error_count.labels(type=error_type, component=component).inc()
