"""Request-scoped lookups for the proxy endpoint."""

from fastapi import Request

from .service import ProxyService


def get_proxy_service(request: Request) -> ProxyService:
    """Get the proxy service started by the application lifespan.

    Args:
        request: Inbound request.

    Returns:
        ProxyService: Proxy service instance.
    """
    return request.app.state.proxy_service
