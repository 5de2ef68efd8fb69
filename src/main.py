"""FastAPI application entry point.

This module sets up the FastAPI application with its middleware, the
catch-all proxy router and the lifespan that owns the outbound client.
"""

import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
import structlog

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from core.config import Settings, get_settings
from core.logging import setup_logging
from core.middleware import CorrelationIDMiddleware
from core.monitoring import setup_monitoring, track_error
from proxy.router import proxy_route
from proxy.service import ProxyService

logger = structlog.get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        settings: Application settings. Loaded from the environment when omitted.
        transport: Optional transport for the outbound client.

    Returns:
        FastAPI: Configured FastAPI application instance.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan manager.

        Starts the proxy service and its connection pool, and closes them
        on shutdown.
        """
        logger.info(
            "Starting MCP auth proxy",
            version=settings.app_version,
            listen_addr=settings.listen_addr,
            upstream=settings.upstream_url,
        )
        setup_monitoring(settings)

        async with ProxyService(settings, transport=transport) as service:
            app.state.proxy_service = service
            yield

        logger.info("Proxy stopped")

    # Every path belongs to the upstream, so no docs or schema routes.
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    app.add_middleware(CorrelationIDMiddleware)
    app.router.routes.append(proxy_route)
    add_exception_handlers(app)

    return app


def add_exception_handlers(app: FastAPI) -> None:
    """Add global exception handlers to the FastAPI app.

    Args:
        app: FastAPI application instance.
    """

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> PlainTextResponse:
        """Handle unexpected errors."""
        logger.exception(
            "Unhandled exception",
            error=str(exc),
            method=request.method,
            path=request.url.path,
        )
        track_error(type(exc).__name__, "app")
        return PlainTextResponse("Internal Server Error\n", status_code=500)


def run() -> None:
    """Run the proxy under uvicorn."""
    import uvicorn

    settings = get_settings()
    setup_logging(settings)

    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        timeout_keep_alive=int(settings.server_idle_timeout),
        timeout_graceful_shutdown=int(settings.graceful_shutdown),
    )


if __name__ == "__main__":
    run()
