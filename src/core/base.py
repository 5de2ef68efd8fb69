"""Base classes for long-lived application services."""

from abc import ABC
from typing import Optional

import structlog


class BaseService(ABC):
    """Service with an async lifecycle.

    Subclasses acquire resources in ``startup`` and release them in
    ``shutdown``; ``async with`` runs both.
    """

    def __init__(self, name: Optional[str] = None) -> None:
        self.name = name or self.__class__.__name__
        self.logger = structlog.get_logger(self.name)

    async def __aenter__(self):
        await self.startup()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()

    async def startup(self) -> None:
        """Acquire resources. Overrides must call ``super().startup()``."""
        self.logger.info("Service starting", service=self.name)

    async def shutdown(self) -> None:
        """Release resources. Overrides must call ``super().shutdown()``."""
        self.logger.info("Service stopped", service=self.name)
