"""Pydantic models for the application.

This module contains the data models and enumerations used throughout
the application.
"""

from .auth import (
    HEADER_API_KEY,
    HEADER_SIGNATURE,
    HEADER_TIMESTAMP,
    SignatureHeaders,
)
from .proxy import HttpMethod, ProxyOutcome, RouteKind
from .common import BaseModel

__all__ = [
    # Auth models
    "HEADER_API_KEY",
    "HEADER_SIGNATURE",
    "HEADER_TIMESTAMP",
    "SignatureHeaders",
    # Proxy models
    "HttpMethod",
    "ProxyOutcome",
    "RouteKind",
    # Common models
    "BaseModel",
]
