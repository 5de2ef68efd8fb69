"""Authentication module.

This module provides HMAC request signing for calls made to the
upstream MCP server.
"""

from .signer import Signer, compute_signature, format_timestamp, utc_now

__all__ = [
    "Signer",
    "compute_signature",
    "format_timestamp",
    "utc_now",
]
