"""Authentication-related data models.

This module contains the model for the HMAC headers attached to every
outbound request.
"""

from typing import Dict

from pydantic import Field

from .common import BaseModel

HEADER_API_KEY = "x-api-key-id"
HEADER_SIGNATURE = "x-signature"
HEADER_TIMESTAMP = "x-timestamp"


class SignatureHeaders(BaseModel):
    """Signature headers computed for a single request."""

    api_key_id: str = Field(..., alias=HEADER_API_KEY, description="Configured key identifier")
    signature: str = Field(..., alias=HEADER_SIGNATURE, description="Lowercase hex HMAC-SHA256 digest")
    timestamp: str = Field(..., alias=HEADER_TIMESTAMP, description="RFC 3339 UTC timestamp, second precision")

    def as_headers(self) -> Dict[str, str]:
        """Return the values keyed by their wire header names."""
        return self.model_dump(by_alias=True)
