"""Application configuration management.

This module provides configuration management using Pydantic settings
with environment variable support. Every variable is prefixed with
``MCP_`` (for example ``MCP_UPSTREAM_URL``).
"""

import re
from functools import lru_cache
from typing import Optional, Tuple
from urllib.parse import urlsplit

from pydantic import Field, validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


class Settings(BaseSettings):
    """Application settings.

    All settings can be overridden using environment variables.
    """

    model_config = SettingsConfigDict(
        env_prefix="MCP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    app_name: str = Field(default="MCP Auth Proxy", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")

    # Server settings
    listen_addr: str = Field(default="127.0.0.1:8080", description="host:port to listen on")
    server_idle_timeout: float = Field(default=120.0, description="Keep-alive idle timeout in seconds")
    graceful_shutdown: float = Field(default=10.0, description="Graceful shutdown timeout in seconds")

    # Upstream settings
    upstream_url: str = Field(..., description="Absolute base URL of the upstream MCP server")
    request_timeout: float = Field(default=15.0, description="Upstream request timeout in seconds")
    upstream_insecure: bool = Field(default=False, description="Skip TLS verification of the upstream")

    # Signing settings
    api_key: str = Field(..., description="API key identifier sent as x-api-key-id")
    api_secret: str = Field(..., description="Shared secret used for HMAC signing")
    session_header: str = Field(default="x-session-id", description="Session header name")
    session_value: str = Field(default="", description="Static session header value")

    # Logging settings
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format (json or text)")
    log_file: Optional[str] = Field(default=None, description="Log file path")
    log_max_size: str = Field(default="10MB", description="Maximum log file size")
    log_backup_count: int = Field(default=5, description="Number of backup log files")

    # Monitoring settings
    metrics_enabled: bool = Field(default=False, description="Expose Prometheus metrics")
    prometheus_port: int = Field(default=8001, description="Prometheus metrics port")

    @validator("upstream_url")
    def validate_upstream_url(cls, v):
        """Require an absolute upstream URL."""
        v = v.strip()
        if not v:
            raise ValueError("upstream URL is required")
        parts = urlsplit(v)
        if not parts.scheme or not parts.netloc:
            raise ValueError("upstream URL must be absolute (scheme://host)")
        return v

    @validator("api_key", "api_secret")
    def validate_credentials(cls, v):
        """Credentials must be present once surrounding whitespace is removed."""
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    @validator("session_header", "session_value")
    def strip_session(cls, v):
        return v.strip()

    @validator("request_timeout", "server_idle_timeout", "graceful_shutdown", pre=True)
    def parse_durations(cls, v):
        """Accept plain seconds or Go-style duration strings such as ``1m30s``."""
        if isinstance(v, str):
            return _parse_duration(v)
        return v

    @validator("listen_addr")
    def validate_listen_addr(cls, v):
        """Validate listen address."""
        _split_host_port(v)
        return v

    @validator("log_level")
    def validate_log_level(cls, v):
        """Validate log level."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of {allowed}")
        return v.upper()

    @validator("log_format")
    def validate_log_format(cls, v):
        """Validate log format."""
        allowed = ["json", "text"]
        if v not in allowed:
            raise ValueError(f"Log format must be one of {allowed}")
        return v

    @property
    def host(self) -> str:
        """Host part of the listen address."""
        return _split_host_port(self.listen_addr)[0]

    @property
    def port(self) -> int:
        """Port part of the listen address."""
        return _split_host_port(self.listen_addr)[1]


def _split_host_port(addr: str) -> Tuple[str, int]:
    """Split ``host:port`` (or ``[v6]:port``) into its parts.

    Args:
        addr: Listen address.

    Returns:
        Tuple[str, int]: Host and port.
    """
    host, sep, port = addr.strip().rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"listen address must be host:port, got {addr!r}")
    host = host.strip("[]") or "0.0.0.0"
    return host, int(port)


def _parse_duration(value: str) -> float:
    """Parse a duration string to seconds.

    Args:
        value: Duration like '15', '15s', '500ms' or '1m30s'.

    Returns:
        float: Duration in seconds.
    """
    value = value.strip()
    try:
        return float(value)
    except ValueError:
        pass

    total = 0.0
    position = 0
    for match in _DURATION_PART.finditer(value):
        if match.start() != position:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()

    if position == 0 or position != len(value):
        raise ValueError(f"invalid duration {value!r}")
    return total


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
