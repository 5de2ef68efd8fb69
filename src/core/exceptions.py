"""Custom exception classes.

This module defines custom exceptions used throughout the application.
Forwarding failures carry the HTTP status they map to, so the dispatcher
can relay them without inspecting messages or exception identity.
"""

from typing import Any, Dict, Optional


class BaseAppException(Exception):
    """Base exception class for the application.

    All custom exceptions should inherit from this class.
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Error message.
            details: Additional error details.
            cause: Underlying exception that caused this error.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        """String representation of the exception."""
        if self.cause is not None:
            return f"{self.message}: {self.cause}"
        return self.message

    def __repr__(self) -> str:
        """Detailed representation of the exception."""
        return f"{self.__class__.__name__}('{self.message}', details={self.details})"


class ConfigurationError(BaseAppException):
    """Raised when there's a configuration error."""
    pass


class SigningError(ConfigurationError):
    """Raised when a request cannot be signed with the configured credentials."""
    pass


class ExternalServiceError(BaseAppException):
    """Raised when external service call fails.

    Attributes:
        service: Name of the external service.
        status_code: HTTP status code if applicable.
    """

    def __init__(
        self,
        message: str,
        service: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Error message.
            service: Name of the external service.
            status_code: HTTP status code if applicable.
            details: Additional error details.
            cause: Underlying exception that caused this error.
        """
        super().__init__(message, details, cause)
        self.service = service
        self.status_code = status_code


class ForwardingError(ExternalServiceError):
    """Raised when a request could not be forwarded to the upstream.

    Subclasses fix the status code relayed to the client.

    Attributes:
        status_code: HTTP status to emit downstream.
        target_url: The upstream URL, when it was resolved.
        method: HTTP method of the inbound request.
    """

    default_status: int = 502

    def __init__(
        self,
        message: str,
        method: str,
        target_url: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Error message.
            method: HTTP method used.
            target_url: The target URL that failed.
            details: Additional error details.
            cause: Underlying exception that caused this error.
        """
        super().__init__(message, "upstream", self.default_status, details, cause)
        self.method = method
        self.target_url = target_url


class GatewayTimeoutError(ForwardingError):
    """The upstream did not answer in time or the caller went away."""

    default_status = 504


class BadGatewayError(ForwardingError):
    """The request could not be delivered to the upstream."""

    default_status = 502
