"""
Xero Integration Exceptions

Defines the exception hierarchy for Xero OAuth and API failures.
"""

from typing import Any, Dict, Optional


class XeroError(Exception):
    """Base exception for all Xero errors."""

    status_code = 500

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class XeroAuthError(XeroError):
    """Raised when there is no usable Xero connection or token."""

    status_code = 401

    def __init__(self, message: str = 'Please connect to Xero first', details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, details=details)


class XeroAPIError(XeroError):
    """Raised when a Xero API call fails or returns an unexpected body."""

    status_code = 502

    def __init__(
        self,
        message: str,
        upstream_status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, details=details)
        self.upstream_status = upstream_status
