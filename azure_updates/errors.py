"""
Exception types for the Azure Updates service.

Malformed search input is not an exception: it comes back as a
ValidationResult. Everything below is an execution failure.
"""

from typing import Optional


class AzureUpdatesError(Exception):
    """Base class for service errors."""


class IndexUnavailableError(AzureUpdatesError):
    """Local index is missing, corrupt or has an unsupported schema."""


class UpstreamError(AzureUpdatesError):
    """The upstream feed failed (network error or non-2xx response)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
