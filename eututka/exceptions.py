"""Exception hierarchy for the EU-Tutka data layer.

Exception Hierarchy:
    EuTutkaError (base)
    ├── ConfigurationError
    └── DataProviderError
        ├── UnknownIndicatorError
        ├── InvalidQueryError
        ├── UpstreamError
        ├── EmptyResultError
        └── NormalizationError

UnknownIndicatorError, InvalidQueryError and NormalizationError are
programming or configuration errors: they surface to the caller and are
never retried. UpstreamError and EmptyResultError are eligible for the
stale-cache fallback.
"""
from __future__ import annotations

from typing import Optional, Dict, Any


class EuTutkaError(Exception):
    """Base exception for all EU-Tutka errors.

    Attributes:
        message: Human-readable error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(EuTutkaError):
    """Raised when there's a configuration problem.

    Examples:
        - Unknown fallback policy name
        - Allow-list entry without a provider mapping
    """
    pass


class DataProviderError(EuTutkaError):
    """Base class for data provider errors.

    Attributes:
        provider: Name of the provider that failed
    """

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.provider = provider
        details = details or {}
        if provider:
            details["provider"] = provider
        super().__init__(message, code, details)


class UnknownIndicatorError(DataProviderError):
    """Raised when an indicator code is not on the provider's allow-list.

    Raised before any network call is made.
    """

    def __init__(
        self,
        indicator: str,
        provider: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.indicator = indicator
        details = details or {}
        details["indicator"] = indicator
        super().__init__(f"Unknown indicator: {indicator}", provider, None, details)


class InvalidQueryError(DataProviderError):
    """Raised when a query parameter cannot be embedded in a provider query.

    Examples:
        - SPARQL date bound that is not YYYY-MM-DD
        - Language tag with characters outside [a-z0-9-]

    Raised before any network call is made.
    """
    pass


class UpstreamError(DataProviderError):
    """Raised on a non-2xx HTTP response or a network failure.

    Attributes:
        status_code: HTTP status, or None for transport failures
    """

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.status_code = status_code
        details = details or {}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, provider, code, details)


class EmptyResultError(DataProviderError):
    """Raised when a 2xx response lacks the expected top-level structure.

    Examples:
        - Eurostat body without ``value`` or ``dimension``
        - OECD body without ``dataSets``
        - SPARQL body with no ``results.bindings``

    Retrying without changing the query will not help.
    """
    pass


class NormalizationError(DataProviderError):
    """Raised when a payload is present but contradicts its declared structure.

    Examples:
        - Declared dimension sizes disagree with the category indices
        - A linear index falls outside the declared cube
        - OECD structure without a time or country dimension
    """
    pass


def is_fallback_eligible(error: Exception) -> bool:
    """Check whether an error may be answered from a stale cache entry.

    Args:
        error: The exception to check

    Returns:
        True for upstream and empty-result failures
    """
    return isinstance(error, (UpstreamError, EmptyResultError))


def get_error_response(error: Exception) -> Dict[str, Any]:
    """Convert any exception to an API error response.

    Args:
        error: The exception to convert

    Returns:
        Dictionary suitable for API error response
    """
    if isinstance(error, EuTutkaError):
        return error.to_dict()

    return {
        "error": "InternalError",
        "message": str(error),
        "details": {},
    }
