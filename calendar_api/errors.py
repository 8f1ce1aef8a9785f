"""Error types for calendar requests."""
from typing import Optional


class CalendarAPIError(Exception):
    """Base class for errors reported by calendar requests."""

    error_type = 'CalendarAPIError'


class ConfigurationError(CalendarAPIError):
    """Missing API key, calendar ID or an invalid date range."""

    error_type = 'ConfigurationError'


class TransportError(CalendarAPIError):
    """Network failure or timeout reaching the provider."""

    error_type = 'TransportError'


class UpstreamError(CalendarAPIError):
    """Non-success HTTP status returned by the provider."""

    error_type = 'UpstreamError'

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedResponseError(CalendarAPIError):
    """Successful response that lacks the expected payload."""

    error_type = 'MalformedResponseError'
