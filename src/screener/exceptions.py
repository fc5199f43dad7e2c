"""Screener exception hierarchy.

All screener-specific exceptions derive from :class:`ScreenerError`. Every
error carries an explicit :class:`ErrorKind` set where the error is raised,
so callers classify failures by ``kind`` rather than by inspecting messages.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Classification attached to every screener error and failed scan result."""

    CONFIG = "config"
    THROTTLED = "throttled"
    NOT_RESOLVABLE = "not_resolvable"
    PROVIDER = "provider"
    INSUFFICIENT_DATA = "insufficient_data"
    UNSUPPORTED_INDICATOR = "unsupported_indicator"
    NOT_FOUND = "not_found"
    STORAGE = "storage"


class ScreenerError(Exception):
    """Base class for screener-related exceptions.

    :param message: Human readable description.
    :param code: Optional upstream error code (e.g. a broker rate-limit code).
    """

    kind: ErrorKind = ErrorKind.PROVIDER

    def __init__(self, message: str = "", code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class ConfigError(ScreenerError):
    """Raised when configuration, credentials or run parameters are invalid."""

    kind = ErrorKind.CONFIG


class ProviderError(ScreenerError):
    """Raised when an upstream candle or quote provider fails."""

    kind = ErrorKind.PROVIDER


class ThrottledError(ProviderError):
    """Raised when the provider rejects a request because of rate limiting.

    This is the only provider failure eligible for retry.
    """

    kind = ErrorKind.THROTTLED


class NotResolvableError(ProviderError):
    """Raised when a symbol cannot be mapped to a provider identifier."""

    kind = ErrorKind.NOT_RESOLVABLE


class InsufficientDataError(ScreenerError):
    """Raised when a provider returns too few candles to evaluate."""

    kind = ErrorKind.INSUFFICIENT_DATA


class UnsupportedIndicatorError(ScreenerError):
    """Raised when an unknown indicator kind is requested."""

    kind = ErrorKind.UNSUPPORTED_INDICATOR


class DataValidationError(ScreenerError):
    """Raised when provider data fails validation checks.

    Named DataValidationError to avoid conflict with pydantic's ValidationError.
    """

    kind = ErrorKind.PROVIDER


class NotFoundError(ScreenerError):
    """Raised when a history entry lookup finds nothing."""

    kind = ErrorKind.NOT_FOUND


class StorageError(ScreenerError):
    """Raised when reading from or writing to history storage fails."""

    kind = ErrorKind.STORAGE


# Errors that abort a whole batch instead of being folded into one symbol.
FATAL_ERRORS: tuple[type[ScreenerError], ...] = (ConfigError, UnsupportedIndicatorError)


__all__ = [
    "ErrorKind",
    "ScreenerError",
    "ConfigError",
    "ProviderError",
    "ThrottledError",
    "NotResolvableError",
    "InsufficientDataError",
    "UnsupportedIndicatorError",
    "DataValidationError",
    "NotFoundError",
    "StorageError",
    "FATAL_ERRORS",
]
