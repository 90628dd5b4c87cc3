"""
Infrastructure exceptions for the CarMarket cache layer.

Purpose
-------
Define the structured exception hierarchy for infrastructure-level concerns:
remote cache connectivity, per-call cache failures, value serialization,
connection state bookkeeping and configuration.

Design Notes
------------
- All infrastructure exceptions inherit from
  `CarMarketInfrastructureException`.
- Each exception carries:
  - `message`: human-readable description
  - `details`: additional structured context (dict)
  - `severity`: `ErrorSeverity` value for logging/alerting
  - `is_retryable`: whether the operation can be retried
  - `error_code`: short, stable identifier for programmatic use
- Connection and operation errors are built and logged by the cache accessor
  but never raised past it. Serialization errors are raised to the caller.
- Helper functions (`is_transient_error`, `get_error_severity`, `should_alert`)
  centralize common exception handling patterns.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels for logging and alerting."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"  # Concerning but handled (e.g., cache fell back)
    ERROR = "error"
    CRITICAL = "critical"  # Bugs or misconfiguration


class CarMarketInfrastructureException(Exception):
    """
    Base exception for all CarMarket infrastructure-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling

    Example:
        >>> raise CarMarketInfrastructureException(
        ...     "Redis connection failed",
        ...     {"url_scheme": "redis"}
        ... )
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message: str = message
        self.details: Dict[str, Any] = details or {}
        self.severity: ErrorSeverity = severity or self.DEFAULT_SEVERITY
        self.is_retryable: bool = (
            is_retryable if is_retryable is not None else self.DEFAULT_RETRYABLE
        )
        self.error_code: str = error_code or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"severity={self.severity.value!r}, "
            f"is_retryable={self.is_retryable!r}"
            ")"
        )


class ConfigurationError(CarMarketInfrastructureException):
    """
    Raised when a configuration key is invalid or missing.

    Args:
        config_key: The configuration key that has issues
        message: Description of the configuration problem
    """

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL
    DEFAULT_RETRYABLE = False

    def __init__(self, config_key: str, message: str) -> None:
        self.config_key = config_key
        super().__init__(
            f"Configuration error for {config_key}: {message}",
            details={
                "config_key": config_key,
                "message": message,
            },
            error_code="CONFIG_ERROR",
        )


class CacheConnectionError(CarMarketInfrastructureException):
    """
    The remote cache could not be reached, or the connect attempt timed out.

    Args:
        phase: Lifecycle step that failed ("connect", "reconnect", "ping")
        original_error: The underlying client exception
        attempt: Reconnect attempt number, when applicable
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(
        self,
        phase: str,
        original_error: BaseException,
        attempt: Optional[int] = None,
    ) -> None:
        self.phase = phase
        self.original_error = original_error
        self.attempt = attempt
        super().__init__(
            f"Remote cache unreachable during {phase}: {original_error}",
            details={
                "phase": phase,
                "attempt": attempt,
                "error": str(original_error),
                "error_type": type(original_error).__name__,
            },
            error_code="CACHE_CONNECTION_ERROR",
        )


class CacheOperationError(CarMarketInfrastructureException):
    """
    A single remote cache call failed after the connection was established.

    Args:
        operation: Cache operation name ("get", "set", "clear", "info")
        cache_key: Key or pattern involved
        original_error: The underlying client exception
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(
        self,
        operation: str,
        cache_key: str,
        original_error: BaseException,
    ) -> None:
        self.operation = operation
        self.cache_key = cache_key
        self.original_error = original_error
        super().__init__(
            f"Remote cache {operation} failed for '{cache_key}': {original_error}",
            details={
                "operation": operation,
                "cache_key": cache_key,
                "error": str(original_error),
                "error_type": type(original_error).__name__,
            },
            error_code="CACHE_OPERATION_ERROR",
        )


class CacheSerializationError(CarMarketInfrastructureException):
    """
    A value handed to the cache cannot be round-tripped through JSON.

    This points at the calling code, not at the infrastructure, so it is the
    one cache error that reaches application code.

    Args:
        cache_key: Key the value was meant for
        reason: Why encoding failed
        original_error: The underlying encoder exception, if any
    """

    DEFAULT_SEVERITY = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE = False

    def __init__(
        self,
        cache_key: str,
        reason: str,
        original_error: Optional[BaseException] = None,
    ) -> None:
        self.cache_key = cache_key
        self.reason = reason
        self.original_error = original_error
        super().__init__(
            f"Value for cache key '{cache_key}' is not JSON round-trippable: {reason}",
            details={
                "cache_key": cache_key,
                "reason": reason,
                "error_type": (
                    type(original_error).__name__ if original_error else None
                ),
            },
            error_code="CACHE_SERIALIZATION_ERROR",
        )


class InvalidStateTransition(CarMarketInfrastructureException):
    """
    Raised when the remote cache connection is asked to make an illegal move.

    Args:
        current: State name before the transition
        target: Requested state name
        reason: Event that triggered the request
    """

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL
    DEFAULT_RETRYABLE = False

    def __init__(self, current: str, target: str, reason: str) -> None:
        self.current = current
        self.target = target
        self.reason = reason
        super().__init__(
            f"Illegal connection state transition {current} -> {target} ({reason})",
            details={
                "current": current,
                "target": target,
                "reason": reason,
            },
            error_code="INVALID_STATE_TRANSITION",
        )


# Utility functions for exception handling patterns


def is_transient_error(exc: BaseException) -> bool:
    """
    Check if an exception represents a transient error that can be retried.

    Args:
        exc: Exception to check

    Returns:
        True if error is retryable, False otherwise.
    """
    if isinstance(exc, CarMarketInfrastructureException):
        return exc.is_retryable
    return False


def get_error_severity(exc: BaseException) -> ErrorSeverity:
    """
    Get the severity level of an exception for logging.

    Args:
        exc: Exception to check

    Returns:
        ErrorSeverity level.
    """
    if isinstance(exc, CarMarketInfrastructureException):
        return exc.severity
    return ErrorSeverity.ERROR


def should_alert(exc: BaseException) -> bool:
    """
    Determine if an exception should trigger alerting.

    Returns:
        True if severity is ERROR or CRITICAL, False otherwise.
    """
    return get_error_severity(exc) in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)


__all__ = [
    "ErrorSeverity",
    "CarMarketInfrastructureException",
    "ConfigurationError",
    "CacheConnectionError",
    "CacheOperationError",
    "CacheSerializationError",
    "InvalidStateTransition",
    "is_transient_error",
    "get_error_severity",
    "should_alert",
]
