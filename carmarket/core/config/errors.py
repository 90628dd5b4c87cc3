"""
Configuration error hierarchy for the CarMarket cache layer.

Purpose
-------
Provides domain-specific exceptions for configuration loading with clear
error classification.

Exception Hierarchy
-------------------
ConfigError (base)
└── ConfigValidationError (type, bounds or format failures)
"""


class ConfigError(Exception):
    """
    Base exception for all configuration-related errors.

    Example
    -------
    >>> try:
    ...     Config.validate()
    ... except ConfigError as e:
    ...     logger.error(f"Config load failed: {e}")
    """

    pass


class ConfigValidationError(ConfigError):
    """
    Raised when configuration validation fails.

    Raised for values that cannot be safely defaulted, such as a
    ``REDIS_URL`` with an unknown scheme in production.
    """

    pass


__all__ = [
    "ConfigError",
    "ConfigValidationError",
]
