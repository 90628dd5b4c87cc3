"""
Static configuration management for the CarMarket cache layer.

Purpose
-------
Provides centralized static configuration loaded from environment variables
with sensible defaults, type validation, and bounds checking. Everything the
cache layer can tune (remote cache address, reconnect policy, TTLs, fallback
bounds, logging) is read here once at startup.

Responsibilities
----------------
- Load configuration from environment variables with .env support
- Provide type-safe access to all static configuration values
- Validate critical settings on startup
- Detect and warn about suspicious settings in production
- Track which values came from the environment and which from defaults

Non-Responsibilities
--------------------
- Secrets management (use environment variables)
- Per-accessor snapshots (see ``carmarket.core.cache.settings.CacheSettings``)
- Runtime configuration changes (call Config.reset() and validate() again)

Architecture Notes
------------------
- Singleton pattern via class methods (no instantiation)
- Auto-loads on module import via Config.validate()

Environment Variables
---------------------
Optional (with defaults):
- REDIS_URL: Remote cache address. Unset disables the remote cache entirely.
- REDIS_CONNECT_TIMEOUT: Connect timeout in seconds (default: 10)
- REDIS_RECONNECT_MAX_ATTEMPTS: Reconnect attempt budget (default: 20)
- REDIS_RECONNECT_BASE_DELAY_MS: Backoff step in milliseconds (default: 100)
- REDIS_RECONNECT_MAX_DELAY_MS: Backoff ceiling in milliseconds (default: 3000)
- REDIS_MAX_RETRIES_PER_REQUEST: Client retries per command (default: 3)
- REDIS_HEALTH_CHECK_INTERVAL: Monitor ping interval in seconds (default: 30)
- CACHE_TTL_SECONDS: Nominal entry TTL (default: 300)
- CACHE_FALLBACK_MAX_ENTRIES: LRU bound for the fallback map, 0 = unbounded
- CACHE_FALLBACK_SWEEP_INTERVAL: Seconds between stale sweeps, 0 = off
- ENVIRONMENT: Environment type (default: development)
- DEBUG: Debug mode flag (default: False)
- LOG_LEVEL: Logging level (default: INFO)
- LOG_JSON / LOG_COLORS: Console output switches
"""

import logging
import os
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from carmarket.core.config.errors import ConfigValidationError

# Load environment variables from .env file
load_dotenv()


# ============================================================================
# Enums and Constants
# ============================================================================


class Environment(Enum):
    """Deployment environment types."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"

    @classmethod
    def from_string(cls, value: str) -> "Environment":
        """
        Parse environment string safely with fallback.

        Example
        -------
        >>> Environment.from_string("production") == Environment.PRODUCTION
        True
        >>> Environment.from_string("invalid") == Environment.DEVELOPMENT
        True
        """
        try:
            return cls(value.lower())
        except ValueError:
            # Structured logger is not set up yet during bootstrap
            logging.warning(
                f"Unknown environment '{value}', defaulting to development"
            )
            return cls.DEVELOPMENT


SUPPORTED_REDIS_SCHEMES = ("redis", "rediss", "unix")


# ============================================================================
# Configuration Metrics Tracker
# ============================================================================


class _ConfigLoadMetrics:
    """
    Internal metrics tracker for configuration loading.

    Tracks which configuration values came from environment variables
    versus defaults, and any validation errors encountered.
    """

    def __init__(self) -> None:
        self.env_vars_loaded: Dict[str, bool] = {}
        self.validation_errors: Dict[str, str] = {}
        self.defaults_used: Dict[str, Any] = {}
        self.last_reload: Optional[str] = None

    def record_env_load(self, key: str, from_env: bool, default: Any) -> None:
        self.env_vars_loaded[key] = from_env
        if not from_env:
            self.defaults_used[key] = default

    def record_validation_error(self, key: str, error: str) -> None:
        self.validation_errors[key] = error

    def get_summary(self) -> Dict[str, Any]:
        return {
            "total_configs": len(self.env_vars_loaded),
            "from_environment": sum(1 for v in self.env_vars_loaded.values() if v),
            "from_defaults": sum(1 for v in self.env_vars_loaded.values() if not v),
            "validation_errors": len(self.validation_errors),
            "defaults_used": list(self.defaults_used.keys()),
            "last_reload": self.last_reload,
        }


# ============================================================================
# Main Configuration Class
# ============================================================================


class Config:
    """
    Centralized static configuration for the CarMarket cache layer.

    All configuration values are loaded from environment variables with
    sensible defaults. Invalid values fall back to the default with a warning
    instead of failing startup, except for a malformed ``REDIS_URL`` in
    production.

    Usage
    -----
    >>> Config.REDIS_URL is None  # remote cache disabled
    True
    >>> Config.CACHE_TTL_SECONDS
    300
    >>> if Config.is_production():
    ...     logger.info("Running in production mode")
    """

    # =========================================================================
    # Internal State
    # =========================================================================

    _metrics: Optional[_ConfigLoadMetrics] = None
    _enable_metrics: bool = True
    _validated: bool = False

    # =========================================================================
    # Remote Cache (Redis)
    # =========================================================================

    REDIS_URL: Optional[str] = None
    REDIS_CONNECT_TIMEOUT: int = 10
    REDIS_RECONNECT_MAX_ATTEMPTS: int = 20
    REDIS_RECONNECT_BASE_DELAY_MS: int = 100
    REDIS_RECONNECT_MAX_DELAY_MS: int = 3000
    REDIS_MAX_RETRIES_PER_REQUEST: int = 3
    REDIS_HEALTH_CHECK_INTERVAL: int = 30

    # =========================================================================
    # Cache Behaviour
    # =========================================================================

    CACHE_TTL_SECONDS: int = 300
    CACHE_FALLBACK_MAX_ENTRIES: int = 0
    CACHE_FALLBACK_SWEEP_INTERVAL: int = 60

    # =========================================================================
    # Environment Configuration
    # =========================================================================

    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: Optional[bool] = None
    LOG_COLORS: bool = True

    # =========================================================================
    # Service Metadata
    # =========================================================================

    SERVICE_NAME: str = "carmarket-cache"
    SERVICE_VERSION: str = "1.0.0"

    # =========================================================================
    # Helper Methods
    # =========================================================================

    @classmethod
    def _init_metrics(cls) -> None:
        if cls._enable_metrics and cls._metrics is None:
            cls._metrics = _ConfigLoadMetrics()

    @classmethod
    def _reject(cls, key: str, error: str) -> None:
        logging.warning(error)
        if cls._metrics:
            cls._metrics.record_validation_error(key, error)

    @classmethod
    def _safe_int(
        cls,
        key: str,
        default: int,
        min_val: Optional[int] = None,
        max_val: Optional[int] = None,
    ) -> int:
        """
        Safely parse integer from environment with validation.

        Parameters
        ----------
        key:
            Environment variable name.
        default:
            Default value if not set or invalid.
        min_val:
            Minimum allowed value (inclusive).
        max_val:
            Maximum allowed value (inclusive).

        Example
        -------
        >>> Config._safe_int("CACHE_TTL_SECONDS", 300, min_val=1)
        300
        """
        cls._init_metrics()

        raw_value = os.getenv(key)

        if raw_value is None:
            if cls._metrics:
                cls._metrics.record_env_load(key, False, default)
            return default

        try:
            value = int(raw_value)
        except ValueError:
            cls._reject(
                key, f"{key}='{raw_value}' is not a valid integer, using default {default}"
            )
            return default

        if min_val is not None and value < min_val:
            cls._reject(key, f"{key}={value} is below minimum {min_val}, using default {default}")
            return default

        if max_val is not None and value > max_val:
            cls._reject(key, f"{key}={value} exceeds maximum {max_val}, using default {default}")
            return default

        if cls._metrics:
            cls._metrics.record_env_load(key, True, default)

        return value

    @classmethod
    def _safe_bool(cls, key: str, default: Optional[bool]) -> Optional[bool]:
        """
        Safely parse boolean from environment.

        Recognizes: true/false, yes/no, 1/0, on/off (case-insensitive).
        """
        cls._init_metrics()

        raw_value = os.getenv(key)

        if raw_value is None:
            if cls._metrics:
                cls._metrics.record_env_load(key, False, default)
            return default

        normalized = raw_value.lower().strip()

        if normalized in {"true", "yes", "1", "on"}:
            value = True
        elif normalized in {"false", "no", "0", "off"}:
            value = False
        else:
            cls._reject(
                key, f"{key}='{raw_value}' is not a valid boolean, using default {default}"
            )
            return default

        if cls._metrics:
            cls._metrics.record_env_load(key, True, default)

        return value

    @classmethod
    def _safe_str(cls, key: str, default: str) -> str:
        """Safely get string from environment."""
        cls._init_metrics()

        value = os.getenv(key, default)
        if cls._metrics:
            cls._metrics.record_env_load(key, key in os.environ, default)
        return value

    @classmethod
    def _optional_str(cls, key: str) -> Optional[str]:
        """
        Get an optional string from environment.

        Blank values count as unset, so ``REDIS_URL=`` in a .env file
        disables the remote cache the same way a missing variable does.
        """
        cls._init_metrics()

        raw_value = os.getenv(key)
        value = raw_value.strip() if raw_value else None
        if cls._metrics:
            cls._metrics.record_env_load(key, bool(value), None)
        return value or None

    # =========================================================================
    # Configuration Loading
    # =========================================================================

    @classmethod
    def load(cls) -> None:
        """
        Load all configuration from environment variables with validation.

        Called automatically on module import, and again by tests that
        change the environment.
        """
        cls._init_metrics()

        # Remote cache
        cls.REDIS_URL = cls._optional_str("REDIS_URL")
        cls.REDIS_CONNECT_TIMEOUT = cls._safe_int(
            "REDIS_CONNECT_TIMEOUT", 10, min_val=1, max_val=120
        )
        cls.REDIS_RECONNECT_MAX_ATTEMPTS = cls._safe_int(
            "REDIS_RECONNECT_MAX_ATTEMPTS", 20, min_val=0, max_val=1000
        )
        cls.REDIS_RECONNECT_BASE_DELAY_MS = cls._safe_int(
            "REDIS_RECONNECT_BASE_DELAY_MS", 100, min_val=1, max_val=60_000
        )
        cls.REDIS_RECONNECT_MAX_DELAY_MS = cls._safe_int(
            "REDIS_RECONNECT_MAX_DELAY_MS", 3000, min_val=1, max_val=600_000
        )
        cls.REDIS_MAX_RETRIES_PER_REQUEST = cls._safe_int(
            "REDIS_MAX_RETRIES_PER_REQUEST", 3, min_val=0, max_val=20
        )
        cls.REDIS_HEALTH_CHECK_INTERVAL = cls._safe_int(
            "REDIS_HEALTH_CHECK_INTERVAL", 30, min_val=1, max_val=3600
        )

        # Cache behaviour
        cls.CACHE_TTL_SECONDS = cls._safe_int(
            "CACHE_TTL_SECONDS", 300, min_val=1, max_val=86_400
        )
        cls.CACHE_FALLBACK_MAX_ENTRIES = cls._safe_int(
            "CACHE_FALLBACK_MAX_ENTRIES", 0, min_val=0
        )
        cls.CACHE_FALLBACK_SWEEP_INTERVAL = cls._safe_int(
            "CACHE_FALLBACK_SWEEP_INTERVAL", 60, min_val=0
        )

        # Environment
        cls.ENVIRONMENT = Environment.from_string(
            cls._safe_str("ENVIRONMENT", "development")
        ).value
        cls.DEBUG = bool(cls._safe_bool("DEBUG", False))
        cls.LOG_LEVEL = cls._safe_str("LOG_LEVEL", "INFO")
        cls.LOG_JSON = cls._safe_bool("LOG_JSON", None)
        cls.LOG_COLORS = bool(cls._safe_bool("LOG_COLORS", True))

        if cls._metrics:
            cls._metrics.last_reload = datetime.now(timezone.utc).isoformat()

    @classmethod
    def validate(cls) -> None:
        """
        Validate critical configuration values on startup.

        Raises
        ------
        ConfigValidationError:
            If ``REDIS_URL`` uses an unsupported scheme in production.
        """
        if cls._validated:
            return

        logger = logging.getLogger(__name__)
        cls._init_metrics()

        try:
            cls.load()

            valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
            if cls.LOG_LEVEL.upper() not in valid_log_levels:
                logger.warning(f"Invalid LOG_LEVEL '{cls.LOG_LEVEL}', using INFO")
                cls.LOG_LEVEL = "INFO"

            if cls.REDIS_RECONNECT_MAX_DELAY_MS < cls.REDIS_RECONNECT_BASE_DELAY_MS:
                logger.warning(
                    "REDIS_RECONNECT_MAX_DELAY_MS is below the base delay, "
                    "raising ceiling to the base delay"
                )
                cls.REDIS_RECONNECT_MAX_DELAY_MS = cls.REDIS_RECONNECT_BASE_DELAY_MS

            if cls.REDIS_URL is not None:
                scheme = cls.REDIS_URL.split("://", 1)[0].lower()
                if "://" not in cls.REDIS_URL or scheme not in SUPPORTED_REDIS_SCHEMES:
                    raise ConfigValidationError(
                        f"REDIS_URL has unsupported scheme '{scheme}', "
                        f"expected one of {SUPPORTED_REDIS_SCHEMES}"
                    )
                if cls.is_production() and "localhost" in cls.REDIS_URL:
                    logger.warning(
                        "Production environment using localhost Redis - "
                        "this may be incorrect"
                    )
            elif cls.is_production():
                logger.warning(
                    "REDIS_URL not set in production, cache runs in-process only"
                )

            if cls.is_production() and cls.DEBUG:
                logger.warning("DEBUG mode enabled in production!")

            cls._validated = True

            if cls._metrics:
                logger.info(f"Configuration loaded: {cls._metrics.get_summary()}")
                if cls._metrics.validation_errors:
                    logger.warning(
                        f"Configuration warnings: {cls._metrics.validation_errors}"
                    )

        except Exception as e:
            logger.warning(f"Config validation warning (safe for tests): {e}")
            if cls.is_production():
                logger.error("Configuration validation failed in production!")
                raise

    @classmethod
    def reset(cls) -> None:
        """Forget validation state so the next validate() reloads from env."""
        cls._validated = False
        cls._metrics = None

    # =========================================================================
    # Environment Checks
    # =========================================================================

    @classmethod
    def is_production(cls) -> bool:
        return cls.ENVIRONMENT == Environment.PRODUCTION.value

    @classmethod
    def is_development(cls) -> bool:
        return cls.ENVIRONMENT == Environment.DEVELOPMENT.value

    @classmethod
    def is_testing(cls) -> bool:
        return cls.ENVIRONMENT == Environment.TESTING.value

    # =========================================================================
    # Metrics & Summary
    # =========================================================================

    @classmethod
    def get_metrics(cls) -> Optional[_ConfigLoadMetrics]:
        return cls._metrics

    @classmethod
    def get_config_summary(cls) -> Dict[str, Any]:
        """
        Get non-sensitive configuration summary for debugging.

        The Redis URL itself is never included since it may carry credentials.
        """
        return {
            "environment": cls.ENVIRONMENT,
            "debug": cls.DEBUG,
            "log_level": cls.LOG_LEVEL,
            "redis_url_set": cls.REDIS_URL is not None,
            "redis_connect_timeout": cls.REDIS_CONNECT_TIMEOUT,
            "redis_reconnect_max_attempts": cls.REDIS_RECONNECT_MAX_ATTEMPTS,
            "cache_ttl_seconds": cls.CACHE_TTL_SECONDS,
            "cache_fallback_max_entries": cls.CACHE_FALLBACK_MAX_ENTRIES,
            "service_version": cls.SERVICE_VERSION,
        }


# Auto-validate on import
Config.validate()
