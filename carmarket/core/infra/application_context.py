"""
Application Context - CarMarket cache infrastructure orchestration
==================================================================

Purpose
-------
Build the process-wide infrastructure in dependency order and tear it down
in reverse: configuration, logging, then the single CacheAccessor that every
request handler shares.

Responsibilities
----------------
- Validate configuration before anything connects
- Create and initialize the CacheAccessor from ``CacheSettings``
- Hand the accessor out by reference (no module-level singleton)
- Coordinate graceful shutdown with structured lifecycle logging

Non-Responsibilities
--------------------
- Cache semantics (CacheAccessor)
- HTTP routing of the marketplace API

Initialization Order:
    1. Config.validate()
    2. CacheAccessor.initialize()

Shutdown Order (Reverse):
    1. CacheAccessor.close()
    2. shutdown_logging() (optional)
"""

from __future__ import annotations

import time
from typing import Optional

from carmarket.core.cache.accessor import CacheAccessor
from carmarket.core.cache.settings import CacheSettings
from carmarket.core.config import Config
from carmarket.core.logging.logger import get_logger, shutdown_logging
from carmarket.core.redis.connection import ClientFactory

logger = get_logger(__name__)


class ApplicationContext:
    """
    Owns the lifecycle of the cache infrastructure.

    Usage:
        context = ApplicationContext()
        await context.initialize()
        cache = context.cache
        ...
        await context.shutdown()
    """

    def __init__(
        self,
        settings: Optional[CacheSettings] = None,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        self._settings = settings
        self._client_factory = client_factory
        self._cache: Optional[CacheAccessor] = None
        self._initialized: bool = False

        logger.debug("ApplicationContext created")

    # ========================================================================
    # INITIALIZATION
    # ========================================================================

    async def initialize(self) -> None:
        """
        Initialize infrastructure in dependency order.

        Raises:
            RuntimeError: If already initialized or configuration is invalid.
                A missing or unreachable Redis is not an error.
        """
        if self._initialized:
            raise RuntimeError("ApplicationContext already initialized")

        logger.info("=" * 70)
        logger.info("APPLICATION CONTEXT INITIALIZATION")
        logger.info("=" * 70)

        start_time = time.perf_counter()

        try:
            Config.validate()
            logger.info("✓ Configuration validated (%s)", Config.ENVIRONMENT)

            cache_start = time.perf_counter()
            settings = self._settings or CacheSettings.from_config()
            self._cache = CacheAccessor(settings, client_factory=self._client_factory)
            await self._cache.initialize()
            cache_time = (time.perf_counter() - cache_start) * 1000
            logger.info(
                "✓ CacheAccessor initialized (%.2fms, state=%s)",
                cache_time,
                self._cache.state.value,
            )

        except Exception as exc:
            logger.critical(
                "Application context initialization failed",
                extra={
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
            await self._close_cache()
            raise RuntimeError("Failed to initialize application context") from exc

        self._initialized = True
        total_time = (time.perf_counter() - start_time) * 1000
        logger.info("✓ Application context initialized in %.2fms", total_time)

    # ========================================================================
    # GRACEFUL SHUTDOWN
    # ========================================================================

    async def shutdown(self, stop_logging: bool = False) -> None:
        """Shut down infrastructure in reverse dependency order."""
        if not self._initialized:
            logger.warning("ApplicationContext not initialized, nothing to shut down")
            return

        logger.info("APPLICATION CONTEXT SHUTDOWN")
        await self._close_cache()
        self._initialized = False
        logger.info("✓ Application context shutdown complete")

        if stop_logging:
            shutdown_logging()

    async def _close_cache(self) -> None:
        if self._cache is None:
            return
        try:
            await self._cache.close()
            logger.info("✓ CacheAccessor closed")
        except Exception as exc:
            logger.error(
                "Error closing cache accessor",
                extra={
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )

    # ========================================================================
    # PROPERTIES
    # ========================================================================

    @property
    def cache(self) -> CacheAccessor:
        """Get the cache accessor (only after initialization)."""
        if not self._initialized or self._cache is None:
            raise RuntimeError(
                "CacheAccessor not available: ApplicationContext not initialized"
            )
        return self._cache

    @property
    def is_initialized(self) -> bool:
        return self._initialized
