"""
CarMarket cache connection check
================================

Diagnostic entry point for deployments:

1. Report which cache-related environment variables are set
2. Initialize the application context (Redis if configured, else fallback)
3. Run a set/get/clear round trip through the CacheAccessor
4. Print the stats snapshot

Exit code 0 when the round trip works on whichever store is active. With
``--require-remote`` the check also fails when Redis is not connected.

Usage:
    python -m carmarket.main
    carmarket-cache-check --require-remote --json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
import time
from typing import List, Optional

from carmarket.core.config import Config
from carmarket.core.infra.application_context import ApplicationContext
from carmarket.core.logging.logger import get_logger, shutdown_logging

logger = get_logger(__name__)

CHECKED_VARIABLES = (
    "REDIS_URL",
    "REDIS_CONNECT_TIMEOUT",
    "REDIS_RECONNECT_MAX_ATTEMPTS",
    "CACHE_TTL_SECONDS",
    "ENVIRONMENT",
    "LOG_LEVEL",
)

PROBE_KEY = "carmarket:connection-check"


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="carmarket-cache-check",
        description="Check the CarMarket cache layer against the current environment.",
    )
    parser.add_argument(
        "--require-remote",
        action="store_true",
        help="fail unless Redis is connected",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="print the stats snapshot as JSON",
    )
    return parser.parse_args(argv)


def _report_environment() -> None:
    print("Environment variables:")
    for name in CHECKED_VARIABLES:
        mark = "✓" if os.getenv(name) else "✗"
        state = "set" if os.getenv(name) else "not set"
        print(f"  {mark} {name}: {state}")


async def run_check(require_remote: bool = False, as_json: bool = False) -> int:
    """Run the check and return the process exit code."""
    _report_environment()

    context = ApplicationContext()
    try:
        await context.initialize()
    except RuntimeError as exc:
        print(f"✗ Initialization failed: {exc}")
        return 1

    try:
        cache = context.cache
        payload = {"checked_at": time.time(), "environment": Config.ENVIRONMENT}

        start = time.perf_counter()
        await cache.set(PROBE_KEY, payload)
        echoed = await cache.get(PROBE_KEY)
        duration_ms = (time.perf_counter() - start) * 1000
        await cache.clear(PROBE_KEY)

        stats = await cache.stats()
        store = "redis" if stats.remote_connected else "in-memory fallback"

        if echoed == payload:
            print(f"✓ Round trip via {store} ({duration_ms:.2f}ms)")
        else:
            print(f"✗ Round trip via {store} returned {echoed!r}")

        if as_json:
            print(json.dumps(stats.to_dict(), indent=2, default=str))
        else:
            print(f"  state: {stats.state}")
            print(f"  remote_available: {stats.remote_available}")
            print(f"  fallback_size: {stats.fallback_size}")
            if stats.remote_info:
                print(f"  used_memory: {stats.remote_info.get('used_memory_human')}")

        if echoed != payload:
            return 1
        if require_remote and not stats.remote_connected:
            print("✗ Redis is not connected")
            return 2
        return 0

    finally:
        await context.shutdown()


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    try:
        return asyncio.run(run_check(args.require_remote, args.json))
    except KeyboardInterrupt:
        logger.info("Connection check interrupted")
        return 130
    finally:
        shutdown_logging()


if __name__ == "__main__":
    sys.exit(main())
