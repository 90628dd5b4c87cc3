"""Process-level infrastructure wiring."""

from carmarket.core.infra.application_context import ApplicationContext

__all__ = ["ApplicationContext"]
