"""
Configuration subsystem for the CarMarket cache layer.

Purpose
-------
Static configuration loaded from environment variables (.env supported),
with validation, bounds checking and load metrics.

- **config.py**: ``Config`` class and ``Environment`` enum
- **errors.py**: configuration exception hierarchy

Usage
-----
```python
from carmarket.core.config import Config

if Config.REDIS_URL is None:
    logger.info("Remote cache disabled")

summary = Config.get_config_summary()
```
"""

from carmarket.core.config.config import Config, Environment
from carmarket.core.config.errors import ConfigError, ConfigValidationError

__all__ = [
    "Config",
    "Environment",
    "ConfigError",
    "ConfigValidationError",
]
