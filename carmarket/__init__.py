"""CarMarket backend cache layer."""

__version__ = "1.0.0"
