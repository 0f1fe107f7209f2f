"""polyterm - Polymarket market data aggregation."""

__version__ = "0.1.0"
