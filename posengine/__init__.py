"""Order lifecycle and sales aggregation engine for point-of-sale terminals."""

__version__ = "1.0.0"
