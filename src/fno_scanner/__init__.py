"""NSE F&O open-price scanner."""

__version__ = "0.1.0"
