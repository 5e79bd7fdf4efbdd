"""vidqueue - bulk video generation queue with concurrency and rate limits."""

__version__ = "0.1.0"

__all__ = ["__version__"]
