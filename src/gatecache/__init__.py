"""Distributed rate limiting and caching for the rental platform API."""

__version__ = "0.1.0"
