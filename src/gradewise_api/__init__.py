"""Gradewise API: webhook intake and submission analysis service."""

__version__ = "0.1.0"
