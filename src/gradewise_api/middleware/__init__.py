"""Middleware package."""
from gradewise_api.middleware.metrics import setup_metrics
from gradewise_api.middleware.sentry import setup_sentry

__all__ = ["setup_metrics", "setup_sentry"]
