"""Prometheus metrics configuration for the Gradewise API."""
from __future__ import annotations

from fastapi import FastAPI
from prometheus_client import Counter, Gauge, Histogram
from prometheus_fastapi_instrumentator import Instrumentator, metrics

from gradewise_core.errors import RemoteServiceError

WEBHOOK_EVENTS = Counter(
    "gradewise_webhook_events_total",
    "Total webhook events received",
    ["provider", "event_type", "outcome"],
)

SUBMISSIONS_PROCESSED = Counter(
    "gradewise_submissions_processed_total",
    "Pipeline runs by final status",
    ["status"],
)

PROCESSING_DURATION = Histogram(
    "gradewise_processing_duration_seconds",
    "Duration of one pipeline run",
    ["status"],
    buckets=(1, 5, 10, 30, 60, 120, 300, 600),
)

ACTIVE_PROCESSING = Gauge(
    "gradewise_active_processing",
    "Number of submissions currently being processed",
)

FEEDBACK_ITEMS = Counter(
    "gradewise_feedback_items_total",
    "AI feedback items saved",
    ["severity"],
)

REMOTE_RETRIES = Counter(
    "gradewise_remote_retries_total",
    "Retries of remote API calls",
    ["service", "kind"],
)


def setup_metrics(app: FastAPI) -> Instrumentator:
    """Configure Prometheus metrics for the application."""
    instrumentator = Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=True,
        excluded_handlers=["/health", "/health/live", "/health/ready", "/metrics"],
    )

    instrumentator.add(
        metrics.default(
            metric_namespace="gradewise",
            metric_subsystem="http",
        )
    )

    instrumentator.instrument(app)
    instrumentator.expose(app, endpoint="/metrics", include_in_schema=False)

    return instrumentator


def record_webhook_event(provider: str, event_type: str, outcome: str) -> None:
    """Record a webhook delivery and what was done with it."""
    WEBHOOK_EVENTS.labels(provider=provider, event_type=event_type or "unknown", outcome=outcome).inc()


def record_processing_started() -> None:
    ACTIVE_PROCESSING.inc()


def record_processing_finished(status: str, duration_seconds: float) -> None:
    ACTIVE_PROCESSING.dec()
    SUBMISSIONS_PROCESSED.labels(status=status).inc()
    PROCESSING_DURATION.labels(status=status).observe(duration_seconds)


def record_feedback(severity: str, count: int = 1) -> None:
    FEEDBACK_ITEMS.labels(severity=severity).inc(count)


def record_retry(error: BaseException, attempt: int, delay: float) -> None:
    """Retry callback: counts retries per remote service and error kind."""
    if isinstance(error, RemoteServiceError):
        REMOTE_RETRIES.labels(service=error.service, kind=error.kind.value).inc()
    else:
        REMOTE_RETRIES.labels(service="unknown", kind=type(error).__name__).inc()
