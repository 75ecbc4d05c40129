"""Sentry error tracking configuration for the Gradewise API."""
from __future__ import annotations

from typing import Any

import sentry_sdk
from fastapi import FastAPI
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.httpx import HttpxIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from gradewise_api.config import settings

SENSITIVE_HEADERS = ["authorization", "cookie", "x-api-key", "x-hub-signature-256"]
SENSITIVE_FIELDS = ["password", "token", "secret", "api_key", "private_key"]


def setup_sentry(app: FastAPI) -> bool:
    """Configure Sentry error tracking. Returns False when no DSN is set."""
    if not settings.SENTRY_DSN:
        return False

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        release=f"gradewise-api@{settings.VERSION}",
        traces_sample_rate=0.1 if settings.ENVIRONMENT == "production" else 1.0,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            HttpxIntegration(),
        ],
        before_send=filter_sensitive_data,
        send_default_pii=False,
        attach_stacktrace=True,
        max_breadcrumbs=50,
    )
    return True


def filter_sensitive_data(event: dict, hint: dict) -> dict | None:
    """Filter sensitive data from Sentry events."""
    request = event.get("request")
    if not isinstance(request, dict):
        return event

    if isinstance(request.get("headers"), dict):
        request["headers"] = {
            k: "[FILTERED]" if k.lower() in SENSITIVE_HEADERS else v
            for k, v in request["headers"].items()
        }

    data = request.get("data")
    if isinstance(data, dict):
        request["data"] = _filter_fields(data)

    return event


def _filter_fields(data: dict[str, Any]) -> dict[str, Any]:
    filtered: dict[str, Any] = {}
    for key, value in data.items():
        if any(field in key.lower() for field in SENSITIVE_FIELDS):
            filtered[key] = "[FILTERED]"
        elif isinstance(value, dict):
            filtered[key] = _filter_fields(value)
        else:
            filtered[key] = value
    return filtered


def capture_pipeline_error(
    error: Exception,
    submission_id: int,
    stage: str,
    extra: dict[str, Any] | None = None,
) -> str | None:
    """Capture a pipeline error with submission context.

    A no-op returning None when Sentry is not initialised.
    """
    with sentry_sdk.new_scope() as scope:
        scope.set_tag("pipeline_stage", stage)
        scope.set_extra("submission_id", submission_id)
        for key, value in (extra or {}).items():
            scope.set_extra(key, value)
        return sentry_sdk.capture_exception(error)
