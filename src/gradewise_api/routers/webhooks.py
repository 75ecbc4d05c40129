"""Webhook receiver plus the operator retry and failed-list endpoints."""

import json
from typing import Any

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Query, status
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from gradewise_api.db.database import get_db, get_db_context
from gradewise_api.db.models import Submission, SubmissionStatus
from gradewise_api.db.repositories import DEFAULT_FAILED_MAX_AGE_HOURS, SubmissionRepository, clamp_max_age
from gradewise_api.logging_config import log_webhook_event
from gradewise_api.middleware.metrics import record_webhook_event
from gradewise_api.services.container import Services, get_services
from gradewise_api.services.signature import verify_signature

router = APIRouter()
logger = structlog.get_logger()

SUPPORTED_PROVIDERS = {"github"}


def branch_from_ref(ref: str | None) -> str | None:
    """``refs/heads/feature/x`` -> ``feature/x``."""
    if not ref:
        return None
    return ref.removeprefix("refs/heads/")


async def handle_delivery(
    services: Services,
    provider: str,
    event: str | None,
    delivery_id: str | None,
    signature: str | None,
    payload: bytes,
) -> str:
    """Process one webhook delivery after the sender has been answered.

    Returns a short outcome label. Never raises.
    """
    repo = "unknown"
    outcome = "error"
    try:
        try:
            data = json.loads(payload)
        except ValueError:
            data = None
        if not isinstance(data, dict):
            log_webhook_event(event, repo, "skipped", "Payload is not a JSON object")
            outcome = "invalid_payload"
            return outcome

        repo = (data.get("repository") or {}).get("full_name") or "unknown"
        log_webhook_event(event, repo, "received", f"Delivery: {delivery_id}")

        if provider not in SUPPORTED_PROVIDERS:
            log_webhook_event(event, repo, "skipped", f"Unsupported provider: {provider}")
            outcome = "unsupported_provider"
            return outcome

        if event != "push":
            log_webhook_event(event, repo, "skipped", "Not a push event")
            outcome = "ignored"
            return outcome

        if not data.get("commits"):
            log_webhook_event(event, repo, "skipped", "No commits in push")
            outcome = "no_commits"
            return outcome

        commit_sha = data.get("after")
        if not commit_sha:
            log_webhook_event(event, repo, "skipped", "Push has no head commit")
            outcome = "no_commits"
            return outcome
        branch = branch_from_ref(data.get("ref"))

        async with get_db_context(services.session_factory) as session:
            submission = await SubmissionRepository(session).find_by_repository(repo, branch)

        if submission is None:
            log_webhook_event(event, repo, "skipped", "No matching submission found")
            outcome = "no_submission"
            return outcome

        if not verify_signature(payload, signature, submission.webhook_secret):
            log_webhook_event(
                event, repo, "warning", "Invalid webhook signature", delivery_id=delivery_id
            )
            outcome = "invalid_signature"
            return outcome

        log_webhook_event(
            event,
            repo,
            "processing",
            f"Branch: {branch}, Commit: {commit_sha[:7]}",
            submission_id=submission.id,
        )
        result = await services.processor.process(submission.id, commit_sha, branch)
        outcome = result.status
        log_webhook_event(
            event,
            repo,
            "error" if result.status == SubmissionStatus.FAILED.value else "success",
            result.message or f"Processing finished: {result.status}",
            submission_id=submission.id,
            score=result.score,
            error_code=result.error_code,
        )
        return outcome
    except Exception as e:
        log_webhook_event(event, repo, "error", f"Webhook handling failed: {e}")
        return outcome
    finally:
        record_webhook_event(provider, event or "unknown", outcome)


def _submission_summary(submission: Submission) -> dict[str, Any]:
    return {
        "id": submission.id,
        "assignment_id": submission.assignment_id,
        "user_id": submission.user_id,
        "course_id": submission.assignment.course_id if submission.assignment else None,
        "github_url": submission.github_url,
        "branch": submission.branch,
        "commit_sha": submission.commit_sha,
        "status": submission.status,
        "ai_score": submission.ai_score,
        "error_code": submission.error_code,
        "error_message": submission.error_message,
        "updated_at": submission.updated_at.isoformat() if submission.updated_at else None,
    }


@router.get("/failed")
async def list_failed_submissions(
    max_age: str | None = Query(default=None, alias="maxAge"),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """List failed submissions within a recency window (hours, 1 to 168)."""
    hours = clamp_max_age(max_age) if max_age is not None else DEFAULT_FAILED_MAX_AGE_HOURS
    submissions = await SubmissionRepository(db).list_failed(hours)
    return {
        "submissions": [_submission_summary(s) for s in submissions],
        "count": len(submissions),
        "max_age_hours": hours,
    }


@router.get("/repositories/{owner}/{repo}/submissions")
async def list_repository_submissions(
    owner: str,
    repo: str,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Every submission linked to a repository, across branches, newest first."""
    full_name = f"{owner}/{repo}"
    submissions = await SubmissionRepository(db).list_by_repository(full_name)
    return {
        "repository": full_name,
        "submissions": [_submission_summary(s) for s in submissions],
        "count": len(submissions),
    }


@router.post("/retry/{submission_id}", status_code=status.HTTP_202_ACCEPTED)
async def retry_submission(
    submission_id: int,
    background_tasks: BackgroundTasks,
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Re-run the pipeline for a submission at its stored commit and branch."""
    # Session closed before the background run starts
    async with get_db_context(services.session_factory) as session:
        submission = await SubmissionRepository(session).get_for_retry(submission_id)
    if submission is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Submission not found")

    if submission.status == SubmissionStatus.PROCESSING.value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Submission is already being processed",
        )
    if not submission.commit_sha:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Submission has no commit to process",
        )

    logger.info(
        "Manual retry requested",
        submission_id=submission.id,
        previous_status=submission.status,
        commit=submission.commit_sha[:7],
    )
    background_tasks.add_task(
        services.processor.process,
        submission.id,
        submission.commit_sha,
        submission.branch,
    )
    return {"status": "processing", "submission_id": submission.id}


@router.post("/{provider}")
async def handle_webhook(
    provider: str,
    request: Request,
    background_tasks: BackgroundTasks,
    x_github_event: str | None = Header(None, alias="X-GitHub-Event"),
    x_github_delivery: str | None = Header(None, alias="X-GitHub-Delivery"),
    x_hub_signature_256: str | None = Header(None, alias="X-Hub-Signature-256"),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Acknowledge a webhook at once and process it in the background."""
    payload = await request.body()
    background_tasks.add_task(
        handle_delivery,
        services,
        provider,
        x_github_event,
        x_github_delivery,
        x_hub_signature_256,
        payload,
    )
    return {"received": True, "delivery_id": x_github_delivery}
