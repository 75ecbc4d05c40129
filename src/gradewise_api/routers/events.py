"""Server-Sent Events stream of live course updates."""

import asyncio
from typing import AsyncGenerator

import structlog
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from gradewise_api.services.container import Services, get_services
from gradewise_core.events import LiveUpdateBroker, Subscription

router = APIRouter()
logger = structlog.get_logger()

KEEPALIVE_SECONDS = 15.0


async def event_stream(
    request: Request,
    broker: LiveUpdateBroker,
    subscription: Subscription,
    keepalive_seconds: float = KEEPALIVE_SECONDS,
    max_events: int | None = None,
) -> AsyncGenerator[str, None]:
    """Yield SSE frames for one subscriber until it disconnects."""
    sent = 0
    try:
        yield f"event: connected\ndata: {{\"course_id\": {subscription.course_id}}}\n\n"
        while max_events is None or sent < max_events:
            if await request.is_disconnected():
                break
            try:
                event = await asyncio.wait_for(subscription.queue.get(), timeout=keepalive_seconds)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue
            yield event.to_sse()
            sent += 1
    finally:
        broker.unsubscribe(subscription)
        logger.debug("Live update stream closed", course_id=subscription.course_id, sent=sent)


@router.get("/{course_id}/events")
async def stream_course_events(
    course_id: int,
    request: Request,
    limit: int | None = Query(default=None, ge=1, description="Close after this many events"),
    services: Services = Depends(get_services),
) -> StreamingResponse:
    """Stream feedback and submission status events for a course."""
    subscription = services.broker.subscribe(course_id)
    return StreamingResponse(
        event_stream(request, services.broker, subscription, max_events=limit),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )
