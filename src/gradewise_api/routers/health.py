"""Health check endpoints."""

import time
from typing import Any, Awaitable, Callable

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from gradewise_api.db.database import get_db
from gradewise_api.services.container import Services, get_services

router = APIRouter()


async def _probe(check: Callable[[], Awaitable[Any]]) -> dict[str, Any]:
    started = time.perf_counter()
    try:
        await check()
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}
    return {"status": "healthy", "latency_ms": round((time.perf_counter() - started) * 1000, 2)}


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Process is up and serving requests."""
    return {"status": "healthy"}


@router.get("/health/ready")
async def readiness_check(
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Database and statistics cache are both reachable."""
    database = await _probe(lambda: db.execute(text("SELECT 1")))
    cache = await _probe(services.cache.ping)
    cache["backend"] = type(services.cache.backend).__name__
    cache["hit_rate"] = round(services.cache.stats.hit_rate, 3)

    ready = database["status"] == "healthy" and cache["status"] == "healthy"
    return {
        "status": "ready" if ready else "not_ready",
        "checks": {"database": database, "cache": cache},
    }


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    return {"status": "alive"}
