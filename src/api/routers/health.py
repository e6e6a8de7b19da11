"""Health check and pipeline counters."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from loguru import logger
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from src.api.dependencies import get_registry

router = APIRouter(prefix="/api/v1", tags=["health"])


@router.get("/health")
async def health_check(request: Request) -> dict[str, Any]:
    """Storage and Redis reachability plus scheduler state."""
    registry = get_registry(request)

    storage_ok = False
    try:
        await registry.storage.get_stats()
        storage_ok = True
    except (SQLAlchemyError, OSError) as e:
        logger.debug(f"[HEALTH] Storage check failed: {e}")

    redis_ok: bool | None = None
    if registry.redis is not None:
        try:
            await registry.redis.ping()
            redis_ok = True
        except (RedisError, OSError):
            redis_ok = False

    scheduler = registry.scheduler
    return {
        "status": "ok" if storage_ok else "degraded",
        "storage_ok": storage_ok,
        "redis_ok": redis_ok,
        "autopost_running": scheduler.is_running() if scheduler else False,
    }


@router.get("/metrics")
async def pipeline_metrics(request: Request) -> dict[str, Any]:
    registry = get_registry(request)
    summary = registry.pipeline_metrics.get_summary() if registry.pipeline_metrics else {}
    notifier = registry.notifier
    if notifier is not None:
        summary["notifier"] = {
            "sent": getattr(notifier, "sent", 0),
            "failures": dict(getattr(notifier, "failures", {})),
        }
    return summary
