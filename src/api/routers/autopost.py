"""Autopost control: status plus start, stop and manual scan actions."""

from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from src.api.dependencies import get_scheduler
from src.parsers.autopost import AutopostScheduler

router = APIRouter(prefix="/api/v1/autopost", tags=["autopost"])


class AutopostAction(BaseModel):
    action: Literal["start", "stop", "scan"]


def _status(scheduler: AutopostScheduler) -> dict[str, Any]:
    last = scheduler.last_result
    return {
        "running": scheduler.is_running(),
        "interval_sec": scheduler.interval_sec,
        "min_score": scheduler.min_score,
        "last_scan_at": scheduler.last_scan_at.isoformat() if scheduler.last_scan_at else None,
        "last_result": {"sent": last.sent, "candidates": last.candidates} if last else None,
    }


@router.get("")
async def autopost_status(scheduler: AutopostScheduler = Depends(get_scheduler)) -> dict[str, Any]:
    return _status(scheduler)


@router.post("")
async def autopost_action(
    body: AutopostAction,
    scheduler: AutopostScheduler = Depends(get_scheduler),
) -> dict[str, Any]:
    """Start or stop the loops, or run one scan cycle now."""
    if body.action == "start":
        started = scheduler.start()
        return {
            "success": True,
            "message": "Autopost started" if started else "Autopost already running",
            "running": scheduler.is_running(),
        }
    if body.action == "stop":
        await scheduler.stop()
        return {"success": True, "message": "Autopost stopped", "running": False}

    result = await scheduler.scan_and_notify()
    return {"success": True, "sent": result.sent, "candidates": result.candidates}
