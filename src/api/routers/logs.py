"""Call log listing per guild."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from src.api.dependencies import get_storage
from src.db.storage import Storage

router = APIRouter(prefix="/api/v1/logs", tags=["logs"])


@router.get("")
async def list_logs(
    guild_id: str = Query(..., min_length=1, max_length=32),
    limit: int = Query(20, ge=1, le=100),
    storage: Storage = Depends(get_storage),
) -> dict[str, Any]:
    logs = await storage.get_call_logs(guild_id, limit)
    return {
        "success": True,
        "count": len(logs),
        "logs": [log.model_dump(mode="json") for log in logs],
    }
