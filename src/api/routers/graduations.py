"""Graduation preview: what the candidate source currently sees."""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Depends, Query, Request

from config.settings import settings
from src.api.dependencies import get_preview_watcher, get_registry
from src.parsers.candidates import GraduationCandidate, GraduationFilter, GraduationWatcher

router = APIRouter(prefix="/api/v1/graduations", tags=["graduations"])


def _candidate_to_dict(c: GraduationCandidate) -> dict[str, Any]:
    pair = c.pair
    buys, sells = pair.txns_at("m5")
    return {
        "mint": c.graduation.mint,
        "symbol": c.graduation.symbol,
        "name": c.graduation.name,
        "score": round(c.score, 1),
        "passes_filter": c.passes_filter,
        "filter_failures": c.filter_failures,
        "graduated_at": c.graduation.graduated_at.isoformat() if c.graduation.graduated_at else None,
        "liquidity": pair.liquidity_usd,
        "volume_5m": pair.volume_at("m5"),
        "volume_1h": pair.volume_at("h1"),
        "price_usd": pair.price_usd,
        "price_change_5m": pair.price_change_at("m5"),
        "price_change_1h": pair.price_change_at("h1"),
        "market_cap": float(pair.marketCap or 0),
        "buys_5m": buys,
        "sells_5m": sells,
        "dexscreener_url": pair.url,
        "image_url": pair.info.imageUrl if pair.info else None,
    }


@router.get("")
async def list_graduations(
    watcher: GraduationWatcher = Depends(get_preview_watcher),
    min_liquidity: float = Query(settings.grad_min_liquidity_usd, ge=0),
    min_volume_5m: float = Query(settings.grad_min_volume_5m_usd, ge=0),
    min_holders: int = Query(settings.grad_min_holders, ge=0),
    max_age_minutes: float = Query(settings.grad_max_age_minutes, gt=0),
    exclude_rugs: bool = Query(settings.grad_exclude_rugged_deployers),
    show_all: bool = Query(False, alias="all"),
) -> dict[str, Any]:
    """Scan unseen recent graduations with an ad-hoc base filter."""
    graduation_filter = GraduationFilter(
        min_liquidity=min_liquidity,
        min_volume_5m=min_volume_5m,
        min_holders=min_holders,
        max_age_minutes=max_age_minutes,
        exclude_rugged_deployers=exclude_rugs,
    )
    candidates = await watcher.scan_for_graduations(graduation_filter)
    results = candidates if show_all else [c for c in candidates if c.passes_filter]
    return {
        "success": True,
        "count": len(results),
        "filter": asdict(graduation_filter),
        "candidates": [_candidate_to_dict(c) for c in results],
    }


@router.post("")
async def clear_seen(request: Request) -> dict[str, Any]:
    """Forget seen mints so the next scan re-evaluates everything."""
    registry = get_registry(request)
    if registry.preview_watcher:
        registry.preview_watcher.clear_seen_mints()
    if registry.scheduler:
        registry.scheduler.clear_seen_set()
    return {"success": True, "message": "Seen set cleared"}
