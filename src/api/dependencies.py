"""FastAPI dependency injection: registry and the services it holds."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from src.api.registry import ServiceRegistry
from src.db.storage import Storage
from src.parsers.autopost import AutopostScheduler
from src.parsers.call_card import MetricsSource
from src.parsers.candidates import GraduationWatcher


def get_registry(request: Request) -> ServiceRegistry:
    return request.app.state.registry


def get_storage(request: Request) -> Storage:
    return get_registry(request).storage


def get_scheduler(request: Request) -> AutopostScheduler:
    scheduler = get_registry(request).scheduler
    if scheduler is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Autopost scheduler not configured",
        )
    return scheduler


def get_preview_watcher(request: Request) -> GraduationWatcher:
    watcher = get_registry(request).preview_watcher
    if watcher is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Market data provider not configured",
        )
    return watcher


def get_metrics_source(request: Request) -> MetricsSource:
    source = get_registry(request).metrics_source
    if source is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Market data provider not configured",
        )
    return source
