"""Runtime objects shared between the scheduler and the control API.

Built once in ``main`` and attached to ``app.state.registry``; endpoints
reach it through the dependencies in ``src.api.dependencies``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from src.bot.notifiers import Notifier
    from src.db.storage import Storage
    from src.parsers.autopost import AutopostScheduler
    from src.parsers.call_card import MetricsSource
    from src.parsers.candidates import GraduationWatcher
    from src.parsers.metrics import PipelineMetrics


@dataclass
class ServiceRegistry:
    storage: Storage
    scheduler: AutopostScheduler | None = None
    preview_watcher: GraduationWatcher | None = None
    metrics_source: MetricsSource | None = None
    notifier: Notifier | None = None
    pipeline_metrics: PipelineMetrics | None = None
    redis: Any | None = None  # Redis
