"""In-process pipeline counters for scan cycles and deliveries.

Counters accumulate during runtime and are read by the health endpoint.
"""

import time
from dataclasses import dataclass, field
from threading import Lock


@dataclass
class TaskMetrics:
    """Counters for one periodic component."""

    cycles: int = 0
    errors: int = 0
    total_latency_ms: float = 0.0
    max_latency_ms: float = 0.0
    last_run_at: float | None = None

    @property
    def avg_latency_ms(self) -> float:
        if self.cycles == 0:
            return 0.0
        return self.total_latency_ms / self.cycles


@dataclass
class DeliveryMetrics:
    sent: int = 0
    failed: int = 0
    failures_by_kind: dict[str, int] = field(default_factory=dict)


class PipelineMetrics:
    """Metrics accumulator shared by the scheduler, tracker and monitor."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._tasks: dict[str, TaskMetrics] = {}
        self._deliveries: dict[str, DeliveryMetrics] = {}
        self._fetch_errors: int = 0
        self._candidates_seen: int = 0
        self._start_time: float = time.monotonic()

    def _task(self, name: str) -> TaskMetrics:
        if name not in self._tasks:
            self._tasks[name] = TaskMetrics()
        return self._tasks[name]

    def _delivery(self, kind: str) -> DeliveryMetrics:
        if kind not in self._deliveries:
            self._deliveries[kind] = DeliveryMetrics()
        return self._deliveries[kind]

    def record_cycle(self, task: str, latency_ms: float, *, error: bool = False) -> None:
        with self._lock:
            tm = self._task(task)
            tm.cycles += 1
            tm.total_latency_ms += latency_ms
            tm.max_latency_ms = max(tm.max_latency_ms, latency_ms)
            tm.last_run_at = time.time()
            if error:
                tm.errors += 1

    def record_send(self, message_kind: str, ok: bool, failure_kind: str | None = None) -> None:
        """Record one delivery attempt of a call, bonus or price alert."""
        with self._lock:
            dm = self._delivery(message_kind)
            if ok:
                dm.sent += 1
                return
            dm.failed += 1
            key = failure_kind or "error"
            dm.failures_by_kind[key] = dm.failures_by_kind.get(key, 0) + 1

    def record_fetch_error(self) -> None:
        with self._lock:
            self._fetch_errors += 1

    def record_candidates(self, count: int) -> None:
        with self._lock:
            self._candidates_seen += count

    def sent(self, message_kind: str) -> int:
        with self._lock:
            dm = self._deliveries.get(message_kind)
            return dm.sent if dm else 0

    def get_summary(self) -> dict:
        """Return a snapshot of all metrics."""
        with self._lock:
            return {
                "uptime_sec": round(time.monotonic() - self._start_time),
                "fetch_errors": self._fetch_errors,
                "candidates_seen": self._candidates_seen,
                "tasks": {
                    name: {
                        "cycles": tm.cycles,
                        "errors": tm.errors,
                        "avg_latency_ms": round(tm.avg_latency_ms),
                        "max_latency_ms": round(tm.max_latency_ms),
                        "last_run_at": tm.last_run_at,
                    }
                    for name, tm in self._tasks.items()
                },
                "deliveries": {
                    kind: {
                        "sent": dm.sent,
                        "failed": dm.failed,
                        "failures": dict(dm.failures_by_kind),
                    }
                    for kind, dm in self._deliveries.items()
                },
            }

    def format_stats_line(self) -> str:
        """One-line summary for periodic log output."""
        with self._lock:
            sent = sum(dm.sent for dm in self._deliveries.values())
            failed = sum(dm.failed for dm in self._deliveries.values())
            cycles = sum(tm.cycles for tm in self._tasks.values())
            return (
                f"cycles={cycles} sent={sent} failed={failed} "
                f"fetch_errors={self._fetch_errors} candidates={self._candidates_seen}"
            )
