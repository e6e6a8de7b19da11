"""Autopost scheduler: scan new graduations and post calls to guild channels.

One scan cycle:
1. load guilds, scan candidates (base filter + reference score)
2. keep candidates that pass the base filter with score >= min_score
3. drop candidates without a Twitter/X link
4. per autopost-enabled guild with a channel: skip during quiet hours
   (UTC, wrapping midnight) or once the UTC-day cap is reached, then post
   every candidate not already called in that guild in the last 24h

A message that fails to deliver leaves no trace and is not retried: the
watcher marks a mint seen when it first evaluates it, so later cycles skip
it until the seen set expires or is cleared. No guild or candidate failure
aborts the cycle for the others.

Several scheduler processes sharing one storage can post the same call
twice: the dedup window is read before sending and written after.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from loguru import logger as default_logger

from src.bot.notifiers import Notifier
from src.db.redis import CallPublisher
from src.db.storage import Storage
from src.parsers.alerts import format_graduation_call, has_twitter_link
from src.parsers.call_card import generate_call_card
from src.parsers.call_types import CallLog, CallPerformance, GuildConfig, Policy
from src.parsers.candidates import (
    DEFAULT_GRADUATION_FILTER,
    GraduationCandidate,
    GraduationFilter,
    GraduationWatcher,
)
from src.parsers.metrics import PipelineMetrics
from src.parsers.performance import PerformanceTracker
from src.parsers.periodic import PeriodicTask
from src.parsers.price_alerts import PriceAlertMonitor
from src.parsers.scoring import score_token

DEFAULT_MIN_SCORE = 6.5
DEDUPE_WINDOW_HOURS = 24
DEDUPE_LOG_LIMIT = 200


@dataclass
class ScanResult:
    sent: int = 0
    candidates: int = 0


def _utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def is_quiet_hours(policy: Policy, now: datetime) -> bool:
    """True when ``now`` (UTC) falls in [start, end); windows may wrap midnight."""
    start, end = policy.quiet_hours_start, policy.quiet_hours_end
    if start is None or end is None or start == end:
        return False
    hour = now.hour
    if start < end:
        return start <= hour < end
    return hour >= start or hour < end


def utc_day_start(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


class AutopostScheduler:
    """Owns the scan loop plus the performance and price-alert loops."""

    def __init__(
        self,
        storage: Storage,
        notifier: Notifier,
        watcher: GraduationWatcher,
        *,
        performance: PerformanceTracker | None = None,
        price_alerts: PriceAlertMonitor | None = None,
        publisher: CallPublisher | None = None,
        metrics: PipelineMetrics | None = None,
        min_score: float = DEFAULT_MIN_SCORE,
        interval_sec: float = 60,
        graduation_filter: GraduationFilter = DEFAULT_GRADUATION_FILTER,
        dedupe_window_hours: int = DEDUPE_WINDOW_HOURS,
        dedupe_log_limit: int = DEDUPE_LOG_LIMIT,
        logger: Any = default_logger,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._storage = storage
        self._notifier = notifier
        self._watcher = watcher
        self._performance = performance
        self._price_alerts = price_alerts
        self._publisher = publisher
        self._metrics = metrics
        self.min_score = min_score
        self.interval_sec = interval_sec
        self._filter = graduation_filter
        self._dedupe_window = timedelta(hours=dedupe_window_hours)
        self._dedupe_log_limit = dedupe_log_limit
        self._log = logger
        self._clock = clock
        self._scan_lock = asyncio.Lock()
        self._task = PeriodicTask("AUTOPOST", self.scan_and_notify, interval_sec, logger=logger)
        self.last_result: ScanResult | None = None
        self.last_scan_at: datetime | None = None

    # -- lifecycle ----------------------------------------------------------

    def start(self) -> bool:
        """Start all loops. Returns False (and changes nothing) if already running."""
        if self.is_running():
            self._log.warning("[AUTOPOST] Already running")
            return False
        self._log.info(
            f"[AUTOPOST] Starting: interval={self.interval_sec}s min_score={self.min_score}"
        )
        self._task.start()
        if self._performance:
            self._performance.start()
        if self._price_alerts:
            self._price_alerts.start()
        return True

    async def stop(self) -> None:
        await self._task.stop()
        if self._performance:
            await self._performance.stop()
        if self._price_alerts:
            await self._price_alerts.stop()
        self._log.info("[AUTOPOST] Stopped")

    def is_running(self) -> bool:
        return self._task.is_running()

    def clear_seen_set(self) -> None:
        self._watcher.clear_seen_mints()

    # -- scan cycle ---------------------------------------------------------

    async def scan_and_notify(self) -> ScanResult:
        """Run one cycle. Never raises; failures are logged and counted."""
        async with self._scan_lock:
            started = time.monotonic()
            error = False
            try:
                result = await self._scan_and_notify()
            except Exception as e:
                error = True
                self._log.error(f"[AUTOPOST] Scan cycle failed: {type(e).__name__}: {e}")
                result = ScanResult()
            if self._metrics:
                self._metrics.record_cycle(
                    "autopost", (time.monotonic() - started) * 1000, error=error
                )
            self.last_result = result
            self.last_scan_at = self._clock()
            return result

    async def _scan_and_notify(self) -> ScanResult:
        guilds = await self._storage.get_all_guilds()
        candidates = await self._watcher.scan_for_graduations(self._filter)

        high_potential = [
            c for c in candidates if c.passes_filter and c.score >= self.min_score
        ]
        linked = [c for c in high_potential if has_twitter_link(c.pair)]
        self._log.info(
            f"[AUTOPOST] {len(candidates)} candidates, {len(high_potential)} >= {self.min_score}, "
            f"{len(linked)} with X link"
        )
        for i, c in enumerate(linked, 1):
            self._log.debug(
                f"[AUTOPOST]   {i}. ${c.graduation.symbol} score={c.score:.1f} "
                f"liq=${c.metrics.liquidity:,.0f}"
            )

        sent = 0
        for guild in guilds:
            if not guild.policy.autopost_enabled:
                continue
            try:
                sent += await self._notify_guild(guild, linked)
            except Exception as e:
                self._log.error(
                    f"[AUTOPOST] Guild {guild.guild_id} failed: {type(e).__name__}: {e}"
                )

        self._log.info(f"[AUTOPOST] Cycle done: sent={sent} candidates={len(high_potential)}")
        return ScanResult(sent=sent, candidates=len(high_potential))

    async def _notify_guild(self, guild: GuildConfig, candidates: list[GraduationCandidate]) -> int:
        if not guild.channel_id:
            self._log.warning(f"[AUTOPOST] Guild {guild.guild_id} has no channel, skipping")
            return 0

        now = self._clock()
        if is_quiet_hours(guild.policy, now):
            self._log.debug(f"[AUTOPOST] Guild {guild.guild_id} in quiet hours")
            return 0

        cap = guild.policy.max_calls_per_day
        calls_today = await self._storage.count_call_logs_since(guild.guild_id, utc_day_start(now))
        if calls_today >= cap:
            self._log.debug(f"[AUTOPOST] Guild {guild.guild_id} daily cap {calls_today}/{cap}")
            return 0
        if not candidates:
            return 0

        recent = await self._storage.get_call_logs_since(
            guild.guild_id, now - self._dedupe_window, self._dedupe_log_limit
        )
        recent_mints = {log.call_card.token.mint for log in recent}

        sent = 0
        for candidate in candidates:
            if calls_today + sent >= cap:
                self._log.debug(f"[AUTOPOST] Guild {guild.guild_id} reached daily cap mid-cycle")
                break
            mint = candidate.graduation.mint
            if mint in recent_mints:
                continue

            message = format_graduation_call(
                candidate.graduation.symbol,
                mint,
                candidate.pair,
                candidate.score,
                candidate.metrics,
                guild.display,
            )
            ok = await self._notifier.send(guild.channel_id, message)
            if self._metrics:
                self._metrics.record_send("call", ok)
            if not ok:
                continue

            sent += 1
            recent_mints.add(mint)
            self._log.info(f"[AUTOPOST] Posted ${candidate.graduation.symbol} -> guild {guild.guild_id}")
            try:
                await self._record_call(guild, candidate)
            except Exception as e:
                self._log.error(
                    f"[AUTOPOST] Posted ${candidate.graduation.symbol} but failed to record it: "
                    f"{type(e).__name__}: {e}"
                )
        return sent

    async def _record_call(self, guild: GuildConfig, candidate: GraduationCandidate) -> None:
        now = self._clock()
        result = score_token(candidate.metrics, guild.policy)
        card = generate_call_card(candidate.metrics, guild.policy, result, now=now)
        stamp_ms = int(now.replace(tzinfo=UTC).timestamp() * 1000)
        channel_id = guild.channel_id or ""

        await self._storage.add_call_log(guild.guild_id, CallLog(
            id=f"auto-{stamp_ms}-{candidate.graduation.mint}",
            guild_id=guild.guild_id,
            channel_id=channel_id,
            call_card=card,
            triggered_by="auto",
            created_at=now,
        ))

        price = candidate.metrics.price
        if price > 0:
            await self._storage.upsert_call_performance(CallPerformance(
                call_id=card.call_id,
                guild_id=guild.guild_id,
                channel_id=channel_id,
                token_address=candidate.graduation.mint,
                token_symbol=candidate.graduation.symbol,
                call_price=price,
                call_at=now,
                ath_price=price,
                ath_at=now,
                last_price=price,
                last_checked_at=now,
            ))

        if self._publisher:
            await self._publisher.publish_call(guild.guild_id, channel_id, card)
