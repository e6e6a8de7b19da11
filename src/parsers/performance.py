"""Post-call performance tracking and one-shot bonus alerts.

Every few minutes each recent call (last 30 days, up to 200 per guild) is
re-priced. The all-time high only moves up. When a call is up at least 30%
and the token is still being bought aggressively right now, a single
"bonus buying power" alert goes to the channel the call was posted in.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

from loguru import logger as default_logger

from src.bot.notifiers import Notifier
from src.db.storage import Storage
from src.parsers.alerts import format_bonus_alert
from src.parsers.call_types import CallPerformance, GuildConfig
from src.parsers.dexscreener.models import DexScreenerPair
from src.parsers.errors import DataFetchError
from src.parsers.metrics import PipelineMetrics
from src.parsers.periodic import PeriodicTask


class PairLookup(Protocol):
    async def get_pair_by_address(self, address: str) -> DexScreenerPair | None: ...


@dataclass(frozen=True)
class BonusThresholds:
    min_gain_pct: float = 30.0
    min_price_change_m5: float = 10.0
    min_buy_sell_ratio: float = 2.0
    min_volume_m5: float = 5_000.0


def roi_pct(call_price: float, current_price: float) -> float:
    if call_price <= 0:
        return 0.0
    return (current_price - call_price) / call_price * 100


def should_trigger_bonus(
    performance: CallPerformance,
    pair: DexScreenerPair,
    roi: float,
    thresholds: BonusThresholds = BonusThresholds(),
) -> bool:
    if performance.call_price <= 0:
        return False
    return (
        roi >= thresholds.min_gain_pct
        and pair.price_change_at("m5") >= thresholds.min_price_change_m5
        and pair.volume_at("m5") >= thresholds.min_volume_m5
        and pair.buy_sell_ratio("m5") >= thresholds.min_buy_sell_ratio
    )


def _utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class PerformanceTracker:
    def __init__(
        self,
        storage: Storage,
        provider: PairLookup,
        notifier: Notifier,
        *,
        interval_sec: float = 300,
        lookback_days: int = 30,
        log_limit: int = 200,
        thresholds: BonusThresholds = BonusThresholds(),
        metrics: PipelineMetrics | None = None,
        clock: Callable[[], datetime] = _utcnow,
        logger: Any = default_logger,
    ) -> None:
        self._storage = storage
        self._provider = provider
        self._notifier = notifier
        self._lookback = timedelta(days=lookback_days)
        self._log_limit = log_limit
        self._thresholds = thresholds
        self._metrics = metrics
        self._clock = clock
        self._log = logger
        self._task = PeriodicTask(
            "PERF", self.update_call_performances, interval_sec, logger=logger
        )

    def start(self) -> bool:
        return self._task.start()

    async def stop(self) -> None:
        await self._task.stop()

    def is_running(self) -> bool:
        return self._task.is_running()

    async def _fetch_pair(
        self, address: str, cache: dict[str, DexScreenerPair | None]
    ) -> DexScreenerPair | None:
        if address not in cache:
            try:
                cache[address] = await self._provider.get_pair_by_address(address)
            except (DataFetchError, TimeoutError) as e:
                self._log.debug(f"[PERF] Price fetch failed for {address[:12]}: {e}")
                if self._metrics:
                    self._metrics.record_fetch_error()
                cache[address] = None
        return cache[address]

    async def update_call_performances(self) -> int:
        """Re-price recent calls for every guild. Returns rows updated."""
        started = self._clock()
        guilds = await self._storage.get_all_guilds()
        since = started - self._lookback
        pairs: dict[str, DexScreenerPair | None] = {}
        updated = 0
        errors = False

        for guild in guilds:
            try:
                updated += await self._update_guild(guild, since, pairs)
            except Exception as e:
                errors = True
                self._log.error(f"[PERF] Guild {guild.guild_id} failed: {type(e).__name__}: {e}")

        if self._metrics:
            elapsed_ms = (self._clock() - started).total_seconds() * 1000
            self._metrics.record_cycle("performance", elapsed_ms, error=errors)
        if updated:
            self._log.debug(f"[PERF] Updated {updated} call performance rows")
        return updated

    async def _update_guild(
        self,
        guild: GuildConfig,
        since: datetime,
        pairs: dict[str, DexScreenerPair | None],
    ) -> int:
        rows = await self._storage.get_call_performances_since(
            guild.guild_id, since, self._log_limit
        )
        updated = 0
        for performance in rows:
            if not performance.token_address or performance.call_price <= 0:
                continue
            pair = await self._fetch_pair(performance.token_address, pairs)
            if pair is None:
                continue
            current = pair.price_usd
            if current <= 0:
                continue

            now = self._clock()
            changes: dict = {"last_price": current, "last_checked_at": now}
            if current > performance.ath_price:
                changes["ath_price"] = current
                changes["ath_at"] = now
            row = performance.model_copy(update=changes)

            roi = roi_pct(performance.call_price, current)
            if not performance.bonus_alert_sent and should_trigger_bonus(
                performance, pair, roi, self._thresholds
            ):
                row = await self._send_bonus(guild, row, pair, roi, now)

            await self._storage.upsert_call_performance(row)
            updated += 1
        return updated

    async def _send_bonus(
        self,
        guild: GuildConfig,
        row: CallPerformance,
        pair: DexScreenerPair,
        roi: float,
        now: datetime,
    ) -> CallPerformance:
        channel_id = row.channel_id or guild.channel_id
        if not channel_id:
            return row
        ok = await self._notifier.send(channel_id, format_bonus_alert(row, pair, roi))
        if self._metrics:
            self._metrics.record_send("bonus", ok)
        if not ok:
            return row
        self._log.info(f"[PERF] Bonus alert ${row.token_symbol} +{roi:.1f}% -> guild {guild.guild_id}")
        return row.model_copy(update={"bonus_alert_sent": True, "bonus_alert_at": now})
