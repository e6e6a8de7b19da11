"""Pinned-asset price alerts (pump / major buy) broadcast to every guild.

Pump: 5m price change >= 25% on at least $5k 5m volume.
Major buy (only checked when not pumping): price not falling, buy/sell
ratio >= 1.2 and the average 5m buy is worth at least 8 SOL.
Each (guild, alert type) pair is rate limited by a 30 minute cooldown that
starts only after a successful delivery.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from loguru import logger as default_logger

from src.bot.notifiers import Notifier
from src.db.storage import Storage
from src.parsers.alerts import PriceAlertType, format_price_alert
from src.parsers.dexscreener.models import DexScreenerPair
from src.parsers.errors import DataFetchError
from src.parsers.metrics import PipelineMetrics
from src.parsers.periodic import PeriodicTask
from src.parsers.sol_price import SolPriceCache
from src.parsers.throttle import CooldownTracker


class PairLookup(Protocol):
    async def get_pair_by_address(self, address: str) -> DexScreenerPair | None: ...


@dataclass(frozen=True)
class PriceAlertThresholds:
    pump_min_price_change_m5: float = 25.0
    pump_min_volume_m5: float = 5_000.0
    major_buy_min_sol: float = 8.0
    major_buy_min_buys: int = 1
    major_buy_min_buy_sell_ratio: float = 1.2


def is_pump(pair: DexScreenerPair, thresholds: PriceAlertThresholds) -> bool:
    return (
        pair.price_change_at("m5") >= thresholds.pump_min_price_change_m5
        and pair.volume_at("m5") >= thresholds.pump_min_volume_m5
    )


def average_buy_sol(pair: DexScreenerPair, sol_price_usd: float) -> float | None:
    buys, _ = pair.txns_at("m5")
    if buys <= 0 or sol_price_usd <= 0:
        return None
    return pair.volume_at("m5") / buys / sol_price_usd


def is_major_buy(
    pair: DexScreenerPair, sol_price_usd: float, thresholds: PriceAlertThresholds
) -> bool:
    buys, _ = pair.txns_at("m5")
    avg_buy_usd = pair.volume_at("m5") / buys if buys > 0 else 0.0
    return (
        pair.price_change_at("m5") >= 0
        and buys >= thresholds.major_buy_min_buys
        and pair.buy_sell_ratio("m5") >= thresholds.major_buy_min_buy_sell_ratio
        and avg_buy_usd >= sol_price_usd * thresholds.major_buy_min_sol
    )


class PriceAlertMonitor:
    def __init__(
        self,
        storage: Storage,
        provider: PairLookup,
        notifier: Notifier,
        sol_price: SolPriceCache,
        *,
        mint: str,
        symbol: str,
        interval_sec: float = 60,
        cooldown_sec: float = 1800,
        thresholds: PriceAlertThresholds = PriceAlertThresholds(),
        metrics: PipelineMetrics | None = None,
        clock: Callable[[], float] = time.monotonic,
        logger: Any = default_logger,
    ) -> None:
        self._storage = storage
        self._provider = provider
        self._notifier = notifier
        self._sol_price = sol_price
        self.mint = mint
        self.symbol = symbol
        self._thresholds = thresholds
        self._metrics = metrics
        self._cooldowns = CooldownTracker(cooldown_sec, clock=clock)
        self._log = logger
        self._task = PeriodicTask("PRICE-ALERT", self.check_alerts, interval_sec, logger=logger)

    def start(self) -> bool:
        return self._task.start()

    async def stop(self) -> None:
        await self._task.stop()

    def is_running(self) -> bool:
        return self._task.is_running()

    async def _classify(self, pair: DexScreenerPair) -> tuple[PriceAlertType | None, float | None]:
        if is_pump(pair, self._thresholds):
            return "pump", None
        sol_price = await self._sol_price.get_price()
        if is_major_buy(pair, sol_price, self._thresholds):
            return "major_buy", average_buy_sol(pair, sol_price)
        return None, None

    async def check_alerts(self) -> int:
        """One monitoring pass. Returns the number of alerts delivered."""
        guilds = await self._storage.get_all_guilds()
        if not guilds:
            return 0

        try:
            pair = await self._provider.get_pair_by_address(self.mint)
        except (DataFetchError, TimeoutError) as e:
            self._log.debug(f"[PRICE-ALERT] Fetch failed: {e}")
            if self._metrics:
                self._metrics.record_fetch_error()
            return 0
        if pair is None or pair.price_usd <= 0:
            return 0

        alert_type, avg_buy_sol = await self._classify(pair)
        if alert_type is None:
            return 0

        sent = 0
        for guild in guilds:
            if not guild.channel_id:
                continue
            key = (guild.guild_id, alert_type)
            if not self._cooldowns.ready(key):
                continue
            message = format_price_alert(
                pair,
                alert_type,
                mint=self.mint,
                symbol=self.symbol,
                avg_buy_sol=avg_buy_sol,
                mention=guild.display.alert_mention,
            )
            ok = await self._notifier.send(guild.channel_id, message)
            if self._metrics:
                self._metrics.record_send("price_alert", ok)
            if ok:
                self._cooldowns.mark(key)
                sent += 1

        if sent:
            self._log.info(f"[PRICE-ALERT] ${self.symbol} {alert_type} sent to {sent} guild(s)")
        return sent
