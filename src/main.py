"""Entry point: autopost scheduler + control API."""

import asyncio
import contextlib
import signal

from loguru import logger

from config.settings import Settings, settings
from src.api.registry import ServiceRegistry
from src.bot.notifiers import DiscordNotifier, Notifier, TelegramNotifier
from src.db.database import close_engine, get_session_factory
from src.db.redis import CallPublisher, close_redis, get_redis
from src.db.sql_storage import SqlStorage
from src.db.storage import InMemoryStorage, Storage
from src.parsers.autopost import AutopostScheduler
from src.parsers.candidates import GraduationFilter, GraduationWatcher
from src.parsers.dexscreener.client import DexScreenerClient
from src.parsers.errors import ConfigError
from src.parsers.metrics import PipelineMetrics
from src.parsers.performance import BonusThresholds, PerformanceTracker
from src.parsers.policies import create_policy
from src.parsers.price_alerts import PriceAlertMonitor, PriceAlertThresholds
from src.parsers.sol_price import SolPriceCache
from src.parsers.throttle import RateLimiter
from src.utils.logger import setup_logger


def build_storage(cfg: Settings) -> Storage:
    if cfg.storage_backend == "memory":
        return InMemoryStorage()
    if cfg.storage_backend == "sql":
        return SqlStorage(get_session_factory())
    raise ConfigError(f"Unknown storage backend: {cfg.storage_backend}")


def build_notifier(cfg: Settings) -> Notifier:
    if cfg.notifier_backend == "discord":
        if not cfg.discord_bot_token:
            logger.warning("[NOTIFY] DISCORD_BOT_TOKEN missing, every send will fail")
        return DiscordNotifier(cfg.discord_bot_token, timeout=cfg.notifier_timeout_sec)
    if cfg.notifier_backend == "telegram":
        return TelegramNotifier(cfg.telegram_bot_token)
    raise ConfigError(f"Unknown notifier backend: {cfg.notifier_backend}")


def build_graduation_filter(cfg: Settings) -> GraduationFilter:
    return GraduationFilter(
        min_liquidity=cfg.grad_min_liquidity_usd,
        min_volume_5m=cfg.grad_min_volume_5m_usd,
        min_holders=cfg.grad_min_holders,
        max_age_minutes=cfg.grad_max_age_minutes,
        exclude_rugged_deployers=cfg.grad_exclude_rugged_deployers,
    )


async def build_registry(cfg: Settings) -> tuple[ServiceRegistry, DexScreenerClient]:
    """Construct every service from settings. Nothing is started here."""
    metrics = PipelineMetrics()
    storage = build_storage(cfg)
    notifier = build_notifier(cfg)
    dex_ids = {d.strip() for d in cfg.migrated_dex_ids.split(",") if d.strip()}
    dex = DexScreenerClient(
        RateLimiter(cfg.dexscreener_max_rps),
        timeout=cfg.dexscreener_timeout_sec,
        migrated_dex_ids=dex_ids,
    )
    reference_policy = create_policy("reference", cfg.candidate_reference_preset)

    def make_watcher() -> GraduationWatcher:
        return GraduationWatcher(
            dex,
            reference_policy=reference_policy,
            scan_limit=cfg.candidate_scan_limit,
            seen_ttl_sec=cfg.seen_mint_ttl_hours * 3600,
            seen_max_size=cfg.seen_mint_max_size,
            migrated_dex_ids=dex_ids,
            metrics=metrics,
            logger=logger,
        )

    performance = PerformanceTracker(
        storage,
        dex,
        notifier,
        interval_sec=cfg.performance_interval_sec,
        lookback_days=cfg.performance_lookback_days,
        log_limit=cfg.performance_log_limit,
        thresholds=BonusThresholds(
            min_gain_pct=cfg.bonus_min_gain_pct,
            min_price_change_m5=cfg.bonus_min_price_change_m5,
            min_buy_sell_ratio=cfg.bonus_min_buy_sell_ratio,
            min_volume_m5=cfg.bonus_min_volume_m5,
        ),
        metrics=metrics,
        logger=logger,
    )

    price_alerts = None
    if cfg.pinned_token_address:
        price_alerts = PriceAlertMonitor(
            storage,
            dex,
            notifier,
            SolPriceCache(
                dex,
                ttl_sec=cfg.sol_price_cache_sec,
                fallback_usd=cfg.sol_price_fallback_usd,
            ),
            mint=cfg.pinned_token_address,
            symbol=cfg.pinned_token_symbol,
            interval_sec=cfg.price_alert_interval_sec,
            cooldown_sec=cfg.price_alert_cooldown_sec,
            thresholds=PriceAlertThresholds(
                pump_min_price_change_m5=cfg.pump_min_price_change_m5,
                pump_min_volume_m5=cfg.pump_min_volume_m5,
                major_buy_min_sol=cfg.major_buy_min_sol,
                major_buy_min_buys=cfg.major_buy_min_buys,
                major_buy_min_buy_sell_ratio=cfg.major_buy_min_buy_sell_ratio,
            ),
            metrics=metrics,
            logger=logger,
        )

    redis = await get_redis()
    scheduler = AutopostScheduler(
        storage,
        notifier,
        make_watcher(),
        performance=performance,
        price_alerts=price_alerts,
        publisher=CallPublisher(redis) if redis else None,
        metrics=metrics,
        min_score=cfg.autopost_min_score,
        interval_sec=cfg.autopost_interval_sec,
        graduation_filter=build_graduation_filter(cfg),
        dedupe_window_hours=cfg.dedupe_window_hours,
        dedupe_log_limit=cfg.dedupe_log_limit,
        logger=logger,
    )

    registry = ServiceRegistry(
        storage=storage,
        scheduler=scheduler,
        preview_watcher=make_watcher(),
        metrics_source=dex,
        notifier=notifier,
        pipeline_metrics=metrics,
        redis=redis,
    )
    return registry, dex


async def main() -> None:
    setup_logger(
        level=settings.log_level,
        json_logs=settings.json_logs,
        log_dir=settings.log_dir,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )
    logger.info("Starting callcaster...")

    registry, dex = await build_registry(settings)

    # Graceful shutdown on SIGINT/SIGTERM
    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("Shutdown signal received")
        shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _signal_handler)

    scheduler = registry.scheduler
    scheduler.start()

    tasks = [asyncio.create_task(shutdown_event.wait())]
    if settings.api_enabled:
        from src.api.server import run_api_server

        tasks.append(asyncio.create_task(run_api_server(registry)))

    _done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    for task in pending:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    await scheduler.stop()
    await registry.notifier.close()
    await dex.close()
    await close_redis()
    await close_engine()
    logger.info(f"Shutdown complete ({registry.pipeline_metrics.format_stats_line()})")


if __name__ == "__main__":
    asyncio.run(main())
