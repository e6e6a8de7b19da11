"""Tests for the autopost scan-and-notify cycle."""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from src.db.storage import InMemoryStorage
from src.parsers.autopost import AutopostScheduler, is_quiet_hours, utc_day_start
from src.parsers.call_card import generate_call_card
from src.parsers.call_types import CallLog
from src.parsers.candidates import GraduationWatcher
from src.parsers.metrics import PipelineMetrics
from src.parsers.policies import create_policy
from src.parsers.scoring import score_token
from tests.factories import (
    NOW,
    FakeNotifier,
    FakeWatcher,
    build_candidate,
    build_guild,
    build_pair,
)


def _make_scheduler(storage, notifier, watcher, now: datetime = NOW, **kwargs) -> AutopostScheduler:
    return AutopostScheduler(storage, notifier, watcher, clock=lambda: now, **kwargs)


def _make_log(guild_id: str, mint: str, created_at: datetime) -> CallLog:
    candidate = build_candidate(mint)
    policy = create_policy(guild_id, "momentum")
    card = generate_call_card(
        candidate.metrics, policy, score_token(candidate.metrics, policy), now=created_at
    )
    return CallLog(
        id=f"auto-{mint}-{created_at.isoformat()}",
        guild_id=guild_id,
        channel_id="c1",
        call_card=card,
        triggered_by="auto",
        created_at=created_at,
    )


def _mints(n: int) -> list[str]:
    return [f"Mint{i:040d}" for i in range(n)]


@pytest_asyncio.fixture
async def storage_with_guild():
    storage = InMemoryStorage()
    await storage.save_guild_config(build_guild())
    return storage


# -- quiet hours ------------------------------------------------------------


@pytest.mark.parametrize(
    ("start", "end", "hour", "quiet"),
    [
        (22, 6, 23, True),
        (22, 6, 2, True),
        (22, 6, 6, False),
        (22, 6, 12, False),
        (9, 17, 9, True),
        (9, 17, 17, False),
        (5, 5, 5, False),
        (None, None, 3, False),
    ],
)
def test_is_quiet_hours(start, end, hour, quiet):
    policy = create_policy("g1", "momentum").model_copy(
        update={"quiet_hours_start": start, "quiet_hours_end": end}
    )
    assert is_quiet_hours(policy, NOW.replace(hour=hour)) is quiet


def test_utc_day_start():
    assert utc_day_start(datetime(2026, 3, 1, 17, 45, 3, 12)) == datetime(2026, 3, 1)


# -- scan cycle -------------------------------------------------------------


@pytest.mark.asyncio
async def test_posts_high_score_candidate(storage_with_guild):
    notifier = FakeNotifier()
    watcher = FakeWatcher([build_candidate(score=8.0)])
    scheduler = _make_scheduler(storage_with_guild, notifier, watcher)

    result = await scheduler.scan_and_notify()

    assert (result.sent, result.candidates) == (1, 1)
    [message] = notifier.sent_to("c1")
    assert message.startswith("🎓 **$TEST** | Score 8.0")

    [log] = await storage_with_guild.get_call_logs("g1")
    assert log.triggered_by == "auto"
    assert log.id.startswith("auto-")
    assert log.channel_id == "c1"
    assert log.created_at == NOW

    guild = await storage_with_guild.get_guild_config("g1")
    assert guild.call_count == 1
    assert guild.last_call_at == NOW

    [perf] = await storage_with_guild.get_call_performances_since("g1", NOW - timedelta(days=1))
    assert perf.call_id == log.call_card.call_id
    assert perf.call_price == pytest.approx(0.001)
    assert perf.ath_price == perf.call_price
    assert perf.bonus_alert_sent is False


@pytest.mark.asyncio
async def test_filters_low_score_unlinked_and_failed(storage_with_guild):
    mints = _mints(4)
    watcher = FakeWatcher([
        build_candidate(mints[0], score=6.0),
        build_candidate(mints[1], score=9.0, twitter=False),
        build_candidate(mints[2], score=9.0, passes_filter=False),
        build_candidate(mints[3], score=6.5),
    ])
    notifier = FakeNotifier()
    scheduler = _make_scheduler(storage_with_guild, notifier, watcher)

    result = await scheduler.scan_and_notify()

    # no-X-link candidate counts as high potential but is never posted
    assert (result.sent, result.candidates) == (1, 2)
    [log] = await storage_with_guild.get_call_logs("g1")
    assert log.call_card.token.mint == mints[3]


@pytest.mark.asyncio
async def test_min_score_configurable(storage_with_guild):
    watcher = FakeWatcher([build_candidate(score=6.0)])
    scheduler = _make_scheduler(storage_with_guild, FakeNotifier(), watcher, min_score=5.0)
    assert (await scheduler.scan_and_notify()).sent == 1


@pytest.mark.asyncio
async def test_same_mint_not_posted_twice(storage_with_guild):
    notifier = FakeNotifier()
    watcher = FakeWatcher([build_candidate()])
    scheduler = _make_scheduler(storage_with_guild, notifier, watcher)

    await scheduler.scan_and_notify()
    second = await scheduler.scan_and_notify()

    assert second.sent == 0
    assert len(notifier.messages) == 1


@pytest.mark.asyncio
async def test_dedup_window_expires(storage_with_guild):
    candidate = build_candidate()
    old = _make_log("g1", candidate.graduation.mint, NOW - timedelta(hours=25))
    await storage_with_guild.add_call_log("g1", old)
    scheduler = _make_scheduler(storage_with_guild, FakeNotifier(), FakeWatcher([candidate]))
    assert (await scheduler.scan_and_notify()).sent == 1


@pytest.mark.asyncio
async def test_dedup_is_per_guild():
    storage = InMemoryStorage()
    await storage.save_guild_config(build_guild("g1", "c1"))
    await storage.save_guild_config(build_guild("g2", "c2"))
    candidate = build_candidate()
    await storage.add_call_log("g1", _make_log("g1", candidate.graduation.mint, NOW - timedelta(hours=1)))
    notifier = FakeNotifier()
    scheduler = _make_scheduler(storage, notifier, FakeWatcher([candidate]))

    result = await scheduler.scan_and_notify()

    assert result.sent == 1
    assert notifier.sent_to("c1") == []
    assert len(notifier.sent_to("c2")) == 1


@pytest.mark.asyncio
async def test_daily_cap_reached():
    storage = InMemoryStorage()
    await storage.save_guild_config(build_guild(max_calls_per_day=1))
    await storage.add_call_log("g1", _make_log("g1", "EarlierMint", NOW.replace(hour=1)))
    notifier = FakeNotifier()
    scheduler = _make_scheduler(storage, notifier, FakeWatcher([build_candidate()]))

    assert (await scheduler.scan_and_notify()).sent == 0
    assert notifier.messages == []


@pytest.mark.asyncio
async def test_daily_cap_counts_utc_day_only():
    storage = InMemoryStorage()
    await storage.save_guild_config(build_guild(max_calls_per_day=1))
    yesterday = utc_day_start(NOW) - timedelta(hours=1)
    await storage.add_call_log("g1", _make_log("g1", "EarlierMint", yesterday))
    scheduler = _make_scheduler(storage, FakeNotifier(), FakeWatcher([build_candidate()]))
    assert (await scheduler.scan_and_notify()).sent == 1


@pytest.mark.asyncio
async def test_daily_cap_rechecked_mid_cycle():
    storage = InMemoryStorage()
    await storage.save_guild_config(build_guild(max_calls_per_day=2))
    watcher = FakeWatcher([build_candidate(mint) for mint in _mints(3)])
    notifier = FakeNotifier()
    scheduler = _make_scheduler(storage, notifier, watcher)

    assert (await scheduler.scan_and_notify()).sent == 2
    assert len(notifier.messages) == 2


@pytest.mark.parametrize(("hour", "sent"), [(23, 0), (6, 1), (12, 1)])
@pytest.mark.asyncio
async def test_quiet_hours_wrap_midnight(hour, sent):
    storage = InMemoryStorage()
    await storage.save_guild_config(build_guild(quiet_hours_start=22, quiet_hours_end=6))
    scheduler = _make_scheduler(
        storage, FakeNotifier(), FakeWatcher([build_candidate()]), now=NOW.replace(hour=hour)
    )
    assert (await scheduler.scan_and_notify()).sent == sent


@pytest.mark.asyncio
async def test_skips_disabled_and_channelless_guilds():
    storage = InMemoryStorage()
    await storage.save_guild_config(build_guild("g1", "c1", autopost=False))
    await storage.save_guild_config(build_guild("g2", None))
    notifier = FakeNotifier()
    scheduler = _make_scheduler(storage, notifier, FakeWatcher([build_candidate()]))

    result = await scheduler.scan_and_notify()

    assert result.sent == 0
    assert notifier.messages == []


@pytest.mark.asyncio
async def test_failed_delivery_leaves_no_trace(storage_with_guild):
    notifier = FakeNotifier()
    notifier.failing.add("c1")
    metrics = PipelineMetrics()
    watcher = FakeWatcher([build_candidate()])
    scheduler = _make_scheduler(storage_with_guild, notifier, watcher, metrics=metrics)

    assert (await scheduler.scan_and_notify()).sent == 0
    assert await storage_with_guild.get_call_logs("g1") == []
    assert metrics.get_summary()["deliveries"]["call"]["failed"] == 1
    assert metrics.sent("call") == 0


@pytest.mark.asyncio
async def test_failed_delivery_not_retried_once_mint_seen(storage_with_guild):
    provider = AsyncMock()
    provider.list_recent_listings.return_value = [build_pair()]
    watcher = GraduationWatcher(provider, clock=lambda: NOW)
    notifier = FakeNotifier()
    notifier.failing.add("c1")
    scheduler = _make_scheduler(storage_with_guild, notifier, watcher)

    first = await scheduler.scan_and_notify()
    assert (first.sent, first.candidates) == (0, 1)

    notifier.failing.clear()
    second = await scheduler.scan_and_notify()
    assert (second.sent, second.candidates) == (0, 0)
    assert notifier.messages == []
    assert await storage_with_guild.get_call_logs("g1") == []
    assert provider.list_recent_listings.await_count == 2


@pytest.mark.asyncio
async def test_guild_failure_does_not_block_others():
    storage = InMemoryStorage()
    await storage.save_guild_config(build_guild("g1", "boom"))
    await storage.save_guild_config(build_guild("g2", "c2"))
    notifier = FakeNotifier()
    notifier.raising.add("boom")
    scheduler = _make_scheduler(storage, notifier, FakeWatcher([build_candidate()]))

    result = await scheduler.scan_and_notify()

    assert result.sent == 1
    assert len(notifier.sent_to("c2")) == 1


@pytest.mark.asyncio
async def test_scan_never_raises(storage_with_guild):
    watcher = FakeWatcher()
    watcher.error = RuntimeError("provider exploded")
    metrics = PipelineMetrics()
    scheduler = _make_scheduler(storage_with_guild, FakeNotifier(), watcher, metrics=metrics)

    result = await scheduler.scan_and_notify()

    assert (result.sent, result.candidates) == (0, 0)
    assert scheduler.last_result is result
    assert scheduler.last_scan_at == NOW
    assert metrics.get_summary()["tasks"]["autopost"]["errors"] == 1


@pytest.mark.asyncio
async def test_posted_call_published(storage_with_guild):
    publisher = AsyncMock()
    scheduler = _make_scheduler(
        storage_with_guild, FakeNotifier(), FakeWatcher([build_candidate()]), publisher=publisher
    )
    await scheduler.scan_and_notify()

    publisher.publish_call.assert_awaited_once()
    guild_id, channel_id, card = publisher.publish_call.await_args.args
    assert (guild_id, channel_id) == ("g1", "c1")
    assert card.token.symbol == "TEST"


@pytest.mark.asyncio
async def test_injected_logger_used(storage_with_guild):
    log = MagicMock()
    scheduler = _make_scheduler(
        storage_with_guild, FakeNotifier(), FakeWatcher([build_candidate()]), logger=log
    )
    await scheduler.scan_and_notify()
    assert any("[AUTOPOST]" in call.args[0] for call in log.info.call_args_list)


@pytest.mark.asyncio
async def test_clear_seen_set_delegates(storage_with_guild):
    watcher = FakeWatcher()
    scheduler = _make_scheduler(storage_with_guild, FakeNotifier(), watcher)
    scheduler.clear_seen_set()
    assert watcher.cleared == 1


@pytest.mark.asyncio
async def test_start_is_idempotent(storage_with_guild):
    performance = MagicMock()
    performance.stop = AsyncMock()
    scheduler = _make_scheduler(
        storage_with_guild, FakeNotifier(), FakeWatcher(), interval_sec=3600, performance=performance
    )

    assert scheduler.start() is True
    assert scheduler.start() is False
    assert scheduler.is_running()
    performance.start.assert_called_once()

    await scheduler.stop()
    assert not scheduler.is_running()
    performance.stop.assert_awaited_once()
