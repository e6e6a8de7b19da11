"""Tests for service wiring in the entry point."""

from unittest.mock import AsyncMock, patch

import pytest
from loguru import logger

from config.settings import Settings
from src.bot.notifiers import DiscordNotifier, TelegramNotifier
from src.db.storage import InMemoryStorage
from src.main import build_graduation_filter, build_notifier, build_registry, build_storage
from src.parsers.errors import ConfigError


def _make_settings(**overrides) -> Settings:
    defaults = {"storage_backend": "memory", "notifier_backend": "discord", "redis_url": ""}
    defaults.update(overrides)
    return Settings(_env_file=None, **defaults)


def test_build_storage_memory():
    assert isinstance(build_storage(_make_settings()), InMemoryStorage)


def test_build_storage_unknown_backend():
    with pytest.raises(ConfigError, match="Unknown storage backend"):
        build_storage(_make_settings(storage_backend="mongo"))


def test_build_notifier_backends():
    assert isinstance(build_notifier(_make_settings(discord_bot_token="t")), DiscordNotifier)
    assert isinstance(build_notifier(_make_settings(notifier_backend="telegram")), TelegramNotifier)
    with pytest.raises(ConfigError):
        build_notifier(_make_settings(notifier_backend="slack"))


def test_graduation_filter_from_settings():
    f = build_graduation_filter(_make_settings(grad_min_liquidity_usd=9000, grad_min_holders=40))
    assert f.min_liquidity == 9000
    assert f.min_holders == 40


@pytest.mark.asyncio
async def test_build_registry_without_pinned_token():
    cfg = _make_settings(pinned_token_address="")
    with patch("src.main.get_redis", new_callable=AsyncMock, return_value=None):
        registry, dex = await build_registry(cfg)

    try:
        assert isinstance(registry.storage, InMemoryStorage)
        assert registry.scheduler is not None
        assert registry.scheduler._price_alerts is None
        assert registry.scheduler._publisher is None
        assert registry.preview_watcher is not registry.scheduler._watcher
        assert registry.metrics_source is dex
        assert registry.scheduler._watcher._log is logger
        assert registry.preview_watcher._log is logger
        assert registry.scheduler._performance._log is logger
    finally:
        await registry.notifier.close()
        await dex.close()


@pytest.mark.asyncio
async def test_build_registry_with_pinned_token():
    cfg = _make_settings(pinned_token_address="PinnedMint111")
    with patch("src.main.get_redis", new_callable=AsyncMock, return_value=None):
        registry, dex = await build_registry(cfg)

    try:
        assert registry.scheduler._price_alerts is not None
        assert registry.scheduler._price_alerts._log is logger
        assert registry.scheduler._price_alerts._task._log is logger
    finally:
        await registry.notifier.close()
        await dex.close()
