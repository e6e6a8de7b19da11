"""Tests for rate limiting and bounded TTL bookkeeping."""

import time

import pytest

from src.parsers.throttle import CooldownTracker, ExpiringSet, RateLimiter


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_expiring_set_ttl():
    clock = _Clock()
    seen = ExpiringSet(ttl_sec=60, clock=clock)
    seen.add("a")
    clock.now = 59
    assert "a" in seen
    clock.now = 60
    assert "a" not in seen
    assert len(seen) == 0


def test_expiring_set_evicts_oldest_over_capacity():
    clock = _Clock()
    seen = ExpiringSet(ttl_sec=3600, max_size=2, clock=clock)
    for i, key in enumerate(("a", "b", "c")):
        clock.now = i
        seen.add(key)
    assert "a" not in seen
    assert "b" in seen and "c" in seen
    assert len(seen) == 2


def test_expiring_set_readd_refreshes():
    clock = _Clock()
    seen = ExpiringSet(ttl_sec=10, clock=clock)
    seen.add("a")
    clock.now = 8
    seen.add("a")
    clock.now = 15
    assert "a" in seen


def test_expiring_set_clear():
    seen = ExpiringSet(ttl_sec=10)
    seen.add("a")
    seen.clear()
    assert len(seen) == 0


def test_cooldown_ready_and_mark():
    clock = _Clock()
    cooldowns = CooldownTracker(cooldown_sec=30, clock=clock)
    key = ("g1", "pump")
    assert cooldowns.ready(key)
    cooldowns.mark(key)
    clock.now = 29
    assert not cooldowns.ready(key)
    assert cooldowns.ready(("g2", "pump"))
    clock.now = 30
    assert cooldowns.ready(key)


def test_cooldown_prunes_expired_when_full():
    clock = _Clock()
    cooldowns = CooldownTracker(cooldown_sec=10, max_size=3, clock=clock)
    for key in ("a", "b", "c"):
        cooldowns.mark(key)
    clock.now = 20
    cooldowns.mark("d")
    assert len(cooldowns) == 1
    assert not cooldowns.ready("d")


def test_cooldown_capped_when_all_keys_active():
    cooldowns = CooldownTracker(cooldown_sec=1800, max_size=2, clock=lambda: 0.0)
    for i in range(50):
        cooldowns.mark(f"k{i}")
    assert len(cooldowns) == 2
    assert not cooldowns.ready("k49")
    assert not cooldowns.ready("k48")
    assert cooldowns.ready("k0")


def test_cooldown_remark_moves_key_to_newest():
    cooldowns = CooldownTracker(cooldown_sec=1800, max_size=2, clock=lambda: 0.0)
    cooldowns.mark("a")
    cooldowns.mark("b")
    cooldowns.mark("a")
    cooldowns.mark("c")
    assert not cooldowns.ready("a")
    assert cooldowns.ready("b")


@pytest.mark.asyncio
async def test_rate_limiter_spaces_requests():
    limiter = RateLimiter(max_rps=20)
    started = time.monotonic()
    for _ in range(3):
        await limiter.acquire()
    assert time.monotonic() - started >= 0.09
