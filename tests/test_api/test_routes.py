"""Tests for the control API (FastAPI TestClient, in-memory services)."""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from src.api.app import create_app
from src.api.registry import ServiceRegistry
from src.api.routers.guilds import GuildUpdate, apply_guild_update
from src.db.storage import InMemoryStorage
from src.parsers.autopost import AutopostScheduler
from src.parsers.errors import ConfigError
from src.parsers.metrics import PipelineMetrics
from tests.factories import NOW, FakeNotifier, FakeWatcher, build_candidate, build_guild


@pytest.fixture
def services():
    storage = InMemoryStorage()
    notifier = FakeNotifier()
    metrics = PipelineMetrics()
    scheduler = AutopostScheduler(
        storage,
        notifier,
        FakeWatcher([build_candidate()]),
        metrics=metrics,
        clock=lambda: NOW,
    )
    source = AsyncMock()
    source.get_token_metrics.return_value = build_candidate().metrics
    registry = ServiceRegistry(
        storage=storage,
        scheduler=scheduler,
        preview_watcher=FakeWatcher([
            build_candidate("MintPass", "PASS"),
            build_candidate("MintFail", "FAIL", passes_filter=False),
        ]),
        metrics_source=source,
        notifier=notifier,
        pipeline_metrics=metrics,
    )
    return registry


@pytest.fixture
def client(services):
    return TestClient(create_app(services))


# -- health -----------------------------------------------------------------


def test_health(client):
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json() == {
        "status": "ok",
        "storage_ok": True,
        "redis_ok": None,
        "autopost_running": False,
    }
    assert resp.headers["X-Content-Type-Options"] == "nosniff"


def test_metrics_includes_notifier(client):
    data = client.get("/api/v1/metrics").json()
    assert data["notifier"] == {"sent": 0, "failures": {}}
    assert "uptime_sec" in data


# -- guilds -----------------------------------------------------------------


def test_guild_create_get_delete(client):
    resp = client.put("/api/v1/guilds/g1", json={
        "guild_name": "Alpha",
        "channel_id": "c1",
        "preset": "dip-hunter",
        "autopost_enabled": True,
        "quiet_hours_start": 22,
        "quiet_hours_end": 6,
    })
    assert resp.status_code == 200
    policy = resp.json()["guild"]["policy"]
    assert policy["preset"] == "dip-hunter"
    assert policy["autopost_enabled"] is True
    assert (policy["quiet_hours_start"], policy["quiet_hours_end"]) == (22, 6)

    listing = client.get("/api/v1/guilds").json()
    assert [g["guild_id"] for g in listing["guilds"]] == ["g1"]
    assert listing["stats"]["autopost_guilds"] == 1

    assert client.get("/api/v1/guilds/g1").json()["guild"]["guild_name"] == "Alpha"
    assert client.delete("/api/v1/guilds/g1").status_code == 200
    assert client.get("/api/v1/guilds/g1").status_code == 404
    assert client.delete("/api/v1/guilds/g1").status_code == 404


def test_guild_rejects_half_quiet_hours(client):
    resp = client.put("/api/v1/guilds/g1", json={"quiet_hours_start": 22})
    assert resp.status_code == 400
    assert "both a start and an end" in resp.json()["detail"]


def test_guild_rejects_bad_threshold(client):
    client.put("/api/v1/guilds/g1", json={"channel_id": "c1"})
    resp = client.put("/api/v1/guilds/g1", json={"thresholds": {"min_confidence_score": 11}})
    assert resp.status_code == 400


def test_guild_rejects_fractional_holders(client):
    client.put("/api/v1/guilds/g1", json={"channel_id": "c1"})
    resp = client.put("/api/v1/guilds/g1", json={"thresholds": {"min_holders": 50.5}})
    assert resp.status_code == 400
    assert "Invalid thresholds" in resp.json()["detail"]

    resp = client.put("/api/v1/guilds/g2", json={"thresholds": {"min_holders": 50.5}})
    assert resp.status_code == 400
    assert client.get("/api/v1/guilds").status_code == 200


def test_guild_rejects_unknown_preset(client):
    resp = client.put("/api/v1/guilds/g1", json={"preset": "moonshot"})
    assert resp.status_code == 400
    assert "Unknown policy preset" in resp.json()["detail"]


def test_apply_update_keeps_schedule_on_preset_change():
    existing = build_guild(autopost=True, quiet_hours_start=1, quiet_hours_end=5)
    updated = apply_guild_update("g1", existing, GuildUpdate(preset="fresh-scanner"), NOW)

    assert updated.policy.preset == "fresh-scanner"
    assert updated.policy.autopost_enabled is True
    assert updated.policy.quiet_hours_start == 1
    assert updated.updated_at == NOW
    assert updated.created_at == existing.created_at


def test_apply_update_threshold_override():
    existing = build_guild()
    updated = apply_guild_update(
        "g1", existing, GuildUpdate(thresholds={"min_liquidity": 1234}), NOW
    )
    assert updated.policy.thresholds.min_liquidity == 1234
    assert updated.policy.thresholds.min_holders == existing.policy.thresholds.min_holders


def test_apply_update_rejects_fractional_holders():
    with pytest.raises(ConfigError, match="Invalid thresholds"):
        apply_guild_update(
            "g1", build_guild(), GuildUpdate(thresholds={"min_holders": 50.5}), NOW
        )
    with pytest.raises(ConfigError, match="Invalid thresholds"):
        apply_guild_update("g9", None, GuildUpdate(thresholds={"min_holders": 50.5}), NOW)


def test_apply_update_clear_quiet_hours():
    existing = build_guild(quiet_hours_start=22, quiet_hours_end=6)
    updated = apply_guild_update("g1", existing, GuildUpdate(clear_quiet_hours=True), NOW)
    assert updated.policy.quiet_hours_start is None
    assert updated.policy.quiet_hours_end is None


def test_apply_update_invalid_hours():
    with pytest.raises(ConfigError):
        apply_guild_update(
            "g1", build_guild(), GuildUpdate(quiet_hours_start=25, quiet_hours_end=3), NOW
        )


def test_apply_update_new_guild_defaults():
    created = apply_guild_update("g9", None, GuildUpdate(channel_id="c9"), NOW)
    assert created.policy.preset == "momentum"
    assert created.policy.autopost_enabled is False
    assert created.channel_id == "c9"
    assert created.created_at == NOW


# -- autopost ---------------------------------------------------------------


def test_autopost_status(client):
    data = client.get("/api/v1/autopost").json()
    assert data["running"] is False
    assert data["last_scan_at"] is None
    assert data["last_result"] is None


def test_autopost_scan_then_logs(client, services):
    client.put("/api/v1/guilds/g1", json={"channel_id": "c1", "autopost_enabled": True})

    resp = client.post("/api/v1/autopost", json={"action": "scan"})
    assert resp.json() == {"success": True, "sent": 1, "candidates": 1}
    assert len(services.notifier.sent_to("c1")) == 1

    status = client.get("/api/v1/autopost").json()
    assert status["last_result"] == {"sent": 1, "candidates": 1}

    logs = client.get("/api/v1/logs", params={"guild_id": "g1"}).json()
    assert logs["count"] == 1
    assert logs["logs"][0]["triggered_by"] == "auto"


def test_autopost_invalid_action(client):
    assert client.post("/api/v1/autopost", json={"action": "pause"}).status_code == 422


def test_autopost_without_scheduler(services):
    services.scheduler = None
    client = TestClient(create_app(services))
    assert client.get("/api/v1/autopost").status_code == 503


# -- graduations ------------------------------------------------------------


def test_graduations_filtered(client, services):
    data = client.get("/api/v1/graduations", params={"min_liquidity": 1000}).json()
    assert data["count"] == 1
    assert data["candidates"][0]["symbol"] == "PASS"
    assert data["filter"]["min_liquidity"] == 1000
    assert services.preview_watcher.filters[0].min_liquidity == 1000


def test_graduations_all(client):
    data = client.get("/api/v1/graduations", params={"all": "true"}).json()
    assert {c["symbol"] for c in data["candidates"]} == {"PASS", "FAIL"}


def test_graduations_clear_seen(client, services):
    assert client.post("/api/v1/graduations").json()["success"] is True
    assert services.preview_watcher.cleared == 1
    assert services.scheduler._watcher.cleared == 1


# -- call -------------------------------------------------------------------


def test_call_success(client, services):
    resp = client.post("/api/v1/call", json={"token": "$bonk", "policy": "momentum"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["card"]["token"]["symbol"] == "TEST"
    assert data["formatted"]
    assert data["compact"].startswith("**$TEST**")
    assert data["card"]["call_id"] in data["compact"]
    services.metrics_source.get_token_metrics.assert_awaited_once_with(
        "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"
    )


def test_call_unknown_policy(client):
    resp = client.post("/api/v1/call", json={"token": "abc", "policy": "moonshot"})
    assert resp.status_code == 400


def test_call_missing_metrics(client, services):
    services.metrics_source.get_token_metrics.return_value = None
    resp = client.post("/api/v1/call", json={"token": "abc"})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Could not fetch token metrics"


def test_call_help(client):
    data = client.get("/api/v1/call").json()
    assert "momentum" in {p["preset"] for p in data["policies"]}


def test_logs_requires_guild_id(client):
    assert client.get("/api/v1/logs").status_code == 422
    assert client.get("/api/v1/logs", params={"guild_id": "none"}).json()["count"] == 0


def test_logs_limit_bounds(client):
    assert client.get("/api/v1/logs", params={"guild_id": "g1", "limit": 0}).status_code == 422
    assert client.get(
        "/api/v1/logs", params={"guild_id": "g1", "limit": 101}
    ).status_code == 422


def test_created_at_not_shifted_on_update(client):
    first = client.put("/api/v1/guilds/g1", json={"channel_id": "c1"}).json()["guild"]
    second = client.put("/api/v1/guilds/g1", json={"guild_name": "Renamed"}).json()["guild"]
    assert first["created_at"] == second["created_at"]
    assert second["channel_id"] == "c1"
    assert second["guild_name"] == "Renamed"
