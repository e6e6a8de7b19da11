"""Tests for policy presets, validation and fingerprinting."""

import pytest

from src.parsers.errors import ConfigError
from src.parsers.policies import (
    DEFAULT_PRESET,
    POLICY_CONFIGS,
    create_policy,
    get_default_policy,
    get_policy_presets,
    hash_policy,
    validate_quiet_hours,
    validate_thresholds,
)


def test_six_presets():
    presets = get_policy_presets()
    assert len(presets) == 6
    assert {p["preset"] for p in presets} == set(POLICY_CONFIGS)


def test_create_policy_from_preset():
    policy = create_policy("g1", "fresh-scanner")
    assert policy.name == "Fresh Scanner"
    assert policy.thresholds.min_liquidity == 5000
    assert policy.max_calls_per_day == 10
    assert policy.autopost_cadence == 30
    assert policy.autopost_enabled is False
    assert policy.id.startswith("g1-fresh-scanner-")


def test_default_policy_is_momentum():
    assert DEFAULT_PRESET == "momentum"
    assert get_default_policy("g1").preset == "momentum"


def test_unknown_preset_rejected():
    with pytest.raises(ConfigError, match="Unknown policy preset"):
        create_policy("g1", "yolo")


def test_overrides_merge_into_preset():
    policy = create_policy("g1", "momentum", {"min_liquidity": 42_000})
    assert policy.thresholds.min_liquidity == 42_000
    assert policy.thresholds.min_holders == 100


def test_invalid_override_rejected():
    with pytest.raises(ConfigError, match="Confidence score"):
        create_policy("g1", "momentum", {"min_confidence_score": 11})


def test_validate_thresholds_collects_all_errors():
    errors = validate_thresholds({
        "min_liquidity": -1,
        "min_holders": 0,
        "max_top_holder_concentration": 150,
        "bogus": 1,
    })
    assert len(errors) == 4
    assert errors[0] == "Unknown thresholds: bogus"


def test_validate_thresholds_ok():
    assert validate_thresholds({"min_liquidity": 0, "min_confidence_score": 10}) == []


@pytest.mark.parametrize(
    ("start", "end", "ok"),
    [
        (22, 6, True),
        (None, None, True),
        (5, None, False),
        (24, 3, False),
    ],
)
def test_validate_quiet_hours(start, end, ok):
    assert (validate_quiet_hours(start, end) == []) is ok


def test_hash_ignores_id_and_schedule():
    a = create_policy("g1", "momentum")
    b = create_policy("g2", "momentum").model_copy(update={"autopost_enabled": True})
    assert hash_policy(a) == hash_policy(b)
    assert len(hash_policy(a)) == 8


def test_hash_changes_with_thresholds():
    a = create_policy("g1", "momentum")
    b = create_policy("g1", "momentum", {"min_liquidity": 1})
    assert hash_policy(a) != hash_policy(b)
