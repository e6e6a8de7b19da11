"""Policy presets and policy helpers.

Each preset bundles thresholds, the signals it cares about and a posting
cadence. Guild admins start from a preset and override thresholds.
"""

import hashlib
import json
import time
from typing import Any

from pydantic import ValidationError

from src.parsers.call_types import Policy, PolicyPreset, PolicyThresholds
from src.parsers.errors import ConfigError

POLICY_CONFIGS: dict[str, dict[str, Any]] = {
    "fresh-scanner": {
        "name": "Fresh Scanner",
        "description": "Ultra-new launches (0-2h), strict rug filters, conservative post rate",
        "thresholds": {
            "min_liquidity": 5000,
            "min_volume_24h": 1000,
            "max_token_age": 2,
            "min_holders": 50,
            "max_top_holder_concentration": 30,
            "min_confidence_score": 6,
        },
        "enabled_signals": [
            "volume-spike",
            "holder-growth",
            "deployer-activity",
            "distribution-pattern",
            "lp-stability",
        ],
        "autopost_cadence": 30,
        "max_calls_per_day": 10,
    },
    "momentum": {
        "name": "Momentum",
        "description": "Volume acceleration + social velocity + chart structure (2h-48h tokens)",
        "thresholds": {
            "min_liquidity": 10000,
            "min_volume_24h": 5000,
            "max_token_age": 48,
            "min_holders": 100,
            "max_top_holder_concentration": 25,
            "min_confidence_score": 5,
        },
        "enabled_signals": [
            "volume-spike",
            "price-momentum",
            "holder-growth",
            "social-velocity",
            "liquidity-change",
        ],
        "autopost_cadence": 15,
        "max_calls_per_day": 20,
    },
    "dip-hunter": {
        "name": "Dip Hunter",
        "description": "Drawdown + reclaim conditions + liquidity stability",
        "thresholds": {
            "min_liquidity": 15000,
            "min_volume_24h": 3000,
            "max_token_age": 168,
            "min_holders": 200,
            "max_top_holder_concentration": 20,
            "min_confidence_score": 6,
        },
        "enabled_signals": [
            "drawdown-reclaim",
            "lp-stability",
            "holder-growth",
            "volume-spike",
            "price-momentum",
        ],
        "autopost_cadence": 60,
        "max_calls_per_day": 8,
    },
    "whale-follow": {
        "name": "Whale Follow",
        "description": "Wallet-cluster watchlist + accumulation patterns",
        "thresholds": {
            "min_liquidity": 20000,
            "min_volume_24h": 10000,
            "max_token_age": 720,
            "min_holders": 300,
            "max_top_holder_concentration": 35,
            "min_confidence_score": 5,
        },
        "enabled_signals": [
            "whale-accumulation",
            "volume-spike",
            "holder-growth",
            "liquidity-change",
        ],
        "autopost_cadence": 30,
        "max_calls_per_day": 15,
    },
    "deployer-reputation": {
        "name": "Deployer Reputation",
        "description": "Deployer history + prior rugs/abandoned charts flags",
        "thresholds": {
            "min_liquidity": 8000,
            "min_volume_24h": 2000,
            "max_token_age": 24,
            "min_holders": 75,
            "max_top_holder_concentration": 25,
            "min_confidence_score": 7,
        },
        "enabled_signals": [
            "deployer-activity",
            "distribution-pattern",
            "lp-stability",
            "holder-growth",
        ],
        "autopost_cadence": 45,
        "max_calls_per_day": 12,
    },
    "community-strength": {
        "name": "Community Strength",
        "description": "Holder growth, retention, distribution, chatter quality",
        "thresholds": {
            "min_liquidity": 12000,
            "min_volume_24h": 4000,
            "max_token_age": 336,
            "min_holders": 500,
            "max_top_holder_concentration": 15,
            "min_confidence_score": 6,
        },
        "enabled_signals": [
            "holder-growth",
            "social-velocity",
            "distribution-pattern",
            "volume-spike",
            "lp-stability",
        ],
        "autopost_cadence": 120,
        "max_calls_per_day": 5,
    },
}

DEFAULT_PRESET: PolicyPreset = "momentum"


def create_policy(
    guild_id: str,
    preset: str,
    overrides: dict[str, float] | None = None,
) -> Policy:
    """Build a fresh policy for a guild from a preset.

    Raises ConfigError for an unknown preset or invalid threshold overrides.
    """
    config = POLICY_CONFIGS.get(preset)
    if config is None:
        raise ConfigError(f"Unknown policy preset: {preset}")

    if overrides:
        errors = validate_thresholds(overrides)
        if errors:
            raise ConfigError("; ".join(errors))

    try:
        thresholds = PolicyThresholds(**{**config["thresholds"], **(overrides or {})})
    except ValidationError as e:
        raise ConfigError(f"Invalid thresholds: {e.error_count()} errors") from e
    return Policy(
        id=f"{guild_id}-{preset}-{int(time.time() * 1000)}",
        name=config["name"],
        preset=preset,
        description=config["description"],
        thresholds=thresholds,
        enabled_signals=list(config["enabled_signals"]),
        autopost_enabled=False,
        autopost_cadence=config["autopost_cadence"],
        max_calls_per_day=config["max_calls_per_day"],
    )


def get_default_policy(guild_id: str) -> Policy:
    return create_policy(guild_id, DEFAULT_PRESET)


def get_policy_presets() -> list[dict[str, str]]:
    return [
        {"preset": preset, "name": cfg["name"], "description": cfg["description"]}
        for preset, cfg in POLICY_CONFIGS.items()
    ]


def validate_thresholds(thresholds: dict[str, float]) -> list[str]:
    """Return human-readable errors for out-of-range threshold overrides."""
    errors: list[str] = []

    unknown = set(thresholds) - set(PolicyThresholds.model_fields)
    if unknown:
        errors.append(f"Unknown thresholds: {', '.join(sorted(unknown))}")

    if thresholds.get("min_liquidity", 0) < 0:
        errors.append("Minimum liquidity must be positive")
    if thresholds.get("min_volume_24h", 0) < 0:
        errors.append("Minimum volume must be positive")
    if thresholds.get("max_token_age", 0) < 0:
        errors.append("Max token age must be positive")
    if "min_holders" in thresholds and thresholds["min_holders"] < 1:
        errors.append("Minimum holders must be at least 1")
    concentration = thresholds.get("max_top_holder_concentration")
    if concentration is not None and not 0 <= concentration <= 100:
        errors.append("Top holder concentration must be between 0-100%")
    confidence = thresholds.get("min_confidence_score")
    if confidence is not None and not 0 <= confidence <= 10:
        errors.append("Confidence score must be between 0-10")

    return errors


def validate_quiet_hours(start: int | None, end: int | None) -> list[str]:
    errors: list[str] = []
    if (start is None) != (end is None):
        errors.append("Quiet hours need both a start and an end hour")
    for label, hour in (("start", start), ("end", end)):
        if hour is not None and not 0 <= hour <= 23:
            errors.append(f"Quiet hours {label} must be between 0-23")
    return errors


def hash_policy(policy: Policy) -> str:
    """Stable 8-hex-char fingerprint of the decision-relevant policy fields."""
    data = json.dumps(
        {
            "preset": policy.preset,
            "thresholds": policy.thresholds.model_dump(),
            "enabled_signals": list(policy.enabled_signals),
        },
        sort_keys=True,
    )
    return hashlib.sha256(data.encode()).hexdigest()[:8]
