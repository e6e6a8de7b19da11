"""Guild configuration CRUD."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, ValidationError

from src.api.dependencies import get_storage
from src.db.storage import Storage
from src.parsers.call_types import DisplaySettings, GuildConfig, PolicyThresholds
from src.parsers.errors import ConfigError
from src.parsers.policies import (
    DEFAULT_PRESET,
    create_policy,
    validate_quiet_hours,
    validate_thresholds,
)

router = APIRouter(prefix="/api/v1/guilds", tags=["guilds"])


class GuildUpdate(BaseModel):
    guild_name: str | None = Field(None, max_length=100)
    channel_id: str | None = Field(None, max_length=32)
    channel_name: str | None = Field(None, max_length=100)
    preset: str | None = None
    thresholds: dict[str, float] | None = None
    autopost_enabled: bool | None = None
    quiet_hours_start: int | None = None
    quiet_hours_end: int | None = None
    clear_quiet_hours: bool = False
    max_calls_per_day: int | None = Field(None, ge=0)
    display: DisplaySettings | None = None
    admin_users: list[str] | None = None


def apply_guild_update(
    guild_id: str,
    existing: GuildConfig | None,
    update: GuildUpdate,
    now: datetime,
) -> GuildConfig:
    """Merge an admin update into a guild config. Raises ConfigError on bad input."""
    if existing is None:
        policy = create_policy(guild_id, update.preset or DEFAULT_PRESET, update.thresholds)
        config = GuildConfig(guild_id=guild_id, policy=policy, created_at=now, updated_at=now)
    else:
        config = existing
        policy = existing.policy
        if update.preset and update.preset != policy.preset:
            policy = create_policy(guild_id, update.preset).model_copy(update={
                "autopost_enabled": policy.autopost_enabled,
                "quiet_hours_start": policy.quiet_hours_start,
                "quiet_hours_end": policy.quiet_hours_end,
            })
        if update.thresholds:
            errors = validate_thresholds(update.thresholds)
            if errors:
                raise ConfigError("; ".join(errors))
            try:
                thresholds = PolicyThresholds.model_validate(
                    {**policy.thresholds.model_dump(), **update.thresholds}
                )
            except ValidationError as e:
                raise ConfigError(f"Invalid thresholds: {e.error_count()} errors") from e
            policy = policy.model_copy(update={"thresholds": thresholds})

    policy_changes: dict[str, Any] = {}
    if update.clear_quiet_hours:
        policy_changes.update(quiet_hours_start=None, quiet_hours_end=None)
    elif update.quiet_hours_start is not None or update.quiet_hours_end is not None:
        errors = validate_quiet_hours(update.quiet_hours_start, update.quiet_hours_end)
        if errors:
            raise ConfigError("; ".join(errors))
        policy_changes.update(
            quiet_hours_start=update.quiet_hours_start,
            quiet_hours_end=update.quiet_hours_end,
        )
    if update.autopost_enabled is not None:
        policy_changes["autopost_enabled"] = update.autopost_enabled
    if update.max_calls_per_day is not None:
        policy_changes["max_calls_per_day"] = update.max_calls_per_day
    if policy_changes:
        policy = policy.model_copy(update=policy_changes)

    config_changes: dict[str, Any] = {"policy": policy, "updated_at": now}
    for field in ("guild_name", "channel_id", "channel_name", "display", "admin_users"):
        value = getattr(update, field)
        if value is not None:
            config_changes[field] = value
    return config.model_copy(update=config_changes)


def _guild_summary(g: GuildConfig) -> dict[str, Any]:
    return {
        "guild_id": g.guild_id,
        "guild_name": g.guild_name,
        "channel_id": g.channel_id,
        "policy": {
            "name": g.policy.name,
            "preset": g.policy.preset,
            "autopost_enabled": g.policy.autopost_enabled,
        },
        "watchlist_count": len(g.watchlist),
        "call_count": g.call_count,
        "last_call_at": g.last_call_at.isoformat() if g.last_call_at else None,
        "created_at": g.created_at.isoformat(),
    }


@router.get("")
async def list_guilds(storage: Storage = Depends(get_storage)) -> dict[str, Any]:
    guilds = await storage.get_all_guilds()
    return {
        "success": True,
        "stats": await storage.get_stats(),
        "guilds": [_guild_summary(g) for g in guilds],
    }


@router.get("/{guild_id}")
async def get_guild(guild_id: str, storage: Storage = Depends(get_storage)) -> dict[str, Any]:
    config = await storage.get_guild_config(guild_id)
    if config is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Guild not found")
    return {"success": True, "guild": config.model_dump(mode="json")}


@router.put("/{guild_id}")
async def upsert_guild(
    guild_id: str,
    body: GuildUpdate,
    storage: Storage = Depends(get_storage),
) -> dict[str, Any]:
    existing = await storage.get_guild_config(guild_id)
    try:
        config = apply_guild_update(
            guild_id, existing, body, datetime.now(UTC).replace(tzinfo=None)
        )
    except ConfigError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    await storage.save_guild_config(config)
    return {"success": True, "guild": config.model_dump(mode="json")}


@router.delete("/{guild_id}")
async def delete_guild(guild_id: str, storage: Storage = Depends(get_storage)) -> dict[str, Any]:
    if not await storage.delete_guild_config(guild_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Guild not found")
    return {"success": True}
