"""Storage interface for guild configs, call logs and call performance.

Two implementations share the same contract: InMemoryStorage (tests, single
process demos) and SqlStorage (SQLAlchemy async, see sql_storage.py).

Contract notes:
- call logs are append-only and returned newest first
- upsert_call_performance never lowers ath_price and never clears
  bonus_alert_sent, whatever the caller passes in
"""

from datetime import datetime
from typing import Any, Protocol

from src.parsers.call_types import CallLog, CallPerformance, GuildConfig


class Storage(Protocol):
    async def get_guild_config(self, guild_id: str) -> GuildConfig | None: ...

    async def save_guild_config(self, config: GuildConfig) -> None: ...

    async def delete_guild_config(self, guild_id: str) -> bool: ...

    async def get_all_guilds(self) -> list[GuildConfig]: ...

    async def add_call_log(self, guild_id: str, log: CallLog) -> None: ...

    async def get_call_logs(self, guild_id: str, limit: int = 20) -> list[CallLog]: ...

    async def get_call_logs_since(
        self, guild_id: str, since: datetime, limit: int = 200
    ) -> list[CallLog]: ...

    async def count_call_logs_since(self, guild_id: str, since: datetime) -> int: ...

    async def upsert_call_performance(self, performance: CallPerformance) -> CallPerformance: ...

    async def get_call_performance(self, call_id: str) -> CallPerformance | None: ...

    async def get_call_performances_since(
        self, guild_id: str, since: datetime, limit: int = 200
    ) -> list[CallPerformance]: ...

    async def get_stats(self) -> dict[str, Any]: ...


def merge_performance(
    existing: CallPerformance | None, incoming: CallPerformance
) -> CallPerformance:
    """Apply the monotonic ATH and one-way bonus latch rules."""
    if existing is None:
        return incoming
    updates: dict[str, Any] = {}
    if existing.ath_price > incoming.ath_price:
        updates["ath_price"] = existing.ath_price
        updates["ath_at"] = existing.ath_at
    if existing.bonus_alert_sent:
        updates["bonus_alert_sent"] = True
        updates["bonus_alert_at"] = existing.bonus_alert_at or incoming.bonus_alert_at
    return incoming.model_copy(update=updates) if updates else incoming


class InMemoryStorage:
    """Dict-backed storage. Not shared across processes."""

    def __init__(self) -> None:
        self._guilds: dict[str, GuildConfig] = {}
        self._logs: dict[str, list[CallLog]] = {}
        self._performance: dict[str, CallPerformance] = {}

    async def get_guild_config(self, guild_id: str) -> GuildConfig | None:
        return self._guilds.get(guild_id)

    async def save_guild_config(self, config: GuildConfig) -> None:
        self._guilds[config.guild_id] = config

    async def delete_guild_config(self, guild_id: str) -> bool:
        self._logs.pop(guild_id, None)
        return self._guilds.pop(guild_id, None) is not None

    async def get_all_guilds(self) -> list[GuildConfig]:
        return list(self._guilds.values())

    async def add_call_log(self, guild_id: str, log: CallLog) -> None:
        self._logs.setdefault(guild_id, []).append(log)
        guild = self._guilds.get(guild_id)
        if guild is not None:
            self._guilds[guild_id] = guild.model_copy(update={
                "call_count": guild.call_count + 1,
                "last_call_at": log.created_at,
            })

    def _newest_first(self, guild_id: str) -> list[CallLog]:
        return sorted(self._logs.get(guild_id, []), key=lambda log: log.created_at, reverse=True)

    async def get_call_logs(self, guild_id: str, limit: int = 20) -> list[CallLog]:
        return self._newest_first(guild_id)[:limit]

    async def get_call_logs_since(
        self, guild_id: str, since: datetime, limit: int = 200
    ) -> list[CallLog]:
        return [log for log in self._newest_first(guild_id) if log.created_at >= since][:limit]

    async def count_call_logs_since(self, guild_id: str, since: datetime) -> int:
        return sum(1 for log in self._logs.get(guild_id, []) if log.created_at >= since)

    async def upsert_call_performance(self, performance: CallPerformance) -> CallPerformance:
        merged = merge_performance(self._performance.get(performance.call_id), performance)
        self._performance[performance.call_id] = merged
        return merged

    async def get_call_performance(self, call_id: str) -> CallPerformance | None:
        return self._performance.get(call_id)

    async def get_call_performances_since(
        self, guild_id: str, since: datetime, limit: int = 200
    ) -> list[CallPerformance]:
        rows = [
            p for p in self._performance.values()
            if p.guild_id == guild_id and p.call_at >= since
        ]
        rows.sort(key=lambda p: p.call_at, reverse=True)
        return rows[:limit]

    async def get_stats(self) -> dict[str, Any]:
        guilds = list(self._guilds.values())
        return {
            "total_guilds": len(guilds),
            "autopost_guilds": sum(1 for g in guilds if g.policy.autopost_enabled),
            "total_calls": sum(len(logs) for logs in self._logs.values()),
            "tracked_calls": len(self._performance),
            "bonus_alerts": sum(1 for p in self._performance.values() if p.bonus_alert_sent),
        }
