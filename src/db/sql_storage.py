"""SQLAlchemy-backed Storage (asyncpg in production, aiosqlite in tests)."""

from datetime import datetime
from typing import Any

from loguru import logger
from pydantic import ValidationError
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.db.storage import merge_performance
from src.models.call import CallLogRow, CallPerformanceRow
from src.models.guild import GuildConfigRow
from src.parsers.call_types import CallCard, CallLog, CallPerformance, GuildConfig

_GUILD_COLUMNS = {"call_count", "last_call_at", "created_at", "updated_at"}


def _guild_from_row(row: GuildConfigRow) -> GuildConfig:
    data = dict(row.config)
    data.update(
        guild_id=row.guild_id,
        call_count=row.call_count,
        last_call_at=row.last_call_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
    return GuildConfig.model_validate(data)


def _log_from_row(row: CallLogRow) -> CallLog:
    return CallLog(
        id=row.id,
        guild_id=row.guild_id,
        channel_id=row.channel_id,
        call_card=CallCard.model_validate(row.call_card),
        triggered_by=row.triggered_by,
        user_id=row.user_id,
        message_id=row.message_id,
        created_at=row.created_at,
    )


def _performance_from_row(row: CallPerformanceRow) -> CallPerformance:
    return CallPerformance(
        call_id=row.call_id,
        guild_id=row.guild_id,
        channel_id=row.channel_id,
        token_address=row.token_address,
        token_symbol=row.token_symbol,
        call_price=row.call_price,
        call_at=row.call_at,
        ath_price=row.ath_price,
        ath_at=row.ath_at,
        last_price=row.last_price,
        last_checked_at=row.last_checked_at,
        bonus_alert_sent=row.bonus_alert_sent,
        bonus_alert_at=row.bonus_alert_at,
    )


class SqlStorage:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_guild_config(self, guild_id: str) -> GuildConfig | None:
        async with self._session_factory() as session:
            row = await session.get(GuildConfigRow, guild_id)
            return _guild_from_row(row) if row else None

    async def save_guild_config(self, config: GuildConfig) -> None:
        data = config.model_dump(mode="json", exclude=_GUILD_COLUMNS)
        async with self._session_factory() as session:
            row = await session.get(GuildConfigRow, config.guild_id)
            if row is None:
                row = GuildConfigRow(guild_id=config.guild_id, created_at=config.created_at)
                session.add(row)
            row.guild_name = config.guild_name
            row.channel_id = config.channel_id
            row.autopost_enabled = config.policy.autopost_enabled
            row.config = data
            row.call_count = config.call_count
            row.last_call_at = config.last_call_at
            row.updated_at = config.updated_at
            await session.commit()

    async def delete_guild_config(self, guild_id: str) -> bool:
        async with self._session_factory() as session:
            await session.execute(delete(CallLogRow).where(CallLogRow.guild_id == guild_id))
            row = await session.get(GuildConfigRow, guild_id)
            if row is not None:
                await session.delete(row)
            await session.commit()
            return row is not None

    async def get_all_guilds(self) -> list[GuildConfig]:
        async with self._session_factory() as session:
            result = await session.execute(select(GuildConfigRow).order_by(GuildConfigRow.created_at))
            guilds: list[GuildConfig] = []
            for row in result.scalars():
                try:
                    guilds.append(_guild_from_row(row))
                except ValidationError as e:
                    logger.error(f"[STORAGE] Skipping undecodable guild {row.guild_id}: {e}")
            return guilds

    async def add_call_log(self, guild_id: str, log: CallLog) -> None:
        async with self._session_factory() as session:
            session.add(CallLogRow(
                id=log.id,
                guild_id=guild_id,
                channel_id=log.channel_id,
                token_mint=log.call_card.token.mint,
                triggered_by=log.triggered_by,
                user_id=log.user_id,
                message_id=log.message_id,
                call_card=log.call_card.model_dump(mode="json"),
                created_at=log.created_at,
            ))
            guild = await session.get(GuildConfigRow, guild_id)
            if guild is not None:
                guild.call_count = (guild.call_count or 0) + 1
                guild.last_call_at = log.created_at
            await session.commit()

    async def get_call_logs(self, guild_id: str, limit: int = 20) -> list[CallLog]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(CallLogRow)
                .where(CallLogRow.guild_id == guild_id)
                .order_by(CallLogRow.created_at.desc())
                .limit(limit)
            )
            return [_log_from_row(row) for row in result.scalars()]

    async def get_call_logs_since(
        self, guild_id: str, since: datetime, limit: int = 200
    ) -> list[CallLog]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(CallLogRow)
                .where(CallLogRow.guild_id == guild_id, CallLogRow.created_at >= since)
                .order_by(CallLogRow.created_at.desc())
                .limit(limit)
            )
            return [_log_from_row(row) for row in result.scalars()]

    async def count_call_logs_since(self, guild_id: str, since: datetime) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count())
                .select_from(CallLogRow)
                .where(CallLogRow.guild_id == guild_id, CallLogRow.created_at >= since)
            )
            return result.scalar_one()

    async def upsert_call_performance(self, performance: CallPerformance) -> CallPerformance:
        async with self._session_factory() as session:
            row = await session.get(CallPerformanceRow, performance.call_id)
            existing = _performance_from_row(row) if row else None
            merged = merge_performance(existing, performance)
            if row is None:
                row = CallPerformanceRow(call_id=merged.call_id)
                session.add(row)
            for key, value in merged.model_dump(exclude={"call_id"}).items():
                setattr(row, key, value)
            await session.commit()
            return merged

    async def get_call_performance(self, call_id: str) -> CallPerformance | None:
        async with self._session_factory() as session:
            row = await session.get(CallPerformanceRow, call_id)
            return _performance_from_row(row) if row else None

    async def get_call_performances_since(
        self, guild_id: str, since: datetime, limit: int = 200
    ) -> list[CallPerformance]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(CallPerformanceRow)
                .where(CallPerformanceRow.guild_id == guild_id, CallPerformanceRow.call_at >= since)
                .order_by(CallPerformanceRow.call_at.desc())
                .limit(limit)
            )
            return [_performance_from_row(row) for row in result.scalars()]

    async def get_stats(self) -> dict[str, Any]:
        async with self._session_factory() as session:
            total_guilds = await session.scalar(select(func.count()).select_from(GuildConfigRow))
            autopost_guilds = await session.scalar(
                select(func.count())
                .select_from(GuildConfigRow)
                .where(GuildConfigRow.autopost_enabled.is_(True))
            )
            total_calls = await session.scalar(select(func.count()).select_from(CallLogRow))
            tracked = await session.scalar(select(func.count()).select_from(CallPerformanceRow))
            bonus = await session.scalar(
                select(func.count())
                .select_from(CallPerformanceRow)
                .where(CallPerformanceRow.bonus_alert_sent.is_(True))
            )
        return {
            "total_guilds": total_guilds or 0,
            "autopost_guilds": autopost_guilds or 0,
            "total_calls": total_calls or 0,
            "tracked_calls": tracked or 0,
            "bonus_alerts": bonus or 0,
        }
