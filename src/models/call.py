from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base


class CallLogRow(Base):
    """Append-only record of a delivered call."""

    __tablename__ = "call_logs"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    guild_id: Mapped[str] = mapped_column(String(32))
    channel_id: Mapped[str] = mapped_column(String(32))
    token_mint: Mapped[str] = mapped_column(String(64))
    triggered_by: Mapped[str] = mapped_column(String(10))  # manual | auto | mention
    user_id: Mapped[str | None] = mapped_column(String(32))
    message_id: Mapped[str | None] = mapped_column(String(32))
    call_card: Mapped[dict] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime)

    __table_args__ = (
        Index("idx_call_logs_guild_time", "guild_id", "created_at"),
        Index("idx_call_logs_mint", "token_mint"),
    )


class CallPerformanceRow(Base):
    """Post-call price tracking; one row per call."""

    __tablename__ = "call_performance"

    call_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    guild_id: Mapped[str] = mapped_column(String(32))
    channel_id: Mapped[str | None] = mapped_column(String(32))
    token_address: Mapped[str] = mapped_column(String(64))
    token_symbol: Mapped[str] = mapped_column(String(32))
    call_price: Mapped[float] = mapped_column(Float)
    call_at: Mapped[datetime] = mapped_column(DateTime)
    ath_price: Mapped[float] = mapped_column(Float)
    ath_at: Mapped[datetime] = mapped_column(DateTime)
    last_price: Mapped[float] = mapped_column(Float)
    last_checked_at: Mapped[datetime] = mapped_column(DateTime)
    bonus_alert_sent: Mapped[bool] = mapped_column(Boolean, default=False)
    bonus_alert_at: Mapped[datetime | None] = mapped_column(DateTime)

    __table_args__ = (Index("idx_call_performance_guild_time", "guild_id", "call_at"),)
