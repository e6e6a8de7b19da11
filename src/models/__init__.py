from src.models.base import Base
from src.models.call import CallLogRow, CallPerformanceRow
from src.models.guild import GuildConfigRow

__all__ = [
    "Base",
    "GuildConfigRow",
    "CallLogRow",
    "CallPerformanceRow",
]
