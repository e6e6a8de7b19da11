"""Domain types shared by scoring, call cards, scheduler and storage.

Persisted / wire-facing records are pydantic models so they round-trip through
JSON columns and API responses. Pure scoring results are frozen dataclasses.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

PolicyPreset = Literal[
    "fresh-scanner",
    "momentum",
    "dip-hunter",
    "whale-follow",
    "deployer-reputation",
    "community-strength",
]

SignalType = Literal[
    "volume-spike",
    "liquidity-change",
    "holder-growth",
    "whale-accumulation",
    "deployer-activity",
    "social-velocity",
    "price-momentum",
    "drawdown-reclaim",
    "lp-stability",
    "distribution-pattern",
]

RiskLevel = Literal["high", "medium", "low"]
CallSource = Literal["manual", "auto", "mention"]
AlertMention = Literal["everyone", "here", "none"]


class PolicyThresholds(BaseModel):
    min_liquidity: float  # USD
    min_volume_24h: float  # USD
    max_token_age: float  # hours
    min_holders: int
    max_top_holder_concentration: float  # percent
    min_confidence_score: float  # 0-10


class Policy(BaseModel):
    id: str
    name: str
    preset: PolicyPreset
    description: str = ""
    thresholds: PolicyThresholds
    enabled_signals: list[SignalType]
    autopost_enabled: bool = False
    autopost_cadence: int = 30  # minutes
    quiet_hours_start: int | None = Field(default=None, ge=0, le=23)
    quiet_hours_end: int | None = Field(default=None, ge=0, le=23)
    max_calls_per_day: int = 10


class TokenMetrics(BaseModel):
    """Point-in-time market snapshot for one token. Never mutated."""

    model_config = ConfigDict(frozen=True)

    mint: str
    symbol: str = ""
    name: str = ""
    price: float = 0.0
    price_change_24h: float = 0.0
    volume_24h: float = 0.0
    volume_change: float = 0.0
    liquidity: float = 0.0
    liquidity_change: float = 0.0
    holders: int = 0
    holders_change: float = 0.0
    top_holder_concentration: float = 0.0
    token_age_hours: float = 0.0
    mint_authority: bool = False
    freeze_authority: bool = False
    lp_locked: bool = False
    lp_age: float = 0.0
    deployer_address: str = ""
    deployer_prior_tokens: int = 0
    deployer_rug_count: int = 0
    creator_address: str | None = None
    creator_hold_pct: float | None = None
    creator_is_whale: bool = False


@dataclass(frozen=True)
class SignalScore:
    signal: str
    score: float  # 0-10
    weight: float
    triggered: bool
    reason: str


@dataclass(frozen=True)
class ScoringResult:
    overall_score: float
    signals: tuple[SignalScore, ...] = ()
    passes_thresholds: bool = True
    failed_thresholds: tuple[str, ...] = field(default_factory=tuple)

    @property
    def triggered(self) -> tuple[SignalScore, ...]:
        return tuple(s for s in self.signals if s.triggered)


class RiskFlag(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: RiskLevel
    message: str
    signal: str = "general"


class CallCardToken(BaseModel):
    model_config = ConfigDict(frozen=True)

    symbol: str
    mint: str
    name: str


class CallCardPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    hash: str


class CallCardReceipts(BaseModel):
    model_config = ConfigDict(frozen=True)

    data_snapshot_url: str | None = None
    input_refs: tuple[str, ...] = ()
    rules_triggered: tuple[str, ...] = ()
    model_version: str
    prompt_version: str


class CallCard(BaseModel):
    """Decision receipt for one call. Created once, never mutated."""

    model_config = ConfigDict(frozen=True)

    call_id: str
    timestamp: datetime
    token: CallCardToken
    policy: CallCardPolicy
    triggers: tuple[str, ...] = ()
    pros: tuple[str, ...] = ()
    risks: tuple[RiskFlag, ...] = ()
    invalidation: tuple[str, ...] = ()
    confidence: float = Field(ge=0, le=10)
    metrics: TokenMetrics
    receipts: CallCardReceipts


class DisplaySettings(BaseModel):
    show_creator_whale: bool = False
    alert_mention: AlertMention = "everyone"


class WatchlistItem(BaseModel):
    type: Literal["token", "wallet", "deployer", "ticker"]
    value: str
    label: str | None = None
    added_by: str
    added_at: datetime


class GuildConfig(BaseModel):
    """Per-tenant configuration: where to post and which policy decides."""

    guild_id: str
    guild_name: str = ""
    channel_id: str | None = None
    channel_name: str | None = None
    policy: Policy
    display: DisplaySettings = Field(default_factory=DisplaySettings)
    watchlist: list[WatchlistItem] = Field(default_factory=list)
    admin_users: list[str] = Field(default_factory=list)
    require_mention: bool = False
    created_at: datetime
    updated_at: datetime
    call_count: int = 0
    last_call_at: datetime | None = None


class CallLog(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    guild_id: str
    channel_id: str
    call_card: CallCard
    triggered_by: CallSource
    user_id: str | None = None
    message_id: str | None = None
    created_at: datetime


class CallPerformance(BaseModel):
    call_id: str
    guild_id: str
    channel_id: str | None = None
    token_address: str
    token_symbol: str
    call_price: float
    call_at: datetime
    ath_price: float
    ath_at: datetime
    last_price: float
    last_checked_at: datetime
    bonus_alert_sent: bool = False
    bonus_alert_at: datetime | None = None
