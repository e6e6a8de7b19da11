"""Builders and fakes shared by the test modules."""

from datetime import UTC, datetime, timedelta
from typing import Any

from src.parsers.call_types import GuildConfig
from src.parsers.candidates import GraduationCandidate, GraduationEvent, listing_time, pair_to_metrics
from src.parsers.dexscreener.models import DexScreenerPair
from src.parsers.policies import create_policy

NOW = datetime(2026, 3, 1, 12, 0, 0)
MINT = "MintAbc1234567890abcdefghijklmnopqrstuvwxyz"


class FakeNotifier:
    """Records deliveries; channels in ``failing`` return False, in ``raising`` raise."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []
        self.failing: set[str] = set()
        self.raising: set[str] = set()
        self.closed = False

    async def send(self, channel_id: str, content: str) -> bool:
        if channel_id in self.raising:
            raise RuntimeError(f"boom in {channel_id}")
        if channel_id in self.failing:
            return False
        self.messages.append((channel_id, content))
        return True

    async def close(self) -> None:
        self.closed = True

    def sent_to(self, channel_id: str) -> list[str]:
        return [content for channel, content in self.messages if channel == channel_id]


class FakeWatcher:
    """Stands in for GraduationWatcher: returns preset candidates."""

    def __init__(self, candidates: list[GraduationCandidate] | None = None) -> None:
        self.candidates = candidates or []
        self.error: Exception | None = None
        self.cleared = 0
        self.filters: list[Any] = []

    async def scan_for_graduations(self, graduation_filter=None) -> list[GraduationCandidate]:
        self.filters.append(graduation_filter)
        if self.error:
            raise self.error
        return list(self.candidates)

    def clear_seen_mints(self) -> None:
        self.cleared += 1


def build_pair(
    mint: str = MINT,
    symbol: str = "TEST",
    *,
    dex_id: str = "pumpswap",
    price: str = "0.001",
    liquidity: float = 20_000,
    volume_m5: float = 2_000,
    volume_h1: float = 8_000,
    volume_h24: float = 50_000,
    change_m5: float = 5.0,
    change_h1: float = 20.0,
    change_h24: float | None = 40.0,
    buys_m5: int = 60,
    sells_m5: int = 20,
    buys_h1: int = 200,
    buys_h24: int = 500,
    age_minutes: float | None = 30,
    twitter: bool = True,
    market_cap: float = 100_000,
    now: datetime = NOW,
) -> DexScreenerPair:
    created_at = None
    if age_minutes is not None:
        created = (now - timedelta(minutes=age_minutes)).replace(tzinfo=UTC)
        created_at = int(created.timestamp() * 1000)
    socials = [{"type": "twitter", "url": f"https://x.com/{symbol.lower()}"}] if twitter else []
    return DexScreenerPair.model_validate({
        "chainId": "solana",
        "dexId": dex_id,
        "url": f"https://dexscreener.com/solana/pair{mint[:8]}",
        "pairAddress": f"pair{mint[:8]}",
        "baseToken": {"address": mint, "name": f"{symbol} Token", "symbol": symbol},
        "quoteToken": {"address": "So11111111111111111111111111111111111111112", "symbol": "SOL"},
        "priceUsd": price,
        "priceChange": {"m5": change_m5, "h1": change_h1, "h24": change_h24},
        "volume": {"m5": volume_m5, "h1": volume_h1, "h24": volume_h24},
        "liquidity": {"usd": liquidity},
        "marketCap": market_cap,
        "pairCreatedAt": created_at,
        "txns": {
            "m5": {"buys": buys_m5, "sells": sells_m5},
            "h1": {"buys": buys_h1, "sells": 50},
            "h6": {"buys": buys_h1, "sells": 80},
            "h24": {"buys": buys_h24, "sells": 120},
        },
        "info": {"socials": socials, "websites": []},
    })


def build_candidate(
    mint: str = MINT,
    symbol: str = "TEST",
    *,
    score: float = 8.0,
    passes_filter: bool = True,
    **pair_kwargs,
) -> GraduationCandidate:
    pair = build_pair(mint, symbol, **pair_kwargs)
    metrics = pair_to_metrics(pair, now=NOW)
    return GraduationCandidate(
        graduation=GraduationEvent(
            mint=mint,
            symbol=symbol,
            name=metrics.name,
            pair_address=pair.pairAddress,
            dex_id=pair.dexId,
            graduated_at=listing_time(pair),
        ),
        pair=pair,
        metrics=metrics,
        score=score,
        passes_filter=passes_filter,
        filter_failures=[] if passes_filter else ["Liquidity $0 < min $5000"],
    )


def build_guild(
    guild_id: str = "g1",
    channel_id: str | None = "c1",
    *,
    preset: str = "momentum",
    autopost: bool = True,
    **policy_overrides,
) -> GuildConfig:
    policy = create_policy(guild_id, preset).model_copy(
        update={"autopost_enabled": autopost, **policy_overrides}
    )
    return GuildConfig(
        guild_id=guild_id,
        guild_name=f"Guild {guild_id}",
        channel_id=channel_id,
        policy=policy,
        created_at=NOW - timedelta(days=1),
        updated_at=NOW - timedelta(days=1),
    )


