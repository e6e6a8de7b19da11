"""Graduation candidate source.

Polls the market-data provider for freshly migrated tokens, applies a base
filter that is independent of any guild policy, suppresses tokens already
seen in earlier cycles and ranks the rest with the scoring engine against
a reference policy.

DexScreener has no holder or authority data, so pair_to_metrics derives a
best-effort TokenMetrics snapshot:
- holders: estimated from buy transaction counts (unique buyers proxy)
- holders_change: last-5m buys relative to that estimate
- volume_change: 5m volume annualised to 1h vs actual 1h volume
- mint/freeze authority: False (graduated pump tokens are renounced)
- lp_locked: True on migrated pools (LP is burned on migration)
"""

from collections.abc import Callable, Collection
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

from loguru import logger as default_logger

from src.parsers.call_types import Policy, TokenMetrics
from src.parsers.dexscreener.models import DexScreenerPair
from src.parsers.errors import DataFetchError
from src.parsers.metrics import PipelineMetrics
from src.parsers.policies import get_default_policy
from src.parsers.scoring import score_token
from src.parsers.throttle import ExpiringSet

DEFAULT_SCAN_LIMIT = 30
MIGRATED_DEX_IDS = frozenset({"pumpswap", "raydium"})


@dataclass(frozen=True)
class GraduationFilter:
    """Base acceptance filter applied before any guild policy."""

    min_liquidity: float = 5_000
    min_volume_5m: float = 500
    min_holders: int = 25
    max_age_minutes: float = 120
    exclude_rugged_deployers: bool = True


DEFAULT_GRADUATION_FILTER = GraduationFilter()


@dataclass(frozen=True)
class GraduationEvent:
    mint: str
    symbol: str
    name: str
    pair_address: str
    dex_id: str
    graduated_at: datetime | None


@dataclass
class GraduationCandidate:
    graduation: GraduationEvent
    pair: DexScreenerPair
    metrics: TokenMetrics
    score: float
    passes_filter: bool
    filter_failures: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class DeployerHistory:
    address: str
    prior_tokens: int = 0
    rug_count: int = 0


class ListingProvider(Protocol):
    async def list_recent_listings(self, limit: int = DEFAULT_SCAN_LIMIT) -> list[DexScreenerPair]: ...


class DeployerReputation(Protocol):
    async def get_deployer_history(self, mint: str) -> DeployerHistory | None: ...


def _utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def listing_time(pair: DexScreenerPair) -> datetime | None:
    if not pair.pairCreatedAt:
        return None
    return datetime.fromtimestamp(pair.pairCreatedAt / 1000, UTC).replace(tzinfo=None)


def listing_age_minutes(pair: DexScreenerPair, now: datetime) -> float | None:
    created = listing_time(pair)
    if created is None:
        return None
    return max(0.0, (now - created).total_seconds() / 60)


def estimate_holders(pair: DexScreenerPair) -> int:
    return max(pair.txns_at(period)[0] for period in ("m5", "h1", "h6", "h24"))


def pair_to_metrics(
    pair: DexScreenerPair,
    *,
    now: datetime | None = None,
    migrated_dex_ids: Collection[str] = MIGRATED_DEX_IDS,
    deployer: DeployerHistory | None = None,
) -> TokenMetrics:
    """Derive a TokenMetrics snapshot from one DexScreener pair."""
    now = now or _utcnow()
    base = pair.baseToken
    mint = base.address if base else ""

    age_minutes = listing_age_minutes(pair, now) or 0.0
    age_hours = age_minutes / 60

    volume_m5 = pair.volume_at("m5")
    volume_h1 = pair.volume_at("h1")
    volume_change = (volume_m5 * 12 / volume_h1 - 1) * 100 if volume_h1 > 0 else 0.0

    holders = estimate_holders(pair)
    buys_m5, _ = pair.txns_at("m5")
    holders_change = buys_m5 / max(holders, 1) * 100

    price_change = pair.price_change_at("h24")
    if price_change == 0:
        price_change = pair.price_change_at("h1")

    return TokenMetrics(
        mint=mint,
        symbol=(base.symbol if base and base.symbol else mint[:6]),
        name=(base.name if base and base.name else ""),
        price=pair.price_usd,
        price_change_24h=price_change,
        volume_24h=pair.volume_at("h24"),
        volume_change=volume_change,
        liquidity=pair.liquidity_usd,
        liquidity_change=0.0,
        holders=holders,
        holders_change=holders_change,
        top_holder_concentration=0.0,
        token_age_hours=age_hours,
        mint_authority=False,
        freeze_authority=False,
        lp_locked=pair.dexId.lower() in migrated_dex_ids,
        lp_age=age_hours,
        deployer_address=deployer.address if deployer else "",
        deployer_prior_tokens=deployer.prior_tokens if deployer else 0,
        deployer_rug_count=deployer.rug_count if deployer else 0,
    )


def check_graduation_filter(
    pair: DexScreenerPair,
    metrics: TokenMetrics,
    graduation_filter: GraduationFilter,
    *,
    now: datetime,
) -> list[str]:
    """Every base-filter failure as a readable reason; empty means pass."""
    failures: list[str] = []

    if metrics.liquidity < graduation_filter.min_liquidity:
        failures.append(
            f"Liquidity ${metrics.liquidity:.0f} < min ${graduation_filter.min_liquidity:g}"
        )
    volume_m5 = pair.volume_at("m5")
    if volume_m5 < graduation_filter.min_volume_5m:
        failures.append(f"Volume 5m ${volume_m5:.0f} < min ${graduation_filter.min_volume_5m:g}")
    if metrics.holders < graduation_filter.min_holders:
        failures.append(f"Holders {metrics.holders} < min {graduation_filter.min_holders}")

    age = listing_age_minutes(pair, now)
    if age is None:
        failures.append("Listing time unknown")
    elif age > graduation_filter.max_age_minutes:
        failures.append(f"Age {age:.0f}m > max {graduation_filter.max_age_minutes:g}m")

    if graduation_filter.exclude_rugged_deployers and metrics.deployer_rug_count > 0:
        failures.append(f"Deployer has {metrics.deployer_rug_count} prior rug(s)")

    return failures


class GraduationWatcher:
    """Turns recent listings into ranked, base-filtered candidates.

    Each mint is evaluated once while it stays in the seen set
    (TTL + size bounded).
    """

    def __init__(
        self,
        provider: ListingProvider,
        *,
        reference_policy: Policy | None = None,
        reputation: DeployerReputation | None = None,
        scan_limit: int = DEFAULT_SCAN_LIMIT,
        seen_ttl_sec: float = 24 * 3600,
        seen_max_size: int = 10_000,
        migrated_dex_ids: Collection[str] = MIGRATED_DEX_IDS,
        metrics: PipelineMetrics | None = None,
        clock: Callable[[], datetime] = _utcnow,
        logger: Any = default_logger,
    ) -> None:
        self._provider = provider
        self._reference_policy = reference_policy or get_default_policy("reference")
        self._reputation = reputation
        self._scan_limit = scan_limit
        self._seen = ExpiringSet(seen_ttl_sec, seen_max_size)
        self._migrated_dex_ids = frozenset(d.lower() for d in migrated_dex_ids)
        self._metrics = metrics
        self._clock = clock
        self._log = logger

    @property
    def seen_count(self) -> int:
        return len(self._seen)

    def clear_seen_mints(self) -> None:
        self._seen.clear()
        self._log.info("[GRAD] Seen set cleared")

    async def _deployer_history(self, mint: str) -> DeployerHistory | None:
        if self._reputation is None:
            return None
        try:
            return await self._reputation.get_deployer_history(mint)
        except (DataFetchError, TimeoutError) as e:
            self._log.debug(f"[GRAD] Deployer lookup failed for {mint[:12]}: {e}")
            return None

    async def scan_for_graduations(
        self,
        graduation_filter: GraduationFilter = DEFAULT_GRADUATION_FILTER,
    ) -> list[GraduationCandidate]:
        """Evaluate unseen recent listings. Provider failures yield an empty list."""
        try:
            pairs = await self._provider.list_recent_listings(self._scan_limit)
        except (DataFetchError, TimeoutError) as e:
            self._log.warning(f"[GRAD] Listing fetch failed: {e}")
            if self._metrics:
                self._metrics.record_fetch_error()
            return []

        now = self._clock()
        candidates: list[GraduationCandidate] = []
        for pair in pairs[: self._scan_limit]:
            mint = pair.baseToken.address if pair.baseToken else ""
            if not mint or mint in self._seen:
                continue
            self._seen.add(mint)

            deployer = await self._deployer_history(mint)
            metrics = pair_to_metrics(
                pair, now=now, migrated_dex_ids=self._migrated_dex_ids, deployer=deployer,
            )
            failures = check_graduation_filter(pair, metrics, graduation_filter, now=now)
            result = score_token(metrics, self._reference_policy)

            candidates.append(GraduationCandidate(
                graduation=GraduationEvent(
                    mint=mint,
                    symbol=metrics.symbol,
                    name=metrics.name,
                    pair_address=pair.pairAddress,
                    dex_id=pair.dexId,
                    graduated_at=listing_time(pair),
                ),
                pair=pair,
                metrics=metrics,
                score=result.overall_score,
                passes_filter=not failures,
                filter_failures=failures,
            ))

        candidates.sort(key=lambda c: c.score, reverse=True)
        if self._metrics:
            self._metrics.record_candidates(len(candidates))
        passing = sum(1 for c in candidates if c.passes_filter)
        self._log.info(
            f"[GRAD] {len(pairs)} listings, {len(candidates)} new, {passing} pass base filter"
        )
        return candidates
