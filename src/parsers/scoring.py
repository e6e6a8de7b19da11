"""Policy scoring: metrics + policy -> confidence score with per-signal diagnostics.

Pure function: no IO, no clock, no hidden state. Identical inputs always
produce an identical ScoringResult.

Signals are a data table (SIGNAL_RULES): each entry has a fixed weight and an
evaluator returning (score, triggered, reason). The overall score is the
weighted mean of *triggered* signals only, then penalised for live
mint/freeze authority and deployer rugs.

Malformed numbers (None, NaN, inf, strings) are read as 0 so that scoring
never raises on a bad snapshot.
"""

import math
from collections.abc import Callable
from dataclasses import dataclass

from src.parsers.call_types import Policy, ScoringResult, SignalScore, TokenMetrics

MINT_AUTHORITY_PENALTY = 0.7
FREEZE_AUTHORITY_PENALTY = 0.6
RUG_PENALTY_PER_RUG = 0.15
RUG_PENALTY_FLOOR = 0.5


def _num(value: object) -> float:
    """Coerce anything to a finite float; garbage becomes 0."""
    try:
        result = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(result) or math.isinf(result):
        return 0.0
    return result


def _clamp(value: float, low: float = 0.0, high: float = 10.0) -> float:
    return min(high, max(low, value))


@dataclass(frozen=True)
class _Inputs:
    """Sanitised numeric view of TokenMetrics used by the rules."""

    price_change_24h: float
    volume_24h: float
    volume_change: float
    liquidity: float
    liquidity_change: float
    holders: float
    holders_change: float
    concentration: float
    token_age_hours: float
    lp_locked: bool
    lp_age: float
    prior_tokens: float
    rug_count: float
    mint_authority: bool
    freeze_authority: bool

    @classmethod
    def from_metrics(cls, m: TokenMetrics) -> "_Inputs":
        return cls(
            price_change_24h=_num(m.price_change_24h),
            volume_24h=_num(m.volume_24h),
            volume_change=_num(m.volume_change),
            liquidity=_num(m.liquidity),
            liquidity_change=_num(m.liquidity_change),
            holders=_num(m.holders),
            holders_change=_num(m.holders_change),
            concentration=_num(m.top_holder_concentration),
            token_age_hours=_num(m.token_age_hours),
            lp_locked=bool(m.lp_locked),
            lp_age=_num(m.lp_age),
            prior_tokens=_num(m.deployer_prior_tokens),
            rug_count=_num(m.deployer_rug_count),
            mint_authority=bool(m.mint_authority),
            freeze_authority=bool(m.freeze_authority),
        )


Evaluation = tuple[float, bool, str]


@dataclass(frozen=True)
class SignalRule:
    weight: float
    evaluate: Callable[[_Inputs], Evaluation]


def _volume_spike(m: _Inputs) -> Evaluation:
    triggered = m.volume_change > 50
    reason = (
        f"Volume +{m.volume_change:.0f}% spike detected"
        if triggered
        else f"Volume change {m.volume_change:.0f}% below threshold"
    )
    return min(10.0, m.volume_change / 20), triggered, reason


def _liquidity_change(m: _Inputs) -> Evaluation:
    triggered = m.liquidity_change > 10
    reason = (
        f"Liquidity +{m.liquidity_change:.1f}% increase"
        if triggered
        else f"Liquidity stable at {m.liquidity_change:.1f}%"
    )
    return _clamp(5 + m.liquidity_change / 5), triggered, reason


def _holder_growth(m: _Inputs) -> Evaluation:
    triggered = m.holders_change > 5
    reason = (
        f"Holders +{m.holders_change:.1f}% growth"
        if triggered
        else f"Holder growth {m.holders_change:.1f}% below threshold"
    )
    return min(10.0, m.holders_change), triggered, reason


def _whale_accumulation(m: _Inputs) -> Evaluation:
    triggered = m.concentration < 25 and m.holders_change > 3
    if triggered:
        return 7.0, True, "Healthy accumulation pattern detected"
    return 4.0, False, "No clear whale accumulation signal"


def _deployer_activity(m: _Inputs) -> Evaluation:
    if m.rug_count == 0 and m.prior_tokens > 0:
        return (
            8.0,
            True,
            f"Deployer has clean history ({m.prior_tokens:.0f} prior tokens, 0 rugs)",
        )
    if m.rug_count > 0:
        return 2.0, False, f"WARNING: Deployer has {m.rug_count:.0f} prior rugs"
    return 5.0, False, "New deployer - no history"


def _price_momentum(m: _Inputs) -> Evaluation:
    triggered = m.price_change_24h > 20
    reason = (
        f"Strong momentum +{m.price_change_24h:.1f}%"
        if triggered
        else f"Price change {m.price_change_24h:.1f}%"
    )
    return _clamp(5 + m.price_change_24h / 20), triggered, reason


def _drawdown_reclaim(m: _Inputs) -> Evaluation:
    triggered = 10 < m.price_change_24h < 50
    if triggered:
        return 7.0, True, "Potential reclaim pattern detected"
    return 4.0, False, "No clear drawdown reclaim"


def _lp_stability(m: _Inputs) -> Evaluation:
    stable = m.lp_locked or m.lp_age > 6
    triggered = stable and abs(m.liquidity_change) < 15
    if triggered:
        locked = " (locked)" if m.lp_locked else ""
        return 8.0, True, f"LP stable{locked}, age {m.lp_age:.1f}h"
    if stable:
        label = "LP locked but volatile" if m.lp_locked else f"LP aged {m.lp_age:.1f}h but volatile"
        return 6.0, False, label
    return 3.0, False, f"LP not locked, age {m.lp_age:.1f}h"


def _distribution_pattern(m: _Inputs) -> Evaluation:
    triggered = m.concentration < 20 and m.holders > 100
    if triggered:
        return 8.0, True, f"Healthy distribution (top holder {m.concentration:.1f}%)"
    return 4.0, False, f"Concentrated distribution ({m.concentration:.1f}%)"


def _social_velocity(_m: _Inputs) -> Evaluation:
    # No social data source yet.
    return 5.0, False, "Social data not available"


SIGNAL_RULES: dict[str, SignalRule] = {
    "volume-spike": SignalRule(1.5, _volume_spike),
    "liquidity-change": SignalRule(1.2, _liquidity_change),
    "holder-growth": SignalRule(1.3, _holder_growth),
    "whale-accumulation": SignalRule(1.4, _whale_accumulation),
    "deployer-activity": SignalRule(1.6, _deployer_activity),
    "social-velocity": SignalRule(1.0, _social_velocity),
    "price-momentum": SignalRule(1.2, _price_momentum),
    "drawdown-reclaim": SignalRule(1.4, _drawdown_reclaim),
    "lp-stability": SignalRule(1.3, _lp_stability),
    "distribution-pattern": SignalRule(1.5, _distribution_pattern),
}


def evaluate_signal(signal: str, metrics: TokenMetrics) -> SignalScore:
    """Score one signal in isolation. Unknown ids score 0 and never trigger."""
    rule = SIGNAL_RULES.get(signal)
    if rule is None:
        return SignalScore(signal, 0.0, 0.0, False, "Unknown signal")
    score, triggered, reason = rule.evaluate(_Inputs.from_metrics(metrics))
    return SignalScore(signal, _clamp(_num(score)), rule.weight, triggered, reason)


def check_thresholds(metrics: TokenMetrics, policy: Policy) -> list[str]:
    """Run all five threshold checks; every failure is reported."""
    m = _Inputs.from_metrics(metrics)
    t = policy.thresholds
    failed: list[str] = []

    if m.liquidity < t.min_liquidity:
        failed.append(f"Liquidity ${m.liquidity:.0f} < min ${t.min_liquidity:g}")
    if m.volume_24h < t.min_volume_24h:
        failed.append(f"Volume ${m.volume_24h:.0f} < min ${t.min_volume_24h:g}")
    if m.token_age_hours > t.max_token_age:
        failed.append(f"Token age {m.token_age_hours:.1f}h > max {t.max_token_age:g}h")
    if m.holders < t.min_holders:
        failed.append(f"Holders {m.holders:.0f} < min {t.min_holders}")
    if m.concentration > t.max_top_holder_concentration:
        failed.append(
            f"Top holder concentration {m.concentration:.1f}% "
            f"> max {t.max_top_holder_concentration:g}%"
        )
    return failed


def apply_penalties(score: float, metrics: TokenMetrics) -> float:
    m = _Inputs.from_metrics(metrics)
    if m.mint_authority:
        score *= MINT_AUTHORITY_PENALTY
    if m.freeze_authority:
        score *= FREEZE_AUTHORITY_PENALTY
    if m.rug_count > 0:
        score *= max(RUG_PENALTY_FLOOR, 1 - m.rug_count * RUG_PENALTY_PER_RUG)
    return _clamp(score)


def score_token(metrics: TokenMetrics, policy: Policy) -> ScoringResult:
    """Score a token snapshot against a policy."""
    failed = check_thresholds(metrics, policy)
    signals = tuple(evaluate_signal(signal, metrics) for signal in policy.enabled_signals)

    triggered = [s for s in signals if s.triggered]
    overall = 0.0
    total_weight = sum(s.weight for s in triggered)
    if total_weight > 0:
        overall = sum(s.score * s.weight for s in triggered) / total_weight

    return ScoringResult(
        overall_score=apply_penalties(overall, metrics),
        signals=signals,
        passes_thresholds=not failed,
        failed_thresholds=tuple(failed),
    )
