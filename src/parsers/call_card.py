"""Call card generation: immutable decision receipts.

A call card freezes everything that went into a call: the metrics snapshot,
the policy fingerprint, triggered rules, pros, risk flags and the
conditions under which the call should be considered invalid.
"""

import secrets
import string
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol

from loguru import logger

from src.parsers.call_types import (
    CallCard,
    CallCardPolicy,
    CallCardReceipts,
    CallCardToken,
    Policy,
    RiskFlag,
    ScoringResult,
    SignalScore,
    TokenMetrics,
)
from src.parsers.errors import DataFetchError
from src.parsers.policies import hash_policy
from src.parsers.scoring import score_token

POLICY_VERSION = "1.0.0"
MODEL_VERSION = "callcaster-v1.0"
PROMPT_VERSION = "1.0.0"
MAX_PROS = 5

_BASE36 = string.digits + string.ascii_uppercase


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_call_id() -> str:
    """Time-ordered id with a random suffix, e.g. CC-MB3K9Q2X-4F7Z1A."""
    timestamp = _to_base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"CC-{timestamp}-{suffix}"


def generate_pros(metrics: TokenMetrics) -> list[str]:
    pros: list[str] = []

    if metrics.volume_change > 100:
        pros.append(f"Strong volume momentum (+{metrics.volume_change:.0f}%)")
    elif metrics.volume_change > 50:
        pros.append(f"Good volume increase (+{metrics.volume_change:.0f}%)")

    if metrics.holders_change > 10:
        pros.append(f"Rapid holder growth (+{metrics.holders_change:.1f}%)")
    elif metrics.holders_change > 5:
        pros.append(f"Healthy holder growth (+{metrics.holders_change:.1f}%)")

    if metrics.lp_locked:
        pros.append("LP is locked")

    if not metrics.mint_authority and not metrics.freeze_authority:
        pros.append("No mint/freeze authority (renounced)")

    if metrics.deployer_rug_count == 0 and metrics.deployer_prior_tokens > 0:
        pros.append(f"Clean deployer history ({metrics.deployer_prior_tokens} prior tokens)")

    if metrics.top_holder_concentration < 15:
        pros.append(
            f"Well-distributed supply (top {metrics.top_holder_concentration:.1f}%)"
        )

    if metrics.liquidity > 20_000:
        pros.append(f"Strong liquidity (${metrics.liquidity / 1000:.1f}k)")

    if not pros:
        pros.append("Meets minimum threshold requirements")

    return pros[:MAX_PROS]


def generate_risk_flags(metrics: TokenMetrics) -> list[RiskFlag]:
    flags: list[RiskFlag] = []

    if metrics.mint_authority:
        flags.append(RiskFlag(type="high", message="Mint authority enabled - supply can be inflated"))
    if metrics.freeze_authority:
        flags.append(RiskFlag(type="high", message="Freeze authority enabled - tokens can be frozen"))
    if metrics.deployer_rug_count > 0:
        flags.append(RiskFlag(
            type="high",
            message=f"Deployer has {metrics.deployer_rug_count} prior rug(s)",
            signal="deployer-activity",
        ))

    concentration = metrics.top_holder_concentration
    if concentration > 30:
        flags.append(RiskFlag(
            type="high",
            message=f"Top holder concentration very high ({concentration:.1f}%)",
            signal="distribution-pattern",
        ))
    elif concentration > 20:
        flags.append(RiskFlag(
            type="medium",
            message=f"Top holder concentration elevated ({concentration:.1f}%)",
            signal="distribution-pattern",
        ))

    if not metrics.lp_locked and metrics.lp_age < 6:
        flags.append(RiskFlag(
            type="medium",
            message=f"LP not locked and young ({metrics.lp_age:.1f}h)",
            signal="lp-stability",
        ))
    if metrics.token_age_hours < 1:
        flags.append(RiskFlag(
            type="medium",
            message=f"Very new token ({metrics.token_age_hours * 60:.0f} minutes old)",
        ))
    if metrics.holders < 100:
        flags.append(RiskFlag(
            type="low",
            message=f"Low holder count ({metrics.holders})",
            signal="holder-growth",
        ))
    if metrics.deployer_prior_tokens == 0:
        flags.append(RiskFlag(
            type="low",
            message="First-time deployer - no track record",
            signal="deployer-activity",
        ))

    return flags


def generate_invalidation_conditions(metrics: TokenMetrics, policy: Policy) -> list[str]:
    conditions = [
        f"Price drops >30% from current level (${metrics.price:.8f})",
        f"24h volume drops below ${policy.thresholds.min_volume_24h * 0.5:.0f}",
        f"Liquidity drops below ${metrics.liquidity * 0.7:.0f}",
        "Holder count decreases by >10%",
    ]
    if not metrics.lp_locked:
        conditions.append("LP is removed or significantly reduced")
    return conditions


def generate_call_card(
    metrics: TokenMetrics,
    policy: Policy,
    result: ScoringResult,
    *,
    now: datetime | None = None,
) -> CallCard:
    """Freeze a scoring decision into a CallCard."""
    now = now or datetime.now(UTC).replace(tzinfo=None)
    triggered: tuple[SignalScore, ...] = result.triggered
    confidence = round(min(10.0, max(0.0, result.overall_score)), 1)
    stamp_ms = int(now.replace(tzinfo=UTC).timestamp() * 1000)

    return CallCard(
        call_id=generate_call_id(),
        timestamp=now,
        token=CallCardToken(symbol=metrics.symbol, mint=metrics.mint, name=metrics.name),
        policy=CallCardPolicy(name=policy.name, version=POLICY_VERSION, hash=hash_policy(policy)),
        triggers=tuple(s.reason for s in triggered),
        pros=tuple(generate_pros(metrics)),
        risks=tuple(generate_risk_flags(metrics)),
        invalidation=tuple(generate_invalidation_conditions(metrics, policy)),
        confidence=confidence,
        metrics=metrics,
        receipts=CallCardReceipts(
            input_refs=(f"metrics:{metrics.mint}:{stamp_ms}",),
            rules_triggered=tuple(s.signal for s in triggered),
            model_version=MODEL_VERSION,
            prompt_version=PROMPT_VERSION,
        ),
    )


class MetricsSource(Protocol):
    async def get_token_metrics(self, mint: str) -> TokenMetrics | None: ...


@dataclass
class CallRequestResult:
    success: bool
    card: CallCard | None = None
    error: str | None = None


async def process_call_request(
    mint: str,
    policy: Policy,
    source: MetricsSource,
) -> CallRequestResult:
    """Manual call: fetch metrics, score, and build a card if the policy allows it."""
    try:
        metrics = await source.get_token_metrics(mint)
    except DataFetchError as e:
        logger.warning(f"[CALL] Metrics fetch failed for {mint[:12]}: {e}")
        return CallRequestResult(False, error="Could not fetch token metrics")

    if metrics is None:
        return CallRequestResult(False, error="Could not fetch token metrics")

    result = score_token(metrics, policy)
    if not result.passes_thresholds:
        return CallRequestResult(
            False,
            error="Token fails thresholds:\n" + "\n".join(result.failed_thresholds),
        )

    if result.overall_score < policy.thresholds.min_confidence_score:
        return CallRequestResult(
            False,
            error=(
                f"Confidence {result.overall_score:.1f} below minimum "
                f"{policy.thresholds.min_confidence_score:g}"
            ),
        )

    return CallRequestResult(True, card=generate_call_card(metrics, policy, result))
