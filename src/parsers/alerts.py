"""Chat message formatting for calls, bonus alerts and pinned-asset alerts.

All output is Discord-flavoured markdown (``**bold**``, inline code,
``[label](url)`` links). Telegram receives the same text as plain text.
"""

import math
from typing import Literal

from src.parsers.call_types import AlertMention, CallCard, CallPerformance, DisplaySettings, TokenMetrics
from src.parsers.dexscreener.models import DexScreenerPair

PriceAlertType = Literal["pump", "major_buy"]

SOCIAL_PRIORITY = ["twitter", "telegram", "discord", "medium", "github", "reddit"]
SOCIAL_LABELS = {
    "twitter": "X",
    "telegram": "Telegram",
    "discord": "Discord",
    "medium": "Medium",
    "github": "GitHub",
    "reddit": "Reddit",
}
MAX_SOCIAL_LINKS = 4
LOW_LIQUIDITY_USD = 10_000
DUMPING_PRICE_CHANGE_M5 = -10

MENTIONS: dict[str, str] = {"everyone": "@everyone", "here": "@here", "none": ""}


def dexscreener_url(mint: str) -> str:
    return f"https://dexscreener.com/solana/{mint}"


def short_address(address: str, head: int = 6, tail: int = 4) -> str:
    if len(address) <= head + tail:
        return address
    return f"{address[:head]}...{address[-tail:]}"


def format_usd_price(value: float) -> str:
    if not math.isfinite(value):
        return "$0"
    if value >= 1:
        return f"${value:.2f}"
    if value >= 0.01:
        return f"${value:.4f}"
    return f"${value:.8f}"


def format_short_number(value: float) -> str:
    if not math.isfinite(value):
        return "0"
    if value >= 1_000_000_000:
        return f"{value / 1_000_000_000:.2f}B"
    if value >= 1_000_000:
        return f"{value / 1_000_000:.2f}M"
    if value >= 1_000:
        return f"{value / 1_000:.1f}K"
    return f"{value:.0f}"


def _format_number(value: float) -> str:
    # Call card style: 1.25M / 12.5k / 12.34
    if value >= 1_000_000:
        return f"{value / 1_000_000:.2f}M"
    if value >= 1_000:
        return f"{value / 1_000:.1f}k"
    return f"{value:.2f}"


def _signed(value: float) -> str:
    return f"+{value:.1f}" if value >= 0 else f"{value:.1f}"


def _ratio_label(pair: DexScreenerPair, suffix: str = "x") -> str:
    buys, sells = pair.txns_at("m5")
    if sells > 0:
        return f"{buys / sells:.2f}{suffix}"
    return "∞" if buys > 0 else f"0{suffix}"


def _normalize_social_type(social_type: str | None) -> str:
    normalized = (social_type or "").lower()
    return "twitter" if normalized == "x" else normalized


def extract_social_links(pair: DexScreenerPair) -> list[tuple[str, str]]:
    """(label, url) pairs ordered by SOCIAL_PRIORITY, then a website; at most four."""
    socials = pair.info.socials if pair.info else []
    websites = pair.info.websites if pair.info else []

    by_type: dict[str, str] = {}
    for social in socials:
        social_type = _normalize_social_type(social.type)
        if social_type and social.url and social_type not in by_type:
            by_type[social_type] = social.url

    ordered: list[tuple[str, str]] = []
    for social_type in SOCIAL_PRIORITY:
        url = by_type.pop(social_type, None)
        if url:
            ordered.append((SOCIAL_LABELS[social_type], url))
    for social_type, url in by_type.items():
        ordered.append((SOCIAL_LABELS.get(social_type, social_type), url))

    website = next((site.url for site in websites if site.url), None)
    if website:
        ordered.append(("Website", website))

    return ordered[:MAX_SOCIAL_LINKS]


def has_twitter_link(pair: DexScreenerPair) -> bool:
    socials = pair.info.socials if pair.info else []
    for social in socials:
        if _normalize_social_type(social.type) == "twitter":
            return True
        url = (social.url or "").lower()
        if "twitter.com" in url or "x.com" in url:
            return True
    return False


def _risk_counts(card: CallCard) -> str:
    high = sum(1 for r in card.risks if r.type == "high")
    medium = sum(1 for r in card.risks if r.type == "medium")
    low = sum(1 for r in card.risks if r.type == "low")
    return f"{high}H/{medium}M/{low}L"


def format_call_card(card: CallCard) -> str:
    m = card.metrics
    mint = card.token.mint
    price_line = f"{format_usd_price(m.price)} ({_signed(m.price_change_24h)}%/24h)"
    metrics_line = " | ".join([
        f"Price {price_line}",
        f"Vol {_format_number(m.volume_24h)}",
        f"Liq {_format_number(m.liquidity)}",
        f"Holders {m.holders}",
        f"Age {m.token_age_hours:.1f}h",
    ])
    return "\n".join([
        f"**${card.token.symbol}** `{short_address(mint)}` | "
        f"Score {card.confidence:.1f}/10 | {card.policy.name}",
        metrics_line,
        f"Triggers {len(card.triggers)} | Pros {len(card.pros)} | "
        f"Risks {_risk_counts(card)} | ID {card.call_id}",
        f"CA: `{mint}` | 📊 [DexScreener]({dexscreener_url(mint)})",
    ])


def format_call_card_compact(card: CallCard) -> str:
    mint = card.token.mint
    return "\n".join([
        f"**${card.token.symbol}** `{short_address(mint)}` | Score {card.confidence:.1f}/10 | "
        f"Trig {len(card.triggers)} | Risks {_risk_counts(card)}",
        f"CA: `{mint}` | 📊 [DexScreener]({dexscreener_url(mint)}) | ID {card.call_id}",
    ])


def format_creator_whale_line(metrics: TokenMetrics) -> str | None:
    if not metrics.creator_is_whale or not metrics.creator_address:
        return None
    hold_pct = metrics.creator_hold_pct
    if hold_pct is None or not math.isfinite(hold_pct):
        return None
    return f"🐋 Creator wallet {hold_pct:.2f}% | `{short_address(metrics.creator_address)}`"


def format_graduation_call(
    symbol: str,
    mint: str,
    pair: DexScreenerPair,
    score: float,
    metrics: TokenMetrics,
    display: DisplaySettings | None = None,
) -> str:
    """Compact autopost message for a freshly graduated token."""
    change_m5 = pair.price_change_at("m5")
    buys, sells = pair.txns_at("m5")
    liquidity = pair.liquidity_usd

    flags: list[str] = []
    if liquidity < LOW_LIQUIDITY_USD:
        flags.append("Low liq")
    if change_m5 < DUMPING_PRICE_CHANGE_M5:
        flags.append("Dumping")
    flag_segment = f" | Flags {', '.join(flags)}" if flags else ""

    socials = " • ".join(f"[{label}]({url})" for label, url in extract_social_links(pair)[:2])
    social_segment = f"🔗 {socials} | " if socials else ""
    creator_line = (
        format_creator_whale_line(metrics) if display and display.show_creator_whale else None
    )
    sign = "+" if change_m5 > 0 else ""

    lines = [
        f"🎓 **${symbol}** | Score {score:.1f} | "
        f"Price {format_usd_price(pair.price_usd)} ({sign}{change_m5:.1f}% 5m)",
        f"Liq ${format_short_number(liquidity)} | "
        f"Vol5m ${format_short_number(pair.volume_at('m5'))} | "
        f"MCap ${format_short_number(float(pair.marketCap or 0))} | "
        f"Buys/Sells 5m {buys}/{sells} ({_ratio_label(pair, suffix='')}x){flag_segment}",
        creator_line,
        f"{social_segment}📊 [DexScreener]({pair.url or dexscreener_url(mint)}) | "
        f"`{short_address(mint)}`",
    ]
    return "\n".join(line for line in lines if line)


def format_bonus_alert(performance: CallPerformance, pair: DexScreenerPair, roi_pct: float) -> str:
    price = pair.price_usd or performance.last_price
    change_m5 = pair.price_change_at("m5")
    buys, sells = pair.txns_at("m5")
    url = pair.url or dexscreener_url(performance.token_address)
    return "\n".join([
        f"⚡ **BONUS BUYING POWER** | **${performance.token_symbol}** "
        f"+{roi_pct:.1f}% since call",
        f"Price {format_usd_price(price)} ({_signed(change_m5)}% 5m) | "
        f"Buys/Sells 5m {buys}/{sells} ({_ratio_label(pair)}) | "
        f"Vol5m ${format_short_number(pair.volume_at('m5'))} | "
        f"ATH {format_usd_price(performance.ath_price or price)}",
        f"📊 [DexScreener]({url}) | `{performance.call_id}`",
    ])


def format_price_alert(
    pair: DexScreenerPair,
    alert_type: PriceAlertType,
    *,
    mint: str,
    symbol: str,
    avg_buy_sol: float | None = None,
    mention: AlertMention = "everyone",
) -> str:
    change_m5 = pair.price_change_at("m5")
    buys, sells = pair.txns_at("m5")
    title = f"🚀 **${symbol} PUMPING**" if alert_type == "pump" else f"🐋 **${symbol} MAJOR BUY**"
    extra = ""
    if alert_type == "major_buy" and avg_buy_sol is not None and math.isfinite(avg_buy_sol):
        extra = f" | Est. avg buy {avg_buy_sol:.1f} SOL"
    prefix = MENTIONS.get(mention, "@everyone")
    header = f"{prefix} {title}" if prefix else title

    return "\n".join([
        f"{header} | Price {format_usd_price(pair.price_usd)} ({_signed(change_m5)}% 5m)",
        f"Vol5m ${format_short_number(pair.volume_at('m5'))} | "
        f"Buys/Sells 5m {buys}/{sells} ({_ratio_label(pair)}) | "
        f"Liq ${format_short_number(pair.liquidity_usd)}{extra}",
        f"CA: `{mint}` | 📊 [DexScreener]({pair.url or dexscreener_url(mint)})",
    ])
