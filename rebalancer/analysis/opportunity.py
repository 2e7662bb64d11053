"""Per-asset opportunity scoring and market-wide aggregation."""

import math

import structlog

from ..core.types import MarketAsset, MarketSnapshot, Opportunity

logger = structlog.get_logger(__name__)


def assess_opportunity(asset: MarketAsset) -> Opportunity:
    """Score a token as a trading opportunity.

    Starts from 50 and applies independent adjustments for price momentum,
    trade pressure, liquidity, provider risk, LP burn, authorities and
    volume. The score is not clamped; callers clamp where they need to.

    Args:
        asset: Candidate asset snapshot

    Returns:
        Opportunity with score, signals, risks and a recommendation
    """
    signals: list[str] = []
    risks: list[str] = []
    score = 50.0

    pool = asset.primary_pool
    if pool is None:
        return Opportunity(
            score=0, risks=["No liquidity pool found"], recommendation="avoid"
        )

    one_hour = asset.price_changes.get("1h")
    if one_hour is not None and math.isfinite(one_hour) and one_hour > 20:
        signals.append(f"Strong 1h momentum: +{one_hour:.1f}%")
        score += 15

    one_day = asset.price_changes.get("24h")
    if one_day is not None and math.isfinite(one_day) and one_day > 100:
        signals.append(f"Explosive 24h growth: +{one_day:.1f}%")
        score += 20

    buy_ratio = asset.buy_ratio
    if buy_ratio is None:
        risks.append("No trading activity (0 buys / 0 sells)")
        score -= 40
    else:
        if buy_ratio > 0.6:
            signals.append(f"High buy pressure: {buy_ratio * 100:.1f}% buys")
            score += 10
        elif buy_ratio < 0.4:
            risks.append(f"High sell pressure: {(1 - buy_ratio) * 100:.1f}% sells")
            score -= 10

        if asset.buys_count == 0:
            risks.append("No buys detected, possible dump or exit scam")
            score -= 30
        elif asset.sells_count == 0:
            risks.append("No sells detected, possible honeypot")
            score -= 30

    if pool.liquidity_usd > 500_000:
        signals.append(f"High liquidity: ${pool.liquidity_usd / 1000:.0f}K")
        score += 10
    elif pool.liquidity_usd < 50_000:
        risks.append(f"Low liquidity: ${pool.liquidity_usd / 1000:.0f}K")
        score -= 15

    if asset.risk.is_flagged:
        risks.append("Token flagged as rugged")
        score -= 50

    if asset.risk.score > 7:
        risks.append(f"High risk score: {asset.risk.score:g}/10")
        score -= 20
    elif asset.risk.score < 3:
        signals.append(f"Low risk score: {asset.risk.score:g}/10")
        score += 10

    if pool.lp_burn_pct == 100:
        signals.append("LP tokens 100% burned")
        score += 15
    elif pool.lp_burn_pct < 50:
        risks.append(f"LP tokens not burned: {pool.lp_burn_pct:g}%")
        score -= 10

    if not pool.mint_authority and not pool.freeze_authority:
        signals.append("Mint and freeze authority renounced")
        score += 10
    else:
        if pool.mint_authority:
            risks.append("Mint authority not renounced")
            score -= 5
        if pool.freeze_authority:
            risks.append("Freeze authority not renounced")
            score -= 5

    if pool.volume_usd > 1_000_000:
        signals.append(f"High volume: ${pool.volume_usd / 1_000_000:.1f}M")
        score += 15

    if score >= 80:
        recommendation = "strong_buy"
    elif score >= 65:
        recommendation = "buy"
    elif score >= 40:
        recommendation = "hold"
    else:
        recommendation = "avoid"

    return Opportunity(
        score=score, signals=signals, risks=risks, recommendation=recommendation
    )


def summarize_market(assets: list[MarketAsset], top_n: int = 5) -> MarketSnapshot:
    """Aggregate risk, performance and trade pressure over candidate assets."""
    total = len(assets)
    if total == 0:
        logger.warning("No assets to summarize")
        return MarketSnapshot(
            total_assets=0,
            average_risk_score=0.0,
            risk_distribution={"low": 0, "medium": 0, "high": 0},
            market_sentiment="neutral",
        )

    average_risk = sum(a.risk.score for a in assets) / total
    distribution = {
        "low": sum(1 for a in assets if a.risk.score <= 3),
        "medium": sum(1 for a in assets if 3 < a.risk.score <= 6),
        "high": sum(1 for a in assets if a.risk.score > 6),
    }

    performers = [
        a
        for a in assets
        if "1h" in a.price_changes and math.isfinite(a.price_changes["1h"])
    ]
    performers.sort(key=lambda a: a.price_changes["1h"], reverse=True)

    leaders = [a for a in assets if a.primary_pool is not None]
    leaders.sort(key=lambda a: a.primary_pool.volume_usd, reverse=True)

    total_buys = sum(a.buys_count for a in assets)
    total_sells = sum(a.sells_count for a in assets)
    trades = total_buys + total_sells
    buy_ratio = total_buys / trades if trades else 0.5

    if buy_ratio > 0.55:
        sentiment = "bullish"
    elif buy_ratio < 0.45:
        sentiment = "bearish"
    else:
        sentiment = "neutral"

    return MarketSnapshot(
        total_assets=total,
        average_risk_score=average_risk,
        risk_distribution=distribution,
        top_performers=performers[:top_n],
        volume_leaders=leaders[:top_n],
        market_sentiment=sentiment,
    )
