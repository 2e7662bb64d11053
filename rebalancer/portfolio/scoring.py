"""Candidate scoring heuristics and diversified selection."""

import structlog

from ..core.types import MarketAsset, Opportunity, ScoredCandidate
from ..risk.profile import RiskProfile

logger = structlog.get_logger(__name__)

PREFIX_LENGTH = 3
MAX_PER_PREFIX = 2
MAX_REASONS = 4

SHORT_TERM = ("5m", "15m", "1h")
MEDIUM_TERM = ("2h", "4h", "6h")
LONG_TERM = ("12h", "24h")


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _average_change(asset: MarketAsset, timeframes: tuple[str, ...]) -> float:
    return sum(asset.price_change(tf) for tf in timeframes) / len(timeframes)


def symbol_prefix(symbol: str) -> str:
    return symbol[:PREFIX_LENGTH].upper()


def sentiment_score(asset: MarketAsset) -> float:
    """Market sentiment score (0-100) from price action, pressure and depth."""
    score = 50.0

    change_1h = asset.price_change("1h")
    if change_1h > 10:
        score += 15
    elif change_1h > 5:
        score += 10
    elif change_1h < -10:
        score -= 15
    elif change_1h < -5:
        score -= 10

    change_24h = asset.price_change("24h")
    if change_24h > 50:
        score += 20
    elif change_24h > 20:
        score += 15
    elif change_24h < -30:
        score -= 20
    elif change_24h < -15:
        score -= 15

    buy_ratio = asset.buy_ratio
    if buy_ratio is not None:
        if buy_ratio > 0.7:
            score += 15
        elif buy_ratio > 0.6:
            score += 10
        elif buy_ratio < 0.3:
            score -= 15
        elif buy_ratio < 0.4:
            score -= 10

    pool = asset.primary_pool
    if pool is not None:
        if pool.liquidity_usd > 1_000_000:
            score += 10
        elif pool.liquidity_usd > 500_000:
            score += 5
        elif pool.liquidity_usd < 100_000:
            score -= 10

        if pool.volume_usd > 5_000_000:
            score += 10
        elif pool.volume_usd > 1_000_000:
            score += 5

    return _clamp(score)


def momentum_score(asset: MarketAsset) -> float:
    """Momentum score (0-100) across short, medium and long timeframes."""
    score = 50.0

    short = _average_change(asset, SHORT_TERM)
    if short > 5:
        score += 20
    elif short > 2:
        score += 10
    elif short < -5:
        score -= 20
    elif short < -2:
        score -= 10

    medium = _average_change(asset, MEDIUM_TERM)
    if medium > 10:
        score += 15
    elif medium > 5:
        score += 8
    elif medium < -10:
        score -= 15
    elif medium < -5:
        score -= 8

    long = _average_change(asset, LONG_TERM)
    if long > 20:
        score += 15
    elif long > 10:
        score += 8
    elif long < -20:
        score -= 15
    elif long < -10:
        score -= 8

    return _clamp(score)


def confidence_score(
    asset: MarketAsset, opportunity: Opportunity, profile: RiskProfile
) -> float:
    """Confidence (0-100) seeded from the opportunity score.

    Flagged assets always get zero confidence.
    """
    if asset.risk.is_flagged:
        return 0.0

    confidence = opportunity.score
    risk = asset.risk.score

    if risk > 8:
        confidence -= 30
    elif risk > 6:
        confidence -= 20
    elif risk > 4:
        confidence -= 10
    elif risk < 3:
        confidence += 10

    pool = asset.primary_pool
    if pool is not None:
        if pool.liquidity_usd < 50_000:
            confidence -= 20
        elif pool.liquidity_usd > 1_000_000:
            confidence += 10

        if pool.lp_burn_pct == 100:
            confidence += 10
        elif pool.lp_burn_pct < 50:
            confidence -= 10

        if not pool.mint_authority and not pool.freeze_authority:
            confidence += 10

    confidence += profile.confidence_modifier(risk)
    return _clamp(confidence)


def build_reasoning(asset: MarketAsset, opportunity: Opportunity) -> str:
    """Short selection rationale from whichever signal bands fired."""
    reasons = []

    change_1h = asset.price_change("1h")
    change_24h = asset.price_change("24h")
    if change_1h > 10:
        reasons.append(f"Strong 1h momentum (+{change_1h:.1f}%)")
    if change_24h > 50:
        reasons.append(f"Explosive 24h growth (+{change_24h:.1f}%)")

    if asset.risk.score <= 3:
        reasons.append(f"Low risk score ({asset.risk.score:g}/10)")

    buy_ratio = asset.buy_ratio
    if buy_ratio is not None and buy_ratio > 0.6:
        reasons.append(f"Strong buy pressure ({buy_ratio * 100:.0f}% buys)")

    pool = asset.primary_pool
    if pool is not None:
        if pool.liquidity_usd > 500_000:
            reasons.append(f"High liquidity (${pool.liquidity_usd / 1000:.0f}K)")
        if pool.lp_burn_pct == 100:
            reasons.append("LP 100% burned")

    reasons.extend(opportunity.signals[:2])

    return ", ".join(reasons[:MAX_REASONS]) or "Selected based on overall scoring"


def composite(candidate: ScoredCandidate, profile: RiskProfile) -> float:
    return profile.composite_score(
        confidence=candidate.confidence,
        sentiment_score=candidate.sentiment_score,
        momentum_score=candidate.momentum_score,
        risk_score=candidate.asset.risk.score,
    )


def select_top_candidates(
    candidates: list[ScoredCandidate], target_count: int, profile: RiskProfile
) -> list[ScoredCandidate]:
    """Pick the best candidates by composite score with a prefix cap.

    At most two selections share a three-character symbol prefix. When the
    cap leaves the selection short, the remaining best candidates are added
    regardless of prefix and the backfill is logged.
    """
    if target_count <= 0:
        return []

    ranked = sorted(candidates, key=lambda c: composite(c, profile), reverse=True)

    selected: list[ScoredCandidate] = []
    prefix_counts: dict[str, int] = {}
    for candidate in ranked:
        if len(selected) >= target_count:
            break
        prefix = symbol_prefix(candidate.asset.symbol)
        count = prefix_counts.get(prefix, 0)
        if count < MAX_PER_PREFIX:
            selected.append(candidate)
            prefix_counts[prefix] = count + 1

    if len(selected) < target_count:
        chosen = {c.asset.mint for c in selected}
        backfill = [c for c in ranked if c.asset.mint not in chosen]
        backfill = backfill[: target_count - len(selected)]
        if backfill:
            logger.warning(
                "Diversification cap exceeded to reach target count",
                target_count=target_count,
                capped_count=len(selected),
                backfilled=[c.asset.symbol for c in backfill],
            )
            selected.extend(backfill)

    return selected
