"""Equal-weight portfolio construction and analysis."""

import math
import time
from collections.abc import Callable
from datetime import UTC, datetime

import structlog

from ..analysis.opportunity import assess_opportunity, summarize_market
from ..analysis.trend_analyzer import TrendAnalyzer
from ..core.types import (
    MarketAsset,
    MarketSnapshot,
    Opportunity,
    Portfolio,
    PortfolioAnalysis,
    PortfolioProvenance,
    PortfolioToken,
    RecommendedAction,
    ScoredCandidate,
    TrendPoint,
)
from ..risk.profile import RiskProfile
from ..utils.validation import is_valid_mint
from .scoring import (
    MAX_PER_PREFIX,
    build_reasoning,
    confidence_score,
    momentum_score,
    select_top_candidates,
    sentiment_score,
    symbol_prefix,
)

logger = structlog.get_logger(__name__)

DEFAULT_FEAR_GREED = 50
DEFAULT_POSITIVE_SENTIMENT = 50.0


def _round1(value: float) -> float:
    return math.floor(value * 10 + 0.5) / 10


class PortfolioService:
    """Builds scored, diversified equal-weight portfolios."""

    def __init__(
        self,
        trend_analyzer: TrendAnalyzer,
        assess: Callable[[MarketAsset], Opportunity] = assess_opportunity,
        now_fn: Callable[[], float] | None = None,
    ) -> None:
        """Initialize portfolio service.

        Args:
            trend_analyzer: Source of cached sentiment and fear/greed state
            assess: Opportunity scorer used to seed confidence
            now_fn: Optional function to get current timestamp (for testing)
        """
        self.trend_analyzer = trend_analyzer
        self.assess = assess
        self._now_fn = now_fn or time.time

    def score_candidates(
        self, assets: list[MarketAsset], profile: RiskProfile
    ) -> list[ScoredCandidate]:
        """Filter and score candidate assets for a risk profile.

        Only the first occurrence of each mint is scored.
        """
        scored = []
        seen_mints: set[str] = set()
        for asset in assets:
            if asset.mint in seen_mints:
                logger.debug(
                    "Skipping duplicate candidate",
                    symbol=asset.symbol,
                    token_mint=asset.mint,
                )
                continue
            seen_mints.add(asset.mint)

            if not is_valid_mint(asset.mint):
                logger.warning(
                    "Dropping candidate with invalid mint",
                    symbol=asset.symbol,
                    token_mint=asset.mint,
                )
                continue

            if profile.exceeds_risk_tolerance(asset.risk.is_flagged, asset.risk.score):
                logger.debug(
                    "Candidate exceeds risk tolerance",
                    symbol=asset.symbol,
                    risk_score=asset.risk.score,
                    flagged=asset.risk.is_flagged,
                    risk_level=profile.level,
                )
                continue

            opportunity = self.assess(asset)
            confidence = confidence_score(asset, opportunity, profile)
            if confidence < profile.min_confidence():
                logger.debug(
                    "Candidate below confidence threshold",
                    symbol=asset.symbol,
                    confidence=confidence,
                    min_confidence=profile.min_confidence(),
                )
                continue

            scored.append(
                ScoredCandidate(
                    asset=asset,
                    sentiment_score=sentiment_score(asset),
                    momentum_score=momentum_score(asset),
                    confidence=confidence,
                    reasoning=build_reasoning(asset, opportunity),
                )
            )

        return scored

    def build_equal_allocation_portfolio(
        self,
        target_count: int,
        risk_profile: RiskProfile,
        candidate_assets: list[MarketAsset],
        trends: list[TrendPoint] | None = None,
    ) -> PortfolioAnalysis:
        """Build an equal-weight portfolio and its analysis.

        Args:
            target_count: Desired number of tokens
            risk_profile: Policy for filtering and ranking
            candidate_assets: This cycle's candidate snapshots
            trends: Cached topic trends; computed fresh when omitted

        Returns:
            Analysis wrapping the new portfolio. Fewer than ``target_count``
            tokens are selected when not enough candidates qualify.
        """
        if target_count < 1:
            raise ValueError(f"target_count must be positive, got {target_count}")

        trends = self.trend_analyzer.compute_trends() if trends is None else trends
        market = summarize_market(candidate_assets)
        fear_greed = self.trend_analyzer.current_fear_greed()
        top_topics = self.trend_analyzer.top_trending_topics(10, trends=trends)

        logger.info(
            "Building portfolio",
            target_count=target_count,
            risk_level=risk_profile.level,
            candidates=len(candidate_assets),
            market_sentiment=market.market_sentiment,
            fear_greed=fear_greed.today_value if fear_greed else None,
        )

        scored = self.score_candidates(candidate_assets, risk_profile)
        selected = select_top_candidates(scored, target_count, risk_profile)

        if len(selected) < target_count:
            logger.warning(
                "Not enough qualifying candidates",
                selected=len(selected),
                target_count=target_count,
                scored=len(scored),
            )

        allocation = 100 / len(selected) if selected else 0.0
        tokens = tuple(
            PortfolioToken(
                symbol=c.asset.symbol,
                mint=c.asset.mint,
                name=c.asset.name,
                allocation_pct=allocation,
                sentiment_score=c.sentiment_score,
                risk_score=c.asset.risk.score,
                momentum_score=c.momentum_score,
                confidence=c.confidence,
                reasoning=c.reasoning,
            )
            for c in selected
        )

        now = self._now_fn()
        portfolio = Portfolio(
            id=f"portfolio_{int(now * 1000)}",
            name=f"Equal Weight {risk_profile.level.capitalize()} Portfolio",
            created_at=datetime.fromtimestamp(now, tz=UTC),
            risk_level=risk_profile.level,
            tokens=tokens,
            provenance=PortfolioProvenance(
                fear_greed_value=(
                    fear_greed.today_value if fear_greed else DEFAULT_FEAR_GREED
                ),
                market_sentiment=market.market_sentiment,
                total_assets_analyzed=len(candidate_assets),
                top_trending_topics=tuple(t.topic for t in top_topics),
            ),
        )

        analysis = self.analyze_portfolio(
            portfolio, market, risk_profile, target_count=target_count
        )

        logger.info(
            "Portfolio built",
            portfolio_id=portfolio.id,
            tokens=[t.symbol for t in portfolio.tokens],
            allocation_pct=allocation,
            recommended_action=analysis.recommended_action,
            warnings=len(analysis.warnings),
        )
        return analysis

    def analyze_portfolio(
        self,
        portfolio: Portfolio,
        market: MarketSnapshot,
        risk_profile: RiskProfile,
        target_count: int | None = None,
    ) -> PortfolioAnalysis:
        """Derive averages, scores, warnings and strengths for a portfolio."""
        tokens = portfolio.tokens
        count = len(tokens)

        if count:
            avg_risk = sum(t.risk_score for t in tokens) / count
            avg_momentum = sum(t.momentum_score for t in tokens) / count
            avg_sentiment = sum(t.sentiment_score for t in tokens) / count
        else:
            avg_risk = avg_momentum = avg_sentiment = 0.0

        alignment = self._market_alignment(market, risk_profile)

        warnings = self._warnings(portfolio, avg_risk, market, target_count)
        strengths = self._strengths(portfolio, avg_momentum, avg_sentiment)

        return PortfolioAnalysis(
            portfolio=portfolio,
            average_risk_score=_round1(avg_risk),
            average_momentum_score=_round1(avg_momentum),
            average_sentiment_score=_round1(avg_sentiment),
            diversification_score=_round1(diversification_score(portfolio)),
            market_alignment_score=_round1(alignment),
            recommended_action=recommend_action(alignment, avg_risk, market),
            warnings=tuple(warnings),
            strengths=tuple(strengths),
        )

    def _market_alignment(self, market: MarketSnapshot, profile: RiskProfile) -> float:
        score = 50.0

        if market.market_sentiment == "bullish":
            score += 20
        elif market.market_sentiment == "bearish":
            score -= 20

        fear_greed = self.trend_analyzer.current_fear_greed()
        fear_greed_value = fear_greed.today_value if fear_greed else DEFAULT_FEAR_GREED
        score += profile.fear_greed_alignment_bonus(fear_greed_value)

        sentiment = self.trend_analyzer.current_sentiment()
        positive = sentiment.positive_pct if sentiment else DEFAULT_POSITIVE_SENTIMENT
        if positive > 60:
            score += 10
        elif positive < 40:
            score -= 10

        return max(0.0, min(100.0, score))

    @staticmethod
    def _warnings(
        portfolio: Portfolio,
        avg_risk: float,
        market: MarketSnapshot,
        target_count: int | None,
    ) -> list[str]:
        warnings = []
        tokens = portfolio.tokens

        if target_count is not None and len(tokens) < target_count:
            warnings.append(
                f"Only {len(tokens)} of {target_count} target tokens met the selection criteria"
            )

        if avg_risk > 6:
            warnings.append(
                "High average risk score - consider more conservative tokens"
            )

        if market.market_sentiment == "bearish":
            warnings.append(
                "Current market sentiment is bearish - timing may not be optimal"
            )

        high_risk = sum(1 for t in tokens if t.risk_score > 7)
        if high_risk:
            warnings.append(f"{high_risk} tokens have high risk scores (>7/10)")

        low_confidence = sum(1 for t in tokens if t.confidence < 60)
        if low_confidence:
            warnings.append(
                f"{low_confidence} tokens have low confidence scores (<60%)"
            )

        prefix_counts: dict[str, int] = {}
        for t in tokens:
            prefix = symbol_prefix(t.symbol)
            prefix_counts[prefix] = prefix_counts.get(prefix, 0) + 1
        crowded = sum(1 for n in prefix_counts.values() if n > MAX_PER_PREFIX)
        if crowded:
            warnings.append(
                f"{crowded} symbol groups exceed the diversification cap"
            )

        return warnings

    @staticmethod
    def _strengths(
        portfolio: Portfolio, avg_momentum: float, avg_sentiment: float
    ) -> list[str]:
        strengths = []
        tokens = portfolio.tokens
        if not tokens:
            return strengths

        if avg_momentum > 70:
            strengths.append("Strong momentum across selected tokens")

        if avg_sentiment > 70:
            strengths.append("Positive sentiment indicators for most tokens")

        low_risk = sum(1 for t in tokens if t.risk_score < 4)
        if low_risk >= len(tokens) / 2:
            strengths.append("Majority of tokens have low risk scores")

        high_confidence = sum(1 for t in tokens if t.confidence > 80)
        if high_confidence:
            strengths.append(
                f"{high_confidence} tokens have high confidence scores (>80%)"
            )

        strengths.append(
            "Equal allocation provides balanced exposure and risk distribution"
        )
        return strengths


def diversification_score(portfolio: Portfolio) -> float:
    """Average of prefix uniqueness and allocation evenness (0-100)."""
    tokens = portfolio.tokens
    if not tokens:
        return 0.0

    unique_prefixes = {symbol_prefix(t.symbol) for t in tokens}
    prefix_diversity = len(unique_prefixes) / len(tokens) * 100

    expected = 100 / len(tokens)
    deviation = sum(abs(t.allocation_pct - expected) for t in tokens) / len(tokens)
    allocation_score = max(0.0, 100 - deviation * 10)

    return (prefix_diversity + allocation_score) / 2


def recommend_action(
    alignment: float, avg_risk: float, market: MarketSnapshot
) -> RecommendedAction:
    if alignment > 70 and avg_risk < 5:
        return "build"
    if market.market_sentiment == "bearish" or avg_risk > 7:
        return "wait"
    return "adjust"
