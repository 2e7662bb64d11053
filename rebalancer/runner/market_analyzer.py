"""Market refresh step: gather signals, merge them and cache the results."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from ..analysis.insights import (
    fear_greed_recommendation,
    generate_market_insights,
    sentiment_interpretation,
)
from ..analysis.opportunity import summarize_market
from ..analysis.trend_analyzer import TrendAnalyzer
from ..core.interfaces import MarketDataSource, NewsSource
from ..core.types import (
    MarketAsset,
    MarketSnapshot,
    RiskLevel,
    TopicScore,
    TrendPoint,
    TrendSummary,
)

logger = structlog.get_logger(__name__)

EXTREME_FEAR = 25
EXTREME_GREED = 75
STRONG_POSITIVE_SENTIMENT = 65
WEAK_POSITIVE_SENTIMENT = 35
RISING_TOPIC_RATIO = 1.5


class MarketAnalyzer:
    """Refreshes market signals and keeps the latest cycle's view cached."""

    def __init__(
        self,
        news_source: NewsSource,
        market_source: MarketDataSource,
        trend_analyzer: TrendAnalyzer,
        timeout_seconds: float = 60.0,
    ) -> None:
        """Initialize market analyzer.

        Args:
            news_source: Topic, sentiment and fear/greed collaborator
            market_source: Candidate asset collaborator
            trend_analyzer: History store the fetched signals are merged into
            timeout_seconds: Timeout applied to each collaborator call
        """
        self.news_source = news_source
        self.market_source = market_source
        self.trend_analyzer = trend_analyzer
        self.timeout_seconds = timeout_seconds

        self.trends: list[TrendPoint] = []
        self.candidate_assets: list[MarketAsset] = []
        self.current_topics: list[TopicScore] = []
        self.market: MarketSnapshot = summarize_market([])
        self.last_refresh_failures: list[str] = []

    async def _fetch(self, name: str, call: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await asyncio.wait_for(call(), timeout=self.timeout_seconds)
        except TimeoutError:
            logger.error(
                "Market data fetch timed out",
                source=name,
                timeout_seconds=self.timeout_seconds,
            )
        except Exception as e:
            logger.error("Failed to fetch market data", source=name, error=str(e))

        self.last_refresh_failures.append(name)
        return None

    async def refresh(self) -> None:
        """Fetch all signals concurrently and merge them into the history.

        A failed or timed-out source is treated as unavailable for this
        cycle; the refresh continues with whatever succeeded.
        """
        self.last_refresh_failures = []

        topic_scores, sentiment, fear_greed, assets = await asyncio.gather(
            self._fetch("topics", self.news_source.fetch_topic_scores),
            self._fetch("sentiment", self.news_source.fetch_sentiment),
            self._fetch("fear_greed", self.news_source.fetch_fear_greed),
            self._fetch("candidates", self.market_source.fetch_candidate_assets),
        )

        self.current_topics = list(topic_scores or [])
        if self.current_topics:
            self.trend_analyzer.record_topic_scores(self.current_topics)
        if sentiment is not None:
            self.trend_analyzer.record_sentiment(sentiment)
        if fear_greed is not None:
            self.trend_analyzer.record_fear_greed(fear_greed)

        self.candidate_assets = list(assets or [])
        self.market = summarize_market(self.candidate_assets)
        self.trends = self.trend_analyzer.compute_trends()

        logger.info(
            "Market refresh completed",
            topics=len(self.current_topics),
            candidates=len(self.candidate_assets),
            trends=len(self.trends),
            failed_sources=self.last_refresh_failures,
        )
        self._log_summary()

    def summary_stats(self) -> TrendSummary:
        return self.trend_analyzer.summary_stats(trends=self.trends)

    def determine_risk_level(self) -> RiskLevel:
        """Pick a risk level from cached fear/greed, sentiment and trends.

        Extreme fear scores +2 and extreme greed -2; strong positive
        sentiment +1 and weak -1; a bullish condition +1 and bearish -2;
        rising topics outnumbering falling ones 1.5 to 1 adds +1. A total of
        2 or more is aggressive, -2 or less conservative.
        """
        stats = self.summary_stats()
        fear_greed = self.trend_analyzer.current_fear_greed()
        sentiment = self.trend_analyzer.current_sentiment()

        score = 0
        if fear_greed is not None:
            if fear_greed.today_value < EXTREME_FEAR:
                score += 2
            elif fear_greed.today_value > EXTREME_GREED:
                score -= 2

        positive = sentiment.positive_pct if sentiment is not None else 50.0
        if positive > STRONG_POSITIVE_SENTIMENT:
            score += 1
        elif positive < WEAK_POSITIVE_SENTIMENT:
            score -= 1

        if stats.market_condition == "bullish":
            score += 1
        elif stats.market_condition == "bearish":
            score -= 2

        if stats.rising_topics > stats.falling_topics * RISING_TOPIC_RATIO:
            score += 1

        if score >= 2:
            level = "aggressive"
        elif score <= -2:
            level = "conservative"
        else:
            level = "moderate"

        logger.info(
            "Risk level determined",
            risk_level=level,
            score=score,
            market_condition=stats.market_condition,
            fear_greed=fear_greed.today_value if fear_greed else None,
            positive_pct=positive,
        )
        return level

    def insights(self) -> list[str]:
        return generate_market_insights(
            self.summary_stats(),
            self.trend_analyzer.fear_greed_trend(),
            self.trend_analyzer.sentiment_trend(),
            self.market,
        )

    def _log_summary(self) -> None:
        stats = self.summary_stats()
        sentiment = self.trend_analyzer.sentiment_trend()
        fear_greed = self.trend_analyzer.fear_greed_trend()

        logger.info(
            "Analysis summary",
            market_condition=stats.market_condition,
            topics_with_trends=stats.topics_with_trends,
            rising_topics=stats.rising_topics,
            falling_topics=stats.falling_topics,
            sentiment_trend=stats.sentiment_trend,
            fear_greed_status=stats.fear_greed_status,
            fear_greed_trend=stats.fear_greed_trend,
        )

        if sentiment.current is not None:
            logger.info(
                "Sentiment analysis",
                positive_pct=sentiment.current.positive_pct,
                negative_pct=sentiment.current.negative_pct,
                articles=sentiment.current.total,
                trend=sentiment.trend,
                change=sentiment.change,
                interpretation=sentiment_interpretation(sentiment.current.positive_pct),
            )

        top_trending = self.trend_analyzer.top_trending_topics(5, trends=self.trends)
        if top_trending:
            logger.info(
                "Top trending topics",
                topics={t.topic: t.strength_pct for t in top_trending},
            )
        else:
            logger.info("No trending topics detected (insufficient history)")

        if fear_greed.current is not None:
            logger.info(
                "Fear and greed",
                today=fear_greed.current.today_value,
                classification=fear_greed.current.today_classification,
                yesterday=fear_greed.current.yesterday_value,
                change=fear_greed.current.change,
                trend=fear_greed.trend,
                average=fear_greed.average_value,
                volatility=fear_greed.volatility,
                recommendation=fear_greed_recommendation(
                    fear_greed.current.today_value
                ),
            )

        logger.info(
            "Token analysis",
            market_sentiment=self.market.market_sentiment,
            total_assets=self.market.total_assets,
            average_risk=round(self.market.average_risk_score, 1),
            risk_distribution=self.market.risk_distribution,
            insights=self.insights(),
        )
