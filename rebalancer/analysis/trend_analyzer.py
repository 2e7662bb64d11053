"""Trend analysis over bounded topic, sentiment and fear/greed history."""

import math
from collections import deque
from collections.abc import Iterable

import structlog

from ..core.types import (
    FearGreedSnapshot,
    FearGreedTrend,
    MarketCondition,
    SentimentSnapshot,
    SentimentTrend,
    TopicScore,
    TrendPoint,
    TrendSummary,
)

logger = structlog.get_logger(__name__)

DEFAULT_HISTORY_WINDOW = 24
STABLE_TOPIC_CHANGE_PCT = 5.0
STABLE_SENTIMENT_CHANGE = 2.0
FEAR_GREED_TREND_THRESHOLD = 5.0
FEAR_GREED_WINDOW = 3
CONDITION_RATIO = 1.5


def _round2(value: float) -> float:
    return math.floor(value * 100 + 0.5) / 100


def classify_market_condition(rising: int, falling: int) -> MarketCondition:
    """Classify the market from rising vs falling topic counts."""
    if rising > falling * CONDITION_RATIO:
        return "bullish"
    if falling > rising * CONDITION_RATIO:
        return "bearish"
    return "neutral"


class TrendAnalyzer:
    """In-memory trend analyzer with fixed-size FIFO histories."""

    def __init__(self, max_history: int = DEFAULT_HISTORY_WINDOW) -> None:
        """Initialize trend analyzer.

        Args:
            max_history: Points kept per topic and indicator; oldest evicted first
        """
        if max_history < 1:
            raise ValueError(f"max_history must be positive, got {max_history}")

        self.max_history = max_history
        self._topic_history: dict[str, deque[TopicScore]] = {}
        self._sentiment_history: deque[SentimentSnapshot] = deque(maxlen=max_history)
        self._fear_greed_history: deque[FearGreedSnapshot] = deque(
            maxlen=max_history
        )

    def record_topic_scores(self, scores: Iterable[TopicScore]) -> None:
        """Append topic scores to their per-topic histories."""
        count = 0
        for score in scores:
            history = self._topic_history.get(score.topic)
            if history is None:
                history = deque(maxlen=self.max_history)
                self._topic_history[score.topic] = history
            history.append(score)
            count += 1

        logger.debug(
            "Updated topic history",
            scores=count,
            topics_tracked=len(self._topic_history),
        )

    def record_sentiment(self, snapshot: SentimentSnapshot) -> None:
        self._sentiment_history.append(snapshot)
        logger.debug(
            "Added sentiment snapshot",
            positive_pct=snapshot.positive_pct,
            entries=len(self._sentiment_history),
        )

    def record_fear_greed(self, snapshot: FearGreedSnapshot) -> None:
        self._fear_greed_history.append(snapshot)
        logger.debug(
            "Added fear/greed snapshot",
            value=snapshot.today_value,
            classification=snapshot.today_classification,
            entries=len(self._fear_greed_history),
        )

    @staticmethod
    def _trend_for(topic: str, history: deque[TopicScore]) -> TrendPoint | None:
        if len(history) < 2:
            return None

        current = history[-1].popularity_score
        previous = history[-2].popularity_score

        if previous == 0:
            strength = 100.0 if current > 0 else 0.0
        else:
            strength = (current - previous) / previous * 100

        if abs(strength) <= STABLE_TOPIC_CHANGE_PCT:
            direction = "stable"
        elif strength > 0:
            direction = "rising"
        else:
            direction = "falling"

        return TrendPoint(
            topic=topic,
            current_score=current,
            previous_score=previous,
            direction=direction,
            strength_pct=_round2(strength),
        )

    def compute_trends(self) -> list[TrendPoint]:
        """Compute trends for topics with at least two samples.

        Returns:
            Trends sorted by descending absolute strength
        """
        trends = []
        insufficient = 0
        for topic, history in self._topic_history.items():
            trend = self._trend_for(topic, history)
            if trend is None:
                insufficient += 1
                continue
            trends.append(trend)

        trends.sort(key=lambda t: abs(t.strength_pct), reverse=True)

        logger.info(
            "Trend analysis completed",
            topics_tracked=len(self._topic_history),
            trends=len(trends),
            insufficient_history=insufficient,
        )
        return trends

    def top_trending_topics(
        self, limit: int = 10, trends: list[TrendPoint] | None = None
    ) -> list[TrendPoint]:
        trends = self.compute_trends() if trends is None else trends
        return [t for t in trends if t.direction == "rising"][:limit]

    def falling_topics(
        self, limit: int = 10, trends: list[TrendPoint] | None = None
    ) -> list[TrendPoint]:
        trends = self.compute_trends() if trends is None else trends
        return [t for t in trends if t.direction == "falling"][:limit]

    def topic_momentum(self, topic: str) -> float:
        """Popularity boosted by rising trends and cut by falling ones."""
        history = self._topic_history.get(topic)
        if not history:
            return 0.0
        trend = self._trend_for(topic, history)
        if trend is None:
            return 0.0

        momentum = trend.current_score
        if trend.direction == "rising":
            momentum += abs(trend.strength_pct) * 2
        elif trend.direction == "falling":
            momentum -= abs(trend.strength_pct)
        return max(0.0, momentum)

    def topics_by_momentum(self) -> list[tuple[str, float]]:
        ranked = [(topic, self.topic_momentum(topic)) for topic in self._topic_history]
        ranked.sort(key=lambda item: item[1], reverse=True)
        return ranked

    def topic_history(self, topic: str) -> list[TopicScore]:
        return list(self._topic_history.get(topic, ()))

    def current_sentiment(self) -> SentimentSnapshot | None:
        return self._sentiment_history[-1] if self._sentiment_history else None

    def current_fear_greed(self) -> FearGreedSnapshot | None:
        return self._fear_greed_history[-1] if self._fear_greed_history else None

    def sentiment_trend(self) -> SentimentTrend:
        """Compare positive percentage of the last two sentiment snapshots."""
        if len(self._sentiment_history) < 2:
            return SentimentTrend(current=self.current_sentiment())

        current = self._sentiment_history[-1]
        previous = self._sentiment_history[-2]
        change = current.positive_pct - previous.positive_pct

        if abs(change) < STABLE_SENTIMENT_CHANGE:
            trend = "stable"
        elif change > 0:
            trend = "improving"
        else:
            trend = "declining"

        return SentimentTrend(
            current=current, previous=previous, trend=trend, change=_round2(change)
        )

    def fear_greed_trend(self) -> FearGreedTrend:
        """Mean, volatility and window-over-window trend of fear/greed values."""
        if not self._fear_greed_history:
            return FearGreedTrend()

        values = [fg.today_value for fg in self._fear_greed_history]
        average = sum(values) / len(values)
        variance = sum((v - average) ** 2 for v in values) / len(values)

        trend = "stable"
        if len(values) >= FEAR_GREED_WINDOW:
            recent = values[-FEAR_GREED_WINDOW:]
            older = values[-2 * FEAR_GREED_WINDOW : -FEAR_GREED_WINDOW]
            if len(recent) >= 2 and len(older) >= 2:
                change = sum(recent) / len(recent) - sum(older) / len(older)
                if abs(change) > FEAR_GREED_TREND_THRESHOLD:
                    trend = "improving" if change > 0 else "declining"

        return FearGreedTrend(
            current=self._fear_greed_history[-1],
            trend=trend,
            average_value=_round2(average),
            volatility=_round2(math.sqrt(variance)),
        )

    def summary_stats(self, trends: list[TrendPoint] | None = None) -> TrendSummary:
        """Aggregate trend counts and the overall market condition.

        Args:
            trends: Previously computed trends; computed fresh when omitted
        """
        trends = self.compute_trends() if trends is None else trends

        rising = sum(1 for t in trends if t.direction == "rising")
        falling = sum(1 for t in trends if t.direction == "falling")
        stable = sum(1 for t in trends if t.direction == "stable")
        avg_popularity = (
            sum(t.current_score for t in trends) / len(trends) if trends else 0.0
        )

        fear_greed = self.fear_greed_trend()

        return TrendSummary(
            topics_with_trends=len(trends),
            rising_topics=rising,
            falling_topics=falling,
            stable_topics=stable,
            avg_popularity_score=avg_popularity,
            market_condition=classify_market_condition(rising, falling),
            sentiment_trend=self.sentiment_trend().trend,
            fear_greed_trend=fear_greed.trend,
            fear_greed_status=(
                fear_greed.current.today_classification
                if fear_greed.current
                else "Unknown"
            ),
        )
