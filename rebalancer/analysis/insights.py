"""Human-readable market insights for analysis summaries."""

from ..core.types import FearGreedTrend, MarketSnapshot, SentimentTrend, TrendSummary


def generate_market_insights(
    stats: TrendSummary,
    fear_greed: FearGreedTrend,
    sentiment: SentimentTrend,
    market: MarketSnapshot,
) -> list[str]:
    """Build a list of actionable insights from the current signals."""
    insights = []

    if market.average_risk_score > 6:
        insights.append("High market risk detected, consider conservative positions")
    elif market.total_assets and market.average_risk_score < 3:
        insights.append("Low market risk environment, good for position building")

    if sentiment.current is not None:
        positive = sentiment.current.positive_pct
        if positive > 60 and sentiment.trend == "improving":
            insights.append(
                "Strong positive sentiment momentum, consider increasing exposure"
            )
        elif positive < 35 and sentiment.trend == "declining":
            insights.append("Negative sentiment trend, wait for reversal signals")

    if fear_greed.current is not None:
        value = fear_greed.current.today_value
        change = fear_greed.current.change
        if value > 75 and change > 10:
            insights.append("Rapidly increasing greed, bubble risk increasing")
        elif value < 25 and change < -10:
            insights.append("Capitulation detected, potential reversal opportunity")

    if stats.market_condition == "bullish" and market.market_sentiment == "bullish":
        insights.append("Aligned bullish signals, favorable for portfolio building")
    elif stats.market_condition == "bearish" and market.market_sentiment == "bearish":
        insights.append("Bearish alignment, defensive strategy recommended")
    else:
        insights.append("Mixed signals, selective approach with quality tokens")

    if stats.rising_topics > stats.falling_topics * 2:
        insights.append("Strong momentum across topics, trend-following favored")
    elif stats.falling_topics > stats.rising_topics * 2:
        insights.append("Momentum cooling, wait for stabilization")

    return insights


def sentiment_interpretation(positive_pct: float) -> str:
    if positive_pct > 60:
        return "Very Bullish"
    if positive_pct > 50:
        return "Bullish"
    if positive_pct > 40:
        return "Neutral"
    if positive_pct > 30:
        return "Bearish"
    return "Very Bearish"


def fear_greed_recommendation(value: float) -> str:
    if value > 75:
        return "Extreme greed, consider taking profits"
    if value > 55:
        return "Greed, good time for a balanced approach"
    if value > 45:
        return "Neutral, wait for clearer signals"
    if value > 25:
        return "Fear, potential buying opportunity"
    return "Extreme fear, strong contrarian buying opportunity"
