"""Core data types for the rebalancer."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

RiskLevel = Literal["conservative", "moderate", "aggressive"]
TrendDirection = Literal["rising", "falling", "stable"]
MoodTrend = Literal["improving", "declining", "stable"]
MarketCondition = Literal["bullish", "bearish", "neutral"]
RecommendedAction = Literal["build", "wait", "adjust"]
TradeAction = Literal["buy", "sell"]


class TopicScore(BaseModel):
    """Popularity sample for a tracked news topic."""

    model_config = ConfigDict(frozen=True)

    topic: str = Field(description="Topic name")
    popularity_score: float = Field(ge=0, le=100, description="Popularity (0-100)")
    ts: datetime = Field(description="Sample timestamp")


class TrendPoint(BaseModel):
    """Point-to-point trend for a topic."""

    model_config = ConfigDict(frozen=True)

    topic: str = Field(description="Topic name")
    current_score: float = Field(description="Latest popularity score")
    previous_score: float = Field(description="Previous popularity score")
    direction: TrendDirection = Field(description="Trend direction")
    strength_pct: float = Field(description="Percent change between samples")


class SentimentSnapshot(BaseModel):
    """Aggregate news sentiment over an interval."""

    model_config = ConfigDict(frozen=True)

    interval: Literal["24h", "48h"] = Field(default="24h", description="Window")
    total: int = Field(ge=0, description="Number of articles")
    positive_pct: float = Field(ge=0, le=100, description="Positive percentage")
    negative_pct: float = Field(ge=0, le=100, description="Negative percentage")
    neutral_pct: float = Field(ge=0, le=100, description="Neutral percentage")


class FearGreedSnapshot(BaseModel):
    """Fear and greed index reading with the previous day's value."""

    model_config = ConfigDict(frozen=True)

    today_value: int = Field(ge=0, le=100, description="Today's index value")
    today_classification: str = Field(description="Today's classification")
    yesterday_value: int = Field(ge=0, le=100, description="Yesterday's index value")
    yesterday_classification: str = Field(
        default="Unknown", description="Yesterday's classification"
    )
    change: int = Field(description="Today minus yesterday")
    derived_trend: Literal["increasing", "decreasing", "stable"] = Field(
        description="Direction of the day-over-day change"
    )

    @model_validator(mode="before")
    @classmethod
    def _derive_change(cls, data: Any) -> Any:
        if (
            isinstance(data, dict)
            and data.get("today_value") is not None
            and data.get("yesterday_value") is not None
        ):
            data = dict(data)
            if data.get("change") is None:
                data["change"] = int(data["today_value"]) - int(
                    data["yesterday_value"]
                )
            if data.get("derived_trend") is None:
                change = data["change"]
                data["derived_trend"] = (
                    "increasing"
                    if change > 0
                    else "decreasing"
                    if change < 0
                    else "stable"
                )
        return data


class PoolInfo(BaseModel):
    """Primary liquidity pool data for a token."""

    model_config = ConfigDict(frozen=True)

    liquidity_usd: float = Field(default=0.0, description="Pool liquidity in USD")
    volume_usd: float = Field(default=0.0, description="Pool volume in USD")
    lp_burn_pct: float = Field(default=0.0, description="Percentage of LP burned")
    mint_authority: str | None = Field(default=None, description="Mint authority")
    freeze_authority: str | None = Field(
        default=None, description="Freeze authority"
    )


class RiskAssessment(BaseModel):
    """Provider risk assessment for a token."""

    model_config = ConfigDict(frozen=True)

    is_flagged: bool = Field(default=False, description="Flagged as compromised")
    score: float = Field(ge=0, le=10, description="Risk score (0-10)")


class MarketAsset(BaseModel):
    """Candidate token snapshot from the market-data collaborator."""

    model_config = ConfigDict(frozen=True)

    mint: str = Field(description="Token mint address")
    symbol: str = Field(description="Token symbol")
    name: str = Field(default="", description="Token name")
    price_changes: dict[str, float] = Field(
        default_factory=dict, description="Price change percentage by timeframe"
    )
    buys_count: int = Field(default=0, ge=0, description="Buy transaction count")
    sells_count: int = Field(default=0, ge=0, description="Sell transaction count")
    primary_pool: PoolInfo | None = Field(default=None, description="Primary pool")
    risk: RiskAssessment = Field(description="Risk assessment")

    def price_change(self, timeframe: str) -> float:
        """Price change for a timeframe, 0 when missing."""
        return self.price_changes.get(timeframe, 0.0)

    @property
    def buy_ratio(self) -> float | None:
        """Share of buys among all trades, None without activity."""
        total = self.buys_count + self.sells_count
        if total == 0:
            return None
        return self.buys_count / total


class Opportunity(BaseModel):
    """Per-asset opportunity assessment."""

    score: float = Field(description="Opportunity score")
    signals: list[str] = Field(default_factory=list, description="Positive signals")
    risks: list[str] = Field(default_factory=list, description="Risk notes")
    recommendation: Literal["strong_buy", "buy", "hold", "avoid"] = Field(
        description="Recommendation"
    )


class MarketSnapshot(BaseModel):
    """Aggregate view over one cycle's candidate assets."""

    total_assets: int = Field(description="Number of assets analyzed")
    average_risk_score: float = Field(description="Mean provider risk score")
    risk_distribution: dict[str, int] = Field(
        default_factory=dict, description="Counts by low/medium/high risk"
    )
    top_performers: list[MarketAsset] = Field(
        default_factory=list, description="Best 1h price performers"
    )
    volume_leaders: list[MarketAsset] = Field(
        default_factory=list, description="Highest pool volume"
    )
    market_sentiment: MarketCondition = Field(
        description="Sentiment from aggregate buy ratio"
    )


class ScoredCandidate(BaseModel):
    """Asset with scores, produced and consumed within one build."""

    asset: MarketAsset = Field(description="Scored asset")
    sentiment_score: float = Field(description="Sentiment score (0-100)")
    momentum_score: float = Field(description="Momentum score (0-100)")
    confidence: float = Field(description="Confidence (0-100)")
    reasoning: str = Field(description="Human-readable selection reasons")


class PortfolioToken(BaseModel):
    """Token entry of a target portfolio."""

    model_config = ConfigDict(frozen=True)

    symbol: str = Field(description="Token symbol")
    mint: str = Field(description="Token mint address")
    name: str = Field(description="Token name")
    allocation_pct: float = Field(description="Allocation percentage")
    sentiment_score: float = Field(description="Sentiment score")
    risk_score: float = Field(description="Provider risk score")
    momentum_score: float = Field(description="Momentum score")
    confidence: float = Field(description="Confidence")
    reasoning: str = Field(description="Selection reasoning")


class PortfolioProvenance(BaseModel):
    """Market data the portfolio was built from."""

    model_config = ConfigDict(frozen=True)

    fear_greed_value: int = Field(description="Fear/greed value at creation")
    market_sentiment: MarketCondition = Field(description="Market sentiment")
    total_assets_analyzed: int = Field(description="Candidates considered")
    top_trending_topics: tuple[str, ...] = Field(
        default=(), description="Rising topics at creation"
    )


class Portfolio(BaseModel):
    """Immutable target portfolio."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Portfolio identifier")
    name: str = Field(description="Display name")
    created_at: datetime = Field(description="Creation timestamp")
    strategy: Literal["equal_weight"] = Field(default="equal_weight")
    risk_level: RiskLevel = Field(description="Risk profile used")
    tokens: tuple[PortfolioToken, ...] = Field(description="Selected tokens")
    provenance: PortfolioProvenance = Field(description="Source data summary")

    @property
    def total_allocation(self) -> float:
        return sum(t.allocation_pct for t in self.tokens)


class PortfolioAnalysis(BaseModel):
    """Derived quality report for a portfolio."""

    model_config = ConfigDict(frozen=True)

    portfolio: Portfolio = Field(description="Analyzed portfolio")
    average_risk_score: float = Field(description="Mean risk score")
    average_momentum_score: float = Field(description="Mean momentum score")
    average_sentiment_score: float = Field(description="Mean sentiment score")
    diversification_score: float = Field(description="Diversification (0-100)")
    market_alignment_score: float = Field(description="Market alignment (0-100)")
    recommended_action: RecommendedAction = Field(description="Suggested action")
    warnings: tuple[str, ...] = Field(default=(), description="Warnings")
    strengths: tuple[str, ...] = Field(default=(), description="Strengths")


class SellTarget(BaseModel):
    mint: str
    current_balance: float


class BuyTarget(BaseModel):
    mint: str
    symbol: str


class KeepTarget(BaseModel):
    mint: str


class HoldingDiff(BaseModel):
    """Sell/buy/keep sets moving holdings toward a target portfolio."""

    to_sell: list[SellTarget] = Field(default_factory=list)
    to_buy: list[BuyTarget] = Field(default_factory=list)
    to_keep: list[KeepTarget] = Field(default_factory=list)

    @property
    def is_aligned(self) -> bool:
        return not self.to_sell and not self.to_buy


class TradeInstruction(BaseModel):
    """Instruction sent to the execution boundary.

    For sells ``amount`` is the token quantity, for buys it is the quote
    (SOL) budget.
    """

    action: TradeAction = Field(description="buy or sell")
    mint: str = Field(description="Token mint address")
    amount: float = Field(ge=0, description="Token quantity or quote budget")
    reason: str = Field(description="Why the instruction was issued")


class TradeResult(BaseModel):
    """Outcome of one instruction."""

    instruction: TradeInstruction = Field(description="Issued instruction")
    success: bool = Field(description="Whether execution succeeded")
    detail: str = Field(default="", description="Error or execution detail")


class TrendSummary(BaseModel):
    """Aggregate topic-trend statistics."""

    topics_with_trends: int = 0
    rising_topics: int = 0
    falling_topics: int = 0
    stable_topics: int = 0
    avg_popularity_score: float = 0.0
    market_condition: MarketCondition = "neutral"
    sentiment_trend: MoodTrend = "stable"
    fear_greed_trend: MoodTrend = "stable"
    fear_greed_status: str = "Unknown"


class SentimentTrend(BaseModel):
    current: SentimentSnapshot | None = None
    previous: SentimentSnapshot | None = None
    trend: MoodTrend = "stable"
    change: float = 0.0


class FearGreedTrend(BaseModel):
    current: FearGreedSnapshot | None = None
    trend: MoodTrend = "stable"
    average_value: float = 50.0
    volatility: float = 0.0


class RebalanceReport(BaseModel):
    """Outcome of one rebalance."""

    analysis: PortfolioAnalysis = Field(description="Target portfolio analysis")
    diff: HoldingDiff = Field(description="Computed holding diff")
    results: list[TradeResult] = Field(
        default_factory=list, description="Instruction outcomes in issue order"
    )
    verified_count: int = Field(default=0, description="Targets with a balance")
    failed_tokens: list[str] = Field(
        default_factory=list, description="Targets that failed verification"
    )

    @property
    def success_ratio(self) -> float:
        target_count = len(self.analysis.portfolio.tokens)
        if target_count == 0:
            return 0.0
        return self.verified_count / target_count
