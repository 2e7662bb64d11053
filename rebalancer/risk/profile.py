"""Risk profile policy.

A risk profile is one immutable value per level. Every level carries its own
constants and the same pure methods read them, so there is no per-level
subclass to keep in sync.
"""

from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, Field

from ..core.types import RiskLevel

RISK_LEVELS: tuple[RiskLevel, ...] = ("conservative", "moderate", "aggressive")


class ScoreWeights(BaseModel):
    """Composite score weights."""

    model_config = ConfigDict(frozen=True)

    confidence: float
    sentiment: float
    momentum: float
    inverse_risk: float


class RiskCriteria(NamedTuple):
    max_risk_score: float
    min_liquidity_usd: float
    min_confidence: float


class RiskProfile(BaseModel):
    """Immutable scoring and filtering policy for one risk level."""

    model_config = ConfigDict(frozen=True)

    level: RiskLevel = Field(description="Risk level tag")
    reject_flagged: bool = Field(description="Reject assets flagged as compromised")
    max_risk_score: float = Field(description="Highest accepted risk score")
    confidence_floor: float = Field(description="Minimum candidate confidence")
    min_liquidity_usd: float = Field(description="Liquidity guideline for callers")
    weights: ScoreWeights = Field(description="Composite score weights")

    # confidence modifier: -(risk - pivot) * penalty, or +min(cap, risk * bonus)
    risk_penalty_per_point: float = Field(default=0.0)
    risk_penalty_pivot: float = Field(default=0.0)
    risk_bonus_per_point: float = Field(default=0.0)
    risk_bonus_cap: float = Field(default=0.0)

    # fear/greed alignment
    fear_bonus_below: float | None = Field(default=None)
    fear_bonus: float = Field(default=0.0)
    greed_bonus_above: float | None = Field(default=None)
    greed_bonus: float = Field(default=0.0)

    update_interval_hours: float = Field(description="Portfolio refresh interval")
    description: str = Field(default="", description="Human-readable summary")

    @classmethod
    def for_level(cls, level: RiskLevel) -> "RiskProfile":
        """Return the canonical profile for a risk level.

        Raises:
            ValueError: If the level is unknown
        """
        try:
            return _PROFILES[level]
        except KeyError:
            raise ValueError(
                f"Invalid risk level: {level}. Must be one of: {', '.join(RISK_LEVELS)}"
            ) from None

    @property
    def update_interval_seconds(self) -> float:
        return self.update_interval_hours * 3600

    def exceeds_risk_tolerance(self, is_flagged: bool, risk_score: float) -> bool:
        """Whether an asset falls outside this profile's risk tolerance."""
        if is_flagged and self.reject_flagged:
            return True
        return risk_score > self.max_risk_score

    def min_confidence(self) -> float:
        return self.confidence_floor

    def confidence_modifier(self, risk_score: float) -> float:
        """Profile-specific confidence adjustment for a risk score.

        Conservative profiles penalise risk above the pivot, aggressive
        profiles reward risk up to a cap, moderate profiles are neutral.
        """
        modifier = 0.0
        if self.risk_penalty_per_point:
            modifier -= max(
                0.0, (risk_score - self.risk_penalty_pivot) * self.risk_penalty_per_point
            )
        if self.risk_bonus_per_point:
            modifier += min(self.risk_bonus_cap, risk_score * self.risk_bonus_per_point)
        return modifier

    def fear_greed_alignment_bonus(self, fear_greed_value: float) -> float:
        """Market alignment bonus for the current fear/greed reading."""
        if self.fear_bonus_below is not None and fear_greed_value < self.fear_bonus_below:
            return self.fear_bonus
        if (
            self.greed_bonus_above is not None
            and fear_greed_value > self.greed_bonus_above
        ):
            return self.greed_bonus
        return 0.0

    def composite_score(
        self,
        confidence: float,
        sentiment_score: float,
        momentum_score: float,
        risk_score: float,
    ) -> float:
        """Weighted ranking score of a candidate."""
        w = self.weights
        return (
            confidence * w.confidence
            + sentiment_score * w.sentiment
            + momentum_score * w.momentum
            + (10 - risk_score) * w.inverse_risk
        )

    def criteria(self) -> RiskCriteria:
        return RiskCriteria(
            max_risk_score=self.max_risk_score,
            min_liquidity_usd=self.min_liquidity_usd,
            min_confidence=self.confidence_floor,
        )

    def describe(self) -> str:
        return (
            f"{self.level.capitalize()} (updates every "
            f"{self.update_interval_hours:g}h, min confidence {self.confidence_floor:g}%)"
        )


_PROFILES: dict[str, RiskProfile] = {
    "conservative": RiskProfile(
        level="conservative",
        reject_flagged=True,
        max_risk_score=4,
        confidence_floor=70,
        min_liquidity_usd=100_000,
        weights=ScoreWeights(
            confidence=0.4, sentiment=0.3, momentum=0.2, inverse_risk=1.0
        ),
        risk_penalty_per_point=5,
        risk_penalty_pivot=2,
        greed_bonus_above=75,
        greed_bonus=10,
        update_interval_hours=48,
        description="Safer tokens, higher liquidity requirements, updates every 48h",
    ),
    "moderate": RiskProfile(
        level="moderate",
        reject_flagged=True,
        max_risk_score=7,
        confidence_floor=50,
        min_liquidity_usd=100_000,
        weights=ScoreWeights(
            confidence=0.3, sentiment=0.3, momentum=0.3, inverse_risk=0.5
        ),
        update_interval_hours=24,
        description="Balanced risk/reward, standard approach, updates every 24h",
    ),
    "aggressive": RiskProfile(
        level="aggressive",
        reject_flagged=False,
        max_risk_score=10,
        confidence_floor=30,
        min_liquidity_usd=50_000,
        weights=ScoreWeights(
            confidence=0.2, sentiment=0.3, momentum=0.4, inverse_risk=0.2
        ),
        risk_bonus_per_point=2,
        risk_bonus_cap=10,
        fear_bonus_below=25,
        fear_bonus=15,
        update_interval_hours=6,
        description="Higher risk tolerance, volatile tokens, updates every 6h",
    ),
}
