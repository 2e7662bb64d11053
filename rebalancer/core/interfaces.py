"""Collaborator interfaces for the rebalancer."""

from typing import Protocol, runtime_checkable

from .types import (
    FearGreedSnapshot,
    MarketAsset,
    Opportunity,
    SentimentSnapshot,
    TopicScore,
    TradeInstruction,
    TradeResult,
)


class MarketDataSource(Protocol):
    """Market data collaborator protocol."""

    async def fetch_candidate_assets(self) -> list[MarketAsset]:
        """Fetch the current candidate asset snapshots."""
        ...

    def assess_opportunity(self, asset: MarketAsset) -> Opportunity:
        """Score a single asset as a trading opportunity."""
        ...


class NewsSource(Protocol):
    """News, sentiment and fear/greed collaborator protocol."""

    async def fetch_topic_scores(self) -> list[TopicScore]:
        """Fetch popularity scores for tracked topics."""
        ...

    async def fetch_sentiment(self) -> SentimentSnapshot | None:
        """Fetch aggregate news sentiment."""
        ...

    async def fetch_fear_greed(self) -> FearGreedSnapshot | None:
        """Fetch the fear and greed index."""
        ...


@runtime_checkable
class WalletClient(Protocol):
    """Wallet and execution boundary protocol."""

    async def get_holdings(self) -> dict[str, float]:
        """Return token balances by mint."""
        ...

    async def get_available_balance(self) -> float:
        """Return the spendable quote (SOL) balance."""
        ...

    async def execute(self, instruction: TradeInstruction) -> TradeResult:
        """Execute a single buy or sell instruction."""
        ...
