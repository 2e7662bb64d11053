"""Tests for the rebalancing controller."""

import asyncio
from datetime import datetime

import base58
import pytest

from rebalancer.analysis.opportunity import assess_opportunity
from rebalancer.analysis.trend_analyzer import TrendAnalyzer
from rebalancer.core.interfaces import MarketDataSource, NewsSource, WalletClient
from rebalancer.core.types import (
    FearGreedSnapshot,
    MarketAsset,
    Opportunity,
    PoolInfo,
    Portfolio,
    PortfolioProvenance,
    PortfolioToken,
    RiskAssessment,
    SentimentSnapshot,
    TopicScore,
    TradeInstruction,
    TradeResult,
)
from rebalancer.portfolio.service import PortfolioService
from rebalancer.runner.controller import (
    BUY_REASON,
    SELL_REASON,
    RebalancingController,
    compute_holding_diff,
)
from rebalancer.runner.market_analyzer import MarketAnalyzer

HOUR = 3600.0


def make_mint(seed: int) -> str:
    return base58.b58encode(bytes([seed]) * 32).decode()


def quality_asset(symbol: str, seed: int) -> MarketAsset:
    """Asset that qualifies under every risk profile."""
    return MarketAsset(
        mint=make_mint(seed),
        symbol=symbol,
        name=symbol.title(),
        price_changes={"1h": 3, "24h": 10},
        buys_count=60,
        sells_count=40,
        primary_pool=PoolInfo(
            liquidity_usd=600_000, volume_usd=2_000_000, lp_burn_pct=100
        ),
        risk=RiskAssessment(score=2),
    )


class Clock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class MockNewsSource(NewsSource):
    """Mock news source with stable signals unless changed."""

    def __init__(self):
        self.topics = {"solana": 50.0}
        self.fear_greed = (50, 48)
        self.gate: asyncio.Event | None = None
        self.calls = 0

    async def fetch_topic_scores(self) -> list[TopicScore]:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        return [
            TopicScore(topic=t, popularity_score=v, ts=datetime.now())
            for t, v in self.topics.items()
        ]

    async def fetch_sentiment(self) -> SentimentSnapshot | None:
        return SentimentSnapshot(
            total=100, positive_pct=50, negative_pct=30, neutral_pct=20
        )

    async def fetch_fear_greed(self) -> FearGreedSnapshot | None:
        today, yesterday = self.fear_greed
        return FearGreedSnapshot(
            today_value=today, today_classification="Neutral", yesterday_value=yesterday
        )


class MockMarketSource(MarketDataSource):
    def __init__(self, assets: list[MarketAsset]):
        self.assets = assets

    async def fetch_candidate_assets(self) -> list[MarketAsset]:
        return list(self.assets)

    def assess_opportunity(self, asset: MarketAsset) -> Opportunity:
        return assess_opportunity(asset)


class MockWallet(WalletClient):
    """Mock wallet recording every call in order."""

    def __init__(
        self,
        holdings: dict[str, float] | None = None,
        balance: float = 10.0,
        sell_proceeds: float = 1.0,
        fail_mints: set[str] | None = None,
        fail_holdings: bool = False,
        slow_mints: set[str] | None = None,
    ):
        self.holdings = dict(holdings or {})
        self.balance = balance
        self.sell_proceeds = sell_proceeds
        self.fail_mints = fail_mints or set()
        self.fail_holdings = fail_holdings
        self.slow_mints = slow_mints or set()
        self.calls: list[str] = []
        self.instructions: list[TradeInstruction] = []

    async def get_holdings(self) -> dict[str, float]:
        self.calls.append("get_holdings")
        if self.fail_holdings:
            raise ConnectionError("rpc down")
        return dict(self.holdings)

    async def get_available_balance(self) -> float:
        self.calls.append("get_available_balance")
        return self.balance

    async def execute(self, instruction: TradeInstruction) -> TradeResult:
        self.calls.append(f"{instruction.action}:{instruction.mint}")
        self.instructions.append(instruction)
        if instruction.mint in self.slow_mints:
            await asyncio.sleep(1.0)
        if instruction.mint in self.fail_mints:
            raise RuntimeError("swap failed")
        if instruction.action == "sell":
            self.holdings.pop(instruction.mint, None)
            self.balance += self.sell_proceeds
        else:
            self.holdings[instruction.mint] = 1.0
            self.balance -= instruction.amount
        return TradeResult(instruction=instruction, success=True)


def make_controller(
    wallet: MockWallet,
    assets: list[MarketAsset] | None = None,
    news: MockNewsSource | None = None,
    clock: Clock | None = None,
    portfolio_size: int = 2,
    instruction_timeout: float = 5,
) -> RebalancingController:
    clock = clock or Clock()
    trend_analyzer = TrendAnalyzer()
    market_analyzer = MarketAnalyzer(
        news_source=news or MockNewsSource(),
        market_source=MockMarketSource(
            assets
            if assets is not None
            else [quality_asset("AAA", 1), quality_asset("BBB", 2)]
        ),
        trend_analyzer=trend_analyzer,
        timeout_seconds=5,
    )
    return RebalancingController(
        market_analyzer=market_analyzer,
        portfolio_service=PortfolioService(trend_analyzer, now_fn=clock),
        wallet=wallet,
        portfolio_size=portfolio_size,
        instruction_timeout_seconds=instruction_timeout,
        now_fn=clock,
    )


def make_portfolio(*mints: str) -> Portfolio:
    tokens = tuple(
        PortfolioToken(
            symbol=f"T{i}",
            mint=mint,
            name=f"Token {i}",
            allocation_pct=100 / len(mints),
            sentiment_score=50,
            risk_score=2,
            momentum_score=50,
            confidence=80,
            reasoning="test",
        )
        for i, mint in enumerate(mints)
    )
    return Portfolio(
        id="p",
        name="Test",
        created_at=datetime.now(),
        risk_level="moderate",
        tokens=tokens,
        provenance=PortfolioProvenance(
            fear_greed_value=50, market_sentiment="neutral", total_assets_analyzed=0
        ),
    )


class TestComputeHoldingDiff:
    """Test the pure holding diff."""

    def test_sell_buy_keep(self):
        portfolio = make_portfolio("keep", "new")
        holdings = {"keep": 5.0, "old": 3.0, "dust": 0.0, "new": 0.0}

        diff = compute_holding_diff(holdings, portfolio)

        assert [s.mint for s in diff.to_sell] == ["old"]
        assert diff.to_sell[0].current_balance == 3.0
        assert [b.mint for b in diff.to_buy] == ["new"]
        assert diff.to_buy[0].symbol == "T1"
        assert [k.mint for k in diff.to_keep] == ["keep"]

    def test_aligned(self):
        diff = compute_holding_diff({"a": 1.0}, make_portfolio("a"))
        assert diff.is_aligned


class TestReconcile:
    """Test instruction ordering and sizing."""

    @pytest.mark.asyncio
    async def test_sells_before_buys(self):
        aaa, bbb = make_mint(1), make_mint(2)
        wallet = MockWallet(holdings={"old1": 5.0, "old2": 2.0}, balance=1.0)
        controller = make_controller(wallet)

        report = await controller.run_cycle()

        trade_calls = [c for c in wallet.calls if ":" in c]
        assert trade_calls == ["sell:old1", "sell:old2", f"buy:{aaa}", f"buy:{bbb}"]
        assert [i.reason for i in wallet.instructions] == [
            SELL_REASON,
            SELL_REASON,
            BUY_REASON,
            BUY_REASON,
        ]
        assert wallet.instructions[0].amount == 5.0

        # balance refreshed after the sells: (1 + 2 proceeds) * 0.99 / 2 buys
        assert wallet.instructions[2].amount == pytest.approx(3.0 * 0.99 / 2)
        balance_index = wallet.calls.index("get_available_balance")
        assert balance_index > wallet.calls.index("sell:old2")
        assert balance_index < wallet.calls.index(f"buy:{aaa}")

        assert report.verified_count == 2
        assert report.success_ratio == 1.0
        assert report.failed_tokens == []

    @pytest.mark.asyncio
    async def test_keeps_existing_positions(self):
        aaa, bbb = make_mint(1), make_mint(2)
        wallet = MockWallet(holdings={aaa: 4.0})
        controller = make_controller(wallet)

        report = await controller.run_cycle()

        assert [k.mint for k in report.diff.to_keep] == [aaa]
        assert [i.mint for i in wallet.instructions] == [bbb]
        assert wallet.instructions[0].amount == pytest.approx(10.0 * 0.99)

    @pytest.mark.asyncio
    async def test_failed_instruction_does_not_abort(self):
        aaa, bbb = make_mint(1), make_mint(2)
        wallet = MockWallet(fail_mints={aaa})
        controller = make_controller(wallet)

        report = await controller.run_cycle()

        assert [r.success for r in report.results] == [False, True]
        assert report.results[0].detail == "swap failed"
        assert report.verified_count == 1
        assert report.failed_tokens == ["AAA - No balance"]
        assert controller.current_portfolio is not None

    @pytest.mark.asyncio
    async def test_timed_out_instruction_fails_only_that_step(self):
        aaa, bbb = make_mint(1), make_mint(2)
        wallet = MockWallet(slow_mints={aaa})
        controller = make_controller(wallet, instruction_timeout=0.05)

        report = await controller.run_cycle()

        assert [i.mint for i in wallet.instructions] == [aaa, bbb]
        assert report.results[0].success is False
        assert report.results[0].detail == "timeout"
        assert report.results[1].success is True
        assert report.failed_tokens == ["AAA - No balance"]
        assert controller.current_portfolio is not None
        assert controller.last_error is None

    @pytest.mark.asyncio
    async def test_no_balance_skips_buys(self):
        wallet = MockWallet(balance=0.0)
        controller = make_controller(wallet)

        report = await controller.run_cycle()

        assert wallet.instructions == []
        assert report.results == []
        assert report.verified_count == 0

    @pytest.mark.asyncio
    async def test_holdings_failure_skips_trading(self):
        wallet = MockWallet(fail_holdings=True)
        controller = make_controller(wallet)

        report = await controller.run_cycle()

        assert report is None
        assert wallet.instructions == []
        assert controller.current_portfolio is None
        assert controller.should_rebalance()

    @pytest.mark.asyncio
    async def test_no_qualifying_tokens_keeps_holdings(self):
        wallet = MockWallet(holdings={"old": 1.0})
        controller = make_controller(wallet, assets=[])

        report = await controller.run_cycle()

        assert report is None
        assert wallet.instructions == []
        assert controller.current_portfolio is None


class TestShouldRebalance:
    """Test the rebalance decision lifecycle."""

    @pytest.mark.asyncio
    async def test_lifecycle(self):
        """Test true before, false after, true again past the interval."""
        clock = Clock()
        controller = make_controller(MockWallet(), clock=clock)

        assert controller.should_rebalance()

        report = await controller.run_cycle()
        assert report is not None
        assert controller.risk_profile.level == "moderate"
        assert controller.last_update_ts == clock.now

        await controller.market_analyzer.refresh()
        assert not controller.should_rebalance()

        clock.now += 24 * HOUR
        assert not controller.should_rebalance()

        clock.now += 1
        assert controller.should_rebalance()

    @pytest.mark.asyncio
    async def test_second_cycle_without_trigger_is_noop(self):
        wallet = MockWallet()
        controller = make_controller(wallet)
        await controller.run_cycle()
        executed = len(wallet.instructions)

        assert await controller.run_cycle() is None
        assert len(wallet.instructions) == executed

    @pytest.mark.asyncio
    async def test_fear_greed_shift_triggers(self):
        news = MockNewsSource()
        controller = make_controller(MockWallet(), news=news)
        await controller.run_cycle()

        news.fear_greed = (50, 20)
        await controller.market_analyzer.refresh()

        assert controller.should_rebalance()

    @pytest.mark.asyncio
    async def test_fear_greed_shift_at_threshold_does_not_trigger(self):
        news = MockNewsSource()
        controller = make_controller(MockWallet(), news=news)
        await controller.run_cycle()

        news.fear_greed = (50, 30)
        await controller.market_analyzer.refresh()

        assert not controller.should_rebalance()

    @pytest.mark.asyncio
    async def test_bearish_market_triggers(self):
        news = MockNewsSource()
        controller = make_controller(MockWallet(), news=news)
        await controller.run_cycle()

        news.topics = {"solana": 10.0}
        await controller.market_analyzer.refresh()

        assert controller.market_analyzer.summary_stats().market_condition == "bearish"
        assert controller.should_rebalance()

    @pytest.mark.asyncio
    async def test_force_rebalance(self):
        clock = Clock()
        controller = make_controller(MockWallet(), clock=clock)
        await controller.run_cycle()
        await controller.market_analyzer.refresh()
        assert not controller.should_rebalance()

        controller.force_rebalance()

        assert controller.should_rebalance()
        assert controller.next_update_time() < clock.now

    @pytest.mark.asyncio
    async def test_next_update_time(self):
        clock = Clock()
        controller = make_controller(MockWallet(), clock=clock)
        await controller.run_cycle()

        assert controller.next_update_time() == clock.now + 24 * HOUR


class TestConcurrency:
    """Test mutual exclusion of cycles."""

    @pytest.mark.asyncio
    async def test_overlapping_cycle_is_skipped(self):
        news = MockNewsSource()
        news.gate = asyncio.Event()
        wallet = MockWallet()
        controller = make_controller(wallet, news=news)

        first = asyncio.create_task(controller.run_cycle())
        await asyncio.sleep(0)
        assert controller.is_running

        assert await controller.run_cycle() is None
        assert await controller.rebalance() is None

        news.gate.set()
        report = await first

        assert report is not None
        assert news.calls == 1
        assert not controller.is_running

    @pytest.mark.asyncio
    async def test_rebalance_uses_cached_view(self):
        news = MockNewsSource()
        wallet = MockWallet()
        controller = make_controller(wallet, news=news)
        await controller.market_analyzer.refresh()
        calls = news.calls

        report = await controller.rebalance()

        assert report is not None
        assert news.calls == calls
