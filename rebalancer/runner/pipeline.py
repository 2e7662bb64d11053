"""Main rebalancing pipeline runner."""

import asyncio
import time
from collections.abc import Callable
from typing import Any

import structlog

from ..analysis.trend_analyzer import TrendAnalyzer
from ..config.settings import AppSettings
from ..core.interfaces import MarketDataSource, NewsSource, WalletClient
from ..core.types import RebalanceReport
from ..exec.paper import PaperWallet
from ..portfolio.service import PortfolioService
from .controller import RebalancingController
from .market_analyzer import MarketAnalyzer

logger = structlog.get_logger(__name__)


class RebalancingPipeline:
    """Main rebalancing pipeline orchestrator."""

    def __init__(
        self,
        settings: AppSettings,
        news_source: NewsSource,
        market_source: MarketDataSource,
        wallet: WalletClient | None = None,
        now_fn: Callable[[], float] | None = None,
    ) -> None:
        """Initialize pipeline with assembled components.

        Args:
            settings: Application settings
            news_source: Topic, sentiment and fear/greed collaborator
            market_source: Candidate asset collaborator
            wallet: Wallet boundary; a paper wallet is used when omitted in dry run
            now_fn: Optional function to get current timestamp (for testing)

        Raises:
            ValueError: If live mode is configured without a wallet
        """
        self.settings = settings
        self.running = False
        self._now_fn = now_fn or time.time
        self._stop_event = asyncio.Event()

        self.components = self._assemble(settings, news_source, market_source, wallet)
        self.controller: RebalancingController = self.components["controller"]

        logger.info(
            "Rebalancing pipeline initialized",
            dry_run=settings.dry_run,
            env=settings.env,
            portfolio_size=settings.portfolio_size,
            wallet=type(self.components["wallet"]).__name__,
        )

    def _assemble(
        self,
        settings: AppSettings,
        news_source: NewsSource,
        market_source: MarketDataSource,
        wallet: WalletClient | None,
    ) -> dict[str, Any]:
        components: dict[str, Any] = {}

        if wallet is None:
            if not settings.dry_run:
                raise ValueError(
                    "Live mode requires a wallet client. "
                    "Pass one explicitly or enable dry_run."
                )
            wallet = PaperWallet(
                starting_balance=settings.paper_starting_balance,
                slippage_bps=settings.paper_slippage_bps,
                fee_bps=settings.paper_fee_bps,
                now_fn=self._now_fn,
            )
            logger.info("Using paper wallet (dry run mode)")
        elif not settings.dry_run:
            logger.critical("LIVE REBALANCING MODE ENABLED", env=settings.env)
        components["wallet"] = wallet

        trend_analyzer = TrendAnalyzer(max_history=settings.history_window)
        components["trend_analyzer"] = trend_analyzer

        market_analyzer = MarketAnalyzer(
            news_source=news_source,
            market_source=market_source,
            trend_analyzer=trend_analyzer,
            timeout_seconds=settings.refresh_timeout_seconds,
        )
        components["market_analyzer"] = market_analyzer

        portfolio_service = PortfolioService(
            trend_analyzer=trend_analyzer,
            assess=market_source.assess_opportunity,
            now_fn=self._now_fn,
        )
        components["portfolio_service"] = portfolio_service

        components["controller"] = RebalancingController(
            market_analyzer=market_analyzer,
            portfolio_service=portfolio_service,
            wallet=wallet,
            portfolio_size=settings.portfolio_size,
            default_risk_level=settings.default_risk_level,
            balance_buffer_ratio=settings.balance_buffer_ratio,
            fear_greed_shift_threshold=settings.fear_greed_shift_threshold,
            instruction_timeout_seconds=settings.instruction_timeout_seconds,
            now_fn=self._now_fn,
        )

        return components

    async def run_once(self) -> RebalanceReport | None:
        """Execute one rebalance cycle."""
        try:
            return await self.controller.run_cycle()
        except Exception as e:
            logger.error("Error in rebalance cycle", error=str(e))
            return None

    async def run_forever(self) -> None:
        """Run cycles until stopped, never overlapping two cycles."""
        logger.info("Starting rebalancing pipeline", dry_run=self.settings.dry_run)
        self.running = True
        self._stop_event.clear()

        cycle_count = 0
        start_time = self._now_fn()

        try:
            while self.running:
                await self.run_once()
                cycle_count += 1

                if cycle_count % 10 == 0:
                    uptime = self._now_fn() - start_time
                    logger.info(
                        "Pipeline metrics",
                        cycles=cycle_count,
                        uptime_seconds=uptime,
                        avg_cycle_duration=uptime / cycle_count,
                    )

                if self.controller.last_error is not None:
                    delay = self.settings.retry_delay_seconds
                    logger.warning(
                        "Cycle failed, retrying after delay",
                        delay_seconds=delay,
                        error=self.controller.last_error,
                    )
                else:
                    delay = self.settings.cycle_interval_seconds

                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
                except TimeoutError:
                    pass

        except asyncio.CancelledError:
            logger.info("Pipeline cancelled")
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Stop the pipeline after the current cycle."""
        if self.running:
            logger.info("Stopping rebalancing pipeline")
        self.running = False
        self._stop_event.set()
