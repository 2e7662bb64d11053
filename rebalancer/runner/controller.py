"""Rebalancing controller: decide, build, reconcile and verify."""

import asyncio
import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import structlog

from ..core.interfaces import WalletClient
from ..core.types import (
    BuyTarget,
    HoldingDiff,
    KeepTarget,
    Portfolio,
    PortfolioAnalysis,
    RebalanceReport,
    RiskLevel,
    SellTarget,
    TradeInstruction,
    TradeResult,
)
from ..portfolio.service import PortfolioService
from ..risk.profile import RiskProfile
from ..utils.validation import is_valid_mint
from .market_analyzer import MarketAnalyzer

logger = structlog.get_logger(__name__)

SELL_REASON = "Rebalancing: token not in desired portfolio"
BUY_REASON = "Rebalancing: acquire token to match desired portfolio"


def compute_holding_diff(
    holdings: Mapping[str, float], portfolio: Portfolio
) -> HoldingDiff:
    """Diff live holdings against a target portfolio.

    Held mints with a positive balance that are not targeted are sold in
    full. Targets without a positive balance are bought, the rest kept.
    """
    desired = {t.mint for t in portfolio.tokens}

    to_sell = [
        SellTarget(mint=mint, current_balance=balance)
        for mint, balance in holdings.items()
        if mint not in desired and balance > 0
    ]
    to_buy = []
    to_keep = []
    for token in portfolio.tokens:
        if holdings.get(token.mint, 0) > 0:
            to_keep.append(KeepTarget(mint=token.mint))
        else:
            to_buy.append(BuyTarget(mint=token.mint, symbol=token.symbol))

    return HoldingDiff(to_sell=to_sell, to_buy=to_buy, to_keep=to_keep)


class RebalancingController:
    """Owns the current portfolio and runs one rebalance cycle at a time."""

    def __init__(
        self,
        market_analyzer: MarketAnalyzer,
        portfolio_service: PortfolioService,
        wallet: WalletClient,
        portfolio_size: int = 10,
        default_risk_level: RiskLevel = "moderate",
        balance_buffer_ratio: float = 0.99,
        fear_greed_shift_threshold: int = 20,
        instruction_timeout_seconds: float = 60.0,
        now_fn: Callable[[], float] | None = None,
    ) -> None:
        """Initialize rebalancing controller.

        Args:
            market_analyzer: Refresh step and cached market view
            portfolio_service: Target portfolio builder
            wallet: Holdings and execution boundary
            portfolio_size: Target token count per portfolio
            default_risk_level: Profile whose interval applies before the first build
            balance_buffer_ratio: Share of available balance spent on buys
            fear_greed_shift_threshold: Day-over-day change forcing a rebalance
            instruction_timeout_seconds: Timeout for each trade instruction
            now_fn: Optional function to get current timestamp (for testing)
        """
        self.market_analyzer = market_analyzer
        self.portfolio_service = portfolio_service
        self.wallet = wallet
        self.portfolio_size = portfolio_size
        self.balance_buffer_ratio = balance_buffer_ratio
        self.fear_greed_shift_threshold = fear_greed_shift_threshold
        self.instruction_timeout_seconds = instruction_timeout_seconds
        self._now_fn = now_fn or time.time

        self.risk_profile = RiskProfile.for_level(default_risk_level)
        self.current_portfolio: PortfolioAnalysis | None = None
        self.last_update_ts = 0.0
        self.last_error: str | None = None
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def next_update_time(self) -> float:
        return self.last_update_ts + self.risk_profile.update_interval_seconds

    def force_rebalance(self) -> None:
        """Back-date the last update so the interval trigger fires."""
        self.last_update_ts = (
            self._now_fn() - self.risk_profile.update_interval_seconds - 1
        )
        logger.info("Forced rebalance requested", last_update_ts=self.last_update_ts)

    def should_rebalance(self) -> bool:
        """Decide from cached state whether a rebalance is due.

        Never fetches; reads only the market view cached by the last refresh.
        """
        if self.current_portfolio is None:
            logger.info("Rebalance trigger", trigger="no_portfolio")
            return True

        elapsed = self._now_fn() - self.last_update_ts
        if elapsed > self.risk_profile.update_interval_seconds:
            logger.info(
                "Rebalance trigger",
                trigger="interval",
                elapsed_hours=round(elapsed / 3600, 1),
                required_hours=self.risk_profile.update_interval_hours,
            )
            return True

        stats = self.market_analyzer.summary_stats()
        if stats.market_condition == "bearish":
            logger.info("Rebalance trigger", trigger="bearish_market")
            return True

        fear_greed = self.market_analyzer.trend_analyzer.current_fear_greed()
        change = fear_greed.change if fear_greed is not None else 0
        if abs(change) > self.fear_greed_shift_threshold:
            logger.info("Rebalance trigger", trigger="fear_greed_shift", change=change)
            return True

        logger.debug(
            "No rebalance trigger",
            market_condition=stats.market_condition,
            fear_greed_change=change,
            elapsed_hours=round(elapsed / 3600, 1),
        )
        return False

    async def run_cycle(self) -> RebalanceReport | None:
        """Refresh market data and rebalance when a trigger fires.

        Overlapping calls are skipped. Errors are logged, never raised.
        """
        if self._lock.locked():
            logger.warning("Rebalance cycle already running, skipping")
            return None

        async with self._lock:
            self.last_error = None
            try:
                await self.market_analyzer.refresh()
                if not self.should_rebalance():
                    return None
                return await self._rebalance()
            except Exception as e:
                self.last_error = str(e)
                logger.error("Error in rebalance cycle", error=str(e))
                return None

    async def rebalance(self) -> RebalanceReport | None:
        """Rebalance now against the cached market view."""
        if self._lock.locked():
            logger.warning("Rebalance cycle already running, skipping")
            return None

        async with self._lock:
            self.last_error = None
            try:
                return await self._rebalance()
            except Exception as e:
                self.last_error = str(e)
                logger.error("Error in portfolio rebalancing", error=str(e))
                return None

    async def _rebalance(self) -> RebalanceReport | None:
        level = self.market_analyzer.determine_risk_level()
        profile = RiskProfile.for_level(level)
        logger.info("Rebalancing portfolio", profile=profile.describe())

        analysis = self.portfolio_service.build_equal_allocation_portfolio(
            self.portfolio_size,
            profile,
            self.market_analyzer.candidate_assets,
            trends=self.market_analyzer.trends,
        )
        portfolio = analysis.portfolio

        if not portfolio.tokens:
            logger.warning(
                "No tokens qualified, keeping current holdings",
                risk_level=level,
                warnings=list(analysis.warnings),
            )
            return None

        if self.current_portfolio is not None:
            self.compare_portfolios(self.current_portfolio.portfolio, portfolio)
        else:
            logger.info("Initial portfolio generation, nothing to compare")

        try:
            holdings = await self._call(self.wallet.get_holdings())
        except Exception as e:
            logger.error(
                "Failed to fetch holdings, skipping trades this cycle", error=str(e)
            )
            return None

        diff = compute_holding_diff(holdings, portfolio)
        results = await self.reconcile(diff)

        self.current_portfolio = analysis
        self.last_update_ts = self._now_fn()
        if profile.level != self.risk_profile.level:
            logger.info(
                "Risk profile updated",
                previous=self.risk_profile.level,
                current=profile.level,
                update_interval_hours=profile.update_interval_hours,
            )
        self.risk_profile = profile

        verified_count, failed_tokens = await self.verify(portfolio)
        report = RebalanceReport(
            analysis=analysis,
            diff=diff,
            results=results,
            verified_count=verified_count,
            failed_tokens=failed_tokens,
        )

        logger.info(
            "Portfolio rebalanced",
            portfolio_id=portfolio.id,
            name=portfolio.name,
            tokens=[t.symbol for t in portfolio.tokens],
            allocation_pct=portfolio.tokens[0].allocation_pct,
            recommended_action=analysis.recommended_action,
            strengths=list(analysis.strengths),
            warnings=list(analysis.warnings),
            success_ratio=report.success_ratio,
        )
        return report

    async def _call(self, awaitable: Awaitable[Any]) -> Any:
        return await asyncio.wait_for(awaitable, timeout=self.instruction_timeout_seconds)

    async def reconcile(self, diff: HoldingDiff) -> list[TradeResult]:
        """Issue every sell, then size and issue every buy.

        Buys split the refreshed balance (after the buffer) evenly. Failed
        instructions are recorded and left for the next cycle's diff.
        """
        if diff.is_aligned:
            logger.info("Wallet already aligned with desired portfolio")
            return []

        results = []
        for sell in diff.to_sell:
            instruction = TradeInstruction(
                action="sell",
                mint=sell.mint,
                amount=sell.current_balance,
                reason=SELL_REASON,
            )
            results.append(await self._execute(instruction))

        if not diff.to_buy:
            return results

        try:
            balance = await self._call(self.wallet.get_available_balance())
        except Exception as e:
            logger.error("Failed to refresh available balance", error=str(e))
            balance = 0.0

        budget = balance * self.balance_buffer_ratio / len(diff.to_buy)
        if budget <= 0:
            logger.warning(
                "No balance available for buys, skipping",
                buys=[b.symbol for b in diff.to_buy],
                available_balance=balance,
            )
            return results

        for buy in diff.to_buy:
            logger.info("Preparing buy", symbol=buy.symbol, budget=budget)
            instruction = TradeInstruction(
                action="buy", mint=buy.mint, amount=budget, reason=BUY_REASON
            )
            results.append(await self._execute(instruction))

        succeeded = sum(1 for r in results if r.success)
        logger.info(
            "Wallet reconciliation executed",
            sells=len(diff.to_sell),
            buys=len(diff.to_buy),
            succeeded=succeeded,
            failed=len(results) - succeeded,
        )
        return results

    async def _execute(self, instruction: TradeInstruction) -> TradeResult:
        try:
            result = await self._call(self.wallet.execute(instruction))
        except TimeoutError:
            logger.error(
                "Trade instruction timed out",
                action=instruction.action,
                token_mint=instruction.mint,
                timeout_seconds=self.instruction_timeout_seconds,
            )
            return TradeResult(instruction=instruction, success=False, detail="timeout")
        except Exception as e:
            logger.error(
                "Trade instruction failed",
                action=instruction.action,
                token_mint=instruction.mint,
                error=str(e),
            )
            return TradeResult(instruction=instruction, success=False, detail=str(e))

        if not result.success:
            logger.warning(
                "Trade instruction unsuccessful",
                action=instruction.action,
                token_mint=instruction.mint,
                detail=result.detail,
            )
        return result

    async def verify(self, portfolio: Portfolio) -> tuple[int, list[str]]:
        """Count target tokens that now hold a positive balance."""
        try:
            holdings = await self._call(self.wallet.get_holdings())
        except Exception as e:
            logger.error("Error in portfolio verification", error=str(e))
            return 0, [f"{t.symbol} - Verification failed" for t in portfolio.tokens]

        verified = 0
        failed = []
        for token in portfolio.tokens:
            if not is_valid_mint(token.mint):
                failed.append(f"{token.symbol} - Invalid address")
            elif holdings.get(token.mint, 0) > 0:
                verified += 1
            else:
                failed.append(f"{token.symbol} - No balance")

        logger.info(
            "Portfolio verification",
            acquired=verified,
            target=len(portfolio.tokens),
            failed_tokens=failed,
        )
        return verified, failed

    @staticmethod
    def compare_portfolios(current: Portfolio, new: Portfolio) -> None:
        current_mints = {t.mint for t in current.tokens}
        new_mints = {t.mint for t in new.tokens}

        removed = [t.symbol for t in current.tokens if t.mint not in new_mints]
        added = [t.symbol for t in new.tokens if t.mint not in current_mints]
        kept = [t.symbol for t in new.tokens if t.mint in current_mints]

        logger.info(
            "Portfolio comparison",
            current_tokens=len(current.tokens),
            new_tokens=len(new.tokens),
            removing=removed,
            adding=added,
            keeping=kept,
            total_changes=len(removed) + len(added),
        )
