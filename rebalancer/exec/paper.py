"""Paper wallet for dry-run rebalancing."""

import time
from collections.abc import Callable
from datetime import datetime
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field

from ..core.interfaces import WalletClient
from ..core.types import TradeInstruction, TradeResult

logger = structlog.get_logger(__name__)

DUST_QTY = 1e-12


class PaperPosition(BaseModel):
    """Token quantity held by the paper wallet and the quote spent on it."""

    model_config = ConfigDict(frozen=True)

    token_mint: str
    qty: float = Field(default=0.0, ge=0, description="Tokens held")
    cost_basis: float = Field(default=0.0, ge=0, description="Total quote units paid")

    @property
    def avg_cost(self) -> float:
        return self.cost_basis / self.qty if self.qty > 0 else 0.0

    def bought(self, cost: float, qty: float) -> "PaperPosition":
        return self.model_copy(
            update={"qty": self.qty + qty, "cost_basis": self.cost_basis + cost}
        )

    def sold(self, qty: float) -> tuple["PaperPosition", float]:
        """Remove ``qty`` tokens at average cost.

        Returns:
            Remaining position and the cost basis released by the sale
        """
        released = self.avg_cost * qty
        remaining = self.model_copy(
            update={
                "qty": max(self.qty - qty, 0.0),
                "cost_basis": max(self.cost_basis - released, 0.0),
            }
        )
        return remaining, released


class PaperWallet(WalletClient):
    """In-memory wallet that fills instructions at known prices.

    Prices are quote (SOL) per token. Buys spend ``amount`` quote units,
    sells dispose of ``amount`` tokens. Slippage and fees are applied to
    every fill.
    """

    def __init__(
        self,
        starting_balance: float = 10.0,
        slippage_bps: int = 100,
        fee_bps: int = 50,
        default_price: float = 1.0,
        now_fn: Callable[[], float] | None = None,
    ) -> None:
        """Initialize paper wallet.

        Args:
            starting_balance: Initial quote balance
            slippage_bps: Slippage in basis points (default 100 = 1%)
            fee_bps: Fee in basis points (default 50 = 0.5%)
            default_price: Price used for mints without a set price
            now_fn: Optional function to get current timestamp (for testing)
        """
        self.balance = starting_balance
        self.slippage_bps = slippage_bps
        self.fee_bps = fee_bps
        self.default_price = default_price
        self._now_fn = now_fn or time.time

        self._prices: dict[str, float] = {}
        self._positions: dict[str, PaperPosition] = {}
        self._trade_history: list[dict[str, Any]] = []

    def set_price(self, token_mint: str, price: float) -> None:
        if price <= 0:
            raise ValueError(f"Price must be positive, got {price}")
        self._prices[token_mint] = price

    def deposit(self, token_mint: str, qty_base: float) -> None:
        """Seed a position without spending balance."""
        self._add_to_position(token_mint, self._price(token_mint) * qty_base, qty_base)

    def _add_to_position(self, token_mint: str, cost: float, qty: float) -> None:
        position = self._positions.get(token_mint)
        if position is None:
            position = PaperPosition(token_mint=token_mint)
        self._positions[token_mint] = position.bought(cost, qty)

    def _price(self, token_mint: str) -> float:
        return self._prices.get(token_mint, self.default_price)

    def _execution_price(self, base_price: float, is_buy: bool) -> float:
        slippage = self.slippage_bps / 10000.0
        if is_buy:
            return base_price * (1 + slippage)
        return base_price * (1 - slippage)

    def _fee(self, cost: float) -> float:
        return cost * (self.fee_bps / 10000.0)

    async def get_holdings(self) -> dict[str, float]:
        return {
            mint: position.qty
            for mint, position in self._positions.items()
            if position.qty > DUST_QTY
        }

    async def get_available_balance(self) -> float:
        return self.balance

    async def execute(self, instruction: TradeInstruction) -> TradeResult:
        """Fill an instruction against the virtual book.

        Returns:
            Failed result with detail when the fill is impossible
        """
        try:
            if instruction.action == "buy":
                record = self._buy(instruction.mint, instruction.amount)
            else:
                record = self._sell(instruction.mint, instruction.amount)
        except ValueError as e:
            logger.warning(
                "Paper instruction rejected",
                action=instruction.action,
                token_mint=instruction.mint,
                amount=instruction.amount,
                error=str(e),
            )
            return TradeResult(instruction=instruction, success=False, detail=str(e))

        record["reason"] = instruction.reason
        self._trade_history.append(record)

        return TradeResult(
            instruction=instruction,
            success=True,
            detail=f"filled {record['qty_base']:.6f} @ {record['price_exec']:.6f}",
        )

    def _buy(self, token_mint: str, budget: float) -> dict[str, Any]:
        if budget <= 0:
            raise ValueError(f"Buy budget must be positive, got {budget}")
        if budget > self.balance:
            raise ValueError(
                f"Insufficient balance: need {budget:.6f}, have {self.balance:.6f}"
            )

        base_price = self._price(token_mint)
        exec_price = self._execution_price(base_price, is_buy=True)
        fee = self._fee(budget)
        qty_base = (budget - fee) / exec_price

        self.balance -= budget
        self._add_to_position(token_mint, budget, qty_base)

        logger.info(
            "Paper buy executed",
            token_mint=token_mint,
            qty_base=qty_base,
            cost=budget,
            fee=fee,
            exec_price=exec_price,
            base_price=base_price,
            balance=self.balance,
        )

        return {
            "is_buy": True,
            "token_mint": token_mint,
            "qty_base": qty_base,
            "price_exec": exec_price,
            "base_price": base_price,
            "cost": budget,
            "fee": fee,
            "ts": datetime.fromtimestamp(self._now_fn()),
        }

    def _sell(self, token_mint: str, qty_base: float) -> dict[str, Any]:
        position = self._positions.get(token_mint)
        if position is None or position.qty <= 0:
            raise ValueError(f"No position to sell for token {token_mint}")
        if qty_base <= 0:
            raise ValueError(f"Sell quantity must be positive, got {qty_base}")

        qty_base = min(qty_base, position.qty)
        base_price = self._price(token_mint)
        exec_price = self._execution_price(base_price, is_buy=False)
        gross = qty_base * exec_price
        fee = self._fee(gross)
        proceeds = gross - fee

        remaining, cost_basis = position.sold(qty_base)
        self.balance += proceeds

        if remaining.qty <= DUST_QTY:
            del self._positions[token_mint]
            logger.info("Position fully closed", token_mint=token_mint)
        else:
            self._positions[token_mint] = remaining

        logger.info(
            "Paper sell executed",
            token_mint=token_mint,
            qty_base=qty_base,
            proceeds=proceeds,
            fee=fee,
            realized_pnl=proceeds - cost_basis,
            balance=self.balance,
        )

        return {
            "is_buy": False,
            "token_mint": token_mint,
            "qty_base": qty_base,
            "price_exec": exec_price,
            "base_price": base_price,
            "proceeds": proceeds,
            "fee": fee,
            "realized_pnl": proceeds - cost_basis,
            "ts": datetime.fromtimestamp(self._now_fn()),
        }

    def get_position(self, token_mint: str) -> PaperPosition | None:
        return self._positions.get(token_mint)

    def get_trade_history(self) -> list[dict[str, Any]]:
        return self._trade_history.copy()
