"""Tests for the paper wallet."""

import pytest

from rebalancer.core.interfaces import WalletClient
from rebalancer.core.types import TradeInstruction
from rebalancer.exec.paper import PaperPosition, PaperWallet


def buy(mint: str, amount: float) -> TradeInstruction:
    return TradeInstruction(action="buy", mint=mint, amount=amount, reason="test")


def sell(mint: str, amount: float) -> TradeInstruction:
    return TradeInstruction(action="sell", mint=mint, amount=amount, reason="test")


class TestPaperPosition:
    """Test cost basis tracking on positions."""

    def test_bought_accumulates_cost(self):
        pos = PaperPosition(token_mint="token", qty=100.0, cost_basis=100.0)

        pos = pos.bought(50.0, 50.0)

        assert pos.qty == 150.0
        assert pos.cost_basis == 150.0
        assert pos.avg_cost == pytest.approx(1.0)

    def test_empty_position_has_zero_avg_cost(self):
        assert PaperPosition(token_mint="token").avg_cost == 0.0

    def test_sold_releases_average_cost(self):
        pos = PaperPosition(token_mint="token", qty=100.0, cost_basis=200.0)

        remaining, released = pos.sold(30.0)

        assert released == pytest.approx(60.0)
        assert remaining.qty == pytest.approx(70.0)
        assert remaining.cost_basis == pytest.approx(140.0)
        assert pos.qty == 100.0

    @pytest.mark.asyncio
    async def test_realized_pnl_uses_cost_basis(self):
        wallet = PaperWallet(starting_balance=0.0, slippage_bps=0, fee_bps=0)
        wallet.set_price("mint_a", 1.0)
        wallet.deposit("mint_a", 10.0)
        wallet.set_price("mint_a", 2.0)

        await wallet.execute(sell("mint_a", 4.0))

        assert wallet.get_trade_history()[0]["realized_pnl"] == pytest.approx(4.0)
        assert wallet.get_position("mint_a").cost_basis == pytest.approx(6.0)


class TestPaperWallet:
    """Test paper wallet fills."""

    def test_is_wallet_client(self):
        assert isinstance(PaperWallet(), WalletClient)

    @pytest.mark.asyncio
    async def test_buy_applies_slippage_and_fee(self):
        wallet = PaperWallet(starting_balance=10.0, slippage_bps=100, fee_bps=50)
        wallet.set_price("mint_a", 2.0)

        result = await wallet.execute(buy("mint_a", 4.0))

        assert result.success
        assert await wallet.get_available_balance() == pytest.approx(6.0)
        holdings = await wallet.get_holdings()
        # (4.0 - 0.02 fee) / (2.0 * 1.01)
        assert holdings["mint_a"] == pytest.approx(3.98 / 2.02)

    @pytest.mark.asyncio
    async def test_buy_rejects_insufficient_balance(self):
        wallet = PaperWallet(starting_balance=1.0)

        result = await wallet.execute(buy("mint_a", 5.0))

        assert not result.success
        assert "Insufficient balance" in result.detail
        assert await wallet.get_holdings() == {}
        assert await wallet.get_available_balance() == 1.0

    @pytest.mark.asyncio
    async def test_sell_full_position(self):
        wallet = PaperWallet(starting_balance=0.0, slippage_bps=0, fee_bps=0)
        wallet.set_price("mint_a", 0.5)
        wallet.deposit("mint_a", 10.0)

        result = await wallet.execute(sell("mint_a", 10.0))

        assert result.success
        assert await wallet.get_holdings() == {}
        assert await wallet.get_available_balance() == pytest.approx(5.0)
        assert wallet.get_position("mint_a") is None

    @pytest.mark.asyncio
    async def test_sell_capped_at_position(self):
        wallet = PaperWallet(starting_balance=0.0, slippage_bps=0, fee_bps=0)
        wallet.deposit("mint_a", 3.0)

        result = await wallet.execute(sell("mint_a", 10.0))

        assert result.success
        assert await wallet.get_available_balance() == pytest.approx(3.0)

    @pytest.mark.asyncio
    async def test_sell_without_position(self):
        wallet = PaperWallet()

        result = await wallet.execute(sell("missing", 1.0))

        assert not result.success
        assert "No position" in result.detail

    @pytest.mark.asyncio
    async def test_trade_history(self):
        wallet = PaperWallet(starting_balance=10.0)
        await wallet.execute(buy("mint_a", 1.0))
        await wallet.execute(sell("mint_a", 0.5))

        history = wallet.get_trade_history()

        assert [h["is_buy"] for h in history] == [True, False]
        assert history[0]["reason"] == "test"

    def test_invalid_price(self):
        with pytest.raises(ValueError):
            PaperWallet().set_price("mint_a", 0)
