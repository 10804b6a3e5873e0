"""
test_slippage_model.py - Unit tests for execution and slippage

Tests cover:
1. Slippage formula components and time-of-day factors
2. Execution rules for MARKET, LIMIT, STOP and STOP_LIMIT
3. Latency draws per order type
4. Round-trip cost and fee cap
5. Slippage compounding illustration
"""

import pytest
from decimal import Decimal

from tradesim import (
    OrderType, Side, TimeOfDay, Quote,
    calculate_slippage, simulate_execution,
    calculate_round_trip_cost, demonstrate_slippage_impact,
)
from tradesim.execution import STOP_LIMIT_UNFILLED_WARNING

from tests.fake_random import FakeRandom


class TestCalculateSlippage:

    def test_market_order_components(self):
        s = calculate_slippage(Decimal("1000"), Decimal("1000000"), Decimal("0.10"), Decimal("100"))
        assert s.spread_bps == Decimal("5.00")
        assert s.market_impact_bps == Decimal("1.00")
        assert s.total_bps == Decimal("6.00")
        assert s.price_impact == Decimal("0.06")

    @pytest.mark.parametrize("time_of_day,total", [
        (TimeOfDay.OPEN, Decimal("12.00")),
        (TimeOfDay.CLOSE, Decimal("9.00")),
        (TimeOfDay.NORMAL, Decimal("6.00")),
    ])
    def test_time_of_day_factor(self, time_of_day, total):
        s = calculate_slippage(1000, 1000000, Decimal("0.10"), 100, time_of_day=time_of_day)
        assert s.total_bps == total

    def test_open_scales_reported_market_impact(self):
        s = calculate_slippage(1000, 1000000, Decimal("0.10"), 100, time_of_day=TimeOfDay.OPEN)
        assert s.market_impact_bps == Decimal("2.00")
        assert s.spread_bps == Decimal("5.00")

    @pytest.mark.parametrize("order_type", [OrderType.LIMIT, OrderType.STOP, OrderType.STOP_LIMIT])
    def test_only_market_orders_slip(self, order_type):
        s = calculate_slippage(1000, 1000000, Decimal("0.10"), 100, order_type=order_type)
        assert s.total_bps == Decimal("0.00")
        assert s.price_impact == Decimal("0")

    @pytest.mark.parametrize("volume", [None, 0])
    def test_missing_volume_defaults_to_one_million(self, volume):
        s = calculate_slippage(1000, volume, Decimal("0.10"), 100)
        assert s.total_bps == Decimal("6.00")

    def test_non_positive_price_rejected(self):
        with pytest.raises(ValueError):
            calculate_slippage(100, 1000000, Decimal("0.10"), 0)


class TestSimulateExecution:

    def test_market_buy_pays_ask_plus_impact(self, quote):
        rng = FakeRandom(uniforms=[120])
        result = simulate_execution(OrderType.MARKET, Side.BUY, Decimal("1000"), quote, rng)
        assert result.filled and result.triggered
        assert result.fill_price == Decimal("100.11")
        assert result.slippage_bps == Decimal("6.00")
        assert result.latency_ms == Decimal("120")
        assert rng.calls == [('uniform', 50.0, 200.0)]

    def test_market_sell_receives_bid_minus_impact(self, quote):
        result = simulate_execution(OrderType.MARKET, Side.SELL, Decimal("1000"), quote, FakeRandom())
        assert result.fill_price == Decimal("99.89")

    def test_limit_buy_at_or_above_ask_fills_at_limit(self, quote):
        result = simulate_execution(OrderType.LIMIT, Side.BUY, 10, quote, FakeRandom(),
                                    limit_price=Decimal("100.10"))
        assert result.filled
        assert result.fill_price == Decimal("100.10")
        assert result.slippage_bps == Decimal("0")

    def test_limit_buy_below_ask_does_not_fill(self, quote):
        rng = FakeRandom()
        result = simulate_execution(OrderType.LIMIT, Side.BUY, 10, quote, rng,
                                    limit_price=Decimal("100.04"))
        assert not result.filled
        assert not result.triggered
        assert rng.calls == []

    def test_limit_sell_at_or_below_bid_fills(self, quote):
        result = simulate_execution(OrderType.LIMIT, Side.SELL, 10, quote, FakeRandom(),
                                    limit_price=Decimal("99.95"))
        assert result.fill_price == Decimal("99.95")

    def test_limit_latency_range(self, quote):
        rng = FakeRandom()
        result = simulate_execution(OrderType.LIMIT, Side.BUY, 10, quote, rng, limit_price=101)
        assert rng.calls == [('uniform', 100.0, 400.0)]
        assert result.latency_ms == Decimal("250.0")

    def test_sell_stop_triggers_on_mid_and_widens_spread(self, quote):
        rng = FakeRandom()
        result = simulate_execution(OrderType.STOP, Side.SELL, Decimal("1000"), quote, rng,
                                    stop_price=Decimal("100"))
        assert result.filled
        # spread 0.15 -> 7.5 bps + 1 bp impact = 8.5 bps of 100
        assert result.slippage_bps == Decimal("8.50")
        assert result.fill_price == Decimal("99.87")
        assert rng.calls == [('uniform', 100.0, 300.0)]

    def test_sell_stop_below_mid_not_triggered(self, quote):
        result = simulate_execution(OrderType.STOP, Side.SELL, 10, quote, FakeRandom(),
                                    stop_price=Decimal("99"))
        assert not result.triggered

    def test_buy_stop_triggers_at_or_above(self, quote):
        assert simulate_execution(OrderType.STOP, Side.BUY, 10, quote, FakeRandom(),
                                  stop_price=Decimal("100")).filled
        assert not simulate_execution(OrderType.STOP, Side.BUY, 10, quote, FakeRandom(),
                                      stop_price=Decimal("100.01")).triggered

    def test_stop_limit_triggered_but_unfilled(self, quote):
        rng = FakeRandom()
        result = simulate_execution(OrderType.STOP_LIMIT, Side.SELL, 10, quote, rng,
                                    stop_price=Decimal("100"), limit_price=Decimal("100"))
        assert result.triggered
        assert not result.filled
        assert result.warning == STOP_LIMIT_UNFILLED_WARNING
        assert rng.calls == []

    def test_stop_limit_fills_at_limit(self, quote):
        rng = FakeRandom()
        result = simulate_execution(OrderType.STOP_LIMIT, Side.SELL, 10, quote, rng,
                                    stop_price=Decimal("100"), limit_price=Decimal("99.90"))
        assert result.filled
        assert result.fill_price == Decimal("99.90")
        assert rng.calls == [('uniform', 150.0, 400.0)]

    def test_missing_prices_raise(self, quote):
        with pytest.raises(ValueError):
            simulate_execution(OrderType.LIMIT, Side.BUY, 10, quote, FakeRandom())
        with pytest.raises(ValueError):
            simulate_execution(OrderType.STOP_LIMIT, Side.BUY, 10, quote, FakeRandom(), limit_price=100)


class TestQuoteValidation:

    def test_crossed_quote_rejected(self):
        with pytest.raises(ValueError):
            Quote(bid=Decimal("100.05"), ask=Decimal("99.95"), last_price=Decimal("100"))


class TestRoundTripCost:

    def test_components(self):
        cost = calculate_round_trip_cost(
            Decimal("100"), Decimal("50"), Decimal("55"), Decimal("1000000"), Decimal("0.05")
        )
        assert cost.gross_pnl == Decimal("500")
        # entry 5.10 bps + exit 4.65 bps, charged on entry notional
        assert cost.slippage_bps == Decimal("9.75")
        assert cost.slippage_cost == Decimal("4.875")
        assert cost.sec_fee == Decimal("0.12595")
        assert cost.taf_fee == Decimal("0.0119")
        assert cost.total_fees == Decimal("5.01285")
        assert cost.net_pnl == Decimal("494.98715")

    def test_per_share_fee_capped(self):
        cost = calculate_round_trip_cost(100000, 10, 10, 1000000, Decimal("0.01"))
        assert cost.taf_fee == Decimal("5.95")


class TestSlippageImpact:

    def test_compounding(self):
        impact = demonstrate_slippage_impact(100, Decimal("10000"), Decimal("10"))
        assert impact.slippage_per_trade == Decimal("10")
        assert impact.annual_slippage_cost == Decimal("1000")
        assert impact.break_even_return_percent == Decimal("10")
        assert impact.message == "With 100 trades/year, you need 10.00% returns just to cover slippage costs."
