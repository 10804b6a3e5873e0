"""
test_ipo_scenarios.py - IPO lifecycle scenarios

Tests cover:
1. A massively oversubscribed offering decided by the allocation lottery
2. Calendar -> IOI -> pricing -> allocation -> lock-up -> sale through the Bookkeeper
3. Allocation versus buying at the open
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from tradesim import (
    Bookkeeper, IndicationOfInterest, IOIStatus, Side, OrderType,
    calculate_final_price, calculate_allocation, simulate_opening_trade,
    compare_entry_strategies,
)

from tests.builders import T0, make_offering, make_demand, priced, sell
from tests.fake_random import FakeRandom


class TestLotteryOffering:
    """$18-22 range, 1,000,000 shares, 12x oversubscribed, 500 shares requested up to $30."""

    @pytest.fixture
    def offering(self):
        return make_offering(shares_offered=1_000_000)

    @pytest.fixture
    def demand(self):
        return make_demand(12, 1_000_000, is_hot=True)

    @pytest.fixture
    def ioi(self):
        return IndicationOfInterest(
            offering_id="IPO_NOVA",
            requested_shares=500,
            max_price=Decimal("30"),
            submitted_at=T0,
        )

    def test_priced_above_range(self, offering, demand):
        assert calculate_final_price(offering.price_range, demand) == Decimal("25.30")

    def test_lottery_winner(self, offering, demand, ioi):
        rng = FakeRandom(uniforms=[0.15], randoms=[0.1])
        result = calculate_allocation(ioi, offering, demand, rng)
        # pool 150,000 over retail demand 3,000,000 -> 25 pro rata, halved for lottery winners
        assert result.shares_allocated == 12
        assert result.allocation_price == Decimal("25.30")
        assert result.allocation_percent == 2
        assert rng.calls == [('uniform', 0.1, 0.2), ('random',)]

    def test_lottery_loser(self, offering, demand, ioi):
        rng = FakeRandom(uniforms=[0.15], randoms=[0.5])
        result = calculate_allocation(ioi, offering, demand, rng)
        assert result.shares_allocated == 0
        assert result.reason == (
            "IPO was 12.0x oversubscribed. You were not selected in the allocation lottery."
        )

    def test_same_draws_same_outcome(self, offering, demand, ioi):
        outcomes = {
            calculate_allocation(ioi, offering, demand, FakeRandom(uniforms=[0.18], randoms=[0.29]))
            for _ in range(5)
        }
        assert len(outcomes) == 1


class TestBookkeeperIPOLifecycle:

    @pytest.fixture
    def session(self):
        # sentiment 1.2 -> 6x oversubscribed; 75% institutional; 15% retail pool
        book = Bookkeeper(initial_time=T0, rng=FakeRandom(uniforms=[1.2, 0.75, 0.15]), verbose=False)
        book.register_offering(make_offering())
        assert book.submit_ioi("IPO_NOVA", 100, Decimal("30")).success
        book.register_offering(priced(make_offering()))
        book.process_allocation("IPO_NOVA")
        return book

    def test_allocation_paid_and_locked(self, session):
        allocation = session.allocation("IPO_NOVA")
        assert allocation.shares_allocated == 3
        assert session.ioi("IPO_NOVA").status is IOIStatus.ALLOCATED
        assert session.cash == Decimal("24924.10")
        assert session.ipo_positions(locked_only=True)[0].shares == 3

    def test_locked_shares_cannot_be_sold(self, session):
        result = session.submit_order("NOVA", Side.SELL, OrderType.MARKET, 3)
        assert not result.success

    def test_sale_after_lock_up(self, session):
        expiry = datetime(2024, 3, 1) + timedelta(days=180)
        sell(session, "NOVA", 3, 30, at=expiry + timedelta(days=1))
        assert session.cash == Decimal("25014.10")
        assert session.realized_gains.short_term == Decimal("14.10")
        assert session.get_position("NOVA") is None
        assert session.ipo_positions(locked_only=True) == []

    def test_allocation_versus_open(self, session):
        allocation = session.allocation("IPO_NOVA")
        demand = session.demand("IPO_NOVA")
        opening = simulate_opening_trade(
            session.offering("IPO_NOVA"), allocation.allocation_price, demand,
            FakeRandom(uniforms=[1.5, 0.6]),
        )
        assert opening.open_price == Decimal("37.95")
        assert opening.day_one_close == Decimal("32.89")

        comparison = compare_entry_strategies(
            allocation, opening.open_price, opening.day_one_close, allocation.allocation_price
        )
        assert comparison.ipo_entry.gain == Decimal("37.95")
        assert comparison.secondary_entry.shares == 2
        assert comparison.secondary_entry.gain == Decimal("-10.12")
        assert comparison.advantage_of_ipo == Decimal("48.07")
        assert comparison.lesson == "IPO allocation provided a 50% gain at open. Secondary buyers missed this."
