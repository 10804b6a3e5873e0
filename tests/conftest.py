"""
conftest.py - Shared pytest fixtures for tradesim tests

Provides common fixtures used across unit, functional and conformance tests:
- Bookkeepers (FIFO, HIFO, with a quote feed)
- A scripted random source
- A quote and an IPO offering
"""

import pytest
from decimal import Decimal

from tradesim import Bookkeeper, Quote, StaticQuoteSource, CostBasisMethod

from tests.builders import T0, make_offering
from tests.fake_random import FakeRandom


@pytest.fixture
def rng():
    """Scripted random source returning range midpoints."""
    return FakeRandom()


@pytest.fixture
def book(rng):
    """FIFO bookkeeper with $25,000 at 2024-01-02 10:00."""
    return Bookkeeper(initial_time=T0, rng=rng, verbose=False)


@pytest.fixture
def hifo_book(rng):
    return Bookkeeper(initial_time=T0, cost_basis_method=CostBasisMethod.HIFO, rng=rng, verbose=False)


@pytest.fixture
def quote():
    """10 cent spread around 100, 1,000,000 shares/day."""
    return Quote(
        bid=Decimal("99.95"),
        ask=Decimal("100.05"),
        last_price=Decimal("100"),
        average_daily_volume=Decimal("1000000"),
    )


@pytest.fixture
def quotes(quote):
    return StaticQuoteSource({"AAPL": quote})


@pytest.fixture
def quoted_book(rng, quotes):
    """Bookkeeper reading AAPL quotes from a feed."""
    return Bookkeeper(initial_time=T0, rng=rng, quotes=quotes, verbose=False)


@pytest.fixture
def offering():
    return make_offering()
