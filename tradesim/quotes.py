"""
quotes.py - Price feed boundary for the execution model

The external tick driver refreshes one quote per instrument on every tick; the
execution model reads it synchronously when resolving a fill.

Classes:
- Quote: bid / ask / last price / average daily volume
- QuoteSource: Protocol defining the feed interface
- StaticQuoteSource: In-memory feed updated by the driver

generate_quote() builds a bid/ask pair around a last price with a fixed
fractional spread, for drivers that only replay trade prices.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional, Protocol, runtime_checkable

from .core import ZERO, to_decimal, optional_decimal, round_money


# 0.1% of price
DEFAULT_SPREAD_RATIO = Decimal("0.001")


@dataclass(frozen=True, slots=True)
class Quote:
    """
    Top-of-book snapshot for one instrument.

    average_daily_volume may be None when the feed has no volume history; the
    slippage model then assumes a default.
    """
    bid: Decimal
    ask: Decimal
    last_price: Decimal
    average_daily_volume: Optional[Decimal] = None

    def __post_init__(self):
        object.__setattr__(self, 'bid', to_decimal(self.bid))
        object.__setattr__(self, 'ask', to_decimal(self.ask))
        object.__setattr__(self, 'last_price', to_decimal(self.last_price))
        object.__setattr__(self, 'average_daily_volume', optional_decimal(self.average_daily_volume))
        if self.bid <= ZERO or self.ask <= ZERO:
            raise ValueError("bid and ask must be positive")
        if self.ask < self.bid:
            raise ValueError(f"ask {self.ask} is below bid {self.bid}")

    @property
    def mid(self) -> Decimal:
        return (self.bid + self.ask) / 2

    @property
    def spread(self) -> Decimal:
        return self.ask - self.bid


def generate_quote(
    price: Decimal,
    spread_ratio: Decimal = DEFAULT_SPREAD_RATIO,
    average_daily_volume: Optional[Decimal] = None,
) -> Quote:
    """
    Build a quote centred on a last price.

    The spread is price * spread_ratio; bid and ask are rounded to cents.
    """
    price = to_decimal(price)
    spread = price * to_decimal(spread_ratio)
    return Quote(
        bid=round_money(price - spread / 2),
        ask=round_money(price + spread / 2),
        last_price=price,
        average_daily_volume=average_daily_volume,
    )


@runtime_checkable
class QuoteSource(Protocol):
    """
    Protocol for quote feeds.

    Implementations return the latest quote for an instrument, or None if the
    instrument has never been quoted.
    """

    def get_quote(self, instrument: str) -> Optional[Quote]:
        ...


class StaticQuoteSource:
    """
    Quote feed holding the latest quote per instrument.

    The tick driver calls update() on every tick.
    """

    def __init__(self, quotes: Optional[Dict[str, Quote]] = None):
        self.quotes: Dict[str, Quote] = dict(quotes or {})

    def get_quote(self, instrument: str) -> Optional[Quote]:
        return self.quotes.get(instrument)

    def update(self, instrument: str, quote: Quote) -> None:
        """Replace the quote for an instrument."""
        self.quotes[instrument] = quote

    def update_many(self, quotes: Dict[str, Quote]) -> None:
        """Replace several quotes at once."""
        self.quotes.update(quotes)

    def last_prices(self) -> Dict[str, Decimal]:
        return {instrument: quote.last_price for instrument, quote in self.quotes.items()}

    def __repr__(self):
        return f"StaticQuoteSource({len(self.quotes)} instruments)"
