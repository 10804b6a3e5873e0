"""
progression.py - Feature unlocks driven by trading activity

Kept outside the ledger: the Bookkeeper reports trades_executed and total
value, and the presentation tier decides what the player may use next.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Sequence, Tuple

from .core import OrderType, ZERO, to_decimal


STARTING_TICKERS: Tuple[str, ...] = ('AAPL', 'MSFT', 'GOOGL', 'AMZN', 'JPM')
STARTING_ORDER_TYPES: Tuple[OrderType, ...] = (OrderType.MARKET,)

# trades executed -> order type unlocked
ORDER_TYPE_UNLOCKS = (
    (10, OrderType.LIMIT),
    (20, OrderType.STOP),
)

TICKER_UNLOCK_GAIN_PERCENT = Decimal("5")
TICKER_UNLOCK_BATCH: Tuple[str, ...] = ('JNJ', 'V', 'PG', 'UNH', 'HD')


@dataclass(frozen=True, slots=True)
class Unlocks:
    """What became available on this evaluation (not the cumulative set)."""
    order_types: Tuple[OrderType, ...] = ()
    tickers: Tuple[str, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.order_types or self.tickers)


@dataclass(slots=True)
class Progression:
    """Cumulative unlock state for one session."""
    order_types: List[OrderType] = field(default_factory=lambda: list(STARTING_ORDER_TYPES))
    tickers: List[str] = field(default_factory=lambda: list(STARTING_TICKERS))

    def apply(self, unlocks: Unlocks) -> None:
        self.order_types.extend(unlocks.order_types)
        self.tickers.extend(unlocks.tickers)


def gain_percent(total_value: Decimal, starting_cash: Decimal) -> Decimal:
    """Total return on starting cash, in percent."""
    starting_cash = to_decimal(starting_cash)
    if starting_cash <= ZERO:
        return ZERO
    return (to_decimal(total_value) - starting_cash) / starting_cash * 100


def evaluate_unlocks(
    trades_executed: int,
    unlocked_order_types: Sequence[OrderType],
    unlocked_tickers: Sequence[str],
    gain_pct: Decimal,
) -> Unlocks:
    """
    Decide which features unlock now.

    LIMIT at 10 executed trades, STOP at 20. The second ticker batch unlocks at
    a 5% gain, only while the starting five are the whole list.
    """
    order_types = tuple(
        order_type
        for threshold, order_type in ORDER_TYPE_UNLOCKS
        if trades_executed >= threshold and order_type not in unlocked_order_types
    )

    tickers: Tuple[str, ...] = ()
    if (
        to_decimal(gain_pct) >= TICKER_UNLOCK_GAIN_PERCENT
        and len(unlocked_tickers) == len(STARTING_TICKERS)
    ):
        tickers = TICKER_UNLOCK_BATCH

    return Unlocks(order_types=order_types, tickers=tickers)
