"""
wash_sale.py - Wash-Sale Rule Detection

A loss on a sale is disallowed when the same instrument is bought within 30
days before or after the sale. The window is inclusive and measured as the
absolute elapsed time between the purchase and the sale:

    abs(purchase_time - sale_time) <= 30 days

Any qualifying purchase disallows the full loss of that sale. Gains are never
checked.

The Bookkeeper owns the side effects: the disallowed amount goes to
RealizedGains.wash_sale_disallowed, is excluded from the short/long-term
totals (split_disallowance), and is added to the replacement lot's basis
(pick_replacement_lot).
"""
from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple

from .core import Side, TaxLot, Trade, ZERO, WASH_SALE_WINDOW_DAYS, to_decimal


WASH_SALE_WINDOW = timedelta(days=WASH_SALE_WINDOW_DAYS)


@dataclass(frozen=True, slots=True)
class WashSaleResult:
    """Outcome of a wash-sale check for one sale."""
    is_wash_sale: bool
    disallowed_loss: Decimal = ZERO
    replacement_trade_ids: Tuple[str, ...] = ()


NOT_A_WASH_SALE = WashSaleResult(is_wash_sale=False)


def within_window(purchase_time: datetime, sale_time: datetime) -> bool:
    return abs(purchase_time - sale_time) <= WASH_SALE_WINDOW


def check_wash_sale(
    instrument: str,
    sale_timestamp: datetime,
    realized_loss: Decimal,
    trade_history: Iterable[Trade],
) -> WashSaleResult:
    """
    Check one sale against the wash-sale rule. Pure function.

    Args:
        instrument: Instrument sold
        sale_timestamp: When the sale happened
        realized_loss: Net realized result of the sale (negative for a loss)
        trade_history: Trades to scan for replacement purchases

    Returns:
        WashSaleResult with disallowed_loss = abs(realized_loss) when any BUY of
        the same instrument lies inside the window, otherwise not a wash sale.
    """
    realized_loss = to_decimal(realized_loss)
    if realized_loss >= ZERO:
        return NOT_A_WASH_SALE

    replacements = [
        trade.trade_id
        for trade in trade_history
        if trade.side is Side.BUY
        and trade.instrument == instrument
        and within_window(trade.timestamp, sale_timestamp)
    ]
    if not replacements:
        return NOT_A_WASH_SALE

    return WashSaleResult(
        is_wash_sale=True,
        disallowed_loss=abs(realized_loss),
        replacement_trade_ids=tuple(replacements),
    )


def split_disallowance(short_term: Decimal, long_term: Decimal) -> Tuple[Decimal, Decimal]:
    """
    Remove a washed net loss from the short/long-term buckets of one sale.

    The sale's net (short_term + long_term) must be negative. Losing buckets
    absorb the disallowed amount so the booked net becomes zero:
        both negative    -> (0, 0)
        one negative     -> the negative bucket offsets the positive one

    Returns:
        (short_term, long_term) to book for the sale.
    """
    short_term = to_decimal(short_term)
    long_term = to_decimal(long_term)
    if short_term + long_term >= ZERO:
        return short_term, long_term
    if short_term <= ZERO and long_term <= ZERO:
        return ZERO, ZERO
    if short_term < ZERO:
        return -long_term, long_term
    return short_term, -short_term


def pick_replacement_lot(
    open_lots: Sequence[TaxLot],
    replacement_trades: Sequence[Trade],
) -> Optional[TaxLot]:
    """
    Choose the lot whose basis absorbs a disallowed loss.

    The earliest-acquired open lot created by one of the replacement trades.
    Returns None when every replacement purchase has already been sold.
    """
    lot_ids = {trade.lot_id for trade in replacement_trades if trade.lot_id}
    candidates: List[TaxLot] = [lot for lot in open_lots if lot.lot_id in lot_ids]
    if not candidates:
        return None
    return min(candidates, key=lambda lot: lot.acquired_at)
