"""
execution.py - Order Execution and Slippage Model

Models the friction between the quoted price and the price actually paid:

    spread_bps        = (spread / price) * 10000 / 2        (half the spread)
    market_impact_bps = (order_shares / avg_daily_volume) * 1000
    total_bps         = (spread_bps + market_impact_bps) * time_of_day_factor

time_of_day_factor: OPEN 2.0, CLOSE 1.5, NORMAL 1.0. Only MARKET orders pay
slippage; every other order type gets zero.

Execution rules per order type (trigger price is the quote mid):
    MARKET      always fills at ask (BUY) / bid (SELL) moved adversely by the impact
    LIMIT       fills at the limit iff BUY limit >= ask or SELL limit <= bid
    STOP        triggers iff SELL mid <= stop or BUY mid >= stop, then fills as
                MARKET with the spread widened 1.5x
    STOP_LIMIT  triggers like STOP, then behaves like LIMIT; a trigger without a
                fill carries a warning and the order stays open

All draws (latency) go through the injected RandomSource.
"""
from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Tuple

from .core import (
    OrderType, Side, TimeOfDay, RandomSource, ZERO,
    to_decimal, optional_decimal, round_money, draw_uniform,
)
from .quotes import Quote


BPS_PER_UNIT = Decimal("10000")

# 0.1% impact per 1% of daily volume
MARKET_IMPACT_FACTOR = Decimal("1000")

DEFAULT_AVERAGE_DAILY_VOLUME = Decimal("1000000")

TIME_OF_DAY_MULTIPLIER = {
    TimeOfDay.OPEN: Decimal("2.0"),
    TimeOfDay.CLOSE: Decimal("1.5"),
    TimeOfDay.NORMAL: Decimal("1.0"),
}

# Spreads widen while stop orders cascade.
STOP_SPREAD_WIDENING = Decimal("1.5")

# Simulated latency ranges in milliseconds.
LATENCY_MS = {
    OrderType.MARKET: (Decimal("50"), Decimal("200")),
    OrderType.LIMIT: (Decimal("100"), Decimal("400")),
    OrderType.STOP: (Decimal("100"), Decimal("300")),
    OrderType.STOP_LIMIT: (Decimal("150"), Decimal("400")),
}

# Regulatory fee on sells: $22.90 per $1,000,000 of principal.
SEC_FEE_PER_MILLION = Decimal("22.90")
# Per-share trading activity fee, capped per trade.
TAF_PER_SHARE = Decimal("0.000119")
TAF_CAP = Decimal("5.95")

STOP_LIMIT_UNFILLED_WARNING = "Stop triggered but limit not reached - order unfilled!"


# ============================================================================
# RESULT TYPES
# ============================================================================

@dataclass(frozen=True, slots=True)
class SlippageBreakdown:
    """
    Slippage in basis points (1 bp = 0.01%).

    total_bps, spread_bps and market_impact_bps are rounded to 2 dp;
    market_impact_bps includes the time-of-day factor. price_impact is the
    unrounded currency amount per share.
    """
    total_bps: Decimal
    spread_bps: Decimal
    market_impact_bps: Decimal
    price_impact: Decimal


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """
    Simulated outcome of presenting an order to the market once.

    filled=False with triggered=True and a warning is the stop-limit edge case:
    valid, not an error, and the order remains pending.
    """
    filled: bool
    triggered: bool = False
    fill_price: Optional[Decimal] = None
    slippage_bps: Decimal = ZERO
    latency_ms: Optional[Decimal] = None
    warning: Optional[str] = None


NOT_TRIGGERED = ExecutionResult(filled=False, triggered=False)


@dataclass(frozen=True, slots=True)
class RoundTripCost:
    gross_pnl: Decimal
    slippage_cost: Decimal
    slippage_bps: Decimal
    sec_fee: Decimal
    taf_fee: Decimal
    total_fees: Decimal
    net_pnl: Decimal


@dataclass(frozen=True, slots=True)
class SlippageImpact:
    trades_per_year: int
    slippage_per_trade: Decimal
    annual_slippage_cost: Decimal
    slippage_percent_of_capital: Decimal
    break_even_return_percent: Decimal
    message: str


# ============================================================================
# PURE FUNCTIONS
# ============================================================================

def calculate_slippage(
    order_shares: Decimal,
    avg_daily_volume: Optional[Decimal],
    spread: Decimal,
    price: Decimal,
    order_type: OrderType = OrderType.MARKET,
    time_of_day: TimeOfDay = TimeOfDay.NORMAL,
) -> SlippageBreakdown:
    """
    Estimate slippage for an order.

    Args:
        order_shares: Order size in shares
        avg_daily_volume: Average daily volume (0 or None uses 1,000,000)
        spread: Current ask - bid
        price: Current reference price (> 0)
        order_type: Only MARKET pays slippage
        time_of_day: OPEN / NORMAL / CLOSE volatility factor

    Returns:
        SlippageBreakdown in basis points plus the per-share price impact.
    """
    order_shares = to_decimal(order_shares)
    spread = to_decimal(spread)
    price = to_decimal(price)
    if price <= ZERO:
        raise ValueError(f"price must be positive, got {price}")
    volume = optional_decimal(avg_daily_volume) or DEFAULT_AVERAGE_DAILY_VOLUME

    spread_bps = (spread / price) * BPS_PER_UNIT / 2
    market_impact_bps = (order_shares / volume) * MARKET_IMPACT_FACTOR
    time_factor = TIME_OF_DAY_MULTIPLIER[TimeOfDay(time_of_day)]
    type_factor = Decimal("1") if OrderType(order_type) is OrderType.MARKET else ZERO

    total = (spread_bps + market_impact_bps) * time_factor * type_factor

    return SlippageBreakdown(
        total_bps=round_money(total),
        spread_bps=round_money(spread_bps),
        market_impact_bps=round_money(market_impact_bps * time_factor),
        price_impact=(total / BPS_PER_UNIT) * price,
    )


def _latency(rng: RandomSource, order_type: OrderType) -> Decimal:
    low, high = LATENCY_MS[order_type]
    return draw_uniform(rng, low, high)


def _stop_triggered(side: Side, mid: Decimal, stop_price: Decimal) -> bool:
    if side is Side.SELL:
        return mid <= stop_price
    return mid >= stop_price


def _limit_marketable(side: Side, limit_price: Decimal, quote: Quote) -> bool:
    if side is Side.BUY:
        return limit_price >= quote.ask
    return limit_price <= quote.bid


def _market_fill(
    side: Side,
    quantity: Decimal,
    quote: Quote,
    spread: Decimal,
    time_of_day: TimeOfDay,
) -> Tuple[Decimal, Decimal]:
    slippage = calculate_slippage(
        order_shares=quantity,
        avg_daily_volume=quote.average_daily_volume,
        spread=spread,
        price=quote.mid,
        order_type=OrderType.MARKET,
        time_of_day=time_of_day,
    )
    base = quote.ask if side is Side.BUY else quote.bid
    impact = slippage.price_impact if side is Side.BUY else -slippage.price_impact
    return round_money(base + impact), slippage.total_bps


def simulate_execution(
    order_type: OrderType,
    side: Side,
    quantity: Decimal,
    quote: Quote,
    rng: RandomSource,
    limit_price: Optional[Decimal] = None,
    stop_price: Optional[Decimal] = None,
    time_of_day: TimeOfDay = TimeOfDay.NORMAL,
) -> ExecutionResult:
    """
    Resolve one order against the current quote.

    Args:
        order_type: MARKET, LIMIT, STOP or STOP_LIMIT
        side: BUY or SELL
        quantity: Shares
        quote: Current bid/ask/last/volume
        rng: Source for the simulated latency
        limit_price: Required for LIMIT and STOP_LIMIT
        stop_price: Required for STOP and STOP_LIMIT
        time_of_day: Volatility factor for slippage

    Returns:
        ExecutionResult describing fill, trigger, price, slippage and latency.
    """
    order_type = OrderType(order_type)
    side = Side(side)
    quantity = to_decimal(quantity)
    limit_price = optional_decimal(limit_price)
    stop_price = optional_decimal(stop_price)

    if order_type.needs_limit_price and limit_price is None:
        raise ValueError(f"{order_type.value} order requires a limit price")
    if order_type.needs_stop_price and stop_price is None:
        raise ValueError(f"{order_type.value} order requires a stop price")

    if order_type is OrderType.MARKET:
        fill_price, bps = _market_fill(side, quantity, quote, quote.spread, time_of_day)
        return ExecutionResult(
            filled=True,
            triggered=True,
            fill_price=fill_price,
            slippage_bps=bps,
            latency_ms=_latency(rng, order_type),
        )

    if order_type is OrderType.LIMIT:
        if not _limit_marketable(side, limit_price, quote):
            return NOT_TRIGGERED
        return ExecutionResult(
            filled=True,
            triggered=True,
            fill_price=limit_price,
            latency_ms=_latency(rng, order_type),
        )

    if not _stop_triggered(side, quote.mid, stop_price):
        return NOT_TRIGGERED

    if order_type is OrderType.STOP:
        fill_price, bps = _market_fill(
            side, quantity, quote, quote.spread * STOP_SPREAD_WIDENING, time_of_day
        )
        return ExecutionResult(
            filled=True,
            triggered=True,
            fill_price=fill_price,
            slippage_bps=bps,
            latency_ms=_latency(rng, order_type),
        )

    # STOP_LIMIT: triggered, now a limit order
    if not _limit_marketable(side, limit_price, quote):
        return ExecutionResult(
            filled=False,
            triggered=True,
            warning=STOP_LIMIT_UNFILLED_WARNING,
        )
    return ExecutionResult(
        filled=True,
        triggered=True,
        fill_price=limit_price,
        latency_ms=_latency(rng, order_type),
    )


def calculate_round_trip_cost(
    shares: Decimal,
    entry_price: Decimal,
    exit_price: Decimal,
    avg_daily_volume: Optional[Decimal],
    spread: Decimal,
) -> RoundTripCost:
    """
    True cost of buying and later selling the same shares with market orders.

    Slippage for both legs is charged on the entry notional. The sell leg also
    pays the regulatory fee and the capped per-share fee.
    """
    shares = to_decimal(shares)
    entry_price = to_decimal(entry_price)
    exit_price = to_decimal(exit_price)

    entry = calculate_slippage(shares, avg_daily_volume, spread, entry_price)
    exit_ = calculate_slippage(shares, avg_daily_volume, spread, exit_price)

    total_bps = entry.total_bps + exit_.total_bps
    slippage_cost = (total_bps / BPS_PER_UNIT) * entry_price * shares
    sec_fee = (exit_price * shares / Decimal("1000000")) * SEC_FEE_PER_MILLION
    taf_fee = min(shares * TAF_PER_SHARE, TAF_CAP)

    gross = (exit_price - entry_price) * shares
    total_fees = slippage_cost + sec_fee + taf_fee
    return RoundTripCost(
        gross_pnl=gross,
        slippage_cost=slippage_cost,
        slippage_bps=total_bps,
        sec_fee=sec_fee,
        taf_fee=taf_fee,
        total_fees=total_fees,
        net_pnl=gross - total_fees,
    )


def demonstrate_slippage_impact(
    annual_trades: int,
    avg_trade_value: Decimal,
    avg_slippage_bps: Decimal,
) -> SlippageImpact:
    """Show how per-trade slippage compounds over a year of recycled capital."""
    avg_trade_value = to_decimal(avg_trade_value)
    avg_slippage_bps = to_decimal(avg_slippage_bps)
    if avg_trade_value <= ZERO:
        raise ValueError("avg_trade_value must be positive")

    per_trade = (avg_slippage_bps / BPS_PER_UNIT) * avg_trade_value
    annual = per_trade * annual_trades
    percent = annual / avg_trade_value * 100
    return SlippageImpact(
        trades_per_year=annual_trades,
        slippage_per_trade=per_trade,
        annual_slippage_cost=annual,
        slippage_percent_of_capital=percent,
        break_even_return_percent=percent,
        message=(
            f"With {annual_trades} trades/year, you need {round_money(percent)}% "
            f"returns just to cover slippage costs."
        ),
    )
