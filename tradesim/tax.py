"""
tax.py - Simplified capital-gains tax estimates

Flat rates only: short-term gains at the top ordinary rate, long-term gains at
the common preferential rate. Bracket-accurate computation is out of scope.

    short-term tax = max(0, short_term * 0.37)
    long-term tax  = max(0, long_term * 0.15)

A losing bucket is taxed at zero and does not offset the other bucket.

RealizedSale is the audit record the Bookkeeper writes for every applied
sell fill; the year-end summary is built from these.
"""
from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional, Tuple

from .core import ZERO, to_decimal, _iso, _from_iso
from .lots import LotMatch


SHORT_TERM_RATE = Decimal("0.37")
LONG_TERM_RATE = Decimal("0.15")

# Friction charged per trade leg by the strategy comparison.
TRANSACTION_COST_PER_TRADE = Decimal("0.001")

LONG_TERM_HOLDING_MONTHS = 12


@dataclass(frozen=True, slots=True)
class RealizedSale:
    """
    One applied sell fill and what it booked.

    short_term and long_term are the amounts booked into RealizedGains, so a
    washed loss shows up here as zero (or as an offset) with disallowed_loss
    holding the excluded amount.
    """
    order_id: str
    instrument: str
    sold_at: datetime
    shares: Decimal
    sale_price: Decimal
    proceeds: Decimal
    cost_basis: Decimal
    short_term: Decimal
    long_term: Decimal
    matches: Tuple[LotMatch, ...] = ()
    is_wash_sale: bool = False
    disallowed_loss: Decimal = ZERO
    replacement_lot_id: Optional[str] = None

    @property
    def net(self) -> Decimal:
        return self.short_term + self.long_term

    def to_dict(self) -> Dict[str, Any]:
        return {
            'order_id': self.order_id,
            'instrument': self.instrument,
            'sold_at': _iso(self.sold_at),
            'shares': str(self.shares),
            'sale_price': str(self.sale_price),
            'proceeds': str(self.proceeds),
            'cost_basis': str(self.cost_basis),
            'short_term': str(self.short_term),
            'long_term': str(self.long_term),
            'matches': [m.to_dict() for m in self.matches],
            'is_wash_sale': self.is_wash_sale,
            'disallowed_loss': str(self.disallowed_loss),
            'replacement_lot_id': self.replacement_lot_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> RealizedSale:
        return cls(
            order_id=data['order_id'],
            instrument=data['instrument'],
            sold_at=_from_iso(data['sold_at']),
            shares=Decimal(data['shares']),
            sale_price=Decimal(data['sale_price']),
            proceeds=Decimal(data['proceeds']),
            cost_basis=Decimal(data['cost_basis']),
            short_term=Decimal(data['short_term']),
            long_term=Decimal(data['long_term']),
            matches=tuple(LotMatch.from_dict(m) for m in data.get('matches', [])),
            is_wash_sale=data.get('is_wash_sale', False),
            disallowed_loss=Decimal(data.get('disallowed_loss', "0")),
            replacement_lot_id=data.get('replacement_lot_id'),
        )


@dataclass(frozen=True, slots=True)
class TaxLiability:
    short_term_tax: Decimal
    long_term_tax: Decimal
    total_tax: Decimal
    effective_rate: Decimal


@dataclass(frozen=True, slots=True)
class TaxSummary:
    """Year-end view of realized sales."""
    gross_proceeds: Decimal
    total_cost_basis: Decimal
    short_term_gains: Decimal
    short_term_losses: Decimal
    long_term_gains: Decimal
    long_term_losses: Decimal
    wash_sale_adjustments: Decimal
    estimated_tax: TaxLiability

    @property
    def net_short_term(self) -> Decimal:
        return self.short_term_gains + self.short_term_losses

    @property
    def net_long_term(self) -> Decimal:
        return self.long_term_gains + self.long_term_losses


@dataclass(frozen=True, slots=True)
class StrategyComparison:
    gross_return: Decimal
    transaction_costs: Decimal
    taxable_gain: Decimal
    tax_rate: Decimal
    tax_owed: Decimal
    net_return: Decimal
    effective_return: Decimal


def calculate_tax_liability(short_term: Decimal, long_term: Decimal) -> TaxLiability:
    short_term = to_decimal(short_term)
    long_term = to_decimal(long_term)

    st_tax = max(ZERO, short_term * SHORT_TERM_RATE)
    lt_tax = max(ZERO, long_term * LONG_TERM_RATE)
    total = st_tax + lt_tax
    net = short_term + long_term

    return TaxLiability(
        short_term_tax=st_tax,
        long_term_tax=lt_tax,
        total_tax=total,
        effective_rate=total / net if net > ZERO else ZERO,
    )


def generate_tax_summary(sales: Iterable[RealizedSale]) -> TaxSummary:
    """
    Summarize realized sales.

    Each sale's booked bucket amounts count as a gain when positive and a loss
    when negative; disallowed wash-sale losses are reported separately.
    """
    proceeds = cost = ZERO
    st_gains = st_losses = lt_gains = lt_losses = ZERO
    washed = ZERO

    for sale in sales:
        proceeds += sale.proceeds
        cost += sale.cost_basis
        washed += sale.disallowed_loss
        if sale.short_term >= ZERO:
            st_gains += sale.short_term
        else:
            st_losses += sale.short_term
        if sale.long_term >= ZERO:
            lt_gains += sale.long_term
        else:
            lt_losses += sale.long_term

    return TaxSummary(
        gross_proceeds=proceeds,
        total_cost_basis=cost,
        short_term_gains=st_gains,
        short_term_losses=st_losses,
        long_term_gains=lt_gains,
        long_term_losses=lt_losses,
        wash_sale_adjustments=washed,
        estimated_tax=calculate_tax_liability(st_gains + st_losses, lt_gains + lt_losses),
    )


def compare_strategies(
    gross_return: Decimal,
    trading_frequency: int,
    holding_period_months: int,
) -> StrategyComparison:
    """
    Churning vs holding: what is left of a gross return after friction and tax.

    Each trade costs 10 bps per leg (round trip = 2 legs). Holdings longer than
    12 months get the long-term rate.
    """
    gross_return = to_decimal(gross_return)
    rate = LONG_TERM_RATE if holding_period_months > LONG_TERM_HOLDING_MONTHS else SHORT_TERM_RATE

    cost_fraction = trading_frequency * TRANSACTION_COST_PER_TRADE * 2
    after_costs = gross_return * (1 - cost_fraction)
    tax = max(ZERO, after_costs * rate)
    net = after_costs - tax

    return StrategyComparison(
        gross_return=gross_return,
        transaction_costs=gross_return * cost_fraction,
        taxable_gain=after_costs,
        tax_rate=rate,
        tax_owed=tax,
        net_return=net,
        effective_return=net / gross_return if gross_return != ZERO else ZERO,
    )
