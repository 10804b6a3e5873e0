"""
ipo.py - IPO Demand, Pricing and Allocation Engine

=== OFFERING LIFECYCLE ===

    UPCOMING -> PRICING (accepts IOIs) -> PRICED (price fixed, allocation
    computed) -> COMPLETED (secondary trading)
    UPCOMING / PRICING -> WITHDRAWN

The engine never changes an offering's status; the external calendar driver
does, and calls the Bookkeeper when an offering reaches PRICED.

=== DEMAND ===

    multiplier = 1.0
        + 2.0 / 1.0 / 0.5   revenue growth > 0.5 / > 0.25 / > 0
        + 1.5 / 0.5         profitable / else gross margin > 0.5
        + 1.0               hot sector
        + 0.5               price-range midpoint < 25
    multiplier *= sentiment ~ U[0.7, 1.3]
    total = round(shares_offered * multiplier)
    institutional = round(total * U[0.65, 0.80]), retail = remainder
    ratio = total / shares_offered, hot iff multiplier > 2.5

=== FINAL PRICE ===

    ratio > 5 -> high * 1.15,  > 2 -> high,  > 1 -> low + 0.7 * (high - low),
    > 0.5 -> low,  else low * 0.9                     (all rounded to cents)

=== ALLOCATION (one participant) ===

    retail_pool = round(shares_offered * U[0.10, 0.20])
    raw = requested * retail_pool / retail_demand
    ratio > 10: 30% lottery, winners get max(1, floor(raw * 0.5))
    ratio > 5: floor(raw * 0.3);  ratio > 2: floor(raw * 0.5);  else raw

The tiering is a difficulty curve, not a market rule; breakpoints and
multipliers are fixed for reproducibility. Random draws happen in the order
documented on each function, always through the injected RandomSource.
"""
from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from .core import (
    IPOStatus, IOIStatus, RandomSource, ZERO,
    IOI_MIN_SHARES, IOI_MAX_SHARES, LOCK_UP_DAYS,
    to_decimal, optional_decimal, round_money, round_whole, floor_whole, draw_uniform,
    _iso, _from_iso, _dec_str,
)


HOT_SECTORS = ('Technology', 'AI', 'Biotech', 'Clean Energy')

HOT_MULTIPLIER_THRESHOLD = Decimal("2.5")
LOW_PRICE_MIDPOINT = Decimal("25")

SENTIMENT_RANGE = (Decimal("0.7"), Decimal("1.3"))
INSTITUTIONAL_SHARE_RANGE = (Decimal("0.65"), Decimal("0.80"))
RETAIL_POOL_RANGE = (Decimal("0.10"), Decimal("0.20"))
LOTTERY_WIN_PROBABILITY = 0.3

# Open-price multiplier ranges, by demand tier.
OPEN_MULTIPLIER_RANGES = {
    'massive': (Decimal("1.4"), Decimal("1.8")),
    'strong': (Decimal("1.2"), Decimal("1.5")),
    'moderate': (Decimal("1.05"), Decimal("1.25")),
    'flat': (Decimal("0.98"), Decimal("1.10")),
    'weak': (Decimal("0.85"), Decimal("1.00")),
}
# Fraction of the opening pop kept at the day-one close.
DAY_ONE_RETENTION_RANGE = (Decimal("0.6"), Decimal("0.9"))

RISK_SCORE_BASE = 50


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class PriceRange:
    low: Decimal
    high: Decimal

    def __post_init__(self):
        object.__setattr__(self, 'low', to_decimal(self.low))
        object.__setattr__(self, 'high', to_decimal(self.high))
        if self.low <= ZERO or self.high < self.low:
            raise ValueError(f"Invalid price range {self.low}-{self.high}")

    @property
    def midpoint(self) -> Decimal:
        return (self.low + self.high) / 2


@dataclass(frozen=True, slots=True)
class Financials:
    """
    S-1 headline financials.

    revenue, burn_rate and cash_position are optional; risk checks that need a
    missing figure are skipped.
    """
    revenue_growth: Decimal = ZERO
    net_income: Decimal = ZERO
    gross_margin: Decimal = ZERO
    revenue: Optional[Decimal] = None
    burn_rate: Optional[Decimal] = None
    cash_position: Optional[Decimal] = None

    def __post_init__(self):
        object.__setattr__(self, 'revenue_growth', to_decimal(self.revenue_growth))
        object.__setattr__(self, 'net_income', to_decimal(self.net_income))
        object.__setattr__(self, 'gross_margin', to_decimal(self.gross_margin))
        object.__setattr__(self, 'revenue', optional_decimal(self.revenue))
        object.__setattr__(self, 'burn_rate', optional_decimal(self.burn_rate))
        object.__setattr__(self, 'cash_position', optional_decimal(self.cash_position))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'revenue_growth': str(self.revenue_growth),
            'net_income': str(self.net_income),
            'gross_margin': str(self.gross_margin),
            'revenue': _dec_str(self.revenue),
            'burn_rate': _dec_str(self.burn_rate),
            'cash_position': _dec_str(self.cash_position),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Financials:
        return cls(**{key: value for key, value in data.items() if value is not None})


@dataclass(frozen=True, slots=True)
class RiskFactor:
    """A disclosed risk factor; severity is 'high', 'medium' or 'low'."""
    title: str
    severity: str


@dataclass(frozen=True, slots=True)
class IPOOffering:
    """
    A prospective offering on the IPO calendar.

    final_price, when set, overrides the demand-derived final price.
    """
    offering_id: str
    ticker: str
    price_range_low: Decimal
    price_range_high: Decimal
    shares_offered: int
    sector: str
    financials: Financials
    status: IPOStatus = IPOStatus.UPCOMING
    name: str = ""
    risk_factors: Tuple[RiskFactor, ...] = ()
    expected_date: Optional[datetime] = None
    final_price: Optional[Decimal] = None

    def __post_init__(self):
        object.__setattr__(self, 'price_range_low', to_decimal(self.price_range_low))
        object.__setattr__(self, 'price_range_high', to_decimal(self.price_range_high))
        object.__setattr__(self, 'final_price', optional_decimal(self.final_price))
        object.__setattr__(self, 'risk_factors', tuple(self.risk_factors))
        object.__setattr__(self, 'status', IPOStatus(self.status))
        if self.shares_offered <= 0:
            raise ValueError(f"shares_offered must be positive, got {self.shares_offered}")
        # Validates the bounds
        PriceRange(self.price_range_low, self.price_range_high)

    @property
    def price_range(self) -> PriceRange:
        return PriceRange(self.price_range_low, self.price_range_high)

    @property
    def accepts_ioi(self) -> bool:
        return self.status in (IPOStatus.UPCOMING, IPOStatus.PRICING)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'offering_id': self.offering_id,
            'ticker': self.ticker,
            'price_range_low': str(self.price_range_low),
            'price_range_high': str(self.price_range_high),
            'shares_offered': self.shares_offered,
            'sector': self.sector,
            'financials': self.financials.to_dict(),
            'status': self.status.value,
            'name': self.name,
            'risk_factors': [{'title': r.title, 'severity': r.severity} for r in self.risk_factors],
            'expected_date': _iso(self.expected_date),
            'final_price': _dec_str(self.final_price),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> IPOOffering:
        return cls(
            offering_id=data['offering_id'],
            ticker=data['ticker'],
            price_range_low=Decimal(data['price_range_low']),
            price_range_high=Decimal(data['price_range_high']),
            shares_offered=data['shares_offered'],
            sector=data['sector'],
            financials=Financials.from_dict(data['financials']),
            status=IPOStatus(data['status']),
            name=data.get('name', ""),
            risk_factors=tuple(RiskFactor(**r) for r in data.get('risk_factors', [])),
            expected_date=_from_iso(data.get('expected_date')),
            final_price=optional_decimal(data.get('final_price')),
        )


@dataclass(frozen=True, slots=True)
class IndicationOfInterest:
    """A participant's non-binding request for shares in one offering."""
    offering_id: str
    requested_shares: int
    max_price: Decimal
    submitted_at: datetime
    status: IOIStatus = IOIStatus.PENDING

    def __post_init__(self):
        object.__setattr__(self, 'max_price', to_decimal(self.max_price))
        if not IOI_MIN_SHARES <= self.requested_shares <= IOI_MAX_SHARES:
            raise ValueError(
                f"requested_shares must be within {IOI_MIN_SHARES}..{IOI_MAX_SHARES}"
            )

    @property
    def is_active(self) -> bool:
        return self.status is IOIStatus.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            'offering_id': self.offering_id,
            'requested_shares': self.requested_shares,
            'max_price': str(self.max_price),
            'submitted_at': _iso(self.submitted_at),
            'status': self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> IndicationOfInterest:
        return cls(
            offering_id=data['offering_id'],
            requested_shares=data['requested_shares'],
            max_price=Decimal(data['max_price']),
            submitted_at=_from_iso(data['submitted_at']),
            status=IOIStatus(data['status']),
        )


@dataclass(frozen=True, slots=True)
class DemandResult:
    total_demand: int
    institutional_demand: int
    retail_demand: int
    oversubscription_ratio: Decimal
    is_hot: bool
    demand_multiplier: Decimal = ZERO

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_demand': self.total_demand,
            'institutional_demand': self.institutional_demand,
            'retail_demand': self.retail_demand,
            'oversubscription_ratio': str(self.oversubscription_ratio),
            'is_hot': self.is_hot,
            'demand_multiplier': str(self.demand_multiplier),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> DemandResult:
        return cls(
            total_demand=data['total_demand'],
            institutional_demand=data['institutional_demand'],
            retail_demand=data['retail_demand'],
            oversubscription_ratio=Decimal(data['oversubscription_ratio']),
            is_hot=data['is_hot'],
            demand_multiplier=Decimal(data.get('demand_multiplier', "0")),
        )


@dataclass(frozen=True, slots=True)
class AllocationResult:
    """One participant's allocation in one offering. Immutable once computed."""
    shares_allocated: int
    allocation_price: Optional[Decimal]
    allocation_percent: int
    oversubscription_ratio: Optional[Decimal]
    reason: str
    requested_shares: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'shares_allocated': self.shares_allocated,
            'allocation_price': _dec_str(self.allocation_price),
            'allocation_percent': self.allocation_percent,
            'oversubscription_ratio': _dec_str(self.oversubscription_ratio),
            'reason': self.reason,
            'requested_shares': self.requested_shares,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AllocationResult:
        return cls(
            shares_allocated=data['shares_allocated'],
            allocation_price=optional_decimal(data.get('allocation_price')),
            allocation_percent=data['allocation_percent'],
            oversubscription_ratio=optional_decimal(data.get('oversubscription_ratio')),
            reason=data['reason'],
            requested_shares=data.get('requested_shares', 0),
        )


@dataclass(frozen=True, slots=True)
class OpeningTrade:
    open_price: Decimal
    day_one_close: Decimal
    open_pop_percent: Decimal
    day_one_return_percent: Decimal


@dataclass(frozen=True, slots=True)
class IPOPosition:
    """
    Allocated IPO shares.

    Locked positions are not tradable and are not in the open lots; release
    turns them into a tax lot acquired at acquired_at for cost_basis per share.
    """
    ticker: str
    offering_id: str
    shares: int
    cost_basis: Decimal
    acquired_at: datetime
    lock_up_expiry: datetime
    is_locked: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ticker': self.ticker,
            'offering_id': self.offering_id,
            'shares': self.shares,
            'cost_basis': str(self.cost_basis),
            'acquired_at': _iso(self.acquired_at),
            'lock_up_expiry': _iso(self.lock_up_expiry),
            'is_locked': self.is_locked,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> IPOPosition:
        return cls(
            ticker=data['ticker'],
            offering_id=data['offering_id'],
            shares=data['shares'],
            cost_basis=Decimal(data['cost_basis']),
            acquired_at=_from_iso(data['acquired_at']),
            lock_up_expiry=_from_iso(data['lock_up_expiry']),
            is_locked=data['is_locked'],
        )


@dataclass(frozen=True, slots=True)
class EntryLeg:
    """One way into a new listing: allocation at the IPO price, or a buy at the open."""
    shares: int
    price: Decimal
    total_cost: Decimal
    value: Decimal
    gain: Decimal
    gain_percent: Decimal


@dataclass(frozen=True, slots=True)
class EntryComparison:
    ipo_entry: Optional[EntryLeg]
    secondary_entry: EntryLeg
    advantage_of_ipo: Optional[Decimal]
    lesson: str


# ============================================================================
# PURE FUNCTIONS
# ============================================================================

def is_hot_sector(sector: Optional[str]) -> bool:
    return bool(sector) and any(hot in sector for hot in HOT_SECTORS)


def simulate_demand(offering: IPOOffering, rng: RandomSource) -> DemandResult:
    """
    Simulate aggregate market demand for an offering.

    Draws, in order: market sentiment, institutional share of demand.
    """
    fin = offering.financials
    multiplier = Decimal("1.0")

    if fin.revenue_growth > Decimal("0.5"):
        multiplier += Decimal("2.0")
    elif fin.revenue_growth > Decimal("0.25"):
        multiplier += Decimal("1.0")
    elif fin.revenue_growth > ZERO:
        multiplier += Decimal("0.5")

    if fin.net_income > ZERO:
        multiplier += Decimal("1.5")
    elif fin.gross_margin > Decimal("0.5"):
        multiplier += Decimal("0.5")

    if is_hot_sector(offering.sector):
        multiplier += Decimal("1.0")

    if offering.price_range.midpoint < LOW_PRICE_MIDPOINT:
        multiplier += Decimal("0.5")

    multiplier *= draw_uniform(rng, *SENTIMENT_RANGE)

    total = round_whole(offering.shares_offered * multiplier)
    institutional = round_whole(total * draw_uniform(rng, *INSTITUTIONAL_SHARE_RANGE))

    return DemandResult(
        total_demand=total,
        institutional_demand=institutional,
        retail_demand=total - institutional,
        oversubscription_ratio=Decimal(total) / Decimal(offering.shares_offered),
        is_hot=multiplier > HOT_MULTIPLIER_THRESHOLD,
        demand_multiplier=multiplier,
    )


def calculate_final_price(price_range: PriceRange, demand: DemandResult) -> Decimal:
    """
    Set the offering price from demand. Non-decreasing in the ratio.
    """
    low, high = price_range.low, price_range.high
    ratio = demand.oversubscription_ratio

    if ratio > 5:
        return round_money(high * Decimal("1.15"))
    if ratio > 2:
        return round_money(high)
    if ratio > 1:
        return round_money(low + (high - low) * Decimal("0.7"))
    if ratio > Decimal("0.5"):
        return round_money(low)
    return round_money(low * Decimal("0.9"))


def calculate_allocation(
    ioi: Optional[IndicationOfInterest],
    offering: IPOOffering,
    demand: DemandResult,
    rng: RandomSource,
) -> AllocationResult:
    """
    Compute one participant's allocation.

    Draws, in order (oversubscribed offerings only): retail pool slice, then
    the lottery draw when the ratio exceeds 10.
    """
    ratio = demand.oversubscription_ratio

    if ioi is None or not ioi.is_active:
        return AllocationResult(
            shares_allocated=0,
            allocation_price=None,
            allocation_percent=0,
            oversubscription_ratio=ratio,
            reason="No IOI submitted",
        )

    requested = ioi.requested_shares
    final_price = offering.final_price or calculate_final_price(offering.price_range, demand)

    if ioi.max_price < final_price:
        return AllocationResult(
            shares_allocated=0,
            allocation_price=final_price,
            allocation_percent=0,
            oversubscription_ratio=ratio,
            reason=(
                f"Your max price (${ioi.max_price}) was below "
                f"the final IPO price (${final_price})"
            ),
            requested_shares=requested,
        )

    if ratio <= 1:
        return AllocationResult(
            shares_allocated=requested,
            allocation_price=final_price,
            allocation_percent=100,
            oversubscription_ratio=ratio,
            reason="IPO was undersubscribed - full allocation",
            requested_shares=requested,
        )

    retail_pool = round_whole(offering.shares_offered * draw_uniform(rng, *RETAIL_POOL_RANGE))
    if demand.retail_demand > 0:
        raw = Decimal(requested) * retail_pool / Decimal(demand.retail_demand)
    else:
        raw = ZERO

    if ratio > 10:
        if not rng.random() < LOTTERY_WIN_PROBABILITY:
            return AllocationResult(
                shares_allocated=0,
                allocation_price=final_price,
                allocation_percent=0,
                oversubscription_ratio=ratio,
                reason=(
                    f"IPO was {ratio:.1f}x oversubscribed. "
                    f"You were not selected in the allocation lottery."
                ),
                requested_shares=requested,
            )
        allocated = max(1, floor_whole(raw * Decimal("0.5")))
    elif ratio > 5:
        allocated = floor_whole(raw * Decimal("0.3"))
    elif ratio > 2:
        allocated = floor_whole(raw * Decimal("0.5"))
    else:
        allocated = floor_whole(raw)

    allocated = min(max(0, allocated), requested)
    percent = round_whole(Decimal(allocated) / Decimal(requested) * 100)

    if allocated > 0:
        reason = (
            f"IPO was {ratio:.1f}x oversubscribed. "
            f"You received {percent}% of your requested shares."
        )
    else:
        reason = f"IPO was {ratio:.1f}x oversubscribed. No allocation received."

    return AllocationResult(
        shares_allocated=allocated,
        allocation_price=final_price,
        allocation_percent=percent,
        oversubscription_ratio=ratio,
        reason=reason,
        requested_shares=requested,
    )


def _open_multiplier_range(demand: DemandResult) -> Tuple[Decimal, Decimal]:
    ratio = demand.oversubscription_ratio
    if demand.is_hot and ratio > 10:
        return OPEN_MULTIPLIER_RANGES['massive']
    if ratio > 5:
        return OPEN_MULTIPLIER_RANGES['strong']
    if ratio > 2:
        return OPEN_MULTIPLIER_RANGES['moderate']
    if ratio > 1:
        return OPEN_MULTIPLIER_RANGES['flat']
    return OPEN_MULTIPLIER_RANGES['weak']


def simulate_opening_trade(
    offering: IPOOffering,
    final_price: Decimal,
    demand: DemandResult,
    rng: RandomSource,
) -> OpeningTrade:
    """
    Simulate the first day of secondary trading.

    Draws, in order: open-price multiplier, fraction of the pop kept at close.
    """
    final_price = to_decimal(final_price)
    multiplier = draw_uniform(rng, *_open_multiplier_range(demand))
    day_one_return = (multiplier - 1) * draw_uniform(rng, *DAY_ONE_RETENTION_RANGE)

    return OpeningTrade(
        open_price=round_money(final_price * multiplier),
        day_one_close=round_money(final_price * (1 + day_one_return)),
        open_pop_percent=round_money((multiplier - 1) * 100),
        day_one_return_percent=round_money(day_one_return * 100),
    )


def calculate_risk_score(offering: IPOOffering) -> int:
    """
    Score S-1 risk from 0 (safe) to 100 (risky), starting at 50.
    """
    fin = offering.financials
    score = RISK_SCORE_BASE

    if fin.net_income < ZERO:
        score += 15
    if fin.revenue is not None and fin.revenue == ZERO:
        score += 25
    if (
        fin.burn_rate is not None
        and fin.cash_position is not None
        and fin.burn_rate > fin.cash_position / 12
    ):
        score += 20
    if fin.revenue_growth < ZERO:
        score += 15

    score += 10 * sum(1 for r in offering.risk_factors if r.severity == 'high')
    score += 5 * sum(1 for r in offering.risk_factors if r.severity == 'medium')

    return min(100, max(0, score))


def lock_up_expiry(offering: IPOOffering, allocated_at: datetime) -> datetime:
    """Lock-up ends 180 days after the offering date (allocation time if undated)."""
    start = offering.expected_date or allocated_at
    return start + timedelta(days=LOCK_UP_DAYS)


def _percent(gain: Decimal, cost: Decimal) -> Decimal:
    if cost == ZERO:
        return ZERO
    return round_money(gain / cost * 100)


def compare_entry_strategies(
    allocation: Optional[AllocationResult],
    open_price: Decimal,
    day_one_close: Decimal,
    final_price: Decimal,
) -> EntryComparison:
    """
    Compare an IPO allocation with buying the same dollar amount at the open.
    """
    open_price = to_decimal(open_price)
    day_one_close = to_decimal(day_one_close)
    final_price = to_decimal(final_price)

    if allocation is None or allocation.shares_allocated == 0:
        shares = (allocation.requested_shares if allocation else 0) or 100
        cost = open_price * shares
        value = day_one_close * shares
        return EntryComparison(
            ipo_entry=None,
            secondary_entry=EntryLeg(
                shares=shares,
                price=open_price,
                total_cost=cost,
                value=value,
                gain=value - cost,
                gain_percent=_percent(value - cost, cost),
            ),
            advantage_of_ipo=None,
            lesson='Without IPO allocation, you would buy at the open price, missing the "pop".',
        )

    ipo_shares = allocation.shares_allocated
    ipo_cost = final_price * ipo_shares
    ipo_value_at_open = open_price * ipo_shares
    ipo_gain = ipo_value_at_open - ipo_cost

    secondary_shares = floor_whole(ipo_cost / open_price)
    secondary_value = day_one_close * secondary_shares
    secondary_gain = secondary_value - ipo_cost

    if ipo_gain > ZERO:
        lesson = (
            f"IPO allocation provided a {round_whole(ipo_gain / ipo_cost * 100)}% gain at open. "
            f"Secondary buyers missed this."
        )
    else:
        lesson = "This IPO traded below the offering price. IPO allocation was not advantageous."

    return EntryComparison(
        ipo_entry=EntryLeg(
            shares=ipo_shares,
            price=final_price,
            total_cost=ipo_cost,
            value=ipo_value_at_open,
            gain=ipo_gain,
            gain_percent=_percent(ipo_gain, ipo_cost),
        ),
        secondary_entry=EntryLeg(
            shares=secondary_shares,
            price=open_price,
            total_cost=ipo_cost,
            value=secondary_value,
            gain=secondary_gain,
            gain_percent=_percent(secondary_gain, ipo_cost),
        ),
        advantage_of_ipo=ipo_gain - secondary_gain,
        lesson=lesson,
    )
