"""
Core types and pure helpers for the trading simulation core.

This module provides the foundational data structures shared by every component:
1. Protocols: RandomSource for injectable pseudo-random draws
2. Enums: order side/type/status, cost-basis method, time of day, IPO and IOI status
3. Immutable data structures: Order, Trade, TaxLot, RealizedGains, ActionResult
4. Exceptions: SimulationError and its invariant-violation subclasses
5. Decimal helpers: conversion and rounding used for all money and share amounts

All functions in this module are pure. State lives in the Bookkeeper only.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP, ROUND_FLOOR, getcontext
from enum import Enum
from typing import Any, Dict, Optional, Protocol, runtime_checkable


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Money, prices and share quantities are Decimal throughout. Precision is set
# once at import time; rounding is always passed explicitly to quantize().
#
_SIM_DECIMAL_CONTEXT = getcontext()
_SIM_DECIMAL_CONTEXT.prec = 50


# ============================================================================
# CONSTANTS
# ============================================================================

# Starting cash for a new session (the pattern-day-trader threshold).
INITIAL_CASH = Decimal("25000")

# A lot is long-term only when held strictly more than this many days.
LONG_TERM_HOLDING_DAYS = 365

# Purchases within this many days before or after a loss sale wash the loss.
WASH_SALE_WINDOW_DAYS = 30

# IPO allocations cannot be sold until this many days after the offering date.
LOCK_UP_DAYS = 180

# Bounds for the share count of an indication of interest.
IOI_MIN_SHARES = 1
IOI_MAX_SHARES = 1000

CASH_DECIMAL_PLACES = 2

SECONDS_PER_DAY = 86400

# Quantities with absolute value below this threshold are treated as zero.
QUANTITY_EPSILON = Decimal("1e-9")

ZERO = Decimal("0")


# ============================================================================
# ENUMS
# ============================================================================

class Side(Enum):
    BUY = "BUY"
    SELL = "SELL"


class OrderType(Enum):
    MARKET = "MARKET"
    LIMIT = "LIMIT"
    STOP = "STOP"
    STOP_LIMIT = "STOP_LIMIT"

    @property
    def needs_limit_price(self) -> bool:
        return self in (OrderType.LIMIT, OrderType.STOP_LIMIT)

    @property
    def needs_stop_price(self) -> bool:
        return self in (OrderType.STOP, OrderType.STOP_LIMIT)


class OrderStatus(Enum):
    """
    Order lifecycle state.

    PENDING: Submitted, waiting to trigger, fill, or be cancelled.
    FILLED: Terminal. The fill has been applied to cash, lots and gains.
    CANCELLED: Terminal. Cancelled before any fill was scheduled.
    """
    PENDING = "PENDING"
    FILLED = "FILLED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self is not OrderStatus.PENDING


class CostBasisMethod(Enum):
    """Lot-selection order used when a sale consumes tax lots."""
    FIFO = "FIFO"   # oldest first
    LIFO = "LIFO"   # newest first
    HIFO = "HIFO"   # highest cost per share first


class TimeOfDay(Enum):
    OPEN = "OPEN"       # first 30 minutes
    NORMAL = "NORMAL"
    CLOSE = "CLOSE"     # last 30 minutes


class IPOStatus(Enum):
    """
    Offering lifecycle. Transitions are driven externally; the allocation
    engine only reads the status.
    """
    UPCOMING = "UPCOMING"
    PRICING = "PRICING"
    PRICED = "PRICED"
    COMPLETED = "COMPLETED"
    WITHDRAWN = "WITHDRAWN"


class IOIStatus(Enum):
    PENDING = "PENDING"
    CANCELLED = "CANCELLED"
    ALLOCATED = "ALLOCATED"
    NOT_ALLOCATED = "NOT_ALLOCATED"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class SimulationError(Exception):
    """Base exception for all simulation-core errors."""
    pass


class InsufficientSharesError(SimulationError):
    """Raised when a lot consumption asks for more shares than the open lots hold."""
    pass


class InvalidStateError(SimulationError):
    """Raised when bookkeeping state violates an invariant (e.g. lots != position)."""
    pass


class OrderNotFound(SimulationError):
    """Raised when an order id is unknown to the Bookkeeper."""
    pass


class OfferingNotFound(SimulationError):
    """Raised when an offering id is unknown to the Bookkeeper."""
    pass


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class RandomSource(Protocol):
    """
    Injectable source of pseudo-random draws.

    Both numpy.random.Generator and random.Random satisfy this protocol.
    Tests pass a scripted fake so that every draw is fixed.
    """

    def random(self) -> float:
        """Return a float in [0, 1)."""
        ...

    def uniform(self, low: float, high: float) -> float:
        """Return a float drawn uniformly from [low, high]."""
        ...


# ============================================================================
# DECIMAL HELPERS
# ============================================================================

def to_decimal(value: Any) -> Decimal:
    """
    Convert a number to Decimal without binary float artefacts.

    Floats go through str() so that 0.1 becomes Decimal("0.1").
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Cannot convert bool to Decimal: {value!r}")
    return Decimal(str(value))


def optional_decimal(value: Any) -> Optional[Decimal]:
    return None if value is None else to_decimal(value)


def round_money(value: Decimal, places: int = CASH_DECIMAL_PLACES) -> Decimal:
    """Round half away from zero to a fixed number of decimal places."""
    return to_decimal(value).quantize(Decimal(10) ** -places, rounding=ROUND_HALF_UP)


def round_whole(value: Decimal) -> int:
    """Round half away from zero to an integer."""
    return int(to_decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def floor_whole(value: Decimal) -> int:
    return int(to_decimal(value).to_integral_value(rounding=ROUND_FLOOR))


def draw_uniform(rng: RandomSource, low: Decimal, high: Decimal) -> Decimal:
    """Draw uniformly from [low, high] through the injected source, as Decimal."""
    return to_decimal(float(rng.uniform(float(low), float(high))))


def holding_days(acquired_at: datetime, sold_at: datetime) -> int:
    """Whole days between acquisition and sale, floored."""
    return int((sold_at - acquired_at).total_seconds() // SECONDS_PER_DAY)


def is_long_term(days_held: int) -> bool:
    """Long-term treatment requires strictly more than a year."""
    return days_held > LONG_TERM_HOLDING_DAYS


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _dec_str(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class TaxLot:
    """
    One acquisition batch of shares with its own cost basis and date.

    Lots are immutable; consuming shares or adjusting basis produces a new lot
    with the same lot_id.

    Attributes:
        lot_id: Unique identifier, never reused within a ledger.
        instrument: Ticker symbol.
        shares: Open shares (> 0 while the lot is open).
        cost_basis_per_share: Per-share basis, including wash-sale adjustments.
        acquired_at: Acquisition instant.
        is_wash_sale_adjusted: True once a disallowed loss was added to this lot's basis.
        disallowed_loss_carried: Total disallowed loss added to this lot's basis.
    """
    lot_id: str
    instrument: str
    shares: Decimal
    cost_basis_per_share: Decimal
    acquired_at: datetime
    is_wash_sale_adjusted: bool = False
    disallowed_loss_carried: Decimal = ZERO

    def __post_init__(self):
        object.__setattr__(self, 'shares', to_decimal(self.shares))
        object.__setattr__(self, 'cost_basis_per_share', to_decimal(self.cost_basis_per_share))
        object.__setattr__(self, 'disallowed_loss_carried', to_decimal(self.disallowed_loss_carried))
        if self.shares < ZERO:
            raise ValueError(f"Lot {self.lot_id} shares cannot be negative: {self.shares}")

    @property
    def cost_basis(self) -> Decimal:
        return self.shares * self.cost_basis_per_share

    def to_dict(self) -> Dict[str, Any]:
        return {
            'lot_id': self.lot_id,
            'instrument': self.instrument,
            'shares': str(self.shares),
            'cost_basis_per_share': str(self.cost_basis_per_share),
            'acquired_at': _iso(self.acquired_at),
            'is_wash_sale_adjusted': self.is_wash_sale_adjusted,
            'disallowed_loss_carried': str(self.disallowed_loss_carried),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> TaxLot:
        return cls(
            lot_id=data['lot_id'],
            instrument=data['instrument'],
            shares=Decimal(data['shares']),
            cost_basis_per_share=Decimal(data['cost_basis_per_share']),
            acquired_at=_from_iso(data['acquired_at']),
            is_wash_sale_adjusted=data.get('is_wash_sale_adjusted', False),
            disallowed_loss_carried=Decimal(data.get('disallowed_loss_carried', "0")),
        )


@dataclass(frozen=True, slots=True)
class Order:
    """
    A buy or sell request. Terminal once FILLED or CANCELLED.

    Status changes produce a new Order via dataclasses.replace().
    """
    order_id: str
    instrument: str
    side: Side
    order_type: OrderType
    quantity: Decimal
    submitted_at: datetime
    limit_price: Optional[Decimal] = None
    stop_price: Optional[Decimal] = None
    status: OrderStatus = OrderStatus.PENDING
    fill_price: Optional[Decimal] = None
    filled_at: Optional[datetime] = None

    def __post_init__(self):
        object.__setattr__(self, 'quantity', to_decimal(self.quantity))
        object.__setattr__(self, 'limit_price', optional_decimal(self.limit_price))
        object.__setattr__(self, 'stop_price', optional_decimal(self.stop_price))
        object.__setattr__(self, 'fill_price', optional_decimal(self.fill_price))

    @property
    def is_pending(self) -> bool:
        return self.status is OrderStatus.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            'order_id': self.order_id,
            'instrument': self.instrument,
            'side': self.side.value,
            'order_type': self.order_type.value,
            'quantity': str(self.quantity),
            'submitted_at': _iso(self.submitted_at),
            'limit_price': _dec_str(self.limit_price),
            'stop_price': _dec_str(self.stop_price),
            'status': self.status.value,
            'fill_price': _dec_str(self.fill_price),
            'filled_at': _iso(self.filled_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Order:
        return cls(
            order_id=data['order_id'],
            instrument=data['instrument'],
            side=Side(data['side']),
            order_type=OrderType(data['order_type']),
            quantity=Decimal(data['quantity']),
            submitted_at=_from_iso(data['submitted_at']),
            limit_price=optional_decimal(data.get('limit_price')),
            stop_price=optional_decimal(data.get('stop_price')),
            status=OrderStatus(data['status']),
            fill_price=optional_decimal(data.get('fill_price')),
            filled_at=_from_iso(data.get('filled_at')),
        )


@dataclass(frozen=True, slots=True)
class Trade:
    """
    Record of one applied fill. The wash-sale detector scans these.

    lot_id is the lot created by a BUY fill (None for sells).
    """
    trade_id: str
    order_id: str
    instrument: str
    side: Side
    quantity: Decimal
    price: Decimal
    timestamp: datetime
    lot_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'trade_id': self.trade_id,
            'order_id': self.order_id,
            'instrument': self.instrument,
            'side': self.side.value,
            'quantity': str(self.quantity),
            'price': str(self.price),
            'timestamp': _iso(self.timestamp),
            'lot_id': self.lot_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Trade:
        return cls(
            trade_id=data['trade_id'],
            order_id=data['order_id'],
            instrument=data['instrument'],
            side=Side(data['side']),
            quantity=Decimal(data['quantity']),
            price=Decimal(data['price']),
            timestamp=_from_iso(data['timestamp']),
            lot_id=data.get('lot_id'),
        )


@dataclass(frozen=True, slots=True)
class RealizedGains:
    """
    Session running totals of realized gains, in currency units.

    short_term and long_term exclude washed losses; wash_sale_disallowed
    accumulates the losses excluded by the wash-sale rule.
    """
    short_term: Decimal = ZERO
    long_term: Decimal = ZERO
    wash_sale_disallowed: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.short_term + self.long_term

    def add(
        self,
        short_term: Decimal = ZERO,
        long_term: Decimal = ZERO,
        wash_sale_disallowed: Decimal = ZERO,
    ) -> RealizedGains:
        return RealizedGains(
            short_term=self.short_term + short_term,
            long_term=self.long_term + long_term,
            wash_sale_disallowed=self.wash_sale_disallowed + wash_sale_disallowed,
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            'short_term': str(self.short_term),
            'long_term': str(self.long_term),
            'wash_sale_disallowed': str(self.wash_sale_disallowed),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> RealizedGains:
        return cls(
            short_term=Decimal(data['short_term']),
            long_term=Decimal(data['long_term']),
            wash_sale_disallowed=Decimal(data['wash_sale_disallowed']),
        )


@dataclass(frozen=True, slots=True)
class Position:
    """Per-instrument holding derived from open lots."""
    instrument: str
    shares: Decimal
    average_cost: Decimal

    @property
    def cost_basis(self) -> Decimal:
        return self.shares * self.average_cost

    def to_dict(self) -> Dict[str, str]:
        return {
            'instrument': self.instrument,
            'shares': str(self.shares),
            'average_cost': str(self.average_cost),
        }


@dataclass(frozen=True, slots=True)
class ActionResult:
    """
    Outcome of a Bookkeeper action.

    Validation failures are reported here (success=False, error=reason) and
    never raised. order_id is set for order submissions; warning carries
    non-error simulation edge cases.
    """
    success: bool
    error: Optional[str] = None
    order_id: Optional[str] = None
    warning: Optional[str] = None

    @classmethod
    def ok(cls, order_id: Optional[str] = None, warning: Optional[str] = None) -> ActionResult:
        return cls(success=True, order_id=order_id, warning=warning)

    @classmethod
    def rejected(cls, reason: str, order_id: Optional[str] = None) -> ActionResult:
        return cls(success=False, error=reason, order_id=order_id)

    def __bool__(self) -> bool:
        return self.success
