"""
bookkeeper.py - Stateful Position / Cash Bookkeeper

The Bookkeeper is the central state manager of a trading session. It is the
only module that mutates state; every other module is pure.

Key responsibilities:
    - Two-phase order lifecycle: submit (validate, record PENDING), resolve
      against quotes, deferred fill after the simulated latency
    - apply_fill is the single entry point that changes cash, lots, positions
      and realized gains
    - Wash-sale handling on both sides of the window: a loss sale is checked
      against earlier buys, a buy is checked against earlier loss sales
    - IOI lifecycle, IPO allocation and lock-up release
    - Logical clock; snapshot / restore

Validation failures return ActionResult(success=False) and leave state
unchanged. Invariant violations raise.
"""

from __future__ import annotations
from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional
import numpy as np

from .core import (
    # Types
    Order, Trade, TaxLot, Position, RealizedGains, ActionResult, RandomSource,
    Side, OrderType, OrderStatus, CostBasisMethod, TimeOfDay, IPOStatus, IOIStatus,
    # Constants
    INITIAL_CASH, IOI_MIN_SHARES, IOI_MAX_SHARES, QUANTITY_EPSILON, ZERO,
    # Exceptions
    InvalidStateError, OrderNotFound, OfferingNotFound,
    # Helpers
    to_decimal, optional_decimal, round_whole, floor_whole, _iso, _from_iso,
)
from .lots import LotLedger, LotMatch
from .wash_sale import check_wash_sale, split_disallowance, pick_replacement_lot, within_window
from .execution import ExecutionResult, simulate_execution
from .quotes import Quote, QuoteSource
from .fills import FillQueue
from .ipo import (
    IPOOffering, IndicationOfInterest, DemandResult, AllocationResult, IPOPosition,
    simulate_demand, calculate_allocation, lock_up_expiry,
)
from .tax import RealizedSale, TaxSummary, generate_tax_summary


SNAPSHOT_VERSION = 1


class Bookkeeper:
    """
    Cash, tax lots, orders and IPO holdings for one simulated portfolio.

    Positions are derived from open lots, so the shares of a position always
    equal the sum of its lots.

    Thread Safety:
        Not thread-safe. One Bookkeeper per session; fills are applied from a
        single queue.

    Example:
        book = Bookkeeper(initial_time=datetime(2024, 1, 2, 9, 30), verbose=False)
        result = book.submit_order("AAPL", Side.BUY, OrderType.MARKET, 10)
        book.process_quote("AAPL", Quote(bid=189.95, ask=190.05, last_price=190))
        book.advance_time(book.current_time + timedelta(seconds=1))
        book.get_position("AAPL")
    """

    def __init__(
        self,
        initial_cash: Decimal = INITIAL_CASH,
        initial_time: Optional[datetime] = None,
        cost_basis_method: CostBasisMethod = CostBasisMethod.FIFO,
        adjust_wash_sale_basis: bool = True,
        rng: Optional[RandomSource] = None,
        quotes: Optional[QuoteSource] = None,
        verbose: bool = True,
    ):
        """
        Create a bookkeeper.

        Args:
            initial_cash: Starting cash (default: 25,000)
            initial_time: Starting logical time (default: 1970-01-01)
            cost_basis_method: Lot selection for sells (default: FIFO)
            adjust_wash_sale_basis: Add disallowed losses to the replacement
                lot's basis (default: True)
            rng: Source of all random draws (default: numpy default_rng())
            quotes: Feed used when process_quote is called without a quote
                and to estimate market buy cost
            verbose: Print one line per accepted, rejected or flagged action
        """
        self.initial_cash = to_decimal(initial_cash)
        self.initial_time = initial_time or datetime(1970, 1, 1)
        self.cost_basis_method = CostBasisMethod(cost_basis_method)
        self.adjust_wash_sale_basis = adjust_wash_sale_basis
        self.rng: RandomSource = rng if rng is not None else np.random.default_rng()
        self.quotes = quotes
        self.verbose = verbose
        self.offerings: Dict[str, IPOOffering] = {}
        self._init_state()

    def _init_state(self) -> None:
        self._current_time: datetime = self.initial_time
        self._cash: Decimal = self.initial_cash
        self._lots = LotLedger()
        self._fills = FillQueue()
        self._orders: Dict[str, Order] = {}
        self._order_history: List[Order] = []
        self._trades: List[Trade] = []
        self._sales: List[RealizedSale] = []
        self._realized = RealizedGains()
        self._iois: Dict[str, IndicationOfInterest] = {}
        self._demands: Dict[str, DemandResult] = {}
        self._allocations: Dict[str, AllocationResult] = {}
        self._ipo_positions: List[IPOPosition] = []
        self._next_order: int = 1
        self._next_trade: int = 1
        self.trades_executed: int = 0

    def reset(self) -> None:
        """Return to the initial session state. Registered offerings are kept."""
        self._init_state()
        if self.verbose:
            print(f"✓ RESET: cash={self._cash}")

    # ========================================================================
    # QUERIES
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        return self._current_time

    @property
    def cash(self) -> Decimal:
        return self._cash

    @property
    def realized_gains(self) -> RealizedGains:
        return self._realized

    def get_position(self, instrument: str) -> Optional[Position]:
        shares = self._lots.total_shares(instrument)
        if shares <= QUANTITY_EPSILON:
            return None
        return Position(
            instrument=instrument,
            shares=shares,
            average_cost=self._lots.total_cost(instrument) / shares,
        )

    def positions(self) -> Dict[str, Position]:
        result = {}
        for instrument in self._lots.instruments():
            position = self.get_position(instrument)
            if position is not None:
                result[instrument] = position
        return result

    def open_lots(self, instrument: Optional[str] = None) -> List[TaxLot]:
        if instrument is None:
            return self._lots.all_lots()
        return self._lots.open_lots(instrument)

    def order(self, order_id: str) -> Order:
        """
        Raises:
            OrderNotFound: If the id was never issued by this bookkeeper.
        """
        try:
            return self._orders[order_id]
        except KeyError:
            raise OrderNotFound(f"Order {order_id} not found") from None

    def pending_orders(self, instrument: Optional[str] = None) -> List[Order]:
        """Pending orders in submission order."""
        return [
            o for o in self._orders.values()
            if o.is_pending and (instrument is None or o.instrument == instrument)
        ]

    def order_history(self) -> List[Order]:
        """Filled orders, in fill order."""
        return list(self._order_history)

    def trade_history(self) -> List[Trade]:
        return list(self._trades)

    def realized_sales(self) -> List[RealizedSale]:
        return list(self._sales)

    def tax_summary(self) -> TaxSummary:
        return generate_tax_summary(self._sales)

    def offering(self, offering_id: str) -> IPOOffering:
        try:
            return self.offerings[offering_id]
        except KeyError:
            raise OfferingNotFound(f"Offering {offering_id} not found") from None

    def offerings_by_status(self, *statuses: IPOStatus) -> List[IPOOffering]:
        """
        Calendar view: registered offerings in any of `statuses`, soonest first.

        Undated offerings sort last.
        """
        wanted = set(statuses)
        matching = [o for o in self.offerings.values() if o.status in wanted]
        return sorted(matching, key=lambda o: (o.expected_date is None, o.expected_date or datetime.min))

    def ioi(self, offering_id: str) -> Optional[IndicationOfInterest]:
        return self._iois.get(offering_id)

    def allocation(self, offering_id: str) -> Optional[AllocationResult]:
        return self._allocations.get(offering_id)

    def demand(self, offering_id: str) -> Optional[DemandResult]:
        return self._demands.get(offering_id)

    def ipo_positions(self, locked_only: bool = False) -> List[IPOPosition]:
        return [p for p in self._ipo_positions if p.is_locked or not locked_only]

    def has_fill_in_flight(self, order_id: str) -> bool:
        return self._fills.is_in_flight(order_id)

    def portfolio_value(self, prices: Optional[Mapping[str, Decimal]] = None) -> Decimal:
        """
        Cash plus holdings (locked IPO shares included) at market.

        Each instrument is priced from `prices`, else the quote feed's last
        price, else its average cost.
        """
        prices = dict(prices or {})

        def price_of(instrument: str, fallback: Decimal) -> Decimal:
            if instrument in prices:
                return to_decimal(prices[instrument])
            if self.quotes is not None:
                quote = self.quotes.get_quote(instrument)
                if quote is not None:
                    return quote.last_price
            return fallback

        total = self._cash
        for instrument, position in self.positions().items():
            total += position.shares * price_of(instrument, position.average_cost)
        for holding in self.ipo_positions(locked_only=True):
            total += holding.shares * price_of(holding.ticker, holding.cost_basis)
        return total

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    def advance_time(self, new_time: datetime) -> List[ActionResult]:
        """
        Advance the logical clock, apply fills that came due and release
        expired lock-ups.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time
        results = self.process_due_fills(new_time)
        self.update_lock_up_status(new_time)
        return results

    def process_due_fills(self, as_of: Optional[datetime] = None) -> List[ActionResult]:
        """Apply every scheduled fill due at or before as_of, in due order."""
        as_of = as_of or self._current_time
        return [
            self.apply_fill(fill.order_id, fill.price, fill.quantity, fill.due_time)
            for fill in self._fills.get_due(as_of)
        ]

    # ========================================================================
    # ORDERS (Mutating)
    # ========================================================================

    def _reject(self, reason: str, order_id: Optional[str] = None) -> ActionResult:
        if self.verbose:
            print(f"✗ REJECTED: {reason}")
        return ActionResult.rejected(reason, order_id=order_id)

    def _sellable_shares(self, instrument: str) -> Decimal:
        committed = sum(
            (o.quantity for o in self.pending_orders(instrument) if o.side is Side.SELL),
            ZERO,
        )
        return self._lots.total_shares(instrument) - committed

    def _estimate_buy_price(self, instrument: str, limit_price: Optional[Decimal],
                            stop_price: Optional[Decimal]) -> Optional[Decimal]:
        if limit_price is not None:
            return limit_price
        if stop_price is not None:
            return stop_price
        if self.quotes is not None:
            quote = self.quotes.get_quote(instrument)
            if quote is not None:
                return quote.ask
        return None

    def submit_order(
        self,
        instrument: str,
        side: Side,
        order_type: OrderType,
        quantity: Decimal,
        limit_price: Optional[Decimal] = None,
        stop_price: Optional[Decimal] = None,
    ) -> ActionResult:
        """
        Validate and record a PENDING order.

        Returns:
            ActionResult with order_id on success, or the rejection reason.
            A rejected order is not recorded.
        """
        side = Side(side)
        order_type = OrderType(order_type)
        quantity = to_decimal(quantity)
        limit_price = optional_decimal(limit_price)
        stop_price = optional_decimal(stop_price)

        if quantity <= ZERO:
            return self._reject(f"Quantity must be positive, got {quantity}")
        if order_type.needs_limit_price and limit_price is None:
            return self._reject(f"{order_type.value} order requires a limit price")
        if order_type.needs_stop_price and stop_price is None:
            return self._reject(f"{order_type.value} order requires a stop price")
        if limit_price is not None and limit_price <= ZERO:
            return self._reject(f"Limit price must be positive, got {limit_price}")
        if stop_price is not None and stop_price <= ZERO:
            return self._reject(f"Stop price must be positive, got {stop_price}")

        if side is Side.SELL:
            sellable = self._sellable_shares(instrument)
            if quantity > sellable + QUANTITY_EPSILON:
                return self._reject(
                    f"Insufficient shares: have {sellable} {instrument} available, "
                    f"tried to sell {quantity}"
                )
        else:
            price = self._estimate_buy_price(instrument, limit_price, stop_price)
            if price is not None and price * quantity > self._cash:
                return self._reject(
                    f"Insufficient funds: need {price * quantity}, have {self._cash}"
                )

        order_id = f"ORD_{self._next_order:06d}"
        self._next_order += 1
        self._orders[order_id] = Order(
            order_id=order_id,
            instrument=instrument,
            side=side,
            order_type=order_type,
            quantity=quantity,
            submitted_at=self._current_time,
            limit_price=limit_price,
            stop_price=stop_price,
        )
        if self.verbose:
            print(f"✓ SUBMITTED: {order_id} {side.value} {quantity} {instrument} {order_type.value}")
        return ActionResult.ok(order_id=order_id)

    def cancel_order(self, order_id: str) -> ActionResult:
        """Cancel a PENDING order that has no fill in flight."""
        order = self._orders.get(order_id)
        if order is None:
            return self._reject(f"Order {order_id} not found", order_id)
        if not order.is_pending:
            return self._reject(f"Order {order_id} is already {order.status.value}", order_id)
        if self._fills.is_in_flight(order_id):
            return self._reject(f"Order {order_id} has a fill in flight", order_id)

        self._orders[order_id] = replace(order, status=OrderStatus.CANCELLED)
        if self.verbose:
            print(f"✓ CANCELLED: {order_id}")
        return ActionResult.ok(order_id=order_id)

    def process_quote(
        self,
        instrument: str,
        quote: Optional[Quote] = None,
        time_of_day: TimeOfDay = TimeOfDay.NORMAL,
    ) -> List[ExecutionResult]:
        """
        Present every pending order of an instrument to the market once.

        Orders that fill are posted to the fill queue, due after their
        simulated latency. Orders already in flight are skipped.

        Returns:
            One ExecutionResult per evaluated order, in submission order.
            Empty when no quote is available.
        """
        if quote is None and self.quotes is not None:
            quote = self.quotes.get_quote(instrument)
        if quote is None:
            return []

        results = []
        for order in self.pending_orders(instrument):
            if self._fills.is_in_flight(order.order_id):
                continue
            result = simulate_execution(
                order_type=order.order_type,
                side=order.side,
                quantity=order.quantity,
                quote=quote,
                rng=self.rng,
                limit_price=order.limit_price,
                stop_price=order.stop_price,
                time_of_day=time_of_day,
            )
            if result.filled:
                due = self._current_time + timedelta(milliseconds=float(result.latency_ms))
                self._fills.schedule(order.order_id, result.fill_price, order.quantity, due)
                if self.verbose:
                    print(f"✓ ROUTED: {order.order_id} @ {result.fill_price} "
                          f"(slippage {result.slippage_bps} bps, {result.latency_ms:.0f} ms)")
            elif result.warning and self.verbose:
                print(f"⚠️  {order.order_id}: {result.warning}")
            results.append(result)
        return results

    # ========================================================================
    # FILLS (Mutating)
    # ========================================================================

    def _record_trade(self, order: Order, price: Decimal, quantity: Decimal,
                      timestamp: datetime, lot_id: Optional[str] = None) -> Trade:
        trade = Trade(
            trade_id=f"TRD_{self._next_trade:06d}",
            order_id=order.order_id,
            instrument=order.instrument,
            side=order.side,
            quantity=quantity,
            price=price,
            timestamp=timestamp,
            lot_id=lot_id,
        )
        self._next_trade += 1
        self._trades.append(trade)
        return trade

    def apply_fill(
        self,
        order_id: str,
        price: Decimal,
        quantity: Decimal,
        timestamp: Optional[datetime] = None,
    ) -> ActionResult:
        """
        Apply one fill to cash, lots and realized gains, and mark the order FILLED.

        A fill that would overdraw cash or oversell the open lots is rejected
        and changes nothing.

        Raises:
            OrderNotFound: If the order id is unknown.
        """
        order = self.order(order_id)
        price = to_decimal(price)
        quantity = to_decimal(quantity)
        timestamp = timestamp or self._current_time

        if not order.is_pending:
            return self._reject(f"Order {order_id} is already {order.status.value}", order_id)
        if price <= ZERO or quantity <= ZERO:
            return self._reject(f"Invalid fill for {order_id}: {quantity} @ {price}", order_id)
        if quantity > order.quantity + QUANTITY_EPSILON:
            return self._reject(
                f"Fill of {quantity} exceeds order {order_id} quantity of {order.quantity}", order_id
            )

        if order.side is Side.BUY:
            cost = price * quantity
            if cost > self._cash:
                return self._reject(
                    f"Insufficient funds for {order_id}: need {cost}, have {self._cash}", order_id
                )
            self._cash -= cost
            lot_id = self._lots.acquire(order.instrument, quantity, price, timestamp)
            self._record_trade(order, price, quantity, timestamp, lot_id)
            self._wash_earlier_losses(order.instrument, lot_id, timestamp)
        else:
            held = self._lots.total_shares(order.instrument)
            if quantity > held + QUANTITY_EPSILON:
                return self._reject(
                    f"Insufficient shares for {order_id}: have {held}, selling {quantity}", order_id
                )
            matches = self._lots.consume(order.instrument, quantity, self.cost_basis_method, timestamp)
            self._cash += price * quantity
            self._record_trade(order, price, quantity, timestamp)
            self._book_sale(order, price, quantity, timestamp, matches)

        filled = replace(order, status=OrderStatus.FILLED, fill_price=price, filled_at=timestamp)
        self._orders[order_id] = filled
        self._order_history.append(filled)
        self.trades_executed += 1
        self._check_invariants()

        if self.verbose:
            print(f"✓ FILLED: {order_id} {order.side.value} {quantity} {order.instrument} @ {price}")
        return ActionResult.ok(order_id=order_id)

    def _book_sale(self, order: Order, price: Decimal, quantity: Decimal,
                   timestamp: datetime, matches: List[LotMatch]) -> None:
        short_term = sum((m.gain(price) for m in matches if not m.is_long_term), ZERO)
        long_term = sum((m.gain(price) for m in matches if m.is_long_term), ZERO)
        net = short_term + long_term

        sale = RealizedSale(
            order_id=order.order_id,
            instrument=order.instrument,
            sold_at=timestamp,
            shares=quantity,
            sale_price=price,
            proceeds=price * quantity,
            cost_basis=sum((m.cost_basis for m in matches), ZERO),
            short_term=short_term,
            long_term=long_term,
            matches=tuple(matches),
        )

        if net < ZERO:
            # Buys whose lots this sale closed out entirely are not replacements
            closed = {
                m.lot.lot_id for m in matches
                if m.shares_used >= m.lot.shares - QUANTITY_EPSILON
            }
            candidates = [t for t in self._trades if t.lot_id not in closed]
            wash = check_wash_sale(order.instrument, timestamp, net, candidates)
            if wash.is_wash_sale:
                replacements = [t for t in candidates if t.trade_id in wash.replacement_trade_ids]
                replacement = pick_replacement_lot(self._lots.open_lots(order.instrument), replacements)
                sale = self._wash(sale, wash.disallowed_loss,
                                  replacement.lot_id if replacement is not None else None)
                self._sales.append(sale)
                return

        self._realized = self._realized.add(short_term=short_term, long_term=long_term)
        self._sales.append(sale)

    def _wash(self, sale: RealizedSale, disallowed: Decimal,
              replacement_lot_id: Optional[str]) -> RealizedSale:
        """
        Book a sale whose net loss is disallowed.

        The sale's buckets must not have been booked yet.
        """
        short_term, long_term = split_disallowance(sale.short_term, sale.long_term)
        self._realized = self._realized.add(
            short_term=short_term,
            long_term=long_term,
            wash_sale_disallowed=disallowed,
        )
        if self.adjust_wash_sale_basis and replacement_lot_id is not None:
            self._lots.adjust_basis(replacement_lot_id, disallowed)
        if self.verbose:
            target = f", basis added to {replacement_lot_id}" if replacement_lot_id else ""
            print(f"⚠️  WASH SALE: {sale.instrument} loss of {disallowed} disallowed{target}")
        return replace(
            sale,
            short_term=short_term,
            long_term=long_term,
            is_wash_sale=True,
            disallowed_loss=disallowed,
            replacement_lot_id=replacement_lot_id,
        )

    def _wash_earlier_losses(self, instrument: str, lot_id: str, bought_at: datetime) -> None:
        """
        Disallow losses of earlier sales that this purchase falls within 30 days of.

        A sale already washed by purchases that were all sold before it has no
        replacement lot; this lot takes that role without booking the sale again.
        """
        for i, sale in enumerate(self._sales):
            if sale.instrument != instrument or not within_window(bought_at, sale.sold_at):
                continue
            if sale.is_wash_sale:
                if sale.replacement_lot_id is None:
                    self._sales[i] = self._carry_disallowed_loss(sale, lot_id)
                continue
            if sale.net >= ZERO:
                continue
            # Reverse what the sale booked, then book it as washed
            self._realized = self._realized.add(
                short_term=-sale.short_term,
                long_term=-sale.long_term,
            )
            self._sales[i] = self._wash(sale, -sale.net, lot_id)

    def _carry_disallowed_loss(self, sale: RealizedSale, lot_id: str) -> RealizedSale:
        if self.adjust_wash_sale_basis:
            self._lots.adjust_basis(lot_id, sale.disallowed_loss)
        if self.verbose:
            print(f"⚠️  WASH SALE: {sale.instrument} disallowed loss of "
                  f"{sale.disallowed_loss} now carried by {lot_id}")
        return replace(sale, replacement_lot_id=lot_id)

    def _check_invariants(self) -> None:
        if self._cash < ZERO:
            raise InvalidStateError(f"Cash went negative: {self._cash}")
        for lot in self._lots.all_lots():
            if lot.shares <= ZERO:
                raise InvalidStateError(f"Open lot {lot.lot_id} has {lot.shares} shares")

    # ========================================================================
    # IPO (Mutating)
    # ========================================================================

    def register_offering(self, offering: IPOOffering) -> None:
        """Add an offering to the calendar, or replace it after a status change."""
        self.offerings[offering.offering_id] = offering

    def submit_ioi(self, offering_id: str, shares: int, max_price: Decimal) -> ActionResult:
        """
        Record an indication of interest, replacing any active one for the offering.
        """
        offering = self.offerings.get(offering_id)
        if offering is None:
            return self._reject(f"Offering {offering_id} not found")
        if not offering.accepts_ioi:
            return self._reject(
                f"{offering.ticker} is {offering.status.value} and not accepting indications of interest"
            )
        if isinstance(shares, bool) or int(shares) != shares:
            return self._reject(f"IOI shares must be a whole number, got {shares}")
        shares = int(shares)
        if not IOI_MIN_SHARES <= shares <= IOI_MAX_SHARES:
            return self._reject(f"IOI shares must be between {IOI_MIN_SHARES} and {IOI_MAX_SHARES}")
        max_price = to_decimal(max_price)
        if max_price < offering.price_range_low:
            return self._reject(
                f"Max price {max_price} is below the price range low of {offering.price_range_low}"
            )
        if max_price * shares > self._cash:
            return self._reject(
                f"Insufficient funds: need {max_price * shares} at max price, have {self._cash}"
            )

        self._iois[offering_id] = IndicationOfInterest(
            offering_id=offering_id,
            requested_shares=shares,
            max_price=max_price,
            submitted_at=self._current_time,
        )
        if self.verbose:
            print(f"✓ IOI: {shares} {offering.ticker} up to {max_price}")
        return ActionResult.ok()

    def cancel_ioi(self, offering_id: str) -> ActionResult:
        ioi = self._iois.get(offering_id)
        if ioi is None or not ioi.is_active:
            return self._reject(f"No active IOI for offering {offering_id}")
        self._iois[offering_id] = replace(ioi, status=IOIStatus.CANCELLED)
        if self.verbose:
            print(f"✓ IOI CANCELLED: {offering_id}")
        return ActionResult.ok()

    def process_allocation(self, offering_id: str) -> AllocationResult:
        """
        Simulate demand and allocate the offering. Runs once per offering;
        later calls return the stored result.

        Allocated shares are paid for now and held locked until the lock-up
        expires.

        Raises:
            OfferingNotFound: If the offering is not registered.
            InvalidStateError: If the offering is not PRICED.
        """
        if offering_id in self._allocations:
            return self._allocations[offering_id]
        offering = self.offering(offering_id)
        if offering.status is not IPOStatus.PRICED:
            raise InvalidStateError(
                f"Offering {offering_id} is {offering.status.value}, allocation needs PRICED"
            )

        demand = simulate_demand(offering, self.rng)
        ioi = self._iois.get(offering_id)
        result = calculate_allocation(ioi, offering, demand, self.rng)

        if result.shares_allocated > 0 and result.shares_allocated * result.allocation_price > self._cash:
            affordable = floor_whole(self._cash / result.allocation_price)
            result = replace(
                result,
                shares_allocated=affordable,
                allocation_percent=round_whole(Decimal(affordable) / Decimal(result.requested_shares) * 100),
                reason=f"{result.reason} Allocation reduced to {affordable} shares by available cash.",
            )

        self._demands[offering_id] = demand
        self._allocations[offering_id] = result

        if ioi is not None and ioi.is_active:
            status = IOIStatus.ALLOCATED if result.shares_allocated > 0 else IOIStatus.NOT_ALLOCATED
            self._iois[offering_id] = replace(ioi, status=status)

        if result.shares_allocated > 0:
            self._cash -= result.shares_allocated * result.allocation_price
            self._ipo_positions.append(IPOPosition(
                ticker=offering.ticker,
                offering_id=offering_id,
                shares=result.shares_allocated,
                cost_basis=result.allocation_price,
                acquired_at=self._current_time,
                lock_up_expiry=lock_up_expiry(offering, self._current_time),
            ))
            if self.verbose:
                print(f"✓ ALLOCATED: {result.shares_allocated} {offering.ticker} "
                      f"@ {result.allocation_price} ({result.allocation_percent}%)")
        elif self.verbose and ioi is not None:
            print(f"⚠️  NOT ALLOCATED: {offering.ticker}: {result.reason}")
        return result

    def update_lock_up_status(self, as_of: Optional[datetime] = None) -> List[IPOPosition]:
        """
        Release IPO holdings whose lock-up has expired into tax lots.

        Returns:
            The holdings released by this call.
        """
        as_of = as_of or self._current_time
        released = []
        for i, holding in enumerate(self._ipo_positions):
            if not holding.is_locked or holding.lock_up_expiry > as_of:
                continue
            self._lots.acquire(holding.ticker, Decimal(holding.shares),
                               holding.cost_basis, holding.acquired_at)
            unlocked = replace(holding, is_locked=False)
            self._ipo_positions[i] = unlocked
            released.append(unlocked)
            if self.verbose:
                print(f"✓ LOCK-UP EXPIRED: {holding.shares} {holding.ticker} now tradable")
        return released

    # ========================================================================
    # SNAPSHOT / RESTORE
    # ========================================================================

    def snapshot(self) -> Dict[str, Any]:
        """
        Serialize the full session state to JSON-compatible primitives.

        Decimals are written as strings and datetimes as ISO-8601.
        """
        return {
            'version': SNAPSHOT_VERSION,
            'initial_cash': str(self.initial_cash),
            'initial_time': _iso(self.initial_time),
            'current_time': _iso(self._current_time),
            'cost_basis_method': self.cost_basis_method.value,
            'adjust_wash_sale_basis': self.adjust_wash_sale_basis,
            'cash': str(self._cash),
            'positions': [p.to_dict() for p in self.positions().values()],
            'tax_lots': self._lots.snapshot(),
            'orders': [o.to_dict() for o in self._orders.values()],
            'order_history': [o.order_id for o in self._order_history],
            'trade_history': [t.to_dict() for t in self._trades],
            'realized_gains': self._realized.to_dict(),
            'realized_sales': [s.to_dict() for s in self._sales],
            'offerings': [o.to_dict() for o in self.offerings.values()],
            'iois': [i.to_dict() for i in self._iois.values()],
            'demands': {k: d.to_dict() for k, d in self._demands.items()},
            'allocations': {k: a.to_dict() for k, a in self._allocations.items()},
            'ipo_positions': [p.to_dict() for p in self._ipo_positions],
            'fills': self._fills.snapshot(),
            'next_order': self._next_order,
            'next_trade': self._next_trade,
            'trades_executed': self.trades_executed,
        }

    @classmethod
    def restore(
        cls,
        snapshot: Dict[str, Any],
        rng: Optional[RandomSource] = None,
        quotes: Optional[QuoteSource] = None,
        verbose: bool = True,
    ) -> Bookkeeper:
        """
        Rebuild a bookkeeper from snapshot().

        Raises:
            InvalidStateError: If the snapshot's positions disagree with its lots,
                or it was written by an unsupported version.
        """
        if snapshot.get('version') != SNAPSHOT_VERSION:
            raise InvalidStateError(f"Unsupported snapshot version: {snapshot.get('version')}")

        book = cls(
            initial_cash=Decimal(snapshot['initial_cash']),
            initial_time=_from_iso(snapshot['initial_time']),
            cost_basis_method=CostBasisMethod(snapshot['cost_basis_method']),
            adjust_wash_sale_basis=snapshot['adjust_wash_sale_basis'],
            rng=rng,
            quotes=quotes,
            verbose=verbose,
        )
        book._current_time = _from_iso(snapshot['current_time'])
        book._cash = Decimal(snapshot['cash'])
        book._lots = LotLedger.from_snapshot(snapshot['tax_lots'])
        book._fills = FillQueue.from_snapshot(snapshot['fills'])
        book._orders = {o['order_id']: Order.from_dict(o) for o in snapshot['orders']}
        book._order_history = [book._orders[order_id] for order_id in snapshot['order_history']]
        book._trades = [Trade.from_dict(t) for t in snapshot['trade_history']]
        book._realized = RealizedGains.from_dict(snapshot['realized_gains'])
        book._sales = [RealizedSale.from_dict(s) for s in snapshot['realized_sales']]
        book.offerings = {
            o['offering_id']: IPOOffering.from_dict(o) for o in snapshot['offerings']
        }
        book._iois = {
            i['offering_id']: IndicationOfInterest.from_dict(i) for i in snapshot['iois']
        }
        book._demands = {k: DemandResult.from_dict(d) for k, d in snapshot['demands'].items()}
        book._allocations = {
            k: AllocationResult.from_dict(a) for k, a in snapshot['allocations'].items()
        }
        book._ipo_positions = [IPOPosition.from_dict(p) for p in snapshot['ipo_positions']]
        book._next_order = snapshot['next_order']
        book._next_trade = snapshot['next_trade']
        book.trades_executed = snapshot['trades_executed']

        expected = {p['instrument']: Decimal(p['shares']) for p in snapshot['positions']}
        actual = {instrument: p.shares for instrument, p in book.positions().items()}
        if set(expected) != set(actual) or any(
            abs(expected[k] - actual[k]) > QUANTITY_EPSILON for k in expected
        ):
            raise InvalidStateError(
                f"Snapshot positions {expected} do not match its tax lots {actual}"
            )
        book._check_invariants()
        return book

    def __repr__(self):
        return (f"Bookkeeper(cash={self._cash}, positions={len(self.positions())}, "
                f"pending={len(self.pending_orders())}, time={self._current_time})")
