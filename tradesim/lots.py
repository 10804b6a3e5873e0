"""
lots.py - Tax Lot Ledger with Cost-Basis Selection

=== LOT MODEL ===

Every BUY fill appends one open TaxLot:
    lot_id, instrument, shares, cost_basis_per_share, acquired_at

Every SELL consumes open lots of the instrument in cost-basis order:
    FIFO - ascending acquired_at (oldest first)
    LIFO - descending acquired_at (newest first)
    HIFO - descending cost_basis_per_share (highest cost first)

Ties keep lot creation order. Consumption is greedy: each lot in order gives
min(lot.shares, remaining) until the sale is satisfied. A lot reaching zero
shares is removed from the open set.

=== CLASSIFICATION ===

    holding_days = floor((sell_time - acquired_at) / 1 day)
    long-term iff holding_days > 365 (a lot held exactly 365 days is short-term)

=== PURE FUNCTION ===

    select_lots(lots, shares, method, sell_time) -> List[LotMatch]

computes the consumption plan without touching any state. LotLedger.consume()
applies that plan.
"""
from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from .core import (
    TaxLot, CostBasisMethod, InsufficientSharesError,
    QUANTITY_EPSILON, ZERO,
    to_decimal, holding_days, is_long_term,
)


@dataclass(frozen=True, slots=True)
class LotMatch:
    """
    Shares taken from one lot by a sale.

    lot is the lot as it was before the sale consumed it.
    """
    lot: TaxLot
    shares_used: Decimal
    holding_days: int

    @property
    def is_long_term(self) -> bool:
        return is_long_term(self.holding_days)

    @property
    def cost_basis(self) -> Decimal:
        return self.shares_used * self.lot.cost_basis_per_share

    def gain(self, sale_price: Decimal) -> Decimal:
        """Realized gain (negative for a loss) from selling these shares at sale_price."""
        return (to_decimal(sale_price) - self.lot.cost_basis_per_share) * self.shares_used

    def to_dict(self) -> Dict[str, Any]:
        return {
            'lot': self.lot.to_dict(),
            'shares_used': str(self.shares_used),
            'holding_days': self.holding_days,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> LotMatch:
        return cls(
            lot=TaxLot.from_dict(data['lot']),
            shares_used=Decimal(data['shares_used']),
            holding_days=data['holding_days'],
        )


# =============================================================================
# PURE FUNCTIONS
# =============================================================================

def order_lots(lots: Iterable[TaxLot], method: CostBasisMethod) -> List[TaxLot]:
    """
    Sort lots into consumption order for a cost-basis method.

    sorted() is stable, so lots that tie keep their incoming order.
    """
    method = CostBasisMethod(method)
    lots = list(lots)
    if method is CostBasisMethod.FIFO:
        return sorted(lots, key=lambda lot: lot.acquired_at)
    if method is CostBasisMethod.LIFO:
        return sorted(lots, key=lambda lot: lot.acquired_at, reverse=True)
    return sorted(lots, key=lambda lot: lot.cost_basis_per_share, reverse=True)


def select_lots(
    lots: Iterable[TaxLot],
    shares: Decimal,
    method: CostBasisMethod,
    sell_time: datetime,
) -> List[LotMatch]:
    """
    Plan which lots a sale of `shares` consumes. Pure function.

    Args:
        lots: Open lots of a single instrument, in creation order
        shares: Shares being sold (> 0)
        method: FIFO, LIFO or HIFO
        sell_time: Sale instant, used for holding periods

    Returns:
        One LotMatch per lot touched, in consumption order.

    Raises:
        InsufficientSharesError: If the lots hold fewer than `shares` in total.
    """
    shares = to_decimal(shares)
    if shares <= ZERO:
        raise ValueError(f"shares to consume must be positive, got {shares}")

    ordered = [lot for lot in order_lots(lots, method) if lot.shares > ZERO]
    available = sum((lot.shares for lot in ordered), ZERO)
    if available + QUANTITY_EPSILON < shares:
        raise InsufficientSharesError(
            f"Requested {shares} shares but open lots hold {available}"
        )

    matches: List[LotMatch] = []
    remaining = shares
    for lot in ordered:
        if remaining <= ZERO:
            break
        used = min(lot.shares, remaining)
        matches.append(LotMatch(
            lot=lot,
            shares_used=used,
            holding_days=holding_days(lot.acquired_at, sell_time),
        ))
        remaining -= used

    return matches


# =============================================================================
# LOT LEDGER
# =============================================================================

class LotLedger:
    """
    Open tax lots for every instrument.

    Invariants:
        - every open lot has shares > 0
        - lot ids are unique and never reused
        - lots per instrument are kept in creation order

    Not thread-safe: the Bookkeeper is the single writer.
    """

    def __init__(self):
        self._lots: Dict[str, List[TaxLot]] = {}
        self._next_lot: int = 1

    # ------------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------------

    def open_lots(self, instrument: str) -> List[TaxLot]:
        """Open lots for an instrument, in creation order."""
        return list(self._lots.get(instrument, []))

    def all_lots(self) -> List[TaxLot]:
        return [lot for instrument in sorted(self._lots) for lot in self._lots[instrument]]

    def instruments(self) -> List[str]:
        return sorted(self._lots)

    def total_shares(self, instrument: str) -> Decimal:
        return sum((lot.shares for lot in self._lots.get(instrument, [])), ZERO)

    def total_cost(self, instrument: str) -> Decimal:
        return sum((lot.cost_basis for lot in self._lots.get(instrument, [])), ZERO)

    def get_lot(self, lot_id: str) -> Optional[TaxLot]:
        for lots in self._lots.values():
            for lot in lots:
                if lot.lot_id == lot_id:
                    return lot
        return None

    # ------------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------------

    def acquire(self, instrument: str, shares: Decimal, price: Decimal, timestamp: datetime) -> str:
        """
        Append a new open lot.

        Returns:
            The new lot id.

        Raises:
            ValueError: If shares <= 0 or price < 0.
        """
        shares = to_decimal(shares)
        price = to_decimal(price)
        if shares <= ZERO:
            raise ValueError(f"Lot shares must be positive, got {shares}")
        if price < ZERO:
            raise ValueError(f"Lot price cannot be negative, got {price}")

        lot_id = f"LOT_{self._next_lot:06d}"
        self._next_lot += 1
        lot = TaxLot(
            lot_id=lot_id,
            instrument=instrument,
            shares=shares,
            cost_basis_per_share=price,
            acquired_at=timestamp,
        )
        self._lots.setdefault(instrument, []).append(lot)
        return lot_id

    def consume(
        self,
        instrument: str,
        shares: Decimal,
        method: CostBasisMethod,
        sell_time: datetime,
    ) -> List[LotMatch]:
        """
        Consume open lots of `instrument` in `method` order.

        Partially consumed lots keep their id with reduced shares; fully
        consumed lots leave the open set. The ledger is unchanged if the
        request cannot be satisfied.

        Raises:
            InsufficientSharesError: If open shares are fewer than requested.
        """
        matches = select_lots(self._lots.get(instrument, []), shares, method, sell_time)

        used_by_id = {m.lot.lot_id: m.shares_used for m in matches}
        remaining_lots: List[TaxLot] = []
        for lot in self._lots.get(instrument, []):
            used = used_by_id.get(lot.lot_id)
            if used is None:
                remaining_lots.append(lot)
                continue
            left = lot.shares - used
            if left > QUANTITY_EPSILON:
                remaining_lots.append(replace(lot, shares=left))

        if remaining_lots:
            self._lots[instrument] = remaining_lots
        else:
            self._lots.pop(instrument, None)
        return matches

    def adjust_basis(self, lot_id: str, amount: Decimal) -> TaxLot:
        """
        Add a disallowed wash-sale loss to a lot's total cost basis.

        The amount is spread over the lot's open shares.

        Returns:
            The adjusted lot.

        Raises:
            KeyError: If the lot is not open.
        """
        amount = to_decimal(amount)
        for instrument, lots in self._lots.items():
            for i, lot in enumerate(lots):
                if lot.lot_id != lot_id:
                    continue
                adjusted = replace(
                    lot,
                    cost_basis_per_share=lot.cost_basis_per_share + amount / lot.shares,
                    is_wash_sale_adjusted=True,
                    disallowed_loss_carried=lot.disallowed_loss_carried + amount,
                )
                lots[i] = adjusted
                return adjusted
        raise KeyError(f"Lot {lot_id} is not open")

    def clear(self) -> None:
        self._lots.clear()
        self._next_lot = 1

    # ------------------------------------------------------------------------
    # Snapshot / restore
    # ------------------------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        return {
            'next_lot': self._next_lot,
            'lots': [lot.to_dict() for lot in self.all_lots()],
        }

    @classmethod
    def from_snapshot(cls, data: Dict[str, Any]) -> LotLedger:
        ledger = cls()
        ledger._next_lot = data.get('next_lot', 1)
        for raw in data.get('lots', []):
            lot = TaxLot.from_dict(raw)
            ledger._lots.setdefault(lot.instrument, []).append(lot)
        return ledger
