"""
fills.py - Deferred Fill Queue

Fills are not applied at the moment an order is resolved. The execution model
returns a simulated latency, and the fill is posted here as a message due at
resolution time + latency. The Bookkeeper drains due fills when its clock
advances.

Core concepts:
1. ScheduledFill: Immutable message (order id, price, quantity, due time)
2. FillQueue: Priority queue ordered by due time, then posting sequence

Fills are released in due-time order, so two orders in flight may fill in the
opposite order to their submission. A scheduled fill cannot be withdrawn.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Set
import heapq

from .core import to_decimal


@dataclass(frozen=True, slots=True)
class ScheduledFill:
    """
    A fill waiting for its simulated latency to elapse.

    Sorting: by due_time, then sequence (posting order).
    """
    due_time: datetime
    sequence: int
    order_id: str
    price: Decimal
    quantity: Decimal

    def __lt__(self, other: ScheduledFill) -> bool:
        if self.due_time != other.due_time:
            return self.due_time < other.due_time
        return self.sequence < other.sequence

    def to_dict(self) -> Dict[str, Any]:
        return {
            'due_time': self.due_time.isoformat(),
            'sequence': self.sequence,
            'order_id': self.order_id,
            'price': str(self.price),
            'quantity': str(self.quantity),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ScheduledFill:
        return cls(
            due_time=datetime.fromisoformat(data['due_time']),
            sequence=data['sequence'],
            order_id=data['order_id'],
            price=Decimal(data['price']),
            quantity=Decimal(data['quantity']),
        )


class FillQueue:
    """
    Minimal delayed message queue for fills, using a heap.

    At most one fill per order is in flight at a time.
    """

    def __init__(self):
        self._heap: List[ScheduledFill] = []
        self._in_flight: Set[str] = set()
        self._next_sequence: int = 0

    def schedule(self, order_id: str, price: Decimal, quantity: Decimal, due_time: datetime) -> ScheduledFill:
        """
        Post a fill message.

        Raises:
            ValueError: If the order already has a fill in flight.
        """
        if order_id in self._in_flight:
            raise ValueError(f"Order {order_id} already has a fill in flight")
        fill = ScheduledFill(
            due_time=due_time,
            sequence=self._next_sequence,
            order_id=order_id,
            price=to_decimal(price),
            quantity=to_decimal(quantity),
        )
        self._next_sequence += 1
        heapq.heappush(self._heap, fill)
        self._in_flight.add(order_id)
        return fill

    def get_due(self, as_of: datetime) -> List[ScheduledFill]:
        """
        Remove and return fills with due_time <= as_of, in due order.
        """
        due = []
        while self._heap and self._heap[0].due_time <= as_of:
            fill = heapq.heappop(self._heap)
            self._in_flight.discard(fill.order_id)
            due.append(fill)
        return due

    def is_in_flight(self, order_id: str) -> bool:
        return order_id in self._in_flight

    def pending_count(self) -> int:
        return len(self._heap)

    def peek_next(self) -> Optional[ScheduledFill]:
        return self._heap[0] if self._heap else None

    def clear(self) -> None:
        self._heap.clear()
        self._in_flight.clear()
        self._next_sequence = 0

    def snapshot(self) -> Dict[str, Any]:
        return {
            'next_sequence': self._next_sequence,
            'fills': [fill.to_dict() for fill in sorted(self._heap)],
        }

    @classmethod
    def from_snapshot(cls, data: Dict[str, Any]) -> FillQueue:
        queue = cls()
        queue._next_sequence = data.get('next_sequence', 0)
        for raw in data.get('fills', []):
            fill = ScheduledFill.from_dict(raw)
            heapq.heappush(queue._heap, fill)
            queue._in_flight.add(fill.order_id)
        return queue
