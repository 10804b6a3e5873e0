"""
test_lot_ledger.py - Unit tests for tax lots and cost-basis selection

Tests cover:
1. Lot creation and validation
2. FIFO / LIFO / HIFO ordering, including ties
3. Greedy consumption and removal of empty lots
4. Short/long-term classification of matches
5. Insufficient shares leaves the ledger untouched
6. Wash-sale basis adjustment
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from tradesim import (
    LotLedger, CostBasisMethod, InsufficientSharesError,
    order_lots, select_lots,
)


JAN_1 = datetime(2023, 1, 1)
FEB_1 = datetime(2023, 2, 1)
MAR_1 = datetime(2023, 3, 1)


@pytest.fixture
def ledger():
    """AAPL lots: 100 @ 50 (Jan), 100 @ 60 (Feb), 100 @ 55 (Mar)."""
    ledger = LotLedger()
    ledger.acquire("AAPL", Decimal("100"), Decimal("50"), JAN_1)
    ledger.acquire("AAPL", Decimal("100"), Decimal("60"), FEB_1)
    ledger.acquire("AAPL", Decimal("100"), Decimal("55"), MAR_1)
    return ledger


class TestAcquire:

    def test_lot_ids_are_sequential(self):
        ledger = LotLedger()
        assert ledger.acquire("AAPL", 10, 100, JAN_1) == "LOT_000001"
        assert ledger.acquire("MSFT", 5, 300, JAN_1) == "LOT_000002"

    def test_zero_shares_rejected(self):
        with pytest.raises(ValueError):
            LotLedger().acquire("AAPL", 0, 100, JAN_1)

    def test_negative_price_rejected(self):
        with pytest.raises(ValueError):
            LotLedger().acquire("AAPL", 10, -1, JAN_1)

    def test_zero_price_allowed(self):
        ledger = LotLedger()
        ledger.acquire("AAPL", 10, 0, JAN_1)
        assert ledger.total_shares("AAPL") == Decimal("10")

    def test_totals(self, ledger):
        assert ledger.total_shares("AAPL") == Decimal("300")
        assert ledger.total_cost("AAPL") == Decimal("16500")
        assert ledger.total_shares("MSFT") == Decimal("0")


class TestOrdering:

    def test_fifo_oldest_first(self, ledger):
        prices = [lot.cost_basis_per_share for lot in order_lots(ledger.open_lots("AAPL"), CostBasisMethod.FIFO)]
        assert prices == [Decimal("50"), Decimal("60"), Decimal("55")]

    def test_lifo_newest_first(self, ledger):
        prices = [lot.cost_basis_per_share for lot in order_lots(ledger.open_lots("AAPL"), CostBasisMethod.LIFO)]
        assert prices == [Decimal("55"), Decimal("60"), Decimal("50")]

    def test_hifo_highest_cost_first(self, ledger):
        prices = [lot.cost_basis_per_share for lot in order_lots(ledger.open_lots("AAPL"), CostBasisMethod.HIFO)]
        assert prices == [Decimal("60"), Decimal("55"), Decimal("50")]

    def test_hifo_ties_keep_creation_order(self):
        ledger = LotLedger()
        first = ledger.acquire("AAPL", 10, 50, FEB_1)
        second = ledger.acquire("AAPL", 10, 50, JAN_1)
        ordered = order_lots(ledger.open_lots("AAPL"), CostBasisMethod.HIFO)
        assert [lot.lot_id for lot in ordered] == [first, second]

    def test_select_lots_is_pure(self, ledger):
        before = ledger.open_lots("AAPL")
        select_lots(before, Decimal("150"), CostBasisMethod.FIFO, datetime(2023, 6, 1))
        assert ledger.open_lots("AAPL") == before


class TestConsume:

    def test_fifo_consumes_greedily(self, ledger):
        matches = ledger.consume("AAPL", Decimal("150"), CostBasisMethod.FIFO, datetime(2023, 6, 1))
        assert [(m.lot.cost_basis_per_share, m.shares_used) for m in matches] == [
            (Decimal("50"), Decimal("100")),
            (Decimal("60"), Decimal("50")),
        ]
        remaining = ledger.open_lots("AAPL")
        assert [(lot.cost_basis_per_share, lot.shares) for lot in remaining] == [
            (Decimal("60"), Decimal("50")),
            (Decimal("55"), Decimal("100")),
        ]

    def test_partial_lot_keeps_its_id(self, ledger):
        lot_id = ledger.open_lots("AAPL")[0].lot_id
        ledger.consume("AAPL", Decimal("40"), CostBasisMethod.FIFO, datetime(2023, 6, 1))
        assert ledger.get_lot(lot_id).shares == Decimal("60")

    def test_lifo(self, ledger):
        matches = ledger.consume("AAPL", Decimal("150"), CostBasisMethod.LIFO, datetime(2023, 6, 1))
        assert [m.lot.cost_basis_per_share for m in matches] == [Decimal("55"), Decimal("60")]

    def test_hifo(self, ledger):
        matches = ledger.consume("AAPL", Decimal("150"), CostBasisMethod.HIFO, datetime(2023, 6, 1))
        assert [m.lot.cost_basis_per_share for m in matches] == [Decimal("60"), Decimal("55")]

    def test_methods_consume_same_total(self):
        for method in CostBasisMethod:
            ledger = LotLedger()
            ledger.acquire("AAPL", 100, 50, JAN_1)
            ledger.acquire("AAPL", 100, 60, FEB_1)
            matches = ledger.consume("AAPL", Decimal("120"), method, MAR_1)
            assert sum(m.shares_used for m in matches) == Decimal("120")
            assert ledger.total_shares("AAPL") == Decimal("80")

    def test_fully_consumed_instrument_disappears(self, ledger):
        ledger.consume("AAPL", Decimal("300"), CostBasisMethod.FIFO, datetime(2023, 6, 1))
        assert ledger.open_lots("AAPL") == []
        assert ledger.instruments() == []

    def test_insufficient_shares_leaves_ledger_untouched(self, ledger):
        before = ledger.open_lots("AAPL")
        with pytest.raises(InsufficientSharesError):
            ledger.consume("AAPL", Decimal("301"), CostBasisMethod.FIFO, datetime(2023, 6, 1))
        assert ledger.open_lots("AAPL") == before

    def test_zero_shares_rejected(self, ledger):
        with pytest.raises(ValueError):
            ledger.consume("AAPL", Decimal("0"), CostBasisMethod.FIFO, datetime(2023, 6, 1))


class TestClassification:

    def test_held_365_days_is_short_term(self):
        ledger = LotLedger()
        ledger.acquire("AAPL", 10, 50, JAN_1)
        [match] = ledger.consume("AAPL", 10, CostBasisMethod.FIFO, JAN_1 + timedelta(days=365))
        assert match.holding_days == 365
        assert not match.is_long_term

    def test_held_366_days_is_long_term(self):
        ledger = LotLedger()
        ledger.acquire("AAPL", 10, 50, JAN_1)
        [match] = ledger.consume("AAPL", 10, CostBasisMethod.FIFO, JAN_1 + timedelta(days=366))
        assert match.is_long_term

    def test_match_gain(self):
        ledger = LotLedger()
        ledger.acquire("AAPL", 100, 60, JAN_1)
        [match] = ledger.consume("AAPL", 100, CostBasisMethod.FIFO, FEB_1)
        assert match.gain(Decimal("55")) == Decimal("-500")
        assert match.cost_basis == Decimal("6000")


class TestAdjustBasis:

    def test_spreads_amount_over_open_shares(self):
        ledger = LotLedger()
        lot_id = ledger.acquire("AAPL", 50, 45, JAN_1)
        lot = ledger.adjust_basis(lot_id, Decimal("1000"))
        assert lot.cost_basis_per_share == Decimal("65")
        assert lot.is_wash_sale_adjusted
        assert lot.disallowed_loss_carried == Decimal("1000")
        assert ledger.get_lot(lot_id) == lot

    def test_unknown_lot(self):
        with pytest.raises(KeyError):
            LotLedger().adjust_basis("LOT_999999", Decimal("1"))


class TestSnapshot:

    def test_round_trip_keeps_id_sequence(self, ledger):
        restored = LotLedger.from_snapshot(ledger.snapshot())
        assert restored.all_lots() == ledger.all_lots()
        assert restored.acquire("AAPL", 1, 1, MAR_1) == "LOT_000004"
