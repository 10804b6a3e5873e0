"""
test_wash_sale_detector.py - Unit tests for the wash-sale rule

Tests cover:
1. Window boundaries (29 / 30 / 31 days, before and after the sale)
2. Gains and other instruments are never washed
3. Disallowance split across short/long-term buckets
4. Replacement lot selection
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from tradesim import (
    Trade, TaxLot, Side,
    check_wash_sale, split_disallowance, pick_replacement_lot,
)


SALE = datetime(2024, 3, 1, 12, 0)


def buy_trade(when: datetime, instrument: str = "AAPL", trade_id: str = "TRD_000001",
              lot_id: str = "LOT_000001") -> Trade:
    return Trade(trade_id, "ORD_000001", instrument, Side.BUY,
                 Decimal("10"), Decimal("50"), when, lot_id=lot_id)


class TestCheckWashSale:

    def test_no_purchases(self):
        result = check_wash_sale("AAPL", SALE, Decimal("-500"), [])
        assert not result.is_wash_sale
        assert result.disallowed_loss == Decimal("0")

    def test_purchase_29_days_prior(self):
        result = check_wash_sale("AAPL", SALE, Decimal("-500"), [buy_trade(SALE - timedelta(days=29))])
        assert result.is_wash_sale
        assert result.disallowed_loss == Decimal("500")
        assert result.replacement_trade_ids == ("TRD_000001",)

    def test_purchase_exactly_30_days_prior(self):
        result = check_wash_sale("AAPL", SALE, Decimal("-500"), [buy_trade(SALE - timedelta(days=30))])
        assert result.is_wash_sale

    def test_purchase_31_days_prior(self):
        result = check_wash_sale("AAPL", SALE, Decimal("-500"), [buy_trade(SALE - timedelta(days=31))])
        assert not result.is_wash_sale

    def test_purchase_30_days_and_an_hour_prior(self):
        result = check_wash_sale("AAPL", SALE, Decimal("-500"),
                                 [buy_trade(SALE - timedelta(days=30, hours=1))])
        assert not result.is_wash_sale

    def test_purchase_after_sale_counts(self):
        result = check_wash_sale("AAPL", SALE, Decimal("-500"), [buy_trade(SALE + timedelta(days=10))])
        assert result.is_wash_sale

    def test_gain_never_washed(self):
        result = check_wash_sale("AAPL", SALE, Decimal("500"), [buy_trade(SALE - timedelta(days=1))])
        assert not result.is_wash_sale

    def test_zero_result_never_washed(self):
        result = check_wash_sale("AAPL", SALE, Decimal("0"), [buy_trade(SALE - timedelta(days=1))])
        assert not result.is_wash_sale

    def test_other_instrument_ignored(self):
        result = check_wash_sale("AAPL", SALE, Decimal("-500"),
                                 [buy_trade(SALE - timedelta(days=1), instrument="MSFT")])
        assert not result.is_wash_sale

    def test_sells_ignored(self):
        sell = Trade("TRD_000002", "ORD_000002", "AAPL", Side.SELL,
                     Decimal("10"), Decimal("40"), SALE - timedelta(days=1))
        assert not check_wash_sale("AAPL", SALE, Decimal("-500"), [sell]).is_wash_sale

    def test_full_loss_disallowed_with_several_replacements(self):
        trades = [
            buy_trade(SALE - timedelta(days=5), trade_id="TRD_000001"),
            buy_trade(SALE + timedelta(days=5), trade_id="TRD_000002"),
        ]
        result = check_wash_sale("AAPL", SALE, Decimal("-1234.56"), trades)
        assert result.disallowed_loss == Decimal("1234.56")
        assert result.replacement_trade_ids == ("TRD_000001", "TRD_000002")


class TestSplitDisallowance:

    @pytest.mark.parametrize("short_term,long_term,expected", [
        ("-300", "-200", ("0", "0")),
        ("-500", "200", ("-200", "200")),
        ("300", "-500", ("300", "-300")),
        ("100", "50", ("100", "50")),
    ])
    def test_booked_amounts(self, short_term, long_term, expected):
        booked = split_disallowance(Decimal(short_term), Decimal(long_term))
        assert booked == (Decimal(expected[0]), Decimal(expected[1]))

    def test_washed_net_is_zero(self):
        st, lt = split_disallowance(Decimal("-700"), Decimal("150"))
        assert st + lt == Decimal("0")


class TestPickReplacementLot:

    def test_earliest_open_replacement(self):
        lots = [
            TaxLot("LOT_000002", "AAPL", Decimal("10"), Decimal("45"), SALE - timedelta(days=3)),
            TaxLot("LOT_000003", "AAPL", Decimal("10"), Decimal("46"), SALE - timedelta(days=10)),
            TaxLot("LOT_000004", "AAPL", Decimal("10"), Decimal("47"), SALE - timedelta(days=20)),
        ]
        trades = [
            buy_trade(SALE - timedelta(days=3), trade_id="TRD_000002", lot_id="LOT_000002"),
            buy_trade(SALE - timedelta(days=10), trade_id="TRD_000003", lot_id="LOT_000003"),
        ]
        assert pick_replacement_lot(lots, trades).lot_id == "LOT_000003"

    def test_none_when_replacements_closed(self):
        lots = [TaxLot("LOT_000009", "AAPL", Decimal("10"), Decimal("45"), SALE)]
        trades = [buy_trade(SALE, lot_id="LOT_000001")]
        assert pick_replacement_lot(lots, trades) is None
