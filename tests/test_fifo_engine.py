"""Tests for the FIFO costing engine: incremental apply, recompute and delete."""

from datetime import date, datetime
from itertools import combinations

import pandas as pd
import pytest

from bullion import (
    FIFO,
    DataIntegrityWarning,
    EngineResult,
    InsufficientStockError,
    Ledger,
    MalformedInputError,
    Transaction,
    apply_transaction,
    delete_transactions,
    recompute,
)
from conftest import day


def apply_all(transactions, ledger=None) -> Ledger:
    ledger = ledger or Ledger.empty()
    for txn in transactions:
        result = apply_transaction(ledger, txn)
        assert result.ok, result.error
        ledger = result.ledger
    return ledger


@pytest.fixture(name="two_lots")
def fixture_two_lots(purchase):
    """P1 day 1 10g @ 100, P2 day 2 10g @ 200."""
    return apply_all([purchase("p1", 1, 10, 100), purchase("p2", 2, 10, 200)])


class TestIncrementalApply:
    """Transactions arriving in date order."""

    def test_purchase_opens_lot(self, purchase):
        result = apply_transaction(Ledger.empty(), purchase("p1", 1, 10, 100))

        assert result.ok
        assert not result.recomputed
        (lot,) = result.lots
        assert lot.id == "p1"
        assert lot.original_quantity == lot.remaining_quantity == 10
        assert lot.cost_per_unit == 100
        assert lot.closed_date is None
        assert result.ledger.transactions[0].cost_of_goods_sold is None

    def test_sale_draws_oldest_lot_first(self, two_lots, sale):
        result = apply_transaction(two_lots, sale("s1", 3, 15, 300))

        assert result.ok
        costed = result.ledger.get("s1")
        assert costed.cost_of_goods_sold == pytest.approx(2000)
        assert costed.profit == pytest.approx(2500)

        p1, p2 = result.lots
        assert p1.remaining_quantity == 0
        assert p1.closed_date == day(3)
        assert p2.remaining_quantity == pytest.approx(5)
        assert p2.closed_date is None
        assert p1.total_revenue_allocated == pytest.approx(3000)
        assert p2.total_revenue_allocated == pytest.approx(1500)

    def test_sale_is_prepended(self, two_lots, sale):
        ledger = apply_transaction(two_lots, sale("s1", 3, 1, 300)).ledger

        assert [t.id for t in ledger.transactions] == ["s1", "p2", "p1"]

    def test_profit_uses_taxable_amount(self, two_lots, sale):
        txn = sale("s1", 3, 5, 300, taxable_amount=1400.0, tax_amount=42.0)
        costed = apply_transaction(two_lots, txn).ledger.get("s1")

        assert costed.cost_of_goods_sold == pytest.approx(500)
        assert costed.profit == pytest.approx(900)

    def test_zero_taxable_amount_is_kept(self, two_lots, sale):
        txn = sale("s1", 3, 5, 300, taxable_amount=0.0)
        costed = apply_transaction(two_lots, txn).ledger.get("s1")

        assert costed.revenue == 0.0
        assert costed.profit == pytest.approx(-500)

    def test_same_day_purchases_keep_entry_order(self, purchase):
        ledger = apply_all(
            [purchase("a", 1, 1, 10), purchase("b", 2, 1, 20), purchase("c", 2, 1, 30)]
        )

        assert [lot.id for lot in ledger.lots] == ["a", "b", "c"]

    def test_remainder_below_epsilon_closes_lot(self, purchase, sale):
        ledger = apply_all([purchase("p1", 1, 10, 100), sale("s1", 2, 9.99995, 150)])

        (lot,) = ledger.lots
        assert lot.remaining_quantity == 0.0
        assert lot.closed_date == day(2)
        assert not lot.is_open

    def test_shortfall_within_epsilon_is_accepted(self, purchase, sale):
        ledger = apply_all([purchase("p1", 1, 10, 100)])
        result = apply_transaction(ledger, sale("s1", 2, 10.00005, 150))

        assert result.ok
        assert result.lots[0].remaining_quantity == 0.0


class TestShortfallRejection:
    """A sale larger than the stock on hand."""

    def test_rejected_and_ledger_unchanged(self, purchase, sale):
        ledger = apply_all([purchase("p1", 1, 10, 100)])
        before = Ledger.from_dict(ledger.to_dict())

        result = apply_transaction(ledger, sale("s1", 2, 20, 300))

        assert not result.ok
        assert isinstance(result.error, InsufficientStockError)
        assert result.error.requested == 20
        assert result.error.available == pytest.approx(10)
        assert result.ledger is ledger
        assert ledger == before

    def test_unwrap_raises(self, purchase, sale):
        ledger = apply_all([purchase("p1", 1, 10, 100)])

        with pytest.raises(InsufficientStockError):
            apply_transaction(ledger, sale("s1", 2, 20, 300)).unwrap()

    def test_sale_on_empty_ledger(self, sale):
        result = apply_transaction(Ledger.empty(), sale("s1", 1, 1, 300))

        assert isinstance(result.error, InsufficientStockError)
        assert result.error.available == 0


class TestValidation:
    """Malformed transactions never reach the ledger."""

    @pytest.mark.parametrize(
        "field, value",
        [
            ("quantity", 0),
            ("quantity", -5),
            ("unit_rate", 0),
            ("quantity", float("nan")),
            ("unit_rate", "100"),
            ("quantity", True),
            ("counterparty_name", "  "),
            ("tax_amount", -1.0),
            ("id", ""),
        ],
    )
    def test_invalid_field(self, purchase, field, value):
        txn = purchase("p1", 1, 10, 100)
        txn = txn.__class__(**{**txn.__dict__, field: value})

        result = apply_transaction(Ledger.empty(), txn)

        assert isinstance(result.error, MalformedInputError)
        assert result.ledger == Ledger.empty()

    def test_datetime_date_rejected(self, two_lots, sale):
        result = apply_transaction(two_lots, sale("s1", datetime(2024, 1, 3, 10, 30), 1, 300))

        assert isinstance(result.error, MalformedInputError)
        assert result.ledger is two_lots

    @pytest.mark.parametrize(
        "value", [datetime(2024, 1, 2, 10, 30), pd.Timestamp("2024-01-02 23:59")]
    )
    def test_parsed_dates_drop_time_of_day(self, value):
        txn = Transaction.from_dict(
            {
                "id": "s1",
                "kind": "SALE",
                "date": value,
                "counterparty_name": "Bob",
                "quantity": 1,
                "unit_rate": 300,
            }
        )

        assert txn.date == date(2024, 1, 2)
        assert type(txn.date) is date
        txn.validate()

    def test_duplicate_id(self, two_lots, sale):
        result = apply_transaction(two_lots, sale("p1", 3, 1, 300))

        assert isinstance(result.error, MalformedInputError)
        assert "duplicate" in str(result.error)
        assert result.ledger is two_lots


class TestRecompute:
    """Full replay of history."""

    def test_fifo_example(self, purchase, sale):
        result = recompute(
            [sale("s1", 3, 15, 300), purchase("p2", 2, 10, 200), purchase("p1", 1, 10, 100)]
        )

        assert result.recomputed
        assert result.ledger.get("s1").cost_of_goods_sold == pytest.approx(2000)
        assert result.ledger.get("s1").profit == pytest.approx(2500)
        assert [lot.remaining_quantity for lot in result.lots] == [0, pytest.approx(5)]

    def test_output_order(self, purchase, sale):
        result = recompute(
            [purchase("p1", 1, 10, 100), sale("s1", 3, 1, 300), purchase("p2", 2, 10, 200)]
        )

        assert [t.id for t in result.ledger.transactions] == ["s1", "p2", "p1"]
        assert [t.id for t in result.transactions] == ["p1", "p2", "s1"]
        assert [lot.id for lot in result.lots] == ["p1", "p2"]

    def test_empty(self):
        result = recompute([])

        assert result.ok
        assert result.ledger == Ledger.empty()

    def test_idempotent(self, purchase, sale):
        history = [
            purchase("p1", 1, 10, 100),
            sale("s1", 2, 4, 150),
            purchase("p2", 2, 7.5, 120),
            sale("s2", 4, 8, 160),
            purchase("p3", 5, 3, 110),
            sale("s3", 5, 6, 170),
        ]
        once = recompute(history)
        twice = recompute(once.transactions)

        assert twice.ledger == once.ledger

    def test_shortfall_is_absorbed_and_reported(self, purchase, sale):
        result = recompute([sale("s1", 1, 5, 300), purchase("p1", 2, 10, 100)])

        assert result.ok
        (warning,) = result.warnings
        assert isinstance(warning, DataIntegrityWarning)
        assert warning.transaction_id == "s1"
        assert warning.unallocated == pytest.approx(5)
        assert result.ledger.get("s1").cost_of_goods_sold == 0
        assert result.lots[0].remaining_quantity == 10

    def test_partial_shortfall_takes_what_there_is(self, purchase, sale):
        result = recompute([purchase("p1", 1, 3, 100), sale("s1", 2, 5, 300)])

        assert result.warnings[0].unallocated == pytest.approx(2)
        assert result.ledger.get("s1").cost_of_goods_sold == pytest.approx(300)
        assert result.lots[0].remaining_quantity == 0


class TestEquivalence:
    """Incremental apply and recompute agree for in-order history."""

    def test_incremental_matches_recompute(self, purchase, sale):
        history = [
            purchase("p1", 1, 10, 100),
            purchase("p2", 2, 10, 200),
            sale("s1", 3, 15, 300, taxable_amount=4400.0),
            purchase("p3", 4, 2.25, 150),
            sale("s2", 5, 6, 310),
            sale("s3", 6, 1.25, 320),
        ]

        assert apply_all(history) == recompute(history).ledger

    def test_conservation(self, purchase, sale):
        history = [
            purchase("p1", 1, 10, 100),
            sale("s1", 2, 3.3, 150),
            purchase("p2", 3, 4.4, 120),
            sale("s2", 4, 9.9, 160),
            sale("s3", 5, 1.1, 170),
        ]
        ledger = apply_all(history)

        allocated = sum(lot.sold_quantity for lot in ledger.lots)
        assert allocated == pytest.approx(sum(t.quantity for t in ledger.sales()))


class TestBackDatedInsert:
    """A transaction dated before the latest one forces a replay."""

    @pytest.fixture(name="history")
    def fixture_history(self, purchase, sale):
        return apply_all(
            [
                purchase("p1", 1, 10, 100),
                sale("s2", 2, 4, 150),
                purchase("p4", 4, 10, 200),
                sale("s5", 5, 8, 300),
            ]
        )

    def test_back_dated_sale_recomputes(self, history, sale):
        late = sale("s3", 3, 4, 160)
        result = apply_transaction(history, late)

        assert result.ok
        assert result.recomputed
        assert result.ledger == recompute([*history.chronological(), late]).ledger

        # s5 now straddles both lots, which an incremental shortcut would not do
        assert result.ledger.get("s3").cost_of_goods_sold == pytest.approx(400)
        assert result.ledger.get("s5").cost_of_goods_sold == pytest.approx(1400)
        p1, p4 = result.lots
        assert p1.closed_date == day(5)
        assert p4.remaining_quantity == pytest.approx(4)

    def test_back_dated_purchase_recomputes(self, purchase, sale):
        ledger = apply_all([purchase("p2", 2, 10, 100), sale("s5", 5, 5, 300)])

        result = apply_transaction(ledger, purchase("p1", 1, 10, 50))

        assert result.recomputed
        assert [lot.id for lot in result.lots] == ["p1", "p2"]
        assert result.ledger.get("s5").cost_of_goods_sold == pytest.approx(250)

    def test_back_dated_sale_causing_shortfall_is_rejected(self, purchase, sale):
        ledger = apply_all([purchase("p1", 1, 10, 100), sale("s5", 5, 10, 300)])

        result = apply_transaction(ledger, sale("s3", 3, 5, 200))

        assert isinstance(result.error, InsufficientStockError)
        assert result.error.transaction_id == "s5"
        assert result.ledger is ledger


class TestDeletion:
    """Deleting history rebuilds the ledger."""

    @pytest.fixture(name="ledger")
    def fixture_ledger(self, purchase, sale):
        return apply_all(
            [
                purchase("p1", 1, 10, 100),
                purchase("p2", 2, 5, 120),
                sale("s1", 3, 7, 150),
                purchase("p3", 4, 8, 90),
                sale("s2", 5, 9, 160),
                sale("s3", 6, 2, 170),
            ]
        )

    def test_every_subset_stays_consistent(self, ledger):
        ids = [t.id for t in ledger.transactions]
        for size in range(1, len(ids) + 1):
            for subset in combinations(ids, size):
                result = delete_transactions(ledger, subset)

                assert result.ok
                assert result.recomputed
                for lot in result.lots:
                    assert 0 <= lot.remaining_quantity <= lot.original_quantity
                cost_of_allocated = sum(
                    lot.sold_quantity * lot.cost_per_unit for lot in result.lots
                )
                cogs = sum(t.cost_of_goods_sold for t in result.ledger.sales())
                assert cogs == pytest.approx(cost_of_allocated)

    def test_delete_purchase_reports_shortfall(self, ledger):
        result = delete_transactions(ledger, ["p1"])

        assert result.ledger.lot("p1") is None
        assert {w.transaction_id for w in result.warnings} >= {"s1"}

    def test_unknown_ids_are_ignored(self, ledger):
        result = delete_transactions(ledger, ["nope"])

        assert result.ok
        assert result.ledger == recompute(ledger.chronological()).ledger

    def test_delete_all(self, ledger):
        result = delete_transactions(ledger, [t.id for t in ledger.transactions])

        assert result.ledger == Ledger.empty()


class TestFIFO:
    """The allocation primitive on its own."""

    def test_allocate_leaves_input_untouched(self, two_lots, sale):
        lots = two_lots.lots
        allocation = FIFO().allocate(lots, sale("s1", 3, 12, 300))

        assert lots == two_lots.lots
        assert allocation.draws == [("p1", 10), ("p2", 2)]
        assert allocation.cost_of_goods_sold == pytest.approx(1400)
        assert allocation.unallocated == 0

    def test_custom_epsilon(self, purchase, sale):
        ledger = apply_all([purchase("p1", 1, 10, 100)])

        result = apply_transaction(ledger, sale("s1", 2, 9.95, 150), epsilon=0.1)

        assert result.lots[0].remaining_quantity == 0.0

    def test_available(self, two_lots):
        assert FIFO().available(two_lots.lots) == 20


def test_engine_result_defaults(two_lots):
    result = EngineResult(two_lots)

    assert result.ok
    assert result.unwrap() is two_lots
    assert result.warnings == ()
