"""Tests for RFM (Recency-Frequency-Monetary) aggregation."""

import logging
from datetime import datetime, timedelta, timezone

import pytest

from customer_rfm.foundation.rfm import (
    RFMAccumulator,
    RFMRecord,
    aggregate,
    default_reference_date,
    recency_days,
    to_naive_utc,
)
from customer_rfm.foundation.transactions import Transaction


def scenario_transactions():
    return [
        Transaction("C1", datetime(2023, 1, 1), 10.0),
        Transaction("C1", datetime(2023, 2, 1), 10.0),
        Transaction("C2", datetime(2023, 1, 15), 100.0),
    ]


class TestRFMRecord:
    """Test RFMRecord dataclass validation."""

    def test_valid_record(self):
        """Valid RFM record should be created successfully."""
        record = RFMRecord(customer_id="C1", recency=10, frequency=5, monetary=250.0)
        assert record.customer_id == "C1"
        assert record.recency == 10
        assert record.frequency == 5
        assert record.monetary == 250.0

    def test_zero_frequency_raises_error(self):
        """Zero frequency should raise ValueError."""
        with pytest.raises(ValueError, match="Frequency must be positive"):
            RFMRecord(customer_id="C1", recency=10, frequency=0, monetary=0.0)

    def test_negative_monetary_raises_error(self):
        """Negative monetary value should raise ValueError."""
        with pytest.raises(ValueError, match="Monetary value must be finite and non-negative"):
            RFMRecord(customer_id="C1", recency=10, frequency=1, monetary=-5.0)

    def test_infinite_monetary_raises_error(self):
        """Infinite monetary value should raise ValueError."""
        with pytest.raises(ValueError, match="finite"):
            RFMRecord(customer_id="C1", recency=10, frequency=1, monetary=float("inf"))

    def test_records_are_immutable(self):
        """RFM records cannot be modified after creation."""
        record = RFMRecord("C1", 1, 1, 1.0)
        with pytest.raises(AttributeError):
            record.recency = 5


class TestAggregate:
    """Test aggregate function."""

    def test_empty_input_returns_empty_list(self):
        """Empty transaction list should return empty list, not an error."""
        assert aggregate([], datetime(2023, 12, 31)) == []
        assert aggregate([]) == []

    def test_reference_scenario(self):
        """Two customers aggregate to the documented recency/frequency/monetary."""
        rfm = aggregate(scenario_transactions(), datetime(2023, 2, 2))

        assert rfm == [
            RFMRecord("C1", recency=1, frequency=2, monetary=20.0),
            RFMRecord("C2", recency=18, frequency=1, monetary=100.0),
        ]

    def test_sorted_by_customer_id(self):
        """Output is sorted by customer_id regardless of input order."""
        txns = [
            Transaction("C3", datetime(2023, 1, 1), 1.0),
            Transaction("C1", datetime(2023, 1, 1), 1.0),
            Transaction("C2", datetime(2023, 1, 1), 1.0),
        ]
        rfm = aggregate(txns, datetime(2023, 1, 2))
        assert [r.customer_id for r in rfm] == ["C1", "C2", "C3"]

    def test_deterministic_for_shuffled_input(self):
        """Same transactions in a different order give the same records."""
        txns = scenario_transactions()
        reference = datetime(2023, 2, 2)
        assert aggregate(txns, reference) == aggregate(list(reversed(txns)), reference)

    def test_default_reference_date_is_latest_plus_one_day(self):
        """Without a reference date, recency is measured from latest invoice + 1 day."""
        rfm = aggregate(scenario_transactions())
        by_id = {r.customer_id: r for r in rfm}
        # Latest invoice is 2023-02-01, so reference is 2023-02-02
        assert by_id["C1"].recency == 1
        assert by_id["C2"].recency == 18

    def test_frequency_sum_equals_transaction_count(self):
        """Sum of frequencies equals the number of transactions aggregated."""
        txns = scenario_transactions() + [
            Transaction("C3", datetime(2023, 1, 20), 5.0),
            Transaction("C2", datetime(2023, 1, 21), 0.0),
        ]
        rfm = aggregate(txns)
        assert sum(r.frequency for r in rfm) == len(txns)

    def test_recency_non_negative_when_reference_after_all_dates(self):
        """Recency is never negative when the reference date follows every purchase."""
        txns = scenario_transactions()
        reference = max(t.invoice_date for t in txns)
        assert all(r.recency >= 0 for r in aggregate(txns, reference))

    def test_partial_days_truncate(self):
        """Recency counts whole days only."""
        txns = [Transaction("C1", datetime(2023, 1, 1, 18, 0), 1.0)]
        rfm = aggregate(txns, datetime(2023, 1, 3, 6, 0))
        assert rfm[0].recency == 1  # 36 hours

    def test_future_purchase_gives_negative_recency(self, caplog):
        """An earlier explicit reference date yields negative recency and a warning."""
        txns = [Transaction("C1", datetime(2023, 3, 10), 1.0)]
        with caplog.at_level(logging.WARNING):
            rfm = aggregate(txns, datetime(2023, 3, 1))
        assert rfm[0].recency == -9
        assert "recency is negative" in caplog.text

    def test_zero_amount_transactions_counted(self):
        """Zero-amount transactions still count towards frequency."""
        txns = [
            Transaction("C1", datetime(2023, 1, 1), 0.0),
            Transaction("C1", datetime(2023, 1, 2), 0.0),
        ]
        rfm = aggregate(txns)
        assert rfm[0].frequency == 2
        assert rfm[0].monetary == 0.0


class TestRFMAccumulator:
    """Test incremental aggregation."""

    def test_batches_match_single_pass(self):
        """Feeding transactions in batches gives the same records as one pass."""
        txns = scenario_transactions()
        acc = RFMAccumulator()
        acc.add(txns[:1])
        acc.add(txns[1:])
        assert acc.records(datetime(2023, 2, 2)) == aggregate(txns, datetime(2023, 2, 2))

    def test_counters(self):
        """Accumulator tracks customers, transactions and latest date."""
        acc = RFMAccumulator()
        assert acc.latest_date is None
        acc.add(scenario_transactions())
        assert acc.customer_count == 2
        assert acc.transaction_count == 3
        assert acc.latest_date == datetime(2023, 2, 1)

    def test_empty_accumulator_returns_no_records(self):
        """No transactions means no records."""
        assert RFMAccumulator().records() == []


class TestReferenceDate:
    """Test the reference date policy helpers."""

    def test_from_datetime(self):
        assert default_reference_date(datetime(2023, 5, 1, 12)) == datetime(2023, 5, 2, 12)

    def test_from_transactions(self):
        assert default_reference_date(scenario_transactions()) == datetime(2023, 2, 2)

    def test_empty_transactions_raise(self):
        with pytest.raises(ValueError, match="empty transaction set"):
            default_reference_date([])

    def test_recency_days_truncates_toward_zero(self):
        assert recency_days(datetime(2023, 1, 2, 12), datetime(2023, 1, 1)) == 1
        assert recency_days(datetime(2023, 1, 1), datetime(2023, 1, 2, 12)) == -1

    def test_aware_reference_date_compared_in_utc(self):
        """An aware reference date is converted to naive UTC before subtracting."""
        acc = RFMAccumulator()
        acc.add(scenario_transactions())
        aware = datetime(2023, 3, 1, 2, tzinfo=timezone(timedelta(hours=2)))
        assert to_naive_utc(aware) == datetime(2023, 3, 1)
        recencies = {r.customer_id: r.recency for r in acc.records(aware)}
        assert recencies == {"C1": 28, "C2": 45}

    def test_naive_reference_date_unchanged(self):
        assert to_naive_utc(datetime(2023, 3, 1, 5)) == datetime(2023, 3, 1, 5)
