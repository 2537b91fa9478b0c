"""Tests for raw row normalisation."""

import math
from datetime import datetime, timezone

import pandas as pd
import pytest

from customer_rfm.foundation.schema import ColumnMapping
from customer_rfm.foundation.transactions import (
    RowNormalizer,
    Transaction,
    coerce_customer_id,
    iter_chunks,
    normalize_rows,
)

NOW = datetime(2024, 6, 1, 12, 0)

QTY_PRICE = ColumnMapping(
    customer_id_column="CustomerID",
    date_column="InvoiceDate",
    quantity_column="Quantity",
    price_column="UnitPrice",
)
AMOUNT = ColumnMapping(
    customer_id_column="CustomerID", date_column="InvoiceDate", amount_column="Total"
)
COUNT_ONLY = ColumnMapping(customer_id_column="CustomerID", date_column="InvoiceDate")


class TestTransaction:
    """Test Transaction dataclass validation."""

    def test_negative_amount_raises_error(self):
        with pytest.raises(ValueError, match="finite and non-negative"):
            Transaction("C1", NOW, -1.0)

    def test_nan_amount_raises_error(self):
        with pytest.raises(ValueError, match="finite and non-negative"):
            Transaction("C1", NOW, math.nan)

    def test_empty_customer_raises_error(self):
        with pytest.raises(ValueError, match="customer_id cannot be empty"):
            Transaction("", NOW, 1.0)


class TestCoerceCustomerId:
    """Test customer id coercion."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("  C1 ", "C1"),
            (12345, "12345"),
            (12345.0, "12345"),
            (12.5, "12.5"),
            ("007", "007"),
            ("", None),
            ("   ", None),
            (None, None),
            (math.nan, None),
            ("Unknown", None),
        ],
    )
    def test_values(self, value, expected):
        assert coerce_customer_id(value) == expected


class TestMonetaryModes:
    """Amount derivation for each mapping shape."""

    def test_quantity_times_price(self):
        """Quantity and price mapped: amount is their product."""
        rows = [{"CustomerID": "C1", "InvoiceDate": "2023-01-01", "Quantity": "3", "UnitPrice": "2.5"}]
        result = normalize_rows(rows, QTY_PRICE, now=NOW)
        assert result.transactions == [Transaction("C1", datetime(2023, 1, 1), 7.5)]

    def test_amount_column(self):
        """Single amount column: its numeric value is the amount."""
        rows = [{"CustomerID": "C1", "InvoiceDate": "2023-01-01", "Total": 42}]
        result = normalize_rows(rows, AMOUNT, now=NOW)
        assert result.transactions[0].amount == 42.0

    def test_thousands_separator(self):
        """Comma thousands separators in text amounts are accepted."""
        rows = [{"CustomerID": "C1", "InvoiceDate": "2023-01-01", "Total": "1,250.50"}]
        result = normalize_rows(rows, AMOUNT, now=NOW)
        assert result.transactions[0].amount == 1250.5

    def test_no_monetary_column_counts_one(self):
        """Without monetary columns each row is worth 1 (frequency counting)."""
        rows = [
            {"CustomerID": "C1", "InvoiceDate": "2023-01-01"},
            {"CustomerID": "C1", "InvoiceDate": "2023-01-02"},
        ]
        result = normalize_rows(rows, COUNT_ONLY, now=NOW)
        assert [t.amount for t in result.transactions] == [1.0, 1.0]

    def test_non_numeric_values_default_to_zero(self):
        """Non-numeric quantity or price degrades to 0 and is counted."""
        rows = [
            {"CustomerID": "C1", "InvoiceDate": "2023-01-01", "Quantity": "abc", "UnitPrice": "2"},
            {"CustomerID": "C2", "InvoiceDate": "2023-01-01", "Quantity": "1", "UnitPrice": None},
            {"CustomerID": "C3", "InvoiceDate": "2023-01-01", "Quantity": "1", "UnitPrice": "inf"},
        ]
        result = normalize_rows(rows, QTY_PRICE, now=NOW)
        assert [t.amount for t in result.transactions] == [0.0, 0.0, 0.0]
        assert result.report.defaulted_numbers == 3

    def test_overflowing_product_defaults_to_zero(self):
        """A quantity times price too large for a float degrades to 0 and is counted."""
        rows = [
            {"CustomerID": "C1", "InvoiceDate": "2023-01-01", "Quantity": "1e200", "UnitPrice": "1e200"},
            {"CustomerID": "C2", "InvoiceDate": "2023-01-01", "Quantity": "2", "UnitPrice": "3"},
        ]
        result = normalize_rows(rows, QTY_PRICE, now=NOW)
        assert [t.amount for t in result.transactions] == [0.0, 6.0]
        assert result.report.defaulted_numbers == 1


class TestDropRules:
    """Rows dropped by data-quality filters."""

    def test_missing_customer_dropped(self):
        rows = [
            {"CustomerID": "", "InvoiceDate": "2023-01-01", "Total": 1},
            {"CustomerID": None, "InvoiceDate": "2023-01-01", "Total": 1},
            {"CustomerID": "Unknown", "InvoiceDate": "2023-01-01", "Total": 1},
            {"InvoiceDate": "2023-01-01", "Total": 1},
            {"CustomerID": "C1", "InvoiceDate": "2023-01-01", "Total": 1},
        ]
        result = normalize_rows(rows, AMOUNT, now=NOW)
        assert [t.customer_id for t in result.transactions] == ["C1"]
        assert result.report.dropped_missing_customer == 4
        assert result.report.rows_kept == 1
        assert result.report.rows_seen == 5

    def test_negative_quantity_or_price_dropped(self):
        """Negative quantity or price drops the row instead of clamping."""
        rows = [
            {"CustomerID": "C1", "InvoiceDate": "2023-01-01", "Quantity": "-2", "UnitPrice": "5"},
            {"CustomerID": "C2", "InvoiceDate": "2023-01-01", "Quantity": "2", "UnitPrice": "-5"},
            {"CustomerID": "C3", "InvoiceDate": "2023-01-01", "Quantity": "2", "UnitPrice": "5"},
        ]
        result = normalize_rows(rows, QTY_PRICE, now=NOW)
        assert [t.customer_id for t in result.transactions] == ["C3"]
        assert result.report.dropped_negative_values == 2

    def test_negative_amount_dropped(self):
        rows = [{"CustomerID": "C1", "InvoiceDate": "2023-01-01", "Total": "-10"}]
        result = normalize_rows(rows, AMOUNT, now=NOW)
        assert result.transactions == []
        assert result.report.dropped_negative_values == 1

    def test_zero_amount_kept_by_default(self):
        rows = [{"CustomerID": "C1", "InvoiceDate": "2023-01-01", "Total": "0"}]
        result = normalize_rows(rows, AMOUNT, now=NOW)
        assert len(result.transactions) == 1

    def test_zero_amount_dropped_when_configured(self):
        """drop_non_positive_amounts removes zero-amount rows."""
        rows = [
            {"CustomerID": "C1", "InvoiceDate": "2023-01-01", "Total": "0"},
            {"CustomerID": "C2", "InvoiceDate": "2023-01-01", "Total": "-1"},
            {"CustomerID": "C3", "InvoiceDate": "2023-01-01", "Total": "3"},
        ]
        result = normalize_rows(rows, AMOUNT, drop_non_positive_amounts=True, now=NOW)
        assert [t.customer_id for t in result.transactions] == ["C3"]
        assert result.report.dropped_non_positive_amount == 1
        assert result.report.dropped_negative_values == 1
        assert result.report.rows_dropped == 2

    def test_zero_amount_option_ignored_in_count_mode(self):
        rows = [{"CustomerID": "C1", "InvoiceDate": "2023-01-01"}]
        result = normalize_rows(rows, COUNT_ONLY, drop_non_positive_amounts=True, now=NOW)
        assert len(result.transactions) == 1

    def test_lone_quantity_column_filters_negatives(self):
        """A quantity column without price still filters returns."""
        mapping = ColumnMapping(customer_id_column="CustomerID", quantity_column="Quantity")
        rows = [
            {"CustomerID": "C1", "Quantity": "-1"},
            {"CustomerID": "C2", "Quantity": "4"},
        ]
        result = normalize_rows(rows, mapping, now=NOW)
        assert [(t.customer_id, t.amount) for t in result.transactions] == [("C2", 1.0)]


class TestDates:
    """Invoice date parsing and fallback."""

    def test_mixed_formats(self):
        rows = [
            {"CustomerID": "C1", "InvoiceDate": "2023-01-05"},
            {"CustomerID": "C1", "InvoiceDate": "2023/02/10 14:30"},
            {"CustomerID": "C1", "InvoiceDate": datetime(2023, 3, 1, 9, 0)},
            {"CustomerID": "C1", "InvoiceDate": pd.Timestamp("2023-04-01")},
        ]
        result = normalize_rows(rows, COUNT_ONLY, now=NOW)
        assert [t.invoice_date for t in result.transactions] == [
            datetime(2023, 1, 5),
            datetime(2023, 2, 10, 14, 30),
            datetime(2023, 3, 1, 9, 0),
            datetime(2023, 4, 1),
        ]
        assert result.report.defaulted_dates == 0

    def test_timezone_aware_dates_become_naive_utc(self):
        rows = [
            {"CustomerID": "C1", "InvoiceDate": "2023-01-05T10:00:00+02:00"},
            {"CustomerID": "C1", "InvoiceDate": datetime(2023, 1, 6, 10, tzinfo=timezone.utc)},
        ]
        result = normalize_rows(rows, COUNT_ONLY, now=NOW)
        assert [t.invoice_date for t in result.transactions] == [
            datetime(2023, 1, 5, 8, 0),
            datetime(2023, 1, 6, 10, 0),
        ]

    def test_unparseable_date_falls_back_to_now(self):
        rows = [
            {"CustomerID": "C1", "InvoiceDate": "not a date"},
            {"CustomerID": "C2", "InvoiceDate": None},
            {"CustomerID": "C3", "InvoiceDate": ""},
        ]
        result = normalize_rows(rows, COUNT_ONLY, now=NOW)
        assert all(t.invoice_date == NOW for t in result.transactions)
        assert result.report.defaulted_dates == 3

    def test_no_date_column_uses_now_without_counting(self):
        mapping = ColumnMapping(customer_id_column="CustomerID")
        result = normalize_rows([{"CustomerID": "C1"}], mapping, now=NOW)
        assert result.transactions[0].invoice_date == NOW
        assert result.report.defaulted_dates == 0


class TestChunking:
    """Chunked processing."""

    def test_chunked_matches_single_chunk(self):
        rows = [
            {"CustomerID": f"C{i % 7}", "InvoiceDate": f"2023-01-{1 + i % 28:02d}", "Total": i}
            for i in range(100)
        ]
        whole = normalize_rows(rows, AMOUNT, chunk_size=1000, now=NOW)
        chunked = normalize_rows(rows, AMOUNT, chunk_size=7, now=NOW)
        assert whole.transactions == chunked.transactions
        assert whole.report == chunked.report

    def test_normalizer_accumulates_report(self):
        normalizer = RowNormalizer(AMOUNT, now=NOW)
        normalizer.normalize_chunk([{"CustomerID": "C1", "InvoiceDate": "2023-01-01", "Total": 1}])
        normalizer.normalize_chunk([{"CustomerID": "", "InvoiceDate": "2023-01-01", "Total": 1}])
        assert normalizer.report.rows_seen == 2
        assert normalizer.report.rows_kept == 1
        assert normalizer.report.dropped_missing_customer == 1

    def test_iter_chunks_rejects_non_positive_size(self):
        with pytest.raises(ValueError, match="chunk_size must be positive"):
            list(iter_chunks([{}], 0))

    def test_generator_input_accepted(self):
        rows = ({"CustomerID": f"C{i}", "InvoiceDate": "2023-01-01"} for i in range(3))
        result = normalize_rows(rows, COUNT_ONLY, chunk_size=2, now=NOW)
        assert len(result.transactions) == 3
