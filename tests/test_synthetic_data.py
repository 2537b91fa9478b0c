from datetime import date, datetime

import pytest

from customer_rfm.foundation.schema import suggested_column_mapping
from customer_rfm.foundation.transactions import normalize_rows
from customer_rfm.synthetic import (
    CUSTOMER_COLUMN,
    DATE_COLUMN,
    INVOICE_COLUMN,
    PRICE_COLUMN,
    QUANTITY_COLUMN,
    RowScenario,
    generate_rows,
)


def test_generate_rows_basic() -> None:
    rows = generate_rows(30, date(2024, 1, 1), date(2024, 6, 30), scenario=RowScenario(seed=5))
    assert len(rows) >= 30
    assert set(rows[0]) == {INVOICE_COLUMN, CUSTOMER_COLUMN, DATE_COLUMN, QUANTITY_COLUMN, PRICE_COLUMN}
    assert all(isinstance(value, str) for row in rows for value in row.values())
    # Every customer places at least one order
    assert {row[CUSTOMER_COLUMN] for row in rows} == {f"C-{i:05d}" for i in range(1, 31)}


def test_generate_rows_is_reproducible() -> None:
    scenario = RowScenario(seed=42)
    first = generate_rows(20, date(2024, 1, 1), date(2024, 3, 31), scenario=scenario)
    second = generate_rows(20, date(2024, 1, 1), date(2024, 3, 31), scenario=scenario)
    assert first == second


def test_dates_within_window() -> None:
    rows = generate_rows(25, date(2024, 2, 1), date(2024, 2, 29), scenario=RowScenario(seed=1))
    for row in rows:
        ts = datetime.strptime(row[DATE_COLUMN], "%Y-%m-%d %H:%M")
        assert date(2024, 2, 1) <= ts.date() <= date(2024, 2, 29)


def test_data_quality_rates_surface_in_report() -> None:
    scenario = RowScenario(missing_customer_rate=0.1, bad_date_rate=0.1, return_rate=0.1, seed=3)
    rows = generate_rows(300, date(2024, 1, 1), date(2024, 12, 31), scenario=scenario)
    mapping = suggested_column_mapping(rows)
    assert mapping is not None
    assert mapping.quantity_column == QUANTITY_COLUMN
    assert mapping.price_column == PRICE_COLUMN

    report = normalize_rows(rows, mapping, now=datetime(2025, 1, 1)).report
    assert report.dropped_missing_customer > 0
    assert report.dropped_negative_values > 0
    assert report.defaulted_dates > 0
    assert report.rows_kept + report.rows_dropped == len(rows)


def test_max_rows_caps_output() -> None:
    rows = generate_rows(100, date(2024, 1, 1), date(2024, 12, 31), max_rows=17)
    assert len(rows) == 17


def test_empty_and_invalid_inputs() -> None:
    assert generate_rows(0, date(2024, 1, 1), date(2024, 1, 1)) == []
    with pytest.raises(ValueError, match="start date must be <= end date"):
        generate_rows(5, date(2024, 2, 1), date(2024, 1, 1))
