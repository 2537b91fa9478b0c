"""Column mapping and schema discovery for raw tabular rows.

Raw rows arrive as header-keyed mappings whose column set is only known at
run time. This module captures the roles the analysis needs (customer id,
invoice date, quantity, price or a single amount column), discovers a
coarse type per column, and suggests a default mapping from header names
that a user may override.
"""

from __future__ import annotations

import math
from datetime import date, datetime
from enum import Enum
from typing import Iterable, Mapping, Sequence

import pandas as pd
from pydantic import BaseModel, Field, model_validator

from customer_rfm.foundation.errors import ColumnMappingError

RawRow = Mapping[str, object]

#: Header keywords used to suggest a column for each role, strongest first.
ROLE_KEYWORDS: dict[str, tuple[str, ...]] = {
    "customer_id_column": ("customer", "cust", "client", "id"),
    "date_column": ("date", "time", "day"),
    "quantity_column": ("quantity", "qty", "units"),
    "price_column": ("price", "unit", "cost"),
    "amount_column": ("amount", "total", "value", "revenue", "sales"),
}


class ColumnType(str, Enum):
    """Coarse column types inferred from sampled values."""

    NUMERIC = "numeric"
    DATE = "date"
    TEXT = "text"
    EMPTY = "empty"


class MonetaryMode(str, Enum):
    """How a transaction amount is derived from a row."""

    QUANTITY_X_PRICE = "quantity_x_price"
    AMOUNT = "amount"
    COUNT = "count"


class ColumnMapping(BaseModel):
    """Assignment of analysis roles to dataset columns."""

    customer_id_column: str = Field(description="Column holding the customer identifier")
    date_column: str | None = Field(default=None, description="Invoice date column")
    quantity_column: str | None = Field(default=None, description="Quantity column")
    price_column: str | None = Field(default=None, description="Unit price column")
    amount_column: str | None = Field(
        default=None,
        description="Single monetary column; exclusive with quantity/price",
    )

    @model_validator(mode="after")
    def _check_roles(self) -> "ColumnMapping":
        if not self.customer_id_column or not self.customer_id_column.strip():
            raise ValueError("customer_id_column must be a non-empty column name")
        if self.amount_column and (self.quantity_column or self.price_column):
            raise ValueError(
                "amount_column cannot be combined with quantity_column/price_column"
            )
        return self

    @property
    def monetary_mode(self) -> MonetaryMode:
        if self.quantity_column and self.price_column:
            return MonetaryMode.QUANTITY_X_PRICE
        if self.amount_column:
            return MonetaryMode.AMOUNT
        return MonetaryMode.COUNT

    def mapped_columns(self) -> dict[str, str]:
        """Return ``{role: column}`` for every populated role."""
        return {
            role: column
            for role, column in self.model_dump().items()
            if column
        }

    def validate_against(self, columns: Iterable[str]) -> None:
        """Raise ColumnMappingError if a mapped column is absent from the data."""
        available = set(columns)
        missing = {
            role: column
            for role, column in self.mapped_columns().items()
            if column not in available
        }
        if missing:
            details = ", ".join(f"{role}={column!r}" for role, column in missing.items())
            raise ColumnMappingError(
                f"Mapped columns not found in dataset: {details}"
            )


def collect_columns(rows: Iterable[RawRow]) -> list[str]:
    """Return the union of row keys in first-seen order."""
    seen: dict[str, None] = {}
    for row in rows:
        for key in row:
            seen.setdefault(str(key), None)
    return list(seen)


def _is_missing(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def _infer_value_type(value: object) -> ColumnType:
    if _is_missing(value):
        return ColumnType.EMPTY
    if isinstance(value, bool):
        return ColumnType.TEXT
    if isinstance(value, (datetime, date, pd.Timestamp)):
        return ColumnType.DATE
    if isinstance(value, (int, float)):
        return ColumnType.NUMERIC
    text = str(value).strip()
    try:
        float(text)
    except ValueError:
        pass
    else:
        return ColumnType.NUMERIC
    parsed = pd.to_datetime(text, errors="coerce")
    if not pd.isna(parsed):
        return ColumnType.DATE
    return ColumnType.TEXT


def discover_schema(
    rows: Sequence[RawRow], sample_size: int = 500
) -> dict[str, ColumnType]:
    """Infer a :class:`ColumnType` per column from the first ``sample_size`` rows.

    A column is typed by the majority type of its non-empty sampled values;
    columns with no non-empty value are :attr:`ColumnType.EMPTY`.
    """
    sample = rows[:sample_size]
    columns = collect_columns(sample)
    schema: dict[str, ColumnType] = {}
    for column in columns:
        counts: dict[ColumnType, int] = {}
        for row in sample:
            value_type = _infer_value_type(row.get(column))
            if value_type is ColumnType.EMPTY:
                continue
            counts[value_type] = counts.get(value_type, 0) + 1
        if not counts:
            schema[column] = ColumnType.EMPTY
        else:
            # Ties resolve in enum declaration order (numeric before date before text)
            schema[column] = max(ColumnType, key=lambda t: counts.get(t, 0))
    return schema


def _keyword_rank(header: str, keywords: Sequence[str]) -> int | None:
    lowered = header.lower()
    for rank, keyword in enumerate(keywords):
        if keyword in lowered:
            return rank
    return None


def suggest_mapping(
    columns: Sequence[str],
    schema: Mapping[str, ColumnType] | None = None,
) -> dict[str, str | None]:
    """Suggest a column for each role by fuzzy header matching.

    Each role takes the column whose header contains its strongest keyword;
    a column is assigned to at most one role. When a schema is supplied,
    date roles prefer date-typed columns and monetary roles skip text columns.
    The result is a plain dict so callers can override entries before
    building a :class:`ColumnMapping`.
    """
    suggestion: dict[str, str | None] = {role: None for role in ROLE_KEYWORDS}
    taken: set[str] = set()

    def acceptable(role: str, column: str) -> bool:
        if schema is None or column not in schema:
            return True
        column_type = schema[column]
        if role == "date_column":
            return column_type in (ColumnType.DATE, ColumnType.TEXT)
        if role in ("quantity_column", "price_column", "amount_column"):
            return column_type is ColumnType.NUMERIC
        return True

    # Date first so that "invoice date" is not claimed as an id column
    for role in (
        "date_column",
        "customer_id_column",
        "quantity_column",
        "price_column",
        "amount_column",
    ):
        best: tuple[int, int] | None = None
        for position, column in enumerate(columns):
            if column in taken or not acceptable(role, column):
                continue
            rank = _keyword_rank(column, ROLE_KEYWORDS[role])
            if rank is None:
                continue
            if best is None or (rank, position) < best:
                best = (rank, position)
        if best is not None:
            suggestion[role] = columns[best[1]]
            taken.add(columns[best[1]])

    if suggestion["quantity_column"] and suggestion["price_column"]:
        suggestion["amount_column"] = None
    elif suggestion["amount_column"] is None and suggestion["price_column"]:
        # A lone price column is the only monetary signal
        suggestion["amount_column"] = suggestion["price_column"]
        suggestion["price_column"] = None
        suggestion["quantity_column"] = None
    else:
        suggestion["quantity_column"] = None
        suggestion["price_column"] = None
    return suggestion


def suggested_column_mapping(
    rows: Sequence[RawRow],
) -> ColumnMapping | None:
    """Build a :class:`ColumnMapping` from the suggestion, if an id column was found."""
    schema = discover_schema(rows)
    suggestion = suggest_mapping(list(schema), schema)
    if not suggestion["customer_id_column"]:
        return None
    return ColumnMapping(**suggestion)
