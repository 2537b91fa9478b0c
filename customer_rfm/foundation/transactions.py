"""Row normalisation: raw header-keyed rows into typed transactions.

Every row either becomes a :class:`Transaction` or is dropped for a counted
reason. Unparseable dates and numbers degrade to documented defaults, so a
single malformed cell never aborts the batch.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Iterator, Sequence

import numpy as np
import pandas as pd

from customer_rfm.foundation.schema import ColumnMapping, MonetaryMode, RawRow

logger = logging.getLogger(__name__)

#: Placeholder id that marks rows without a usable customer.
UNKNOWN_CUSTOMER = "Unknown"

DEFAULT_CHUNK_SIZE = 5_000


@dataclass(frozen=True, slots=True)
class Transaction:
    """A single normalised purchase.

    Attributes
    ----------
    customer_id:
        Trimmed, non-empty customer identifier
    invoice_date:
        Timezone-naive timestamp (UTC wall time for zoned inputs)
    amount:
        Finite, non-negative monetary value of the row
    """

    customer_id: str
    invoice_date: datetime
    amount: float

    def __post_init__(self) -> None:
        if not self.customer_id:
            raise ValueError("Transaction customer_id cannot be empty")
        if not math.isfinite(self.amount) or self.amount < 0:
            raise ValueError(
                f"Transaction amount must be finite and non-negative: {self.amount} "
                f"(customer_id={self.customer_id})"
            )


@dataclass
class NormalizationReport:
    """Diagnostics counters for a normalisation run."""

    rows_seen: int = 0
    rows_kept: int = 0
    dropped_missing_customer: int = 0
    dropped_negative_values: int = 0
    dropped_non_positive_amount: int = 0
    defaulted_dates: int = 0
    defaulted_numbers: int = 0
    rows_truncated: int = 0

    @property
    def rows_dropped(self) -> int:
        return (
            self.dropped_missing_customer
            + self.dropped_negative_values
            + self.dropped_non_positive_amount
        )

    def as_dict(self) -> dict[str, int]:
        return {
            "rows_seen": self.rows_seen,
            "rows_kept": self.rows_kept,
            "rows_dropped": self.rows_dropped,
            "dropped_missing_customer": self.dropped_missing_customer,
            "dropped_negative_values": self.dropped_negative_values,
            "dropped_non_positive_amount": self.dropped_non_positive_amount,
            "defaulted_dates": self.defaulted_dates,
            "defaulted_numbers": self.defaulted_numbers,
            "rows_truncated": self.rows_truncated,
        }


@dataclass
class NormalizationResult:
    """Transactions retained by :func:`normalize_rows` and the run diagnostics."""

    transactions: list[Transaction]
    report: NormalizationReport = field(default_factory=NormalizationReport)


def coerce_customer_id(value: object) -> str | None:
    """Return the trimmed string form of ``value`` or None if unusable.

    Integral floats (as produced by spreadsheet readers for numeric ids with
    gaps) render without a trailing ``.0``.
    """
    if value is None:
        return None
    if isinstance(value, float):
        if math.isnan(value):
            return None
        if value.is_integer():
            value = int(value)
    customer_id = str(value).strip()
    if not customer_id or customer_id == UNKNOWN_CUSTOMER:
        return None
    return customer_id


def _parse_numbers(values: Sequence[object]) -> tuple[np.ndarray, np.ndarray]:
    """Parse to floats; return (numbers, defaulted_mask) with defaults set to 0."""
    series = pd.Series(list(values), dtype="object")
    if len(series):
        series = series.map(lambda v: v.strip().replace(",", "") if isinstance(v, str) else v)
    numbers = pd.to_numeric(series, errors="coerce").astype("float64").to_numpy()
    defaulted = ~np.isfinite(numbers)
    numbers = np.where(defaulted, 0.0, numbers)
    return numbers, defaulted


def _parse_dates(values: Sequence[object]) -> list[datetime | None]:
    parsed: list[datetime | None] = [None] * len(values)
    pending_idx: list[int] = []
    pending_text: list[str] = []
    for idx, value in enumerate(values):
        if value is None or value is pd.NaT:
            continue
        if isinstance(value, float) and math.isnan(value):
            continue
        if isinstance(value, pd.Timestamp):
            value = value.to_pydatetime()
        if isinstance(value, datetime):
            if value.tzinfo is not None:
                value = value.astimezone(timezone.utc).replace(tzinfo=None)
            parsed[idx] = value
        else:
            text = str(value).strip()
            if text:
                pending_idx.append(idx)
                pending_text.append(text)

    if pending_text:
        stamps = pd.to_datetime(
            pd.Series(pending_text, dtype="object"),
            errors="coerce",
            format="mixed",
            utc=True,
        ).dt.tz_localize(None)
        for idx, stamp in zip(pending_idx, stamps):
            if not pd.isna(stamp):
                parsed[idx] = stamp.to_pydatetime()
    return parsed


class RowNormalizer:
    """Incrementally normalise row chunks against a fixed column mapping.

    The normaliser holds only its running :class:`NormalizationReport`, so
    callers can feed bounded chunks and interleave other work between them.

    Parameters
    ----------
    mapping:
        Column roles to read from each row
    drop_non_positive_amounts:
        Also drop rows whose amount is exactly zero (monetary modes only).
        Negative quantities, prices and amounts are always dropped.
    now:
        Timestamp used for rows without a parseable date. Defaults to the
        current UTC wall time when the normaliser is created.
    """

    def __init__(
        self,
        mapping: ColumnMapping,
        *,
        drop_non_positive_amounts: bool = False,
        now: datetime | None = None,
    ) -> None:
        self.mapping = mapping
        self.drop_non_positive_amounts = drop_non_positive_amounts
        if now is None:
            now = datetime.now(timezone.utc).replace(tzinfo=None)
        self.now = now
        self.report = NormalizationReport()

    def normalize_chunk(self, rows: Sequence[RawRow]) -> list[Transaction]:
        mapping = self.mapping
        report = self.report
        report.rows_seen += len(rows)

        keep_idx: list[int] = []
        customer_ids: list[str] = []
        for idx, row in enumerate(rows):
            customer_id = coerce_customer_id(row.get(mapping.customer_id_column))
            if customer_id is None:
                report.dropped_missing_customer += 1
                continue
            keep_idx.append(idx)
            customer_ids.append(customer_id)

        if not keep_idx:
            return []
        kept_rows = [rows[idx] for idx in keep_idx]

        mode = mapping.monetary_mode
        drop = np.zeros(len(kept_rows), dtype=bool)
        if mode is MonetaryMode.QUANTITY_X_PRICE:
            quantity, q_defaulted = _parse_numbers(
                [row.get(mapping.quantity_column) for row in kept_rows]
            )
            price, p_defaulted = _parse_numbers(
                [row.get(mapping.price_column) for row in kept_rows]
            )
            negative = (quantity < 0) | (price < 0)
            with np.errstate(over="ignore"):
                amounts = quantity * price
            report.defaulted_numbers += int((q_defaulted | p_defaulted)[~negative].sum())
        elif mode is MonetaryMode.AMOUNT:
            amounts, defaulted = _parse_numbers(
                [row.get(mapping.amount_column) for row in kept_rows]
            )
            negative = amounts < 0
            report.defaulted_numbers += int(defaulted[~negative].sum())
        else:
            amounts = np.ones(len(kept_rows), dtype="float64")
            # Lone quantity/price columns still act as a data-quality filter
            negative = np.zeros(len(kept_rows), dtype=bool)
            for column in (mapping.quantity_column, mapping.price_column):
                if column:
                    values, _ = _parse_numbers([row.get(column) for row in kept_rows])
                    negative |= values < 0

        # Products of finite inputs can still overflow; those default to 0 too
        overflow = ~np.isfinite(amounts)
        report.defaulted_numbers += int(overflow[~negative].sum())
        amounts = np.where(overflow, 0.0, amounts)
        drop |= negative
        report.dropped_negative_values += int(negative.sum())
        if self.drop_non_positive_amounts and mode is not MonetaryMode.COUNT:
            zero = (amounts <= 0) & ~negative
            drop |= zero
            report.dropped_non_positive_amount += int(zero.sum())

        if mapping.date_column:
            dates = _parse_dates([row.get(mapping.date_column) for row in kept_rows])
        else:
            dates = [None] * len(kept_rows)

        transactions: list[Transaction] = []
        for pos, customer_id in enumerate(customer_ids):
            if drop[pos]:
                continue
            invoice_date = dates[pos]
            if invoice_date is None:
                invoice_date = self.now
                if mapping.date_column:
                    report.defaulted_dates += 1
            transactions.append(
                Transaction(
                    customer_id=customer_id,
                    invoice_date=invoice_date,
                    amount=float(amounts[pos]),
                )
            )
        report.rows_kept += len(transactions)
        return transactions


def iter_chunks(rows: Sequence[RawRow], chunk_size: int) -> Iterator[Sequence[RawRow]]:
    """Yield consecutive slices of at most ``chunk_size`` rows."""
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive: {chunk_size}")
    for start in range(0, len(rows), chunk_size):
        yield rows[start : start + chunk_size]


def normalize_rows(
    rows: Iterable[RawRow],
    mapping: ColumnMapping,
    *,
    drop_non_positive_amounts: bool = False,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    now: datetime | None = None,
) -> NormalizationResult:
    """Normalise raw rows into transactions.

    Parameters
    ----------
    rows:
        Header-keyed raw rows
    mapping:
        Column roles; see :class:`ColumnMapping`
    drop_non_positive_amounts:
        Drop zero-amount rows in addition to negative ones
    chunk_size:
        Rows processed per internal batch
    now:
        Fallback invoice date for rows without a parseable date

    Returns
    -------
    NormalizationResult
        Retained transactions in input order, with drop/default counters

    Examples
    --------
    >>> mapping = ColumnMapping(customer_id_column="cust", amount_column="total")
    >>> result = normalize_rows(
    ...     [{"cust": " C1 ", "total": "10.5"}, {"cust": "", "total": 3}], mapping
    ... )
    >>> [t.customer_id for t in result.transactions]
    ['C1']
    >>> result.report.dropped_missing_customer
    1
    """
    rows = rows if isinstance(rows, Sequence) else list(rows)
    normalizer = RowNormalizer(
        mapping, drop_non_positive_amounts=drop_non_positive_amounts, now=now
    )
    transactions: list[Transaction] = []
    for chunk in iter_chunks(rows, chunk_size):
        transactions.extend(normalizer.normalize_chunk(chunk))

    report = normalizer.report
    if report.rows_dropped or report.defaulted_dates or report.defaulted_numbers:
        logger.info(
            f"Normalised {report.rows_seen} rows: kept {report.rows_kept}, "
            f"dropped {report.rows_dropped}, defaulted dates {report.defaulted_dates}, "
            f"defaulted numbers {report.defaulted_numbers}"
        )
    return NormalizationResult(transactions=transactions, report=report)
