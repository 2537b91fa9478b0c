"""RFM (Recency-Frequency-Monetary) aggregation.

Folds normalised transactions into one record per customer:
- Recency: whole days between the customer's last purchase and a reference date
- Frequency: number of transactions
- Monetary: sum of transaction amounts

**Reference date policy**: unless the caller passes an explicit reference
date, recency is measured from the latest invoice date in the dataset plus
one day (see :func:`default_reference_date`). This keeps recency values
reproducible for a given dataset regardless of when the analysis runs.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Sequence

from customer_rfm.foundation.transactions import Transaction

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class RFMRecord:
    """RFM metrics for a single customer.

    Attributes
    ----------
    customer_id:
        Unique customer identifier
    recency:
        Whole days from the last purchase to the reference date. Negative
        only when the caller chose a reference date before that purchase.
    frequency:
        Number of transactions
    monetary:
        Sum of transaction amounts
    """

    customer_id: str
    recency: int
    frequency: int
    monetary: float

    def __post_init__(self) -> None:
        """Validate RFM record."""
        if self.frequency <= 0:
            raise ValueError(
                f"Frequency must be positive: {self.frequency} (customer_id={self.customer_id})"
            )
        if not math.isfinite(self.monetary) or self.monetary < 0:
            raise ValueError(
                f"Monetary value must be finite and non-negative: {self.monetary} "
                f"(customer_id={self.customer_id})"
            )


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware timestamp to naive UTC; naive values pass through."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def recency_days(reference_date: datetime, last_date: datetime) -> int:
    """Whole days between two timestamps, truncated toward zero."""
    return int((reference_date - last_date) / ONE_DAY)


def default_reference_date(latest: datetime | Iterable[Transaction]) -> datetime:
    """Return the latest invoice date plus one day.

    Accepts either the latest invoice date itself or the transactions to scan.
    Raises ValueError for an empty transaction set.
    """
    if isinstance(latest, datetime):
        return latest + ONE_DAY
    last_seen: datetime | None = None
    for txn in latest:
        if last_seen is None or txn.invoice_date > last_seen:
            last_seen = txn.invoice_date
    if last_seen is None:
        raise ValueError("Cannot derive a reference date from an empty transaction set")
    return last_seen + ONE_DAY


class RFMAccumulator:
    """Incrementally fold transactions into per-customer totals.

    Memory grows with the number of distinct customers only, so transactions
    may be fed in bounded batches from a larger source.

    Examples
    --------
    >>> from datetime import datetime
    >>> acc = RFMAccumulator()
    >>> acc.add([Transaction("C1", datetime(2023, 1, 1), 10.0)])
    >>> acc.add([Transaction("C1", datetime(2023, 2, 1), 10.0)])
    >>> [(r.customer_id, r.recency, r.frequency, r.monetary)
    ...  for r in acc.records(datetime(2023, 2, 2))]
    [('C1', 1, 2, 20.0)]
    """

    def __init__(self) -> None:
        # customer_id -> [last_date, frequency, monetary]
        self._customers: dict[str, list] = {}
        self._latest: datetime | None = None
        self._transaction_count = 0

    @property
    def customer_count(self) -> int:
        return len(self._customers)

    @property
    def transaction_count(self) -> int:
        return self._transaction_count

    @property
    def latest_date(self) -> datetime | None:
        return self._latest

    def add(self, transactions: Iterable[Transaction]) -> None:
        customers = self._customers
        for txn in transactions:
            stats = customers.get(txn.customer_id)
            if stats is None:
                customers[txn.customer_id] = [txn.invoice_date, 1, txn.amount]
            else:
                if txn.invoice_date > stats[0]:
                    stats[0] = txn.invoice_date
                stats[1] += 1
                stats[2] += txn.amount
            if self._latest is None or txn.invoice_date > self._latest:
                self._latest = txn.invoice_date
            self._transaction_count += 1

    def records(self, reference_date: datetime | None = None) -> list[RFMRecord]:
        """Build one :class:`RFMRecord` per customer, sorted by customer_id.

        When ``reference_date`` is None the default policy applies. An aware
        ``reference_date`` is compared in UTC, like the invoice dates.
        """
        if not self._customers:
            return []
        if reference_date is None:
            reference_date = default_reference_date(self._latest)
        else:
            reference_date = to_naive_utc(reference_date)

        records: list[RFMRecord] = []
        negative = 0
        for customer_id, (last_date, frequency, monetary) in self._customers.items():
            recency = recency_days(reference_date, last_date)
            if recency < 0:
                negative += 1
            records.append(
                RFMRecord(
                    customer_id=customer_id,
                    recency=recency,
                    frequency=frequency,
                    monetary=float(monetary),
                )
            )
        if negative:
            logger.warning(
                f"{negative} customers purchased after the reference date "
                f"{reference_date.isoformat()}; their recency is negative"
            )

        records.sort(key=lambda r: r.customer_id)
        return records


def aggregate(
    transactions: Sequence[Transaction] | Iterable[Transaction],
    reference_date: datetime | None = None,
) -> list[RFMRecord]:
    """Aggregate transactions into RFM records.

    Parameters
    ----------
    transactions:
        Normalised transactions
    reference_date:
        Date recency is measured from. Defaults to the latest invoice date
        plus one day. Pick a date at or after every invoice date if
        non-negative recency is required.

    Returns
    -------
    list[RFMRecord]
        One record per customer, sorted by customer_id. Empty input returns
        an empty list.

    Examples
    --------
    >>> from datetime import datetime
    >>> txns = [
    ...     Transaction("C1", datetime(2023, 1, 1), 10.0),
    ...     Transaction("C1", datetime(2023, 2, 1), 10.0),
    ...     Transaction("C2", datetime(2023, 1, 15), 100.0),
    ... ]
    >>> rfm = aggregate(txns, datetime(2023, 2, 2))
    >>> [(r.customer_id, r.recency, r.frequency, r.monetary) for r in rfm]
    [('C1', 1, 2, 20.0), ('C2', 18, 1, 100.0)]
    """
    accumulator = RFMAccumulator()
    accumulator.add(transactions)
    records = accumulator.records(reference_date)
    logger.info(
        f"Aggregated {accumulator.transaction_count} transactions into "
        f"{len(records)} RFM records"
    )
    return records
