"""Dashboard aggregates over segmented customers.

Answers the questions the dashboard shows at a glance:
- How many customers, how much revenue, how often do they buy?
- How are customers spread over the tiers, and what does each tier look like?
- Who are the top customers by revenue?
- What should we do with each tier?

Everything here returns plain data; drawing charts is left to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Sequence

import numpy as np

from customer_rfm.segmentation.strategies import Segment, SegmentedRecord

# Standard percentage precision: 2 decimal places (e.g., 45.67%)
PERCENTAGE_PRECISION = Decimal("0.01")

HISTOGRAM_FIELDS = ("recency", "frequency", "monetary")

RECOMMENDATIONS: dict[Segment, tuple[str, ...]] = {
    Segment.PLATINUM: (
        "VIP treatment and exclusive offers",
        "Personalized customer service",
        "Early access to new products",
    ),
    Segment.GOLD: (
        "Loyalty program benefits",
        "Special discounts and promotions",
        "Personalized recommendations",
    ),
    Segment.SILVER: (
        "Welcome back campaigns",
        "Educational content",
        "Re-engagement offers",
    ),
    Segment.BRONZE: (
        "Win-back campaigns",
        "Special discount offers",
        "Feedback requests",
    ),
}


def recommendations_for(segment: Segment | str) -> tuple[str, ...]:
    """Suggested marketing actions for a tier."""
    return RECOMMENDATIONS[Segment(segment)]


def _pct(part: float, whole: float) -> Decimal:
    if whole <= 0:
        return Decimal("0.00")
    return (Decimal(str(part)) / Decimal(str(whole)) * 100).quantize(
        PERCENTAGE_PRECISION, rounding=ROUND_HALF_UP
    )


@dataclass(frozen=True)
class DashboardMetrics:
    """Headline figures for the whole customer base.

    Attributes
    ----------
    total_customers:
        Distinct customers analysed
    total_revenue:
        Sum of monetary value across customers
    avg_frequency:
        Mean transactions per customer
    avg_recency:
        Mean days since last purchase
    """

    total_customers: int
    total_revenue: float
    avg_frequency: float
    avg_recency: float


def dashboard_metrics(records: Sequence[SegmentedRecord]) -> DashboardMetrics:
    """Compute headline metrics; an empty input yields zeros."""
    if not records:
        return DashboardMetrics(0, 0.0, 0.0, 0.0)
    count = len(records)
    return DashboardMetrics(
        total_customers=count,
        total_revenue=float(sum(r.monetary for r in records)),
        avg_frequency=sum(r.frequency for r in records) / count,
        avg_recency=sum(r.recency for r in records) / count,
    )


@dataclass(frozen=True)
class SegmentSummary:
    """Per-tier profile shown in the segment table."""

    segment: Segment
    customers: int
    avg_recency: float
    avg_frequency: float
    avg_monetary: float
    total_revenue: float
    customer_pct: Decimal
    revenue_pct: Decimal


def summarize_segments(records: Sequence[SegmentedRecord]) -> list[SegmentSummary]:
    """Profile every tier, best first, including tiers with no customers.

    Examples
    --------
    >>> recs = [
    ...     SegmentedRecord("C1", 5, 12, 900.0, Segment.PLATINUM),
    ...     SegmentedRecord("C2", 120, 1, 100.0, Segment.BRONZE),
    ... ]
    >>> [(s.segment.value, s.customers, str(s.revenue_pct)) for s in summarize_segments(recs)]
    [('Platinum', 1, '90.00'), ('Gold', 0, '0.00'), ('Silver', 0, '0.00'), ('Bronze', 1, '10.00')]
    """
    total_customers = len(records)
    total_revenue = float(sum(r.monetary for r in records))
    summaries: list[SegmentSummary] = []
    for segment in Segment.ordered(descending=True):
        members = [r for r in records if r.segment is segment]
        n = len(members)
        revenue = float(sum(r.monetary for r in members))
        summaries.append(
            SegmentSummary(
                segment=segment,
                customers=n,
                avg_recency=sum(r.recency for r in members) / n if n else 0.0,
                avg_frequency=sum(r.frequency for r in members) / n if n else 0.0,
                avg_monetary=revenue / n if n else 0.0,
                total_revenue=revenue,
                customer_pct=_pct(n, total_customers),
                revenue_pct=_pct(revenue, total_revenue),
            )
        )
    return summaries


def segment_counts(records: Sequence[SegmentedRecord]) -> dict[str, int]:
    """Customers per tier, best first, zero-filled."""
    counts = {segment.value: 0 for segment in Segment.ordered(descending=True)}
    for record in records:
        counts[record.segment.value] += 1
    return counts


def top_customers_by_revenue(
    records: Sequence[SegmentedRecord], n: int = 10
) -> list[SegmentedRecord]:
    """The ``n`` highest-monetary customers; ties ordered by customer_id."""
    if n <= 0:
        return []
    return sorted(records, key=lambda r: (-r.monetary, r.customer_id))[:n]


@dataclass(frozen=True)
class Histogram:
    """Bin edges and counts for one RFM dimension."""

    field: str
    edges: list[float]
    counts: list[int]


def histogram(
    records: Sequence[SegmentedRecord], field: str, bins: int = 10
) -> Histogram:
    """Histogram of ``recency``, ``frequency`` or ``monetary`` values."""
    if field not in HISTOGRAM_FIELDS:
        raise ValueError(f"field must be one of {HISTOGRAM_FIELDS}: {field!r}")
    if bins <= 0:
        raise ValueError(f"bins must be positive: {bins}")
    values = np.array([getattr(r, field) for r in records], dtype="float64")
    if values.size == 0:
        return Histogram(field=field, edges=[], counts=[])
    counts, edges = np.histogram(values, bins=bins)
    return Histogram(
        field=field,
        edges=[float(edge) for edge in edges],
        counts=[int(count) for count in counts],
    )
