"""Customer tier assignment.

Three strategies turn :class:`RFMRecord` values into a :class:`Segment`:

- :class:`FixedThresholdStrategy`: dataset-independent cut-offs
- :class:`PercentileStrategy`: cut-offs at the dataset's 25th/50th/75th
  percentiles, self-calibrating to the value ranges at hand
- :class:`ClusteringStrategy`: k-means on normalised, log-dampened features,
  clusters ranked by mean monetary value

The strategies are not interchangeable: the same data can land in different
tiers under each of them, so callers select one explicitly. Every strategy
exposes ``prepare(records) -> context`` (dataset-level statistics) and
``classify(record, context) -> Segment``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, Sequence

import numpy as np

from customer_rfm.foundation.rfm import RFMRecord
from customer_rfm.segmentation.stats import kmeans, min_max_normalize, percentiles

logger = logging.getLogger(__name__)


class Segment(str, Enum):
    """Ordinal customer tiers, lowest value first."""

    BRONZE = "Bronze"
    SILVER = "Silver"
    GOLD = "Gold"
    PLATINUM = "Platinum"

    @property
    def rank(self) -> int:
        return _SEGMENT_ORDER.index(self)

    @classmethod
    def from_rank(cls, rank: int) -> "Segment":
        return _SEGMENT_ORDER[rank]

    @classmethod
    def ordered(cls, descending: bool = False) -> list["Segment"]:
        order = list(_SEGMENT_ORDER)
        return order[::-1] if descending else order


_SEGMENT_ORDER = (Segment.BRONZE, Segment.SILVER, Segment.GOLD, Segment.PLATINUM)


class StrategyName(str, Enum):
    """Selectable segmentation strategies."""

    FIXED = "fixed"
    PERCENTILE = "percentile"
    KMEANS = "kmeans"


@dataclass(frozen=True)
class SegmentedRecord:
    """An RFM record with its assigned tier."""

    customer_id: str
    recency: int
    frequency: int
    monetary: float
    segment: Segment

    @classmethod
    def from_record(cls, record: RFMRecord, segment: Segment) -> "SegmentedRecord":
        return cls(
            customer_id=record.customer_id,
            recency=record.recency,
            frequency=record.frequency,
            monetary=record.monetary,
            segment=segment,
        )

    def as_rfm(self) -> RFMRecord:
        return RFMRecord(
            customer_id=self.customer_id,
            recency=self.recency,
            frequency=self.frequency,
            monetary=self.monetary,
        )


class SegmentationStrategy(Protocol):
    """Capability shared by all segmentation strategies."""

    name: StrategyName

    def prepare(self, records: Sequence[RFMRecord]) -> Any:
        ...

    def classify(self, record: RFMRecord, context: Any) -> Segment:
        ...


def _score_to_segment(score: int, cutoffs: tuple[int, int, int]) -> Segment:
    """Map a total score to a tier given (platinum, gold, silver) minimums."""
    platinum, gold, silver = cutoffs
    if score >= platinum:
        return Segment.PLATINUM
    if score >= gold:
        return Segment.GOLD
    if score >= silver:
        return Segment.SILVER
    return Segment.BRONZE


class FixedThresholdStrategy:
    """Score each dimension 1-3 against fixed cut-offs (total 3-9).

    Recency <= 30 days scores 3, <= 90 scores 2, otherwise 1. Frequency >= 10
    scores 3, >= 5 scores 2, otherwise 1. Monetary >= 500 scores 3, >= 100
    scores 2, otherwise 1. Totals of 8+ are Platinum, 6+ Gold, 4+ Silver and
    anything lower Bronze.

    The cut-offs assume a particular currency and order size; on datasets
    with very different value ranges prefer :class:`PercentileStrategy`.
    """

    name = StrategyName.FIXED

    def __init__(
        self,
        recency_days: tuple[int, int] = (30, 90),
        frequency: tuple[int, int] = (10, 5),
        monetary: tuple[float, float] = (500.0, 100.0),
        segment_cutoffs: tuple[int, int, int] = (8, 6, 4),
    ) -> None:
        self.recency_days = recency_days
        self.frequency = frequency
        self.monetary = monetary
        self.segment_cutoffs = segment_cutoffs

    def score(self, record: RFMRecord) -> int:
        best_recency, good_recency = self.recency_days
        if record.recency <= best_recency:
            score = 3
        elif record.recency <= good_recency:
            score = 2
        else:
            score = 1

        best_frequency, good_frequency = self.frequency
        if record.frequency >= best_frequency:
            score += 3
        elif record.frequency >= good_frequency:
            score += 2
        else:
            score += 1

        best_monetary, good_monetary = self.monetary
        if record.monetary >= best_monetary:
            score += 3
        elif record.monetary >= good_monetary:
            score += 2
        else:
            score += 1
        return score

    def prepare(self, records: Sequence[RFMRecord]) -> None:
        return None

    def classify(self, record: RFMRecord, context: None = None) -> Segment:
        return _score_to_segment(self.score(record), self.segment_cutoffs)


@dataclass(frozen=True)
class PercentileThresholds:
    """25th/50th/75th percentile cut-offs for each RFM dimension."""

    recency: tuple[float, float, float]
    frequency: tuple[float, float, float]
    monetary: tuple[float, float, float]


PERCENTILE_FRACTIONS = (0.25, 0.5, 0.75)


class PercentileStrategy:
    """Score each dimension 0-3 against the dataset's own quartiles.

    Recency at or below the 25th percentile scores 3, at or below the 50th
    scores 2, at or below the 75th scores 1, otherwise 0. Frequency and
    monetary at or above the 75th percentile score 3, the 50th 2, the 25th 1,
    otherwise 0. Totals of 7+ are Platinum, 5+ Gold, 3+ Silver, else Bronze.

    Percentiles use the nearest-rank method, so identical values collapse the
    bands without dividing by zero: a dataset of identical customers puts
    everyone in the same tier.
    """

    name = StrategyName.PERCENTILE

    def __init__(self, segment_cutoffs: tuple[int, int, int] = (7, 5, 3)) -> None:
        self.segment_cutoffs = segment_cutoffs

    def prepare(self, records: Sequence[RFMRecord]) -> PercentileThresholds:
        if not records:
            raise ValueError("Cannot derive percentile thresholds from no records")

        def quartiles(values: list[float]) -> tuple[float, float, float]:
            p25, p50, p75 = percentiles(values, PERCENTILE_FRACTIONS)
            return p25, p50, p75

        return PercentileThresholds(
            recency=quartiles([r.recency for r in records]),
            frequency=quartiles([r.frequency for r in records]),
            monetary=quartiles([r.monetary for r in records]),
        )

    @staticmethod
    def score(record: RFMRecord, thresholds: PercentileThresholds) -> int:
        r25, r50, r75 = thresholds.recency
        if record.recency <= r25:
            score = 3
        elif record.recency <= r50:
            score = 2
        elif record.recency <= r75:
            score = 1
        else:
            score = 0

        for value, (q25, q50, q75) in (
            (record.frequency, thresholds.frequency),
            (record.monetary, thresholds.monetary),
        ):
            if value >= q75:
                score += 3
            elif value >= q50:
                score += 2
            elif value >= q25:
                score += 1
        return score

    def classify(self, record: RFMRecord, context: PercentileThresholds) -> Segment:
        return _score_to_segment(self.score(record, context), self.segment_cutoffs)


@dataclass(frozen=True)
class ClusterAssignment:
    """Per-customer tiers produced by :class:`ClusteringStrategy`.

    Attributes
    ----------
    segments:
        Tier per customer_id
    cluster_segments:
        Tier per k-means cluster index
    cluster_mean_monetary:
        Mean monetary value per cluster index
    n_clusters:
        Clusters actually fitted (below the requested k when the data has
        fewer distinct feature vectors)
    """

    segments: dict[str, Segment]
    cluster_segments: dict[int, Segment]
    cluster_mean_monetary: dict[int, float]
    n_clusters: int


def clustering_features(records: Sequence[RFMRecord]) -> np.ndarray:
    """Feature matrix ``[recency, log1p(frequency), log1p(monetary)]``."""
    return np.array(
        [
            [float(r.recency), np.log1p(r.frequency), np.log1p(r.monetary)]
            for r in records
        ],
        dtype="float64",
    ).reshape(len(records), 3)


class ClusteringStrategy:
    """Assign tiers by k-means clustering of normalised RFM features.

    Frequency and monetary are log-dampened before each column is min-max
    scaled. Cluster indices carry no business meaning, so clusters are ranked
    by mean monetary value and labelled Bronze upward. Clusters with the same
    mean monetary value share a tier, so tiers always rise strictly in mean
    monetary. With fewer than four distinct levels (k shrinks to the number
    of distinct customer profiles), the levels are spread across the tiers;
    a single level is Bronze.
    """

    name = StrategyName.KMEANS

    def __init__(
        self,
        n_clusters: int = 4,
        random_state: int = 42,
        max_iter: int = 300,
    ) -> None:
        if not 1 <= n_clusters <= len(_SEGMENT_ORDER):
            raise ValueError(
                f"n_clusters must be between 1 and {len(_SEGMENT_ORDER)}: {n_clusters}"
            )
        self.n_clusters = n_clusters
        self.random_state = random_state
        self.max_iter = max_iter

    def prepare(self, records: Sequence[RFMRecord]) -> ClusterAssignment:
        if not records:
            raise ValueError("Cannot cluster an empty record set")

        features = min_max_normalize(clustering_features(records))
        distinct = len(np.unique(features, axis=0))
        k = min(self.n_clusters, distinct)
        if k < self.n_clusters:
            logger.info(
                f"Only {distinct} distinct customer profiles; fitting {k} clusters "
                f"instead of {self.n_clusters}"
            )
        result = kmeans(
            features, k, random_state=self.random_state, max_iter=self.max_iter
        )
        labels = result.labels

        monetary = np.array([r.monetary for r in records], dtype="float64")
        present = sorted(int(c) for c in np.unique(labels))
        cluster_mean_monetary = {
            cluster: float(monetary[labels == cluster].mean()) for cluster in present
        }

        # Clusters with equal mean monetary share a tier
        levels = sorted(set(cluster_mean_monetary.values()))
        top_rank = len(_SEGMENT_ORDER) - 1
        m = len(levels)
        level_tiers = {
            level: Segment.from_rank(0 if m == 1 else round(position * top_rank / (m - 1)))
            for position, level in enumerate(levels)
        }
        cluster_segments = {
            cluster: level_tiers[mean] for cluster, mean in cluster_mean_monetary.items()
        }

        segments = {
            record.customer_id: cluster_segments[int(label)]
            for record, label in zip(records, labels)
        }
        return ClusterAssignment(
            segments=segments,
            cluster_segments=cluster_segments,
            cluster_mean_monetary=cluster_mean_monetary,
            n_clusters=len(present),
        )

    def classify(self, record: RFMRecord, context: ClusterAssignment) -> Segment:
        try:
            return context.segments[record.customer_id]
        except KeyError:
            raise KeyError(
                f"Customer {record.customer_id} was not part of the clustered record set"
            ) from None


def strategy_from_name(name: StrategyName | str, **kwargs: Any) -> SegmentationStrategy:
    """Build a strategy from its :class:`StrategyName`.

    Keyword arguments are forwarded to the strategy constructor.
    """
    strategy_name = StrategyName(name)
    if strategy_name is StrategyName.FIXED:
        return FixedThresholdStrategy(**kwargs)
    if strategy_name is StrategyName.PERCENTILE:
        return PercentileStrategy(**kwargs)
    return ClusteringStrategy(**kwargs)


def segment_customers(
    records: Sequence[RFMRecord], strategy: SegmentationStrategy
) -> list[SegmentedRecord]:
    """Assign a tier to every record using ``strategy``.

    Parameters
    ----------
    records:
        RFM records for the full dataset; dataset-adaptive strategies derive
        their thresholds or clusters from all of them
    strategy:
        An explicitly selected segmentation strategy

    Returns
    -------
    list[SegmentedRecord]
        One segmented record per input record, in input order. Empty input
        returns an empty list.

    Examples
    --------
    >>> records = [RFMRecord("C1", 10, 12, 800.0), RFMRecord("C2", 200, 1, 20.0)]
    >>> [s.segment.value for s in segment_customers(records, FixedThresholdStrategy())]
    ['Platinum', 'Bronze']
    """
    if not records:
        return []
    context = strategy.prepare(records)
    segmented = [
        SegmentedRecord.from_record(record, strategy.classify(record, context))
        for record in records
    ]
    logger.info(
        f"Segmented {len(segmented)} customers with the {strategy.name.value} strategy"
    )
    return segmented
