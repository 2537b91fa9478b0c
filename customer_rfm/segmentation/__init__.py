"""Customer tier assignment and the numeric helpers behind it."""

from .stats import KMeansResult, kmeans, min_max_normalize, percentiles
from .strategies import (
    ClusterAssignment,
    ClusteringStrategy,
    FixedThresholdStrategy,
    PercentileStrategy,
    PercentileThresholds,
    Segment,
    SegmentationStrategy,
    SegmentedRecord,
    StrategyName,
    segment_customers,
    strategy_from_name,
)

__all__ = [
    "KMeansResult",
    "kmeans",
    "min_max_normalize",
    "percentiles",
    "ClusterAssignment",
    "ClusteringStrategy",
    "FixedThresholdStrategy",
    "PercentileStrategy",
    "PercentileThresholds",
    "Segment",
    "SegmentationStrategy",
    "SegmentedRecord",
    "StrategyName",
    "segment_customers",
    "strategy_from_name",
]
