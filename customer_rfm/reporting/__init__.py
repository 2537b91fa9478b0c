"""Dashboard aggregates and result exports."""

from customer_rfm.reporting.exports import (
    export_segments_csv,
    export_summary_json,
    load_segments_csv,
)
from customer_rfm.reporting.summary import (
    RECOMMENDATIONS,
    DashboardMetrics,
    Histogram,
    SegmentSummary,
    dashboard_metrics,
    histogram,
    recommendations_for,
    segment_counts,
    summarize_segments,
    top_customers_by_revenue,
)

__all__ = [
    "export_segments_csv",
    "export_summary_json",
    "load_segments_csv",
    "RECOMMENDATIONS",
    "DashboardMetrics",
    "Histogram",
    "SegmentSummary",
    "dashboard_metrics",
    "histogram",
    "recommendations_for",
    "segment_counts",
    "summarize_segments",
    "top_customers_by_revenue",
]
