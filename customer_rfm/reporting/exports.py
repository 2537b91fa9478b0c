"""Export analysis results to CSV and JSON.

The CSV layout (one row per customer, RFC 4180 quoting) re-imports into the
same :class:`SegmentedRecord` values via :func:`load_segments_csv`.
"""

from __future__ import annotations

import csv
import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Sequence

import pandas as pd

from customer_rfm.pandas import (
    SEGMENT_COLUMNS,
    dataframe_to_segments,
    segments_to_dataframe,
)
from customer_rfm.reporting.summary import (
    dashboard_metrics,
    recommendations_for,
    segment_counts,
    summarize_segments,
    top_customers_by_revenue,
)
from customer_rfm.segmentation.strategies import SegmentedRecord
from customer_rfm.session import AnalysisResult

logger = logging.getLogger(__name__)


def export_segments_csv(
    records: Sequence[SegmentedRecord],
    output_path: str | Path,
) -> Path:
    """Write segmented records to CSV.

    Parameters
    ----------
    records:
        Segmented customers to export
    output_path:
        Destination file; parent directories are created

    Returns
    -------
    Path
        The written file

    Examples
    --------
    >>> export_segments_csv(result.records, "segments.csv")
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df = segments_to_dataframe(records)
    df.to_csv(output_path, index=False, quoting=csv.QUOTE_MINIMAL)
    logger.info(f"Exported {len(df)} segmented customers to {output_path}")
    return output_path


def load_segments_csv(path: str | Path) -> list[SegmentedRecord]:
    """Read a CSV written by :func:`export_segments_csv`.

    Customer ids are read as text so leading zeros and values such as
    ``"NA"`` survive the round trip.
    """
    df = pd.read_csv(
        path,
        dtype={"customer_id": str, "segment": str},
        keep_default_na=False,
        na_values={"recency": [""], "frequency": [""], "monetary": [""]},
    )
    missing = set(SEGMENT_COLUMNS) - set(df.columns)
    if missing:
        raise ValueError(f"CSV {path} missing required columns: {sorted(missing)}")
    return dataframe_to_segments(df)


def _summary_payload(result: AnalysisResult, top_n: int) -> dict[str, Any]:
    records = result.records
    segments = []
    for summary in summarize_segments(records):
        segments.append(
            {
                "segment": summary.segment.value,
                "customers": summary.customers,
                "avg_recency": round(summary.avg_recency, 1),
                "avg_frequency": round(summary.avg_frequency, 2),
                "avg_monetary": round(summary.avg_monetary, 2),
                "total_revenue": round(summary.total_revenue, 2),
                "customer_pct": float(summary.customer_pct),
                "revenue_pct": float(summary.revenue_pct),
                "recommendations": list(recommendations_for(summary.segment)),
            }
        )
    return {
        "run": result.summary(),
        "metrics": asdict(dashboard_metrics(records)),
        "segment_counts": segment_counts(records),
        "segments": segments,
        "top_customers": [
            {
                "customer_id": r.customer_id,
                "monetary": r.monetary,
                "segment": r.segment.value,
            }
            for r in top_customers_by_revenue(records, top_n)
        ],
    }


def export_summary_json(
    result: AnalysisResult,
    output_path: str | Path,
    top_n: int = 10,
) -> Path:
    """Write run diagnostics, headline metrics and tier profiles to JSON."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(_summary_payload(result, top_n), f, indent=2)
    logger.info(f"Analysis summary exported to {output_path}")
    return output_path
