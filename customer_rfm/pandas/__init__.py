"""Pandas DataFrame adapters for customer RFM components."""

from .segments import (
    SEGMENT_COLUMNS,
    dataframe_to_segments,
    segments_to_dataframe,
)

__all__ = [
    "SEGMENT_COLUMNS",
    "dataframe_to_segments",
    "segments_to_dataframe",
]
