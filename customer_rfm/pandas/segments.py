"""Pandas DataFrame adapters for segmented RFM records."""

from typing import List, Sequence

import pandas as pd  # type: ignore

from customer_rfm.segmentation.strategies import Segment, SegmentedRecord

SEGMENT_COLUMNS = ["customer_id", "recency", "frequency", "monetary", "segment"]


def segments_to_dataframe(records: Sequence[SegmentedRecord]) -> pd.DataFrame:
    """Convert segmented records to a DataFrame.

    Args:
        records: Sequence of SegmentedRecord objects

    Returns:
        DataFrame with columns customer_id, recency, frequency, monetary,
        segment (tier name), sorted by customer_id

    Example:
        >>> df = segments_to_dataframe(result.records)
        >>> df.groupby("segment")["monetary"].sum()
    """
    if not records:
        return pd.DataFrame(columns=SEGMENT_COLUMNS)

    rows = [
        {
            "customer_id": r.customer_id,
            "recency": r.recency,
            "frequency": r.frequency,
            "monetary": r.monetary,
            "segment": r.segment.value,
        }
        for r in records
    ]
    df = pd.DataFrame(rows, columns=SEGMENT_COLUMNS)
    return df.sort_values("customer_id").reset_index(drop=True)


def dataframe_to_segments(df: pd.DataFrame) -> List[SegmentedRecord]:
    """Convert a DataFrame back to segmented records.

    Args:
        df: DataFrame with the columns produced by segments_to_dataframe

    Returns:
        List of SegmentedRecord objects sorted by customer_id

    Raises:
        ValueError: If required columns are missing, values are null, or a
            segment name is not a known tier
    """
    missing_cols = set(SEGMENT_COLUMNS) - set(df.columns)
    if missing_cols:
        raise ValueError(f"DataFrame missing required columns: {sorted(missing_cols)}")

    if df.empty:
        return []

    null_cols = df[SEGMENT_COLUMNS].isnull().any()
    if null_cols.any():
        null_col_names = null_cols[null_cols].index.tolist()
        raise ValueError(
            f"Null/NaN values found in columns: {null_col_names}. "
            "Segmented records require complete data."
        )

    records = [
        SegmentedRecord(
            customer_id=str(row["customer_id"]),
            recency=int(row["recency"]),
            frequency=int(row["frequency"]),
            monetary=float(row["monetary"]),
            segment=Segment(str(row["segment"])),
        )
        for row in df.to_dict("records")
    ]
    records.sort(key=lambda r: r.customer_id)
    return records
