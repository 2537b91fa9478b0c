"""Load CSV or spreadsheet data into header-keyed raw rows.

Files are read with pandas, which also accepts http(s) URLs. Fully empty
rows are dropped and missing cells become ``None`` so the rows can be handed
straight to the analysis.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import pandas as pd

from customer_rfm.foundation.schema import RawRow

logger = logging.getLogger(__name__)


MAX_INPUT_BYTES = 25 * 1024 * 1024  # 25 MiB cap to avoid accidental OOM

#: Rows beyond this count are dropped unless the caller raises the cap.
DEFAULT_MAX_ROWS = 50_000

EXCEL_SUFFIXES = {".xlsx", ".xlsm", ".xls"}
TSV_SUFFIXES = {".tsv", ".tab"}


@dataclass
class LoadedDataset:
    """Raw rows read from a source.

    Attributes
    ----------
    source:
        File path or URL that was read
    rows:
        Header-keyed rows, empty rows removed
    columns:
        Header names in file order
    total_rows:
        Non-empty rows present in the source before truncation
    """

    source: str
    rows: list[dict[str, object]]
    columns: list[str] = field(default_factory=list)
    total_rows: int = 0

    @property
    def truncated_rows(self) -> int:
        return self.total_rows - len(self.rows)


def _is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def _suffix(source: str) -> str:
    return Path(source.split("?", 1)[0]).suffix.lower()


def read_frame(source: str | Path, *, sheet_name: str | int = 0) -> pd.DataFrame:
    """Read a CSV, TSV or Excel file (or URL) into a DataFrame of raw values."""
    source_str = str(source)
    if not _is_url(source_str):
        resolved = Path(source_str).resolve()
        size = resolved.stat().st_size
        if size > MAX_INPUT_BYTES:
            raise ValueError(
                f"Input file {resolved} is {size} bytes; exceeds limit of {MAX_INPUT_BYTES} bytes"
            )

    suffix = _suffix(source_str)
    if suffix in EXCEL_SUFFIXES:
        return pd.read_excel(source_str, sheet_name=sheet_name)
    sep = "\t" if suffix in TSV_SUFFIXES else ","
    # Ids keep their text form ("007" stays "007"); numbers are parsed downstream
    return pd.read_csv(source_str, sep=sep, dtype=str, skipinitialspace=True)


def frame_to_rows(frame: pd.DataFrame) -> list[dict[str, object]]:
    """Convert a DataFrame to row dicts with ``None`` for missing cells."""
    frame = frame.dropna(how="all")
    frame = frame.astype(object).where(frame.notna(), None)
    frame.columns = [str(column) for column in frame.columns]
    return frame.to_dict("records")


def load_rows(
    source: str | Path,
    *,
    sheet_name: str | int = 0,
    max_rows: int | None = DEFAULT_MAX_ROWS,
) -> LoadedDataset:
    """Load raw rows from a file path or URL.

    Parameters
    ----------
    source:
        CSV/TSV/Excel path or http(s) URL
    sheet_name:
        Sheet to read for Excel sources
    max_rows:
        Keep at most this many rows (None disables the cap). Truncation is
        logged and reported via :attr:`LoadedDataset.truncated_rows`.
    """
    frame = read_frame(source, sheet_name=sheet_name)
    rows = frame_to_rows(frame)
    total_rows = len(rows)
    if max_rows is not None and total_rows > max_rows:
        logger.warning(
            f"{source} has {total_rows} rows; keeping the first {max_rows}"
        )
        rows = rows[:max_rows]
    logger.info(f"Loaded {len(rows)} rows with {len(frame.columns)} columns from {source}")
    return LoadedDataset(
        source=str(source),
        rows=rows,
        columns=[str(column) for column in frame.columns],
        total_rows=total_rows,
    )


def rows_from_records(records: list[RawRow]) -> list[dict[str, object]]:
    """Drop rows whose every value is empty; other rows are copied as dicts."""
    kept: list[dict[str, object]] = []
    for record in records:
        if any(
            value is not None and not (isinstance(value, str) and not value.strip())
            for value in record.values()
        ):
            kept.append(dict(record))
    return kept
