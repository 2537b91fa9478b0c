"""Foundational building blocks for customer RFM analysis.

This package exposes the column mapping and schema discovery used to read
arbitrary tabular rows, the row normaliser that turns them into typed
transactions, and the RFM (Recency-Frequency-Monetary) aggregator.
"""

from .errors import AnalysisInputError, ColumnMappingError, EmptyDatasetError
from .rfm import RFMAccumulator, RFMRecord, aggregate, default_reference_date
from .schema import (
    ColumnMapping,
    ColumnType,
    MonetaryMode,
    discover_schema,
    suggest_mapping,
)
from .transactions import (
    NormalizationReport,
    NormalizationResult,
    RowNormalizer,
    Transaction,
    normalize_rows,
)

__all__ = [
    "AnalysisInputError",
    "ColumnMappingError",
    "EmptyDatasetError",
    "RFMAccumulator",
    "RFMRecord",
    "aggregate",
    "default_reference_date",
    "ColumnMapping",
    "ColumnType",
    "MonetaryMode",
    "discover_schema",
    "suggest_mapping",
    "NormalizationReport",
    "NormalizationResult",
    "RowNormalizer",
    "Transaction",
    "normalize_rows",
]
