"""Analysis pipeline and caller-owned analysis session.

The pipeline runs rows through normalisation, RFM aggregation and
segmentation. It keeps no module-level state: :func:`analyze` and
:func:`analyze_async` are pure functions of their inputs, and
:class:`AnalysisSession` is an explicit object the caller owns to hold the
current dataset, mapping and result between user actions.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterator, Sequence

import structlog
from pydantic import BaseModel, Field, field_validator

from customer_rfm.foundation.errors import ColumnMappingError, EmptyDatasetError
from customer_rfm.foundation.rfm import RFMAccumulator, default_reference_date, to_naive_utc
from customer_rfm.foundation.schema import (
    ColumnMapping,
    ColumnType,
    RawRow,
    collect_columns,
    discover_schema,
    suggest_mapping,
)
from customer_rfm.foundation.transactions import (
    DEFAULT_CHUNK_SIZE,
    NormalizationReport,
    RowNormalizer,
    iter_chunks,
)
from customer_rfm.ingest import DEFAULT_MAX_ROWS, rows_from_records
from customer_rfm.segmentation.strategies import (
    SegmentationStrategy,
    SegmentedRecord,
    StrategyName,
    segment_customers,
    strategy_from_name,
)

logger = structlog.get_logger(__name__)


class AnalysisConfig(BaseModel):
    """Settings for one analysis run."""

    strategy: StrategyName = Field(
        default=StrategyName.PERCENTILE,
        description="Segmentation strategy; percentile self-calibrates to the data",
    )
    chunk_size: int = Field(
        default=DEFAULT_CHUNK_SIZE,
        ge=1,
        description="Rows normalised per batch before yielding to the event loop",
    )
    max_rows: int | None = Field(
        default=DEFAULT_MAX_ROWS,
        ge=1,
        description="Rows beyond this cap are dropped (None disables the cap)",
    )
    drop_non_positive_amounts: bool = Field(
        default=False,
        description="Drop zero-amount rows as well as negative ones",
    )
    reference_date: datetime | None = Field(
        default=None,
        description="Date recency is measured from; defaults to latest invoice + 1 day",
    )
    random_seed: int = Field(default=42, description="Seed for k-means initialisation")
    kmeans_max_iter: int = Field(default=300, ge=1, description="k-means iteration cap")

    @field_validator("reference_date")
    @classmethod
    def _reference_date_naive_utc(cls, value: datetime | None) -> datetime | None:
        # Invoice dates are naive UTC
        return None if value is None else to_naive_utc(value)

    @classmethod
    def from_env(cls, **overrides: Any) -> "AnalysisConfig":
        """Build a config from ``RFM_*`` environment variables.

        Explicit keyword overrides win over the environment.
        """
        values: dict[str, Any] = {}
        strategy = os.getenv("RFM_STRATEGY")
        if strategy:
            values["strategy"] = strategy
        chunk_size = os.getenv("RFM_CHUNK_SIZE")
        if chunk_size:
            values["chunk_size"] = int(chunk_size)
        max_rows = os.getenv("RFM_MAX_ROWS")
        if max_rows:
            values["max_rows"] = None if max_rows.lower() == "none" else int(max_rows)
        drop = os.getenv("RFM_DROP_NON_POSITIVE")
        if drop:
            values["drop_non_positive_amounts"] = drop.lower() in ("1", "true", "yes")
        seed = os.getenv("RFM_RANDOM_SEED")
        if seed:
            values["random_seed"] = int(seed)
        values.update(overrides)
        return cls(**values)

    def build_strategy(self) -> SegmentationStrategy:
        if self.strategy is StrategyName.KMEANS:
            return strategy_from_name(
                self.strategy,
                random_state=self.random_seed,
                max_iter=self.kmeans_max_iter,
            )
        return strategy_from_name(self.strategy)


class AnalysisStatus(str, Enum):
    """Outcome of an analysis that was accepted for processing."""

    COMPLETED = "completed"
    NO_USABLE_DATA = "no_usable_data"


@dataclass
class AnalysisResult:
    """Segmented customers plus diagnostics for one run."""

    status: AnalysisStatus
    records: list[SegmentedRecord]
    report: NormalizationReport
    strategy: StrategyName
    reference_date: datetime | None = None
    completed_at: datetime = field(default_factory=datetime.now)

    @property
    def rows_skipped(self) -> int:
        return self.report.rows_dropped + self.report.rows_truncated

    @property
    def ok(self) -> bool:
        return self.status is AnalysisStatus.COMPLETED

    def summary(self) -> dict[str, Any]:
        """Return a JSON-serialisable overview of the run."""
        return {
            "status": self.status.value,
            "strategy": self.strategy.value,
            "customers": len(self.records),
            "rows_skipped": self.rows_skipped,
            "reference_date": (
                self.reference_date.isoformat() if self.reference_date else None
            ),
            "diagnostics": self.report.as_dict(),
        }


def _validate_inputs(
    rows: Sequence[RawRow], mapping: ColumnMapping | None
) -> ColumnMapping:
    if not rows:
        raise EmptyDatasetError("No rows to analyse; the dataset is empty")
    if mapping is None:
        raise ColumnMappingError("A customer id column must be selected before analysis")
    mapping.validate_against(collect_columns(rows))
    return mapping


class _Pipeline:
    """Chunked run state shared by the sync and async entry points."""

    def __init__(
        self,
        rows: Sequence[RawRow],
        mapping: ColumnMapping | None,
        config: AnalysisConfig,
        now: datetime | None,
    ) -> None:
        self.mapping = _validate_inputs(rows, mapping)
        self.config = config
        truncated = 0
        if config.max_rows is not None and len(rows) > config.max_rows:
            truncated = len(rows) - config.max_rows
            rows = rows[: config.max_rows]
        self.rows = rows
        self.normalizer = RowNormalizer(
            self.mapping,
            drop_non_positive_amounts=config.drop_non_positive_amounts,
            now=now,
        )
        self.normalizer.report.rows_truncated = truncated
        self.accumulator = RFMAccumulator()
        self.log = logger.bind(
            strategy=config.strategy.value,
            rows=len(rows),
            monetary_mode=self.mapping.monetary_mode.value,
        )
        if truncated:
            self.log.warning("rows_truncated", truncated=truncated, max_rows=config.max_rows)

    def steps(self) -> Iterator[int]:
        """Process one chunk per step, yielding the rows handled so far."""
        processed = 0
        for chunk in iter_chunks(self.rows, self.config.chunk_size):
            self.accumulator.add(self.normalizer.normalize_chunk(chunk))
            processed += len(chunk)
            yield processed

    def finish(self) -> AnalysisResult:
        report = self.normalizer.report
        if self.accumulator.customer_count == 0:
            self.log.warning("analysis_no_usable_data", **report.as_dict())
            return AnalysisResult(
                status=AnalysisStatus.NO_USABLE_DATA,
                records=[],
                report=report,
                strategy=self.config.strategy,
            )

        reference_date = self.config.reference_date or default_reference_date(
            self.accumulator.latest_date
        )
        rfm_records = self.accumulator.records(reference_date)
        segmented = segment_customers(rfm_records, self.config.build_strategy())
        self.log.info(
            "analysis_completed",
            customers=len(segmented),
            transactions=self.accumulator.transaction_count,
            rows_dropped=report.rows_dropped,
            defaulted_dates=report.defaulted_dates,
            reference_date=reference_date.isoformat(),
        )
        return AnalysisResult(
            status=AnalysisStatus.COMPLETED,
            records=segmented,
            report=report,
            strategy=self.config.strategy,
            reference_date=reference_date,
        )


def analyze(
    rows: Sequence[RawRow],
    mapping: ColumnMapping | None,
    config: AnalysisConfig | None = None,
    *,
    now: datetime | None = None,
) -> AnalysisResult:
    """Run the full pipeline synchronously.

    Parameters
    ----------
    rows:
        Header-keyed raw rows
    mapping:
        Column roles; None is rejected
    config:
        Run settings (defaults to :class:`AnalysisConfig`)
    now:
        Fallback invoice date for rows without a parseable date

    Returns
    -------
    AnalysisResult
        ``COMPLETED`` with segmented records, or ``NO_USABLE_DATA`` when every
        row was dropped

    Raises
    ------
    EmptyDatasetError
        If ``rows`` is empty
    ColumnMappingError
        If the mapping is missing or names columns absent from the rows
    """
    pipeline = _Pipeline(rows, mapping, config or AnalysisConfig(), now)
    for _ in pipeline.steps():
        pass
    return pipeline.finish()


async def analyze_async(
    rows: Sequence[RawRow],
    mapping: ColumnMapping | None,
    config: AnalysisConfig | None = None,
    *,
    now: datetime | None = None,
) -> AnalysisResult:
    """Run the pipeline, yielding to the event loop after every chunk.

    Same contract as :func:`analyze`. ``config.chunk_size`` bounds the work
    done between yields.
    """
    pipeline = _Pipeline(rows, mapping, config or AnalysisConfig(), now)
    for processed in pipeline.steps():
        pipeline.log.debug("chunk_processed", processed=processed)
        await asyncio.sleep(0)
    return pipeline.finish()


class AnalysisSession:
    """Caller-owned state for one interactive analysis.

    Holds the loaded rows, their discovered schema, the (suggested or user
    supplied) column mapping and the latest result. Nothing is shared between
    sessions.

    Examples
    --------
    >>> session = AnalysisSession()
    >>> session.load_rows([{"Customer ID": "C1", "Amount": "12.5"}])
    >>> session.mapping.customer_id_column
    'Customer ID'
    >>> session.run().status.value
    'completed'
    """

    def __init__(self, config: AnalysisConfig | None = None) -> None:
        self.session_id = uuid.uuid4().hex[:12]
        self.config = config or AnalysisConfig()
        self.rows: list[dict[str, object]] = []
        self.schema: dict[str, ColumnType] = {}
        self.suggested_mapping: dict[str, str | None] = {}
        self.mapping: ColumnMapping | None = None
        self.result: AnalysisResult | None = None
        self._log = logger.bind(session_id=self.session_id)

    @property
    def columns(self) -> list[str]:
        return list(self.schema)

    def load_rows(self, rows: Sequence[RawRow]) -> None:
        """Replace the dataset, rediscover its schema and suggest a mapping.

        Fully empty rows are discarded. Any previous result is cleared.
        """
        self.rows = rows_from_records(list(rows))
        self.schema = discover_schema(self.rows)
        # Columns beyond the sample still count for mapping validation
        for column in collect_columns(self.rows):
            self.schema.setdefault(column, ColumnType.EMPTY)
        self.suggested_mapping = suggest_mapping(self.columns, self.schema)
        self.mapping = (
            ColumnMapping(**self.suggested_mapping)
            if self.suggested_mapping["customer_id_column"]
            else None
        )
        self.result = None
        self._log.info(
            "dataset_loaded",
            rows=len(self.rows),
            columns=self.columns,
            suggested_mapping=self.suggested_mapping,
        )

    def set_mapping(self, mapping: ColumnMapping | dict[str, str | None]) -> ColumnMapping:
        """Override the suggested mapping; dicts are validated into a mapping."""
        if not isinstance(mapping, ColumnMapping):
            mapping = ColumnMapping(**mapping)
        mapping.validate_against(self.columns)
        self.mapping = mapping
        self._log.info("mapping_set", **mapping.mapped_columns())
        return mapping

    def run(self, *, now: datetime | None = None) -> AnalysisResult:
        self.result = analyze(self.rows, self.mapping, self.config, now=now)
        self._log.info("session_run_finished", status=self.result.status.value)
        return self.result

    async def run_async(self, *, now: datetime | None = None) -> AnalysisResult:
        self.result = await analyze_async(self.rows, self.mapping, self.config, now=now)
        self._log.info("session_run_finished", status=self.result.status.value)
        return self.result

    def reset(self) -> None:
        """Forget the dataset, mapping and result."""
        self.rows = []
        self.schema = {}
        self.suggested_mapping = {}
        self.mapping = None
        self.result = None
