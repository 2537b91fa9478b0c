"""Command line entry points for customer RFM analysis."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

import structlog
from pydantic import ValidationError

from customer_rfm.foundation.errors import AnalysisInputError
from customer_rfm.foundation.rfm import to_naive_utc
from customer_rfm.foundation.schema import ColumnMapping, discover_schema, suggest_mapping
from customer_rfm.ingest import DEFAULT_MAX_ROWS, load_rows
from customer_rfm.reporting.exports import export_segments_csv, export_summary_json
from customer_rfm.reporting.summary import dashboard_metrics, summarize_segments
from customer_rfm.session import AnalysisConfig, AnalysisStatus, analyze
from customer_rfm.segmentation.strategies import StrategyName

logger = logging.getLogger(__name__)

ROLE_OPTIONS = {
    "customer_id_column": "--customer-column",
    "date_column": "--date-column",
    "quantity_column": "--quantity-column",
    "price_column": "--price-column",
    "amount_column": "--amount-column",
}


def configure_logging(verbose: bool = False) -> None:
    """Send stdlib and structlog output to stderr so stdout stays pipeable.

    structlog events are rendered as JSON and handed to the stdlib handlers,
    so both streams share one destination and level.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr, level=level)
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


def _parse_reference_date(value: str) -> datetime:
    try:
        return to_naive_utc(datetime.fromisoformat(value))
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"Invalid reference date {value!r}; expected ISO format YYYY-MM-DD"
        ) from None


def _build_mapping(args: argparse.Namespace, columns: list[str], suggestion: dict) -> ColumnMapping:
    chosen = {role: getattr(args, role) for role in ROLE_OPTIONS}
    if any(chosen[role] for role in ("quantity_column", "price_column", "amount_column")):
        # An explicit monetary choice replaces every suggested monetary role
        merged = {
            "customer_id_column": chosen["customer_id_column"] or suggestion["customer_id_column"],
            "date_column": chosen["date_column"] or suggestion["date_column"],
            "quantity_column": chosen["quantity_column"],
            "price_column": chosen["price_column"],
            "amount_column": chosen["amount_column"],
        }
    else:
        merged = {role: chosen[role] or suggestion[role] for role in ROLE_OPTIONS}
    if not merged["customer_id_column"]:
        raise AnalysisInputError(
            "Could not detect a customer id column; pass --customer-column. "
            f"Available columns: {', '.join(columns)}"
        )
    mapping = ColumnMapping(**merged)
    mapping.validate_against(columns)
    return mapping


def analyze_cli(argv: list[str] | None = None) -> int:
    """Segment customers in a CSV/Excel file and export the results.

    Unmapped column roles fall back to the columns suggested from the
    header names. Writes one row per customer to ``--output`` (CSV) and
    optionally a JSON summary with tier profiles and recommendations.

    Args:
        argv: Command line arguments (defaults to sys.argv)

    Returns:
        Exit code (0 for success, 1 for rejected input or no usable data)
    """
    parser = argparse.ArgumentParser(
        description="Compute RFM metrics and customer tiers from transaction data"
    )
    parser.add_argument("input", help="CSV/TSV/Excel file path or http(s) URL")
    for role, option in ROLE_OPTIONS.items():
        parser.add_argument(option, dest=role, help=f"Column for {role.replace('_', ' ')}")
    parser.add_argument(
        "--strategy",
        choices=[item.value for item in StrategyName],
        default=StrategyName.PERCENTILE.value,
        help="Segmentation strategy (default: percentile)",
    )
    parser.add_argument(
        "--max-rows",
        type=int,
        default=DEFAULT_MAX_ROWS,
        help=f"Rows kept from the input (default: {DEFAULT_MAX_ROWS})",
    )
    parser.add_argument(
        "--reference-date",
        type=_parse_reference_date,
        help="Date recency is measured from (default: latest invoice date + 1 day)",
    )
    parser.add_argument(
        "--drop-zero-amounts",
        action="store_true",
        help="Drop zero-amount rows in addition to negative ones",
    )
    parser.add_argument("--sheet", default=0, help="Sheet name or index for Excel input")
    parser.add_argument(
        "--output", type=Path, required=True, help="Path for the segmented customers CSV"
    )
    parser.add_argument("--summary", type=Path, help="Optional path for a JSON summary")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    sheet = int(args.sheet) if str(args.sheet).isdigit() else args.sheet
    logger.info(f"Loading rows from {args.input}")
    dataset = load_rows(args.input, sheet_name=sheet, max_rows=args.max_rows)
    if not dataset.rows:
        logger.error("No rows found in input")
        return 1

    schema = discover_schema(dataset.rows)
    suggestion = suggest_mapping(dataset.columns, schema)
    try:
        mapping = _build_mapping(args, dataset.columns, suggestion)
        config = AnalysisConfig.from_env(
            strategy=args.strategy,
            max_rows=args.max_rows,
            drop_non_positive_amounts=args.drop_zero_amounts,
            reference_date=args.reference_date,
        )
        result = analyze(dataset.rows, mapping, config)
    except (AnalysisInputError, ValidationError) as exc:
        logger.error(f"Analysis rejected: {exc}")
        return 1

    result.report.rows_truncated += dataset.truncated_rows
    logger.info(f"Column mapping: {mapping.mapped_columns()}")
    if result.status is AnalysisStatus.NO_USABLE_DATA:
        logger.error(
            f"No usable data: all {result.report.rows_seen} rows were dropped "
            f"({result.report.as_dict()})"
        )
        return 1

    export_segments_csv(result.records, args.output)
    if args.summary:
        export_summary_json(result, args.summary)

    metrics = dashboard_metrics(result.records)
    logger.info(
        f"Segmented {metrics.total_customers} customers "
        f"(revenue ${metrics.total_revenue:.2f}, avg frequency {metrics.avg_frequency:.1f}); "
        f"{result.rows_skipped} rows skipped"
    )
    for summary in summarize_segments(result.records):
        logger.info(
            f"{summary.segment.value}: {summary.customers} customers, "
            f"avg monetary ${summary.avg_monetary:.2f}"
        )
    return 0


def suggest_columns_cli(argv: list[str] | None = None) -> int:
    """Print the discovered schema and suggested column mapping as JSON."""

    parser = argparse.ArgumentParser(
        description="Suggest a column mapping for a transaction file"
    )
    parser.add_argument("input", help="CSV/TSV/Excel file path or http(s) URL")
    parser.add_argument("--sheet", default=0, help="Sheet name or index for Excel input")
    args = parser.parse_args(argv)
    configure_logging()

    sheet = int(args.sheet) if str(args.sheet).isdigit() else args.sheet
    dataset = load_rows(args.input, sheet_name=sheet, max_rows=None)
    schema = discover_schema(dataset.rows)
    payload = {
        "rows": len(dataset.rows),
        "schema": {column: column_type.value for column, column_type in schema.items()},
        "suggested_mapping": suggest_mapping(dataset.columns, schema),
    }
    json.dump(payload, fp=sys.stdout, indent=2)
    print()
    return 0


def main() -> None:
    raise SystemExit(analyze_cli())


def suggest_columns_main() -> None:
    raise SystemExit(suggest_columns_cli())


if __name__ == "__main__":  # pragma: no cover
    main()
