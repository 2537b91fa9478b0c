"""Synthetic data generation utilities.

Produces realistic-but-fake invoice rows to exercise the RFM pipeline
without accessing production data.
"""

from .generator import (
    CUSTOMER_COLUMN,
    DATE_COLUMN,
    INVOICE_COLUMN,
    PRICE_COLUMN,
    QUANTITY_COLUMN,
    RowScenario,
    generate_rows,
)

__all__ = [
    "CUSTOMER_COLUMN",
    "DATE_COLUMN",
    "INVOICE_COLUMN",
    "PRICE_COLUMN",
    "QUANTITY_COLUMN",
    "RowScenario",
    "generate_rows",
]
