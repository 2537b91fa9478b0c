"""Exceptions raised when an analysis request is rejected.

Row-level data problems never raise; they are counted in a
:class:`~customer_rfm.foundation.transactions.NormalizationReport`.
"""


class AnalysisInputError(ValueError):
    """An analysis was rejected before any computation took place."""


class EmptyDatasetError(AnalysisInputError):
    """No rows were supplied."""


class ColumnMappingError(AnalysisInputError):
    """The column mapping is missing a required role or names unknown columns."""
