"""
Exception types raised by the aggregation core.

Bad parameters are ``ValueError`` subclasses so callers that already guard
against ``ValueError`` keep working.
"""

from typing import Optional


class AggregationError(Exception):
    """Base class for all aggregation failures."""


class InvalidParameter(AggregationError, ValueError):
    """A configuration value or argument is out of its allowed range."""


class ProjectionError(AggregationError):
    """The geodesy service could not reproject a coordinate."""

    def __init__(self, message: str, source_crs: Optional[str] = None,
                 target_crs: Optional[str] = None):
        super().__init__(message)
        self.source_crs = source_crs
        self.target_crs = target_crs


class BatchProcessingError(AggregationError):
    """A batch failed during parallel execution; carries the batch index and cause."""

    def __init__(self, batch_index: int, cause: BaseException):
        super().__init__(f"Batch {batch_index} failed: {type(cause).__name__}: {cause}")
        self.batch_index = batch_index
        self.cause = cause
