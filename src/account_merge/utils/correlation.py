"""
Correlation IDs for Merge Runs

Every merge run gets one correlation ID. It is stored in a context variable,
stamped onto each log record by a logging filter and returned in the merge
result, so the JSON log lines of a run can be grouped after the fact.
"""

import contextvars
import logging
import uuid
from typing import Optional

logger = logging.getLogger(__name__)

_correlation_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    'merge_correlation_id',
    default=None
)


def generate_correlation_id() -> str:
    """Return a fresh UUID4 string."""
    return str(uuid.uuid4())


def get_correlation_id() -> Optional[str]:
    """Return the correlation ID of the current run, or None outside a run."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: str) -> None:
    """
    Bind a correlation ID to the current context.

    Args:
        correlation_id: ID to bind

    Raises:
        ValueError: If correlation_id is not a non-empty string
    """
    if not correlation_id or not isinstance(correlation_id, str):
        raise ValueError("Correlation ID must be a non-empty string")

    _correlation_id.set(correlation_id)


def clear_correlation_id() -> None:
    """Unbind the correlation ID."""
    _correlation_id.set(None)


class CorrelationContext:
    """
    Binds a correlation ID for the duration of a merge run.

    The previously bound ID, if any, is restored on exit.
    """

    def __init__(self, correlation_id: Optional[str] = None):
        self.correlation_id = correlation_id or generate_correlation_id()
        self._token = None

    def __enter__(self) -> str:
        if not isinstance(self.correlation_id, str):
            raise ValueError("Correlation ID must be a non-empty string")
        self._token = _correlation_id.set(self.correlation_id)
        logger.debug(f"Entered correlation context: {self.correlation_id}")
        return self.correlation_id

    def __exit__(self, exc_type, exc_val, exc_tb):
        _correlation_id.reset(self._token)
        self._token = None


class CorrelationIdFilter(logging.Filter):
    """Logging filter that stamps the current correlation ID on each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or "N/A"
        return True
