"""
Logging setup for the merge tool.

Console output is human readable. With JSON logging enabled every record is
also emitted as one JSON object carrying the run's correlation ID and the
structured fields attached through `extra=` (step, error, collection, ...).
"""

import json
import logging
import sys
from datetime import datetime, timezone

from account_merge.utils.correlation import CorrelationIdFilter

STRUCTURED_FIELDS = (
    "step",
    "error",
    "collection",
    "document_id",
    "source_id",
    "target_id",
    "dry_run",
)


class StructuredJSONFormatter(logging.Formatter):
    """JSON formatter with correlation ID support."""

    def format(self, record):
        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'correlation_id': getattr(record, 'correlation_id', 'N/A'),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        for name in STRUCTURED_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def configure_logging(verbose: bool = False, json_logging: bool = False,
                      logger_name: str = "account_merge") -> logging.Logger:
    """
    Configure the package logger.

    Args:
        verbose: Log at DEBUG instead of INFO
        json_logging: Emit JSON lines instead of console lines
        logger_name: Logger to configure

    Returns:
        The configured logger
    """
    root = logging.getLogger(logger_name)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.addFilter(CorrelationIdFilter())
    if json_logging:
        handler.setFormatter(StructuredJSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            '[%(asctime)s] %(levelname)s [%(correlation_id)s] - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))

    root.addHandler(handler)
    root.propagate = False
    return root
