"""
Logging helpers.

Components log through the standard library. ``StorageLoggerAdapter`` stamps
tenant, collection and data source onto each record it emits, and
``StructuredJsonFormatter`` renders records as one JSON object per line for
hosted deployments where logs are shipped to a collector.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

PACKAGE_LOGGER = "staysync_storage"

# Attributes every LogRecord carries; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
}


class StructuredJsonFormatter(logging.Formatter):
    """Render a record as a single-line JSON object.

    The fixed keys are ``timestamp`` (UTC, taken from the record's creation
    time), ``level``, ``logger`` and ``message``. Context passed through
    ``extra`` follows; values JSON cannot encode are written as strings.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_structured_logging(
    level: int = logging.INFO,
    stream: TextIO | None = None,
) -> logging.Logger:
    """Send the package's logs to ``stream`` (stdout by default) as JSON lines.

    Calling it again replaces the handler added by the previous call, so
    it is safe to run on every startup.
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(package_logger.handlers):
        if isinstance(handler.formatter, StructuredJsonFormatter):
            package_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(StructuredJsonFormatter())
    package_logger.addHandler(handler)
    package_logger.setLevel(level)
    return package_logger


class StorageLoggerAdapter(logging.LoggerAdapter):
    """
    Adds storage context to every record.

    The adapter's own context is the base; ``extra`` on an individual call
    overrides it key by key.

    Usage:
        log = StorageLoggerAdapter(logger, {"tenant": "hotel-1"})
        log.bind(collection="rooms").info("Wrote 8 records")
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs

    def bind(self, **context: Any) -> "StorageLoggerAdapter":
        """Return an adapter on the same logger with extra context."""
        return StorageLoggerAdapter(self.logger, {**self.extra, **context})
