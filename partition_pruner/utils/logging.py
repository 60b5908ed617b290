"""Logging configuration with structured logging support."""

import logging
import sys
import json
from typing import Optional, Dict, Any
from datetime import datetime, timezone


class StructuredFormatter(logging.Formatter):
    """Structured JSON formatter for logs."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON-formatted log string
        """
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Context attached by ContextLogger (rule, table, ...)
        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class StandardFormatter(logging.Formatter):
    """Human-readable formatter that appends context fields as key=value."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        fields = getattr(record, "extra_fields", None)
        if fields:
            rendered = " ".join(f"{key}={value}" for key, value in fields.items())
            message = f"{message} [{rendered}]"
        return message


def setup_logging(
    level: str = "INFO",
    structured: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Set up logging configuration.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        structured: Use structured JSON logging if True
        log_file: Optional log file path
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if structured:
        formatter = StructuredFormatter()
    else:
        formatter = StandardFormatter()

    handlers = []

    # Logs go to stderr so query results on stdout stay clean
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(log_level)
    handlers.append(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        file_handler.setLevel(log_level)
        handlers.append(file_handler)

    logging.basicConfig(
        level=log_level,
        handlers=handlers,
        force=True,
    )

    logging.getLogger("sqlglot").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter that attaches a fixed set of context fields."""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        """Attach context fields to the record.

        Per-call ``extra`` values are merged over the adapter's context.
        """
        fields = dict(self.extra)
        call_extra = kwargs.pop("extra", None) or {}
        fields.update(call_extra)
        kwargs["extra"] = {"extra_fields": fields}
        return msg, kwargs

    def bind(self, **fields: Any) -> "ContextLogger":
        """Return a new adapter with additional context fields."""
        context = dict(self.extra)
        context.update(fields)
        return ContextLogger(self.logger, context)


def get_contextual_logger(name: str, context: Dict[str, Any]) -> ContextLogger:
    """Get a logger with contextual information.

    Args:
        name: Logger name
        context: Context dictionary to include in all logs

    Returns:
        Logger adapter with context

    Example:
        >>> logger = get_contextual_logger(__name__, {"rule": "PartitionPruning"})
        >>> logger.info("Pruned scan")  # Will include rule in the log
    """
    logger = get_logger(name)
    return ContextLogger(logger, context)
