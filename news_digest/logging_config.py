"""Structured logging configuration for RSS News Digest Bot."""

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

ROOT_LOGGER_NAME = "news_digest"

# Record attributes copied into the JSON entry when present
CONTEXT_FIELDS = (
    "execution_id",
    "component",
    "feed_url",
    "item_title",
    "chat_id",
    "error_kind",
    "error",
    "metrics",
)


class StructuredFormatter(logging.Formatter):
    """Custom formatter for structured JSON logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON."""
        log_entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for name in CONTEXT_FIELDS:
            if hasattr(record, name):
                value = getattr(record, name)
                # ErrorKind and other enums serialize by value
                log_entry[name] = getattr(value, "value", value)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class ExecutionLogger:
    """Logger with execution context and structured logging."""

    def __init__(self, execution_id: str, component: str = "main"):
        """Initialize execution logger.

        Args:
            execution_id: Unique identifier for this execution
            component: Component name (e.g., 'aggregator', 'translate_queue')
        """
        self.execution_id = execution_id
        self.component = component
        self.logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.{component}")
        self.start_time: datetime | None = None

    def _log_with_context(self, level: int, message: str, **kwargs) -> None:
        extra = {
            "execution_id": self.execution_id,
            "component": self.component,
            **kwargs,
        }
        self.logger.log(level, message, extra=extra)

    def info(self, message: str, **kwargs) -> None:
        self._log_with_context(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self._log_with_context(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs) -> None:
        self._log_with_context(logging.ERROR, message, **kwargs)

    def debug(self, message: str, **kwargs) -> None:
        self._log_with_context(logging.DEBUG, message, **kwargs)

    def log_execution_start(self, **kwargs) -> None:
        """Log execution start with timestamp."""
        self.start_time = datetime.now(UTC)
        self.info(f"Starting {self.component} execution", **kwargs)

    def log_execution_end(self, success: bool = True, **kwargs) -> None:
        """Log execution end with duration."""
        duration_seconds = None
        if self.start_time:
            duration_seconds = (datetime.now(UTC) - self.start_time).total_seconds()

        self.info(
            f"Completed {self.component} execution in {duration_seconds}s "
            f"(success={success})",
            **kwargs,
        )

    def log_feed_processing(self, feed_url: str, items_count: int) -> None:
        self.info(f"Processed feed: {items_count} items found", feed_url=feed_url)

    def log_item_processing(
        self, item_title: str, action: str, success: bool = True
    ) -> None:
        level = logging.INFO if success else logging.ERROR
        self._log_with_context(
            level, f"Item {action}: {item_title}", item_title=item_title
        )

    def log_metrics(self, metrics: dict[str, Any]) -> None:
        self.info("Execution metrics", metrics=metrics)


def setup_structured_logging(log_level: str = "INFO") -> None:
    """Setup structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(StructuredFormatter())
    root_logger.addHandler(console_handler)

    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    package_logger.setLevel(level)
    package_logger.propagate = True


def create_execution_logger(
    component: str, execution_id: str | None = None
) -> ExecutionLogger:
    """Create an execution logger for a component.

    Args:
        component: Component name
        execution_id: Optional execution ID (will generate one if not provided)

    Returns:
        ExecutionLogger instance
    """
    if not execution_id:
        execution_id = f"exec_{datetime.now(UTC).strftime('%Y%m%d_%H%M%S_%f')}"

    return ExecutionLogger(execution_id, component)
