"""Main entry point for the Cloud Project Operator.

Wires configuration, structured logging and the Google API clients into a
ProjectReconciler, and hands control to the projectctl CLI.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime

from .clients import ClientSet
from .config import Config
from .reconciler import ProjectReconciler

# LogRecord attributes that are not user-supplied "extra" fields
_RESERVED_RECORD_KEYS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)


class JsonFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        # Add extra fields from the record
        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_KEYS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging.

    Logs go to stderr so command output on stdout stays machine-readable.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())

    # Reduce noise from the Google client libraries
    logging.getLogger("googleapiclient").setLevel(logging.WARNING)
    logging.getLogger("google").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def build_reconciler(config: Config, clients: ClientSet | None = None) -> ProjectReconciler:
    """Create a reconciler, building Google API clients unless provided."""
    if clients is None:
        from .gcp import build_clients

        clients = build_clients()
    return ProjectReconciler(clients, config)


def run() -> None:
    """Entry point for the projectctl CLI."""
    from .cli import cli

    cli()


if __name__ == "__main__":
    run()
