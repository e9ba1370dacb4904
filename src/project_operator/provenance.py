"""Operation provenance tracking for audit.

Every controller operation (create, read, update, delete, import) is stamped
with one structured record answering:
- "What did the operator try to do to project X, and when?"
- "Which field groups changed, and which failed?"
- "What version of the operator was running?"
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

# Version is set at build time or falls back to dev
OPERATOR_VERSION = os.environ.get("OPERATOR_VERSION", "dev")


@dataclass
class OperationProvenance:
    """Provenance record for one controller operation."""

    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    # Identity
    operation: str = ""
    project_id: str = ""
    operator_version: str = OPERATOR_VERSION
    operator_instance_id: str = ""

    # Outcome
    project_absent: bool = False  # Read found nothing usable
    remote_calls_skipped: bool = False  # e.g. delete with skip_delete
    group_results: dict[str, str] = field(default_factory=dict)

    duration_seconds: float = 0.0

    error: str | None = None
    error_type: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = asdict(self)
        result["timestamp"] = self.timestamp.isoformat()
        return result


class ProvenanceLogger:
    """Logs provenance records through the structured logger."""

    def __init__(self) -> None:
        self._instance_id = os.environ.get("OPERATOR_INSTANCE_ID", "")

    def create_provenance(self, operation: str, project_id: str) -> OperationProvenance:
        return OperationProvenance(
            operation=operation,
            project_id=project_id,
            operator_version=OPERATOR_VERSION,
            operator_instance_id=self._instance_id,
        )

    def log_provenance(self, provenance: OperationProvenance) -> None:
        """Log a completed provenance record.

        Failed operations log at ERROR, operations where the project turned
        out to be absent at WARNING, everything else at INFO.
        """
        log_level = logging.INFO
        if provenance.error:
            log_level = logging.ERROR
        elif provenance.project_absent:
            log_level = logging.WARNING

        logger.log(
            log_level,
            "Operation provenance",
            extra={
                "provenance": provenance.to_dict(),
                # Flatten key fields for easier querying
                "operation": provenance.operation,
                "project_id": provenance.project_id,
                "success": provenance.success,
                "operator_version": provenance.operator_version,
                "duration_seconds": provenance.duration_seconds,
            },
        )


# Global singleton for provenance logging
_provenance_logger: ProvenanceLogger | None = None


def get_provenance_logger() -> ProvenanceLogger:
    """Get the global provenance logger instance."""
    global _provenance_logger
    if _provenance_logger is None:
        _provenance_logger = ProvenanceLogger()
    return _provenance_logger
