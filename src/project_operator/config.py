"""Configuration management with validation.

Polling and retry bounds are validated at load time so a misconfigured
operator fails before it issues a single remote call.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_OPERATION_POLL_INTERVAL_SECONDS = 2.0
MIN_OPERATION_POLL_INTERVAL_SECONDS = 0.0
MAX_OPERATION_POLL_INTERVAL_SECONDS = 60.0

DEFAULT_OPERATION_MAX_POLLS = 240
MAX_OPERATION_MAX_POLLS = 10000

DEFAULT_OPERATION_MAX_POLL_FAILURES = 5
MAX_OPERATION_MAX_POLL_FAILURES = 20

RETRY_BACKOFF_BASE_SECONDS = 1.0

# Billing linkage is eventually consistent; the read-back is retried, never the write
DEFAULT_BILLING_READ_ATTEMPTS = 3
DEFAULT_BILLING_READ_DELAY_SECONDS = 3.0
MAX_BILLING_READ_ATTEMPTS = 30

DEFAULT_STATE_DIR = ".project-state"
DEFAULT_LOG_LEVEL = "INFO"
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

MAX_SPEC_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max spec file
MAX_STATE_FILE_SIZE_BYTES = 1024 * 1024


@dataclass(frozen=True)
class Config:
    """Operator configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing mid-reconcile.
    """

    # Operation waiter
    operation_poll_interval_seconds: float = DEFAULT_OPERATION_POLL_INTERVAL_SECONDS
    operation_max_polls: int = DEFAULT_OPERATION_MAX_POLLS
    operation_max_poll_failures: int = DEFAULT_OPERATION_MAX_POLL_FAILURES
    retry_backoff_base_seconds: float = RETRY_BACKOFF_BASE_SECONDS

    # Billing convergence
    billing_read_attempts: int = DEFAULT_BILLING_READ_ATTEMPTS
    billing_read_delay_seconds: float = DEFAULT_BILLING_READ_DELAY_SECONDS

    # Local state
    state_dir: Path = Path(DEFAULT_STATE_DIR)

    # Logging
    log_level: str = DEFAULT_LOG_LEVEL
    enable_audit_logging: bool = True

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if not (
            MIN_OPERATION_POLL_INTERVAL_SECONDS
            <= self.operation_poll_interval_seconds
            <= MAX_OPERATION_POLL_INTERVAL_SECONDS
        ):
            errors.append(
                f"OPERATION_POLL_INTERVAL must be between {MIN_OPERATION_POLL_INTERVAL_SECONDS} "
                f"and {MAX_OPERATION_POLL_INTERVAL_SECONDS} seconds"
            )

        if not 1 <= self.operation_max_polls <= MAX_OPERATION_MAX_POLLS:
            errors.append(f"OPERATION_MAX_POLLS must be between 1 and {MAX_OPERATION_MAX_POLLS}")

        if not 1 <= self.operation_max_poll_failures <= MAX_OPERATION_MAX_POLL_FAILURES:
            errors.append(
                f"OPERATION_MAX_POLL_FAILURES must be between 1 and "
                f"{MAX_OPERATION_MAX_POLL_FAILURES}"
            )

        if self.retry_backoff_base_seconds < 0:
            errors.append("RETRY_BACKOFF_BASE cannot be negative")

        if not 1 <= self.billing_read_attempts <= MAX_BILLING_READ_ATTEMPTS:
            errors.append(
                f"BILLING_READ_ATTEMPTS must be between 1 and {MAX_BILLING_READ_ATTEMPTS}"
            )

        if self.billing_read_delay_seconds < 0:
            errors.append("BILLING_READ_DELAY cannot be negative")

        if self.log_level.upper() not in VALID_LOG_LEVELS:
            errors.append(f"LOG_LEVEL must be one of {list(VALID_LOG_LEVELS)}: {self.log_level}")

        if self.state_dir.exists() and not self.state_dir.is_dir():
            errors.append(f"STATE_DIR is not a directory: {self.state_dir}")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            OPERATION_POLL_INTERVAL: Seconds between operation polls (default: 2)
            OPERATION_MAX_POLLS: Polls of a pending operation before giving up (default: 240)
            OPERATION_MAX_POLL_FAILURES: Consecutive failed polls tolerated (default: 5)
            RETRY_BACKOFF_BASE: Base seconds for poll failure backoff (default: 1)
            BILLING_READ_ATTEMPTS: Billing read-back attempts after a write (default: 3)
            BILLING_READ_DELAY: Seconds between billing read-backs (default: 3)
            STATE_DIR: Directory holding per-project state files (default: .project-state)
            LOG_LEVEL: Root log level (default: INFO)
            ENABLE_AUDIT_LOGGING: Emit provenance records (default: true)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_float(key: str, default: float) -> float:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return float(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be a number: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        return cls(
            operation_poll_interval_seconds=get_float(
                "OPERATION_POLL_INTERVAL", DEFAULT_OPERATION_POLL_INTERVAL_SECONDS
            ),
            operation_max_polls=get_int("OPERATION_MAX_POLLS", DEFAULT_OPERATION_MAX_POLLS),
            operation_max_poll_failures=get_int(
                "OPERATION_MAX_POLL_FAILURES", DEFAULT_OPERATION_MAX_POLL_FAILURES
            ),
            retry_backoff_base_seconds=get_float("RETRY_BACKOFF_BASE", RETRY_BACKOFF_BASE_SECONDS),
            billing_read_attempts=get_int("BILLING_READ_ATTEMPTS", DEFAULT_BILLING_READ_ATTEMPTS),
            billing_read_delay_seconds=get_float(
                "BILLING_READ_DELAY", DEFAULT_BILLING_READ_DELAY_SECONDS
            ),
            state_dir=Path(os.environ.get("STATE_DIR", DEFAULT_STATE_DIR)),
            log_level=os.environ.get("LOG_LEVEL", DEFAULT_LOG_LEVEL).upper(),
            enable_audit_logging=get_bool("ENABLE_AUDIT_LOGGING", True),
        )
