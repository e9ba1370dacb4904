"""Waiting on long-running control-plane operations.

Every asynchronous mutation (project create, app create, firewall and network
delete, API enablement) hands back an Operation. OperationWaiter polls it
synchronously until the API reports a terminal state.

Two bounds apply:
- operation_max_polls: polls of a still-pending operation
- operation_max_poll_failures: consecutive transport failures while polling

Exhausting either raises WaitTimeoutError: the final state is unknown, which is
different from an OperationError where the API told us the mutation failed.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable

from .clients import Operation, RemoteApiError
from .config import (
    DEFAULT_OPERATION_MAX_POLL_FAILURES,
    DEFAULT_OPERATION_MAX_POLLS,
    DEFAULT_OPERATION_POLL_INTERVAL_SECONDS,
    RETRY_BACKOFF_BASE_SECONDS,
    Config,
)

logger = logging.getLogger(__name__)


class OperationError(Exception):
    """Raised when an operation finished with an embedded error."""

    def __init__(self, description: str, code: int | str | None, message: str) -> None:
        super().__init__(f"Error waiting for {description}: {message} (code: {code})")
        self.description = description
        self.code = code
        self.message = message


class WaitTimeoutError(Exception):
    """Raised when polling gave up before the operation reached a terminal state."""

    pass


class OperationWaiter:
    """Bounded synchronous poll loop for Operation handles."""

    def __init__(
        self,
        *,
        poll_interval_seconds: float = DEFAULT_OPERATION_POLL_INTERVAL_SECONDS,
        max_polls: int = DEFAULT_OPERATION_MAX_POLLS,
        max_poll_failures: int = DEFAULT_OPERATION_MAX_POLL_FAILURES,
        backoff_base_seconds: float = RETRY_BACKOFF_BASE_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._poll_interval = poll_interval_seconds
        self._max_polls = max_polls
        self._max_poll_failures = max_poll_failures
        self._backoff_base = backoff_base_seconds
        self._sleep = sleep

    @classmethod
    def from_config(
        cls, config: Config, sleep: Callable[[float], None] = time.sleep
    ) -> OperationWaiter:
        return cls(
            poll_interval_seconds=config.operation_poll_interval_seconds,
            max_polls=config.operation_max_polls,
            max_poll_failures=config.operation_max_poll_failures,
            backoff_base_seconds=config.retry_backoff_base_seconds,
            sleep=sleep,
        )

    def wait(
        self,
        operation: Operation,
        poll: Callable[[Operation], Operation],
        description: str,
    ) -> None:
        """Block until the operation is done.

        Args:
            operation: Handle returned by the mutating call.
            poll: Capability-specific call that refreshes the handle.
            description: Human-readable text used in logs and errors,
                e.g. "project to create".

        Raises:
            OperationError: If the operation finished with an error.
            WaitTimeoutError: If a polling bound was exhausted.
        """
        polls = 0
        failures = 0
        current = operation

        while not current.done:
            if polls >= self._max_polls:
                raise WaitTimeoutError(
                    f"Timed out waiting for {description}: operation {operation.name} "
                    f"still pending after {polls} polls"
                )

            self._sleep(self._poll_interval)
            polls += 1

            try:
                current = poll(current)
            except RemoteApiError as e:
                failures += 1
                if failures >= self._max_poll_failures:
                    raise WaitTimeoutError(
                        f"Gave up waiting for {description}: {failures} consecutive poll "
                        f"failures for operation {operation.name}"
                    ) from e

                # Exponential backoff with jitter
                backoff = self._backoff_base * (2 ** (failures - 1))
                wait_time = backoff + random.uniform(0, backoff * 0.2)
                logger.warning(
                    "Operation poll failed, retrying",
                    extra={
                        "operation": operation.name,
                        "description": description,
                        "attempt": failures,
                        "max_attempts": self._max_poll_failures,
                        "wait_seconds": wait_time,
                        "error": str(e),
                    },
                )
                self._sleep(wait_time)
                continue

            failures = 0

        if current.error is not None:
            logger.error(
                "Operation finished with error",
                extra={
                    "operation": current.name,
                    "description": description,
                    "code": current.error.code,
                    "error": current.error.message,
                },
            )
            raise OperationError(description, current.error.code, current.error.message)

        logger.debug(
            "Operation complete",
            extra={"operation": current.name, "description": description, "polls": polls},
        )
