"""Billing account linkage with read-back convergence.

Linking a billing account is a single write, but the Cloud Billing API is
eventually consistent: reading the project's billing info right after a
successful write may still return the previous account. The retrier therefore
re-reads (never re-writes) a bounded number of times with a fixed delay.

Any failure resets the locally tracked billing account to empty so cached
state never claims a linkage that may not exist.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from .clients import BillingClient, RemoteApiError
from .config import DEFAULT_BILLING_READ_ATTEMPTS, DEFAULT_BILLING_READ_DELAY_SECONDS, Config

if TYPE_CHECKING:
    from .models import ProjectState

logger = logging.getLogger(__name__)

BILLING_ACCOUNT_PREFIX = "billingAccounts/"


class BillingError(Exception):
    """Raised when a billing account cannot be linked or unlinked."""

    pass


class BillingTimeoutError(BillingError):
    """Raised when the billing read-back never matched the requested account."""

    pass


class BillingAccountFormatError(BillingError):
    """Raised when the API reports a billing account name we do not recognize."""

    pass


def prefixed_project(project_id: str) -> str:
    return "projects/" + project_id


def parse_billing_account(billing_account_name: str, project_id: str) -> str:
    """Extract the billing account id from its resource name.

    Args:
        billing_account_name: Value reported by the API, e.g.
            "billingAccounts/012345-567890-ABCDEF". Empty means unlinked.
        project_id: Project the value belongs to, for error messages.

    Returns:
        The bare account id, or "" when no account is linked.

    Raises:
        BillingAccountFormatError: If the value lacks the expected prefix.
    """
    if not billing_account_name:
        return ""
    if not billing_account_name.startswith(BILLING_ACCOUNT_PREFIX):
        raise BillingAccountFormatError(
            f"Error parsing billing account for project {prefixed_project(project_id)!r}. "
            f"Expected value to begin with {BILLING_ACCOUNT_PREFIX!r} but got "
            f"{billing_account_name}"
        )
    return billing_account_name[len(BILLING_ACCOUNT_PREFIX) :]


def billing_info_request(account_id: str) -> dict[str, Any]:
    """Build the update body for a billing account id.

    Unlinking is an empty body, not a body naming an empty account.
    """
    if not account_id:
        return {}
    return {"billingAccountName": BILLING_ACCOUNT_PREFIX + account_id}


class BillingConvergenceRetrier:
    """Writes billing linkage once, then polls the read-back until it converges."""

    def __init__(
        self,
        billing: BillingClient,
        *,
        read_attempts: int = DEFAULT_BILLING_READ_ATTEMPTS,
        read_delay_seconds: float = DEFAULT_BILLING_READ_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._billing = billing
        self._read_attempts = read_attempts
        self._read_delay = read_delay_seconds
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        billing: BillingClient,
        config: Config,
        sleep: Callable[[float], None] = time.sleep,
    ) -> BillingConvergenceRetrier:
        return cls(
            billing,
            read_attempts=config.billing_read_attempts,
            read_delay_seconds=config.billing_read_delay_seconds,
            sleep=sleep,
        )

    def read_billing_account(self, project_id: str) -> str:
        """Return the account id currently linked to a project ("" if none)."""
        info = self._billing.get_billing_info(prefixed_project(project_id))
        return parse_billing_account(info.get("billingAccountName", ""), project_id)

    def set_billing(self, state: ProjectState, account_id: str) -> None:
        """Link (or unlink, for "") a billing account and wait for the read-back.

        Args:
            state: Tracked project state; its billing_account_id is updated.
            account_id: Desired billing account id, "" to unlink.

        Raises:
            BillingError: If the write or a read-back failed.
            BillingTimeoutError: If the read-back never matched.
        """
        project_id = state.id or state.project_id
        project_name = prefixed_project(project_id)

        try:
            self._billing.update_billing_info(project_name, billing_info_request(account_id))
        except RemoteApiError as e:
            state.billing_account_id = ""
            raise BillingError(
                f"Error setting billing account {account_id!r} for project {project_name!r}: {e}"
            ) from e

        observed = ""
        for attempt in range(1, self._read_attempts + 1):
            try:
                observed = self.read_billing_account(project_id)
            except (RemoteApiError, BillingAccountFormatError) as e:
                state.billing_account_id = ""
                raise BillingError(
                    f"Error reading billing account for project {project_name!r}: {e}"
                ) from e

            if observed == account_id:
                state.billing_account_id = account_id
                logger.info(
                    "Billing account converged",
                    extra={
                        "project_id": project_id,
                        "billing_account": account_id,
                        "attempts": attempt,
                    },
                )
                return

            logger.debug(
                "Billing account not yet converged",
                extra={
                    "project_id": project_id,
                    "expected": account_id,
                    "observed": observed,
                    "attempt": attempt,
                },
            )
            if attempt < self._read_attempts:
                self._sleep(self._read_delay)

        state.billing_account_id = ""
        raise BillingTimeoutError(
            f"Timed out waiting for billing account to return correct value for project "
            f"{project_name!r}. Waiting for {account_id!r}, got {observed!r}."
        )
