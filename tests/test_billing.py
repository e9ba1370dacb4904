"""Tests for billing account linkage and read-back convergence."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from gcp_mock import FakeBillingClient, FakeCloudState

from project_operator.billing import (
    BillingAccountFormatError,
    BillingConvergenceRetrier,
    BillingError,
    BillingTimeoutError,
    billing_info_request,
    parse_billing_account,
)
from project_operator.clients import RemoteApiError
from project_operator.models import ProjectState

ACCOUNT = "012345-567890-ABCDEF"


@pytest.fixture
def state() -> ProjectState:
    return ProjectState(id="my-project", project_id="my-project")


def make_retrier(cloud: FakeCloudState, sleep, attempts: int = 3) -> BillingConvergenceRetrier:
    return BillingConvergenceRetrier(
        FakeBillingClient(cloud), read_attempts=attempts, read_delay_seconds=3.0, sleep=sleep
    )


class TestParseBillingAccount:
    """Tests for parse_billing_account."""

    def test_prefixed(self) -> None:
        assert parse_billing_account(f"billingAccounts/{ACCOUNT}", "my-project") == ACCOUNT

    def test_empty_means_unlinked(self) -> None:
        assert parse_billing_account("", "my-project") == ""

    def test_missing_prefix(self) -> None:
        """An unrecognized value is an error, not silently accepted."""
        with pytest.raises(BillingAccountFormatError) as exc_info:
            parse_billing_account(ACCOUNT, "my-project")

        assert "projects/my-project" in str(exc_info.value)
        assert "billingAccounts/" in str(exc_info.value)


class TestBillingInfoRequest:
    """Tests for billing_info_request."""

    def test_link(self) -> None:
        assert billing_info_request(ACCOUNT) == {"billingAccountName": f"billingAccounts/{ACCOUNT}"}

    def test_unlink_sends_no_account_name(self) -> None:
        assert billing_info_request("") == {}


class TestBillingConvergenceRetrier:
    """Tests for BillingConvergenceRetrier.set_billing."""

    def test_immediate_convergence(self, state: ProjectState, sleep) -> None:
        """A consistent read-back succeeds after one read and no delay."""
        cloud = FakeCloudState()
        cloud.add_project("my-project")

        make_retrier(cloud, sleep).set_billing(state, ACCOUNT)

        assert state.billing_account_id == ACCOUNT
        assert len(cloud.calls_to("billing.get")) == 1
        assert sleep.calls == []

    def test_converges_on_third_read(self, state: ProjectState, sleep) -> None:
        """Stale reads are retried: one write, exactly three reads."""
        cloud = FakeCloudState(billing_stale_reads=2)
        cloud.add_project("my-project")

        make_retrier(cloud, sleep).set_billing(state, ACCOUNT)

        assert state.billing_account_id == ACCOUNT
        assert len(cloud.calls_to("billing.update")) == 1
        assert len(cloud.calls_to("billing.get")) == 3
        assert sleep.calls == [3.0, 3.0]

    def test_never_converges(self, state: ProjectState, sleep) -> None:
        """A read-back that never matches times out and resets the field."""
        cloud = FakeCloudState(billing_stale_reads=10)
        cloud.add_project("my-project")
        state.billing_account_id = "previous-account"

        with pytest.raises(BillingTimeoutError) as exc_info:
            make_retrier(cloud, sleep).set_billing(state, ACCOUNT)

        assert state.billing_account_id == ""
        assert ACCOUNT in str(exc_info.value)
        assert len(cloud.calls_to("billing.update")) == 1
        assert len(cloud.calls_to("billing.get")) == 3
        # No delay after the final read
        assert sleep.calls == [3.0, 3.0]

    def test_unlink(self, state: ProjectState, sleep) -> None:
        """Unlinking sends an empty body and converges on an empty read-back."""
        cloud = FakeCloudState()
        cloud.add_project("my-project", billing_account=ACCOUNT)
        billing = MagicMock(wraps=FakeBillingClient(cloud))
        retrier = BillingConvergenceRetrier(billing, sleep=sleep)
        state.billing_account_id = ACCOUNT

        retrier.set_billing(state, "")

        billing.update_billing_info.assert_called_once_with("projects/my-project", {})
        assert state.billing_account_id == ""
        assert cloud.billing["my-project"] == ""

    def test_write_failure_resets_field(self, state: ProjectState, sleep) -> None:
        """A failed write never leaves a stale account in state."""
        cloud = FakeCloudState()
        cloud.add_project("my-project")
        cloud.fail("billing.update", RemoteApiError("permission denied", status_code=403))
        state.billing_account_id = "previous-account"

        with pytest.raises(BillingError) as exc_info:
            make_retrier(cloud, sleep).set_billing(state, ACCOUNT)

        assert not isinstance(exc_info.value, BillingTimeoutError)
        assert state.billing_account_id == ""
        assert cloud.calls_to("billing.get") == []

    def test_read_failure_resets_field(self, state: ProjectState, sleep) -> None:
        """A failed read-back aborts without further reads."""
        cloud = FakeCloudState()
        cloud.add_project("my-project")
        cloud.fail("billing.get")

        with pytest.raises(BillingError):
            make_retrier(cloud, sleep).set_billing(state, ACCOUNT)

        assert state.billing_account_id == ""
        assert len(cloud.calls_to("billing.get")) == 1

    def test_untracked_state_uses_project_id(self, sleep) -> None:
        """During create the project id addresses the project before the id is recorded."""
        cloud = FakeCloudState()
        cloud.add_project("my-project")
        state = ProjectState(project_id="my-project")

        make_retrier(cloud, sleep).set_billing(state, ACCOUNT)

        assert cloud.calls_to("billing.update") == ["billing.update projects/my-project"]

    def test_read_billing_account(self, sleep) -> None:
        """The bare account id is reported for a linked project."""
        cloud = FakeCloudState()
        cloud.add_project("my-project", billing_account=ACCOUNT)

        assert make_retrier(cloud, sleep).read_billing_account("my-project") == ACCOUNT
