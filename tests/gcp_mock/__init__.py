"""Google Cloud control-plane fakes for testing.

This module provides in-memory implementations of the capability clients
the reconciler depends on, so controller flows can be tested without any
Google Cloud connectivity.

Key Features:
- Shared in-memory state for projects, billing, networks and applications
- Eventually consistent billing read-back
- Operations that stay pending for a configurable number of polls
- Error injection per method and per operation kind
- Call log for asserting on remote call ordering

Usage:
    from gcp_mock import FakeCloudState, create_fake_clients

    state = FakeCloudState(billing_stale_reads=2)
    reconciler = ProjectReconciler(create_fake_clients(state), sleep=lambda _: None)
    reconciler.create(project_state)

    assert state.calls_to("billing.get") == [...]
"""

from .clients import (
    FakeAppRuntimeClient,
    FakeBillingClient,
    FakeComputeClient,
    FakeProjectsClient,
    FakeServiceUsageClient,
    create_fake_clients,
)
from .state import FakeCloudState, network_link

__all__ = [
    "FakeAppRuntimeClient",
    "FakeBillingClient",
    "FakeCloudState",
    "FakeComputeClient",
    "FakeProjectsClient",
    "FakeServiceUsageClient",
    "create_fake_clients",
    "network_link",
]
