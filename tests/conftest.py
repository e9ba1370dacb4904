"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for gcp_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from gcp_mock import FakeCloudState, create_fake_clients  # noqa: E402

from project_operator.clients import ClientSet  # noqa: E402
from project_operator.config import Config  # noqa: E402
from project_operator.reconciler import ProjectReconciler  # noqa: E402


class SleepRecorder:
    """Stand-in for time.sleep that records requested delays."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def cloud() -> FakeCloudState:
    return FakeCloudState()


@pytest.fixture
def clients(cloud: FakeCloudState) -> ClientSet:
    return create_fake_clients(cloud)


@pytest.fixture
def config(tmp_path: Path) -> Config:
    return Config(
        operation_poll_interval_seconds=0.5,
        operation_max_polls=10,
        operation_max_poll_failures=3,
        billing_read_attempts=3,
        billing_read_delay_seconds=3.0,
        state_dir=tmp_path / "state",
    )


@pytest.fixture
def reconciler(clients: ClientSet, config: Config, sleep: SleepRecorder) -> ProjectReconciler:
    return ProjectReconciler(clients, config, sleep=sleep)
