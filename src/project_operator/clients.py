"""Capability-scoped client interfaces for the Google Cloud control plane.

The reconciler never talks to a transport directly. It depends on five narrow
capabilities, each modeled as a Protocol:

- ProjectsClient: Cloud Resource Manager projects
- BillingClient: Cloud Billing project billing info
- ComputeClient: Compute Engine firewalls and networks
- AppRuntimeClient: App Engine applications
- ServiceUsageClient: API enablement on a project

Concrete implementations live in gcp.py; in-memory doubles live in the test
suite. Every implementation reports failures through NotFoundError and
RemoteApiError so the controller can tell "absent" from "broken".
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


class RemoteApiError(Exception):
    """Raised when a control-plane call fails.

    Attributes:
        status_code: HTTP status reported by the API, if any.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(RemoteApiError):
    """Raised when the addressed resource does not exist."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=404)


@dataclass(frozen=True)
class OperationErrorDetail:
    """Error embedded in a finished operation."""

    code: int | str | None
    message: str


@dataclass(frozen=True)
class Operation:
    """Opaque handle for an asynchronous mutation.

    Attributes:
        name: Operation name as issued by the API.
        done: Whether the operation reached a terminal state.
        error: Error detail when the operation finished unsuccessfully.
        project_id: Owning project, for APIs whose poll call is project-scoped.
    """

    name: str
    done: bool = False
    error: OperationErrorDetail | None = None
    project_id: str | None = None


class ProjectsClient(Protocol):
    def create(self, body: dict[str, Any]) -> Operation: ...

    def get(self, project_id: str) -> dict[str, Any]: ...

    def update(self, project_id: str, body: dict[str, Any]) -> dict[str, Any]: ...

    def delete(self, project_id: str) -> None: ...

    def get_operation(self, operation: Operation) -> Operation: ...


class BillingClient(Protocol):
    def get_billing_info(self, project_name: str) -> dict[str, Any]: ...

    def update_billing_info(self, project_name: str, body: dict[str, Any]) -> dict[str, Any]: ...


class ComputeClient(Protocol):
    def list_firewalls(
        self, project_id: str, filter: str, page_token: str | None = None
    ) -> tuple[list[dict[str, Any]], str | None]: ...

    def delete_firewall(self, project_id: str, name: str) -> Operation: ...

    def delete_network(self, project_id: str, name: str) -> Operation: ...

    def get_operation(self, operation: Operation) -> Operation: ...


class AppRuntimeClient(Protocol):
    def create(self, app: dict[str, Any]) -> Operation: ...

    def get(self, app_id: str) -> dict[str, Any]: ...

    def get_operation(self, operation: Operation) -> Operation: ...


class ServiceUsageClient(Protocol):
    def enable(self, service_name: str, project_id: str) -> Operation: ...

    def get_operation(self, operation: Operation) -> Operation: ...


@dataclass
class ClientSet:
    """Bundle of every capability the reconciler needs."""

    projects: ProjectsClient
    billing: BillingClient
    compute: ComputeClient
    app_runtime: AppRuntimeClient
    service_usage: ServiceUsageClient
