"""Google API implementations of the capability clients.

Each client wraps a discovery-based service object from google-api-python-client
and translates googleapiclient HttpError into NotFoundError / RemoteApiError.

APIs used:
- cloudresourcemanager v1: projects and their operations
- cloudbilling v1: project billing info
- compute v1: firewalls, networks and global operations
- appengine v1: applications and their operations
- serviceusage v1: API enablement and its operations

Credentials come from Application Default Credentials unless passed in.
"""

from __future__ import annotations

import logging
from typing import Any

import google.auth
from google.auth.credentials import Credentials
from googleapiclient.discovery import Resource, build
from googleapiclient.errors import HttpError

from .clients import ClientSet, NotFoundError, Operation, OperationErrorDetail, RemoteApiError

logger = logging.getLogger(__name__)

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"

COMPUTE_OPERATION_DONE = "DONE"


def _translate_http_error(error: HttpError, context: str) -> RemoteApiError:
    status = int(error.resp.status) if error.resp is not None else None
    message = f"{context}: {error}"
    if status == 404:
        return NotFoundError(message)
    return RemoteApiError(message, status_code=status)


def _execute(request: Any, context: str) -> dict[str, Any]:
    """Execute a googleapiclient request, translating HTTP errors."""
    try:
        return request.execute() or {}
    except HttpError as e:
        raise _translate_http_error(e, context) from e


def parse_operation(raw: dict[str, Any], project_id: str | None = None) -> Operation:
    """Parse a google.longrunning Operation resource."""
    error = raw.get("error")
    detail = None
    if error:
        detail = OperationErrorDetail(code=error.get("code"), message=error.get("message", ""))
    return Operation(
        name=raw.get("name", ""),
        done=bool(raw.get("done", False)),
        error=detail,
        project_id=project_id,
    )


def parse_compute_operation(raw: dict[str, Any], project_id: str) -> Operation:
    """Parse a Compute Engine Operation resource.

    Compute reports progress through status and a list of errors instead of
    the done/error pair used by the other APIs.
    """
    errors = (raw.get("error") or {}).get("errors") or []
    detail = None
    if errors:
        detail = OperationErrorDetail(
            code=errors[0].get("code"),
            message="; ".join(e.get("message", "") for e in errors),
        )
    return Operation(
        name=raw.get("name", ""),
        done=raw.get("status") == COMPUTE_OPERATION_DONE,
        error=detail,
        project_id=project_id,
    )


class GoogleProjectsClient:
    """Cloud Resource Manager v1 projects."""

    def __init__(self, service: Resource) -> None:
        self._service = service

    def create(self, body: dict[str, Any]) -> Operation:
        raw = _execute(
            self._service.projects().create(body=body),
            f"Error creating project {body.get('projectId')!r}",
        )
        return parse_operation(raw)

    def get(self, project_id: str) -> dict[str, Any]:
        return _execute(
            self._service.projects().get(projectId=project_id),
            f"Error reading project {project_id!r}",
        )

    def update(self, project_id: str, body: dict[str, Any]) -> dict[str, Any]:
        return _execute(
            self._service.projects().update(projectId=project_id, body=body),
            f"Error updating project {project_id!r}",
        )

    def delete(self, project_id: str) -> None:
        _execute(
            self._service.projects().delete(projectId=project_id),
            f"Error deleting project {project_id!r}",
        )

    def get_operation(self, operation: Operation) -> Operation:
        raw = _execute(
            self._service.operations().get(name=operation.name),
            f"Error polling operation {operation.name!r}",
        )
        return parse_operation(raw)


class GoogleBillingClient:
    """Cloud Billing v1 project billing info."""

    def __init__(self, service: Resource) -> None:
        self._service = service

    def get_billing_info(self, project_name: str) -> dict[str, Any]:
        return _execute(
            self._service.projects().getBillingInfo(name=project_name),
            f"Error reading billing info for {project_name!r}",
        )

    def update_billing_info(self, project_name: str, body: dict[str, Any]) -> dict[str, Any]:
        return _execute(
            self._service.projects().updateBillingInfo(name=project_name, body=body),
            f"Error updating billing info for {project_name!r}",
        )


class GoogleComputeClient:
    """Compute Engine v1 firewalls and networks."""

    def __init__(self, service: Resource) -> None:
        self._service = service

    def list_firewalls(
        self, project_id: str, filter: str, page_token: str | None = None
    ) -> tuple[list[dict[str, Any]], str | None]:
        raw = _execute(
            self._service.firewalls().list(
                project=project_id, filter=filter, pageToken=page_token
            ),
            f"Error listing firewall rules in project {project_id!r}",
        )
        return raw.get("items", []), raw.get("nextPageToken") or None

    def delete_firewall(self, project_id: str, name: str) -> Operation:
        raw = _execute(
            self._service.firewalls().delete(project=project_id, firewall=name),
            f"Error deleting firewall {name!r} in project {project_id!r}",
        )
        return parse_compute_operation(raw, project_id)

    def delete_network(self, project_id: str, name: str) -> Operation:
        raw = _execute(
            self._service.networks().delete(project=project_id, network=name),
            f"Error deleting network {name!r} in project {project_id!r}",
        )
        return parse_compute_operation(raw, project_id)

    def get_operation(self, operation: Operation) -> Operation:
        if not operation.project_id:
            raise ValueError(f"Compute operation {operation.name!r} has no project")
        raw = _execute(
            self._service.globalOperations().get(
                project=operation.project_id, operation=operation.name
            ),
            f"Error polling compute operation {operation.name!r}",
        )
        return parse_compute_operation(raw, operation.project_id)


class GoogleAppEngineClient:
    """App Engine Admin v1 applications."""

    def __init__(self, service: Resource) -> None:
        self._service = service

    def create(self, app: dict[str, Any]) -> Operation:
        raw = _execute(
            self._service.apps().create(body=app),
            f"Error creating App Engine application {app.get('id')!r}",
        )
        return parse_operation(raw, app.get("id"))

    def get(self, app_id: str) -> dict[str, Any]:
        return _execute(
            self._service.apps().get(appsId=app_id),
            f"Error retrieving App Engine application {app_id!r}",
        )

    def get_operation(self, operation: Operation) -> Operation:
        # Operation names look like apps/{appsId}/operations/{operationsId}
        parts = operation.name.split("/")
        if len(parts) != 4 or parts[0] != "apps" or parts[2] != "operations":
            raise ValueError(f"Unexpected App Engine operation name: {operation.name!r}")
        raw = _execute(
            self._service.apps().operations().get(appsId=parts[1], operationsId=parts[3]),
            f"Error polling App Engine operation {operation.name!r}",
        )
        return parse_operation(raw, operation.project_id)


class GoogleServiceUsageClient:
    """Service Usage v1 API enablement."""

    def __init__(self, service: Resource) -> None:
        self._service = service

    def enable(self, service_name: str, project_id: str) -> Operation:
        raw = _execute(
            self._service.services().enable(
                name=f"projects/{project_id}/services/{service_name}", body={}
            ),
            f"Error enabling {service_name} on project {project_id!r}",
        )
        return parse_operation(raw, project_id)

    def get_operation(self, operation: Operation) -> Operation:
        raw = _execute(
            self._service.operations().get(name=operation.name),
            f"Error polling operation {operation.name!r}",
        )
        return parse_operation(raw, operation.project_id)


def build_clients(credentials: Credentials | None = None, http: Any | None = None) -> ClientSet:
    """Build every capability client against the Google APIs.

    Args:
        credentials: Credentials to use. Defaults to Application Default
            Credentials with the cloud-platform scope.
        http: Pre-built HTTP transport (mutually exclusive with credentials);
            mainly for httplib2 mocks.

    Returns:
        ClientSet wired to the live control plane.
    """
    kwargs: dict[str, Any]
    if http is not None:
        kwargs = {"http": http}
    else:
        if credentials is None:
            credentials, project = google.auth.default(scopes=[CLOUD_PLATFORM_SCOPE])
            logger.info(
                "Using application default credentials", extra={"quota_project": project}
            )
        kwargs = {"credentials": credentials}

    def _build(api: str, version: str) -> Resource:
        return build(api, version, cache_discovery=False, static_discovery=True, **kwargs)

    return ClientSet(
        projects=GoogleProjectsClient(_build("cloudresourcemanager", "v1")),
        billing=GoogleBillingClient(_build("cloudbilling", "v1")),
        compute=GoogleComputeClient(_build("compute", "v1")),
        app_runtime=GoogleAppEngineClient(_build("appengine", "v1")),
        service_usage=GoogleServiceUsageClient(_build("serviceusage", "v1")),
    )
