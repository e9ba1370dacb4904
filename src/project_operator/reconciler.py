"""Project reconciliation controller.

This module converges a declared project onto the Google Cloud control plane.
None of the underlying APIs is atomic, so every operation is a fixed sequence
of remote calls:

CREATE
1. Create the project and wait for the operation
2. Link the billing account (if declared) and wait for the read-back
3. Enable the App Engine Admin API, create the application and wait
4. Read everything back
5. Delete the default network (if auto_create_network is false)

READ
Project, then billing info, then the application. A missing or inactive
project clears the tracked identity instead of failing.

UPDATE
Resource Manager has no PATCH: the live project is fetched and sent back whole
once per changed field group. Each group's outcome is reported separately so a
failure in one does not hide what already succeeded.

DELETE
Honors skip_delete; the tracked identity is only cleared on success.

APIs are enabled before their resources are touched, and firewall rules are
deleted before their network.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum

from .app_runtime import expand_app_runtime, flatten_app_runtime
from .billing import BillingConvergenceRetrier, BillingError
from .clients import ClientSet, NotFoundError, RemoteApiError
from .config import Config
from .models import DeclaredProject, LiveProject, ParentType, ProjectState
from .network import DEFAULT_NETWORK_NAME, force_delete_network
from .operations import OperationError, OperationWaiter, WaitTimeoutError
from .provenance import OperationProvenance, get_provenance_logger

logger = logging.getLogger(__name__)

APP_RUNTIME_SERVICE = "appengine.googleapis.com"
COMPUTE_SERVICE = "compute.googleapis.com"

# HTTP status Service Usage may report for an API that is already enabled
ALREADY_ENABLED_STATUS = 409


class ReconcileError(Exception):
    """Raised when a remote call in a reconcile step fails.

    Attributes:
        step: Name of the failed step, e.g. "create project".
        project_id: Project being reconciled.
    """

    def __init__(self, message: str, *, step: str, project_id: str) -> None:
        super().__init__(message)
        self.step = step
        self.project_id = project_id


class PartialUpdateError(Exception):
    """Raised on demand when an update left some field groups unapplied."""

    pass


class FieldGroup(str, Enum):
    """Units of change applied by a single update call."""

    DISPLAY_NAME = "display_name"
    PARENT = "parent"
    LABELS = "labels"
    BILLING = "billing"


class GroupOutcome(str, Enum):
    UNCHANGED = "unchanged"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# Changed-field names (as reported by the declarative layer) to field groups
CHANGED_FIELD_GROUPS: dict[str, FieldGroup] = {
    "display_name": FieldGroup.DISPLAY_NAME,
    "name": FieldGroup.DISPLAY_NAME,
    "org_id": FieldGroup.PARENT,
    "folder_id": FieldGroup.PARENT,
    "parent": FieldGroup.PARENT,
    "labels": FieldGroup.LABELS,
    "billing_account_id": FieldGroup.BILLING,
    "billing_account": FieldGroup.BILLING,
}

# Groups written through the Resource Manager update call, in call order
PROJECT_FIELD_GROUPS = (FieldGroup.DISPLAY_NAME, FieldGroup.PARENT, FieldGroup.LABELS)

# Replacement of the whole project is decided above this controller
APP_RUNTIME_FIELDS = frozenset({"app_runtime", "app_engine"})
LOCAL_ONLY_FIELDS = frozenset({"skip_delete", "auto_create_network"})
REPLACEMENT_FIELDS = frozenset({"project_id"})


@dataclass
class GroupResult:
    """Outcome of one field group in an update."""

    outcome: GroupOutcome = GroupOutcome.UNCHANGED
    reason: str | None = None


@dataclass
class UpdateResult:
    """Per-group result of an update."""

    project_id: str
    groups: dict[FieldGroup, GroupResult] = field(
        default_factory=lambda: {group: GroupResult() for group in FieldGroup}
    )

    @property
    def success(self) -> bool:
        return not self.failed_groups

    @property
    def succeeded_groups(self) -> list[FieldGroup]:
        return [g for g, r in self.groups.items() if r.outcome == GroupOutcome.SUCCEEDED]

    @property
    def failed_groups(self) -> list[FieldGroup]:
        return [g for g, r in self.groups.items() if r.outcome == GroupOutcome.FAILED]

    def raise_for_failures(self) -> None:
        """Raise PartialUpdateError if any group failed."""
        if self.success:
            return
        failures = "; ".join(
            f"{group.value}: {self.groups[group].reason}" for group in self.failed_groups
        )
        applied = ", ".join(g.value for g in self.succeeded_groups) or "none"
        raise PartialUpdateError(
            f"Update of project {self.project_id!r} partially failed "
            f"(applied: {applied}). Failures: {failures}"
        )


def changed_field_groups(changed: Iterable[str]) -> set[FieldGroup]:
    """Translate changed field names into the groups that must be written.

    Raises:
        ValueError: If a field is unknown or can only change by replacement.
    """
    groups: set[FieldGroup] = set()
    for name in changed:
        if name in REPLACEMENT_FIELDS:
            raise ValueError(f"{name} cannot be updated in place; the project must be replaced")
        if name in APP_RUNTIME_FIELDS or name in LOCAL_ONLY_FIELDS:
            continue
        group = CHANGED_FIELD_GROUPS.get(name)
        if group is None:
            valid = sorted(
                set(CHANGED_FIELD_GROUPS) | APP_RUNTIME_FIELDS | LOCAL_ONLY_FIELDS
            )
            raise ValueError(f"Unknown field {name!r}. Valid fields: {valid}")
        groups.add(group)
    return groups


class ProjectReconciler:
    """Create/read/update/delete/import controller for one project at a time.

    The reconciler is synchronous and sequential. It holds no per-project
    state of its own: callers pass the ProjectState they persist, and the
    reconciler updates it in place.
    """

    def __init__(
        self,
        clients: ClientSet,
        config: Config | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config or Config()
        self._clients = clients
        self._waiter = OperationWaiter.from_config(self._config, sleep)
        self._billing = BillingConvergenceRetrier.from_config(
            clients.billing, self._config, sleep
        )
        self._provenance_logger = get_provenance_logger()

    @property
    def config(self) -> Config:
        return self._config

    @contextmanager
    def _track(self, operation: str, project_id: str) -> Iterator[OperationProvenance]:
        provenance = self._provenance_logger.create_provenance(operation, project_id)
        start = time.monotonic()
        try:
            yield provenance
        except Exception as e:
            provenance.error = str(e)
            provenance.error_type = type(e).__name__
            raise
        finally:
            provenance.duration_seconds = time.monotonic() - start
            if self._config.enable_audit_logging:
                self._provenance_logger.log_provenance(provenance)

    # =========================================================================
    # Capability enablement
    # =========================================================================

    def enable_service(self, service_name: str, project_id: str) -> None:
        """Enable an API on a project. Enabling an enabled API is a no-op."""
        try:
            operation = self._clients.service_usage.enable(service_name, project_id)
        except RemoteApiError as e:
            if e.status_code == ALREADY_ENABLED_STATUS:
                logger.debug(
                    "Service already enabled",
                    extra={"project_id": project_id, "service": service_name},
                )
                return
            raise ReconcileError(
                f"Error enabling service {service_name} on project {project_id!r}: {e}",
                step=f"enable {service_name}",
                project_id=project_id,
            ) from e

        self._waiter.wait(
            operation,
            self._clients.service_usage.get_operation,
            f"service {service_name} to be enabled on project {project_id}",
        )
        logger.info("Enabled service", extra={"project_id": project_id, "service": service_name})

    # =========================================================================
    # Create
    # =========================================================================

    def create(self, state: ProjectState) -> None:
        """Create the project described by state.

        Partial success is possible: if billing or the application fails,
        the project itself stays created and state keeps its identity.

        Raises:
            ReconcileError: If a remote call fails.
            OperationError: If a create operation finished with an error.
            WaitTimeoutError: If waiting on an operation gave up.
            BillingError: If the billing account could not be linked.
            MappingError: If the app runtime block is malformed.
        """
        with self._track("create", state.project_id):
            self._create(state)

    def _create(self, state: ProjectState) -> None:
        project_id = state.project_id
        logger.info("Creating project", extra={"project_id": project_id})

        body: dict[str, object] = {"projectId": project_id, "name": state.display_name}
        parent = state.parent
        if parent is not None:
            body["parent"] = parent.model_dump(mode="json")
        if state.labels:
            body["labels"] = dict(state.labels)

        try:
            operation = self._clients.projects.create(body)
        except RemoteApiError as e:
            raise ReconcileError(
                f"Error creating project {project_id} ({state.display_name}): {e}",
                step="create project",
                project_id=project_id,
            ) from e

        state.id = project_id

        try:
            self._waiter.wait(
                operation,
                self._clients.projects.get_operation,
                f"project {project_id} to create",
            )
        except (OperationError, WaitTimeoutError):
            # The project was not created
            state.clear_id()
            raise

        if state.billing_account_id:
            self._billing.set_billing(state, state.billing_account_id)

        app = expand_app_runtime(project_id, state.app_runtime)
        if app is not None:
            self.enable_service(APP_RUNTIME_SERVICE, project_id)
            logger.info("Creating App Engine application", extra={"project_id": project_id})
            try:
                operation = self._clients.app_runtime.create(app)
            except RemoteApiError as e:
                raise ReconcileError(
                    f"Error creating App Engine application for project {project_id!r}: {e}",
                    step="create app runtime",
                    project_id=project_id,
                ) from e
            self._waiter.wait(
                operation,
                self._clients.app_runtime.get_operation,
                f"App Engine app in project {project_id} to create",
            )

        self._read(state)

        # There is no "don't create the default network" option, only
        # "delete it after creation"
        if not state.auto_create_network:
            self.enable_service(COMPUTE_SERVICE, project_id)
            try:
                force_delete_network(
                    self._clients.compute, self._waiter, project_id, DEFAULT_NETWORK_NAME
                )
            except RemoteApiError as e:
                raise ReconcileError(
                    f"Error deleting default network in project {project_id!r}: {e}",
                    step="delete default network",
                    project_id=project_id,
                ) from e

    # =========================================================================
    # Read
    # =========================================================================

    def read(self, state: ProjectState) -> None:
        """Refresh state from the live project.

        A project that no longer exists, or is no longer ACTIVE, clears
        state.id rather than raising.
        """
        with self._track("read", state.id) as provenance:
            self._read(state)
            provenance.project_absent = not state.exists

    def _read(self, state: ProjectState) -> None:
        project_id = state.id
        if not project_id:
            return

        try:
            live = LiveProject.model_validate(self._clients.projects.get(project_id))
        except NotFoundError:
            logger.warning(
                "Removing project from state because it no longer exists",
                extra={"project_id": project_id},
            )
            state.clear_id()
            return
        except RemoteApiError as e:
            raise ReconcileError(
                f"Error reading project {project_id!r}: {e}",
                step="read project",
                project_id=project_id,
            ) from e

        if not live.is_active:
            logger.warning(
                "Removing project from state because it is not ACTIVE",
                extra={"project_id": project_id, "lifecycle_state": live.lifecycle_state},
            )
            state.clear_id()
            return

        state.project_id = project_id
        state.number = live.project_number
        state.display_name = live.name
        state.labels = dict(live.labels)

        if live.parent is not None:
            match live.parent.type:
                case ParentType.ORGANIZATION:
                    state.org_id = live.parent.id
                    state.folder_id = ""
                case ParentType.FOLDER:
                    state.folder_id = live.parent.id
                    state.org_id = ""

        try:
            state.billing_account_id = self._billing.read_billing_account(project_id)
        except RemoteApiError as e:
            raise ReconcileError(
                f"Error reading billing account for project {project_id!r}: {e}",
                step="read billing account",
                project_id=project_id,
            ) from e

        # The application is read even when none is declared, so one that
        # exists outside the declaration shows up in state
        try:
            app = self._clients.app_runtime.get(project_id)
        except NotFoundError:
            state.app_runtime = []
        except RemoteApiError as e:
            raise ReconcileError(
                f"Error retrieving App Engine application {project_id!r}: {e}",
                step="read app runtime",
                project_id=project_id,
            ) from e
        else:
            state.app_runtime = flatten_app_runtime(app)

    # =========================================================================
    # Update
    # =========================================================================

    def update(
        self,
        state: ProjectState,
        declared: DeclaredProject,
        changed: Iterable[str],
    ) -> UpdateResult:
        """Apply changed fields of declared to the live project.

        Args:
            state: Tracked state of an existing project; updated in place for
                every group that succeeds.
            declared: New desired state.
            changed: Names of declared fields that differ from state.

        Returns:
            UpdateResult with one outcome per field group.

        Raises:
            ValueError: If changed names an unknown or replace-only field.
            ReconcileError: If the live project cannot be fetched.
        """
        with self._track("update", state.id) as provenance:
            result = self._update(state, declared, set(changed))
            provenance.group_results = {
                group.value: group_result.outcome.value
                for group, group_result in result.groups.items()
            }
            if not result.success:
                provenance.error = "partial update failure"
                provenance.error_type = PartialUpdateError.__name__
            return result

    def _update(
        self, state: ProjectState, declared: DeclaredProject, changed: set[str]
    ) -> UpdateResult:
        project_id = state.id
        groups = changed_field_groups(changed)
        result = UpdateResult(project_id=project_id)

        if changed & APP_RUNTIME_FIELDS:
            logger.debug(
                "Ignoring app runtime changes; the application cannot be updated in place",
                extra={"project_id": project_id},
            )

        if "skip_delete" in changed:
            state.skip_delete = declared.skip_delete
        if "auto_create_network" in changed:
            state.auto_create_network = declared.auto_create_network

        # No PATCH: fetch the whole object even though state was just refreshed
        try:
            live = LiveProject.model_validate(self._clients.projects.get(project_id))
        except NotFoundError as e:
            raise ReconcileError(
                f"Project {project_id!r} does not exist.",
                step="update project",
                project_id=project_id,
            ) from e
        except RemoteApiError as e:
            raise ReconcileError(
                f"Error checking project {project_id!r}: {e}",
                step="update project",
                project_id=project_id,
            ) from e

        for group in PROJECT_FIELD_GROUPS:
            if group not in groups:
                continue

            candidate = live.model_copy(deep=True)
            _apply_to_live(candidate, group, declared)

            try:
                updated = self._clients.projects.update(project_id, candidate.to_api())
            except RemoteApiError as e:
                reason = f"Error updating project {project_id!r}: {e}"
                logger.error(
                    "Project update failed",
                    extra={"project_id": project_id, "group": group.value, "error": str(e)},
                )
                result.groups[group] = GroupResult(GroupOutcome.FAILED, reason)
                continue

            live = LiveProject.model_validate(updated)
            _apply_to_state(state, group, declared)
            result.groups[group] = GroupResult(GroupOutcome.SUCCEEDED)
            logger.info(
                "Updated project", extra={"project_id": project_id, "group": group.value}
            )

        if FieldGroup.BILLING in groups:
            try:
                self._billing.set_billing(state, declared.billing_account_id)
            except BillingError as e:
                result.groups[FieldGroup.BILLING] = GroupResult(GroupOutcome.FAILED, str(e))
            else:
                result.groups[FieldGroup.BILLING] = GroupResult(GroupOutcome.SUCCEEDED)

        return result

    # =========================================================================
    # Delete
    # =========================================================================

    def delete(self, state: ProjectState) -> None:
        """Delete the project, or only stop tracking it when skip_delete is set.

        Raises:
            ReconcileError: If the delete call fails. state.id is kept.
        """
        with self._track("delete", state.id) as provenance:
            project_id = state.id
            if state.skip_delete:
                provenance.remote_calls_skipped = True
                logger.info(
                    "skip_delete set, removing project from state without deleting it",
                    extra={"project_id": project_id},
                )
                state.clear_id()
                return

            try:
                self._clients.projects.delete(project_id)
            except RemoteApiError as e:
                raise ReconcileError(
                    f"Error deleting project {project_id!r}: {e}",
                    step="delete project",
                    project_id=project_id,
                ) from e

            logger.info("Deleted project", extra={"project_id": project_id})
            state.clear_id()

    # =========================================================================
    # Import
    # =========================================================================

    def import_project(self, project_id: str) -> ProjectState:
        """Start tracking an existing project by id.

        auto_create_network cannot be recovered from the live project, so it
        is set to True, the value that produces no follow-up change.

        Raises:
            NotFoundError: If the project does not exist or is not ACTIVE.
        """
        with self._track("import", project_id) as provenance:
            state = ProjectState(id=project_id, project_id=project_id)
            self._read(state)
            if not state.exists:
                provenance.project_absent = True
                raise NotFoundError(f"Cannot import non-existent project {project_id!r}")
            state.auto_create_network = True
            return state


def _apply_to_live(live: LiveProject, group: FieldGroup, declared: DeclaredProject) -> None:
    match group:
        case FieldGroup.DISPLAY_NAME:
            live.name = declared.display_name
        case FieldGroup.PARENT:
            # A project can be moved, never detached
            if declared.parent is not None:
                live.parent = declared.parent
        case FieldGroup.LABELS:
            live.labels = dict(declared.labels)


def _apply_to_state(state: ProjectState, group: FieldGroup, declared: DeclaredProject) -> None:
    match group:
        case FieldGroup.DISPLAY_NAME:
            state.display_name = declared.display_name
        case FieldGroup.PARENT:
            state.org_id = declared.org_id
            state.folder_id = declared.folder_id
        case FieldGroup.LABELS:
            state.labels = dict(declared.labels)
