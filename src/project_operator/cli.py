"""Cloud Project Operator CLI (projectctl).

Usage:
    projectctl create project.yaml                      # Create a declared project
    projectctl read my-project                          # Refresh stored state
    projectctl update project.yaml -c labels -c name    # Apply changed fields
    projectctl delete my-project                        # Delete (or forget, with skip_delete)
    projectctl import my-project                        # Track an existing project
    projectctl show my-project                          # Print stored state

The changed-field set for update comes from whatever produced the new
declaration; projectctl does not diff configurations itself.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import click

from .app_runtime import MappingError
from .billing import BillingError
from .clients import RemoteApiError
from .config import Config, ConfigurationError
from .main import build_reconciler, setup_logging
from .models import ProjectState
from .operations import OperationError, WaitTimeoutError
from .reconciler import PartialUpdateError, ProjectReconciler, ReconcileError
from .spec_loader import SpecLoadError, load_spec
from .state_store import StateStore, StateStoreError

CLI_VERSION = "0.1.0"

# Failures reported to the user as a one-line error with exit code 1
OPERATOR_ERRORS: tuple[type[Exception], ...] = (
    BillingError,
    MappingError,
    OperationError,
    PartialUpdateError,
    ReconcileError,
    RemoteApiError,
    SpecLoadError,
    StateStoreError,
    ValueError,
    WaitTimeoutError,
)


@dataclass
class CliContext:
    """Objects shared by every command."""

    config: Config
    store: StateStore
    reconciler_factory: Callable[[Config], ProjectReconciler] = build_reconciler
    _reconciler: ProjectReconciler | None = field(default=None, repr=False)

    @property
    def reconciler(self) -> ProjectReconciler:
        # Built on first use so show/help never touch credentials
        if self._reconciler is None:
            self._reconciler = self.reconciler_factory(self.config)
        return self._reconciler


def _load_tracked_state(store: StateStore, project_id: str) -> ProjectState:
    state = store.load(project_id)
    if state is None or not state.exists:
        raise click.ClickException(
            f"Project {project_id!r} is not tracked in {store.state_dir}. "
            f"Use 'projectctl import {project_id}' first."
        )
    return state


# =============================================================================
# Main CLI Group
# =============================================================================


@click.group()
@click.version_option(version=CLI_VERSION, prog_name="projectctl")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Cloud Project Operator CLI (projectctl).

    Reconciles declared Google Cloud projects (parent, billing, labels and an
    optional App Engine application) against the live control plane.
    """
    if ctx.obj is None:
        try:
            config = Config.from_env()
        except ConfigurationError as e:
            raise click.ClickException(str(e)) from e
        setup_logging(config.log_level)
        ctx.obj = CliContext(config=config, store=StateStore(config.state_dir))


@cli.command()
@click.argument("spec_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_obj
def create(obj: CliContext, spec_file: Path) -> None:
    """Create the project declared in SPEC_FILE."""
    try:
        declared = load_spec(spec_file)
        existing = obj.store.load(declared.project_id)
    except OPERATOR_ERRORS as e:
        raise click.ClickException(str(e)) from e

    if existing is not None and existing.exists:
        raise click.ClickException(
            f"Project {declared.project_id!r} is already tracked; use 'projectctl update'"
        )

    state = ProjectState.from_declared(declared)
    try:
        obj.reconciler.create(state)
    except OPERATOR_ERRORS as e:
        # Partial success still leaves a tracked project behind
        if state.exists:
            obj.store.save(state)
        raise click.ClickException(str(e)) from e

    obj.store.save(state)
    click.secho(f"Created project {state.project_id} (number {state.number})", fg="green")


@cli.command()
@click.argument("project_id")
@click.pass_obj
def read(obj: CliContext, project_id: str) -> None:
    """Refresh the stored state of PROJECT_ID from the live project."""
    try:
        state = _load_tracked_state(obj.store, project_id)
        obj.reconciler.read(state)
        if state.exists:
            obj.store.save(state)
        else:
            obj.store.remove(project_id)
    except OPERATOR_ERRORS as e:
        raise click.ClickException(str(e)) from e

    if state.exists:
        click.echo(state.model_dump_json(indent=2))
    else:
        click.secho(
            f"Project {project_id} no longer exists; removed it from state", fg="yellow"
        )


@cli.command()
@click.argument("spec_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--changed",
    "-c",
    "changed",
    multiple=True,
    required=True,
    help="Name of a field that changed (repeatable).",
)
@click.pass_obj
def update(obj: CliContext, spec_file: Path, changed: tuple[str, ...]) -> None:
    """Apply the CHANGED fields of SPEC_FILE to its tracked project."""
    try:
        declared = load_spec(spec_file)
        state = _load_tracked_state(obj.store, declared.project_id)
        result = obj.reconciler.update(state, declared, changed)
        obj.store.save(state)
    except OPERATOR_ERRORS as e:
        raise click.ClickException(str(e)) from e

    for group, group_result in result.groups.items():
        line = f"{group.value}: {group_result.outcome.value}"
        if group_result.reason:
            line += f" ({group_result.reason})"
        click.echo(line)

    try:
        result.raise_for_failures()
    except PartialUpdateError as e:
        raise click.ClickException(str(e)) from e


@cli.command()
@click.argument("project_id")
@click.pass_obj
def delete(obj: CliContext, project_id: str) -> None:
    """Delete PROJECT_ID (only forget it when skip_delete is set)."""
    try:
        state = _load_tracked_state(obj.store, project_id)
        obj.reconciler.delete(state)
        obj.store.remove(project_id)
    except OPERATOR_ERRORS as e:
        raise click.ClickException(str(e)) from e

    click.secho(f"Project {project_id} removed", fg="green")


@cli.command(name="import")
@click.argument("project_id")
@click.pass_obj
def import_(obj: CliContext, project_id: str) -> None:
    """Start tracking the existing project PROJECT_ID."""
    try:
        state = obj.reconciler.import_project(project_id)
        obj.store.save(state)
    except OPERATOR_ERRORS as e:
        raise click.ClickException(str(e)) from e

    click.secho(f"Imported project {project_id}", fg="green")


@cli.command()
@click.argument("project_id")
@click.pass_obj
def show(obj: CliContext, project_id: str) -> None:
    """Print the stored state of PROJECT_ID."""
    try:
        state = obj.store.load(project_id)
    except StateStoreError as e:
        raise click.ClickException(str(e)) from e

    if state is None:
        raise click.ClickException(f"No state stored for project {project_id!r}")
    click.echo(state.model_dump_json(indent=2))
