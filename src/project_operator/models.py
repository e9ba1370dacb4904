"""Pydantic models for declared, live and tracked project state.

These models provide:
1. Type-safe YAML parsing of the declared project
2. Validation at the boundary (fail fast, before any remote call)
3. A camelCase view of the live Resource Manager project that can be sent
   back whole on update
4. The persisted local state the reconciler reads and writes
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, Field, ValidationInfo, field_validator, model_validator

# App Engine regions accepted for a new application
VALID_APP_LOCATIONS: frozenset[str] = frozenset(
    {
        "northamerica-northeast1",
        "us-central",
        "us-east1",
        "us-east4",
        "southamerica-east1",
        "europe-west",
        "europe-west2",
        "europe-west3",
        "asia-northeast1",
        "asia-south1",
        "australia-southeast1",
    }
)

VALID_SERVING_STATUSES: frozenset[str] = frozenset(
    {"UNSPECIFIED", "SERVING", "USER_DISABLED", "SYSTEM_DISABLED"}
)

# 6-30 chars, lowercase letters, digits and hyphens, starting with a letter
VALID_PROJECT_ID_PATTERN = r"^[a-z][a-z0-9-]{4,28}[a-z0-9]$"

FOLDER_PREFIX = "folders/"
LIFECYCLE_ACTIVE = "ACTIVE"


class ParentType(str, Enum):
    """Resource Manager parent types a project can live under."""

    ORGANIZATION = "organization"
    FOLDER = "folder"


class ParentRef(BaseModel):
    """Reference to a project's parent container."""

    model_config = {"frozen": True}

    type: ParentType
    id: str


def parse_folder_id(value: str) -> str:
    """Strip the optional 'folders/' prefix from a folder reference."""
    if value.startswith(FOLDER_PREFIX):
        return value[len(FOLDER_PREFIX) :]
    return value


def parent_from_ids(org_id: str, folder_id: str) -> ParentRef | None:
    """Build the parent reference for an organization or folder id."""
    if org_id and folder_id:
        raise ValueError("'org_id' and 'folder_id' cannot be both set")
    if org_id:
        return ParentRef(type=ParentType.ORGANIZATION, id=org_id)
    if folder_id:
        return ParentRef(type=ParentType.FOLDER, id=parse_folder_id(folder_id))
    return None


STORED_STATE_CONTEXT = {"stored_state": True}


def _is_stored_state(info: ValidationInfo) -> bool:
    # Persisted state holds values read back from the API, which may report
    # regions newer than the declared-input allowlist
    return bool(info.context and info.context.get("stored_state"))


def _coerce_id(value: Any) -> Any:
    # YAML turns numeric org/folder ids into ints
    if value is None:
        return ""
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


# =============================================================================
# App Runtime (App Engine application) block
# =============================================================================


class DispatchRule(BaseModel):
    """URL dispatch rule reported by the application. Read-only."""

    model_config = {"extra": "ignore"}

    domain: str = ""
    path: str = ""
    service: str = ""


class FeatureSettings(BaseModel):
    """Application feature settings."""

    model_config = {"extra": "ignore"}

    split_health_checks: bool = False


class AppRuntime(BaseModel):
    """Declared-shape application runtime block.

    auth_domain, location_id, serving_status and feature_settings cannot be
    changed in place once the application exists. The remaining fields are
    assigned by the API and only ever populated by a read.
    """

    model_config = {"extra": "ignore", "populate_by_name": True}

    auth_domain: str = ""
    location_id: str = ""
    serving_status: str = ""
    feature_settings: list[FeatureSettings] = Field(default_factory=list, max_length=1)

    # Read-only, remote-assigned
    name: str = ""
    code_bucket: str = ""
    default_hostname: str = ""
    default_bucket: str = ""
    gcr_domain: str = ""
    dispatch_rules: list[DispatchRule] = Field(default_factory=list, alias="url_dispatch_rule")

    @field_validator("location_id")
    @classmethod
    def validate_location(cls, v: str, info: ValidationInfo) -> str:
        if _is_stored_state(info):
            return v
        if v and v not in VALID_APP_LOCATIONS:
            raise ValueError(f"location_id must be one of {sorted(VALID_APP_LOCATIONS)}")
        return v

    @field_validator("serving_status")
    @classmethod
    def validate_serving_status(cls, v: str, info: ValidationInfo) -> str:
        if _is_stored_state(info):
            return v
        if v and v not in VALID_SERVING_STATUSES:
            raise ValueError(f"serving_status must be one of {sorted(VALID_SERVING_STATUSES)}")
        return v


# =============================================================================
# Declared project
# =============================================================================


class DeclaredProject(BaseModel):
    """Desired state for one project, as validated from the declared input.

    Field aliases accept the historical configuration names (name,
    billing_account, app_engine) so existing declarations keep working.
    """

    model_config = {"extra": "ignore", "populate_by_name": True, "frozen": True}

    project_id: Annotated[str, Field(pattern=VALID_PROJECT_ID_PATTERN)]
    display_name: Annotated[str, Field(min_length=1, max_length=30, alias="name")]
    org_id: str = ""
    folder_id: str = ""
    labels: dict[str, str] = Field(default_factory=dict)
    billing_account_id: str = Field("", alias="billing_account")
    skip_delete: bool = False
    auto_create_network: bool = True
    app_runtime: list[AppRuntime] = Field(
        default_factory=list, max_length=1, alias="app_engine"
    )

    @field_validator("org_id", "folder_id", mode="before")
    @classmethod
    def coerce_parent_id(cls, v: Any) -> Any:
        return _coerce_id(v)

    @field_validator("folder_id")
    @classmethod
    def normalize_folder_id(cls, v: str) -> str:
        return parse_folder_id(v)

    @model_validator(mode="after")
    def validate_single_parent(self) -> DeclaredProject:
        if self.org_id and self.folder_id:
            raise ValueError("'org_id' and 'folder_id' cannot be both set")
        return self

    @property
    def parent(self) -> ParentRef | None:
        return parent_from_ids(self.org_id, self.folder_id)


# =============================================================================
# Live project (Resource Manager v1 representation)
# =============================================================================


class LiveProject(BaseModel):
    """Project as returned by Resource Manager.

    Unknown fields are preserved: the API has no PATCH, so every update sends
    the whole object back.
    """

    model_config = {"extra": "allow", "populate_by_name": True}

    project_id: str = Field(alias="projectId")
    project_number: str = Field("", alias="projectNumber")
    name: str = ""
    labels: dict[str, str] = Field(default_factory=dict)
    lifecycle_state: str = Field("", alias="lifecycleState")
    parent: ParentRef | None = None

    @field_validator("project_number", mode="before")
    @classmethod
    def coerce_project_number(cls, v: Any) -> Any:
        return _coerce_id(v)

    @property
    def is_active(self) -> bool:
        return self.lifecycle_state == LIFECYCLE_ACTIVE

    def to_api(self) -> dict[str, Any]:
        """Serialize back to the camelCase request body."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# Tracked local state
# =============================================================================


class ProjectState(BaseModel):
    """Local state the reconciler reads from and writes to.

    An empty id means the project is not (or no longer) tracked. Read clears
    it when the project is gone; delete clears it once the project is deleted.
    """

    model_config = {"extra": "ignore"}

    id: str = ""
    project_id: str = ""
    display_name: str = ""
    org_id: str = ""
    folder_id: str = ""
    labels: dict[str, str] = Field(default_factory=dict)
    billing_account_id: str = ""
    skip_delete: bool = False
    auto_create_network: bool = True

    # Computed
    number: str = ""
    app_runtime: list[AppRuntime] = Field(default_factory=list)

    @classmethod
    def from_declared(cls, declared: DeclaredProject) -> ProjectState:
        """Seed state for a project that is about to be created."""
        return cls(
            project_id=declared.project_id,
            display_name=declared.display_name,
            org_id=declared.org_id,
            folder_id=declared.folder_id,
            labels=dict(declared.labels),
            billing_account_id=declared.billing_account_id,
            skip_delete=declared.skip_delete,
            auto_create_network=declared.auto_create_network,
            app_runtime=[block.model_copy(deep=True) for block in declared.app_runtime],
        )

    @property
    def exists(self) -> bool:
        return bool(self.id)

    @property
    def parent(self) -> ParentRef | None:
        return parent_from_ids(self.org_id, self.folder_id)

    def clear_id(self) -> None:
        self.id = ""
