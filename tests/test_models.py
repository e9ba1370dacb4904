"""Tests for the Pydantic models."""

import pytest
from pydantic import ValidationError

from project_operator.models import (
    STORED_STATE_CONTEXT,
    AppRuntime,
    DeclaredProject,
    LiveProject,
    ParentRef,
    ParentType,
    ProjectState,
    parent_from_ids,
)


class TestDeclaredProject:
    """Tests for DeclaredProject model."""

    def test_valid_spec(self) -> None:
        """Test parsing a valid declaration using the historical field names."""
        data = {
            "project_id": "my-project-123",
            "name": "My Project",
            "org_id": 123456789,
            "labels": {"env": "test"},
            "billing_account": "012345-567890-ABCDEF",
            "app_engine": [{"location_id": "us-central"}],
        }
        spec = DeclaredProject.model_validate(data)

        assert spec.project_id == "my-project-123"
        assert spec.display_name == "My Project"
        assert spec.org_id == "123456789"
        assert spec.billing_account_id == "012345-567890-ABCDEF"
        assert spec.app_runtime[0].location_id == "us-central"
        assert spec.skip_delete is False
        assert spec.auto_create_network is True

    def test_field_names_accepted(self) -> None:
        """Test that the field names work as well as the aliases."""
        spec = DeclaredProject.model_validate(
            {"project_id": "my-project", "display_name": "Mine", "billing_account_id": "A-B-C"}
        )
        assert spec.display_name == "Mine"
        assert spec.billing_account_id == "A-B-C"

    def test_both_parents_rejected(self) -> None:
        """Test that org_id and folder_id are mutually exclusive."""
        with pytest.raises(ValidationError) as exc_info:
            DeclaredProject.model_validate(
                {"project_id": "my-project", "name": "x", "org_id": "1", "folder_id": "2"}
            )

        assert "cannot be both set" in str(exc_info.value)

    def test_folder_prefix_stripped(self) -> None:
        """Test that 'folders/123' and '123' mean the same folder."""
        spec = DeclaredProject.model_validate(
            {"project_id": "my-project", "name": "x", "folder_id": "folders/4567"}
        )
        assert spec.folder_id == "4567"
        assert spec.parent == ParentRef(type=ParentType.FOLDER, id="4567")

    def test_no_parent(self) -> None:
        """Test that a declaration without a parent has no parent reference."""
        spec = DeclaredProject.model_validate({"project_id": "my-project", "name": "x"})
        assert spec.parent is None

    @pytest.mark.parametrize("project_id", ["My-Project", "short", "1project", "trailing-"])
    def test_invalid_project_id(self, project_id: str) -> None:
        """Test that malformed project ids are rejected."""
        with pytest.raises(ValidationError):
            DeclaredProject.model_validate({"project_id": project_id, "name": "x"})

    def test_display_name_too_long(self) -> None:
        """Test that display names over 30 characters are rejected."""
        with pytest.raises(ValidationError):
            DeclaredProject.model_validate({"project_id": "my-project", "name": "x" * 31})

    def test_more_than_one_app_block_rejected(self) -> None:
        """Test that at most one app runtime block may be declared."""
        with pytest.raises(ValidationError):
            DeclaredProject.model_validate(
                {
                    "project_id": "my-project",
                    "name": "x",
                    "app_engine": [{"location_id": "us-central"}, {"location_id": "us-east1"}],
                }
            )

    def test_frozen(self) -> None:
        """Test that declared projects are immutable."""
        spec = DeclaredProject.model_validate({"project_id": "my-project", "name": "x"})
        with pytest.raises(ValidationError):
            spec.display_name = "changed"  # type: ignore[misc]


class TestAppRuntime:
    """Tests for AppRuntime model."""

    def test_invalid_location(self) -> None:
        """Test that an unknown region is rejected in declared input."""
        with pytest.raises(ValidationError) as exc_info:
            AppRuntime.model_validate({"location_id": "mars-north1"})

        assert "location_id" in str(exc_info.value)

    def test_invalid_serving_status(self) -> None:
        """Test that an unknown serving status is rejected."""
        with pytest.raises(ValidationError):
            AppRuntime.model_validate({"serving_status": "RUNNING"})

    def test_stored_state_skips_allowlists(self) -> None:
        """Test that values read back from the API load from stored state."""
        app = AppRuntime.model_validate(
            {"location_id": "mars-north1"}, context=STORED_STATE_CONTEXT
        )
        assert app.location_id == "mars-north1"

    def test_more_than_one_feature_settings_rejected(self) -> None:
        """Test that at most one feature settings block may be declared."""
        with pytest.raises(ValidationError):
            AppRuntime.model_validate(
                {
                    "feature_settings": [
                        {"split_health_checks": True},
                        {"split_health_checks": False},
                    ]
                }
            )


class TestLiveProject:
    """Tests for LiveProject model."""

    def test_unknown_fields_survive_round_trip(self) -> None:
        """Test that fields the model does not know are sent back on update."""
        raw = {
            "projectId": "my-project",
            "projectNumber": 123456,
            "name": "Mine",
            "lifecycleState": "ACTIVE",
            "createTime": "2026-01-01T00:00:00.000Z",
            "parent": {"type": "organization", "id": "42"},
        }
        live = LiveProject.model_validate(raw)

        assert live.project_number == "123456"
        assert live.is_active
        body = live.to_api()
        assert body["createTime"] == "2026-01-01T00:00:00.000Z"
        assert body["parent"] == {"type": "organization", "id": "42"}
        assert body["projectId"] == "my-project"

    def test_not_active(self) -> None:
        """Test that a project pending deletion is not active."""
        live = LiveProject.model_validate(
            {"projectId": "my-project", "lifecycleState": "DELETE_REQUESTED"}
        )
        assert not live.is_active

    def test_no_parent_omitted(self) -> None:
        """Test that a missing parent is not serialized as null."""
        live = LiveProject.model_validate({"projectId": "my-project"})
        assert "parent" not in live.to_api()


class TestProjectState:
    """Tests for ProjectState model."""

    def test_from_declared(self) -> None:
        """Test seeding state from a declaration."""
        declared = DeclaredProject.model_validate(
            {
                "project_id": "my-project",
                "name": "Mine",
                "folder_id": "99",
                "skip_delete": True,
                "auto_create_network": False,
            }
        )
        state = ProjectState.from_declared(declared)

        assert state.project_id == "my-project"
        assert state.folder_id == "99"
        assert state.skip_delete is True
        assert state.auto_create_network is False
        assert not state.exists

    def test_clear_id(self) -> None:
        """Test that clearing the id stops tracking the project."""
        state = ProjectState(id="my-project", project_id="my-project")
        assert state.exists

        state.clear_id()

        assert not state.exists
        assert state.project_id == "my-project"


class TestParentFromIds:
    """Tests for parent_from_ids."""

    def test_organization(self) -> None:
        assert parent_from_ids("42", "") == ParentRef(type=ParentType.ORGANIZATION, id="42")

    def test_both_set(self) -> None:
        with pytest.raises(ValueError):
            parent_from_ids("42", "43")
