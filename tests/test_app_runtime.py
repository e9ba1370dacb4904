"""Tests for app runtime block mapping."""

import pytest

from project_operator.app_runtime import MappingError, expand_app_runtime, flatten_app_runtime
from project_operator.models import AppRuntime, FeatureSettings


class TestExpandAppRuntime:
    """Tests for expand_app_runtime."""

    def test_no_block(self) -> None:
        """No declared block means no application."""
        assert expand_app_runtime("my-project", []) is None

    def test_basic_block(self) -> None:
        """The project id doubles as the application id."""
        block = AppRuntime(location_id="us-central", auth_domain="example.com")

        app = expand_app_runtime("my-project", [block])

        assert app == {
            "id": "my-project",
            "authDomain": "example.com",
            "locationId": "us-central",
            "servingStatus": "",
        }

    def test_split_health_checks_false_is_sent(self) -> None:
        """A declared false must reach the API, not be dropped as empty."""
        block = AppRuntime(
            location_id="europe-west",
            feature_settings=[FeatureSettings(split_health_checks=False)],
        )

        app = expand_app_runtime("my-project", [block])

        assert app is not None
        assert app["featureSettings"] == {"splitHealthChecks": False}

    def test_more_than_one_block(self) -> None:
        """Two app runtime blocks cannot be mapped to one application."""
        blocks = [AppRuntime(location_id="us-central"), AppRuntime(location_id="us-east1")]

        with pytest.raises(MappingError, match="only one app_runtime block"):
            expand_app_runtime("my-project", blocks)

    def test_more_than_one_feature_settings_block(self) -> None:
        """Two feature settings blocks cannot be mapped to one application."""
        block = AppRuntime.model_construct(
            location_id="us-central",
            auth_domain="",
            serving_status="",
            feature_settings=[FeatureSettings(), FeatureSettings(split_health_checks=True)],
        )

        with pytest.raises(MappingError, match="feature_settings"):
            expand_app_runtime("my-project", [block])


class TestFlattenAppRuntime:
    """Tests for flatten_app_runtime."""

    def test_full_application(self) -> None:
        """Every reported field is mapped, dispatch rules in order."""
        app = {
            "name": "apps/my-project",
            "id": "my-project",
            "authDomain": "example.com",
            "locationId": "us-central",
            "servingStatus": "SERVING",
            "codeBucket": "staging.my-project.appspot.com",
            "defaultHostname": "my-project.appspot.com",
            "defaultBucket": "my-project.appspot.com",
            "gcrDomain": "us.gcr.io",
            "featureSettings": {"splitHealthChecks": True},
            "dispatchRules": [
                {"domain": "*", "path": "/api/*", "service": "api"},
                {"domain": "*", "path": "/*", "service": "default"},
            ],
        }

        [block] = flatten_app_runtime(app)

        assert block.name == "apps/my-project"
        assert block.location_id == "us-central"
        assert block.serving_status == "SERVING"
        assert block.default_hostname == "my-project.appspot.com"
        assert block.feature_settings == [FeatureSettings(split_health_checks=True)]
        assert [rule.service for rule in block.dispatch_rules] == ["api", "default"]

    def test_no_feature_settings(self) -> None:
        """Absent feature settings flatten to an empty list."""
        [block] = flatten_app_runtime({"id": "my-project", "locationId": "us-central"})

        assert block.feature_settings == []
        assert block.dispatch_rules == []

    def test_unlisted_region_is_kept(self) -> None:
        """Regions outside the declared-input allowlist are still reported."""
        [block] = flatten_app_runtime({"id": "my-project", "locationId": "me-central2"})

        assert block.location_id == "me-central2"

    def test_round_trip(self) -> None:
        """Flattening what was expanded yields the declared fields back."""
        declared = AppRuntime(
            auth_domain="example.com",
            location_id="europe-west",
            serving_status="SERVING",
            feature_settings=[FeatureSettings(split_health_checks=True)],
        )

        app = expand_app_runtime("my-project", [declared])
        assert app is not None
        [block] = flatten_app_runtime(app)

        assert block.auth_domain == declared.auth_domain
        assert block.location_id == declared.location_id
        assert block.serving_status == declared.serving_status
        assert block.feature_settings == declared.feature_settings
