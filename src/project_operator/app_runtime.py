"""Mapping between the declared app runtime block and the App Engine application.

expand_app_runtime() turns the declared block into an Application request body.
flatten_app_runtime() turns an Application resource back into the declared
shape, including the read-only fields the API assigns.

Both functions are pure: no I/O, no logging.
"""

from __future__ import annotations

from typing import Any

from .models import AppRuntime, DispatchRule, FeatureSettings


class MappingError(Exception):
    """Raised when a declared block cannot be mapped to a remote object."""

    pass


def expand_app_runtime(project_id: str, blocks: list[AppRuntime]) -> dict[str, Any] | None:
    """Build the Application request body for a project.

    Both lists hold at most one element.

    Args:
        project_id: Project that owns the application. Used as the app id.
        blocks: Declared app runtime blocks (zero or one).

    Returns:
        Application body, or None if no block is declared.

    Raises:
        MappingError: If more than one app runtime or feature settings block
            is declared.
    """
    if not blocks:
        return None
    if len(blocks) > 1:
        raise MappingError("only one app_runtime block may be defined per project")

    block = blocks[0]
    app: dict[str, Any] = {
        "id": project_id,
        "authDomain": block.auth_domain,
        "locationId": block.location_id,
        "servingStatus": block.serving_status,
    }

    feature_settings = _expand_feature_settings(block.feature_settings)
    if feature_settings is not None:
        app["featureSettings"] = feature_settings

    return app


def _expand_feature_settings(blocks: list[FeatureSettings]) -> dict[str, Any] | None:
    if not blocks:
        return None
    if len(blocks) > 1:
        raise MappingError("only one feature_settings block may be defined per app")
    # Always sent, even when false: the API treats a missing field as "unset"
    return {"splitHealthChecks": bool(blocks[0].split_health_checks)}


def flatten_app_runtime(app: dict[str, Any]) -> list[AppRuntime]:
    """Convert an Application resource into the declared block shape."""
    # The API may report regions newer than the declared-input allowlist
    return [
        AppRuntime.model_construct(
            auth_domain=app.get("authDomain", ""),
            location_id=app.get("locationId", ""),
            serving_status=app.get("servingStatus", ""),
            feature_settings=_flatten_feature_settings(app.get("featureSettings")),
            name=app.get("name", ""),
            code_bucket=app.get("codeBucket", ""),
            default_hostname=app.get("defaultHostname", ""),
            default_bucket=app.get("defaultBucket", ""),
            gcr_domain=app.get("gcrDomain", ""),
            dispatch_rules=_flatten_dispatch_rules(app.get("dispatchRules") or []),
        )
    ]


def _flatten_feature_settings(settings: dict[str, Any] | None) -> list[FeatureSettings]:
    if settings is None:
        return []
    return [FeatureSettings(split_health_checks=settings.get("splitHealthChecks", False))]


def _flatten_dispatch_rules(rules: list[dict[str, Any]]) -> list[DispatchRule]:
    return [
        DispatchRule(
            domain=rule.get("domain", ""),
            path=rule.get("path", ""),
            service=rule.get("service", ""),
        )
        for rule in rules
    ]
