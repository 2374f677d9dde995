# FlagForge/flagforge/blueprints/admin/features_admin.py
"""Admin-facing feature endpoints for FlagForge.

Stores feature changes (reporting which SDK payloads they invalidate) and
previews compiled definitions, including drafts, for the dashboard.
"""


from __future__ import annotations

from typing import Any

from flask import Blueprint, current_app, g, jsonify, request

from ...errors.handlers import BadRequest, NotFound
from ...repositories import memory_repo
from ...services import flag_service
from ...services.auth_service import require_api_key
from ...services.parsing import feature_to_dict, parse_feature
from ...validators.feature_validator import validate_feature_payload


features_admin_bp = Blueprint("features_admin", __name__, url_prefix="/admin/features")


def _query_flag(name: str) -> bool:
    return request.args.get(name, "").lower() in ("1", "true", "yes")


@features_admin_bp.put("/<string:feature_id>")
@require_api_key
def put_feature(feature_id: str) -> tuple[Any, int]:
    """Create or update a feature for the authenticated organization.

    - Validates the payload against feature.schema.json.
    - Stores the new version and diffs it against the previous one.

    Returns:
        tuple: ({"feature": ..., "invalidated": [payload keys]}, 200).
    """
    payload = request.get_json(silent=True)
    validate_feature_payload(payload)

    try:
        feature = parse_feature({**payload, "id": feature_id, "organization": g.organization})
    except ValueError as exc:
        raise BadRequest(f"Invalid Feature: {exc}")

    keys = flag_service.save_feature(feature)
    stored = memory_repo.get_feature(g.organization, feature_id)

    return (
        jsonify(
            {
                "feature": feature_to_dict(stored),
                "invalidated": [k.to_json() for k in keys],
            }
        ),
        200,
    )


@features_admin_bp.get("/<string:feature_id>")
@require_api_key
def get_feature(feature_id: str) -> tuple[Any, int]:
    """Retrieve a stored feature.

    Returns:
        tuple: (JSON feature representation, HTTP status code).
    """
    feature = memory_repo.get_feature(g.organization, feature_id)
    if feature is None:
        raise NotFound(f"Feature not found: {feature_id}")

    return jsonify(feature_to_dict(feature)), 200


@features_admin_bp.get("/<string:feature_id>/definition/<string:environment>")
@require_api_key
def get_feature_definition(feature_id: str, environment: str) -> tuple[Any, int]:
    """Preview the compiled definition of a feature in one environment.

    Query params:
        - draft: compile the active draft when set ("1" / "true").
        - rule_ids: attach stored rule ids to compiled rules.

    Returns:
        tuple: ({"definition": <definition or null>}, 200), or 404 when
        the feature does not exist.
    """
    settings = current_app.extensions["flagforge"]["settings"]
    try:
        definition = flag_service.get_feature_definition(
            g.organization,
            feature_id,
            environment,
            use_draft=_query_flag("draft"),
            return_rule_id=_query_flag("rule_ids"),
            groups_attribute=settings.runtime_groups_attribute,
        )
    except LookupError:
        raise NotFound(f"Feature not found: {feature_id}")

    body = None if definition is None else definition.to_json()
    return jsonify({"definition": body}), 200
