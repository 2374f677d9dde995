"""SDK payload endpoint for FlagForge.

This blueprint exposes the compiled feature definitions of one
(environment, project) payload, the bundle remote evaluation SDKs
download.
"""

from __future__ import annotations

from typing import Any

from flask import Blueprint, current_app, g, jsonify, request

from ...services import flag_service
from ...services.auth_service import require_api_key
from ...services.models import PayloadKey


sdk_payload_bp = Blueprint("sdk_payload_bp", __name__, url_prefix="/sdk-payload")


@sdk_payload_bp.get("/<string:environment>")
@require_api_key
def get_sdk_payload(environment: str) -> tuple[Any, int]:
    """Compile the SDK payload for an environment.

    Query params:
        - project (optional): only features of this project; all
          features when omitted.

    Behaviour:
        - Requires a valid ``X-Api-Key`` header.
        - Features archived or disabled in the environment are left out.

    Returns:
        tuple: ({"environment", "project", "features": {id: definition}}, 200).
    """
    settings = current_app.extensions["flagforge"]["settings"]
    key = PayloadKey(environment, request.args.get("project", ""))

    features = flag_service.get_sdk_payload(
        g.organization,
        key,
        groups_attribute=settings.runtime_groups_attribute,
    )

    return (
        jsonify(
            {
                "environment": key.environment,
                "project": key.project,
                "features": {fid: d.to_json() for fid, d in features.items()},
            }
        ),
        200,
    )
