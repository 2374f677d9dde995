# FlagForge/flagforge/blueprints/admin/references_admin.py
"""Admin endpoints for the records features point to (experiments, saved groups)."""


from __future__ import annotations

from typing import Any

from flask import Blueprint, g, jsonify, request

from ...errors.handlers import BadRequest
from ...services import flag_service
from ...services.auth_service import require_api_key
from ...services.parsing import parse_experiment, parse_saved_group
from ...validators.reference_validator import (
    validate_experiment_payload,
    validate_saved_group_payload,
)


references_admin_bp = Blueprint("references_admin", __name__, url_prefix="/admin")


@references_admin_bp.put("/experiments/<string:experiment_id>")
@require_api_key
def put_experiment(experiment_id: str) -> tuple[Any, int]:
    """Create or update an experiment.

    Returns:
        tuple: ({"invalidated": [payload keys]}, 200) listing the payloads
        of features whose live rules reference the experiment.
    """
    payload = request.get_json(silent=True)
    validate_experiment_payload(payload)

    try:
        experiment = parse_experiment({**payload, "id": experiment_id})
    except ValueError as exc:
        raise BadRequest(f"Invalid Experiment: {exc}")

    keys = flag_service.save_experiment(g.organization, experiment)
    return jsonify({"invalidated": [k.to_json() for k in keys]}), 200


@references_admin_bp.put("/saved-groups/<string:group_id>")
@require_api_key
def put_saved_group(group_id: str) -> tuple[Any, int]:
    """Create or update a saved group.

    Returns:
        tuple: ({"invalidated": [payload keys]}, 200) listing the payloads
        of features whose live rules target the group.
    """
    payload = request.get_json(silent=True)
    validate_saved_group_payload(payload)

    try:
        group = parse_saved_group({**payload, "id": group_id})
    except ValueError as exc:
        raise BadRequest(f"Invalid SavedGroup: {exc}")

    keys = flag_service.save_saved_group(g.organization, group)
    return jsonify({"invalidated": [k.to_json() for k in keys]}), 200
