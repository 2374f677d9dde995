from flask import Blueprint, jsonify

from ...services.models import ValueType

health_bp = Blueprint("health_bp", __name__, url_prefix="/health")

@health_bp.get("/")
def health() -> jsonify:
    """
    Health probe.

    Returns:
        {"status": "ok", "value_types": [...]}
    """
    return jsonify({"status": "ok", "value_types": [t.value for t in ValueType]})
