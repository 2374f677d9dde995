# FlagForge/flagforge/validators/feature_validator.py
"""
Validator for admin feature payloads using JSON Schema.

The Feature schema is loaded once at import time.
"""


from pathlib import Path
import json
from jsonschema import validate as js_validate, ValidationError
from ..errors.handlers import BadRequest

# Resolve schema path
SCHEMA_PATH = Path(__file__).resolve().parent.parent / "schemas" / "feature.schema.json"

# Load schema
with SCHEMA_PATH.open("r", encoding="utf-8") as f:
    FEATURE_SCHEMA = json.load(f)


def validate_feature_payload(payload: dict) -> None:
    """
    Validate an admin Feature payload against the schema.

    Args:
        payload: Parsed JSON body describing the feature.

    Raises:
        BadRequest: If payload is not an object or violates the schema.
    """
    if not isinstance(payload, dict):
        raise BadRequest("Body must be a JSON object.")

    try:
        js_validate(instance=payload, schema=FEATURE_SCHEMA)
    except ValidationError as e:
        msg = getattr(e, "message", None) or str(e)
        raise BadRequest(f"Invalid Feature: {msg}")
