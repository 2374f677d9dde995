# FlagForge/flagforge/validators/reference_validator.py
"""
Validators for the records features refer to: experiments and saved groups.

Both schemas are loaded once at import time.
"""


from pathlib import Path
import json
from jsonschema import validate as js_validate, ValidationError
from ..errors.handlers import BadRequest


SCHEMAS_DIR = Path(__file__).resolve().parent.parent / "schemas"

with (SCHEMAS_DIR / "experiment.schema.json").open("r", encoding="utf-8") as f:
    EXPERIMENT_SCHEMA = json.load(f)

with (SCHEMAS_DIR / "saved_group.schema.json").open("r", encoding="utf-8") as f:
    SAVED_GROUP_SCHEMA = json.load(f)


def _validate(payload: dict, schema: dict, name: str) -> None:
    if not isinstance(payload, dict):
        raise BadRequest("Payload must be a JSON object.")

    try:
        js_validate(instance=payload, schema=schema)
    except ValidationError as e:
        msg = getattr(e, "message", None) or str(e)
        raise BadRequest(f"Invalid {name}: {msg}")


def validate_experiment_payload(payload: dict) -> None:
    """
    Validate an experiment body against the Experiment schema.

    Raises:
        BadRequest: If payload is not an object or doesn't match the schema.
    """
    _validate(payload, EXPERIMENT_SCHEMA, "Experiment")


def validate_saved_group_payload(payload: dict) -> None:
    """
    Validate a saved group body against the SavedGroup schema.

    Raises:
        BadRequest: If payload is not an object or doesn't match the schema.
    """
    _validate(payload, SAVED_GROUP_SCHEMA, "SavedGroup")
