# FlagForge/flagforge/services/values.py
"""Coercion of stored (string) feature values into their declared type.

Values are stored as text and only turned into typed values when a
definition is compiled. Coercion never raises: unusable input falls back
to the most conservative value for the type.

Note on booleans: only the literal ``"false"`` is false. Any other text,
including ``""`` and ``"no"``, coerces to ``True``. SDKs rely on this
behaviour, so it is kept as is.
"""


from __future__ import annotations

import json
import math
import re
from typing import Any, Callable, Dict, Union

from .models import ValueType

Number = Union[int, float]

# Leading numeric prefix accepted by a JavaScript-style parseFloat.
_FLOAT_PREFIX = re.compile(
    r"^[+-]?(?:Infinity|(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)"
)


def _as_number(value: float) -> Number:
    """Return integral floats as ``int`` so they serialize like SDK numbers."""
    if math.isfinite(value) and value.is_integer():
        return int(value)
    return value


def parse_float(value: Any) -> Number:
    """Parse ``value`` the way ``parseFloat(value) || 0`` does.

    Leading whitespace is skipped and the longest numeric prefix is used,
    so ``"12px"`` gives ``12``. Anything without a numeric prefix gives 0.
    """
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        if isinstance(value, float) and math.isnan(value):
            return 0
        return _as_number(float(value))
    if not isinstance(value, str):
        return 0

    match = _FLOAT_PREFIX.match(value.lstrip())
    if match is None:
        return 0
    text = match.group(0)
    if text.lstrip("+-") == "Infinity":
        number = -math.inf if text.startswith("-") else math.inf
    else:
        number = float(text)
    return _as_number(number) if number else 0


def _coerce_json(raw: str) -> Any:
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return None


def _coerce_number(raw: str) -> Number:
    return parse_float(raw)


def _coerce_string(raw: str) -> str:
    return raw


def _coerce_boolean(raw: str) -> bool:
    return raw != "false"


_COERCERS: Dict[ValueType, Callable[[str], Any]] = {
    ValueType.JSON: _coerce_json,
    ValueType.NUMBER: _coerce_number,
    ValueType.STRING: _coerce_string,
    ValueType.BOOLEAN: _coerce_boolean,
}


def coerce_value(value_type: ValueType, raw: str) -> Any:
    """Convert a stored value into the feature's declared runtime type.

    Args:
        value_type: Declared type of the feature.
        raw: Stored textual value.

    Returns:
        The typed value: parsed JSON (``None`` when unparsable), a number
        (0 when unparsable), the text itself, or a boolean.
    """
    return _COERCERS[ValueType(value_type)](raw)


def clamp(value: float, lower: float = 0.0, upper: float = 1.0) -> Number:
    return _as_number(float(min(max(value, lower), upper)))


def round_variation_weight(weight: float) -> Number:
    """Round half-up to 4 decimal places."""
    return _as_number(math.floor(weight * 10000 + 0.5) / 10000)
