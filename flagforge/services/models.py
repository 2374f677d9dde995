# FlagForge/flagforge/services/models.py
"""Domain model for feature definitions and SDK payloads.

Stored entities (features, experiments, saved groups) are read-only
snapshots handed in by the persistence layer. Compiled entities
(``CompiledRule``, ``FeatureDefinition``, ``PayloadKey``) are recomputed
on every call and are never the source of truth.

Every model is a frozen dataclass and every sequence is a tuple, so a
snapshot can be shared by parallel compilations without copying.
"""


from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, NamedTuple, Optional, Tuple


def json_safe(value: Any) -> Any:
    """Replace non-finite floats with ``None``, as ``JSON.stringify`` does."""
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    if isinstance(value, dict):
        return {k: json_safe(v) for k, v in value.items()}
    return value


class ValueType(str, Enum):
    """Declared runtime type of a feature value."""

    BOOLEAN = "boolean"
    NUMBER = "number"
    STRING = "string"
    JSON = "json"


class ExperimentStatus(str, Enum):
    DRAFT = "draft"
    RUNNING = "running"
    STOPPED = "stopped"


class GroupSource(str, Enum):
    """Where a saved group is resolved.

    ``runtime`` groups are matched by the SDK against the runtime groups
    attribute, ``list`` groups are expanded here into their values.
    """

    RUNTIME = "runtime"
    LIST = "list"


class _NotSet:
    """Marker for an absent compiled field (``None`` is a valid value)."""

    _instance: Optional["_NotSet"] = None

    def __new__(cls) -> "_NotSet":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NOT_SET"

    def __bool__(self) -> bool:
        return False


NOT_SET: Any = _NotSet()


# ---------- Targeting ----------


@dataclass(frozen=True)
class ScheduleWindow:
    """One schedule entry of a rule.

    The window applies while ``start <= now < end`` (missing bounds are
    open). ``enabled`` is the state the rule takes while it applies.
    """

    start: Optional[datetime] = None
    end: Optional[datetime] = None
    enabled: bool = True


@dataclass(frozen=True)
class SavedGroupTargeting:
    ids: Tuple[str, ...] = ()
    match: str = "all"


@dataclass(frozen=True)
class SavedGroup:
    """A saved group as resolved for compilation.

    Attributes:
        id: Saved group id referenced by rules and conditions.
        key: Attribute name for ``list`` groups, group key for
            ``runtime`` groups.
        source: How the group is resolved.
        values: Concrete values for ``list`` groups.
    """

    id: str
    key: str
    source: GroupSource = GroupSource.LIST
    values: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class Namespace:
    enabled: bool = False
    name: str = ""
    range: Tuple[Any, Any] = (0, 1)


# ---------- Rules ----------


@dataclass(frozen=True)
class FeatureRule:
    """Fields shared by every stored rule variant."""

    rule_type: ClassVar[str] = ""

    id: str = ""
    description: str = ""
    enabled: bool = True
    condition: str = ""
    saved_groups: Tuple[SavedGroupTargeting, ...] = ()
    schedule_rules: Tuple[ScheduleWindow, ...] = ()


@dataclass(frozen=True)
class ForceRule(FeatureRule):
    rule_type: ClassVar[str] = "force"

    value: str = ""


@dataclass(frozen=True)
class RolloutRule(FeatureRule):
    rule_type: ClassVar[str] = "rollout"

    value: str = ""
    coverage: float = 1.0
    hash_attribute: str = ""


@dataclass(frozen=True)
class ExperimentValue:
    value: str = ""
    weight: float = 0.0
    name: str = ""


@dataclass(frozen=True)
class ExperimentRule(FeatureRule):
    """Inline experiment declared directly on the feature."""

    rule_type: ClassVar[str] = "experiment"

    values: Tuple[ExperimentValue, ...] = ()
    coverage: float = 1.0
    tracking_key: str = ""
    hash_attribute: str = ""
    namespace: Optional[Namespace] = None


@dataclass(frozen=True)
class ExperimentRefVariation:
    variation_id: str
    value: str = ""


@dataclass(frozen=True)
class ExperimentRefRule(FeatureRule):
    """Rule delegating targeting and traffic split to an experiment."""

    rule_type: ClassVar[str] = "experiment-ref"

    experiment_id: str = ""
    variations: Tuple[ExperimentRefVariation, ...] = ()


@dataclass(frozen=True)
class EnvironmentSettings:
    enabled: bool = False
    rules: Tuple[FeatureRule, ...] = ()


@dataclass(frozen=True)
class FeatureDraft:
    """Pending revision of a feature.

    ``default_value`` is ``None`` when the draft keeps the live default,
    and ``rules`` only holds the environments the draft touches.
    """

    active: bool = False
    default_value: Optional[str] = None
    rules: Dict[str, Tuple[FeatureRule, ...]] = field(default_factory=dict)


@dataclass(frozen=True)
class Feature:
    """A feature flag as stored for one organization."""

    id: str
    organization: str
    value_type: ValueType
    default_value: str
    project: str = ""
    archived: bool = False
    environment_settings: Dict[str, EnvironmentSettings] = field(
        default_factory=dict
    )
    draft: Optional[FeatureDraft] = None
    version: int = 1
    next_scheduled_update: Optional[datetime] = None
    description: str = ""
    owner: str = ""
    tags: Tuple[str, ...] = ()


# ---------- Experiments ----------


@dataclass(frozen=True)
class Variation:
    id: str
    key: str
    name: str = ""


@dataclass(frozen=True)
class ExperimentPhase:
    condition: str = ""
    saved_groups: Tuple[SavedGroupTargeting, ...] = ()
    coverage: float = 1.0
    variation_weights: Tuple[float, ...] = ()
    namespace: Optional[Namespace] = None
    seed: str = ""


@dataclass(frozen=True)
class Experiment:
    id: str
    tracking_key: str
    name: str = ""
    hash_attribute: str = ""
    hash_version: int = 2
    phases: Tuple[ExperimentPhase, ...] = ()
    variations: Tuple[Variation, ...] = ()
    status: ExperimentStatus = ExperimentStatus.DRAFT
    released_variation_id: str = ""
    archived: bool = False
    exclude_from_payload: bool = False


# ---------- Compiled output ----------


class PayloadKey(NamedTuple):
    """One distributable SDK payload; ``project == ""`` means all projects."""

    environment: str
    project: str

    def to_json(self) -> Dict[str, str]:
        return {"environment": self.environment, "project": self.project}


@dataclass(frozen=True)
class VariationMeta:
    key: str
    name: Optional[str] = None

    def to_json(self) -> Dict[str, str]:
        data = {"key": self.key}
        if self.name is not None:
            data["name"] = self.name
        return data


@dataclass(frozen=True)
class CompiledRule:
    """SDK-ready rule. Fields left at ``NOT_SET`` are omitted on the wire."""

    condition: Any = NOT_SET
    force: Any = NOT_SET
    variations: Any = NOT_SET
    coverage: Any = NOT_SET
    weights: Any = NOT_SET
    key: Any = NOT_SET
    meta: Any = NOT_SET
    hash_attribute: Any = NOT_SET
    hash_version: Any = NOT_SET
    namespace: Any = NOT_SET
    seed: Any = NOT_SET
    phase: Any = NOT_SET
    name: Any = NOT_SET
    id: Any = NOT_SET

    _WIRE_NAMES: ClassVar[Tuple[Tuple[str, str], ...]] = (
        ("id", "id"),
        ("condition", "condition"),
        ("force", "force"),
        ("variations", "variations"),
        ("coverage", "coverage"),
        ("weights", "weights"),
        ("key", "key"),
        ("meta", "meta"),
        ("hash_attribute", "hashAttribute"),
        ("hash_version", "hashVersion"),
        ("namespace", "namespace"),
        ("seed", "seed"),
        ("phase", "phase"),
        ("name", "name"),
    )

    def to_json(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for attr, wire_name in self._WIRE_NAMES:
            value = getattr(self, attr)
            if value is NOT_SET:
                continue
            if attr == "condition":
                value = value.to_json()
            elif attr == "meta":
                value = [m.to_json() for m in value]
            else:
                value = json_safe(value)
            data[wire_name] = value
        return data


@dataclass(frozen=True)
class FeatureDefinition:
    """Compiled form of one feature in one environment.

    ``rules`` is ``None`` (and absent on the wire) when no rule survives
    compilation.
    """

    default_value: Any
    rules: Optional[Tuple[CompiledRule, ...]] = None

    def to_json(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"defaultValue": json_safe(self.default_value)}
        if self.rules:
            data["rules"] = [r.to_json() for r in self.rules]
        return data
