# FlagForge/flagforge/services/conditions.py
"""Targeting condition resolution.

Stored conditions are JSON text in the SDK condition language (Mongo-like
operators). Before they are shipped, saved-group references are expanded:

- ``{"attr": {"$inGroup": "<id>"}}`` becomes ``{"attr": {"$in": [...]}}``
  (``$notInGroup`` becomes ``$nin``) using the group's values.
- Saved-group targeting on a rule (``all`` / ``any`` / ``none``) adds one
  condition per group, combined with the rule's own condition.

Conditions are held as a typed tree and only turned back into a JSON
document by :meth:`Condition.to_json`.
"""


from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .models import GroupSource, SavedGroup, SavedGroupTargeting

logger = logging.getLogger(__name__)

DEFAULT_GROUPS_ATTRIBUTE = "$groups"

GroupMap = Mapping[str, SavedGroup]

_GROUP_OPERATORS = {"$inGroup": "$in", "$notInGroup": "$nin"}


class ConditionParseError(ValueError):
    """Raised when a stored condition is not a valid condition document."""


# ---------- Condition tree ----------


@dataclass(frozen=True)
class FieldTest:
    """Test of one attribute, e.g. ``{"country": {"$in": ["CA"]}}``."""

    attribute: str
    test: Any

    def to_entry(self) -> Tuple[str, Any]:
        return self.attribute, self.test


@dataclass(frozen=True)
class Membership:
    """Inclusion (``$in``) or exclusion (``$nin``) of an attribute value."""

    attribute: str
    values: Tuple[Any, ...]
    include: bool = True

    def to_entry(self) -> Tuple[str, Any]:
        operator = "$in" if self.include else "$nin"
        return self.attribute, {operator: list(self.values)}


@dataclass(frozen=True)
class RuntimeGroupTest:
    """Membership in a group the SDK resolves from the runtime groups list."""

    groups_attribute: str
    key: str

    def to_entry(self) -> Tuple[str, Any]:
        return self.groups_attribute, {"$elemMatch": {"$eq": self.key}}


@dataclass(frozen=True)
class AllOf:
    conditions: Tuple["Condition", ...]

    def to_entry(self) -> Tuple[str, Any]:
        return "$and", [c.to_json() for c in self.conditions]


@dataclass(frozen=True)
class AnyOf:
    conditions: Tuple["Condition", ...]

    def to_entry(self) -> Tuple[str, Any]:
        return "$or", [c.to_json() for c in self.conditions]


@dataclass(frozen=True)
class NoneOf:
    conditions: Tuple["Condition", ...]

    def to_entry(self) -> Tuple[str, Any]:
        return "$nor", [c.to_json() for c in self.conditions]


@dataclass(frozen=True)
class Negation:
    condition: "Condition"

    def to_entry(self) -> Tuple[str, Any]:
        return "$not", self.condition.to_json()


Entry = Union[FieldTest, Membership, RuntimeGroupTest, AllOf, AnyOf, NoneOf, Negation]


@dataclass(frozen=True)
class Condition:
    """One condition document; all of its entries must hold."""

    entries: Tuple[Entry, ...]

    def to_json(self) -> Dict[str, Any]:
        return dict(entry.to_entry() for entry in self.entries)


def _single(entry: Entry) -> Condition:
    return Condition((entry,))


# ---------- Parsing ----------


def _replace_group_references(value: Any, group_map: GroupMap) -> Any:
    """Rewrite ``$inGroup`` / ``$notInGroup`` operators inside a field test."""
    if isinstance(value, list):
        return [_replace_group_references(v, group_map) for v in value]
    if not isinstance(value, dict):
        return value

    replaced: Dict[str, Any] = {}
    for key, inner in value.items():
        if key in _GROUP_OPERATORS and isinstance(inner, str):
            group = group_map.get(inner)
            replaced[_GROUP_OPERATORS[key]] = list(group.values) if group else []
        else:
            replaced[key] = _replace_group_references(inner, group_map)
    return replaced


def _parse_condition_list(value: Any, group_map: GroupMap) -> Tuple[Condition, ...]:
    if not isinstance(value, list):
        raise ConditionParseError("logical operators expect a list of conditions")
    return tuple(_parse_document(item, group_map) for item in value)


def _parse_document(document: Any, group_map: GroupMap) -> Condition:
    if not isinstance(document, dict):
        raise ConditionParseError("condition must be a JSON object")

    entries: List[Entry] = []
    for key, value in document.items():
        if key == "$and":
            entries.append(AllOf(_parse_condition_list(value, group_map)))
        elif key == "$or":
            entries.append(AnyOf(_parse_condition_list(value, group_map)))
        elif key == "$nor":
            entries.append(NoneOf(_parse_condition_list(value, group_map)))
        elif key == "$not":
            entries.append(Negation(_parse_document(value, group_map)))
        else:
            entries.append(FieldTest(key, _replace_group_references(value, group_map)))
    return Condition(tuple(entries))


def parse_condition(raw: Optional[str], group_map: GroupMap) -> Optional[Condition]:
    """Parse stored condition text, expanding saved-group references.

    Returns ``None`` when there is nothing to apply: empty text, an empty
    document, or a condition that cannot be parsed. A malformed condition
    never fails the compilation of the rest of the feature.
    """
    if not raw or raw == "{}":
        return None

    try:
        condition = _parse_document(json.loads(raw), group_map)
    except (ValueError, RecursionError) as exc:
        logger.debug("Ignoring malformed condition %r: %s", raw, exc)
        return None

    return condition if condition.entries else None


# ---------- Saved groups ----------


def saved_group_condition(
    group: SavedGroup,
    include: bool,
    groups_attribute: str = DEFAULT_GROUPS_ATTRIBUTE,
) -> Condition:
    """Condition matching (or excluding) members of one saved group."""
    if group.source == GroupSource.RUNTIME:
        condition = _single(RuntimeGroupTest(groups_attribute, group.key))
        return condition if include else _single(Negation(condition))

    return _single(Membership(group.key, tuple(group.values), include))


def _usable_groups(ids: Iterable[str], group_map: GroupMap) -> List[SavedGroup]:
    groups = (group_map.get(group_id) for group_id in ids)
    return [
        g for g in groups
        if g is not None and (g.source == GroupSource.RUNTIME or len(g.values) > 0)
    ]


def _targeting_conditions(
    targeting: SavedGroupTargeting,
    group_map: GroupMap,
    groups_attribute: str,
) -> List[Condition]:
    groups = _usable_groups(targeting.ids, group_map)
    if not groups:
        return []

    if targeting.match == "all":
        return [saved_group_condition(g, True, groups_attribute) for g in groups]

    if targeting.match == "any":
        ors = [saved_group_condition(g, True, groups_attribute) for g in groups]
        return [ors[0] if len(ors) == 1 else _single(AnyOf(tuple(ors)))]

    if targeting.match == "none":
        return [saved_group_condition(g, False, groups_attribute) for g in groups]

    logger.debug("Ignoring saved group targeting with match %r", targeting.match)
    return []


def get_parsed_condition(
    group_map: GroupMap,
    condition: Optional[str] = None,
    saved_groups: Optional[Sequence[SavedGroupTargeting]] = None,
    groups_attribute: str = DEFAULT_GROUPS_ATTRIBUTE,
) -> Optional[Condition]:
    """Merge a rule's condition and saved-group targeting into one condition.

    Args:
        group_map: Saved groups by id.
        condition: Stored condition text, possibly with group references.
        saved_groups: Saved-group targeting entries of the rule or phase.
        groups_attribute: Attribute holding the runtime groups of a user.

    Returns:
        ``None`` when nothing applies, the only condition when there is
        exactly one, otherwise an ``$and`` of all of them.
    """
    conditions: List[Condition] = []

    parsed = parse_condition(condition, group_map)
    if parsed is not None:
        conditions.append(parsed)

    for targeting in saved_groups or ():
        conditions.extend(_targeting_conditions(targeting, group_map, groups_attribute))

    if not conditions:
        return None
    if len(conditions) == 1:
        return conditions[0]
    return _single(AllOf(tuple(conditions)))
