# FlagForge/flagforge/services/parsing.py
"""Build domain models from stored / JSON records.

The persistence layer and the admin API both exchange plain dicts
(the shapes described by the JSON schemas in ``flagforge/schemas``).
These helpers turn them into the immutable models used by the compiler
and back.

Raises:
    ValueError: On records that cannot be mapped (unknown rule type,
        unknown value type, bad timestamp). Schema validation normally
        catches these first.
"""


from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from .models import (
    EnvironmentSettings,
    Experiment,
    ExperimentPhase,
    ExperimentRefRule,
    ExperimentRefVariation,
    ExperimentRule,
    ExperimentStatus,
    ExperimentValue,
    Feature,
    FeatureDraft,
    FeatureRule,
    ForceRule,
    GroupSource,
    Namespace,
    RolloutRule,
    SavedGroup,
    SavedGroupTargeting,
    ScheduleWindow,
    ValueType,
    Variation,
)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def parse_schedule_window(data: Dict[str, Any]) -> ScheduleWindow:
    # Accepts the single-timestamp shape ({"timestamp", "enabled"}) too.
    start = data.get("start", data.get("timestamp"))
    return ScheduleWindow(
        start=parse_timestamp(start),
        end=parse_timestamp(data.get("end")),
        enabled=bool(data.get("enabled", True)),
    )


def parse_saved_group_targeting(data: Dict[str, Any]) -> SavedGroupTargeting:
    return SavedGroupTargeting(
        ids=tuple(data.get("ids") or ()),
        match=data.get("match", "all"),
    )


def parse_namespace(data: Optional[Dict[str, Any]]) -> Optional[Namespace]:
    if not data:
        return None
    return Namespace(
        enabled=bool(data.get("enabled", False)),
        name=data.get("name") or "",
        range=tuple(data.get("range") or (0, 1)),
    )


def _targeting(data: Dict[str, Any]) -> Tuple[SavedGroupTargeting, ...]:
    return tuple(parse_saved_group_targeting(t) for t in data.get("saved_groups") or ())


def parse_rule(data: Dict[str, Any]) -> FeatureRule:
    """Map a stored rule onto its variant class based on ``type``."""
    common = dict(
        id=data.get("id", ""),
        description=data.get("description", ""),
        enabled=bool(data.get("enabled", True)),
        condition=data.get("condition") or "",
        saved_groups=_targeting(data),
        schedule_rules=tuple(
            parse_schedule_window(w) for w in data.get("schedule_rules") or ()
        ),
    )
    rule_type = data.get("type")

    if rule_type == ForceRule.rule_type:
        return ForceRule(value=data.get("value", ""), **common)

    if rule_type == RolloutRule.rule_type:
        return RolloutRule(
            value=data.get("value", ""),
            coverage=float(data.get("coverage", 1)),
            hash_attribute=data.get("hash_attribute") or "",
            **common,
        )

    if rule_type == ExperimentRule.rule_type:
        return ExperimentRule(
            values=tuple(
                ExperimentValue(
                    value=v.get("value", ""),
                    weight=float(v.get("weight", 0)),
                    name=v.get("name") or "",
                )
                for v in data.get("values") or ()
            ),
            coverage=float(data.get("coverage", 1)),
            tracking_key=data.get("tracking_key") or "",
            hash_attribute=data.get("hash_attribute") or "",
            namespace=parse_namespace(data.get("namespace")),
            **common,
        )

    if rule_type == ExperimentRefRule.rule_type:
        return ExperimentRefRule(
            experiment_id=data.get("experiment_id", ""),
            variations=tuple(
                ExperimentRefVariation(
                    variation_id=v["variation_id"],
                    value=v.get("value", ""),
                )
                for v in data.get("variations") or ()
            ),
            **common,
        )

    raise ValueError(f"Unknown rule type: {rule_type!r}")


def parse_rules(items: Any) -> Tuple[FeatureRule, ...]:
    return tuple(parse_rule(r) for r in items or ())


def parse_environment_settings(data: Dict[str, Any]) -> EnvironmentSettings:
    return EnvironmentSettings(
        enabled=bool(data.get("enabled", False)),
        rules=parse_rules(data.get("rules")),
    )


def parse_draft(data: Optional[Dict[str, Any]]) -> Optional[FeatureDraft]:
    if data is None:
        return None
    return FeatureDraft(
        active=bool(data.get("active", False)),
        default_value=data.get("default_value"),
        rules={env: parse_rules(rules) for env, rules in (data.get("rules") or {}).items()},
    )


def parse_feature(data: Dict[str, Any]) -> Feature:
    """Build a :class:`Feature` from its stored dict form."""
    return Feature(
        id=data["id"],
        organization=data.get("organization", ""),
        value_type=ValueType(data["value_type"]),
        default_value=data.get("default_value", ""),
        project=data.get("project") or "",
        archived=bool(data.get("archived", False)),
        environment_settings={
            env: parse_environment_settings(settings)
            for env, settings in (data.get("environment_settings") or {}).items()
        },
        draft=parse_draft(data.get("draft")),
        version=int(data.get("version", 1)),
        next_scheduled_update=parse_timestamp(data.get("next_scheduled_update")),
        description=data.get("description") or "",
        owner=data.get("owner") or "",
        tags=tuple(data.get("tags") or ()),
    )


def parse_experiment(data: Dict[str, Any]) -> Experiment:
    """Build an :class:`Experiment` from its stored dict form."""
    return Experiment(
        id=data["id"],
        tracking_key=data.get("tracking_key") or data["id"],
        name=data.get("name") or "",
        hash_attribute=data.get("hash_attribute") or "",
        hash_version=int(data.get("hash_version", 2)),
        phases=tuple(
            ExperimentPhase(
                condition=p.get("condition") or "",
                saved_groups=_targeting(p),
                coverage=float(p.get("coverage", 1)),
                variation_weights=tuple(float(w) for w in p.get("variation_weights") or ()),
                namespace=parse_namespace(p.get("namespace")),
                seed=p.get("seed") or "",
            )
            for p in data.get("phases") or ()
        ),
        variations=tuple(
            Variation(id=v["id"], key=v.get("key", ""), name=v.get("name") or "")
            for v in data.get("variations") or ()
        ),
        status=ExperimentStatus(data.get("status", "draft")),
        released_variation_id=data.get("released_variation_id") or "",
        archived=bool(data.get("archived", False)),
        exclude_from_payload=bool(data.get("exclude_from_payload", False)),
    )


def parse_saved_group(data: Dict[str, Any]) -> SavedGroup:
    """Build a :class:`SavedGroup` from its stored dict form."""
    return SavedGroup(
        id=data["id"],
        key=data.get("key") or data.get("attribute_key") or "",
        source=GroupSource(data.get("source", "list")),
        values=tuple(data.get("values") or ()),
    )


# ---------- Serialization (admin API responses) ----------


def _schedule_window_to_dict(window: ScheduleWindow) -> Dict[str, Any]:
    return {
        "start": format_timestamp(window.start),
        "end": format_timestamp(window.end),
        "enabled": window.enabled,
    }


def _targeting_to_dict(targeting: SavedGroupTargeting) -> Dict[str, Any]:
    return {"ids": list(targeting.ids), "match": targeting.match}


def _namespace_to_dict(namespace: Optional[Namespace]) -> Optional[Dict[str, Any]]:
    if namespace is None:
        return None
    return {"enabled": namespace.enabled, "name": namespace.name, "range": list(namespace.range)}


def rule_to_dict(rule: FeatureRule) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "type": rule.rule_type,
        "id": rule.id,
        "description": rule.description,
        "enabled": rule.enabled,
        "condition": rule.condition,
        "saved_groups": [_targeting_to_dict(t) for t in rule.saved_groups],
        "schedule_rules": [_schedule_window_to_dict(w) for w in rule.schedule_rules],
    }
    if isinstance(rule, ForceRule):
        data["value"] = rule.value
    elif isinstance(rule, RolloutRule):
        data.update(value=rule.value, coverage=rule.coverage, hash_attribute=rule.hash_attribute)
    elif isinstance(rule, ExperimentRule):
        data.update(
            values=[{"value": v.value, "weight": v.weight, "name": v.name} for v in rule.values],
            coverage=rule.coverage,
            tracking_key=rule.tracking_key,
            hash_attribute=rule.hash_attribute,
            namespace=_namespace_to_dict(rule.namespace),
        )
    elif isinstance(rule, ExperimentRefRule):
        data.update(
            experiment_id=rule.experiment_id,
            variations=[
                {"variation_id": v.variation_id, "value": v.value} for v in rule.variations
            ],
        )
    return data


def feature_to_dict(feature: Feature) -> Dict[str, Any]:
    """Serialize a :class:`Feature` into a JSON-safe dict."""
    draft = feature.draft
    return {
        "id": feature.id,
        "organization": feature.organization,
        "value_type": feature.value_type.value,
        "default_value": feature.default_value,
        "project": feature.project,
        "archived": feature.archived,
        "environment_settings": {
            env: {
                "enabled": settings.enabled,
                "rules": [rule_to_dict(r) for r in settings.rules],
            }
            for env, settings in feature.environment_settings.items()
        },
        "draft": None if draft is None else {
            "active": draft.active,
            "default_value": draft.default_value,
            "rules": {
                env: [rule_to_dict(r) for r in rules] for env, rules in draft.rules.items()
            },
        },
        "version": feature.version,
        "next_scheduled_update": format_timestamp(feature.next_scheduled_update),
        "description": feature.description,
        "owner": feature.owner,
        "tags": list(feature.tags),
    }
