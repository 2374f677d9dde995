# FlagForge/flagforge/services/feature_definitions.py
"""Feature definition builder.

Turns a stored feature into the definition an SDK receives for one
environment, and assembles those definitions into SDK payloads.
"""


from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, Optional

from .conditions import DEFAULT_GROUPS_ATTRIBUTE, GroupMap
from .models import Feature, FeatureDefinition, PayloadKey
from .rule_compiler import (
    CompileContext,
    ExperimentFilter,
    ExperimentMap,
    compile_rules,
    include_experiment_in_payload,
)
from .values import coerce_value


def build_feature_definition(
    feature: Feature,
    environment: str,
    group_map: GroupMap,
    experiment_map: ExperimentMap,
    use_draft: bool = False,
    return_rule_id: bool = False,
    now: Optional[datetime] = None,
    groups_attribute: str = DEFAULT_GROUPS_ATTRIBUTE,
    experiment_filter: ExperimentFilter = include_experiment_in_payload,
) -> Optional[FeatureDefinition]:
    """Compile ``feature`` for ``environment``.

    Args:
        feature: Stored feature snapshot.
        environment: Environment id.
        group_map: Saved groups by id.
        experiment_map: Experiments by id.
        use_draft: Compile the active draft instead of the live version.
            Ignored when the feature has no active draft.
        return_rule_id: Attach the stored rule id to each compiled rule.
        now: Instant used for rule schedules (defaults to now).
        groups_attribute: Attribute holding a user's runtime groups.
        experiment_filter: Predicate deciding which referenced experiments
            may be shipped.

    Returns:
        The compiled definition, or ``None`` when the feature is archived
        or the environment is missing or disabled.
    """
    settings = feature.environment_settings.get(environment)
    if settings is None or not settings.enabled or feature.archived:
        return None

    draft = feature.draft
    if draft is None or not draft.active:
        use_draft = False

    default_value = feature.default_value
    rules = settings.rules
    if use_draft:
        if draft.default_value is not None:
            default_value = draft.default_value
        if environment in draft.rules:
            rules = draft.rules[environment]

    ctx = CompileContext(
        value_type=feature.value_type,
        group_map=group_map,
        experiment_map=experiment_map,
        return_rule_id=return_rule_id,
        groups_attribute=groups_attribute,
        experiment_filter=experiment_filter,
    )
    compiled = compile_rules(rules, ctx, now)

    return FeatureDefinition(
        default_value=coerce_value(feature.value_type, default_value),
        rules=compiled or None,
    )


def features_for_key(features: Iterable[Feature], key: PayloadKey) -> Iterable[Feature]:
    """Features belonging to the payload's project (all for ``project == ""``)."""
    return (f for f in features if not key.project or f.project == key.project)


def build_sdk_payload(
    features: Iterable[Feature],
    key: PayloadKey,
    group_map: GroupMap,
    experiment_map: ExperimentMap,
    now: Optional[datetime] = None,
    groups_attribute: str = DEFAULT_GROUPS_ATTRIBUTE,
    experiment_filter: ExperimentFilter = include_experiment_in_payload,
) -> Dict[str, FeatureDefinition]:
    """Compile every feature of a payload key, keyed by feature id.

    Features without a definition in the key's environment are omitted.
    Live rules are always used; drafts never reach SDKs.
    """
    payload: Dict[str, FeatureDefinition] = {}
    for feature in features_for_key(features, key):
        definition = build_feature_definition(
            feature,
            key.environment,
            group_map,
            experiment_map,
            now=now,
            groups_attribute=groups_attribute,
            experiment_filter=experiment_filter,
        )
        if definition is not None:
            payload[feature.id] = definition
    return payload
