# FlagForge/flagforge/services/payload_keys.py
"""Which SDK payloads go stale when features change.

A payload is identified by a :class:`PayloadKey` (environment, project).
The functions here are conservative (a changed payload is never missed)
but avoid invalidating payloads a change cannot affect.
"""


from __future__ import annotations

from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Union

from .models import EnvironmentSettings, Feature, FeatureRule, PayloadKey
from .schedule import is_rule_live

RuleFilter = Callable[[FeatureRule], bool]

# Feature fields that show up in the payload of every enabled environment.
GLOBAL_FIELDS = (
    "archived",
    "default_value",
    "project",
    "value_type",
    "next_scheduled_update",
)


def _unique(items: Iterable) -> List:
    return list(dict.fromkeys(items))


def get_enabled_environments(
    features: Union[Feature, Sequence[Feature]],
    rule_filter: Optional[RuleFilter] = None,
    now: Optional[datetime] = None,
) -> List[str]:
    """Environments enabled in any of ``features``, in first-seen order.

    With ``rule_filter``, an environment only counts when at least one of
    its rules matches the filter and is live.
    """
    if isinstance(features, Feature):
        features = [features]

    environments: Dict[str, None] = {}
    for feature in features:
        for env, settings in feature.environment_settings.items():
            if not settings.enabled:
                continue
            if rule_filter is not None and not any(
                is_rule_live(rule, now) for rule in settings.rules if rule_filter(rule)
            ):
                continue
            environments[env] = None
    return list(environments)


def get_sdk_payload_keys(
    environments: Iterable[str], projects: Iterable[str]
) -> List[PayloadKey]:
    projects = _unique(projects)
    return [PayloadKey(env, project) for env in _unique(environments) for project in projects]


def _settings_changed(
    before: Optional[EnvironmentSettings], after: Optional[EnvironmentSettings]
) -> bool:
    # Disabled (or missing) on both sides: nothing reaches an SDK.
    if not (before and before.enabled) and not (after and after.enabled):
        return False
    return before != after


def get_sdk_payload_keys_by_diff(before: Feature, after: Feature) -> List[PayloadKey]:
    """Payload keys invalidated by changing ``before`` into ``after``.

    Args:
        before: Feature as it was.
        after: Feature as it is now.

    Returns:
        Unique keys for every affected environment, crossed with the
        all-projects key and both the old and new project.
    """
    if before.archived and after.archived:
        return []

    environments: Dict[str, None] = {}

    if any(getattr(before, f) != getattr(after, f) for f in GLOBAL_FIELDS):
        for env in get_enabled_environments([before, after]):
            environments[env] = None

    all_envs = _unique(
        list(before.environment_settings) + list(after.environment_settings)
    )
    for env in all_envs:
        if _settings_changed(
            before.environment_settings.get(env),
            after.environment_settings.get(env),
        ):
            environments[env] = None

    projects = ["", before.project or "", after.project or ""]
    return get_sdk_payload_keys(environments, projects)


def get_affected_sdk_payload_keys(
    features: Sequence[Feature],
    rule_filter: Optional[RuleFilter] = None,
    now: Optional[datetime] = None,
) -> List[PayloadKey]:
    """Payload keys of every feature, limited to environments ``rule_filter`` hits.

    Used when something a rule depends on (an experiment, a saved group)
    changes rather than the feature itself.
    """
    keys: List[PayloadKey] = []
    for feature in features:
        environments = get_enabled_environments(feature, rule_filter, now)
        keys.extend(get_sdk_payload_keys(environments, ["", feature.project or ""]))
    return _unique(keys)
