# FlagForge/flagforge/services/flag_service.py
"""Feature service for FlagForge.

Glue between the snapshot store and the compiler: storing a change
returns the SDK payload keys it invalidates, and reads compile from a
consistent snapshot of the organization's experiments and saved groups.
Permission checks happen before any of these functions are called.
"""


from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from ..repositories import memory_repo
from .conditions import DEFAULT_GROUPS_ATTRIBUTE
from .feature_definitions import build_feature_definition, build_sdk_payload
from .models import (
    Experiment,
    ExperimentRefRule,
    Feature,
    FeatureDefinition,
    FeatureRule,
    PayloadKey,
    SavedGroup,
    SavedGroupTargeting,
)
from .payload_keys import (
    get_affected_sdk_payload_keys,
    get_enabled_environments,
    get_sdk_payload_keys,
    get_sdk_payload_keys_by_diff,
)
from .schedule import next_scheduled_update

logger = logging.getLogger(__name__)


def _targets_group(
    condition: str, saved_groups: Iterable[SavedGroupTargeting], group_id: str
) -> bool:
    if any(group_id in t.ids for t in saved_groups):
        return True
    # Inline references inside the condition text ($inGroup / $notInGroup).
    return f'"{group_id}"' in condition


def _rule_references_group(
    rule: FeatureRule, group_id: str, experiment_map: Dict[str, Experiment]
) -> bool:
    if _targets_group(rule.condition, rule.saved_groups, group_id):
        return True
    # Experiment references compile the targeting of the last phase.
    if isinstance(rule, ExperimentRefRule):
        experiment = experiment_map.get(rule.experiment_id)
        if experiment is not None and experiment.phases:
            phase = experiment.phases[-1]
            return _targets_group(phase.condition, phase.saved_groups, group_id)
    return False


def save_feature(
    feature: Feature, now: Optional[datetime] = None
) -> List[PayloadKey]:
    """Store a new version of a feature.

    The next scheduled update is recomputed and the version bumped
    before the diff, so schedule edits count as global changes.

    Args:
        feature: The updated feature.
        now: Reference instant for schedule computations.

    Returns:
        The SDK payload keys that need to be recomputed.
    """
    before = memory_repo.get_feature(feature.organization, feature.id)
    after = replace(
        feature,
        version=(before.version + 1) if before else 1,
        next_scheduled_update=next_scheduled_update(feature.environment_settings, now),
    )
    memory_repo.save_feature(after)

    if before is None:
        environments = get_enabled_environments(after)
        keys = get_sdk_payload_keys(environments, ["", after.project])
    else:
        keys = get_sdk_payload_keys_by_diff(before, after)

    logger.info(
        "Feature %s/%s saved (v%d), %d payload(s) invalidated",
        after.organization,
        after.id,
        after.version,
        len(keys),
    )
    return keys


def save_experiment(
    organization: str, experiment: Experiment, now: Optional[datetime] = None
) -> List[PayloadKey]:
    """Store an experiment and return the payloads of features linking to it."""
    memory_repo.save_experiment(organization, experiment)
    keys = get_affected_sdk_payload_keys(
        memory_repo.list_features(organization),
        lambda rule: isinstance(rule, ExperimentRefRule)
        and rule.experiment_id == experiment.id,
        now,
    )
    logger.info(
        "Experiment %s/%s saved, %d payload(s) invalidated",
        organization,
        experiment.id,
        len(keys),
    )
    return keys


def save_saved_group(
    organization: str, group: SavedGroup, now: Optional[datetime] = None
) -> List[PayloadKey]:
    """Store a saved group and return the payloads of features targeting it."""
    memory_repo.save_saved_group(organization, group)
    experiment_map = memory_repo.get_experiment_map(organization)
    keys = get_affected_sdk_payload_keys(
        memory_repo.list_features(organization),
        lambda rule: _rule_references_group(rule, group.id, experiment_map),
        now,
    )
    logger.info(
        "Saved group %s/%s saved, %d payload(s) invalidated",
        organization,
        group.id,
        len(keys),
    )
    return keys


def get_feature_definition(
    organization: str,
    feature_id: str,
    environment: str,
    use_draft: bool = False,
    return_rule_id: bool = False,
    groups_attribute: str = DEFAULT_GROUPS_ATTRIBUTE,
    now: Optional[datetime] = None,
) -> Optional[FeatureDefinition]:
    """Compile one stored feature for one environment.

    Raises:
        LookupError: If the feature does not exist.
    """
    feature = memory_repo.get_feature(organization, feature_id)
    if feature is None:
        raise LookupError(feature_id)

    return build_feature_definition(
        feature,
        environment,
        memory_repo.get_group_map(organization),
        memory_repo.get_experiment_map(organization),
        use_draft=use_draft,
        return_rule_id=return_rule_id,
        now=now,
        groups_attribute=groups_attribute,
    )


def get_sdk_payload(
    organization: str,
    key: PayloadKey,
    groups_attribute: str = DEFAULT_GROUPS_ATTRIBUTE,
    now: Optional[datetime] = None,
) -> Dict[str, FeatureDefinition]:
    """Compile the SDK payload of one (environment, project) key."""
    return build_sdk_payload(
        memory_repo.list_features(organization),
        key,
        memory_repo.get_group_map(organization),
        memory_repo.get_experiment_map(organization),
        now=now,
        groups_attribute=groups_attribute,
    )
