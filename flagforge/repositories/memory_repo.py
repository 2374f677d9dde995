# FlagForge/flagforge/repositories/memory_repo.py
"""In-memory snapshot store for FlagForge.

Keeps features, experiments and saved groups in process memory, scoped
per organization. It stands in for the persistence layer: the compiler
only ever reads immutable snapshots out of it.
"""


from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from ..services.models import Experiment, Feature, SavedGroup

# In-memory stores keyed by (organization, id)
_FEATURES: Dict[Tuple[str, str], Feature] = {}
_EXPERIMENTS: Dict[Tuple[str, str], Experiment] = {}
_SAVED_GROUPS: Dict[Tuple[str, str], SavedGroup] = {}


def save_feature(feature: Feature) -> None:
    """Upsert a feature by its organization and id.

    Args:
        feature: The feature snapshot to store.
    """
    _FEATURES[(feature.organization, feature.id)] = feature


def get_feature(organization: str, feature_id: str) -> Optional[Feature]:
    """Retrieve a single feature.

    Returns:
        The stored feature if present, otherwise ``None``.
    """
    return _FEATURES.get((organization, feature_id))


def list_features(organization: str) -> List[Feature]:
    """Return every feature of an organization, in insertion order."""
    return [f for (org, _), f in _FEATURES.items() if org == organization]


def save_experiment(organization: str, experiment: Experiment) -> None:
    _EXPERIMENTS[(organization, experiment.id)] = experiment


def get_experiment_map(organization: str) -> Dict[str, Experiment]:
    """Experiments of an organization keyed by id."""
    return {eid: e for (org, eid), e in _EXPERIMENTS.items() if org == organization}


def save_saved_group(organization: str, group: SavedGroup) -> None:
    _SAVED_GROUPS[(organization, group.id)] = group


def get_group_map(organization: str) -> Dict[str, SavedGroup]:
    """Saved groups of an organization keyed by id."""
    return {gid: g for (org, gid), g in _SAVED_GROUPS.items() if org == organization}


def clear() -> None:
    """Drop everything (used by tests)."""
    _FEATURES.clear()
    _EXPERIMENTS.clear()
    _SAVED_GROUPS.clear()
