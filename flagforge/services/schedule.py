# FlagForge/flagforge/services/schedule.py
"""Rule enablement: manual toggle plus schedule windows."""


from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Mapping, Optional, Sequence

from .models import EnvironmentSettings, FeatureRule, ScheduleWindow


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _applies(window: ScheduleWindow, now: datetime) -> bool:
    if window.start is not None and window.start > now:
        return False
    if window.end is not None and now >= window.end:
        return False
    return True


def current_enabled_state(windows: Sequence[ScheduleWindow], now: datetime) -> bool:
    """Return the state set by the last window applying at ``now``.

    A rule with no applicable window is enabled.
    """
    enabled = True
    for window in windows:
        if _applies(window, now):
            enabled = window.enabled
    return enabled


def is_rule_live(rule: FeatureRule, now: Optional[datetime] = None) -> bool:
    """Check whether a rule is currently active.

    Args:
        rule: Stored rule of any variant.
        now: Evaluation instant (defaults to the current UTC time).

    Returns:
        False if the rule is manually disabled or switched off by its
        schedule, True otherwise.
    """
    if not rule.enabled:
        return False
    return current_enabled_state(rule.schedule_rules, now or utcnow())


def _boundaries(rules: Iterable[FeatureRule]) -> Iterable[datetime]:
    for rule in rules:
        for window in rule.schedule_rules:
            if window.start is not None:
                yield window.start
            if window.end is not None:
                yield window.end


def next_scheduled_update(
    environment_settings: Mapping[str, EnvironmentSettings],
    now: Optional[datetime] = None,
) -> Optional[datetime]:
    """Earliest future schedule boundary across enabled environments.

    This is the next instant at which a compiled payload changes on its
    own, without any edit to the feature.
    """
    now = now or utcnow()
    upcoming = [
        boundary
        for settings in environment_settings.values()
        if settings.enabled
        for boundary in _boundaries(settings.rules)
        if boundary > now
    ]
    return min(upcoming) if upcoming else None
