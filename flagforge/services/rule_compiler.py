# FlagForge/flagforge/services/rule_compiler.py
"""Compilation of stored rules into SDK rules.

Each stored rule compiles to one :class:`CompiledRule` or to ``None``,
in which case it is left out of the definition and the following rules
are compiled as usual.
"""


from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Mapping, Optional, Sequence, Tuple

from .conditions import DEFAULT_GROUPS_ATTRIBUTE, GroupMap, get_parsed_condition
from .models import (
    NOT_SET,
    CompiledRule,
    Experiment,
    ExperimentRefRule,
    ExperimentRule,
    ExperimentStatus,
    FeatureRule,
    ForceRule,
    Namespace,
    RolloutRule,
    ValueType,
    VariationMeta,
)
from .schedule import is_rule_live
from .values import clamp, coerce_value, parse_float, round_variation_weight

logger = logging.getLogger(__name__)

ExperimentMap = Mapping[str, Experiment]
ExperimentFilter = Callable[[Experiment], bool]


def include_experiment_in_payload(experiment: Experiment) -> bool:
    """Default predicate deciding whether an experiment may reach SDKs.

    Archived experiments never do. Stopped experiments only do while they
    release a winning variation and are not explicitly excluded.
    """
    if experiment.archived:
        return False
    if experiment.status == ExperimentStatus.STOPPED:
        if experiment.exclude_from_payload or not experiment.released_variation_id:
            return False
    return True


@dataclass(frozen=True)
class CompileContext:
    """Inputs shared by every rule of one feature/environment compilation."""

    value_type: ValueType
    group_map: GroupMap
    experiment_map: ExperimentMap
    return_rule_id: bool = False
    groups_attribute: str = DEFAULT_GROUPS_ATTRIBUTE
    experiment_filter: ExperimentFilter = include_experiment_in_payload

    def coerce(self, raw: str):
        return coerce_value(self.value_type, raw)

    def condition(self, raw: str, saved_groups):
        condition = get_parsed_condition(
            self.group_map, raw, saved_groups, self.groups_attribute
        )
        return NOT_SET if condition is None else condition


def compile_namespace(namespace: Optional[Namespace]):
    """``(name, lower, upper)`` for an enabled, named namespace."""
    if namespace is None or not namespace.enabled or not namespace.name:
        return NOT_SET
    lower, upper = (tuple(namespace.range) + (0, 0))[:2]
    return (namespace.name, parse_float(lower), parse_float(upper))


def _compile_force(rule: ForceRule, ctx: CompileContext) -> CompiledRule:
    return CompiledRule(
        condition=ctx.condition(rule.condition, rule.saved_groups),
        force=ctx.coerce(rule.value),
    )


def _compile_rollout(rule: RolloutRule, ctx: CompileContext) -> CompiledRule:
    return CompiledRule(
        condition=ctx.condition(rule.condition, rule.saved_groups),
        force=ctx.coerce(rule.value),
        coverage=clamp(rule.coverage),
        hash_attribute=rule.hash_attribute or NOT_SET,
    )


def _compile_experiment(rule: ExperimentRule, ctx: CompileContext) -> CompiledRule:
    return CompiledRule(
        condition=ctx.condition(rule.condition, rule.saved_groups),
        variations=tuple(ctx.coerce(v.value) for v in rule.values),
        coverage=clamp(rule.coverage),
        weights=tuple(round_variation_weight(clamp(v.weight)) for v in rule.values),
        meta=tuple(
            VariationMeta(key=str(i), name=v.name or None)
            for i, v in enumerate(rule.values)
        ),
        key=rule.tracking_key or NOT_SET,
        hash_attribute=rule.hash_attribute or NOT_SET,
        namespace=compile_namespace(rule.namespace),
    )


def _compile_experiment_ref(
    rule: ExperimentRefRule, ctx: CompileContext
) -> Optional[CompiledRule]:
    experiment = ctx.experiment_map.get(rule.experiment_id)
    if experiment is None:
        logger.debug("Rule %s references unknown experiment %s", rule.id, rule.experiment_id)
        return None
    if not ctx.experiment_filter(experiment):
        return None
    if experiment.status == ExperimentStatus.DRAFT:
        return None
    if not experiment.phases:
        return None

    phase_index = len(experiment.phases) - 1
    phase = experiment.phases[phase_index]

    base = CompiledRule(
        condition=ctx.condition(phase.condition, phase.saved_groups),
        coverage=clamp(phase.coverage),
        hash_attribute=experiment.hash_attribute or NOT_SET,
        namespace=compile_namespace(phase.namespace),
        seed=phase.seed or NOT_SET,
        hash_version=experiment.hash_version,
    )

    if experiment.status == ExperimentStatus.STOPPED:
        released = next(
            (v for v in rule.variations if v.variation_id == experiment.released_variation_id),
            None,
        )
        if released is None:
            logger.debug(
                "Rule %s does not carry released variation %s",
                rule.id,
                experiment.released_variation_id,
            )
            return None
        return replace(base, force=ctx.coerce(released.value))

    values = {v.variation_id: v.value for v in rule.variations}
    return replace(
        base,
        variations=tuple(
            ctx.coerce(values[v.id]) if v.id in values else None
            for v in experiment.variations
        ),
        weights=tuple(phase.variation_weights),
        key=experiment.tracking_key,
        meta=tuple(VariationMeta(key=v.key, name=v.name) for v in experiment.variations),
        phase=str(phase_index),
        name=experiment.name,
    )


_COMPILERS = {
    ForceRule.rule_type: _compile_force,
    RolloutRule.rule_type: _compile_rollout,
    ExperimentRule.rule_type: _compile_experiment,
    ExperimentRefRule.rule_type: _compile_experiment_ref,
}


def compile_rule(rule: FeatureRule, ctx: CompileContext) -> Optional[CompiledRule]:
    """Compile one stored rule, or return ``None`` to leave it out."""
    compiler = _COMPILERS.get(rule.rule_type)
    if compiler is None:
        logger.debug("Skipping rule %s of unknown type %r", rule.id, rule.rule_type)
        return None

    compiled = compiler(rule, ctx)
    if compiled is not None and ctx.return_rule_id:
        compiled = replace(compiled, id=rule.id)
    return compiled


def compile_rules(
    rules: Sequence[FeatureRule],
    ctx: CompileContext,
    now: Optional[datetime] = None,
) -> Tuple[CompiledRule, ...]:
    """Compile the live rules of an environment, preserving their order."""
    live = (rule for rule in rules if is_rule_live(rule, now))
    compiled = (compile_rule(rule, ctx) for rule in live)
    return tuple(rule for rule in compiled if rule is not None)
