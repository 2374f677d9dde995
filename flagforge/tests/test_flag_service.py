# flagforge/tests/test_flag_service.py
"""
Unit tests for the flag_service module.

These tests go through the in-memory repository (reset before every
test) and check versioning, invalidation reporting and compilation from
stored snapshots.
"""


from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from flagforge.repositories import memory_repo
from flagforge.services import flag_service
from flagforge.services.models import (
    EnvironmentSettings,
    Experiment,
    ExperimentPhase,
    ExperimentRefRule,
    ExperimentRefVariation,
    ExperimentStatus,
    Feature,
    ForceRule,
    GroupSource,
    PayloadKey,
    SavedGroup,
    SavedGroupTargeting,
    ScheduleWindow,
    ValueType,
    Variation,
)


NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
ORG = "org_1"


@pytest.fixture(autouse=True)
def empty_repo():
    memory_repo.clear()
    yield
    memory_repo.clear()


def make_feature(**overrides):
    data = dict(
        id="banner",
        organization=ORG,
        value_type=ValueType.STRING,
        default_value="hello",
        project="web",
        environment_settings={
            "prod": EnvironmentSettings(
                enabled=True,
                rules=(
                    ForceRule(
                        id="r1",
                        value="hi vip",
                        saved_groups=(SavedGroupTargeting(ids=("vips",), match="any"),),
                    ),
                ),
            ),
            "dev": EnvironmentSettings(enabled=True, rules=()),
        },
    )
    data.update(overrides)
    return Feature(**data)


def test_new_feature_invalidates_enabled_environments():
    keys = flag_service.save_feature(make_feature(), NOW)
    assert keys == [
        PayloadKey("prod", ""),
        PayloadKey("prod", "web"),
        PayloadKey("dev", ""),
        PayloadKey("dev", "web"),
    ]
    assert memory_repo.get_feature(ORG, "banner").version == 1


def test_update_bumps_version_and_returns_diff():
    flag_service.save_feature(make_feature(), NOW)
    updated = make_feature(
        environment_settings={
            **make_feature().environment_settings,
            "dev": EnvironmentSettings(enabled=True, rules=(ForceRule(id="d", value="x"),)),
        }
    )
    keys = flag_service.save_feature(updated, NOW)
    assert keys == [PayloadKey("dev", ""), PayloadKey("dev", "web")]
    assert memory_repo.get_feature(ORG, "banner").version == 2


def test_schedule_change_updates_next_scheduled_update():
    flag_service.save_feature(make_feature(), NOW)
    later = NOW + timedelta(hours=2)
    scheduled = make_feature(
        environment_settings={
            **make_feature().environment_settings,
            "prod": EnvironmentSettings(
                enabled=True,
                rules=(ForceRule(id="r1", value="x", schedule_rules=(ScheduleWindow(start=later),)),),
            ),
        }
    )
    keys = flag_service.save_feature(scheduled, NOW)
    assert memory_repo.get_feature(ORG, "banner").next_scheduled_update == later
    # Schedule changes count as global: every enabled environment is hit.
    assert {k.environment for k in keys} == {"prod", "dev"}


def test_saved_group_update_hits_targeting_features():
    flag_service.save_feature(make_feature(), NOW)
    flag_service.save_feature(make_feature(id="unrelated", project="api",
                                           environment_settings={
                                               "prod": EnvironmentSettings(enabled=True, rules=(
                                                   ForceRule(id="c", value="y",
                                                             condition='{"id": {"$inGroup": "vips"}}'),
                                               )),
                                           }), NOW)
    group = SavedGroup(id="vips", key="userId", values=("u1", "u2"))
    keys = flag_service.save_saved_group(ORG, group, NOW)
    assert keys == [
        PayloadKey("prod", ""),
        PayloadKey("prod", "web"),
        PayloadKey("prod", "api"),
    ]


def test_saved_group_used_by_experiment_phase_hits_linked_features():
    flag_service.save_saved_group(ORG, SavedGroup(id="vips", key="id", values=("1",)), NOW)
    flag_service.save_experiment(
        ORG,
        Experiment(
            id="exp_1",
            tracking_key="vip-test",
            phases=(
                ExperimentPhase(
                    saved_groups=(SavedGroupTargeting(ids=("vips",), match="all"),),
                    variation_weights=(0.5, 0.5),
                ),
            ),
            variations=(Variation("v0", "0"), Variation("v1", "1")),
            status=ExperimentStatus.RUNNING,
        ),
        NOW,
    )
    rule = ExperimentRefRule(
        id="ref",
        experiment_id="exp_1",
        variations=(ExperimentRefVariation("v0", "a"), ExperimentRefVariation("v1", "b")),
    )
    flag_service.save_feature(
        make_feature(environment_settings={"prod": EnvironmentSettings(enabled=True, rules=(rule,))}),
        NOW,
    )

    def compiled_condition():
        definition = flag_service.get_feature_definition(ORG, "banner", "prod", now=NOW)
        return definition.to_json()["rules"][0]["condition"]

    assert compiled_condition() == {"id": {"$in": ["1"]}}

    keys = flag_service.save_saved_group(
        ORG, SavedGroup(id="vips", key="id", values=("1", "2")), NOW
    )
    assert compiled_condition() == {"id": {"$in": ["1", "2"]}}
    assert keys == [PayloadKey("prod", ""), PayloadKey("prod", "web")]


def test_experiment_update_hits_linked_features():
    rule = ExperimentRefRule(
        id="ref",
        experiment_id="exp_1",
        variations=(ExperimentRefVariation("v0", "a"), ExperimentRefVariation("v1", "b")),
    )
    flag_service.save_feature(
        make_feature(environment_settings={"prod": EnvironmentSettings(enabled=True, rules=(rule,))}),
        NOW,
    )
    flag_service.save_feature(make_feature(id="other"), NOW)
    experiment = Experiment(
        id="exp_1",
        tracking_key="banner-test",
        phases=(ExperimentPhase(variation_weights=(0.5, 0.5)),),
        variations=(Variation("v0", "0"), Variation("v1", "1")),
        status=ExperimentStatus.RUNNING,
    )
    keys = flag_service.save_experiment(ORG, experiment, NOW)
    assert keys == [PayloadKey("prod", ""), PayloadKey("prod", "web")]

    definition = flag_service.get_feature_definition(ORG, "banner", "prod", now=NOW)
    assert definition.to_json()["rules"][0]["variations"] == ["a", "b"]


def test_get_feature_definition_uses_stored_groups():
    flag_service.save_feature(make_feature(), NOW)
    flag_service.save_saved_group(
        ORG, SavedGroup(id="vips", key="vip", source=GroupSource.RUNTIME), NOW
    )
    definition = flag_service.get_feature_definition(
        ORG, "banner", "prod", groups_attribute="$cohorts", now=NOW
    )
    assert definition.to_json() == {
        "defaultValue": "hello",
        "rules": [
            {"condition": {"$cohorts": {"$elemMatch": {"$eq": "vip"}}}, "force": "hi vip"},
        ],
    }


def test_get_feature_definition_unknown_feature():
    with pytest.raises(LookupError):
        flag_service.get_feature_definition(ORG, "missing", "prod")


def test_get_sdk_payload_is_scoped_to_organization():
    flag_service.save_feature(make_feature(), NOW)
    flag_service.save_feature(replace(make_feature(), organization="org_2", id="foreign"), NOW)
    payload = flag_service.get_sdk_payload(ORG, PayloadKey("dev", ""), now=NOW)
    assert {fid: d.to_json() for fid, d in payload.items()} == {
        "banner": {"defaultValue": "hello"}
    }
