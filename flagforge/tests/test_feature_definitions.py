# flagforge/tests/test_feature_definitions.py
"""
Unit tests for the feature definition builder and SDK payload assembly.
"""


from datetime import datetime, timezone

from flagforge.services.feature_definitions import (
    build_feature_definition,
    build_sdk_payload,
)
from flagforge.services.models import (
    EnvironmentSettings,
    Experiment,
    ExperimentPhase,
    ExperimentRefRule,
    ExperimentRefVariation,
    ExperimentStatus,
    Feature,
    FeatureDraft,
    ForceRule,
    PayloadKey,
    RolloutRule,
    ValueType,
    Variation,
)


NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_feature(**overrides):
    data = dict(
        id="dark_mode",
        organization="org_1",
        value_type=ValueType.BOOLEAN,
        default_value="false",
        project="web",
        environment_settings={
            "prod": EnvironmentSettings(
                enabled=True,
                rules=(
                    ForceRule(id="r1", value="true", condition='{"beta": true}'),
                    RolloutRule(id="r2", value="true", coverage=0.25),
                ),
            ),
            "dev": EnvironmentSettings(enabled=False, rules=(ForceRule(id="r3", value="true"),)),
            "staging": EnvironmentSettings(enabled=True, rules=()),
        },
    )
    data.update(overrides)
    return Feature(**data)


def build(feature, environment="prod", **kwargs):
    return build_feature_definition(feature, environment, {}, {}, now=NOW, **kwargs)


def test_live_definition():
    definition = build(make_feature())
    assert definition.to_json() == {
        "defaultValue": False,
        "rules": [
            {"condition": {"beta": True}, "force": True},
            {"force": True, "coverage": 0.25},
        ],
    }


def test_disabled_missing_or_archived_returns_none():
    feature = make_feature()
    assert build(feature, "dev") is None
    assert build(feature, "unknown") is None
    assert build(make_feature(archived=True)) is None


def test_empty_rules_are_omitted():
    definition = build(make_feature(), "staging")
    assert definition.rules is None
    assert definition.to_json() == {"defaultValue": False}


def test_rules_that_all_drop_are_omitted():
    settings = {
        "prod": EnvironmentSettings(
            enabled=True,
            rules=(ForceRule(id="x", value="true", enabled=False),),
        )
    }
    assert "rules" not in build(make_feature(environment_settings=settings)).to_json()


def test_draft_replaces_default_and_environment_rules():
    draft = FeatureDraft(
        active=True,
        default_value="true",
        rules={"prod": (ForceRule(id="d1", value="false"),)},
    )
    feature = make_feature(draft=draft)
    assert build(feature, use_draft=True).to_json() == {
        "defaultValue": True,
        "rules": [{"force": False}],
    }
    # Live compilation ignores the draft.
    assert build(feature).to_json()["defaultValue"] is False


def test_draft_without_default_or_env_rules_falls_back_to_live():
    draft = FeatureDraft(active=True, default_value=None, rules={"staging": ()})
    feature = make_feature(draft=draft)
    assert build(feature, use_draft=True) == build(feature)


def test_inactive_draft_behaves_like_live():
    draft = FeatureDraft(
        active=False,
        default_value="true",
        rules={"prod": (ForceRule(id="d1", value="false"),)},
    )
    feature = make_feature(draft=draft)
    assert build(feature, use_draft=True) == build(feature, use_draft=False)


def test_use_draft_without_draft_is_ignored():
    feature = make_feature()
    assert build(feature, use_draft=True) == build(feature)


def test_return_rule_id():
    rules = build(make_feature(), return_rule_id=True).to_json()["rules"]
    assert [r["id"] for r in rules] == ["r1", "r2"]


def test_compilation_is_idempotent():
    feature = make_feature()
    assert build(feature) == build(feature)
    assert build(feature).to_json() == build(feature).to_json()


def test_experiment_reference_inside_definition():
    experiment = Experiment(
        id="exp_1",
        tracking_key="dm-test",
        name="Dark mode test",
        phases=(ExperimentPhase(coverage=1, variation_weights=(0.5, 0.5)),),
        variations=(Variation(id="v0", key="0", name="Off"), Variation(id="v1", key="1", name="On")),
        status=ExperimentStatus.STOPPED,
        released_variation_id="v0",
    )
    settings = {
        "prod": EnvironmentSettings(
            enabled=True,
            rules=(
                ExperimentRefRule(
                    id="ref",
                    experiment_id="exp_1",
                    variations=(ExperimentRefVariation("v1", "true"),),
                ),
            ),
        )
    }
    feature = make_feature(environment_settings=settings)
    definition = build_feature_definition(
        feature, "prod", {}, {"exp_1": experiment}, now=NOW
    )
    # Released variation is not declared on the rule: the rule is dropped.
    assert definition.to_json() == {"defaultValue": False}


# ---------- SDK payloads ----------


def test_sdk_payload_filters_by_project():
    web = make_feature()
    api = make_feature(id="rate_limit", project="api", value_type=ValueType.NUMBER,
                       default_value="100")
    archived = make_feature(id="old", archived=True)

    everything = build_sdk_payload([web, api, archived], PayloadKey("prod", ""), {}, {}, now=NOW)
    assert list(everything) == ["dark_mode", "rate_limit"]
    assert everything["rate_limit"].to_json() == {
        "defaultValue": 100,
        "rules": [
            {"condition": {"beta": True}, "force": 0},
            {"force": 0, "coverage": 0.25},
        ],
    }

    only_api = build_sdk_payload([web, api], PayloadKey("prod", "api"), {}, {}, now=NOW)
    assert list(only_api) == ["rate_limit"]


def test_sdk_payload_skips_disabled_environments():
    assert build_sdk_payload([make_feature()], PayloadKey("dev", ""), {}, {}, now=NOW) == {}


def test_non_finite_numbers_serialize_as_null():
    feature = make_feature(
        value_type=ValueType.NUMBER,
        default_value="Infinity",
        environment_settings={
            "prod": EnvironmentSettings(
                enabled=True, rules=(ForceRule(id="r1", value="-Infinity"),)
            ),
        },
    )
    assert build(feature).to_json() == {"defaultValue": None, "rules": [{"force": None}]}
