# flagforge/tests/test_app.py
"""
Integration tests for the FlagForge Flask application.

These tests exercise the real Flask app through its test client, backed
by the in-memory repository (reset between tests to keep them
independent).
"""


import pytest

from flagforge.app import create_app
from flagforge.config import Settings
from flagforge.repositories import memory_repo


API_KEY = "test-key-acme"
OTHER_KEY = "test-key-globex"


@pytest.fixture(scope="module")
def client():
    settings = Settings(
        admin_api_keys={API_KEY: "acme", OTHER_KEY: "globex"},
        log_level="WARNING",
    )
    flask_app = create_app(settings)
    with flask_app.test_client() as c:
        yield c


@pytest.fixture(autouse=True)
def empty_repo():
    memory_repo.clear()
    yield
    memory_repo.clear()


def _headers(api_key: str = API_KEY) -> dict:
    return {"X-Api-Key": api_key}


FEATURE_BODY = {
    "value_type": "number",
    "default_value": "10",
    "project": "shop",
    "environment_settings": {
        "prod": {
            "enabled": True,
            "rules": [
                {
                    "type": "force",
                    "id": "fr_1",
                    "value": "25",
                    "condition": '{"country": {"$inGroup": "grp_eu"}}',
                },
                {
                    "type": "experiment",
                    "id": "exp_inline",
                    "coverage": 0.5,
                    "tracking_key": "discount-test",
                    "values": [
                        {"value": "10", "weight": 0.5, "name": "Control"},
                        {"value": "20", "weight": 0.5},
                    ],
                },
            ],
        },
        "dev": {"enabled": False, "rules": []},
    },
    "draft": {
        "active": True,
        "default_value": "15",
        "rules": {"prod": []},
    },
}


def _seed_feature(client):
    client.put(
        "/admin/saved-groups/grp_eu",
        json={"key": "country", "source": "list", "values": ["FR", "DE"]},
        headers=_headers(),
    )
    return client.put("/admin/features/discount", json=FEATURE_BODY, headers=_headers())


def test_health(client):
    r = client.get("/health/")
    assert r.status_code == 200
    assert r.get_json()["status"] == "ok"


def test_admin_requires_api_key(client):
    r = client.get("/admin/features/discount")
    assert r.status_code == 401
    assert r.get_json()["code"] == "auth.api_key_invalid"

    r = client.get("/sdk-payload/prod", headers=_headers("wrong"))
    assert r.status_code == 401


def test_put_feature_reports_invalidated_keys(client):
    r = _seed_feature(client)
    assert r.status_code == 200
    data = r.get_json()
    assert data["feature"]["version"] == 1
    assert data["invalidated"] == [
        {"environment": "prod", "project": ""},
        {"environment": "prod", "project": "shop"},
    ]

    # Same body again: nothing visible changed.
    r = client.put("/admin/features/discount", json=FEATURE_BODY, headers=_headers())
    assert r.status_code == 200
    assert r.get_json()["invalidated"] == []
    assert r.get_json()["feature"]["version"] == 2


def test_put_feature_rejects_invalid_payload(client):
    r = client.put(
        "/admin/features/bad",
        json={"value_type": "color", "default_value": "red"},
        headers=_headers(),
    )
    assert r.status_code == 400
    assert r.get_json()["error"] == "BadRequest"

    r = client.put("/admin/features/bad", data="nope", headers=_headers())
    assert r.status_code == 400


def test_get_feature(client):
    _seed_feature(client)
    r = client.get("/admin/features/discount", headers=_headers())
    assert r.status_code == 200
    assert r.get_json()["environment_settings"]["prod"]["rules"][0]["id"] == "fr_1"

    r = client.get("/admin/features/unknown", headers=_headers())
    assert r.status_code == 404
    assert r.get_json()["error"] == "NotFound"


def test_features_are_scoped_per_organization(client):
    _seed_feature(client)
    r = client.get("/admin/features/discount", headers=_headers(OTHER_KEY))
    assert r.status_code == 404


def test_definition_preview_live_and_draft(client):
    _seed_feature(client)

    r = client.get("/admin/features/discount/definition/prod", headers=_headers())
    assert r.status_code == 200
    assert r.get_json()["definition"] == {
        "defaultValue": 10,
        "rules": [
            {"condition": {"country": {"$in": ["FR", "DE"]}}, "force": 25},
            {
                "variations": [10, 20],
                "coverage": 0.5,
                "weights": [0.5, 0.5],
                "key": "discount-test",
                "meta": [{"key": "0", "name": "Control"}, {"key": "1"}],
            },
        ],
    }

    r = client.get(
        "/admin/features/discount/definition/prod?draft=1", headers=_headers()
    )
    assert r.get_json()["definition"] == {"defaultValue": 15}

    r = client.get(
        "/admin/features/discount/definition/prod?rule_ids=true", headers=_headers()
    )
    assert [rule["id"] for rule in r.get_json()["definition"]["rules"]] == [
        "fr_1",
        "exp_inline",
    ]

    r = client.get("/admin/features/discount/definition/dev", headers=_headers())
    assert r.get_json()["definition"] is None


def test_saved_group_update_invalidates_targeting_feature(client):
    _seed_feature(client)
    r = client.put(
        "/admin/saved-groups/grp_eu",
        json={"key": "country", "source": "list", "values": ["FR", "DE", "IT"]},
        headers=_headers(),
    )
    assert r.status_code == 200
    assert r.get_json()["invalidated"] == [
        {"environment": "prod", "project": ""},
        {"environment": "prod", "project": "shop"},
    ]


def test_experiment_update(client):
    body = {
        "value_type": "string",
        "default_value": "blue",
        "environment_settings": {
            "prod": {
                "enabled": True,
                "rules": [
                    {
                        "type": "experiment-ref",
                        "id": "ref_1",
                        "experiment_id": "exp_color",
                        "variations": [
                            {"variation_id": "v0", "value": "blue"},
                            {"variation_id": "v1", "value": "red"},
                        ],
                    }
                ],
            }
        },
    }
    client.put("/admin/features/button_color", json=body, headers=_headers())

    experiment = {
        "tracking_key": "button-color",
        "name": "Button color",
        "status": "stopped",
        "released_variation_id": "v1",
        "variations": [{"id": "v0", "key": "0"}, {"id": "v1", "key": "1"}],
        "phases": [{"coverage": 1, "variation_weights": [0.5, 0.5]}],
    }
    r = client.put("/admin/experiments/exp_color", json=experiment, headers=_headers())
    assert r.status_code == 200
    assert r.get_json()["invalidated"] == [{"environment": "prod", "project": ""}]

    r = client.get("/sdk-payload/prod", headers=_headers())
    assert r.status_code == 200
    rule = r.get_json()["features"]["button_color"]["rules"][0]
    assert rule["force"] == "red"
    assert rule["hashVersion"] == 2
    assert "variations" not in rule


def test_experiment_rejects_invalid_payload(client):
    r = client.put(
        "/admin/experiments/exp_bad",
        json={"tracking_key": "x", "status": "paused", "variations": []},
        headers=_headers(),
    )
    assert r.status_code == 400


def test_sdk_payload_project_filter(client):
    _seed_feature(client)
    r = client.get("/sdk-payload/prod?project=other", headers=_headers())
    assert r.status_code == 200
    assert r.get_json() == {"environment": "prod", "project": "other", "features": {}}

    r = client.get("/sdk-payload/prod?project=shop", headers=_headers())
    assert list(r.get_json()["features"]) == ["discount"]


def test_openapi_and_schemas(client):
    yml = client.get("/openapi.yaml")
    assert yml.status_code == 200
    assert b"openapi: 3." in yml.data
    for name in [
        "feature.schema.json",
        "experiment.schema.json",
        "saved_group.schema.json",
    ]:
        rr = client.get(f"/schemas/{name}")
        assert rr.status_code == 200
        assert rr.data.strip().startswith(b"{")

    assert client.get("/schemas/missing.json").status_code == 404


def test_non_finite_number_is_valid_json(client):
    body = {
        "value_type": "number",
        "default_value": "Infinity",
        "environment_settings": {"prod": {"enabled": True, "rules": []}},
    }
    client.put("/admin/features/limit", json=body, headers=_headers())
    r = client.get("/admin/features/limit/definition/prod", headers=_headers())
    assert b"Infinity" not in r.data
    assert r.get_json()["definition"] == {"defaultValue": None}
