from __future__ import annotations

import pytest

from recovery_app.importer import init_recovery
from recovery_app.importer.pipeline import recovery_service as recovery_service_module
from recovery_app.models import ImportSession, db


def _status(auth_client, session_id):
    response = auth_client.get(f"/api/recovery/{session_id}/status")
    assert response.status_code == 200, response.get_json()
    return response.get_json()


def test_recovery_endpoints_require_auth(client, make_import_session):
    record = make_import_session()

    assert client.get(f"/api/recovery/{record.session_id}/status").status_code == 401
    response = client.post(
        f"/api/recovery/{record.session_id}/fix-single",
        json={"recordIndex": 1, "field": "price", "newValue": "1"},
    )
    assert response.status_code == 401
    assert response.get_json()["success"] is False


def test_unknown_import_session_is_404(auth_client):
    response = auth_client.get("/api/recovery/import_missing/status")

    assert response.status_code == 404
    assert response.get_json()["message"] == "Import session not found"


def test_other_users_session_is_forbidden(app, other_user, make_import_session, recovery_state):
    record = make_import_session(user=other_user)
    foreign_client = app.test_client(user=other_user)
    assert foreign_client.get(f"/api/recovery/{record.session_id}/status").status_code == 200

    owner_record = make_import_session()
    response = foreign_client.get(f"/api/recovery/{owner_record.session_id}/status")

    assert response.status_code == 403
    assert response.get_json()["message"] == "Access denied"
    assert owner_record.session_id not in recovery_state["store"]


def test_status_initializes_session_from_fixture(auth_client, make_import_session):
    record = make_import_session()

    payload = _status(auth_client, record.session_id)

    assert payload["success"] is True
    assert payload["totalErrors"] == 3
    assert payload["resolvedCount"] == 0
    assert payload["progress"] == 0
    assert payload["recordCount"] == 5
    assert payload["dataSource"] == "fixture"
    assert {(item["recordIndex"], item["field"]) for item in payload["errors"]} == {
        (1, "price"),
        (2, "name"),
        (4, "stock"),
    }


def test_status_reads_uploaded_file(auth_client, make_import_session, write_json_source):
    source = write_json_source([{"name": "Widget", "price": -2}, {"name": "Gadget", "price": 4}])
    record = make_import_session(file_path=source, file_name="products.json")

    payload = _status(auth_client, record.session_id)

    assert payload["dataSource"] == "file"
    assert payload["recordCount"] == 2
    assert [item["field"] for item in payload["errors"]] == ["price"]


def test_status_without_fallback_reports_unloadable_data(app, auth_client, make_import_session):
    app.config["RECOVERY_FIXTURE_FALLBACK"] = False
    init_recovery(app)
    record = make_import_session()

    response = auth_client.get(f"/api/recovery/{record.session_id}/status")

    assert response.status_code == 422
    assert response.get_json()["message"] == "Import data could not be loaded."


def test_fix_single_applies_correction(auth_client, make_import_session):
    record = make_import_session()

    response = auth_client.post(
        f"/api/recovery/{record.session_id}/fix-single",
        json={"recordIndex": 1, "field": "price", "newValue": "12.00"},
    )

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["message"] == "Fix applied successfully"
    assert payload["newValue"] == 12
    assert payload["resolved"] is True
    assert payload["remainingErrors"] == 2
    assert payload["validation"] == {"isValid": True, "errors": []}
    assert payload["diff"] == {"price": {"before": "invalid_price", "after": 12}}

    status = _status(auth_client, record.session_id)
    assert status["resolvedCount"] == 1
    assert status["modifiedCount"] == 1


@pytest.mark.parametrize(
    "body",
    [
        {"recordIndex": "1", "field": "price", "newValue": "1"},
        {"recordIndex": True, "field": "price", "newValue": "1"},
        {"recordIndex": 1, "field": "", "newValue": "1"},
        {"recordIndex": 1, "field": "price"},
        {"recordIndex": 9, "field": "price", "newValue": "1"},
        [1, 2],
    ],
)
def test_fix_single_rejects_bad_requests(auth_client, make_import_session, recovery_state, body):
    record = make_import_session()

    response = auth_client.post(f"/api/recovery/{record.session_id}/fix-single", json=body)

    assert response.status_code == 400
    assert response.get_json()["success"] is False
    session = recovery_state["store"].get(record.session_id)
    assert session is None or session.modified_records == {}


def test_fix_bulk_applies_auto_fixable_findings(auth_client, make_import_session):
    record = make_import_session()
    findings = _status(auth_client, record.session_id)["errors"]

    response = auth_client.post(
        f"/api/recovery/{record.session_id}/fix-bulk",
        json={"rule": "Auto-fix all", "errors": findings},
    )

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["message"] == "Applied 2 fixes"
    assert payload["fixedCount"] == 2
    assert payload["remainingErrors"] == 1
    assert payload["skipped"] == []


def test_fix_bulk_rejects_malformed_findings_without_mutation(auth_client, make_import_session, recovery_state):
    record = make_import_session()
    _status(auth_client, record.session_id)

    response = auth_client.post(
        f"/api/recovery/{record.session_id}/fix-bulk",
        json={
            "rule": "Mixed",
            "errors": [
                {"recordIndex": 1, "field": "price", "autoFix": {"action": "Set", "newValue": 0, "confidence": 80}},
                {"field": "stock"},
            ],
        },
    )

    assert response.status_code == 400
    assert "errors[1]" in response.get_json()["message"]
    session = recovery_state["store"].get(record.session_id)
    assert session.modified_records == {}
    assert len(session.errors) == 3


def test_fix_bulk_requires_a_list(auth_client, make_import_session):
    record = make_import_session()

    response = auth_client.post(f"/api/recovery/{record.session_id}/fix-bulk", json={"rule": "x", "errors": {}})

    assert response.status_code == 400


def test_fix_bulk_interruption_reports_partial_progress(auth_client, make_import_session, monkeypatch):
    record = make_import_session()
    findings = _status(auth_client, record.session_id)["errors"]
    original = recovery_service_module.coerce_field_value
    calls = {"count": 0}

    def _flaky(field_name, value):
        calls["count"] += 1
        if calls["count"] == 2:
            raise RuntimeError("disk full")
        return original(field_name, value)

    monkeypatch.setattr(recovery_service_module, "coerce_field_value", _flaky)

    response = auth_client.post(
        f"/api/recovery/{record.session_id}/fix-bulk",
        json={"rule": "Auto-fix all", "errors": findings},
    )

    assert response.status_code == 500
    payload = response.get_json()
    assert payload["success"] is False
    assert payload["fixedCount"] == 1
    assert payload["remainingErrors"] == 2


def test_analyze_honours_threshold(auth_client, make_import_session):
    record = make_import_session()

    default = auth_client.get(f"/api/recovery/{record.session_id}/analyze").get_json()
    relaxed = auth_client.get(f"/api/recovery/{record.session_id}/analyze?threshold=70").get_json()

    assert default["message"] == "Analysis complete"
    assert default["threshold"] == 90
    assert default["autoFixable"] == 0
    assert relaxed["autoFixable"] == 2
    assert relaxed["manualRequired"] == 1
    assert relaxed["totalErrors"] == 3


@pytest.mark.parametrize("threshold", ["abc", "101", "-1"])
def test_analyze_rejects_bad_threshold(auth_client, make_import_session, threshold):
    record = make_import_session()

    response = auth_client.get(f"/api/recovery/{record.session_id}/analyze?threshold={threshold}")

    assert response.status_code == 400


def test_finalize_requires_live_recovery_session(auth_client, make_import_session):
    record = make_import_session()

    response = auth_client.post(f"/api/recovery/{record.session_id}/finalize")

    assert response.status_code == 404


def test_finalize_returns_corrected_records(auth_client, make_import_session, recovery_state):
    record = make_import_session()
    auth_client.post(
        f"/api/recovery/{record.session_id}/fix-single",
        json={"recordIndex": 2, "field": "name", "newValue": "Test Product 3"},
    )

    response = auth_client.post(f"/api/recovery/{record.session_id}/finalize", json={})

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["committed"] is False
    assert payload["recordCount"] == 5
    assert payload["records"][2]["name"] == "Test Product 3"
    assert payload["records"][1]["price"] == "invalid_price"
    assert record.session_id in recovery_state["store"]


def test_finalize_commit_flags_import_and_discards_session(auth_client, make_import_session, recovery_state):
    record = make_import_session(metadata={"source": "upload"})
    _status(auth_client, record.session_id)

    response = auth_client.post(f"/api/recovery/{record.session_id}/finalize", json={"commit": True})

    assert response.status_code == 200
    assert response.get_json()["committed"] is True
    assert record.session_id not in recovery_state["store"]
    stored = db.session.query(ImportSession).filter_by(session_id=record.session_id).one()
    assert stored.metadata_json == {
        "source": "upload",
        "has_recovered_data": True,
        "recovered_record_count": 5,
    }


def test_finalize_rejects_non_boolean_commit(auth_client, make_import_session):
    record = make_import_session()
    _status(auth_client, record.session_id)

    response = auth_client.post(f"/api/recovery/{record.session_id}/finalize", json={"commit": "yes"})

    assert response.status_code == 400


def test_delete_discards_recovery_session(auth_client, make_import_session, recovery_state):
    record = make_import_session()
    _status(auth_client, record.session_id)

    first = auth_client.delete(f"/api/recovery/{record.session_id}")
    second = auth_client.delete(f"/api/recovery/{record.session_id}")

    assert first.get_json()["removed"] is True
    assert first.get_json()["message"] == "Recovery session removed"
    assert second.get_json()["removed"] is False
    assert record.session_id not in recovery_state["store"]


def test_routes_answer_404_once_recovery_is_switched_off(app, auth_client, make_import_session):
    record = make_import_session()
    app.config["RECOVERY_ENABLED"] = False
    init_recovery(app)

    response = auth_client.get(f"/api/recovery/{record.session_id}/status")

    assert response.status_code == 404
    assert response.get_json()["message"] == "Error recovery is disabled."


def test_health_reports_recovery_sessions(client, auth_client, make_import_session):
    record = make_import_session()
    _status(auth_client, record.session_id)

    response = client.get("/health")

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["status"] == "healthy"
    assert payload["recovery"] == {"enabled": True, "active_sessions": 1}


def test_metrics_endpoint_exposes_recovery_counters(client, auth_client, make_import_session):
    record = make_import_session()
    _status(auth_client, record.session_id)

    response = client.get("/metrics")

    assert response.status_code == 200
    assert b"recovery_sessions_initialized_total" in response.data
