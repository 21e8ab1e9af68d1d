from __future__ import annotations

import json

import pytest

from recovery_app.importer.adapters import get_fixture_records
from recovery_app.importer.pipeline import recovery_service as recovery_service_module
from recovery_app.importer.pipeline.dq import AutoFix, FindingSeverity, ValidationFinding
from recovery_app.importer.pipeline.recovery_service import (
    BulkFixInterrupted,
    ErrorRecoveryService,
    RecoveryBadRequest,
    RecoverySessionNotFound,
)

SESSION_ID = "import_fixture"


def _finding(record_index, field, new_value=None, *, with_fix=True):
    return ValidationFinding(
        record_index=record_index,
        field=field,
        value=None,
        rule="Caller rule",
        severity=FindingSeverity.ERROR,
        message="caller supplied",
        auto_fix=AutoFix(action="Replace", new_value=new_value, confidence=95) if with_fix else None,
    )


def test_single_fix_then_finalize_changes_only_that_field(service, fixture_meta):
    service.apply_single_fix(SESSION_ID, fixture_meta, 1, "price", "12.00")

    records = service.finalize(SESSION_ID)
    expected = get_fixture_records()
    expected[1]["price"] = 12

    assert records == expected
    assert len(records) == 5


def test_fixing_record_one_price_resolves_exactly_one_finding(service, store, fixture_meta):
    session = store.get_or_init(SESSION_ID, fixture_meta)
    assert len(session.errors) == 3

    result = service.apply_single_fix(SESSION_ID, fixture_meta, 1, "price", "12.00")

    assert len(session.errors) == 2
    assert len(session.resolved_errors) == 1
    assert session.resolved_errors[0].key == (1, "price")
    assert result.remaining_errors == 2
    assert result.resolved is not None
    assert result.new_value == 12
    assert result.is_valid is True
    assert result.diff == {"price": {"before": "invalid_price", "after": 12}}


def test_repeated_single_fix_is_idempotent_but_appends_history(service, store, fixture_meta):
    service.apply_single_fix(SESSION_ID, fixture_meta, 1, "price", "12.00")
    session = store.get(SESSION_ID)
    first_record = dict(session.modified_records[1])
    first_final = service.finalize(SESSION_ID)

    second = service.apply_single_fix(SESSION_ID, fixture_meta, 1, "price", "12.00")

    assert session.modified_records[1] == first_record
    assert [finding.key for finding in session.resolved_errors] == [(1, "price"), (1, "price")]
    assert service.finalize(SESSION_ID) == first_final
    assert second.diff == {}


def test_fix_without_outstanding_finding_keeps_history_unchanged(service, store, fixture_meta):
    service.apply_single_fix(SESSION_ID, fixture_meta, 0, "description", "Blue widget")

    session = store.get(SESSION_ID)
    assert session.resolved_errors == []
    assert len(session.errors) == 3
    assert session.modified_records[0]["description"] == "Blue widget"


def test_successive_fixes_to_one_record_compose(service, fixture_meta):
    service.apply_single_fix(SESSION_ID, fixture_meta, 2, "name", "Test Product 3")
    service.apply_single_fix(SESSION_ID, fixture_meta, 2, "stock", "-4")

    record = service.finalize(SESSION_ID)[2]
    assert record["name"] == "Test Product 3"
    assert record["stock"] == 0
    assert record["sku"] == "TEST-003"


def test_revalidation_is_informational_only(service, store, fixture_meta):
    result = service.apply_single_fix(SESSION_ID, fixture_meta, 0, "name", "   ")

    assert result.is_valid is False
    assert [finding.field for finding in result.validation_errors] == ["name"]
    assert len(store.get(SESSION_ID).errors) == 3


@pytest.mark.parametrize("record_index", [5, -1, 99])
def test_single_fix_out_of_range_does_not_mutate(service, store, fixture_meta, record_index):
    with pytest.raises(RecoveryBadRequest):
        service.apply_single_fix(SESSION_ID, fixture_meta, record_index, "price", "1")

    session = store.get(SESSION_ID)
    assert session.modified_records == {}
    assert len(session.errors) == 3
    assert session.resolved_errors == []


def test_single_fix_requires_field_name(service, fixture_meta):
    with pytest.raises(RecoveryBadRequest):
        service.apply_single_fix(SESSION_ID, fixture_meta, 0, "", "x")


def test_bulk_fix_counts_only_findings_with_auto_fix(service, store, fixture_meta):
    session = store.get_or_init(SESSION_ID, fixture_meta)
    findings = list(session.errors)
    assert sum(1 for finding in findings if finding.auto_fix is not None) == 2

    result = service.apply_bulk_fix(SESSION_ID, fixture_meta, "Auto", findings)

    assert result.fixed_count == 2
    assert result.remaining_errors == 1
    assert [finding.field for finding in session.errors] == ["name"]
    assert len(session.resolved_errors) == 2
    records = service.finalize(SESSION_ID)
    assert records[1]["price"] == 0
    assert records[4]["stock"] == 0


def test_bulk_fix_half_without_auto_fix(service, fixture_meta):
    findings = [
        _finding(0, "name", "A"),
        _finding(1, "name", with_fix=False),
        _finding(2, "name", "C"),
        _finding(3, "name", with_fix=False),
    ]

    result = service.apply_bulk_fix(SESSION_ID, fixture_meta, "Names", findings)

    assert result.fixed_count == 2
    assert result.rule == "Names"


def test_bulk_fix_matches_by_position_not_rule(service, store, fixture_meta):
    result = service.apply_bulk_fix(SESSION_ID, fixture_meta, "Unrelated label", [_finding(1, "price", "7")])

    session = store.get(SESSION_ID)
    assert result.fixed_count == 1
    assert (1, "price") not in {finding.key for finding in session.errors}
    assert session.resolved_errors[-1].rule == "Caller rule"
    assert service.finalize(SESSION_ID)[1]["price"] == 7


def test_bulk_fix_reports_out_of_range_findings(service, fixture_meta):
    result = service.apply_bulk_fix(
        SESSION_ID,
        fixture_meta,
        "Mixed",
        [_finding(1, "price", 3), _finding(40, "price", 3)],
    )

    assert result.fixed_count == 1
    assert [finding.record_index for finding in result.skipped_out_of_range] == [40]
    assert result.as_dict()["skipped"][0]["recordIndex"] == 40


def test_bulk_fix_rejects_oversized_batches(store, fixture_meta):
    limited = ErrorRecoveryService(store, max_bulk_findings=1)

    with pytest.raises(RecoveryBadRequest):
        limited.apply_bulk_fix(SESSION_ID, fixture_meta, "Too many", [_finding(1, "price", 1), _finding(4, "stock", 1)])

    assert store.get(SESSION_ID) is None


def test_bulk_fix_interruption_keeps_applied_fixes(service, store, fixture_meta, monkeypatch):
    original = recovery_service_module.coerce_field_value
    calls = {"count": 0}

    def _flaky(field_name, value):
        calls["count"] += 1
        if calls["count"] == 2:
            raise RuntimeError("disk full")
        return original(field_name, value)

    monkeypatch.setattr(recovery_service_module, "coerce_field_value", _flaky)

    with pytest.raises(BulkFixInterrupted) as excinfo:
        service.apply_bulk_fix(SESSION_ID, fixture_meta, "Auto", [_finding(1, "price", 5), _finding(4, "stock", 1)])

    assert [finding.key for finding in excinfo.value.applied] == [(1, "price")]
    assert excinfo.value.remaining_errors == 2
    assert excinfo.value.status_code == 500
    session = store.get(SESSION_ID)
    assert session.modified_records[1]["price"] == 5
    assert 4 not in session.modified_records


def test_negative_price_round_trip(service, store, tmp_path, make_meta):
    source = tmp_path / "products.json"
    source.write_text(json.dumps([{"name": "Widget", "price": "-15.5"}]), encoding="utf-8")
    meta = make_meta("import_file", file_path=source, file_name="products.json")

    session = store.get_or_init("import_file", meta)
    assert session.errors[0].auto_fix.new_value == 15.5

    service.apply_bulk_fix("import_file", meta, "Invalid price format", list(session.errors))

    record = service.finalize("import_file")[0]
    assert record["price"] == 15.5
    assert isinstance(record["price"], float)


def test_status_progress_is_zero_without_findings(service, tmp_path, make_meta):
    source = tmp_path / "clean.json"
    source.write_text(json.dumps([{"name": "Widget", "price": 1}]), encoding="utf-8")

    status = service.get_status("clean", make_meta("clean", file_path=source, file_name="clean.json"))

    assert status.total == 0
    assert status.progress == 0
    assert status.data_source == "file"


def test_status_progress_reaches_one_hundred(service, fixture_meta):
    initial = service.get_status(SESSION_ID, fixture_meta)
    assert initial.total == 3
    assert initial.progress == 0

    service.apply_single_fix(SESSION_ID, fixture_meta, 1, "price", "12.00")
    partial = service.get_status(SESSION_ID, fixture_meta)
    assert partial.progress == pytest.approx(100 / 3)

    service.apply_single_fix(SESSION_ID, fixture_meta, 2, "name", "Named")
    service.apply_single_fix(SESSION_ID, fixture_meta, 4, "stock", "8")
    final = service.get_status(SESSION_ID, fixture_meta)

    assert final.errors == []
    assert final.resolved_count == 3
    assert final.progress == 100
    assert final.as_dict()["modifiedCount"] == 3


def test_finalize_requires_session_and_leaves_it_in_place(service, store, fixture_meta):
    with pytest.raises(RecoverySessionNotFound):
        service.finalize(SESSION_ID)

    store.get_or_init(SESSION_ID, fixture_meta)
    records = service.finalize(SESSION_ID)
    records[0]["name"] = "mutated copy"

    assert SESSION_ID in store
    assert service.finalize(SESSION_ID)[0]["name"] == "Test Product 1"


def test_cleanup_removes_session(service, store, fixture_meta):
    store.get_or_init(SESSION_ID, fixture_meta)

    assert service.cleanup(SESSION_ID) is True
    assert service.cleanup(SESSION_ID) is False
    with pytest.raises(RecoverySessionNotFound):
        service.finalize(SESSION_ID)


def test_analyze_splits_by_confidence(service, fixture_meta):
    analysis = service.analyze(SESSION_ID, fixture_meta)

    assert analysis.threshold == 90
    assert analysis.total == 3
    assert analysis.auto_fixable == 0
    assert analysis.manual_required == 3
    assert {item.rule: item.count for item in analysis.by_rule} == {
        "Invalid price format": 1,
        "Required field missing": 1,
        "Invalid stock quantity": 1,
    }

    relaxed = service.analyze(SESSION_ID, fixture_meta, threshold=70)
    assert relaxed.auto_fixable == 2
    assert relaxed.manual_required == 1
    payload = relaxed.as_dict()
    fixable = {item["field"] for item in payload["suggestions"] if item["autoFixable"]}
    assert fixable == {"price", "stock"}


def test_overflowing_price_correction_finalizes_as_zero(service, fixture_meta):
    result = service.apply_single_fix(SESSION_ID, fixture_meta, 1, "price", "1e999")

    assert result.new_value == 0
    records = service.finalize(SESSION_ID)
    assert records[1]["price"] == 0
    json.dumps(records, allow_nan=False)


def test_finalize_and_cleanup_hands_off_then_discards(service, store, fixture_meta):
    service.apply_single_fix(SESSION_ID, fixture_meta, 1, "price", "12.00")
    received = []

    records = service.finalize_and_cleanup(SESSION_ID, received.append)

    assert received == [records]
    assert records[1]["price"] == 12
    assert SESSION_ID not in store
    assert store.lock_ids() == []


def test_finalize_and_cleanup_keeps_session_when_hand_off_fails(service, store, fixture_meta):
    store.get_or_init(SESSION_ID, fixture_meta)

    def _failing_hand_off(records):
        raise RuntimeError("database unavailable")

    with pytest.raises(RuntimeError):
        service.finalize_and_cleanup(SESSION_ID, _failing_hand_off)

    assert SESSION_ID in store
