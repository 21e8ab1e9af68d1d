"""
Recovery blueprint endpoints for fixing import validation findings.

Every endpoint requires an authenticated user who owns the import session and
answers with JSON carrying ``success`` and ``message``.
"""

from __future__ import annotations

import time
from http import HTTPStatus
from typing import Any

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user

from config.monitoring import RecoveryMonitoring

from .adapters import RecordLoadError
from .contracts import SessionMeta
from .pipeline.dq import ValidationFinding
from .pipeline.recovery_service import (
    BulkFixInterrupted,
    ErrorRecoveryService,
    RecoveryAccessDenied,
    RecoveryBadRequest,
    RecoveryError,
    RecoverySessionNotFound,
)
from .pipeline.session_lookup import ImportSessionLocator

recovery_blueprint = Blueprint("recovery", __name__, url_prefix="/api/recovery")

RECOVERY_EXTENSION_KEY = "recovery"


def _json_error(message: str, status: HTTPStatus, **extra: Any):
    payload = {"success": False, "message": message, "error": message}
    payload.update(extra)
    return jsonify(payload), status


def _ensure_authenticated_api():
    if not current_user.is_authenticated:
        return _json_error("Authentication required.", HTTPStatus.UNAUTHORIZED)
    return None


@recovery_blueprint.before_request
def _require_recovery_enabled():
    # The blueprint stays mounted after the flag is switched off at runtime.
    state = current_app.extensions.get(RECOVERY_EXTENSION_KEY, {})
    if not state.get("enabled"):
        return _json_error("Error recovery is disabled.", HTTPStatus.NOT_FOUND)
    return None


def _service() -> ErrorRecoveryService:
    return current_app.extensions[RECOVERY_EXTENSION_KEY]["service"]


def _locator() -> ImportSessionLocator:
    return current_app.extensions[RECOVERY_EXTENSION_KEY]["locator"]


def _resolve_session(session_id: str) -> SessionMeta:
    meta = _locator().locate(session_id)
    if meta is None:
        raise RecoverySessionNotFound("Import session not found")
    if meta.user_id != current_user.id:
        raise RecoveryAccessDenied("Access denied")
    return meta


def _record(endpoint: str, start_time: float, status: str) -> None:
    RecoveryMonitoring.record_request(
        endpoint=endpoint,
        duration_seconds=time.perf_counter() - start_time,
        status=status,
    )


def _recovery_error_response(endpoint: str, start_time: float, exc: RecoveryError):
    status = HTTPStatus(exc.status_code)
    _record(endpoint, start_time, "client_error" if status < 500 else "error")
    return _json_error(str(exc), status)


def _load_error_response(endpoint: str, start_time: float, session_id: str, exc: RecordLoadError):
    current_app.logger.warning(
        "Recovery data for session %s could not be loaded: %s",
        session_id,
        exc,
        extra={"recovery_session_id": session_id},
    )
    _record(endpoint, start_time, "error")
    return _json_error("Import data could not be loaded.", HTTPStatus.UNPROCESSABLE_ENTITY)


def _unexpected_error_response(endpoint: str, start_time: float, message: str):
    _record(endpoint, start_time, "error")
    return _json_error(message, HTTPStatus.INTERNAL_SERVER_ERROR)


def _request_json() -> dict[str, Any]:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise RecoveryBadRequest("Request body must be a JSON object.")
    return payload


def _parse_single_fix(payload: dict[str, Any]) -> tuple[int, str, Any]:
    record_index = payload.get("recordIndex")
    if isinstance(record_index, bool) or not isinstance(record_index, int):
        raise RecoveryBadRequest("recordIndex must be an integer.")
    field_name = payload.get("field")
    if not isinstance(field_name, str) or not field_name.strip():
        raise RecoveryBadRequest("field must be a non-empty string.")
    if "newValue" not in payload:
        raise RecoveryBadRequest("newValue is required.")
    return record_index, field_name, payload["newValue"]


def _parse_bulk_fix(payload: dict[str, Any]) -> tuple[str, list[ValidationFinding]]:
    rule_label = payload.get("rule") or ""
    if not isinstance(rule_label, str):
        raise RecoveryBadRequest("rule must be a string.")
    raw_findings = payload.get("errors")
    if not isinstance(raw_findings, list):
        raise RecoveryBadRequest("errors must be a list of findings.")
    findings: list[ValidationFinding] = []
    for position, raw in enumerate(raw_findings):
        try:
            findings.append(ValidationFinding.from_mapping(raw))
        except ValueError as exc:
            raise RecoveryBadRequest(f"errors[{position}]: {exc}") from exc
    return rule_label, findings


def _parse_threshold() -> int | None:
    raw = request.args.get("threshold")
    if raw is None or raw.strip() == "":
        return None
    try:
        threshold = int(raw)
    except ValueError as exc:
        raise RecoveryBadRequest("threshold must be an integer between 0 and 100.") from exc
    if not 0 <= threshold <= 100:
        raise RecoveryBadRequest("threshold must be an integer between 0 and 100.")
    return threshold


@recovery_blueprint.get("/<session_id>/status")
def recovery_status(session_id: str):
    auth_error = _ensure_authenticated_api()
    if auth_error:
        return auth_error

    start_time = time.perf_counter()
    try:
        meta = _resolve_session(session_id)
        status = _service().get_status(session_id, meta)
    except RecoveryError as exc:
        return _recovery_error_response("status", start_time, exc)
    except RecordLoadError as exc:
        return _load_error_response("status", start_time, session_id, exc)
    except Exception as exc:  # pragma: no cover - defensive logging
        current_app.logger.exception("Recovery status failed.", exc_info=exc)
        return _unexpected_error_response("status", start_time, "Failed to get recovery status")

    _record("status", start_time, "success")
    return jsonify({"success": True, "message": "Recovery status loaded", **status.as_dict()}), HTTPStatus.OK


@recovery_blueprint.post("/<session_id>/fix-single")
def recovery_fix_single(session_id: str):
    auth_error = _ensure_authenticated_api()
    if auth_error:
        return auth_error

    start_time = time.perf_counter()
    try:
        record_index, field_name, new_value = _parse_single_fix(_request_json())
        meta = _resolve_session(session_id)
        result = _service().apply_single_fix(session_id, meta, record_index, field_name, new_value)
    except RecoveryError as exc:
        return _recovery_error_response("fix_single", start_time, exc)
    except RecordLoadError as exc:
        return _load_error_response("fix_single", start_time, session_id, exc)
    except Exception as exc:  # pragma: no cover - defensive logging
        current_app.logger.exception("Recovery single fix failed.", exc_info=exc)
        return _unexpected_error_response("fix_single", start_time, "Failed to apply fix")

    _record("fix_single", start_time, "success")
    current_app.logger.info(
        "Recovery fix applied by user %s",
        current_user.id,
        extra={
            "recovery_session_id": session_id,
            "recovery_record_index": record_index,
            "recovery_field": field_name,
            "user_id": current_user.id,
        },
    )
    return jsonify({"success": True, "message": "Fix applied successfully", **result.as_dict()}), HTTPStatus.OK


@recovery_blueprint.post("/<session_id>/fix-bulk")
def recovery_fix_bulk(session_id: str):
    auth_error = _ensure_authenticated_api()
    if auth_error:
        return auth_error

    start_time = time.perf_counter()
    finding_count = 0
    try:
        rule_label, findings = _parse_bulk_fix(_request_json())
        finding_count = len(findings)
        meta = _resolve_session(session_id)
        result = _service().apply_bulk_fix(session_id, meta, rule_label, findings)
    except BulkFixInterrupted as exc:
        current_app.logger.error(
            "Recovery bulk fix interrupted after %s fixes.",
            len(exc.applied),
            extra={"recovery_session_id": session_id},
        )
        RecoveryMonitoring.record_bulk_batch(status="error", finding_count=finding_count)
        _record("fix_bulk", start_time, "error")
        return _json_error(
            str(exc),
            HTTPStatus.INTERNAL_SERVER_ERROR,
            fixedCount=len(exc.applied),
            applied=[finding.as_dict() for finding in exc.applied],
            remainingErrors=exc.remaining_errors,
        )
    except RecoveryError as exc:
        RecoveryMonitoring.record_bulk_batch(status="rejected", finding_count=finding_count)
        return _recovery_error_response("fix_bulk", start_time, exc)
    except RecordLoadError as exc:
        return _load_error_response("fix_bulk", start_time, session_id, exc)
    except Exception as exc:  # pragma: no cover - defensive logging
        current_app.logger.exception("Recovery bulk fix failed.", exc_info=exc)
        return _unexpected_error_response("fix_bulk", start_time, "Failed to apply bulk fixes")

    RecoveryMonitoring.record_bulk_batch(status="success", finding_count=finding_count)
    _record("fix_bulk", start_time, "success")
    message = f"Applied {result.fixed_count} fixes"
    return jsonify({"success": True, "message": message, **result.as_dict()}), HTTPStatus.OK


@recovery_blueprint.get("/<session_id>/analyze")
def recovery_analyze(session_id: str):
    auth_error = _ensure_authenticated_api()
    if auth_error:
        return auth_error

    start_time = time.perf_counter()
    try:
        threshold = _parse_threshold()
        meta = _resolve_session(session_id)
        analysis = _service().analyze(session_id, meta, threshold)
    except RecoveryError as exc:
        return _recovery_error_response("analyze", start_time, exc)
    except RecordLoadError as exc:
        return _load_error_response("analyze", start_time, session_id, exc)
    except Exception as exc:  # pragma: no cover - defensive logging
        current_app.logger.exception("Recovery analysis failed.", exc_info=exc)
        return _unexpected_error_response("analyze", start_time, "Failed to analyze errors")

    _record("analyze", start_time, "success")
    return jsonify({"success": True, "message": "Analysis complete", **analysis.as_dict()}), HTTPStatus.OK


@recovery_blueprint.post("/<session_id>/finalize")
def recovery_finalize(session_id: str):
    """
    Return the corrected dataset.

    With ``{"commit": true}`` the import session is flagged as carrying
    recovered data and the recovery session is discarded.
    """
    auth_error = _ensure_authenticated_api()
    if auth_error:
        return auth_error

    start_time = time.perf_counter()
    try:
        payload = _request_json()
        commit = payload.get("commit", False)
        if not isinstance(commit, bool):
            raise RecoveryBadRequest("commit must be a boolean.")
        _resolve_session(session_id)
        service = _service()
        if commit:
            locator = _locator()
            records = service.finalize_and_cleanup(
                session_id,
                lambda finalized: locator.record_recovered_data(session_id, len(finalized)),
            )
        else:
            records = service.finalize(session_id)
    except RecoveryError as exc:
        return _recovery_error_response("finalize", start_time, exc)
    except Exception as exc:  # pragma: no cover - defensive logging
        current_app.logger.exception("Recovery finalize failed.", exc_info=exc)
        return _unexpected_error_response("finalize", start_time, "Failed to finalize recovered data")

    _record("finalize", start_time, "success")
    return (
        jsonify(
            {
                "success": True,
                "message": "Recovered data committed" if commit else "Recovered data ready",
                "sessionId": session_id,
                "committed": commit,
                "recordCount": len(records),
                "records": records,
            }
        ),
        HTTPStatus.OK,
    )


@recovery_blueprint.delete("/<session_id>")
def recovery_cleanup(session_id: str):
    auth_error = _ensure_authenticated_api()
    if auth_error:
        return auth_error

    start_time = time.perf_counter()
    try:
        _resolve_session(session_id)
        removed = _service().cleanup(session_id)
    except RecoveryError as exc:
        return _recovery_error_response("cleanup", start_time, exc)
    except Exception as exc:  # pragma: no cover - defensive logging
        current_app.logger.exception("Recovery cleanup failed.", exc_info=exc)
        return _unexpected_error_response("cleanup", start_time, "Failed to clean up recovery session")

    _record("cleanup", start_time, "success")
    message = "Recovery session removed" if removed else "No recovery session was active"
    return jsonify({"success": True, "message": message, "sessionId": session_id, "removed": removed}), HTTPStatus.OK
