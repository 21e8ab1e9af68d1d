"""
Fix applicator for recovery sessions.

``ErrorRecoveryService`` applies user corrections and rule-proposed auto-fixes
to a recovery session, reports progress, and folds the corrections back over
the original records. Every operation that reads and mutates a session runs
while holding that session's lock from the store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Sequence

from recovery_app.importer.contracts import SessionMeta
from recovery_app.importer.metrics import record_fixes_applied
from recovery_app.importer.utils import diff_payload

from .coercion import Record, Scalar, coerce_field_value
from .dq import ValidationFinding, validate_record
from .recovery_store import RecoverySession, RecoverySessionStore

logger = logging.getLogger(__name__)

DEFAULT_AUTOFIX_THRESHOLD = 90
DEFAULT_MAX_BULK_FINDINGS = 5000


class RecoveryError(Exception):
    """Base exception for recovery failures."""

    status_code = 500


class RecoverySessionNotFound(RecoveryError):
    """Raised when the import session or its recovery state cannot be located."""

    status_code = 404


class RecoveryAccessDenied(RecoveryError):
    """Raised when the caller does not own the import session."""

    status_code = 403


class RecoveryBadRequest(RecoveryError):
    """Raised when a request references data the session does not hold."""

    status_code = 400


class BulkFixInterrupted(RecoveryError):
    """
    Raised when a bulk fix fails part way through.

    Fixes applied before the failure stay applied; ``applied`` lists them.
    """

    status_code = 500

    def __init__(self, message: str, *, applied: Sequence[ValidationFinding], remaining_errors: int):
        super().__init__(message)
        self.applied: list[ValidationFinding] = list(applied)
        self.remaining_errors = remaining_errors


@dataclass(slots=True)
class SingleFixResult:
    session_id: str
    record_index: int
    field: str
    new_value: Scalar
    resolved: ValidationFinding | None
    remaining_errors: int
    validation_errors: list[ValidationFinding]
    diff: Mapping[str, Mapping[str, Any]]

    @property
    def is_valid(self) -> bool:
        return not self.validation_errors

    def as_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "recordIndex": self.record_index,
            "field": self.field,
            "newValue": self.new_value,
            "resolved": self.resolved is not None,
            "remainingErrors": self.remaining_errors,
            "validation": {
                "isValid": self.is_valid,
                "errors": [finding.as_dict() for finding in self.validation_errors],
            },
            "diff": dict(self.diff),
        }


@dataclass(slots=True)
class BulkFixResult:
    session_id: str
    rule: str
    applied: list[ValidationFinding]
    skipped_out_of_range: list[ValidationFinding]
    remaining_errors: int

    @property
    def fixed_count(self) -> int:
        return len(self.applied)

    def as_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "rule": self.rule,
            "fixedCount": self.fixed_count,
            "remainingErrors": self.remaining_errors,
            "applied": [finding.as_dict() for finding in self.applied],
            "skipped": [finding.as_dict() for finding in self.skipped_out_of_range],
        }


@dataclass(slots=True)
class RecoveryStatus:
    session_id: str
    errors: list[ValidationFinding]
    resolved_count: int
    record_count: int
    modified_count: int
    data_source: str

    @property
    def total(self) -> int:
        return self.resolved_count + len(self.errors)

    @property
    def progress(self) -> float:
        if self.total == 0:
            return 0
        return self.resolved_count / self.total * 100

    def as_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "errors": [finding.as_dict() for finding in self.errors],
            "resolvedCount": self.resolved_count,
            "totalErrors": self.total,
            "progress": self.progress,
            "recordCount": self.record_count,
            "modifiedCount": self.modified_count,
            "dataSource": self.data_source,
        }


@dataclass(slots=True)
class RuleBreakdown:
    rule: str
    severity: str
    count: int = 0
    auto_fixable: int = 0


@dataclass(slots=True)
class RecoveryAnalysis:
    session_id: str
    threshold: int
    total: int
    auto_fixable: int
    manual_required: int
    by_rule: list[RuleBreakdown] = field(default_factory=list)
    suggestions: list[dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "threshold": self.threshold,
            "totalErrors": self.total,
            "autoFixable": self.auto_fixable,
            "manualRequired": self.manual_required,
            "byRule": [
                {
                    "rule": item.rule,
                    "severity": item.severity,
                    "count": item.count,
                    "autoFixable": item.auto_fixable,
                }
                for item in self.by_rule
            ],
            "suggestions": list(self.suggestions),
        }


class ErrorRecoveryService:
    """Facade for correcting the findings held in recovery sessions."""

    def __init__(
        self,
        store: RecoverySessionStore,
        *,
        autofix_threshold: int = DEFAULT_AUTOFIX_THRESHOLD,
        max_bulk_findings: int = DEFAULT_MAX_BULK_FINDINGS,
    ) -> None:
        self.store = store
        self.autofix_threshold = autofix_threshold
        self.max_bulk_findings = max_bulk_findings

    # ------------------------------------------------------------------
    # Fix operations
    # ------------------------------------------------------------------
    def apply_single_fix(
        self,
        session_id: str,
        meta: SessionMeta,
        record_index: int,
        field_name: str,
        new_value: Any,
    ) -> SingleFixResult:
        """
        Overwrite one field of one record with the coerced ``new_value``.

        The outstanding finding for ``(record_index, field_name)``, if any, moves
        to the resolved history. Repeating a fix for a pair that was already
        resolved appends that finding to the history again. The corrected record
        is re-validated and the findings are returned for display only; they do
        not re-enter the outstanding list.

        Raises:
            RecoveryBadRequest: when ``record_index`` is outside the session's
                records or ``field_name`` is empty. The session is not changed.
        """

        if not isinstance(field_name, str) or not field_name:
            raise RecoveryBadRequest("Field name is required.")

        with self.store.lock_for(session_id):
            session = self.store.get_or_init(session_id, meta)
            self._ensure_index(session, record_index)

            before = session.current_record(record_index)
            corrected = self._merge(session, record_index, field_name, new_value)

            resolved = session.remove_error(record_index, field_name)
            if resolved is None:
                resolved = session.find_resolved(record_index, field_name)
            if resolved is not None:
                session.resolved_errors.append(resolved)

            validation_errors = validate_record(corrected, record_index, self.store.rules)
            remaining = len(session.errors)

        record_fixes_applied("single")
        logger.info(
            "Applied single fix to session %s record %s field %s.",
            session_id,
            record_index,
            field_name,
            extra={
                "recovery_session_id": session_id,
                "recovery_record_index": record_index,
                "recovery_field": field_name,
                "recovery_remaining_errors": remaining,
            },
        )
        return SingleFixResult(
            session_id=session_id,
            record_index=record_index,
            field=field_name,
            new_value=corrected[field_name],
            resolved=resolved,
            remaining_errors=remaining,
            validation_errors=validation_errors,
            diff=diff_payload(before, corrected),
        )

    def apply_bulk_fix(
        self,
        session_id: str,
        meta: SessionMeta,
        rule_label: str,
        findings: Sequence[ValidationFinding],
    ) -> BulkFixResult:
        """
        Apply the auto-fix carried by each finding.

        Findings without an auto-fix are skipped without being reported. Matching
        is positional on ``(record_index, field)``; ``rule_label`` is only echoed
        back. Findings whose index is outside the session are skipped and
        reported.

        Raises:
            RecoveryBadRequest: when more than ``max_bulk_findings`` are sent.
            BulkFixInterrupted: when an unexpected failure stops the batch; fixes
                applied before the failure remain applied.
        """

        if len(findings) > self.max_bulk_findings:
            raise RecoveryBadRequest(
                f"Bulk fix accepts at most {self.max_bulk_findings} findings per request."
            )

        applied: list[ValidationFinding] = []
        skipped: list[ValidationFinding] = []
        with self.store.lock_for(session_id):
            session = self.store.get_or_init(session_id, meta)
            try:
                for finding in findings:
                    if finding.auto_fix is None:
                        continue
                    if not session.has_index(finding.record_index):
                        skipped.append(finding)
                        continue
                    self._merge(session, finding.record_index, finding.field, finding.auto_fix.new_value)
                    session.remove_error(finding.record_index, finding.field)
                    session.resolved_errors.append(finding)
                    applied.append(finding)
            except Exception as exc:
                remaining = len(session.errors)
                record_fixes_applied("bulk", len(applied))
                logger.exception(
                    "Bulk fix for session %s stopped after %s fixes.",
                    session_id,
                    len(applied),
                    extra={"recovery_session_id": session_id, "recovery_rule": rule_label},
                )
                raise BulkFixInterrupted(
                    f"Bulk fix stopped after {len(applied)} fixes.",
                    applied=applied,
                    remaining_errors=remaining,
                ) from exc
            remaining = len(session.errors)

        record_fixes_applied("bulk", len(applied))
        logger.info(
            "Applied %s bulk fixes for rule '%s' to session %s.",
            len(applied),
            rule_label,
            session_id,
            extra={
                "recovery_session_id": session_id,
                "recovery_rule": rule_label,
                "recovery_fixed_count": len(applied),
                "recovery_skipped_count": len(skipped),
                "recovery_remaining_errors": remaining,
            },
        )
        return BulkFixResult(
            session_id=session_id,
            rule=rule_label,
            applied=applied,
            skipped_out_of_range=skipped,
            remaining_errors=remaining,
        )

    # ------------------------------------------------------------------
    # Query API
    # ------------------------------------------------------------------
    def get_status(self, session_id: str, meta: SessionMeta) -> RecoveryStatus:
        with self.store.lock_for(session_id):
            session = self.store.get_or_init(session_id, meta)
            return RecoveryStatus(
                session_id=session_id,
                errors=list(session.errors),
                resolved_count=len(session.resolved_errors),
                record_count=session.record_count,
                modified_count=len(session.modified_records),
                data_source=session.data_source,
            )

    def analyze(self, session_id: str, meta: SessionMeta, threshold: int | None = None) -> RecoveryAnalysis:
        """
        Group outstanding findings by rule and split them by fixability.

        A finding is auto-fixable when its auto-fix confidence is at or above
        ``threshold`` (defaults to the service's configured threshold).
        """

        resolved_threshold = self.autofix_threshold if threshold is None else threshold
        with self.store.lock_for(session_id):
            session = self.store.get_or_init(session_id, meta)
            outstanding = list(session.errors)

        breakdown: dict[str, RuleBreakdown] = {}
        suggestions: list[dict[str, Any]] = []
        auto_fixable = 0
        for finding in outstanding:
            item = breakdown.setdefault(
                finding.rule,
                RuleBreakdown(rule=finding.rule, severity=finding.severity.value),
            )
            item.count += 1
            fixable = finding.auto_fix is not None and finding.auto_fix.confidence >= resolved_threshold
            if fixable:
                item.auto_fixable += 1
                auto_fixable += 1
            suggestions.append(
                {
                    "recordIndex": finding.record_index,
                    "field": finding.field,
                    "rule": finding.rule,
                    "suggestion": finding.suggestion,
                    "autoFix": finding.auto_fix.as_dict() if finding.auto_fix is not None else None,
                    "autoFixable": fixable,
                }
            )

        return RecoveryAnalysis(
            session_id=session_id,
            threshold=resolved_threshold,
            total=len(outstanding),
            auto_fixable=auto_fixable,
            manual_required=len(outstanding) - auto_fixable,
            by_rule=list(breakdown.values()),
            suggestions=suggestions,
        )

    def finalize(self, session_id: str) -> list[Record]:
        """
        Return the original records with every corrected record substituted.

        The session is left in place; ``cleanup`` removes it.

        Raises:
            RecoverySessionNotFound: when no recovery session is held for the id.
        """

        with self.store.lock_for(session_id):
            session = self.store.get(session_id)
            if session is None:
                raise RecoverySessionNotFound(f"No recovery session for {session_id}.")
            return session.finalized_records()

    def finalize_and_cleanup(
        self,
        session_id: str,
        hand_off: Callable[[list[Record]], object] | None = None,
    ) -> list[Record]:
        """
        Finalize, pass the records to ``hand_off`` and discard the session.

        All three steps run under the session lock, so no fix can land between
        producing the records and discarding the session. If ``hand_off``
        raises, the session is kept.
        """

        with self.store.lock_for(session_id):
            records = self.finalize(session_id)
            if hand_off is not None:
                hand_off(records)
            self.store.discard(session_id)
        logger.info(
            "Committed %s recovered records for session %s.",
            len(records),
            session_id,
            extra={"recovery_session_id": session_id, "recovery_record_count": len(records)},
        )
        return records

    def cleanup(self, session_id: str) -> bool:
        with self.store.lock_for(session_id):
            return self.store.discard(session_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _ensure_index(session: RecoverySession, record_index: int) -> None:
        if isinstance(record_index, bool) or not isinstance(record_index, int) or not session.has_index(record_index):
            raise RecoveryBadRequest("Invalid record index")

    @staticmethod
    def _merge(session: RecoverySession, record_index: int, field_name: str, value: Any) -> Record:
        corrected = session.current_record(record_index)
        corrected[field_name] = coerce_field_value(field_name, value)
        session.modified_records[record_index] = corrected
        return corrected
