"""
Validation rule engine for imported product records.

Rules are small declarative objects evaluated independently against a single
record. Each rule emits at most one finding for the field it owns; unknown
fields are never inspected. Evaluation is pure: no session state is read and
nothing raises for malformed input, which is reported as missing or invalid
instead.
"""

from __future__ import annotations

import enum
import math
import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, MutableMapping, Sequence

from .coercion import Scalar, is_truthy, normalize_number, stringify, to_number, to_scalar


class FindingSeverity(str, enum.Enum):
    """Severity levels for validation findings."""

    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class AutoFix:
    """
    Replacement value proposed by a rule.

    Never applied implicitly; a bulk fix request must consume it.
    """

    action: str
    new_value: Scalar
    confidence: int

    def as_dict(self) -> dict[str, Any]:
        return {"action": self.action, "newValue": self.new_value, "confidence": self.confidence}

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "AutoFix":
        if "newValue" in payload:
            new_value = payload["newValue"]
        elif "new_value" in payload:
            new_value = payload["new_value"]
        else:
            raise ValueError("autoFix must include newValue.")
        confidence = payload.get("confidence", 0)
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
            raise ValueError("autoFix confidence must be a number between 0 and 100.")
        if not 0 <= confidence <= 100:
            raise ValueError("autoFix confidence must be a number between 0 and 100.")
        return cls(
            action=str(payload.get("action") or ""),
            new_value=to_scalar(new_value),
            confidence=int(confidence),
        )


@dataclass(frozen=True)
class ValidationFinding:
    """
    A single validation problem tied to one record position and field.

    Attributes:
        record_index: Position of the record in the original import.
        field: Field name the finding is about.
        value: The offending value as it was read.
        rule: Human-readable rule label (e.g. ``Invalid price format``).
        severity: Error or warning.
        message: Explanation shown to the user.
        suggestion: Optional hint for a manual correction.
        auto_fix: Optional rule-proposed replacement.
    """

    record_index: int
    field: str
    value: Scalar
    rule: str
    severity: FindingSeverity
    message: str
    suggestion: str | None = None
    auto_fix: AutoFix | None = None

    @property
    def key(self) -> tuple[int, str]:
        return (self.record_index, self.field)

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "recordIndex": self.record_index,
            "field": self.field,
            "value": self.value,
            "rule": self.rule,
            "severity": self.severity.value,
            "message": self.message,
        }
        if self.suggestion is not None:
            payload["suggestion"] = self.suggestion
        if self.auto_fix is not None:
            payload["autoFix"] = self.auto_fix.as_dict()
        return payload

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "ValidationFinding":
        """
        Build a finding from a caller-supplied payload (camelCase or snake_case keys).

        Raises:
            ValueError: when the payload lacks a usable record index or field.
        """

        if not isinstance(payload, Mapping):
            raise ValueError("Each finding must be an object.")
        record_index = payload.get("recordIndex", payload.get("record_index"))
        if isinstance(record_index, bool) or not isinstance(record_index, int):
            raise ValueError("Finding recordIndex must be an integer.")
        field_name = payload.get("field")
        if not isinstance(field_name, str) or not field_name:
            raise ValueError("Finding field must be a non-empty string.")

        raw_severity = payload.get("severity") or FindingSeverity.ERROR.value
        try:
            severity = FindingSeverity(str(raw_severity).lower())
        except ValueError as exc:
            raise ValueError(f"Unsupported severity '{raw_severity}'.") from exc

        raw_fix = payload.get("autoFix", payload.get("auto_fix"))
        auto_fix = None
        if raw_fix is not None:
            if not isinstance(raw_fix, Mapping):
                raise ValueError("Finding autoFix must be an object.")
            auto_fix = AutoFix.from_mapping(raw_fix)

        suggestion = payload.get("suggestion")
        return cls(
            record_index=record_index,
            field=field_name,
            value=to_scalar(payload.get("value")),
            rule=str(payload.get("rule") or ""),
            severity=severity,
            message=str(payload.get("message") or ""),
            suggestion=str(suggestion) if suggestion is not None else None,
            auto_fix=auto_fix,
        )


@dataclass(frozen=True)
class DQRule:
    """Declarative rule definition used by the rule engine."""

    code: str
    label: str
    field: str
    severity: FindingSeverity

    def evaluate(self, record: Mapping[str, Scalar], index: int) -> Iterable[ValidationFinding]:
        """Return findings for the provided record."""
        raise NotImplementedError

    def _finding(
        self,
        index: int,
        value: Scalar,
        *,
        message: str,
        suggestion: str | None = None,
        auto_fix: AutoFix | None = None,
    ) -> ValidationFinding:
        return ValidationFinding(
            record_index=index,
            field=self.field,
            value=value,
            rule=self.label,
            severity=self.severity,
            message=message,
            suggestion=suggestion,
            auto_fix=auto_fix,
        )


_EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _is_present(value: Scalar) -> bool:
    return value is not None and value != ""


def _is_invalid_quantity(value: Scalar) -> bool:
    number = to_number(value)
    return math.isnan(number) or number < 0


class RequiredNameRule(DQRule):
    """Product name must be present and not blank."""

    def __init__(self) -> None:
        super().__init__(
            code="PRODUCT_NAME_REQUIRED",
            label="Required field missing",
            field="name",
            severity=FindingSeverity.ERROR,
        )

    def evaluate(self, record: Mapping[str, Scalar], index: int) -> Iterable[ValidationFinding]:
        value = record.get(self.field)
        if is_truthy(value) and stringify(value).strip():
            return []
        return [
            self._finding(
                index,
                value,
                message="Product name is required",
                suggestion="Provide a valid product name",
            )
        ]


class PriceRule(DQRule):
    """Price, when present, must be a non-negative number."""

    def __init__(self) -> None:
        super().__init__(
            code="PRODUCT_PRICE_FORMAT",
            label="Invalid price format",
            field="price",
            severity=FindingSeverity.ERROR,
        )

    def evaluate(self, record: Mapping[str, Scalar], index: int) -> Iterable[ValidationFinding]:
        value = record.get(self.field)
        if not _is_present(value) or not _is_invalid_quantity(value):
            return []
        number = to_number(value)
        proposed = 0 if math.isnan(number) else normalize_number(abs(number))
        return [
            self._finding(
                index,
                value,
                message="Price must be a positive number",
                suggestion="Enter a valid price (e.g., 29.99)",
                auto_fix=AutoFix(action="Convert to positive number", new_value=proposed, confidence=80),
            )
        ]


class SkuTypeRule(DQRule):
    """SKU, when present, should be text."""

    def __init__(self) -> None:
        super().__init__(
            code="PRODUCT_SKU_TYPE",
            label="Invalid SKU format",
            field="sku",
            severity=FindingSeverity.WARNING,
        )

    def evaluate(self, record: Mapping[str, Scalar], index: int) -> Iterable[ValidationFinding]:
        value = record.get(self.field)
        if not _is_present(value) or isinstance(value, str):
            return []
        return [
            self._finding(
                index,
                value,
                message="SKU should be a string",
                suggestion="Convert SKU to text format",
                auto_fix=AutoFix(action="Convert to string", new_value=stringify(value), confidence=90),
            )
        ]


class StockRule(DQRule):
    """Stock, when present, must be a non-negative number."""

    def __init__(self) -> None:
        super().__init__(
            code="PRODUCT_STOCK_QUANTITY",
            label="Invalid stock quantity",
            field="stock",
            severity=FindingSeverity.WARNING,
        )

    def evaluate(self, record: Mapping[str, Scalar], index: int) -> Iterable[ValidationFinding]:
        value = record.get(self.field)
        if not _is_present(value) or not _is_invalid_quantity(value):
            return []
        return [
            self._finding(
                index,
                value,
                message="Stock must be a non-negative number",
                suggestion="Enter a valid stock quantity (e.g., 100)",
                auto_fix=AutoFix(action="Set to zero", new_value=0, confidence=70),
            )
        ]


class EmailFormatRule(DQRule):
    """Email, when present as text, must look like ``local@domain.tld``."""

    def __init__(self) -> None:
        super().__init__(
            code="PRODUCT_EMAIL_FORMAT",
            label="Invalid email format",
            field="email",
            severity=FindingSeverity.ERROR,
        )

    def evaluate(self, record: Mapping[str, Scalar], index: int) -> Iterable[ValidationFinding]:
        value = record.get(self.field)
        if not isinstance(value, str) or not value or _EMAIL_REGEX.fullmatch(value):
            return []
        return [
            self._finding(
                index,
                value,
                message="Email format is invalid",
                suggestion="Provide a valid email address",
            )
        ]


PRODUCT_RULES: Sequence[DQRule] = (
    RequiredNameRule(),
    PriceRule(),
    SkuTypeRule(),
    StockRule(),
    EmailFormatRule(),
)


def validate_record(
    record: Mapping[str, Scalar],
    index: int,
    rules: Sequence[DQRule] | None = None,
) -> list[ValidationFinding]:
    """
    Evaluate one record against the rule catalog.

    Args:
        record: The record to check.
        index: Position of the record in the original import.
        rules: Optional override list of rules; defaults to ``PRODUCT_RULES``.

    Returns:
        Findings in catalog order (empty when the record satisfies every rule).
    """

    applicable_rules = PRODUCT_RULES if rules is None else rules
    findings: list[ValidationFinding] = []
    for rule in applicable_rules:
        findings.extend(rule.evaluate(record, index))
    return findings


def validate_records(
    records: Sequence[Mapping[str, Scalar]],
    rules: Sequence[DQRule] | None = None,
) -> list[ValidationFinding]:
    findings: list[ValidationFinding] = []
    for index, record in enumerate(records):
        findings.extend(validate_record(record, index, rules))
    return findings


def summarize_findings(findings: Iterable[ValidationFinding]) -> MutableMapping[str, int]:
    """
    Aggregate finding counts keyed by rule label.

    Only counts occurrences; severity weighting remains up to the caller.
    """

    summary: MutableMapping[str, int] = {}
    for finding in findings:
        summary[finding.rule] = summary.get(finding.rule, 0) + 1
    return summary
