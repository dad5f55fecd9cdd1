"""Compliance rule engine for wage statements.

Evaluates one pay stub record against federal, state and ADA requirements.
Non-compliance is a normal result, reported through missing fields, warnings
and issues. The engine never mutates the record it is given.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from paystub_engine.compliance.rules import (
    ADA_RECOMMENDATIONS,
    EIN_PATTERN,
    FEDERAL_DISCLAIMER,
    FEDERAL_REQUIRED_FIELDS,
    OVERTIME_MULTIPLIER,
    StateRule,
    StateRuleRegistry,
    default_registry,
)
from paystub_engine.exceptions import ComplianceInputError
from paystub_engine.types import (
    CheckOutcome,
    ComplianceCheckResult,
    ComplianceReport,
    EarningType,
    PayStubRecord,
    TaxType,
)


def _is_missing(value: Any) -> bool:
    """None, blank strings and empty collections count as missing."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


class ComplianceRuleEngine:
    """Pure rule evaluation over PayStubRecord values.

    Usage:
        engine = ComplianceRuleEngine(compliance_version="2024.1")
        result = engine.check(record)
        report = engine.format_compliance_report(record)
    """

    def __init__(
        self,
        registry: StateRuleRegistry | None = None,
        compliance_version: str = "2024.1",
    ):
        self.registry = registry or default_registry()
        self.compliance_version = compliance_version

    # ------------------------------------------------------------------
    # Federal
    # ------------------------------------------------------------------

    def check_federal(self, record: PayStubRecord) -> CheckOutcome:
        """Check federal required fields and advisory FLSA/withholding rules."""
        missing = [name for name in FEDERAL_REQUIRED_FIELDS if _is_missing(getattr(record, name, None))]
        warnings: list[str] = []

        if record.employer_ein and not EIN_PATTERN.match(record.employer_ein.strip()):
            warnings.append(
                f"Employer EIN '{record.employer_ein}' does not match the XX-XXXXXXX format"
            )

        tax_types = {t.tax_type for t in record.taxes_breakdown}
        if TaxType.FEDERAL.value not in tax_types:
            warnings.append("No federal income tax withholding line is shown")
        if TaxType.FICA_SS.value not in tax_types:
            warnings.append("No Social Security tax line is shown")
        if TaxType.FICA_MEDICARE.value not in tax_types:
            warnings.append("No Medicare tax line is shown")

        flsa_warning = self._overtime_rate_warning(record)
        if flsa_warning:
            warnings.append(flsa_warning)

        return CheckOutcome(compliant=not missing, missing_fields=missing, warnings=warnings)

    def _overtime_rate_warning(self, record: PayStubRecord) -> str | None:
        overtime_hours = Decimal(record.overtime_hours or 0)
        if overtime_hours <= 0:
            return None
        minimum = Decimal(record.regular_rate or 0) * OVERTIME_MULTIPLIER
        if Decimal(record.overtime_rate or 0) < minimum:
            return (
                f"Overtime rate {record.overtime_rate} is below 1.5x the regular "
                f"rate {record.regular_rate} (FLSA minimum {minimum})"
            )
        return None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def check_state(self, record: PayStubRecord, state_code: str | None = None) -> CheckOutcome:
        """Check the requirements registered for the record's jurisdiction."""
        code = self._resolve_state(record, state_code)
        rule = self.registry.get(code)
        if rule is None:
            return CheckOutcome(
                compliant=False,
                warnings=[f"No wage statement rules are registered for state '{code}'"],
            )

        missing: list[str] = []
        warnings: list[str] = []

        if rule.requires_sick_leave_balance and record.sick_leave_balance is None:
            missing.append("sick_leave_balance")

        if rule.requires_overtime_breakdown and not self._has_overtime_breakdown(record):
            missing.append("overtime_breakdown")

        if rule.requires_employer_ubi and _is_missing(record.employer_ubi_number):
            missing.append("employer_ubi_number")

        if rule.requires_employer_phone and _is_missing(record.employer_phone):
            missing.append("employer_phone")

        if rule.requires_deduction_descriptions:
            for line in record.deductions_breakdown:
                if _is_missing(line.description):
                    missing.append(f"deductions_breakdown[{line.code}].description")

        for name in rule.required_fields:
            if name not in missing and _is_missing(getattr(record, name, None)):
                missing.append(name)

        if rule.requires_sick_leave_balance and record.sick_leave_balance is not None:
            if record.sick_leave_balance < 0:
                warnings.append("Sick leave balance is negative")

        return CheckOutcome(
            compliant=not missing,
            missing_fields=missing,
            warnings=warnings,
            recommendations=list(rule.recommendations),
        )

    def _has_overtime_breakdown(self, record: PayStubRecord) -> bool:
        """Overtime, when worked, needs its own line separate from regular pay."""
        if Decimal(record.overtime_hours or 0) <= 0:
            return True
        regular = [e for e in record.earnings_breakdown if e.earning_type == EarningType.REGULAR.value]
        overtime = [e for e in record.earnings_breakdown if e.earning_type == EarningType.OVERTIME.value]
        if not regular or not overtime:
            return False
        return {e.code for e in regular}.isdisjoint(e.code for e in overtime)

    def _resolve_state(self, record: PayStubRecord, state_code: str | None) -> str:
        code = state_code or record.state_jurisdiction
        if _is_missing(code):
            raise ComplianceInputError(
                f"Pay stub {record.id} has no state_jurisdiction to check against"
            )
        return code.strip().upper()  # type: ignore[union-attr]

    def state_requirements(self, state_code: str) -> StateRule | None:
        """Registered requirements for a state, or None if unknown."""
        return self.registry.get(state_code)

    # ------------------------------------------------------------------
    # ADA
    # ------------------------------------------------------------------

    def check_ada(self, record: PayStubRecord) -> CheckOutcome:
        """Check the accessibility flag; always emits the manual checklist."""
        issues: list[str] = []
        if not record.metadata.ada_compliant:
            issues.append("Pay stub document is not marked ADA compliant")
        return CheckOutcome(
            compliant=not issues,
            issues=issues,
            recommendations=list(ADA_RECOMMENDATIONS),
        )

    # ------------------------------------------------------------------
    # Combined
    # ------------------------------------------------------------------

    def check(self, record: PayStubRecord, state_code: str | None = None) -> ComplianceCheckResult:
        """Run federal, state and ADA checks and merge the outcomes."""
        if record is None or getattr(record, "id", None) is None:
            raise ComplianceInputError("A pay stub record with an id is required")
        code = self._resolve_state(record, state_code)

        federal = self.check_federal(record)
        state = self.check_state(record, code)
        ada = self.check_ada(record)
        outcomes = (federal, state, ada)

        return ComplianceCheckResult(
            pay_stub_id=record.id,
            state_jurisdiction=code,
            compliance_version=record.metadata.compliance_version or self.compliance_version,
            is_compliant=all(o.compliant for o in outcomes),
            federal_compliance=federal.compliant,
            state_compliance=state.compliant,
            ada_compliance=ada.compliant,
            missing_fields=[f for o in outcomes for f in o.missing_fields],
            warnings=[w for o in outcomes for w in o.warnings],
            recommendations=[r for o in outcomes for r in o.recommendations],
            issues=[i for o in outcomes for i in o.issues],
            checked_at=datetime.now(timezone.utc),
        )

    def required_disclaimers(self, state_code: str) -> list[str]:
        """Federal baseline disclaimer followed by the state's own."""
        disclaimers = [FEDERAL_DISCLAIMER]
        rule = self.registry.get(state_code)
        if rule is not None:
            disclaimers.extend(rule.disclaimers)
        return disclaimers

    def format_compliance_report(self, record: PayStubRecord) -> ComplianceReport:
        """Compose all checks into a report with summary counts and disclaimers."""
        result = self.check(record)
        return ComplianceReport(
            result=result,
            compliance_summary={
                "total_issues": len(result.missing_fields) + len(result.issues),
                "total_warnings": len(result.warnings),
                "total_recommendations": len(result.recommendations),
            },
            required_disclaimers=self.required_disclaimers(result.state_jurisdiction),
        )
