"""Pay stub generation pipeline.

Turns a payroll period's calculations into persisted pay stubs, one per
employee, optionally rendering and emailing each one. A failure for one
employee is captured as a GenerationError and never aborts the batch.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from paystub_engine.compliance import ComplianceRuleEngine
from paystub_engine.exceptions import (
    ExternalServiceError,
    PayStubAlreadyGeneratedError,
    PayStubError,
    PayStubNotFoundError,
    PayStubValidationError,
)
from paystub_engine.models import Company, Employee, PayrollPeriod
from paystub_engine.providers.base import PayrollCalculationSource
from paystub_engine.services.delivery import StubDelivery
from paystub_engine.services.repository import PayStubRepository
from paystub_engine.services.state_machine import PayStubStateMachine
from paystub_engine.types import (
    ZERO,
    Address,
    DirectDepositAllocation,
    GenerationError,
    GenerationRequest,
    GenerationResult,
    PayrollCalculation,
    PayStubRecord,
    PayStubStatus,
    StubMetadata,
    money,
)

logger = logging.getLogger(__name__)

SSN_LAST_FOUR = re.compile(r"^\d{4}$")
STATE_CODE = re.compile(r"^[A-Z]{2}$")
HUNDRED = Decimal("100")


def stub_number_for(employee: Employee, period: PayrollPeriod) -> str:
    """Deterministic stub number for one employee in one period."""
    return (
        f"{period.pay_date.year}-{employee.employee_number}-"
        f"{period.payroll_period_id.hex[:8].upper()}"
    )


@dataclass
class _Totals:
    gross_pay: Decimal
    net_pay: Decimal
    total_deductions: Decimal
    total_taxes: Decimal
    ytd_gross_pay: Decimal
    ytd_net_pay: Decimal
    ytd_deductions: Decimal
    ytd_taxes: Decimal


class PayStubGenerationPipeline:
    """Builds, persists, renders and emails pay stubs for a payroll period.

    Database work runs sequentially on the session, one savepoint per
    employee. Rendering and email run concurrently through StubDelivery.

    Usage:
        pipeline = PayStubGenerationPipeline(session, calculations, delivery)
        result = await pipeline.generate(request)
    """

    def __init__(
        self,
        session: AsyncSession,
        calculations: PayrollCalculationSource,
        delivery: StubDelivery,
        compliance: ComplianceRuleEngine | None = None,
    ):
        self.session = session
        self.repository = PayStubRepository(session)
        self.calculations = calculations
        self.delivery = delivery
        self.compliance = compliance or ComplianceRuleEngine()

    # ------------------------------------------------------------------
    # Generate
    # ------------------------------------------------------------------

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """Generate pay stubs for a period.

        Raises for systemic problems only: an unknown period or company, or a
        period whose pay date precedes its end date.
        """
        period = await self._load_period(request.payroll_period_id, request.company_id)
        company = await self.repository.get_company(request.company_id)
        if company is None:
            raise PayStubNotFoundError("Company", request.company_id)

        requested = list(dict.fromkeys(request.employee_ids or []))
        calculations = await self.calculations.fetch_calculations(
            period.payroll_period_id, requested or None
        )
        by_employee = {calc.employee_id: calc for calc in calculations}
        targets = requested or list(by_employee)
        employees = await self.repository.get_employees(targets, request.company_id)

        errors: list[GenerationError] = []
        stored: list[UUID] = []

        for employee_id in targets:
            employee = employees.get(employee_id)
            try:
                async with self.session.begin_nested():
                    pay_stub_id = await self._create(
                        period,
                        company,
                        employee_id,
                        employee,
                        by_employee.get(employee_id),
                        created_by=request.created_by,
                    )
                stored.append(pay_stub_id)
            except PayStubAlreadyGeneratedError as e:
                errors.append(
                    self._error(employee_id, employee, e.code, e.message, pay_stub_id=e.pay_stub_id)
                )
            except PayStubError as e:
                errors.append(self._error(employee_id, employee, e.code, e.message))
            except Exception as e:
                logger.exception("Unexpected failure generating pay stub for employee %s", employee_id)
                errors.append(self._error(employee_id, employee, "UNEXPECTED_ERROR", str(e)))

        records = [await self.repository.get(stub_id, request.company_id) for stub_id in stored]

        if request.generate_pdf or request.email_to_employees:
            records = await self._render_all(records, employees, errors)
        if request.email_to_employees:
            records = await self._email_all(records, employees, errors)

        pay_stub_ids = [record.id for record in records]
        logger.info(
            "Generated pay stubs for period %s: %d succeeded, %d failed",
            period.payroll_period_id,
            len(pay_stub_ids),
            len(errors),
        )
        return GenerationResult(
            success=not errors,
            generated_count=len(pay_stub_ids),
            failed_count=len(errors),
            pay_stub_ids=pay_stub_ids,
            errors=errors,
        )

    async def _render_all(
        self,
        records: list[PayStubRecord],
        employees: dict[UUID, Employee],
        errors: list[GenerationError],
    ) -> list[PayStubRecord]:
        """Render every record; return the ones that reached pdf_ready."""
        outcomes = await asyncio.gather(
            *(self.delivery.render(r, self._disclaimers(r)) for r in records),
            return_exceptions=True,
        )
        rendered: list[PayStubRecord] = []
        for record, outcome in zip(records, outcomes):
            if isinstance(outcome, BaseException):
                await self._fail(record, employees.get(record.employee_id), outcome, errors)
                continue
            await self.repository.update_stub(
                record.id,
                pdf_content=outcome,
                status=PayStubStateMachine.advance(record.status, PayStubStatus.PDF_READY),
            )
            rendered.append(await self.repository.get(record.id, record.company_id))
        return rendered

    async def _email_all(
        self,
        records: list[PayStubRecord],
        employees: dict[UUID, Employee],
        errors: list[GenerationError],
    ) -> list[PayStubRecord]:
        """Email every rendered record; return the ones that reached emailed."""
        rows = [await self.repository.get_row(r.id, r.company_id) for r in records]
        outcomes = await asyncio.gather(
            *(self.delivery.email(r, row.pdf_content or b"") for r, row in zip(records, rows)),
            return_exceptions=True,
        )
        emailed: list[PayStubRecord] = []
        for record, outcome in zip(records, outcomes):
            if isinstance(outcome, BaseException):
                await self._fail(record, employees.get(record.employee_id), outcome, errors)
                continue
            await self.repository.update_stub(
                record.id,
                status=PayStubStateMachine.advance(record.status, PayStubStatus.EMAILED),
            )
            emailed.append(await self.repository.get(record.id, record.company_id))
        return emailed

    async def _fail(
        self,
        record: PayStubRecord,
        employee: Employee | None,
        exc: BaseException,
        errors: list[GenerationError],
    ) -> None:
        if isinstance(exc, PayStubError):
            code, message = exc.code, exc.message
        else:
            logger.error("Unexpected delivery failure for pay stub %s: %r", record.id, exc)
            code, message = "UNEXPECTED_ERROR", str(exc)
        await self.mark_error(record, message)
        errors.append(
            self._error(record.employee_id, employee, code, message, pay_stub_id=record.id)
        )

    async def mark_error(self, record: PayStubRecord, message: str) -> None:
        """Move a stub to error, keeping the failure on its metadata."""
        record.metadata.last_error = message
        PayStubStateMachine.validate_transition(record.status, PayStubStatus.ERROR)
        await self.repository.update_stub(
            record.id,
            status=PayStubStatus.ERROR.value,
            metadata_json=record.metadata.to_dict(),
        )

    # ------------------------------------------------------------------
    # Regenerate
    # ------------------------------------------------------------------

    async def regenerate(
        self,
        pay_stub_id: UUID,
        company_id: UUID,
        generate_pdf: bool = False,
    ) -> PayStubRecord:
        """Rebuild one stub in place from a fresh calculation.

        The stub keeps its id and stub number, its status resets to
        generated, and metadata.regeneration_count is incremented.
        """
        existing = await self.repository.get(pay_stub_id, company_id, for_update=True)
        period = await self._load_period(existing.payroll_period_id, company_id)
        company = await self.repository.get_company(company_id)
        if company is None:
            raise PayStubNotFoundError("Company", company_id)
        employees = await self.repository.get_employees([existing.employee_id], company_id)
        calculation = await self.calculations.fetch_calculation(
            existing.payroll_period_id, existing.employee_id
        )

        async with self.session.begin_nested():
            values = await self._build_values(
                period,
                company,
                existing.employee_id,
                employees.get(existing.employee_id),
                calculation,
                created_by=existing.created_by,
                generation_source="regeneration",
                regeneration_count=existing.metadata.regeneration_count + 1,
                status=PayStubStateMachine.reset(existing.status),
            )
            await self.repository.upsert(values)

        record = await self.repository.get(pay_stub_id, company_id)
        if generate_pdf:
            try:
                content = await self.delivery.render(record, self._disclaimers(record))
            except ExternalServiceError as e:
                await self.mark_error(record, e.message)
                raise
            await self.repository.update_stub(
                record.id,
                pdf_content=content,
                status=PayStubStateMachine.advance(record.status, PayStubStatus.PDF_READY),
            )
            record = await self.repository.get(pay_stub_id, company_id)
        return record

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    async def _load_period(self, payroll_period_id: UUID, company_id: UUID) -> PayrollPeriod:
        period = await self.repository.get_period(payroll_period_id)
        if period is None or period.company_id != company_id:
            raise PayStubNotFoundError("Payroll period", payroll_period_id)
        if period.pay_date < period.period_end:
            raise PayStubValidationError(
                f"Payroll period {payroll_period_id} pays on {period.pay_date}, "
                f"before the period ends on {period.period_end}",
                field="pay_date",
                code="INVALID_FIELD",
            )
        return period

    async def _create(
        self,
        period: PayrollPeriod,
        company: Company,
        employee_id: UUID,
        employee: Employee | None,
        calculation: PayrollCalculation | None,
        created_by: str | None = None,
    ) -> UUID:
        """Store a new stub, leaving any existing stub for the period untouched."""
        existing = await self.repository.find_stub_id(employee_id, period.payroll_period_id)
        if existing is None:
            values = await self._build_values(
                period, company, employee_id, employee, calculation, created_by=created_by
            )
            pay_stub_id = await self.repository.insert(values)
            if pay_stub_id is not None:
                return pay_stub_id
            existing = await self.repository.find_stub_id(employee_id, period.payroll_period_id)
        raise PayStubAlreadyGeneratedError(existing, employee_id, period.payroll_period_id)

    async def _build_values(
        self,
        period: PayrollPeriod,
        company: Company,
        employee_id: UUID,
        employee: Employee | None,
        calculation: PayrollCalculation | None,
        created_by: str | None = None,
        generation_source: str = "automatic",
        regeneration_count: int = 0,
        status: str = PayStubStatus.GENERATED.value,
    ) -> dict[str, Any]:
        if employee is None:
            raise PayStubValidationError(
                f"Employee {employee_id} does not belong to company {company.company_id}",
                field="employee_id",
                code="EMPLOYEE_NOT_FOUND",
            )
        if calculation is None:
            raise PayStubValidationError(
                f"No payroll calculation for employee {employee_id} "
                f"in period {period.payroll_period_id}",
                code="NO_CALCULATION",
            )

        self._validate_parties(employee, company)
        state = self._validate_state(calculation.state_jurisdiction)
        if not calculation.earnings:
            raise PayStubValidationError(
                "Payroll calculation has no earnings lines",
                field="earnings_breakdown",
                code="MISSING_REQUIRED_FIELD",
            )

        totals = self._totals(calculation)
        await self._check_ytd(employee_id, period, totals)
        allocations = self._allocate_direct_deposit(calculation.direct_deposit, totals.net_pay)

        metadata = StubMetadata(
            compliance_version=self.compliance.compliance_version,
            ada_compliant=getattr(self.delivery.renderer, "accessible", True),
            generation_source=generation_source,
            local_jurisdictions=list(calculation.local_jurisdictions),
            regeneration_count=regeneration_count,
        )

        return {
            "stub_number": stub_number_for(employee, period),
            "employee_id": employee_id,
            "payroll_period_id": period.payroll_period_id,
            "company_id": company.company_id,
            "pay_period_start": period.period_start,
            "pay_period_end": period.period_end,
            "pay_date": period.pay_date,
            "regular_hours": calculation.regular_hours,
            "regular_rate": calculation.regular_rate,
            "overtime_hours": calculation.overtime_hours,
            "overtime_rate": calculation.overtime_rate,
            "double_time_hours": calculation.double_time_hours,
            "double_time_rate": calculation.double_time_rate,
            "gross_pay": totals.gross_pay,
            "net_pay": totals.net_pay,
            "total_deductions": totals.total_deductions,
            "total_taxes": totals.total_taxes,
            "ytd_gross_pay": totals.ytd_gross_pay,
            "ytd_net_pay": totals.ytd_net_pay,
            "ytd_deductions": totals.ytd_deductions,
            "ytd_taxes": totals.ytd_taxes,
            "earnings_json": [line.to_dict() for line in calculation.earnings],
            "deductions_json": [line.to_dict() for line in calculation.deductions],
            "taxes_json": [line.to_dict() for line in calculation.taxes],
            "employer_contributions_json": [
                line.to_dict() for line in calculation.employer_contributions
            ],
            "direct_deposit_json": [a.to_dict() for a in allocations],
            "pto_balance": calculation.pto_balance,
            "sick_leave_balance": calculation.sick_leave_balance,
            "vacation_balance": calculation.vacation_balance,
            "state_jurisdiction": state,
            "status": status,
            "metadata_json": metadata.to_dict(),
            "pdf_content": None,
            "created_by": created_by,
        }

    def _validate_parties(self, employee: Employee, company: Company) -> None:
        if not (employee.first_name or "").strip() or not (employee.last_name or "").strip():
            raise PayStubValidationError(
                f"Employee {employee.employee_id} is missing a first or last name",
                field="employee_name",
                code="MISSING_REQUIRED_FIELD",
            )
        if not employee.ssn_last_four:
            raise PayStubValidationError(
                f"Employee {employee.employee_id} has no SSN on file",
                field="employee_ssn_last_four",
                code="MISSING_REQUIRED_FIELD",
            )
        if not SSN_LAST_FOUR.match(employee.ssn_last_four):
            raise PayStubValidationError(
                f"Employee {employee.employee_id} SSN last four must be 4 digits",
                field="employee_ssn_last_four",
                code="INVALID_FIELD",
            )
        address = Address.from_dict(employee.address_json)
        if address is None or not address.is_complete():
            raise PayStubValidationError(
                f"Employee {employee.employee_id} has an incomplete address",
                field="employee_address",
                code="MISSING_REQUIRED_FIELD",
            )
        if not (company.legal_name or "").strip():
            raise PayStubValidationError(
                f"Company {company.company_id} has no legal name",
                field="employer_legal_name",
                code="MISSING_REQUIRED_FIELD",
            )
        if not (company.ein or "").strip():
            raise PayStubValidationError(
                f"Company {company.company_id} has no EIN",
                field="employer_ein",
                code="MISSING_REQUIRED_FIELD",
            )

    @staticmethod
    def _validate_state(state_jurisdiction: str | None) -> str:
        state = (state_jurisdiction or "").strip().upper()
        if not STATE_CODE.match(state):
            raise PayStubValidationError(
                f"State jurisdiction '{state_jurisdiction}' is not a two-letter state code",
                field="state_jurisdiction",
                code="INVALID_FIELD",
            )
        return state

    @staticmethod
    def _totals(calculation: PayrollCalculation) -> _Totals:
        """Derive totals from the itemized lines and cross-check the source."""
        gross = money(sum((e.amount for e in calculation.earnings), ZERO))
        deductions = money(sum((d.amount for d in calculation.deductions), ZERO))
        taxes = money(sum((t.amount for t in calculation.taxes), ZERO))
        net = gross - deductions - taxes

        if calculation.gross_pay is not None and money(calculation.gross_pay) != gross:
            raise PayStubValidationError(
                f"Calculated gross pay {money(calculation.gross_pay)} does not match "
                f"the sum of earnings {gross}",
                field="gross_pay",
                code="TOTALS_MISMATCH",
            )
        if calculation.net_pay is not None and money(calculation.net_pay) != net:
            raise PayStubValidationError(
                f"Calculated net pay {money(calculation.net_pay)} does not match "
                f"gross minus deductions and taxes {net}",
                field="net_pay",
                code="TOTALS_MISMATCH",
            )

        ytd_gross = money(sum((e.ytd_amount for e in calculation.earnings), ZERO))
        ytd_deductions = money(sum((d.ytd_amount for d in calculation.deductions), ZERO))
        ytd_taxes = money(sum((t.ytd_amount for t in calculation.taxes), ZERO))
        return _Totals(
            gross_pay=gross,
            net_pay=net,
            total_deductions=deductions,
            total_taxes=taxes,
            ytd_gross_pay=ytd_gross,
            ytd_net_pay=ytd_gross - ytd_deductions - ytd_taxes,
            ytd_deductions=ytd_deductions,
            ytd_taxes=ytd_taxes,
        )

    async def _check_ytd(self, employee_id: UUID, period: PayrollPeriod, totals: _Totals) -> None:
        """YTD figures may not fall below the employee's previous stub this year."""
        prior = await self.repository.latest_prior_stub(
            employee_id, period.pay_date, period.payroll_period_id
        )
        if prior is None:
            return
        for name in ("ytd_gross_pay", "ytd_net_pay", "ytd_deductions", "ytd_taxes"):
            previous = money(getattr(prior, name))
            current = getattr(totals, name)
            if current < previous:
                raise PayStubValidationError(
                    f"{name} {current} is below {previous} on stub {prior.stub_number}",
                    field=name,
                    code="YTD_REGRESSION",
                )

    @staticmethod
    def _allocate_direct_deposit(
        allocations: list[DirectDepositAllocation],
        net_pay: Decimal,
    ) -> list[DirectDepositAllocation]:
        """Resolve allocation amounts against net pay.

        Either exactly one allocation takes the remainder, or the percentages
        sum to 100.
        """
        if not allocations:
            return []

        remainders = [a for a in allocations if a.is_remainder]
        if len(remainders) > 1:
            raise PayStubValidationError(
                "Only one direct deposit allocation may take the remainder",
                field="direct_deposit_breakdown",
                code="INVALID_FIELD",
            )
        if not remainders:
            total_pct = sum((a.percentage or ZERO for a in allocations), ZERO)
            if total_pct != HUNDRED:
                raise PayStubValidationError(
                    f"Direct deposit percentages sum to {total_pct}, not 100",
                    field="direct_deposit_breakdown",
                    code="INVALID_FIELD",
                )

        resolved: list[DirectDepositAllocation] = []
        for allocation in allocations:
            if allocation.is_remainder:
                resolved.append(allocation)
                continue
            amount = allocation.amount
            if allocation.percentage is not None:
                amount = money(net_pay * allocation.percentage / HUNDRED)
            resolved.append(
                DirectDepositAllocation(
                    account_type=allocation.account_type,
                    account_last_four=allocation.account_last_four,
                    amount=money(amount),
                    percentage=allocation.percentage,
                    is_remainder=False,
                    bank_name=allocation.bank_name,
                )
            )

        allocated = sum((a.amount for a in resolved if not a.is_remainder), ZERO)
        if allocated > net_pay:
            raise PayStubValidationError(
                f"Direct deposit allocations {allocated} exceed net pay {net_pay}",
                field="direct_deposit_breakdown",
                code="INVALID_FIELD",
            )
        for i, allocation in enumerate(resolved):
            if allocation.is_remainder:
                resolved[i] = DirectDepositAllocation(
                    account_type=allocation.account_type,
                    account_last_four=allocation.account_last_four,
                    amount=money(net_pay - allocated),
                    percentage=allocation.percentage,
                    is_remainder=True,
                    bank_name=allocation.bank_name,
                )
        return resolved

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _disclaimers(self, record: PayStubRecord) -> list[str]:
        return self.compliance.required_disclaimers(record.state_jurisdiction or "")

    @staticmethod
    def _error(
        employee_id: UUID,
        employee: Employee | None,
        code: str,
        message: str,
        pay_stub_id: UUID | None = None,
    ) -> GenerationError:
        return GenerationError(
            employee_id=employee_id,
            employee_name=employee.full_name if employee else "",
            error_code=code,
            error_message=message,
            pay_stub_id=pay_stub_id,
        )
