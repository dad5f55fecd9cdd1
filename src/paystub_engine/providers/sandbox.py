"""In-memory collaborators for local development and testing.

Replace with real payroll, rendering and email adapters for production.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from uuid import UUID

from paystub_engine.providers.base import DeliveryResult, EmailMessage
from paystub_engine.types import PayrollCalculation, PayStubRecord


class InMemoryCalculationSource:
    """Payroll calculations held in a dict keyed by (period, employee)."""

    def __init__(self, calculations: list[PayrollCalculation] | None = None):
        self._calculations: dict[tuple[UUID, UUID], PayrollCalculation] = {}
        for calc in calculations or []:
            self.add(calc)

    def add(self, calculation: PayrollCalculation) -> None:
        key = (calculation.payroll_period_id, calculation.employee_id)
        self._calculations[key] = calculation

    async def fetch_calculations(
        self,
        payroll_period_id: UUID,
        employee_ids: list[UUID] | None = None,
    ) -> list[PayrollCalculation]:
        wanted = set(employee_ids) if employee_ids else None
        return [
            calc
            for (period_id, employee_id), calc in self._calculations.items()
            if period_id == payroll_period_id and (wanted is None or employee_id in wanted)
        ]

    async def fetch_calculation(
        self,
        payroll_period_id: UUID,
        employee_id: UUID,
    ) -> PayrollCalculation | None:
        return self._calculations.get((payroll_period_id, employee_id))


class SandboxPdfRenderer:
    """Produces a small placeholder PDF containing the stub's key figures.

    In production, this would call the document rendering service and return
    a tagged, accessible PDF.
    """

    provider_name = "pdf_sandbox"
    accessible = True

    def __init__(self) -> None:
        self.rendered: list[UUID] = []

    async def render(self, record: PayStubRecord, disclaimers: list[str]) -> bytes:
        lines = [
            f"Pay Stub {record.stub_number}",
            f"Employer: {record.employer_legal_name} EIN {record.employer_ein or ''}",
            f"Employee: {record.employee_name} SSN XXX-XX-{record.employee_ssn_last_four or ''}",
            f"Pay period: {record.pay_period_start} - {record.pay_period_end}",
            f"Pay date: {record.pay_date}",
            f"Gross pay: {record.gross_pay}",
            f"Net pay: {record.net_pay}",
            *disclaimers,
        ]
        self.rendered.append(record.id)
        body = "\n".join(f"% {line}" for line in lines)
        return f"%PDF-1.4\n{body}\n%%EOF\n".encode("utf-8")


class SandboxEmailSender:
    """Keeps sent messages in an outbox instead of delivering them."""

    provider_name = "email_sandbox"

    def __init__(self) -> None:
        self.outbox: list[tuple[datetime, EmailMessage]] = []

    async def send(self, message: EmailMessage) -> DeliveryResult:
        self.outbox.append((datetime.now(timezone.utc), message))
        return DeliveryResult(
            accepted=True,
            message_id=f"SANDBOX-{uuid.uuid4().hex[:12].upper()}",
            message="Sandbox email accepted",
        )
