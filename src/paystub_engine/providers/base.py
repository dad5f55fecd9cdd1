"""Protocols and types for the external collaborators of the pay stub engine.

The engine consumes, but does not implement, payroll calculation, PDF
rendering and email delivery. Each deployment supplies adapters implementing
these protocols; the sandbox module ships in-memory versions for local
development and tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

if TYPE_CHECKING:
    from paystub_engine.types import PayrollCalculation, PayStubArtifact, PayStubRecord


@dataclass(frozen=True)
class EmailMessage:
    """A pay stub notification to one recipient."""

    to: str
    subject: str
    body: str
    attachments: list[PayStubArtifact] = field(default_factory=list)


@dataclass(frozen=True)
class DeliveryResult:
    """Result of handing a message to the email provider."""

    accepted: bool
    message_id: str | None = None
    message: str = ""


class PayrollCalculationSource(Protocol):
    """Supplies per-employee payroll calculations for a period."""

    async def fetch_calculations(
        self,
        payroll_period_id: UUID,
        employee_ids: list[UUID] | None = None,
    ) -> list[PayrollCalculation]:
        """Return calculations for the period.

        Args:
            payroll_period_id: The period to fetch.
            employee_ids: Restrict to these employees. None returns every
                employee with a calculation in the period.
        """
        ...

    async def fetch_calculation(
        self,
        payroll_period_id: UUID,
        employee_id: UUID,
    ) -> PayrollCalculation | None:
        """Return one employee's calculation, or None if there is none."""
        ...


class PdfRenderer(Protocol):
    """Renders a pay stub record into a PDF document."""

    provider_name: str
    # Whether rendered documents are tagged for assistive technology
    accessible: bool

    async def render(self, record: PayStubRecord, disclaimers: list[str]) -> bytes:
        """Render the record, raising on failure."""
        ...


class EmailSender(Protocol):
    """Delivers pay stub notifications."""

    provider_name: str

    async def send(self, message: EmailMessage) -> DeliveryResult:
        """Send the message, raising or returning accepted=False on failure."""
        ...
