"""Read-side operations and batch lifecycle operations over pay stubs."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from paystub_engine.compliance import ComplianceRuleEngine
from paystub_engine.exceptions import ExternalServiceError, PayStubError, PayStubNotFoundError
from paystub_engine.models import PayStub
from paystub_engine.providers.base import DeliveryResult
from paystub_engine.services.access_ledger import PayStubAccessLedger
from paystub_engine.services.delivery import artifact_filename
from paystub_engine.services.generation import PayStubGenerationPipeline
from paystub_engine.services.repository import PayStubRepository
from paystub_engine.services.state_machine import InvalidTransitionError, PayStubStateMachine
from paystub_engine.types import (
    ZERO,
    AccessContext,
    AccessLogEntry,
    AccessType,
    BatchItemResult,
    BatchOperation,
    BatchOperationType,
    BatchResult,
    ComplianceCheckOperation,
    ComplianceCheckResult,
    ComplianceReport,
    DateRange,
    DownloadOperation,
    EmailOperation,
    PayStubArtifact,
    PayStubMetrics,
    PayStubRecord,
    PayStubStatus,
    RegenerateOperation,
    SearchFilters,
    money,
)

logger = logging.getLogger(__name__)

BatchHandler = Callable[[Any, UUID, UUID, AccessContext], Awaitable[Any]]


class PayStubQueryService:
    """Search, metrics, single-stub access and batch operations.

    Operations:
    - search / get / employee_pay_stubs: tenant-scoped reads
    - metrics: aggregates over stubs and the access ledger
    - download / email / view: consumption actions, each logged to the ledger
    - compliance_check / compliance_report: advisory, never mutate the stub
    - batch: one operation over many ids with per-id outcomes
    """

    def __init__(
        self,
        session: AsyncSession,
        pipeline: PayStubGenerationPipeline,
        ledger: PayStubAccessLedger | None = None,
        compliance: ComplianceRuleEngine | None = None,
    ):
        self.session = session
        self.repository = PayStubRepository(session)
        self.pipeline = pipeline
        self.delivery = pipeline.delivery
        self.ledger = ledger or PayStubAccessLedger(session)
        self.compliance = compliance or pipeline.compliance

        self._handlers: dict[BatchOperationType, BatchHandler] = {
            BatchOperationType.DOWNLOAD: self._batch_download,
            BatchOperationType.EMAIL: self._batch_email,
            BatchOperationType.REGENERATE: self._batch_regenerate,
            BatchOperationType.COMPLIANCE_CHECK: self._batch_compliance_check,
        }

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def search(self, filters: SearchFilters) -> list[PayStubRecord]:
        return await self.repository.search(filters)

    async def get(self, pay_stub_id: UUID, company_id: UUID) -> PayStubRecord:
        return await self.repository.get(pay_stub_id, company_id)

    async def employee_pay_stubs(self, employee_id: UUID, company_id: UUID) -> list[PayStubRecord]:
        """All stubs of one employee, newest pay date first."""
        return await self.repository.search(
            SearchFilters(company_id=company_id, employee_id=employee_id)
        )

    async def metrics(
        self,
        company_id: UUID,
        date_range: DateRange | None = None,
    ) -> PayStubMetrics:
        """Aggregate counts and pay totals for a company.

        The date range applies to stub pay dates, for both the stub totals and
        the ledger counts.
        """
        count, total_gross, employee_count = await self.repository.stub_totals(
            company_id, date_range
        )
        access_counts = await self.ledger.count_by_type(company_id, date_range)
        return PayStubMetrics(
            total_generated=count,
            total_downloaded=access_counts[AccessType.DOWNLOAD.value],
            total_viewed=access_counts[AccessType.VIEW.value],
            average_gross_pay=money(total_gross / count) if count else ZERO,
            total_payroll_amount=total_gross,
            employee_count=employee_count,
            date_range=date_range,
        )

    async def access_logs(self, pay_stub_id: UUID, company_id: UUID) -> list[AccessLogEntry]:
        """Ledger entries for a stub, raising PayStubNotFoundError if absent."""
        await self._row(pay_stub_id, company_id)
        return await self.ledger.entries(pay_stub_id, company_id)

    # ------------------------------------------------------------------
    # Consumption
    # ------------------------------------------------------------------

    async def download(
        self,
        pay_stub_id: UUID,
        company_id: UUID,
        context: AccessContext,
    ) -> PayStubArtifact:
        """Return the stub's PDF, rendering it first if needed."""
        row = await self._row(pay_stub_id, company_id)
        record = self.repository.to_record(row)
        content = await self._ensure_document(row, record)
        await self.ledger.record(pay_stub_id, company_id, AccessType.DOWNLOAD, context)
        return PayStubArtifact(filename=artifact_filename(record), content=content)

    async def email(
        self,
        pay_stub_id: UUID,
        company_id: UUID,
        context: AccessContext,
        recipient: str | None = None,
    ) -> DeliveryResult:
        """Email the stub to its employee, or to recipient if given."""
        row = await self._row(pay_stub_id, company_id)
        record = self.repository.to_record(row)
        content = await self._ensure_document(row, record)
        record = await self.repository.get(pay_stub_id, company_id)

        try:
            delivery = await self.delivery.email(record, content, recipient)
        except ExternalServiceError as e:
            if record.status != PayStubStatus.ERROR:
                await self.pipeline.mark_error(record, e.message)
            raise

        await self._advance(record, PayStubStatus.EMAILED)
        await self.ledger.record(pay_stub_id, company_id, AccessType.EMAIL, context)
        return delivery

    async def view(
        self,
        pay_stub_id: UUID,
        company_id: UUID,
        context: AccessContext,
    ) -> PayStubRecord:
        """Return the stub, log the view and move it to viewed."""
        record = await self.repository.get(pay_stub_id, company_id)
        await self.ledger.record(pay_stub_id, company_id, AccessType.VIEW, context)
        if await self._advance(record, PayStubStatus.VIEWED):
            record = await self.repository.get(pay_stub_id, company_id)
        return record

    # ------------------------------------------------------------------
    # Compliance
    # ------------------------------------------------------------------

    async def compliance_check(
        self,
        pay_stub_id: UUID,
        company_id: UUID,
        state_code: str | None = None,
    ) -> ComplianceCheckResult:
        record = await self.repository.get(pay_stub_id, company_id)
        return self.compliance.check(record, state_code)

    async def compliance_report(self, pay_stub_id: UUID, company_id: UUID) -> ComplianceReport:
        record = await self.repository.get(pay_stub_id, company_id)
        return self.compliance.format_compliance_report(record)

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    async def batch(
        self,
        operation: BatchOperation,
        company_id: UUID,
        context: AccessContext,
    ) -> BatchResult:
        """Apply one operation to each id, isolating failures per id.

        Duplicate ids are processed once. Never raises for an item failure;
        each outcome carries its own error code and message.
        """
        handler = self._handlers[operation.operation]
        result = BatchResult(operation=operation.operation)

        for pay_stub_id in dict.fromkeys(operation.pay_stub_ids):
            try:
                data = await handler(operation, pay_stub_id, company_id, context)
            except PayStubError as e:
                result.results.append(
                    BatchItemResult(
                        pay_stub_id=pay_stub_id,
                        success=False,
                        error_code=e.code,
                        error_message=e.message,
                    )
                )
            except InvalidTransitionError as e:
                result.results.append(
                    BatchItemResult(
                        pay_stub_id=pay_stub_id,
                        success=False,
                        error_code="INVALID_TRANSITION",
                        error_message=str(e),
                    )
                )
            except Exception as e:
                logger.exception(
                    "Batch %s failed for pay stub %s", operation.operation.value, pay_stub_id
                )
                result.results.append(
                    BatchItemResult(
                        pay_stub_id=pay_stub_id,
                        success=False,
                        error_code="UNEXPECTED_ERROR",
                        error_message=str(e),
                    )
                )
            else:
                result.results.append(
                    BatchItemResult(pay_stub_id=pay_stub_id, success=True, data=data)
                )

        logger.info(
            "Batch %s: %d succeeded, %d failed",
            operation.operation.value,
            result.succeeded_count,
            result.failed_count,
        )
        return result

    async def _batch_download(
        self,
        operation: DownloadOperation,
        pay_stub_id: UUID,
        company_id: UUID,
        context: AccessContext,
    ) -> dict[str, Any]:
        artifact = await self.download(pay_stub_id, company_id, context)
        return {"filename": artifact.filename, "size_bytes": len(artifact.content)}

    async def _batch_email(
        self,
        operation: EmailOperation,
        pay_stub_id: UUID,
        company_id: UUID,
        context: AccessContext,
    ) -> dict[str, Any]:
        delivery = await self.email(pay_stub_id, company_id, context, operation.recipient_override)
        return {"message_id": delivery.message_id}

    async def _batch_regenerate(
        self,
        operation: RegenerateOperation,
        pay_stub_id: UUID,
        company_id: UUID,
        context: AccessContext,
    ) -> dict[str, Any]:
        record = await self.pipeline.regenerate(
            pay_stub_id, company_id, generate_pdf=operation.generate_pdf
        )
        return {
            "stub_number": record.stub_number,
            "status": record.status,
            "regeneration_count": record.metadata.regeneration_count,
        }

    async def _batch_compliance_check(
        self,
        operation: ComplianceCheckOperation,
        pay_stub_id: UUID,
        company_id: UUID,
        context: AccessContext,
    ) -> ComplianceCheckResult:
        return await self.compliance_check(pay_stub_id, company_id, operation.state_code)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _row(self, pay_stub_id: UUID, company_id: UUID) -> PayStub:
        row = await self.repository.get_row(pay_stub_id, company_id)
        if row is None:
            raise PayStubNotFoundError("Pay stub", pay_stub_id)
        return row

    async def _ensure_document(self, row: PayStub, record: PayStubRecord) -> bytes:
        """Return the stored PDF, rendering and storing it if absent."""
        if row.pdf_content:
            return row.pdf_content

        disclaimers = self.compliance.required_disclaimers(record.state_jurisdiction or "")
        try:
            content = await self.delivery.render(record, disclaimers)
        except ExternalServiceError as e:
            if record.status != PayStubStatus.ERROR:
                await self.pipeline.mark_error(record, e.message)
            raise

        values: dict[str, Any] = {"pdf_content": content}
        if record.status == PayStubStatus.GENERATED:
            values["status"] = PayStubStatus.PDF_READY.value
        await self.repository.update_stub(record.id, **values)
        return content

    async def _advance(self, record: PayStubRecord, target: PayStubStatus) -> bool:
        """Move forward to target if allowed; returns whether the status changed.

        Lifecycle events that cannot move the stub (viewing a stub in error,
        for example) leave the status as it is.
        """
        try:
            status = PayStubStateMachine.advance(record.status, target)
        except InvalidTransitionError:
            return False
        if status == record.status:
            return False
        await self.repository.update_stub(record.id, status=status)
        return True
