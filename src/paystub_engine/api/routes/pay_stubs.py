"""Pay stub API endpoints."""

from datetime import date
from decimal import Decimal
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, HTTPException, Path, Query, Response, status

from paystub_engine.api.dependencies import (
    Actor,
    CompanyId,
    DbSession,
    Pipeline,
    QueryService,
)
from paystub_engine.api.schemas import (
    AccessLogResponse,
    BatchItemResponse,
    BatchRequest,
    BatchResponse,
    ComplianceCheckResponse,
    ComplianceReportResponse,
    ErrorResponse,
    GenerateRequest,
    GenerationResponse,
    MetricsResponse,
    PayStubListResponse,
    PayStubResponse,
)
from paystub_engine.exceptions import ExternalServiceError
from paystub_engine.types import (
    ComplianceCheckResult,
    DateRange,
    GenerationRequest,
    PayStubStatus,
    SearchFilters,
)

router = APIRouter(prefix="/pay-stubs", tags=["pay-stubs"])


# ============================================================================
# Generation
# ============================================================================


@router.post(
    "/generate",
    response_model=GenerationResponse,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def generate_pay_stubs(
    db: DbSession,
    company_id: CompanyId,
    pipeline: Pipeline,
    payload: GenerateRequest,
    actor: Actor,
) -> GenerationResponse:
    """Generate pay stubs for a payroll period.

    Per-employee failures are itemized in the response body; the request
    itself only fails for an unknown or invalid payroll period.
    """
    result = await pipeline.generate(
        GenerationRequest(
            payroll_period_id=payload.payroll_period_id,
            company_id=company_id,
            employee_ids=payload.employee_ids,
            generate_pdf=payload.generate_pdf,
            email_to_employees=payload.email_to_employees,
            created_by=actor.accessed_by,
        )
    )
    await db.commit()
    return GenerationResponse.model_validate(result)


# ============================================================================
# Search and metrics
# ============================================================================


@router.get("", response_model=PayStubListResponse)
async def search_pay_stubs(
    company_id: CompanyId,
    service: QueryService,
    employee_name: str | None = None,
    employee_id: UUID | None = None,
    pay_date_start: date | None = None,
    pay_date_end: date | None = None,
    status_filter: Annotated[PayStubStatus | None, Query(alias="status")] = None,
    min_amount: Annotated[Decimal | None, Query(ge=0)] = None,
    max_amount: Annotated[Decimal | None, Query(ge=0)] = None,
    state_jurisdiction: Annotated[str | None, Query(min_length=2, max_length=2)] = None,
    stub_number: str | None = None,
) -> PayStubListResponse:
    """Search pay stubs; every filter given must match."""
    records = await service.search(
        SearchFilters(
            company_id=company_id,
            employee_name=employee_name,
            employee_id=employee_id,
            pay_date_start=pay_date_start,
            pay_date_end=pay_date_end,
            status=status_filter.value if status_filter else None,
            min_amount=min_amount,
            max_amount=max_amount,
            state_jurisdiction=state_jurisdiction,
            stub_number=stub_number,
        )
    )
    return PayStubListResponse(
        items=[PayStubResponse.model_validate(r) for r in records],
        total=len(records),
    )


@router.get("/metrics", response_model=MetricsResponse)
async def get_metrics(
    company_id: CompanyId,
    service: QueryService,
    start: date | None = None,
    end: date | None = None,
) -> MetricsResponse:
    """Aggregate pay stub metrics, optionally limited to a pay date range."""
    if (start is None) != (end is None):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start and end must be given together",
        )
    date_range = DateRange(start=start, end=end) if start and end else None
    metrics = await service.metrics(company_id, date_range)
    return MetricsResponse.model_validate(metrics)


# ============================================================================
# Batch operations
# ============================================================================


@router.post("/batch", response_model=BatchResponse)
async def run_batch_operation(
    db: DbSession,
    company_id: CompanyId,
    service: QueryService,
    actor: Actor,
    payload: BatchRequest,
) -> BatchResponse:
    """Apply one operation to many pay stubs, reporting each outcome."""
    result = await service.batch(payload.to_operation(), company_id, actor)
    await db.commit()
    return BatchResponse(
        operation=result.operation.value,
        success=result.success,
        succeeded_count=result.succeeded_count,
        failed_count=result.failed_count,
        results=[
            BatchItemResponse(
                pay_stub_id=item.pay_stub_id,
                success=item.success,
                error_code=item.error_code,
                error_message=item.error_message,
                data=(
                    ComplianceCheckResponse.model_validate(item.data)
                    if isinstance(item.data, ComplianceCheckResult)
                    else item.data
                ),
            )
            for item in result.results
        ],
    )


# ============================================================================
# Single pay stub
# ============================================================================


@router.get(
    "/{pay_stub_id}",
    response_model=PayStubResponse,
    responses={404: {"model": ErrorResponse}},
)
async def view_pay_stub(
    db: DbSession,
    company_id: CompanyId,
    service: QueryService,
    actor: Actor,
    pay_stub_id: Annotated[UUID, Path()],
) -> PayStubResponse:
    """Get a pay stub, recording the view in the access log."""
    record = await service.view(pay_stub_id, company_id, actor)
    await db.commit()
    return PayStubResponse.model_validate(record)


@router.get(
    "/{pay_stub_id}/download",
    responses={
        200: {"content": {"application/pdf": {}}},
        404: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def download_pay_stub(
    db: DbSession,
    company_id: CompanyId,
    service: QueryService,
    actor: Actor,
    pay_stub_id: Annotated[UUID, Path()],
) -> Response:
    """Download a pay stub PDF, rendering it on first request."""
    try:
        artifact = await service.download(pay_stub_id, company_id, actor)
    except ExternalServiceError:
        # The failed render moved the stub to error; keep that.
        await db.commit()
        raise
    await db.commit()
    return Response(
        content=artifact.content,
        media_type=artifact.media_type,
        headers={"Content-Disposition": f'attachment; filename="{artifact.filename}"'},
    )


@router.get(
    "/{pay_stub_id}/compliance",
    response_model=ComplianceCheckResponse,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def check_pay_stub_compliance(
    company_id: CompanyId,
    service: QueryService,
    pay_stub_id: Annotated[UUID, Path()],
    state_code: Annotated[str | None, Query(min_length=2, max_length=2)] = None,
) -> ComplianceCheckResponse:
    """Run federal, state and ADA checks. Advisory only; nothing is changed."""
    result = await service.compliance_check(pay_stub_id, company_id, state_code)
    return ComplianceCheckResponse.model_validate(result)


@router.get(
    "/{pay_stub_id}/compliance/report",
    response_model=ComplianceReportResponse,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def get_compliance_report(
    company_id: CompanyId,
    service: QueryService,
    pay_stub_id: Annotated[UUID, Path()],
) -> ComplianceReportResponse:
    """Compliance result with summary counts and required disclaimers."""
    report = await service.compliance_report(pay_stub_id, company_id)
    return ComplianceReportResponse.model_validate(report)


@router.get(
    "/{pay_stub_id}/access-logs",
    response_model=list[AccessLogResponse],
    responses={404: {"model": ErrorResponse}},
)
async def list_access_logs(
    company_id: CompanyId,
    service: QueryService,
    pay_stub_id: Annotated[UUID, Path()],
) -> list[AccessLogResponse]:
    """Access log entries for a pay stub, oldest first."""
    entries = await service.access_logs(pay_stub_id, company_id)
    return [AccessLogResponse.model_validate(e) for e in entries]
