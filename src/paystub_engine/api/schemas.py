"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, RootModel

from paystub_engine.types import (
    BatchOperation,
    ComplianceCheckOperation,
    DownloadOperation,
    EmailOperation,
    RegenerateOperation,
)

# ============================================================================
# Pay stub schemas
# ============================================================================


class AddressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    street: str
    city: str
    state: str
    zip_code: str


class EarningLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    description: str
    amount: Decimal
    ytd_amount: Decimal
    earning_type: str
    hours: Decimal | None = None
    rate: Decimal | None = None
    is_taxable: bool


class DeductionLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    description: str
    amount: Decimal
    ytd_amount: Decimal
    is_pre_tax: bool
    category: str
    deduction_type: str | None = None


class TaxLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    description: str
    amount: Decimal
    ytd_amount: Decimal
    tax_type: str
    rate: Decimal | None = None
    taxable_wages: Decimal | None = None


class EmployerContributionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    description: str
    amount: Decimal
    ytd_amount: Decimal
    contribution_type: str | None = None


class DirectDepositResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    account_type: str
    account_last_four: str
    amount: Decimal
    percentage: Decimal | None = None
    is_remainder: bool
    bank_name: str | None = None


class StubMetadataResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    compliance_version: str
    ada_compliant: bool
    generation_source: str
    previous_stub_id: UUID | None = None
    local_jurisdictions: list[str]
    regeneration_count: int
    last_error: str | None = None


class PayStubResponse(BaseModel):
    """Schema for a pay stub with employee and employer fields resolved."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    stub_number: str
    employee_id: UUID
    payroll_period_id: UUID
    company_id: UUID
    pay_period_start: date
    pay_period_end: date
    pay_date: date

    employee_name: str
    employee_number: str | None = None
    employee_ssn_last_four: str | None = None
    employee_address: AddressResponse | None = None
    employer_legal_name: str
    employer_ein: str | None = None
    employer_address: AddressResponse | None = None
    employer_phone: str | None = None
    employer_ubi_number: str | None = None

    regular_hours: Decimal
    regular_rate: Decimal
    overtime_hours: Decimal
    overtime_rate: Decimal
    double_time_hours: Decimal
    double_time_rate: Decimal

    gross_pay: Decimal
    net_pay: Decimal
    total_deductions: Decimal
    total_taxes: Decimal
    ytd_gross_pay: Decimal
    ytd_net_pay: Decimal
    ytd_deductions: Decimal
    ytd_taxes: Decimal

    earnings_breakdown: list[EarningLineResponse]
    deductions_breakdown: list[DeductionLineResponse]
    taxes_breakdown: list[TaxLineResponse]
    employer_contributions: list[EmployerContributionResponse]

    pto_balance: Decimal | None = None
    sick_leave_balance: Decimal | None = None
    vacation_balance: Decimal | None = None
    direct_deposit_breakdown: list[DirectDepositResponse]

    state_jurisdiction: str | None = None
    status: str
    metadata: StubMetadataResponse
    created_at: datetime | None = None
    updated_at: datetime | None = None
    created_by: str | None = None


class PayStubListResponse(BaseModel):
    items: list[PayStubResponse]
    total: int


# ============================================================================
# Generation schemas
# ============================================================================


class GenerateRequest(BaseModel):
    """Schema for generating pay stubs for a payroll period."""

    payroll_period_id: UUID
    employee_ids: list[UUID] | None = None
    generate_pdf: bool = False
    email_to_employees: bool = False


class GenerationErrorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: UUID
    employee_name: str
    error_code: str
    error_message: str
    pay_stub_id: UUID | None = None


class GenerationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    success: bool
    generated_count: int
    failed_count: int
    pay_stub_ids: list[UUID]
    errors: list[GenerationErrorResponse]


# ============================================================================
# Metrics schemas
# ============================================================================


class MetricsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_generated: int
    total_downloaded: int
    total_viewed: int
    average_gross_pay: Decimal
    total_payroll_amount: Decimal
    employee_count: int


# ============================================================================
# Compliance schemas
# ============================================================================


class ComplianceCheckResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    pay_stub_id: UUID
    state_jurisdiction: str
    compliance_version: str
    is_compliant: bool
    federal_compliance: bool
    state_compliance: bool
    ada_compliance: bool
    missing_fields: list[str]
    warnings: list[str]
    recommendations: list[str]
    issues: list[str]
    checked_at: datetime | None = None


class ComplianceReportResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    result: ComplianceCheckResponse
    compliance_summary: dict[str, int]
    required_disclaimers: list[str]


class StateRuleResponse(BaseModel):
    """Schema for one state's wage statement requirements."""

    model_config = ConfigDict(from_attributes=True)

    state_code: str
    state_name: str
    wage_statement_frequency: str
    requires_sick_leave_balance: bool
    requires_overtime_breakdown: bool
    requires_employer_ubi: bool
    requires_employer_phone: bool
    requires_deduction_descriptions: bool
    all_required_fields: list[str]
    disclaimers: list[str]
    recommendations: list[str]
    special_formatting: str | None = None


# ============================================================================
# Access log schemas
# ============================================================================


class AccessLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    pay_stub_id: UUID
    accessed_by: str
    access_type: str
    ip_address: str | None = None
    user_agent: str | None = None
    accessed_at: datetime


# ============================================================================
# Batch schemas
# ============================================================================


class _BatchRequestBase(BaseModel):
    pay_stub_ids: list[UUID] = Field(min_length=1)


class DownloadBatchRequest(_BatchRequestBase):
    operation: Literal["download"]

    def to_operation(self) -> DownloadOperation:
        return DownloadOperation(pay_stub_ids=self.pay_stub_ids)


class EmailBatchRequest(_BatchRequestBase):
    operation: Literal["email"]
    recipient_override: str | None = None

    def to_operation(self) -> EmailOperation:
        return EmailOperation(
            pay_stub_ids=self.pay_stub_ids,
            recipient_override=self.recipient_override,
        )


class RegenerateBatchRequest(_BatchRequestBase):
    operation: Literal["regenerate"]
    generate_pdf: bool = False

    def to_operation(self) -> RegenerateOperation:
        return RegenerateOperation(pay_stub_ids=self.pay_stub_ids, generate_pdf=self.generate_pdf)


class ComplianceCheckBatchRequest(_BatchRequestBase):
    operation: Literal["compliance_check"]
    state_code: str | None = Field(default=None, min_length=2, max_length=2)

    def to_operation(self) -> ComplianceCheckOperation:
        return ComplianceCheckOperation(pay_stub_ids=self.pay_stub_ids, state_code=self.state_code)


class BatchRequest(
    RootModel[
        Annotated[
            Union[
                DownloadBatchRequest,
                EmailBatchRequest,
                RegenerateBatchRequest,
                ComplianceCheckBatchRequest,
            ],
            Field(discriminator="operation"),
        ]
    ]
):
    """Batch request body, one variant per operation."""

    def to_operation(self) -> BatchOperation:
        return self.root.to_operation()


class BatchItemResponse(BaseModel):
    pay_stub_id: UUID
    success: bool
    error_code: str | None = None
    error_message: str | None = None
    data: ComplianceCheckResponse | dict[str, Any] | None = None


class BatchResponse(BaseModel):
    operation: str
    success: bool
    succeeded_count: int
    failed_count: int
    results: list[BatchItemResponse]


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None
