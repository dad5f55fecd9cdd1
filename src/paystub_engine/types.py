"""Type definitions for pay stub records, results, and requests."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, ClassVar
from uuid import UUID

CENT = Decimal("0.01")
ZERO = Decimal("0")


def money(value: Decimal | int | float | str | None) -> Decimal:
    """Quantize a value to cents."""
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


class PayStubStatus(str, Enum):
    """Pay stub lifecycle status values."""

    GENERATED = "generated"
    PDF_READY = "pdf_ready"
    EMAILED = "emailed"
    VIEWED = "viewed"
    ERROR = "error"


class AccessType(str, Enum):
    """Kinds of access recorded in the ledger."""

    VIEW = "view"
    DOWNLOAD = "download"
    EMAIL = "email"


class EarningType(str, Enum):
    """Earning line categories."""

    REGULAR = "regular"
    OVERTIME = "overtime"
    DOUBLE_TIME = "double_time"
    BONUS = "bonus"
    COMMISSION = "commission"
    OTHER = "other"


class TaxType(str, Enum):
    """Tax line categories."""

    FEDERAL = "federal"
    STATE = "state"
    LOCAL = "local"
    FICA_SS = "fica_ss"
    FICA_MEDICARE = "fica_medicare"
    SDI = "sdi"
    OTHER = "other"


class DeductionCategory(str, Enum):
    """Deduction categories."""

    VOLUNTARY = "voluntary"
    MANDATORY = "mandatory"
    COURT_ORDERED = "court_ordered"


class BatchOperationType(str, Enum):
    """Batch lifecycle operations."""

    DOWNLOAD = "download"
    EMAIL = "email"
    REGENERATE = "regenerate"
    COMPLIANCE_CHECK = "compliance_check"


# ===== Itemized lines =====


class _LineItem:
    """Shared JSON conversion for itemized lines.

    Amounts are stored as strings so JSON columns keep exact cents.
    """

    DECIMAL_FIELDS: ClassVar[tuple[str, ...]] = ("amount", "ytd_amount")

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)  # type: ignore[call-overload]
        for name in self.DECIMAL_FIELDS:
            if data.get(name) is not None:
                data[name] = str(data[name])
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Any:
        known = {f.name for f in fields(cls)}  # type: ignore[arg-type]
        values = {k: v for k, v in data.items() if k in known}
        for name in cls.DECIMAL_FIELDS:
            if values.get(name) is not None:
                values[name] = Decimal(str(values[name]))
        return cls(**values)


@dataclass
class EarningLine(_LineItem):
    """One earnings line on a wage statement."""

    DECIMAL_FIELDS: ClassVar[tuple[str, ...]] = ("amount", "ytd_amount", "hours", "rate")

    code: str
    description: str
    amount: Decimal
    ytd_amount: Decimal = ZERO
    earning_type: str = EarningType.REGULAR.value
    hours: Decimal | None = None
    rate: Decimal | None = None
    is_taxable: bool = True


@dataclass
class DeductionLine(_LineItem):
    """One deduction line."""

    code: str
    description: str
    amount: Decimal
    ytd_amount: Decimal = ZERO
    is_pre_tax: bool = False
    category: str = DeductionCategory.VOLUNTARY.value
    deduction_type: str | None = None


@dataclass
class TaxLine(_LineItem):
    """One withheld tax line."""

    DECIMAL_FIELDS: ClassVar[tuple[str, ...]] = (
        "amount",
        "ytd_amount",
        "rate",
        "taxable_wages",
    )

    code: str
    description: str
    amount: Decimal
    ytd_amount: Decimal = ZERO
    tax_type: str = TaxType.OTHER.value
    rate: Decimal | None = None
    taxable_wages: Decimal | None = None


@dataclass
class EmployerContribution(_LineItem):
    """Employer-paid contribution shown for information."""

    code: str
    description: str
    amount: Decimal
    ytd_amount: Decimal = ZERO
    contribution_type: str | None = None
    is_taxable_to_employee: bool = False


@dataclass
class DirectDepositAllocation(_LineItem):
    """Allocation of net pay to one bank account."""

    DECIMAL_FIELDS: ClassVar[tuple[str, ...]] = ("amount", "percentage")

    account_type: str
    account_last_four: str
    amount: Decimal = ZERO
    percentage: Decimal | None = None
    is_remainder: bool = False
    bank_name: str | None = None


@dataclass
class Address:
    """Postal address."""

    street: str
    city: str
    state: str
    zip_code: str

    def format(self) -> str:
        return f"{self.street}, {self.city}, {self.state} {self.zip_code}"

    def is_complete(self) -> bool:
        return all(v and v.strip() for v in (self.street, self.city, self.state, self.zip_code))

    def to_dict(self) -> dict[str, str]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Address | None:
        if not data:
            return None
        return cls(
            street=data.get("street", ""),
            city=data.get("city", ""),
            state=data.get("state", ""),
            zip_code=data.get("zip_code", ""),
        )


@dataclass
class StubMetadata:
    """Compliance and provenance metadata carried on each stub."""

    compliance_version: str
    ada_compliant: bool = True
    generation_source: str = "automatic"
    previous_stub_id: UUID | None = None
    local_jurisdictions: list[str] = field(default_factory=list)
    regeneration_count: int = 0
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["previous_stub_id"] = str(self.previous_stub_id) if self.previous_stub_id else None
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StubMetadata:
        previous = data.get("previous_stub_id")
        return cls(
            compliance_version=data.get("compliance_version", ""),
            ada_compliant=bool(data.get("ada_compliant", False)),
            generation_source=data.get("generation_source", "automatic"),
            previous_stub_id=UUID(previous) if previous else None,
            local_jurisdictions=list(data.get("local_jurisdictions", [])),
            regeneration_count=int(data.get("regeneration_count", 0)),
            last_error=data.get("last_error"),
        )


# ===== Pay stub record =====


@dataclass
class PayStubRecord:
    """One wage statement for one employee for one pay period.

    Employee and employer fields are resolved from their own rows when the
    record is loaded; only ids are persisted on the stub itself.
    """

    id: UUID
    stub_number: str
    employee_id: UUID
    payroll_period_id: UUID
    company_id: UUID

    pay_period_start: date
    pay_period_end: date
    pay_date: date

    # Employee
    employee_first_name: str
    employee_last_name: str
    employee_number: str | None
    employee_ssn_last_four: str | None
    employee_address: Address | None
    employee_email: str | None

    # Employer
    employer_legal_name: str
    employer_ein: str | None
    employer_address: Address | None
    employer_phone: str | None
    employer_ubi_number: str | None

    # Hours and rates
    regular_hours: Decimal = ZERO
    regular_rate: Decimal = ZERO
    overtime_hours: Decimal = ZERO
    overtime_rate: Decimal = ZERO
    double_time_hours: Decimal = ZERO
    double_time_rate: Decimal = ZERO

    # Totals
    gross_pay: Decimal = ZERO
    net_pay: Decimal = ZERO
    total_deductions: Decimal = ZERO
    total_taxes: Decimal = ZERO
    ytd_gross_pay: Decimal = ZERO
    ytd_net_pay: Decimal = ZERO
    ytd_deductions: Decimal = ZERO
    ytd_taxes: Decimal = ZERO

    earnings_breakdown: list[EarningLine] = field(default_factory=list)
    deductions_breakdown: list[DeductionLine] = field(default_factory=list)
    taxes_breakdown: list[TaxLine] = field(default_factory=list)
    employer_contributions: list[EmployerContribution] = field(default_factory=list)

    pto_balance: Decimal | None = None
    sick_leave_balance: Decimal | None = None
    vacation_balance: Decimal | None = None

    direct_deposit_breakdown: list[DirectDepositAllocation] = field(default_factory=list)

    state_jurisdiction: str | None = None
    status: str = PayStubStatus.GENERATED.value
    metadata: StubMetadata = field(default_factory=lambda: StubMetadata(compliance_version=""))

    created_at: datetime | None = None
    updated_at: datetime | None = None
    created_by: str | None = None

    @property
    def employee_name(self) -> str:
        return f"{self.employee_first_name} {self.employee_last_name}".strip()

    def totals_errors(self) -> list[str]:
        """Check the gross/net invariants, returning any violations."""
        errors: list[str] = []
        earnings = sum((e.amount for e in self.earnings_breakdown), ZERO)
        deductions = sum((d.amount for d in self.deductions_breakdown), ZERO)
        taxes = sum((t.amount for t in self.taxes_breakdown), ZERO)

        if money(self.gross_pay) != money(earnings):
            errors.append(
                f"gross_pay {money(self.gross_pay)} != sum of earnings {money(earnings)}"
            )
        expected_net = money(self.gross_pay) - money(deductions) - money(taxes)
        if money(self.net_pay) != expected_net:
            errors.append(
                f"net_pay {money(self.net_pay)} != gross - deductions - taxes {expected_net}"
            )
        return errors


# ===== Access ledger =====


@dataclass(frozen=True)
class AccessContext:
    """Actor identity and client metadata supplied by the request context."""

    accessed_by: str
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class AccessLogEntry:
    """An immutable access ledger entry."""

    id: UUID
    pay_stub_id: UUID
    company_id: UUID
    accessed_by: str
    access_type: str
    ip_address: str | None
    user_agent: str | None
    accessed_at: datetime


# ===== Compliance =====


@dataclass
class CheckOutcome:
    """Result of one compliance check family (federal, state or ADA)."""

    compliant: bool
    missing_fields: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    issues: list[str] = field(default_factory=list)


@dataclass
class ComplianceCheckResult:
    """Combined compliance result for one pay stub. Derived, never persisted."""

    pay_stub_id: UUID
    state_jurisdiction: str
    compliance_version: str
    is_compliant: bool
    federal_compliance: bool
    state_compliance: bool
    ada_compliance: bool
    missing_fields: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    issues: list[str] = field(default_factory=list)
    checked_at: datetime | None = None


@dataclass
class ComplianceReport:
    """Compliance result plus summary counts and required disclaimers."""

    result: ComplianceCheckResult
    compliance_summary: dict[str, int]
    required_disclaimers: list[str]


# ===== Generation =====


@dataclass
class PayrollCalculation:
    """Payroll-calculation input for one employee in one period.

    Supplied by the external payroll calculation source; this engine does not
    compute taxes or gross pay itself.
    """

    employee_id: UUID
    payroll_period_id: UUID
    state_jurisdiction: str
    regular_hours: Decimal = ZERO
    regular_rate: Decimal = ZERO
    overtime_hours: Decimal = ZERO
    overtime_rate: Decimal = ZERO
    double_time_hours: Decimal = ZERO
    double_time_rate: Decimal = ZERO
    earnings: list[EarningLine] = field(default_factory=list)
    deductions: list[DeductionLine] = field(default_factory=list)
    taxes: list[TaxLine] = field(default_factory=list)
    employer_contributions: list[EmployerContribution] = field(default_factory=list)
    pto_balance: Decimal | None = None
    sick_leave_balance: Decimal | None = None
    vacation_balance: Decimal | None = None
    direct_deposit: list[DirectDepositAllocation] = field(default_factory=list)
    local_jurisdictions: list[str] = field(default_factory=list)
    # Optional cross-checks against the calculated lines
    gross_pay: Decimal | None = None
    net_pay: Decimal | None = None


@dataclass
class GenerationRequest:
    """Request to generate pay stubs for a payroll period."""

    payroll_period_id: UUID
    company_id: UUID
    employee_ids: list[UUID] | None = None
    generate_pdf: bool = False
    email_to_employees: bool = False
    created_by: str | None = None


@dataclass
class GenerationError:
    """A per-employee generation failure. Collected, never raised."""

    employee_id: UUID
    employee_name: str
    error_code: str
    error_message: str
    pay_stub_id: UUID | None = None


@dataclass
class GenerationResult:
    """Outcome of a generation batch."""

    success: bool
    generated_count: int
    failed_count: int
    pay_stub_ids: list[UUID] = field(default_factory=list)
    errors: list[GenerationError] = field(default_factory=list)


# ===== Queries =====


@dataclass
class SearchFilters:
    """Pay stub search filters; every field set is ANDed, None means unconstrained."""

    employee_name: str | None = None
    employee_id: UUID | None = None
    pay_date_start: date | None = None
    pay_date_end: date | None = None
    status: str | None = None
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None
    company_id: UUID | None = None
    state_jurisdiction: str | None = None
    stub_number: str | None = None


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date


@dataclass
class PayStubMetrics:
    """Aggregate pay stub metrics for one company."""

    total_generated: int
    total_downloaded: int
    total_viewed: int
    average_gross_pay: Decimal
    total_payroll_amount: Decimal
    employee_count: int
    date_range: DateRange | None = None


@dataclass(frozen=True)
class PayStubArtifact:
    """A rendered pay stub document."""

    filename: str
    content: bytes
    media_type: str = "application/pdf"


# ===== Batch operations =====


@dataclass
class DownloadOperation:
    operation: ClassVar[BatchOperationType] = BatchOperationType.DOWNLOAD

    pay_stub_ids: list[UUID]


@dataclass
class EmailOperation:
    operation: ClassVar[BatchOperationType] = BatchOperationType.EMAIL

    pay_stub_ids: list[UUID]
    recipient_override: str | None = None


@dataclass
class RegenerateOperation:
    operation: ClassVar[BatchOperationType] = BatchOperationType.REGENERATE

    pay_stub_ids: list[UUID]
    generate_pdf: bool = False


@dataclass
class ComplianceCheckOperation:
    operation: ClassVar[BatchOperationType] = BatchOperationType.COMPLIANCE_CHECK

    pay_stub_ids: list[UUID]
    state_code: str | None = None


BatchOperation = DownloadOperation | EmailOperation | RegenerateOperation | ComplianceCheckOperation


@dataclass
class BatchItemResult:
    """Outcome of a batch operation for one pay stub id."""

    pay_stub_id: UUID
    success: bool
    error_code: str | None = None
    error_message: str | None = None
    data: Any = None


@dataclass
class BatchResult:
    """Per-id outcomes of a batch operation."""

    operation: BatchOperationType
    results: list[BatchItemResult] = field(default_factory=list)

    @property
    def succeeded_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def success(self) -> bool:
        return self.failed_count == 0
