"""Pay stub and access ledger models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    LargeBinary,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from paystub_engine.models.base import Base, JSONType, TimestampMixin, utcnow
from paystub_engine.models.company import Company, Employee, PayrollPeriod


class PayStub(Base, TimestampMixin):
    """Persisted wage statement.

    Only ids are stored for the employee and company; their legal fields are
    joined in when a record is materialised.
    """

    __tablename__ = "pay_stub"

    pay_stub_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    stub_number: Mapped[str] = mapped_column(String(64), nullable=False)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    payroll_period_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_period.payroll_period_id", ondelete="CASCADE"),
        nullable=False,
    )
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=False,
    )

    pay_period_start: Mapped[date] = mapped_column(Date, nullable=False)
    pay_period_end: Mapped[date] = mapped_column(Date, nullable=False)
    pay_date: Mapped[date] = mapped_column(Date, nullable=False)

    regular_hours: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=0)
    regular_rate: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False, default=0)
    overtime_hours: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=0)
    overtime_rate: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False, default=0)
    double_time_hours: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=0)
    double_time_rate: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False, default=0)

    gross_pay: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    net_pay: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total_deductions: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total_taxes: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    ytd_gross_pay: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    ytd_net_pay: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    ytd_deductions: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    ytd_taxes: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    earnings_json: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    deductions_json: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    taxes_json: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    employer_contributions_json: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType, nullable=False, default=list
    )
    direct_deposit_json: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType, nullable=False, default=list
    )

    pto_balance: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    sick_leave_balance: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    vacation_balance: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))

    state_jurisdiction: Mapped[str] = mapped_column(String(2), nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="generated")
    metadata_json: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    pdf_content: Mapped[bytes | None] = mapped_column(LargeBinary)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    created_by: Mapped[str | None] = mapped_column(String)

    __table_args__ = (
        UniqueConstraint("employee_id", "payroll_period_id", name="pay_stub_employee_period_unique"),
        CheckConstraint(
            "status IN ('generated', 'pdf_ready', 'emailed', 'viewed', 'error')",
            name="pay_stub_status_check",
        ),
        CheckConstraint("pay_period_end >= pay_period_start", name="pay_stub_period_dates_check"),
        Index("ix_pay_stub_company_pay_date", "company_id", "pay_date"),
        Index("ix_pay_stub_company_stub_number", "company_id", "stub_number"),
    )

    # Relationships
    employee: Mapped[Employee] = relationship()
    company: Mapped[Company] = relationship()
    payroll_period: Mapped[PayrollPeriod] = relationship()
    access_logs: Mapped[list[PayStubAccessLog]] = relationship(
        back_populates="pay_stub",
        order_by="PayStubAccessLog.accessed_at",
    )


class PayStubAccessLog(Base):
    """Append-only record of a view, download, or email of a pay stub."""

    __tablename__ = "pay_stub_access_log"

    access_log_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    pay_stub_id: Mapped[UUID] = mapped_column(
        ForeignKey("pay_stub.pay_stub_id", ondelete="CASCADE"),
        nullable=False,
    )
    company_id: Mapped[UUID] = mapped_column(nullable=False)
    accessed_by: Mapped[str] = mapped_column(String, nullable=False)
    access_type: Mapped[str] = mapped_column(String, nullable=False)
    ip_address: Mapped[str | None] = mapped_column(String(45))
    user_agent: Mapped[str | None] = mapped_column(Text)
    accessed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint(
            "access_type IN ('view', 'download', 'email')",
            name="pay_stub_access_log_type_check",
        ),
        Index("ix_pay_stub_access_log_stub_time", "pay_stub_id", "accessed_at"),
    )

    # Relationships
    pay_stub: Mapped[PayStub] = relationship(back_populates="access_logs")
