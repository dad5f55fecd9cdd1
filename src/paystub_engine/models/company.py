"""Company, employee, and payroll period models."""

from __future__ import annotations

from datetime import date
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from paystub_engine.models.base import Base, JSONType, TimestampMixin


class Company(Base, TimestampMixin):
    """Employer of record."""

    __tablename__ = "company"

    company_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    legal_name: Mapped[str] = mapped_column(String, nullable=False)
    ein: Mapped[str | None] = mapped_column(String(10))
    address_json: Mapped[dict[str, Any] | None] = mapped_column(JSONType)
    phone: Mapped[str | None] = mapped_column(String(32))
    ubi_number: Mapped[str | None] = mapped_column(String(32))

    # Relationships
    employees: Mapped[list[Employee]] = relationship(back_populates="company")


class Employee(Base, TimestampMixin):
    """Employee master data used to resolve wage statement fields."""

    __tablename__ = "employee"

    employee_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_number: Mapped[str] = mapped_column(String(32), nullable=False)
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str] = mapped_column(String, nullable=False)
    ssn_last_four: Mapped[str | None] = mapped_column(String(4))
    address_json: Mapped[dict[str, Any] | None] = mapped_column(JSONType)
    email: Mapped[str | None] = mapped_column(String)

    __table_args__ = (
        UniqueConstraint("company_id", "employee_number", name="employee_company_number_unique"),
    )

    # Relationships
    company: Mapped[Company] = relationship(back_populates="employees")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class PayrollPeriod(Base, TimestampMixin):
    """Date range and pay date a set of pay stubs covers."""

    __tablename__ = "payroll_period"

    payroll_period_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    pay_date: Mapped[date] = mapped_column(Date, nullable=False)

    __table_args__ = (
        CheckConstraint("period_end >= period_start", name="payroll_period_dates_check"),
    )

    # Relationships
    company: Mapped[Company] = relationship()
