"""Pay stub repository over an async SQLAlchemy session.

Every read takes company_id explicitly so tenant isolation stays visible at
each call site.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from paystub_engine.exceptions import PayStubNotFoundError
from paystub_engine.models import Company, Employee, PayrollPeriod, PayStub, PayStubAccessLog
from paystub_engine.models.base import utcnow
from paystub_engine.types import (
    AccessLogEntry,
    Address,
    DateRange,
    DeductionLine,
    DirectDepositAllocation,
    EarningLine,
    EmployerContribution,
    PayStubRecord,
    SearchFilters,
    StubMetadata,
    TaxLine,
    money,
)

# Columns an upsert must never overwrite on an existing row
_IMMUTABLE_ON_CONFLICT = {
    "pay_stub_id",
    "employee_id",
    "payroll_period_id",
    "company_id",
    "created_at",
    "created_by",
}


class PayStubRepository:
    """Persistence operations for pay stubs and their access log."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # ------------------------------------------------------------------
    # Pay stubs
    # ------------------------------------------------------------------

    async def get_row(
        self,
        pay_stub_id: UUID,
        company_id: UUID,
        for_update: bool = False,
    ) -> PayStub | None:
        """Load a pay stub row with its employee and company.

        for_update locks the row until the transaction ends (no-op on SQLite).
        """
        query = (
            select(PayStub)
            .where(PayStub.pay_stub_id == pay_stub_id, PayStub.company_id == company_id)
            .options(selectinload(PayStub.employee), selectinload(PayStub.company))
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get(
        self,
        pay_stub_id: UUID,
        company_id: UUID,
        for_update: bool = False,
    ) -> PayStubRecord:
        """Load a pay stub record, raising PayStubNotFoundError if absent."""
        row = await self.get_row(pay_stub_id, company_id, for_update=for_update)
        if row is None:
            raise PayStubNotFoundError("Pay stub", pay_stub_id)
        return self.to_record(row)

    async def search(self, filters: SearchFilters) -> list[PayStubRecord]:
        """List pay stubs matching every filter that is set."""
        query = (
            select(PayStub)
            .join(Employee, PayStub.employee_id == Employee.employee_id)
            .options(selectinload(PayStub.employee), selectinload(PayStub.company))
            .execution_options(populate_existing=True)
        )

        if filters.company_id:
            query = query.where(PayStub.company_id == filters.company_id)
        if filters.employee_id:
            query = query.where(PayStub.employee_id == filters.employee_id)
        if filters.employee_name:
            full_name = Employee.first_name + " " + Employee.last_name
            query = query.where(full_name.ilike(f"%{filters.employee_name.strip()}%"))
        if filters.pay_date_start:
            query = query.where(PayStub.pay_date >= filters.pay_date_start)
        if filters.pay_date_end:
            query = query.where(PayStub.pay_date <= filters.pay_date_end)
        if filters.status:
            query = query.where(PayStub.status == filters.status)
        if filters.min_amount is not None:
            query = query.where(PayStub.gross_pay >= filters.min_amount)
        if filters.max_amount is not None:
            query = query.where(PayStub.gross_pay <= filters.max_amount)
        if filters.state_jurisdiction:
            query = query.where(PayStub.state_jurisdiction == filters.state_jurisdiction.upper())
        if filters.stub_number:
            query = query.where(PayStub.stub_number == filters.stub_number)

        query = query.order_by(PayStub.pay_date.desc(), PayStub.stub_number)
        result = await self.session.execute(query)
        return [self.to_record(row) for row in result.scalars().all()]

    async def find_stub_id(self, employee_id: UUID, payroll_period_id: UUID) -> UUID | None:
        """Id of the employee's stub for the period, if one exists."""
        return await self.session.scalar(
            select(PayStub.pay_stub_id).where(
                PayStub.employee_id == employee_id,
                PayStub.payroll_period_id == payroll_period_id,
            )
        )

    async def insert(self, values: dict[str, Any]) -> UUID | None:
        """Insert a pay stub unless the employee already has one for the period.

        Returns None when a stub for the same (employee_id, payroll_period_id)
        exists, including one written by a concurrent run. The existing row
        is left untouched.
        """
        insert = self._insert_for_dialect()
        stmt = (
            insert(PayStub)
            .values(pay_stub_id=uuid4(), **values)
            .on_conflict_do_nothing(index_elements=["employee_id", "payroll_period_id"])
            .returning(PayStub.pay_stub_id)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def upsert(self, values: dict[str, Any]) -> UUID:
        """Insert a pay stub or replace the one for the same employee and period.

        Runs as a single INSERT ... ON CONFLICT statement so concurrent
        regenerations cannot create a second stub for the same
        (employee_id, payroll_period_id).
        """
        values = {"pay_stub_id": uuid4(), **values}
        insert = self._insert_for_dialect()
        stmt = insert(PayStub).values(**values)
        set_ = {
            name: stmt.excluded[name]
            for name in values
            if name not in _IMMUTABLE_ON_CONFLICT
        }
        set_["updated_at"] = utcnow()
        stmt = stmt.on_conflict_do_update(
            index_elements=["employee_id", "payroll_period_id"],
            set_=set_,
        ).returning(PayStub.pay_stub_id)

        result = await self.session.execute(stmt)
        return result.scalar_one()

    def _insert_for_dialect(self) -> Any:
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert
        if dialect == "sqlite":
            return sqlite_insert
        raise NotImplementedError(f"ON CONFLICT inserts are not supported on dialect '{dialect}'")

    async def update_stub(self, pay_stub_id: UUID, **values: Any) -> None:
        """Update columns of one pay stub."""
        values["updated_at"] = utcnow()
        await self.session.execute(
            update(PayStub).where(PayStub.pay_stub_id == pay_stub_id).values(**values)
        )

    async def latest_prior_stub(
        self,
        employee_id: UUID,
        pay_date: date,
        exclude_period_id: UUID,
    ) -> PayStub | None:
        """Most recent earlier stub of the employee in the same calendar year."""
        result = await self.session.execute(
            select(PayStub)
            .where(
                PayStub.employee_id == employee_id,
                PayStub.payroll_period_id != exclude_period_id,
                PayStub.pay_date < pay_date,
                PayStub.pay_date >= date(pay_date.year, 1, 1),
            )
            .order_by(PayStub.pay_date.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Reference data
    # ------------------------------------------------------------------

    async def get_period(self, payroll_period_id: UUID) -> PayrollPeriod | None:
        return await self.session.get(PayrollPeriod, payroll_period_id)

    async def get_company(self, company_id: UUID) -> Company | None:
        return await self.session.get(Company, company_id)

    async def get_employees(
        self,
        employee_ids: list[UUID],
        company_id: UUID,
    ) -> dict[UUID, Employee]:
        if not employee_ids:
            return {}
        result = await self.session.execute(
            select(Employee).where(
                Employee.employee_id.in_(employee_ids),
                Employee.company_id == company_id,
            )
        )
        return {e.employee_id: e for e in result.scalars().all()}

    # ------------------------------------------------------------------
    # Access log
    # ------------------------------------------------------------------

    async def append_log(
        self,
        *,
        pay_stub_id: UUID,
        company_id: UUID,
        accessed_by: str,
        access_type: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AccessLogEntry:
        """Append one access log row. Rows are never updated or deleted."""
        row = PayStubAccessLog(
            access_log_id=uuid4(),
            pay_stub_id=pay_stub_id,
            company_id=company_id,
            accessed_by=accessed_by,
            access_type=access_type,
            ip_address=ip_address,
            user_agent=user_agent,
            accessed_at=utcnow(),
        )
        self.session.add(row)
        await self.session.flush()
        return self._to_log_entry(row)

    async def list_logs(self, pay_stub_id: UUID, company_id: UUID) -> list[AccessLogEntry]:
        result = await self.session.execute(
            select(PayStubAccessLog)
            .where(
                PayStubAccessLog.pay_stub_id == pay_stub_id,
                PayStubAccessLog.company_id == company_id,
            )
            .order_by(PayStubAccessLog.accessed_at.asc(), PayStubAccessLog.access_log_id)
        )
        return [self._to_log_entry(row) for row in result.scalars().all()]

    async def count_logs_by_type(
        self,
        company_id: UUID,
        date_range: DateRange | None = None,
    ) -> dict[str, int]:
        """Access events per type for stubs of a company (by stub pay date)."""
        query = (
            select(PayStubAccessLog.access_type, func.count(PayStubAccessLog.access_log_id))
            .join(PayStub, PayStub.pay_stub_id == PayStubAccessLog.pay_stub_id)
            .where(PayStub.company_id == company_id)
            .group_by(PayStubAccessLog.access_type)
        )
        if date_range:
            query = query.where(
                PayStub.pay_date >= date_range.start,
                PayStub.pay_date <= date_range.end,
            )
        result = await self.session.execute(query)
        return {access_type: int(count) for access_type, count in result.all()}

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    async def stub_totals(
        self,
        company_id: UUID,
        date_range: DateRange | None = None,
    ) -> tuple[int, Decimal, int]:
        """Return (stub count, total gross pay, distinct employee count)."""
        query = select(
            func.count(PayStub.pay_stub_id),
            func.sum(PayStub.gross_pay),
            func.count(func.distinct(PayStub.employee_id)),
        ).where(PayStub.company_id == company_id)
        if date_range:
            query = query.where(
                PayStub.pay_date >= date_range.start,
                PayStub.pay_date <= date_range.end,
            )
        count, total, employees = (await self.session.execute(query)).one()
        return int(count or 0), money(total), int(employees or 0)

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    @staticmethod
    def to_record(row: PayStub) -> PayStubRecord:
        """Materialise a record, resolving employee and employer fields."""
        employee = row.employee
        company = row.company
        return PayStubRecord(
            id=row.pay_stub_id,
            stub_number=row.stub_number,
            employee_id=row.employee_id,
            payroll_period_id=row.payroll_period_id,
            company_id=row.company_id,
            pay_period_start=row.pay_period_start,
            pay_period_end=row.pay_period_end,
            pay_date=row.pay_date,
            employee_first_name=employee.first_name,
            employee_last_name=employee.last_name,
            employee_number=employee.employee_number,
            employee_ssn_last_four=employee.ssn_last_four,
            employee_address=Address.from_dict(employee.address_json),
            employee_email=employee.email,
            employer_legal_name=company.legal_name,
            employer_ein=company.ein,
            employer_address=Address.from_dict(company.address_json),
            employer_phone=company.phone,
            employer_ubi_number=company.ubi_number,
            regular_hours=row.regular_hours,
            regular_rate=row.regular_rate,
            overtime_hours=row.overtime_hours,
            overtime_rate=row.overtime_rate,
            double_time_hours=row.double_time_hours,
            double_time_rate=row.double_time_rate,
            gross_pay=money(row.gross_pay),
            net_pay=money(row.net_pay),
            total_deductions=money(row.total_deductions),
            total_taxes=money(row.total_taxes),
            ytd_gross_pay=money(row.ytd_gross_pay),
            ytd_net_pay=money(row.ytd_net_pay),
            ytd_deductions=money(row.ytd_deductions),
            ytd_taxes=money(row.ytd_taxes),
            earnings_breakdown=[EarningLine.from_dict(d) for d in row.earnings_json],
            deductions_breakdown=[DeductionLine.from_dict(d) for d in row.deductions_json],
            taxes_breakdown=[TaxLine.from_dict(d) for d in row.taxes_json],
            employer_contributions=[
                EmployerContribution.from_dict(d) for d in row.employer_contributions_json
            ],
            pto_balance=row.pto_balance,
            sick_leave_balance=row.sick_leave_balance,
            vacation_balance=row.vacation_balance,
            direct_deposit_breakdown=[
                DirectDepositAllocation.from_dict(d) for d in row.direct_deposit_json
            ],
            state_jurisdiction=row.state_jurisdiction,
            status=row.status,
            metadata=StubMetadata.from_dict(row.metadata_json or {}),
            created_at=row.created_at,
            updated_at=row.updated_at,
            created_by=row.created_by,
        )

    @staticmethod
    def _to_log_entry(row: PayStubAccessLog) -> AccessLogEntry:
        return AccessLogEntry(
            id=row.access_log_id,
            pay_stub_id=row.pay_stub_id,
            company_id=row.company_id,
            accessed_by=row.accessed_by,
            access_type=row.access_type,
            ip_address=row.ip_address,
            user_agent=row.user_agent,
            accessed_at=row.accessed_at,
        )
