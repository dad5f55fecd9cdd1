"""Pytest fixtures for pay stub engine tests."""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import AsyncGenerator, Callable
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from paystub_engine.compliance import ComplianceRuleEngine
from paystub_engine.database import get_engine
from paystub_engine.models import Base, Company, Employee, PayrollPeriod
from paystub_engine.providers import (
    InMemoryCalculationSource,
    SandboxEmailSender,
    SandboxPdfRenderer,
)
from paystub_engine.services import (
    PayStubAccessLedger,
    PayStubGenerationPipeline,
    PayStubQueryService,
    StubDelivery,
)
from paystub_engine.types import (
    AccessContext,
    Address,
    DeductionLine,
    DirectDepositAllocation,
    EarningLine,
    EmployerContribution,
    PayrollCalculation,
    PayStubRecord,
    StubMetadata,
    TaxLine,
)

# In-memory SQLite shared by every session of one test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

COMPANY_ID = UUID("5b1c7a52-3c2d-4e0f-9a61-0c6d2f8e4a10")
OTHER_COMPANY_ID = UUID("9e2f4c61-7a3b-4d15-8c92-1f0e3d5b6a27")
PERIOD_ID = UUID("0a7d3e91-64b2-4f8c-a5d1-2e9c7b4f6083")
NEXT_PERIOD_ID = UUID("1b8e4fa2-75c3-4a9d-b6e2-3fad8c5a7194")
ALICE_ID = UUID("a11ce000-0000-4000-8000-000000000001")
BOB_ID = UUID("b0b00000-0000-4000-8000-000000000002")
CAROL_ID = UUID("ca201000-0000-4000-8000-000000000003")

COMPANY_ADDRESS = {
    "street": "500 Market Street",
    "city": "San Francisco",
    "state": "CA",
    "zip_code": "94105",
}


def _address(street: str) -> dict[str, str]:
    return {"street": street, "city": "Oakland", "state": "CA", "zip_code": "94612"}


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create test database engine with the schema in place."""
    engine = get_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


async def seed(session: AsyncSession) -> None:
    """A company with three employees and two consecutive pay periods.

    Carol has no SSN on file.
    """
    session.add_all(
        [
            Company(
                company_id=COMPANY_ID,
                legal_name="Acme Widgets LLC",
                ein="12-3456789",
                address_json=COMPANY_ADDRESS,
                phone="415-555-0100",
                ubi_number="603-123-456",
            ),
            Company(
                company_id=OTHER_COMPANY_ID,
                legal_name="Other Corp",
                ein="98-7654321",
                address_json=COMPANY_ADDRESS,
            ),
        ]
    )
    await session.flush()
    session.add_all(
        [
            Employee(
                employee_id=ALICE_ID,
                company_id=COMPANY_ID,
                employee_number="001",
                first_name="Alice",
                last_name="Nguyen",
                ssn_last_four="1234",
                address_json=_address("12 Lake Ave"),
                email="alice@example.com",
            ),
            Employee(
                employee_id=BOB_ID,
                company_id=COMPANY_ID,
                employee_number="002",
                first_name="Bob",
                last_name="Okafor",
                ssn_last_four="5678",
                address_json=_address("34 Grand Ave"),
                email="bob@example.com",
            ),
            Employee(
                employee_id=CAROL_ID,
                company_id=COMPANY_ID,
                employee_number="003",
                first_name="Carol",
                last_name="Diaz",
                ssn_last_four=None,
                address_json=_address("56 Broadway"),
                email="carol@example.com",
            ),
            PayrollPeriod(
                payroll_period_id=PERIOD_ID,
                company_id=COMPANY_ID,
                name="2024-03 first half",
                period_start=date(2024, 3, 1),
                period_end=date(2024, 3, 15),
                pay_date=date(2024, 3, 20),
            ),
            PayrollPeriod(
                payroll_period_id=NEXT_PERIOD_ID,
                company_id=COMPANY_ID,
                name="2024-03 second half",
                period_start=date(2024, 3, 16),
                period_end=date(2024, 3, 31),
                pay_date=date(2024, 4, 5),
            ),
        ]
    )
    await session.flush()


@pytest_asyncio.fixture
async def seeded_db(session: AsyncSession) -> AsyncSession:
    await seed(session)
    return session


@pytest_asyncio.fixture
async def file_session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Seeded and committed file database whose sessions use separate connections."""
    engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'paystubs.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    async with factory() as session:
        await seed(session)
        await session.commit()

    yield factory

    await engine.dispose()


def build_calculation(
    employee_id: UUID,
    payroll_period_id: UUID = PERIOD_ID,
    state: str = "CA",
    ytd_periods: int = 5,
) -> PayrollCalculation:
    """A CA calculation: 80h at 62.50 plus 5h overtime at 93.75.

    Gross 5468.75, deductions 450.00, taxes 1368.36, net 3650.39. Every YTD
    amount is ytd_periods times the current amount.
    """
    n = Decimal(ytd_periods)
    return PayrollCalculation(
        employee_id=employee_id,
        payroll_period_id=payroll_period_id,
        state_jurisdiction=state,
        regular_hours=Decimal("80"),
        regular_rate=Decimal("62.50"),
        overtime_hours=Decimal("5"),
        overtime_rate=Decimal("93.75"),
        earnings=[
            EarningLine("REG", "Regular pay", Decimal("5000.00"), Decimal("5000.00") * n,
                        earning_type="regular", hours=Decimal("80"), rate=Decimal("62.50")),
            EarningLine("OT", "Overtime pay", Decimal("468.75"), Decimal("468.75") * n,
                        earning_type="overtime", hours=Decimal("5"), rate=Decimal("93.75")),
        ],
        deductions=[
            DeductionLine("401K", "401(k) contribution", Decimal("300.00"), Decimal("300.00") * n,
                          is_pre_tax=True),
            DeductionLine("MED", "Medical premium", Decimal("150.00"), Decimal("150.00") * n,
                          is_pre_tax=True),
        ],
        taxes=[
            TaxLine("FIT", "Federal income tax", Decimal("700.00"), Decimal("700.00") * n,
                    tax_type="federal"),
            TaxLine("SIT", "State income tax", Decimal("250.00"), Decimal("250.00") * n,
                    tax_type="state"),
            TaxLine("SS", "Social Security", Decimal("339.06"), Decimal("339.06") * n,
                    tax_type="fica_ss"),
            TaxLine("MED", "Medicare", Decimal("79.30"), Decimal("79.30") * n,
                    tax_type="fica_medicare"),
        ],
        employer_contributions=[
            EmployerContribution("401KM", "401(k) match", Decimal("150.00"), Decimal("150.00") * n),
        ],
        sick_leave_balance=Decimal("24.00"),
        pto_balance=Decimal("40.00"),
        direct_deposit=[
            DirectDepositAllocation("checking", "4321", is_remainder=True, bank_name="First Bank"),
        ],
    )


@pytest.fixture
def calculations() -> InMemoryCalculationSource:
    """Calculations for all three employees in the first period."""
    return InMemoryCalculationSource(
        [build_calculation(employee_id) for employee_id in (ALICE_ID, BOB_ID, CAROL_ID)]
    )


@pytest.fixture
def renderer() -> SandboxPdfRenderer:
    return SandboxPdfRenderer()


@pytest.fixture
def email_sender() -> SandboxEmailSender:
    return SandboxEmailSender()


@pytest.fixture
def delivery(renderer, email_sender) -> StubDelivery:
    return StubDelivery(renderer, email_sender, max_concurrency=4, timeout_seconds=1.0)


@pytest.fixture
def pipeline(seeded_db, calculations, delivery) -> PayStubGenerationPipeline:
    return PayStubGenerationPipeline(seeded_db, calculations, delivery)


@pytest.fixture
def ledger(seeded_db) -> PayStubAccessLedger:
    return PayStubAccessLedger(seeded_db)


@pytest.fixture
def query_service(seeded_db, pipeline, ledger) -> PayStubQueryService:
    return PayStubQueryService(seeded_db, pipeline, ledger)


@pytest.fixture
def actor() -> AccessContext:
    return AccessContext(
        accessed_by="payroll-admin@example.com",
        ip_address="203.0.113.7",
        user_agent="pytest",
    )


@pytest.fixture
def compliance_engine() -> ComplianceRuleEngine:
    return ComplianceRuleEngine(compliance_version="2024.1")


@pytest.fixture
def make_record() -> Callable[..., PayStubRecord]:
    """Factory for a fully compliant California pay stub record."""

    def _make(**overrides) -> PayStubRecord:
        calc = build_calculation(ALICE_ID)
        values = dict(
            id=uuid4(),
            stub_number="2024-001-0A7D3E91",
            employee_id=ALICE_ID,
            payroll_period_id=PERIOD_ID,
            company_id=COMPANY_ID,
            pay_period_start=date(2024, 3, 1),
            pay_period_end=date(2024, 3, 15),
            pay_date=date(2024, 3, 20),
            employee_first_name="Alice",
            employee_last_name="Nguyen",
            employee_number="001",
            employee_ssn_last_four="1234",
            employee_address=Address.from_dict(_address("12 Lake Ave")),
            employee_email="alice@example.com",
            employer_legal_name="Acme Widgets LLC",
            employer_ein="12-3456789",
            employer_address=Address.from_dict(COMPANY_ADDRESS),
            employer_phone="415-555-0100",
            employer_ubi_number="603-123-456",
            regular_hours=calc.regular_hours,
            regular_rate=calc.regular_rate,
            overtime_hours=calc.overtime_hours,
            overtime_rate=calc.overtime_rate,
            gross_pay=Decimal("5468.75"),
            net_pay=Decimal("3650.39"),
            total_deductions=Decimal("450.00"),
            total_taxes=Decimal("1368.36"),
            earnings_breakdown=calc.earnings,
            deductions_breakdown=calc.deductions,
            taxes_breakdown=calc.taxes,
            employer_contributions=calc.employer_contributions,
            sick_leave_balance=calc.sick_leave_balance,
            state_jurisdiction="CA",
            metadata=StubMetadata(compliance_version="2024.1", ada_compliant=True),
            created_at=datetime(2024, 3, 18, tzinfo=timezone.utc),
        )
        values.update(overrides)
        return PayStubRecord(**values)

    return _make
