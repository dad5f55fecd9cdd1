"""Property-based tests for pay stub totals invariants.

Totals are derived from itemized lines at generation time; these tests
check that the derivation always satisfies the gross and net identities.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given, settings, strategies as st

from paystub_engine.exceptions import PayStubValidationError
from paystub_engine.services.generation import PayStubGenerationPipeline
from paystub_engine.types import (
    ZERO,
    DeductionLine,
    EarningLine,
    PayrollCalculation,
    PayStubRecord,
    StubMetadata,
    TaxLine,
    money,
)

amounts = st.decimals(
    min_value=Decimal("0.00"),
    max_value=Decimal("50000.00"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)


def _calculation(earnings, deductions, taxes, **kwargs) -> PayrollCalculation:
    return PayrollCalculation(
        employee_id=uuid4(),
        payroll_period_id=uuid4(),
        state_jurisdiction="TX",
        earnings=[EarningLine(f"E{i}", "Earning", a) for i, a in enumerate(earnings)],
        deductions=[DeductionLine(f"D{i}", "Deduction", a) for i, a in enumerate(deductions)],
        taxes=[TaxLine(f"T{i}", "Tax", a) for i, a in enumerate(taxes)],
        **kwargs,
    )


def _record(calc: PayrollCalculation, gross: Decimal, net: Decimal) -> PayStubRecord:
    return PayStubRecord(
        id=uuid4(),
        stub_number="2024-007-ABCDEF01",
        employee_id=calc.employee_id,
        payroll_period_id=calc.payroll_period_id,
        company_id=uuid4(),
        pay_period_start=date(2024, 1, 1),
        pay_period_end=date(2024, 1, 15),
        pay_date=date(2024, 1, 19),
        employee_first_name="Test",
        employee_last_name="Employee",
        employee_number="007",
        employee_ssn_last_four="0000",
        employee_address=None,
        employee_email=None,
        employer_legal_name="Test Co",
        employer_ein="12-3456789",
        employer_address=None,
        employer_phone=None,
        employer_ubi_number=None,
        gross_pay=gross,
        net_pay=net,
        earnings_breakdown=calc.earnings,
        deductions_breakdown=calc.deductions,
        taxes_breakdown=calc.taxes,
        metadata=StubMetadata(compliance_version="2024.1"),
    )


class TestTotalsInvariants:
    @given(
        earnings=st.lists(amounts, min_size=1, max_size=6),
        deductions=st.lists(amounts, max_size=6),
        taxes=st.lists(amounts, max_size=6),
    )
    @settings(max_examples=200)
    def test_gross_and_net_identities(self, earnings, deductions, taxes):
        calc = _calculation(earnings, deductions, taxes)

        totals = PayStubGenerationPipeline._totals(calc)

        assert totals.gross_pay == sum(earnings, ZERO)
        assert totals.net_pay == totals.gross_pay - sum(deductions, ZERO) - sum(taxes, ZERO)
        assert totals.total_deductions == sum(deductions, ZERO)
        assert totals.total_taxes == sum(taxes, ZERO)
        assert _record(calc, totals.gross_pay, totals.net_pay).totals_errors() == []

    @given(
        earnings=st.lists(amounts, min_size=1, max_size=4),
        drift=st.decimals(min_value=Decimal("0.01"), max_value=Decimal("100"), places=2),
    )
    def test_mismatched_source_gross_is_rejected(self, earnings, drift):
        calc = _calculation(earnings, [], [], gross_pay=sum(earnings, ZERO) + drift)

        with pytest.raises(PayStubValidationError) as exc_info:
            PayStubGenerationPipeline._totals(calc)

        assert exc_info.value.code == "TOTALS_MISMATCH"

    def test_totals_errors_reports_both_violations(self):
        calc = _calculation([Decimal("100.00")], [Decimal("10.00")], [Decimal("5.00")])

        errors = _record(calc, Decimal("99.00"), Decimal("90.00")).totals_errors()

        assert len(errors) == 2


class TestMoney:
    def test_rounds_half_up_to_cents(self):
        assert money("1.005") == Decimal("1.01")
        assert money(Decimal("2.344")) == Decimal("2.34")
        assert money(None) == Decimal("0.00")

    def test_line_json_keeps_exact_cents(self):
        line = TaxLine("SS", "Social Security", Decimal("339.06"), Decimal("1695.30"), tax_type="fica_ss")

        data = line.to_dict()

        assert data["amount"] == "339.06"
        assert TaxLine.from_dict(data) == line
