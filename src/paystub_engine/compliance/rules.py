"""Wage statement rule tables.

Federal requirements are fixed; state requirements live in a registry keyed
by two-letter state code. Adjusting a state's requirements is a change to
STATE_RULES, not to the engine.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal

# Record attributes every wage statement must carry
FEDERAL_REQUIRED_FIELDS: tuple[str, ...] = (
    "employee_name",
    "employee_id",
    "employer_legal_name",
    "employer_ein",
    "pay_period_start",
    "pay_period_end",
    "pay_date",
    "gross_pay",
    "net_pay",
    "total_taxes",
    "earnings_breakdown",
    "taxes_breakdown",
)

EIN_PATTERN = re.compile(r"^\d{2}-\d{7}$")

# FLSA overtime premium
OVERTIME_MULTIPLIER = Decimal("1.5")

FEDERAL_DISCLAIMER = (
    "This statement is furnished in accordance with the recordkeeping "
    "requirements of the Fair Labor Standards Act (29 CFR Part 516)."
)

# Cannot be verified from record data alone, so always recommended
ADA_RECOMMENDATIONS: tuple[str, ...] = (
    "Ensure the PDF has a proper heading structure",
    "Verify color contrast ratio is at least 4.5:1 (WCAG 2.1 AA)",
    "Include alt text for any images or logos",
    "Test the document with a screen reader",
)


@dataclass(frozen=True)
class StateRule:
    """Declarative wage statement requirements for one state."""

    state_code: str
    state_name: str
    wage_statement_frequency: str
    requires_sick_leave_balance: bool = False
    requires_overtime_breakdown: bool = False
    requires_employer_ubi: bool = False
    requires_employer_phone: bool = False
    requires_deduction_descriptions: bool = False
    required_fields: tuple[str, ...] = ()
    disclaimers: tuple[str, ...] = ()
    recommendations: tuple[str, ...] = ()
    special_formatting: str | None = None

    @property
    def all_required_fields(self) -> list[str]:
        """Field names this state requires, including the flag-driven ones."""
        names: list[str] = []
        if self.requires_sick_leave_balance:
            names.append("sick_leave_balance")
        if self.requires_overtime_breakdown:
            names.append("overtime_breakdown")
        if self.requires_employer_ubi:
            names.append("employer_ubi_number")
        if self.requires_employer_phone:
            names.append("employer_phone")
        if self.requires_deduction_descriptions:
            names.append("deduction_descriptions")
        names.extend(f for f in self.required_fields if f not in names)
        return names


@dataclass
class StateRuleRegistry:
    """Lookup of state rules by state code."""

    rules: dict[str, StateRule] = field(default_factory=dict)

    def register(self, rule: StateRule) -> None:
        self.rules[rule.state_code.upper()] = rule

    def get(self, state_code: str | None) -> StateRule | None:
        if not state_code:
            return None
        return self.rules.get(state_code.strip().upper())

    def __contains__(self, state_code: object) -> bool:
        return isinstance(state_code, str) and state_code.strip().upper() in self.rules

    def codes(self) -> list[str]:
        return sorted(self.rules)


STATE_RULES: tuple[StateRule, ...] = (
    StateRule(
        state_code="CA",
        state_name="California",
        wage_statement_frequency="semimonthly",
        requires_sick_leave_balance=True,
        requires_overtime_breakdown=True,
        requires_deduction_descriptions=True,
        required_fields=("employer_contributions",),
        disclaimers=("This pay stub complies with California Labor Code Section 226",),
        recommendations=("Ensure sick leave balance is displayed for California employees",),
        special_formatting="california_format",
    ),
    StateRule(
        state_code="NY",
        state_name="New York",
        wage_statement_frequency="weekly",
        requires_overtime_breakdown=True,
        requires_employer_phone=True,
        disclaimers=("This pay stub complies with New York Labor Law Section 195",),
        special_formatting="new_york_format",
    ),
    StateRule(
        state_code="WA",
        state_name="Washington",
        wage_statement_frequency="monthly",
        requires_sick_leave_balance=True,
        requires_employer_ubi=True,
        disclaimers=(
            "This pay stub complies with Washington State wage statement requirements",
        ),
        recommendations=(
            "Show the employer UBI number next to the legal name on Washington statements",
        ),
        special_formatting="washington_format",
    ),
    StateRule(
        state_code="IL",
        state_name="Illinois",
        wage_statement_frequency="semimonthly",
        requires_overtime_breakdown=True,
        disclaimers=("This pay stub complies with Illinois wage statement requirements",),
        special_formatting="illinois_format",
    ),
    StateRule(
        state_code="OR",
        state_name="Oregon",
        wage_statement_frequency="monthly",
        requires_overtime_breakdown=True,
        requires_employer_phone=True,
        disclaimers=("This pay stub complies with ORS 652.610",),
    ),
    StateRule(
        state_code="MA",
        state_name="Massachusetts",
        wage_statement_frequency="biweekly",
        requires_sick_leave_balance=True,
        disclaimers=("This pay stub complies with M.G.L. c. 149, Section 148",),
    ),
    StateRule(
        state_code="TX",
        state_name="Texas",
        wage_statement_frequency="semimonthly",
        disclaimers=("This pay stub complies with Texas Payday Law",),
    ),
    StateRule(
        state_code="FL",
        state_name="Florida",
        wage_statement_frequency="biweekly",
        recommendations=(
            "Florida has no state wage statement statute; federal requirements apply",
        ),
    ),
)


def default_registry() -> StateRuleRegistry:
    """Build a registry loaded with the built-in state rules."""
    registry = StateRuleRegistry()
    for rule in STATE_RULES:
        registry.register(rule)
    return registry
