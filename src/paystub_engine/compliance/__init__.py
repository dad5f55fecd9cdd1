"""Wage statement compliance checks."""

from paystub_engine.compliance.engine import ComplianceRuleEngine
from paystub_engine.compliance.rules import StateRule, StateRuleRegistry, default_registry

__all__ = [
    "ComplianceRuleEngine",
    "StateRule",
    "StateRuleRegistry",
    "default_registry",
]
