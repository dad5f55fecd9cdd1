"""ORM models."""

from paystub_engine.models.base import Base, TimestampMixin
from paystub_engine.models.company import Company, Employee, PayrollPeriod
from paystub_engine.models.pay_stub import PayStub, PayStubAccessLog

__all__ = [
    "Base",
    "TimestampMixin",
    "Company",
    "Employee",
    "PayrollPeriod",
    "PayStub",
    "PayStubAccessLog",
]
