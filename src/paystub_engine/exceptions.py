"""Exceptions raised by the pay stub engine.

Batch-shaped operations (generation, batch lifecycle operations) never raise
these for a single failing item; they capture the error code and message on
the per-item result instead. Single-item lookups raise them directly.
"""

from __future__ import annotations

from typing import Any


class PayStubError(Exception):
    """Base exception for pay stub operations."""

    code = "PAY_STUB_ERROR"

    def __init__(self, message: str, code: str | None = None):
        self.message = message
        if code is not None:
            self.code = code
        super().__init__(message)


class PayStubValidationError(PayStubError):
    """A required field is missing or malformed at generation time."""

    code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        field: str | None = None,
        code: str | None = None,
    ):
        self.field = field
        super().__init__(message, code)


class PayStubNotFoundError(PayStubError):
    """Lookup of a pay stub (or a record it depends on) that does not exist."""

    code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: Any):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} {identifier} not found")


class PayStubAlreadyGeneratedError(PayStubError):
    """The employee already has a stub for the payroll period.

    Generation never replaces an existing stub; regenerate does.
    """

    code = "ALREADY_GENERATED"

    def __init__(self, pay_stub_id: Any, employee_id: Any, payroll_period_id: Any):
        self.pay_stub_id = pay_stub_id
        super().__init__(
            f"Employee {employee_id} already has pay stub {pay_stub_id} "
            f"for payroll period {payroll_period_id}"
        )


class ComplianceInputError(PayStubError):
    """The record is structurally unable to be compliance checked."""

    code = "INVALID_COMPLIANCE_INPUT"


class ExternalServiceError(PayStubError):
    """A rendering or delivery call failed or timed out."""

    code = "EXTERNAL_SERVICE_ERROR"

    def __init__(self, service: str, message: str, code: str | None = None):
        self.service = service
        super().__init__(f"{service}: {message}", code)


class AccessLogError(PayStubError):
    """Writing an access ledger entry failed.

    Never surfaced to the caller of the triggering action.
    """

    code = "ACCESS_LOG_ERROR"
