"""External collaborator protocols and sandbox implementations."""

from paystub_engine.providers.base import (
    DeliveryResult,
    EmailMessage,
    EmailSender,
    PayrollCalculationSource,
    PdfRenderer,
)
from paystub_engine.providers.sandbox import (
    InMemoryCalculationSource,
    SandboxEmailSender,
    SandboxPdfRenderer,
)

__all__ = [
    "DeliveryResult",
    "EmailMessage",
    "EmailSender",
    "PayrollCalculationSource",
    "PdfRenderer",
    "InMemoryCalculationSource",
    "SandboxEmailSender",
    "SandboxPdfRenderer",
]
