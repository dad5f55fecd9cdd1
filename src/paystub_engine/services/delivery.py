"""Bounded, time-limited calls to the rendering and email providers."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, TypeVar

from paystub_engine.exceptions import ExternalServiceError
from paystub_engine.providers.base import DeliveryResult, EmailMessage, EmailSender, PdfRenderer
from paystub_engine.types import PayStubArtifact, PayStubRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")


def artifact_filename(record: PayStubRecord) -> str:
    return f"pay-stub-{record.id}.pdf"


class StubDelivery:
    """Wraps a PdfRenderer and EmailSender with a shared concurrency limit.

    Every provider call is bounded by the semaphore and by a per-call
    timeout. Failures, including timeouts, surface as ExternalServiceError so
    callers can route them into their per-item error path.
    """

    def __init__(
        self,
        renderer: PdfRenderer,
        email_sender: EmailSender,
        max_concurrency: int = 8,
        timeout_seconds: float = 30.0,
    ):
        self.renderer = renderer
        self.email_sender = email_sender
        self.timeout_seconds = timeout_seconds
        self._semaphore = asyncio.Semaphore(max_concurrency)

    async def _call(self, service: str, call: Awaitable[T]) -> T:
        async with self._semaphore:
            try:
                return await asyncio.wait_for(call, timeout=self.timeout_seconds)
            except asyncio.TimeoutError as e:
                raise ExternalServiceError(
                    service,
                    f"timed out after {self.timeout_seconds}s",
                    code="TIMEOUT",
                ) from e
            except ExternalServiceError:
                raise
            except Exception as e:
                raise ExternalServiceError(service, str(e) or type(e).__name__) from e

    async def render(self, record: PayStubRecord, disclaimers: list[str]) -> bytes:
        """Render one stub, raising ExternalServiceError on failure."""
        try:
            content = await self._call(
                self.renderer.provider_name,
                self.renderer.render(record, disclaimers),
            )
        except ExternalServiceError as e:
            if e.code == ExternalServiceError.code:
                e.code = "PDF_RENDER_FAILED"
            raise
        if not content:
            raise ExternalServiceError(
                self.renderer.provider_name,
                "renderer returned an empty document",
                code="PDF_RENDER_FAILED",
            )
        return content

    async def email(
        self,
        record: PayStubRecord,
        content: bytes,
        recipient: str | None = None,
    ) -> DeliveryResult:
        """Email the rendered stub to the employee or to recipient."""
        to = recipient or record.employee_email
        if not to:
            raise ExternalServiceError(
                self.email_sender.provider_name,
                f"employee {record.employee_id} has no email address",
                code="MISSING_EMAIL",
            )

        message = EmailMessage(
            to=to,
            subject=f"Your pay stub for {record.pay_date:%B %d, %Y}",
            body=(
                f"Hello {record.employee_first_name},\n\n"
                f"Your pay stub {record.stub_number} for the period "
                f"{record.pay_period_start} to {record.pay_period_end} is attached."
            ),
            attachments=[PayStubArtifact(filename=artifact_filename(record), content=content)],
        )

        try:
            result = await self._call(
                self.email_sender.provider_name,
                self.email_sender.send(message),
            )
        except ExternalServiceError as e:
            if e.code == ExternalServiceError.code:
                e.code = "EMAIL_DELIVERY_FAILED"
            raise
        if not result.accepted:
            raise ExternalServiceError(
                self.email_sender.provider_name,
                result.message or "message rejected",
                code="EMAIL_DELIVERY_FAILED",
            )
        logger.debug("Emailed pay stub %s as %s", record.id, result.message_id)
        return result
