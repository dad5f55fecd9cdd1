"""Append-only access ledger for pay stubs."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from paystub_engine.exceptions import AccessLogError
from paystub_engine.services.repository import PayStubRepository
from paystub_engine.types import AccessContext, AccessLogEntry, AccessType, DateRange

logger = logging.getLogger(__name__)

ACCESS_TYPES = frozenset(t.value for t in AccessType)


class PayStubAccessLedger:
    """Records who viewed, downloaded or emailed a pay stub.

    A failed write never fails the action that triggered it: the entry is
    written inside a savepoint, and any error is logged and counted, then
    dropped.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.repository = PayStubRepository(session)
        self.failed_writes = 0

    async def record(
        self,
        pay_stub_id: UUID,
        company_id: UUID,
        access_type: AccessType | str,
        context: AccessContext,
    ) -> AccessLogEntry | None:
        """Append one entry. Returns None if the write failed."""
        try:
            if access_type not in ACCESS_TYPES:
                raise AccessLogError(f"Unknown access type '{access_type}'")
            async with self.session.begin_nested():
                return await self.repository.append_log(
                    pay_stub_id=pay_stub_id,
                    company_id=company_id,
                    accessed_by=context.accessed_by,
                    access_type=AccessType(access_type).value,
                    ip_address=context.ip_address,
                    user_agent=context.user_agent,
                )
        except Exception:
            self.failed_writes += 1
            logger.exception(
                "Failed to record %s access to pay stub %s by %s",
                access_type,
                pay_stub_id,
                context.accessed_by,
            )
            return None

    async def entries(self, pay_stub_id: UUID, company_id: UUID) -> list[AccessLogEntry]:
        """All entries for a stub, oldest first."""
        return await self.repository.list_logs(pay_stub_id, company_id)

    async def count_by_type(
        self,
        company_id: UUID,
        date_range: DateRange | None = None,
    ) -> dict[str, int]:
        """Entry counts per access type, with zero for types never seen."""
        counts = await self.repository.count_logs_by_type(company_id, date_range)
        return {t.value: counts.get(t.value, 0) for t in AccessType}
