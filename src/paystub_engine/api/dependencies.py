"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from paystub_engine.database import init_db
from paystub_engine.services.generation import PayStubGenerationPipeline
from paystub_engine.services.query_service import PayStubQueryService
from paystub_engine.types import AccessContext


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    _, session_factory = init_db()
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_company_id(
    x_company_id: Annotated[str | None, Header()] = None
) -> UUID:
    """Extract company ID from header."""
    if not x_company_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Company-ID header is required",
        )
    try:
        return UUID(x_company_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-Company-ID format",
        )


async def get_access_context(
    request: Request,
    x_user_id: Annotated[str | None, Header()] = None,
    user_agent: Annotated[str | None, Header()] = None,
) -> AccessContext:
    """Actor identity and client metadata for the access ledger."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-User-ID header is required",
        )
    return AccessContext(
        accessed_by=x_user_id,
        ip_address=request.client.host if request.client else None,
        user_agent=user_agent,
    )


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
CompanyId = Annotated[UUID, Depends(get_company_id)]
Actor = Annotated[AccessContext, Depends(get_access_context)]


def get_pipeline(request: Request, db: DbSession) -> PayStubGenerationPipeline:
    """Generation pipeline wired to the providers configured on the app."""
    state = request.app.state
    return PayStubGenerationPipeline(
        db,
        calculations=state.calculations,
        delivery=state.delivery,
        compliance=state.compliance,
    )


Pipeline = Annotated[PayStubGenerationPipeline, Depends(get_pipeline)]


def get_query_service(db: DbSession, pipeline: Pipeline) -> PayStubQueryService:
    return PayStubQueryService(db, pipeline)


QueryService = Annotated[PayStubQueryService, Depends(get_query_service)]
