"""Service status endpoints.

/health reports the database together with the compliance rule set and the
delivery providers this deployment was built with.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request, Response, status
from pydantic import BaseModel
from sqlalchemy import text

from paystub_engine.api.dependencies import DbSession

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class DeliveryProviders(BaseModel):
    renderer: str
    email: str


class ServiceStatusResponse(BaseModel):
    """Database reachability plus the active compliance and delivery setup."""

    status: str
    checked_at: datetime
    database: str
    compliance_version: str
    state_rule_count: int
    providers: DeliveryProviders


async def _database_reachable(db: DbSession) -> bool:
    try:
        await db.execute(text("SELECT 1"))
    except Exception:
        logger.warning("Pay stub database is unreachable", exc_info=True)
        return False
    return True


@router.get("/health", response_model=ServiceStatusResponse)
async def service_status(request: Request, db: DbSession) -> ServiceStatusResponse:
    """Report database, compliance rule set and delivery providers."""
    reachable = await _database_reachable(db)
    compliance = request.app.state.compliance
    delivery = request.app.state.delivery
    return ServiceStatusResponse(
        status="healthy" if reachable else "degraded",
        checked_at=datetime.now(timezone.utc),
        database="healthy" if reachable else "unreachable",
        compliance_version=compliance.compliance_version,
        state_rule_count=len(compliance.registry.codes()),
        providers=DeliveryProviders(
            renderer=delivery.renderer.provider_name,
            email=delivery.email_sender.provider_name,
        ),
    )


@router.get("/ready")
async def readiness(db: DbSession, response: Response) -> dict[str, str]:
    """Ready once pay stubs can be read and written."""
    if not await _database_reachable(db):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "unavailable"}
    return {"status": "ready"}


@router.get("/live")
async def liveness() -> dict[str, str]:
    return {"status": "alive"}
