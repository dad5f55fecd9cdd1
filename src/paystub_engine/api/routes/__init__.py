"""API routes."""

from paystub_engine.api.routes.compliance import router as compliance_router
from paystub_engine.api.routes.health import router as health_router
from paystub_engine.api.routes.pay_stubs import router as pay_stubs_router

__all__ = ["compliance_router", "health_router", "pay_stubs_router"]
