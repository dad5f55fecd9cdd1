"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from paystub_engine.api.routes import compliance_router, health_router, pay_stubs_router
from paystub_engine.compliance import ComplianceRuleEngine
from paystub_engine.config import Settings, get_settings
from paystub_engine.database import dispose_db, init_db
from paystub_engine.exceptions import (
    ComplianceInputError,
    ExternalServiceError,
    PayStubError,
    PayStubNotFoundError,
    PayStubValidationError,
)
from paystub_engine.providers import (
    EmailSender,
    InMemoryCalculationSource,
    PayrollCalculationSource,
    PdfRenderer,
    SandboxEmailSender,
    SandboxPdfRenderer,
)
from paystub_engine.services.delivery import StubDelivery
from paystub_engine.services.state_machine import InvalidTransitionError


def _error(status_code: int, exc: PayStubError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "code": exc.code},
    )


def create_app(
    settings: Settings | None = None,
    calculations: PayrollCalculationSource | None = None,
    renderer: PdfRenderer | None = None,
    email_sender: EmailSender | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Providers default to the sandbox implementations; pass real adapters to
    render and deliver documents.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler."""
        init_db(settings.database_url)
        yield
        await dispose_db()

    app = FastAPI(
        title="Pay Stub Engine API",
        description="Wage statement generation and compliance checks",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.calculations = calculations or InMemoryCalculationSource()
    app.state.compliance = ComplianceRuleEngine(compliance_version=settings.compliance_version)
    app.state.delivery = StubDelivery(
        renderer or SandboxPdfRenderer(),
        email_sender or SandboxEmailSender(),
        max_concurrency=settings.max_concurrency,
        timeout_seconds=settings.external_call_timeout_seconds,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(PayStubNotFoundError)
    async def not_found_handler(request: Request, exc: PayStubNotFoundError) -> JSONResponse:
        return _error(status.HTTP_404_NOT_FOUND, exc)

    @app.exception_handler(PayStubValidationError)
    async def validation_handler(request: Request, exc: PayStubValidationError) -> JSONResponse:
        return _error(422, exc)

    @app.exception_handler(ComplianceInputError)
    async def compliance_input_handler(request: Request, exc: ComplianceInputError) -> JSONResponse:
        return _error(422, exc)

    @app.exception_handler(ExternalServiceError)
    async def external_service_handler(request: Request, exc: ExternalServiceError) -> JSONResponse:
        return _error(status.HTTP_502_BAD_GATEWAY, exc)

    @app.exception_handler(InvalidTransitionError)
    async def transition_handler(request: Request, exc: InvalidTransitionError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"detail": str(exc), "code": "INVALID_TRANSITION"},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(pay_stubs_router, prefix="/api/v1")
    app.include_router(compliance_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
