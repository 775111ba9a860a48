"""
Governance API Application Factory
"""

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import get_config
from ..exceptions import (
    Conflict, Forbidden, GovernanceError, GuardFailed, IntegrityViolation,
    NotFound, ValidationError,
)
from ..logging_config import get_logger, setup_logging
from .audit import router as audit_router
from .definitions import router as definitions_router
from .definitions import templates_router
from .dependencies import get_service
from .instances import router as instances_router
from .routing import router as routing_router


logger = get_logger("governance.api")

# Most specific first; FieldNotEditableInState is a ValidationError
STATUS_CODES = [
    (ValidationError, 422),
    (NotFound, 404),
    (Forbidden, 403),
    (GuardFailed, 422),
    (Conflict, 409),
    (IntegrityViolation, 500),
]


def status_code_for(error: GovernanceError) -> int:
    for error_type, status_code in STATUS_CODES:
        if isinstance(error, error_type):
            return status_code
    return 400


async def governance_error_handler(request: Request, exc: GovernanceError) -> JSONResponse:
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.critical(exc.message, extra={'resource': str(request.url.path)})
    return JSONResponse(status_code=status_code, content={"detail": exc.to_dict()})


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_config()
    if settings.scheduler_enabled:
        get_service().start_scheduler()
    yield
    if settings.scheduler_enabled:
        get_service().scheduler.stop()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Governance Workflow Engine API",
        description="Governance workflows with voting, SLA monitoring and a hash-chained audit log",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(GovernanceError, governance_error_handler)

    app.include_router(definitions_router, prefix="/definitions", tags=["Definitions"])
    app.include_router(templates_router, prefix="/templates", tags=["Templates"])
    app.include_router(instances_router, prefix="/instances", tags=["Instances"])
    app.include_router(routing_router, prefix="/routing", tags=["Routing"])
    app.include_router(audit_router, prefix="/audit", tags=["Audit"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "governance_engine_api",
            "version": __version__
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Governance Workflow Engine API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "definitions": "/definitions",
                "templates": "/templates",
                "instances": "/instances",
                "routing": "/routing",
                "audit": "/audit",
            }
        }

    return app


def run_server(host: str = None, port: int = None, debug: bool = False):
    """Run the FastAPI server"""
    settings = get_config()
    setup_logging(settings.log_level, log_format=settings.log_format)
    uvicorn.run(
        "governance_engine.api:create_app",
        factory=True,
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=debug,
        workers=settings.api_workers,
        log_level=settings.log_level.lower()
    )
