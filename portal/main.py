from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from portal.config.logging import get_logger, setup_logging
from portal.config.settings import Settings, get_settings
from portal.config.settings import settings as default_settings
from portal.infra.database import Database
from portal.v1.core.exceptions import (
    PortalException,
    RequestContextMiddleware,
    general_exception_handler,
    http_exception_handler,
    portal_exception_handler,
)
from portal.v1.core.rate_limit import RateLimiter
from portal.v1.core.registries import JobRegistry
from portal.v1.healthz import router as health_router
from portal.v1.infra.jobs.cron import router as cron_router
from portal.v1.infra.jobs.handlers import DevelopmentAgent
from portal.v1.infra.jobs.registry_init import register_job_handlers
from portal.v1.infra.jobs.routes import router as jobs_router
from portal.v1.infra.jobs.store import JobStore
from portal.v1.projects.routes import router as projects_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    app.state.rate_limiter.start(settings.rate_limit_cleanup_interval_s)
    logger.info("Application started", environment=settings.environment)
    try:
        yield
    finally:
        await app.state.rate_limiter.stop()
        await app.state.database.close()
        logger.info("Application stopped")


def create_app(
    settings: Settings | None = None,
    database: Database | None = None,
    rate_limiter: RateLimiter | None = None,
    agent: DevelopmentAgent | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    custom_settings = settings is not None
    settings = settings or default_settings

    # Initialize structured logging
    setup_logging(settings)

    # Create FastAPI app with API versioning from day 1
    app = FastAPI(
        title=settings.app_name,
        description="Durable job queue drained by a scheduled trigger",
        version=settings.version,
        debug=settings.debug,
        lifespan=lifespan,
        # All endpoints will be under /v1/ prefix
        openapi_url="/v1/openapi.json" if settings.debug else None,
        docs_url="/v1/docs" if settings.debug else None,
        redoc_url="/v1/redoc" if settings.debug else None,
    )

    # Handles shared by request handlers, owned by this app instance
    database = database or Database(settings)
    job_store = JobStore(database, settings)
    job_registry = JobRegistry()
    register_job_handlers(job_registry, job_store, settings, agent)

    app.state.settings = settings
    app.state.database = database
    app.state.job_store = job_store
    app.state.job_registry = job_registry
    app.state.rate_limiter = rate_limiter or RateLimiter()
    app.state.agent = agent

    if custom_settings:
        app.dependency_overrides[get_settings] = lambda: settings

    # Add middleware
    app.add_middleware(RequestContextMiddleware)

    # Add CORS middleware for development
    if settings.debug:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Add exception handlers
    app.add_exception_handler(PortalException, portal_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # Include routers with /v1 prefix
    app.include_router(health_router, prefix="/v1", tags=["health"])
    app.include_router(cron_router, prefix="/v1")
    app.include_router(jobs_router, prefix="/v1")
    app.include_router(projects_router, prefix="/v1")

    # Freeze registries in non-development environments to prevent runtime modifications
    if not settings.is_development:
        job_registry.freeze()

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "portal.main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.debug,
        workers=1 if default_settings.debug else default_settings.workers,
    )
