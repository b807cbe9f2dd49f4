from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from jobcore.config.logging import get_logger, setup_logging
from jobcore.config.settings import Settings, settings as default_settings
from jobcore.v1.core.exceptions import (
    JobCoreException,
    RequestContextMiddleware,
    general_exception_handler,
    http_exception_handler,
    jobcore_exception_handler,
)
from jobcore.v1.core.registries import webhook_handler_registry
from jobcore.v1.cron.routes import router as cron_router
from jobcore.v1.healthz import router as health_router
from jobcore.v1.jobs.routes import router as jobs_router
from jobcore.v1.orchestrators.context import JobContext, build_context
from jobcore.v1.webhooks.registry_init import register_webhook_handlers
from jobcore.v1.webhooks.routes import router as webhooks_router

logger = get_logger(__name__)


def create_app(
    context: JobContext | None = None, settings: Settings | None = None
) -> FastAPI:
    """Create and configure the FastAPI application.

    Without ``context`` the production collaborators are built from
    ``settings`` and closed when the application shuts down.
    """
    settings = settings or (context.settings if context else default_settings)

    setup_logging()

    owns_context = context is None
    job_context = context or build_context(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if owns_context:
            await job_context.aclose()

    app = FastAPI(
        title=settings.app_name,
        description="Job processing and webhook delivery for the content pipeline",
        version=settings.version,
        debug=settings.debug,
        openapi_url="/v1/openapi.json" if settings.debug else None,
        docs_url="/v1/docs" if settings.debug else None,
        redoc_url="/v1/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.job_context = job_context

    app.add_middleware(RequestContextMiddleware)

    if settings.debug:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_exception_handler(JobCoreException, jobcore_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(health_router, prefix="/v1", tags=["health"])
    app.include_router(cron_router, prefix="/v1")
    app.include_router(webhooks_router, prefix="/v1")
    app.include_router(jobs_router, prefix="/v1")

    if not webhook_handler_registry.is_frozen():
        register_webhook_handlers()
    # Freeze registries in non-development environments to prevent runtime modifications
    if settings.environment != "development":
        webhook_handler_registry.freeze()

    logger.info(
        "Application created",
        environment=settings.environment,
        store_backend=settings.store_backend.value,
    )
    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "jobcore.main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.debug,
        workers=1 if default_settings.debug else default_settings.workers,
    )
