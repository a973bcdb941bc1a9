"""
FastAPI application factory.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from landman.api.errors import register_error_handlers
from landman.api.router import api_router
from landman.config import Settings, settings
from landman.models.database import Database
from landman.observability.logging import setup_logging_from_settings
from landman.worker.jobs import JobQueue

logger = structlog.get_logger(__name__)


def _init_sentry(settings: Settings) -> None:
    if not settings.SENTRY_DSN:
        return
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        integrations=[FastApiIntegration()],
        traces_sample_rate=0.1,
    )


def create_app(
    settings: Settings = settings,
    db: Optional[Database] = None,
    jobs: Optional[JobQueue] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.
    `db` and `jobs` may be injected (tests); otherwise they are built from
    settings at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging_from_settings(settings)
        _init_sentry(settings)

        app.state.db = db or Database.from_settings(settings)
        app.state.jobs = jobs or JobQueue.from_settings(settings)
        logger.info("app_started", version=settings.APP_VERSION)

        yield

        if db is None:
            await app.state.db.close()

    app = FastAPI(
        title="Landman Title Search",
        description="Queued county-portal title searches with AI document review.",
        version=settings.APP_VERSION,
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS.split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Prometheus metrics endpoint
    if settings.PROMETHEUS_ENABLED:
        from prometheus_client import make_asgi_app
        app.mount("/metrics", make_asgi_app())

    register_error_handlers(app)
    app.include_router(api_router)

    return app


# Application instance
app = create_app()
