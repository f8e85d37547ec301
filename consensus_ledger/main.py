"""Consensus Ledger: Main FastAPI Application.

A decision and voting engine: proposals are opened for a fixed set of
voters, votes are tallied against a success policy, and decisions close
once everyone has voted or the deadline passes.
"""

import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from .api import api_router
from .core import (
    Clock,
    Settings,
    close_db,
    create_engine,
    create_session_factory,
    get_settings,
    init_db,
    utc_now,
)
from .schemas import ErrorResponse
from .services import LoggingNotifier, ReminderNotifier, WebhookNotifier
from .store import EntityStore, MemoryEntityStore, SqlEntityStore

logger = logging.getLogger(__name__)


def build_notifier(settings: Settings) -> ReminderNotifier:
    """Webhook delivery when configured, otherwise log-only."""
    if settings.reminder_webhook_enabled:
        return WebhookNotifier(
            settings.reminder_webhook_url,
            timeout_seconds=settings.reminder_timeout_seconds,
        )
    return LoggingNotifier()


def create_app(
    store: EntityStore | None = None,
    notifier: ReminderNotifier | None = None,
    settings: Settings | None = None,
    clock: Clock = utc_now,
) -> FastAPI:
    """Build the application; a store passed in is used as-is and never closed."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan: startup and shutdown."""
        engine = None
        if app.state.store is None:
            if settings.storage_backend == "memory":
                logger.info("Using in-memory entity store")
                app.state.store = MemoryEntityStore(clock=clock)
            else:
                engine = create_engine(settings)
                # Skip create_all in production (tables already exist)
                if settings.environment != "production":
                    await init_db(engine)
                app.state.store = SqlEntityStore(create_session_factory(engine), clock=clock)
        yield
        if engine is not None:
            await close_db(engine)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="""
        ## Consensus Ledger API

        Structured team decisions with enforced voting rules.

        - **Policies**: simple majority, super majority (66% of required voters), unanimous
        - **One vote per voter**: re-voting replaces the earlier choice
        - **Deadlines**: decisions expire the day after their deadline
        """,
        openapi_url=f"{settings.api_prefix}/openapi.json",
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=f"{settings.api_prefix}/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.clock = clock
    app.state.store = store
    app.state.notifier = notifier or build_notifier(settings)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.error(f"Unhandled exception on {request.url.path}: {exc}\n{traceback.format_exc()}")
        message = "An unexpected error occurred"
        if settings.debug or settings.environment != "production":
            message = f"{message}: {str(exc)[:200]}"
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(
                error="internal_error",
                message=message,
                details=[],
            ).model_dump(),
        )

    @app.get("/health", tags=["health"])
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "version": settings.app_version}

    app.include_router(api_router, prefix=settings.api_prefix)
    return app


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    uvicorn.run(
        "consensus_ledger.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        reload=get_settings().debug,
    )
