"""
Helpdesk SLA - Main Application
=================================

Service Level Agreement tracking for a multi-tenant helpdesk.

Modules:
- SLA: policy resolution, due dates, the per-ticket SLA clock and the
  background reconciliation sweep

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services, events and DTOs
- Domain: Entities, value objects, calendar and deadline arithmetic
- Infrastructure: Database, config watcher, scheduler
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Configuration and Core
from helpdesk.config import Settings, get_settings
from helpdesk.core import ApplicationException

# Infrastructure
from helpdesk.infrastructure.database import (
    init_database, close_database, create_tables, get_session_maker
)

# SLA Module
from helpdesk.sla.application import ReconciliationService, SLAClockService, TicketLockRegistry
from helpdesk.sla.infrastructure import (
    ReconciliationScheduler, SLAConfigManager, SQLAlchemyUnitOfWork
)
from helpdesk.sla.interfaces import sla_router

# Shared
from helpdesk.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
)
from helpdesk.shared.infrastructure.logging import setup_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Load SLA configuration and start watching it
    4. Build the SLA services
    5. Start the reconciliation scheduler

    SHUTDOWN:
    1. Stop the reconciliation scheduler
    2. Stop the config watcher
    3. Close database connections
    """
    settings: Settings = app.state.settings

    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting Helpdesk SLA service", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    logger.info("Initializing database")
    init_database(settings.database_url)
    # Development convenience; production schemas are migrated separately
    await create_tables()

    logger.info("Loading SLA configuration")
    config_manager = SLAConfigManager()
    config = config_manager.load(settings.sla_config_path)
    if settings.sla_config_watch:
        config_manager.start_watching()

    session_maker = get_session_maker()

    def uow_factory() -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_maker)

    clock_service = SLAClockService(uow_factory, config_manager, TicketLockRegistry())
    reconciliation_service = ReconciliationService(uow_factory, clock_service)

    app.state.config_manager = config_manager
    app.state.clock_service = clock_service
    app.state.reconciliation_service = reconciliation_service

    # Settings override the file when set explicitly in the environment
    interval = settings.reconciliation_interval
    batch_size = settings.reconciliation_batch_size
    if "reconciliation_interval" not in settings.model_fields_set:
        interval = config.reconciliation.interval_seconds
    if "reconciliation_batch_size" not in settings.model_fields_set:
        batch_size = config.reconciliation.batch_size

    scheduler: Optional[ReconciliationScheduler] = None
    if interval > 0:
        async def reconciliation_job() -> None:
            """Background reconciliation tick."""
            await reconciliation_service.run_once(batch_size)

        scheduler = ReconciliationScheduler(interval_seconds=interval)
        await scheduler.start(reconciliation_job)
    else:
        logger.info("Reconciliation scheduler disabled")
    app.state.scheduler = scheduler

    logger.info("Helpdesk SLA service started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Helpdesk SLA service")

    if scheduler:
        await scheduler.stop()

    config_manager.stop_watching()

    await close_database()

    logger.info("Helpdesk SLA service shutdown complete")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="Helpdesk SLA API",
        description="""
        ## Service Level Agreement tracking for helpdesk tickets

        - Assigns SLA policies to tickets by organization and priority
        - Computes first-response, next-response and resolution due dates,
          in business hours or calendar time
        - Pauses and resumes the SLA clock
        - Reports SLA status (`active`, `warning`, `critical`, `breached`,
          `paused`, `completed`, `inactive`)
        - Repairs drifted SLA state in a periodic background sweep
        """,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.settings = settings

    # === CORS Middleware ===
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Added last so it runs first and the id is set for logging
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(CorrelationIDMiddleware)

    app.add_exception_handler(ApplicationException, application_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    # === Include Module Routers ===
    app.include_router(sla_router)

    @app.get("/health", tags=["Health"], responses={
        200: {
            "description": "Service is healthy",
            "content": {
                "application/json": {
                    "example": {
                        "status": "healthy",
                        "version": "1.0.0",
                        "environment": "development",
                        "checks": {
                            "sla_config": "loaded",
                            "reconciliation_scheduler": "running"
                        }
                    }
                }
            }
        }
    })
    async def health_check(request: Request):
        """
        Health check endpoint for load balancers and orchestrators.

        Returns SLA configuration and scheduler state.
        """
        state = request.app.state
        scheduler = getattr(state, "scheduler", None)
        checks = {
            "sla_config": "loaded" if getattr(state, "clock_service", None) else "not_loaded",
            "reconciliation_scheduler": (
                "running" if scheduler and scheduler.is_running else "stopped"
            ),
        }
        return {
            "status": "healthy",
            "version": settings.app_version,
            "environment": settings.environment,
            "checks": checks
        }

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "service": settings.app_name,
            "version": settings.app_version,
            "architecture": "Clean Architecture / Modular Monolith",
            "docs": "/docs",
            "health": "/health",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "helpdesk.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
