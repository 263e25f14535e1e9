"""
SLA Engine - Main Application
==============================

Service-level agreement tracking for legal service requests.

Modules:
- SLA Tracking: Policy catalog, deadline calculation, status evaluation,
  periodic sweep with Slack alerts and a daily report

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services, sweeper and DTOs
- Domain: Entities, value objects and the calculator
- Infrastructure: Database, Slack, scheduler, config watcher
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Configuration and Core
from sla_engine.config import settings
from sla_engine.core import ApplicationException

# Infrastructure
from sla_engine.infrastructure.database import (
    close_database,
    create_tables,
    get_session_maker,
    init_database,
)

# SLA Module
from sla_engine.sla.application import SLASweeper
from sla_engine.sla.infrastructure import (
    SettingsRecipientProvider,
    SLAScheduler,
    SlackNotifier,
    SweepConfigManager,
    build_request_stores,
)
from sla_engine.sla.interfaces import sla_router

# Shared
from sla_engine.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
)
from sla_engine.shared.infrastructure.logging import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Load sweep configuration and watch it for changes
    4. Build the sweeper over every request kind
    5. Start the scheduler (sweep interval + daily report)

    SHUTDOWN:
    1. Stop scheduler
    2. Stop config watcher
    3. Close Slack client
    4. Close database connections
    """
    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting SLA Engine", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    init_database()
    # Development convenience; production schemas come from migrations
    try:
        await create_tables()
    except Exception as e:
        logger.warning("Database not available - running in degraded mode", extra={"error": str(e)})

    config_manager = SweepConfigManager()
    config_manager.load(settings.sla_config_path)
    config_manager.start_watching()

    notifier = SlackNotifier()
    sweeper = SLASweeper(
        stores=build_request_stores(get_session_maker()),
        notifier=notifier,
        config_provider=config_manager,
        recipient_provider=SettingsRecipientProvider(),
        max_concurrency=settings.sla_sweep_max_concurrency,
        timeout_seconds=settings.sla_sweep_timeout_seconds,
    )

    scheduler = None
    if settings.sla_scheduler_enabled:
        scheduler = SLAScheduler(
            interval_seconds=settings.sla_sweep_interval_seconds,
            report_hour=settings.sla_daily_report_hour,
            report_minute=settings.sla_daily_report_minute,
        )
        await scheduler.start(sweeper.run_scheduled_sweep, sweeper.run_daily_report)

    app.state.settings = settings
    app.state.sla_config_manager = config_manager
    app.state.sla_sweeper = sweeper
    app.state.sla_scheduler = scheduler

    logger.info("SLA Engine started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down SLA Engine")

    if scheduler:
        await scheduler.stop()
    config_manager.stop_watching()
    await notifier.close()
    await close_database()

    logger.info("SLA Engine shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="SLA Engine API",
    description="""
    ## SLA Tracking for Legal Service Requests

    Response, resolution and escalation deadlines for consultations, legal
    opinions, services, litigation cases and calls.

    **Policies:** `/sla/policies` - per (request type, priority) budgets, with
    fallback to the request type's default budget.

    **Tracking:** `/sla/deadlines`, `/sla/status`, `/sla/breaches`,
    `/sla/urgency/sort`.

    **Sweeps:** a background job re-evaluates every active request, persists
    status changes and alerts on breaches and at-risk requests. `POST /sla/sweeps`
    runs one immediately; `GET /sla/reports/daily` summarises the previous day.
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# === CORS Middleware ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# === Custom Middleware (from shared) ===
app.add_middleware(LoggingMiddleware)
app.add_middleware(CorrelationIDMiddleware)
app.add_exception_handler(ApplicationException, application_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# === Include Module Routers ===
app.include_router(sla_router)


# === Health Check Endpoint ===

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
                        "sla_scheduler": "running",
                        "sla_sweep": "idle"
                    }
                }
            }
        }
    }
})
async def health_check(request: Request):
    """Health check endpoint for load balancers and orchestrators."""
    state = request.app.state
    scheduler = getattr(state, "sla_scheduler", None)
    sweeper = getattr(state, "sla_sweeper", None)

    checks = {
        "sla_config": "loaded" if getattr(state, "sla_config_manager", None) else "not_loaded",
        "sla_scheduler": "running" if scheduler and scheduler.is_running else "stopped",
        "sla_sweep": "running" if sweeper and sweeper.is_running else "idle",
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
        "modules": {
            "sla": {
                "prefix": "/sla",
                "endpoints": [
                    "POST /sla/policies - Create policy",
                    "GET /sla/policies/match - Resolve governing policy",
                    "POST /sla/deadlines - Calculate deadlines",
                    "POST /sla/status - Request SLA status",
                    "POST /sla/sweeps - Run sweep now",
                    "GET /sla/reports/daily - Daily report"
                ]
            }
        }
    }


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "sla_engine.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
