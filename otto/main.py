"""
Otto - Main Application
=======================

On-call escalation engine driven by GitHub webhooks.

Modules:
- OnCall: rotations, acknowledgements and automatic escalation

Clean Architecture Layers:
- Interfaces: FastAPI controllers, module adapters
- Application: Services, dispatcher, sweeper
- Domain: Entities, status transitions, command tokenizer
- Infrastructure: Database, GitHub client, scheduler
"""

from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

# Configuration
from otto.config import settings

# Infrastructure
from otto.infrastructure.database import (
    close_database,
    create_tables,
    get_session_maker,
    init_database,
    ping_database,
)
from otto.infrastructure.github import GitHubClient

# Modules
from otto.modules import ModuleRegistry
from otto.oncall.application import EscalationSweeper, OnCallService
from otto.oncall.infrastructure import EscalationScheduler, OnCallConfigManager, OnCallRepository
from otto.oncall.interfaces import OnCallModule

# Webhook gateway
from otto.webhook.application import EventDispatcher
from otto.webhook.interfaces import router as webhook_router

# Logging and middleware
from otto.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    global_exception_handler,
)
from otto.shared.infrastructure.logging import get_logger, setup_logging

logger = get_logger(__name__)


def build_oncall_module(repository: OnCallRepository, github_client: GitHubClient) -> OnCallModule:
    """Wire the on-call service, sweeper and scheduler from settings."""
    config_manager = OnCallConfigManager()
    service = OnCallService(repository, github_client)

    sweeper = EscalationSweeper(
        repository,
        github_client,
        threshold=lambda: config_manager.config.threshold(settings.escalation_threshold_hours),
    )
    scheduler = None
    if settings.escalation_check_interval_seconds > 0:
        scheduler = EscalationScheduler(interval_seconds=settings.escalation_check_interval_seconds)
    else:
        logger.info("Escalation sweeper disabled")

    return OnCallModule(
        service,
        config_manager=config_manager,
        config_path=settings.oncall_config_path,
        sweeper=sweeper,
        scheduler=scheduler,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Create GitHub client
    4. Register and initialize modules
    5. Expose the dispatcher to the webhook route

    SHUTDOWN:
    1. Wait for in-flight module handlers
    2. Shut modules down (sweeper, config watcher)
    3. Close GitHub client and database
    """
    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting Otto", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    logger.info("Initializing database")
    init_database()

    # If the database is unreachable the server still starts and readiness reports DOWN
    try:
        await create_tables()
    except Exception as e:
        logger.warning("Database not available - running in degraded mode", extra={"error": str(e)})

    github_client = GitHubClient()
    repository = OnCallRepository(get_session_maker())

    registry = ModuleRegistry()
    registry.register(build_oncall_module(repository, github_client))
    await registry.initialize_all()

    dispatcher = EventDispatcher(registry)
    app.state.registry = registry
    app.state.dispatcher = dispatcher
    app.state.settings = settings

    logger.info("Otto started", extra={"modules": list(registry.list())})

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Otto")

    await dispatcher.drain(timeout=settings.dispatch_drain_timeout_seconds)
    await registry.shutdown_all()
    await github_client.close()
    await close_database()

    logger.info("Otto shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Otto",
    description="""
    ## On-call escalation engine for GitHub

    Receives signed GitHub webhooks and tracks who is on call, who
    acknowledged an incident and which incidents need escalation.

    ### Commands (issue and PR comments)
    - `/ack`, `/escalate`, `/resolve`
    - `/oncall add user <handle> <display name>`
    - `/oncall add rotation <name>`
    - `/oncall assign <handle> to <rotation name>`

    Pending escalations not acknowledged within the threshold
    (default 24h) are escalated automatically.
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Last added runs first: correlation id must be set before request logging
app.add_middleware(LoggingMiddleware)
app.add_middleware(CorrelationIDMiddleware)
app.add_exception_handler(Exception, global_exception_handler)

app.include_router(webhook_router)


# === Health Check Endpoints ===

@app.get("/check/liveness", tags=["Health"])
async def liveness():
    """The process is up and serving requests."""
    return {"status": "UP"}


@app.get("/check/readiness", tags=["Health"], responses={
    503: {
        "description": "Database unreachable",
        "content": {
            "application/json": {
                "example": {"status": "DOWN", "details": "Database connection failed"}
            }
        }
    }
})
async def readiness():
    """Ready when the database answers a trivial query in time."""
    if await ping_database(timeout=settings.readiness_timeout_seconds):
        return {"status": "UP"}
    return JSONResponse(
        status_code=503,
        content={"status": "DOWN", "details": "Database connection failed"}
    )


@app.get("/", tags=["Root"])
async def root(request: Request):
    """Root endpoint with API information."""
    registry = getattr(request.app.state, "registry", None)
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
        "webhook": "/webhook",
        "health": {
            "liveness": "/check/liveness",
            "readiness": "/check/readiness"
        },
        "modules": sorted(registry.list()) if registry else [],
        "escalation_threshold": str(timedelta(hours=settings.escalation_threshold_hours)),
    }


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "otto.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower()
    )
