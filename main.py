# ============================================================================
# CAREFLOW ENGINE - MAIN APPLICATION
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Core - FastAPI application entry point
# PURPOSE: Main application with the resumption scheduler
# CREATED: 14 SEP 2026
# ============================================================================
"""
Careflow Engine Main Application

FastAPI application that:
1. Accepts business events, patient replies and tracking hits over HTTP
2. Runs the resumption scheduler in the background
3. Manages database connections and outbound HTTP clients

Storage:
    STORAGE_BACKEND=postgres (default) uses the psycopg pool
    STORAGE_BACKEND=memory keeps everything in process (local runs)

Usage:
    uvicorn main:app --host 0.0.0.0 --port 8000
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from __version__ import __version__, BUILD_DATE, EPOCH
from fastapi.middleware.cors import CORSMiddleware

from core.config import get_defaults
from core.schema import PydanticToSQL
from repositories import (
    CommunicationRepository,
    DefinitionRepository,
    ExecutionLogRepository,
    InMemoryCommunicationStore,
    InMemoryDefinitionStore,
    InMemoryExecutionLogStore,
    InMemoryInstanceStore,
    InstanceRepository,
    close_pool,
    init_pool,
)
from infrastructure import (
    ClinicApiClient,
    ClinicAppointmentGateway,
    ClinicIdentityResolver,
    ClinicPatientGateway,
    ClinicSenderDirectory,
    ClinicTemplateStore,
    ResendMailer,
    TwilioTextSender,
)
from orchestrator import ActionDispatcher, ResumptionScheduler, WorkflowEngine
from orchestrator.engine import TemplateRenderer, missing_executors
from services import Collaborators, DefinitionLoader
from services.correlator import InputCorrelator
from services.dispatcher import EventDispatcher
from api.routes import router, health_router, set_services
from api.tracking_routes import router as tracking_router, set_services as set_tracking_services

# Configure logging using our structured logging system
from core.logging import configure_logging, get_logger

configure_logging(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    json_output=os.environ.get("LOG_FORMAT", "").lower() == "json",
)
logger = get_logger(__name__)

# Global instances
_scheduler: ResumptionScheduler = None


async def build_stores(backend: str):
    """Create (definitions, instances, logs, communications) for the backend."""
    if backend == "memory":
        logger.info("Using in-memory stores")
        return (
            InMemoryDefinitionStore(),
            InMemoryInstanceStore(),
            InMemoryExecutionLogStore(),
            InMemoryCommunicationStore(),
        )

    pool = await init_pool()
    logger.info("Database pool initialized")

    # Optional: Bootstrap schema on startup (for development)
    if os.environ.get("AUTO_BOOTSTRAP_SCHEMA", "").lower() == "true":
        logger.info("Auto-bootstrap enabled, deploying schema...")
        try:
            async with pool.connection() as conn:
                count = await PydanticToSQL().execute(conn)
            logger.info(f"Schema bootstrap completed ({count} statements)")
        except Exception as e:
            logger.warning(f"Schema bootstrap failed (may already exist): {e}")

    return (
        DefinitionRepository(pool),
        InstanceRepository(pool),
        ExecutionLogRepository(pool),
        CommunicationRepository(pool),
    )


def build_collaborators(defaults, api: ClinicApiClient) -> Collaborators:
    """HTTP implementations of every collaborator interface."""
    identities = ClinicIdentityResolver(api)
    return Collaborators(
        mailer=ResendMailer(defaults.channels, identity_resolver=identities),
        sms_sender=TwilioTextSender("sms", defaults.channels),
        whatsapp_sender=TwilioTextSender("whatsapp", defaults.channels),
        identity_resolver=identities,
        templates=ClinicTemplateStore(api),
        appointments=ClinicAppointmentGateway(api),
        patients=ClinicPatientGateway(api),
        senders=ClinicSenderDirectory(api),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Initializes services on startup, cleans up on shutdown.
    """
    global _scheduler

    logger.info(f"Starting Careflow Engine v{__version__} (Epoch {EPOCH}, Build {BUILD_DATE})")

    missing = missing_executors()
    if missing:
        raise RuntimeError(f"No executor registered for: {[k.value for k in missing]}")

    defaults = get_defaults()
    backend = os.environ.get("STORAGE_BACKEND", "postgres").lower()
    definitions, instances, logs, communications = await build_stores(backend)

    # Seed definitions from files (local/dev)
    seeded = await DefinitionLoader().seed(definitions)
    if seeded:
        logger.info(f"Seeded {seeded} workflow definitions")

    api = ClinicApiClient(defaults.channels)
    collaborators = build_collaborators(defaults, api)

    actions = ActionDispatcher(
        collaborators,
        logs,
        communications,
        renderer=TemplateRenderer(strict=defaults.engine.strict_templates),
        channel_defaults=defaults.channels,
        tracking_defaults=defaults.tracking,
    )
    engine = WorkflowEngine(
        definitions,
        instances,
        logs,
        actions,
        collaborators.appointments,
        collaborators.patients,
        defaults=defaults.engine,
    )
    dispatcher = EventDispatcher(engine, definitions, defaults.engine)
    correlator = InputCorrelator(engine, dispatcher, definitions, instances)
    _scheduler = ResumptionScheduler(
        engine, definitions, instances, collaborators.appointments, defaults.engine
    )

    # Set services for API routes
    set_services(
        dispatcher=dispatcher,
        correlator=correlator,
        instances=instances,
        logs=logs,
        communications=communications,
        scheduler=_scheduler,
    )
    set_tracking_services(correlator, defaults.tracking)

    # Start scheduler
    if os.environ.get("SCHEDULER_ENABLED", "true").lower() == "true":
        await _scheduler.start()
        logger.info("Scheduler started")
    else:
        logger.info("Scheduler disabled (SCHEDULER_ENABLED=false)")

    yield

    # Shutdown
    logger.info("Shutting down Careflow Engine...")

    await _scheduler.stop()
    await collaborators.mailer.close()
    await collaborators.sms_sender.close()
    await collaborators.whatsapp_sender.close()
    await api.close()
    if backend != "memory":
        await close_pool()

    logger.info("Careflow Engine stopped")


# Create FastAPI app
app = FastAPI(
    title="Careflow Engine",
    description=f"Epoch {EPOCH} patient workflow automation",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include health check routes (no prefix - /health)
app.include_router(health_router)

# Include API routes
app.include_router(router, prefix="/api/v1")

# Include tracking routes (open pixel, click redirect)
app.include_router(tracking_router, prefix="/api/v1")


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Careflow Engine",
        "version": __version__,
        "epoch": EPOCH,
        "build_date": BUILD_DATE,
        "status": "running",
        "docs": "/docs",
    }


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "8000"))

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=os.environ.get("RELOAD", "false").lower() == "true",
    )
