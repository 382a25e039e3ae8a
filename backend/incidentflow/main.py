"""
Incident Workflow Engine - FastAPI application

Composition root: the lifespan owns the engine (and its async action pool)
and the SLA monitor; routes reach them through `app.state`.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config.settings import settings
from .api.routes import api_router
from .api.middleware import CorrelationIdMiddleware, register_error_handlers
from .engine.engine import WorkflowEngine
from .repositories.mongo_client import create_indexes, close_connection, health_check
from .scheduler.sla_monitor import SlaMonitor
from .utils.logger import setup_logging, get_logger

setup_logging()
logger = get_logger(__name__)

APP_NAME = "Incident Workflow Engine"
APP_VERSION = "1.0.0"


# =============================================================================
# Lifecycle
# =============================================================================

def _start_services(app: FastAPI) -> None:
    try:
        create_indexes()
    except Exception as e:
        # The API still serves; writes fail loudly until Mongo is reachable
        logger.error(f"Failed to create indexes: {e}")

    engine = WorkflowEngine()
    monitor = SlaMonitor(
        incident_repo=engine.incident_repo,
        interval_seconds=settings.sla_check_interval_seconds
    )
    app.state.engine = engine
    app.state.sla_monitor = monitor

    if settings.sla_monitor_enabled:
        monitor.start()
    else:
        logger.info("SLA monitor disabled by configuration")


def _stop_services(app: FastAPI) -> None:
    monitor = getattr(app.state, "sla_monitor", None)
    if monitor is not None:
        monitor.stop()
    engine = getattr(app.state, "engine", None)
    if engine is not None:
        # Let dispatched async actions finish
        engine.action_executor.shutdown(wait=True)
    close_connection()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {APP_NAME} {APP_VERSION} ({settings.environment})")
    _start_services(app)
    yield
    logger.info("Shutting down...")
    _stop_services(app)
    logger.info("Shutdown complete")


# =============================================================================
# Application Factory
# =============================================================================

def create_app() -> FastAPI:
    """Build the application; docs are only exposed in debug mode"""
    application = FastAPI(
        title=APP_NAME,
        description="Configurable state-machine engine for incidents and service requests",
        version=APP_VERSION,
        lifespan=lifespan,
        docs_url="/api/docs" if settings.debug else None,
        redoc_url="/api/redoc" if settings.debug else None,
        openapi_url="/api/openapi.json" if settings.debug else None,
    )

    _configure_middleware(application)
    register_error_handlers(application)
    application.include_router(api_router, prefix="/api/v1")
    _configure_health_routes(application)

    return application


def _configure_middleware(app: FastAPI) -> None:
    # Credentials cannot be combined with a wildcard origin
    allow_all = settings.cors_origins.strip() == "*"
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else settings.cors_origins_list,
        allow_credentials=not allow_all,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-Id"],
    )
    app.add_middleware(CorrelationIdMiddleware)


def _configure_health_routes(app: FastAPI) -> None:

    @app.get("/health", tags=["Health"])
    def health():
        """Database connectivity and SLA monitor status"""
        mongo = health_check()
        monitor = getattr(app.state, "sla_monitor", None)
        return {
            "status": "healthy" if mongo["status"] == "healthy" else "degraded",
            "version": APP_VERSION,
            "environment": settings.environment,
            "mongo": mongo,
            "sla_monitor": monitor.status() if monitor else {"running": False},
        }

    @app.get("/", tags=["Health"])
    def root():
        return {"name": APP_NAME, "version": APP_VERSION, "docs": "/api/docs" if settings.debug else None}


app = create_app()
