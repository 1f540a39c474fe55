# ============================================================================
# WORKER POOL CONTROLLER - MAIN APPLICATION
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Core - FastAPI application entry point
# PURPOSE: Controller API with the dispatch loop running in the background
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Worker Pool Controller Main Application

FastAPI application that:
1. Loads the pool layout (POOL_CONFIG_PATH, default ./pools.yaml)
2. Runs the dispatch loop in the background
3. Accepts worker registrations and ready tasks over HTTP

Environment:
    POOL_CONFIG_PATH     YAML pool layout
    POOL_TRANSPORT       http (default) or local
    POOL_CONTROLLER_URL  URL workers register with (overrides the layout)
    LOG_LEVEL, LOG_FORMAT=json

Usage:
    uvicorn main:app --host 0.0.0.0 --port 8000
"""

import asyncio
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from __version__ import __version__, BUILD_DATE, EPOCH
from api.routes import router, set_services
from core.errors import PoolConfigurationError
from orchestrator import (
    Dispatcher,
    HTTPWorkerTransport,
    InMemoryTaskEngine,
    LocalWorkerTransport,
    WorkerTransport,
)
from pool import ControllerGroup
from services import ConfigService

# Health check system
from health import health_router, get_registry
from health.checks.application import set_dispatcher

# Configure logging using our structured logging system
from core.logging import configure_logging, get_logger

configure_logging(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    json_output=os.environ.get("LOG_FORMAT", "").lower() == "json",
)
logger = get_logger(__name__)

# Global instances
_dispatcher: Optional[Dispatcher] = None
_dispatch_task: Optional[asyncio.Task] = None


def build_transport(kind: str) -> WorkerTransport:
    """http: workers in batch jobs. local: in-process, for development."""
    kind = kind.lower()
    if kind == "http":
        return HTTPWorkerTransport()
    if kind == "local":
        return LocalWorkerTransport()
    raise PoolConfigurationError(f"unknown POOL_TRANSPORT '{kind}' (expected http or local)")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the controller on startup, drain it on shutdown."""
    global _dispatcher, _dispatch_task

    logger.info(f"Starting Worker Pool Controller v{__version__} (Epoch {EPOCH}, Build {BUILD_DATE})")

    config = ConfigService().load()
    controller_url = os.environ.get("POOL_CONTROLLER_URL")
    if controller_url:
        config = config.model_copy(update={"controller_url": controller_url})

    transport = build_transport(os.environ.get("POOL_TRANSPORT", "http"))
    if transport.requires_registration and not config.controller_url:
        raise PoolConfigurationError(
            "controller_url is required for the http transport "
            "(set it in the layout or POOL_CONTROLLER_URL)"
        )

    group = ControllerGroup.from_config(config, requires_registration=transport.requires_registration)
    engine = InMemoryTaskEngine(keep_open=True)
    _dispatcher = Dispatcher(group, engine, transport)

    set_services(dispatcher=_dispatcher, engine=engine)

    _dispatch_task = asyncio.create_task(_dispatcher.run(), name="dispatcher")
    logger.info("Dispatcher started")

    # Initialize health checks
    set_dispatcher(_dispatcher)
    import health.checks  # Register all health check plugins
    logger.info(f"Health checks initialized ({len(get_registry())} checks registered)")

    yield

    logger.info("Shutting down Worker Pool Controller...")

    engine.close()
    _dispatcher.stop()
    await _dispatch_task

    logger.info("Worker Pool Controller stopped")


# Create FastAPI app
app = FastAPI(
    title="Worker Pool Controller",
    description=f"Epoch {EPOCH} persistent worker pools on batch schedulers",
    version=__version__,
    lifespan=lifespan,
)

# Include health check routes (no prefix - /livez, /readyz, /health)
app.include_router(health_router)

# Include API routes
app.include_router(router, prefix="/api/v1")


# Root endpoint
@app.get("/")
async def root():
    return {
        "service": "Worker Pool Controller",
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
