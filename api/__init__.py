# ============================================================================
# API MODULE
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Core - FastAPI routes
# PURPOSE: HTTP API for pools, worker registration and tasks
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
API Module

FastAPI routes for the worker pool controller.
"""

from .routes import router, set_services
from .schemas import (
    RegistrationResponse,
    TaskCreate,
    TaskStatusResponse,
    WorkerRegistration,
)

__all__ = [
    "router",
    "set_services",
    "RegistrationResponse",
    "TaskCreate",
    "TaskStatusResponse",
    "WorkerRegistration",
]
