# ============================================================================
# API ROUTES
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Core - FastAPI route definitions
# PURPOSE: Pool status, worker registration and task submission endpoints
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
API Routes

Mounted under /api/v1:
    GET  /dispatcher/status            - Dispatcher statistics
    POST /dispatcher/cancel            - Cancel the run
    GET  /pools                        - Every pool's stats
    GET  /pools/{name}                 - One pool's stats and workers
    POST /workers/{worker_id}/register - Worker registration (worker.main)
    GET  /workers/{worker_id}          - One worker's record
    POST /tasks                        - Submit a ready task
    GET  /tasks/{task_id}              - Task status/outcome
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException

from core.models import Worker
from pool import WorkerPool
from .schemas import (
    ErrorResponse,
    RegistrationResponse,
    TaskAccepted,
    TaskCreate,
    TaskStatusResponse,
    WorkerRegistration,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# DEPENDENCY INJECTION
# ============================================================================
# These will be set by the main app at startup

_dispatcher = None
_engine = None


def set_services(dispatcher, engine) -> None:
    """Set service instances for dependency injection."""
    global _dispatcher, _engine
    _dispatcher = dispatcher
    _engine = engine


def get_dispatcher():
    if _dispatcher is None:
        raise HTTPException(500, "Dispatcher not initialized")
    return _dispatcher


def get_engine():
    if _engine is None:
        raise HTTPException(500, "Task engine not initialized")
    return _engine


# ============================================================================
# DISPATCHER
# ============================================================================

@router.get("/dispatcher/status", tags=["Dispatcher"])
async def get_dispatcher_status():
    return get_dispatcher().stats()


@router.post("/dispatcher/cancel", tags=["Dispatcher"])
async def cancel_run():
    """
    Cancel the run: queued and in-flight tasks are reported CANCELLED and
    every live batch job is cancelled before this returns.
    """
    dispatcher = get_dispatcher()
    await dispatcher.cancel()
    return {"status": "cancelled", "outcomes": dispatcher.stats()["outcomes"]}


# ============================================================================
# POOLS
# ============================================================================

@router.get("/pools", tags=["Pools"])
async def list_pools():
    dispatcher = get_dispatcher()
    return {
        "default_pool": dispatcher.group.default_pool,
        "pools": [dispatcher.pool_stats(pool.name) for pool in dispatcher.group],
    }


@router.get(
    "/pools/{name}",
    tags=["Pools"],
    responses={404: {"model": ErrorResponse, "description": "Pool not found"}},
)
async def get_pool(name: str):
    dispatcher = get_dispatcher()
    stats = dispatcher.pool_stats(name)
    if stats is None:
        raise HTTPException(404, f"Pool not found: {name}")

    pool = dispatcher.group.get(name)
    stats["worker_records"] = [
        worker.model_dump(mode="json") for worker in pool.workers.values()
    ]
    return stats


# ============================================================================
# WORKERS
# ============================================================================

def _find_worker(worker_id: str, pool_name: Optional[str] = None) -> WorkerPool:
    group = get_dispatcher().group

    if pool_name is not None:
        pool = group.get(pool_name)
        if pool is None:
            raise HTTPException(404, f"Pool not found: {pool_name}")
        return pool

    for pool in group:
        if pool.get_worker(worker_id) is not None:
            return pool
    raise HTTPException(404, f"Worker not found: {worker_id}")


@router.post(
    "/workers/{worker_id}/register",
    response_model=RegistrationResponse,
    tags=["Workers"],
    responses={
        404: {"model": ErrorResponse, "description": "Unknown pool or worker"},
        409: {"model": ErrorResponse, "description": "Worker is terminating or dead"},
    },
)
async def register_worker(worker_id: str, request: WorkerRegistration):
    """
    Called by a worker once its server is listening. The worker becomes
    idle and can take tasks.
    """
    pool = _find_worker(worker_id, request.pool_name)

    try:
        worker = pool.register_worker(worker_id, request.address)
    except KeyError:
        raise HTTPException(404, f"Worker {worker_id} not found in pool '{pool.name}'")
    except ValueError as e:
        logger.warning(f"Rejected registration: {e}")
        raise HTTPException(409, str(e))

    return RegistrationResponse(
        worker_id=worker.worker_id,
        pool_name=worker.pool_name,
        state=worker.state,
        batch_job_id=worker.batch_job_id,
    )


@router.get("/workers/{worker_id}", response_model=Worker, tags=["Workers"])
async def get_worker(worker_id: str):
    pool = _find_worker(worker_id)
    return pool.get_worker(worker_id)


# ============================================================================
# TASKS
# ============================================================================

@router.post(
    "/tasks",
    response_model=TaskAccepted,
    status_code=202,
    tags=["Tasks"],
    responses={409: {"model": ErrorResponse, "description": "Duplicate task id"}},
)
async def submit_task(request: TaskCreate):
    """
    Queue a ready task. Poll GET /tasks/{task_id} for its outcome.
    """
    engine = get_engine()
    if engine.get_task(request.task_id) is not None:
        raise HTTPException(409, f"Task already submitted: {request.task_id}")

    engine.submit(request.to_task())
    get_dispatcher().wake()
    logger.info(f"Accepted task {request.task_id} for '{request.resource_profile_tag}'")

    return TaskAccepted(task_id=request.task_id, accepted_at=datetime.now(timezone.utc))


@router.get(
    "/tasks/{task_id}",
    response_model=TaskStatusResponse,
    tags=["Tasks"],
    responses={404: {"model": ErrorResponse, "description": "Task not found"}},
)
async def get_task(task_id: str):
    engine = get_engine()
    task = engine.get_task(task_id)
    if task is None:
        raise HTTPException(404, f"Task not found: {task_id}")

    outcome = engine.outcomes.get(task_id)
    return TaskStatusResponse(
        task_id=task.task_id,
        resource_profile_tag=task.resource_profile_tag,
        status=outcome.status if outcome else None,
        outcome=outcome,
    )
