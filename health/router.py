# ============================================================================
# HEALTH CHECK ROUTER
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Infrastructure - FastAPI health check endpoints
# PURPOSE: Liveness, readiness and full health endpoints for the controller
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Health Check Router

Endpoints:
    GET /livez   - Process alive, no checks run
    GET /readyz  - All required checks pass (200) or not (503)
    GET /health  - Every registered check with details
    GET /health/{check_name} - Single check status

Response Codes:
    200 - Healthy
    206 - Degraded (partial content)
    503 - Unhealthy (service unavailable)
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from __version__ import __version__, BUILD_DATE
from health.core import HealthStatus
from health.executor import HealthCheckExecutor
from health.registry import get_registry

logger = logging.getLogger(__name__)

health_router = APIRouter(tags=["Health"])


def _status_to_http_code(status: HealthStatus) -> int:
    return {
        HealthStatus.HEALTHY: 200,
        HealthStatus.DEGRADED: 206,
        HealthStatus.UNHEALTHY: 503,
    }[status]


@health_router.get("/livez")
async def liveness_probe():
    """Returns 200 while the process is responsive."""
    return {"status": "alive", "version": __version__, "build_date": BUILD_DATE}


@health_router.get("/readyz")
async def readiness_probe():
    """
    Returns 200 if every check marked required_for_ready is not
    unhealthy. Degraded pools still count as ready: other pools keep
    accepting tasks.
    """
    registry = get_registry()
    if len(registry) == 0:
        return {"status": "ready", "message": "No checks registered"}

    result = await HealthCheckExecutor(registry=registry, overall_timeout=10.0).execute_required()

    if result.status == HealthStatus.UNHEALTHY:
        return JSONResponse(
            status_code=503,
            content={
                "status": "not_ready",
                "checks": {
                    name: check.to_dict()
                    for name, check in result.checks.items()
                    if check.status == HealthStatus.UNHEALTHY
                },
                "total_duration_ms": round(result.total_duration_ms, 2),
            },
        )

    return {
        "status": "ready",
        "checks_passed": len(result.checks),
        "total_duration_ms": round(result.total_duration_ms, 2),
    }


@health_router.get("/health")
async def full_health_check():
    registry = get_registry()
    if len(registry) == 0:
        return {"status": "healthy", "message": "No checks registered", "checks": {}}

    result = await HealthCheckExecutor(registry=registry).execute_all()

    body = result.to_dict()
    body["version"] = __version__
    body["build_date"] = BUILD_DATE

    summary = {}
    for name, check_result in result.checks.items():
        check = registry.get(name)
        if check:
            counts = summary.setdefault(
                check.category.value, {"healthy": 0, "degraded": 0, "unhealthy": 0}
            )
            counts[check_result.status.value] += 1
    body["summary"] = summary

    return JSONResponse(status_code=_status_to_http_code(result.status), content=body)


@health_router.get("/health/{check_name}")
async def single_health_check(check_name: str):
    result = await HealthCheckExecutor().execute_single(check_name)

    if result is None:
        return JSONResponse(
            status_code=404,
            content={"error": f"Health check not found: {check_name}"},
        )

    return JSONResponse(status_code=_status_to_http_code(result.status), content=result.to_dict())


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "health_router",
]
