# ============================================================================
# HEALTH CHECK MODULE
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Infrastructure - Health check plugin system
# PURPOSE: Liveness, readiness and detailed controller health
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Health Check Module

Plugin-based health check system for the pool controller:
- /livez: Process alive (instant)
- /readyz: Ready to accept work (required checks pass)
- /health: Every check with details

Architecture:
- HealthCheckPlugin: Base class for health checks
- HealthCheckRegistry: Plugin discovery and registration
- HealthCheckExecutor: Concurrent execution with timeouts

Usage:
    from health import health_router, register_check

    # Register custom check
    @register_check(category="scheduler")
    class MyCheck(HealthCheckPlugin):
        async def check(self) -> HealthCheckResult:
            return HealthCheckResult.healthy()

    # Mount router
    app.include_router(health_router)
"""

from health.core import (
    HealthStatus,
    HealthCheckResult,
    HealthCheckPlugin,
    HealthCheckCategory,
)
from health.registry import (
    HealthCheckRegistry,
    register_check,
    get_registry,
)
from health.executor import HealthCheckExecutor
from health.router import health_router

__all__ = [
    # Core types
    "HealthStatus",
    "HealthCheckResult",
    "HealthCheckPlugin",
    "HealthCheckCategory",
    # Registry
    "HealthCheckRegistry",
    "register_check",
    "get_registry",
    # Executor
    "HealthCheckExecutor",
    # Router
    "health_router",
]
