# ============================================================================
# APPLICATION HEALTH CHECKS
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Infrastructure - Controller state checks
# PURPOSE: Dispatcher loop and worker pool status
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Application Health Checks

Application-level checks (priority 40):
- DispatcherCheck: Dispatch loop running
- PoolsCheck: No pool degraded by submission failures
"""

import logging
from typing import Optional

from core.contracts import PoolStatus
from health.core import HealthCheckPlugin, HealthCheckResult
from health.registry import register_check

logger = logging.getLogger(__name__)


# Global reference to the dispatcher (set by main app)
_dispatcher = None


def set_dispatcher(dispatcher) -> None:
    """Set dispatcher reference for health checks."""
    global _dispatcher
    _dispatcher = dispatcher


def get_dispatcher() -> Optional[object]:
    return _dispatcher


@register_check(category="application")
class DispatcherCheck(HealthCheckPlugin):

    name = "dispatcher"
    timeout_seconds = 2.0

    async def check(self) -> HealthCheckResult:
        if _dispatcher is None:
            return HealthCheckResult.unhealthy(
                message="Dispatcher not initialized",
                hint="Dispatcher reference not set",
            )

        stats = _dispatcher.stats()
        details = {
            "uptime_seconds": stats.get("uptime_seconds"),
            "ticks": stats.get("ticks", 0),
            "tasks_dispatched": stats.get("tasks_dispatched", 0),
            "outcomes": stats.get("outcomes", {}),
        }

        if not _dispatcher.is_running:
            return HealthCheckResult.unhealthy(message="Dispatch loop not running", **details)

        return HealthCheckResult.healthy(
            message=f"Dispatcher running ({details['ticks']} ticks)",
            **details,
        )


@register_check(category="application")
class PoolsCheck(HealthCheckPlugin):
    """
    Worker pool health check.

    Degraded when some pools have stopped accepting tasks after exhausting
    submission retries, unhealthy when none accept tasks.
    """

    name = "pools"
    timeout_seconds = 2.0

    async def check(self) -> HealthCheckResult:
        if _dispatcher is None:
            return HealthCheckResult.unhealthy(message="Dispatcher not initialized")

        pools = {
            pool.name: {
                "status": pool.status.value,
                "live_workers": pool.live_count,
                "max_workers": pool.config.max_workers,
                "last_error": str(pool.last_error) if pool.last_error else None,
            }
            for pool in _dispatcher.group
        }
        degraded = [
            pool.name for pool in _dispatcher.group
            if pool.status == PoolStatus.DEGRADED
        ]
        accepting = [pool.name for pool in _dispatcher.group if pool.status.accepts_tasks()]

        if not accepting:
            return HealthCheckResult.unhealthy(
                message="No pool is accepting tasks",
                pools=pools,
            )
        if degraded:
            return HealthCheckResult.degraded(
                message=f"Degraded pools: {', '.join(degraded)}",
                pools=pools,
            )
        return HealthCheckResult.healthy(message=f"{len(pools)} pool(s) active", pools=pools)


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "DispatcherCheck",
    "PoolsCheck",
    "get_dispatcher",
    "set_dispatcher",
]
