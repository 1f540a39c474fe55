# ============================================================================
# STARTUP HEALTH CHECKS
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Infrastructure - Startup health checks
# PURPOSE: Basic process and configuration checks
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Startup Health Checks

Basic checks that run first (priority 10):
- ProcessCheck: Always healthy if process is running
- ConfigCheck: Cluster config file loads and validates
"""

import os
import platform
import sys
import logging

from core.errors import PoolConfigurationError
from health.core import HealthCheckPlugin, HealthCheckResult
from health.registry import register_check
from services.config_service import ConfigService

logger = logging.getLogger(__name__)


@register_check(category="startup")
class ProcessCheck(HealthCheckPlugin):
    """Always healthy if the check runs (proves the process is alive)."""

    name = "process"
    timeout_seconds = 1.0

    async def check(self) -> HealthCheckResult:
        return HealthCheckResult.healthy(
            message="Process running",
            python_version=sys.version,
            platform=platform.platform(),
            pid=os.getpid(),
        )


@register_check(category="startup")
class ConfigCheck(HealthCheckPlugin):
    """
    Configuration health check.

    Re-reads the pool layout from $POOL_CONFIG_PATH. The running
    controller keeps the layout it started with; this catches an edited
    file that would fail on the next restart.
    """

    name = "config"
    timeout_seconds = 2.0

    async def check(self) -> HealthCheckResult:
        service = ConfigService()
        try:
            config = service.load()
        except PoolConfigurationError as e:
            return HealthCheckResult.unhealthy(
                message=str(e),
                config_path=str(service.config_path),
            )

        return HealthCheckResult.healthy(
            message=f"{len(config.pools)} pool(s) configured",
            config_path=str(service.config_path),
            scheduler=config.scheduler.value,
            pools=[p.name for p in config.pools],
        )


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "ProcessCheck",
    "ConfigCheck",
]
