# ============================================================================
# HEALTH CHECK PLUGINS
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Infrastructure - Health check implementations
# PURPOSE: Specific health checks for the worker pool controller
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Health Check Plugins

Startup Checks (priority 10):
- process: Basic process health (always healthy if running)
- config: Cluster config file loads

Scheduler Checks (priority 20):
- scheduler: Batch scheduler CLI tools on PATH

Application Checks (priority 40):
- dispatcher: Dispatch loop running
- pools: No degraded pools

Import this module to register all checks:
    import health.checks
"""

from health.checks.startup import ProcessCheck, ConfigCheck
from health.checks.scheduler import SchedulerCommandsCheck
from health.checks.application import (
    DispatcherCheck,
    PoolsCheck,
    get_dispatcher,
    set_dispatcher,
)

__all__ = [
    # Startup
    "ProcessCheck",
    "ConfigCheck",
    # Scheduler
    "SchedulerCommandsCheck",
    # Application
    "DispatcherCheck",
    "PoolsCheck",
    "get_dispatcher",
    "set_dispatcher",
]
