# ============================================================================
# SCHEDULER HEALTH CHECK
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Infrastructure - Batch scheduler tooling check
# PURPOSE: Verify the scheduler CLI tools the pools shell out to are on PATH
# CREATED: 19 OCT 2026
# ============================================================================
"""
Scheduler Health Check

Every pool submits, polls and cancels through its adapter's CLI tools
(sbatch/squeue/sacct/scancel, qsub/qstat/qdel, ...). A missing tool means
every submission for that scheduler will fail.
"""

import logging
import shutil

from health.checks.application import get_dispatcher
from health.core import HealthCheckPlugin, HealthCheckResult
from health.registry import register_check

logger = logging.getLogger(__name__)


@register_check(category="scheduler")
class SchedulerCommandsCheck(HealthCheckPlugin):

    name = "scheduler"
    timeout_seconds = 2.0

    async def check(self) -> HealthCheckResult:
        dispatcher = get_dispatcher()
        if dispatcher is None:
            return HealthCheckResult.degraded(message="Dispatcher not initialized (skipped)")

        commands = {}
        for pool in dispatcher.group:
            for command in pool.adapter.commands:
                commands[command] = shutil.which(command)

        missing = sorted(name for name, path in commands.items() if path is None)
        schedulers = sorted({pool.adapter.kind.value for pool in dispatcher.group})

        if missing:
            return HealthCheckResult.unhealthy(
                message=f"Scheduler commands not found on PATH: {', '.join(missing)}",
                schedulers=schedulers,
                missing=missing,
            )

        return HealthCheckResult.healthy(
            message=f"Scheduler commands available ({', '.join(schedulers)})",
            schedulers=schedulers,
            commands=commands,
        )


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "SchedulerCommandsCheck",
]
