# ============================================================================
# BATCH SCHEDULER ADAPTERS
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Core - Scheduler backend lookup
# PURPOSE: Map a SchedulerKind to its adapter
# CREATED: 19 OCT 2026
# ============================================================================
"""
Batch Scheduler Adapters

Usage:
    from scheduler import get_adapter

    adapter = get_adapter(SchedulerKind.SLURM)
    adapter.validate_config(pool_config)
    script = adapter.build_script(pool_config, worker_id, launch_command)
    job_id = await adapter.submit(script)
    state = await adapter.poll(job_id)
    await adapter.cancel(job_id)
"""

from typing import Dict, Optional, Type, Union

from core.config import Defaults, get_defaults
from core.contracts import SchedulerKind
from scheduler.base import BatchSchedulerAdapter, option_key
from scheduler.commands import CommandResult, CommandRunner
from scheduler.lsf import LSFAdapter
from scheduler.pbs import PBSAdapter
from scheduler.sge import SGEAdapter
from scheduler.slurm import SlurmAdapter


ADAPTERS: Dict[SchedulerKind, Type[BatchSchedulerAdapter]] = {
    SchedulerKind.SLURM: SlurmAdapter,
    SchedulerKind.PBS: PBSAdapter,
    SchedulerKind.SGE: SGEAdapter,
    SchedulerKind.LSF: LSFAdapter,
}


def get_adapter(
    kind: Union[SchedulerKind, str],
    runner: Optional[CommandRunner] = None,
    defaults: Optional[Defaults] = None,
) -> BatchSchedulerAdapter:
    """
    Build the adapter for a scheduler backend.

    Without an explicit runner, commands time out after
    TimeoutDefaults.command_timeout_seconds (SCHEDULER_COMMAND_TIMEOUT_SECONDS).

    Raises:
        ValueError: unknown backend name
    """
    adapter_cls = ADAPTERS[SchedulerKind(kind)]
    if runner is None:
        defaults = defaults or get_defaults()
        runner = CommandRunner(timeout_seconds=defaults.timeouts.command_timeout_seconds)
    return adapter_cls(runner=runner)


__all__ = [
    "ADAPTERS",
    "BatchSchedulerAdapter",
    "CommandResult",
    "CommandRunner",
    "LSFAdapter",
    "PBSAdapter",
    "SGEAdapter",
    "SlurmAdapter",
    "get_adapter",
    "option_key",
]
