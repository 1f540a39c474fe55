# ============================================================================
# WORKER MODULE
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Core - Persistent worker components
# PURPOSE: Task execution inside a worker batch job
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Worker Module

Components for the process each worker batch job runs:
- contracts: Worker configuration and wire contract
- executor: Task execution engine
- reporter: Registration with the controller
- main: Worker entry point (aiohttp server)
"""

from worker.contracts import WorkerConfig
from worker.executor import TaskExecutor
from worker.reporter import ControllerClient, RegistrationError

__all__ = [
    "WorkerConfig",
    "TaskExecutor",
    "ControllerClient",
    "RegistrationError",
]
