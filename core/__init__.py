# ============================================================================
# CORE MODULE
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Core module initialization
# PURPOSE: Export core contracts, models, and errors
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================

from core.contracts import WorkerState, JobState, OutcomeStatus, PoolStatus, SchedulerKind
from core.models import (
    ResourceSpec,
    WorkerPoolConfig,
    ClusterConfig,
    GeneratedScript,
    Worker,
    Task,
    TaskMessage,
    TaskResult,
    TaskOutcome,
)

__all__ = [
    # Enums
    "WorkerState",
    "JobState",
    "OutcomeStatus",
    "PoolStatus",
    "SchedulerKind",
    # Models
    "ResourceSpec",
    "WorkerPoolConfig",
    "ClusterConfig",
    "GeneratedScript",
    "Worker",
    "Task",
    "TaskMessage",
    "TaskResult",
    "TaskOutcome",
]
