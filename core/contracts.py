# ============================================================================
# BASE CONTRACTS & ENUMS
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Foundation - Core enums shared by every component
# PURPOSE: Define worker, batch job, task and pool status enums
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: WorkerState, JobState, OutcomeStatus, PoolStatus, SchedulerKind
# DEPENDENCIES: enum
# ============================================================================
"""
Base contracts for the worker pool controller.

These enums cross every boundary in the system:
- Scheduler adapters (JobState)
- Worker pools (WorkerState, PoolStatus)
- Task-graph engine (OutcomeStatus)
- Configuration files (SchedulerKind)
"""

from enum import Enum


# ============================================================================
# STATUS ENUMS
# ============================================================================

class WorkerState(str, Enum):
    """
    Persistent worker lifecycle states.

    State transitions:
        PENDING -> RUNNING -> IDLE <-> BUSY
        any live state -> TERMINATING -> DEAD
        any live state -> DEAD (lost)
    """
    PENDING = "pending"            # Batch job submitted, not yet running
    RUNNING = "running"            # Batch job running, worker not yet reachable
    IDLE = "idle"                  # Reachable, no task assigned
    BUSY = "busy"                  # Executing exactly one task
    TERMINATING = "terminating"    # Shutdown requested, job being cancelled
    DEAD = "dead"                  # Gone for good

    def is_live(self) -> bool:
        """Live workers count against max_workers."""
        return self != WorkerState.DEAD

    def is_starting(self) -> bool:
        """Submitted but not yet able to take a task."""
        return self in (WorkerState.PENDING, WorkerState.RUNNING)


class JobState(str, Enum):
    """
    Batch job state as reported by a scheduler adapter.

    UNKNOWN means the backend has no record of the job (e.g. purged from
    accounting). It is never folded into COMPLETED.
    """
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    UNKNOWN = "unknown"

    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


class OutcomeStatus(str, Enum):
    """Per-task outcome reported back to the task-graph engine."""
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PoolStatus(str, Enum):
    """
    Worker pool status.

    ACTIVE -> DEGRADED (submissions exhausted their retries)
    ACTIVE/DEGRADED -> SHUTTING_DOWN -> STOPPED
    """
    ACTIVE = "active"
    DEGRADED = "degraded"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"

    def accepts_tasks(self) -> bool:
        return self == PoolStatus.ACTIVE


class SchedulerKind(str, Enum):
    """Supported batch scheduler backends."""
    SLURM = "slurm"
    PBS = "pbs"
    SGE = "sge"
    LSF = "lsf"


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "WorkerState",
    "JobState",
    "OutcomeStatus",
    "PoolStatus",
    "SchedulerKind",
]
