# ============================================================================
# WORKER STATE MODEL
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Core model - Persistent worker runtime state
# PURPOSE: Track one batch job that executes many tasks
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: Worker
# DEPENDENCIES: pydantic
# ============================================================================
"""
Worker State Model

A Worker is one persistent batch job. It belongs to exactly one pool for
its whole lifetime and the pool is the only thing that changes its state
(through WorkerPool.mark_* methods, which call transition()).

batch_job_id is a weak reference into the scheduler's accounting: the
scheduler may forget the job (UNKNOWN polls) without this record becoming
inconsistent.
"""

import uuid
from datetime import datetime, timezone
from typing import Dict, Optional, Set
from pydantic import BaseModel, Field, computed_field

from core.contracts import WorkerState


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


_ALLOWED: Dict[WorkerState, Set[WorkerState]] = {
    WorkerState.PENDING: {WorkerState.RUNNING, WorkerState.TERMINATING, WorkerState.DEAD},
    WorkerState.RUNNING: {WorkerState.IDLE, WorkerState.TERMINATING, WorkerState.DEAD},
    WorkerState.IDLE: {WorkerState.BUSY, WorkerState.TERMINATING, WorkerState.DEAD},
    WorkerState.BUSY: {WorkerState.IDLE, WorkerState.TERMINATING, WorkerState.DEAD},
    WorkerState.TERMINATING: {WorkerState.DEAD},
    WorkerState.DEAD: set(),
}


class Worker(BaseModel):
    """
    Runtime state of one persistent worker.

    Lifecycle:
        1. Created PENDING when the pool submits its batch job
        2. RUNNING on the first Running poll
        3. IDLE once reachable (immediately, or on registration)
        4. IDLE <-> BUSY as tasks come and go
        5. TERMINATING -> DEAD on shutdown, or DEAD when lost
    """

    worker_id: str = Field(..., max_length=64)
    pool_name: str = Field(..., max_length=48)
    batch_job_id: Optional[str] = Field(default=None, max_length=128)

    state: WorkerState = Field(default=WorkerState.PENDING)
    current_task_id: Optional[str] = Field(default=None, max_length=128)

    # Endpoint of the worker process once it has registered
    address: Optional[str] = Field(default=None, max_length=256)

    launch_time: datetime = Field(default_factory=_utcnow)
    started_at: Optional[datetime] = None
    idle_since: Optional[datetime] = None
    died_at: Optional[datetime] = None
    death_reason: Optional[str] = Field(default=None, max_length=2000)

    tasks_completed: int = Field(default=0, ge=0)

    # Poll bookkeeping (UNKNOWN / timed-out polls back off before loss)
    unknown_polls: int = Field(default=0, ge=0)
    next_poll_at: Optional[datetime] = None

    @classmethod
    def new(cls, pool_name: str) -> "Worker":
        """Create a PENDING worker with a fresh id."""
        return cls(worker_id=f"{pool_name}-{uuid.uuid4().hex[:8]}", pool_name=pool_name)

    @computed_field
    @property
    def is_live(self) -> bool:
        return self.state.is_live()

    def can_transition_to(self, new_state: WorkerState) -> bool:
        """
        Validate a state transition.

        Valid transitions:
            PENDING -> RUNNING, TERMINATING, DEAD
            RUNNING -> IDLE, TERMINATING, DEAD
            IDLE -> BUSY, TERMINATING, DEAD
            BUSY -> IDLE, TERMINATING, DEAD
            TERMINATING -> DEAD
            DEAD -> (none, terminal)
        """
        return new_state in _ALLOWED[self.state]

    def transition(
        self,
        new_state: WorkerState,
        task_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> None:
        """
        Apply a transition, keeping the busy/idle task invariant.

        Raises:
            ValueError: if the transition is not allowed, or BUSY is
                requested without a task id
        """
        if not self.can_transition_to(new_state):
            raise ValueError(
                f"Worker {self.worker_id}: cannot transition from "
                f"{self.state.value} to {new_state.value}"
            )
        if new_state == WorkerState.BUSY and not task_id:
            raise ValueError(f"Worker {self.worker_id}: BUSY requires a task id")

        now = _utcnow()
        self.state = new_state

        if new_state == WorkerState.BUSY:
            self.current_task_id = task_id
            self.idle_since = None
        elif new_state == WorkerState.IDLE:
            self.current_task_id = None
            self.idle_since = now
        elif new_state == WorkerState.RUNNING:
            self.started_at = now
        elif new_state == WorkerState.DEAD:
            self.current_task_id = None
            self.idle_since = None
            self.died_at = now
            if reason:
                self.death_reason = reason[:2000]


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["Worker"]
