# ============================================================================
# TASK MODELS
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Core model - Task, wire messages and outcomes
# PURPOSE: Define what comes in, what goes to workers, what goes back
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: Task, TaskMessage, TaskResult, TaskOutcome
# DEPENDENCIES: pydantic
# ============================================================================
"""
Task Models

Four models:
- Task: a ready task handed over by the task-graph engine
- TaskMessage: what the controller sends to a worker
- TaskResult: what a worker sends back
- TaskOutcome: what the controller reports to the task-graph engine

Key insight: the controller never looks inside the payload. It routes on
resource_profile_tag only. Workers read payload["handler"] to pick the
handler to run.
"""

from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Optional
from pydantic import BaseModel, Field

from core.contracts import OutcomeStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Task(BaseModel):
    """
    A ready task from the task-graph engine.

    dependencies are carried for the engine's benefit and never mutated here.
    """

    task_id: str = Field(..., min_length=1, max_length=128)
    resource_profile_tag: str = Field(..., min_length=1, max_length=48)
    payload: Dict[str, Any] = Field(default_factory=dict)
    dependencies: FrozenSet[str] = Field(default_factory=frozenset)

    @property
    def handler(self) -> str:
        """Worker-side handler name (defaults to echo)."""
        return str(self.payload.get("handler", "echo"))


class TaskMessage(BaseModel):
    """
    Message sent to a worker for execution.

    This is what goes over the wire to POST /execute.
    """

    task_id: str = Field(..., max_length=128)
    pool_name: str = Field(..., max_length=48)
    worker_id: str = Field(..., max_length=64)
    handler: str = Field(..., max_length=64)
    payload: Dict[str, Any] = Field(default_factory=dict)

    timeout_seconds: int = Field(default=3600, ge=1, le=7 * 86400)
    attempt: int = Field(default=1, ge=1, description="1 = first dispatch")
    dispatched_at: datetime = Field(default_factory=_utcnow)

    @classmethod
    def for_task(
        cls,
        task: Task,
        pool_name: str,
        worker_id: str,
        timeout_seconds: int,
        attempt: int = 1,
    ) -> "TaskMessage":
        return cls(
            task_id=task.task_id,
            pool_name=pool_name,
            worker_id=worker_id,
            handler=task.handler,
            payload=task.payload,
            timeout_seconds=timeout_seconds,
            attempt=attempt,
        )


class TaskResult(BaseModel):
    """
    Result reported by a worker after running a task.

    success=False means the task's own logic failed; the worker itself is
    healthy and goes back to idle.
    """

    task_id: str = Field(..., max_length=128)
    worker_id: Optional[str] = Field(default=None, max_length=64)
    success: bool = Field(...)
    output: Dict[str, Any] = Field(default_factory=dict)
    error_type: Optional[str] = Field(default=None, max_length=128)
    error_message: Optional[str] = Field(default=None, max_length=2000)
    duration_ms: Optional[int] = Field(default=None, ge=0)
    reported_at: datetime = Field(default_factory=_utcnow)

    @classmethod
    def success_result(
        cls,
        task_id: str,
        output: Dict[str, Any],
        worker_id: Optional[str] = None,
        duration_ms: Optional[int] = None,
    ) -> "TaskResult":
        return cls(
            task_id=task_id,
            worker_id=worker_id,
            success=True,
            output=output,
            duration_ms=duration_ms,
        )

    @classmethod
    def failure_result(
        cls,
        task_id: str,
        error_message: str,
        worker_id: Optional[str] = None,
        error_type: Optional[str] = None,
        duration_ms: Optional[int] = None,
    ) -> "TaskResult":
        return cls(
            task_id=task_id,
            worker_id=worker_id,
            success=False,
            error_type=error_type,
            error_message=error_message[:2000],
            duration_ms=duration_ms,
        )


class TaskOutcome(BaseModel):
    """
    Per-task outcome reported to the task-graph engine.

    Exactly one outcome is reported per task id. Failures always name the
    task and (when routing succeeded) the pool.
    """

    task_id: str = Field(..., max_length=128)
    pool_name: Optional[str] = Field(default=None, max_length=48)
    status: OutcomeStatus = Field(...)
    output: Optional[Dict[str, Any]] = None
    error_type: Optional[str] = Field(default=None, max_length=128)
    error_message: Optional[str] = Field(default=None, max_length=2000)
    worker_id: Optional[str] = Field(default=None, max_length=64)
    attempts: int = Field(default=0, ge=0)
    reported_at: datetime = Field(default_factory=_utcnow)

    @property
    def success(self) -> bool:
        return self.status == OutcomeStatus.COMPLETED

    @classmethod
    def completed(
        cls,
        task_id: str,
        pool_name: str,
        output: Dict[str, Any],
        worker_id: Optional[str],
        attempts: int,
    ) -> "TaskOutcome":
        return cls(
            task_id=task_id,
            pool_name=pool_name,
            status=OutcomeStatus.COMPLETED,
            output=output,
            worker_id=worker_id,
            attempts=attempts,
        )

    @classmethod
    def failed(
        cls,
        task_id: str,
        pool_name: Optional[str],
        error: Exception,
        worker_id: Optional[str] = None,
        attempts: int = 0,
    ) -> "TaskOutcome":
        return cls(
            task_id=task_id,
            pool_name=pool_name,
            status=OutcomeStatus.FAILED,
            error_type=type(error).__name__,
            error_message=str(error)[:2000],
            worker_id=worker_id,
            attempts=attempts,
        )

    @classmethod
    def cancelled(
        cls,
        task_id: str,
        pool_name: Optional[str],
        worker_id: Optional[str] = None,
        attempts: int = 0,
    ) -> "TaskOutcome":
        return cls(
            task_id=task_id,
            pool_name=pool_name,
            status=OutcomeStatus.CANCELLED,
            worker_id=worker_id,
            attempts=attempts,
        )


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["Task", "TaskMessage", "TaskResult", "TaskOutcome"]
