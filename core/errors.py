# ============================================================================
# ERROR TAXONOMY
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Foundation - Exceptions raised across the controller
# PURPOSE: Failures attributable to a specific task id and pool name
# CREATED: 19 OCT 2026
# ============================================================================
"""
Controller Errors

Infrastructure errors (submission, poll) are retried locally with
backoff. Task-logic errors are never retried here; they are surfaced
to the task-graph engine verbatim.

Every error that ends up in a task outcome carries the task id and the
pool name so a failure is never a bare process exit.
"""

from typing import Optional


class ControllerError(Exception):
    """Base exception for the worker pool controller."""
    pass


# ============================================================================
# CONFIGURATION
# ============================================================================

class PoolConfigurationError(ControllerError):
    """Invalid pool or cluster configuration. Raised at construction time."""

    def __init__(self, message: str, pool_name: Optional[str] = None):
        self.pool_name = pool_name
        prefix = f"Pool '{pool_name}': " if pool_name else ""
        super().__init__(f"{prefix}{message}")


class ScriptOrderError(PoolConfigurationError):
    """A scheduler directive appears after a shell command in script_lines."""

    def __init__(self, pool_name: str, line: str, after: str):
        self.line = line
        self.after = after
        super().__init__(
            f"directive {line!r} follows shell command {after!r}; "
            f"schedulers ignore directives after the first command",
            pool_name=pool_name,
        )


# ============================================================================
# SCHEDULER
# ============================================================================

class SubmissionError(ControllerError):
    """The batch scheduler rejected a job script."""

    def __init__(
        self,
        message: str,
        pool_name: Optional[str] = None,
        worker_id: Optional[str] = None,
    ):
        self.pool_name = pool_name
        self.worker_id = worker_id
        super().__init__(message)


class SchedulerCommandError(ControllerError):
    """A scheduler CLI command (poll, cancel) failed."""

    def __init__(self, command: str, returncode: int, stderr: str = ""):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(
            f"{command} exited with {returncode}: {stderr.strip()[:500]}"
        )


class PollTimeout(ControllerError):
    """A scheduler poll did not answer within the poll timeout."""

    def __init__(self, job_id: str, timeout_seconds: float):
        self.job_id = job_id
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Poll of job {job_id} timed out after {timeout_seconds}s")


# ============================================================================
# WORKERS
# ============================================================================

class WorkerLostError(ControllerError):
    """A worker terminated unexpectedly or stopped answering."""

    def __init__(
        self,
        pool_name: str,
        worker_id: str,
        reason: str,
        task_id: Optional[str] = None,
        batch_job_id: Optional[str] = None,
    ):
        self.pool_name = pool_name
        self.worker_id = worker_id
        self.reason = reason
        self.task_id = task_id
        self.batch_job_id = batch_job_id
        task_part = f" while running task {task_id}" if task_id else ""
        super().__init__(
            f"Worker {worker_id} in pool '{pool_name}' lost{task_part}: {reason}"
        )


class WorkerTransportError(ControllerError):
    """Sending a task to a worker or reading its result failed."""

    def __init__(self, worker_id: str, message: str):
        self.worker_id = worker_id
        super().__init__(f"Worker {worker_id}: {message}")


# ============================================================================
# TASKS
# ============================================================================

class UnroutableTask(ControllerError):
    """No pool matches the task's resource profile tag and there is no default."""

    def __init__(self, task_id: str, tag: str):
        self.task_id = task_id
        self.tag = tag
        self.pool_name = None
        super().__init__(f"Task {task_id}: no pool for resource profile '{tag}'")


class TaskExecutionError(ControllerError):
    """The task's own logic failed on a healthy worker."""

    def __init__(self, task_id: str, pool_name: str, message: str):
        self.task_id = task_id
        self.pool_name = pool_name
        super().__init__(message)


class TaskFailed(ControllerError):
    """A task could not be completed after exhausting its worker-loss retries."""

    def __init__(
        self,
        task_id: str,
        pool_name: str,
        attempts: int,
        cause: Optional[Exception] = None,
    ):
        self.task_id = task_id
        self.pool_name = pool_name
        self.attempts = attempts
        self.cause = cause
        super().__init__(
            f"Task {task_id} in pool '{pool_name}' failed after {attempts} attempt(s)"
            + (f": {cause}" if cause else "")
        )


class DuplicateTaskError(ControllerError):
    """A task id was submitted more than once."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task id already seen in this run: {task_id}")


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "ControllerError",
    "PoolConfigurationError",
    "ScriptOrderError",
    "SubmissionError",
    "SchedulerCommandError",
    "PollTimeout",
    "WorkerLostError",
    "WorkerTransportError",
    "UnroutableTask",
    "TaskExecutionError",
    "TaskFailed",
    "DuplicateTaskError",
]
