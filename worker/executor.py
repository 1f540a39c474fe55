# ============================================================================
# WORKER EXECUTOR
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Core - Handler execution engine
# PURPOSE: Run one TaskMessage through the handler registry
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Worker Executor

Takes a TaskMessage and produces a TaskResult. Used by the worker process
behind POST /execute, and in-process by LocalWorkerTransport.

The controller owns the task deadline. The executor's own timeout is a
backstop that frees a persistent worker from a runaway handler; it fires
timeout_grace_seconds after the controller has already given up.
"""

import asyncio
import logging
import time
from typing import Optional

from core.models import TaskMessage, TaskResult
from handlers.registry import (
    execute_handler,
    HandlerContext,
    HandlerNotFoundError,
)

logger = logging.getLogger(__name__)


class TaskExecutor:
    """
    Executes tasks for one persistent worker.

    Runs one task at a time; a worker is either idle or busy with exactly
    one task.
    """

    def __init__(
        self,
        worker_id: str,
        pool_name: Optional[str] = None,
        timeout_grace_seconds: Optional[float] = 5.0,
    ):
        """
        Args:
            worker_id: Identifier for this worker
            pool_name: Pool the worker belongs to
            timeout_grace_seconds: Added to the task deadline for the
                backstop timeout. None disables the backstop.
        """
        self.worker_id = worker_id
        self.pool_name = pool_name
        self.timeout_grace_seconds = timeout_grace_seconds
        self._lock = asyncio.Lock()
        self.tasks_executed = 0
        self.current_task_id: Optional[str] = None

    @property
    def busy(self) -> bool:
        return self.current_task_id is not None

    async def execute(self, message: TaskMessage) -> TaskResult:
        """Execute a task. Never raises for task-level failures."""
        async with self._lock:
            self.current_task_id = message.task_id
            try:
                return await self._execute(message)
            finally:
                self.current_task_id = None
                self.tasks_executed += 1

    async def _execute(self, message: TaskMessage) -> TaskResult:
        start_time = time.monotonic()
        logger.info(
            f"Executing task {message.task_id}: handler={message.handler}, "
            f"attempt={message.attempt}"
        )

        def elapsed_ms() -> int:
            return int((time.monotonic() - start_time) * 1000)

        context = HandlerContext(
            task_id=message.task_id,
            handler=message.handler,
            params=message.payload,
            timeout_seconds=message.timeout_seconds,
            attempt=message.attempt,
            pool_name=self.pool_name or message.pool_name,
            worker_id=self.worker_id,
        )

        try:
            if self.timeout_grace_seconds is None:
                result = await execute_handler(message.handler, context)
            else:
                result = await asyncio.wait_for(
                    execute_handler(message.handler, context),
                    timeout=message.timeout_seconds + self.timeout_grace_seconds,
                )

        except asyncio.TimeoutError:
            logger.error(f"Task {message.task_id} timed out after {message.timeout_seconds}s")
            return TaskResult.failure_result(
                task_id=message.task_id,
                error_message=f"Task timed out after {message.timeout_seconds} seconds",
                worker_id=self.worker_id,
                error_type="TaskTimeout",
                duration_ms=elapsed_ms(),
            )

        except HandlerNotFoundError as e:
            logger.error(f"Handler not found: {e.handler_name}")
            return TaskResult.failure_result(
                task_id=message.task_id,
                error_message=str(e),
                worker_id=self.worker_id,
                error_type="HandlerNotFoundError",
                duration_ms=elapsed_ms(),
            )

        duration_ms = elapsed_ms()
        logger.info(
            f"Task {message.task_id} finished: success={result.success}, "
            f"duration={duration_ms}ms"
        )

        if result.success:
            return TaskResult.success_result(
                task_id=message.task_id,
                output=result.output,
                worker_id=self.worker_id,
                duration_ms=duration_ms,
            )
        return TaskResult.failure_result(
            task_id=message.task_id,
            error_message=result.error_message or "Handler returned failure",
            worker_id=self.worker_id,
            error_type="HandlerFailure",
            duration_ms=duration_ms,
        )


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["TaskExecutor"]
