# ============================================================================
# TASK-GRAPH ENGINE INTERFACE
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Core - Boundary to the task-graph engine
# PURPOSE: Ready tasks in, per-task outcomes out
# CREATED: 19 OCT 2026
# ============================================================================
"""
Task-Graph Engine

The controller does not build or resolve graphs. It asks the engine for
tasks whose dependencies are already satisfied and reports exactly one
outcome per task id back.

InMemoryTaskEngine is the reference engine used by the API, the CLI and
the tests: callers submit ready tasks and await their outcomes.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import deque
from typing import Deque, Dict, Iterable, List, Optional

from core.models import Task, TaskOutcome

logger = logging.getLogger(__name__)


class TaskGraphEngine(ABC):
    """Source of ready tasks and sink for outcomes."""

    @abstractmethod
    async def next_ready_batch(self) -> List[Task]:
        """Tasks that became ready since the last call, in engine order."""

    @abstractmethod
    def has_unfinished_work(self) -> bool:
        """False once every task the engine will ever emit has an outcome."""

    @abstractmethod
    def report_outcome(self, outcome: TaskOutcome) -> None:
        """Record the single outcome of a task."""


class InMemoryTaskEngine(TaskGraphEngine):
    """
    Engine backed by an in-memory FIFO.

    keep_open=True keeps has_unfinished_work() true until close(), for a
    long-running controller that accepts tasks over the API.
    """

    def __init__(self, tasks: Optional[Iterable[Task]] = None, keep_open: bool = False):
        self._ready: Deque[Task] = deque()
        self._submitted: Dict[str, Task] = {}
        self._waiters: Dict[str, asyncio.Future] = {}
        self.outcomes: Dict[str, TaskOutcome] = {}
        self.reports: List[TaskOutcome] = []
        self.keep_open = keep_open
        self._closed = False

        for task in tasks or ():
            self.submit(task)

    def submit(self, task: Task) -> None:
        """Queue a ready task. Task ids the engine already knows are passed through unchanged."""
        if task.task_id not in self._submitted:
            self._submitted[task.task_id] = task
        self._ready.append(task)

    def submit_many(self, tasks: Iterable[Task]) -> None:
        for task in tasks:
            self.submit(task)

    def close(self) -> None:
        """No more tasks will be submitted."""
        self._closed = True

    async def next_ready_batch(self) -> List[Task]:
        batch = list(self._ready)
        self._ready.clear()
        return batch

    def has_unfinished_work(self) -> bool:
        if self.keep_open and not self._closed:
            return True
        if self._ready:
            return True
        return any(task_id not in self.outcomes for task_id in self._submitted)

    def report_outcome(self, outcome: TaskOutcome) -> None:
        self.reports.append(outcome)
        if outcome.task_id in self.outcomes:
            logger.error(f"Second outcome reported for task {outcome.task_id}")
            return

        self.outcomes[outcome.task_id] = outcome
        waiter = self._waiters.pop(outcome.task_id, None)
        if waiter is not None and not waiter.done():
            waiter.set_result(outcome)

    async def wait_for_outcome(self, task_id: str, timeout: Optional[float] = None) -> TaskOutcome:
        """Wait for a task's outcome."""
        if task_id in self.outcomes:
            return self.outcomes[task_id]
        waiter = self._waiters.get(task_id)
        if waiter is None:
            waiter = asyncio.get_running_loop().create_future()
            self._waiters[task_id] = waiter
        return await asyncio.wait_for(asyncio.shield(waiter), timeout=timeout)

    def get_task(self, task_id: str) -> Optional[Task]:
        return self._submitted.get(task_id)

    def pending_count(self) -> int:
        return sum(1 for task_id in self._submitted if task_id not in self.outcomes)


__all__ = ["TaskGraphEngine", "InMemoryTaskEngine"]
