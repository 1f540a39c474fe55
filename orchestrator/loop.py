# ============================================================================
# TASK DISPATCH LOOP
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Core - Drives tasks from the engine onto pool workers
# PURPOSE: Route, queue, dispatch, recover and report
# CREATED: 19 OCT 2026
# ============================================================================
"""
Task Dispatch Loop

Each tick:
1. Pull the next batch of ready tasks from the engine (order preserved)
2. Route each task to a pool; unroutable tasks fail immediately
3. Fail queued tasks of degraded pools
4. Drain every pool queue onto idle workers (FIFO per pool)

Each dispatched task runs as its own asyncio task:
    transport.execute() bounded by the task deadline
    success / task failure  -> worker back to idle, outcome reported
    deadline / transport    -> worker lost: dead, job cancelled,
                               task requeued at the FRONT or TaskFailed

Pool poll loops run alongside and report lost workers through on_lost().

Exactly-once: every task id gets one outcome. A result arriving from a
worker that was already declared lost is discarded.

Runs as a background task in the FastAPI application, or standalone.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional, Set

from core.config import Defaults, get_defaults
from core.contracts import OutcomeStatus, WorkerState
from core.errors import (
    DuplicateTaskError,
    SubmissionError,
    TaskExecutionError,
    TaskFailed,
    UnroutableTask,
    WorkerLostError,
    WorkerTransportError,
)
from core.logging import log_checkpoint, log_context
from core.models import Task, TaskMessage, TaskOutcome, TaskResult, Worker
from orchestrator.engine import TaskGraphEngine
from orchestrator.transport import WorkerTransport
from pool import ControllerGroup, WorkerPool

logger = logging.getLogger(__name__)


@dataclass
class QueuedTask:
    """A task waiting in (or taken from) a pool queue."""
    task: Task
    dispatches: int = 0


@dataclass
class InFlight:
    """A task currently running on a worker."""
    entry: QueuedTask
    pool: WorkerPool
    worker: Worker
    activity: Optional[asyncio.Task] = None


class Dispatcher:
    """
    Task dispatch loop over a controller group.

    Usage:
        dispatcher = Dispatcher(group, engine, HTTPWorkerTransport())
        await dispatcher.run()      # until the engine has no unfinished work
        await dispatcher.cancel()   # or abort: cancels every batch job
    """

    def __init__(
        self,
        group: ControllerGroup,
        engine: TaskGraphEngine,
        transport: WorkerTransport,
        defaults: Optional[Defaults] = None,
    ):
        self.group = group
        self.engine = engine
        self.transport = transport
        self.defaults = defaults or get_defaults()

        for pool in group:
            pool.requires_registration = transport.requires_registration
            pool.add_listener(self._on_pool_change)

        self._queues: Dict[str, Deque[QueuedTask]] = {pool.name: deque() for pool in group}
        self._in_flight: Dict[str, InFlight] = {}
        self._seen: Set[str] = set()
        self._reported: Set[str] = set()
        self._activities: Set[asyncio.Task] = set()
        self._poll_tasks: List[asyncio.Task] = []

        # State
        self._running = False
        self._cancelling = False
        self._stop_event = asyncio.Event()
        self._wake = asyncio.Event()

        # Metrics
        self._started_at: Optional[datetime] = None
        self._ticks = 0
        self._dispatched = 0
        self._requeued = 0
        self._stale_results = 0
        self._duplicates_rejected = 0
        self._outcomes = {status.value: 0 for status in OutcomeStatus}

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def run(self) -> None:
        """
        Run until the engine has no unfinished work and nothing is queued
        or in flight, or until stop()/cancel(). Pools are shut down on exit.
        """
        if self._running:
            logger.warning("Dispatcher already running")
            return

        self._running = True
        self._started_at = datetime.now(timezone.utc)
        interval = self.defaults.poll.dispatch_interval_seconds

        for pool in self.group:
            launched = pool.ensure_minimum()
            if launched:
                logger.info(f"Pool '{pool.name}' started {launched} worker(s) for min_workers")
            self._poll_tasks.append(asyncio.create_task(
                pool.run_poll_loop(self.on_worker_lost),
                name=f"poll-{pool.name}",
            ))

        logger.info(
            f"Dispatcher started: pools={[p.name for p in self.group]}, "
            f"interval={interval}s, transport={type(self.transport).__name__}"
        )

        try:
            while not self._stop_event.is_set():
                try:
                    await self.tick()
                except Exception as e:
                    logger.exception(f"Dispatch tick error: {e}")

                if not self.engine.has_unfinished_work() and not self.has_pending_work():
                    logger.info("No unfinished work left")
                    break

                await self._wait_for_wake(interval)
        finally:
            await self._shutdown(cancel_jobs=True)
            self._running = False
            logger.info(f"Dispatcher stopped: {self._outcomes}")

    def stop(self) -> None:
        """
        Stop after the current tick. Tasks still queued or in flight are
        reported CANCELLED when the pools shut down.
        """
        self._stop_event.set()
        self._wake.set()

    def wake(self) -> None:
        """Run the next tick now (e.g. after new tasks were submitted)."""
        self._wake.set()

    async def cancel(self) -> None:
        """
        Cancel the run.

        Queued and in-flight tasks get CANCELLED outcomes, and every live
        batch job in every pool is cancelled before this returns.
        """
        logger.warning("Cancelling run")
        self._cancelling = True
        self.stop()
        await self._shutdown(cancel_jobs=True)

    def _cancel_pending(self) -> None:
        """Report CANCELLED for every task still queued or in flight."""
        if not self.has_pending_work():
            return

        self._cancelling = True
        for pool_name, queue in self._queues.items():
            while queue:
                entry = queue.popleft()
                self._report(TaskOutcome.cancelled(
                    entry.task.task_id, pool_name, attempts=entry.dispatches,
                ))

        for task_id, flight in list(self._in_flight.items()):
            del self._in_flight[task_id]
            if flight.activity is not None:
                flight.activity.cancel()
            self._report(TaskOutcome.cancelled(
                task_id,
                flight.pool.name,
                worker_id=flight.worker.worker_id,
                attempts=flight.entry.dispatches,
            ))

    async def _shutdown(self, cancel_jobs: bool) -> None:
        self._stop_event.set()
        self._cancel_pending()

        if self._activities:
            for activity in list(self._activities):
                activity.cancel()
            await asyncio.gather(*list(self._activities), return_exceptions=True)

        await asyncio.gather(*(pool.shutdown(cancel_jobs=cancel_jobs) for pool in self.group))

        if self._poll_tasks:
            await asyncio.gather(*self._poll_tasks, return_exceptions=True)
            self._poll_tasks = []

        await self.transport.close()

    async def _wait_for_wake(self, timeout: float) -> None:
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass
        self._wake.clear()

    def _on_pool_change(self, pool: WorkerPool) -> None:
        self._wake.set()

    # =========================================================================
    # TICK
    # =========================================================================

    async def tick(self) -> None:
        """One pass: accept ready tasks, fail degraded queues, drain pools."""
        self._ticks += 1

        for task in await self.engine.next_ready_batch():
            self.accept(task)

        for pool in self.group:
            self._fail_if_degraded(pool)
            self._drain(pool)

    def accept(self, task: Task) -> None:
        """Route a ready task and queue it on its pool."""
        if task.task_id in self._seen:
            self._duplicates_rejected += 1
            logger.error(str(DuplicateTaskError(task.task_id)))
            return
        self._seen.add(task.task_id)

        if self._cancelling:
            self._report(TaskOutcome.cancelled(task.task_id, None))
            return

        try:
            pool = self.group.route(task)
        except UnroutableTask as e:
            logger.error(str(e))
            self._report(TaskOutcome.failed(task.task_id, None, e))
            return

        if not pool.status.accepts_tasks():
            self._report(TaskOutcome.failed(task.task_id, pool.name, self._pool_error(pool)))
            return

        self._queues[pool.name].append(QueuedTask(task))
        logger.debug(f"Task {task.task_id} queued on pool '{pool.name}'")

    def _pool_error(self, pool: WorkerPool) -> SubmissionError:
        return pool.last_error or SubmissionError(
            f"pool '{pool.name}' is {pool.status.value}", pool_name=pool.name
        )

    def _fail_if_degraded(self, pool: WorkerPool) -> None:
        queue = self._queues[pool.name]
        if pool.status.accepts_tasks() or not queue:
            return

        error = self._pool_error(pool)
        logger.error(f"Pool '{pool.name}' is {pool.status.value}; failing {len(queue)} queued task(s)")
        while queue:
            entry = queue.popleft()
            self._report(TaskOutcome.failed(
                entry.task.task_id, pool.name, error, attempts=entry.dispatches,
            ))

    def _drain(self, pool: WorkerPool) -> None:
        """Hand queued tasks to idle workers until either runs out."""
        queue = self._queues[pool.name]
        while queue and not self._stop_event.is_set():
            worker = pool.acquire_worker(demand=len(queue))
            if worker is None:
                break
            self._dispatch(pool, worker, queue.popleft())

    # =========================================================================
    # EXECUTION
    # =========================================================================

    def _dispatch(self, pool: WorkerPool, worker: Worker, entry: QueuedTask) -> None:
        task_id = entry.task.task_id
        entry.dispatches += 1
        pool.mark_busy(worker, task_id)

        message = TaskMessage.for_task(
            entry.task,
            pool_name=pool.name,
            worker_id=worker.worker_id,
            timeout_seconds=self.defaults.timeouts.get_task_timeout(pool.config.task_timeout_seconds),
            attempt=entry.dispatches,
        )

        flight = InFlight(entry=entry, pool=pool, worker=worker)
        self._in_flight[task_id] = flight
        flight.activity = asyncio.create_task(
            self._execute(flight, message),
            name=f"task-{task_id}",
        )
        self._activities.add(flight.activity)
        flight.activity.add_done_callback(self._activities.discard)

        self._dispatched += 1
        logger.info(
            f"Dispatched task {task_id} to {worker.worker_id} "
            f"(pool={pool.name}, attempt={entry.dispatches})"
        )
        log_checkpoint("task_dispatched", {
            "task_id": task_id, "pool_name": pool.name,
            "worker_id": worker.worker_id, "attempt": entry.dispatches,
        }, logger=logger)

    async def _execute(self, flight: InFlight, message: TaskMessage) -> None:
        with log_context(pool_name=flight.pool.name, worker_id=flight.worker.worker_id,
                         task_id=message.task_id, batch_job_id=flight.worker.batch_job_id):
            try:
                result = await asyncio.wait_for(
                    self.transport.execute(flight.worker, message),
                    timeout=message.timeout_seconds,
                )
            except asyncio.TimeoutError:
                await self._execution_lost(
                    flight, f"task {message.task_id} exceeded its {message.timeout_seconds}s deadline"
                )
                return
            except WorkerTransportError as e:
                await self._execution_lost(flight, str(e))
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"Unexpected transport failure: {e}")
                await self._execution_lost(flight, f"{type(e).__name__}: {e}")
                return

            self._record_result(flight, result)

    def _is_current(self, flight: InFlight) -> bool:
        """True while this flight still owns its task and worker."""
        task_id = flight.entry.task.task_id
        return (
            self._in_flight.get(task_id) is flight
            and flight.worker.state == WorkerState.BUSY
            and flight.worker.current_task_id == task_id
        )

    def _record_result(self, flight: InFlight, result: TaskResult) -> None:
        task_id = flight.entry.task.task_id
        if not self._is_current(flight):
            self._stale_results += 1
            logger.warning(f"Discarding stale result for task {task_id} from {flight.worker.worker_id}")
            return

        del self._in_flight[task_id]
        pool = flight.pool
        pool.mark_idle(flight.worker)

        if result.success:
            self._report(TaskOutcome.completed(
                task_id, pool.name, result.output,
                worker_id=flight.worker.worker_id,
                attempts=flight.entry.dispatches,
            ))
        else:
            error = TaskExecutionError(
                task_id, pool.name,
                f"{result.error_type or 'TaskError'}: {result.error_message or 'task failed'}",
            )
            self._report(TaskOutcome.failed(
                task_id, pool.name, error,
                worker_id=flight.worker.worker_id,
                attempts=flight.entry.dispatches,
            ))

        self._drain(pool)

    async def _execution_lost(self, flight: InFlight, reason: str) -> None:
        """Deadline or transport failure: the worker is gone, recover its task."""
        if not self._is_current(flight):
            return

        del self._in_flight[flight.entry.task.task_id]
        error = flight.pool.declare_lost(flight.worker, reason)
        self.transport.forget(flight.worker.worker_id)
        self._recover(flight.entry, flight.pool, error)

        if error.batch_job_id:
            await flight.pool.cancel_job(error.batch_job_id)

    def on_worker_lost(self, error: WorkerLostError) -> None:
        """Called by pool poll loops for every worker that died."""
        self.transport.forget(error.worker_id)
        pool = self.group.get(error.pool_name)
        flight = self._in_flight.get(error.task_id) if error.task_id else None

        if flight is not None and flight.worker.worker_id == error.worker_id:
            del self._in_flight[error.task_id]
            if flight.activity is not None:
                flight.activity.cancel()
            self._recover(flight.entry, flight.pool, error)
        elif pool is not None:
            # Capacity freed; queued tasks may need a replacement worker
            self._drain(pool)

    def _recover(self, entry: QueuedTask, pool: WorkerPool, error: WorkerLostError) -> None:
        """Requeue an interrupted task at the front, or fail it."""
        task_id = entry.task.task_id

        if self._cancelling:
            self._report(TaskOutcome.cancelled(
                task_id, pool.name, worker_id=error.worker_id, attempts=entry.dispatches,
            ))
            return

        retries_used = entry.dispatches - 1
        if retries_used < self.defaults.retry.lost_task_max_retries:
            self._queues[pool.name].appendleft(entry)
            self._requeued += 1
            logger.warning(
                f"Task {task_id} requeued after worker loss "
                f"(retry {retries_used + 1}/{self.defaults.retry.lost_task_max_retries}): {error.reason}"
            )
            self._fail_if_degraded(pool)
            self._drain(pool)
            return

        self._report(TaskOutcome.failed(
            task_id, pool.name,
            TaskFailed(task_id, pool.name, entry.dispatches, cause=error),
            worker_id=error.worker_id,
            attempts=entry.dispatches,
        ))

    # =========================================================================
    # REPORTING
    # =========================================================================

    def _report(self, outcome: TaskOutcome) -> None:
        if outcome.task_id in self._reported:
            logger.error(f"Suppressed second outcome for task {outcome.task_id}")
            return
        self._reported.add(outcome.task_id)
        self._outcomes[outcome.status.value] += 1

        log = logger.info if outcome.success else logger.warning
        log(
            f"Task {outcome.task_id} {outcome.status.value} "
            f"(pool={outcome.pool_name}, attempts={outcome.attempts})"
            + (f": {outcome.error_message}" if outcome.error_message else "")
        )
        self.engine.report_outcome(outcome)

    # =========================================================================
    # QUERIES
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._running

    def has_pending_work(self) -> bool:
        return bool(self._in_flight) or any(self._queues.values())

    def queued_count(self, pool_name: str) -> int:
        return len(self._queues.get(pool_name, ()))

    def in_flight_count(self, pool_name: str) -> int:
        return sum(1 for flight in self._in_flight.values() if flight.pool.name == pool_name)

    def pool_stats(self, pool_name: str) -> Optional[Dict[str, Any]]:
        pool = self.group.get(pool_name)
        if pool is None:
            return None
        stats = pool.stats()
        stats["queued_tasks"] = self.queued_count(pool_name)
        stats["in_flight_tasks"] = self.in_flight_count(pool_name)
        return stats

    def stats(self) -> Dict[str, Any]:
        """Get dispatcher statistics."""
        uptime_seconds = None
        if self._started_at:
            uptime_seconds = (datetime.now(timezone.utc) - self._started_at).total_seconds()

        return {
            "running": self._running,
            "cancelling": self._cancelling,
            "started_at": self._started_at.isoformat() if self._started_at else None,
            "uptime_seconds": uptime_seconds,
            "ticks": self._ticks,
            "tasks_dispatched": self._dispatched,
            "tasks_requeued": self._requeued,
            "stale_results": self._stale_results,
            "duplicates_rejected": self._duplicates_rejected,
            "outcomes": dict(self._outcomes),
            "default_pool": self.group.default_pool,
            "pools": {pool.name: self.pool_stats(pool.name) for pool in self.group},
        }


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["Dispatcher", "QueuedTask", "InFlight"]
