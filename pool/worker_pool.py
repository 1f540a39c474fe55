# ============================================================================
# WORKER POOL
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Core - Bounded set of persistent workers for one resource profile
# PURPOSE: Launch, track, poll and tear down worker batch jobs
# CREATED: 19 OCT 2026
# ============================================================================
"""
Worker Pool

One pool per resource profile. The pool is the single writer of its
workers' state: every transition goes through a synchronous mark_* method
on the event loop, so no two activities interleave inside a transition.
Anything that awaits (submission, poll, cancel) re-checks worker state
afterwards.

Capacity:
    live workers (state != dead) never exceed max_workers. acquire_worker()
    never blocks; when no worker is idle it launches new PENDING workers
    (bounded by demand and capacity) and returns None.

Background activity:
    - one submission task per launched worker (retry with backoff)
    - run_poll_loop(): periodic poll of every live batch job, dropping
      DEAD records older than dead_worker_retention_seconds
"""

import asyncio
import logging
import shlex
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Set

from core.config import Defaults, get_defaults
from core.contracts import JobState, PoolStatus, WorkerState
from core.errors import (
    PollTimeout,
    SchedulerCommandError,
    SubmissionError,
    WorkerLostError,
)
from core.logging import log_checkpoint, log_context
from core.models import Worker, WorkerPoolConfig
from scheduler import BatchSchedulerAdapter

logger = logging.getLogger(__name__)


PoolListener = Callable[["WorkerPool"], None]


class WorkerPool:
    """
    Persistent workers for one resource profile.

    Usage:
        pool = WorkerPool(config, get_adapter(SchedulerKind.SLURM))
        worker = pool.acquire_worker(demand=len(queue))
        if worker:
            pool.mark_busy(worker, task.task_id)
            ...
            pool.mark_idle(worker)
    """

    def __init__(
        self,
        config: WorkerPoolConfig,
        adapter: BatchSchedulerAdapter,
        controller_url: Optional[str] = None,
        worker_command: str = "python -m worker.main",
        shebang: str = "#!/bin/bash",
        requires_registration: bool = True,
        defaults: Optional[Defaults] = None,
    ):
        """
        Build a pool. Validates script_lines against the adapter.

        Raises:
            ScriptOrderError: directive after a command in script_lines
            PoolConfigurationError: script_lines/extra_flags override a
                generated directive
        """
        adapter.validate_config(config)

        self.config = config
        self.adapter = adapter
        self.controller_url = controller_url
        self.worker_command = worker_command
        self.shebang = shebang
        self.requires_registration = requires_registration
        self.defaults = defaults or get_defaults()

        self.status = PoolStatus.ACTIVE
        self.last_error: Optional[SubmissionError] = None

        self.workers: Dict[str, Worker] = {}
        self._submissions: Set[asyncio.Task] = set()
        self._listeners: List[PoolListener] = []
        self._stop_event = asyncio.Event()
        self._stopped = asyncio.Event()

        # Metrics
        self._jobs_submitted = 0
        self._submit_failures = 0
        self._workers_lost = 0

    @property
    def name(self) -> str:
        return self.config.name

    def __repr__(self) -> str:
        return f"WorkerPool(name={self.name!r}, status={self.status.value}, live={self.live_count})"

    # =========================================================================
    # QUERIES
    # =========================================================================

    def live_workers(self) -> List[Worker]:
        return [w for w in self.workers.values() if w.state.is_live()]

    @property
    def live_count(self) -> int:
        return len(self.live_workers())

    @property
    def starting_count(self) -> int:
        return sum(1 for w in self.workers.values() if w.state.is_starting())

    def idle_workers(self) -> List[Worker]:
        return [w for w in self.workers.values() if w.state == WorkerState.IDLE]

    def get_worker(self, worker_id: str) -> Optional[Worker]:
        return self.workers.get(worker_id)

    def add_listener(self, listener: PoolListener) -> None:
        """Called when a worker becomes idle or the pool status changes."""
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in self._listeners:
            try:
                listener(self)
            except Exception as e:
                logger.error(f"Pool '{self.name}' listener failed: {e}")

    # =========================================================================
    # ACQUIRE
    # =========================================================================

    def acquire_worker(self, demand: int = 1) -> Optional[Worker]:
        """
        Hand out an idle worker, or start new ones.

        Returns the longest-idle worker if there is one. Otherwise launches
        up to (demand - starting) new workers within the remaining capacity
        and returns None. Never blocks.
        """
        if not self.status.accepts_tasks():
            return None

        idle = self.idle_workers()
        if idle:
            return min(idle, key=lambda w: w.idle_since or w.launch_time)

        shortfall = demand - self.starting_count
        capacity = self.config.max_workers - self.live_count
        for _ in range(max(0, min(shortfall, capacity))):
            self._launch_worker()
        return None

    def ensure_minimum(self) -> int:
        """Launch workers up to min_workers. Returns how many were launched."""
        if not self.status.accepts_tasks():
            return 0
        missing = self.config.min_workers - self.live_count
        for _ in range(max(0, missing)):
            self._launch_worker()
        return max(0, missing)

    # =========================================================================
    # TRANSITIONS (single writer)
    # =========================================================================

    def mark_busy(self, worker: Worker, task_id: str) -> None:
        self._check_owned(worker)
        worker.transition(WorkerState.BUSY, task_id=task_id)
        logger.debug(f"Worker {worker.worker_id} busy with task {task_id}")

    def mark_idle(self, worker: Worker) -> None:
        self._check_owned(worker)
        was_busy = worker.state == WorkerState.BUSY
        worker.transition(WorkerState.IDLE)
        if was_busy:
            worker.tasks_completed += 1
        self._notify()

    def mark_dead(self, worker: Worker, reason: str) -> Optional[str]:
        """
        Move a worker to DEAD.

        Returns:
            The task id the worker was running, if any. The caller decides
            whether to requeue or fail it.
        """
        self._check_owned(worker)
        if worker.state == WorkerState.DEAD:
            return None

        task_id = worker.current_task_id
        worker.transition(WorkerState.DEAD, reason=reason)

        with log_context(pool_name=self.name, worker_id=worker.worker_id,
                         batch_job_id=worker.batch_job_id):
            logger.warning(
                f"Worker {worker.worker_id} dead: {reason}"
                + (f" (interrupted task {task_id})" if task_id else "")
            )
            log_checkpoint("worker_dead", {"reason": reason, "task_id": task_id}, logger=logger)

        # Keep the floor, but never while tearing down
        launched = self.ensure_minimum()
        if launched:
            logger.info(f"Pool '{self.name}' below min_workers, launched {launched} replacement(s)")

        self._notify()
        return task_id

    def register_worker(self, worker_id: str, address: Optional[str] = None) -> Worker:
        """
        Record that a worker process is up and reachable.

        A registration that beats the first RUNNING poll promotes the
        worker straight through RUNNING to IDLE.

        Raises:
            KeyError: unknown worker id
            ValueError: worker is terminating or dead
        """
        worker = self.workers.get(worker_id)
        if worker is None:
            raise KeyError(worker_id)
        if not worker.state.is_live() or worker.state == WorkerState.TERMINATING:
            raise ValueError(f"Worker {worker_id} is {worker.state.value}, cannot register")

        worker.address = address
        if worker.state == WorkerState.PENDING:
            worker.transition(WorkerState.RUNNING)
        if worker.state == WorkerState.RUNNING:
            worker.transition(WorkerState.IDLE)
            logger.info(f"Worker {worker_id} registered at {address}, now idle")
            self._notify()
        return worker

    def _promote_running(self, worker: Worker) -> None:
        worker.transition(WorkerState.RUNNING)
        logger.info(f"Worker {worker.worker_id} running (job {worker.batch_job_id})")
        if not self.requires_registration or worker.address:
            worker.transition(WorkerState.IDLE)
            self._notify()

    def _check_owned(self, worker: Worker) -> None:
        if self.workers.get(worker.worker_id) is not worker:
            raise ValueError(f"Worker {worker.worker_id} does not belong to pool '{self.name}'")

    def _mark_degraded(self, error: SubmissionError) -> None:
        self.last_error = error
        if self.status == PoolStatus.ACTIVE:
            self.status = PoolStatus.DEGRADED
            logger.error(f"Pool '{self.name}' degraded: {error}")
            self._notify()

    # =========================================================================
    # SUBMISSION
    # =========================================================================

    def launch_command(self, worker_id: str) -> str:
        command = (
            f"{self.worker_command} --worker-id {shlex.quote(worker_id)} "
            f"--pool {shlex.quote(self.name)}"
        )
        if self.controller_url:
            command += f" --controller-url {shlex.quote(self.controller_url)}"
        return command

    def _launch_worker(self) -> Worker:
        worker = Worker.new(self.name)
        self.workers[worker.worker_id] = worker
        task = asyncio.create_task(
            self._submit_worker(worker),
            name=f"submit-{worker.worker_id}",
        )
        self._submissions.add(task)
        task.add_done_callback(self._submissions.discard)
        logger.info(f"Pool '{self.name}' launching worker {worker.worker_id}")
        return worker

    async def _submit_worker(self, worker: Worker) -> None:
        """Submit one worker's batch job, retrying with backoff."""
        script = self.adapter.build_script(
            self.config,
            worker.worker_id,
            self.launch_command(worker.worker_id),
            shebang=self.shebang,
        )
        retry = self.defaults.retry
        last_error: Optional[SubmissionError] = None

        with log_context(pool_name=self.name, worker_id=worker.worker_id):
            for attempt in range(retry.submit_max_attempts):
                if not worker.state.is_live() or self._stop_event.is_set():
                    return

                try:
                    job_id = await self.adapter.submit(script)
                except SubmissionError as e:
                    last_error = e
                    self._submit_failures += 1
                    delay = retry.submit_delay(attempt)
                    logger.warning(
                        f"Submission attempt {attempt + 1}/{retry.submit_max_attempts} "
                        f"for {worker.worker_id} failed: {e} (retry in {delay:.1f}s)"
                    )
                    if attempt + 1 < retry.submit_max_attempts and await self._wait_stop(delay):
                        return
                    continue

                worker.batch_job_id = job_id
                self._jobs_submitted += 1
                if not worker.state.is_live():
                    # Killed while the submit command was in flight
                    await self.cancel_job(job_id)
                return

        if last_error is None:
            last_error = SubmissionError("no submission attempts configured", pool_name=self.name)
        self._mark_degraded(last_error)
        if worker.state.is_live():
            self.mark_dead(worker, f"submission failed: {last_error}")

    async def _wait_stop(self, timeout: float) -> bool:
        """Sleep up to timeout. True if the pool was stopped meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def cancel_job(self, job_id: str) -> None:
        """Best-effort cancel; errors are logged, never raised."""
        try:
            await asyncio.wait_for(
                self.adapter.cancel(job_id),
                timeout=self.defaults.timeouts.cancel_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Cancel of job {job_id} timed out")
        except SchedulerCommandError as e:
            logger.warning(f"Cancel of job {job_id} failed: {e}")

    def declare_lost(self, worker: Worker, reason: str) -> WorkerLostError:
        """Mark a worker dead unexpectedly. Does not touch its batch job."""
        job_id = worker.batch_job_id
        task_id = self.mark_dead(worker, reason)
        self._workers_lost += 1
        return WorkerLostError(self.name, worker.worker_id, reason, task_id=task_id, batch_job_id=job_id)

    async def lose_worker(self, worker: Worker, reason: str) -> WorkerLostError:
        """
        Declare a worker lost and cancel its job best-effort.

        Used when a worker stops answering while its batch job may still
        hold an allocation (missed deadline, transport failure, unknown
        polls).
        """
        error = self.declare_lost(worker, reason)
        if error.batch_job_id:
            await self.cancel_job(error.batch_job_id)
        return error

    # =========================================================================
    # POLLING
    # =========================================================================

    async def poll_once(
        self,
        on_lost: Optional[Callable[[WorkerLostError], Any]] = None,
    ) -> List[WorkerLostError]:
        """
        Poll every live worker that has a batch job.

        on_lost, when given, is called as soon as each loss is detected so
        the interrupted task is recovered before the next poll awaits.

        Returns:
            One WorkerLostError per worker that died unexpectedly.
        """
        lost: List[WorkerLostError] = []
        poll_timeout = self.defaults.poll.poll_timeout_seconds

        for worker in list(self.workers.values()):
            if not self._pollable(worker):
                continue
            if worker.next_poll_at and worker.next_poll_at > datetime.now(timezone.utc):
                continue

            job_id = worker.batch_job_id
            miss: Optional[str] = None
            state = JobState.UNKNOWN
            try:
                state = await asyncio.wait_for(self.adapter.poll(job_id), timeout=poll_timeout)
            except asyncio.TimeoutError:
                miss = str(PollTimeout(job_id, poll_timeout))
            except SchedulerCommandError as e:
                miss = str(e)

            # State may have changed while we were awaiting
            if not self._pollable(worker) or worker.batch_job_id != job_id:
                continue

            if miss is None and state == JobState.UNKNOWN:
                miss = f"scheduler has no record of job {job_id}"

            if miss is not None:
                error = self._record_miss(worker, miss)
            else:
                error = self._apply_state(worker, state)
            if error is not None:
                lost.append(error)
                if on_lost is not None:
                    on_lost(error)
                if miss is not None and error.batch_job_id:
                    # The job may still hold an allocation
                    await self.cancel_job(error.batch_job_id)

        return lost

    def _pollable(self, worker: Worker) -> bool:
        return (
            worker.state.is_live()
            and worker.state != WorkerState.TERMINATING
            and worker.batch_job_id is not None
        )

    def _apply_state(self, worker: Worker, state: JobState) -> Optional[WorkerLostError]:
        worker.unknown_polls = 0
        worker.next_poll_at = None

        if state == JobState.RUNNING and worker.state == WorkerState.PENDING:
            self._promote_running(worker)
        elif state.is_terminal():
            return self.declare_lost(worker, f"batch job {worker.batch_job_id} {state.value}")
        return None

    def _record_miss(self, worker: Worker, reason: str) -> Optional[WorkerLostError]:
        retry = self.defaults.retry
        worker.unknown_polls += 1
        if worker.unknown_polls >= retry.unknown_poll_limit:
            return self.declare_lost(
                worker, f"{reason} ({worker.unknown_polls} consecutive polls)"
            )

        delay = retry.unknown_poll_delay(worker.unknown_polls)
        worker.next_poll_at = datetime.now(timezone.utc) + timedelta(seconds=delay)
        logger.warning(
            f"Worker {worker.worker_id} poll miss "
            f"{worker.unknown_polls}/{retry.unknown_poll_limit}: {reason} "
            f"(re-poll in {delay:.1f}s)"
        )
        return None

    def prune_dead(self, retention_seconds: Optional[float] = None) -> List[str]:
        """
        Drop DEAD workers that died more than retention_seconds ago.

        Returns:
            The pruned worker ids.
        """
        if retention_seconds is None:
            retention_seconds = self.defaults.poll.dead_worker_retention_seconds
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=retention_seconds)

        pruned = [
            worker_id for worker_id, worker in self.workers.items()
            if worker.state == WorkerState.DEAD
            and worker.died_at is not None
            and worker.died_at <= cutoff
        ]
        for worker_id in pruned:
            del self.workers[worker_id]
        if pruned:
            logger.debug(f"Pool '{self.name}' pruned {len(pruned)} dead worker record(s)")
        return pruned

    async def run_poll_loop(self, on_lost: Callable[[WorkerLostError], Any]) -> None:
        """
        Poll until the pool is shut down.

        on_lost is called synchronously for every worker that died.
        """
        interval = self.defaults.poll.poll_interval_seconds
        logger.info(f"Starting poll loop for pool '{self.name}' (interval={interval}s)")

        while not self._stop_event.is_set():
            try:
                await self.poll_once(on_lost)
                self.prune_dead()
            except Exception as e:
                logger.exception(f"Poll loop error in pool '{self.name}': {e}")

            if await self._wait_stop(interval):
                break

        logger.info(f"Poll loop stopped for pool '{self.name}'")

    # =========================================================================
    # SHUTDOWN
    # =========================================================================

    async def shutdown(self, cancel_jobs: bool = True) -> None:
        """
        Terminate every live worker.

        Waits for in-flight submissions to settle, moves live workers to
        TERMINATING, cancels their jobs concurrently (best-effort) and
        marks them DEAD.
        """
        if self.status == PoolStatus.STOPPED:
            return
        if self.status == PoolStatus.SHUTTING_DOWN:
            await self._stopped.wait()
            return

        self.status = PoolStatus.SHUTTING_DOWN
        self._stop_event.set()
        logger.info(f"Shutting down pool '{self.name}' ({self.live_count} live workers)")

        if self._submissions:
            await asyncio.gather(*list(self._submissions), return_exceptions=True)

        targets = self.live_workers()
        for worker in targets:
            if worker.state != WorkerState.TERMINATING:
                worker.transition(WorkerState.TERMINATING)

        if cancel_jobs:
            await asyncio.gather(*(
                self.cancel_job(w.batch_job_id) for w in targets if w.batch_job_id
            ))

        for worker in targets:
            if worker.state != WorkerState.DEAD:
                worker.transition(WorkerState.DEAD, reason="pool shutdown")

        self.status = PoolStatus.STOPPED
        self._stopped.set()
        logger.info(f"Pool '{self.name}' stopped")

    # =========================================================================
    # STATS
    # =========================================================================

    def stats(self) -> Dict[str, Any]:
        counts = {state.value: 0 for state in WorkerState}
        for worker in self.workers.values():
            counts[worker.state.value] += 1

        return {
            "name": self.name,
            "status": self.status.value,
            "scheduler": self.adapter.kind.value,
            "max_workers": self.config.max_workers,
            "min_workers": self.config.min_workers,
            "live_workers": self.live_count,
            "workers": counts,
            "jobs_submitted": self._jobs_submitted,
            "submit_failures": self._submit_failures,
            "workers_lost": self._workers_lost,
            "last_error": str(self.last_error) if self.last_error else None,
        }


__all__ = ["WorkerPool", "PoolListener"]
