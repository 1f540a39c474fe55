# ============================================================================
# SHARED TEST FIXTURES
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Tests - Fakes for scheduler commands and workers
# PURPOSE: Run pools and the dispatch loop without a real batch scheduler
# CREATED: 19 OCT 2026
# ============================================================================
"""
Shared fixtures.

FakeCommandRunner  - canned CommandResults per command, records every call
FakeScheduler      - Slurm script generation with an in-memory job table
FakeTransport      - in-process worker transport with pluggable behaviour
fast_defaults      - zero backoff, millisecond loop intervals
"""

import asyncio
from collections import defaultdict, deque
from typing import Awaitable, Callable, Deque, Dict, List, Optional, Tuple

import pytest

from core.config import (
    Defaults,
    PollDefaults,
    RetryDefaults,
    TimeoutDefaults,
    reset_defaults,
)
from core.contracts import JobState
from core.errors import SubmissionError
from core.models import GeneratedScript, TaskMessage, TaskResult, Worker
from orchestrator.transport import WorkerTransport
from scheduler.commands import CommandResult
from scheduler.slurm import SlurmAdapter


# ============================================================================
# SCHEDULER COMMANDS
# ============================================================================

class FakeCommandRunner:
    """
    Stands in for CommandRunner.

    Responses are queued per executable (argv[0]) and consumed in order;
    the last response for a command is reused once the queue runs dry.
    """

    def __init__(self):
        self._responses: Dict[str, Deque] = defaultdict(deque)
        self.calls: List[Tuple[List[str], Optional[str]]] = []

    def add(
        self,
        command: str,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        raises: Optional[BaseException] = None,
    ) -> "FakeCommandRunner":
        self._responses[command].append((returncode, stdout, stderr, raises))
        return self

    async def run(self, argv, stdin=None, timeout=None) -> CommandResult:
        self.calls.append((list(argv), stdin))
        queue = self._responses.get(argv[0])
        if not queue:
            raise AssertionError(f"unexpected command: {argv}")

        returncode, stdout, stderr, raises = queue[0] if len(queue) == 1 else queue.popleft()
        if raises is not None:
            raise raises
        return CommandResult(argv=list(argv), returncode=returncode, stdout=stdout, stderr=stderr)

    def argvs(self, command: str) -> List[List[str]]:
        return [argv for argv, _ in self.calls if argv[0] == command]


@pytest.fixture
def runner():
    return FakeCommandRunner()


class FakeScheduler(SlurmAdapter):
    """
    Slurm script generation over an in-memory job table.

    Jobs are RUNNING as soon as they are submitted unless start_state says
    otherwise. finish() moves a job to a terminal state.
    """

    def __init__(self, start_state: JobState = JobState.RUNNING, fail_submissions: bool = False):
        super().__init__(runner=None)
        self.start_state = start_state
        self.fail_submissions = fail_submissions
        self.states: Dict[str, JobState] = {}
        self.scripts: List[GeneratedScript] = []
        self.cancelled: List[str] = []
        self.submit_attempts = 0
        self._next_id = 1000

    async def submit(self, script: GeneratedScript) -> str:
        self.submit_attempts += 1
        if self.fail_submissions:
            raise SubmissionError(
                "sbatch: error: Batch job submission failed: Invalid account",
                pool_name=script.pool_name,
                worker_id=script.worker_id,
            )
        job_id = str(self._next_id)
        self._next_id += 1
        self.scripts.append(script)
        self.states[job_id] = self.start_state
        return job_id

    async def poll(self, job_id: str) -> JobState:
        return self.states.get(job_id, JobState.UNKNOWN)

    async def cancel(self, job_id: str) -> None:
        self.cancelled.append(job_id)
        if not self.states.get(job_id, JobState.UNKNOWN).is_terminal():
            self.states[job_id] = JobState.FAILED

    def finish(self, job_id: str, state: JobState = JobState.FAILED) -> None:
        self.states[job_id] = state

    def scripts_for(self, pool_name: str) -> List[GeneratedScript]:
        return [s for s in self.scripts if s.pool_name == pool_name]


@pytest.fixture
def scheduler():
    return FakeScheduler()


# ============================================================================
# WORKER TRANSPORT
# ============================================================================

Behaviour = Callable[[Worker, TaskMessage], Awaitable[TaskResult]]


class FakeTransport(WorkerTransport):
    """
    In-process transport. Each execution is recorded; the behaviour
    coroutine decides what the "worker" does. The default succeeds
    immediately and echoes the attempt number.
    """

    requires_registration = False

    def __init__(self, behaviour: Optional[Behaviour] = None, delay: float = 0.0):
        self.behaviour = behaviour
        self.delay = delay
        self.executions: List[Tuple[str, str, int]] = []
        self.running: Dict[str, str] = {}
        self.running_per_pool: Dict[str, int] = {}
        self.peak_running: Dict[str, int] = {}
        self.forgotten: List[str] = []
        self.closed = False

    async def execute(self, worker: Worker, message: TaskMessage) -> TaskResult:
        self.executions.append((message.task_id, worker.worker_id, message.attempt))
        assert message.task_id not in self.running, f"{message.task_id} running twice"
        self.running[message.task_id] = worker.worker_id
        pool = message.pool_name
        self.running_per_pool[pool] = self.running_per_pool.get(pool, 0) + 1
        self.peak_running[pool] = max(self.peak_running.get(pool, 0), self.running_per_pool[pool])
        try:
            if self.behaviour is not None:
                return await self.behaviour(worker, message)
            if self.delay:
                await asyncio.sleep(self.delay)
            return TaskResult.success_result(
                message.task_id,
                {"attempt": message.attempt, "worker_id": worker.worker_id},
                worker_id=worker.worker_id,
            )
        finally:
            self.running.pop(message.task_id, None)
            self.running_per_pool[pool] -= 1

    def forget(self, worker_id: str) -> None:
        self.forgotten.append(worker_id)

    async def close(self) -> None:
        self.closed = True

    def workers_for(self, task_id: str) -> List[str]:
        return [worker_id for tid, worker_id, _ in self.executions if tid == task_id]


# ============================================================================
# DEFAULTS
# ============================================================================

@pytest.fixture
def fast_defaults():
    return Defaults(
        retry=RetryDefaults(
            submit_max_attempts=3,
            submit_backoff_seconds=0.0,
            submit_backoff_max_seconds=0.0,
            lost_task_max_retries=2,
            unknown_poll_limit=3,
            unknown_poll_backoff_seconds=0.0,
        ),
        poll=PollDefaults(
            poll_interval_seconds=0.01,
            dispatch_interval_seconds=0.01,
            poll_timeout_seconds=1.0,
        ),
        timeouts=TimeoutDefaults(
            task_timeout_seconds=30,
            command_timeout_seconds=1.0,
            cancel_timeout_seconds=1.0,
        ),
    )


@pytest.fixture(autouse=True)
def _reset_global_defaults():
    reset_defaults()
    yield
    reset_defaults()


async def settle(condition: Callable[[], bool], timeout: float = 5.0) -> None:
    """Yield to the event loop until condition() holds."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not condition():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)
