# ============================================================================
# MODEL TESTS
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Tests - Pydantic models and state machines
# PURPOSE: Validate resource specs, pool configs and worker transitions
# CREATED: 19 OCT 2026
# ============================================================================
"""
Model Tests

Run with:
    pytest tests/test_models.py -v
"""

import pytest
from pydantic import ValidationError

from core.config import RetryDefaults, TimeoutDefaults
from core.contracts import JobState, OutcomeStatus, PoolStatus, WorkerState
from core.errors import TaskFailed, WorkerLostError
from core.models import (
    ClusterConfig,
    ResourceSpec,
    Task,
    TaskMessage,
    TaskOutcome,
    Worker,
    WorkerPoolConfig,
)


class TestResourceSpec:

    def test_defaults(self):
        spec = ResourceSpec()
        assert spec.cpus == 1
        assert spec.memory_gb == 1.0
        assert spec.gpus == 0
        assert spec.walltime is None

    def test_memory_rendering(self):
        assert ResourceSpec(memory_gb=100).memory_str() == "100G"
        assert ResourceSpec(memory_gb=1.5).memory_str() == "1536M"
        assert ResourceSpec(memory_gb=0.5).memory_mb == 512

    def test_walltime_validation(self):
        assert ResourceSpec(walltime="24:00:00").walltime_minutes == 1440
        assert ResourceSpec(walltime="00:30:01").walltime_minutes == 31
        with pytest.raises(ValidationError):
            ResourceSpec(walltime="1 day")

    def test_rejects_zero_cpus(self):
        with pytest.raises(ValidationError):
            ResourceSpec(cpus=0)

    def test_modules_alias(self):
        spec = ResourceSpec.model_validate({"modules": ["module load cuda/12.2", "  "]})
        assert spec.setup_lines == ("module load cuda/12.2",)

    def test_frozen(self):
        spec = ResourceSpec()
        with pytest.raises(ValidationError):
            spec.cpus = 4


class TestWorkerPoolConfig:

    def test_resources_alias(self):
        config = WorkerPoolConfig.model_validate(
            {"name": "big", "max_workers": 1, "resources": {"cpus": 8, "memory_gb": 100}}
        )
        assert config.resource_spec.cpus == 8

    def test_min_exceeds_max(self):
        with pytest.raises(ValidationError, match="min_workers"):
            WorkerPoolConfig(name="small", max_workers=1, min_workers=2)

    def test_name_pattern(self):
        with pytest.raises(ValidationError):
            WorkerPoolConfig(name="has space")

    def test_multiline_script_line_rejected(self):
        with pytest.raises(ValidationError):
            WorkerPoolConfig(name="small", script_lines=("echo a\necho b",))


class TestClusterConfig:

    def test_duplicate_pool_names(self):
        with pytest.raises(ValidationError, match="duplicate"):
            ClusterConfig(pools=(WorkerPoolConfig(name="a"), WorkerPoolConfig(name="a")))

    def test_unknown_default_pool(self):
        with pytest.raises(ValidationError, match="default_pool"):
            ClusterConfig(pools=(WorkerPoolConfig(name="a"),), default_pool="b")

    def test_get_pool(self):
        config = ClusterConfig(pools=(WorkerPoolConfig(name="a"), WorkerPoolConfig(name="b")))
        assert config.get_pool("b").name == "b"
        assert config.get_pool("c") is None

    def test_requires_a_pool(self):
        with pytest.raises(ValidationError):
            ClusterConfig(pools=())


class TestWorkerTransitions:

    def test_new_worker_is_pending(self):
        worker = Worker.new("small")
        assert worker.state == WorkerState.PENDING
        assert worker.worker_id.startswith("small-")
        assert worker.is_live

    def test_happy_path(self):
        worker = Worker.new("small")
        worker.transition(WorkerState.RUNNING)
        worker.transition(WorkerState.IDLE)
        worker.transition(WorkerState.BUSY, task_id="t1")
        assert worker.current_task_id == "t1"
        assert worker.idle_since is None

        worker.transition(WorkerState.IDLE)
        assert worker.current_task_id is None
        assert worker.idle_since is not None

    def test_busy_requires_task(self):
        worker = Worker.new("small")
        worker.transition(WorkerState.RUNNING)
        worker.transition(WorkerState.IDLE)
        with pytest.raises(ValueError, match="task id"):
            worker.transition(WorkerState.BUSY)

    def test_pending_cannot_go_busy(self):
        worker = Worker.new("small")
        with pytest.raises(ValueError, match="cannot transition"):
            worker.transition(WorkerState.BUSY, task_id="t1")

    def test_dead_is_terminal(self):
        worker = Worker.new("small")
        worker.transition(WorkerState.DEAD, reason="node failure")
        assert worker.death_reason == "node failure"
        assert not worker.is_live
        with pytest.raises(ValueError):
            worker.transition(WorkerState.RUNNING)

    def test_dead_clears_task(self):
        worker = Worker.new("small")
        worker.transition(WorkerState.RUNNING)
        worker.transition(WorkerState.IDLE)
        worker.transition(WorkerState.BUSY, task_id="t1")
        worker.transition(WorkerState.DEAD)
        assert worker.current_task_id is None


class TestContracts:

    def test_unknown_is_not_terminal(self):
        assert not JobState.UNKNOWN.is_terminal()
        assert JobState.COMPLETED.is_terminal()
        assert JobState.FAILED.is_terminal()

    def test_only_active_pools_accept_tasks(self):
        assert PoolStatus.ACTIVE.accepts_tasks()
        assert not PoolStatus.DEGRADED.accepts_tasks()
        assert not PoolStatus.STOPPED.accepts_tasks()

    def test_live_states(self):
        assert WorkerState.TERMINATING.is_live()
        assert not WorkerState.DEAD.is_live()
        assert WorkerState.RUNNING.is_starting()
        assert not WorkerState.IDLE.is_starting()


class TestTaskModels:

    def test_handler_defaults_to_echo(self):
        assert Task(task_id="t1", resource_profile_tag="small").handler == "echo"
        task = Task(task_id="t1", resource_profile_tag="small", payload={"handler": "sleep"})
        assert task.handler == "sleep"

    def test_message_for_task(self):
        task = Task(
            task_id="t1",
            resource_profile_tag="big",
            payload={"handler": "sleep", "duration_seconds": 2},
            dependencies=frozenset({"t0"}),
        )
        message = TaskMessage.for_task(task, pool_name="big", worker_id="big-1", timeout_seconds=60, attempt=2)
        assert message.handler == "sleep"
        assert message.payload["duration_seconds"] == 2
        assert message.attempt == 2

    def test_failed_outcome_carries_error(self):
        lost = WorkerLostError("big", "big-1", "node failure", task_id="t1")
        outcome = TaskOutcome.failed("t1", "big", TaskFailed("t1", "big", 3, cause=lost), attempts=3)
        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.error_type == "TaskFailed"
        assert "node failure" in outcome.error_message
        assert outcome.pool_name == "big"
        assert not outcome.success


class TestDefaults:

    def test_submit_backoff_is_capped(self):
        retry = RetryDefaults(submit_backoff_seconds=2.0, submit_backoff_max_seconds=60.0)
        assert retry.submit_delay(0) == 2.0
        assert retry.submit_delay(1) == 4.0
        assert retry.submit_delay(10) == 60.0

    def test_unknown_poll_backoff(self):
        retry = RetryDefaults(unknown_poll_backoff_seconds=5.0)
        assert retry.unknown_poll_delay(1) == 5.0
        assert retry.unknown_poll_delay(2) == 10.0

    def test_pool_timeout_override(self):
        timeouts = TimeoutDefaults(task_timeout_seconds=3600)
        assert timeouts.get_task_timeout() == 3600
        assert timeouts.get_task_timeout(120) == 120

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("POOL_LOST_TASK_MAX_RETRIES", "5")
        assert RetryDefaults.from_env().lost_task_max_retries == 5
