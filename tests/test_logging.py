# ============================================================================
# STRUCTURED LOGGING TESTS
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Tests - Log context and formatters
# PURPOSE: Verify context fields reach JSON and human-readable output
# CREATED: 19 OCT 2026
# ============================================================================
"""
Structured Logging Tests

Run with:
    pytest tests/test_logging.py -v
"""

import asyncio
import json
import logging

from core.logging import (
    ComponentType,
    HumanFormatter,
    StructuredFormatter,
    get_current_context,
    get_logger,
    log_checkpoint,
    log_context,
)


def _record(message="Worker idle", data=None):
    record = logging.LogRecord("pool.worker_pool", logging.INFO, __file__, 10, message, None, None)
    if data is not None:
        record.data = data
    return record


class TestLogContext:

    def test_nested_context_inherits(self):
        with log_context(pool_name="big"):
            with log_context(worker_id="big-3f2a", extra={"attempt": 2}):
                context = get_current_context()
                assert context.pool_name == "big"
                assert context.to_dict() == {"pool_name": "big", "worker_id": "big-3f2a", "attempt": 2}
            assert get_current_context().worker_id is None
        assert get_current_context().to_dict() == {}

    def test_concurrent_tasks_keep_their_own_context(self):
        async def run(task_id):
            with log_context(task_id=task_id):
                await asyncio.sleep(0.01)
                return get_current_context().task_id

        async def main():
            return await asyncio.gather(run("t1"), run("t2"))

        assert asyncio.run(main()) == ["t1", "t2"]


class TestFormatters:

    def test_json_output_carries_context(self):
        with log_context(pool_name="small", task_id="t1"):
            line = StructuredFormatter(include_source=False).format(_record(data={"attempt": 1}))

        body = json.loads(line)
        assert body["message"] == "Worker idle"
        assert body["context"] == {"pool_name": "small", "task_id": "t1"}
        assert body["data"] == {"attempt": 1}
        assert "source" not in body

    def test_human_output(self):
        with log_context(pool_name="small", worker_id="small-1"):
            line = HumanFormatter().format(_record())
        assert "[pool=small, worker=small-1]" in line
        assert line.endswith("pool.worker_pool [pool=small, worker=small-1]: Worker idle")


class TestLoggers:

    def test_extra_moves_under_data(self, caplog):
        logger = get_logger("test.pool", component=ComponentType.POOL)
        with caplog.at_level(logging.INFO, logger="test.pool"):
            logger.info("Submitted job", extra={"batch_job_id": "1000"})

        record = caplog.records[-1]
        assert record.data == {"batch_job_id": "1000", "component": "pool"}

    def test_checkpoint(self, caplog):
        with caplog.at_level(logging.INFO, logger="checkpoint"):
            with log_context(pool_name="big"):
                log_checkpoint("worker_dead", {"reason": "node failure"})

        record = caplog.records[-1]
        assert record.getMessage() == "CHECKPOINT: worker_dead"
        assert record.data["checkpoint"] == "worker_dead"
        assert record.data["pool_name"] == "big"
        assert record.data["data"] == {"reason": "node failure"}
