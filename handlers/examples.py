# ============================================================================
# EXAMPLE HANDLERS
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Examples - Built-in handlers for smoke tests and demos
# PURPOSE: Handlers every worker ships with
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Example Handlers

Small handlers used to smoke-test a pool end to end: a task with
{"handler": "echo"} (or no handler at all) runs echo_handler.
"""

import asyncio
import logging
import os
import socket

from handlers.registry import (
    register_handler,
    HandlerContext,
    HandlerResult,
)

logger = logging.getLogger(__name__)


@register_handler("echo", description="Echoes the task payload back as output")
async def echo_handler(ctx: HandlerContext) -> HandlerResult:
    logger.info(f"Echo handler called for task {ctx.task_id}")
    return HandlerResult.success_result(
        output={
            "echoed_params": ctx.params,
            "handler": ctx.handler,
            "task_id": ctx.task_id,
            "worker_id": ctx.worker_id,
        }
    )


@register_handler("sleep", description="Sleeps for duration_seconds (for testing)")
async def sleep_handler(ctx: HandlerContext) -> HandlerResult:
    """
    Sleep handler for testing deadlines and backpressure.

    Params:
        duration_seconds: How long to sleep (default 1)
    """
    duration = float(ctx.params.get("duration_seconds", 1))
    logger.info(f"Sleeping for {duration} seconds")

    await asyncio.sleep(duration)

    return HandlerResult.success_result(output={"slept_for": duration})


@register_handler("fail", description="Always fails (for testing error handling)")
async def fail_handler(ctx: HandlerContext) -> HandlerResult:
    error_message = ctx.params.get("error_message", "Intentional failure for testing")
    return HandlerResult.failure_result(error_message)


@register_handler("node_info", description="Reports where the worker is running")
def node_info_handler(ctx: HandlerContext) -> HandlerResult:
    """Runs in a thread; reports host and scheduler job id."""
    job_id = (
        os.environ.get("SLURM_JOB_ID")
        or os.environ.get("PBS_JOBID")
        or os.environ.get("JOB_ID")
        or os.environ.get("LSB_JOBID")
    )
    return HandlerResult.success_result(
        output={
            "hostname": socket.gethostname(),
            "pid": os.getpid(),
            "cpu_count": os.cpu_count(),
            "batch_job_id": job_id,
            "pool_name": ctx.pool_name,
        }
    )


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "echo_handler",
    "sleep_handler",
    "fail_handler",
    "node_info_handler",
]
