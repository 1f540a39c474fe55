# ============================================================================
# WORKER MAIN ENTRY POINT
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Core - Persistent worker process entry point
# PURPOSE: Serve tasks inside a batch job until the job is cancelled
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Worker Main Entry Point

Runs inside every worker batch job. Starts an aiohttp server, registers
its address with the controller, then executes tasks one at a time until
the scheduler signals the job (SIGTERM on cancel or walltime).

Usage:
    python -m worker.main --worker-id big-3f2a91c0 --pool big \\
        --controller-url http://login01:8000

Environment Variables:
    POOL_WORKER_ID / POOL_NAME / POOL_CONTROLLER_URL: defaults for the flags
    WORKER_PORT: Port to bind (0 = ephemeral)
    WORKER_ADVERTISE_HOST: Hostname the controller should connect to
    HANDLER_MODULES: Comma-separated list of extra handler modules to load
    WORKER_LOG_LEVEL / WORKER_LOG_FORMAT: Logging (json for structured)
"""

import argparse
import asyncio
import importlib
import logging
import os
import signal
import sys
from typing import List, Optional

from aiohttp import web
from pydantic import ValidationError

from core.logging import configure_logging, log_context
from core.models import TaskMessage
from worker.contracts import WorkerConfig
from worker.executor import TaskExecutor
from worker.reporter import ControllerClient, RegistrationError
from __version__ import __version__, BUILD_DATE

logger = logging.getLogger(__name__)

CONFIG_KEY = web.AppKey("config", WorkerConfig)
EXECUTOR_KEY = web.AppKey("executor", TaskExecutor)


# ============================================================================
# HTTP HANDLERS
# ============================================================================

async def execute_handler(request: web.Request) -> web.Response:
    """Run one task and return its TaskResult."""
    config = request.app[CONFIG_KEY]
    executor = request.app[EXECUTOR_KEY]

    try:
        message = TaskMessage.model_validate(await request.json())
    except (ValidationError, ValueError) as e:
        return web.json_response({"error": f"invalid task message: {e}"}, status=400)

    if message.worker_id != config.worker_id:
        return web.json_response(
            {"error": f"task addressed to {message.worker_id}, this is {config.worker_id}"},
            status=409,
        )
    if executor.busy:
        return web.json_response(
            {"error": f"worker busy with task {executor.current_task_id}"},
            status=409,
        )

    with log_context(task_id=message.task_id, worker_id=config.worker_id, pool_name=config.pool_name):
        result = await executor.execute(message)
    return web.json_response(result.model_dump(mode="json"))


async def health_handler(request: web.Request) -> web.Response:
    config = request.app[CONFIG_KEY]
    executor = request.app[EXECUTOR_KEY]
    return web.json_response({
        "status": "healthy",
        "version": __version__,
        "build_date": BUILD_DATE,
        "worker_id": config.worker_id,
        "pool_name": config.pool_name,
        "busy": executor.busy,
        "current_task_id": executor.current_task_id,
        "tasks_executed": executor.tasks_executed,
    })


def create_app(config: WorkerConfig, executor: Optional[TaskExecutor] = None) -> web.Application:
    """Build the worker's aiohttp application."""
    app = web.Application()
    app[CONFIG_KEY] = config
    app[EXECUTOR_KEY] = executor or TaskExecutor(
        worker_id=config.worker_id,
        pool_name=config.pool_name,
        timeout_grace_seconds=config.timeout_grace_seconds,
    )
    app.router.add_post("/execute", execute_handler)
    app.router.add_get("/health", health_handler)
    return app


# ============================================================================
# HANDLER LOADING
# ============================================================================

def load_handlers(modules: List[str]) -> int:
    """Import handler modules so their @register_handler calls run."""
    loaded = 0
    for module_name in modules:
        try:
            importlib.import_module(module_name)
            logger.info(f"Loaded handler module: {module_name}")
            loaded += 1
        except ImportError as e:
            logger.warning(f"Failed to load handler module {module_name}: {e}")

    from handlers.registry import list_handlers
    handlers = list_handlers()
    logger.info(f"Registered {len(handlers)} handlers: {[h['name'] for h in handlers]}")
    return loaded


# ============================================================================
# MAIN
# ============================================================================

def parse_args(argv: Optional[List[str]] = None) -> WorkerConfig:
    config = WorkerConfig.from_env()
    parser = argparse.ArgumentParser(description="Persistent pool worker")
    parser.add_argument("--worker-id", default=config.worker_id)
    parser.add_argument("--pool", default=config.pool_name)
    parser.add_argument("--controller-url", default=config.controller_url)
    parser.add_argument("--port", type=int, default=config.port)
    args = parser.parse_args(argv)

    config.worker_id = args.worker_id
    config.pool_name = args.pool
    config.controller_url = args.controller_url
    config.port = args.port
    return config


async def main(config: WorkerConfig) -> int:
    """Serve until SIGTERM/SIGINT. Returns the process exit code."""
    logger.info("=" * 60)
    logger.info(f"Pool Worker Starting v{__version__}: {config.worker_id} (pool={config.pool_name})")
    logger.info("=" * 60)

    load_handlers(config.handler_modules)

    runner = web.AppRunner(create_app(config))
    await runner.setup()
    site = web.TCPSite(runner, config.host, config.port)
    await site.start()

    port = runner.addresses[0][1]
    address = config.address_for(port)
    logger.info(f"Worker listening on {address}")

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop_event.set)

    client: Optional[ControllerClient] = None
    exit_code = 0
    try:
        if config.requires_registration:
            client = ControllerClient(
                config.controller_url,
                timeout_seconds=config.register_timeout_seconds,
                max_attempts=config.register_attempts,
            )
            await client.register(config.worker_id, address, pool_name=config.pool_name)

        await stop_event.wait()
        logger.info("Stop signal received")

    except RegistrationError as e:
        logger.error(f"Could not register with controller: {e}")
        exit_code = 1

    finally:
        if client:
            await client.close()
        await runner.cleanup()

    logger.info("Pool Worker stopped")
    return exit_code


def run(argv: Optional[List[str]] = None) -> None:
    """Synchronous entry point."""
    configure_logging(
        level=os.environ.get("WORKER_LOG_LEVEL", "INFO"),
        json_output=os.environ.get("WORKER_LOG_FORMAT", "").lower() == "json",
    )
    config = parse_args(argv)
    sys.exit(asyncio.run(main(config)))


if __name__ == "__main__":
    run()
