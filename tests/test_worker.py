# ============================================================================
# WORKER PROCESS TESTS
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Tests - Executor, aiohttp server, transport and registration
# PURPOSE: Verify the worker side of the controller/worker contract
# CREATED: 19 OCT 2026
# ============================================================================
"""
Worker Process Tests

Covers:
1. TaskExecutor: success, unknown handler, handler failure, backstop timeout
2. Worker aiohttp app: /execute and /health
3. HTTPWorkerTransport against a live worker app; LocalWorkerTransport executors
4. ControllerClient registration

Run with:
    pytest tests/test_worker.py -v
"""

import asyncio

import pytest
from aiohttp import web
from aiohttp import test_utils

from core.errors import WorkerTransportError
from core.models import TaskMessage, Worker
from handlers.registry import (
    DuplicateHandlerError,
    HandlerContext,
    HandlerResult,
    list_handlers,
    register_handler,
)
from orchestrator import HTTPWorkerTransport, LocalWorkerTransport
from worker.contracts import WorkerConfig
from worker.executor import TaskExecutor
from worker.main import EXECUTOR_KEY, create_app, load_handlers, parse_args
from worker.reporter import ControllerClient, RegistrationError


@register_handler("test_worker_raises", description="Raises inside the handler")
async def raising_handler(ctx: HandlerContext) -> HandlerResult:
    raise RuntimeError(f"disk full on {ctx.worker_id}")


@register_handler("test_worker_sync", description="Plain function handler")
def sync_handler(ctx: HandlerContext) -> HandlerResult:
    return HandlerResult.success_result({"pool": ctx.pool_name, "attempt": ctx.attempt})


def _message(handler="echo", worker_id="small-1", timeout_seconds=30, **payload):
    return TaskMessage(
        task_id="t1",
        pool_name="small",
        worker_id=worker_id,
        handler=handler,
        payload={"handler": handler, **payload},
        timeout_seconds=timeout_seconds,
    )


# ============================================================================
# EXECUTOR
# ============================================================================

class TestTaskExecutor:

    def test_echo(self):
        executor = TaskExecutor(worker_id="small-1", pool_name="small")
        result = asyncio.run(executor.execute(_message(sample="NA12878")))

        assert result.success
        assert result.worker_id == "small-1"
        assert result.output["echoed_params"]["sample"] == "NA12878"
        assert result.duration_ms is not None
        assert executor.tasks_executed == 1
        assert not executor.busy

    def test_sync_handler_runs_in_thread(self):
        executor = TaskExecutor(worker_id="small-1", pool_name="small")
        result = asyncio.run(executor.execute(_message("test_worker_sync")))
        assert result.output == {"pool": "small", "attempt": 1}

    def test_unknown_handler(self):
        executor = TaskExecutor(worker_id="small-1")
        result = asyncio.run(executor.execute(_message("no_such_handler")))

        assert not result.success
        assert result.error_type == "HandlerNotFoundError"
        assert "no_such_handler" in result.error_message

    def test_handler_failure(self):
        executor = TaskExecutor(worker_id="small-1")
        result = asyncio.run(executor.execute(_message("fail", error_message="bad reference")))

        assert not result.success
        assert result.error_type == "HandlerFailure"
        assert result.error_message == "bad reference"

    def test_handler_exception_becomes_failure(self):
        executor = TaskExecutor(worker_id="small-1")
        result = asyncio.run(executor.execute(_message("test_worker_raises")))

        assert not result.success
        assert result.error_type == "HandlerFailure"
        assert "RuntimeError: disk full on small-1" in result.error_message

    def test_backstop_timeout(self):
        executor = TaskExecutor(worker_id="small-1", timeout_grace_seconds=0.1)
        result = asyncio.run(executor.execute(_message("sleep", timeout_seconds=1, duration_seconds=5)))

        assert not result.success
        assert result.error_type == "TaskTimeout"
        assert not executor.busy


class TestHandlerRegistry:

    def test_duplicate_registration(self):
        with pytest.raises(DuplicateHandlerError):
            register_handler("echo")(raising_handler)

    def test_builtin_handlers_listed(self):
        names = {h["name"] for h in list_handlers()}
        assert {"echo", "sleep", "fail", "node_info"} <= names

    def test_load_handlers_skips_missing_modules(self):
        assert load_handlers(["handlers.examples", "no_such_module_xyz"]) == 1


# ============================================================================
# WORKER HTTP APP
# ============================================================================

def _config(worker_id="small-1"):
    return WorkerConfig(worker_id=worker_id, pool_name="small", advertise_host="localhost")


class TestWorkerApp:

    def test_execute(self):
        async def run():
            async with test_utils.TestClient(test_utils.TestServer(create_app(_config()))) as client:
                response = await client.post("/execute", json=_message(sample="x").model_dump(mode="json"))
                return response.status, await response.json()

        status, body = asyncio.run(run())
        assert status == 200
        assert body["success"] is True
        assert body["task_id"] == "t1"

    def test_malformed_message(self):
        async def run():
            async with test_utils.TestClient(test_utils.TestServer(create_app(_config()))) as client:
                response = await client.post("/execute", json={"task_id": "t1"})
                return response.status

        assert asyncio.run(run()) == 400

    def test_wrong_worker(self):
        async def run():
            async with test_utils.TestClient(test_utils.TestServer(create_app(_config()))) as client:
                message = _message(worker_id="small-2")
                response = await client.post("/execute", json=message.model_dump(mode="json"))
                return response.status, await response.json()

        status, body = asyncio.run(run())
        assert status == 409
        assert "small-2" in body["error"]

    def test_busy_worker_rejects_second_task(self):
        async def run():
            app = create_app(_config())
            async with test_utils.TestClient(test_utils.TestServer(app)) as client:
                slow = _message("sleep", duration_seconds=0.5).model_dump(mode="json")
                first = asyncio.create_task(client.post("/execute", json=slow))

                executor = app[EXECUTOR_KEY]
                while not executor.busy:
                    await asyncio.sleep(0.01)

                second = await client.post("/execute", json=_message().model_dump(mode="json"))
                first_response = await first
                return second.status, first_response.status

        second_status, first_status = asyncio.run(run())
        assert second_status == 409
        assert first_status == 200

    def test_health(self):
        async def run():
            async with test_utils.TestClient(test_utils.TestServer(create_app(_config()))) as client:
                response = await client.get("/health")
                return await response.json()

        body = asyncio.run(run())
        assert body["status"] == "healthy"
        assert body["worker_id"] == "small-1"
        assert body["busy"] is False
        assert body["tasks_executed"] == 0


# ============================================================================
# HTTP TRANSPORT
# ============================================================================

class TestHTTPWorkerTransport:

    def test_round_trip(self):
        async def run():
            server = test_utils.TestServer(create_app(_config()))
            await server.start_server()
            transport = HTTPWorkerTransport()
            try:
                worker = Worker(worker_id="small-1", pool_name="small", address=str(server.make_url("/")))
                return await transport.execute(worker, _message(sample="NA12878"))
            finally:
                await transport.close()
                await server.close()

        result = asyncio.run(run())
        assert result.success
        assert result.output["echoed_params"]["sample"] == "NA12878"

    def test_rejection_is_transport_error(self):
        async def run():
            server = test_utils.TestServer(create_app(_config("small-9")))
            await server.start_server()
            transport = HTTPWorkerTransport()
            try:
                worker = Worker(worker_id="small-1", pool_name="small", address=str(server.make_url("/")))
                await transport.execute(worker, _message())
            finally:
                await transport.close()
                await server.close()

        with pytest.raises(WorkerTransportError, match="409"):
            asyncio.run(run())

    def test_unregistered_worker(self):
        async def run():
            transport = HTTPWorkerTransport()
            await transport.execute(Worker.new("small"), _message())

        with pytest.raises(WorkerTransportError, match="not registered"):
            asyncio.run(run())


class TestLocalWorkerTransport:

    def test_executor_released_when_worker_dies(self):
        transport = LocalWorkerTransport()
        worker = Worker(worker_id="small-1", pool_name="small")

        async def run():
            await transport.execute(worker, _message())
            await transport.execute(worker, _message())
            executor = transport._executors["small-1"]
            assert executor.tasks_executed == 2

            transport.forget("small-1")
            assert "small-1" not in transport._executors
            # Unknown ids are ignored
            transport.forget("small-404")

            await transport.execute(worker, _message())
            return executor

        executor = asyncio.run(run())
        assert transport._executors["small-1"] is not executor
        assert transport._executors["small-1"].tasks_executed == 1


# ============================================================================
# REGISTRATION
# ============================================================================

def _fake_controller(status: int):
    registrations = []

    async def register(request: web.Request) -> web.Response:
        registrations.append((request.match_info["worker_id"], await request.json()))
        if status != 200:
            return web.json_response({"detail": "unknown worker"}, status=status)
        return web.json_response({"worker_id": request.match_info["worker_id"], "state": "idle"})

    app = web.Application()
    app.router.add_post("/api/v1/workers/{worker_id}/register", register)
    return app, registrations


class TestRegistration:

    def test_register(self):
        app, registrations = _fake_controller(200)

        async def run():
            server = test_utils.TestServer(app)
            await server.start_server()
            client = ControllerClient(str(server.make_url("/")), max_attempts=1)
            try:
                return await client.register("big-1", "http://node17:41231", pool_name="big")
            finally:
                await client.close()
                await server.close()

        body = asyncio.run(run())
        assert body["state"] == "idle"
        assert registrations == [("big-1", {"address": "http://node17:41231", "pool_name": "big"})]

    def test_rejected_registration_is_not_retried(self):
        app, registrations = _fake_controller(404)

        async def run():
            server = test_utils.TestServer(app)
            await server.start_server()
            client = ControllerClient(str(server.make_url("/")), max_attempts=3)
            try:
                await client.register("big-1", "http://node17:41231")
            finally:
                await client.close()
                await server.close()

        with pytest.raises(RegistrationError, match="404"):
            asyncio.run(run())
        assert len(registrations) == 1


class TestWorkerConfig:

    def test_parse_args(self, monkeypatch):
        monkeypatch.setenv("POOL_NAME", "small")
        monkeypatch.setenv("WORKER_PORT", "9000")
        config = parse_args(["--worker-id", "big-1", "--pool", "big",
                             "--controller-url", "http://login01:8000"])

        assert config.worker_id == "big-1"
        assert config.pool_name == "big"
        assert config.port == 9000
        assert config.requires_registration

    def test_standalone_worker(self, monkeypatch):
        monkeypatch.delenv("POOL_CONTROLLER_URL", raising=False)
        config = parse_args(["--worker-id", "small-1"])
        assert not config.requires_registration

    def test_extra_handler_modules(self, monkeypatch):
        monkeypatch.setenv("HANDLER_MODULES", "site_handlers.genomics, site_handlers.imaging")
        config = WorkerConfig.from_env()
        assert config.handler_modules == [
            "handlers.examples",
            "site_handlers.genomics",
            "site_handlers.imaging",
        ]

    def test_address(self):
        assert _config().address_for(41231) == "http://localhost:41231"
