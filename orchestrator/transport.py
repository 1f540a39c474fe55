# ============================================================================
# WORKER TRANSPORT
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Core - Controller -> worker task delivery
# PURPOSE: Send a TaskMessage to a worker and get its TaskResult back
# CREATED: 19 OCT 2026
# ============================================================================
"""
Worker Transport

HTTPWorkerTransport posts to the aiohttp server each worker runs
(worker.main) at the address it registered. LocalWorkerTransport runs
tasks in-process with the same TaskExecutor, for development and tests;
its workers need no registration.

The dispatcher enforces the task deadline around execute(); transports
only raise WorkerTransportError when the exchange itself fails.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

import httpx
from pydantic import ValidationError

from core.errors import WorkerTransportError
from core.models import TaskMessage, TaskResult, Worker
from worker.executor import TaskExecutor

logger = logging.getLogger(__name__)


class WorkerTransport(ABC):
    """How the controller reaches a worker."""

    # Workers only become idle after registering an address
    requires_registration: bool = True

    @abstractmethod
    async def execute(self, worker: Worker, message: TaskMessage) -> TaskResult:
        """
        Run a task on a worker.

        Raises:
            WorkerTransportError: the worker could not be reached or
                answered with something other than a TaskResult
        """

    def forget(self, worker_id: str) -> None:
        """Release anything held for a worker that has died."""

    async def close(self) -> None:
        pass


class HTTPWorkerTransport(WorkerTransport):
    """POST {worker.address}/execute with httpx."""

    requires_registration = True

    def __init__(self, connect_timeout_seconds: float = 10.0):
        # No read timeout: the dispatcher's deadline bounds the request
        self._timeout = httpx.Timeout(None, connect=connect_timeout_seconds)
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def execute(self, worker: Worker, message: TaskMessage) -> TaskResult:
        if not worker.address:
            raise WorkerTransportError(worker.worker_id, "worker has not registered an address")

        url = f"{worker.address.rstrip('/')}/execute"
        try:
            response = await self._get_client().post(url, json=message.model_dump(mode="json"))
        except httpx.HTTPError as e:
            raise WorkerTransportError(worker.worker_id, f"POST {url} failed: {e}") from e

        if response.status_code != 200:
            raise WorkerTransportError(
                worker.worker_id,
                f"POST {url} returned {response.status_code}: {response.text[:500]}",
            )

        try:
            return TaskResult.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise WorkerTransportError(worker.worker_id, f"malformed task result: {e}") from e

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class LocalWorkerTransport(WorkerTransport):
    """Runs tasks in the controller process, one executor per worker."""

    requires_registration = False

    def __init__(self):
        self._executors: Dict[str, TaskExecutor] = {}

    async def execute(self, worker: Worker, message: TaskMessage) -> TaskResult:
        executor = self._executors.get(worker.worker_id)
        if executor is None:
            executor = TaskExecutor(
                worker_id=worker.worker_id,
                pool_name=worker.pool_name,
                timeout_grace_seconds=None,
            )
            self._executors[worker.worker_id] = executor
        return await executor.execute(message)

    def forget(self, worker_id: str) -> None:
        self._executors.pop(worker_id, None)

    async def close(self) -> None:
        self._executors.clear()


__all__ = ["WorkerTransport", "HTTPWorkerTransport", "LocalWorkerTransport"]
