# ============================================================================
# WORKER CONTRACTS
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Core - Worker process configuration and wire contract
# PURPOSE: Configure a persistent worker started inside a batch job
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Worker Contracts

The submission script launches:

    python -m worker.main --worker-id big-3f2a91c0 --pool big \\
        --controller-url http://login01:8000

Wire contract (JSON over HTTP):
    POST /execute   body: TaskMessage    -> 200 TaskResult
                                         -> 400 malformed message
                                         -> 409 busy / wrong worker
    GET  /health                         -> 200 worker status

Registration (worker -> controller):
    POST {controller_url}/api/v1/workers/{worker_id}/register
    body: {"address": "http://node17:41231", "pool_name": "big"}
"""

import os
import socket
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class WorkerConfig:
    """Configuration for one persistent worker process."""

    # Identity (assigned by the controller when it submitted the job)
    worker_id: str
    pool_name: Optional[str] = None

    # Where to register; None runs the worker standalone
    controller_url: Optional[str] = None

    # HTTP server. Port 0 binds an ephemeral port.
    host: str = "0.0.0.0"
    port: int = 0
    advertise_host: str = field(default_factory=socket.gethostname)

    # Registration
    register_attempts: int = 5
    register_timeout_seconds: float = 10.0

    # Backstop on top of each task's own deadline
    timeout_grace_seconds: float = 5.0

    # Handler loading
    handler_modules: List[str] = field(default_factory=lambda: ["handlers.examples"])

    @property
    def requires_registration(self) -> bool:
        return self.controller_url is not None

    def address_for(self, port: int) -> str:
        return f"http://{self.advertise_host}:{port}"

    @classmethod
    def from_env(cls) -> "WorkerConfig":
        """Create config from environment variables."""
        modules = ["handlers.examples"]
        extra = os.getenv("HANDLER_MODULES", "")
        if extra:
            modules.extend(m.strip() for m in extra.split(",") if m.strip())

        return cls(
            worker_id=os.getenv("POOL_WORKER_ID", f"worker-{socket.gethostname()}"),
            pool_name=os.getenv("POOL_NAME"),
            controller_url=os.getenv("POOL_CONTROLLER_URL"),
            host=os.getenv("WORKER_HOST", "0.0.0.0"),
            port=int(os.getenv("WORKER_PORT", "0")),
            advertise_host=os.getenv("WORKER_ADVERTISE_HOST", socket.gethostname()),
            register_attempts=int(os.getenv("WORKER_REGISTER_ATTEMPTS", "5")),
            register_timeout_seconds=float(os.getenv("WORKER_REGISTER_TIMEOUT", "10")),
            timeout_grace_seconds=float(os.getenv("WORKER_TIMEOUT_GRACE", "5")),
            handler_modules=modules,
        )


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["WorkerConfig"]
