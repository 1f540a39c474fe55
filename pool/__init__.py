# ============================================================================
# WORKER POOLS
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Core - Pools and routing
# PURPOSE: Package exports
# CREATED: 19 OCT 2026
# ============================================================================
"""Worker pools and the controller group that routes tasks to them."""

from pool.worker_pool import WorkerPool, PoolListener
from pool.router import ControllerGroup

__all__ = ["WorkerPool", "PoolListener", "ControllerGroup"]
