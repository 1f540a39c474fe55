# ============================================================================
# CONTROLLER GROUP / ROUTER
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Core - Resource profile routing
# PURPOSE: Map a task's resource_profile_tag to the pool that runs it
# CREATED: 19 OCT 2026
# ============================================================================
"""
Controller Group

Holds one WorkerPool per resource profile. Routing is an exact match on
the task's tag, falling back to the default pool when one is configured.
Pools are independent: separate queues, capacity and poll loops.
"""

import logging
from typing import Any, Dict, Iterator, List, Optional

from core.config import Defaults
from core.errors import PoolConfigurationError, UnroutableTask
from core.models import ClusterConfig, Task
from pool.worker_pool import WorkerPool
from scheduler import BatchSchedulerAdapter, CommandRunner, get_adapter

logger = logging.getLogger(__name__)


class ControllerGroup:
    """Resource-profile tag -> WorkerPool."""

    def __init__(self, pools: List[WorkerPool], default_pool: Optional[str] = None):
        """
        Raises:
            PoolConfigurationError: duplicate pool names or unknown default
        """
        self._pools: Dict[str, WorkerPool] = {}
        for pool in pools:
            if pool.name in self._pools:
                raise PoolConfigurationError("duplicate pool name", pool_name=pool.name)
            self._pools[pool.name] = pool

        if default_pool is not None and default_pool not in self._pools:
            raise PoolConfigurationError(
                f"default pool '{default_pool}' is not one of {sorted(self._pools)}"
            )
        self.default_pool = default_pool

    @classmethod
    def from_config(
        cls,
        config: ClusterConfig,
        adapter: Optional[BatchSchedulerAdapter] = None,
        runner: Optional[CommandRunner] = None,
        requires_registration: bool = True,
        defaults: Optional[Defaults] = None,
    ) -> "ControllerGroup":
        """Build every pool of a cluster config against one scheduler backend."""
        adapter = adapter or get_adapter(config.scheduler, runner=runner, defaults=defaults)
        pools = [
            WorkerPool(
                pool_config,
                adapter,
                controller_url=config.controller_url,
                worker_command=config.worker_command,
                shebang=config.shebang,
                requires_registration=requires_registration,
                defaults=defaults,
            )
            for pool_config in config.pools
        ]
        logger.info(
            f"Controller group built: scheduler={adapter.kind.value}, "
            f"pools={[p.name for p in pools]}, default={config.default_pool}"
        )
        return cls(pools, default_pool=config.default_pool)

    def route(self, task: Task) -> WorkerPool:
        """
        Resolve the pool for a task.

        Raises:
            UnroutableTask: no pool matches the tag and there is no default
        """
        pool = self._pools.get(task.resource_profile_tag)
        if pool is not None:
            return pool
        if self.default_pool is not None:
            return self._pools[self.default_pool]
        raise UnroutableTask(task.task_id, task.resource_profile_tag)

    def get(self, name: str) -> Optional[WorkerPool]:
        return self._pools.get(name)

    @property
    def pools(self) -> List[WorkerPool]:
        return list(self._pools.values())

    def __iter__(self) -> Iterator[WorkerPool]:
        return iter(self._pools.values())

    def __len__(self) -> int:
        return len(self._pools)

    def stats(self) -> Dict[str, Any]:
        return {
            "default_pool": self.default_pool,
            "pools": {name: pool.stats() for name, pool in self._pools.items()},
        }


__all__ = ["ControllerGroup"]
