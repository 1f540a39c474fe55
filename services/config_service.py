# ============================================================================
# CLUSTER CONFIG SERVICE
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Core - Pool layout loading
# PURPOSE: Load and validate the cluster/pool layout from YAML
# CREATED: 19 OCT 2026
# ============================================================================
"""
Cluster Config Service

Loads the pool layout for a run from a YAML file. The result is an
immutable ClusterConfig; pools cannot be added mid-run.

Example (pools.yaml):

    scheduler: slurm
    controller_url: http://login01:8000
    default_pool: small
    pools:
      - name: small
        max_workers: 2
        resources: {cpus: 1, memory_gb: 1}
      - name: big
        max_workers: 1
        resources:
          cpus: 8
          memory_gb: 100
          walltime: "24:00:00"
          modules: ["module load python/3.12"]
        script_lines:
          - "#SBATCH --constraint=bigmem"

`pools` may also be a mapping of pool name to pool settings.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import ValidationError

from core.errors import PoolConfigurationError
from core.models import ClusterConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "pools.yaml"


class ConfigService:
    """Loads and caches the ClusterConfig for this process."""

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        """
        Args:
            config_path: YAML file. Defaults to $POOL_CONFIG_PATH, then
                ./pools.yaml
        """
        self.config_path = Path(
            config_path or os.environ.get("POOL_CONFIG_PATH", DEFAULT_CONFIG_PATH)
        )
        self._config: Optional[ClusterConfig] = None

    def load(self) -> ClusterConfig:
        """
        Load the cluster config (cached after the first call).

        Raises:
            PoolConfigurationError: missing file, bad YAML or invalid layout
        """
        if self._config is None:
            self._config = load_cluster_config(self.config_path)
        return self._config

    @property
    def config(self) -> ClusterConfig:
        return self.load()


def parse_cluster_config(data: Any) -> ClusterConfig:
    """
    Validate a parsed YAML document into a ClusterConfig.

    Raises:
        PoolConfigurationError: invalid layout
    """
    if not isinstance(data, dict):
        raise PoolConfigurationError("cluster config must be a mapping")

    data = dict(data)
    pools = data.get("pools")
    if isinstance(pools, dict):
        data["pools"] = [
            {"name": name, **(settings or {})} for name, settings in pools.items()
        ]

    try:
        return ClusterConfig.model_validate(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
            for err in e.errors()
        )
        raise PoolConfigurationError(f"invalid cluster config: {problems}") from e


def load_cluster_config(path: Union[str, Path]) -> ClusterConfig:
    """
    Load a ClusterConfig from a YAML file.

    Raises:
        PoolConfigurationError: missing file, bad YAML or invalid layout
    """
    path = Path(path)
    if not path.exists():
        raise PoolConfigurationError(f"config file not found: {path}")

    try:
        with open(path) as f:
            data: Dict[str, Any] = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise PoolConfigurationError(f"could not parse {path}: {e}") from e

    config = parse_cluster_config(data)
    logger.info(
        f"Loaded cluster config from {path}: scheduler={config.scheduler.value}, "
        f"pools={[p.name for p in config.pools]}"
    )
    return config


__all__ = [
    "ConfigService",
    "DEFAULT_CONFIG_PATH",
    "load_cluster_config",
    "parse_cluster_config",
]
