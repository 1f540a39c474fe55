# ============================================================================
# SERVICES MODULE
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Core - Configuration services
# PURPOSE: Load the cluster layout
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Services Module

Usage:
    from services import ConfigService

    cluster = ConfigService("pools.yaml").load()
"""

from .config_service import (
    ConfigService,
    DEFAULT_CONFIG_PATH,
    load_cluster_config,
    parse_cluster_config,
)

__all__ = [
    "ConfigService",
    "DEFAULT_CONFIG_PATH",
    "load_cluster_config",
    "parse_cluster_config",
]
